"""Pytest fixtures for the NFT analytics agent tests."""

from typing import Any, Callable, Optional
from unittest.mock import MagicMock

import httpx
import pytest

from bitscrunch import BitsCrunchClient
from models import LLMReply

API_PREFIX = "/api/v2"

CONTRACT = "0xBC4CA0EdA7647A8aB7C2061c2E118A18a936f13D"
WALLET = "0x742d35Cc6634C0532925a3b844Bc454e4438f44e"


def make_transport(
    routes: dict[str, Any],
    requests: Optional[list[httpx.Request]] = None,
) -> httpx.MockTransport:
    """MockTransport answering by exact API path.

    A route value is either a JSON body (status 200) or a
    ``(status, body)`` tuple. Unknown paths answer 404.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        path = request.url.path
        if path.startswith(API_PREFIX):
            path = path[len(API_PREFIX):]
        body = routes.get(path)
        if body is None:
            return httpx.Response(404, json={"message": "Not Found"})
        status, payload = body if isinstance(body, tuple) else (200, body)
        return httpx.Response(status, json=payload)

    return httpx.MockTransport(handler)


@pytest.fixture
def make_client() -> Callable[..., BitsCrunchClient]:
    """Factory for a BitsCrunchClient backed by a MockTransport."""

    def factory(routes=None, requests=None, **kwargs) -> BitsCrunchClient:
        kwargs.setdefault("retry_base_delay", 0)
        return BitsCrunchClient(
            "test-key",
            transport=make_transport(routes or {}, requests),
            **kwargs,
        )

    return factory


@pytest.fixture
def fake_agent() -> MagicMock:
    """Agent double; tests queue replies through ``chat.side_effect``."""
    agent = MagicMock()
    agent.chat.return_value = LLMReply(text="Done.")
    agent.generate_text.return_value = "Summary text."
    return agent


@pytest.fixture
def collection_routes() -> dict[str, Any]:
    """Analytics responses for a collection report on CONTRACT."""
    return {
        "/nft/collection/metadata": {
            "data": [{
                "collection": "Bored Ape Yacht Club",
                "collection_name": "Bored Ape Yacht Club",
                "contract_address": CONTRACT,
                "distinct_nft_count": 10000,
                "description": "Apes.",
            }]
        },
        "/nft/collection/analytics": {
            "data": [{
                "floor_price_usd": "100",
                "volume": 5000,
                "sales": 42,
                "block_dates": "{2024-01-03T00:00:00Z,2024-01-02T00:00:00Z,2024-01-01T00:00:00Z}",
                "volume_trend": "{30,20,10}",
                "sales_trend": "{3,2,1}",
                "transactions_trend": "{6,4,2}",
                "assets_trend": "{9,8,7}",
            }]
        },
        "/nft/collection/scores": {
            "data": [{"marketcap": 1_000_000, "price_avg": 120, "price_ceiling": 900}]
        },
        "/nft/collection/whales": {
            "data": [{"unique_wallets": 5000, "whale_holders": 12, "buy_whales": 3, "sell_whales": 1}]
        },
    }
