import asyncio
import logging
from typing import Any, Optional

import httpx

from config import Settings
from endpoints import EndpointSpec, build_query, get_endpoint
from errors import BitsCrunchAPIError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.unleashnfts.com/api/v2"


class BitsCrunchClient:
    """Async client for the bitsCrunch (UnleashNFTs) analytics REST API."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = DEFAULT_BASE_URL,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        timeout: float = 30.0,
        default_blockchain: str = "ethereum",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key or ""
        self.base_url = base_url.rstrip("/")
        self.max_retries = max(1, max_retries)
        self.retry_base_delay = retry_base_delay
        self.timeout = timeout
        self.default_blockchain = default_blockchain
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "BitsCrunchClient":
        return cls(
            api_key=settings.bitscrunch_api_key,
            base_url=settings.bitscrunch_base_url,
            max_retries=settings.bitscrunch_max_retries,
            retry_base_delay=settings.bitscrunch_retry_base_delay,
            timeout=settings.bitscrunch_timeout,
            default_blockchain=settings.default_blockchain,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> dict[str, str]:
        return {"accept": "application/json", "x-api-key": self.api_key}

    # ── Raw HTTP ──────────────────────────────────────────────────────────

    async def get(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        """GET ``path`` and return decoded JSON, retrying on HTTP 429."""
        url = f"{self.base_url}/{path.lstrip('/')}"
        logger.info("Calling analytics API %s params=%s", url, params or {})

        async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
            for attempt in range(self.max_retries):
                try:
                    resp = await client.get(url, params=params, headers=self._headers())
                except httpx.HTTPError as e:
                    logger.error("Analytics API request to %s failed: %s", path, e)
                    raise BitsCrunchAPIError(
                        f"Failed to reach analytics API: {e}", status_code=502
                    ) from e

                if resp.status_code == 429 and attempt < self.max_retries - 1:
                    delay = self.retry_base_delay * (2 ** attempt)
                    logger.warning(
                        "Rate limit hit for %s. Retrying in %.1fs (attempt %d/%d)",
                        path, delay, attempt + 1, self.max_retries,
                    )
                    await asyncio.sleep(delay)
                    continue

                if resp.is_error:
                    details = _error_details(resp)
                    logger.error(
                        "Analytics API error for %s (status %d): %s",
                        path, resp.status_code, details,
                    )
                    raise BitsCrunchAPIError(
                        f"Failed to fetch data from analytics API: {resp.reason_phrase}",
                        status_code=resp.status_code,
                        details=details,
                    )

                try:
                    return resp.json()
                except ValueError as e:
                    raise BitsCrunchAPIError(
                        "Analytics API returned invalid JSON",
                        status_code=502,
                        details=resp.text[:500],
                    ) from e

        # Unreachable: the final attempt either returns or raises
        raise BitsCrunchAPIError("Analytics API retries exhausted", status_code=429)

    # ── Registry-based calls ──────────────────────────────────────────────

    def prepare(self, name: str, args: Optional[dict[str, Any]] = None) -> tuple[EndpointSpec, dict]:
        spec = get_endpoint(name)
        return spec, build_query(spec, args, self.default_blockchain)

    async def query(self, name: str, args: Optional[dict[str, Any]] = None) -> Any:
        """Validate ``args`` against endpoint ``name`` and call it."""
        spec, params = self.prepare(name, args)
        return await self.get(spec.path, params)


def _error_details(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text
