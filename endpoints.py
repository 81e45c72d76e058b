"""Registry of the bitsCrunch (UnleashNFTs) analytics endpoints.

Each endpoint has a stable name used by the chat tool (``collection-scores``),
the REST path used by the generic proxy (``/nft/collection/scores``), the
query parameters it accepts, the defaults the API expects (most list
endpoints reject requests without ``sort_by``) and the required argument
groups.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from errors import EndpointValidationError, UnknownEndpointError
from utils import SUPPORTED_BLOCKCHAINS, TIME_RANGES, normalize_blockchain

logger = logging.getLogger(__name__)

# Accepted on every endpoint in addition to its own parameters
PAGINATION_PARAMS = ("limit", "offset", "sort_order")

_LIST_DEFAULTS = {"sort_order": "desc", "offset": "0", "limit": "30"}

CONTRACT_OR_SLUG = ("contract_address", "slug_name")


@dataclass(frozen=True)
class EndpointSpec:
    name: str
    path: str
    params: tuple[str, ...]
    description: str
    defaults: dict[str, str] = field(default_factory=dict)
    # Each group is satisfied when at least one of its params is present
    required: tuple[tuple[str, ...], ...] = ()
    # Parameter name the endpoint uses for the wallet address, if any
    wallet_param: Optional[str] = None

    @property
    def accepted_params(self) -> tuple[str, ...]:
        return self.params + tuple(p for p in PAGINATION_PARAMS if p not in self.params)


def _spec(name, path, params, description, defaults=None, required=(), wallet_param=None):
    return EndpointSpec(
        name=name,
        path=path,
        params=tuple(params),
        description=description,
        defaults=dict(defaults or {}),
        required=tuple(tuple(group) for group in required),
        wallet_param=wallet_param,
    )


ENDPOINTS: dict[str, EndpointSpec] = {
    spec.name: spec
    for spec in [
        # ── Token ─────────────────────────────────────────────────────────
        _spec(
            "token-balance", "/token/balance",
            ["blockchain", "address", "token_address", "time_range"],
            "Get the token balances for a specific wallet address. Example: To get the "
            "balance of a specific token, provide both `address` and `token_address`.",
            {"time_range": "all", "limit": "30"},
            required=[("address",)],
            wallet_param="address",
        ),
        _spec(
            "token-metrics", "/token/metrics",
            ["blockchain", "token_address"],
            "Retrieve key metrics and metadata for a specific token. Example: Use this to "
            "get the current price, market cap, and holder count for a token like WETH.",
            required=[("token_address",)],
        ),
        _spec(
            "token-price-prediction", "/token/price_prediction",
            ["token_address"],
            "Get a future price prediction for a token. Requires `token_address`.",
            required=[("token_address",)],
        ),
        _spec(
            "token-dex-price", "/token/dex_price",
            ["blockchain", "token_address", "time_range"],
            "Get the current USD price of an ERC-20 token from DEXs. Example: Use this to "
            "find the real-time price of a token before making a trade.",
            required=[("token_address",)],
        ),
        _spec(
            "token-historical-price", "/token/historical_price",
            ["blockchain", "token_address", "time_range", "interval"],
            "Retrieve the historical USD price of an ERC-20 token. Example: To get the "
            "price history for the last 30 days, use `time_range: '30d'`.",
            {"time_range": "30d"},
            required=[("token_address",)],
        ),
        # ── Wallet ────────────────────────────────────────────────────────
        _spec(
            "wallet-balance-nft", "/wallet/balance/nft",
            ["wallet", "blockchain", "time_range"],
            "Get a comprehensive overview of a wallet's NFT holdings. Requires the "
            "`wallet` address.",
            {"time_range": "all", "limit": "30"},
            required=[("wallet",)],
            wallet_param="wallet",
        ),
        _spec(
            "wallet-balance-token", "/wallet/balance/token",
            ["address", "blockchain", "time_range"],
            "Get a comprehensive overview of a wallet's ERC-20 token holdings. Requires "
            "the `address`.",
            {"time_range": "all", "limit": "30"},
            required=[("address",)],
            wallet_param="address",
        ),
        _spec(
            "wallet-score", "/wallet/score",
            ["wallet_address", "blockchain", "time_range"],
            "Assess a wallet's activity, risk profile, and interaction patterns. Requires "
            "`wallet_address`.",
            {"time_range": "all", "limit": "30"},
            required=[("wallet_address",)],
            wallet_param="wallet_address",
        ),
        _spec(
            "wallet-metrics", "/wallet/metrics",
            ["blockchain", "wallet", "time_range"],
            "Get a wallet's transactional activity, including volume, inflow/outflow, and "
            "age. Requires the `wallet` address.",
            required=[("wallet",)],
            wallet_param="wallet",
        ),
        # ── NFT ───────────────────────────────────────────────────────────
        _spec(
            "nft-metadata", "/nft/metadata",
            ["blockchain", "contract_address", "slug_name", "token_id", "time_range"],
            "Retrieve the metadata for a specific NFT. Requires `contract_address` and "
            "`token_id`.",
            {"time_range": "all", **_LIST_DEFAULTS},
            required=[CONTRACT_OR_SLUG],
        ),
        _spec(
            "nft-analytics", "/nft/analytics",
            ["contract_address", "slug_name", "token_id", "blockchain", "time_range", "sort_by"],
            "Get detailed analytics for a specific NFT. `sort_by` is required, defaults to "
            "'sales'. Example: To see sales analytics for the last 24 hours, use "
            "`time_range: '24h'`.",
            {"time_range": "24h", "sort_by": "sales", **_LIST_DEFAULTS},
            required=[CONTRACT_OR_SLUG],
        ),
        _spec(
            "nft-scores", "/nft/scores",
            ["contract_address", "slug_name", "token_id", "blockchain", "time_range", "sort_by"],
            "Get performance scores for a specific NFT. `sort_by` is required, defaults to "
            "'price_ceiling'. Example: Use this to find the rarity and popularity of a "
            "specific NFT.",
            {"time_range": "24h", "sort_by": "price_ceiling", **_LIST_DEFAULTS},
            required=[CONTRACT_OR_SLUG],
        ),
        _spec(
            "nft-washtrade", "/nft/washtrade",
            ["contract_address", "token_id", "blockchain", "time_range", "sort_by"],
            "Detect and analyze wash trading for a specific NFT. `sort_by` is required, "
            "defaults to 'washtrade_volume'.",
            {"sort_by": "washtrade_volume"},
        ),
        _spec(
            "nft-top-deals", "/nft/top_deals",
            ["sort_by"],
            "Discover the best current deals for NFTs. `sort_by` is required, defaults to "
            "'deal_score'. Use this when a user asks for investment advice or 'what to buy'.",
            {"sort_by": "deal_score"},
        ),
        _spec(
            "nft-price-estimate", "/nft/liquify/price_estimate",
            ["blockchain", "contract_address", "token_id"],
            "Get a predicted price for a specific NFT. Requires `contract_address` and "
            "`token_id`. Crucial for buy/sell recommendations.",
            required=[("contract_address",), ("token_id",)],
        ),
        _spec(
            "nft-transactions", "/nft/transactions",
            ["blockchain", "contract_address", "token_id", "time_range", "type"],
            "List recent transactions (buy, sell, mint, transfer) for an NFT or collection.",
            {"time_range": "24h", **_LIST_DEFAULTS},
        ),
        # ── NFT collection ────────────────────────────────────────────────
        _spec(
            "collection-metadata", "/nft/collection/metadata",
            ["blockchain", "slug_name", "contract_address", "time_range"],
            "Retrieve metadata for an entire NFT collection. Requires `contract_address` "
            "or `slug_name`.",
            {"time_range": "all", **_LIST_DEFAULTS},
            required=[CONTRACT_OR_SLUG],
        ),
        _spec(
            "collection-owner", "/nft/collection/owner",
            ["blockchain", "contract_address", "sort_by"],
            "Get a list of all NFT holders for a collection. `sort_by` is required, "
            "defaults to 'acquired_date'.",
            {"sort_by": "acquired_date"},
            required=[("contract_address",)],
        ),
        _spec(
            "collection-analytics", "/nft/collection/analytics",
            ["blockchain", "contract_address", "slug_name", "time_range", "sort_by"],
            "Get detailed analytics for a collection. `sort_by` is required, defaults to "
            "'sales'. Example: To get sales data for the last week for a collection, use "
            "`sort_by: 'sales'` and `time_range: '7d'`.",
            {"time_range": "24h", "sort_by": "sales", **_LIST_DEFAULTS},
            required=[CONTRACT_OR_SLUG],
        ),
        _spec(
            "collection-holders", "/nft/collection/holders",
            ["blockchain", "contract_address", "time_range", "sort_by"],
            "Get detailed holder metrics for a collection. `sort_by` is required, defaults "
            "to 'holders'.",
            {"sort_by": "holders"},
        ),
        _spec(
            "collection-scores", "/nft/collection/scores",
            ["blockchain", "contract_address", "slug_name", "time_range", "sort_by"],
            "Get performance scores for a collection. `sort_by` is required, defaults to "
            "'marketcap'. Use this to find the collection's market cap and average price.",
            {"time_range": "24h", "sort_by": "marketcap", **_LIST_DEFAULTS},
            required=[CONTRACT_OR_SLUG],
        ),
        _spec(
            "collection-washtrade", "/nft/collection/washtrade",
            ["blockchain", "contract_address", "time_range", "sort_by"],
            "Analyze wash trading at the collection level. `sort_by` is required, defaults "
            "to 'washtrade_assets'.",
            {"sort_by": "washtrade_assets"},
        ),
        _spec(
            "collection-whales", "/nft/collection/whales",
            ["blockchain", "contract_address", "slug_name", "time_range", "sort_by"],
            "Get insights into 'Whales' (large holders) within a collection. `sort_by` is "
            "required, defaults to 'nft_count'.",
            {"time_range": "24h", "sort_by": "nft_count", **_LIST_DEFAULTS},
            required=[CONTRACT_OR_SLUG],
        ),
        _spec(
            "collection-floor-price", "/nft/collection/floor-price",
            ["blockchain", "contract_address"],
            "Retrieves the current floor price of an NFT collection. Requires "
            "`contract_address`. Crucial for buy/sell recommendations.",
            required=[("contract_address",)],
        ),
        _spec(
            "collection-price-estimate", "/nft/liquify/collection/price_estimate",
            ["blockchain", "contract_address"],
            "Retrieve a predicted price for an entire NFT collection. Requires "
            "`contract_address`.",
            required=[("contract_address",)],
        ),
        # ── Market & marketplace ──────────────────────────────────────────
        _spec(
            "market-insights-analytics", "/nft/market-insights/analytics",
            ["blockchain", "time_range"],
            "Get aggregated analytics for the entire NFT market. Example: Use "
            "`time_range: '24h'` for the latest market overview.",
            {"time_range": "24h"},
        ),
        _spec(
            "market-insights-holders", "/nft/market-insights/holders",
            ["blockchain", "time_range"],
            "Get aggregated holder metrics across the entire NFT market.",
        ),
        _spec(
            "market-insights-traders", "/nft/market-insights/traders",
            ["blockchain", "time_range"],
            "Get aggregated trader metrics across the entire NFT market.",
        ),
        _spec(
            "market-insights-washtrade", "/nft/market-insights/washtrade",
            ["blockchain", "time_range"],
            "Get aggregated wash trade metrics for the entire NFT market.",
        ),
        _spec(
            "marketplace-analytics", "/nft/marketplace/analytics",
            ["blockchain", "time_range", "sort_by"],
            "Get detailed analytics for a specific NFT marketplace. `sort_by` is required, "
            "defaults to 'volume'.",
            {"sort_by": "volume"},
        ),
        _spec(
            "marketplace-holders", "/nft/marketplace/holders",
            ["blockchain", "time_range", "sort_by"],
            "Get holder metrics for a specific NFT marketplace. `sort_by` is required, "
            "defaults to 'holders'.",
            {"sort_by": "holders"},
        ),
        _spec(
            "marketplace-traders", "/nft/marketplace/traders",
            ["blockchain", "time_range", "sort_by"],
            "Get trader metrics for a specific NFT marketplace. `sort_by` is required, "
            "defaults to 'traders'.",
            {"sort_by": "traders"},
        ),
    ]
}

_BY_PATH: dict[str, EndpointSpec] = {spec.path: spec for spec in ENDPOINTS.values()}


def get_endpoint(name: str) -> EndpointSpec:
    spec = ENDPOINTS.get(name)
    if spec is None:
        raise UnknownEndpointError(f"Unknown endpoint: {name}")
    return spec


def find_by_path(path: str) -> EndpointSpec:
    normalized = "/" + path.strip().strip("/")
    spec = _BY_PATH.get(normalized)
    if spec is None:
        raise UnknownEndpointError(f"Unsupported analytics endpoint: {path}")
    return spec


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def build_query(
    spec: EndpointSpec,
    args: Optional[dict[str, Any]] = None,
    default_blockchain: str = "ethereum",
) -> dict[str, str]:
    """Turn tool/proxy arguments into the query string for ``spec``.

    Unknown arguments are dropped, ``blockchain`` is normalized, endpoint
    defaults fill the gaps and the required groups are enforced.
    """
    args = args or {}
    query: dict[str, str] = {}

    if "blockchain" in spec.params:
        query["blockchain"] = normalize_blockchain(args.get("blockchain"), default_blockchain)

    dropped = []
    for key, value in args.items():
        if key == "blockchain" or _is_empty(value):
            continue
        if key not in spec.accepted_params:
            dropped.append(key)
            continue
        # LLM function calls deliver numbers as floats (10.0)
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        query[key] = str(value).strip()

    if dropped and set(dropped) != {"endpoint"}:
        logger.debug("Dropping unsupported params for %s: %s", spec.name, dropped)

    for key, value in spec.defaults.items():
        query.setdefault(key, value)

    missing = [group for group in spec.required if not any(p in query for p in group)]
    if missing:
        wanted = "; ".join(" or ".join(group) for group in missing)
        raise EndpointValidationError(
            f"{wanted} is required for {spec.name}",
            details={"endpoint": spec.name, "missing": [list(g) for g in missing]},
        )
    return query


def function_declaration() -> dict:
    """JSON schema of the ``queryNFTData`` tool offered to the LLM."""
    return {
        "name": "queryNFTData",
        "description": "Query NFT or Token data using BitsCrunch APIs",
        "parameters": {
            "type": "object",
            "properties": {
                "endpoint": {
                    "type": "string",
                    "enum": list(ENDPOINTS),
                    "description": "The API endpoint to call",
                },
                "blockchain": {
                    "type": "string",
                    "enum": SUPPORTED_BLOCKCHAINS,
                    "description": "Blockchain name (ethereum, polygon, avalanche, binance, solana, etc.)",
                },
                "contract_address": {
                    "type": "string",
                    "description": "NFT collection contract address",
                },
                "slug_name": {
                    "type": "string",
                    "description": "Collection slug, an alternative to contract_address",
                },
                "token_id": {"type": "string", "description": "Specific NFT token ID"},
                "wallet_address": {
                    "type": "string",
                    "description": "The user's wallet address (e.g. 0x...). Use for endpoints like wallet-score.",
                },
                "wallet": {
                    "type": "string",
                    "description": "The user's wallet address (e.g. 0x...). Note: Use this parameter name "
                    "for 'wallet-metrics' and 'wallet-balance-nft' endpoints.",
                },
                "address": {
                    "type": "string",
                    "description": "The user's wallet address (e.g. 0x...). Note: Use this parameter name "
                    "for 'wallet-balance-token' and 'token-balance' endpoints.",
                },
                "token_address": {
                    "type": "string",
                    "description": "ERC20 token address for token-specific queries",
                },
                "time_range": {
                    "type": "string",
                    "enum": TIME_RANGES,
                    "description": "Time range for analytics",
                },
                "limit": {
                    "type": "number",
                    "description": "Number of items to return for paginated results (e.g., holders, transactions)",
                },
                "offset": {"type": "number", "description": "Offset for pagination"},
                "type": {
                    "type": "string",
                    "enum": ["buy", "sell", "mint", "transfer"],
                    "description": "Type of transaction (buy, sell, mint, transfer)",
                },
                "sort_by": {
                    "type": "string",
                    "description": "Field to sort results by (e.g., 'deal_score', 'rarity_score', "
                    "'volume_usd', 'balance', 'timestamp')",
                },
                "sort_order": {
                    "type": "string",
                    "enum": ["asc", "desc"],
                    "description": "Sort order (ascending or descending)",
                },
            },
            "required": ["endpoint"],
        },
    }
