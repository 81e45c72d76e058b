import asyncio
import logging
from typing import Any, Optional

from bitscrunch import BitsCrunchClient
from errors import ReportUnavailableError
from models import (
    ChatReport,
    FunctionCall,
    FunctionOutcome,
    NFTReport,
    TrendPoint,
    WalletReport,
    WashTradeReport,
)
from utils import format_date, parse_array_string, to_number

logger = logging.getLogger(__name__)

DETAILED_REPORT_PHRASES = (
    "detailed report",
    "full analysis",
    "more information",
    "complete information",
)

# Chat endpoint name -> ChatReport field
_REPORT_FIELDS = {
    "collection-metadata": "collection_metadata",
    "nft-metadata": "nft_metadata",
    "collection-analytics": "collection_analytics",
    "collection-scores": "collection_scores",
    "collection-whales": "collection_whales",
    "nft-price-estimate": "nft_price_estimate",
    "nft-scores": "nft_scores",
}


def is_detailed_report_request(text: str) -> bool:
    lowered = (text or "").lower()
    return any(phrase in lowered for phrase in DETAILED_REPORT_PHRASES)


def aggregate_report(
    calls: list[FunctionCall],
    outcomes: list[FunctionOutcome],
    report: Optional[ChatReport] = None,
) -> ChatReport:
    """Merge a chat fan-out into ``report`` (or a new one); failed calls leave fields untouched."""
    if report is None:
        report = ChatReport()
    if any(call.args.get("token_id") for call in calls):
        report.is_specific_nft = True
    for call, outcome in zip(calls, outcomes):
        field = _REPORT_FIELDS.get(call.args.get("endpoint", ""))
        if field and outcome.success and outcome.processed is not None:
            setattr(report, field, outcome.processed.summary)
    return report


def get_recommendation(estimated_price: Optional[float], floor_price: Optional[float]) -> str:
    if estimated_price is None or floor_price is None or floor_price == 0:
        return "Not enough data"
    diff_percent = (estimated_price - floor_price) / floor_price * 100
    if diff_percent > 20:
        return "Strong Buy"
    if diff_percent > 5:
        return "Buy"
    if diff_percent < -20:
        return "Strong Sell"
    if diff_percent < -5:
        return "Sell"
    return "Hold"


def parse_trend_data(analytics: dict) -> list[TrendPoint]:
    """Collection analytics trend arrays as rows, oldest first."""
    dates = parse_array_string(analytics.get("block_dates"))
    if not dates:
        return []

    def series(key: str) -> list[float]:
        return [to_number(v) for v in parse_array_string(analytics.get(key))]

    volumes = series("volume_trend")
    sales = series("sales_trend")
    transactions = series("transactions_trend")
    assets = series("assets_trend")

    def at(values: list[float], i: int) -> float:
        return values[i] if i < len(values) else 0.0

    rows = [
        TrendPoint(
            date=format_date(date),
            volume=at(volumes, i),
            sales=at(sales, i),
            transactions=at(transactions, i),
            assets=at(assets, i),
        )
        for i, date in enumerate(dates)
    ]
    # The API lists the newest block date first
    rows.reverse()
    return rows


def _first(data: Any) -> Optional[dict]:
    """``data[0]`` of an analytics response, or None."""
    if isinstance(data, dict):
        rows = data.get("data")
        if isinstance(rows, list) and rows:
            return rows[0]
    return None


def _rows(data: Any) -> list[dict]:
    if isinstance(data, dict) and isinstance(data.get("data"), list):
        return data["data"]
    return []


def _price(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class ReportBuilder:
    """Builds multi-call reports on top of the analytics client."""

    def __init__(self, client: BitsCrunchClient):
        self.client = client

    async def _settled(self, calls: dict[str, tuple[str, dict]]) -> tuple[dict[str, Any], list[str]]:
        """Run named queries concurrently; failures are logged and left missing."""
        names = list(calls)
        results = await asyncio.gather(
            *(self.client.query(endpoint, args) for endpoint, args in calls.values()),
            return_exceptions=True,
        )

        settled: dict[str, Any] = {}
        warnings: list[str] = []
        for name, result in zip(names, results):
            if isinstance(result, Exception):
                logger.warning("Report call %s failed: %s", name, result)
                warnings.append(f"{name} unavailable: {result}")
            else:
                settled[name] = result
        return settled, warnings

    async def nft_report(self, contract_address: str, token_id: Optional[str] = None) -> NFTReport:
        contract_address = contract_address.strip()
        token_id = (token_id or "").strip() or None
        is_specific = token_id is not None

        calls = {
            "collection_metadata": ("collection-metadata", {"contract_address": contract_address}),
            "collection_analytics": (
                "collection-analytics",
                {"contract_address": contract_address, "time_range": "30d", "sort_by": "sales"},
            ),
            "collection_scores": (
                "collection-scores",
                {"contract_address": contract_address, "time_range": "30d", "sort_by": "marketcap"},
            ),
            "collection_whales": (
                "collection-whales",
                {"contract_address": contract_address, "time_range": "30d", "sort_by": "nft_count"},
            ),
        }
        if is_specific:
            nft_args = {"contract_address": contract_address, "token_id": token_id}
            calls["nft_metadata"] = ("nft-metadata", nft_args)
            calls["nft_price_estimate"] = ("nft-price-estimate", nft_args)
            calls["nft_scores"] = ("nft-scores", {**nft_args, "sort_by": "price_ceiling"})

        settled, warnings = await self._settled(calls)
        parts = {name: _first(data) for name, data in settled.items()}

        if not parts.get("collection_metadata") and not parts.get("nft_metadata"):
            raise ReportUnavailableError(
                "Could not fetch essential metadata for the contract address.",
                details={"contract_address": contract_address, "warnings": warnings},
            )

        analytics = parts.get("collection_analytics")
        estimate = parts.get("nft_price_estimate")
        floor_price = _price((analytics or {}).get("floor_price_usd"))
        estimated_price = _price((estimate or {}).get("price_estimate"))

        diff_percent = None
        if floor_price is not None and estimated_price is not None and floor_price != 0:
            diff_percent = (estimated_price - floor_price) / floor_price * 100

        return NFTReport(
            contract_address=contract_address,
            token_id=token_id,
            is_specific_nft=is_specific,
            floor_vs_estimate_diff_percent=diff_percent,
            recommendation=get_recommendation(estimated_price, floor_price),
            collection_trends=parse_trend_data(analytics) if analytics else [],
            warnings=warnings,
            **{name: value for name, value in parts.items() if value},
        )

    async def wallet_report(self, wallet_address: str) -> WalletReport:
        """NFT, ERC-20 and token balances plus the wallet score; any failure propagates."""
        wallet_address = wallet_address.strip()
        nfts, erc20, tokens, score = await asyncio.gather(
            self.client.query("wallet-balance-nft", {"wallet": wallet_address}),
            self.client.query("wallet-balance-token", {"address": wallet_address}),
            self.client.query("token-balance", {"address": wallet_address}),
            self.client.query("wallet-score", {"wallet_address": wallet_address}),
        )

        defi_holdings = _rows(tokens)
        total = sum(to_number(item.get("token_value_usd")) for item in defi_holdings)
        return WalletReport(
            wallet_address=wallet_address,
            nft_holdings=_rows(nfts),
            erc20_holdings=_rows(erc20),
            defi_holdings=defi_holdings,
            wallet_score=_first(score),
            total_assets_value=round(total, 2),
        )

    async def washtrade_report(self, limit: int = 10) -> WashTradeReport:
        args = {"sort_by": "washtrade_volume_usd", "sort_order": "desc", "limit": limit}
        collections, nfts = await asyncio.gather(
            self.client.query("collection-washtrade", args),
            self.client.query("nft-washtrade", args),
        )
        return WashTradeReport(collections=_rows(collections), nfts=_rows(nfts))
