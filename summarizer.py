"""Reshape heterogeneous analytics responses into summary + chart series.

The analytics API returns three broad shapes: a single object wrapped in
``data[0]``, a list of rows in ``data``, or an object whose ``*_trend``
fields hold Postgres array literals aligned with ``block_dates``. Every
shape is reduced to a flat ``summary`` dict (missing values shown as
``"N/A"``) plus whichever chart series the endpoint supports.
"""

import json
import logging
from typing import Any

from models import ChartPoint, PricePoint, ProcessedData
from utils import (
    first_present,
    format_date,
    normalize_blockchain,
    parse_array_string,
    to_int,
    to_number,
)

logger = logging.getLogger(__name__)

# Endpoints whose useful payload is the first element of ``data``
SINGLE_OBJECT_ENDPOINTS = frozenset({
    "nft-metadata",
    "collection-metadata",
    "nft-scores",
    "collection-scores",
    "nft-price-estimate",
    "collection-price-estimate",
    "collection-floor-price",
    "wallet-metrics",
    "token-metrics",
    "token-price-prediction",
    "market-insights-analytics",
    "market-insights-traders",
    "market-insights-holders",
})


def unwrap(raw: Any, endpoint: str) -> Any:
    """Pick the part of a raw response that the summary is built from."""
    if isinstance(raw, dict) and "data" in raw:
        data = raw["data"]
        if isinstance(data, list):
            if not data:
                return {}
            if endpoint in SINGLE_OBJECT_ENDPOINTS:
                return data[0] or {}
            return data
        if data is None:
            return {}
    return raw


def _total_items(raw: Any, rows: list) -> int:
    pagination = raw.get("pagination") if isinstance(raw, dict) else None
    if isinstance(pagination, dict) and pagination.get("total_items"):
        return pagination["total_items"]
    return len(rows)


def _trend(dates: list[str], field: Any) -> list[ChartPoint]:
    values = [to_number(v) for v in parse_array_string(field)]
    return [
        ChartPoint(date=format_date(date), value=values[i] if i < len(values) else 0.0)
        for i, date in enumerate(dates)
    ]


def _block_dates(data: dict) -> list[str]:
    return parse_array_string(data.get("block_dates"))


# ── Shape handlers ────────────────────────────────────────────────────────────


def _marketplace_analytics(rows: Any, out: ProcessedData) -> None:
    if not isinstance(rows, list) or not rows:
        out.summary = {"message": "No marketplace analytics data available."}
        return

    ranked = sorted(rows, key=lambda mp: to_number(mp.get("volume")), reverse=True)
    top = ranked[0]
    out.summary = {
        "total_marketplaces": len(rows),
        "total_volume_usd": sum(to_number(mp.get("volume")) for mp in rows),
        "total_sales_count": sum(to_int(mp.get("sales")) for mp in rows),
        "total_transactions": sum(to_int(mp.get("transactions")) for mp in rows),
        "top_marketplace_by_volume": top.get("name"),
        "top_marketplace_volume": top.get("volume"),
    }
    out.detailed_data = [
        {
            "marketplace": mp.get("name"),
            "volume_usd": f"{to_number(mp.get('volume')):.2f}",
            "sales": mp.get("sales"),
            "transactions": mp.get("transactions"),
            "volume_change_percent": (
                f"{to_number(mp['volume_change']):.2f}"
                if mp.get("volume_change") is not None else None
            ),
        }
        for mp in ranked
    ]


def _analytics(data: Any, endpoint: str, out: ProcessedData) -> None:
    if isinstance(data, list):
        latest = data[-1] if data else {}
        out.summary = {
            "volume": first_present(latest.get("volume")),
            "sales_count": first_present(latest.get("sales")),
            "floor_price": first_present(latest.get("floor_price_usd")),
            "market_cap": first_present(latest.get("market_cap")),
            "average_price": first_present(latest.get("average_price")),
            "timestamp": first_present(latest.get("updated_at")),
            "volume_change": first_present(latest.get("volume_change")),
            "sales_change": first_present(latest.get("sales_change")),
            "transactions_change": first_present(latest.get("transactions_change")),
            "assets_change": first_present(latest.get("assets_change")),
        }
        dates = _block_dates(latest)
        out.volume_chart_data = _trend(dates, latest.get("volume_trend"))
        out.sales_chart_data = _trend(dates, latest.get("sales_trend"))
        out.transactions_chart_data = _trend(dates, latest.get("transactions_trend"))
        out.assets_chart_data = _trend(dates, latest.get("assets_trend"))
    elif endpoint == "market-insights-analytics":
        out.summary = {
            "total_sales": first_present(data.get("sales")),
            "sales_change": first_present(data.get("sales_change")),
            "total_transactions": first_present(data.get("transactions")),
            "transactions_change": first_present(data.get("transactions_change")),
            "total_volume": first_present(data.get("volume")),
            "volume_change": first_present(data.get("volume_change")),
        }
        dates = _block_dates(data)
        out.volume_chart_data = _trend(dates, data.get("volume_trend"))
        out.sales_chart_data = _trend(dates, data.get("sales_trend"))
        out.transactions_chart_data = _trend(dates, data.get("transactions_trend"))
    else:
        out.summary = {
            "volume": first_present(data.get("volume"), data.get("total_volume")),
            "sales_count": first_present(data.get("sales_count"), data.get("total_sales")),
            "floor_price": first_present(data.get("floor_price")),
            "market_cap": first_present(data.get("market_cap")),
            "average_price": first_present(data.get("average_price")),
        }


def _holders(raw: Any, data: Any, endpoint: str, out: ProcessedData) -> None:
    if isinstance(data, list):
        out.summary = {
            "total_holders": _total_items(raw, data),
            "sample_holders": ", ".join(
                f"{str(h.get('holder_address', ''))[:6]}... ({h.get('nft_count')} NFTs)"
                for h in data[:3]
            ),
        }
    elif endpoint == "market-insights-holders":
        out.summary = {
            "total_holders": first_present(data.get("holders")),
            "holders_change": first_present(data.get("holders_change")),
            "total_whales": first_present(data.get("holders_whales")),
            "whales_change": first_present(data.get("holders_whales_change")),
        }
        dates = _block_dates(data)
        out.holders_chart_data = _trend(dates, data.get("holders_trend"))
        out.whales_chart_data = _trend(dates, data.get("holders_whales_trend"))
    else:
        out.summary = {
            "total_holders": first_present(data.get("total_holders")),
            "unique_holders": first_present(data.get("unique_holders")),
        }


def _traders(raw: Any, data: Any, endpoint: str, out: ProcessedData) -> None:
    if isinstance(data, list):
        out.summary = {
            "total_traders": _total_items(raw, data),
            "top_traders": ", ".join(
                f"{str(t.get('trader_address', ''))[:6]}... (Vol: {t.get('total_volume')})"
                for t in data[:3]
            ),
        }
    elif endpoint == "market-insights-traders":
        out.summary = {
            "total_traders": first_present(data.get("traders")),
            "traders_change": first_present(data.get("traders_change")),
            "total_buyers": first_present(data.get("traders_buyers")),
            "buyers_change": first_present(data.get("traders_buyers_change")),
            "total_sellers": first_present(data.get("traders_sellers")),
            "sellers_change": first_present(data.get("traders_sellers_change")),
        }
        dates = _block_dates(data)
        out.traders_chart_data = _trend(dates, data.get("traders_trend"))
        out.buyers_chart_data = _trend(dates, data.get("traders_buyers_trend"))
        out.sellers_chart_data = _trend(dates, data.get("traders_sellers_trend"))
    else:
        out.summary = {"total_traders": first_present(data.get("total_traders"))}


def _first_row(data: Any) -> dict:
    if isinstance(data, list):
        return data[0] if data else {}
    return data


def _price_estimate(data: dict) -> dict:
    return {
        "price_estimate": first_present(data.get("price_estimate"), data.get("price")),
        "confidence": first_present(data.get("confidence")),
        "currency": first_present(data.get("currency"), default="ETH"),
        "token_id": first_present(data.get("token_id")),
        "contract_address": first_present(data.get("contract_address")),
        "blockchain": first_present(data.get("blockchain")),
        "collection_name": first_present(data.get("collection_name")),
        "rarity_sales": json.dumps(data.get("rarity_sales") or {}),
        "collection_drivers": json.dumps(data.get("collection_drivers") or {}),
        "nft_rarity_drivers": json.dumps(data.get("nft_rarity_drivers") or {}),
        "nft_sales_drivers": json.dumps(data.get("nft_sales_drivers") or {}),
        "prediction_percentile": first_present(data.get("prediction_percentile")),
        "thumbnail_url": first_present(data.get("thumbnail_url")),
        "token_image_url": first_present(data.get("token_image_url")),
        "price_estimate_lower_bound": first_present(data.get("price_estimate_lower_bound")),
        "price_estimate_upper_bound": first_present(data.get("price_estimate_upper_bound")),
    }


def _top_deals(raw: Any, data: Any, out: ProcessedData) -> None:
    if not isinstance(data, list):
        out.summary = {"total_deals": "N/A"}
        out.detailed_data = []
        return

    def score(deal: dict) -> str:
        value = deal.get("deal_score")
        return f"{to_number(value):.2f}" if value is not None else "N/A"

    out.summary = {
        "total_deals": _total_items(raw, data),
        "top_deals": ", ".join(
            f"{deal.get('collection_name')} (Score: {score(deal)}, "
            f"Listed: {deal.get('listed_eth_price')} ETH)"
            for deal in data[:3]
        ),
    }
    out.detailed_data = [
        {
            "collection_name": deal.get("collection_name"),
            "contract_address": deal.get("contract_address"),
            "blockchain": normalize_blockchain(deal.get("chain_id")),
            "deal_score": deal.get("deal_score"),
            "estimated_eth_price": deal.get("estimated_eth_price"),
            "listed_eth_price": deal.get("listed_eth_price"),
            "token_id": deal.get("token_id"),
        }
        for deal in data
    ]


def _historical_price(data: Any, out: ProcessedData) -> None:
    if not isinstance(data, list):
        out.summary = {"price_range": "N/A"}
        return
    out.chart_data = [
        PricePoint(date=format_date(item.get("block_date")), price=item.get("usd"))
        for item in data
    ]
    first_price = first_present(out.chart_data[0].price) if out.chart_data else "N/A"
    last_price = first_present(out.chart_data[-1].price) if out.chart_data else "N/A"
    out.summary = {
        "price_range": f"{first_price} USD to {last_price} USD",
        "data_points": len(out.chart_data),
    }


def _list_sample(raw: Any, data: Any, count_key: str, sample_key: str, fmt) -> dict:
    if not isinstance(data, list):
        return {count_key: "N/A"}
    return {
        count_key: _total_items(raw, data),
        sample_key: ", ".join(fmt(item) for item in data[:3]),
    }


def _fallback(data: Any) -> dict:
    items = enumerate(data) if isinstance(data, list) else data.items()
    return {
        str(key): json.dumps(value, default=str) if isinstance(value, (dict, list)) else value
        for key, value in items
    }


# ── Entry point ───────────────────────────────────────────────────────────────


def _summarize(raw: Any, endpoint: str) -> ProcessedData:
    data = unwrap(raw, endpoint)
    out = ProcessedData()

    if endpoint == "marketplace-analytics":
        _marketplace_analytics(data, out)
    elif "analytics" in endpoint:
        _analytics(data, endpoint, out)
    elif "holders" in endpoint:
        _holders(raw, data, endpoint, out)
    elif "traders" in endpoint:
        _traders(raw, data, endpoint, out)
    elif "whales" in endpoint:
        whales = _first_row(data)
        out.summary = {
            "unique_wallets": first_present(whales.get("unique_wallets")),
            "whale_holders": first_present(whales.get("whale_holders")),
            "buy_whales": first_present(whales.get("buy_whales")),
            "sell_whales": first_present(whales.get("sell_whales")),
        }
    elif endpoint == "collection-floor-price":
        out.summary = {
            "floor_price": first_present(data.get("floor_price")),
            "currency": first_present(data.get("currency"), default="ETH"),
        }
    elif "metadata" in endpoint:
        out.summary = {
            "name": first_present(data.get("collection"), data.get("name")),
            "symbol": first_present(data.get("symbol")),
            "total_supply": first_present(data.get("distinct_nft_count"), data.get("total_supply")),
            "description": first_present(data.get("description")),
            "contract_address": first_present(data.get("contract_address")),
            "image_url": first_present(data.get("image_url")),
            "discord_url": first_present(data.get("discord_url")),
            "external_url": first_present(data.get("external_url")),
        }
    elif endpoint == "collection-scores":
        scores = _first_row(data)
        out.summary = {
            "marketcap": first_present(scores.get("marketcap")),
            "price_avg": first_present(scores.get("price_avg")),
            "price_ceiling": first_present(scores.get("price_ceiling")),
        }
    elif endpoint == "nft-scores":
        scores = _first_row(data)
        out.summary = {
            "rarity_score": first_present(scores.get("rarity_score")),
            "popularity_score": first_present(scores.get("popularity_score")),
            "overall_score": first_present(scores.get("token_score")),
        }
    elif endpoint.endswith("price-estimate"):
        out.summary = _price_estimate(_first_row(data))
    elif endpoint == "wallet-balance-nft":
        out.summary = _list_sample(
            raw, data, "total_nfts", "sample_nfts",
            lambda nft: f"{nft.get('collection_name') or nft.get('name')} #{nft.get('token_id')}",
        )
    elif endpoint == "wallet-balance-token":
        out.summary = _list_sample(
            raw, data, "total_tokens", "sample_tokens",
            lambda t: f"{t.get('symbol')}: {t.get('balance')}",
        )
    elif endpoint == "nft-transactions":
        out.summary = _list_sample(
            raw, data, "total_transactions", "sample_transactions",
            lambda tx: f"{tx.get('type')} {tx.get('price')} ETH (Token: {tx.get('token_id')})",
        )
    elif endpoint == "nft-top-deals":
        _top_deals(raw, data, out)
    elif endpoint == "token-historical-price":
        _historical_price(data, out)
    elif endpoint == "token-metrics":
        out.summary = {
            "current_price": first_present(data.get("current_price")),
            "market_cap": first_present(data.get("market_cap")),
            "holders": first_present(data.get("holders")),
            "token_score": first_present(data.get("token_score")),
            "risk_level": first_present(data.get("risk_level")),
            "token_name": first_present(data.get("token_name")),
            "token_symbol": first_present(data.get("token_symbol")),
        }
    elif endpoint == "token-price-prediction":
        out.summary = {
            "price_estimate": first_present(data.get("price_estimate")),
            "lower_bound": first_present(data.get("price_estimate_lower_bound")),
            "upper_bound": first_present(data.get("price_estimate_upper_bound")),
            "volatility_influence": first_present(data.get("price_range_volatility_influence")),
            "trading_volume_trend": first_present(data.get("trading_volume_trend_influence")),
        }
    else:
        out.summary = _fallback(data)

    return out


def process_and_summarize(raw: Any, endpoint: str) -> ProcessedData:
    """Summarize ``raw`` (the JSON body of ``endpoint``) into a ``ProcessedData``."""
    try:
        processed = _summarize(raw, endpoint)
    except Exception:
        logger.exception("Failed to summarize response from %s", endpoint)
        return ProcessedData(summary={"error": "Failed to process data", "raw_data_available": True})

    logger.debug("Processed summary for %s: %s", endpoint, processed.summary)
    return processed
