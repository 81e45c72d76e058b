from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ── Enums ─────────────────────────────────────────────────────────────────────


class PromptType(str, Enum):
    WALLET_SUMMARY = "wallet_summary"
    NFT_RECOMMENDATION = "nft_recommendation"
    TOKEN_RECOMMENDATION = "token_recommendation"
    MARKET_ANALYTICS_SUMMARY = "market_analytics_summary"
    NFT_REPORT_SUMMARY = "nft_report_summary"


class RecommendationType(str, Enum):
    BUY = "buy"
    SELL = "sell"
    HOLD = "hold"
    NEUTRAL = "neutral"


class CamelModel(BaseModel):
    """Browser-facing payloads use camelCase keys; Python code uses snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Chart / summary shapes ────────────────────────────────────────────────────


class ChartPoint(BaseModel):
    date: str
    value: float = 0.0


class PricePoint(BaseModel):
    date: str
    price: Optional[float] = None


class ProcessedData(CamelModel):
    """Uniform summary + chart structure produced from any analytics response."""

    summary: dict[str, Any] = {}
    chart_data: Optional[list[PricePoint]] = None
    detailed_data: Optional[list[dict[str, Any]]] = None
    volume_chart_data: Optional[list[ChartPoint]] = None
    sales_chart_data: Optional[list[ChartPoint]] = None
    transactions_chart_data: Optional[list[ChartPoint]] = None
    assets_chart_data: Optional[list[ChartPoint]] = None
    traders_chart_data: Optional[list[ChartPoint]] = None
    buyers_chart_data: Optional[list[ChartPoint]] = None
    sellers_chart_data: Optional[list[ChartPoint]] = None
    holders_chart_data: Optional[list[ChartPoint]] = None
    whales_chart_data: Optional[list[ChartPoint]] = None

    def series(self) -> dict[str, Any]:
        """Every chart series keyed by field name (summary and detail rows excluded)."""
        return {
            name: getattr(self, name)
            for name in CHART_SERIES
        }


CHART_SERIES = (
    "chart_data",
    "volume_chart_data",
    "sales_chart_data",
    "transactions_chart_data",
    "assets_chart_data",
    "traders_chart_data",
    "buyers_chart_data",
    "sellers_chart_data",
    "holders_chart_data",
    "whales_chart_data",
)


# ── LLM conversation ──────────────────────────────────────────────────────────


class FunctionCall(BaseModel):
    id: str
    name: str
    args: dict[str, Any] = {}


class FunctionResult(BaseModel):
    call_id: str
    name: str
    response: dict[str, Any] = {}


class ChatTurn(BaseModel):
    """One provider-neutral entry of a conversation history."""

    role: Literal["user", "assistant", "tool"]
    content: str = ""
    function_calls: list[FunctionCall] = []
    function_results: list[FunctionResult] = []


class LLMReply(BaseModel):
    text: str = ""
    function_calls: list[FunctionCall] = []


class FunctionOutcome(BaseModel):
    """Result of executing one ``queryNFTData`` call against the analytics API."""

    success: bool
    endpoint: str
    parameters: dict[str, Any] = {}
    processed: Optional[ProcessedData] = None
    error: Optional[str] = None

    def to_tool_response(self) -> dict[str, Any]:
        if not self.success:
            return {"success": False, "error": self.error, "endpoint": self.endpoint}
        return {
            "success": True,
            "endpoint": self.endpoint,
            "summary": self.processed.summary,
            "detailed_items": self.processed.detailed_data,
        }


# ── Reports ───────────────────────────────────────────────────────────────────


class ChatReport(CamelModel):
    """Aggregate of a chat 'detailed report' fan-out; failed calls stay None."""

    is_specific_nft: bool = False
    collection_metadata: Optional[dict[str, Any]] = None
    nft_metadata: Optional[dict[str, Any]] = None
    collection_analytics: Optional[dict[str, Any]] = None
    collection_scores: Optional[dict[str, Any]] = None
    collection_whales: Optional[dict[str, Any]] = None
    nft_price_estimate: Optional[dict[str, Any]] = None
    nft_scores: Optional[dict[str, Any]] = None


class TrendPoint(BaseModel):
    date: str
    volume: float = 0.0
    sales: float = 0.0
    transactions: float = 0.0
    assets: float = 0.0


class NFTReport(CamelModel):
    contract_address: str
    token_id: Optional[str] = None
    is_specific_nft: bool = False
    collection_metadata: Optional[dict[str, Any]] = None
    collection_analytics: Optional[dict[str, Any]] = None
    collection_scores: Optional[dict[str, Any]] = None
    collection_whales: Optional[dict[str, Any]] = None
    nft_metadata: Optional[dict[str, Any]] = None
    nft_price_estimate: Optional[dict[str, Any]] = None
    nft_scores: Optional[dict[str, Any]] = None
    floor_vs_estimate_diff_percent: Optional[float] = None
    recommendation: str = "Not enough data"
    collection_trends: list[TrendPoint] = []
    warnings: list[str] = []


class WalletReport(CamelModel):
    wallet_address: str
    nft_holdings: list[dict[str, Any]] = []
    erc20_holdings: list[dict[str, Any]] = []
    defi_holdings: list[dict[str, Any]] = []
    wallet_score: Optional[dict[str, Any]] = None
    total_assets_value: float = 0.0


class WashTradeReport(CamelModel):
    collections: list[dict[str, Any]] = []
    nfts: list[dict[str, Any]] = []


# ── API Models ────────────────────────────────────────────────────────────────


class HealthResponse(BaseModel):
    status: str
    version: str
    ai_enabled: bool = False
    analytics_configured: bool = False


class ProxyRequest(CamelModel):
    endpoint: str = Field(..., description="Analytics API path, e.g. /nft/collection/scores")
    wallet_address: Optional[str] = None
    params: dict[str, Any] = {}


class ChatMessage(BaseModel):
    role: str
    content: str = ""


class ChatRequest(CamelModel):
    messages: list[ChatMessage]
    session_id: str = "default"


class Recommendation(BaseModel):
    type: RecommendationType
    message: str


class ResponseData(CamelModel):
    metrics: dict[str, Any] = {}
    endpoint: str
    parameters: dict[str, Any] = {}
    detailed_data: Optional[list[dict[str, Any]]] = None


class ChatResponse(CamelModel):
    content: str
    data: Optional[ResponseData] = None
    recommendation: Optional[Recommendation] = None
    chart_data: Optional[list[PricePoint]] = None
    volume_chart_data: Optional[list[ChartPoint]] = None
    sales_chart_data: Optional[list[ChartPoint]] = None
    transactions_chart_data: Optional[list[ChartPoint]] = None
    assets_chart_data: Optional[list[ChartPoint]] = None
    traders_chart_data: Optional[list[ChartPoint]] = None
    buyers_chart_data: Optional[list[ChartPoint]] = None
    sellers_chart_data: Optional[list[ChartPoint]] = None
    holders_chart_data: Optional[list[ChartPoint]] = None
    whales_chart_data: Optional[list[ChartPoint]] = None
    report_data: Optional[ChatReport] = None


class SummaryRequest(CamelModel):
    report_data: dict[str, Any] = {}
    prompt_type: str


class SummaryResponse(BaseModel):
    summary: str


class NFTReportRequest(CamelModel):
    contract_address: str
    token_id: Optional[str] = None


class WalletReportRequest(CamelModel):
    wallet_address: str


class MarketOverview(CamelModel):
    analytics: ProcessedData
    ai_summary: Optional[str] = None
