import asyncio
import io
import logging
from contextlib import asynccontextmanager
from typing import Literal, Optional

from fastapi import FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from fastmcp import FastMCP

from config import get_settings, setup_logging

settings = get_settings()
setup_logging(settings.log_level)

from agent import AnalyticsAgent
from bitscrunch import BitsCrunchClient
from chat import ChatService, SessionStore
from endpoints import ENDPOINTS, build_query, find_by_path
from errors import AnalyticsError, EndpointValidationError, LLMUnavailableError
from exports import to_csv, to_excel, to_json
from models import (
    ChatRequest,
    ChatResponse,
    HealthResponse,
    MarketOverview,
    NFTReport,
    NFTReportRequest,
    ProxyRequest,
    SummaryRequest,
    SummaryResponse,
    WalletReport,
    WalletReportRequest,
    WashTradeReport,
)
from prompts import SUMMARY_SYSTEM_PROMPT, build_summary_prompt
from reports import ReportBuilder
from summarizer import process_and_summarize
from utils import is_evm_address, short_address

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


# ── MCP Server (mounted at /mcp) ─────────────────────────────────────────────

mcp = FastMCP(
    name="NFT Analytics Agent",
    instructions=(
        "Queries NFT and token analytics (collections, single NFTs, wallets, market "
        "insights, wash trading) from the bitsCrunch API and returns chart-ready summaries."
    ),
)


async def fetch_summary(endpoint: str, arguments: Optional[dict] = None) -> dict:
    raw = await bitscrunch.query(endpoint, arguments or {})
    return process_and_summarize(raw, endpoint).model_dump(by_alias=True, exclude_none=True)


async def fetch_nft_report(contract_address: str, token_id: Optional[str] = None) -> dict:
    report = await report_builder.nft_report(contract_address, token_id)
    return report.model_dump(by_alias=True)


@mcp.tool()
async def query_nft_data(endpoint: str, arguments: Optional[dict] = None) -> dict:
    """
    Query one analytics endpoint and return its normalized summary.

    Args:
        endpoint:  Endpoint name, e.g. "collection-scores" or "token-metrics".
        arguments: Query arguments such as contract_address, token_id, time_range.

    Returns:
        Summary dict plus any chart series the endpoint supports.
    """
    return await fetch_summary(endpoint, arguments)


@mcp.tool()
async def nft_report(contract_address: str, token_id: Optional[str] = None) -> dict:
    """
    Build a detailed collection report, or a single-NFT report when token_id is given.

    Returns:
        Metadata, analytics, scores, whales, trends and a buy/sell recommendation.
    """
    return await fetch_nft_report(contract_address, token_id)


mcp_app = mcp.http_app(path="/")


# ── Lifespan ──────────────────────────────────────────────────────────────────

bitscrunch: BitsCrunchClient | None = None
report_builder: ReportBuilder | None = None
agent: AnalyticsAgent | None = None
agent_error: str | None = None
chat_service: ChatService | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global bitscrunch, report_builder, agent, agent_error, chat_service
    bitscrunch = BitsCrunchClient.from_settings(settings)
    report_builder = ReportBuilder(bitscrunch)
    if not bitscrunch.configured:
        logger.warning("BITSCRUNCH_API_KEY is not set; analytics calls will be rejected upstream")
    try:
        agent = AnalyticsAgent(settings.ai_provider, settings.llm_temperature)
    except LLMUnavailableError as e:
        logger.warning("AI features disabled: %s", e.message)
        agent, agent_error = None, e.message
    if agent:
        chat_service = ChatService(
            bitscrunch, agent, SessionStore(), max_tool_rounds=settings.max_tool_rounds
        )
    logger.info("NFT Analytics Agent ready")
    async with mcp_app.lifespan(app):
        yield
    logger.info("Shutting down.")


# ── App ───────────────────────────────────────────────────────────────────────

app = FastAPI(
    title="NFT Analytics Agent",
    description=(
        "Web3/NFT analytics backend over the bitsCrunch (UnleashNFTs) API.\n\n"
        "Exposes a generic analytics proxy (`/api/bitscrunch`), a function-calling "
        "chat assistant (`/api/chat`), prompt-templated summaries (`/api/gemini`), "
        "multi-call reports (`/api/reports/*`) and an **MCP** server (`/mcp`)."
    ),
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/mcp", mcp_app)


@app.exception_handler(AnalyticsError)
async def analytics_error_handler(request: Request, exc: AnalyticsError):
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        {"error": "Invalid request", "details": exc.errors()},
        status_code=400,
    )


def _require_chat() -> ChatService:
    if not (bitscrunch and bitscrunch.configured):
        raise LLMUnavailableError("Missing BitsCrunch API key")
    if chat_service is None:
        raise LLMUnavailableError(agent_error or "AI provider is not configured")
    return chat_service


def _require_agent() -> AnalyticsAgent:
    if agent is None:
        raise LLMUnavailableError(agent_error or "AI provider is not configured")
    return agent


def _export(report, fmt: str, name: str):
    if fmt == "csv":
        return StreamingResponse(
            content=io.BytesIO(to_csv(report)),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{name}.csv"'},
        )
    if fmt == "excel":
        return StreamingResponse(
            content=io.BytesIO(to_excel(report)),
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers={"Content-Disposition": f'attachment; filename="{name}.xlsx"'},
        )
    return StreamingResponse(
        content=io.BytesIO(to_json(report)),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{name}.json"'},
    )


# ── Info ──────────────────────────────────────────────────────────────────────


@app.get("/", tags=["Info"])
def root(request: Request):
    base = str(request.base_url).rstrip("/")
    return {
        "name": "NFT Analytics Agent",
        "version": VERSION,
        "analytics_endpoints": sorted(ENDPOINTS),
        "endpoints": {
            "docs": f"{base}/docs",
            "health": f"{base}/health",
            "proxy": f"{base}/api/bitscrunch",
            "chat": f"{base}/api/chat",
            "summary": f"{base}/api/gemini",
            "nft_report": f"{base}/api/reports/nft",
            "wallet_report": f"{base}/api/reports/wallet",
            "washtrade_report": f"{base}/api/reports/washtrade",
            "market_overview": f"{base}/api/market/overview",
            "mcp": f"{base}/mcp",
        },
    }


@app.get("/health", response_model=HealthResponse, tags=["Info"])
def health():
    return HealthResponse(
        status="ok",
        version=VERSION,
        ai_enabled=agent is not None,
        analytics_configured=bool(bitscrunch and bitscrunch.configured),
    )


# ── Analytics Proxy ───────────────────────────────────────────────────────────


@app.post("/api/bitscrunch", tags=["Analytics"])
async def bitscrunch_proxy(req: ProxyRequest):
    """
    Forward a request to a registered analytics API path.

    Wallet endpoints (`/wallet/balance/nft`, `/wallet/balance/token`,
    `/token/balance`, `/wallet/score`, `/wallet/metrics`) require
    `walletAddress`, which is mapped onto the parameter name the endpoint
    expects. Other parameters are validated against the endpoint's
    registry entry and filled with its defaults.
    """
    spec = find_by_path(req.endpoint)
    params = dict(req.params)
    if spec.wallet_param:
        wallet = req.wallet_address or params.get(spec.wallet_param)
        if not wallet:
            raise EndpointValidationError("Wallet address is required for this endpoint")
        params[spec.wallet_param] = wallet

    query = build_query(spec, params, settings.default_blockchain)
    return await bitscrunch.get(spec.path, query)


# ── Chat ──────────────────────────────────────────────────────────────────────


@app.post("/api/chat", response_model=ChatResponse, tags=["Chat"])
async def chat(req: ChatRequest):
    """
    Conversational analytics assistant.

    The model picks analytics endpoints through function calling; results
    are summarized into metrics, chart series and, for "detailed report"
    requests, an aggregated report. History is kept per `sessionId`.
    """
    if not req.messages:
        return JSONResponse({"error": "Invalid messages format"}, status_code=400)
    service = _require_chat()
    logger.info("Chat request: %d messages, session %s", len(req.messages), req.session_id)

    try:
        return await service.handle(req.messages, req.session_id)
    except AnalyticsError:
        raise
    except Exception as e:
        logger.exception("Chat API error")
        return JSONResponse(
            {"error": "Failed to process request", "details": str(e)},
            status_code=500,
        )


@app.delete("/api/chat/sessions/{session_id}", tags=["Chat"])
def reset_chat_session(session_id: str):
    cleared = chat_service.sessions.reset(session_id) if chat_service else False
    return {"sessionId": session_id, "cleared": cleared}


# ── AI Summaries ──────────────────────────────────────────────────────────────


@app.post("/api/gemini", response_model=SummaryResponse, tags=["AI"])
async def generate_summary(req: SummaryRequest):
    """Prompt-templated summary of report data (wallet, NFT, token, market, NFT report)."""
    logger.info("Generating AI summary for prompt type %s", req.prompt_type)
    try:
        prompt = build_summary_prompt(req.prompt_type, req.report_data)
        llm = _require_agent()
        text = await asyncio.to_thread(llm.generate_text, prompt, SUMMARY_SYSTEM_PROMPT)
    except AnalyticsError:
        raise
    except Exception as e:
        logger.exception("Error generating AI text")
        return JSONResponse(
            {"error": "Failed to generate AI summary", "details": str(e)},
            status_code=500,
        )
    return SummaryResponse(summary=text)


# ── Reports ───────────────────────────────────────────────────────────────────


@app.post("/api/reports/nft", tags=["Reports"])
async def nft_report_endpoint(
    req: NFTReportRequest,
    format: Literal["json", "csv", "excel"] = Query(default="json"),
):
    """
    Detailed NFT report: collection metadata, 30-day analytics, scores and
    whales, plus metadata, price estimate and scores for a single token
    when `tokenId` is given. Calls that fail are listed in `warnings`.
    """
    report: NFTReport = await report_builder.nft_report(req.contract_address, req.token_id)
    if format == "json":
        return JSONResponse(report.model_dump(by_alias=True))
    return _export(report, format, f"nft_{short_address(report.contract_address, 4)}_report")


@app.post("/api/reports/wallet", tags=["Reports"])
async def wallet_report_endpoint(
    req: WalletReportRequest,
    format: Literal["json", "csv", "excel"] = Query(default="json"),
):
    """NFT, ERC-20 and token holdings plus the wallet score for an EVM address."""
    if not is_evm_address(req.wallet_address):
        raise EndpointValidationError(f"Invalid wallet address: {req.wallet_address}")
    report: WalletReport = await report_builder.wallet_report(req.wallet_address)
    if format == "json":
        return JSONResponse(report.model_dump(by_alias=True))
    return _export(report, format, f"wallet_{req.wallet_address[:12]}_report")


@app.get("/api/reports/washtrade", response_model=WashTradeReport, tags=["Reports"])
async def washtrade_report_endpoint(limit: int = Query(default=10, ge=1, le=100)):
    """Top wash-traded collections and NFTs by wash-trade volume."""
    return await report_builder.washtrade_report(limit)


@app.get("/api/market/overview", response_model=MarketOverview, tags=["Reports"])
async def market_overview(time_range: str = Query(default="24h")):
    """Market-wide analytics with chart series and, when AI is enabled, a short sentiment summary."""
    raw = await bitscrunch.query("market-insights-analytics", {"time_range": time_range})
    overview = MarketOverview(analytics=process_and_summarize(raw, "market-insights-analytics"))

    rows = raw.get("data") if isinstance(raw, dict) else None
    if agent and isinstance(rows, list) and rows:
        try:
            prompt = build_summary_prompt("market_analytics_summary", rows[0])
            overview.ai_summary = await asyncio.to_thread(
                agent.generate_text, prompt, SUMMARY_SYSTEM_PROMPT
            )
        except Exception as e:
            logger.warning("Market summary generation failed: %s", e)
    return overview


# ── Entry point ───────────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.app_env == "development",
    )
