"""Tests for the HTTP API routes."""

import io

import openpyxl
import pytest
from fastapi.testclient import TestClient
from fastmcp import Client

import main
from chat import ChatService
from conftest import CONTRACT, WALLET
from errors import EndpointValidationError, ReportUnavailableError
from models import FunctionCall, LLMReply
from reports import ReportBuilder


@pytest.fixture
def services(monkeypatch, make_client, fake_agent, collection_routes):
    """Install mocked services on the app's globals (lifespan is not run)."""

    def install(routes=None, agent=fake_agent, requests=None):
        client = make_client(collection_routes if routes is None else routes, requests)
        monkeypatch.setattr(main, "bitscrunch", client)
        monkeypatch.setattr(main, "report_builder", ReportBuilder(client))
        monkeypatch.setattr(main, "agent", agent)
        monkeypatch.setattr(main, "agent_error", None if agent else "GEMINI_API_KEY is not set")
        monkeypatch.setattr(main, "chat_service", ChatService(client, agent) if agent else None)
        return client

    return install


@pytest.fixture
def api():
    return TestClient(main.app)


class TestInfo:
    """Root and health routes."""

    def test_health(self, api, services):
        services()
        body = api.get("/health").json()

        assert body["status"] == "ok"
        assert body["ai_enabled"] is True
        assert body["analytics_configured"] is True

    def test_health_without_ai(self, api, services):
        services(agent=None)
        assert api.get("/health").json()["ai_enabled"] is False

    def test_root_lists_endpoints(self, api):
        body = api.get("/").json()

        assert body["name"] == "NFT Analytics Agent"
        assert "collection-scores" in body["analytics_endpoints"]
        assert body["endpoints"]["mcp"].endswith("/mcp")


class TestProxy:
    """POST /api/bitscrunch"""

    def test_forwards_registered_path(self, api, services):
        requests = []
        services(requests=requests)

        resp = api.post("/api/bitscrunch", json={
            "endpoint": "/nft/collection/scores",
            "params": {"contract_address": CONTRACT, "blockchain": "eth"},
        })

        assert resp.status_code == 200
        assert resp.json()["data"][0]["marketcap"] == 1_000_000
        params = requests[0].url.params
        assert params["blockchain"] == "ethereum"
        assert params["sort_by"] == "marketcap"

    def test_wallet_endpoint_requires_wallet(self, api, services):
        services()
        resp = api.post("/api/bitscrunch", json={"endpoint": "/wallet/balance/nft"})

        assert resp.status_code == 400
        assert resp.json() == {"error": "Wallet address is required for this endpoint"}

    def test_wallet_address_mapped_to_endpoint_param(self, api, services):
        requests = []
        services(routes={"/wallet/score": {"data": [{"wallet_score": 50}]}}, requests=requests)

        resp = api.post("/api/bitscrunch", json={"endpoint": "/wallet/score", "walletAddress": WALLET})

        assert resp.status_code == 200
        assert requests[0].url.params["wallet_address"] == WALLET

    def test_unknown_path_rejected(self, api, services):
        services()
        resp = api.post("/api/bitscrunch", json={"endpoint": "/admin/secrets"})

        assert resp.status_code == 400
        assert "Unsupported analytics endpoint" in resp.json()["error"]

    def test_upstream_status_propagates(self, api, services):
        services(routes={"/nft/top_deals": (401, {"message": "bad key"})})
        resp = api.post("/api/bitscrunch", json={"endpoint": "/nft/top_deals"})

        assert resp.status_code == 401
        assert resp.json()["details"] == {"message": "bad key"}


class TestChatRoute:
    """POST /api/chat"""

    def test_empty_messages(self, api, services):
        services()
        resp = api.post("/api/chat", json={"messages": []})

        assert resp.status_code == 400
        assert resp.json() == {"error": "Invalid messages format"}

    def test_malformed_body(self, api, services):
        services()
        resp = api.post("/api/chat", json={"messages": "hello"})

        assert resp.status_code == 400

    def test_missing_llm_key(self, api, services):
        services(agent=None)
        resp = api.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]})

        assert resp.status_code == 500
        assert resp.json()["error"] == "GEMINI_API_KEY is not set"

    def test_chat_with_function_call(self, api, services, fake_agent):
        fake_agent.chat.side_effect = [
            LLMReply(function_calls=[FunctionCall(
                id="c1", name="queryNFTData",
                args={"endpoint": "collection-scores", "contract_address": CONTRACT},
            )]),
            LLMReply(text="Strong collection.\nRECOMMENDATION: BUY - Undervalued"),
        ]
        services()

        resp = api.post("/api/chat", json={
            "messages": [{"role": "user", "content": "Is BAYC worth it?"}],
            "sessionId": "abc",
        })

        assert resp.status_code == 200
        body = resp.json()
        assert body["content"] == "Strong collection."
        assert body["recommendation"] == {"type": "buy", "message": "Undervalued"}
        assert body["data"]["endpoint"] == "collection-scores"
        assert body["data"]["metrics"]["marketcap"] == 1_000_000
        assert "chartData" in body

    def test_provider_failure(self, api, services, fake_agent):
        fake_agent.chat.side_effect = RuntimeError("quota exceeded")
        services()

        resp = api.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}]})

        assert resp.status_code == 500
        assert resp.json() == {"error": "Failed to process request", "details": "quota exceeded"}

    def test_reset_session(self, api, services):
        services()
        api.post("/api/chat", json={"messages": [{"role": "user", "content": "hi"}], "sessionId": "s9"})

        assert api.delete("/api/chat/sessions/s9").json() == {"sessionId": "s9", "cleared": True}
        assert api.delete("/api/chat/sessions/s9").json()["cleared"] is False


class TestSummaryRoute:
    """POST /api/gemini"""

    def test_summary(self, api, services, fake_agent):
        services()
        resp = api.post("/api/gemini", json={
            "promptType": "market_analytics_summary",
            "reportData": {"volume": 10, "volume_change": 0.1},
        })

        assert resp.status_code == 200
        assert resp.json() == {"summary": "Summary text."}
        prompt = fake_agent.generate_text.call_args.args[0]
        assert "Change: 10.00%" in prompt

    def test_invalid_prompt_type(self, api, services):
        services()
        resp = api.post("/api/gemini", json={"promptType": "haiku", "reportData": {}})

        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid prompt type"

    def test_generation_failure(self, api, services, fake_agent):
        fake_agent.generate_text.side_effect = RuntimeError("safety block")
        services()

        resp = api.post("/api/gemini", json={"promptType": "wallet_summary", "reportData": {}})

        assert resp.status_code == 500
        assert resp.json() == {"error": "Failed to generate AI summary", "details": "safety block"}


class TestReportRoutes:
    """Report and overview routes."""

    def test_nft_report(self, api, services):
        services()
        resp = api.post("/api/reports/nft", json={"contractAddress": CONTRACT})

        assert resp.status_code == 200
        body = resp.json()
        assert body["contractAddress"] == CONTRACT
        assert body["collectionMetadata"]["collection_name"] == "Bored Ape Yacht Club"
        assert len(body["collectionTrends"]) == 3

    def test_nft_report_not_found(self, api, services):
        services(routes={})
        resp = api.post("/api/reports/nft", json={"contractAddress": CONTRACT})

        assert resp.status_code == 404

    def test_wallet_report_csv(self, api, services):
        services(routes={
            "/wallet/balance/nft": {"data": []},
            "/wallet/balance/token": {"data": []},
            "/token/balance": {"data": [{"token_name": "USD Coin", "token_symbol": "USDC",
                                         "quantity": 5, "token_value_usd": 5}]},
            "/wallet/score": {"data": [{"wallet_score": 61, "classification": "Holder"}]},
        })

        resp = api.post("/api/reports/wallet?format=csv", json={"walletAddress": WALLET})

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        text = resp.text
        assert "WALLET REPORT" in text
        assert "USD Coin,USDC,5,5" in text
        assert "Total Asset Value (USD),$5.00" in text

    def test_wallet_report_excel(self, api, services):
        services(routes={
            "/wallet/balance/nft": {"data": []},
            "/wallet/balance/token": {"data": []},
            "/token/balance": {"data": []},
            "/wallet/score": {"data": []},
        })

        resp = api.post("/api/reports/wallet?format=excel", json={"walletAddress": WALLET})

        assert resp.status_code == 200
        wb = openpyxl.load_workbook(io.BytesIO(resp.content))
        assert wb.sheetnames == ["Summary", "Token Holdings"]
        assert wb["Summary"]["A1"].value == "Wallet Report"

    def test_wallet_report_rejects_invalid_address(self, api, services):
        services()
        resp = api.post("/api/reports/wallet", json={"walletAddress": "not-an-address"})

        assert resp.status_code == 400

    def test_washtrade_report(self, api, services):
        services(routes={
            "/nft/collection/washtrade": {"data": [{"collection": "A"}]},
            "/nft/washtrade": {"data": []},
        })

        body = api.get("/api/reports/washtrade?limit=3").json()

        assert body == {"collections": [{"collection": "A"}], "nfts": []}

    def test_market_overview(self, api, services, fake_agent):
        services(routes={
            "/nft/market-insights/analytics": {"data": [{
                "volume": 1000, "volume_change": 0.2, "sales": 10,
                "block_dates": "{2024-01-01}", "volume_trend": "{1000}",
            }]},
        })

        body = api.get("/api/market/overview").json()

        assert body["analytics"]["summary"]["total_volume"] == 1000
        assert body["analytics"]["volumeChartData"] == [{"date": "2024-01-01", "value": 1000.0}]
        assert body["aiSummary"] == "Summary text."
        fake_agent.generate_text.assert_called_once()


class TestSummaryRobustness:
    """Summaries from malformed client report data."""

    @pytest.mark.parametrize("prompt_type,report_data", [
        ("nft_report_summary", {"collectionMetadata": "BAYC", "collectionTrends": ["x", "y"]}),
        ("wallet_summary", {"nftHoldings": [1, 2], "erc20Holdings": "USDC"}),
        ("token_recommendation", {"historicalPrices": [None, {"date": "2024-01-01", "price": 1}]}),
    ])
    def test_malformed_nested_values(self, api, services, fake_agent, prompt_type, report_data):
        services()
        resp = api.post("/api/gemini", json={"promptType": prompt_type, "reportData": report_data})

        assert resp.status_code == 200
        assert resp.json() == {"summary": "Summary text."}
        fake_agent.generate_text.assert_called_once()

    def test_prompt_failure_is_json(self, api, services, monkeypatch):
        services()

        def broken(prompt_type, report_data):
            raise AttributeError("'str' object has no attribute 'get'")

        monkeypatch.setattr(main, "build_summary_prompt", broken)
        resp = api.post("/api/gemini", json={"promptType": "wallet_summary", "reportData": {}})

        assert resp.status_code == 500
        assert resp.headers["content-type"].startswith("application/json")
        assert resp.json()["error"] == "Failed to generate AI summary"

    def test_market_overview_survives_malformed_row(self, api, services, fake_agent, monkeypatch):
        services(routes={"/nft/market-insights/analytics": {"data": [{"volume": 1}]}})

        def broken(prompt_type, report_data):
            raise TypeError("bad row")

        monkeypatch.setattr(main, "build_summary_prompt", broken)
        resp = api.get("/api/market/overview")

        assert resp.status_code == 200
        assert resp.json()["aiSummary"] is None
        fake_agent.generate_text.assert_not_called()


class TestMCPTools:
    """Tools exposed on the /mcp server."""

    @pytest.mark.asyncio
    async def test_tools_are_registered(self):
        async with Client(main.mcp) as client:
            tools = await client.list_tools()

        assert {"query_nft_data", "nft_report"} <= {tool.name for tool in tools}

    @pytest.mark.asyncio
    async def test_fetch_summary(self, services):
        services()

        result = await main.fetch_summary("collection-analytics", {"contract_address": CONTRACT})

        assert result["summary"]["volume"] == 5000
        assert [p["value"] for p in result["volumeChartData"]] == [30.0, 20.0, 10.0]
        assert "chartData" not in result

    @pytest.mark.asyncio
    async def test_fetch_summary_validates_arguments(self, services):
        services()

        with pytest.raises(EndpointValidationError):
            await main.fetch_summary("collection-analytics", None)

    @pytest.mark.asyncio
    async def test_fetch_nft_report(self, services):
        services()

        result = await main.fetch_nft_report(CONTRACT)

        assert result["contractAddress"] == CONTRACT
        assert result["collectionScores"]["marketcap"] == 1_000_000
        assert result["recommendation"] == "Not enough data"

    @pytest.mark.asyncio
    async def test_fetch_nft_report_unavailable(self, services):
        services(routes={})

        with pytest.raises(ReportUnavailableError):
            await main.fetch_nft_report(CONTRACT, "1")
