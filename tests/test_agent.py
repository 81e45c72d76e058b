"""Tests for the LLM agent's provider setup and history translation."""

import json

import pytest

from agent import (
    AnalyticsAgent,
    _anthropic_messages,
    _gemini_contents,
    _gemini_schema,
    _openai_messages,
)
from errors import LLMUnavailableError
from models import ChatTurn, FunctionCall, FunctionResult, LLMReply


@pytest.fixture
def history():
    return [
        ChatTurn(role="user", content="Scores for BAYC?"),
        ChatTurn(
            role="assistant",
            content="",
            function_calls=[FunctionCall(id="c1", name="queryNFTData",
                                         args={"endpoint": "collection-scores"})],
        ),
        ChatTurn(
            role="tool",
            function_results=[FunctionResult(call_id="c1", name="queryNFTData",
                                             response={"success": True, "summary": {"marketcap": 1}})],
        ),
        ChatTurn(role="assistant", content="Market cap is 1."),
    ]


class TestProviderSetup:
    """Provider selection and missing credentials."""

    def test_unknown_provider(self):
        with pytest.raises(LLMUnavailableError) as exc:
            AnalyticsAgent("llama")
        assert "Unknown AI_PROVIDER" in exc.value.message

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(LLMUnavailableError) as exc:
            AnalyticsAgent("openai")
        assert exc.value.message == "OPENAI_API_KEY is not set"

    def test_generate_text_delegates_to_chat(self, monkeypatch):
        agent = AnalyticsAgent.__new__(AnalyticsAgent)
        captured = {}

        def fake_chat(history, tools, system):
            captured.update(history=history, tools=tools, system=system)
            return LLMReply(text="ok")

        monkeypatch.setattr(agent, "chat", fake_chat)

        assert agent.generate_text("prompt", "system") == "ok"
        assert captured["tools"] == []
        assert captured["system"] == "system"
        assert captured["history"][0].content == "prompt"


class TestHistoryTranslation:
    """Provider-neutral history to provider message formats."""

    def test_anthropic(self, history):
        messages = _anthropic_messages(history)

        assert [m["role"] for m in messages] == ["user", "assistant", "user", "assistant"]
        assert messages[1]["content"][0] == {
            "type": "tool_use", "id": "c1", "name": "queryNFTData",
            "input": {"endpoint": "collection-scores"},
        }
        tool_result = messages[2]["content"][0]
        assert tool_result["tool_use_id"] == "c1"
        assert json.loads(tool_result["content"])["summary"] == {"marketcap": 1}

    def test_openai(self, history):
        messages = _openai_messages(history, "be helpful")

        assert messages[0] == {"role": "system", "content": "be helpful"}
        assert messages[2]["content"] is None
        assert messages[2]["tool_calls"][0]["function"]["arguments"] == '{"endpoint": "collection-scores"}'
        assert messages[3]["role"] == "tool"
        assert messages[3]["tool_call_id"] == "c1"

    def test_gemini(self, history):
        contents = _gemini_contents(history)

        assert [c["role"] for c in contents] == ["user", "model", "user", "model"]
        assert contents[1]["parts"][0]["function_call"]["name"] == "queryNFTData"
        assert contents[2]["parts"][0]["function_response"]["response"]["success"] is True

    def test_gemini_schema_uppercases_types(self):
        schema = _gemini_schema({
            "type": "object",
            "properties": {
                "type": {"type": "string", "enum": ["buy", "sell"]},
                "limit": {"type": "number"},
            },
        })

        assert schema["type"] == "OBJECT"
        assert schema["properties"]["type"] == {"type": "STRING", "enum": ["buy", "sell"]}
        assert schema["properties"]["limit"]["type"] == "NUMBER"
