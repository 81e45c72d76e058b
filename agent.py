import json
import logging
import os
import uuid
from collections.abc import Mapping, Sequence
from typing import Any, Optional

from errors import LLMUnavailableError
from models import ChatTurn, FunctionCall, LLMReply

logger = logging.getLogger(__name__)


class AnalyticsAgent:
    """LLM backend for report summaries and the function-calling chat."""

    def __init__(self, provider: Optional[str] = None, temperature: float = 0.7):
        self.provider = (provider or os.getenv("AI_PROVIDER", "gemini")).lower()
        self.temperature = temperature

        if self.provider == "anthropic":
            self._init_anthropic()
        elif self.provider == "gemini":
            self._init_gemini()
        elif self.provider == "openai":
            self._init_openai()
        else:
            raise LLMUnavailableError(
                f"Unknown AI_PROVIDER '{self.provider}'. "
                "Set AI_PROVIDER to 'anthropic', 'openai', or 'gemini'."
            )

    # ── Provider Init ─────────────────────────────────────────────────────

    def _init_anthropic(self):
        import anthropic

        api_key = os.getenv("ANTHROPIC_API_KEY")
        if not api_key:
            raise LLMUnavailableError("ANTHROPIC_API_KEY is not set")
        self.client = anthropic.Anthropic(api_key=api_key)
        self.model = os.getenv("CLAUDE_MODEL", "claude-sonnet-4-6")
        logger.info("AI Provider: Anthropic | Model: %s", self.model)

    def _init_gemini(self):
        import google.generativeai as genai

        api_key = os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise LLMUnavailableError("GEMINI_API_KEY is not set")
        genai.configure(api_key=api_key)
        self.client = genai
        self.model = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
        logger.info("AI Provider: Gemini | Model: %s", self.model)

    def _init_openai(self):
        from openai import OpenAI

        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise LLMUnavailableError("OPENAI_API_KEY is not set")
        self.client = OpenAI(api_key=api_key)
        self.model = os.getenv("OPENAI_MODEL", "gpt-4o")
        logger.info("AI Provider: OpenAI | Model: %s", self.model)

    # ── Plain Generation ──────────────────────────────────────────────────

    def generate_text(self, prompt: str, system: str) -> str:
        """Single-shot completion used for the report summaries."""
        history = [ChatTurn(role="user", content=prompt)]
        return self.chat(history, tools=[], system=system).text

    # ── Function-Calling Chat ─────────────────────────────────────────────

    def chat(self, history: list[ChatTurn], tools: list[dict], system: str) -> LLMReply:
        """Send ``history`` and return the model's text and requested function calls."""
        if self.provider == "anthropic":
            return self._chat_anthropic(history, tools, system)
        elif self.provider == "gemini":
            return self._chat_gemini(history, tools, system)
        return self._chat_openai(history, tools, system)

    def _chat_anthropic(self, history, tools, system) -> LLMReply:
        kwargs: dict[str, Any] = {}
        if tools:
            kwargs["tools"] = [
                {
                    "name": t["name"],
                    "description": t["description"],
                    "input_schema": t["parameters"],
                }
                for t in tools
            ]
        message = self.client.messages.create(
            model=self.model,
            max_tokens=4096,
            system=system,
            temperature=self.temperature,
            messages=_anthropic_messages(history),
            **kwargs,
        )

        texts, calls = [], []
        for block in message.content:
            if block.type == "text":
                texts.append(block.text)
            elif block.type == "tool_use":
                calls.append(FunctionCall(id=block.id, name=block.name, args=dict(block.input or {})))
        return LLMReply(text="\n".join(texts).strip(), function_calls=calls)

    def _chat_gemini(self, history, tools, system) -> LLMReply:
        kwargs: dict[str, Any] = {"system_instruction": system}
        if tools:
            kwargs["tools"] = [
                {
                    "function_declarations": [
                        {
                            "name": t["name"],
                            "description": t["description"],
                            "parameters": _gemini_schema(t["parameters"]),
                        }
                        for t in tools
                    ]
                }
            ]
        model = self.client.GenerativeModel(self.model, **kwargs)
        response = model.generate_content(
            _gemini_contents(history),
            generation_config={"temperature": self.temperature},
        )

        texts, calls = [], []
        for candidate in response.candidates[:1]:
            for part in candidate.content.parts:
                fn = part.function_call
                if fn and fn.name:
                    calls.append(FunctionCall(
                        id=f"call_{uuid.uuid4().hex[:12]}",
                        name=fn.name,
                        args=_plain(fn.args) or {},
                    ))
                elif part.text:
                    texts.append(part.text)
        return LLMReply(text="".join(texts).strip(), function_calls=calls)

    def _chat_openai(self, history, tools, system) -> LLMReply:
        kwargs: dict[str, Any] = {}
        if tools:
            kwargs["tools"] = [{"type": "function", "function": t} for t in tools]
        response = self.client.chat.completions.create(
            model=self.model,
            messages=_openai_messages(history, system),
            temperature=self.temperature,
            max_tokens=4096,
            **kwargs,
        )

        message = response.choices[0].message
        calls = []
        for tc in message.tool_calls or []:
            try:
                args = json.loads(tc.function.arguments or "{}")
            except json.JSONDecodeError:
                logger.warning("Discarding malformed tool arguments: %s", tc.function.arguments)
                args = {}
            calls.append(FunctionCall(id=tc.id, name=tc.function.name, args=args))
        return LLMReply(text=(message.content or "").strip(), function_calls=calls)


# ── History translation ──────────────────────────────────────────────────────


def _json_safe(value: Any) -> Any:
    return json.loads(json.dumps(value, default=str))


def _anthropic_messages(history: list[ChatTurn]) -> list[dict]:
    messages = []
    for turn in history:
        if turn.role == "user":
            messages.append({"role": "user", "content": turn.content})
        elif turn.role == "assistant":
            blocks: list[dict] = []
            if turn.content:
                blocks.append({"type": "text", "text": turn.content})
            for call in turn.function_calls:
                blocks.append({"type": "tool_use", "id": call.id, "name": call.name, "input": call.args})
            if blocks:
                messages.append({"role": "assistant", "content": blocks})
        else:
            messages.append({
                "role": "user",
                "content": [
                    {
                        "type": "tool_result",
                        "tool_use_id": result.call_id,
                        "content": json.dumps(result.response, default=str),
                    }
                    for result in turn.function_results
                ],
            })
    return messages


def _openai_messages(history: list[ChatTurn], system: str) -> list[dict]:
    messages: list[dict] = [{"role": "system", "content": system}]
    for turn in history:
        if turn.role == "user":
            messages.append({"role": "user", "content": turn.content})
        elif turn.role == "assistant":
            message: dict[str, Any] = {"role": "assistant", "content": turn.content or None}
            if turn.function_calls:
                message["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {"name": call.name, "arguments": json.dumps(call.args)},
                    }
                    for call in turn.function_calls
                ]
            messages.append(message)
        else:
            for result in turn.function_results:
                messages.append({
                    "role": "tool",
                    "tool_call_id": result.call_id,
                    "content": json.dumps(result.response, default=str),
                })
    return messages


def _gemini_contents(history: list[ChatTurn]) -> list[dict]:
    contents = []
    for turn in history:
        if turn.role == "user":
            contents.append({"role": "user", "parts": [{"text": turn.content}]})
        elif turn.role == "assistant":
            parts: list[dict] = []
            if turn.content:
                parts.append({"text": turn.content})
            for call in turn.function_calls:
                parts.append({"function_call": {"name": call.name, "args": call.args}})
            if parts:
                contents.append({"role": "model", "parts": parts})
        else:
            contents.append({
                "role": "user",
                "parts": [
                    {
                        "function_response": {
                            "name": result.name,
                            "response": _json_safe(result.response),
                        }
                    }
                    for result in turn.function_results
                ],
            })
    return contents


def _gemini_schema(schema: Any) -> Any:
    """Gemini's OpenAPI subset spells types in upper case (STRING, OBJECT)."""
    if isinstance(schema, dict):
        converted = {}
        for key, value in schema.items():
            if key == "type" and isinstance(value, str):
                converted[key] = value.upper()
            else:
                converted[key] = _gemini_schema(value)
        return converted
    if isinstance(schema, list):
        return [_gemini_schema(item) for item in schema]
    return schema


def _plain(value: Any) -> Any:
    """Convert proto map/repeated composites into plain dicts and lists."""
    if isinstance(value, Mapping):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return [_plain(v) for v in value]
    return value
