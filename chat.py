"""Conversational pipeline: LLM function calls → analytics API → LLM answer."""

import asyncio
import logging
import re
from typing import Any, Optional

from agent import AnalyticsAgent
from bitscrunch import BitsCrunchClient
from endpoints import function_declaration
from errors import AnalyticsError
from models import (
    ChatMessage,
    ChatResponse,
    ChatTurn,
    FunctionCall,
    FunctionOutcome,
    FunctionResult,
    LLMReply,
    Recommendation,
    RecommendationType,
    ResponseData,
)
from prompts import CHAT_SYSTEM_PROMPT
from reports import aggregate_report, is_detailed_report_request
from summarizer import process_and_summarize

logger = logging.getLogger(__name__)

TOOL_NAME = "queryNFTData"

RECOMMENDATION_RE = re.compile(r"RECOMMENDATION: (BUY|SELL|HOLD|NEUTRAL) - (.*)", re.IGNORECASE)


class SessionStore:
    """In-memory chat histories keyed by the client's session id.

    Unbounded and process-local: nothing expires and restarts forget
    every conversation.
    """

    def __init__(self):
        self._sessions: dict[str, list[ChatTurn]] = {}

    def get(self, session_id: str) -> Optional[list[ChatTurn]]:
        history = self._sessions.get(session_id)
        return list(history) if history is not None else None

    def save(self, session_id: str, history: list[ChatTurn]) -> None:
        self._sessions[session_id] = list(history)

    def reset(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


def extract_recommendation(text: str) -> tuple[str, Optional[Recommendation]]:
    """Pull a ``RECOMMENDATION: X - reason`` line out of the model's answer."""
    match = RECOMMENDATION_RE.search(text)
    if not match:
        return text, None
    recommendation = Recommendation(
        type=RecommendationType(match.group(1).lower()),
        message=match.group(2).strip(),
    )
    return text.replace(match.group(0), "").strip(), recommendation


def seed_history(messages: list[ChatMessage]) -> list[ChatTurn]:
    return [
        ChatTurn(role="assistant" if msg.role == "assistant" else "user", content=msg.content)
        for msg in messages
    ]


class ChatService:
    def __init__(
        self,
        client: BitsCrunchClient,
        agent: AnalyticsAgent,
        sessions: Optional[SessionStore] = None,
        max_tool_rounds: int = 3,
    ):
        self.client = client
        self.agent = agent
        self.sessions = sessions if sessions is not None else SessionStore()
        self.max_tool_rounds = max(1, max_tool_rounds)
        self.tools = [function_declaration()]

    async def _ask(self, history: list[ChatTurn]) -> LLMReply:
        return await asyncio.to_thread(self.agent.chat, history, self.tools, CHAT_SYSTEM_PROMPT)

    async def handle_function_call(self, endpoint: str, args: dict[str, Any]) -> FunctionOutcome:
        """Query one endpoint and summarize it; errors become an unsuccessful outcome."""
        logger.info("Handling function call for %s with args %s", endpoint, args)
        try:
            raw = await self.client.query(endpoint, args)
        except AnalyticsError as e:
            logger.error("Error fetching data for %s: %s", endpoint, e.message)
            return FunctionOutcome(success=False, endpoint=endpoint, parameters=args, error=e.message)

        return FunctionOutcome(
            success=True,
            endpoint=endpoint,
            parameters=args,
            processed=process_and_summarize(raw, endpoint),
        )

    async def _run_call(self, call: FunctionCall) -> FunctionOutcome:
        endpoint = call.args.get("endpoint")
        if call.name != TOOL_NAME or not endpoint:
            return FunctionOutcome(
                success=False,
                endpoint=str(endpoint or call.name),
                parameters=call.args,
                error=f"Unsupported function call: {call.name}",
            )
        args = {k: v for k, v in call.args.items() if k != "endpoint"}
        return await self.handle_function_call(endpoint, args)

    async def handle(self, messages: list[ChatMessage], session_id: str = "default") -> ChatResponse:
        """Answer the last message of ``messages`` within session ``session_id``."""
        if not messages:
            raise ValueError("messages must not be empty")

        history = self.sessions.get(session_id)
        if history is None:
            history = seed_history(messages[:-1])
            logger.info("Created chat session %s with %d seeded turns", session_id, len(history))

        last_message = messages[-1].content
        history.append(ChatTurn(role="user", content=last_message))
        detailed = is_detailed_report_request(last_message)

        response = ChatResponse(content="")
        reply = await self._ask(history)

        rounds = 0
        while reply.function_calls and rounds < self.max_tool_rounds:
            rounds += 1
            calls = reply.function_calls
            history.append(ChatTurn(role="assistant", content=reply.text, function_calls=calls))

            if detailed:
                outcomes = list(await asyncio.gather(*(self._run_call(c) for c in calls)))
                response.report_data = aggregate_report(calls, outcomes, response.report_data)
            else:
                outcomes = [await self._run_call(c) for c in calls]
                self._apply_outcomes(response, calls, outcomes)

            history.append(ChatTurn(
                role="tool",
                function_results=[
                    FunctionResult(call_id=c.id, name=c.name, response=o.to_tool_response())
                    for c, o in zip(calls, outcomes)
                ],
            ))
            reply = await self._ask(history)

        if reply.function_calls:
            logger.warning(
                "Session %s: stopping after %d tool rounds with calls still pending",
                session_id, rounds,
            )

        history.append(ChatTurn(role="assistant", content=reply.text))
        self.sessions.save(session_id, history)

        response.content, response.recommendation = extract_recommendation(reply.text)
        return response

    @staticmethod
    def _apply_outcomes(
        response: ChatResponse, calls: list[FunctionCall], outcomes: list[FunctionOutcome]
    ) -> None:
        """The last successful call supplies the metrics card and chart series."""
        for call, outcome in zip(calls, outcomes):
            if not outcome.success or outcome.processed is None:
                continue
            processed = outcome.processed
            response.data = ResponseData(
                metrics=processed.summary,
                endpoint=outcome.endpoint,
                parameters=call.args,
                detailed_data=processed.detailed_data,
            )
            for name, series in processed.series().items():
                setattr(response, name, series)

