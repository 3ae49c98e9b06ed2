"""
Planner Agent — Orchestration Loop.

The bounded Reason-then-Act loop. Each iteration asks the language model
for its next step; a tool call is dispatched against the user's data and
its result is appended as an observation, free text is recorded as the
answer. When the bound is reached without an answer, one more model call
with tools disabled produces the summary, so every run ends in a message.

Flow:
  seed history (system prompt + caller history + query)
  -> model step -> dispatch -> observation -> ... -> final message
  -> AgentResponse (message, per-kind updates/deletions, bio, session id)
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.core.aggregator import AgentResponse, ResponseAggregator
from src.core.dispatcher import ToolDispatcher
from src.core.llm import ChatMessage, complete
from src.core.prompts import (
    FINAL_SUMMARY_INSTRUCTION,
    FIRST_TURN_REMINDER,
    FOLLOW_UP_DIRECTIVES,
    build_system_prompt,
)
from src.core.resource_service import ResourceService
from src.core.time_parser import parse_date

logger = logging.getLogger(__name__)

_CLOCK_RE = re.compile(r"^([01]?\d|2[0-3]):[0-5]\d$")

_NO_ANSWER_FALLBACK = "Sorry, I couldn't put together a response. Could you rephrase your request?"


# ---------------------------------------------------------------------------
# Request contract
# ---------------------------------------------------------------------------


class HistoryEntry(BaseModel):
    """One message of the caller's prior conversation."""

    model_config = ConfigDict(extra="ignore")

    role: str
    content: str | None = None
    name: str | None = None


class AgentRequest(BaseModel):
    """Input of one loop run. Accepts camelCase keys (userId, chatHistory, ...)."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel, extra="ignore")

    query: str = Field(min_length=1)
    user_id: str = Field(min_length=1)
    chat_history: list[HistoryEntry] = []
    session_id: str = ""
    current_date: str | None = None     # YYYY-MM-DD, the caller's local date
    current_time: str | None = None     # HH:MM


def sanitize_history(history: list[HistoryEntry]) -> list[ChatMessage]:
    """Convert caller history into messages the model accepts.

    Tool results from earlier requests cannot be linked to a call id any
    more, so they are folded into system notes. Empty entries are skipped.
    """
    messages: list[ChatMessage] = []
    for entry in history:
        content = (entry.content or "").strip()
        if not content:
            continue
        role = entry.role.strip().lower()
        if role in ("user", "assistant", "system"):
            messages.append(ChatMessage(role=role, content=content))
        elif role in ("function", "tool"):
            label = entry.name or "a tool"
            messages.append(ChatMessage(role="system", content=f"Earlier result of {label}: {content}"))
        else:
            logger.debug("Skipping history entry with role '%s'", entry.role)
    return messages


# ---------------------------------------------------------------------------
# Loop
# ---------------------------------------------------------------------------


class AgentService:
    """Runs the orchestration loop for one request at a time (no shared state)."""

    def __init__(
        self,
        service: ResourceService,
        dispatcher: ToolDispatcher,
        max_iterations: int | None = None,
        expose_thoughts: bool | None = None,
    ) -> None:
        if max_iterations is None or expose_thoughts is None:
            from src.config import settings
            if max_iterations is None:
                max_iterations = settings.AGENT_MAX_ITERATIONS
            if expose_thoughts is None:
                expose_thoughts = settings.is_development

        self._service = service
        self._dispatcher = dispatcher
        self._max_iterations = max_iterations
        self._expose_thoughts = expose_thoughts

    async def run(self, request: AgentRequest) -> AgentResponse:
        """Answer one query. Raises CapabilityError when the model fails."""
        now = datetime.now(self._service.tz)
        today = parse_date(request.current_date) or now.date()
        clock = request.current_time if request.current_time and _CLOCK_RE.match(request.current_time) else now.strftime("%H:%M")

        messages: list[ChatMessage] = [
            ChatMessage(role="system", content=build_system_prompt(request.user_id, today.isoformat(), clock)),
            *sanitize_history(request.chat_history),
            ChatMessage(role="user", content=request.query),
        ]
        aggregator = ResponseAggregator()
        thoughts: list[str] = []
        final_message = ""
        iterations = 0
        answered = False

        while iterations < self._max_iterations:
            outgoing = messages
            if iterations == 0:
                outgoing = [*messages, ChatMessage(role="system", content=FIRST_TURN_REMINDER)]

            step = await complete(outgoing)

            if step.content:
                thoughts.append(step.content)
                final_message = step.content

            if step.tool_call is None:
                if step.content:
                    messages.append(ChatMessage(role="assistant", content=step.content))
                final_message = step.content or ""
                answered = True
                break

            call = step.tool_call
            messages.append(ChatMessage(role="assistant", content=step.content, tool_call=call))

            outcome = await self._dispatcher.execute(call.name, call.arguments, request.user_id, today)
            messages.append(ChatMessage(
                role="tool",
                content=json.dumps(outcome.observation, default=str),
                tool_call_id=call.id,
                name=call.name,
            ))
            if outcome.success and outcome.tool_name in FOLLOW_UP_DIRECTIVES:
                messages.append(ChatMessage(role="system", content=FOLLOW_UP_DIRECTIVES[outcome.tool_name]))

            aggregator.absorb(outcome)
            iterations += 1

        if not answered:
            logger.warning(
                "Iteration bound (%d) reached for user %s with a tool call pending",
                self._max_iterations, request.user_id,
            )

        if not final_message:
            final_message = await self._summarize(messages, aggregator)

        logger.info(
            "Agent run for user %s finished after %d tool calls (%d changes)",
            request.user_id, iterations, aggregator.changed_count,
        )
        return aggregator.snapshot(
            message=final_message,
            thoughts="\n".join(thoughts) if self._expose_thoughts else None,
            session_id=request.session_id,
        )

    async def _summarize(self, messages: list[ChatMessage], aggregator: ResponseAggregator) -> str:
        """One extra model call with tools disabled; it cannot start more tool use."""
        step = await complete(
            [*messages, ChatMessage(role="system", content=FINAL_SUMMARY_INSTRUCTION)],
            with_tools=False,
        )
        if step.content:
            return step.content

        logger.warning("Summary call returned no text; using a generated summary")
        changes = aggregator.describe_changes()
        if changes:
            return f"Here is what I did: {changes}."
        return _NO_ANSWER_FALLBACK
