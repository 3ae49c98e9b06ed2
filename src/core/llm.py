"""
Planner Agent — LLM Provider Abstraction.

Single public function `complete()` that routes to the configured provider.
Given the message history it returns one ModelStep: free-text content, a
single tool invocation, or both. Provider is selected at first call via the
LLM_PROVIDER env var. Supports: openai (default), anthropic.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from src.core.tools import anthropic_tools, openai_tools

logger = logging.getLogger(__name__)

_MAX_TOKENS = 1024


class CapabilityError(Exception):
    """The language model could not produce a usable step."""


@dataclass
class ToolInvocation:
    """One tool call requested by the model. arguments is the raw JSON text."""

    id: str
    name: str
    arguments: str = "{}"


@dataclass
class ChatMessage:
    """Provider-neutral message. role: system | user | assistant | tool."""

    role: str
    content: str | None = None
    tool_call: ToolInvocation | None = None     # assistant messages only
    tool_call_id: str | None = None              # tool messages only
    name: str | None = None                      # tool messages: the tool's name


@dataclass
class ModelStep:
    content: str | None = None
    tool_call: ToolInvocation | None = None


# Type alias for provider implementations:
# (api_key, model, messages, with_tools, temperature, timeout) -> ModelStep
_ProviderFn = Callable[[str, str, list[ChatMessage], bool, float, float], Awaitable[ModelStep]]


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------


def _to_openai_messages(messages: list[ChatMessage]) -> list[dict]:
    converted: list[dict] = []
    for msg in messages:
        if msg.role == "assistant" and msg.tool_call is not None:
            converted.append({
                "role": "assistant",
                "content": msg.content,
                "tool_calls": [{
                    "id": msg.tool_call.id,
                    "type": "function",
                    "function": {"name": msg.tool_call.name, "arguments": msg.tool_call.arguments},
                }],
            })
        elif msg.role == "tool":
            converted.append({
                "role": "tool",
                "tool_call_id": msg.tool_call_id,
                "content": msg.content or "",
            })
        else:
            converted.append({"role": msg.role, "content": msg.content or ""})
    return converted


async def _complete_openai(
    api_key: str, model: str, messages: list[ChatMessage], with_tools: bool,
    temperature: float, timeout: float,
) -> ModelStep:
    from openai import AsyncOpenAI

    client = AsyncOpenAI(api_key=api_key, timeout=timeout)
    # Tools stay declared on the summary call so earlier tool_calls in the
    # history remain valid; tool_choice="none" prevents new ones.
    response = await client.chat.completions.create(
        model=model,
        temperature=temperature,
        messages=_to_openai_messages(messages),
        tools=openai_tools(),
        tool_choice="auto" if with_tools else "none",
    )
    if not response.choices:
        raise CapabilityError("OpenAI returned no choices")

    message = response.choices[0].message
    tool_call = None
    if message.tool_calls:
        if len(message.tool_calls) > 1:
            logger.warning(
                "Model requested %d tool calls; dispatching only the first (%s)",
                len(message.tool_calls), message.tool_calls[0].function.name,
            )
        first = message.tool_calls[0]
        tool_call = ToolInvocation(
            id=first.id, name=first.function.name, arguments=first.function.arguments or "{}",
        )
    return ModelStep(content=message.content, tool_call=tool_call)


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------


def _to_anthropic_payload(messages: list[ChatMessage]) -> tuple[str, list[dict]]:
    """Split out the system prompt and merge the rest into alternating turns.

    Only leading system messages become the system prompt; later ones
    (follow-up directives) are sent as user text.
    """
    system_parts: list[str] = []
    turns: list[dict] = []

    def append(role: str, block: dict) -> None:
        if turns and turns[-1]["role"] == role:
            turns[-1]["content"].append(block)
        else:
            turns.append({"role": role, "content": [block]})

    for msg in messages:
        if msg.role == "system":
            if not turns:
                system_parts.append(msg.content or "")
            elif msg.content:
                append("user", {"type": "text", "text": f"[System note] {msg.content}"})
        elif msg.role == "assistant":
            if msg.content:
                append("assistant", {"type": "text", "text": msg.content})
            if msg.tool_call is not None:
                try:
                    tool_input = json.loads(msg.tool_call.arguments or "{}")
                except json.JSONDecodeError:
                    tool_input = {}
                append("assistant", {
                    "type": "tool_use",
                    "id": msg.tool_call.id,
                    "name": msg.tool_call.name,
                    "input": tool_input if isinstance(tool_input, dict) else {},
                })
        elif msg.role == "tool":
            append("user", {
                "type": "tool_result",
                "tool_use_id": msg.tool_call_id,
                "content": msg.content or "",
            })
        elif msg.content:
            append("user", {"type": "text", "text": msg.content})

    if turns and turns[0]["role"] != "user":
        turns.insert(0, {"role": "user", "content": [{"type": "text", "text": "(continuing our conversation)"}]})

    return "\n\n".join(p for p in system_parts if p), turns


async def _complete_anthropic(
    api_key: str, model: str, messages: list[ChatMessage], with_tools: bool,
    temperature: float, timeout: float,
) -> ModelStep:
    import anthropic

    client = anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout)
    system, turns = _to_anthropic_payload(messages)
    response = await client.messages.create(
        model=model,
        max_tokens=_MAX_TOKENS,
        temperature=temperature,
        system=system,
        messages=turns,
        tools=anthropic_tools(),
        tool_choice={"type": "auto"} if with_tools else {"type": "none"},
    )

    texts = [block.text for block in response.content if block.type == "text"]
    tool_uses = [block for block in response.content if block.type == "tool_use"]
    tool_call = None
    if tool_uses:
        if len(tool_uses) > 1:
            logger.warning(
                "Model requested %d tool calls; dispatching only the first (%s)",
                len(tool_uses), tool_uses[0].name,
            )
        first = tool_uses[0]
        tool_call = ToolInvocation(id=first.id, name=first.name, arguments=json.dumps(first.input))
    content = "\n".join(t for t in texts if t) or None
    return ModelStep(content=content, tool_call=tool_call)


# ---------------------------------------------------------------------------
# Provider selection (runs once at first call)
# ---------------------------------------------------------------------------

_PROVIDERS: dict[str, tuple[_ProviderFn, str]] = {
    "openai":    (_complete_openai,    "gpt-4o-mini"),
    "anthropic": (_complete_anthropic, "claude-haiku-4-5-20251001"),
}


def _select_provider() -> tuple[_ProviderFn, str, str]:
    """Read env vars and return (provider_fn, model, api_key)."""
    from src.config import settings

    provider_name = settings.LLM_PROVIDER.lower()
    if provider_name not in _PROVIDERS:
        raise ValueError(
            f"Unknown LLM_PROVIDER={provider_name!r}. "
            f"Supported: {', '.join(_PROVIDERS)}"
        )

    fn, default_model = _PROVIDERS[provider_name]
    model = settings.LLM_MODEL or default_model
    api_key = settings.LLM_API_KEY

    logger.info("LLM provider: %s, model: %s", provider_name, model)
    return fn, model, api_key


# Lazy singleton, populated on first call to complete()
_provider_fn: _ProviderFn | None = None
_model: str = ""
_api_key: str = ""


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def complete(messages: list[ChatMessage], with_tools: bool = True) -> ModelStep:
    """Ask the configured model for its next step.

    with_tools=False forbids tool use, so the step is plain text.
    Any provider failure is raised as CapabilityError.
    """
    global _provider_fn, _model, _api_key
    from src.config import settings

    if _provider_fn is None:
        _provider_fn, _model, _api_key = _select_provider()

    try:
        return await _provider_fn(
            _api_key, _model, messages, with_tools,
            settings.LLM_TEMPERATURE, settings.LLM_TIMEOUT_SECONDS,
        )
    except CapabilityError:
        raise
    except Exception as exc:
        logger.error("LLM call failed (%s): %s", _model, exc)
        raise CapabilityError(f"Language model call failed: {exc}") from exc
