"""
Calendar Assistant — LLM Oracle.

Single public function `call_oracle()` that sends the conversation plus a tool
schema to the configured provider and returns either a tool invocation or
free text. Provider is selected at startup via the LLM_PROVIDER env var.
Supports: openai (default), anthropic.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Awaitable, Callable

if TYPE_CHECKING:
    from calendar_assistant.core.conversation import ConversationTurn

logger = logging.getLogger(__name__)


class OracleError(Exception):
    """Raised when the LLM provider call fails."""


class OracleOutputError(OracleError):
    """Raised when the LLM returns a tool call we can't decode."""


@dataclass
class OracleReply:
    """Either a tool invocation (tool_name + arguments) or free text."""

    text: str | None = None
    tool_name: str | None = None
    arguments: dict = field(default_factory=dict)

    @property
    def is_tool_call(self) -> bool:
        return self.tool_name is not None


# Type alias for provider implementations
_ProviderFn = Callable[[str, str, str, list[dict], list[dict], int], Awaitable[OracleReply]]


# ---------------------------------------------------------------------------
# Message conversion
# ---------------------------------------------------------------------------


def _history_messages(history: list[ConversationTurn]) -> list[dict]:
    # Tool results are stored as the assistant's text, so every turn maps to a
    # plain role/content message.
    return [{"role": turn.role, "content": turn.content} for turn in history if turn.content]


def _decode_arguments(name: str, raw: str | dict | None) -> dict:
    if raw is None or raw == "":
        return {}
    if isinstance(raw, dict):
        return raw
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.error("Failed to parse arguments for %s: %s — raw: '%s'", name, exc, raw)
        raise OracleOutputError(f"Could not read the arguments for {name}") from exc
    if not isinstance(data, dict):
        raise OracleOutputError(f"Arguments for {name} must be an object")
    return data


# ---------------------------------------------------------------------------
# Provider implementations
# ---------------------------------------------------------------------------


async def _call_openai(
    api_key: str, model: str, system: str,
    messages: list[dict], tools: list[dict], max_tokens: int,
) -> OracleReply:
    from openai import AsyncOpenAI

    client = AsyncOpenAI(api_key=api_key)
    response = await client.chat.completions.create(
        model=model,
        max_tokens=max_tokens,
        messages=[{"role": "system", "content": system}, *messages],
        tools=[{"type": "function", "function": tool} for tool in tools],
        tool_choice="auto",
    )
    message = response.choices[0].message
    if message.tool_calls:
        call = message.tool_calls[0]
        return OracleReply(
            tool_name=call.function.name,
            arguments=_decode_arguments(call.function.name, call.function.arguments),
        )
    return OracleReply(text=message.content or "")


async def _call_anthropic(
    api_key: str, model: str, system: str,
    messages: list[dict], tools: list[dict], max_tokens: int,
) -> OracleReply:
    import anthropic

    client = anthropic.AsyncAnthropic(api_key=api_key)
    response = await client.messages.create(
        model=model,
        max_tokens=max_tokens,
        system=system,
        messages=messages,
        tools=[
            {
                "name": tool["name"],
                "description": tool["description"],
                "input_schema": tool["parameters"],
            }
            for tool in tools
        ],
    )
    texts: list[str] = []
    for block in response.content:
        if block.type == "tool_use":
            return OracleReply(
                tool_name=block.name,
                arguments=_decode_arguments(block.name, block.input),
            )
        if block.type == "text":
            texts.append(block.text)
    return OracleReply(text="\n".join(texts))


# ---------------------------------------------------------------------------
# Provider selection (runs once at first call)
# ---------------------------------------------------------------------------

_PROVIDERS: dict[str, tuple[_ProviderFn, str]] = {
    "openai":    (_call_openai,    "gpt-4o"),
    "anthropic": (_call_anthropic, "claude-sonnet-4-5"),
}


def _select_provider() -> tuple[_ProviderFn, str, str]:
    """Read env vars and return (provider_fn, model, api_key)."""
    from calendar_assistant.config import settings

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


# Lazy singleton, populated on first call to call_oracle()
_provider_fn: _ProviderFn | None = None
_model: str = ""
_api_key: str = ""


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def call_oracle(
    system: str,
    history: list[ConversationTurn],
    tools: list[dict],
    max_tokens: int = 1024,
) -> OracleReply:
    """Ask the configured LLM what to do with the conversation so far.

    `tools` use the neutral {"name", "description", "parameters"} shape.
    Raises OracleOutputError for undecodable tool arguments and OracleError
    for provider failures.
    """
    global _provider_fn, _model, _api_key

    try:
        if _provider_fn is None:
            _provider_fn, _model, _api_key = _select_provider()
        return await _provider_fn(
            _api_key, _model, system, _history_messages(history), tools, max_tokens,
        )
    except OracleError:
        raise
    except Exception as exc:
        logger.error("LLM provider call failed: %s", exc)
        raise OracleError(f"The language model request failed: {exc}") from exc
