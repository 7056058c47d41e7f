"""
Calendar Assistant — Intent Dispatcher.

UI-agnostic entry point for one inbound chat message. Decides which state the
sender is in (needs to link Google, needs to tell us their timezone, ready),
asks the oracle what to do, runs the chosen calendar operation and records
both sides of the exchange in the sender's conversation window.

This is the only place exceptions from the oracle or the calendar are
caught: whatever goes wrong, the user gets a short text reply.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable

from pydantic import ValidationError

from calendar_assistant.core.conversation import (
    ConversationStore,
    ConversationTurn,
    SeenMessages,
)
from calendar_assistant.core.llm import OracleError, OracleReply, call_oracle
from calendar_assistant.core.operations import CalendarOperations
from calendar_assistant.core.parser import (
    SET_TIMEZONE_TOOL,
    TOOLS,
    SetTimezoneArgs,
    build_system_prompt,
    build_timezone_prompt,
    parse_tool_call,
)
from calendar_assistant.core.time_resolver import is_valid_timezone, local_now
from calendar_assistant.ports.calendar_port import AuthenticationError

if TYPE_CHECKING:
    from calendar_assistant.data.db import UserDB
    from calendar_assistant.data.models import User
    from calendar_assistant.ports.calendar_port import CalendarPort

logger = logging.getLogger(__name__)

OracleFn = Callable[[str, list[ConversationTurn], list[dict]], Awaitable[OracleReply]]
CalendarFactory = Callable[["User"], "CalendarPort"]
AuthUrlBuilder = Callable[[str], str]

LINK_PROMPT = (
    "Hi! Before I can manage your meetings, please connect your Google Calendar:\n{url}"
)
TIMEZONE_QUESTION = (
    "Your Google Calendar is connected! Where are you located? "
    "Tell me your city or timezone so I schedule meetings at the right time."
)
TIMEZONE_RETRY = (
    "Sorry, I couldn't work out your timezone from that. "
    "Could you tell me your city, or a timezone like Europe/Amsterdam?"
)
TIMEZONE_CONFIRMATION = "Thanks! I'll use {timezone} for your calendar. What can I do for you?"
RESET_REPLY = "Okay, let's start over. What can I do for you?"
TIMEOUT_REPLY = "Error: the request timed out"
EMPTY_REPLY = "Sorry, I didn't catch that. Could you rephrase?"

RESET_WORDS = {"reset", "start over", "/reset"}


class UserState(Enum):
    AWAITING_LINK = "awaiting_link"
    AWAITING_TIMEZONE = "awaiting_timezone"
    READY = "ready"


@dataclass(frozen=True)
class InboundMessage:
    """What the transport hands us: who sent what, and the delivery id."""

    sender_id: str
    text: str
    message_id: str | None = None


def state_for(user: User | None) -> UserState:
    if user is None or not user.is_linked:
        return UserState.AWAITING_LINK
    if not user.timezone:
        return UserState.AWAITING_TIMEZONE
    return UserState.READY


def _describe_validation_error(exc: ValidationError) -> str:
    problems = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part != "tool")
        problems.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(problems)


class IntentDispatcher:
    """Turns inbound messages into replies, one user at a time."""

    def __init__(
        self,
        user_db: UserDB,
        oracle: OracleFn | None = None,
        calendar_factory: CalendarFactory | None = None,
        conversations: ConversationStore | None = None,
        seen: SeenMessages | None = None,
        auth_url_builder: AuthUrlBuilder | None = None,
        now: datetime | None = None,
        oracle_timeout: float | None = None,
    ) -> None:
        if oracle_timeout is None:
            from calendar_assistant.config import settings
            oracle_timeout = settings.LLM_TIMEOUT_SECONDS
        if calendar_factory is None:
            from calendar_assistant.adapters.calendar_factory import create_calendar_adapter

            def calendar_factory(user: User) -> CalendarPort:
                return create_calendar_adapter(user, user_db)
        if auth_url_builder is None:
            from calendar_assistant.integrations.google_auth import build_auth_url
            auth_url_builder = build_auth_url

        self._user_db = user_db
        self._oracle = oracle or call_oracle
        self._calendar_factory = calendar_factory
        self._conversations = conversations or ConversationStore()
        self._seen = seen or SeenMessages()
        self._auth_url = auth_url_builder
        self._now = now
        self._oracle_timeout = oracle_timeout
        self._locks: dict[str, list] = {}   # sender -> [lock, holders + waiters]

    @property
    def conversations(self) -> ConversationStore:
        return self._conversations

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def handle(self, message: InboundMessage) -> str | None:
        """Reply text for `message`, or None if it was already processed."""
        if self._seen.check_and_add(message.message_id):
            logger.info("Skipping duplicate message %s from %s", message.message_id, message.sender_id)
            return None

        sender = message.sender_id
        entry = self._locks.setdefault(sender, [asyncio.Lock(), 0])
        entry[1] += 1
        try:
            async with entry[0]:
                try:
                    return await self._handle_serialized(message)
                except Exception as exc:
                    logger.exception("Request failed for %s", sender)
                    return f"Error: {exc}"
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                # Nobody holds or waits on this lock any more.
                del self._locks[sender]

    async def _handle_serialized(self, message: InboundMessage) -> str:
        sender = message.sender_id
        text = message.text.strip()
        user = self._user_db.get_user(sender)
        state = state_for(user)
        logger.info("Message from %s in state %s", sender, state.value)

        if state is UserState.AWAITING_LINK:
            return LINK_PROMPT.format(url=self._auth_url(sender))

        self._user_db.touch(sender)

        if text.lower() in RESET_WORDS:
            self._conversations.clear(sender)
            return RESET_REPLY

        if state is UserState.AWAITING_TIMEZONE:
            return await self._capture_timezone(user, text)

        return await self._run_turn(user, text)

    # ------------------------------------------------------------------
    # AwaitingTimezone
    # ------------------------------------------------------------------

    async def _capture_timezone(self, user: User, text: str) -> str:
        try:
            reply = await asyncio.wait_for(
                self._oracle(
                    build_timezone_prompt(),
                    [ConversationTurn(role="user", content=text)],
                    [SET_TIMEZONE_TOOL],
                ),
                timeout=self._oracle_timeout,
            )
        except asyncio.TimeoutError:
            logger.error("Timezone lookup timed out for %s", user.slack_user_id)
            return TIMEOUT_REPLY
        except OracleError as exc:
            return f"Error: {exc}"
        except Exception as exc:
            logger.exception("Timezone lookup failed for %s", user.slack_user_id)
            return f"Error: {exc}"

        if not reply.is_tool_call or reply.tool_name != SET_TIMEZONE_TOOL["name"]:
            return TIMEZONE_RETRY
        try:
            args = SetTimezoneArgs.model_validate(reply.arguments)
        except ValidationError as exc:
            logger.warning("Bad set_timezone arguments %s: %s", reply.arguments, exc)
            return TIMEZONE_RETRY

        if args.confidence == "low" or not is_valid_timezone(args.timezone):
            logger.info(
                "Rejected timezone %r (confidence=%s) for %s",
                args.timezone, args.confidence, user.slack_user_id,
            )
            return TIMEZONE_RETRY

        self._user_db.set_timezone(user.slack_user_id, args.timezone)
        return TIMEZONE_CONFIRMATION.format(timezone=args.timezone)

    # ------------------------------------------------------------------
    # Ready
    # ------------------------------------------------------------------

    async def _run_turn(self, user: User, text: str) -> str:
        sender = user.slack_user_id
        self._conversations.append_user(sender, text)

        tool_call: dict | None = None
        try:
            reply_text, tool_call = await self._respond(user)
        except AuthenticationError as exc:
            logger.error("Authentication failed for %s: %s", sender, exc)
            reply_text = (
                f"Authentication failed: {exc}. "
                f"Please reconnect your Google Calendar:\n{self._auth_url(sender)}"
            )
        except asyncio.TimeoutError:
            logger.error("Oracle call timed out for %s", sender)
            reply_text = TIMEOUT_REPLY
        except ValidationError as exc:
            logger.warning("Invalid tool arguments from oracle: %s", exc)
            reply_text = f"Error: {_describe_validation_error(exc)}"
        except Exception as exc:
            logger.exception("Request failed for %s", sender)
            reply_text = f"Error: {exc}"

        self._conversations.append_assistant(sender, reply_text, tool_call)
        return reply_text

    async def _respond(self, user: User) -> tuple[str, dict | None]:
        tz = user.effective_timezone
        now = local_now(tz, self._now)
        reply = await asyncio.wait_for(
            self._oracle(
                build_system_prompt(tz, now),
                self._conversations.history(user.slack_user_id),
                TOOLS,
            ),
            timeout=self._oracle_timeout,
        )

        if not reply.is_tool_call:
            # The oracle asked a question or answered directly; no calendar call.
            return reply.text or EMPTY_REPLY, None

        tool_call = {"name": reply.tool_name, "arguments": reply.arguments}
        call = parse_tool_call(reply.tool_name, reply.arguments)
        logger.info("Dispatching %s for %s", call.tool, user.slack_user_id)

        operations = CalendarOperations(self._calendar_factory(user), tz, now=self._now)
        outcome = await operations.dispatch(call)
        return outcome.text, tool_call
