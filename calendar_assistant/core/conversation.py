"""
Calendar Assistant — Conversation State.

Per-user, bounded turn history that feeds the oracle, plus the bounded set of
recently seen Slack message ids used to drop redelivered events.
"""

from __future__ import annotations

import logging
from collections import OrderedDict, deque
from dataclasses import dataclass
from typing import Literal

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversationTurn:
    role: Literal["user", "assistant"]
    content: str
    tool_call: dict | None = None   # {"name": ..., "arguments": {...}} when the oracle invoked a tool


class ConversationStore:
    """Map of user id → the last `max_turns` turns, oldest first."""

    def __init__(self, max_turns: int | None = None) -> None:
        if max_turns is None:
            from calendar_assistant.config import settings
            max_turns = settings.HISTORY_MAX_TURNS
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self._max_turns = max_turns
        self._turns: dict[str, deque[ConversationTurn]] = {}

    def append(self, user_id: str, turn: ConversationTurn) -> None:
        window = self._turns.setdefault(user_id, deque(maxlen=self._max_turns))
        window.append(turn)

    def append_user(self, user_id: str, text: str) -> None:
        self.append(user_id, ConversationTurn(role="user", content=text))

    def append_assistant(self, user_id: str, text: str, tool_call: dict | None = None) -> None:
        self.append(user_id, ConversationTurn(role="assistant", content=text, tool_call=tool_call))

    def history(self, user_id: str) -> list[ConversationTurn]:
        """Snapshot of the user's window; mutating it doesn't touch the store."""
        return list(self._turns.get(user_id, ()))

    def clear(self, user_id: str) -> None:
        self._turns.pop(user_id, None)
        logger.info("Conversation cleared for user %s", user_id)


class SeenMessages:
    """Bounded set of processed message ids; the oldest id is evicted first."""

    def __init__(self, max_size: int | None = None) -> None:
        if max_size is None:
            from calendar_assistant.config import settings
            max_size = settings.SEEN_MESSAGES_MAX
        self._max_size = max_size
        self._ids: OrderedDict[str, None] = OrderedDict()

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, message_id: str) -> bool:
        return message_id in self._ids

    def check_and_add(self, message_id: str | None) -> bool:
        """Record `message_id`; return True if it had already been seen."""
        if not message_id:
            return False
        if message_id in self._ids:
            return True
        self._ids[message_id] = None
        while len(self._ids) > self._max_size:
            self._ids.popitem(last=False)
        return False
