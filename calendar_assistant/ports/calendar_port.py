"""Calendar port — abstract interface for calendar operations.

Core modules depend on this protocol, never on a specific provider.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from calendar_assistant.core.time_resolver import TimeRange


class CalendarError(Exception):
    """Raised when any calendar provider operation fails."""


class AuthenticationError(CalendarError):
    """Raised when the user's access credential can't be refreshed."""


class CalendarPort(Protocol):
    """Abstract calendar interface used by core modules.

    Events are the provider's raw event dicts (id, summary, start, end,
    attendees, recurrence, ...).
    """

    async def list_events(
        self,
        time_range: TimeRange,
        query: str | None = None,
        single_events: bool = True,
    ) -> list[dict]:
        """Events overlapping `time_range`.

        `query` is handed to the provider's free-text search. Operations
        leave it unset and filter titles themselves, since provider search
        also matches descriptions and attendees.
        """
        ...

    async def get_event(self, event_id: str) -> dict: ...

    async def insert_event(self, body: dict) -> dict: ...

    async def update_event(self, event_id: str, changes: dict) -> dict: ...

    async def delete_event(self, event_id: str) -> None: ...
