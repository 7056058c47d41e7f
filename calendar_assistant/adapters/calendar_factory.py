"""Calendar adapter factory — creates a per-user adapter from stored credentials."""

from __future__ import annotations

from typing import TYPE_CHECKING

from calendar_assistant.ports.calendar_port import CalendarPort

if TYPE_CHECKING:
    from calendar_assistant.data.db import UserDB
    from calendar_assistant.data.models import User


def create_calendar_adapter(user: User, user_db: UserDB | None = None) -> CalendarPort:
    """Return a Google Calendar adapter authenticated as `user`.

    Args:
        user: The linked user whose credentials back the adapter.
        user_db: When given, refreshed access tokens are written back to it.
    """
    from calendar_assistant.adapters.google_calendar import GoogleCalendarAdapter

    on_refresh = None
    if user_db is not None:
        def on_refresh(token: str, expiry: str | None) -> None:
            user_db.set_access_token(user.slack_user_id, token, expiry)

    return GoogleCalendarAdapter(user=user, on_token_refresh=on_refresh)
