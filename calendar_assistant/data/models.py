"""
Calendar Assistant — Data Models.

Users are the only local state: calendar events live in Google Calendar,
conversation turns live in memory.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A Slack user linked (or being linked) to a Google Calendar."""

    slack_user_id: str
    access_token: str | None = None
    refresh_token: str | None = None
    token_expiry: str | None = None      # ISO datetime, UTC, naive
    timezone: str | None = None          # IANA id; None until the user sets one
    last_interaction: str = ""
    created_at: str = ""

    @property
    def is_linked(self) -> bool:
        return bool(self.refresh_token)

    @property
    def effective_timezone(self) -> str:
        if self.timezone:
            return self.timezone
        from calendar_assistant.config import settings
        return settings.DEFAULT_TIMEZONE
