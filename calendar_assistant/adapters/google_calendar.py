"""Google Calendar adapter — implements CalendarPort for Google Calendar API.

All Google-specific logic lives here. Core modules never import this directly;
they depend on the CalendarPort protocol.

Every call first makes sure the user's access token is live, refreshing it from
the stored refresh token when it is stale or missing. The blocking
googleapiclient requests run in a worker thread under a timeout.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Callable

from googleapiclient.discovery import build

from calendar_assistant.integrations.google_auth import (
    build_credentials,
    needs_refresh,
    refresh_credentials,
)
from calendar_assistant.ports.calendar_port import AuthenticationError, CalendarError

if TYPE_CHECKING:
    from calendar_assistant.core.time_resolver import TimeRange
    from calendar_assistant.data.models import User

logger = logging.getLogger(__name__)

CALENDAR_ID = "primary"
MAX_RESULTS = 2500

# Called with (access_token, expiry_iso) after every successful refresh
TokenSaver = Callable[[str, "str | None"], None]


class GoogleCalendarAdapter:
    """Google Calendar implementation of CalendarPort for a single user."""

    def __init__(
        self,
        user: User,
        on_token_refresh: TokenSaver | None = None,
        timeout: float | None = None,
    ) -> None:
        if timeout is None:
            from calendar_assistant.config import settings
            timeout = settings.CALENDAR_TIMEOUT_SECONDS

        self._user = user
        self._on_token_refresh = on_token_refresh
        self._timeout = timeout
        self._creds = build_credentials(user)
        self._service = None

    @property
    def timezone(self) -> str:
        return self._user.effective_timezone

    # ------------------------------------------------------------------
    # Auth + execution helpers
    # ------------------------------------------------------------------

    def _ensure_service(self):
        if needs_refresh(self._creds):
            refresh_credentials(self._creds)
            if self._on_token_refresh is not None:
                expiry = self._creds.expiry.isoformat() if self._creds.expiry else None
                self._on_token_refresh(self._creds.token, expiry)
            self._service = None
        if self._service is None:
            self._service = build(
                "calendar", "v3", credentials=self._creds, cache_discovery=False,
            )
        return self._service

    async def _execute(self, make_request: Callable, action: str):
        """Ensure credentials, build the request and run it off the event loop."""

        def _run():
            service = self._ensure_service()
            return make_request(service.events()).execute()

        try:
            return await asyncio.wait_for(asyncio.to_thread(_run), timeout=self._timeout)
        except AuthenticationError:
            raise
        except asyncio.TimeoutError as exc:
            logger.error("Google Calendar %s timed out after %ss", action, self._timeout)
            raise CalendarError(f"Calendar request timed out while trying to {action}") from exc
        except Exception as exc:
            logger.error("Google Calendar API error during %s: %s", action, exc)
            raise CalendarError(f"Failed to {action}: {exc}") from exc

    # ------------------------------------------------------------------
    # CalendarPort
    # ------------------------------------------------------------------

    async def list_events(
        self,
        time_range: TimeRange,
        query: str | None = None,
        single_events: bool = True,
    ) -> list[dict]:
        time_min, time_max = time_range.to_query()
        params: dict = {
            "calendarId": CALENDAR_ID,
            "timeMin": time_min,
            "timeMax": time_max,
            "singleEvents": single_events,
            "timeZone": time_range.timezone,
            "maxResults": MAX_RESULTS,
        }
        if single_events:
            params["orderBy"] = "startTime"
        if query:
            params["q"] = query

        result = await self._execute(lambda ev: ev.list(**params), "list events")
        items = result.get("items", [])
        logger.info(
            "Found %d event(s) between %s and %s (query=%r, expanded=%s)",
            len(items), time_min, time_max, query, single_events,
        )
        return items

    async def get_event(self, event_id: str) -> dict:
        return await self._execute(
            lambda ev: ev.get(calendarId=CALENDAR_ID, eventId=event_id),
            "fetch event",
        )

    async def insert_event(self, body: dict) -> dict:
        created = await self._execute(
            lambda ev: ev.insert(calendarId=CALENDAR_ID, body=body, sendUpdates="all"),
            "create event",
        )
        logger.info(
            "Event created: '%s' — %s", body.get("summary", ""), created.get("htmlLink", ""),
        )
        return created

    async def update_event(self, event_id: str, changes: dict) -> dict:
        """Patch only `changes`; the stored event is read first so start/end
        patches keep its timezone tag and untouched fields stay as they are."""
        existing = await self.get_event(event_id)

        body: dict = {}
        for key, value in changes.items():
            if key in ("start", "end") and isinstance(value, dict):
                merged = dict(value)
                if "dateTime" in merged and "timeZone" not in merged:
                    tz = existing.get(key, {}).get("timeZone")
                    if tz:
                        merged["timeZone"] = tz
                if "dateTime" in merged:
                    merged.setdefault("date", None)
                body[key] = merged
            else:
                body[key] = value

        updated = await self._execute(
            lambda ev: ev.patch(
                calendarId=CALENDAR_ID, eventId=event_id, body=body, sendUpdates="all",
            ),
            "update event",
        )
        logger.info("Event %s updated to '%s'", event_id, updated.get("summary", ""))
        return updated

    async def delete_event(self, event_id: str) -> None:
        await self._execute(
            lambda ev: ev.delete(calendarId=CALENDAR_ID, eventId=event_id, sendUpdates="all"),
            "delete event",
        )
        logger.info("Event with ID %s deleted successfully.", event_id)
