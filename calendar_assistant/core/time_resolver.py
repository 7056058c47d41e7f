"""
Calendar Assistant — Time Resolver.

Turns the fuzzy date expressions the LLM hands us ("tomorrow", "friday",
"this week", "morning") plus the user's IANA timezone into concrete,
timezone-aware instants and ranges.

All arithmetic happens on wall-clock dates inside the user's zone and is
converted through zoneinfo, never through fixed UTC offsets, so DST
transitions don't shift the hour-of-day boundaries.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil import parser as dateutil_parser

logger = logging.getLogger(__name__)

WEEKDAYS = [
    "monday", "tuesday", "wednesday", "thursday",
    "friday", "saturday", "sunday",
]

# Hour bands for time-of-day keywords: [start, end)
TIME_OF_DAY_BANDS: dict[str, tuple[int, int]] = {
    "morning": (6, 12),
    "afternoon": (12, 18),
    "evening": (18, 23),
}

END_OF_DAY = time(23, 59, 59, 999000)

_DAY_RE = re.compile(
    r"\b(?:this\s+|next\s+)?(today|tomorrow|monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b",
    re.IGNORECASE,
)
_CLOCK_RE = re.compile(
    r"^\s*(\d{1,2})(?:[:.](\d{2}))?\s*(am|pm|a\.m\.|p\.m\.)?\s*$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class TimeRange:
    """Half-open-ish query window. start/end are aware datetimes in `timezone`."""

    start: datetime
    end: datetime
    timezone: str

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(f"TimeRange start {self.start} is after end {self.end}")

    @property
    def start_utc(self) -> datetime:
        return self.start.astimezone(timezone.utc)

    @property
    def end_utc(self) -> datetime:
        return self.end.astimezone(timezone.utc)

    def to_query(self) -> tuple[str, str]:
        """RFC3339 (timeMin, timeMax) strings for the calendar provider."""
        return (
            self.start_utc.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            self.end_utc.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        )


def get_zone(tz: str) -> ZoneInfo:
    """Return a ZoneInfo for an IANA id, raising ValueError for unknown zones."""
    try:
        return ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {tz!r}") from exc


def is_valid_timezone(tz: str | None) -> bool:
    if not tz:
        return False
    try:
        get_zone(tz)
    except ValueError:
        return False
    return True


def local_now(tz: str, now: datetime | None = None) -> datetime:
    """Current instant expressed in the user's zone."""
    zone = get_zone(tz)
    if now is None:
        return datetime.now(zone)
    if now.tzinfo is None:
        return now.replace(tzinfo=zone)
    return now.astimezone(zone)


def next_weekday(weekday: int, tz: str, now: datetime | None = None) -> datetime:
    """Next future occurrence of `weekday` (0=Monday).

    If today already is that weekday, the same weekday next week is returned.
    """
    current = local_now(tz, now)
    days_ahead = (weekday - current.weekday()) % 7
    if days_ahead == 0:
        days_ahead = 7
    return _shift_days(current, days_ahead)


def _shift_days(moment: datetime, days: int) -> datetime:
    # Re-attach the zone on the shifted wall-clock date so the offset is
    # recomputed for that day.
    target = moment.date() + timedelta(days=days)
    return datetime.combine(target, moment.timetz().replace(tzinfo=None), tzinfo=moment.tzinfo)


def resolve_day(expr: str | None, tz: str, now: datetime | None = None) -> datetime:
    """Resolve a day expression into an aware datetime in `tz`.

    Recognizes "today", "tomorrow" and weekday names (optionally prefixed with
    "this"/"next"), then falls back to a direct date parse. Anything that
    can't be resolved yields "now" rather than an error.
    """
    current = local_now(tz, now)
    if not expr or not expr.strip():
        return current

    lowered = expr.strip().lower()
    match = _DAY_RE.search(lowered)
    if match:
        word = match.group(1).lower()
        if word == "today":
            return current
        if word == "tomorrow":
            return _shift_days(current, 1)
        return next_weekday(WEEKDAYS.index(word), tz, current)

    try:
        parsed = dateutil_parser.parse(expr, default=current.replace(tzinfo=None))
    except (ValueError, OverflowError):
        logger.warning("Could not resolve day expression %r, defaulting to now", expr)
        return current

    if parsed.tzinfo is not None:
        return parsed.astimezone(current.tzinfo)
    return parsed.replace(tzinfo=current.tzinfo)


def extract_day_token(text: str | None) -> str | None:
    """Return the relative-day phrase inside free text ("this friday"), if any."""
    if not text:
        return None
    match = _DAY_RE.search(text)
    return match.group(0) if match else None


def extract_time_of_day(text: str | None) -> str | None:
    if not text:
        return None
    match = re.search(r"\b(morning|afternoon|evening)s?\b", text, re.IGNORECASE)
    return match.group(1).lower() if match else None


def resolve_week_range(base: datetime, tz: str) -> TimeRange:
    """Monday 00:00 to Sunday 23:59:59.999 of the week containing `base`, in `tz`."""
    zone = get_zone(tz)
    local = base.astimezone(zone) if base.tzinfo else base.replace(tzinfo=zone)
    monday = local.date() - timedelta(days=local.weekday())
    sunday = monday + timedelta(days=6)
    return TimeRange(
        start=datetime.combine(monday, time.min, tzinfo=zone),
        end=datetime.combine(sunday, END_OF_DAY, tzinfo=zone),
        timezone=tz,
    )


def resolve_next_week_range(tz: str, now: datetime | None = None) -> TimeRange:
    return resolve_week_range(_shift_days(local_now(tz, now), 7), tz)


def resolve_day_range(
    day: datetime | date, time_of_day: str | None, tz: str,
) -> TimeRange:
    """Full-day range for `day`, or one of the morning/afternoon/evening bands."""
    zone = get_zone(tz)
    if isinstance(day, datetime):
        local_date = (day.astimezone(zone) if day.tzinfo else day).date()
    else:
        local_date = day

    band = TIME_OF_DAY_BANDS.get((time_of_day or "").lower())
    if band is None:
        return TimeRange(
            start=datetime.combine(local_date, time.min, tzinfo=zone),
            end=datetime.combine(local_date, END_OF_DAY, tzinfo=zone),
            timezone=tz,
        )
    start_hour, end_hour = band
    return TimeRange(
        start=datetime.combine(local_date, time(start_hour), tzinfo=zone),
        end=datetime.combine(local_date, time(end_hour), tzinfo=zone),
        timezone=tz,
    )


def parse_clock(value: str) -> time:
    """Parse "14:30", "9", "3pm", "3:30 p.m." into a time. Raises ValueError."""
    match = _CLOCK_RE.match(value or "")
    if not match:
        raise ValueError(f"Invalid time: {value!r}")
    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    meridiem = (match.group(3) or "").replace(".", "").lower()
    if meridiem:
        if not 1 <= hour <= 12:
            raise ValueError(f"Invalid time: {value!r}")
        if meridiem == "pm" and hour != 12:
            hour += 12
        elif meridiem == "am" and hour == 12:
            hour = 0
    if hour > 23 or minute > 59:
        raise ValueError(f"Invalid time: {value!r}")
    return time(hour, minute)


def combine_local(day: date, clock: time, tz: str) -> datetime:
    return datetime.combine(day, clock, tzinfo=get_zone(tz))
