"""
Calendar Assistant — Event Formatter.

Pure functions that turn the provider's raw event dicts into the text we
send back to Slack: dedupe by id, sort by start, group by local date,
optionally flag overlapping meetings.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta
from typing import Iterable

from calendar_assistant.core.time_resolver import get_zone

NO_EVENTS_MESSAGE = "No events found for the specified criteria."
OVERLAP_WARNING = "Found overlapping meetings"
OVERLAP_MARKER = "⚠️ "

_RRULE_DAYS = {
    "MO": "Mondays",
    "TU": "Tuesdays",
    "WE": "Wednesdays",
    "TH": "Thursdays",
    "FR": "Fridays",
    "SA": "Saturdays",
    "SU": "Sundays",
}


# ---------------------------------------------------------------------------
# Event field accessors
# ---------------------------------------------------------------------------


def is_all_day(event: dict) -> bool:
    return "dateTime" not in event.get("start", {})


def _parse_boundary(boundary: dict, tz: str) -> datetime:
    zone = get_zone(tz)
    if boundary.get("dateTime"):
        parsed = datetime.fromisoformat(boundary["dateTime"].replace("Z", "+00:00"))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=get_zone(boundary.get("timeZone") or tz))
        return parsed.astimezone(zone)
    # All-day: the date's local midnight
    day = date.fromisoformat(boundary.get("date", "1970-01-01"))
    return datetime.combine(day, time.min, tzinfo=zone)


def event_start(event: dict, tz: str) -> datetime:
    """Start of an event as an aware datetime in `tz`."""
    return _parse_boundary(event.get("start", {}), tz)


def event_end(event: dict, tz: str) -> datetime:
    end = event.get("end")
    if not end:
        return event_start(event, tz) + timedelta(hours=1)
    return _parse_boundary(end, tz)


def event_title(event: dict) -> str:
    return event.get("summary") or "(no title)"


# ---------------------------------------------------------------------------
# List transforms
# ---------------------------------------------------------------------------


def dedupe(events: Iterable[dict]) -> list[dict]:
    """Drop repeated event ids, keeping the first occurrence and its position."""
    seen: set[str] = set()
    unique: list[dict] = []
    for event in events:
        event_id = event.get("id")
        if event_id is not None and event_id in seen:
            continue
        if event_id is not None:
            seen.add(event_id)
        unique.append(event)
    return unique


def sort_by_start(events: Iterable[dict], tz: str) -> list[dict]:
    return sorted(events, key=lambda ev: event_start(ev, tz))


def date_label(day: date) -> str:
    """e.g. 'Tue, Jun 10, 2025'."""
    return f"{day:%a}, {day:%b} {day.day}, {day.year}"


def time_label(moment: datetime) -> str:
    """e.g. '02:30 PM'."""
    return moment.strftime("%I:%M %p")


def datetime_label(moment: datetime) -> str:
    return f"{date_label(moment.date())} {time_label(moment)}"


def group_by_local_date(events: Iterable[dict], tz: str) -> dict[str, list[dict]]:
    """Group events under their start date in the user's zone.

    Keys appear in chronological order of their dates.
    """
    buckets: dict[date, list[dict]] = {}
    for event in events:
        buckets.setdefault(event_start(event, tz).date(), []).append(event)
    return {date_label(day): buckets[day] for day in sorted(buckets)}


def detect_overlaps(events: list[dict], tz: str = "UTC") -> set[str]:
    """Ids of events whose [start, end) intervals intersect another event's."""
    intervals = [(ev.get("id"), event_start(ev, tz), event_end(ev, tz)) for ev in events]
    overlapping: set[str] = set()
    for i, (id_a, start_a, end_a) in enumerate(intervals):
        for id_b, start_b, end_b in intervals[i + 1:]:
            if start_a < end_b and start_b < end_a:
                overlapping.add(id_a)
                overlapping.add(id_b)
    return overlapping


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _event_line(event: dict, tz: str, flagged: bool) -> str:
    when = "all day" if is_all_day(event) else f"at {time_label(event_start(event, tz))}"
    marker = OVERLAP_MARKER if flagged else ""
    return f"  - {marker}{event_title(event)} {when}"


def render(
    grouped: dict[str, list[dict]], tz: str, show_overlap_warning: bool = False,
) -> str:
    """Render grouped events as day blocks; never returns an empty string."""
    if not grouped or not any(grouped.values()):
        return NO_EVENTS_MESSAGE

    blocks: list[str] = []
    for label, day_events in grouped.items():
        if not day_events:
            continue
        day_events = sort_by_start(dedupe(day_events), tz)
        overlaps = detect_overlaps(day_events, tz) if show_overlap_warning else set()
        header = f"{label}:\n"
        if overlaps:
            header += f"{OVERLAP_WARNING}\n\n"
        lines = "\n".join(
            _event_line(ev, tz, ev.get("id") in overlaps) for ev in day_events
        )
        blocks.append(header + lines)
    return "\n\n".join(blocks)


def format_events(events: list[dict], tz: str, show_overlap_warning: bool = False) -> str:
    """dedupe → sort → group → render."""
    ordered = sort_by_start(dedupe(events), tz)
    return render(group_by_local_date(ordered, tz), tz, show_overlap_warning)


def format_duration(minutes: int) -> str:
    """e.g. 90 → '1 hour and 30 minutes', 45 → '45 minutes'."""
    if minutes < 60:
        return f"{minutes} minutes"
    hours, rest = divmod(minutes, 60)
    text = f"{hours} hour{'s' if hours != 1 else ''}"
    if rest:
        text += f" and {rest} minutes"
    return text


def describe_recurrence(event: dict) -> str | None:
    """Human label for a weekly RRULE, e.g. 'Repeats weekly on Thursdays'."""
    rules = event.get("recurrence") or []
    for rule in rules:
        if not rule.startswith("RRULE:"):
            continue
        if "FREQ=WEEKLY" in rule:
            match = re.search(r"BYDAY=([A-Z,]+)", rule)
            if not match:
                return "Repeats weekly"
            days = [_RRULE_DAYS.get(code, code) for code in match.group(1).split(",")]
            return f"Repeats weekly on {', '.join(days)}"
        if "FREQ=DAILY" in rule:
            return "Repeats daily"
        if "FREQ=MONTHLY" in rule:
            return "Repeats monthly"
        if "FREQ=YEARLY" in rule:
            return "Repeats yearly"
    if event.get("recurringEventId"):
        return "Part of a recurring series"
    return None
