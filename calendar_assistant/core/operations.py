"""
Calendar Assistant — Calendar Operations.

The six things the oracle can ask for. Each one resolves the user's fuzzy
dates through the time resolver, talks to the calendar through CalendarPort
and turns the result into text through the event formatter.

Every operation returns an Outcome: `Done(text)` when it produced an answer,
`NeedsClarification(question)` when it can't continue without the user.
Calendar failures are raised as CalendarError and handled by the dispatcher.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Union

from calendar_assistant.core import event_formatter as fmt
from calendar_assistant.core.availability import Slot, busy_intervals, find_gaps
from calendar_assistant.core.parser import (
    CreateMeetingArgs,
    DeleteMeetingArgs,
    FindOpenSlotsArgs,
    GetEventsArgs,
    GetMeetingDetailsArgs,
    ModifyMeetingArgs,
    ToolCall,
)
from calendar_assistant.core.time_resolver import (
    TIME_OF_DAY_BANDS,
    TimeRange,
    WEEKDAYS,
    combine_local,
    extract_day_token,
    extract_time_of_day,
    local_now,
    parse_clock,
    resolve_day,
    resolve_day_range,
    resolve_next_week_range,
    resolve_week_range,
)

if TYPE_CHECKING:
    from calendar_assistant.ports.calendar_port import CalendarPort

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

DURATION_QUESTION = (
    "How long should the meeting be? You can give me an end time "
    "or a duration (for example 30 minutes or 1 hour)."
)
PROXIMITY_MINUTES = 60

_WEEK_RE = re.compile(r"\b(this|next)\s*we+k\b", re.IGNORECASE)
_OVERLAP_RE = re.compile(r"\boverlap(?:s|ping)?\b", re.IGNORECASE)
_BAND_RE = re.compile(r"\b(?:morning|afternoon|evening)s?\b", re.IGNORECASE)
_FILLER_WORDS = {"meeting", "meetings", "event", "events", "about", "any", "my", "on", "in", "for"}

_RRULE_CODES = {day: day[:2].upper() for day in WEEKDAYS}


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


class OutcomeKind(Enum):
    DONE = "done"
    NEEDS_CLARIFICATION = "needs_clarification"


@dataclass(frozen=True)
class Done:
    text: str
    kind: OutcomeKind = field(default=OutcomeKind.DONE, init=False)


@dataclass(frozen=True)
class NeedsClarification:
    question: str
    kind: OutcomeKind = field(default=OutcomeKind.NEEDS_CLARIFICATION, init=False)

    @property
    def text(self) -> str:
        return self.question


Outcome = Union[Done, NeedsClarification]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@dataclass
class KeywordParts:
    """What a get_events keyword encodes once the known tokens are pulled out."""

    week: str | None = None          # "this" | "next"
    day: str | None = None           # relative-day phrase, e.g. "friday"
    time_of_day: str | None = None
    overlap: bool = False
    topic: str | None = None


def split_keyword(keyword: str | None) -> KeywordParts:
    """Separate week / day / time-of-day / overlap tokens from the topic."""
    if not keyword or not keyword.strip():
        return KeywordParts()

    parts = KeywordParts()
    rest = keyword.lower()

    week = _WEEK_RE.search(rest)
    if week:
        parts.week = week.group(1)
        rest = _WEEK_RE.sub(" ", rest)

    parts.time_of_day = extract_time_of_day(rest)
    rest = _BAND_RE.sub(" ", rest)

    if _OVERLAP_RE.search(rest):
        parts.overlap = True
        rest = _OVERLAP_RE.sub(" ", rest)

    day = extract_day_token(rest)
    if day:
        parts.day = day
        rest = rest.replace(day, " ")

    words = [w for w in rest.split() if w not in _FILLER_WORDS]
    parts.topic = " ".join(words) or None
    return parts


def _naive_local(moment: datetime) -> str:
    # Sent with an explicit timeZone so the provider resolves the offset.
    return moment.replace(tzinfo=None).isoformat(timespec="seconds")


def _attendee_matches(event: dict, needle: str) -> bool:
    needle = needle.lower()
    for attendee in event.get("attendees") or []:
        name = (attendee.get("displayName") or "").lower()
        email = (attendee.get("email") or "").lower()
        if needle in name or needle in email:
            return True
    return False


def _in_band(start: datetime, band: str) -> bool:
    start_hour, end_hour = TIME_OF_DAY_BANDS[band]
    return start_hour <= start.hour < end_hour


def _slot_line(slot: Slot) -> str:
    return (
        f"  - {fmt.time_label(slot.start)} - {fmt.time_label(slot.end)} "
        f"({fmt.format_duration(slot.minutes)})"
    )


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------


class CalendarOperations:
    """Calendar capabilities for one user, in that user's timezone."""

    def __init__(
        self,
        calendar: CalendarPort,
        tz: str,
        now: datetime | None = None,
        workday: tuple[str, str] | None = None,
        default_meeting_minutes: int | None = None,
        ask_for_duration: bool | None = None,
    ) -> None:
        from calendar_assistant.config import settings

        self._calendar = calendar
        self._tz = tz
        self._now = now
        self._workday = workday or (settings.WORKDAY_START, settings.WORKDAY_END)
        self._default_minutes = default_meeting_minutes or settings.DEFAULT_MEETING_MINUTES
        self._ask_for_duration = (
            settings.ASK_FOR_DURATION if ask_for_duration is None else ask_for_duration
        )

    def _current(self) -> datetime:
        return local_now(self._tz, self._now)

    def _resolve_day(self, expr: str | None) -> datetime:
        return resolve_day(expr, self._tz, self._current())

    async def dispatch(self, call: ToolCall) -> Outcome:
        """Route a validated tool call to its operation."""
        logger.info("Running %s for tz=%s", call.tool, self._tz)
        if isinstance(call, GetEventsArgs):
            return await self.get_events(call)
        if isinstance(call, GetMeetingDetailsArgs):
            return await self.get_meeting_details(call)
        if isinstance(call, CreateMeetingArgs):
            return await self.create_meeting(call)
        if isinstance(call, ModifyMeetingArgs):
            return await self.modify_meeting(call)
        if isinstance(call, FindOpenSlotsArgs):
            return await self.find_open_slots(call)
        if isinstance(call, DeleteMeetingArgs):
            return await self.delete_meeting(call)
        raise ValueError(f"Unsupported operation: {call!r}")

    # --- get_events -----------------------------------------------------

    def events_range(self, args: GetEventsArgs) -> tuple[TimeRange, KeywordParts]:
        """Query window for a get_events call, plus the decoded keyword."""
        parts = split_keyword(args.keyword)
        now = self._current()

        if parts.week == "this":
            time_range = resolve_week_range(now, self._tz)
        elif parts.week == "next":
            time_range = resolve_next_week_range(self._tz, now)
        else:
            # A relative day inside the keyword beats an explicit start_date.
            day = self._resolve_day(parts.day or args.start_date)
            time_range = resolve_day_range(day, parts.time_of_day, self._tz)

        if args.end_date:
            last_day = resolve_day_range(self._resolve_day(args.end_date), None, self._tz)
            if last_day.end > time_range.end:
                time_range = TimeRange(time_range.start, last_day.end, self._tz)

        return time_range, parts

    async def get_events(self, args: GetEventsArgs) -> Outcome:
        time_range, parts = self.events_range(args)
        events = fmt.dedupe(await self._calendar.list_events(time_range, single_events=True))

        if parts.topic:
            events = [ev for ev in events if parts.topic in fmt.event_title(ev).lower()]
        if parts.time_of_day:
            events = [
                ev for ev in events
                if not fmt.is_all_day(ev) and _in_band(fmt.event_start(ev, self._tz), parts.time_of_day)
            ]
        if args.attendee:
            events = [ev for ev in events if _attendee_matches(ev, args.attendee)]

        logger.info(
            "get_events: %d event(s) after filters (topic=%r, band=%r, attendee=%r)",
            len(events), parts.topic, parts.time_of_day, args.attendee,
        )
        return Done(fmt.format_events(events, self._tz, show_overlap_warning=parts.overlap))

    # --- candidate lookup shared by details / modify / delete -----------

    async def find_candidates(
        self,
        date_expr: str,
        summary: str | None,
        clock: str | None,
        single_events: bool = True,
    ) -> tuple[datetime, list[dict]]:
        """Events on a day narrowed by title substring and time proximity.

        Returns (resolved day, candidates ordered by local start time).
        """
        day = self._resolve_day(date_expr)
        day_range = resolve_day_range(day, None, self._tz)
        events = fmt.dedupe(
            await self._calendar.list_events(day_range, single_events=single_events)
        )

        if summary:
            needle = summary.lower()
            events = [ev for ev in events if needle in fmt.event_title(ev).lower()]

        if clock:
            target_clock = parse_clock(clock)
            distances: list[tuple[float, dict]] = []
            for ev in events:
                start = fmt.event_start(ev, self._tz)
                # Series masters start on their first occurrence; compare clocks only.
                target = combine_local(start.date(), target_clock, self._tz)
                distance = abs((start - target).total_seconds()) / 60
                if distance <= PROXIMITY_MINUTES:
                    distances.append((distance, ev))
            if distances:
                closest = min(d for d, _ in distances)
                events = [ev for d, ev in distances if d == closest]
            else:
                events = []

        events.sort(key=lambda ev: (
            fmt.event_start(ev, self._tz).timetz().replace(tzinfo=None),
            fmt.event_start(ev, self._tz),
        ))
        return day, events

    def _disambiguation(self, day: datetime, candidates: list[dict], verb: str) -> NeedsClarification:
        lines = [
            f"  {i}. {fmt.event_title(ev)} at {fmt.time_label(fmt.event_start(ev, self._tz))}"
            for i, ev in enumerate(candidates, start=1)
        ]
        return NeedsClarification(
            f"I found {len(candidates)} meetings that match on {fmt.date_label(day.date())}:\n"
            + "\n".join(lines)
            + f"\nWhich one should I {verb}? Tell me its title or time."
        )

    # --- get_meeting_details --------------------------------------------

    async def get_meeting_details(self, args: GetMeetingDetailsArgs) -> Outcome:
        day, candidates = await self.find_candidates(
            args.date, args.summary, args.time, single_events=False,
        )
        if not candidates:
            return Done("No matching meeting found.")

        event = candidates[0]
        start = fmt.event_start(event, self._tz)
        end = fmt.event_end(event, self._tz)
        minutes = int((end - start).total_seconds() // 60)

        if fmt.is_all_day(event):
            when = f"{fmt.date_label(day.date())} (all day)"
        else:
            when = (
                f"{fmt.date_label(day.date())} {fmt.time_label(start)} "
                f"({fmt.format_duration(minutes)})"
            )

        lines = [f"Meeting: {fmt.event_title(event)}", f"Time: {when}"]
        if event.get("description"):
            lines.append(f"Description: {event['description']}")
        else:
            lines.append("No description available")
        if event.get("location"):
            lines.append(f"Location: {event['location']}")
        attendees = [a.get("email") for a in event.get("attendees") or [] if a.get("email")]
        if attendees:
            lines.append(f"Attendees: {', '.join(attendees)}")
        recurrence = fmt.describe_recurrence(event)
        lines.append(f"Recurrence: {recurrence}" if recurrence else "One-time meeting")
        return Done("\n".join(lines))

    # --- create_meeting -------------------------------------------------

    async def create_meeting(self, args: CreateMeetingArgs) -> Outcome:
        day = self._resolve_day(args.date).date()
        start = combine_local(day, parse_clock(args.start_time), self._tz)

        if args.end_time:
            end = combine_local(day, parse_clock(args.end_time), self._tz)
            if end <= start:
                return NeedsClarification(
                    f"The end time {args.end_time} isn't after the start time "
                    f"{args.start_time}. When should the meeting end?"
                )
        elif args.duration_minutes:
            end = start + timedelta(minutes=args.duration_minutes)
        elif self._ask_for_duration:
            return NeedsClarification(DURATION_QUESTION)
        else:
            end = start + timedelta(minutes=self._default_minutes)

        # Entries that aren't email addresses are dropped without comment.
        valid = [a.strip() for a in args.attendees if EMAIL_RE.match(a.strip())]

        body: dict = {
            "summary": args.summary,
            "start": {"dateTime": _naive_local(start), "timeZone": self._tz},
            "end": {"dateTime": _naive_local(end), "timeZone": self._tz},
        }
        if args.description:
            body["description"] = args.description
        if args.location:
            body["location"] = args.location
        if valid:
            body["attendees"] = [{"email": email} for email in valid]
        if args.recurrence:
            body["recurrence"] = [f"RRULE:FREQ=WEEKLY;BYDAY={_RRULE_CODES[args.recurrence]}"]

        created = await self._calendar.insert_event(body)

        lines = [
            f"Meeting created successfully{' (Recurring)' if args.recurrence else ''}:",
            f"- {args.summary}",
            f"- {fmt.datetime_label(start)} to {fmt.time_label(end)}",
        ]
        if args.description:
            lines.append(f"- Description: {args.description}")
        if args.location:
            lines.append(f"- Location: {args.location}")
        if valid:
            lines.append(f"- With: {', '.join(valid)}")
        if args.recurrence:
            lines.append(f"- Repeats: Weekly on {args.recurrence.capitalize()}s")
        if created.get("htmlLink"):
            lines.append(f"- Link: {created['htmlLink']}")
        return Done("\n".join(lines))

    # --- modify_meeting -------------------------------------------------

    async def modify_meeting(self, args: ModifyMeetingArgs) -> Outcome:
        day, candidates = await self.find_candidates(args.date, args.summary, args.time)
        if not candidates:
            return Done("No matching meeting found to modify.")
        if len(candidates) > 1:
            return self._disambiguation(day, candidates, "change")

        event = candidates[0]
        updates = args.updates
        if updates.is_empty():
            return NeedsClarification(
                f"What would you like to change about {fmt.event_title(event)}?"
            )

        old_start = fmt.event_start(event, self._tz)
        old_end = fmt.event_end(event, self._tz)
        duration = old_end - old_start

        changes: dict = {}
        if updates.summary:
            changes["summary"] = updates.summary
        if updates.description:
            changes["description"] = updates.description
        if updates.location:
            changes["location"] = updates.location

        new_start, new_end = old_start, old_end
        if updates.date or updates.start_time or updates.end_time:
            new_day = self._resolve_day(updates.date).date() if updates.date else old_start.date()
            start_clock = (
                parse_clock(updates.start_time) if updates.start_time
                else old_start.time()
            )
            new_start = combine_local(new_day, start_clock, self._tz)
            if updates.end_time:
                new_end = combine_local(new_day, parse_clock(updates.end_time), self._tz)
                if new_end <= new_start:
                    return NeedsClarification(
                        f"The end time {updates.end_time} isn't after the start time. "
                        "When should the meeting end?"
                    )
            else:
                new_end = new_start + duration
            changes["start"] = {"dateTime": _naive_local(new_start), "timeZone": self._tz}
            changes["end"] = {"dateTime": _naive_local(new_end), "timeZone": self._tz}

        updated = await self._calendar.update_event(event["id"], changes)

        title = updated.get("summary") or changes.get("summary") or fmt.event_title(event)
        rescheduled = "start" in changes
        lines = [
            "Meeting rescheduled successfully:" if rescheduled else "Meeting updated successfully:",
            f"- {title}",
        ]
        if rescheduled:
            lines.append(f"- From: {fmt.datetime_label(old_start)} - {fmt.time_label(old_end)}")
            lines.append(f"- To: {fmt.datetime_label(new_start)} - {fmt.time_label(new_end)}")
        description = updated.get("description") or changes.get("description")
        if description:
            lines.append(f"- Description: {description}")
        location = updated.get("location") or changes.get("location")
        if location:
            lines.append(f"- Location: {location}")
        if updated.get("htmlLink"):
            lines.append(f"- Link: {updated['htmlLink']}")
        return Done("\n".join(lines))

    # --- find_open_slots ------------------------------------------------

    async def find_open_slots(self, args: FindOpenSlotsArgs) -> Outcome:
        day = self._resolve_day(args.date).date()
        window_start = combine_local(day, parse_clock(self._workday[0]), self._tz)
        window_end = combine_local(day, parse_clock(self._workday[1]), self._tz)

        now = self._current()
        if day == now.date() and now > window_start:
            # Only future slots today, rounded up to the next quarter hour
            rounded = now.replace(second=0, microsecond=0)
            rounded += timedelta(minutes=(-rounded.minute) % 15)
            window_start = min(max(window_start, rounded), window_end)

        events = await self._calendar.list_events(
            resolve_day_range(day, None, self._tz), single_events=True,
        )
        gaps = find_gaps(
            busy_intervals(fmt.dedupe(events), self._tz),
            window_start,
            window_end,
            timedelta(minutes=args.duration_minutes),
        )

        label = fmt.date_label(day)
        wanted = fmt.format_duration(args.duration_minutes)
        if not gaps:
            return Done(f"No open slots of at least {wanted} found on {label}.")
        lines = [f"Open slots on {label} (at least {wanted}):"]
        lines.extend(_slot_line(gap) for gap in gaps)
        return Done("\n".join(lines))

    # --- delete_meeting -------------------------------------------------

    async def delete_meeting(self, args: DeleteMeetingArgs) -> Outcome:
        day, candidates = await self.find_candidates(args.date, args.summary, args.time)
        if not candidates:
            return Done("No matching meeting found to delete.")
        if len(candidates) > 1:
            return self._disambiguation(day, candidates, "delete")

        event = candidates[0]
        await self._calendar.delete_event(event["id"])
        start = fmt.event_start(event, self._tz)
        when = fmt.date_label(start.date()) if fmt.is_all_day(event) else fmt.datetime_label(start)
        return Done(f"Meeting deleted: {fmt.event_title(event)} ({when})")
