"""
Calendar Assistant — Free Slot Finder.

Walks a day's busy intervals in start order and collects the gaps inside the
workday window that are at least the requested length.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from calendar_assistant.core.event_formatter import event_end, event_start, is_all_day


@dataclass(frozen=True)
class Slot:
    start: datetime
    end: datetime

    @property
    def minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


def busy_intervals(events: list[dict], tz: str) -> list[tuple[datetime, datetime]]:
    """[start, end) of every event that blocks time.

    All-day events and events marked "free" (transparent) don't block.
    """
    intervals: list[tuple[datetime, datetime]] = []
    for ev in events:
        if is_all_day(ev) or ev.get("transparency") == "transparent":
            continue
        if ev.get("status") == "cancelled":
            continue
        intervals.append((event_start(ev, tz), event_end(ev, tz)))
    return intervals


def find_gaps(
    busy: list[tuple[datetime, datetime]],
    window_start: datetime,
    window_end: datetime,
    duration: timedelta,
) -> list[Slot]:
    """Free gaps of at least `duration` between `window_start` and `window_end`.

    Busy intervals may overlap, touch, or stick out of the window.
    """
    gaps: list[Slot] = []
    cursor = window_start
    for start, end in sorted(busy):
        if end <= cursor:
            continue
        if start >= window_end:
            break
        if start - cursor >= duration:
            gaps.append(Slot(cursor, start))
        cursor = max(cursor, end)
    if window_end - cursor >= duration:
        gaps.append(Slot(cursor, window_end))
    return gaps
