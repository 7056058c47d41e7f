"""Tests for calendar_assistant.core.time_resolver."""

from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

import pytest

from calendar_assistant.core.time_resolver import (
    WEEKDAYS,
    TimeRange,
    combine_local,
    extract_day_token,
    extract_time_of_day,
    is_valid_timezone,
    parse_clock,
    resolve_day,
    resolve_day_range,
    resolve_next_week_range,
    resolve_week_range,
)

TZ = "Europe/Amsterdam"
# Tuesday morning
NOW = datetime(2025, 6, 10, 9, 0, tzinfo=ZoneInfo(TZ))


# ---------------------------------------------------------------------------
# resolve_day
# ---------------------------------------------------------------------------


class TestResolveDay:
    def test_today_is_now(self):
        assert resolve_day("today", TZ, NOW) == NOW

    def test_tomorrow(self):
        assert resolve_day("tomorrow", TZ, NOW).date() == date(2025, 6, 11)

    @pytest.mark.parametrize("weekday", WEEKDAYS)
    def test_weekday_is_future_and_matches(self, weekday):
        resolved = resolve_day(weekday, TZ, NOW)
        assert resolved.weekday() == WEEKDAYS.index(weekday)
        assert resolved > NOW
        assert resolved - NOW <= timedelta(days=7)

    def test_same_weekday_means_next_week(self):
        assert resolve_day("tuesday", TZ, NOW).date() == date(2025, 6, 17)

    def test_this_prefix(self):
        assert resolve_day("this friday", TZ, NOW).date() == date(2025, 6, 13)

    def test_case_insensitive(self):
        assert resolve_day("Friday", TZ, NOW).date() == date(2025, 6, 13)

    def test_iso_date(self):
        resolved = resolve_day("2025-07-01", TZ, NOW)
        assert resolved.date() == date(2025, 7, 1)
        assert resolved.tzinfo is not None

    def test_relative_day_wins_over_iso_date(self):
        assert resolve_day("tomorrow 2025-07-01", TZ, NOW).date() == date(2025, 6, 11)

    def test_unresolvable_defaults_to_now(self):
        assert resolve_day("whenever suits", TZ, NOW) == NOW

    def test_empty_defaults_to_now(self):
        assert resolve_day(None, TZ, NOW) == NOW
        assert resolve_day("  ", TZ, NOW) == NOW

    def test_naive_now_is_taken_as_local(self):
        naive = datetime(2025, 6, 10, 9, 0)
        assert resolve_day("today", TZ, naive) == NOW


# ---------------------------------------------------------------------------
# Week ranges
# ---------------------------------------------------------------------------


class TestWeekRange:
    def test_monday_to_sunday(self):
        week = resolve_week_range(NOW, TZ)
        assert week.start.weekday() == 0
        assert week.end.weekday() == 6
        assert week.start.date() == date(2025, 6, 9)
        assert week.end.date() == date(2025, 6, 15)

    def test_length(self):
        week = resolve_week_range(NOW, TZ)
        assert week.end - week.start == timedelta(days=6, hours=23, minutes=59, seconds=59, milliseconds=999)

    def test_idempotent(self):
        assert resolve_week_range(NOW, TZ) == resolve_week_range(NOW, TZ)

    def test_boundaries_in_user_zone(self):
        week = resolve_week_range(NOW, TZ)
        assert week.start.time() == time.min
        # Amsterdam is UTC+2 in June
        assert week.start_utc == datetime(2025, 6, 8, 22, 0, tzinfo=ZoneInfo("UTC"))

    def test_next_week(self):
        week = resolve_next_week_range(TZ, NOW)
        assert week.start.date() == date(2025, 6, 16)
        assert week.end.date() == date(2025, 6, 22)

    def test_week_across_dst_change_keeps_local_midnight(self):
        # DST starts in Amsterdam on Sunday 2025-03-30
        base = datetime(2025, 3, 26, 12, 0, tzinfo=ZoneInfo(TZ))
        week = resolve_week_range(base, TZ)
        assert week.start.time() == time.min
        assert week.end.time() == time(23, 59, 59, 999000)
        assert week.start.utcoffset() == timedelta(hours=1)
        assert week.end.utcoffset() == timedelta(hours=2)


# ---------------------------------------------------------------------------
# Day ranges
# ---------------------------------------------------------------------------


class TestDayRange:
    def test_full_day(self):
        day = resolve_day_range(NOW, None, TZ)
        assert day.start == datetime(2025, 6, 10, 0, 0, tzinfo=ZoneInfo(TZ))
        assert day.end == datetime(2025, 6, 10, 23, 59, 59, 999000, tzinfo=ZoneInfo(TZ))

    @pytest.mark.parametrize("keyword, hours", [
        ("morning", (6, 12)),
        ("afternoon", (12, 18)),
        ("evening", (18, 23)),
    ])
    def test_time_of_day_bands(self, keyword, hours):
        band = resolve_day_range(NOW, keyword, TZ)
        assert (band.start.hour, band.end.hour) == hours
        assert band.start.date() == band.end.date() == date(2025, 6, 10)

    def test_unknown_band_is_full_day(self):
        day = resolve_day_range(date(2025, 6, 10), "night", TZ)
        assert day.start.time() == time.min

    def test_query_strings(self):
        day = resolve_day_range(date(2025, 6, 10), None, TZ)
        assert day.to_query() == ("2025-06-09T22:00:00.000Z", "2025-06-10T21:59:59.999Z")

    def test_start_after_end_rejected(self):
        with pytest.raises(ValueError):
            TimeRange(start=NOW, end=NOW - timedelta(minutes=1), timezone=TZ)


# ---------------------------------------------------------------------------
# Token extraction and clocks
# ---------------------------------------------------------------------------


class TestExtraction:
    def test_day_token(self):
        assert extract_day_token("marketing this friday") == "this friday"
        assert extract_day_token("marketing") is None

    def test_time_of_day(self):
        assert extract_time_of_day("meetings tomorrow afternoon") == "afternoon"
        assert extract_time_of_day("Mornings") == "morning"
        assert extract_time_of_day("standup") is None


class TestParseClock:
    @pytest.mark.parametrize("raw, expected", [
        ("14:30", time(14, 30)),
        ("9", time(9, 0)),
        ("3pm", time(15, 0)),
        ("3:30 p.m.", time(15, 30)),
        ("12am", time(0, 0)),
        ("12pm", time(12, 0)),
    ])
    def test_valid(self, raw, expected):
        assert parse_clock(raw) == expected

    @pytest.mark.parametrize("raw", ["25:00", "13pm", "noonish", ""])
    def test_invalid(self, raw):
        with pytest.raises(ValueError):
            parse_clock(raw)

    def test_combine_local_keeps_wall_clock(self):
        moment = combine_local(date(2025, 1, 15), time(14, 0), TZ)
        assert moment.hour == 14
        assert moment.utcoffset() == timedelta(hours=1)


class TestTimezones:
    def test_valid(self):
        assert is_valid_timezone("America/New_York") is True

    def test_invalid(self):
        assert is_valid_timezone("Mars/Olympus") is False
        assert is_valid_timezone("") is False
        assert is_valid_timezone(None) is False
