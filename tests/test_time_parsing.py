"""Tests for schedule date, reminder time and duration parsing."""

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from kknbot.scheduler.time_parsing import (
    format_duration,
    parse_duration,
    parse_reminder_time,
    parse_schedule_date,
    split_date_argument,
    time_until,
)

TZ = ZoneInfo("Asia/Jakarta")
NOW = datetime(2024, 1, 15, 10, 0, tzinfo=TZ)


def _local(ts):
    return datetime.fromtimestamp(ts, TZ)


class TestScheduleDate:
    @pytest.mark.parametrize(
        "token, expected",
        [
            ("2024-01-20", datetime(2024, 1, 20, 9, 30, tzinfo=TZ)),
            ("20/01/2024", datetime(2024, 1, 20, 9, 30, tzinfo=TZ)),
            ("20-01-2024", datetime(2024, 1, 20, 9, 30, tzinfo=TZ)),
            ("tomorrow", datetime(2024, 1, 16, 9, 30, tzinfo=TZ)),
            ("besok", datetime(2024, 1, 16, 9, 30, tzinfo=TZ)),
            ("next week", datetime(2024, 1, 22, 9, 30, tzinfo=TZ)),
            ("Minggu Depan", datetime(2024, 1, 22, 9, 30, tzinfo=TZ)),
        ],
    )
    def test_supported_formats(self, token, expected):
        assert _local(parse_schedule_date(token, "09:30", NOW)) == expected

    def test_today_later(self):
        assert _local(parse_schedule_date("hari ini", "14.45", NOW)) == datetime(2024, 1, 15, 14, 45, tzinfo=TZ)

    def test_past_is_rejected(self):
        assert parse_schedule_date("today", "09:59", NOW) is None
        assert parse_schedule_date("today", "10:00", NOW) is None
        assert parse_schedule_date("2023-12-31", "12:00", NOW) is None

    @pytest.mark.parametrize(
        "date_token, time_token",
        [("31/02/2024", "10:00"), ("someday", "10:00"), ("tomorrow", "25:00"), ("tomorrow", "10:60"), ("", "10:00")],
    )
    def test_invalid_input(self, date_token, time_token):
        assert parse_schedule_date(date_token, time_token, NOW) is None


class TestSplitDateArgument:
    def test_two_word_keyword(self):
        assert split_date_argument(["next", "week", "17:00", "Presentasi"]) == ("next week", ["17:00", "Presentasi"])
        assert split_date_argument(["minggu", "depan", "08:00"]) == ("minggu depan", ["08:00"])

    def test_single_token(self):
        assert split_date_argument(["2024-01-20", "23:59", "Laporan"]) == ("2024-01-20", ["23:59", "Laporan"])

    def test_empty(self):
        assert split_date_argument([]) == ("", [])


class TestReminderTime:
    @pytest.mark.parametrize("token, seconds", [("30m", 1800), ("2h", 7200), ("1d", 86400), ("5M", 300)])
    def test_relative_offsets(self, token, seconds):
        assert parse_reminder_time(token, NOW) == int(NOW.timestamp()) + seconds

    def test_clock_time_later_today(self):
        assert _local(parse_reminder_time("15:30", NOW)) == datetime(2024, 1, 15, 15, 30, tzinfo=TZ)

    def test_passed_clock_time_rolls_to_tomorrow(self):
        assert _local(parse_reminder_time("08:00", NOW)) == datetime(2024, 1, 16, 8, 0, tzinfo=TZ)

    @pytest.mark.parametrize("token", ["", "0m", "soon", "10x", "24:00"])
    def test_invalid(self, token):
        assert parse_reminder_time(token, NOW) is None


class TestDurations:
    @pytest.mark.parametrize("token, minutes", [("90m", 90), ("2h", 120), ("45", 45), ("abc", 60), ("0", 60)])
    def test_parse_duration(self, token, minutes):
        assert parse_duration(token) == minutes

    @pytest.mark.parametrize("minutes, text", [(45, "45 min"), (60, "1 h"), (150, "2 h 30 min")])
    def test_format_duration(self, minutes, text):
        assert format_duration(minutes) == text

    def test_time_until(self):
        assert time_until(100, 200) == "already passed"
        assert time_until(100 + 2 * 86400 + 3 * 3600, 100) == "2 d 3 h"
        assert time_until(100 + 3600 + 5 * 60, 100) == "1 h 5 min"
        assert time_until(100 + 10 * 60, 100) == "10 min"
