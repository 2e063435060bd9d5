"""
Pure parsing and formatting of dates, times and durations typed in commands.

Every parser takes the current moment explicitly (a timezone-aware datetime
in the bot's timezone) and returns unix seconds, or None when the input is
unparseable or lies in the past. Callers must reject None before scheduling.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Sequence, Tuple

RELATIVE_DAYS = {
    "today": 0,
    "hari ini": 0,
    "tomorrow": 1,
    "besok": 1,
    "next week": 7,
    "minggu depan": 7,
}

# Keywords that span two command arguments
TWO_WORD_DATES = {key for key in RELATIVE_DAYS if " " in key}

DMY_SLASH = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
YMD_DASH = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
DMY_DASH = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{4})$")
CLOCK_TIME = re.compile(r"^(\d{1,2})[:.](\d{2})$")
RELATIVE_OFFSET = re.compile(r"^(\d+)([mhd])$", re.IGNORECASE)
DURATION = re.compile(r"^(\d+)([mh]?)$", re.IGNORECASE)

UNIT_SECONDS = {"m": 60, "h": 3600, "d": 86400}
DEFAULT_DURATION_MINUTES = 60


def split_date_argument(args: Sequence[str]) -> Tuple[str, List[str]]:
    """Split the leading date token off command arguments.

    ``["next", "week", "17:00", ...]`` yields ``("next week", ["17:00", ...])``.
    """
    if len(args) >= 2 and f"{args[0]} {args[1]}".lower() in TWO_WORD_DATES:
        return f"{args[0]} {args[1]}", list(args[2:])
    if not args:
        return "", []
    return args[0], list(args[1:])


def parse_calendar_date(token: str, today: date) -> Optional[date]:
    raw = token.strip().lower()
    if raw in RELATIVE_DAYS:
        return today + timedelta(days=RELATIVE_DAYS[raw])

    try:
        if match := DMY_SLASH.match(raw):
            day, month, year = (int(group) for group in match.groups())
        elif match := YMD_DASH.match(raw):
            year, month, day = (int(group) for group in match.groups())
        elif match := DMY_DASH.match(raw):
            day, month, year = (int(group) for group in match.groups())
        else:
            return None
        return date(year, month, day)
    except ValueError:
        return None


def parse_clock_time(token: str) -> Optional[time]:
    """Parse ``HH:MM`` or ``HH.MM`` (24-hour clock)."""
    match = CLOCK_TIME.match(token.strip())
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        return None
    return time(hours, minutes)


def parse_schedule_date(date_token: str, time_token: str, now: datetime) -> Optional[int]:
    """Combine a date token and a clock time into unix seconds.

    Args:
        date_token: ``today``/``hari ini``, ``tomorrow``/``besok``,
            ``next week``/``minggu depan``, ``YYYY-MM-DD``, ``DD/MM/YYYY`` or ``DD-MM-YYYY``.
        time_token: ``HH:MM`` or ``HH.MM``.
        now: Current moment, timezone-aware; its timezone is the bot's.

    Returns:
        int | None: Unix seconds, or None for bad or past input.
    """
    if not date_token or not time_token:
        return None
    day = parse_calendar_date(date_token, now.date())
    clock = parse_clock_time(time_token)
    if day is None or clock is None:
        return None

    target = datetime.combine(day, clock, tzinfo=now.tzinfo)
    if target <= now:
        return None
    return int(target.timestamp())


def parse_reminder_time(token: str, now: datetime) -> Optional[int]:
    """Parse ``Xm``/``Xh``/``Xd`` offsets or a clock time for today.

    A clock time that has already passed today rolls over to tomorrow.
    """
    raw = token.strip()
    if not raw:
        return None

    if ":" in raw or CLOCK_TIME.match(raw):
        clock = parse_clock_time(raw)
        if clock is None:
            return None
        target = datetime.combine(now.date(), clock, tzinfo=now.tzinfo)
        if target <= now:
            target += timedelta(days=1)
        return int(target.timestamp())

    match = RELATIVE_OFFSET.match(raw)
    if not match:
        return None
    amount = int(match.group(1))
    if amount <= 0:
        return None
    return int(now.timestamp()) + amount * UNIT_SECONDS[match.group(2).lower()]


def parse_duration(token: str) -> int:
    """Meeting duration in minutes: ``90m``, ``2h`` or bare minutes; 60 when unparseable."""
    match = DURATION.match(token.strip())
    if not match or int(match.group(1)) <= 0:
        return DEFAULT_DURATION_MINUTES
    value = int(match.group(1))
    return value * 60 if match.group(2).lower() == "h" else value


def format_duration(minutes: int) -> str:
    if minutes < 60:
        return f"{minutes} min"
    hours, remainder = divmod(minutes, 60)
    return f"{hours} h" if remainder == 0 else f"{hours} h {remainder} min"


def time_until(target: int, now: int) -> str:
    """Human-readable distance from ``now`` to ``target`` (both unix seconds)."""
    diff = target - now
    if diff <= 0:
        return "already passed"
    days, rest = divmod(diff, 86400)
    hours, rest = divmod(rest, 3600)
    minutes = rest // 60
    if days > 0:
        return f"{days} d {hours} h"
    if hours > 0:
        return f"{hours} h {minutes} min"
    return f"{minutes} min"
