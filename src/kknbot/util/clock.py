"""Wall-clock helpers. All persisted timestamps are integer unix seconds (UTC)."""

from __future__ import annotations

import time
from datetime import datetime
from typing import Callable
from zoneinfo import ZoneInfo

Clock = Callable[[], float]


def system_clock() -> float:
    return time.time()


def now_ts(clock: Clock = system_clock) -> int:
    """Return the current time from ``clock`` as whole unix seconds."""
    return int(clock())


def to_local(timestamp: float, timezone: str) -> datetime:
    """Convert unix seconds to an aware datetime in ``timezone``."""
    return datetime.fromtimestamp(timestamp, ZoneInfo(timezone))


def format_local(timestamp: float, timezone: str, fmt: str = "%d/%m/%Y %H:%M") -> str:
    return to_local(timestamp, timezone).strftime(fmt)
