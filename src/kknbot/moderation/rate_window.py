"""Sliding windows of recent message timestamps used by anti-spam."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Tuple


@dataclass
class RateWindow:
    """Ordered timestamps of one user's recent messages in one group."""

    timestamps: Deque[float] = field(default_factory=deque)

    def record(self, now: float, window_seconds: float) -> int:
        """Append ``now``, drop entries older than the window, return the count left."""
        self.timestamps.append(now)
        cutoff = now - window_seconds
        while self.timestamps and self.timestamps[0] <= cutoff:
            self.timestamps.popleft()
        return len(self.timestamps)

    def clear(self) -> None:
        self.timestamps.clear()

    def __len__(self) -> int:
        return len(self.timestamps)


class RateTracker:
    """In-memory RateWindow per (group, user); nothing here survives a restart."""

    def __init__(self) -> None:
        self._windows: Dict[Tuple[str, str], RateWindow] = {}

    def window(self, group_id: str, user_id: str) -> RateWindow:
        key = (group_id, user_id)
        window = self._windows.get(key)
        if window is None:
            window = self._windows[key] = RateWindow()
        return window

    def reset(self, group_id: str, user_id: str) -> None:
        self._windows.pop((group_id, user_id), None)

    def forget_group(self, group_id: str) -> None:
        for key in [key for key in self._windows if key[0] == group_id]:
            del self._windows[key]
