"""Schedule entries and their pre-fire reminders."""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple


class ScheduleType(Enum):
    SCHEDULE = "schedule"
    REMINDER = "reminder"
    MEETING = "meeting"
    DEADLINE = "deadline"
    EVENT = "event"

    def __str__(self) -> str:
        return self.value


class ScheduleStatus(Enum):
    ACTIVE = "active"
    COMPLETED = "completed"

    def __str__(self) -> str:
        return self.value


MINUTE = 60
HOUR = 60 * MINUTE
DAY = 24 * HOUR

# Seconds before the due time at which a pre-fire reminder is sent
PRE_FIRE_OFFSETS: Dict[ScheduleType, Tuple[int, ...]] = {
    ScheduleType.SCHEDULE: (HOUR, 15 * MINUTE),
    ScheduleType.REMINDER: (),
    ScheduleType.MEETING: (30 * MINUTE,),
    ScheduleType.DEADLINE: (3 * DAY, DAY, HOUR),
    ScheduleType.EVENT: (DAY, 2 * HOUR),
}


def new_entry_id() -> str:
    """Return a fresh 8-character hex identifier."""
    return secrets.token_hex(4)


@dataclass(slots=True)
class PreReminder:
    fire_at: int
    sent: bool = False


@dataclass(slots=True)
class ScheduleEntry:
    """A future notification in a group, with zero or more earlier reminders.

    Invariant: every ``reminders[i].fire_at`` is strictly before ``due_at``.
    """

    id: str
    type: ScheduleType
    title: str
    due_at: int
    creator: str
    group: str
    created_at: int
    status: ScheduleStatus = ScheduleStatus.ACTIVE
    reminders: List[PreReminder] = field(default_factory=list)
    description: str = ""
    location: str = ""
    duration_minutes: Optional[int] = None

    @classmethod
    def create(
        cls,
        entry_type: ScheduleType,
        title: str,
        due_at: int,
        creator: str,
        group: str,
        now: int,
        **extra: Any,
    ) -> "ScheduleEntry":
        """Build an active entry with the reminders its type calls for.

        Offsets that would already have elapsed at ``now`` are left out.
        """
        reminders = [
            PreReminder(fire_at=due_at - offset)
            for offset in PRE_FIRE_OFFSETS[entry_type]
            if due_at - offset > now
        ]
        return cls(
            id=new_entry_id(),
            type=entry_type,
            title=title,
            due_at=due_at,
            creator=creator,
            group=group,
            created_at=now,
            reminders=reminders,
            **extra,
        )

    @property
    def is_active(self) -> bool:
        return self.status is ScheduleStatus.ACTIVE

    def extra_to_dict(self) -> Dict[str, Any]:
        return {
            "description": self.description,
            "location": self.location,
            "duration_minutes": self.duration_minutes,
        }

    def reminders_to_list(self) -> List[Dict[str, Any]]:
        return [{"fire_at": r.fire_at, "sent": r.sent} for r in self.reminders]

    @staticmethod
    def reminders_from_list(items: List[Mapping[str, Any]]) -> List[PreReminder]:
        return [PreReminder(fire_at=int(item["fire_at"]), sent=bool(item.get("sent", False))) for item in items]
