"""
Per-group configuration and moderation state.

A :class:`GroupState` is created from the default template the first time the
bot sees a group and is persisted as one JSON document per group. All user
keys (admins, moderators, banned/muted/warned users) are normalised phone
numbers; all timestamps are unix seconds.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Mapping, Optional, Set

from kknbot.datatypes.action_datatypes import (
    ANTI_SPAM_ACTIONS,
    FILTER_ACTIONS,
    ActionType,
    parse_action,
)
from kknbot.datatypes.whatsapp_datatypes import MEDIA_TYPES


@dataclass(slots=True)
class AntiSpamConfig:
    enabled: bool = False
    max_messages: int = 5
    window_seconds: int = 60
    action: ActionType = ActionType.WARN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "max_messages": self.max_messages,
            "window_seconds": self.window_seconds,
            "action": self.action.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AntiSpamConfig":
        return cls(
            enabled=bool(data.get("enabled", False)),
            max_messages=int(data.get("max_messages", 5)),
            window_seconds=int(data.get("window_seconds", 60)),
            action=parse_action(data.get("action", "warn"), ANTI_SPAM_ACTIONS),
        )


@dataclass(slots=True)
class WordFilterConfig:
    enabled: bool = False
    blacklist: Set[str] = field(default_factory=set)
    action: ActionType = ActionType.DELETE

    def to_dict(self) -> Dict[str, Any]:
        return {"enabled": self.enabled, "blacklist": sorted(self.blacklist), "action": self.action.value}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WordFilterConfig":
        return cls(
            enabled=bool(data.get("enabled", False)),
            blacklist={str(word).lower() for word in data.get("blacklist", [])},
            action=parse_action(data.get("action", "delete"), FILTER_ACTIONS),
        )


@dataclass(slots=True)
class LinkControlConfig:
    enabled: bool = False
    whitelist: Set[str] = field(default_factory=set)
    action: ActionType = ActionType.DELETE

    def to_dict(self) -> Dict[str, Any]:
        return {"enabled": self.enabled, "whitelist": sorted(self.whitelist), "action": self.action.value}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LinkControlConfig":
        return cls(
            enabled=bool(data.get("enabled", False)),
            whitelist={str(domain).lower() for domain in data.get("whitelist", [])},
            action=parse_action(data.get("action", "delete"), FILTER_ACTIONS),
        )


@dataclass(slots=True)
class AutoDeleteConfig:
    """Delayed removal of media messages from regular members."""

    enabled: bool = False
    types: Set[str] = field(default_factory=set)
    delay_seconds: int = 300

    def covers(self, message_type: str) -> bool:
        return self.enabled and message_type in self.types

    def to_dict(self) -> Dict[str, Any]:
        return {"enabled": self.enabled, "types": sorted(self.types), "delay_seconds": self.delay_seconds}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AutoDeleteConfig":
        return cls(
            enabled=bool(data.get("enabled", False)),
            types={str(kind).lower() for kind in data.get("types", []) if str(kind).lower() in MEDIA_TYPES},
            delay_seconds=int(data.get("delay_seconds", 300)),
        )


@dataclass(slots=True)
class ModerationPolicy:
    """Durations and thresholds applied by automatic actions."""

    warning_threshold: int = 3
    warning_ban_minutes: int = 60
    spam_mute_minutes: int = 10
    filter_mute_minutes: int = 5
    spam_kick_ban_minutes: int = 30

    def to_dict(self) -> Dict[str, int]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ModerationPolicy":
        known = {f.name for f in fields(cls)}
        return cls(**{key: int(value) for key, value in data.items() if key in known})


@dataclass(slots=True)
class BanRecord:
    reason: str
    banned_at: int
    banned_by: str
    expires_at: Optional[int] = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reason": self.reason,
            "banned_at": self.banned_at,
            "banned_by": self.banned_by,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BanRecord":
        return cls(
            reason=str(data.get("reason", "")),
            banned_at=int(data.get("banned_at", 0)),
            banned_by=str(data.get("banned_by", "")),
            expires_at=_optional_int(data.get("expires_at")),
        )


@dataclass(slots=True)
class MuteRecord:
    reason: str
    muted_at: int
    muted_by: str
    expires_at: Optional[int] = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reason": self.reason,
            "muted_at": self.muted_at,
            "muted_by": self.muted_by,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MuteRecord":
        return cls(
            reason=str(data.get("reason", "")),
            muted_at=int(data.get("muted_at", 0)),
            muted_by=str(data.get("muted_by", "")),
            expires_at=_optional_int(data.get("expires_at")),
        )


@dataclass(slots=True)
class WarningEntry:
    reason: str
    warned_at: int
    warned_by: str


@dataclass(slots=True)
class WarningRecord:
    count: int = 0
    history: List[WarningEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "history": [
                {"reason": h.reason, "warned_at": h.warned_at, "warned_by": h.warned_by}
                for h in self.history
            ],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WarningRecord":
        return cls(
            count=int(data.get("count", 0)),
            history=[
                WarningEntry(str(h.get("reason", "")), int(h.get("warned_at", 0)), str(h.get("warned_by", "")))
                for h in data.get("history", [])
            ],
        )


@dataclass(slots=True)
class ModerationLogEntry:
    """One line of the append-only moderation log."""

    action: str
    target: str
    moderator: str
    timestamp: int
    reason: Optional[str] = None
    duration: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "target": self.target,
            "moderator": self.moderator,
            "timestamp": self.timestamp,
            "reason": self.reason,
            "duration": self.duration,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ModerationLogEntry":
        return cls(
            action=str(data.get("action", "")),
            target=str(data.get("target", "")),
            moderator=str(data.get("moderator", "")),
            timestamp=int(data.get("timestamp", 0)),
            reason=data.get("reason"),
            duration=_optional_int(data.get("duration")),
        )


@dataclass(slots=True)
class GroupState:
    """Persistent per-group configuration and moderation state."""

    group_id: str
    name: str = ""
    created_at: int = 0
    created_by: str = ""
    admins: Set[str] = field(default_factory=set)
    moderators: Set[str] = field(default_factory=set)
    anti_spam: AntiSpamConfig = field(default_factory=AntiSpamConfig)
    word_filter: WordFilterConfig = field(default_factory=WordFilterConfig)
    link_control: LinkControlConfig = field(default_factory=LinkControlConfig)
    auto_delete: AutoDeleteConfig = field(default_factory=AutoDeleteConfig)
    policy: ModerationPolicy = field(default_factory=ModerationPolicy)
    banned_users: Dict[str, BanRecord] = field(default_factory=dict)
    muted_users: Dict[str, MuteRecord] = field(default_factory=dict)
    warnings: Dict[str, WarningRecord] = field(default_factory=dict)
    moderation_log: List[ModerationLogEntry] = field(default_factory=list)

    @classmethod
    def from_template(
        cls,
        group_id: str,
        name: str,
        created_by: str,
        created_at: int,
        policy: ModerationPolicy | None = None,
    ) -> "GroupState":
        """Build the default state of a new group; the creator becomes its first admin."""
        return cls(
            group_id=group_id,
            name=name,
            created_at=created_at,
            created_by=created_by,
            admins={created_by} if created_by else set(),
            policy=policy or ModerationPolicy(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "group_id": self.group_id,
            "name": self.name,
            "created_at": self.created_at,
            "created_by": self.created_by,
            "admins": sorted(self.admins),
            "moderators": sorted(self.moderators),
            "anti_spam": self.anti_spam.to_dict(),
            "word_filter": self.word_filter.to_dict(),
            "link_control": self.link_control.to_dict(),
            "auto_delete": self.auto_delete.to_dict(),
            "policy": self.policy.to_dict(),
            "banned_users": {user: record.to_dict() for user, record in self.banned_users.items()},
            "muted_users": {user: record.to_dict() for user, record in self.muted_users.items()},
            "warnings": {user: record.to_dict() for user, record in self.warnings.items()},
            "moderation_log": [entry.to_dict() for entry in self.moderation_log],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GroupState":
        return cls(
            group_id=str(data["group_id"]),
            name=str(data.get("name", "")),
            created_at=int(data.get("created_at", 0)),
            created_by=str(data.get("created_by", "")),
            admins={str(user) for user in data.get("admins", [])},
            moderators={str(user) for user in data.get("moderators", [])},
            anti_spam=AntiSpamConfig.from_dict(data.get("anti_spam", {})),
            word_filter=WordFilterConfig.from_dict(data.get("word_filter", {})),
            link_control=LinkControlConfig.from_dict(data.get("link_control", {})),
            auto_delete=AutoDeleteConfig.from_dict(data.get("auto_delete", {})),
            policy=ModerationPolicy.from_dict(data.get("policy", {})),
            banned_users={u: BanRecord.from_dict(r) for u, r in data.get("banned_users", {}).items()},
            muted_users={u: MuteRecord.from_dict(r) for u, r in data.get("muted_users", {}).items()},
            warnings={u: WarningRecord.from_dict(r) for u, r in data.get("warnings", {}).items()},
            moderation_log=[ModerationLogEntry.from_dict(e) for e in data.get("moderation_log", [])],
        )


def _optional_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)
