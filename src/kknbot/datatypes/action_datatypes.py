"""
Action types and result structures of the moderation pipeline.

This module defines the ActionType and ModerationRule enums plus the
CheckResult / ModerationVerdict pair returned by the moderation engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Tuple


class ActionType(Enum):
    """Enumeration of moderation actions, both rule-triggered and manual."""

    WARN = "warn"
    MUTE = "mute"
    UNMUTE = "unmute"
    KICK = "kick"
    BAN = "ban"
    UNBAN = "unban"
    DELETE = "delete"
    RESET_WARNINGS = "resetwarn"
    ADD_MODERATOR = "addmod"
    REMOVE_MODERATOR = "removemod"
    NULL = "null"

    def __str__(self) -> str:
        return self.value


# Actions each rule may be configured with
ANTI_SPAM_ACTIONS: Tuple[ActionType, ...] = (ActionType.WARN, ActionType.MUTE, ActionType.KICK)
FILTER_ACTIONS: Tuple[ActionType, ...] = (ActionType.WARN, ActionType.DELETE, ActionType.MUTE)


def parse_action(value: str, allowed: Tuple[ActionType, ...]) -> ActionType:
    """Return the ActionType named ``value`` if it is one of ``allowed``.

    Raises:
        ValueError: For unknown names or actions not allowed for the rule.
    """
    try:
        action = ActionType(str(value).strip().lower())
    except ValueError:
        raise ValueError(f"unknown action {value!r}") from None
    if action not in allowed:
        raise ValueError(f"action {action} not allowed here")
    return action


class ModerationRule(Enum):
    """Automatic rules evaluated for every group message, in this order."""

    ANTI_SPAM = "anti_spam"
    WORD_FILTER = "word_filter"
    LINK_CONTROL = "link_control"

    def __str__(self) -> str:
        return self.value


@dataclass(slots=True)
class CheckResult:
    """Outcome of one rule check.

    Attributes:
        rule: The rule that produced this result.
        delete: Whether the message should be deleted.
        action: Action the rule executed (NULL when nothing fired).
        matches: Offending words or links, empty for anti-spam.
        warning_count: New warning count when the action was a warning.
        escalated: True when the warning triggered the automatic ban.
    """
    rule: ModerationRule
    delete: bool = False
    action: ActionType = ActionType.NULL
    matches: List[str] = field(default_factory=list)
    warning_count: int = 0
    escalated: bool = False

    @property
    def triggered(self) -> bool:
        return self.action is not ActionType.NULL


@dataclass(slots=True)
class ModerationVerdict:
    """Aggregate of the per-rule results for one message (OR semantics).

    ``auto_delete_after`` holds the delay in seconds when the message was
    queued for delayed auto-deletion instead.
    """
    results: List[CheckResult] = field(default_factory=list)
    skipped: bool = False
    sender_muted: bool = False
    sender_banned: bool = False
    auto_delete_after: int | None = None

    @property
    def delete(self) -> bool:
        return self.sender_muted or any(result.delete for result in self.results)

    @property
    def rules(self) -> List[ModerationRule]:
        """Rules that fired, in evaluation order."""
        return [result.rule for result in self.results if result.triggered]

    @property
    def rule(self) -> ModerationRule | None:
        """First rule that requested deletion, if any."""
        for result in self.results:
            if result.delete:
                return result.rule
        return None
