"""Definition of a chat command and the permission levels that gate it."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum

from kknbot.command.context import CommandContext

CommandHandler = Callable[[CommandContext], Awaitable[None]]


class Permission(Enum):
    ANYONE = "anyone"
    MODERATOR = "moderator"
    ADMIN = "admin"
    GLOBAL_ADMIN = "global_admin"

    def __str__(self) -> str:
        return self.value


@dataclass
class Command:
    """Definition of a chat command."""
    name: str
    handler: CommandHandler
    description: str
    aliases: list[str] = field(default_factory=list)
    usage: str = ""
    group_only: bool = False
    permission: Permission = Permission.ANYONE
