"""Per-invocation context handed to every command handler."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Sequence

from kknbot.configuration.app_configuration import AppConfig
from kknbot.database.database import Database
from kknbot.errors import ValidationError
from kknbot.moderation.moderation_engine import ModerationEngine
from kknbot.registry.group_registry import GroupRegistry
from kknbot.scheduler.schedule_scheduler import ScheduleScheduler
from kknbot.transport.base import InboundMessage, Transport, bounded_send
from kknbot.util.clock import to_local

PHONE_ARGUMENT = re.compile(r"^@?\+?\d{6,}$")


@dataclass
class BotServices:
    """The long-lived components, wired once in ``main`` and shared by reference."""
    config: AppConfig
    database: Database
    registry: GroupRegistry
    engine: ModerationEngine
    scheduler: ScheduleScheduler
    transport: Transport


@dataclass
class CommandContext:
    """
    Everything a handler needs for one command.

    Attributes:
        message: The inbound message that carried the command.
        command: Canonical command name (aliases already folded).
        args: Whitespace-separated arguments after the command token.
        sender: Normalised phone number of the caller.
        services: Shared bot components.
    """
    message: InboundMessage
    command: str
    args: List[str]
    sender: str
    services: BotServices
    replies: List[str] = field(default_factory=list)

    @property
    def chat_id(self) -> str:
        return self.message.chat_id

    @property
    def group_id(self) -> str:
        """The group the command was sent in; only valid for group-only commands."""
        return self.message.chat_id

    @property
    def is_group(self) -> bool:
        return self.message.is_group

    @property
    def registry(self) -> GroupRegistry:
        return self.services.registry

    @property
    def config(self) -> AppConfig:
        return self.services.config

    def now(self) -> int:
        return self.registry.now()

    def now_local(self) -> datetime:
        return to_local(self.registry.clock(), self.config.timezone)

    async def reply(self, text: str, mentions: Sequence[str] = ()) -> bool:
        self.replies.append(text)
        return await bounded_send(
            self.services.transport,
            self.chat_id,
            text,
            mentions=mentions,
            timeout=self.config.send_timeout_seconds,
        )

    def target_user(self, usage: str) -> str:
        """Resolve the user a moderation command targets.

        The first mention wins; otherwise the first argument must look like a
        phone number. The consumed argument is removed from ``args``.

        Raises:
            ValidationError: When no target can be found.
        """
        if self.message.mentions:
            target = self.registry.normalize(self.message.mentions[0])
            if self.args and self.args[0].startswith("@"):
                self.args.pop(0)
            return target
        if self.args and PHONE_ARGUMENT.match(self.args[0]):
            return self.registry.normalize(self.args.pop(0))
        raise ValidationError("Please mention the user or give their number.", usage)
