"""
Command dispatcher: prefix parsing, alias lookup, gates and the error boundary.

Handlers raise :mod:`kknbot.errors` exceptions; the dispatcher turns them into
replies so nothing escapes into the message listener.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple

from kknbot.command import general_cmds, moderation_cmds, moderation_config_cmds, schedule_cmds
from kknbot.command.command_types import Command, Permission
from kknbot.command.context import BotServices, CommandContext
from kknbot.errors import NotFoundError, PermissionDeniedError, PersistenceError, ValidationError
from kknbot.transport.base import InboundMessage
from kknbot.util.logger import get_logger

logger = get_logger("command_dispatcher")

GROUP_ONLY_TEXT = "❌ This command can only be used in a group."
ACCESS_DENIED_TEXT = "❌ You do not have permission to use this command."
GENERIC_FAILURE_TEXT = "❌ Something went wrong while running the command. Please try again later."

PERMISSION_TEXT = {
    Permission.MODERATOR: "❌ Only admins and moderators can use this command.",
    Permission.ADMIN: "❌ Only group admins can use this command.",
    Permission.GLOBAL_ADMIN: "❌ Only bot administrators can use this command.",
}


def all_commands() -> List[Command]:
    """Every command the bot knows, in help order."""
    return [
        *general_cmds.COMMANDS,
        *moderation_cmds.COMMANDS,
        *moderation_config_cmds.COMMANDS,
        *schedule_cmds.COMMANDS,
    ]


def build_command_table(commands: Iterable[Command]) -> Dict[str, Command]:
    """Map every name and alias to its command; duplicate tokens are rejected."""
    table: Dict[str, Command] = {}
    for command in commands:
        for token in (command.name, *command.aliases):
            key = token.lower()
            if key in table:
                raise ValueError(f"Command token '{key}' is registered twice")
            table[key] = command
    return table


class CommandDispatcher:
    """Routes prefixed chat messages to their command handlers."""

    def __init__(self, services: BotServices, commands: Iterable[Command] | None = None) -> None:
        self.services = services
        self.commands = list(commands) if commands is not None else all_commands()
        self.table = build_command_table(self.commands)

    @property
    def prefix(self) -> str:
        return self.services.config.prefix

    def parse(self, text: str) -> Optional[Tuple[str, List[str]]]:
        """Split ``.cmd arg1 arg2`` into ``("cmd", ["arg1", "arg2"])``; None without the prefix."""
        stripped = (text or "").strip()
        if not stripped.startswith(self.prefix):
            return None
        parts = stripped[len(self.prefix):].split()
        if not parts:
            return None
        return parts[0].lower(), parts[1:]

    def lookup(self, token: str) -> Optional[Command]:
        return self.table.get(token.lower())

    def check_permission(self, command: Command, context: CommandContext) -> bool:
        registry = self.services.registry
        if command.permission is Permission.ANYONE:
            return True
        if command.permission is Permission.GLOBAL_ADMIN:
            return registry.is_global_admin(context.sender)
        if not context.is_group:
            return registry.is_global_admin(context.sender)
        if command.permission is Permission.ADMIN:
            return registry.is_admin(context.group_id, context.sender)
        return registry.is_moderator(context.group_id, context.sender)

    async def dispatch(self, message: InboundMessage) -> bool:
        """Run the command carried by ``message``.

        Returns:
            bool: False if the message is not a command at all.
        """
        parsed = self.parse(message.text)
        if parsed is None:
            return False
        token, args = parsed

        context = CommandContext(
            message=message,
            command=token,
            args=args,
            sender=self.services.registry.normalize(message.sender),
            services=self.services,
        )

        command = self.lookup(token)
        if command is None:
            await context.reply(
                f"❌ Command *{self.prefix}{token}* not found. Type *{self.prefix}help* to see all commands."
            )
            return True
        context.command = command.name

        if command.group_only and not context.is_group:
            await context.reply(GROUP_ONLY_TEXT)
            return True

        if not self.check_permission(command, context):
            logger.debug("[DISPATCHER] %s denied %s", context.sender, command.name)
            await context.reply(PERMISSION_TEXT.get(command.permission, ACCESS_DENIED_TEXT))
            return True

        try:
            await command.handler(context)
        except ValidationError as exc:
            logger.warning("[DISPATCHER] %s: %s", command.name, exc)
            text = f"❌ {exc}"
            usage = exc.usage or command.usage
            if usage:
                text += f"\n\nUsage: *{self.prefix}{usage}*"
            await context.reply(text)
        except PermissionDeniedError as exc:
            logger.warning("[DISPATCHER] %s refused for %s: %s", command.name, context.sender, exc)
            await context.reply(f"❌ {exc}" if str(exc) else ACCESS_DENIED_TEXT)
        except NotFoundError as exc:
            await context.reply(f"❌ {exc}")
        except PersistenceError as exc:
            logger.error("[DISPATCHER] Storage failure in %s: %s", command.name, exc)
            await context.reply(GENERIC_FAILURE_TEXT)
        except Exception:
            logger.exception("[DISPATCHER] Unhandled error in %s", command.name)
            await context.reply(GENERIC_FAILURE_TEXT)
        else:
            logger.debug("[DISPATCHER] %s ran %s in %s", context.sender, command.name, context.chat_id)
        return True
