"""General commands: help menu, ping and configuration reload."""

from __future__ import annotations

import time
from typing import List

from kknbot.command import moderation_cmds, moderation_config_cmds, schedule_cmds
from kknbot.command.command_types import Command, Permission
from kknbot.command.context import CommandContext
from kknbot.util.logger import get_logger

logger = get_logger("general_cmds")

PERMISSION_BADGES = {
    Permission.MODERATOR: " (mod)",
    Permission.ADMIN: " (admin)",
    Permission.GLOBAL_ADMIN: " (owner)",
}


def _section(title: str, commands: List[Command], prefix: str) -> List[str]:
    lines = [f"*{title}*"]
    for command in commands:
        aliases = f" / {prefix}{' / '.join(command.aliases)}" if command.aliases else ""
        badge = PERMISSION_BADGES.get(command.permission, "")
        lines.append(f"├ {prefix}{command.name}{aliases} - {command.description}{badge}")
    lines.append("")
    return lines


def build_help_text(prefix: str) -> str:
    lines = ["🤖 *KKN Bot Menu*", ""]
    lines += _section("General", COMMANDS, prefix)
    lines += _section("Moderation", moderation_cmds.COMMANDS, prefix)
    lines += _section("Moderation settings", moderation_config_cmds.COMMANDS, prefix)
    lines += _section("Scheduling", schedule_cmds.COMMANDS, prefix)
    lines.append(f"Type *{prefix}<command>* without arguments to see its usage.")
    return "\n".join(lines)


async def show_help(ctx: CommandContext) -> None:
    await ctx.reply(build_help_text(ctx.config.prefix))


async def ping(ctx: CommandContext) -> None:
    started = time.perf_counter()
    await ctx.reply("🏓 Pong!")
    logger.debug("[GENERAL COMMANDS] Ping round trip %.1f ms", (time.perf_counter() - started) * 1000)


async def reload_config(ctx: CommandContext) -> None:
    ctx.config.reload()
    logger.info("[GENERAL COMMANDS] Configuration reloaded by %s", ctx.sender)
    await ctx.reply(f"✅ Configuration reloaded (prefix: {ctx.config.prefix}, timezone: {ctx.config.timezone}).")


COMMANDS: List[Command] = [
    Command("help", show_help, "Show this menu", aliases=["menu"]),
    Command("ping", ping, "Check that the bot is alive"),
    Command("reloadconfig", reload_config, "Reload the configuration file", permission=Permission.GLOBAL_ADMIN),
]
