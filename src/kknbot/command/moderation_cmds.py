"""Group moderation commands: init, bans, mutes, warnings, moderators and logs."""

from __future__ import annotations

import asyncio
from typing import List, Optional

from kknbot.command.command_types import Command, Permission
from kknbot.command.context import CommandContext
from kknbot.datatypes.action_datatypes import ActionType
from kknbot.errors import NotFoundError, PermissionDeniedError, TransportError, ValidationError
from kknbot.transport.base import GroupMetadata, bounded_remove
from kknbot.util.clock import format_local
from kknbot.util.identity import to_jid
from kknbot.util.logger import get_logger

logger = get_logger("moderation_cmds")

NO_REASON = "No reason given"
MAX_LOG_LINES = 50


def _pop_minutes(args: List[str], *, leading: bool) -> Optional[int]:
    """Take a positive minute count from the start or end of ``args``, if present."""
    if not args:
        return None
    index = 0 if leading else -1
    if not args[index].isdigit():
        return None
    minutes = int(args.pop(index))
    if minutes <= 0:
        raise ValidationError("Duration must be a positive number of minutes.")
    return minutes


def _require_group(ctx: CommandContext):
    state = ctx.registry.get_group(ctx.group_id)
    if state is None:
        raise NotFoundError(f"This group is not initialized yet. An admin can run {ctx.config.prefix}init.")
    return state


def _stamp(ctx: CommandContext) -> str:
    return format_local(ctx.now(), ctx.config.timezone)


async def _fetch_metadata(ctx: CommandContext) -> GroupMetadata:
    try:
        return await asyncio.wait_for(
            ctx.services.transport.get_group_metadata(ctx.group_id),
            timeout=ctx.config.send_timeout_seconds,
        )
    except asyncio.TimeoutError as exc:
        raise TransportError("group metadata request timed out") from exc


async def init_group(ctx: CommandContext) -> None:
    registry = ctx.registry
    try:
        metadata = await _fetch_metadata(ctx)
    except Exception as exc:
        logger.warning("[COMMANDS] Could not read metadata of %s: %s", ctx.group_id, exc)
        raise NotFoundError("Could not read the group information. Please try again later.") from exc

    admins = [registry.normalize(admin) for admin in metadata.admin_ids]
    if metadata.owner:
        admins.append(registry.normalize(metadata.owner))
    if ctx.sender not in admins and not registry.is_global_admin(ctx.sender):
        raise PermissionDeniedError("Only WhatsApp group admins can initialize the bot.")

    created = await registry.initialize_group(ctx.group_id, metadata.subject, ctx.sender, admins)
    if not created:
        await registry.sync_group(ctx.group_id, metadata.subject, [*admins, ctx.sender])
    state = _require_group(ctx)
    await ctx.reply(
        f"✅ *Group {'initialized' if created else 'synchronized'}*\n\n"
        f"📛 *Name:* {state.name}\n"
        f"👮 *Admins:* {len(state.admins)}\n\n"
        f"Type *{ctx.config.prefix}help* to see the available commands."
    )


async def ban(ctx: CommandContext) -> None:
    usage = "ban @user [reason] [minutes]"
    _require_group(ctx)
    target = ctx.target_user(usage)
    if ctx.registry.is_admin(ctx.group_id, target):
        raise PermissionDeniedError("Admins cannot be banned.")
    minutes = _pop_minutes(ctx.args, leading=False)
    reason = " ".join(ctx.args) or NO_REASON

    outcome = await ctx.services.engine.enforce(
        ctx.group_id, target, ActionType.BAN, reason, moderator=ctx.sender, duration_minutes=minutes
    )
    lines = [
        "🚫 *User banned*",
        "",
        f"👤 *User:* @{target}",
        f"📝 *Reason:* {reason}",
        f"⏱️ *Duration:* {f'{minutes} minutes' if minutes else 'permanent'}",
        f"👮 *By:* @{ctx.sender}",
        f"⏰ *Time:* {_stamp(ctx)}",
    ]
    if not outcome.removed:
        lines += ["", "⚠️ Could not remove the user from the group. Is the bot an admin?"]
    await ctx.reply("\n".join(lines), mentions=[to_jid(target), to_jid(ctx.sender)])


async def unban(ctx: CommandContext) -> None:
    _require_group(ctx)
    target = ctx.target_user("unban @user")
    if not await ctx.registry.unban_user(ctx.group_id, target, ctx.sender):
        raise NotFoundError("That user is not banned.")
    await ctx.reply(
        f"✅ *User unbanned*\n\n👤 *User:* @{target}\n👮 *By:* @{ctx.sender}\n⏰ *Time:* {_stamp(ctx)}",
        mentions=[to_jid(target), to_jid(ctx.sender)],
    )


async def kick(ctx: CommandContext) -> None:
    _require_group(ctx)
    target = ctx.target_user("kick @user [reason]")
    if ctx.registry.is_admin(ctx.group_id, target):
        raise PermissionDeniedError("Admins cannot be kicked.")
    reason = " ".join(ctx.args) or NO_REASON

    removed = await bounded_remove(
        ctx.services.transport, ctx.group_id, [to_jid(target)], timeout=ctx.config.send_timeout_seconds
    )
    if not removed:
        await ctx.reply("❌ Could not remove the user. Is the bot an admin?")
        return
    await ctx.registry.log_action(ctx.group_id, ActionType.KICK, target, ctx.sender, reason)
    await ctx.reply(
        f"👢 *User kicked*\n\n👤 *User:* @{target}\n📝 *Reason:* {reason}\n👮 *By:* @{ctx.sender}",
        mentions=[to_jid(target), to_jid(ctx.sender)],
    )


async def mute(ctx: CommandContext) -> None:
    usage = "mute @user [minutes] [reason]"
    _require_group(ctx)
    target = ctx.target_user(usage)
    if ctx.registry.is_moderator(ctx.group_id, target):
        raise PermissionDeniedError("Admins and moderators cannot be muted.")
    minutes = _pop_minutes(ctx.args, leading=True)
    reason = " ".join(ctx.args) or NO_REASON

    await ctx.services.engine.enforce(
        ctx.group_id, target, ActionType.MUTE, reason, moderator=ctx.sender, duration_minutes=minutes
    )
    await ctx.reply(
        "🔇 *User muted*\n\n"
        f"👤 *User:* @{target}\n"
        f"📝 *Reason:* {reason}\n"
        f"⏱️ *Duration:* {f'{minutes} minutes' if minutes else 'until unmuted'}\n"
        f"👮 *By:* @{ctx.sender}",
        mentions=[to_jid(target), to_jid(ctx.sender)],
    )


async def unmute(ctx: CommandContext) -> None:
    _require_group(ctx)
    target = ctx.target_user("unmute @user")
    if not await ctx.registry.unmute_user(ctx.group_id, target, ctx.sender):
        raise NotFoundError("That user is not muted.")
    await ctx.reply(
        f"🔊 *User unmuted*\n\n👤 *User:* @{target}\n👮 *By:* @{ctx.sender}\n⏰ *Time:* {_stamp(ctx)}",
        mentions=[to_jid(target), to_jid(ctx.sender)],
    )


async def warn(ctx: CommandContext) -> None:
    state = _require_group(ctx)
    target = ctx.target_user("warn @user [reason]")
    if ctx.registry.is_moderator(ctx.group_id, target):
        raise PermissionDeniedError("Admins and moderators cannot be warned.")
    reason = " ".join(ctx.args) or NO_REASON

    outcome = await ctx.services.engine.enforce(ctx.group_id, target, ActionType.WARN, reason, moderator=ctx.sender)
    threshold = state.policy.warning_threshold
    lines = [
        "⚠️ *Warning issued*",
        "",
        f"👤 *User:* @{target}",
        f"📝 *Reason:* {reason}",
        f"👮 *By:* @{ctx.sender}",
        f"🔢 *Warnings:* {outcome.warning_count}/{threshold}",
    ]
    if outcome.escalated:
        lines += [
            "",
            f"🚨 Warning limit reached: banned for {state.policy.warning_ban_minutes} minutes.",
        ]
    await ctx.reply("\n".join(lines), mentions=[to_jid(target), to_jid(ctx.sender)])


async def reset_warnings(ctx: CommandContext) -> None:
    _require_group(ctx)
    target = ctx.target_user("resetwarn @user")
    if not await ctx.registry.reset_warnings(ctx.group_id, target, ctx.sender):
        raise NotFoundError("That user has no warnings.")
    await ctx.reply(f"✅ Warnings of @{target} have been reset.", mentions=[to_jid(target)])


async def add_moderator(ctx: CommandContext) -> None:
    _require_group(ctx)
    target = ctx.target_user("addmod @user")
    if not await ctx.registry.add_moderator(ctx.group_id, target, ctx.sender):
        await ctx.reply(f"ℹ️ @{target} is already an admin or moderator.", mentions=[to_jid(target)])
        return
    await ctx.reply(f"✅ @{target} is now a moderator.", mentions=[to_jid(target)])


async def remove_moderator(ctx: CommandContext) -> None:
    _require_group(ctx)
    target = ctx.target_user("removemod @user")
    if not await ctx.registry.remove_moderator(ctx.group_id, target, ctx.sender):
        raise NotFoundError("That user is not a moderator.")
    await ctx.reply(f"✅ @{target} is no longer a moderator.", mentions=[to_jid(target)])


async def show_logs(ctx: CommandContext) -> None:
    _require_group(ctx)
    limit = 10
    if ctx.args:
        if not ctx.args[0].isdigit() or int(ctx.args[0]) <= 0:
            raise ValidationError("The number of entries must be a positive number.")
        limit = min(int(ctx.args[0]), MAX_LOG_LINES)

    entries = ctx.registry.get_logs(ctx.group_id, limit)
    if not entries:
        await ctx.reply("📋 *Moderation Log*\n\nNo moderation activity yet.")
        return

    tz = ctx.config.timezone
    lines = [f"📋 *Moderation Log (last {len(entries)})*", ""]
    mentions = []
    for index, entry in enumerate(entries, start=1):
        lines.append(f"{index}. *{entry.action.upper()}*")
        lines.append(f"   👤 Target: @{entry.target}")
        lines.append(f"   👮 Moderator: @{entry.moderator}")
        if entry.reason:
            lines.append(f"   📝 Reason: {entry.reason}")
        if entry.duration:
            lines.append(f"   ⏱️ Duration: {entry.duration} minutes")
        lines.append(f"   ⏰ Time: {format_local(entry.timestamp, tz, '%d/%m %H:%M')}")
        lines.append("")
        mentions += [to_jid(entry.target), to_jid(entry.moderator)]
    await ctx.reply("\n".join(lines).rstrip(), mentions=mentions)


def _on_off(flag: bool) -> str:
    return "✅" if flag else "❌"


async def group_info(ctx: CommandContext) -> None:
    state = _require_group(ctx)
    now = ctx.now()
    banned = sum(1 for record in state.banned_users.values() if not record.is_expired(now))
    muted = sum(1 for record in state.muted_users.values() if not record.is_expired(now))
    policy = state.policy
    await ctx.reply(
        "ℹ️ *Group Information*\n\n"
        f"📛 *Name:* {state.name}\n\n"
        "👮 *Moderation:*\n"
        f"• Admins: {len(state.admins)}\n"
        f"• Moderators: {len(state.moderators)}\n"
        f"• Banned users: {banned}\n"
        f"• Muted users: {muted}\n\n"
        "⚙️ *Settings:*\n"
        f"• Anti-spam: {_on_off(state.anti_spam.enabled)} "
        f"({state.anti_spam.max_messages} msgs / {state.anti_spam.window_seconds}s, {state.anti_spam.action})\n"
        f"• Word filter: {_on_off(state.word_filter.enabled)} "
        f"({len(state.word_filter.blacklist)} words, {state.word_filter.action})\n"
        f"• Link control: {_on_off(state.link_control.enabled)} "
        f"({len(state.link_control.whitelist)} domains, {state.link_control.action})\n"
        f"• Auto-delete: {_on_off(state.auto_delete.enabled)} "
        f"({', '.join(sorted(state.auto_delete.types)) or 'no types'} after {state.auto_delete.delay_seconds}s)\n"
        f"• Warning limit: {policy.warning_threshold} (ban {policy.warning_ban_minutes} min)\n\n"
        f"📅 *Created:* {format_local(state.created_at, ctx.config.timezone)}"
    )


async def reset_group(ctx: CommandContext) -> None:
    if not ctx.args or ctx.args[0].lower() != "confirm":
        raise ValidationError(
            "This erases every setting, ban, warning and log of this group.", "resetgroup confirm"
        )
    if not await ctx.registry.reset_group(ctx.group_id):
        raise NotFoundError("This group has no stored state.")
    ctx.services.engine.rate_tracker.forget_group(ctx.group_id)
    await ctx.reply("♻️ Group state erased. The group starts again from defaults on its next message.")


COMMANDS: List[Command] = [
    Command("init", init_group, "Initialize the bot for this group", group_only=True),
    Command("ban", ban, "Ban a user, optionally for N minutes", usage="ban @user [reason] [minutes]",
            group_only=True, permission=Permission.MODERATOR),
    Command("unban", unban, "Lift a ban", usage="unban @user", group_only=True, permission=Permission.MODERATOR),
    Command("kick", kick, "Remove a user from the group", usage="kick @user [reason]",
            group_only=True, permission=Permission.MODERATOR),
    Command("mute", mute, "Delete a user's messages, optionally for N minutes", usage="mute @user [minutes] [reason]",
            group_only=True, permission=Permission.MODERATOR),
    Command("unmute", unmute, "Lift a mute", usage="unmute @user", group_only=True, permission=Permission.MODERATOR),
    Command("warn", warn, "Warn a user", usage="warn @user [reason]", group_only=True,
            permission=Permission.MODERATOR),
    Command("resetwarn", reset_warnings, "Clear a user's warnings", usage="resetwarn @user",
            group_only=True, permission=Permission.MODERATOR),
    Command("addmod", add_moderator, "Make a user moderator", usage="addmod @user",
            group_only=True, permission=Permission.ADMIN),
    Command("removemod", remove_moderator, "Revoke moderator rights", usage="removemod @user",
            group_only=True, permission=Permission.ADMIN),
    Command("logs", show_logs, "Show recent moderation actions", usage="logs [count]",
            group_only=True, permission=Permission.MODERATOR),
    Command("groupinfo", group_info, "Show group settings and statistics", group_only=True),
    Command("resetgroup", reset_group, "Erase all bot state of this group", usage="resetgroup confirm",
            group_only=True, permission=Permission.ADMIN),
]
