"""Admin commands that configure a group's anti-spam, word filter, link control, auto-delete and policy."""

from __future__ import annotations

from typing import Dict, List

from kknbot.command.command_types import Command, Permission
from kknbot.command.context import CommandContext
from kknbot.datatypes.group_state import GroupState
from kknbot.datatypes.whatsapp_datatypes import MEDIA_TYPES
from kknbot.errors import NotFoundError, ValidationError

ANTISPAM_USAGE = "antispam on|off [max_messages] [seconds] [warn|mute|kick]"
WORDFILTER_USAGE = "wordfilter on|off [action] | add word1,word2 | remove word1,word2 | list"
LINKCONTROL_USAGE = "linkcontrol on|off [action] | whitelist add|remove domain.com | whitelist list"
AUTODELETE_USAGE = "autodelete on [seconds] [sticker,image,video,audio,document] | off"
MODPOLICY_USAGE = "modpolicy [setting value]"


def _state(ctx: CommandContext) -> GroupState:
    state = ctx.registry.get_group(ctx.group_id)
    if state is None:
        raise NotFoundError(f"This group is not initialized yet. Run {ctx.config.prefix}init first.")
    return state


def _words(args: List[str]) -> List[str]:
    return [word.strip() for word in ",".join(args).split(",") if word.strip()]


def _status(enabled: bool) -> str:
    return "Active" if enabled else "Inactive"


async def anti_spam(ctx: CommandContext) -> None:
    state = _state(ctx)
    if not ctx.args:
        raise ValidationError("Tell me how to configure anti-spam.", ANTISPAM_USAGE)

    switch = ctx.args[0].lower()
    if switch == "off":
        await ctx.registry.configure_anti_spam(ctx.group_id, enabled=False)
        await ctx.reply("✅ *Anti-spam disabled*")
        return
    if switch != "on":
        raise ValidationError("The first argument must be on or off.", ANTISPAM_USAGE)

    fields: Dict[str, str] = {"enabled": "on"}
    for name, value in zip(("max_messages", "window_seconds", "action"), ctx.args[1:4]):
        fields[name] = value
    await ctx.registry.configure_anti_spam(ctx.group_id, **fields)

    config = state.anti_spam
    await ctx.reply(
        "✅ *Anti-spam configured*\n\n"
        f"• Status: {_status(config.enabled)}\n"
        f"• Max messages: {config.max_messages}\n"
        f"• Window: {config.window_seconds} seconds\n"
        f"• Action: {config.action}"
    )


async def word_filter(ctx: CommandContext) -> None:
    state = _state(ctx)
    if not ctx.args:
        raise ValidationError("Tell me how to configure the word filter.", WORDFILTER_USAGE)

    sub = ctx.args[0].lower()
    rest = ctx.args[1:]
    registry = ctx.registry

    if sub == "off":
        await registry.configure_word_filter(ctx.group_id, enabled=False)
        await ctx.reply("✅ *Word filter disabled*")
    elif sub == "on":
        fields = {"enabled": "on"}
        if rest:
            fields["action"] = rest[0]
        await registry.configure_word_filter(ctx.group_id, **fields)
        await ctx.reply(
            "✅ *Word filter enabled*\n\n"
            f"• Action: {state.word_filter.action}\n"
            f"• Blacklisted words: {len(state.word_filter.blacklist)}"
        )
    elif sub == "add":
        words = _words(rest)
        if not words:
            raise ValidationError("Give at least one word to add.", WORDFILTER_USAGE)
        added = await registry.add_blacklist_words(ctx.group_id, words)
        if not added:
            await ctx.reply("ℹ️ Those words are already blacklisted.")
            return
        await ctx.reply(f"✅ Added to the blacklist: {', '.join(sorted(added))}")
    elif sub == "remove":
        words = _words(rest)
        if not words:
            raise ValidationError("Give at least one word to remove.", WORDFILTER_USAGE)
        removed = await registry.remove_blacklist_words(ctx.group_id, words)
        if not removed:
            raise NotFoundError("None of those words are blacklisted.")
        await ctx.reply(f"✅ Removed from the blacklist: {', '.join(sorted(removed))}")
    elif sub == "list":
        words = sorted(state.word_filter.blacklist)
        body = "\n".join(f"• {word}" for word in words) if words else "No blacklisted words yet."
        await ctx.reply(
            f"📝 *Blacklisted words* ({_status(state.word_filter.enabled)}, action: {state.word_filter.action})\n\n{body}"
        )
    else:
        raise ValidationError(f"Unknown option '{sub}'.", WORDFILTER_USAGE)


async def link_control(ctx: CommandContext) -> None:
    state = _state(ctx)
    if not ctx.args:
        raise ValidationError("Tell me how to configure link control.", LINKCONTROL_USAGE)

    sub = ctx.args[0].lower()
    rest = [arg.lower() for arg in ctx.args[1:]]
    registry = ctx.registry

    if sub == "off":
        await registry.configure_link_control(ctx.group_id, enabled=False)
        await ctx.reply("✅ *Link control disabled*")
    elif sub == "on":
        fields = {"enabled": "on"}
        if rest:
            fields["action"] = rest[0]
        await registry.configure_link_control(ctx.group_id, **fields)
        await ctx.reply(
            "✅ *Link control enabled*\n\n"
            f"• Action: {state.link_control.action}\n"
            f"• Whitelisted domains: {len(state.link_control.whitelist)}"
        )
    elif sub == "whitelist":
        operation = rest[0] if rest else "list"
        if operation == "list":
            domains = sorted(state.link_control.whitelist)
            body = "\n".join(f"• {domain}" for domain in domains) if domains else "No whitelisted domains yet."
            await ctx.reply(f"🔗 *Whitelisted domains*\n\n{body}")
            return
        if operation not in ("add", "remove") or len(rest) < 2:
            raise ValidationError("Give add or remove followed by a domain.", LINKCONTROL_USAGE)
        domain = rest[1]
        if operation == "add":
            if not await registry.add_whitelist_domain(ctx.group_id, domain):
                await ctx.reply(f"ℹ️ {domain} is already whitelisted.")
                return
            await ctx.reply(f"✅ {domain} added to the whitelist.")
        else:
            if not await registry.remove_whitelist_domain(ctx.group_id, domain):
                raise NotFoundError(f"{domain} is not whitelisted.")
            await ctx.reply(f"✅ {domain} removed from the whitelist.")
    else:
        raise ValidationError(f"Unknown option '{sub}'.", LINKCONTROL_USAGE)


async def auto_delete(ctx: CommandContext) -> None:
    state = _state(ctx)
    if not ctx.args:
        raise ValidationError("Tell me how to configure auto-delete.", AUTODELETE_USAGE)

    switch = ctx.args[0].lower()
    if switch == "off":
        await ctx.registry.configure_auto_delete(ctx.group_id, enabled=False)
        await ctx.reply("✅ *Auto-delete disabled*")
        return
    if switch != "on":
        raise ValidationError("The first argument must be on or off.", AUTODELETE_USAGE)

    fields: Dict[str, str] = {"enabled": "on"}
    rest = ctx.args[1:]
    if rest and rest[0].isdigit():
        fields["delay_seconds"] = rest.pop(0)
    if rest:
        fields["types"] = ",".join(rest)
    elif not state.auto_delete.types:
        fields["types"] = ",".join(MEDIA_TYPES)
    await ctx.registry.configure_auto_delete(ctx.group_id, **fields)

    config = state.auto_delete
    await ctx.reply(
        "✅ *Auto-delete configured*\n\n"
        f"• Status: {_status(config.enabled)}\n"
        f"• Delay: {config.delay_seconds} seconds\n"
        f"• Types: {', '.join(sorted(config.types))}"
    )


async def moderation_policy(ctx: CommandContext) -> None:
    state = _state(ctx)
    if ctx.args:
        if len(ctx.args) != 2:
            raise ValidationError("Give exactly one setting and its value.", MODPOLICY_USAGE)
        name, value = ctx.args[0].lower(), ctx.args[1]
        await ctx.registry.set_policy(ctx.group_id, **{name: value})

    policy = state.policy
    await ctx.reply(
        "⚙️ *Moderation policy*\n\n"
        f"• warning_threshold: {policy.warning_threshold}\n"
        f"• warning_ban_minutes: {policy.warning_ban_minutes}\n"
        f"• spam_mute_minutes: {policy.spam_mute_minutes}\n"
        f"• filter_mute_minutes: {policy.filter_mute_minutes}\n"
        f"• spam_kick_ban_minutes: {policy.spam_kick_ban_minutes}"
    )


COMMANDS: List[Command] = [
    Command("antispam", anti_spam, "Configure anti-spam", usage=ANTISPAM_USAGE,
            group_only=True, permission=Permission.ADMIN),
    Command("wordfilter", word_filter, "Configure the word filter", usage=WORDFILTER_USAGE,
            group_only=True, permission=Permission.ADMIN),
    Command("linkcontrol", link_control, "Configure link control", usage=LINKCONTROL_USAGE,
            group_only=True, permission=Permission.ADMIN),
    Command("autodelete", auto_delete, "Delete media from members after a delay", usage=AUTODELETE_USAGE,
            group_only=True, permission=Permission.ADMIN),
    Command("modpolicy", moderation_policy, "Show or change escalation and durations", usage=MODPOLICY_USAGE,
            group_only=True, permission=Permission.ADMIN),
]
