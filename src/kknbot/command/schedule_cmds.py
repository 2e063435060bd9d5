"""Scheduling commands: schedules, reminders, meetings, deadlines, events and the agenda."""

from __future__ import annotations

from datetime import datetime, time, timedelta
from typing import List, Sequence, Tuple

from kknbot.command.command_types import Command
from kknbot.command.context import CommandContext
from kknbot.datatypes.schedule_datatypes import ScheduleEntry, ScheduleType
from kknbot.errors import NotFoundError, PermissionDeniedError, ValidationError
from kknbot.scheduler.time_parsing import (
    format_duration,
    parse_duration,
    parse_reminder_time,
    parse_schedule_date,
    split_date_argument,
    time_until,
)
from kknbot.util.clock import format_local
from kknbot.util.logger import get_logger

logger = get_logger("schedule_cmds")

SCHEDULE_USAGE = "schedule [date] [HH:MM] [description]"
REMINDER_USAGE = "reminder [30m|2h|1d|HH:MM] [message]"
DELETE_USAGE = "deleteschedule [ID]"
MEETING_USAGE = "meeting [date] [HH:MM] [duration] [topic]"
DEADLINE_USAGE = "deadline [date] [HH:MM] [task]"
EVENT_USAGE = "event [date] [HH:MM] [location] [description]"

DATE_HELP = "Dates: YYYY-MM-DD, DD/MM/YYYY, today, tomorrow, next week. Times: HH:MM (24h)."

TYPE_ICONS = {
    ScheduleType.SCHEDULE: "📅",
    ScheduleType.REMINDER: "⏰",
    ScheduleType.MEETING: "🤝",
    ScheduleType.DEADLINE: "⏳",
    ScheduleType.EVENT: "🎉",
}


def _parse_due(ctx: CommandContext, usage: str, min_rest: int) -> Tuple[int, List[str]]:
    """Read ``[date] [time]`` off the arguments; at least ``min_rest`` arguments must follow."""
    date_token, rest = split_date_argument(ctx.args)
    if len(rest) < 1 + min_rest:
        raise ValidationError("Missing arguments.", usage)
    due_at = parse_schedule_date(date_token, rest[0], ctx.now_local())
    if due_at is None:
        raise ValidationError(f"Invalid or past date/time. {DATE_HELP}", usage)
    return due_at, rest[1:]


async def _create(ctx: CommandContext, entry_type: ScheduleType, title: str, due_at: int, **extra) -> ScheduleEntry:
    entry = ScheduleEntry.create(entry_type, title, due_at, ctx.sender, ctx.chat_id, ctx.now(), **extra)
    await ctx.services.scheduler.add(entry)
    logger.info("[SCHEDULE COMMANDS] %s created %s %s due %s", ctx.sender, entry_type, entry.id, due_at)
    return entry


def _confirmation(ctx: CommandContext, heading: str, entry: ScheduleEntry) -> str:
    tz = ctx.config.timezone
    lines = [heading, "", f"🆔 *ID:* {entry.id}", f"📝 *Title:* {entry.title}",
             f"📅 *When:* {format_local(entry.due_at, tz)}"]
    if entry.location:
        lines.append(f"📍 *Location:* {entry.location}")
    if entry.duration_minutes:
        lines.append(f"⏱️ *Duration:* {format_duration(entry.duration_minutes)}")
    lines.append(f"⏳ *Starts in:* {time_until(entry.due_at, ctx.now())}")
    if entry.reminders:
        stamps = ", ".join(format_local(reminder.fire_at, tz, "%d/%m %H:%M") for reminder in entry.reminders)
        lines.append(f"🔔 *Reminders:* {stamps}")
    return "\n".join(lines)


async def create_schedule(ctx: CommandContext) -> None:
    due_at, rest = _parse_due(ctx, SCHEDULE_USAGE, 1)
    entry = await _create(ctx, ScheduleType.SCHEDULE, " ".join(rest), due_at)
    await ctx.reply(_confirmation(ctx, "✅ *Schedule created*", entry))


async def create_reminder(ctx: CommandContext) -> None:
    if len(ctx.args) < 2:
        raise ValidationError("Give a time and a message.", REMINDER_USAGE)
    due_at = parse_reminder_time(ctx.args[0], ctx.now_local())
    if due_at is None:
        raise ValidationError("Invalid time. Use Xm, Xh, Xd or HH:MM.", REMINDER_USAGE)
    entry = await _create(ctx, ScheduleType.REMINDER, " ".join(ctx.args[1:]), due_at)
    await ctx.reply(_confirmation(ctx, "✅ *Reminder set*", entry))


async def create_meeting(ctx: CommandContext) -> None:
    due_at, rest = _parse_due(ctx, MEETING_USAGE, 2)
    duration = parse_duration(rest[0])
    entry = await _create(
        ctx, ScheduleType.MEETING, f"Meeting: {' '.join(rest[1:])}", due_at, duration_minutes=duration
    )
    await ctx.reply(_confirmation(ctx, "✅ *Meeting scheduled*", entry))


async def create_deadline(ctx: CommandContext) -> None:
    due_at, rest = _parse_due(ctx, DEADLINE_USAGE, 1)
    entry = await _create(ctx, ScheduleType.DEADLINE, f"Deadline: {' '.join(rest)}", due_at)
    await ctx.reply(_confirmation(ctx, "✅ *Deadline tracked*", entry))


async def create_event(ctx: CommandContext) -> None:
    due_at, rest = _parse_due(ctx, EVENT_USAGE, 2)
    location = rest[0]
    description = " ".join(rest[1:])
    entry = await _create(
        ctx, ScheduleType.EVENT, f"Event: {description}", due_at, location=location, description=description
    )
    await ctx.reply(_confirmation(ctx, "✅ *Event created*", entry))


def _entry_lines(entries: Sequence[ScheduleEntry], tz: str, now: int) -> List[str]:
    lines: List[str] = []
    for entry in entries:
        lines.append(f"{TYPE_ICONS[entry.type]} *{entry.title}*")
        lines.append(f"   🆔 {entry.id} | 📅 {format_local(entry.due_at, tz)} | ⏳ {time_until(entry.due_at, now)}")
    return lines


async def list_schedules(ctx: CommandContext) -> None:
    entries = await ctx.services.database.list_group_schedules(ctx.chat_id, active_only=True, since=ctx.now())
    if not entries:
        await ctx.reply(f"📅 *Schedules*\n\nNothing scheduled. Create one with *{ctx.config.prefix}schedule*.")
        return
    lines = [f"📅 *Active schedules ({len(entries)})*", ""]
    lines += _entry_lines(entries, ctx.config.timezone, ctx.now())
    await ctx.reply("\n".join(lines))


async def delete_schedule(ctx: CommandContext) -> None:
    if not ctx.args:
        raise ValidationError("Give the ID of the schedule.", DELETE_USAGE)
    entry_id = ctx.args[0].lower()
    entry = await ctx.services.database.get_schedule(entry_id)
    if entry is None or entry.group != ctx.chat_id or not entry.is_active:
        raise NotFoundError(f"No active schedule with ID {entry_id}.")
    if entry.creator != ctx.sender and not ctx.registry.is_admin(ctx.chat_id, ctx.sender):
        raise PermissionDeniedError("Only the creator or an admin can delete this schedule.")

    await ctx.services.scheduler.complete(entry_id)
    await ctx.reply(f"🗑️ Schedule *{entry.title}* ({entry_id}) deleted.")


async def agenda(ctx: CommandContext) -> None:
    local_now = ctx.now_local()
    start_of_today = datetime.combine(local_now.date(), time(0, 0), tzinfo=local_now.tzinfo)
    start_of_tomorrow = start_of_today + timedelta(days=1)
    end_of_tomorrow = start_of_today + timedelta(days=2)
    entries = await ctx.services.database.list_group_schedules(
        ctx.chat_id,
        active_only=True,
        since=int(start_of_today.timestamp()),
        until=int(end_of_tomorrow.timestamp()),
    )

    boundary = int(start_of_tomorrow.timestamp())
    today = [entry for entry in entries if entry.due_at < boundary]
    tomorrow = [entry for entry in entries if entry.due_at >= boundary]
    tz = ctx.config.timezone
    now = ctx.now()

    lines = [f"🗓️ *Agenda* ({local_now.strftime('%d/%m/%Y')})", "", "*Today:*"]
    lines += _entry_lines(today, tz, now) or ["   Nothing scheduled."]
    lines += ["", "*Tomorrow:*"]
    lines += _entry_lines(tomorrow, tz, now) or ["   Nothing scheduled."]
    await ctx.reply("\n".join(lines))


COMMANDS: List[Command] = [
    Command("schedule", create_schedule, "Create a schedule", aliases=["jadwal"], usage=SCHEDULE_USAGE),
    Command("reminder", create_reminder, "Set a one-off reminder", aliases=["remind"], usage=REMINDER_USAGE),
    Command("listschedule", list_schedules, "List active schedules", aliases=["listjadwal"]),
    Command("deleteschedule", delete_schedule, "Delete a schedule", aliases=["hapusjadwal"], usage=DELETE_USAGE),
    Command("agenda", agenda, "Show today's and tomorrow's agenda"),
    Command("meeting", create_meeting, "Schedule a meeting", aliases=["rapat"], usage=MEETING_USAGE),
    Command("deadline", create_deadline, "Track a deadline", usage=DEADLINE_USAGE),
    Command("event", create_event, "Organize an event", aliases=["acara"], usage=EVENT_USAGE),
]
