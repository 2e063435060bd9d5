"""Tests for the schedule timer runner."""

import asyncio

import pytest

from conftest import GROUP, GROUP_ADMIN
from kknbot.datatypes.schedule_datatypes import DAY, HOUR, MINUTE, ScheduleEntry, ScheduleStatus, ScheduleType
from kknbot.scheduler.schedule_scheduler import ScheduledJob, ScheduleScheduler


def _entry(clock, due_in=DAY, entry_type=ScheduleType.SCHEDULE, title="Rapat KKN", **extra):
    now = int(clock())
    return ScheduleEntry.create(entry_type, title, now + due_in, GROUP_ADMIN, GROUP, now, **extra)


async def _wait_for(predicate, attempts=200):
    for _ in range(attempts):
        if predicate():
            return True
        await asyncio.sleep(0.01)
    return predicate()


class TestRegistration:
    @pytest.mark.asyncio
    async def test_schedule_registers_reminders_and_due_time(self, scheduler, clock):
        entry = _entry(clock)
        assert await scheduler.add(entry) == 3
        assert scheduler.pending_jobs(entry.id) == 3
        assert scheduler.runner_task is not None

    @pytest.mark.asyncio
    async def test_elapsed_reminders_are_skipped(self, scheduler, clock):
        entry = _entry(clock, due_in=DAY)
        clock.advance(DAY - 30 * MINUTE)
        # the one hour reminder already passed, the 15 minute one is still ahead
        assert await scheduler.schedule(entry) == 2

    @pytest.mark.asyncio
    async def test_rescheduling_replaces_timers(self, scheduler, clock):
        entry = _entry(clock)
        await scheduler.schedule(entry)
        await scheduler.schedule(entry)
        assert scheduler.pending_jobs(entry.id) == 3

    @pytest.mark.asyncio
    async def test_inactive_entry_is_not_scheduled(self, scheduler, clock):
        entry = _entry(clock)
        entry.status = ScheduleStatus.COMPLETED
        assert await scheduler.schedule(entry) == 0

    @pytest.mark.asyncio
    async def test_cancel(self, scheduler, clock):
        entry = _entry(clock)
        await scheduler.schedule(entry)
        assert await scheduler.cancel(entry.id)
        assert scheduler.pending_jobs(entry.id) == 0
        assert not await scheduler.cancel(entry.id)


class TestExecute:
    @pytest.mark.asyncio
    async def test_due_notice_completes_entry(self, scheduler, database, transport, clock):
        entry = _entry(clock, entry_type=ScheduleType.MEETING, title="Meeting: Evaluasi", duration_minutes=90)
        await database.save_schedule(entry)

        assert await scheduler.execute(ScheduledJob(entry.id, GROUP))

        chat, text, mentions = transport.sent[-1]
        assert chat == GROUP
        assert "Meeting: Evaluasi" in text and "1 h 30 min" in text
        assert mentions == [f"{GROUP_ADMIN}@s.whatsapp.net"]
        assert (await database.get_schedule(entry.id)).status is ScheduleStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_main_fire_happens_once(self, scheduler, database, transport, clock):
        entry = _entry(clock)
        await database.save_schedule(entry)

        assert await scheduler.execute(ScheduledJob(entry.id, GROUP))
        assert not await scheduler.execute(ScheduledJob(entry.id, GROUP))
        assert len(transport.sent) == 1

    @pytest.mark.asyncio
    async def test_reminder_is_marked_sent(self, scheduler, database, transport, clock):
        entry = _entry(clock, entry_type=ScheduleType.DEADLINE, due_in=5 * DAY, title="Deadline: Laporan")
        await database.save_schedule(entry)

        assert await scheduler.execute(ScheduledJob(entry.id, GROUP, 0))
        assert not await scheduler.execute(ScheduledJob(entry.id, GROUP, 0))

        stored = await database.get_schedule(entry.id)
        assert [r.sent for r in stored.reminders] == [True, False, False]
        assert stored.is_active
        assert "Reminder" in transport.sent[0][1]

    @pytest.mark.asyncio
    async def test_cancelled_entry_does_not_fire(self, scheduler, database, transport, clock):
        entry = _entry(clock)
        await scheduler.add(entry)
        cancelled = await scheduler.complete(entry.id)

        assert cancelled.status is ScheduleStatus.COMPLETED
        assert scheduler.pending_jobs(entry.id) == 0
        assert not await scheduler.execute(ScheduledJob(entry.id, GROUP))
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_complete_unknown_entry(self, scheduler):
        assert await scheduler.complete("deadbeef") is None

    @pytest.mark.asyncio
    async def test_failed_send_still_marks_entry(self, scheduler, database, transport, clock):
        entry = _entry(clock, entry_type=ScheduleType.REMINDER, due_in=30 * MINUTE, title="Istirahat")
        await database.save_schedule(entry)
        transport.fail_sends = True

        assert not await scheduler.execute(ScheduledJob(entry.id, GROUP))
        assert (await database.get_schedule(entry.id)).status is ScheduleStatus.COMPLETED


class TestRunner:
    @pytest.mark.asyncio
    async def test_runner_fires_when_clock_reaches_due_time(self, scheduler, database, transport, clock):
        entry = _entry(clock, entry_type=ScheduleType.REMINDER, due_in=10 * MINUTE, title="Cek laporan")
        await scheduler.add(entry)

        clock.advance(10 * MINUTE)
        async with scheduler.condition:
            scheduler.condition.notify_all()

        assert await _wait_for(lambda: len(transport.sent) == 1)
        assert "Cek laporan" in transport.sent[0][1]
        assert await _wait_for(lambda: scheduler.pending_jobs(entry.id) == 0)

    @pytest.mark.asyncio
    async def test_shutdown_clears_timers(self, scheduler, clock):
        entry = _entry(clock)
        await scheduler.add(entry)
        await scheduler.shutdown()

        assert scheduler.heap == []
        assert scheduler.runner_task is None
        await scheduler.shutdown()


class TestRecovery:
    @pytest.mark.asyncio
    async def test_recover_re_registers_only_future_active_entries(
        self, database, registry, transport, app_config, clock
    ):
        future = _entry(clock, due_in=2 * HOUR)
        soon = _entry(clock, due_in=HOUR)
        done = _entry(clock, due_in=3 * HOUR)
        done.status = ScheduleStatus.COMPLETED
        for entry in (future, soon, done):
            await database.save_schedule(entry)

        # the process was down while ``soon`` fell due
        clock.advance(HOUR + MINUTE)
        restarted = ScheduleScheduler(database, registry, transport, app_config, clock=clock)
        try:
            assert await restarted.recover_on_startup() == 1
            assert restarted.pending_jobs(future.id) == 2
            assert restarted.pending_jobs(soon.id) == 0
            assert restarted.pending_jobs(done.id) == 0
        finally:
            await restarted.shutdown()
        assert transport.sent == []
