"""
Wall-clock scheduler for schedule entries and their pre-fire reminders.

Only due times are persisted; timers live in an in-memory min-heap driven by
a single runner task. On startup :meth:`ScheduleScheduler.recover_on_startup`
re-registers every active entry whose due time is still ahead. Entries that
fell due while the process was down are never fired retroactively.
"""

import asyncio
import heapq
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from kknbot.configuration.app_configuration import AppConfig
from kknbot.database.database import Database
from kknbot.datatypes.schedule_datatypes import ScheduleEntry, ScheduleStatus, ScheduleType
from kknbot.errors import PersistenceError
from kknbot.registry.group_registry import GroupRegistry
from kknbot.scheduler.time_parsing import format_duration, time_until
from kknbot.transport.base import Transport, bounded_send
from kknbot.util.clock import Clock, format_local, system_clock
from kknbot.util.identity import to_jid
from kknbot.util.logger import get_logger

logger = get_logger("schedule_scheduler")

# Upper bound on a single sleep so wall-clock adjustments are picked up
MAX_SLEEP_SECONDS = 60.0


@dataclass(frozen=True, slots=True)
class ScheduledJob:
    """One timer: a pre-fire reminder (``reminder_index`` set) or the main fire."""
    entry_id: str
    group: str
    reminder_index: Optional[int] = None

    @property
    def is_main(self) -> bool:
        return self.reminder_index is None


class ScheduleScheduler:
    """
    Central scheduler for schedule notifications.

    Attributes:
        heap (list): Min-heap of (fire_at, job_id, ScheduledJob) tuples.
        pending (Dict): Maps entry id to the ids of its queued jobs.
        cancelled_ids (set): Job ids to skip when they reach the top of the heap.
        runner_task (asyncio.Task | None): Background task processing the heap.
        condition (asyncio.Condition): Wakes the runner when the heap changes.
    """

    def __init__(
        self,
        database: Database,
        registry: GroupRegistry,
        transport: Transport,
        config: AppConfig,
        *,
        clock: Clock = system_clock,
    ) -> None:
        self.database = database
        self.registry = registry
        self.transport = transport
        self.config = config
        self.clock = clock
        self.heap: List[Tuple[float, int, ScheduledJob]] = []
        self.pending: Dict[str, Set[int]] = {}
        self.cancelled_ids: Set[int] = set()
        self.counter: int = 0
        self.runner_task: asyncio.Task | None = None
        self.condition = asyncio.Condition()

    def ensure_runner(self) -> None:
        """Create the background runner task if it is not already active."""
        if self.runner_task is None or self.runner_task.done():
            loop = asyncio.get_running_loop()
            self.runner_task = loop.create_task(self.run(), name="kknbot-schedule-scheduler")

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def schedule(self, entry: ScheduleEntry) -> int:
        """Register timers for the entry's future reminders and its due time.

        Reminders already sent or already elapsed are skipped silently; an
        entry that was registered before has its old timers replaced.

        Returns:
            int: Number of timers registered.
        """
        if not entry.is_active:
            return 0

        now = self.clock()
        jobs: List[Tuple[float, ScheduledJob]] = [
            (reminder.fire_at, ScheduledJob(entry.id, entry.group, index))
            for index, reminder in enumerate(entry.reminders)
            if not reminder.sent and reminder.fire_at > now
        ]
        if entry.due_at > now:
            jobs.append((entry.due_at, ScheduledJob(entry.id, entry.group)))

        async with self.condition:
            self.ensure_runner()
            self._cancel_locked(entry.id)
            if not jobs:
                return 0
            job_ids = self.pending.setdefault(entry.id, set())
            for fire_at, job in jobs:
                self.counter += 1
                heapq.heappush(self.heap, (float(fire_at), self.counter, job))
                job_ids.add(self.counter)
            self.condition.notify_all()

        logger.debug("[SCHEDULER] Registered %d timer(s) for %s (%s)", len(jobs), entry.id, entry.type)
        return len(jobs)

    async def cancel(self, entry_id: str) -> bool:
        """Deregister all pending timers of an entry; False if none were pending."""
        async with self.condition:
            cancelled = self._cancel_locked(entry_id)
            if cancelled:
                self.condition.notify_all()
        return cancelled

    def _cancel_locked(self, entry_id: str) -> bool:
        job_ids = self.pending.pop(entry_id, None)
        if not job_ids:
            return False
        self.cancelled_ids.update(job_ids)
        return True

    def pending_jobs(self, entry_id: str) -> int:
        return len(self.pending.get(entry_id, ()))

    async def recover_on_startup(self) -> int:
        """Re-register timers for every active entry that is not yet due.

        Returns:
            int: Number of entries recovered.
        """
        entries = await self.database.list_pending_schedules(int(self.clock()))
        for entry in entries:
            await self.schedule(entry)
        logger.info("[SCHEDULER] Recovered %d active schedule(s)", len(entries))
        return len(entries)

    # ------------------------------------------------------------------
    # Entry lifecycle helpers used by the commands
    # ------------------------------------------------------------------

    async def add(self, entry: ScheduleEntry) -> int:
        """Persist a new entry, then register its timers."""
        await self.database.save_schedule(entry)
        return await self.schedule(entry)

    async def complete(self, entry_id: str) -> Optional[ScheduleEntry]:
        """Cancel an entry: mark it completed and drop its timers.

        Returns:
            ScheduleEntry | None: The entry as stored, None if it does not exist.
        """
        entry = await self.database.get_schedule(entry_id)
        if entry is None:
            return None
        async with self.registry.lock_for(entry.group):
            entry = await self.database.get_schedule(entry_id)
            if entry is None:
                return None
            if entry.is_active:
                entry.status = ScheduleStatus.COMPLETED
                await self.database.save_schedule(entry)
        await self.cancel(entry_id)
        logger.info("[SCHEDULER] Schedule %s cancelled", entry_id)
        return entry

    # ------------------------------------------------------------------
    # Runner
    # ------------------------------------------------------------------

    async def shutdown(self) -> None:
        """Stop the runner and forget every pending timer. Safe to call twice."""
        async with self.condition:
            if self.runner_task:
                self.runner_task.cancel()
            self.heap.clear()
            self.pending.clear()
            self.cancelled_ids.clear()
            self.condition.notify_all()

        if self.runner_task:
            try:
                await self.runner_task
            except asyncio.CancelledError:
                pass
            finally:
                self.runner_task = None

    async def run(self) -> None:
        """Pop timers as they come due and execute them, until shut down."""
        while True:
            async with self.condition:
                while self.heap and self.heap[0][1] in self.cancelled_ids:
                    _, job_id, _ = heapq.heappop(self.heap)
                    self.cancelled_ids.discard(job_id)

                if not self.heap:
                    await self.condition.wait()
                    continue

                fire_at, _, _ = self.heap[0]
                delay = fire_at - self.clock()
                if delay > 0:
                    try:
                        await asyncio.wait_for(self.condition.wait(), timeout=min(delay, MAX_SLEEP_SECONDS))
                    except asyncio.TimeoutError:
                        pass
                    continue

                _, job_id, job = heapq.heappop(self.heap)
                job_ids = self.pending.get(job.entry_id)
                if job_ids is not None:
                    job_ids.discard(job_id)
                    if not job_ids:
                        del self.pending[job.entry_id]

            try:
                await self.execute(job)
            except asyncio.CancelledError:
                raise
            except PersistenceError as exc:
                logger.error("[SCHEDULER] Could not persist fired timer for %s: %s", job.entry_id, exc)
            except Exception:
                logger.exception("[SCHEDULER] Timer for %s failed", job.entry_id)

    async def execute(self, job: ScheduledJob) -> bool:
        """Fire one timer: notify the group, then mark and persist the entry.

        The entry is re-read under the group lock and skipped unless it is
        still active (and, for reminders, not yet sent), so a timer racing a
        cancellation produces at most one visible effect.

        Returns:
            bool: True if a notification was sent.
        """
        async with self.registry.lock_for(job.group):
            entry = await self.database.get_schedule(job.entry_id)
            if entry is None or not entry.is_active:
                logger.debug("[SCHEDULER] Skipping timer for inactive schedule %s", job.entry_id)
                return False

            if job.is_main:
                text = self.format_due_notice(entry)
            else:
                if job.reminder_index >= len(entry.reminders) or entry.reminders[job.reminder_index].sent:
                    return False
                text = self.format_reminder_notice(entry)

            sent = await bounded_send(
                self.transport,
                entry.group,
                text,
                mentions=[to_jid(entry.creator)],
                timeout=self.config.send_timeout_seconds,
            )

            if job.is_main:
                entry.status = ScheduleStatus.COMPLETED
            else:
                entry.reminders[job.reminder_index].sent = True
            await self.database.save_schedule(entry)

        logger.info(
            "[SCHEDULER] Fired %s for %s (delivered=%s)",
            "due notice" if job.is_main else f"reminder #{job.reminder_index + 1}",
            entry.id,
            sent,
        )
        return sent

    # ------------------------------------------------------------------
    # Notification text
    # ------------------------------------------------------------------

    def format_reminder_notice(self, entry: ScheduleEntry) -> str:
        tz = self.config.timezone
        lines = [
            "🔔 *Schedule Reminder*",
            "",
            f"📝 *{entry.title}*",
            f"📅 {format_local(entry.due_at, tz)}",
        ]
        if entry.location:
            lines.append(f"📍 Location: {entry.location}")
        lines.append(f"⏳ Starts in: {time_until(entry.due_at, int(self.clock()))}")
        lines += ["", f"👤 Created by: @{entry.creator}"]
        return "\n".join(lines)

    def format_due_notice(self, entry: ScheduleEntry) -> str:
        if entry.type is ScheduleType.REMINDER:
            return "\n".join(["⏰ *Reminder*", "", f"💬 {entry.title}", "", f"👤 Created by: @{entry.creator}"])

        lines = [f"⏰ *Time for {entry.type}!*", "", f"📝 *{entry.title}*"]
        if entry.location:
            lines.append(f"📍 Location: {entry.location}")
        if entry.duration_minutes:
            lines.append(f"⏱️ Duration: {format_duration(entry.duration_minutes)}")
        lines += ["", f"👤 Created by: @{entry.creator}"]
        return "\n".join(lines)
