"""
Persistent storage for schedule entries.

Due and reminder times are stored as INTEGER unix seconds so the recovery
scan is a plain range query.
"""

from __future__ import annotations

import json
from typing import List, Optional

import aiosqlite

from kknbot.datatypes.schedule_datatypes import ScheduleEntry, ScheduleStatus, ScheduleType

_COLUMNS = "id, group_id, type, title, due_at, creator, status, reminders, extra, created_at"


def _row_to_entry(row) -> ScheduleEntry:
    extra = json.loads(row[8] or "{}")
    return ScheduleEntry(
        id=row[0],
        group=row[1],
        type=ScheduleType(row[2]),
        title=row[3],
        due_at=int(row[4]),
        creator=row[5],
        status=ScheduleStatus(row[6]),
        reminders=ScheduleEntry.reminders_from_list(json.loads(row[7] or "[]")),
        created_at=int(row[9]),
        description=extra.get("description", ""),
        location=extra.get("location", ""),
        duration_minutes=extra.get("duration_minutes"),
    )


class ScheduleRepo:
    """Low-level CRUD for the ``schedule_entries`` table."""

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    async def upsert(conn: aiosqlite.Connection, entry: ScheduleEntry) -> None:
        await conn.execute(
            f"""
            INSERT INTO schedule_entries ({_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                title     = excluded.title,
                due_at    = excluded.due_at,
                status    = excluded.status,
                reminders = excluded.reminders,
                extra     = excluded.extra
            """,
            (
                entry.id,
                entry.group,
                entry.type.value,
                entry.title,
                entry.due_at,
                entry.creator,
                entry.status.value,
                json.dumps(entry.reminders_to_list()),
                json.dumps(entry.extra_to_dict(), ensure_ascii=False),
                entry.created_at,
            ),
        )

    @staticmethod
    async def delete(conn: aiosqlite.Connection, entry_id: str) -> bool:
        cursor = await conn.execute("DELETE FROM schedule_entries WHERE id = ?", (entry_id,))
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def get(conn: aiosqlite.Connection, entry_id: str) -> Optional[ScheduleEntry]:
        cursor = await conn.execute(f"SELECT {_COLUMNS} FROM schedule_entries WHERE id = ?", (entry_id,))
        row = await cursor.fetchone()
        return _row_to_entry(row) if row else None

    @staticmethod
    async def list_pending(conn: aiosqlite.Connection, now: int) -> List[ScheduleEntry]:
        """Active entries whose due time is still in the future, soonest first."""
        cursor = await conn.execute(
            f"SELECT {_COLUMNS} FROM schedule_entries WHERE status = ? AND due_at > ? ORDER BY due_at",
            (ScheduleStatus.ACTIVE.value, now),
        )
        return [_row_to_entry(row) for row in await cursor.fetchall()]

    @staticmethod
    async def list_for_group(
        conn: aiosqlite.Connection,
        group_id: str,
        *,
        active_only: bool = True,
        since: int | None = None,
        until: int | None = None,
    ) -> List[ScheduleEntry]:
        """Entries of one group ordered by due time, optionally bounded to [since, until)."""
        query = f"SELECT {_COLUMNS} FROM schedule_entries WHERE group_id = ?"
        params: list = [group_id]
        if active_only:
            query += " AND status = ?"
            params.append(ScheduleStatus.ACTIVE.value)
        if since is not None:
            query += " AND due_at >= ?"
            params.append(since)
        if until is not None:
            query += " AND due_at < ?"
            params.append(until)
        query += " ORDER BY due_at"
        cursor = await conn.execute(query, params)
        return [_row_to_entry(row) for row in await cursor.fetchall()]
