"""
Persistent store for the bot.

The Database class owns the aiosqlite connection, creates the schema, and
exposes the two storage shapes the rest of the bot uses:

- named JSON documents with atomic per-key updates (group states),
- the durable schedule entry table.

It also keeps rotating backup copies of the database file.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import aiosqlite

from kknbot.database.db_connection import ConnectionManager
from kknbot.database.db_schema import SchemaManager
from kknbot.datatypes.schedule_datatypes import ScheduleEntry
from kknbot.errors import PersistenceError
from kknbot.repositories.document_repo import DocumentRepo
from kknbot.repositories.schedule_repo import ScheduleRepo
from kknbot.util.clock import Clock, now_ts, system_clock
from kknbot.util.logger import get_logger

logger = get_logger("database")

DB_PATH = Path("./data/app.db").resolve()
BACKUP_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S-%f"


class Database:
    """
    Central coordinator for all persistent state.

    Lifecycle:
        1. ``await initialize()`` at startup
        2. document / schedule operations
        3. ``await shutdown()`` at exit
    """

    def __init__(
        self,
        db_path: Path = DB_PATH,
        *,
        backups_to_keep: int = 5,
        clock: Clock = system_clock,
    ) -> None:
        self.db_path = db_path
        self.backups_to_keep = backups_to_keep
        self.backup_dir = db_path.parent / "backups"
        self.connection = ConnectionManager()
        self._clock = clock
        self._initialized = False

    async def initialize(self) -> None:
        """Open the connection and create the schema.

        Raises:
            PersistenceError: If the database cannot be opened or migrated.
        """
        if self._initialized:
            logger.debug("[DATABASE] Already initialized, skipping")
            return

        await self.connection.open(self.db_path)
        async with self.connection.transaction() as conn:
            await SchemaManager.initialize_schema(conn)

        self._initialized = True
        logger.info("[DATABASE] Database initialized at %s", self.db_path)

    async def shutdown(self) -> None:
        if not self._initialized:
            return
        await self.connection.close()
        self._initialized = False
        logger.info("[DATABASE] Database shutdown complete")

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def read_document(self, name: str) -> Dict[str, Any]:
        """Return the document ``name`` as a mapping; empty when it was never written."""
        async with self.connection.read() as conn:
            return await DocumentRepo.read(conn, name)

    async def write_document(self, name: str, mapping: Mapping[str, Any]) -> None:
        """Replace the whole document in one transaction."""
        async with self.connection.transaction() as conn:
            await DocumentRepo.replace(conn, name, mapping, now_ts(self._clock))

    async def get(self, name: str, key: str) -> Optional[Any]:
        async with self.connection.read() as conn:
            return await DocumentRepo.get(conn, name, key)

    async def put(self, name: str, key: str, value: Any) -> None:
        """Atomically write one key of a document."""
        async with self.connection.transaction() as conn:
            await DocumentRepo.put(conn, name, key, value, now_ts(self._clock))

    async def delete(self, name: str, key: str) -> bool:
        async with self.connection.transaction() as conn:
            return await DocumentRepo.delete(conn, name, key)

    # ------------------------------------------------------------------
    # Schedule entries
    # ------------------------------------------------------------------

    async def save_schedule(self, entry: ScheduleEntry) -> None:
        async with self.connection.transaction() as conn:
            await ScheduleRepo.upsert(conn, entry)

    async def get_schedule(self, entry_id: str) -> Optional[ScheduleEntry]:
        async with self.connection.read() as conn:
            return await ScheduleRepo.get(conn, entry_id)

    async def delete_schedule(self, entry_id: str) -> bool:
        async with self.connection.transaction() as conn:
            return await ScheduleRepo.delete(conn, entry_id)

    async def list_pending_schedules(self, now: int) -> List[ScheduleEntry]:
        async with self.connection.read() as conn:
            return await ScheduleRepo.list_pending(conn, now)

    async def list_group_schedules(
        self,
        group_id: str,
        *,
        active_only: bool = True,
        since: int | None = None,
        until: int | None = None,
    ) -> List[ScheduleEntry]:
        async with self.connection.read() as conn:
            return await ScheduleRepo.list_for_group(
                conn, group_id, active_only=active_only, since=since, until=until
            )

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------

    async def backup(self) -> Path:
        """Copy the live database into ``backups/`` and prune old copies.

        Uses SQLite's online backup API so the copy is consistent even while
        the WAL holds uncheckpointed pages.

        Returns:
            Path: Location of the new backup file.
        """
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.fromtimestamp(self._clock()).strftime(BACKUP_TIMESTAMP_FORMAT)
        target_path = self.backup_dir / f"{self.db_path.stem}.{stamp}.db"

        try:
            async with self.connection.transaction() as conn:
                async with aiosqlite.connect(target_path) as target:
                    await conn.backup(target)
        except OSError as exc:
            raise PersistenceError(f"backup to {target_path} failed: {exc}") from exc

        removed = self.prune_backups()
        logger.info("[DATABASE] Backup written to %s (%d old backups removed)", target_path.name, removed)
        return target_path

    def list_backups(self) -> List[Path]:
        """Backup files, newest first."""
        if not self.backup_dir.exists():
            return []
        return sorted(self.backup_dir.glob(f"{self.db_path.stem}.*.db"), reverse=True)

    def prune_backups(self) -> int:
        removed = 0
        for stale in self.list_backups()[self.backups_to_keep:]:
            try:
                stale.unlink()
                removed += 1
            except OSError as exc:
                logger.warning("[DATABASE] Could not remove old backup %s: %s", stale, exc)
        return removed
