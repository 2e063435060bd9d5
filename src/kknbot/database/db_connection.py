"""
Single long-lived aiosqlite connection shared by the whole bot.

SQLite is single-writer, so writes are queued on a semaphore inside
:meth:`ConnectionManager.transaction`; reads run straight on the connection
(WAL mode lets them proceed alongside a writer).

Usage::

    await connection.open(path)

    async with connection.read() as conn:
        cursor = await conn.execute("SELECT ...")

    async with connection.transaction() as conn:
        await conn.execute("INSERT ...")
        # commits on clean exit, rolls back on exception

    await connection.close()
"""

from __future__ import annotations

import asyncio
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from kknbot.errors import PersistenceError
from kknbot.util.logger import get_logger

logger = get_logger("database_connection")

_PRAGMAS = [
    "PRAGMA journal_mode = WAL",
    "PRAGMA foreign_keys = ON",
    "PRAGMA synchronous = NORMAL",
    "PRAGMA temp_store = MEMORY",
    "PRAGMA busy_timeout = 5000",
]


class ConnectionManager:
    """
    Owner of the bot's aiosqlite connection.

    * Reads  - ``async with read()``; no lock taken.
    * Writes - ``async with transaction()``; serialised by ``_write_sem``.

    Failures inside either context surface as :class:`PersistenceError`.
    """

    def __init__(self) -> None:
        self._conn: aiosqlite.Connection | None = None
        self._write_sem = asyncio.Semaphore(1)
        self._path: Path | None = None

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self, path: Path) -> None:
        """Open the database file and apply the connection pragmas."""
        if self._conn is not None:
            logger.warning("[DB CONNECTION] open() called but connection already exists, ignoring")
            return

        self._path = path
        path.parent.mkdir(parents=True, exist_ok=True)

        try:
            self._conn = await aiosqlite.connect(path)
            self._conn.row_factory = aiosqlite.Row
            for pragma in _PRAGMAS:
                await self._conn.execute(pragma)
            await self._conn.commit()
        except sqlite3.Error as exc:
            raise PersistenceError(f"could not open database {path}: {exc}") from exc

        logger.info("[DB CONNECTION] Opened connection to %s", path)

    async def close(self) -> None:
        """Checkpoint the WAL into the main file and close the connection."""
        if self._conn is None:
            return

        try:
            await self._conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
            await self._conn.commit()
        except sqlite3.Error:
            logger.exception("[DB CONNECTION] WAL checkpoint failed during close")
        finally:
            await self._conn.close()
            self._conn = None
            logger.info("[DB CONNECTION] Connection closed")

    @property
    def connection(self) -> aiosqlite.Connection:
        """
        The raw aiosqlite connection.

        Raises:
            PersistenceError: If the connection has not been opened yet.
        """
        if self._conn is None:
            raise PersistenceError("database connection is not open")
        return self._conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Serialised write transaction: commit on clean exit, roll back on error."""
        conn = self.connection

        async with self._write_sem:
            try:
                yield conn
                await conn.commit()
            except sqlite3.Error as exc:
                await conn.rollback()
                raise PersistenceError(str(exc)) from exc
            except BaseException:
                await conn.rollback()
                raise

    @asynccontextmanager
    async def read(self) -> AsyncIterator[aiosqlite.Connection]:
        """Read access mirroring :meth:`transaction`; no semaphore is taken."""
        conn = self.connection
        try:
            yield conn
        except sqlite3.Error as exc:
            raise PersistenceError(str(exc)) from exc
