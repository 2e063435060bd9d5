"""
Database schema initialization and version tracking.

Two storage shapes live side by side:

- ``documents``: named JSON documents split into per-key rows, so updating one
  group's state rewrites a single row instead of the whole document.
- ``schedule_entries``: the durable scheduled-task table, indexed by
  ``(status, due_at)`` for the startup recovery scan.
"""

import aiosqlite

from kknbot.util.logger import get_logger

logger = get_logger("database_schema")

SCHEMA_VERSION = 1


class SchemaManager:
    """Creates tables and indexes and records the schema version."""

    @staticmethod
    async def initialize_schema(db: aiosqlite.Connection) -> None:
        await SchemaManager._create_tables(db)
        await SchemaManager._create_indexes(db)
        await SchemaManager._update_schema_version(db)
        logger.info("[SCHEMA] Database schema initialized (version %d)", SCHEMA_VERSION)

    @staticmethod
    async def _create_tables(db: aiosqlite.Connection) -> None:
        await db.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                name TEXT NOT NULL,
                key TEXT NOT NULL,
                body TEXT NOT NULL,
                updated_at INTEGER NOT NULL,
                PRIMARY KEY (name, key)
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS schedule_entries (
                id TEXT PRIMARY KEY,
                group_id TEXT NOT NULL,
                type TEXT NOT NULL,
                title TEXT NOT NULL,
                due_at INTEGER NOT NULL,
                creator TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'active',
                reminders TEXT NOT NULL DEFAULT '[]',
                extra TEXT NOT NULL DEFAULT '{}',
                created_at INTEGER NOT NULL
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    @staticmethod
    async def _create_indexes(db: aiosqlite.Connection) -> None:
        await db.execute("CREATE INDEX IF NOT EXISTS idx_schedule_entries_pending ON schedule_entries(status, due_at)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_schedule_entries_group ON schedule_entries(group_id, status)")

    @staticmethod
    async def _update_schema_version(db: aiosqlite.Connection) -> None:
        await db.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
