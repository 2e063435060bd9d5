"""
Low-level CRUD for the ``documents`` table.

A document is a named JSON object whose top-level keys are stored as
separate rows. ``put`` and ``delete`` touch a single key atomically;
``replace`` swaps a whole document inside the caller's transaction.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional

import aiosqlite


class DocumentRepo:

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    async def put(conn: aiosqlite.Connection, name: str, key: str, value: Any, now: int) -> None:
        """Insert or replace one key of a document."""
        await conn.execute(
            """
            INSERT INTO documents (name, key, body, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(name, key) DO UPDATE SET
                body       = excluded.body,
                updated_at = excluded.updated_at
            """,
            (name, key, json.dumps(value, ensure_ascii=False), now),
        )

    @staticmethod
    async def delete(conn: aiosqlite.Connection, name: str, key: str) -> bool:
        cursor = await conn.execute("DELETE FROM documents WHERE name = ? AND key = ?", (name, key))
        return cursor.rowcount > 0

    @staticmethod
    async def replace(conn: aiosqlite.Connection, name: str, mapping: Mapping[str, Any], now: int) -> None:
        """Drop every key of ``name`` and write ``mapping`` in its place."""
        await conn.execute("DELETE FROM documents WHERE name = ?", (name,))
        await conn.executemany(
            "INSERT INTO documents (name, key, body, updated_at) VALUES (?, ?, ?, ?)",
            [(name, key, json.dumps(value, ensure_ascii=False), now) for key, value in mapping.items()],
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def get(conn: aiosqlite.Connection, name: str, key: str) -> Optional[Any]:
        cursor = await conn.execute("SELECT body FROM documents WHERE name = ? AND key = ?", (name, key))
        row = await cursor.fetchone()
        return json.loads(row[0]) if row else None

    @staticmethod
    async def read(conn: aiosqlite.Connection, name: str) -> Dict[str, Any]:
        """Return the whole document; an unknown name yields an empty mapping."""
        cursor = await conn.execute("SELECT key, body FROM documents WHERE name = ? ORDER BY key", (name,))
        rows = await cursor.fetchall()
        return {row[0]: json.loads(row[1]) for row in rows}
