"""
Static-method repositories over the shared aiosqlite connection.

- **document_repo.py**: per-key JSON documents (group states live in the
  ``groups_advanced`` document, one row per group).
- **schedule_repo.py**: the durable schedule entry table.
"""
