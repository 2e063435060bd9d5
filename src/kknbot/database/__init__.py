"""
Database package for the KKN bot.

- **db_connection.py**: one long-lived aiosqlite connection with WAL pragmas
  and a single-writer semaphore.
- **db_schema.py**: table and index creation plus schema version tracking.
- **database.py**: the ``Database`` coordinator (documents, schedule entries,
  rotating backups).
"""
