"""
Group state registry.

- **group_registry.py**: in-memory cache of every GroupState with per-group
  asyncio locks, permission checks, lazily-expiring bans and mutes, warnings,
  moderator management and the moderation log, persisted per group.
"""
