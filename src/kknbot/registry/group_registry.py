"""
Group state registry: the in-memory owner of every GroupState.

Responsibilities:
- Lazily create group state from the default template on first interaction
- Answer permission questions (admin / moderator, including global bot admins)
- Answer ban / mute questions with lazy expiry
- Apply moderation mutations (ban, mute, warn, moderators) and log them
- Persist each changed group as one key of the ``groups_advanced`` document

Mutators take the group's lock themselves; callers never hold
``lock_for(group_id)`` while calling them. A failed write leaves the in-memory
effect in place and is logged without retry.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set

from kknbot.configuration.app_configuration import AppConfig
from kknbot.database.database import Database
from kknbot.datatypes.action_datatypes import (
    ANTI_SPAM_ACTIONS,
    FILTER_ACTIONS,
    ActionType,
    parse_action,
)
from kknbot.datatypes.group_state import (
    BanRecord,
    GroupState,
    ModerationLogEntry,
    ModerationPolicy,
    MuteRecord,
    WarningEntry,
    WarningRecord,
)
from kknbot.datatypes.whatsapp_datatypes import MEDIA_TYPES
from kknbot.errors import PersistenceError, ValidationError
from kknbot.util.clock import Clock, now_ts, system_clock
from kknbot.util.identity import Normalizer, make_normalizer
from kknbot.util.logger import get_logger

logger = get_logger("group_registry")

GROUPS_DOCUMENT = "groups_advanced"
MAX_LOG_ENTRIES = 500


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("on", "true", "yes", "1", "enable", "enabled"):
        return True
    if text in ("off", "false", "no", "0", "disable", "disabled"):
        return False
    raise ValueError(f"expected on/off, got {value!r}")


def _positive_int(value: Any) -> int:
    number = int(value)
    if number <= 0:
        raise ValueError(f"expected a positive number, got {value!r}")
    return number


def _lower_set(value: Any) -> Set[str]:
    if isinstance(value, str):
        value = value.split(",")
    return {str(item).strip().lower() for item in value if str(item).strip()}


def _media_types(value: Any) -> Set[str]:
    kinds = _lower_set(value)
    unknown = kinds - set(MEDIA_TYPES)
    if unknown:
        raise ValueError(f"unknown message type(s) {', '.join(sorted(unknown))}; expected {', '.join(MEDIA_TYPES)}")
    return kinds


# section -> field -> converter; the only fields update_group may touch
UPDATABLE_FIELDS: Dict[str, Dict[str, Callable[[Any], Any]]] = {
    "anti_spam": {
        "enabled": _as_bool,
        "max_messages": _positive_int,
        "window_seconds": _positive_int,
        "action": lambda value: parse_action(value, ANTI_SPAM_ACTIONS),
    },
    "word_filter": {
        "enabled": _as_bool,
        "blacklist": _lower_set,
        "action": lambda value: parse_action(value, FILTER_ACTIONS),
    },
    "link_control": {
        "enabled": _as_bool,
        "whitelist": _lower_set,
        "action": lambda value: parse_action(value, FILTER_ACTIONS),
    },
    "auto_delete": {
        "enabled": _as_bool,
        "types": _media_types,
        "delay_seconds": _positive_int,
    },
    "policy": {
        "warning_threshold": _positive_int,
        "warning_ban_minutes": _positive_int,
        "spam_mute_minutes": _positive_int,
        "filter_mute_minutes": _positive_int,
        "spam_kick_ban_minutes": _positive_int,
    },
}


class GroupRegistry:
    """Owner of all GroupState records, their locks and their persistence."""

    def __init__(
        self,
        database: Database,
        config: AppConfig,
        *,
        normalize: Normalizer | None = None,
        clock: Clock = system_clock,
    ) -> None:
        self.database = database
        self.config = config
        self.normalize = normalize or make_normalizer(config)
        self.clock = clock
        self.groups: Dict[str, GroupState] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._active_persists: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def load_from_disk(self) -> int:
        """Populate the cache from the ``groups_advanced`` document."""
        document = await self.database.read_document(GROUPS_DOCUMENT)
        loaded = 0
        for group_id, payload in document.items():
            try:
                self.groups[group_id] = GroupState.from_dict(payload)
                loaded += 1
            except (KeyError, TypeError, ValueError) as exc:
                logger.error("[GROUP REGISTRY] Skipping unreadable state for %s: %s", group_id, exc)
        logger.info("[GROUP REGISTRY] Loaded %d group(s) from disk", loaded)
        return loaded

    async def shutdown(self) -> None:
        """Await any pending persistence tasks."""
        pending = list(self._active_persists)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._active_persists.clear()
        logger.info("[GROUP REGISTRY] Group registry shutdown complete")

    def lock_for(self, group_id: str) -> asyncio.Lock:
        """Return the lock serialising all state changes of ``group_id``."""
        key = str(group_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def now(self) -> int:
        return now_ts(self.clock)

    # ------------------------------------------------------------------
    # Lookup and creation
    # ------------------------------------------------------------------

    def get_group(self, group_id: str) -> Optional[GroupState]:
        """Return the cached state or None; never creates anything."""
        return self.groups.get(str(group_id))

    def list_group_ids(self) -> List[str]:
        return list(self.groups.keys())

    def default_policy(self) -> ModerationPolicy:
        return ModerationPolicy.from_dict(self.config.moderation_policy)

    async def initialize_group(
        self,
        group_id: str,
        name: str,
        created_by: str = "",
        extra_admins: Iterable[str] = (),
    ) -> bool:
        """Create a group from the template.

        The creator (and any ``extra_admins``, e.g. the WhatsApp group admins)
        become the group's admins.

        Returns:
            bool: False when the group already exists.
        """
        key = str(group_id)
        async with self.lock_for(key):
            if key in self.groups:
                return False

            creator = self.normalize(created_by) if created_by else ""
            state = GroupState.from_template(key, name or "Unknown", creator, self.now(), self.default_policy())
            state.admins.update(self.normalize(admin) for admin in extra_admins if admin)
            self.groups[key] = state
            await self._persist(key)

        logger.info("[GROUP REGISTRY] Initialized group %s (%s) with %d admin(s)", key, state.name, len(state.admins))
        return True

    async def sync_group(self, group_id: str, name: str, admins: Iterable[str]) -> bool:
        """Refresh the name and add the given admins to an existing group.

        Returns:
            bool: False when the group does not exist.
        """
        key = str(group_id)
        async with self.lock_for(key):
            state = self.groups.get(key)
            if state is None:
                return False
            if name:
                state.name = name
            state.admins.update(self.normalize(admin) for admin in admins if admin)
            await self._persist(key)
        logger.info("[GROUP REGISTRY] Synced group %s (%d admin(s))", key, len(state.admins))
        return True

    async def reset_group(self, group_id: str) -> bool:
        """Drop a group's state entirely; it is re-created on the next interaction."""
        key = str(group_id)
        async with self.lock_for(key):
            if self.groups.pop(key, None) is None:
                return False
            try:
                await self.database.delete(GROUPS_DOCUMENT, key)
            except PersistenceError as exc:
                logger.error("[GROUP REGISTRY] Failed to delete stored state of %s: %s", key, exc)
        logger.info("[GROUP REGISTRY] Reset group %s", key)
        return True

    # ------------------------------------------------------------------
    # Typed updates
    # ------------------------------------------------------------------

    async def update_group(self, group_id: str, partial: Mapping[str, Mapping[str, Any]]) -> bool:
        """Apply a partial update of configuration fields and persist.

        ``partial`` maps a section (``anti_spam``, ``word_filter``,
        ``link_control``, ``auto_delete``, ``policy``) to the fields to set.
        Every value is validated before anything is applied.

        Returns:
            bool: False if the group does not exist.

        Raises:
            ValidationError: Unknown section or field, or an invalid value.
        """
        converted: Dict[str, Dict[str, Any]] = {}
        for section, values in partial.items():
            setters = UPDATABLE_FIELDS.get(section)
            if setters is None:
                raise ValidationError(f"Unknown settings section '{section}'.")
            for field_name, raw in values.items():
                convert = setters.get(field_name)
                if convert is None:
                    raise ValidationError(f"Unknown setting '{section}.{field_name}'.")
                try:
                    converted.setdefault(section, {})[field_name] = convert(raw)
                except (TypeError, ValueError) as exc:
                    raise ValidationError(f"Invalid value for '{section}.{field_name}': {exc}") from exc

        key = str(group_id)
        async with self.lock_for(key):
            state = self.groups.get(key)
            if state is None:
                return False
            for section, values in converted.items():
                target = getattr(state, section)
                for field_name, value in values.items():
                    setattr(target, field_name, value)
            await self._persist(key)

        logger.debug("[GROUP REGISTRY] Updated %s: %s", key, converted)
        return True

    async def configure_anti_spam(self, group_id: str, **fields: Any) -> bool:
        return await self.update_group(group_id, {"anti_spam": fields})

    async def configure_word_filter(self, group_id: str, **fields: Any) -> bool:
        return await self.update_group(group_id, {"word_filter": fields})

    async def configure_link_control(self, group_id: str, **fields: Any) -> bool:
        return await self.update_group(group_id, {"link_control": fields})

    async def configure_auto_delete(self, group_id: str, **fields: Any) -> bool:
        return await self.update_group(group_id, {"auto_delete": fields})

    async def set_policy(self, group_id: str, **fields: Any) -> bool:
        return await self.update_group(group_id, {"policy": fields})

    async def add_blacklist_words(self, group_id: str, words: Iterable[str]) -> Set[str]:
        """Add words to the blacklist; returns the words that were new."""
        return await self._edit_set(group_id, "word_filter", "blacklist", _lower_set(list(words)), add=True)

    async def remove_blacklist_words(self, group_id: str, words: Iterable[str]) -> Set[str]:
        return await self._edit_set(group_id, "word_filter", "blacklist", _lower_set(list(words)), add=False)

    async def add_whitelist_domain(self, group_id: str, domain: str) -> bool:
        return bool(await self._edit_set(group_id, "link_control", "whitelist", _lower_set([domain]), add=True))

    async def remove_whitelist_domain(self, group_id: str, domain: str) -> bool:
        return bool(await self._edit_set(group_id, "link_control", "whitelist", _lower_set([domain]), add=False))

    async def _edit_set(self, group_id: str, section: str, field_name: str, items: Set[str], *, add: bool) -> Set[str]:
        key = str(group_id)
        async with self.lock_for(key):
            state = self.groups.get(key)
            if state is None:
                return set()
            current: Set[str] = getattr(getattr(state, section), field_name)
            changed = items - current if add else items & current
            if changed:
                if add:
                    current.update(changed)
                else:
                    current.difference_update(changed)
                await self._persist(key)
        return changed

    # ------------------------------------------------------------------
    # Permissions
    # ------------------------------------------------------------------

    def is_global_admin(self, user_id: str) -> bool:
        phone = self.normalize(user_id)
        if not phone:
            return False
        admins = {self.normalize(admin) for admin in self.config.global_admins}
        if self.config.owner:
            admins.add(self.normalize(self.config.owner))
        return phone in admins

    def is_admin(self, group_id: str, user_id: str) -> bool:
        """Global bot admin, or listed in the group's admins."""
        if self.is_global_admin(user_id):
            return True
        state = self.groups.get(str(group_id))
        return state is not None and self.normalize(user_id) in state.admins

    def is_moderator(self, group_id: str, user_id: str) -> bool:
        """Admin, or listed in the group's moderators."""
        if self.is_admin(group_id, user_id):
            return True
        state = self.groups.get(str(group_id))
        return state is not None and self.normalize(user_id) in state.moderators

    async def add_moderator(self, group_id: str, user_id: str, added_by: str) -> bool:
        """Returns False if the group is unknown or the user already moderates."""
        return await self._set_role(group_id, user_id, added_by, ActionType.ADD_MODERATOR)

    async def remove_moderator(self, group_id: str, user_id: str, removed_by: str) -> bool:
        return await self._set_role(group_id, user_id, removed_by, ActionType.REMOVE_MODERATOR)

    async def _set_role(self, group_id: str, user_id: str, moderator: str, action: ActionType) -> bool:
        key = str(group_id)
        phone = self.normalize(user_id)
        async with self.lock_for(key):
            state = self.groups.get(key)
            if state is None:
                return False
            if action is ActionType.ADD_MODERATOR:
                if phone in state.moderators or phone in state.admins:
                    return False
                state.moderators.add(phone)
            else:
                if phone not in state.moderators:
                    return False
                state.moderators.discard(phone)
            self._append_log(state, action, phone, moderator)
            await self._persist(key)
        return True

    # ------------------------------------------------------------------
    # Bans and mutes (lazy expiry)
    # ------------------------------------------------------------------

    def get_ban(self, group_id: str, user_id: str) -> Optional[BanRecord]:
        """Return the active ban record, deleting it first if it has expired."""
        return self._active_record(group_id, user_id, "banned_users")

    def get_mute(self, group_id: str, user_id: str) -> Optional[MuteRecord]:
        return self._active_record(group_id, user_id, "muted_users")

    def is_banned(self, group_id: str, user_id: str) -> bool:
        return self.get_ban(group_id, user_id) is not None

    def is_muted(self, group_id: str, user_id: str) -> bool:
        return self.get_mute(group_id, user_id) is not None

    def _active_record(self, group_id: str, user_id: str, attribute: str):
        key = str(group_id)
        state = self.groups.get(key)
        if state is None:
            return None
        records = getattr(state, attribute)
        phone = self.normalize(user_id)
        record = records.get(phone)
        if record is None:
            return None
        if record.is_expired(self.clock()):
            # pop() keeps a second concurrent check a no-op
            if records.pop(phone, None) is not None:
                logger.debug("[GROUP REGISTRY] Expired %s record for %s in %s removed", attribute, phone, key)
                self._trigger_persist(key)
            return None
        return record

    async def ban_user(
        self,
        group_id: str,
        user_id: str,
        reason: str,
        banned_by: str,
        duration_minutes: int | None = None,
    ) -> Optional[BanRecord]:
        """Ban a user, temporarily when ``duration_minutes`` is given.

        Returns:
            BanRecord | None: The new record, or None for an unknown group.
        """
        key = str(group_id)
        phone = self.normalize(user_id)
        async with self.lock_for(key):
            state = self.groups.get(key)
            if state is None:
                return None
            now = self.now()
            record = BanRecord(
                reason=reason,
                banned_at=now,
                banned_by=banned_by,
                expires_at=now + duration_minutes * 60 if duration_minutes else None,
            )
            state.banned_users[phone] = record
            self._append_log(state, ActionType.BAN, phone, banned_by, reason, duration_minutes)
            await self._persist(key)
        logger.info("[GROUP REGISTRY] Banned %s in %s (%s min): %s", phone, key, duration_minutes or "permanent", reason)
        return record

    async def unban_user(self, group_id: str, user_id: str, unbanned_by: str) -> bool:
        """Returns False when the user has no ban record."""
        return await self._lift(group_id, user_id, unbanned_by, "banned_users", ActionType.UNBAN)

    async def mute_user(
        self,
        group_id: str,
        user_id: str,
        reason: str,
        muted_by: str,
        duration_minutes: int | None = None,
    ) -> Optional[MuteRecord]:
        key = str(group_id)
        phone = self.normalize(user_id)
        async with self.lock_for(key):
            state = self.groups.get(key)
            if state is None:
                return None
            now = self.now()
            record = MuteRecord(
                reason=reason,
                muted_at=now,
                muted_by=muted_by,
                expires_at=now + duration_minutes * 60 if duration_minutes else None,
            )
            state.muted_users[phone] = record
            self._append_log(state, ActionType.MUTE, phone, muted_by, reason, duration_minutes)
            await self._persist(key)
        logger.info("[GROUP REGISTRY] Muted %s in %s (%s min): %s", phone, key, duration_minutes or "permanent", reason)
        return record

    async def unmute_user(self, group_id: str, user_id: str, unmuted_by: str) -> bool:
        return await self._lift(group_id, user_id, unmuted_by, "muted_users", ActionType.UNMUTE)

    async def _lift(self, group_id: str, user_id: str, moderator: str, attribute: str, action: ActionType) -> bool:
        key = str(group_id)
        phone = self.normalize(user_id)
        async with self.lock_for(key):
            state = self.groups.get(key)
            if state is None or getattr(state, attribute).pop(phone, None) is None:
                return False
            self._append_log(state, action, phone, moderator)
            await self._persist(key)
        return True

    # ------------------------------------------------------------------
    # Warnings
    # ------------------------------------------------------------------

    def get_warnings(self, group_id: str, user_id: str) -> Optional[WarningRecord]:
        state = self.groups.get(str(group_id))
        if state is None:
            return None
        return state.warnings.get(self.normalize(user_id))

    async def warn_user(self, group_id: str, user_id: str, reason: str, warned_by: str) -> int:
        """Record a warning and return the user's new warning count (0 for an unknown group)."""
        key = str(group_id)
        phone = self.normalize(user_id)
        async with self.lock_for(key):
            state = self.groups.get(key)
            if state is None:
                return 0
            record = state.warnings.setdefault(phone, WarningRecord())
            record.count += 1
            record.history.append(WarningEntry(reason=reason, warned_at=self.now(), warned_by=warned_by))
            self._append_log(state, ActionType.WARN, phone, warned_by, reason)
            await self._persist(key)
            count = record.count
        logger.info("[GROUP REGISTRY] Warned %s in %s (%d): %s", phone, key, count, reason)
        return count

    async def reset_warnings(self, group_id: str, user_id: str, reset_by: str) -> bool:
        return await self._lift(group_id, user_id, reset_by, "warnings", ActionType.RESET_WARNINGS)

    # ------------------------------------------------------------------
    # Moderation log
    # ------------------------------------------------------------------

    def get_logs(self, group_id: str, limit: int = 10) -> List[ModerationLogEntry]:
        """Most recent log entries, newest first."""
        state = self.groups.get(str(group_id))
        if state is None:
            return []
        return list(reversed(state.moderation_log[-limit:]))

    async def log_action(
        self,
        group_id: str,
        action: ActionType,
        target: str,
        moderator: str,
        reason: str | None = None,
    ) -> bool:
        """Record an action that changed no stored state (e.g. a plain kick)."""
        key = str(group_id)
        async with self.lock_for(key):
            state = self.groups.get(key)
            if state is None:
                return False
            self._append_log(state, action, self.normalize(target), moderator, reason)
            await self._persist(key)
        return True

    def _append_log(
        self,
        state: GroupState,
        action: ActionType,
        target: str,
        moderator: str,
        reason: str | None = None,
        duration: int | None = None,
    ) -> None:
        state.moderation_log.append(
            ModerationLogEntry(
                action=action.value,
                target=target,
                moderator=moderator,
                timestamp=self.now(),
                reason=reason,
                duration=duration,
            )
        )
        if len(state.moderation_log) > MAX_LOG_ENTRIES:
            del state.moderation_log[:-MAX_LOG_ENTRIES]

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _persist(self, group_id: str) -> bool:
        """Write one group's state; failures are logged and reported as False."""
        state = self.groups.get(group_id)
        if state is None:
            return False
        try:
            await self.database.put(GROUPS_DOCUMENT, group_id, state.to_dict())
        except PersistenceError as exc:
            logger.error("[GROUP REGISTRY] Failed to persist group %s: %s", group_id, exc)
            return False
        return True

    def _trigger_persist(self, group_id: str) -> None:
        """Schedule a best-effort persist from synchronous code paths."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("[GROUP REGISTRY] Cannot persist group %s: no running event loop", group_id)
            return

        task = loop.create_task(self._persist_locked(group_id))
        self._active_persists.add(task)

        def _cleanup(completed: asyncio.Task) -> None:
            self._active_persists.discard(completed)
            if completed.cancelled():
                return
            exc = completed.exception()
            if exc is not None:
                logger.error("[GROUP REGISTRY] Error while persisting group %s: %s", group_id, exc)

        task.add_done_callback(_cleanup)

    async def _persist_locked(self, group_id: str) -> bool:
        async with self.lock_for(group_id):
            return await self._persist(group_id)
