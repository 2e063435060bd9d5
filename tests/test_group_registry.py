"""Tests for GroupRegistry: creation, permissions, lazy expiry and persistence."""

import asyncio

import pytest

from conftest import GLOBAL_ADMIN, GROUP, GROUP_ADMIN, MEMBER, OTHER_MEMBER, OWNER
from kknbot.datatypes.action_datatypes import ActionType
from kknbot.errors import PersistenceError, ValidationError
from kknbot.registry.group_registry import GROUPS_DOCUMENT, MAX_LOG_ENTRIES, GroupRegistry


class TestInitialization:
    @pytest.mark.asyncio
    async def test_initialize_creates_and_persists(self, registry, database):
        assert await registry.initialize_group(GROUP, "KKN", GROUP_ADMIN, [f"{OTHER_MEMBER}@s.whatsapp.net"])

        state = registry.get_group(GROUP)
        assert state.admins == {GROUP_ADMIN, OTHER_MEMBER}
        assert state.policy.warning_threshold == 3
        stored = await database.get(GROUPS_DOCUMENT, GROUP)
        assert stored["name"] == "KKN"

    @pytest.mark.asyncio
    async def test_initialize_twice_is_a_no_op(self, registry, group):
        assert not await registry.initialize_group(GROUP, "Other name", MEMBER)
        assert registry.get_group(GROUP).name == "KKN Desa Sukamaju"

    @pytest.mark.asyncio
    async def test_get_group_never_creates(self, registry):
        assert registry.get_group("unknown@g.us") is None
        assert registry.list_group_ids() == []

    @pytest.mark.asyncio
    async def test_state_is_reloaded_from_disk(self, registry, group, database, app_config, clock):
        await registry.ban_user(GROUP, MEMBER, "spam", GROUP_ADMIN)

        fresh = GroupRegistry(database, app_config, clock=clock)
        assert await fresh.load_from_disk() == 1
        assert fresh.is_banned(GROUP, MEMBER)
        assert fresh.get_group(GROUP).admins == {GROUP_ADMIN}

    @pytest.mark.asyncio
    async def test_sync_group_adds_admins(self, registry, group):
        assert await registry.sync_group(GROUP, "Renamed", [f"{MEMBER}@s.whatsapp.net"])
        assert registry.get_group(GROUP).admins == {GROUP_ADMIN, MEMBER}
        assert registry.get_group(GROUP).name == "Renamed"

    @pytest.mark.asyncio
    async def test_reset_group_removes_state(self, registry, group, database):
        assert await registry.reset_group(GROUP)
        assert registry.get_group(GROUP) is None
        assert await database.get(GROUPS_DOCUMENT, GROUP) is None
        assert not await registry.reset_group(GROUP)


class TestPermissions:
    @pytest.mark.asyncio
    async def test_global_admin_and_owner(self, registry, group):
        assert registry.is_global_admin(GLOBAL_ADMIN)
        assert registry.is_global_admin(f"{OWNER}@s.whatsapp.net")
        assert not registry.is_global_admin(GROUP_ADMIN)
        assert registry.is_admin(GROUP, GLOBAL_ADMIN)
        assert registry.is_admin("unknown@g.us", GLOBAL_ADMIN)

    @pytest.mark.asyncio
    async def test_identity_shapes_are_normalised(self, registry, group):
        assert registry.is_admin(GROUP, f"{GROUP_ADMIN}:5@s.whatsapp.net")
        assert registry.is_admin(GROUP, "0" + GROUP_ADMIN[2:])

    @pytest.mark.asyncio
    async def test_lid_maps_to_phone(self, registry, group):
        await registry.add_moderator(GROUP, MEMBER, GROUP_ADMIN)
        assert registry.is_moderator(GROUP, "99887766@lid")

    @pytest.mark.asyncio
    async def test_moderators(self, registry, group):
        assert not registry.is_moderator(GROUP, MEMBER)
        assert await registry.add_moderator(GROUP, MEMBER, GROUP_ADMIN)
        assert registry.is_moderator(GROUP, MEMBER)
        assert not registry.is_admin(GROUP, MEMBER)
        assert not await registry.add_moderator(GROUP, MEMBER, GROUP_ADMIN)
        assert not await registry.add_moderator(GROUP, GROUP_ADMIN, GROUP_ADMIN)

        assert await registry.remove_moderator(GROUP, MEMBER, GROUP_ADMIN)
        assert not registry.is_moderator(GROUP, MEMBER)
        assert not await registry.remove_moderator(GROUP, MEMBER, GROUP_ADMIN)

    @pytest.mark.asyncio
    async def test_admin_is_also_moderator(self, registry, group):
        assert registry.is_moderator(GROUP, GROUP_ADMIN)


class TestBansAndMutes:
    @pytest.mark.asyncio
    async def test_temporary_mute_expires_lazily(self, registry, group, clock):
        record = await registry.mute_user(GROUP, MEMBER, "flood", "system", duration_minutes=10)
        assert record.expires_at == int(clock()) + 600

        clock.advance(9 * 60)
        assert registry.is_muted(GROUP, MEMBER)

        clock.advance(60)
        assert not registry.is_muted(GROUP, MEMBER)
        assert MEMBER not in registry.get_group(GROUP).muted_users
        # a second check after expiry stays a no-op
        assert not registry.is_muted(GROUP, MEMBER)

    @pytest.mark.asyncio
    async def test_expiry_is_persisted(self, registry, group, clock, database):
        await registry.ban_user(GROUP, MEMBER, "spam", GROUP_ADMIN, duration_minutes=1)
        clock.advance(61)
        assert not registry.is_banned(GROUP, MEMBER)

        await registry.shutdown()
        stored = await database.get(GROUPS_DOCUMENT, GROUP)
        assert MEMBER not in stored["banned_users"]

    @pytest.mark.asyncio
    async def test_permanent_ban(self, registry, group, clock):
        await registry.ban_user(GROUP, MEMBER, "spam", GROUP_ADMIN)
        clock.advance(10 * 365 * 86400)
        assert registry.is_banned(GROUP, MEMBER)
        assert registry.get_ban(GROUP, MEMBER).reason == "spam"

    @pytest.mark.asyncio
    async def test_unban_and_unmute(self, registry, group):
        await registry.ban_user(GROUP, MEMBER, "spam", GROUP_ADMIN)
        await registry.mute_user(GROUP, OTHER_MEMBER, "flood", GROUP_ADMIN)
        assert await registry.unban_user(GROUP, MEMBER, GROUP_ADMIN)
        assert await registry.unmute_user(GROUP, OTHER_MEMBER, GROUP_ADMIN)
        assert not registry.is_banned(GROUP, MEMBER)
        assert not registry.is_muted(GROUP, OTHER_MEMBER)
        assert not await registry.unban_user(GROUP, MEMBER, GROUP_ADMIN)

    @pytest.mark.asyncio
    async def test_unknown_group(self, registry):
        assert await registry.ban_user("unknown@g.us", MEMBER, "spam", GROUP_ADMIN) is None
        assert not registry.is_banned("unknown@g.us", MEMBER)
        assert await registry.warn_user("unknown@g.us", MEMBER, "rude", GROUP_ADMIN) == 0


class TestWarningsAndLogs:
    @pytest.mark.asyncio
    async def test_warning_count_and_history(self, registry, group):
        assert await registry.warn_user(GROUP, MEMBER, "rude", GROUP_ADMIN) == 1
        assert await registry.warn_user(GROUP, MEMBER, "spam", "system") == 2

        record = registry.get_warnings(GROUP, MEMBER)
        assert record.count == 2
        assert [entry.reason for entry in record.history] == ["rude", "spam"]

        assert await registry.reset_warnings(GROUP, MEMBER, GROUP_ADMIN)
        assert registry.get_warnings(GROUP, MEMBER) is None

    @pytest.mark.asyncio
    async def test_concurrent_warnings_are_not_lost(self, registry, group):
        counts = await asyncio.gather(*(registry.warn_user(GROUP, MEMBER, "x", "system") for _ in range(10)))
        assert sorted(counts) == list(range(1, 11))
        assert registry.get_warnings(GROUP, MEMBER).count == 10

    @pytest.mark.asyncio
    async def test_logs_newest_first(self, registry, group, clock):
        await registry.warn_user(GROUP, MEMBER, "rude", GROUP_ADMIN)
        clock.advance(1)
        await registry.mute_user(GROUP, MEMBER, "flood", GROUP_ADMIN, 5)
        clock.advance(1)
        await registry.log_action(GROUP, ActionType.KICK, OTHER_MEMBER, GROUP_ADMIN, "bye")

        logs = registry.get_logs(GROUP, limit=2)
        assert [entry.action for entry in logs] == ["kick", "mute"]
        assert logs[1].duration == 5

    @pytest.mark.asyncio
    async def test_log_is_capped(self, registry, group):
        state = registry.get_group(GROUP)
        for _ in range(MAX_LOG_ENTRIES + 5):
            registry._append_log(state, ActionType.WARN, MEMBER, "system")
        assert len(state.moderation_log) == MAX_LOG_ENTRIES


class TestUpdates:
    @pytest.mark.asyncio
    async def test_update_group_converts_values(self, registry, group):
        assert await registry.update_group(
            GROUP, {"anti_spam": {"enabled": "on", "max_messages": "3", "action": "MUTE"}}
        )
        anti_spam = registry.get_group(GROUP).anti_spam
        assert anti_spam.enabled is True
        assert anti_spam.max_messages == 3
        assert anti_spam.action is ActionType.MUTE

    @pytest.mark.asyncio
    async def test_invalid_update_changes_nothing(self, registry, group):
        with pytest.raises(ValidationError):
            await registry.update_group(GROUP, {"anti_spam": {"enabled": "on", "max_messages": "-1"}})
        assert registry.get_group(GROUP).anti_spam.enabled is False

    @pytest.mark.asyncio
    async def test_unknown_fields_are_rejected(self, registry, group):
        with pytest.raises(ValidationError):
            await registry.update_group(GROUP, {"admins": {"x": 1}})
        with pytest.raises(ValidationError):
            await registry.set_policy(GROUP, bogus=1)
        with pytest.raises(ValidationError):
            await registry.configure_word_filter(GROUP, action="kick")

    @pytest.mark.asyncio
    async def test_blacklist_and_whitelist_edits(self, registry, group):
        assert await registry.add_blacklist_words(GROUP, ["Judi", "slot", ""]) == {"judi", "slot"}
        assert await registry.add_blacklist_words(GROUP, ["judi"]) == set()
        assert await registry.remove_blacklist_words(GROUP, ["slot", "other"]) == {"slot"}
        assert registry.get_group(GROUP).word_filter.blacklist == {"judi"}

        assert await registry.add_whitelist_domain(GROUP, "KKN.ac.id")
        assert not await registry.add_whitelist_domain(GROUP, "kkn.ac.id")
        assert await registry.remove_whitelist_domain(GROUP, "kkn.ac.id")
        assert not await registry.remove_whitelist_domain(GROUP, "kkn.ac.id")

    @pytest.mark.asyncio
    @pytest.mark.asyncio
    async def test_auto_delete_types_are_validated(self, registry, group):
        assert await registry.configure_auto_delete(GROUP, enabled="on", types="Sticker, image", delay_seconds="120")
        config = registry.get_group(GROUP).auto_delete
        assert config.types == {"sticker", "image"}
        assert config.delay_seconds == 120

        with pytest.raises(ValidationError):
            await registry.configure_auto_delete(GROUP, types="sticker,gif")
        assert registry.get_group(GROUP).auto_delete.types == {"sticker", "image"}

    @pytest.mark.asyncio
    async def test_update_unknown_group(self, registry):
        assert not await registry.set_policy("unknown@g.us", warning_threshold=5)


class TestPersistenceFailures:
    @pytest.mark.asyncio
    async def test_failed_write_keeps_memory_state(self, registry, group, monkeypatch):
        async def broken_put(*args, **kwargs):
            raise PersistenceError("disk full")

        monkeypatch.setattr(registry.database, "put", broken_put)
        record = await registry.ban_user(GROUP, MEMBER, "spam", GROUP_ADMIN)
        assert record is not None
        assert registry.is_banned(GROUP, MEMBER)
