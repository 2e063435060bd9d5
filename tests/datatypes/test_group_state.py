"""Tests for the persisted group state dataclasses."""

from kknbot.datatypes.action_datatypes import ActionType
from kknbot.datatypes.group_state import (
    AntiSpamConfig,
    AutoDeleteConfig,
    BanRecord,
    GroupState,
    ModerationLogEntry,
    ModerationPolicy,
    MuteRecord,
    WarningEntry,
    WarningRecord,
)


class TestTemplate:
    def test_creator_becomes_admin(self):
        state = GroupState.from_template("g@g.us", "KKN", "628111", 100)
        assert state.admins == {"628111"}
        assert state.created_at == 100

    def test_rules_disabled_by_default(self):
        state = GroupState.from_template("g@g.us", "KKN", "628111", 100)
        assert not state.anti_spam.enabled
        assert not state.word_filter.enabled
        assert not state.link_control.enabled
        assert not state.auto_delete.enabled
        assert state.auto_delete.delay_seconds == 300
        assert state.anti_spam.max_messages == 5
        assert state.anti_spam.window_seconds == 60
        assert state.anti_spam.action is ActionType.WARN
        assert state.word_filter.action is ActionType.DELETE

    def test_policy_is_used(self):
        policy = ModerationPolicy(warning_threshold=5)
        state = GroupState.from_template("g@g.us", "KKN", "", 100, policy)
        assert state.policy.warning_threshold == 5
        assert state.admins == set()


class TestRecords:
    def test_permanent_ban_never_expires(self):
        assert not BanRecord("spam", 100, "628111").is_expired(10**12)

    def test_temporary_mute_expires_at_deadline(self):
        record = MuteRecord("flood", 100, "system", expires_at=700)
        assert not record.is_expired(699)
        assert record.is_expired(700)

    def test_policy_from_dict_ignores_unknown_keys(self):
        policy = ModerationPolicy.from_dict({"spam_mute_minutes": "15", "bogus": 1})
        assert policy.spam_mute_minutes == 15
        assert policy.warning_threshold == 3

    def test_auto_delete_covers_only_its_types_while_enabled(self):
        config = AutoDeleteConfig(enabled=True, types={"sticker"})
        assert config.covers("sticker")
        assert not config.covers("image")
        assert not config.covers("text")
        config.enabled = False
        assert not config.covers("sticker")

    def test_auto_delete_from_dict_drops_unknown_types(self):
        config = AutoDeleteConfig.from_dict({"enabled": True, "types": ["Sticker", "gif"], "delay_seconds": "45"})
        assert config.types == {"sticker"}
        assert config.delay_seconds == 45


def test_group_state_survives_serialisation():
    state = GroupState.from_template("g@g.us", "KKN", "628111", 100)
    state.moderators.add("628222")
    state.anti_spam = AntiSpamConfig(enabled=True, max_messages=3, window_seconds=30, action=ActionType.MUTE)
    state.word_filter.blacklist.update({"judi", "slot"})
    state.link_control.whitelist.add("kkn.ac.id")
    state.auto_delete = AutoDeleteConfig(enabled=True, types={"sticker", "video"}, delay_seconds=60)
    state.banned_users["628333"] = BanRecord("spam", 100, "628111", expires_at=4000)
    state.muted_users["628444"] = MuteRecord("flood", 100, "system")
    state.warnings["628555"] = WarningRecord(2, [WarningEntry("rude", 90, "628111"), WarningEntry("rude", 95, "628111")])
    state.moderation_log.append(ModerationLogEntry("ban", "628333", "628111", 100, "spam", 60))

    restored = GroupState.from_dict(state.to_dict())

    assert restored == state
    assert restored.anti_spam.action is ActionType.MUTE
    assert restored.to_dict()["word_filter"]["blacklist"] == ["judi", "slot"]
