"""
Shared datatypes for the KKN bot.

- **whatsapp_datatypes.py**: The group suffix, the `is_group_jid` check and the
  message kinds (text plus the media types auto-delete can target).

- **action_datatypes.py**: ActionType and ModerationRule enums and the
  CheckResult / ModerationVerdict structures returned by the moderation engine.

- **group_state.py**: Per-group configuration (anti-spam, word filter, link
  control, auto-delete, moderation policy) and moderation state (bans, mutes, warnings,
  moderation log) with JSON conversion.

- **schedule_datatypes.py**: Schedule entries, their types and pre-fire
  reminder offsets.
"""
