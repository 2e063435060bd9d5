"""
Automatic group moderation.

- **rate_window.py**: sliding timestamp windows per (group, user) for anti-spam.
- **detectors.py**: blacklist word matching and link extraction / whitelisting.
- **moderation_engine.py**: runs anti-spam, word filter and link control for
  each message, enforces warn / mute / kick / delete actions (with warning
  escalation to a temporary ban), handles muted and banned senders and
  queues delayed auto-deletion of media.
"""
