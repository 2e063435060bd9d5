"""
Inbound message handling.

- **message_listener.py**: MessageListener, which creates group state on
  first contact, runs the moderation engine and dispatches commands.
"""
