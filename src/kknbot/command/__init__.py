"""
Chat command layer.

- **context.py**: BotServices (the shared components) and CommandContext
  (per-invocation arguments, sender and reply helper).
- **command_types.py**: the Command definition and Permission levels.
- **dispatcher.py**: prefix parsing, alias table, group-only and permission
  gates, and the error boundary that turns exceptions into replies.
- **general_cmds.py**, **moderation_cmds.py**, **moderation_config_cmds.py**,
  **schedule_cmds.py**: the handlers, each module exporting ``COMMANDS``.
"""
