"""
Configuration management for the KKN bot.

- **app_configuration.py**: fcntl-locked YAML loader for ``config/app_config.yml``.
  Exposes the command prefix, bot timezone, global admins, the LID to phone
  mapping, moderation policy defaults, database location and transport send
  timeout. Loaded once at startup and re-read only through an explicit
  ``reload()``.
"""
