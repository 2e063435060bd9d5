"""
KKN Bot - WhatsApp Group Assistant for KKN Student Groups

KKN Bot keeps community-service student groups orderly and on schedule: it
moderates group chats, delivers schedule reminders and answers chat commands.

Core Components:

- **Moderation Engine**: Anti-spam rate windows, word filter and link control
  with per-group policies and escalating actions
- **Group Registry**: Per-group state (admins, moderators, bans, mutes,
  warnings, logs) persisted through the document store
- **Schedule Scheduler**: Deadline, meeting and task reminders with timers
  re-armed after restart
- **Command Dispatcher**: Prefix commands with aliases, permission gates and
  an error boundary around every handler

Usage:
    from kknbot.main import main
    main()  # Starts the bot on the console transport
"""
