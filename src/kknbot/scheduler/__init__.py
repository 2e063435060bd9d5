"""
Scheduling subsystem.

- **time_parsing.py**: pure parsers for schedule dates, clock times, relative
  reminder offsets and meeting durations, plus human-readable formatting.
- **schedule_scheduler.py**: min-heap timer runner that sends pre-fire
  reminders and due notices, marks entries sent / completed, and re-registers
  active entries after a restart.
"""
