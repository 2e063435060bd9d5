"""
Utility helpers for the KKN bot.

- **logger.py**: Centralized logging configuration with colored console output
  written through prompt_toolkit, a rotating per-session log file under
  ``logs/`` and a global exception hook.

- **identity.py**: Normalisation of WhatsApp identifiers (``@s.whatsapp.net``,
  ``@c.us``, multi-device suffixes, ``@lid`` linked identifiers) to canonical
  phone numbers used by every permission and moderation lookup.

- **clock.py**: Wall-clock helpers returning unix seconds and timezone-aware
  datetimes in the configured bot timezone.
"""
