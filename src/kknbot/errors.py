"""
Exception taxonomy shared by every bot component.

Command handlers raise these; the command dispatcher converts each class into
the user-facing reply that matches it (usage hint, access denied, not found,
generic failure) so no exception escapes into the message loop.
"""

from __future__ import annotations


class KknBotError(Exception):
    """Base class for every error raised deliberately by the bot."""


class ValidationError(KknBotError):
    """Malformed command arguments or an invalid configuration value.

    Attributes:
        usage: Optional usage line shown to the user alongside the message.
    """

    def __init__(self, message: str, usage: str | None = None) -> None:
        super().__init__(message)
        self.usage = usage


class PermissionDeniedError(KknBotError):
    """The caller lacks the admin or moderator rights a command requires."""


class NotFoundError(KknBotError):
    """A referenced group, schedule entry or user record does not exist."""


class PersistenceError(KknBotError):
    """Reading from or writing to the persistent store failed."""


class TransportError(KknBotError):
    """An outbound send, delete or participant removal failed or timed out."""
