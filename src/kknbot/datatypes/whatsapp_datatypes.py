"""
WhatsApp chat identifiers and message kinds.

Groups are addressed by JIDs ending in ``@g.us``; users by phone-number JIDs
(``@s.whatsapp.net``) or linked identifiers (``@lid``). Inside the bot users
are always carried as normalised phone numbers (see ``kknbot.util.identity``).
"""

GROUP_SUFFIX = "@g.us"


def is_group_jid(value: str) -> bool:
    """
    Check whether a chat identifier names a group.

    Example:
        >>> is_group_jid("120363025246125486@g.us")
        True
        >>> is_group_jid("628123@s.whatsapp.net")
        False
    """
    return str(value).endswith(GROUP_SUFFIX)


TEXT_MESSAGE = "text"

# Message kinds auto-delete can target
MEDIA_TYPES = ("sticker", "image", "video", "audio", "document")
