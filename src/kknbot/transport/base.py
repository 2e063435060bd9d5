"""
The messaging transport seam.

The bot core never talks to WhatsApp directly; it consumes an object that
implements :class:`Transport` and receives :class:`InboundMessage` events.
Outbound calls made by the core go through the ``bounded_*`` helpers, which
cap each call at the configured send timeout and turn failures into logged
:class:`TransportError` reports instead of exceptions.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, List, Protocol, Sequence, runtime_checkable

from kknbot.datatypes.whatsapp_datatypes import MEDIA_TYPES, TEXT_MESSAGE, is_group_jid
from kknbot.errors import TransportError
from kknbot.util.logger import get_logger

logger = get_logger("transport")


@dataclass(slots=True)
class Participant:
    id: str
    is_admin: bool = False


@dataclass(slots=True)
class GroupMetadata:
    subject: str
    participants: List[Participant] = field(default_factory=list)
    owner: str = ""

    @property
    def admin_ids(self) -> List[str]:
        return [p.id for p in self.participants if p.is_admin]


@dataclass(slots=True)
class InboundMessage:
    """A message delivered by the transport.

    Attributes:
        chat_id: Group JID (``...@g.us``) or the sender's JID for direct chats.
        sender: Raw sender identifier, normalised later by the consumer.
        text: Message body (caption for media).
        message_key: Opaque transport handle used to delete the message.
        mentions: Raw identifiers mentioned in the message.
        push_name: Display name chosen by the sender.
        message_type: ``text`` or one of the media kinds (``sticker``, ``image``...).
    """
    chat_id: str
    sender: str
    text: str
    message_key: str = ""
    mentions: List[str] = field(default_factory=list)
    push_name: str = ""
    message_type: str = TEXT_MESSAGE

    @property
    def is_group(self) -> bool:
        return is_group_jid(self.chat_id)

    @property
    def is_media(self) -> bool:
        return self.message_type in MEDIA_TYPES


@runtime_checkable
class Transport(Protocol):
    async def send_message(self, chat_id: str, text: str, mentions: Sequence[str] = ()) -> None: ...

    async def delete_message(self, chat_id: str, message_key: str) -> None: ...

    async def remove_participant(self, group_id: str, user_ids: Sequence[str]) -> None: ...

    async def get_group_metadata(self, group_id: str) -> GroupMetadata: ...


async def _bounded(call: Awaitable[None], timeout: float, description: str) -> bool:
    try:
        await asyncio.wait_for(call, timeout=timeout)
        return True
    except asyncio.TimeoutError:
        error = TransportError(f"{description} timed out after {timeout:.0f}s")
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        error = TransportError(f"{description} failed: {exc}")
    logger.warning("[TRANSPORT] %s", error)
    return False


async def bounded_send(
    transport: Transport,
    chat_id: str,
    text: str,
    *,
    mentions: Sequence[str] = (),
    timeout: float,
) -> bool:
    """Send a message; returns False (after logging) if it failed or timed out."""
    return await _bounded(transport.send_message(chat_id, text, mentions), timeout, f"send to {chat_id}")


async def bounded_delete(transport: Transport, chat_id: str, message_key: str, *, timeout: float) -> bool:
    return await _bounded(transport.delete_message(chat_id, message_key), timeout, f"delete in {chat_id}")


async def bounded_remove(transport: Transport, group_id: str, user_ids: Sequence[str], *, timeout: float) -> bool:
    return await _bounded(
        transport.remove_participant(group_id, list(user_ids)), timeout, f"remove {list(user_ids)} from {group_id}"
    )
