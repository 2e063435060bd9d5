"""Local console transport for running the bot without a WhatsApp connection.

Each input line is ``<chat> <sender> <text>``: ``<chat>`` is a group JID
(``...@g.us``) or anything else for a direct chat, ``<sender>`` a phone
number or JID. Words of the form ``@628123...`` in the text are delivered as
mentions. A text starting with a media tag such as ``[sticker]`` or ``[image]``
is delivered as that kind of media, with the rest as its caption. Lines
starting with ``/`` are console controls (``/help``).
"""

from __future__ import annotations

import asyncio
import itertools
import re
from collections.abc import Awaitable, Callable
from typing import Dict, List, Sequence

from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import FormattedText
from prompt_toolkit.patch_stdout import patch_stdout
from prompt_toolkit.shortcuts import PromptSession

from kknbot.datatypes.whatsapp_datatypes import GROUP_SUFFIX, MEDIA_TYPES, TEXT_MESSAGE
from kknbot.transport.base import GroupMetadata, InboundMessage, Participant
from kknbot.util.identity import normalize_to_phone, to_jid
from kknbot.util.logger import get_logger

logger = get_logger("console_transport")

MENTION_PATTERN = re.compile(r"@(\d{6,})")
MEDIA_PATTERN = re.compile(r"^\[(" + "|".join(MEDIA_TYPES) + r")\]\s*(.*)$", re.DOTALL)

MessageHandler = Callable[[InboundMessage], Awaitable[None]]

CONSOLE_HELP = [
    "  <chat> <sender> <text>          deliver a message, e.g. kkn@g.us 628123 .help",
    "  <chat> <sender> [image] <text>  deliver media with a caption (sticker, image, video, audio, document)",
    "  /group <chat> <subject...>      create or rename a simulated group",
    "  /admin <chat> <phone>           make a participant a WhatsApp group admin",
    "  /groups                         list simulated groups",
    "  /quit                           shut the bot down",
]


def console_print(message: str, style: str = "") -> None:
    """Render text via prompt_toolkit without breaking the active prompt."""
    formatted: FormattedText | str
    if style:
        formatted = FormattedText([(style, message)])
    else:
        formatted = message
    print_formatted_text(formatted)


class ConsoleTransport:
    """A Transport that prints outbound traffic and reads inbound messages from stdin.

    Attributes:
        groups (Dict[str, GroupMetadata]): Simulated group metadata by group JID.
        sent (List[tuple]): Every outbound message as ``(chat_id, text, mentions)``.
        shutdown_event (asyncio.Event): Set when the operator quits.
    """

    def __init__(self) -> None:
        self.groups: Dict[str, GroupMetadata] = {}
        self.sent: List[tuple] = []
        self.shutdown_event = asyncio.Event()
        self._keys = itertools.count(1)

    # ------------------------------------------------------------------
    # Transport protocol
    # ------------------------------------------------------------------

    async def send_message(self, chat_id: str, text: str, mentions: Sequence[str] = ()) -> None:
        self.sent.append((chat_id, text, list(mentions)))
        console_print(f"[{chat_id}] bot:", "ansicyan")
        console_print(text)

    async def delete_message(self, chat_id: str, message_key: str) -> None:
        console_print(f"[{chat_id}] message {message_key} deleted", "ansiyellow")

    async def remove_participant(self, group_id: str, user_ids: Sequence[str]) -> None:
        metadata = self.groups.get(group_id)
        removed = {normalize_to_phone(user) for user in user_ids}
        if metadata is not None:
            metadata.participants = [
                p for p in metadata.participants if normalize_to_phone(p.id) not in removed
            ]
        console_print(f"[{group_id}] removed {', '.join(sorted(removed))}", "ansired")

    async def get_group_metadata(self, group_id: str) -> GroupMetadata:
        return self._group(group_id)

    # ------------------------------------------------------------------
    # Simulation helpers
    # ------------------------------------------------------------------

    def _group(self, group_id: str) -> GroupMetadata:
        metadata = self.groups.get(group_id)
        if metadata is None:
            metadata = self.groups[group_id] = GroupMetadata(subject=group_id.removesuffix(GROUP_SUFFIX))
        return metadata

    def _join(self, group_id: str, sender: str) -> None:
        metadata = self._group(group_id)
        jid = to_jid(normalize_to_phone(sender))
        if all(p.id != jid for p in metadata.participants):
            metadata.participants.append(Participant(id=jid))

    def set_admin(self, group_id: str, phone: str) -> None:
        metadata = self._group(group_id)
        jid = to_jid(normalize_to_phone(phone))
        for participant in metadata.participants:
            if participant.id == jid:
                participant.is_admin = True
                return
        metadata.participants.append(Participant(id=jid, is_admin=True))

    def parse_line(self, line: str) -> InboundMessage | None:
        """Turn ``<chat> <sender> <text>`` into an InboundMessage; None if malformed."""
        parts = line.strip().split(maxsplit=2)
        if len(parts) < 3:
            return None
        chat_id, sender, text = parts
        message_type = TEXT_MESSAGE
        media = MEDIA_PATTERN.match(text)
        if media:
            message_type, text = media.group(1), media.group(2)
        message = InboundMessage(
            chat_id=chat_id,
            sender=sender,
            text=text,
            message_type=message_type,
            message_key=f"console-{next(self._keys)}",
            mentions=[to_jid(number) for number in MENTION_PATTERN.findall(text)],
        )
        if message.is_group:
            self._join(chat_id, sender)
        return message

    def handle_control(self, line: str) -> None:
        parts = line.strip().split()
        name, args = parts[0].lower(), parts[1:]

        if name in ("/quit", "/exit", "/stop"):
            console_print("Shutdown requested.", "ansiyellow")
            self.shutdown_event.set()
        elif name == "/group" and len(args) >= 2:
            self._group(args[0]).subject = " ".join(args[1:])
            console_print(f"Group {args[0]} is now '{' '.join(args[1:])}'", "ansigreen")
        elif name == "/admin" and len(args) == 2:
            self.set_admin(args[0], args[1])
            console_print(f"{args[1]} is an admin of {args[0]}", "ansigreen")
        elif name == "/groups":
            if not self.groups:
                console_print("No simulated groups yet.", "ansiyellow")
            for group_id, metadata in self.groups.items():
                admins = ", ".join(metadata.admin_ids) or "none"
                console_print(f"  • {group_id} '{metadata.subject}' ({len(metadata.participants)} members, admins: {admins})")
        else:
            for help_line in CONSOLE_HELP:
                console_print(help_line, "ansibrightblack")

    # ------------------------------------------------------------------
    # Input loop
    # ------------------------------------------------------------------

    async def run(self, on_message: MessageHandler) -> None:
        """Read input lines until ``/quit`` or end of input, feeding messages to ``on_message``."""
        session = PromptSession("> ")
        console_print("KKN Bot console transport. Type /help for usage.", "ansigreen")

        with patch_stdout():
            while not self.shutdown_event.is_set():
                try:
                    line = await session.prompt_async()
                except (EOFError, KeyboardInterrupt):
                    console_print("\nShutdown requested by user.", "ansiyellow")
                    self.shutdown_event.set()
                    break

                if not line.strip():
                    continue
                if line.lstrip().startswith("/"):
                    self.handle_control(line)
                    continue

                message = self.parse_line(line)
                if message is None:
                    console_print("Expected: <chat> <sender> <text>", "ansired")
                    continue
                try:
                    await on_message(message)
                except Exception as exc:
                    logger.exception("[CONSOLE] Error while handling input: %s", exc)
                    console_print(f"Error: {exc}", "ansired")
