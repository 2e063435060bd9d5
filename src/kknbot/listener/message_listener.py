"""Inbound message pipeline: lazy group setup, moderation, then command dispatch."""

from __future__ import annotations

import asyncio

from kknbot.command.dispatcher import CommandDispatcher
from kknbot.command.context import BotServices
from kknbot.transport.base import InboundMessage
from kknbot.util.logger import get_logger

logger = get_logger("message_listener")


class MessageListener:
    """Entry point for every message the transport delivers."""

    def __init__(self, services: BotServices, dispatcher: CommandDispatcher) -> None:
        self.services = services
        self.dispatcher = dispatcher

    async def on_message(self, message: InboundMessage) -> None:
        """Handle one message; never raises."""
        try:
            await self.handle(message)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("[MESSAGE LISTENER] Failed to handle message in %s", message.chat_id)

    async def handle(self, message: InboundMessage) -> None:
        if not message.sender or not (message.text or message.is_media):
            return

        if message.is_group:
            await self.ensure_group(message.chat_id)
            verdict = await self.services.engine.process_message(message)
            if verdict.delete or verdict.sender_banned:
                return

        if message.text:
            await self.dispatcher.dispatch(message)

    async def ensure_group(self, group_id: str) -> None:
        """Create the group's state from the template the first time it is seen.

        The WhatsApp group admins become the bot admins. When the metadata
        cannot be fetched the group starts without admins; ``init`` can be
        run later.
        """
        registry = self.services.registry
        if registry.get_group(group_id) is not None:
            return

        name = "Unknown"
        admins: list[str] = []
        try:
            metadata = await asyncio.wait_for(
                self.services.transport.get_group_metadata(group_id),
                timeout=self.services.config.send_timeout_seconds,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("[MESSAGE LISTENER] Could not fetch metadata of %s: %s", group_id, exc)
        else:
            name = metadata.subject or name
            admins = list(metadata.admin_ids)
            if metadata.owner:
                admins.append(metadata.owner)

        await registry.initialize_group(group_id, name, extra_admins=admins)
