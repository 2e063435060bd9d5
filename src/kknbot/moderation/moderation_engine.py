"""
Per-message moderation for group chats.

For every group message from a regular member the engine runs, in order,
anti-spam, word filter and link control. Each check reports whether the
message should be deleted and which action it executed; the caller deletes
the message once if any check asked for it. Media messages of the kinds a
group's auto-delete covers are removed after its delay. Admins and
moderators skip every check.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import List, Set

from kknbot.configuration.app_configuration import AppConfig
from kknbot.datatypes.action_datatypes import ActionType, CheckResult, ModerationRule, ModerationVerdict
from kknbot.datatypes.group_state import GroupState
from kknbot.moderation.detectors import find_blacklisted_words, find_disallowed_links
from kknbot.moderation.rate_window import RateTracker
from kknbot.registry.group_registry import GroupRegistry
from kknbot.transport.base import InboundMessage, Transport, bounded_delete, bounded_remove, bounded_send
from kknbot.util.identity import to_jid
from kknbot.util.logger import get_logger

logger = get_logger("moderation_engine")

SYSTEM_MODERATOR = "system"


@dataclass(slots=True)
class EnforcementResult:
    """What an enforced action did to the user."""
    action: ActionType
    warning_count: int = 0
    escalated: bool = False
    removed: bool = False


class ModerationEngine:
    """Evaluates group messages against the group's rules and enforces actions."""

    def __init__(
        self,
        registry: GroupRegistry,
        transport: Transport,
        config: AppConfig,
        *,
        rate_tracker: RateTracker | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.registry = registry
        self.transport = transport
        self.config = config
        self.rate_tracker = rate_tracker or RateTracker()
        self._sleep = sleep
        self._pending_deletes: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Pipeline entry points
    # ------------------------------------------------------------------

    async def process_message(self, message: InboundMessage) -> ModerationVerdict:
        """Moderate one inbound group message end to end.

        Muted senders have the message deleted, banned senders are removed
        from the group again, everyone else goes through :meth:`check_message`
        and has the message deleted at most once. A message the rules keep is
        then handed to :meth:`schedule_auto_delete`.
        """
        group_id = message.chat_id
        user = self.registry.normalize(message.sender)
        timeout = self.config.send_timeout_seconds

        if self.registry.is_muted(group_id, user):
            logger.debug("[MODERATION ENGINE] Deleting message from muted user %s in %s", user, group_id)
            if message.message_key:
                await bounded_delete(self.transport, group_id, message.message_key, timeout=timeout)
            return ModerationVerdict(sender_muted=True)

        if self.registry.is_banned(group_id, user):
            logger.info("[MODERATION ENGINE] Banned user %s spoke in %s, removing", user, group_id)
            await bounded_remove(self.transport, group_id, [to_jid(user)], timeout=timeout)
            return ModerationVerdict(sender_banned=True)

        verdict = await self.check_message(group_id, user, message.text)
        if verdict.delete:
            if message.message_key:
                await bounded_delete(self.transport, group_id, message.message_key, timeout=timeout)
        else:
            verdict.auto_delete_after = self.schedule_auto_delete(message)
        return verdict

    async def check_message(self, group_id: str, user_id: str, text: str) -> ModerationVerdict:
        """Run all three rule checks and aggregate their results."""
        state = self.registry.get_group(group_id)
        if state is None or self.registry.is_moderator(group_id, user_id):
            return ModerationVerdict(skipped=True)

        user = self.registry.normalize(user_id)
        results = [
            await self.check_anti_spam(state, user),
            await self.check_word_filter(state, user, text),
            await self.check_link_control(state, user, text),
        ]
        verdict = ModerationVerdict(results=results)
        if verdict.rules:
            logger.info(
                "[MODERATION ENGINE] %s in %s triggered %s",
                user, group_id, ", ".join(str(rule) for rule in verdict.rules),
            )
        return verdict

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    async def check_anti_spam(self, state: GroupState, user: str) -> CheckResult:
        config = state.anti_spam
        result = CheckResult(rule=ModerationRule.ANTI_SPAM)
        if not config.enabled:
            return result

        window = self.rate_tracker.window(state.group_id, user)
        if window.record(self.registry.clock(), config.window_seconds) <= config.max_messages:
            return result

        # A fresh window starts with the next message
        self.rate_tracker.reset(state.group_id, user)

        minutes = {
            ActionType.MUTE: state.policy.spam_mute_minutes,
            ActionType.KICK: state.policy.spam_kick_ban_minutes,
        }.get(config.action)
        outcome = await self.enforce(state.group_id, user, config.action, "Spam detected", duration_minutes=minutes)
        await self._notify(state, user, ModerationRule.ANTI_SPAM, outcome, minutes)
        return self._result(result, outcome)

    async def check_word_filter(self, state: GroupState, user: str, text: str) -> CheckResult:
        config = state.word_filter
        result = CheckResult(rule=ModerationRule.WORD_FILTER)
        if not config.enabled or not config.blacklist:
            return result

        matches = find_blacklisted_words(text, config.blacklist)
        if not matches:
            return result

        result.matches = matches
        minutes = state.policy.filter_mute_minutes if config.action is ActionType.MUTE else None
        outcome = await self.enforce(
            state.group_id, user, config.action, f"Blacklisted words: {', '.join(matches)}", duration_minutes=minutes
        )
        await self._notify(state, user, ModerationRule.WORD_FILTER, outcome, minutes)
        return self._result(result, outcome)

    async def check_link_control(self, state: GroupState, user: str, text: str) -> CheckResult:
        config = state.link_control
        result = CheckResult(rule=ModerationRule.LINK_CONTROL)
        if not config.enabled:
            return result

        disallowed = find_disallowed_links(text, config.whitelist)
        if not disallowed:
            return result

        result.matches = disallowed
        minutes = state.policy.filter_mute_minutes if config.action is ActionType.MUTE else None
        outcome = await self.enforce(state.group_id, user, config.action, "Unauthorized link", duration_minutes=minutes)
        await self._notify(state, user, ModerationRule.LINK_CONTROL, outcome, minutes)
        return self._result(result, outcome)

    @staticmethod
    def _result(result: CheckResult, outcome: EnforcementResult) -> CheckResult:
        result.delete = True
        result.action = outcome.action
        result.warning_count = outcome.warning_count
        result.escalated = outcome.escalated
        return result

    # ------------------------------------------------------------------
    # Auto-delete
    # ------------------------------------------------------------------

    def schedule_auto_delete(self, message: InboundMessage) -> int | None:
        """Queue the delayed removal of a media message the group's auto-delete covers.

        Returns:
            int | None: The delay in seconds, or None when nothing was queued
            (auto-delete off, kind not covered, sender is a moderator).
        """
        group_id = message.chat_id
        state = self.registry.get_group(group_id)
        if state is None or not message.message_key or not state.auto_delete.covers(message.message_type):
            return None
        if self.registry.is_moderator(group_id, message.sender):
            return None

        delay = state.auto_delete.delay_seconds
        task = asyncio.create_task(
            self._delete_later(group_id, message.message_key, delay), name=f"kknbot-auto-delete-{message.message_key}"
        )
        self._pending_deletes.add(task)
        task.add_done_callback(self._pending_deletes.discard)
        logger.debug(
            "[MODERATION ENGINE] %s from %s in %s will be deleted in %ds",
            message.message_type, message.sender, group_id, delay,
        )
        return delay

    async def _delete_later(self, group_id: str, message_key: str, delay: int) -> None:
        await self._sleep(delay)
        await bounded_delete(self.transport, group_id, message_key, timeout=self.config.send_timeout_seconds)

    @property
    def pending_deletes(self) -> List[asyncio.Task]:
        return list(self._pending_deletes)

    async def shutdown(self) -> None:
        """Cancel auto-deletes that have not fired yet."""
        pending = self.pending_deletes
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.info("[MODERATION ENGINE] Cancelled %d pending auto-delete(s)", len(pending))

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def enforce(
        self,
        group_id: str,
        user: str,
        action: ActionType,
        reason: str,
        *,
        moderator: str = SYSTEM_MODERATOR,
        duration_minutes: int | None = None,
    ) -> EnforcementResult:
        """Apply ``action`` to ``user``; shared by the rules and the manual commands.

        Only the warning that brings the user exactly to the group's warning
        threshold escalates to a temporary ban and removal from the group, so
        one message tripping several warn rules bans at most once.
        """
        outcome = EnforcementResult(action=action)

        if action is ActionType.WARN:
            outcome.warning_count = await self.registry.warn_user(group_id, user, reason, moderator)
            state = self.registry.get_group(group_id)
            if state is not None and outcome.warning_count == state.policy.warning_threshold:
                ban_minutes = state.policy.warning_ban_minutes
                await self.registry.ban_user(
                    group_id, user, f"Reached {outcome.warning_count} warnings", SYSTEM_MODERATOR, ban_minutes
                )
                outcome.escalated = True
                outcome.removed = await self._remove(group_id, user)
                logger.info("[MODERATION ENGINE] %s escalated to a %d minute ban in %s", user, ban_minutes, group_id)

        elif action is ActionType.MUTE:
            await self.registry.mute_user(group_id, user, reason, moderator, duration_minutes)

        elif action in (ActionType.KICK, ActionType.BAN):
            await self.registry.ban_user(group_id, user, reason, moderator, duration_minutes)
            outcome.removed = await self._remove(group_id, user)

        return outcome

    async def _remove(self, group_id: str, user: str) -> bool:
        return await bounded_remove(
            self.transport, group_id, [to_jid(user)], timeout=self.config.send_timeout_seconds
        )

    async def _notify(
        self,
        state: GroupState,
        user: str,
        rule: ModerationRule,
        outcome: EnforcementResult,
        minutes: int | None,
    ) -> None:
        lines: List[str] = [RULE_TITLES[rule], ""]
        mention = f"@{user}"
        if outcome.action is ActionType.WARN:
            lines.append(f"{mention} has been warned ({outcome.warning_count}/{state.policy.warning_threshold}).")
            if outcome.escalated:
                lines.append(
                    f"Warning limit reached: banned for {state.policy.warning_ban_minutes} minutes."
                )
        elif outcome.action is ActionType.MUTE:
            lines.append(f"{mention} has been muted for {minutes} minutes.")
        elif outcome.action in (ActionType.KICK, ActionType.BAN):
            lines.append(f"{mention} has been removed from the group.")
        else:
            lines.append(f"{mention}, your message was removed.")

        await bounded_send(
            self.transport,
            state.group_id,
            "\n".join(lines),
            mentions=[to_jid(user)],
            timeout=self.config.send_timeout_seconds,
        )


RULE_TITLES = {
    ModerationRule.ANTI_SPAM: "⚠️ *Anti-Spam*",
    ModerationRule.WORD_FILTER: "⚠️ *Word Filter*",
    ModerationRule.LINK_CONTROL: "⚠️ *Link Control*",
}
