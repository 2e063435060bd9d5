"""Tests for command parsing, gating and the dispatcher's error boundary."""

import pytest

from conftest import GLOBAL_ADMIN, GROUP, GROUP_ADMIN, MEMBER, make_message
from kknbot.command.command_types import Command, Permission
from kknbot.command.dispatcher import (
    GENERIC_FAILURE_TEXT,
    GROUP_ONLY_TEXT,
    PERMISSION_TEXT,
    CommandDispatcher,
    all_commands,
    build_command_table,
)
from kknbot.errors import NotFoundError, PersistenceError, ValidationError

PRIVATE_CHAT = f"{MEMBER}@s.whatsapp.net"


async def _boom(ctx):
    raise RuntimeError("kaboom")


async def _storage_down(ctx):
    raise PersistenceError("disk full")


async def _missing(ctx):
    raise NotFoundError("Nothing here.")


async def _needs_args(ctx):
    raise ValidationError("Missing argument.")


async def _echo(ctx):
    await ctx.reply(f"{ctx.command}:{' '.join(ctx.args)}")


TEST_COMMANDS = [
    Command("boom", _boom, "Always fails"),
    Command("storage", _storage_down, "Storage failure"),
    Command("missing", _missing, "Not found"),
    Command("needs", _needs_args, "Needs args", usage="needs <thing>"),
    Command("echo", _echo, "Echo", aliases=["say"]),
]


@pytest.fixture
def dispatcher(services):
    return CommandDispatcher(services)


@pytest.fixture
def test_dispatcher(services):
    return CommandDispatcher(services, commands=TEST_COMMANDS)


class TestParsing:
    def test_parse_splits_token_and_args(self, dispatcher):
        assert dispatcher.parse(".ban @628 spamming links") == ("ban", ["@628", "spamming", "links"])

    def test_token_is_lower_cased(self, dispatcher):
        assert dispatcher.parse("  .HELP  ") == ("help", [])

    @pytest.mark.parametrize("text", ["hello", "", ".", ".   ", "!help"])
    def test_non_commands(self, dispatcher, text):
        assert dispatcher.parse(text) is None

    def test_every_alias_resolves(self, dispatcher):
        assert dispatcher.lookup("menu").name == "help"
        assert dispatcher.lookup("jadwal").name == "schedule"
        assert dispatcher.lookup("nope") is None

    def test_default_command_table_has_no_duplicates(self):
        table = build_command_table(all_commands())
        assert "help" in table and "agenda" in table

    def test_duplicate_tokens_are_rejected(self):
        commands = [Command("echo", _echo, "a"), Command("other", _echo, "b", aliases=["ECHO"])]
        with pytest.raises(ValueError):
            build_command_table(commands)


class TestDispatch:
    @pytest.mark.asyncio
    async def test_plain_text_is_not_a_command(self, dispatcher, transport):
        assert not await dispatcher.dispatch(make_message("good morning"))
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_unknown_command(self, dispatcher, transport):
        assert await dispatcher.dispatch(make_message(".frobnicate"))
        assert "*.frobnicate* not found" in transport.texts()[0]

    @pytest.mark.asyncio
    async def test_alias_runs_the_command(self, test_dispatcher, transport):
        await test_dispatcher.dispatch(make_message(".say hi there"))
        assert transport.texts() == ["echo:hi there"]

    @pytest.mark.asyncio
    async def test_help_in_private_chat(self, dispatcher, transport):
        await dispatcher.dispatch(make_message(".menu", chat_id=PRIVATE_CHAT))
        assert "KKN Bot Menu" in transport.texts(PRIVATE_CHAT)[0]

    @pytest.mark.asyncio
    async def test_group_only_command_in_private_chat(self, dispatcher, transport):
        await dispatcher.dispatch(make_message(".ban @628333333333", chat_id=PRIVATE_CHAT))
        assert transport.texts() == [GROUP_ONLY_TEXT]

    @pytest.mark.asyncio
    async def test_member_cannot_moderate(self, dispatcher, transport, group):
        await dispatcher.dispatch(make_message(".ban 628333333333"))
        assert transport.texts() == [PERMISSION_TEXT[Permission.MODERATOR]]

    @pytest.mark.asyncio
    async def test_member_cannot_change_settings(self, dispatcher, transport, group):
        await dispatcher.dispatch(make_message(".antispam on"))
        assert transport.texts() == [PERMISSION_TEXT[Permission.ADMIN]]

    @pytest.mark.asyncio
    async def test_global_admin_only_command(self, dispatcher, transport):
        await dispatcher.dispatch(make_message(".reloadconfig", sender=GROUP_ADMIN))
        await dispatcher.dispatch(make_message(".reloadconfig", sender=GLOBAL_ADMIN))

        denied, accepted = transport.texts()
        assert denied == PERMISSION_TEXT[Permission.GLOBAL_ADMIN]
        assert accepted.startswith("✅ Configuration reloaded")

    @pytest.mark.asyncio
    async def test_validation_error_shows_usage(self, dispatcher, transport, group):
        await dispatcher.dispatch(make_message(".ban", sender=GROUP_ADMIN))
        text = transport.texts()[0]
        assert text.startswith("❌ Please mention the user")
        assert "Usage: *.ban @user [reason] [minutes]*" in text

    @pytest.mark.asyncio
    async def test_validation_error_falls_back_to_command_usage(self, test_dispatcher, transport):
        await test_dispatcher.dispatch(make_message(".needs"))
        assert transport.texts() == ["❌ Missing argument.\n\nUsage: *.needs <thing>*"]

    @pytest.mark.asyncio
    async def test_not_found_error_is_reported(self, test_dispatcher, transport):
        await test_dispatcher.dispatch(make_message(".missing"))
        assert transport.texts() == ["❌ Nothing here."]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("command", [".boom", ".storage"])
    async def test_unexpected_errors_get_a_generic_reply(self, test_dispatcher, transport, command):
        assert await test_dispatcher.dispatch(make_message(command))
        assert transport.texts() == [GENERIC_FAILURE_TEXT]

    @pytest.mark.asyncio
    async def test_failed_reply_does_not_raise(self, test_dispatcher, transport):
        transport.fail_sends = True
        assert await test_dispatcher.dispatch(make_message(".echo hi", chat_id=GROUP))
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_prefix_follows_config_reload(self, dispatcher, transport, app_config):
        app_config.data["bot"]["prefix"] = "!"
        assert not await dispatcher.dispatch(make_message(".ping"))
        assert await dispatcher.dispatch(make_message("!ping"))
        assert transport.texts() == ["🏓 Pong!"]
