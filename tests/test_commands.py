"""Tests for WhatsApp-side commands."""

import pytest

from stickerbridge.errors import NotReadyError, SendFailedError
from stickerbridge.whatsapp.commands import WhatsAppCommands, parse_command, parse_text

DM = "911111111111@s.whatsapp.net"
GROUP = "120363000000000000@g.us"


def _msg(jid, text=None, **message):
    if text is not None:
        message["conversation"] = text
    return {"key": {"remoteJid": jid, "id": "ABC"}, "message": message}


class TestParsing:

    def test_conversation(self):
        assert parse_text(_msg(DM, "hi")) == "hi"

    def test_extended_text(self):
        assert parse_text(_msg(DM, extendedTextMessage={"text": "quoted reply"})) == "quoted reply"

    def test_caption(self):
        assert parse_text(_msg(DM, imageMessage={"caption": "look"})) == "look"

    def test_no_text(self):
        assert parse_text({"key": {"remoteJid": DM}}) == ""

    @pytest.mark.parametrize("text,expected", [
        ("!ping", ("ping", "")),
        ("!ALL meeting at 5", ("all", "meeting at 5")),
        ("!  mentionall", ("mentionall", "")),
        ("!", None),
        ("ping", None),
        ("", None),
    ])
    def test_parse_command(self, text, expected):
        assert parse_command(text, "!") == expected


class TestCommands:

    @pytest.mark.asyncio
    async def test_hello_bot(self, ready_supervisor):
        commands = WhatsAppCommands(ready_supervisor)
        msg = _msg(DM, "Hello Bot")

        await commands.handle(msg)

        ready_supervisor.send_text.assert_awaited_once_with(DM, "Hi 👋 I am alive on WhatsApp.", quoted=msg)

    @pytest.mark.asyncio
    async def test_ping(self, ready_supervisor):
        commands = WhatsAppCommands(ready_supervisor)
        msg = _msg(DM, "!ping")

        await commands.handle(msg)

        ready_supervisor.send_text.assert_awaited_once_with(DM, "Pong from WhatsApp ✅", quoted=msg)

    @pytest.mark.asyncio
    async def test_custom_prefix(self, ready_supervisor):
        commands = WhatsAppCommands(ready_supervisor, prefix=".")

        await commands.handle(_msg(DM, "!ping"))
        ready_supervisor.send_text.assert_not_awaited()

        await commands.handle(_msg(DM, ".ping"))
        ready_supervisor.send_text.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_mention_all_outside_group(self, ready_supervisor):
        commands = WhatsAppCommands(ready_supervisor)
        msg = _msg(DM, "!all")

        await commands.handle(msg)

        ready_supervisor.group_metadata.assert_not_awaited()
        ready_supervisor.send_text.assert_awaited_once_with(
            DM, "❌ This command only works in groups.", quoted=msg
        )

    @pytest.mark.asyncio
    async def test_mention_all_in_group(self, ready_supervisor):
        ready_supervisor.group_metadata.return_value = {
            "participants": [{"id": "1@s.whatsapp.net"}, {"id": "2@s.whatsapp.net"}, {"admin": "x"}],
        }
        commands = WhatsAppCommands(ready_supervisor)

        await commands.handle(_msg(GROUP, "!mentionall standup now"))

        ready_supervisor.group_metadata.assert_awaited_once_with(GROUP)
        ready_supervisor.send_text.assert_awaited_once_with(
            GROUP,
            "standup now\n\n@everyone",
            mentions=["1@s.whatsapp.net", "2@s.whatsapp.net"],
        )

    @pytest.mark.asyncio
    async def test_mention_all_default_text(self, ready_supervisor):
        commands = WhatsAppCommands(ready_supervisor)

        await commands.handle(_msg(GROUP, "!all"))

        args, _ = ready_supervisor.send_text.await_args
        assert args[1] == "👋 Hello everyone!\n\n@everyone"

    @pytest.mark.asyncio
    async def test_mention_all_failure_notice(self, ready_supervisor):
        ready_supervisor.group_metadata.side_effect = SendFailedError("forbidden")
        commands = WhatsAppCommands(ready_supervisor)

        await commands.handle(_msg(GROUP, "!all"))

        ready_supervisor.send_text.assert_awaited_once_with(GROUP, "⚠️ Failed to mention all users.")

    @pytest.mark.asyncio
    async def test_unknown_command_and_plain_text(self, ready_supervisor):
        commands = WhatsAppCommands(ready_supervisor)

        await commands.handle(_msg(DM, "!dance"))
        await commands.handle(_msg(DM, "just chatting"))

        ready_supervisor.send_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reply_failure_is_contained(self, ready_supervisor):
        ready_supervisor.send_text.side_effect = NotReadyError("closed")
        commands = WhatsAppCommands(ready_supervisor)

        await commands.handle(_msg(DM, "!ping"))

        ready_supervisor.send_text.assert_awaited_once()
