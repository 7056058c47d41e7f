"""Tests for calendar_assistant.bot.cli — terminal harness."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from calendar_assistant.bot.cli import run_cli


def _reader(lines):
    remaining = iter(lines)

    def read_line(prompt):
        try:
            return next(remaining)
        except StopIteration:
            raise EOFError
    return read_line


@pytest.fixture
def dispatcher():
    dispatcher = MagicMock()
    dispatcher.handle = AsyncMock(side_effect=lambda msg: f"echo: {msg.text}")
    return dispatcher


class TestRunCli:
    @pytest.mark.asyncio
    async def test_lines_go_through_dispatcher(self, dispatcher):
        output = []
        await run_cli(dispatcher, "U_CLI", _reader(["what's on today?", "exit"]), output.append)

        assert output[1] == "echo: what's on today?"
        assert output[-1] == "Goodbye!"
        message = dispatcher.handle.call_args.args[0]
        assert message.sender_id == "U_CLI"
        assert message.message_id

    @pytest.mark.asyncio
    async def test_blank_lines_skipped_and_eof_exits(self, dispatcher):
        output = []
        await run_cli(dispatcher, "U_CLI", _reader(["", "   "]), output.append)
        dispatcher.handle.assert_not_awaited()
        assert output[-1] == "Goodbye!"

    @pytest.mark.asyncio
    async def test_each_line_gets_a_fresh_message_id(self, dispatcher):
        await run_cli(dispatcher, "U_CLI", _reader(["a", "b", "quit"]), lambda _: None)
        ids = {call.args[0].message_id for call in dispatcher.handle.call_args_list}
        assert len(ids) == 2

    @pytest.mark.asyncio
    async def test_default_user_id(self, dispatcher):
        from calendar_assistant.config import settings

        await run_cli(dispatcher, read_line=_reader(["hi"]), write=lambda _: None)
        assert dispatcher.handle.call_args.args[0].sender_id == settings.CLI_USER_ID
