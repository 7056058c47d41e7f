"""
Calendar Assistant — Terminal harness.

Feeds lines typed in the terminal through the same IntentDispatcher the Slack
bot uses, as the configured CLI_USER_ID. Handy for trying prompts without a
Slack workspace; the user still has to be linked through the OAuth callback.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import TYPE_CHECKING, Callable

from calendar_assistant.config import settings
from calendar_assistant.core.dispatcher import InboundMessage, IntentDispatcher

if TYPE_CHECKING:
    from calendar_assistant.data.db import UserDB

logger = logging.getLogger(__name__)

EXIT_WORDS = {"exit", "quit"}


async def run_cli(
    dispatcher: IntentDispatcher,
    user_id: str | None = None,
    read_line: Callable[[str], str] = input,
    write: Callable[[str], None] = print,
) -> None:
    """Read-eval-print loop until the user types exit (or EOF)."""
    user_id = user_id or settings.CLI_USER_ID
    write("Calendar Assistant (type 'exit' to quit)")
    while True:
        try:
            line = await asyncio.to_thread(read_line, "> ")
        except EOFError:
            break
        if line.strip().lower() in EXIT_WORDS:
            break
        if not line.strip():
            continue
        reply = await dispatcher.handle(
            InboundMessage(sender_id=user_id, text=line, message_id=uuid.uuid4().hex)
        )
        if reply:
            write(reply)
    write("Goodbye!")


def main(user_db: UserDB | None = None) -> None:
    if user_db is None:
        from calendar_assistant.data.db import UserDB
        user_db = UserDB()
    asyncio.run(run_cli(IntentDispatcher(user_db)))
