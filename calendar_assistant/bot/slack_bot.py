"""
Calendar Assistant — Slack Bot.

Slack direct messages are the user interface. Every message from a human in
a DM goes through the IntentDispatcher; the reply is posted back to the same
DM. The same aiohttp server that receives Slack events also serves the Google
OAuth callback and a health check.

Security: when ALLOWED_USER_IDS is set, other users are silently ignored.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Callable

from aiohttp import web
from slack_bolt.async_app import AsyncApp
from slack_sdk.errors import SlackApiError

from calendar_assistant.config import settings
from calendar_assistant.core.dispatcher import (
    TIMEZONE_QUESTION,
    InboundMessage,
    IntentDispatcher,
)

if TYPE_CHECKING:
    from calendar_assistant.data.db import UserDB
    from calendar_assistant.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

SLACK_EVENTS_PATH = "/slack/events"
OAUTH_CALLBACK_PATH = "/google/oauth/callback"
HEALTH_PATH = "/health"

LINKED_PAGE = "Google Calendar connected! You can close this window and go back to Slack."
RELINKED_MESSAGE = "Your Google Calendar is reconnected. What can I do for you?"


# ---------------------------------------------------------------------------
# Message filtering
# ---------------------------------------------------------------------------


def is_direct_human_message(event: dict) -> bool:
    """True for plain DMs typed by a person (no bots, edits, joins, ...)."""
    if event.get("bot_id") or event.get("subtype"):
        return False
    if event.get("channel_type") != "im":
        return False
    return bool(event.get("user")) and bool((event.get("text") or "").strip())


def is_allowed(user_id: str) -> bool:
    """Empty allow-list means everyone."""
    return not settings.ALLOWED_USER_IDS or user_id in settings.ALLOWED_USER_IDS


def message_id_of(event: dict) -> str | None:
    # client_msg_id survives Slack's retries; ts is the fallback for older clients
    return event.get("client_msg_id") or event.get("ts")


async def handle_slack_message(
    event: dict,
    dispatcher: IntentDispatcher,
    notifier: NotificationPort,
) -> str | None:
    """Route one Slack message event; returns the reply that was sent, if any."""
    if not is_direct_human_message(event):
        return None

    user_id = event["user"]
    if not is_allowed(user_id):
        logger.warning("Unauthorized access attempt from user_id=%s", user_id)
        return None  # Silent ignore

    reply = await dispatcher.handle(
        InboundMessage(sender_id=user_id, text=event["text"], message_id=message_id_of(event))
    )
    if reply:
        await notifier.send_message(user_id, reply)
    return reply


# ---------------------------------------------------------------------------
# HTTP routes: OAuth callback + health
# ---------------------------------------------------------------------------


def make_oauth_callback(
    user_db: UserDB,
    notifier: NotificationPort,
) -> Callable[[web.Request], Awaitable[web.Response]]:
    """aiohttp handler that finishes the Google OAuth dance for a Slack user."""
    from calendar_assistant.integrations.google_auth import complete_oauth

    async def oauth_callback(request: web.Request) -> web.Response:
        if request.query.get("error"):
            logger.warning("OAuth consent denied: %s", request.query["error"])
            return web.Response(status=400, text=f"Authorization failed: {request.query['error']}")

        code = request.query.get("code")
        state = request.query.get("state")
        try:
            user = await asyncio.to_thread(complete_oauth, code, state, user_db)
        except ValueError as exc:
            return web.Response(status=400, text=str(exc))
        except Exception as exc:
            logger.error("OAuth code exchange failed for %s: %s", state, exc)
            return web.Response(
                status=500, text="Failed to connect Google Calendar. Please try again from Slack.",
            )

        follow_up = RELINKED_MESSAGE if user.timezone else TIMEZONE_QUESTION
        try:
            await notifier.send_message(user.slack_user_id, follow_up)
        except SlackApiError as exc:
            logger.error("Could not DM %s after linking: %s", user.slack_user_id, exc)

        return web.Response(text=LINKED_PAGE)

    return oauth_callback


async def health(_request: web.Request) -> web.Response:
    return web.Response(text="OK")


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_app(
    user_db: UserDB | None = None,
    dispatcher: IntentDispatcher | None = None,
    notifier: NotificationPort | None = None,
) -> tuple[AsyncApp, web.Application]:
    """Build the Slack app and the aiohttp application that serves it.

    Args:
        user_db: User store. Defaults to the SQLite UserDB at DATABASE_PATH.
        dispatcher: Message dispatcher. Defaults to one backed by `user_db`.
        notifier: Notification port. Defaults to a SlackNotifier on the app's client.
    """
    app = AsyncApp(
        token=settings.SLACK_BOT_TOKEN,
        signing_secret=settings.SLACK_SIGNING_SECRET,
    )

    if user_db is None:
        from calendar_assistant.data.db import UserDB
        user_db = UserDB()

    if dispatcher is None:
        dispatcher = IntentDispatcher(user_db)

    if notifier is None:
        from calendar_assistant.adapters.slack_notifier import SlackNotifier
        notifier = SlackNotifier(app.client)

    @app.event("message")
    async def on_message(event: dict) -> None:
        await handle_slack_message(event, dispatcher, notifier)

    web_app = app.web_app(path=SLACK_EVENTS_PATH, port=settings.PORT)
    web_app.router.add_get(OAUTH_CALLBACK_PATH, make_oauth_callback(user_db, notifier))
    web_app.router.add_get(HEALTH_PATH, health)

    logger.info("Slack app built; events at %s, OAuth callback at %s", SLACK_EVENTS_PATH, OAUTH_CALLBACK_PATH)
    return app, web_app


def main() -> None:
    """Entry point: build the app and serve Slack events over HTTP."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting Calendar Assistant on port %d...", settings.PORT)
    _, web_app = build_app()
    web.run_app(web_app, port=settings.PORT)


if __name__ == "__main__":
    main()
