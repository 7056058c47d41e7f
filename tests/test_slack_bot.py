"""Tests for calendar_assistant.bot.slack_bot — Slack handlers and HTTP routes.

The dispatcher, notifier and OAuth exchange are mocked.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from slack_sdk.errors import SlackApiError

from calendar_assistant.bot.slack_bot import (
    HEALTH_PATH,
    LINKED_PAGE,
    OAUTH_CALLBACK_PATH,
    RELINKED_MESSAGE,
    build_app,
    handle_slack_message,
    health,
    is_allowed,
    is_direct_human_message,
    make_oauth_callback,
    message_id_of,
)
from calendar_assistant.config import settings
from calendar_assistant.core.dispatcher import TIMEZONE_QUESTION
from calendar_assistant.data.models import User

_PATCH_COMPLETE = "calendar_assistant.integrations.google_auth.complete_oauth"


def _event(**overrides):
    event = {
        "type": "message",
        "channel_type": "im",
        "user": "U1",
        "text": "what's on today?",
        "ts": "1718000000.000100",
        "client_msg_id": "c0ffee",
    }
    event.update(overrides)
    return event


def _request(**query):
    request = MagicMock()
    request.query = query
    return request


# ---------------------------------------------------------------------------
# Message filtering
# ---------------------------------------------------------------------------


class TestMessageFilter:
    def test_plain_dm(self):
        assert is_direct_human_message(_event()) is True

    def test_bot_message_ignored(self):
        assert is_direct_human_message(_event(bot_id="B1")) is False

    def test_subtype_ignored(self):
        assert is_direct_human_message(_event(subtype="message_changed")) is False

    def test_channel_message_ignored(self):
        assert is_direct_human_message(_event(channel_type="channel")) is False

    def test_blank_text_ignored(self):
        assert is_direct_human_message(_event(text="   ")) is False

    def test_message_id_prefers_client_msg_id(self):
        assert message_id_of(_event()) == "c0ffee"
        assert message_id_of(_event(client_msg_id=None)) == "1718000000.000100"


class TestAllowList:
    def test_empty_list_allows_everyone(self):
        with patch.object(settings, "ALLOWED_USER_IDS", []):
            assert is_allowed("U_ANYONE") is True

    def test_listed_user_allowed(self):
        with patch.object(settings, "ALLOWED_USER_IDS", ["U1", "U2"]):
            assert is_allowed("U2") is True
            assert is_allowed("U3") is False


class TestHandleSlackMessage:
    @pytest.mark.asyncio
    async def test_reply_sent_to_sender(self):
        dispatcher = MagicMock()
        dispatcher.handle = AsyncMock(return_value="No meetings found.")
        notifier = MagicMock()
        notifier.send_message = AsyncMock()

        reply = await handle_slack_message(_event(), dispatcher, notifier)

        assert reply == "No meetings found."
        message = dispatcher.handle.call_args.args[0]
        assert message.sender_id == "U1"
        assert message.text == "what's on today?"
        assert message.message_id == "c0ffee"
        notifier.send_message.assert_awaited_once_with("U1", "No meetings found.")

    @pytest.mark.asyncio
    async def test_duplicate_sends_nothing(self):
        dispatcher = MagicMock()
        dispatcher.handle = AsyncMock(return_value=None)
        notifier = MagicMock()
        notifier.send_message = AsyncMock()

        assert await handle_slack_message(_event(), dispatcher, notifier) is None
        notifier.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unauthorized_user_silently_ignored(self):
        dispatcher = MagicMock()
        dispatcher.handle = AsyncMock()
        notifier = MagicMock()
        notifier.send_message = AsyncMock()

        with patch.object(settings, "ALLOWED_USER_IDS", ["U_BOSS"]):
            assert await handle_slack_message(_event(), dispatcher, notifier) is None
        dispatcher.handle.assert_not_awaited()
        notifier.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_bot_echo_not_dispatched(self):
        dispatcher = MagicMock()
        dispatcher.handle = AsyncMock()
        await handle_slack_message(_event(bot_id="B1"), dispatcher, MagicMock())
        dispatcher.handle.assert_not_awaited()


# ---------------------------------------------------------------------------
# OAuth callback
# ---------------------------------------------------------------------------


class TestOAuthCallback:
    @pytest.fixture
    def notifier(self):
        notifier = MagicMock()
        notifier.send_message = AsyncMock()
        return notifier

    @pytest.mark.asyncio
    async def test_first_link_asks_for_timezone(self, user_db, notifier):
        linked = User(slack_user_id="U1", access_token="a", refresh_token="r")
        with patch(_PATCH_COMPLETE, return_value=linked) as complete:
            handler = make_oauth_callback(user_db, notifier)
            response = await handler(_request(code="abc", state="U1"))

        complete.assert_called_once_with("abc", "U1", user_db)
        assert response.status == 200
        assert response.text == LINKED_PAGE
        notifier.send_message.assert_awaited_once_with("U1", TIMEZONE_QUESTION)

    @pytest.mark.asyncio
    async def test_relink_skips_timezone_question(self, user_db, notifier):
        linked = User(slack_user_id="U1", refresh_token="r", timezone="Asia/Tokyo")
        with patch(_PATCH_COMPLETE, return_value=linked):
            response = await make_oauth_callback(user_db, notifier)(_request(code="abc", state="U1"))

        assert response.status == 200
        notifier.send_message.assert_awaited_once_with("U1", RELINKED_MESSAGE)

    @pytest.mark.asyncio
    async def test_missing_parameters(self, user_db, notifier):
        response = await make_oauth_callback(user_db, notifier)(_request(state="U1"))
        assert response.status == 400
        assert "Missing required OAuth parameters" in response.text
        notifier.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_consent_denied(self, user_db, notifier):
        response = await make_oauth_callback(user_db, notifier)(_request(error="access_denied"))
        assert response.status == 400
        assert "access_denied" in response.text

    @pytest.mark.asyncio
    async def test_exchange_failure(self, user_db, notifier):
        with patch(_PATCH_COMPLETE, side_effect=RuntimeError("invalid_grant")):
            response = await make_oauth_callback(user_db, notifier)(_request(code="bad", state="U1"))
        assert response.status == 500
        notifier.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dm_failure_still_links(self, user_db, notifier):
        notifier.send_message.side_effect = SlackApiError("channel_not_found", {"ok": False})
        linked = User(slack_user_id="U1", refresh_token="r")
        with patch(_PATCH_COMPLETE, return_value=linked):
            response = await make_oauth_callback(user_db, notifier)(_request(code="abc", state="U1"))
        assert response.status == 200


# ---------------------------------------------------------------------------
# App wiring
# ---------------------------------------------------------------------------


class TestBuildApp:
    @pytest.mark.asyncio
    async def test_health(self):
        response = await health(_request())
        assert response.status == 200
        assert response.text == "OK"

    @pytest.mark.asyncio
    async def test_routes_registered(self, user_db):
        _, web_app = build_app(user_db=user_db, dispatcher=MagicMock(), notifier=MagicMock())
        paths = {resource.canonical for resource in web_app.router.resources()}
        assert OAUTH_CALLBACK_PATH in paths
        assert HEALTH_PATH in paths
        assert "/slack/events" in paths


class TestSlackNotifier:
    @pytest.mark.asyncio
    async def test_posts_to_user_dm(self):
        from calendar_assistant.adapters.slack_notifier import SlackNotifier

        client = MagicMock()
        client.chat_postMessage = AsyncMock()
        await SlackNotifier(client).send_message("U1", "hello")
        client.chat_postMessage.assert_awaited_once_with(channel="U1", text="hello")
