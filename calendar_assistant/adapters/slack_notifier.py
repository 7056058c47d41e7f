"""Slack notification adapter — implements NotificationPort.

Wraps a slack_sdk AsyncWebClient to satisfy the NotificationPort protocol.
"""

from __future__ import annotations

import logging

from slack_sdk.web.async_client import AsyncWebClient

logger = logging.getLogger(__name__)


class SlackNotifier:
    """Slack implementation of NotificationPort. Messages go to the user's DM."""

    def __init__(self, client: AsyncWebClient) -> None:
        self._client = client

    async def send_message(self, user_id: str, text: str) -> None:
        await self._client.chat_postMessage(channel=user_id, text=text)
        logger.debug("Message sent to %s", user_id)
