"""Tests for calendar_assistant.data.models — User."""

from calendar_assistant.config import settings
from calendar_assistant.data.models import User


class TestUser:
    def test_defaults(self):
        user = User(slack_user_id="U1")
        assert user.access_token is None
        assert user.refresh_token is None
        assert user.timezone is None
        assert user.last_interaction == ""

    def test_linked_needs_refresh_token(self):
        assert User(slack_user_id="U1", refresh_token="r").is_linked is True
        assert User(slack_user_id="U1", access_token="a").is_linked is False

    def test_effective_timezone_prefers_own(self):
        assert User(slack_user_id="U1", timezone="Asia/Tokyo").effective_timezone == "Asia/Tokyo"

    def test_effective_timezone_falls_back_to_default(self):
        assert User(slack_user_id="U1").effective_timezone == settings.DEFAULT_TIMEZONE
