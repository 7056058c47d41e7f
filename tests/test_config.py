"""Tests for calendar_assistant.config — Settings parsing."""

from calendar_assistant.config import Settings

_REQUIRED = {"SLACK_BOT_TOKEN": "xoxb", "SLACK_SIGNING_SECRET": "s", "LLM_API_KEY": "k"}


class TestSettings:
    def test_defaults(self):
        s = Settings(**_REQUIRED)
        assert s.LLM_PROVIDER == "openai"
        assert s.ALLOWED_USER_IDS == []
        assert s.HISTORY_MAX_TURNS == 20
        assert s.DEFAULT_MEETING_MINUTES == 60
        assert s.ASK_FOR_DURATION is False

    def test_allowed_user_ids_from_csv(self):
        s = Settings(**_REQUIRED, ALLOWED_USER_IDS=" U1, U2 ,,U3 ")
        assert s.ALLOWED_USER_IDS == ["U1", "U2", "U3"]

    def test_blank_allowed_user_ids(self):
        assert Settings(**_REQUIRED, ALLOWED_USER_IDS="  ").ALLOWED_USER_IDS == []

    def test_ask_for_duration_flag(self):
        assert Settings(**_REQUIRED, ASK_FOR_DURATION="yes").ASK_FOR_DURATION is True
        assert Settings(**_REQUIRED, ASK_FOR_DURATION="0").ASK_FOR_DURATION is False

    def test_numeric_strings_coerced(self):
        s = Settings(**_REQUIRED, PORT="8080", LLM_TIMEOUT_SECONDS="12.5")
        assert s.PORT == 8080
        assert s.LLM_TIMEOUT_SECONDS == 12.5
