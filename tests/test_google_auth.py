"""Tests for calendar_assistant.integrations.google_auth — OAuth and token refresh."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch
from urllib.parse import parse_qs, urlparse

import pytest
from google.auth.exceptions import RefreshError

from calendar_assistant.data.models import User
from calendar_assistant.integrations import google_auth
from calendar_assistant.integrations.google_auth import (
    SCOPES,
    OAuthTokens,
    build_auth_url,
    build_credentials,
    complete_oauth,
    needs_refresh,
    refresh_credentials,
)
from calendar_assistant.ports.calendar_port import AuthenticationError


class TestBuildAuthUrl:
    def test_state_carries_slack_user(self):
        url = build_auth_url("U123")
        query = parse_qs(urlparse(url).query)
        assert query["state"] == ["U123"]
        assert query["access_type"] == ["offline"]
        assert query["prompt"] == ["consent"]
        assert query["client_id"] == ["fake-client-id"]
        assert query["scope"] == [" ".join(SCOPES)]

    def test_no_pkce_challenge(self):
        query = parse_qs(urlparse(build_auth_url("U123")).query)
        assert "code_challenge" not in query


class TestCompleteOAuth:
    @pytest.mark.parametrize("code,state", [(None, "U1"), ("abc", None), ("", "")])
    def test_missing_parameters(self, user_db, code, state):
        with pytest.raises(ValueError, match="Missing required OAuth parameters"):
            complete_oauth(code, state, user_db)

    def test_stores_credentials(self, user_db):
        tokens = OAuthTokens("access-1", "refresh-1", "2025-06-10T10:00:00")
        with patch.object(google_auth, "exchange_code", return_value=tokens) as exchange:
            user = complete_oauth("the-code", "U123", user_db)

        exchange.assert_called_once_with("the-code")
        assert user.slack_user_id == "U123"
        assert user.is_linked
        assert user_db.get_user("U123").access_token == "access-1"

    def test_exchange_failure_propagates(self, user_db):
        with patch.object(google_auth, "exchange_code", side_effect=RuntimeError("invalid_grant")):
            with pytest.raises(RuntimeError):
                complete_oauth("bad-code", "U123", user_db)
        assert user_db.get_user("U123") is None


class TestCredentials:
    def test_build_from_user(self):
        creds = build_credentials(User(
            slack_user_id="U1", access_token="a", refresh_token="r",
            token_expiry="2099-01-01T00:00:00",
        ))
        assert creds.token == "a"
        assert creds.refresh_token == "r"
        assert creds.expiry == datetime(2099, 1, 1)
        assert creds.client_id == "fake-client-id"

    def test_needs_refresh(self):
        future = datetime.now(timezone.utc) + timedelta(hours=1)
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        assert needs_refresh(MagicMock(token=None, expiry=future, expired=False))
        assert needs_refresh(MagicMock(token="a", expiry=None, expired=False))
        assert needs_refresh(MagicMock(token="a", expiry=past, expired=True))
        assert not needs_refresh(MagicMock(token="a", expiry=future, expired=False))

    def test_refresh_without_refresh_token(self):
        with pytest.raises(AuthenticationError, match="No refresh token"):
            refresh_credentials(MagicMock(refresh_token=None))

    def test_refresh_error_becomes_authentication_error(self):
        creds = MagicMock(refresh_token="r")
        creds.refresh.side_effect = RefreshError("invalid_grant")
        with pytest.raises(AuthenticationError, match="Unable to refresh"):
            refresh_credentials(creds)

    def test_refresh_success(self):
        creds = MagicMock(refresh_token="r")
        assert refresh_credentials(creds) is creds
        creds.refresh.assert_called_once()
