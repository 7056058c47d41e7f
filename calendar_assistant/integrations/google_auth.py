"""
Calendar Assistant — Google OAuth.

Per-user credential lifecycle: build the consent URL (carrying the Slack user
id as `state`), exchange the callback code for a credential pair, and refresh
short-lived access tokens from the stored refresh token.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow

from calendar_assistant.ports.calendar_port import AuthenticationError

if TYPE_CHECKING:
    from calendar_assistant.data.db import UserDB
    from calendar_assistant.data.models import User

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/calendar.events"]
TOKEN_URI = "https://oauth2.googleapis.com/token"
AUTH_URI = "https://accounts.google.com/o/oauth2/auth"


@dataclass
class OAuthTokens:
    access_token: str
    refresh_token: str | None
    expiry: str | None = None   # ISO, naive UTC (google-auth convention)


def _client_config() -> dict:
    from calendar_assistant.config import settings

    return {
        "web": {
            "client_id": settings.GOOGLE_CLIENT_ID,
            "client_secret": settings.GOOGLE_CLIENT_SECRET,
            "auth_uri": AUTH_URI,
            "token_uri": TOKEN_URI,
            "redirect_uris": [settings.GOOGLE_REDIRECT_URI],
        }
    }


def _build_flow() -> Flow:
    from calendar_assistant.config import settings

    # No PKCE: the URL and the code exchange happen in different Flow instances.
    return Flow.from_client_config(
        _client_config(),
        scopes=SCOPES,
        redirect_uri=settings.GOOGLE_REDIRECT_URI,
        autogenerate_code_verifier=False,
    )


def build_auth_url(slack_user_id: str) -> str:
    """Consent URL whose `state` binds the callback to this Slack user."""
    flow = _build_flow()
    auth_url, _ = flow.authorization_url(
        access_type="offline",
        prompt="consent",
        state=slack_user_id,
    )
    return auth_url


def exchange_code(code: str) -> OAuthTokens:
    """Exchange an authorization code for an access/refresh credential pair."""
    flow = _build_flow()
    flow.fetch_token(code=code)
    creds = flow.credentials
    return OAuthTokens(
        access_token=creds.token,
        refresh_token=creds.refresh_token,
        expiry=creds.expiry.isoformat() if creds.expiry else None,
    )


def complete_oauth(code: str | None, state: str | None, user_db: UserDB) -> User:
    """OAuth callback logic: exchange the code and upsert the user record.

    Raises ValueError for missing parameters; exchange errors propagate.
    """
    if not code or not state:
        raise ValueError("Missing required OAuth parameters")

    tokens = exchange_code(code)
    user = user_db.upsert_credentials(
        state, tokens.access_token, tokens.refresh_token, tokens.expiry,
    )
    logger.info("Google Calendar linked for Slack user %s", state)
    return user


def build_credentials(user: User) -> Credentials:
    """google-auth Credentials from a stored user record."""
    from calendar_assistant.config import settings

    expiry = datetime.fromisoformat(user.token_expiry) if user.token_expiry else None
    return Credentials(
        token=user.access_token,
        refresh_token=user.refresh_token,
        token_uri=TOKEN_URI,
        client_id=settings.GOOGLE_CLIENT_ID,
        client_secret=settings.GOOGLE_CLIENT_SECRET,
        scopes=SCOPES,
        expiry=expiry,
    )


def needs_refresh(creds: Credentials) -> bool:
    # A token with no known expiry is treated as stale.
    return not creds.token or creds.expiry is None or creds.expired


def refresh_credentials(creds: Credentials) -> Credentials:
    """Obtain a fresh access token. Raises AuthenticationError on failure."""
    if not creds.refresh_token:
        raise AuthenticationError("No refresh token stored for this user")
    try:
        creds.refresh(Request())
    except (RefreshError, TransportError) as exc:
        logger.error("Token refresh failed: %s", exc)
        raise AuthenticationError("Unable to refresh Google access token") from exc
    logger.info("Access token refreshed successfully")
    return creds
