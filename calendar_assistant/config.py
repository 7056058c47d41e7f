"""
Calendar Assistant — Centralized configuration.

Loads all settings from .env and validates required keys.
This module is the foundation for every other module in the project.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

# Load .env from project root (two levels up from calendar_assistant/config.py)
_ENV_PATH = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseModel):
    """Application settings loaded from environment variables."""

    # Slack
    SLACK_BOT_TOKEN: str
    SLACK_SIGNING_SECRET: str

    # LLM: function-calling oracle (openai, anthropic)
    LLM_PROVIDER: str = "openai"
    LLM_MODEL: str = ""          # empty → smart default per provider
    LLM_API_KEY: str

    # Google OAuth client (web application type)
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_REDIRECT_URI: str = "http://localhost:3000/google/oauth/callback"

    # SQLite
    DATABASE_PATH: str = "data/calendar_assistant.db"

    # Fallback until the user tells us where they are
    DEFAULT_TIMEZONE: str = "Europe/Amsterdam"

    # Security: empty list means every Slack user may talk to the bot
    ALLOWED_USER_IDS: list[str] = []

    # Conversation / idempotency bounds
    HISTORY_MAX_TURNS: int = 20
    SEEN_MESSAGES_MAX: int = 1000

    # Timeouts for external calls
    LLM_TIMEOUT_SECONDS: float = 30.0
    CALENDAR_TIMEOUT_SECONDS: float = 20.0

    # Scheduling policy
    WORKDAY_START: str = "08:00"
    WORKDAY_END: str = "18:00"
    DEFAULT_MEETING_MINUTES: int = 60
    ASK_FOR_DURATION: bool = False

    # HTTP listener (Slack events + OAuth callback)
    PORT: int = 3000

    # Terminal harness identity
    CLI_USER_ID: str = "cli"

    @field_validator("ALLOWED_USER_IDS", mode="before")
    @classmethod
    def parse_user_ids(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, list):
            return v
        if isinstance(v, str) and v.strip():
            return [uid.strip() for uid in v.split(",") if uid.strip()]
        return []

    @field_validator("ASK_FOR_DURATION", mode="before")
    @classmethod
    def parse_bool(cls, v: str | bool) -> bool:
        if isinstance(v, bool):
            return v
        return str(v).strip().lower() in ("1", "true", "yes", "on")


def _load_settings() -> Settings:
    """Load settings from environment, validating required keys."""
    bot_token = os.getenv("SLACK_BOT_TOKEN", "")
    signing_secret = os.getenv("SLACK_SIGNING_SECRET", "")
    llm_api_key = os.getenv("LLM_API_KEY", "")

    if not bot_token or bot_token.startswith("your-"):
        print("ERROR: SLACK_BOT_TOKEN is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    if not signing_secret or signing_secret.startswith("your-"):
        print("ERROR: SLACK_SIGNING_SECRET is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    if not llm_api_key or llm_api_key.startswith("your-"):
        print("ERROR: LLM_API_KEY is missing or not set in .env", file=sys.stderr)
        sys.exit(1)

    return Settings(
        SLACK_BOT_TOKEN=bot_token,
        SLACK_SIGNING_SECRET=signing_secret,
        LLM_PROVIDER=os.getenv("LLM_PROVIDER", "openai"),
        LLM_MODEL=os.getenv("LLM_MODEL", ""),
        LLM_API_KEY=llm_api_key,
        GOOGLE_CLIENT_ID=os.getenv("GOOGLE_CLIENT_ID", ""),
        GOOGLE_CLIENT_SECRET=os.getenv("GOOGLE_CLIENT_SECRET", ""),
        GOOGLE_REDIRECT_URI=os.getenv(
            "GOOGLE_REDIRECT_URI", "http://localhost:3000/google/oauth/callback",
        ),
        DATABASE_PATH=os.getenv("DATABASE_PATH", "data/calendar_assistant.db"),
        DEFAULT_TIMEZONE=os.getenv("DEFAULT_TIMEZONE", "Europe/Amsterdam"),
        ALLOWED_USER_IDS=os.getenv("ALLOWED_USER_IDS", ""),
        HISTORY_MAX_TURNS=os.getenv("HISTORY_MAX_TURNS", "20"),
        SEEN_MESSAGES_MAX=os.getenv("SEEN_MESSAGES_MAX", "1000"),
        LLM_TIMEOUT_SECONDS=os.getenv("LLM_TIMEOUT_SECONDS", "30"),
        CALENDAR_TIMEOUT_SECONDS=os.getenv("CALENDAR_TIMEOUT_SECONDS", "20"),
        WORKDAY_START=os.getenv("WORKDAY_START", "08:00"),
        WORKDAY_END=os.getenv("WORKDAY_END", "18:00"),
        DEFAULT_MEETING_MINUTES=os.getenv("DEFAULT_MEETING_MINUTES", "60"),
        ASK_FOR_DURATION=os.getenv("ASK_FOR_DURATION", "false"),
        PORT=os.getenv("PORT", "3000"),
        CLI_USER_ID=os.getenv("CLI_USER_ID", "cli"),
    )


# Singleton, imported by all other modules as:
#   from calendar_assistant.config import settings
settings = _load_settings()
