"""
Calendar Assistant — User Database.

Maps a Slack user id to their Google credential pair and timezone.
Upserted by the OAuth callback, mutated on every token refresh.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from calendar_assistant.data.models import User

logger = logging.getLogger(__name__)


class UserDB:
    """SQLite-backed storage for linked Slack users."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from calendar_assistant.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    slack_user_id     TEXT PRIMARY KEY,
                    access_token      TEXT,
                    refresh_token     TEXT,
                    timezone          TEXT,
                    last_interaction  TEXT NOT NULL DEFAULT '',
                    created_at        TEXT NOT NULL
                )
            """)
            # Migrate existing DBs: add new columns if missing
            existing_cols = {
                row[1] for row in conn.execute("PRAGMA table_info(users)").fetchall()
            }
            if "token_expiry" not in existing_cols:
                conn.execute("ALTER TABLE users ADD COLUMN token_expiry TEXT")
        logger.debug("Users table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            slack_user_id=row["slack_user_id"],
            access_token=row["access_token"],
            refresh_token=row["refresh_token"],
            token_expiry=row["token_expiry"],
            timezone=row["timezone"],
            last_interaction=row["last_interaction"],
            created_at=row["created_at"],
        )

    def get_user(self, slack_user_id: str) -> User | None:
        """Fetch a user by Slack user ID."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE slack_user_id = ?",
                (slack_user_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def upsert_credentials(
        self,
        slack_user_id: str,
        access_token: str,
        refresh_token: str | None,
        token_expiry: str | None = None,
    ) -> User:
        """Create or update a user's credential pair.

        Google only returns a refresh token on forced consent; when it is
        missing the stored one is kept.
        """
        now = datetime.now().isoformat()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO users
                    (slack_user_id, access_token, refresh_token, token_expiry,
                     last_interaction, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(slack_user_id) DO UPDATE SET
                    access_token  = excluded.access_token,
                    refresh_token = COALESCE(excluded.refresh_token, users.refresh_token),
                    token_expiry  = excluded.token_expiry
                """,
                (slack_user_id, access_token, refresh_token, token_expiry, now, now),
            )
        logger.info("Credentials stored for user %s", slack_user_id)
        return self.get_user(slack_user_id)

    def set_access_token(
        self, slack_user_id: str, access_token: str, token_expiry: str | None = None,
    ) -> None:
        """Store a refreshed access token (last writer wins)."""
        with self._connect() as conn:
            conn.execute(
                "UPDATE users SET access_token = ?, token_expiry = ? WHERE slack_user_id = ?",
                (access_token, token_expiry, slack_user_id),
            )
        logger.debug("Access token refreshed for user %s", slack_user_id)

    def set_timezone(self, slack_user_id: str, timezone: str) -> None:
        """Store the user's IANA timezone."""
        with self._connect() as conn:
            conn.execute(
                "UPDATE users SET timezone = ? WHERE slack_user_id = ?",
                (timezone, slack_user_id),
            )
        logger.info("Timezone set for user %s: %s", slack_user_id, timezone)

    def touch(self, slack_user_id: str) -> None:
        """Record the time of the user's latest message."""
        with self._connect() as conn:
            conn.execute(
                "UPDATE users SET last_interaction = ? WHERE slack_user_id = ?",
                (datetime.now().isoformat(), slack_user_id),
            )

    def list_users(self) -> list[User]:
        """Return all linked users."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM users ORDER BY created_at"
            ).fetchall()
        return [self._row_to_user(r) for r in rows]
