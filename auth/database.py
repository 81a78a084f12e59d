"""Database operations for authentication.

Tables: otp_codes, login_handoffs, users, accounts, sessions.
These tables are accessed before any user is authenticated.
"""

import hashlib
from datetime import datetime, timedelta
from uuid import UUID

from clients.postgres_client import PostgresClient
from auth.types import OneTimeCode, UserIdentity, UserRole
from utils.timezone import now_utc

_CODE_COLUMNS = "id, email, code, event_id, created_at, expires_at, used"
_USER_COLUMNS = "id, email, name, role, email_verified_at, last_login_at, created_at"


def hash_session_token(token: str) -> str:
    """Session rows are keyed by token digest, never the token itself."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class AuthDatabase:
    """Database operations for authentication."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    # ------------------------------------------------------------------
    # One-time codes
    # ------------------------------------------------------------------

    def store_code(self, code: OneTimeCode) -> None:
        """Persist a freshly issued code. Existing codes are left untouched."""
        self._db.execute_returning(
            f"""INSERT INTO otp_codes ({_CODE_COLUMNS})
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                RETURNING id""",
            (
                code.id,
                code.email,
                code.code,
                code.event_id,
                code.created_at,
                code.expires_at,
                code.used,
            ),
        )

    def consume_code(self, email: str, code: str, now: datetime | None = None) -> OneTimeCode | None:
        """Atomically mark a live code as used.

        Selection and update are one statement conditioned on used = false,
        so of two concurrent callers only one gets a row back.

        Returns:
            The consumed code, or None if no unused, unexpired match exists.
        """
        now = now or now_utc()
        rows = self._db.execute_returning(
            f"""UPDATE otp_codes
                SET used = true, used_at = %s
                WHERE email = lower(%s)
                  AND code = %s
                  AND used = false
                  AND expires_at > %s
                RETURNING {_CODE_COLUMNS}""",
            (now, email, code, now),
        )
        if not rows:
            return None
        return OneTimeCode.model_validate(rows[0])

    def cleanup_codes(self, retention: timedelta, now: datetime | None = None) -> int:
        """Delete expired codes and used codes older than retention.

        Returns:
            Number of codes deleted.
        """
        now = now or now_utc()
        rows = self._db.execute_returning(
            """DELETE FROM otp_codes
               WHERE expires_at < %s
                  OR (used = true AND created_at < %s)
               RETURNING id""",
            (now, now - retention),
        )
        return len(rows)

    # ------------------------------------------------------------------
    # Login handoffs
    # ------------------------------------------------------------------

    def store_handoff(self, handoff_id: str, user_id: UUID, email: str, expires_at: datetime) -> None:
        """Persist a handoff token id so it can be exchanged exactly once."""
        self._db.execute_returning(
            """INSERT INTO login_handoffs (id, user_id, email, expires_at)
               VALUES (%s, %s, lower(%s), %s)
               RETURNING id""",
            (handoff_id, user_id, email, expires_at),
        )

    def consume_handoff(self, handoff_id: str, email: str, now: datetime | None = None) -> UUID | None:
        """Atomically mark a live handoff as used.

        Returns:
            The user id it was issued for, or None if it is unknown, expired,
            already used, or belongs to another email.
        """
        now = now or now_utc()
        rows = self._db.execute_returning(
            """UPDATE login_handoffs
               SET used = true, used_at = %s
               WHERE id = %s
                 AND email = lower(%s)
                 AND used = false
                 AND expires_at > %s
               RETURNING user_id""",
            (now, handoff_id, email, now),
        )
        if not rows:
            return None
        return UUID(str(rows[0]["user_id"]))

    def cleanup_handoffs(self, now: datetime | None = None) -> int:
        """Delete handoffs that are used or past expiry."""
        now = now or now_utc()
        rows = self._db.execute_returning(
            "DELETE FROM login_handoffs WHERE used = true OR expires_at < %s RETURNING id",
            (now,),
        )
        return len(rows)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_user_by_id(self, user_id: UUID) -> UserIdentity | None:
        """Find user by ID."""
        row = self._db.execute_single(
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = %s",
            (user_id,),
        )
        return UserIdentity.model_validate(row) if row else None

    def upsert_participant(
        self,
        email: str,
        name: str,
        now: datetime | None = None,
    ) -> tuple[UserIdentity, bool]:
        """Create or refresh the identity for a verified participant.

        New rows get role 'participant'. Existing rows keep their role;
        name, verification and last-login timestamps are refreshed.

        Returns:
            Tuple of (user, was_created)
        """
        now = now or now_utc()
        rows = self._db.execute_returning(
            f"""INSERT INTO users (email, name, role, email_verified_at, last_login_at)
                VALUES (lower(%s), %s, %s, %s, %s)
                ON CONFLICT (email) DO UPDATE
                SET name = EXCLUDED.name,
                    email_verified_at = EXCLUDED.email_verified_at,
                    last_login_at = EXCLUDED.last_login_at
                RETURNING {_USER_COLUMNS}, (xmax = 0) AS was_created""",
            (email, name, UserRole.PARTICIPANT.value, now, now),
        )
        row = rows[0]
        was_created = bool(row.pop("was_created"))
        return UserIdentity.model_validate(row), was_created

    def update_last_login(self, user_id: UUID) -> None:
        """Update last_login_at to current time."""
        self._db.execute_returning(
            "UPDATE users SET last_login_at = %s WHERE id = %s RETURNING id",
            (now_utc(), user_id),
        )

    # ------------------------------------------------------------------
    # Session bookkeeping
    # ------------------------------------------------------------------

    def ensure_email_account(self, user_id: UUID, email: str) -> bool:
        """Link user to the 'email' provider once.

        Returns:
            True if the link was created, False if it already existed.
        """
        rows = self._db.execute_returning(
            """INSERT INTO accounts (user_id, type, provider, provider_account_id)
               VALUES (%s, 'email', 'email', lower(%s))
               ON CONFLICT (provider, provider_account_id) DO NOTHING
               RETURNING id""",
            (user_id, email),
        )
        return len(rows) > 0

    def store_session_record(self, token: str, user_id: UUID, expires_at: datetime) -> None:
        """Record an issued session for server-side introspection."""
        self._db.execute_returning(
            """INSERT INTO sessions (token_hash, user_id, expires_at)
               VALUES (%s, %s, %s)
               RETURNING token_hash""",
            (hash_session_token(token), user_id, expires_at),
        )

    def delete_session_record(self, token: str) -> bool:
        """Remove a session record. Returns True if one existed."""
        rows = self._db.execute_returning(
            "DELETE FROM sessions WHERE token_hash = %s RETURNING token_hash",
            (hash_session_token(token),),
        )
        return len(rows) > 0
