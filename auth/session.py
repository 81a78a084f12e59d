"""Session token lifecycle management.

Sessions are HS256 JWTs signed with the application secret; the signed
cookie alone is enough to authenticate a request. Companion rows
(account link + session record) are written best-effort for server-side
introspection and never fail a login.

Handoff tokens are also signed, but each carries an id stored in
login_handoffs and is spent on first exchange.
"""

import logging
import secrets
from datetime import timedelta
from uuid import UUID

import jwt

from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.exceptions import InvalidTokenError, SessionExpiredError
from auth.types import Session, UserIdentity, UserRole
from clients.postgres_client import DatabaseError
from utils.timezone import now_utc, to_epoch, from_epoch

logger = logging.getLogger(__name__)


class SessionManager:
    """Signs, validates and records session tokens.

    Also issues the short-lived, single-use handoff token placed in the
    post-login redirect URL, which the auto-login page exchanges for a session.
    """

    ALGORITHM = "HS256"
    SESSION_TYPE = "session"
    HANDOFF_TYPE = "login-handoff"

    def __init__(self, secret: str, config: AuthConfig, auth_db: AuthDatabase):
        if not secret:
            raise ValueError("session signing secret is required")
        self._secret = secret
        self._config = config
        self._auth_db = auth_db

    def _encode(self, claims: dict) -> str:
        return jwt.encode(claims, self._secret, algorithm=self.ALGORITHM)

    def _decode(self, token: str, expected_type: str) -> dict:
        """Verify signature, expiry and token type.

        Raises:
            SessionExpiredError: If the token is past its exp claim.
            InvalidTokenError: For any other verification failure.
        """
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self.ALGORITHM],
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            raise SessionExpiredError("Session expired")
        except jwt.InvalidTokenError:
            raise InvalidTokenError("Invalid token")

        if claims.get("typ") != expected_type:
            raise InvalidTokenError("Invalid token")
        return claims

    def create_session(self, user: UserIdentity) -> Session:
        """Sign a new session for user and record it."""
        now = now_utc()
        expires_at = now + timedelta(days=self._config.session_expiry_days)

        token = self._encode({
            "sub": str(user.id),
            "email": user.email,
            "name": user.name,
            "role": user.role.value,
            "typ": self.SESSION_TYPE,
            "iat": to_epoch(now),
            "exp": to_epoch(expires_at),
            "jti": secrets.token_urlsafe(16),
        })

        session = Session(
            token=token,
            user_id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            issued_at=from_epoch(to_epoch(now)),
            expires_at=from_epoch(to_epoch(expires_at)),
        )

        self._record_session(session)
        return session

    def _record_session(self, session: Session) -> None:
        """Write account link and session row. Failures are logged, not raised."""
        try:
            self._auth_db.ensure_email_account(session.user_id, session.email)
            self._auth_db.store_session_record(
                session.token, session.user_id, session.expires_at
            )
        except DatabaseError as e:
            logger.warning(
                f"Session bookkeeping failed for user {session.user_id}: {e}",
                exc_info=True,
            )

    def validate_session(self, token: str) -> Session:
        """Validate session token and return session.

        Raises:
            SessionExpiredError: If the session has expired.
            InvalidTokenError: If the token is not a valid session.
        """
        claims = self._decode(token, self.SESSION_TYPE)
        try:
            return Session(
                token=token,
                user_id=UUID(claims["sub"]),
                email=claims["email"],
                name=claims.get("name"),
                role=UserRole(claims["role"]),
                issued_at=from_epoch(claims["iat"]),
                expires_at=from_epoch(claims["exp"]),
            )
        except (KeyError, ValueError):
            raise InvalidTokenError("Invalid token")

    def revoke_session(self, token: str) -> None:
        """Drop the session record (logout).

        Safe to call with nonexistent token. The signed cookie itself stays
        valid until expiry; callers clear it client-side.
        """
        try:
            self._auth_db.delete_session_record(token)
        except DatabaseError as e:
            logger.warning(f"Session record delete failed: {e}", exc_info=True)

    def issue_handoff_token(self, user: UserIdentity) -> str:
        """Short-lived, single-use token proving a just-completed verification.

        Raises:
            DatabaseError: If the token id cannot be stored.
        """
        now = now_utc()
        expires_at = now + timedelta(minutes=self._config.handoff_token_expiry_minutes)
        handoff_id = secrets.token_urlsafe(16)
        self._auth_db.store_handoff(handoff_id, user.id, user.email, from_epoch(to_epoch(expires_at)))
        return self._encode({
            "sub": str(user.id),
            "email": user.email,
            "typ": self.HANDOFF_TYPE,
            "iat": to_epoch(now),
            "exp": to_epoch(expires_at),
            "jti": handoff_id,
        })

    def verify_handoff_token(self, token: str, email: str) -> UUID:
        """Check a handoff token belongs to email and spend it.

        The token id is consumed by a single conditional update, so a token
        is accepted at most once even under concurrent exchanges.

        Returns:
            The user id the token was issued for.

        Raises:
            InvalidTokenError: If invalid, expired, already used, or issued
                for another email.
        """
        try:
            claims = self._decode(token, self.HANDOFF_TYPE)
        except SessionExpiredError:
            raise InvalidTokenError("Invalid token")

        if claims.get("email", "").lower() != email.lower() or not claims.get("jti"):
            raise InvalidTokenError("Invalid token")
        try:
            user_id = UUID(claims["sub"])
        except ValueError:
            raise InvalidTokenError("Invalid token")

        if self._auth_db.consume_handoff(claims["jti"], email, now_utc()) != user_id:
            raise InvalidTokenError("Invalid token")
        return user_id
