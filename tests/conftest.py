"""Shared test fixtures for the participant login test suite.

Service and API tests run against in-memory stand-ins for Postgres and
Valkey. Tests that need a real database use the `db` fixture, which skips
unless TEST_DATABASE_URL is set (see tests/schema.sql).
"""

import os
import threading
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import Mock
from uuid import UUID, uuid4

import pytest
from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
load_dotenv(Path(__file__).parent.parent / ".env")

from auth.config import AuthConfig
from auth.rate_limiter import RateLimiter
from auth.security_logger import SecurityLogger
from auth.session import SessionManager
from auth.identity import IdentityResolver
from auth.service import AuthService
from auth.types import OneTimeCode, UserIdentity, UserRole
from clients.email_client import EmailGatewayClient
from clients.postgres_client import DatabaseError
from core.models import Registration
from utils.timezone import now_utc


# =============================================================================
# TEST CONSTANTS
# =============================================================================

TEST_SECRET = "test-signing-secret-0123456789abcdef"

TEST_EVENT_ID = UUID("00000000-0000-0000-0000-00000000e001")
TEST_EMAIL = "ada@example.com"
TEST_EMAIL_B = "grace@example.com"
UNREGISTERED_EMAIL = "nobody@example.com"


def make_registration(email: str = TEST_EMAIL, first_name: str = "Ada", last_name: str = "Lovelace") -> Registration:
    return Registration(
        id=uuid4(),
        event_id=TEST_EVENT_ID,
        event_name="Analytical Engines Summit",
        event_slug="ae-summit",
        email=email,
        first_name=first_name,
        last_name=last_name,
        short_code="AES-001",
        created_at=now_utc(),
    )


# =============================================================================
# IN-MEMORY STAND-INS
# =============================================================================


class FakeAuthDatabase:
    """AuthDatabase over dicts. Consumes are atomic under a lock.

    get_codes_for_email, get_user_by_email, add_user and backdate_code are
    test helpers with no AuthDatabase counterpart.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.codes: dict[UUID, OneTimeCode] = {}
        self.handoffs: dict[str, dict] = {}
        self.users: dict[UUID, UserIdentity] = {}
        self.accounts: set[tuple[UUID, str]] = set()
        self.sessions: dict[str, UUID] = {}
        self.fail_bookkeeping = False
        self.fail_codes = False
        self.fail_handoffs = False

    def store_code(self, code: OneTimeCode) -> None:
        if self.fail_codes:
            raise DatabaseError("connection refused")
        with self._lock:
            self.codes[code.id] = code

    def consume_code(self, email: str, code: str, now: datetime | None = None) -> OneTimeCode | None:
        if self.fail_codes:
            raise DatabaseError("connection refused")
        now = now or now_utc()
        with self._lock:
            for stored in self.codes.values():
                if (
                    stored.email == email.lower()
                    and stored.code == code
                    and not stored.used
                    and stored.expires_at > now
                ):
                    consumed = stored.model_copy(update={"used": True})
                    self.codes[stored.id] = consumed
                    return consumed
        return None

    def get_codes_for_email(self, email: str) -> list[OneTimeCode]:
        codes = [c for c in self.codes.values() if c.email == email.lower()]
        return sorted(codes, key=lambda c: c.created_at, reverse=True)

    def cleanup_codes(self, retention: timedelta, now: datetime | None = None) -> int:
        now = now or now_utc()
        with self._lock:
            doomed = [
                c.id for c in self.codes.values()
                if c.expires_at < now or (c.used and c.created_at < now - retention)
            ]
            for code_id in doomed:
                del self.codes[code_id]
        return len(doomed)

    def store_handoff(self, handoff_id: str, user_id: UUID, email: str, expires_at: datetime) -> None:
        if self.fail_handoffs:
            raise DatabaseError("login_handoffs unavailable")
        with self._lock:
            self.handoffs[handoff_id] = {
                "user_id": user_id, "email": email.lower(), "expires_at": expires_at, "used": False,
            }

    def consume_handoff(self, handoff_id: str, email: str, now: datetime | None = None) -> UUID | None:
        now = now or now_utc()
        with self._lock:
            handoff = self.handoffs.get(handoff_id)
            if (
                handoff is None
                or handoff["used"]
                or handoff["email"] != email.lower()
                or handoff["expires_at"] <= now
            ):
                return None
            handoff["used"] = True
            return handoff["user_id"]

    def cleanup_handoffs(self, now: datetime | None = None) -> int:
        now = now or now_utc()
        with self._lock:
            doomed = [k for k, h in self.handoffs.items() if h["used"] or h["expires_at"] < now]
            for handoff_id in doomed:
                del self.handoffs[handoff_id]
        return len(doomed)

    def get_user_by_email(self, email: str) -> UserIdentity | None:
        for user in self.users.values():
            if user.email == email.lower():
                return user
        return None

    def get_user_by_id(self, user_id: UUID) -> UserIdentity | None:
        return self.users.get(user_id)

    def upsert_participant(self, email: str, name: str, now: datetime | None = None) -> tuple[UserIdentity, bool]:
        now = now or now_utc()
        with self._lock:
            existing = self.get_user_by_email(email)
            if existing is not None:
                user = existing.model_copy(
                    update={"name": name, "email_verified_at": now, "last_login_at": now}
                )
                self.users[user.id] = user
                return user, False
            user = UserIdentity(
                id=uuid4(),
                email=email.lower(),
                name=name,
                role=UserRole.PARTICIPANT,
                email_verified_at=now,
                last_login_at=now,
                created_at=now,
            )
            self.users[user.id] = user
            return user, True

    def add_user(self, email: str, role: UserRole = UserRole.PARTICIPANT, name: str = "Test User") -> UserIdentity:
        user = UserIdentity(id=uuid4(), email=email, name=name, role=role, created_at=now_utc())
        self.users[user.id] = user
        return user

    def update_last_login(self, user_id: UUID) -> None:
        user = self.users[user_id]
        self.users[user_id] = user.model_copy(update={"last_login_at": now_utc()})

    def ensure_email_account(self, user_id: UUID, email: str) -> bool:
        if self.fail_bookkeeping:
            raise DatabaseError("accounts table unavailable")
        key = (user_id, email.lower())
        if key in self.accounts:
            return False
        self.accounts.add(key)
        return True

    def store_session_record(self, token: str, user_id: UUID, expires_at: datetime) -> None:
        if self.fail_bookkeeping:
            raise DatabaseError("sessions table unavailable")
        self.sessions[token] = user_id

    def delete_session_record(self, token: str) -> bool:
        if self.fail_bookkeeping:
            raise DatabaseError("sessions table unavailable")
        return self.sessions.pop(token, None) is not None

    def backdate_code(self, code: str, minutes: int) -> None:
        """Shift a stored code's timestamps into the past."""
        for stored in list(self.codes.values()):
            if stored.code == code:
                self.codes[stored.id] = stored.model_copy(update={
                    "created_at": stored.created_at - timedelta(minutes=minutes),
                    "expires_at": stored.expires_at - timedelta(minutes=minutes),
                })


class FakeRegistrationService:
    """RegistrationService over a list."""

    def __init__(self, registrations: list[Registration]):
        self.registrations = list(registrations)

    def find_by_email(self, email: str) -> Registration | None:
        matches = [r for r in self.registrations if r.email.lower() == email.lower()]
        if not matches:
            return None
        return max(matches, key=lambda r: r.created_at)


class FakeValkey:
    """Counter subset of ValkeyClient used by RateLimiter."""

    def __init__(self):
        self._lock = threading.Lock()
        self.values: dict[str, int] = {}
        self.ttls: dict[str, int] = {}

    def get(self, key: str) -> str | None:
        value = self.values.get(key)
        return None if value is None else str(value)

    def incr(self, key: str) -> int:
        with self._lock:
            self.values[key] = self.values.get(key, 0) + 1
            return self.values[key]

    def expire(self, key: str, seconds: int) -> bool:
        if key not in self.values:
            return False
        self.ttls[key] = seconds
        return True

    def ttl(self, key: str) -> int:
        if key not in self.values:
            return -2
        return self.ttls.get(key, -1)

    def delete(self, key: str) -> bool:
        self.ttls.pop(key, None)
        return self.values.pop(key, None) is not None


# =============================================================================
# SERVICE FIXTURES
# =============================================================================


@pytest.fixture
def config():
    """Test config: plain-HTTP cookies for TestClient, roomy verify limit."""
    return AuthConfig(
        cookie_secure=False,
        issue_rate_limit_attempts=5,
        verify_rate_limit_attempts=10,
        rate_limit_window_minutes=15,
        app_base_url="https://events.example.com",
    )


@pytest.fixture
def auth_db():
    return FakeAuthDatabase()


@pytest.fixture
def registrations():
    return FakeRegistrationService([
        make_registration(TEST_EMAIL, "Ada", "Lovelace"),
        make_registration(TEST_EMAIL_B, "Grace", "Hopper"),
    ])


@pytest.fixture
def valkey():
    return FakeValkey()


@pytest.fixture
def security_logger():
    """Mock security logger - assert on .log calls."""
    return Mock(spec=SecurityLogger)


@pytest.fixture
def mock_email_client():
    """Mock email client - no actual emails sent in tests."""
    mock = Mock(spec=EmailGatewayClient)
    mock.send_login_code.return_value = None
    return mock


@pytest.fixture
def session_manager(config, auth_db):
    return SessionManager(TEST_SECRET, config, auth_db)


@pytest.fixture
def auth_service(
    config, auth_db, registrations, valkey, security_logger, mock_email_client, session_manager
):
    return AuthService(
        config=config,
        auth_db=auth_db,
        registrations=registrations,
        identity_resolver=IdentityResolver(auth_db, security_logger),
        session_manager=session_manager,
        issue_rate_limiter=RateLimiter(
            valkey, "otp_issue", config.issue_rate_limit_attempts, config.rate_limit_window_minutes
        ),
        verify_rate_limiter=RateLimiter(
            valkey, "otp_verify", config.verify_rate_limit_attempts, config.rate_limit_window_minutes
        ),
        email_client=mock_email_client,
        security_logger=security_logger,
    )


@pytest.fixture
def sent_code(mock_email_client):
    """Callable returning the code from the most recent login email."""
    def _sent_code() -> str:
        return mock_email_client.send_login_code.call_args.kwargs["code"]
    return _sent_code


@pytest.fixture
def logged_events(security_logger):
    """Callable returning the SecurityEvent values logged so far, in order."""
    def _logged_events() -> list:
        return [c.args[0] for c in security_logger.log.call_args_list]
    return _logged_events


@pytest.fixture
def registration_factory():
    """Build Registration records for ad-hoc emails."""
    return make_registration


# =============================================================================
# DATABASE FIXTURES
# =============================================================================


@pytest.fixture(scope="session")
def db():
    """Session-scoped PostgresClient against TEST_DATABASE_URL with the test schema applied."""
    database_url = os.getenv("TEST_DATABASE_URL")
    if not database_url:
        pytest.skip("TEST_DATABASE_URL not set")

    from clients.postgres_client import PostgresClient

    client = PostgresClient(database_url, min_connections=1, max_connections=10)
    schema = (Path(__file__).parent / "schema.sql").read_text()
    client.execute(schema)
    yield client
    client.close()


@pytest.fixture
def clean_db(db):
    """Empty auth tables before each database test."""
    db.execute(
        "TRUNCATE otp_codes, login_handoffs, sessions, accounts, security_events, users, registrations, events CASCADE"
    )
    yield db


# =============================================================================
# APP FIXTURES
# =============================================================================


@pytest.fixture
def app(config, auth_service, session_manager):
    """Full application wired to the in-memory services."""
    from api.app import AppContainer, create_app

    return create_app(AppContainer(
        config=config,
        auth_service=auth_service,
        session_manager=session_manager,
    ))


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    return TestClient(app, raise_server_exceptions=False)
