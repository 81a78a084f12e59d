"""Tests for AuthDatabase against PostgreSQL (skipped without TEST_DATABASE_URL)."""

import threading
from datetime import timedelta
from uuid import uuid4

import pytest

from auth.database import AuthDatabase, hash_session_token
from auth.types import OneTimeCode, UserRole
from utils.timezone import now_utc


@pytest.fixture
def auth_db(clean_db):
    """AuthDatabase on the real test database."""
    return AuthDatabase(clean_db)


def _code(email="ada@example.com", code="123456", created_ago=timedelta(0), lifetime=timedelta(minutes=10)):
    created = now_utc() - created_ago
    return OneTimeCode(
        id=uuid4(),
        email=email,
        code=code,
        created_at=created,
        expires_at=created + lifetime,
        used=False,
    )


class TestConsumeCode:
    """Single-statement conditional consumption."""

    def test_live_code_consumed_once(self, auth_db):
        auth_db.store_code(_code())

        first = auth_db.consume_code("ada@example.com", "123456")
        second = auth_db.consume_code("ada@example.com", "123456")

        assert first is not None
        assert first.used is True
        assert second is None

    def test_email_match_is_case_insensitive(self, auth_db):
        auth_db.store_code(_code())
        assert auth_db.consume_code("ADA@Example.com", "123456") is not None

    def test_expired_code_not_consumed(self, auth_db):
        auth_db.store_code(_code(created_ago=timedelta(minutes=11)))
        assert auth_db.consume_code("ada@example.com", "123456") is None

    def test_wrong_code_not_consumed(self, auth_db):
        auth_db.store_code(_code())
        assert auth_db.consume_code("ada@example.com", "654321") is None

    def test_concurrent_consumers_one_winner(self, auth_db):
        auth_db.store_code(_code())
        results = []
        lock = threading.Lock()
        barrier = threading.Barrier(6)

        def consume():
            barrier.wait()
            result = auth_db.consume_code("ada@example.com", "123456")
            with lock:
                results.append(result)

        threads = [threading.Thread(target=consume) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(1 for r in results if r is not None) == 1

    def test_used_at_recorded(self, auth_db, clean_db):
        auth_db.store_code(_code())
        auth_db.consume_code("ada@example.com", "123456")

        row = clean_db.execute_single("SELECT used, used_at FROM otp_codes")
        assert row["used"] is True
        assert row["used_at"] is not None


class TestCleanupCodes:
    def test_removes_expired_and_old_used(self, auth_db, clean_db):
        auth_db.store_code(_code(code="111111"))  # live
        auth_db.store_code(_code(code="222222", created_ago=timedelta(minutes=30)))  # expired
        old_used = _code(code="333333", created_ago=timedelta(hours=25), lifetime=timedelta(hours=26))
        auth_db.store_code(old_used.model_copy(update={"used": True}))
        auth_db.store_code(_code(code="444444").model_copy(update={"used": True}))  # recent used

        deleted = auth_db.cleanup_codes(retention=timedelta(hours=24))

        assert deleted == 2
        remaining = sorted(row["code"] for row in clean_db.execute("SELECT code FROM otp_codes"))
        assert remaining == ["111111", "444444"]
        assert auth_db.cleanup_codes(retention=timedelta(hours=24)) == 0


class TestLoginHandoffs:
    """Single-use handoff ids."""

    @pytest.fixture
    def user(self, auth_db):
        user, _ = auth_db.upsert_participant("ada@example.com", "Ada")
        return user

    def test_consumed_once(self, auth_db, user):
        auth_db.store_handoff("h1", user.id, "Ada@Example.com", now_utc() + timedelta(minutes=10))

        assert auth_db.consume_handoff("h1", "ada@example.com") == user.id
        assert auth_db.consume_handoff("h1", "ada@example.com") is None

    def test_other_email_does_not_spend_it(self, auth_db, user):
        auth_db.store_handoff("h1", user.id, "ada@example.com", now_utc() + timedelta(minutes=10))

        assert auth_db.consume_handoff("h1", "grace@example.com") is None
        assert auth_db.consume_handoff("h1", "ada@example.com") == user.id

    def test_expired_not_consumed(self, auth_db, user):
        auth_db.store_handoff("h1", user.id, "ada@example.com", now_utc() - timedelta(seconds=1))
        assert auth_db.consume_handoff("h1", "ada@example.com") is None

    def test_unknown_id(self, auth_db):
        assert auth_db.consume_handoff("never-stored", "ada@example.com") is None

    def test_cleanup_removes_used_and_expired(self, auth_db, user, clean_db):
        later = now_utc() + timedelta(minutes=10)
        auth_db.store_handoff("live", user.id, "ada@example.com", later)
        auth_db.store_handoff("used", user.id, "ada@example.com", later)
        auth_db.store_handoff("expired", user.id, "ada@example.com", now_utc() - timedelta(minutes=1))
        auth_db.consume_handoff("used", "ada@example.com")

        assert auth_db.cleanup_handoffs() == 2
        assert [row["id"] for row in clean_db.execute("SELECT id FROM login_handoffs")] == ["live"]


class TestUpsertParticipant:
    def test_creates_then_updates(self, auth_db):
        user, created = auth_db.upsert_participant("Ada@Example.com", "Ada Lovelace")
        again, created_again = auth_db.upsert_participant("ada@example.com", "Ada King")

        assert created is True
        assert created_again is False
        assert again.id == user.id
        assert again.email == "ada@example.com"
        assert again.name == "Ada King"
        assert again.role == UserRole.PARTICIPANT

    def test_keeps_existing_role(self, auth_db, clean_db):
        clean_db.execute(
            "INSERT INTO users (email, name, role) VALUES ('ada@example.com', 'Ada', 'admin')"
        )

        user, created = auth_db.upsert_participant("ada@example.com", "Ada Lovelace")

        assert created is False
        assert user.role == UserRole.ADMIN
        assert user.email_verified_at is not None

    def test_lookup_by_id(self, auth_db):
        user, _ = auth_db.upsert_participant("ADA@example.com", "Ada")

        assert auth_db.get_user_by_id(user.id).email == "ada@example.com"
        assert auth_db.get_user_by_id(uuid4()) is None


class TestSessionBookkeeping:
    def test_account_link_is_idempotent(self, auth_db):
        user, _ = auth_db.upsert_participant("ada@example.com", "Ada")

        assert auth_db.ensure_email_account(user.id, "ada@example.com") is True
        assert auth_db.ensure_email_account(user.id, "ada@example.com") is False

    def test_session_row_keyed_by_hash(self, auth_db, clean_db):
        user, _ = auth_db.upsert_participant("ada@example.com", "Ada")
        auth_db.store_session_record("signed-token", user.id, now_utc() + timedelta(days=30))

        row = clean_db.execute_single("SELECT token_hash FROM sessions")
        assert row["token_hash"] == hash_session_token("signed-token")

        assert auth_db.delete_session_record("signed-token") is True
        assert auth_db.delete_session_record("signed-token") is False
