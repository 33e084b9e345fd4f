"""Tests for UserRepository.

CRUD operations, email normalization and uniqueness, row locking and
the expired access-token sweep on save. Database-backed tests need
PostgreSQL and are skipped when it is not available.
"""

import uuid
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.course_access import CourseAccessToken
from app.models.user import User
from app.repositories.user_repository import UserRepository, normalize_email

_MISSING_UUID = uuid.UUID("99999999-9999-9999-9999-999999999999")
_TEST_EMAIL = "test@example.com"


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    user = await UserRepository.create(
        db_session, email=_TEST_EMAIL, name="Test User", password_hash="hash"
    )
    await db_session.commit()
    return user


def _access_token(course_id: int, expires_at: datetime) -> CourseAccessToken:
    return CourseAccessToken(
        course_id=course_id,
        token=f"token-{uuid.uuid4()}",
        created_at=expires_at - timedelta(hours=1),
        expires_at=expires_at,
        used=False,
        access_count=0,
    )


class TestNormalizeEmail:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("Ana@Example.COM", "ana@example.com"),
            ("  ana@example.com\t", "ana@example.com"),
        ],
    )
    def test_normalizes(self, raw: str, expected: str):
        assert normalize_email(raw) == expected


class TestGetById:
    """Test UserRepository.get_by_id()."""

    async def test_returns_user_when_found(self, db_session: AsyncSession, test_user):
        user = await UserRepository.get_by_id(db_session, test_user.id)
        assert user is not None
        assert user.email == _TEST_EMAIL

    async def test_returns_none_when_not_found(self, db_session: AsyncSession):
        assert await UserRepository.get_by_id(db_session, _MISSING_UUID) is None

    async def test_for_update_locks_and_refreshes(
        self, db_session: AsyncSession, test_user
    ):
        """Locked reads see the current row, not a stale identity-map copy."""
        user = await UserRepository.get_by_id(db_session, test_user.id, for_update=True)
        assert user is test_user
        assert user.is_verified is False


class TestGetByEmail:
    """Test UserRepository.get_by_email()."""

    async def test_email_lookup_is_case_insensitive(
        self, db_session: AsyncSession, test_user
    ):
        user = await UserRepository.get_by_email(db_session, "  TEST@EXAMPLE.COM ")
        assert user is not None
        assert user.id == test_user.id

    async def test_returns_none_when_not_found(self, db_session: AsyncSession):
        user = await UserRepository.get_by_email(db_session, "nonexistent@example.com")
        assert user is None

    async def test_for_update(self, db_session: AsyncSession, test_user):
        user = await UserRepository.get_by_email(
            db_session, _TEST_EMAIL, for_update=True
        )
        assert user is not None
        assert user.id == test_user.id


class TestCreate:
    """Test UserRepository.create()."""

    async def test_creates_unverified_user(self, db_session: AsyncSession):
        user = await UserRepository.create(
            db_session, email="  Nuevo@Example.com ", name=" Nuevo "
        )
        assert user.id is not None
        assert user.email == "nuevo@example.com"
        assert user.name == "Nuevo"
        assert user.is_verified is False
        assert user.verification_token is None
        assert user.created_at is not None

    async def test_duplicate_email_raises_integrity_error(
        self, db_session: AsyncSession, test_user  # noqa: ARG002
    ):
        with pytest.raises(IntegrityError):
            await UserRepository.create(db_session, email="TEST@example.com", name="X")


class TestUpdate:
    """Test UserRepository.update()."""

    async def test_updates_allowed_fields(self, db_session: AsyncSession, test_user):
        now = datetime.now(UTC)
        user = await UserRepository.update(
            db_session, test_user.id, name="Renamed", last_login_at=now
        )
        assert user is not None
        assert user.name == "Renamed"
        assert user.last_login_at == now

    async def test_returns_none_for_missing_user(self, db_session: AsyncSession):
        assert await UserRepository.update(db_session, _MISSING_UUID, name="X") is None

    async def test_rejects_protected_fields(self):
        """Verification state changes only through the verification flow."""
        with pytest.raises(ValueError, match="is_verified"):
            await UserRepository.update(AsyncMock(), _MISSING_UUID, is_verified=True)


class TestSave:
    """Test UserRepository.save()."""

    async def test_sweeps_expired_access_tokens(self, make_user: Callable[..., User]):
        now = datetime.now(UTC)
        user = make_user()
        live = _access_token(7, now + timedelta(minutes=30))
        user.access_tokens.extend(
            [_access_token(7, now - timedelta(seconds=1)), live, _access_token(9, now)]
        )
        db = AsyncMock(spec=AsyncSession)

        pruned = await UserRepository.save(db, user, now=now)

        assert pruned == 2
        assert user.access_tokens == [live]
        db.add.assert_called_once_with(user)
        db.flush.assert_awaited_once()

    async def test_persists_token_state(self, db_session: AsyncSession, test_user):
        """Pending verification token and access tokens round-trip the row."""
        now = datetime.now(UTC).replace(microsecond=0)
        test_user.verification_token = "pending"
        test_user.verification_token_expires = now + timedelta(hours=24)
        test_user.verification_sent_at = now
        test_user.access_tokens.append(_access_token(7, now + timedelta(hours=1)))

        await UserRepository.save(db_session, test_user, now=now)
        await db_session.commit()

        user = await UserRepository.get_by_id(db_session, test_user.id, for_update=True)
        assert user.verification_token == "pending"
        assert user.verification_token_expires == now + timedelta(hours=24)
        assert [t.course_id for t in user.access_tokens] == [7]
