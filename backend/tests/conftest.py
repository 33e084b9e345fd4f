import os
import socket
import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow

# Settings are constructed at import time and refuse to start without a
# signing secret, so the environment must be prepared before importing app.
os.environ["AUTH_SECRET"] = TEST_AUTH_SECRET
os.environ["RATE_LIMIT_ENABLED"] = "false"

import httpx  # noqa: E402
import jwt  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.auth import TokenPolicy, build_token_codec  # noqa: E402
from app.core.config import settings  # noqa: E402
from app.core.email import EmailClient  # noqa: E402
from app.core.tokens import TokenCodec  # noqa: E402
from app.models.base import Base  # noqa: E402
from app.models.course import Purchase  # noqa: E402
from app.models.user import User  # noqa: E402
from app.services.registry import ServiceRegistry, build_services  # noqa: E402

# Use separate test database
TEST_DATABASE_URL = settings.database_url.replace(
    settings.database_name, f"{settings.database_name}_test"
)

# Test user ID (consistent across tests for predictable auth)
TEST_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
TEST_EMAIL = "ana@example.com"


def create_test_jwt(
    user_id: uuid.UUID = TEST_USER_ID,
    *,
    secret: str = TEST_AUTH_SECRET,
    purpose: str = "session",
    expires_delta: timedelta | None = None,
    iat: datetime | None = None,
    **extra_claims: object,
) -> str:
    """Forge a signed JWT directly with PyJWT.

    Args:
        user_id: User UUID to encode in the sub claim.
        secret: Signing secret (must match settings.auth_secret in tests).
        purpose: Token family claim.
        expires_delta: Time until expiration from ``iat``. Defaults to 1 hour.
        iat: Issued-at time. Defaults to now.
        **extra_claims: Additional claims (email, course_ref, ...).

    Returns:
        Encoded JWT string.
    """
    issued = iat or datetime.now(UTC)
    payload = {
        "sub": str(user_id),
        "purpose": purpose,
        "aud": settings.auth_audience,
        "iss": settings.auth_issuer,
        "iat": issued,
        "exp": issued + (expires_delta or timedelta(hours=1)),
        **extra_claims,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def _is_postgres_available() -> bool:
    """Check if PostgreSQL is accepting connections.

    Returns:
        True if PostgreSQL is reachable on port 5432, False otherwise.
    """
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(1)
        result = sock.connect_ex((settings.database_host, settings.database_port))
        sock.close()
        return result == 0
    except OSError:
        return False


# Check once at module load time
_POSTGRES_AVAILABLE = _is_postgres_available()


def skip_if_no_postgres() -> None:
    """Skip test if PostgreSQL is not available.

    Called by fixtures that require database connection.
    """
    if not _POSTGRES_AVAILABLE:
        pytest.skip(
            "PostgreSQL not available on port 5432. "
            "Start database with: docker compose up -d"
        )


# =============================================================================
# Database fixtures (PostgreSQL, skipped when unavailable)
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine.

    Skips test if PostgreSQL is not available (e.g., Docker not running).
    """
    skip_if_no_postgres()

    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


# =============================================================================
# Token component fixtures (no database)
# =============================================================================


@pytest.fixture
def codec() -> TokenCodec:
    """Codec signed with the test secret and configured issuer/audience."""
    return build_token_codec(settings)


@pytest.fixture
def policy() -> TokenPolicy:
    """Default lifetimes and caps (24h, 5min, 1h, 3 uses, 100 log entries)."""
    return TokenPolicy()


@pytest.fixture
def make_user() -> Callable[..., User]:
    """Factory for transient (unsaved) users.

    Token managers only touch in-memory state, so most tests never need
    a database.
    """

    def _make(
        *,
        email: str = TEST_EMAIL,
        name: str = "Ana",
        is_verified: bool = False,
        user_id: uuid.UUID | None = None,
        purchased: tuple[int, ...] = (),
    ) -> User:
        user = User(
            id=user_id or uuid.uuid4(),
            email=email,
            name=name,
            password_hash=None,
            is_verified=is_verified,
        )
        for course_id in purchased:
            user.purchases.append(
                Purchase(
                    course_id=course_id,
                    price_paid=Decimal("19.99"),
                    status="completed",
                    purchased_at=datetime.now(UTC),
                )
            )
        return user

    return _make


# =============================================================================
# Email fixtures
# =============================================================================


@pytest.fixture
def sent_emails() -> list[httpx.Request]:
    """Requests captured by the fake Mailjet transport."""
    return []


@pytest.fixture
def email_client(sent_emails: list[httpx.Request]) -> EmailClient:
    """EmailClient whose Mailjet calls are answered by a MockTransport."""

    def handler(request: httpx.Request) -> httpx.Response:
        sent_emails.append(request)
        return httpx.Response(200, json={"Messages": [{"Status": "success"}]})

    return EmailClient(
        api_key="test-key",
        api_secret="test-secret",  # nosec B106
        sender_email="noreply@example.com",
        sender_name="Academia Test",
        backend_url="http://api.test",
        transport=httpx.MockTransport(handler),
    )


# =============================================================================
# API Test Fixtures
# =============================================================================


@pytest.fixture
def services(email_client: EmailClient) -> ServiceRegistry:
    """Service registry built from test settings with the fake email client."""
    return build_services(settings, email=email_client)


@pytest.fixture
def mock_db() -> AsyncMock:
    """AsyncSession stand-in for endpoint tests that patch repositories."""
    return AsyncMock(spec=AsyncSession)


@pytest_asyncio.fixture
async def client(
    services: ServiceRegistry, mock_db: AsyncMock
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client over a fresh app wired to the test services.

    The database dependency yields ``mock_db``; tests patch repository
    methods to return transient users and courses.
    """
    from app.core.database import get_db
    from app.main import create_app

    app = create_app(services=services)

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield mock_db

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(services: ServiceRegistry) -> Callable[[User], dict[str, str]]:
    """Build an Authorization header carrying a session token for a user."""

    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {services.sessions.issue(user)}"}

    return _headers
