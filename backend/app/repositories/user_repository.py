"""Repository for User CRUD operations.

The User row is the unit of consistency for every token it owns. Callers
that mutate token state load the user with ``for_update=True`` (row lock
held until commit) and persist with ``save()`` as the last step.
"""

import uuid
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User

# Fields that may be updated via UserRepository.update().
# Security: Never add 'id', 'email', 'is_verified' or verification token
# fields; those change only through the verification flow.
_UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "name",
        "password_hash",
        "last_login_at",
    }
)


def normalize_email(email: str) -> str:
    """Trim and lower-case an email address (the natural key)."""
    return email.strip().lower()


class UserRepository:
    """Stateless repository for User table operations.

    All methods are static; there is no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(
        db: AsyncSession, user_id: uuid.UUID, *, for_update: bool = False
    ) -> User | None:
        """Fetch a user by primary key.

        Args:
            db: Async database session.
            user_id: UUID primary key.
            for_update: Lock the row (SELECT ... FOR UPDATE) and refresh
                any cached instance from the database.

        Returns:
            User if found, None otherwise.
        """
        if not for_update:
            return await db.get(User, user_id)
        stmt = (
            select(User)
            .where(User.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_email(
        db: AsyncSession, email: str, *, for_update: bool = False
    ) -> User | None:
        """Fetch a user by email address (case-insensitive, trimmed).

        Args:
            db: Async database session.
            email: Email address to look up.
            for_update: Lock the row until the transaction ends.

        Returns:
            User if found, None otherwise.
        """
        stmt = select(User).where(User.email == normalize_email(email))
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        email: str,
        name: str,
        password_hash: str | None = None,
    ) -> User:
        """Create a new, unverified user.

        Email is normalized before storage.

        Args:
            db: Async database session.
            email: User email address.
            name: Display name.
            password_hash: bcrypt hash.

        Returns:
            Created User with database-generated fields populated.

        Raises:
            sqlalchemy.exc.IntegrityError: If email already exists.
        """
        user = User(
            email=normalize_email(email),
            name=name.strip(),
            password_hash=password_hash,
            is_verified=False,
        )
        db.add(user)
        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def update(
        db: AsyncSession,
        user_id: uuid.UUID,
        **kwargs: str | datetime | None,
    ) -> User | None:
        """Update user fields.

        Only fields in _UPDATABLE_FIELDS are allowed. Unknown field names
        raise ValueError.

        Args:
            db: Async database session.
            user_id: UUID of the user to update.
            **kwargs: Field names and values to update.

        Returns:
            Updated User if found, None if user does not exist.

        Raises:
            ValueError: If an unknown field name is passed.
        """
        unknown = set(kwargs) - _UPDATABLE_FIELDS
        if unknown:
            msg = f"Unknown fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        user = await db.get(User, user_id)
        if user is None:
            return None

        for field, value in kwargs.items():
            setattr(user, field, value)

        await db.flush()
        return user

    @staticmethod
    async def save(
        db: AsyncSession, user: User, *, now: datetime | None = None
    ) -> int:
        """Persist a mutated user, sweeping expired access tokens first.

        Args:
            db: Async database session.
            user: User whose in-memory state should be written.
            now: Reference time for the sweep. Defaults to now.

        Returns:
            Number of expired access tokens pruned.
        """
        pruned = user.prune_expired_access_tokens(now or datetime.now(UTC))
        db.add(user)
        await db.flush()
        return pruned
