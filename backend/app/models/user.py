"""User model - the Identity record.

Holds credentials, email verification state, and the token collections
owned by the account: course-access tokens and the bounded access log.
Purchases and completions hang off the user as child rows.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from app.models.course import CourseCompletion, Purchase
    from app.models.course_access import AccessLogEntry, CourseAccessToken

_DEFAULT_UUID = text("gen_random_uuid()")
_CASCADE_ALL_DELETE_ORPHAN = "all, delete-orphan"


class User(Base, TimestampMixin):
    """Registered account.

    The pending verification token and its expiry are set and cleared
    together. Collections load eagerly (selectin) so async code can walk
    them without implicit IO.

    Attributes:
        id: UUID primary key.
        email: Unique email address, stored trimmed and lower-cased.
        name: Display name.
        password_hash: bcrypt hash.
        is_verified: Whether the email address has been confirmed.
        verification_token: Pending signed verification token, if any.
        verification_token_expires: Expiry of the pending token.
        verification_sent_at: When the last verification email was issued.
        last_login_at: Last successful password sign-in.
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "(verification_token IS NULL) = (verification_token_expires IS NULL)",
            name="ck_users_verification_token_pair",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=_DEFAULT_UUID,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    password_hash: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    is_verified: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("false"),
        default=False,
    )
    verification_token: Mapped[str | None] = mapped_column(
        Text(),
        nullable=True,
    )
    verification_token_expires: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    verification_sent_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    last_login_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )

    # Relationships
    purchases: Mapped[list["Purchase"]] = relationship(
        "Purchase",
        back_populates="user",
        cascade=_CASCADE_ALL_DELETE_ORPHAN,
        lazy="selectin",
    )
    completions: Mapped[list["CourseCompletion"]] = relationship(
        "CourseCompletion",
        back_populates="user",
        cascade=_CASCADE_ALL_DELETE_ORPHAN,
        lazy="selectin",
    )
    access_tokens: Mapped[list["CourseAccessToken"]] = relationship(
        "CourseAccessToken",
        back_populates="user",
        cascade=_CASCADE_ALL_DELETE_ORPHAN,
        lazy="selectin",
        order_by="CourseAccessToken.created_at",
    )
    access_logs: Mapped[list["AccessLogEntry"]] = relationship(
        "AccessLogEntry",
        back_populates="user",
        cascade=_CASCADE_ALL_DELETE_ORPHAN,
        lazy="selectin",
        order_by="AccessLogEntry.id",
    )

    @property
    def purchased_course_ids(self) -> set[int]:
        """Course ids with a completed purchase (the entitlement set)."""
        return {p.course_id for p in self.purchases if p.status == "completed"}

    @property
    def completed_course_ids(self) -> set[int]:
        """Course ids the user has finished."""
        return {c.course_id for c in self.completions}

    @property
    def avatar_initial(self) -> str:
        """First letter of the display name, upper-cased."""
        return self.name[:1].upper() if self.name else "U"

    def prune_expired_access_tokens(self, now: datetime) -> int:
        """Drop course-access tokens whose expiry is at or before ``now``.

        Returns:
            Number of tokens removed.
        """
        live = [t for t in self.access_tokens if t.expires_at > now]
        removed = len(self.access_tokens) - len(live)
        if removed:
            self.access_tokens[:] = live
        return removed
