"""Course access models - temporary access tokens and the access log.

Both tables are owned by a User and only mutated through the user's
collections (append, in-place update, removal with delete-orphan cascade).
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base

if TYPE_CHECKING:
    from app.models.user import User

_DEFAULT_UUID = text("gen_random_uuid()")


class CourseAccessToken(Base):
    """Time-boxed, capped-use link to a purchased course.

    Usable only while ``now < expires_at`` and ``used`` is False. ``used``
    flips once ``access_count`` reaches the configured cap.

    Attributes:
        id: UUID primary key.
        user_id: Owning user.
        course_id: Course the token grants access to.
        token: Signed token string (globally unique, immutable).
        created_at: Issue time.
        expires_at: Expiry time.
        used: Whether the redemption cap has been reached.
        access_count: Successful redemptions so far.
        last_accessed: Time of the latest redemption.
        client_ip: IP address of the issuing request.
        user_agent: User agent of the issuing request.
    """

    __tablename__ = "course_access_tokens"
    __table_args__ = (
        CheckConstraint("access_count >= 0", name="ck_access_count_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=_DEFAULT_UUID,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    course_id: Mapped[int] = mapped_column(Integer, nullable=False)
    token: Mapped[str] = mapped_column(Text(), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    used: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("false"),
        default=False,
    )
    access_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        server_default=text("0"),
        default=0,
    )
    last_accessed: Mapped[datetime | None] = mapped_column(nullable=True)
    client_ip: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)

    user: Mapped["User"] = relationship("User", back_populates="access_tokens")


class AccessLogEntry(Base):
    """One redemption of a course-access token.

    The bigint identity key records insertion order, which is also
    chronological order; the ring buffer evicts by it.

    Attributes:
        id: Auto-increment primary key.
        user_id: Owning user.
        course_id: Course accessed.
        access_date: When the access happened.
        token_used: Token string that was redeemed.
        client_ip: IP address of the redeeming request.
        user_agent: User agent of the redeeming request.
        duration_seconds: Optional session length reported by the client.
    """

    __tablename__ = "access_logs"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    course_id: Mapped[int] = mapped_column(Integer, nullable=False)
    access_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    token_used: Mapped[str] = mapped_column(Text(), nullable=False)
    client_ip: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)

    user: Mapped["User"] = relationship("User", back_populates="access_logs")
