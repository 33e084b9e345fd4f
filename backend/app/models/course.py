"""Course catalog and per-user course state.

- Course: catalog entry (integer ids, as referenced in access links)
- Purchase: one per (user, course); ``completed`` purchases are entitlements
- CourseCompletion: finished courses
- CourseProgress: viewed lessons per (user, course)
- Comment: comments on course videos
- CommentReply: replies to a comment
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from app.models.user import User

_DEFAULT_UUID = text("gen_random_uuid()")


class Course(Base, TimestampMixin):
    """Catalog course.

    Attributes:
        id: Integer primary key.
        title: Course title.
        description: Long description.
        category: Category or school year used for filtering.
        price: Price in the catalog currency.
        lesson_count: Number of lessons; progress completes at this count.
        is_active: Inactive courses are hidden from the catalog.
    """

    __tablename__ = "courses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text(), nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    price: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, server_default=text("0")
    )
    lesson_count: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0"), default=0
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("true"), default=True
    )


class Purchase(Base):
    """Recorded purchase of a course (no payment processing).

    Attributes:
        id: UUID primary key.
        user_id: Buyer.
        course_id: Purchased course.
        price_paid: Price at purchase time.
        status: ``completed``, ``pending`` or ``cancelled``.
        purchased_at: Purchase timestamp.
    """

    __tablename__ = "purchases"
    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_purchases_user_course"),
        CheckConstraint(
            "status IN ('completed', 'pending', 'cancelled')",
            name="ck_purchases_status",
        ),
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
    )
    course_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("courses.id"), nullable=False
    )
    price_paid: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, server_default="completed", default="completed"
    )
    purchased_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    user: Mapped["User"] = relationship("User", back_populates="purchases")


class CourseCompletion(Base):
    """A course the user has finished."""

    __tablename__ = "course_completions"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "course_id", name="uq_course_completions_user_course"
        ),
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
    )
    course_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("courses.id"), nullable=False
    )
    completed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    user: Mapped["User"] = relationship("User", back_populates="completions")


class CourseProgress(Base, TimestampMixin):
    """Lessons viewed by a user in one course.

    Attributes:
        viewed_lessons: Lesson ids in first-viewed order.
        last_lesson: Most recently viewed lesson id.
    """

    __tablename__ = "course_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_course_progress_user_course"),
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
    )
    course_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("courses.id"), nullable=False
    )
    viewed_lessons: Mapped[list[str]] = mapped_column(
        JSONB, nullable=False, server_default=text("'[]'::jsonb"), default=list
    )
    last_lesson: Mapped[str | None] = mapped_column(String(100), nullable=True)


class Comment(Base, TimestampMixin):
    """Comment posted on a course video."""

    __tablename__ = "comments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=_DEFAULT_UUID,
    )
    course_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("courses.id"), nullable=False, index=True
    )
    video_id: Mapped[str] = mapped_column(String(100), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    author_name: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text(), nullable=False)

    replies: Mapped[list["CommentReply"]] = relationship(
        "CommentReply",
        back_populates="comment",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="CommentReply.created_at",
    )


class CommentReply(Base, TimestampMixin):
    """Reply to a video comment; deleted with its comment."""

    __tablename__ = "comment_replies"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=_DEFAULT_UUID,
    )
    comment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("comments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    author_name: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text(), nullable=False)

    comment: Mapped["Comment"] = relationship("Comment", back_populates="replies")
