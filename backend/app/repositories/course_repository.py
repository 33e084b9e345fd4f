"""Repository for the course catalog and per-user course state.

Courses are read-only from the API's perspective. Purchases, progress and
completions are written through the owning user's session. Comments and
their replies are rows of their own.
"""

import uuid
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.course import (
    Comment,
    CommentReply,
    Course,
    CourseCompletion,
    CourseProgress,
    Purchase,
)
from app.models.user import User


class CourseRepository:
    """Stateless repository for catalog, purchase and progress operations.

    All methods are static; there is no instance state.
    """

    @staticmethod
    async def list_active(
        db: AsyncSession, *, category: str | None = None
    ) -> list[Course]:
        """List active courses ordered by id, optionally filtered by category.

        Category matching is a case-insensitive substring match.
        """
        stmt = select(Course).where(Course.is_active.is_(True))
        if category:
            stmt = stmt.where(Course.category.ilike(f"%{category}%"))
        result = await db.execute(stmt.order_by(Course.id))
        return list(result.scalars().all())

    @staticmethod
    async def get_active(db: AsyncSession, course_id: int) -> Course | None:
        """Fetch an active course by id."""
        stmt = select(Course).where(Course.id == course_id, Course.is_active.is_(True))
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_by_ids(db: AsyncSession, course_ids: set[int]) -> list[Course]:
        """Fetch active courses whose id is in ``course_ids``."""
        if not course_ids:
            return []
        stmt = (
            select(Course)
            .where(Course.id.in_(course_ids), Course.is_active.is_(True))
            .order_by(Course.id)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    def record_purchase(user: User, course: Course) -> Purchase:
        """Append a completed purchase to the user.

        A previously cancelled purchase of the same course is reactivated
        instead, since (user, course) is unique.
        """
        for purchase in user.purchases:
            if purchase.course_id == course.id:
                purchase.status = "completed"
                purchase.price_paid = course.price or Decimal("0")
                purchase.purchased_at = datetime.now(UTC)
                return purchase

        purchase = Purchase(
            course_id=course.id,
            price_paid=course.price or Decimal("0"),
            status="completed",
            purchased_at=datetime.now(UTC),
        )
        user.purchases.append(purchase)
        return purchase

    @staticmethod
    def cancel_purchase(user: User, course_id: int) -> Purchase | None:
        """Mark the user's completed purchase of ``course_id`` cancelled."""
        for purchase in user.purchases:
            if purchase.course_id == course_id and purchase.status == "completed":
                purchase.status = "cancelled"
                return purchase
        return None

    @staticmethod
    async def get_progress(
        db: AsyncSession, user_id: uuid.UUID, course_id: int
    ) -> CourseProgress | None:
        """Fetch a user's progress row for a course."""
        stmt = select(CourseProgress).where(
            CourseProgress.user_id == user_id,
            CourseProgress.course_id == course_id,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def mark_lesson_viewed(
        db: AsyncSession,
        user: User,
        course: Course,
        lesson_id: str,
    ) -> CourseProgress:
        """Record a viewed lesson; record a completion once all are viewed.

        Returns:
            The updated progress row.
        """
        progress = await CourseRepository.get_progress(db, user.id, course.id)
        if progress is None:
            progress = CourseProgress(
                user_id=user.id, course_id=course.id, viewed_lessons=[]
            )
            db.add(progress)

        if lesson_id not in progress.viewed_lessons:
            # Reassign so the JSONB column is flagged dirty
            progress.viewed_lessons = [*progress.viewed_lessons, lesson_id]
        progress.last_lesson = lesson_id

        finished = course.lesson_count > 0 and (
            len(progress.viewed_lessons) >= course.lesson_count
        )
        if finished and course.id not in user.completed_course_ids:
            user.completions.append(
                CourseCompletion(course_id=course.id, completed_at=datetime.now(UTC))
            )

        await db.flush()
        return progress

    @staticmethod
    async def add_comment(
        db: AsyncSession,
        *,
        user: User,
        course_id: int,
        video_id: str,
        body: str,
    ) -> Comment:
        """Create a comment on a course video."""
        comment = Comment(
            course_id=course_id,
            video_id=video_id,
            user_id=user.id,
            author_name=user.name,
            body=body,
        )
        db.add(comment)
        await db.flush()
        await db.refresh(comment)
        return comment

    @staticmethod
    async def list_comments(
        db: AsyncSession, course_id: int, video_id: str
    ) -> list[Comment]:
        """List comments on a video, newest first."""
        stmt = (
            select(Comment)
            .where(Comment.course_id == course_id, Comment.video_id == video_id)
            .order_by(Comment.created_at.desc())
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def get_comment(db: AsyncSession, comment_id: uuid.UUID) -> Comment | None:
        """Fetch a comment (with its replies) by id."""
        return await db.get(Comment, comment_id)

    @staticmethod
    async def delete_comment(db: AsyncSession, comment: Comment) -> None:
        """Delete a comment; its replies go with it."""
        await db.delete(comment)
        await db.flush()

    @staticmethod
    async def add_reply(
        db: AsyncSession,
        *,
        comment: Comment,
        user: User,
        body: str,
    ) -> CommentReply:
        """Append a reply to a comment."""
        reply = CommentReply(user_id=user.id, author_name=user.name, body=body)
        comment.replies.append(reply)
        await db.flush()
        await db.refresh(reply)
        return reply

    @staticmethod
    async def get_reply(db: AsyncSession, reply_id: uuid.UUID) -> CommentReply | None:
        """Fetch a reply by id."""
        return await db.get(CommentReply, reply_id)

    @staticmethod
    async def delete_reply(db: AsyncSession, reply: CommentReply) -> None:
        """Delete a single reply."""
        await db.delete(reply)
        await db.flush()
