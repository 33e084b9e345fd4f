"""Tests for CourseRepository.

Purchase bookkeeping and lesson progress run against transient objects;
catalog queries and comment threads need PostgreSQL and are skipped without it.
"""

from collections.abc import Callable
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.course import CommentReply, Course, CourseProgress
from app.models.user import User
from app.repositories.course_repository import CourseRepository
from app.repositories.user_repository import UserRepository


def _course(course_id: int = 7, *, lesson_count: int = 2, price: str = "19.99") -> Course:
    return Course(
        id=course_id,
        title=f"Curso {course_id}",
        price=Decimal(price),
        lesson_count=lesson_count,
        is_active=True,
    )


class TestPurchases:
    def test_record_purchase_grants_entitlement(self, make_user: Callable[..., User]):
        user = make_user()
        purchase = CourseRepository.record_purchase(user, _course())

        assert purchase.status == "completed"
        assert purchase.price_paid == Decimal("19.99")
        assert user.purchased_course_ids == {7}

    def test_repurchase_reactivates_cancelled_row(
        self, make_user: Callable[..., User]
    ):
        """(user, course) is unique, so a refunded course reuses its row."""
        user = make_user(purchased=(7,))
        CourseRepository.cancel_purchase(user, 7)
        assert user.purchased_course_ids == set()

        purchase = CourseRepository.record_purchase(user, _course())

        assert len(user.purchases) == 1
        assert purchase is user.purchases[0]
        assert user.purchased_course_ids == {7}

    def test_cancel_missing_purchase_returns_none(
        self, make_user: Callable[..., User]
    ):
        assert CourseRepository.cancel_purchase(make_user(purchased=(9,)), 7) is None


class TestMarkLessonViewed:
    """Progress is recorded per lesson; completion once every lesson is seen."""

    async def test_first_lesson_creates_progress(self, make_user: Callable[..., User]):
        user = make_user(purchased=(7,))
        db = AsyncMock(spec=AsyncSession)
        with patch.object(
            CourseRepository, "get_progress", new=AsyncMock(return_value=None)
        ):
            progress = await CourseRepository.mark_lesson_viewed(
                db, user, _course(), "l1"
            )

        assert progress.viewed_lessons == ["l1"]
        assert progress.last_lesson == "l1"
        assert user.completed_course_ids == set()
        db.add.assert_called_once_with(progress)

    async def test_repeat_lesson_is_not_double_counted(
        self, make_user: Callable[..., User]
    ):
        user = make_user(purchased=(7,))
        existing = CourseProgress(
            user_id=user.id, course_id=7, viewed_lessons=["l1", "l2"], last_lesson="l2"
        )
        with patch.object(
            CourseRepository, "get_progress", new=AsyncMock(return_value=existing)
        ):
            progress = await CourseRepository.mark_lesson_viewed(
                AsyncMock(spec=AsyncSession), user, _course(lesson_count=3), "l1"
            )

        assert progress.viewed_lessons == ["l1", "l2"]
        assert progress.last_lesson == "l1"
        assert user.completed_course_ids == set()

    async def test_last_lesson_completes_course_once(
        self, make_user: Callable[..., User]
    ):
        user = make_user(purchased=(7,))
        existing = CourseProgress(
            user_id=user.id, course_id=7, viewed_lessons=["l1"], last_lesson="l1"
        )
        with patch.object(
            CourseRepository, "get_progress", new=AsyncMock(return_value=existing)
        ):
            db = AsyncMock(spec=AsyncSession)
            await CourseRepository.mark_lesson_viewed(db, user, _course(), "l2")
            await CourseRepository.mark_lesson_viewed(db, user, _course(), "l2")

        assert user.completed_course_ids == {7}
        assert len(user.completions) == 1

    async def test_course_without_lessons_never_completes(
        self, make_user: Callable[..., User]
    ):
        user = make_user(purchased=(7,))
        with patch.object(
            CourseRepository, "get_progress", new=AsyncMock(return_value=None)
        ):
            await CourseRepository.mark_lesson_viewed(
                AsyncMock(spec=AsyncSession), user, _course(lesson_count=0), "l1"
            )
        assert user.completed_course_ids == set()


# =============================================================================
# Catalog queries (PostgreSQL)
# =============================================================================


@pytest_asyncio.fixture
async def catalog(db_session: AsyncSession) -> list[Course]:
    courses = [
        Course(id=1, title="Álgebra", category="1º ESO", price=Decimal("10")),
        Course(id=2, title="Geometría", category="2º ESO", price=Decimal("12")),
        Course(id=3, title="Archivado", category="1º ESO", is_active=False),
    ]
    db_session.add_all(courses)
    await db_session.commit()
    return courses


class TestCatalogQueries:
    async def test_list_active_hides_inactive(
        self, db_session: AsyncSession, catalog  # noqa: ARG002
    ):
        courses = await CourseRepository.list_active(db_session)
        assert [c.id for c in courses] == [1, 2]

    async def test_list_active_filters_by_category(
        self, db_session: AsyncSession, catalog  # noqa: ARG002
    ):
        courses = await CourseRepository.list_active(db_session, category="1º")
        assert [c.id for c in courses] == [1]

    async def test_get_active(self, db_session: AsyncSession, catalog):  # noqa: ARG002
        assert (await CourseRepository.get_active(db_session, 2)).title == "Geometría"
        assert await CourseRepository.get_active(db_session, 3) is None

    async def test_list_by_ids(self, db_session: AsyncSession, catalog):  # noqa: ARG002
        courses = await CourseRepository.list_by_ids(db_session, {2, 3})
        assert [c.id for c in courses] == [2]
        assert await CourseRepository.list_by_ids(db_session, set()) == []


class TestCommentThreads:
    """Comments, replies and deletion (PostgreSQL)."""

    @pytest_asyncio.fixture
    async def author(self, db_session: AsyncSession, catalog) -> User:  # noqa: ARG002
        user = await UserRepository.create(
            db_session, email="autora@example.com", name="Autora"
        )
        await db_session.commit()
        return user

    async def test_reply_is_listed_under_its_comment(
        self, db_session: AsyncSession, author: User
    ):
        comment = await CourseRepository.add_comment(
            db_session, user=author, course_id=1, video_id="v1", body="Duda"
        )
        reply = await CourseRepository.add_reply(
            db_session, comment=comment, user=author, body="Resuelta"
        )
        await db_session.commit()

        assert reply.comment_id == comment.id
        assert reply.author_name == "Autora"
        [listed] = await CourseRepository.list_comments(db_session, 1, "v1")
        assert [r.body for r in listed.replies] == ["Resuelta"]
        assert await CourseRepository.list_comments(db_session, 1, "v2") == []

    async def test_deleting_comment_removes_replies(
        self, db_session: AsyncSession, author: User
    ):
        comment = await CourseRepository.add_comment(
            db_session, user=author, course_id=1, video_id="v1", body="Duda"
        )
        reply = await CourseRepository.add_reply(
            db_session, comment=comment, user=author, body="Resuelta"
        )
        reply_id = reply.id

        await CourseRepository.delete_comment(db_session, comment)
        await db_session.commit()

        assert await CourseRepository.get_comment(db_session, comment.id) is None
        assert await db_session.get(CommentReply, reply_id) is None

    async def test_delete_single_reply(self, db_session: AsyncSession, author: User):
        comment = await CourseRepository.add_comment(
            db_session, user=author, course_id=1, video_id="v1", body="Duda"
        )
        first = await CourseRepository.add_reply(
            db_session, comment=comment, user=author, body="Uno"
        )
        await CourseRepository.add_reply(
            db_session, comment=comment, user=author, body="Dos"
        )

        await CourseRepository.delete_reply(db_session, first)
        await db_session.commit()

        assert await CourseRepository.get_reply(db_session, first.id) is None
        refreshed = await CourseRepository.get_comment(db_session, comment.id)
        await db_session.refresh(refreshed)
        assert [r.body for r in refreshed.replies] == ["Dos"]
