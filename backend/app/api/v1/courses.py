"""Course endpoints: catalog, purchases, temporary access links, progress
and video comments with replies.

Access links let a purchaser open a course page outside the normal
session: the link carries a course-access token plus the account and
course ids, and each token redeems a capped number of times before it is
used up or expires.

Every mutating endpoint loads the account with a row lock, applies the
change in memory and commits as its final step.
"""

import logging
import uuid
from typing import Annotated
from urllib.parse import urlencode

from fastapi import APIRouter, Path, Query, Request
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    CourseOwner,
    CurrentUser,
    DbSession,
    Identity,
    Services,
    VerifiedCourseOwner,
)
from app.core.config import settings
from app.core.errors import (
    AccessDeniedError,
    AccessErrorCode,
    ConflictError,
    ForbiddenError,
    NotFoundError,
)
from app.core.rate_limiting import limiter
from app.core.responses import DataResponse
from app.models.course import Comment, CommentReply, Course
from app.repositories.course_repository import CourseRepository
from app.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

router = APIRouter()

CourseId = Annotated[int, Path(ge=1)]
VideoId = Annotated[str, Path(min_length=1, max_length=100)]


# ===================================================================
# Request models
# ===================================================================


class RevokeAccessLinkRequest(BaseModel):
    """Request body for POST /courses/access-links/revoke."""

    model_config = ConfigDict(extra="forbid")

    token: str = Field(min_length=1, max_length=4096)


class ProgressRequest(BaseModel):
    """Request body for POST /courses/{course_id}/progress."""

    model_config = ConfigDict(extra="forbid")

    lesson_id: str = Field(min_length=1, max_length=100)


class CommentRequest(BaseModel):
    """Request body for POST /courses/{course_id}/videos/{video_id}/comments."""

    model_config = ConfigDict(extra="forbid")

    text: str = Field(min_length=1, max_length=2000)


class ReplyRequest(BaseModel):
    """Request body for POST .../comments/{comment_id}/replies."""

    model_config = ConfigDict(extra="forbid")

    text: str = Field(min_length=1, max_length=500)


class AccessLogRequest(BaseModel):
    """Request body for POST /courses/{course_id}/access-log."""

    model_config = ConfigDict(extra="forbid")

    token: str = Field(min_length=1, max_length=4096)
    duration_seconds: int = Field(ge=0, le=86400)


# ===================================================================
# Helpers
# ===================================================================


def course_to_dict(course: Course) -> dict:
    """Public representation of a catalog course."""
    return {
        "id": course.id,
        "title": course.title,
        "description": course.description,
        "category": course.category,
        "price": float(course.price or 0),
        "lesson_count": course.lesson_count,
    }


def comment_to_dict(comment: Comment) -> dict:
    return {
        "id": str(comment.id),
        "course_id": comment.course_id,
        "video_id": comment.video_id,
        "author_name": comment.author_name,
        "text": comment.body,
        "created_at": comment.created_at,
        "replies": [reply_to_dict(r) for r in comment.replies],
    }


def reply_to_dict(reply: CommentReply) -> dict:
    return {
        "id": str(reply.id),
        "comment_id": str(reply.comment_id),
        "author_name": reply.author_name,
        "text": reply.body,
        "created_at": reply.created_at,
    }


def access_link_url(token: str, user_id: uuid.UUID, course_id: int) -> str:
    """Frontend URL that redeems an access link."""
    query = urlencode({"curso": course_id, "token": token, "usuario": str(user_id)})
    return f"{settings.frontend_url.rstrip('/')}/curso.html?{query}"


def _client_info(request: Request) -> tuple[str | None, str | None]:
    client_ip = request.client.host if request.client else None
    return client_ip, request.headers.get("User-Agent")


async def _get_course_or_404(db: AsyncSession, course_id: int) -> Course:
    course = await CourseRepository.get_active(db, course_id)
    if course is None:
        raise NotFoundError("Course", str(course_id))
    return course


async def _get_comment_or_404(
    db: AsyncSession, course_id: int, video_id: str, comment_id: uuid.UUID
) -> Comment:
    comment = await CourseRepository.get_comment(db, comment_id)
    if comment is None or (comment.course_id, comment.video_id) != (
        course_id,
        video_id,
    ):
        raise NotFoundError("Comment", str(comment_id))
    return comment


# ===================================================================
# Catalog
# ===================================================================


@router.get("")
async def list_courses(
    db: DbSession,
    category: str | None = Query(None, max_length=100),
) -> DataResponse[list[dict]]:
    """List active courses, optionally filtered by category."""
    courses = await CourseRepository.list_active(db, category=category)
    return DataResponse(data=[course_to_dict(c) for c in courses])


@router.get("/mine")
async def list_my_courses(user: CurrentUser, db: DbSession) -> DataResponse[list[dict]]:
    """List the caller's purchased courses with completion state."""
    courses = await CourseRepository.list_by_ids(db, user.purchased_course_ids)
    completed = user.completed_course_ids
    return DataResponse(
        data=[
            {**course_to_dict(c), "completed": c.id in completed} for c in courses
        ]
    )


# ===================================================================
# Access links (static paths first so they are not read as course ids)
# ===================================================================


@router.get("/access/verify")
@limiter.limit("30/minute")
async def verify_access_link(
    request: Request,
    db: DbSession,
    services: Services,
    token: str = Query(min_length=1, max_length=4096),
    usuario: str = Query(min_length=1, max_length=64),
    curso: int = Query(ge=1),
) -> DataResponse[dict]:
    """Redeem a course access link.

    Unauthenticated: possession of the link is the credential. Each
    successful call consumes one access and appends an access log entry.

    Rate limit: 30 per minute per IP.
    """
    try:
        user_id = uuid.UUID(usuario)
    except ValueError as exc:
        raise AccessDeniedError(AccessErrorCode.UNKNOWN_USER) from exc

    user = await UserRepository.get_by_id(db, user_id, for_update=True)
    if user is None:
        raise AccessDeniedError(AccessErrorCode.UNKNOWN_USER)

    client_ip, user_agent = _client_info(request)
    try:
        grant = services.course_access.verify(
            user, token, curso, client_ip=client_ip, user_agent=user_agent
        )
    except AccessDeniedError as exc:
        logger.info(
            "Rejected course access link for user %s course %s: %s",
            user.id,
            curso,
            exc.code,
        )
        raise

    await UserRepository.save(db, user)
    await db.commit()

    course = await CourseRepository.get_active(db, curso)
    return DataResponse(
        data={
            "access": True,
            "course_id": grant.course_id,
            "course": course_to_dict(course) if course else None,
            "user": {"id": str(user.id), "name": user.name},
            "access_count": grant.access_count,
            "remaining_accesses": grant.remaining_accesses,
            "expires_at": grant.expires_at,
        }
    )


@router.post("/access-links/revoke")
async def revoke_access_link(
    body: RevokeAccessLinkRequest,
    identity: Identity,
    db: DbSession,
    services: Services,
) -> DataResponse[dict]:
    """Invalidate one of the caller's access links by token."""
    user = await services.gate.load_user(db, identity, for_update=True)
    if not services.course_access.invalidate(user, body.token):
        raise AccessDeniedError(AccessErrorCode.NOT_FOUND)

    await UserRepository.save(db, user)
    await db.commit()
    return DataResponse(data={"revoked": True})


# ===================================================================
# Single course
# ===================================================================


@router.get("/{course_id}")
async def get_course(
    db: DbSession, course_id: CourseId
) -> DataResponse[dict]:
    """Get an active course by id."""
    course = await _get_course_or_404(db, course_id)
    return DataResponse(data=course_to_dict(course))


@router.get("/{course_id}/details")
async def get_course_details(
    user: CurrentUser,
    db: DbSession,
    course_id: CourseId,
) -> DataResponse[dict]:
    """Get a course with the caller's access flag and, if owned, progress."""
    course = await _get_course_or_404(db, course_id)
    has_access = course_id in user.purchased_course_ids
    progress = None
    if has_access:
        row = await CourseRepository.get_progress(db, user.id, course_id)
        viewed = list(row.viewed_lessons) if row else []
        progress = {
            "viewed_lessons": viewed,
            "last_lesson": row.last_lesson if row else None,
            "total_lessons": course.lesson_count,
            "completed": course_id in user.completed_course_ids,
        }
    return DataResponse(
        data={**course_to_dict(course), "has_access": has_access, "progress": progress}
    )


@router.get("/{course_id}/access")
async def check_course_access(
    user: CurrentUser,
    services: Services,
    course_id: CourseId,
) -> DataResponse[dict]:
    """Confirm the session's account may open a course page.

    The session counterpart of redeeming an access link: nothing is
    consumed or logged.
    """
    services.gate.require_course_ownership(user, course_id)
    return DataResponse(
        data={
            "access": True,
            "course_id": course_id,
            "user": {"id": str(user.id), "name": user.name, "email": user.email},
        }
    )


@router.post("/{course_id}/access-log", status_code=201)
async def report_access_session(
    request: Request,
    body: AccessLogRequest,
    user: CourseOwner,
    db: DbSession,
    services: Services,
    course_id: CourseId,
) -> DataResponse[dict]:
    """Record how long a course page opened through an access link stayed open."""
    client_ip, user_agent = _client_info(request)
    entry = services.course_access.report_session(
        user,
        body.token,
        course_id,
        body.duration_seconds,
        client_ip=client_ip,
        user_agent=user_agent,
    )
    await UserRepository.save(db, user)
    await db.commit()

    return DataResponse(
        data={
            "course_id": entry.course_id,
            "access_date": entry.access_date,
            "duration_seconds": entry.duration_seconds,
        }
    )


@router.post("/{course_id}/purchase", status_code=201)
async def purchase_course(
    identity: Identity,
    db: DbSession,
    services: Services,
    course_id: CourseId,
) -> DataResponse[dict]:
    """Record a completed purchase of a course.

    No payment processing happens here. Buying an owned course is a 409.
    """
    user = await services.gate.load_user(db, identity, for_update=True)
    course = await _get_course_or_404(db, course_id)
    if course_id in user.purchased_course_ids:
        raise ConflictError(
            code="ALREADY_PURCHASED",
            message="You already own this course",
        )

    purchase = CourseRepository.record_purchase(user, course)
    await UserRepository.save(db, user)
    await db.commit()

    logger.info("User %s purchased course %s", user.id, course_id)
    return DataResponse(
        data={
            "course_id": course_id,
            "status": purchase.status,
            "price_paid": float(purchase.price_paid),
            "purchased_at": purchase.purchased_at,
        }
    )


@router.post("/{course_id}/refund")
async def refund_course(
    user: CourseOwner,
    db: DbSession,
    services: Services,
    course_id: CourseId,
) -> DataResponse[dict]:
    """Cancel a purchase and invalidate every access link for the course."""
    CourseRepository.cancel_purchase(user, course_id)
    removed = services.course_access.invalidate_all_for_course(user, course_id)
    await UserRepository.save(db, user)
    await db.commit()

    logger.info("User %s refunded course %s", user.id, course_id)
    return DataResponse(
        data={
            "course_id": course_id,
            "status": "cancelled",
            "invalidated_links": removed,
        }
    )


@router.post("/{course_id}/access-links", status_code=201)
@limiter.limit("20/hour")
async def create_access_link(
    request: Request,
    user: CourseOwner,
    db: DbSession,
    services: Services,
    course_id: CourseId,
) -> DataResponse[dict]:
    """Issue a temporary access link for an owned course.

    Rate limit: 20 per hour per user.
    """
    await _get_course_or_404(db, course_id)

    client_ip, user_agent = _client_info(request)
    issued = services.course_access.issue(
        user, course_id, client_ip=client_ip, user_agent=user_agent
    )
    await UserRepository.save(db, user)
    await db.commit()

    return DataResponse(
        data={
            "token": issued.token,
            "course_id": issued.course_id,
            "expires_at": issued.expires_at,
            "max_uses": issued.max_uses,
            "link": access_link_url(issued.token, user.id, course_id),
        }
    )


@router.delete("/{course_id}/access-links")
async def delete_access_links(
    identity: Identity,
    db: DbSession,
    services: Services,
    course_id: CourseId,
) -> DataResponse[dict]:
    """Invalidate all of the caller's access links for a course."""
    user = await services.gate.load_user(db, identity, for_update=True)
    removed = services.course_access.invalidate_all_for_course(user, course_id)
    await UserRepository.save(db, user)
    await db.commit()
    return DataResponse(data={"course_id": course_id, "invalidated_links": removed})


# ===================================================================
# Progress
# ===================================================================


@router.post("/{course_id}/progress")
async def mark_progress(
    body: ProgressRequest,
    user: VerifiedCourseOwner,
    db: DbSession,
    course_id: CourseId,
) -> DataResponse[dict]:
    """Mark a lesson viewed; the course completes when every lesson is."""
    course = await _get_course_or_404(db, course_id)
    progress = await CourseRepository.mark_lesson_viewed(
        db, user, course, body.lesson_id
    )
    await db.commit()

    return DataResponse(
        data={
            "course_id": course_id,
            "viewed_lessons": list(progress.viewed_lessons),
            "last_lesson": progress.last_lesson,
            "completed": course_id in user.completed_course_ids,
        }
    )


@router.get("/{course_id}/progress")
async def get_progress(
    user: CurrentUser,
    db: DbSession,
    services: Services,
    course_id: CourseId,
) -> DataResponse[dict]:
    """Get the caller's progress in an owned course."""
    services.gate.require_course_ownership(user, course_id)
    progress = await CourseRepository.get_progress(db, user.id, course_id)
    return DataResponse(
        data={
            "course_id": course_id,
            "viewed_lessons": list(progress.viewed_lessons) if progress else [],
            "last_lesson": progress.last_lesson if progress else None,
            "completed": course_id in user.completed_course_ids,
        }
    )


# ===================================================================
# Video comments
# ===================================================================


@router.get("/{course_id}/videos/{video_id}/comments")
async def list_comments(
    db: DbSession,
    course_id: CourseId,
    video_id: VideoId,
) -> DataResponse[list[dict]]:
    """List comments on a course video, newest first."""
    comments = await CourseRepository.list_comments(db, course_id, video_id)
    return DataResponse(data=[comment_to_dict(c) for c in comments])


@router.post("/{course_id}/videos/{video_id}/comments", status_code=201)
async def create_comment(
    body: CommentRequest,
    user: VerifiedCourseOwner,
    db: DbSession,
    course_id: CourseId,
    video_id: VideoId,
) -> DataResponse[dict]:
    """Post a comment on a video of an owned course."""
    comment = await CourseRepository.add_comment(
        db,
        user=user,
        course_id=course_id,
        video_id=video_id,
        body=body.text.strip(),
    )
    await db.commit()
    return DataResponse(data=comment_to_dict(comment))


@router.delete("/{course_id}/videos/{video_id}/comments/{comment_id}")
async def delete_comment(
    user: CurrentUser,
    db: DbSession,
    course_id: CourseId,
    video_id: VideoId,
    comment_id: uuid.UUID,
) -> DataResponse[dict]:
    """Delete one of the caller's own comments, with its replies."""
    comment = await _get_comment_or_404(db, course_id, video_id, comment_id)
    if comment.user_id != user.id:
        raise ForbiddenError("You can only delete your own comments")

    await CourseRepository.delete_comment(db, comment)
    await db.commit()
    return DataResponse(data={"deleted": True})


@router.post(
    "/{course_id}/videos/{video_id}/comments/{comment_id}/replies",
    status_code=201,
)
async def create_reply(
    body: ReplyRequest,
    user: VerifiedCourseOwner,
    db: DbSession,
    course_id: CourseId,
    video_id: VideoId,
    comment_id: uuid.UUID,
) -> DataResponse[dict]:
    """Reply to a comment on a video of an owned course."""
    comment = await _get_comment_or_404(db, course_id, video_id, comment_id)
    reply = await CourseRepository.add_reply(
        db, comment=comment, user=user, body=body.text.strip()
    )
    await db.commit()
    return DataResponse(data=reply_to_dict(reply))


@router.delete(
    "/{course_id}/videos/{video_id}/comments/{comment_id}/replies/{reply_id}"
)
async def delete_reply(
    user: CurrentUser,
    db: DbSession,
    course_id: CourseId,
    video_id: VideoId,
    comment_id: uuid.UUID,
    reply_id: uuid.UUID,
) -> DataResponse[dict]:
    """Delete one of the caller's own replies."""
    comment = await _get_comment_or_404(db, course_id, video_id, comment_id)
    reply = await CourseRepository.get_reply(db, reply_id)
    if reply is None or reply.comment_id != comment.id:
        raise NotFoundError("Reply", str(reply_id))
    if reply.user_id != user.id:
        raise ForbiddenError("You can only delete your own replies")

    await CourseRepository.delete_reply(db, reply)
    await db.commit()
    return DataResponse(data={"deleted": True})
