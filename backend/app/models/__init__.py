"""SQLAlchemy ORM models for the course platform.

All models are exported from this module for convenient imports:
    from app.models import User, Course, CourseAccessToken, ...

Models are organized by domain:
- user.py: User (identity, verification state)
- course.py: Course, Purchase, CourseCompletion, CourseProgress, Comment,
  CommentReply
- course_access.py: CourseAccessToken, AccessLogEntry
"""

from app.models.base import Base, TimestampMixin
from app.models.course import (
    Comment,
    CommentReply,
    Course,
    CourseCompletion,
    CourseProgress,
    Purchase,
)
from app.models.course_access import AccessLogEntry, CourseAccessToken
from app.models.user import User

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    # Identity
    "User",
    "CourseAccessToken",
    "AccessLogEntry",
    # Catalog and per-user course state
    "Course",
    "Purchase",
    "CourseCompletion",
    "CourseProgress",
    "Comment",
    "CommentReply",
]
