"""Create users, courses and per-user course state tables.

Revision ID: 001_users_and_courses
Revises: 000_enable_extensions
Create Date: 2026-10-05

- users: identity record with pending email verification fields
- courses: catalog (integer ids, referenced by access links)
- purchases: one row per (user, course); completed rows are entitlements
- course_completions, course_progress, comments
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "001_users_and_courses"
down_revision: str | None = "000_enable_extensions"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_UUID_DEFAULT = sa.text("gen_random_uuid()")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def _user_fk() -> sa.Column:
    return sa.Column(
        "user_id",
        UUID(as_uuid=True),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    # =========================================================================
    # users
    # =========================================================================
    op.create_table(
        "users",
        sa.Column(
            "id", UUID(as_uuid=True), server_default=_UUID_DEFAULT, primary_key=True
        ),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column(
            "is_verified", sa.Boolean(), server_default=sa.false(), nullable=False
        ),
        sa.Column("verification_token", sa.Text(), nullable=True),
        sa.Column(
            "verification_token_expires", sa.DateTime(timezone=True), nullable=True
        ),
        sa.Column("verification_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        # Pending token and its expiry are set and cleared together
        sa.CheckConstraint(
            "(verification_token IS NULL) = (verification_token_expires IS NULL)",
            name="ck_users_verification_token_pair",
        ),
    )

    # =========================================================================
    # courses
    # =========================================================================
    op.create_table(
        "courses",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column(
            "price", sa.Numeric(10, 2), server_default=sa.text("0"), nullable=False
        ),
        sa.Column(
            "lesson_count", sa.Integer(), server_default=sa.text("0"), nullable=False
        ),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
        *_timestamps(),
    )

    # =========================================================================
    # purchases
    # =========================================================================
    op.create_table(
        "purchases",
        sa.Column(
            "id", UUID(as_uuid=True), server_default=_UUID_DEFAULT, primary_key=True
        ),
        _user_fk(),
        sa.Column(
            "course_id", sa.Integer(), sa.ForeignKey("courses.id"), nullable=False
        ),
        sa.Column("price_paid", sa.Numeric(10, 2), nullable=False),
        sa.Column(
            "status", sa.String(20), server_default="completed", nullable=False
        ),
        sa.Column(
            "purchased_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("user_id", "course_id", name="uq_purchases_user_course"),
        sa.CheckConstraint(
            "status IN ('completed', 'pending', 'cancelled')",
            name="ck_purchases_status",
        ),
    )

    # =========================================================================
    # course_completions
    # =========================================================================
    op.create_table(
        "course_completions",
        sa.Column(
            "id", UUID(as_uuid=True), server_default=_UUID_DEFAULT, primary_key=True
        ),
        _user_fk(),
        sa.Column(
            "course_id", sa.Integer(), sa.ForeignKey("courses.id"), nullable=False
        ),
        sa.Column(
            "completed_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint(
            "user_id", "course_id", name="uq_course_completions_user_course"
        ),
    )

    # =========================================================================
    # course_progress
    # =========================================================================
    op.create_table(
        "course_progress",
        sa.Column(
            "id", UUID(as_uuid=True), server_default=_UUID_DEFAULT, primary_key=True
        ),
        _user_fk(),
        sa.Column(
            "course_id", sa.Integer(), sa.ForeignKey("courses.id"), nullable=False
        ),
        sa.Column(
            "viewed_lessons",
            JSONB(),
            server_default=sa.text("'[]'::jsonb"),
            nullable=False,
        ),
        sa.Column("last_lesson", sa.String(100), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "user_id", "course_id", name="uq_course_progress_user_course"
        ),
    )

    # =========================================================================
    # comments
    # =========================================================================
    op.create_table(
        "comments",
        sa.Column(
            "id", UUID(as_uuid=True), server_default=_UUID_DEFAULT, primary_key=True
        ),
        sa.Column(
            "course_id", sa.Integer(), sa.ForeignKey("courses.id"), nullable=False
        ),
        sa.Column("video_id", sa.String(100), nullable=False),
        _user_fk(),
        sa.Column("author_name", sa.String(255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "idx_comments_course_video", "comments", ["course_id", "video_id"]
    )


def downgrade() -> None:
    op.drop_index("idx_comments_course_video", table_name="comments")
    op.drop_table("comments")
    op.drop_table("course_progress")
    op.drop_table("course_completions")
    op.drop_table("purchases")
    op.drop_table("courses")
    op.drop_table("users")
