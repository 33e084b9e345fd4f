"""Create course access token and access log tables.

Revision ID: 002_course_access_tokens
Revises: 001_users_and_courses
Create Date: 2026-10-06

- course_access_tokens: time-boxed, capped-use links (token is unique)
- access_logs: redemption history, bounded per user by the application
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import UUID

revision: str = "002_course_access_tokens"
down_revision: str | None = "001_users_and_courses"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "course_access_tokens",
        sa.Column(
            "id",
            UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column(
            "user_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("course_id", sa.Integer(), nullable=False),
        sa.Column("token", sa.Text(), unique=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column(
            "access_count", sa.Integer(), server_default=sa.text("0"), nullable=False
        ),
        sa.Column("last_accessed", sa.DateTime(timezone=True), nullable=True),
        sa.Column("client_ip", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.CheckConstraint("access_count >= 0", name="ck_access_count_non_negative"),
    )
    op.create_index(
        "ix_course_access_tokens_user_id", "course_access_tokens", ["user_id"]
    )

    op.create_table(
        "access_logs",
        sa.Column("id", sa.BigInteger(), sa.Identity(), primary_key=True),
        sa.Column(
            "user_id",
            UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("course_id", sa.Integer(), nullable=False),
        sa.Column(
            "access_date",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("token_used", sa.Text(), nullable=False),
        sa.Column("client_ip", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("duration_seconds", sa.Integer(), nullable=True),
    )
    op.create_index("ix_access_logs_user_id", "access_logs", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_access_logs_user_id", table_name="access_logs")
    op.drop_table("access_logs")
    op.drop_index(
        "ix_course_access_tokens_user_id", table_name="course_access_tokens"
    )
    op.drop_table("course_access_tokens")
