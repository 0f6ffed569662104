"""Create forum tables

Revision ID: 4c2e9a7b1f03
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "4c2e9a7b1f03"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Boards → threads → answers, like sets, notifications and ledgers."""

    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger, primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("picture", sa.String(500), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="member"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(),
        ),
        sa.Column("online_at", sa.DateTime(timezone=True), nullable=True),
    )

    # --- boards ---
    op.create_table(
        "boards",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("body", sa.Text, nullable=False, server_default=""),
        sa.Column("position", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("threads_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("answers_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("newest_thread", sa.DateTime(timezone=True), nullable=False),
        sa.Column("newest_answer", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("threads_count >= 0", name="ck_boards_threads_count"),
        sa.CheckConstraint("answers_count >= 0", name="ck_boards_answers_count"),
    )
    op.create_index("ix_boards_position", "boards", ["position"])

    # --- threads ---
    op.create_table(
        "threads",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "board_id", sa.Integer,
            sa.ForeignKey("boards.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("author_id", sa.BigInteger, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column("pined", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("closed", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("edited_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("attachments", postgresql.JSONB, nullable=True),
        sa.Column("answers_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("newest_answer", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("answers_count >= 0", name="ck_threads_answers_count"),
    )
    op.create_index(
        "ix_threads_board_pined_created", "threads", ["board_id", "pined", "created_at"],
    )
    op.create_index("ix_threads_created_at", "threads", ["created_at"])

    # --- answers ---
    op.create_table(
        "answers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "thread_id", sa.Integer,
            sa.ForeignKey("threads.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "board_id", sa.Integer,
            sa.ForeignKey("boards.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("author_id", sa.BigInteger, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("answered_to_id", sa.BigInteger, nullable=True),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("edited_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("attachments", postgresql.JSONB, nullable=True),
    )
    op.create_index("ix_answers_thread_created", "answers", ["thread_id", "created_at"])
    op.create_index("ix_answers_board_created", "answers", ["board_id", "created_at"])

    # --- like sets ---
    op.create_table(
        "thread_likes",
        sa.Column(
            "thread_id", sa.Integer,
            sa.ForeignKey("threads.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "user_id", sa.BigInteger,
            sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(),
        ),
    )
    op.create_table(
        "answer_likes",
        sa.Column(
            "answer_id", sa.Integer,
            sa.ForeignKey("answers.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "user_id", sa.BigInteger,
            sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(),
        ),
    )

    # --- notifications ---
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger, nullable=False),
        sa.Column("actor_id", sa.BigInteger, nullable=False),
        sa.Column("kind", sa.String(30), nullable=False),
        sa.Column(
            "thread_id", sa.Integer,
            sa.ForeignKey("threads.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "answer_id", sa.Integer,
            sa.ForeignKey("answers.id", ondelete="CASCADE"), nullable=True,
        ),
        sa.Column("read", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_notifications_user_created", "notifications", ["user_id", "created_at"],
    )

    # --- mutation_log ---
    op.create_table(
        "mutation_log",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("idempotency_key", sa.String(128), nullable=False, unique=True),
        sa.Column("operation", sa.String(30), nullable=False),
        sa.Column("entity_id", sa.Integer, nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(),
        ),
    )

    # --- moderation_log ---
    op.create_table(
        "moderation_log",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.BigInteger, nullable=False),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("target_table", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(100), nullable=True),
        sa.Column("before_snapshot", postgresql.JSONB, nullable=True),
        sa.Column("after_snapshot", postgresql.JSONB, nullable=True),
        sa.Column("reason", sa.Text, nullable=True),
        sa.Column(
            "timestamp", sa.DateTime(timezone=True), server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_moderation_log_actor_time", "moderation_log", ["actor_id", "timestamp"],
    )
    op.create_index(
        "ix_moderation_log_target", "moderation_log",
        ["target_table", "target_id", "timestamp"],
    )


def downgrade() -> None:
    op.drop_table("moderation_log")
    op.drop_table("mutation_log")
    op.drop_table("notifications")
    op.drop_table("answer_likes")
    op.drop_table("thread_likes")
    op.drop_table("answers")
    op.drop_table("threads")
    op.drop_table("boards")
    op.drop_table("users")
