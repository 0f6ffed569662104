"""
agora.database.models — SQLAlchemy 2.0 Data Models
===================================================

Tables:
- users              — Display projection of forum members (id from identity)
- boards             — Top-level categories with denormalized counters
- threads            — Root posts inside a board
- answers            — Replies to a thread (board_id copied for aggregation)
- thread_likes       — Like set of a thread, one row per (thread, user)
- answer_likes       — Like set of an answer, one row per (answer, user)
- notifications      — Per-recipient "someone answered you" records
- mutation_log       — Idempotency ledger for client-retried creations
- moderation_log     — Append-only audit trail of moderator mutations
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Agora ORM models."""


# ---------------------------------------------------------------------------
# Users — display data for authors and likers
# ---------------------------------------------------------------------------
class User(Base):
    """Cached display projection of a member.

    Identity and roles are resolved outside the store; this row only exists
    so author and like projections can show a name and picture.
    """
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(100), default=None)
    picture: Mapped[str | None] = mapped_column(String(500), default=None)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="member")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    online_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.name!r} role={self.role}>"


# ---------------------------------------------------------------------------
# Boards — root of the hierarchy
# ---------------------------------------------------------------------------
class Board(Base):
    __tablename__ = "boards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False, default="")
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Aggregates maintained by agora.services.aggregate_service
    threads_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    answers_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    newest_thread: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    newest_answer: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_boards_position", "position"),
    )

    def __repr__(self) -> str:
        return (
            f"<Board id={self.id} name={self.name!r} "
            f"threads={self.threads_count} answers={self.answers_count}>"
        )


# ---------------------------------------------------------------------------
# Threads
# ---------------------------------------------------------------------------
class Thread(Base):
    __tablename__ = "threads"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    board_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    pined: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    closed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    edited_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    # Attachments are immutable: [{"url", "media_type", "byte_size"}, ...]
    attachments: Mapped[list | None] = mapped_column(JSONB, nullable=True, default=None)

    # Aggregates maintained by agora.services.aggregate_service
    answers_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    newest_answer: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    author: Mapped[User] = relationship(lazy="joined")
    likes: Mapped[list[ThreadLike]] = relationship(
        back_populates="thread",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ThreadLike.created_at",
    )

    __table_args__ = (
        Index("ix_threads_board_pined_created", "board_id", "pined", "created_at"),
        Index("ix_threads_created_at", "created_at"),
    )

    @property
    def like_count(self) -> int:
        return len(self.likes)

    def __repr__(self) -> str:
        return f"<Thread id={self.id} board={self.board_id} title={self.title!r}>"


# ---------------------------------------------------------------------------
# Answers
# ---------------------------------------------------------------------------
class Answer(Base):
    __tablename__ = "answers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    thread_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("threads.id", ondelete="CASCADE"), nullable=False
    )
    # Copied from the thread so board-level aggregates need no join
    board_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=False
    )
    answered_to_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    edited_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    attachments: Mapped[list | None] = mapped_column(JSONB, nullable=True, default=None)

    author: Mapped[User] = relationship(lazy="joined")
    likes: Mapped[list[AnswerLike]] = relationship(
        back_populates="answer",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="AnswerLike.created_at",
    )

    __table_args__ = (
        Index("ix_answers_thread_created", "thread_id", "created_at"),
        Index("ix_answers_board_created", "board_id", "created_at"),
    )

    @property
    def like_count(self) -> int:
        return len(self.likes)

    def __repr__(self) -> str:
        return f"<Answer id={self.id} thread={self.thread_id} author={self.author_id}>"


# ---------------------------------------------------------------------------
# Like sets — the composite primary key is the uniqueness invariant
# ---------------------------------------------------------------------------
class ThreadLike(Base):
    __tablename__ = "thread_likes"

    thread_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("threads.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    thread: Mapped[Thread] = relationship(back_populates="likes")
    user: Mapped[User] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<ThreadLike thread={self.thread_id} user={self.user_id}>"


class AnswerLike(Base):
    __tablename__ = "answer_likes"

    answer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("answers.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    answer: Mapped[Answer] = relationship(back_populates="likes")
    user: Mapped[User] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<AnswerLike answer={self.answer_id} user={self.user_id}>"


# ---------------------------------------------------------------------------
# Notifications — "someone answered your thread / your answer"
# ---------------------------------------------------------------------------
class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Recipient may never have acted on the forum, so no FK to users
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    actor_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    kind: Mapped[str] = mapped_column(String(30), nullable=False)
    thread_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("threads.id", ondelete="CASCADE"), nullable=False
    )
    answer_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("answers.id", ondelete="CASCADE"), nullable=True
    )
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_notifications_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Notification id={self.id} user={self.user_id} kind={self.kind}>"


# ---------------------------------------------------------------------------
# MutationLog — idempotency ledger
# ---------------------------------------------------------------------------
class MutationLog(Base):
    """One row per idempotency key presented by a client.

    Written in the same transaction as the entity it creates, so a retried
    request finds the key and gets the original entity back instead of a
    second counter delta.
    """
    __tablename__ = "mutation_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    idempotency_key: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    operation: Mapped[str] = mapped_column(String(30), nullable=False)
    entity_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<MutationLog key={self.idempotency_key!r} op={self.operation}>"


# ---------------------------------------------------------------------------
# ModerationLog — append-only audit trail
# ---------------------------------------------------------------------------
class ModerationLog(Base):
    __tablename__ = "moderation_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_moderation_log_actor_time", "actor_id", "timestamp"),
        Index("ix_moderation_log_target", "target_table", "target_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<ModerationLog id={self.id} actor={self.actor_id} action={self.action_type}>"
