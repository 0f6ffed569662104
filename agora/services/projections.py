"""
agora.services.projections — ORM Rows → JSON-Ready Dicts
=========================================================

Shared by the like toggle (which returns a populated likes set) and the
HTTP routes.  Objects passed in must have their relationships loaded; the
models eager-load ``author`` and ``likes`` so expunged rows are safe.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from agora.database.models import (
    Answer,
    AnswerLike,
    Board,
    ModerationLog,
    Notification,
    Thread,
    ThreadLike,
    User,
)


def iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def user_summary(user: User | None, user_id: int | None = None) -> dict[str, Any]:
    """Author/liker projection; falls back to a bare id if the row is gone."""
    if user is None:
        return {"id": user_id, "name": None, "display_name": None, "picture": None}
    return {
        "id": user.id,
        "name": user.name,
        "display_name": user.display_name,
        "picture": user.picture,
        "role": user.role,
        "online_at": iso(user.online_at),
    }


def like_projection(like: ThreadLike | AnswerLike) -> dict[str, Any]:
    user = like.user
    return {
        "id": like.user_id,
        "name": user.name if user else None,
        "display_name": user.display_name if user else None,
        "picture": user.picture if user else None,
        "created_at": iso(like.created_at),
    }


def edited_marker(edited_at: datetime | None) -> dict[str, str | None] | None:
    return {"created_at": iso(edited_at)} if edited_at else None


def board_summary(board: Board) -> dict[str, Any]:
    return {"id": board.id, "name": board.name, "title": board.title}


def board_dict(board: Board) -> dict[str, Any]:
    return {
        "id": board.id,
        "name": board.name,
        "title": board.title,
        "body": board.body,
        "position": board.position,
        "created_at": iso(board.created_at),
        "threads_count": board.threads_count,
        "answers_count": board.answers_count,
        "newest_thread": iso(board.newest_thread),
        "newest_answer": iso(board.newest_answer),
    }


def thread_dict(thread: Thread) -> dict[str, Any]:
    return {
        "id": thread.id,
        "board_id": thread.board_id,
        "title": thread.title,
        "body": thread.body,
        "pined": thread.pined,
        "closed": thread.closed,
        "created_at": iso(thread.created_at),
        "author": user_summary(thread.author, thread.author_id),
        "edited": edited_marker(thread.edited_at),
        "likes": [like_projection(like) for like in thread.likes],
        "like_count": thread.like_count,
        "answers_count": thread.answers_count,
        "newest_answer": iso(thread.newest_answer),
        "attachments": list(thread.attachments or []),
    }


def answer_dict(answer: Answer) -> dict[str, Any]:
    return {
        "id": answer.id,
        "thread_id": answer.thread_id,
        "board_id": answer.board_id,
        "answered_to_id": answer.answered_to_id,
        "body": answer.body,
        "created_at": iso(answer.created_at),
        "author": user_summary(answer.author, answer.author_id),
        "edited": edited_marker(answer.edited_at),
        "likes": [like_projection(like) for like in answer.likes],
        "like_count": answer.like_count,
        "attachments": list(answer.attachments or []),
    }


def notification_dict(notification: Notification) -> dict[str, Any]:
    return {
        "id": notification.id,
        "user_id": notification.user_id,
        "actor_id": notification.actor_id,
        "kind": notification.kind,
        "thread_id": notification.thread_id,
        "answer_id": notification.answer_id,
        "read": notification.read,
        "created_at": iso(notification.created_at),
    }


def moderation_log_dict(entry: ModerationLog) -> dict[str, Any]:
    return {
        "id": entry.id,
        "actor_id": entry.actor_id,
        "action_type": entry.action_type,
        "target_table": entry.target_table,
        "target_id": entry.target_id,
        "before": entry.before_snapshot,
        "after": entry.after_snapshot,
        "reason": entry.reason,
        "timestamp": iso(entry.timestamp),
    }
