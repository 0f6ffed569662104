"""
agora.services.query_service — Read-Side Listings
==================================================

Read-only lookups used by the HTTP routes.  Every function takes an open
:class:`~sqlalchemy.orm.Session` and returns ORM rows or a
:class:`~agora.services.pagination.Page` of them; projection to JSON
happens in the routes.

``clear_notifications`` is the one write here: it only touches the
caller's own notification rows and no aggregate.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, delete, select
from sqlalchemy.orm import Session

from agora.constants import BOARD_SORT_ALIASES
from agora.database.engine import get_session
from agora.database.models import Answer, Board, Notification, Thread
from agora.engine.errors import InvalidArgument, NotFound
from agora.engine.identity import Identity
from agora.services.pagination import DEFAULT_LIMIT, Page, paginate
from agora.services.projections import board_summary

logger = logging.getLogger(__name__)

_BOARD_SORT_COLUMNS = {
    "position": Board.position,
    "threadsCount": Board.threads_count,
    "answersCount": Board.answers_count,
    "newestThread": Board.newest_thread,
    "newestAnswer": Board.newest_answer,
}

_THREAD_SORT_COLUMNS = {
    "createdAt": Thread.created_at,
    "answersCount": Thread.answers_count,
    "newestAnswer": Thread.newest_answer,
}


# ---------------------------------------------------------------------------
# Boards
# ---------------------------------------------------------------------------
def get_board(session: Session, board_id: int | None = None, name: str | None = None) -> Board:
    """Look a board up by id or by its unique name."""
    if board_id is None and not name:
        raise InvalidArgument("board_id or name is required")
    if board_id is not None:
        board = session.get(Board, board_id)
    else:
        board = session.scalar(select(Board).where(Board.name == name))
    if board is None:
        raise NotFound(f"Board {board_id if board_id is not None else name!r} not found")
    return board


def list_boards(
    session: Session,
    sort: str = "position",
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
    pagination: bool = True,
) -> Page:
    """Boards by *sort* descending, id as tiebreak.  Unknown keys sort by position."""
    key = BOARD_SORT_ALIASES.get(sort, sort)
    column = _BOARD_SORT_COLUMNS.get(key, Board.position)
    stmt = select(Board).order_by(column.desc(), Board.id.desc())
    return paginate(session, stmt, page=page, limit=limit, pagination=pagination)


# ---------------------------------------------------------------------------
# Threads
# ---------------------------------------------------------------------------
def list_threads(
    session: Session,
    board_id: int,
    sort: str = "createdAt",
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
    pagination: bool = True,
) -> Page:
    """Threads of one board: pinned first, then *sort* descending."""
    if session.get(Board, board_id) is None:
        raise NotFound(f"Board {board_id} not found")
    column = _THREAD_SORT_COLUMNS.get(sort, Thread.created_at)
    stmt = (
        select(Thread)
        .where(Thread.board_id == board_id)
        .order_by(Thread.pined.desc(), column.desc(), Thread.id.desc())
    )
    return paginate(session, stmt, page=page, limit=limit, pagination=pagination)


def list_recent_threads(
    session: Session,
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
) -> Page:
    """Threads across every board, pinned first, newest first."""
    stmt = select(Thread).order_by(
        Thread.pined.desc(), Thread.created_at.desc(), Thread.id.desc(),
    )
    return paginate(session, stmt, page=page, limit=limit)


def get_thread(session: Session, thread_id: int) -> tuple[dict, Thread]:
    """Return ``(board_summary, thread)`` for the thread page header."""
    thread = session.get(Thread, thread_id)
    if thread is None:
        raise NotFound(f"Thread {thread_id} not found")
    board = session.get(Board, thread.board_id)
    return board_summary(board), thread


# ---------------------------------------------------------------------------
# Answers
# ---------------------------------------------------------------------------
def list_answers(
    session: Session,
    thread_id: int,
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
    pagination: bool = True,
) -> Page:
    """Answers of one thread in the order they were written."""
    if session.get(Thread, thread_id) is None:
        raise NotFound(f"Thread {thread_id} not found")
    stmt = (
        select(Answer)
        .where(Answer.thread_id == thread_id)
        .order_by(Answer.created_at, Answer.id)
    )
    return paginate(session, stmt, page=page, limit=limit, pagination=pagination)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------
def list_notifications(
    session: Session,
    user_id: int,
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
) -> Page:
    stmt = (
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
    )
    return paginate(session, stmt, page=page, limit=limit)


def clear_notifications(engine: Engine, identity: Identity) -> int:
    """Delete every notification addressed to *identity*.  Returns the count."""
    with get_session(engine) as session:
        removed = session.execute(
            delete(Notification).where(Notification.user_id == identity.user_id),
            execution_options={"synchronize_session": False},
        ).rowcount
    logger.debug("Cleared %d notification(s) for %s", removed, identity.user_id)
    return removed
