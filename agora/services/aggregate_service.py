"""
agora.services.aggregate_service — Denormalized Counter Maintenance
====================================================================

Called by :mod:`agora.services.content_service` inside the same session
(and therefore the same transaction) as the entity write it accounts for.

Rules:

* Counters move by a signed delta expressed in SQL
  (``SET threads_count = threads_count + :delta``), never as a value read
  into Python and written back.  Decrements are clamped at zero.
* On creation the "newest" timestamp is set to the new item's
  ``created_at``.  On deletion it is recomputed in the same ``UPDATE`` as
  ``coalesce(max(child.created_at), owner.created_at)``.
* Deletions pass the number of rows they actually removed, so a delete that
  lost a race to another delete contributes nothing.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import case, func, select, update
from sqlalchemy.orm import Session

from agora.database.models import Answer, Board, Thread

logger = logging.getLogger(__name__)


def _shifted(column, delta: int):
    """``column + delta`` as SQL, floored at zero for negative deltas."""
    if delta >= 0:
        return column + delta
    return case((column + delta < 0, 0), else_=column + delta)


def newest_thread_expr(board_id):
    """SQL expression: newest thread timestamp under *board_id*.

    *board_id* is a literal id, or ``Board.id`` for a correlated subquery.
    """
    return func.coalesce(
        select(func.max(Thread.created_at))
        .where(Thread.board_id == board_id)
        .scalar_subquery(),
        Board.created_at,
    )


def newest_board_answer_expr(board_id):
    """SQL expression: newest answer timestamp under *board_id*."""
    return func.coalesce(
        select(func.max(Answer.created_at))
        .where(Answer.board_id == board_id)
        .scalar_subquery(),
        Board.created_at,
    )


def newest_thread_answer_expr(thread_id):
    """SQL expression: newest answer timestamp under *thread_id*."""
    return func.coalesce(
        select(func.max(Answer.created_at))
        .where(Answer.thread_id == thread_id)
        .scalar_subquery(),
        Thread.created_at,
    )


def apply_thread_delta(
    session: Session,
    board_id: int,
    delta: int,
    created_at: datetime | None = None,
) -> None:
    """Adjust ``Board.threads_count`` by *delta* and fix ``newest_thread``.

    Pass *created_at* when a thread was created; omit it after a deletion
    so the newest timestamp is recomputed from the threads that remain.
    """
    values: dict = {}
    if delta:
        values["threads_count"] = _shifted(Board.threads_count, delta)
    if created_at is not None:
        values["newest_thread"] = created_at
    else:
        values["newest_thread"] = newest_thread_expr(board_id)

    session.execute(
        update(Board)
        .where(Board.id == board_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    logger.debug("Board %s threads_count %+d", board_id, delta)


def apply_answer_delta(
    session: Session,
    board_id: int,
    thread_id: int | None,
    delta: int,
    created_at: datetime | None = None,
) -> None:
    """Adjust answer counters on the board and (if still present) the thread.

    *thread_id* is ``None`` when the thread itself was deleted along with
    its answers; only the board is touched then.
    """
    board_values: dict = {}
    if delta:
        board_values["answers_count"] = _shifted(Board.answers_count, delta)
    board_values["newest_answer"] = (
        created_at if created_at is not None else newest_board_answer_expr(board_id)
    )
    session.execute(
        update(Board)
        .where(Board.id == board_id)
        .values(**board_values)
        .execution_options(synchronize_session=False)
    )

    if thread_id is not None:
        thread_values: dict = {}
        if delta:
            thread_values["answers_count"] = _shifted(Thread.answers_count, delta)
        thread_values["newest_answer"] = (
            created_at if created_at is not None else newest_thread_answer_expr(thread_id)
        )
        session.execute(
            update(Thread)
            .where(Thread.id == thread_id)
            .values(**thread_values)
            .execution_options(synchronize_session=False)
        )

    logger.debug("Board %s / thread %s answers_count %+d", board_id, thread_id, delta)
