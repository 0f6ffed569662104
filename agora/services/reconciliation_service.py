"""
agora.services.reconciliation_service — Aggregate Reconciliation
=================================================================

Periodic job that validates the denormalized board and thread aggregates
against the rows they summarize, and corrects drift if found.

How it works:
    1. For every aggregate column, a correlated subquery computes the true
       value: ``COUNT(*)`` of children, or ``coalesce(MAX(child.created_at),
       owner.created_at)`` for "newest".
    2. Rows whose stored value differs are read for the report.
    3. One ``UPDATE ... SET col = <truth> WHERE col IS DISTINCT FROM <truth>
       RETURNING id, col`` fixes them.  The truth is evaluated by the
       database inside that statement, so a delta committed concurrently by
       the store is never overwritten with a stale Python-side value.
    4. Log all corrections for audit.

Drift should only ever come from writes made outside the store (manual SQL,
partial restores); the store itself applies deltas in the entity's own
transaction.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Engine, func, select, update

from agora.database.engine import get_session
from agora.database.models import Answer, Board, Thread
from agora.services.aggregate_service import (
    newest_board_answer_expr,
    newest_thread_answer_expr,
    newest_thread_expr,
)

logger = logging.getLogger(__name__)


def _child_count(child, foreign_key, owner_id):
    return (
        select(func.count())
        .select_from(child)
        .where(foreign_key == owner_id)
        .scalar_subquery()
    )


def _aggregate_columns() -> list[tuple[type, str, str, Any]]:
    """``(model, table, field, truth expression)`` for every aggregate."""
    return [
        (Board, "boards", "threads_count", _child_count(Thread, Thread.board_id, Board.id)),
        (Board, "boards", "answers_count", _child_count(Answer, Answer.board_id, Board.id)),
        (Board, "boards", "newest_thread", newest_thread_expr(Board.id)),
        (Board, "boards", "newest_answer", newest_board_answer_expr(Board.id)),
        (Thread, "threads", "answers_count", _child_count(Answer, Answer.thread_id, Thread.id)),
        (Thread, "threads", "newest_answer", newest_thread_answer_expr(Thread.id)),
    ]


def _stamp(value: Any) -> Any:
    return value.isoformat() if isinstance(value, datetime) else value


def _correct(engine: Engine, model: type, table: str, field: str, truth) -> list[dict]:
    """Fix one aggregate column in a single short transaction."""
    column = getattr(model, field)
    drifting = column.is_distinct_from(truth)

    with get_session(engine) as session:
        stored = dict(session.execute(select(model.id, column).where(drifting)).all())
        if not stored:
            return []
        fixed = session.execute(
            update(model)
            .where(drifting)
            .values({field: truth})
            .returning(model.id, column),
            execution_options={"synchronize_session": False},
        ).all()

    return [
        {
            "table": table,
            "id": row_id,
            "field": field,
            "stored": _stamp(stored.get(row_id)),
            "actual": _stamp(actual),
        }
        for row_id, actual in sorted(fixed, key=lambda row: row[0])
    ]


def reconcile_aggregates(engine: Engine) -> dict:
    """Validate board/thread aggregates against live rows and fix drift.

    Returns ``{"checked": N, "corrected": M, "corrections": [...],
    "timestamp": ...}`` where N counts boards plus threads inspected.
    """
    with get_session(engine) as session:
        checked = (
            session.scalar(select(func.count()).select_from(Board))
            + session.scalar(select(func.count()).select_from(Thread))
        )

    corrections: list[dict] = []
    for model, table, field, truth in _aggregate_columns():
        corrections.extend(_correct(engine, model, table, field, truth))

    if corrections:
        logger.warning(
            "Aggregate reconciliation: corrected %d field(s) across %d rows: %s",
            len(corrections), checked, corrections,
        )
    else:
        logger.info("Aggregate reconciliation: all %d rows match", checked)

    return {
        "checked": checked,
        "corrected": len(corrections),
        "corrections": corrections,
        "timestamp": datetime.now(UTC).isoformat(),
    }
