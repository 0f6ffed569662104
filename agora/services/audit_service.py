"""
agora.services.audit_service — Moderation Audit Trail
======================================================

Every moderator mutation writes a ``moderation_log`` row inside the same
transaction as the change, with JSON snapshots of the row before and after.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from agora.database.models import ModerationLog
from agora.services.pagination import Page, paginate


def row_to_dict(obj: Any) -> dict | None:
    """Convert a SQLAlchemy model instance to a JSON-serializable dict."""
    if obj is None:
        return None
    result = {}
    for col in obj.__table__.columns:
        val = getattr(obj, col.key, None)
        if isinstance(val, datetime):
            val = val.isoformat()
        result[col.name] = val
    return result


def log_moderation(
    session: Session,
    *,
    actor_id: int,
    action_type: str,
    target_table: str,
    target_id: Any,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> None:
    """Insert a row into moderation_log within the current transaction."""
    session.add(ModerationLog(
        actor_id=actor_id,
        action_type=action_type,
        target_table=target_table,
        target_id=str(target_id) if target_id is not None else None,
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))


def list_moderation_log(
    session: Session,
    *,
    target_table: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> Page:
    """Newest-first audit entries, optionally filtered by table."""
    stmt = select(ModerationLog).order_by(ModerationLog.id.desc())
    if target_table:
        stmt = stmt.where(ModerationLog.target_table == target_table)
    return paginate(session, stmt, page=page, limit=limit)
