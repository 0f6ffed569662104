"""
agora.api.routes.admin — Moderator maintenance endpoints
=========================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from agora.api.deps import get_identity, get_session, get_store
from agora.engine.identity import Identity
from agora.engine.policy import Action, require
from agora.services.audit_service import list_moderation_log
from agora.services.content_service import ContentStore
from agora.services.projections import moderation_log_dict

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/reconcile")
def reconcile(
    identity: Identity = Depends(get_identity),
    store: ContentStore = Depends(get_store),
):
    """Recount every board/thread aggregate now and report what was fixed."""
    return store.reconcile(identity)


@router.get("/moderation-log")
def moderation_log(
    target_table: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    require(Action.RECONCILE, identity)
    result = list_moderation_log(session, target_table=target_table, page=page, limit=limit)
    return result.to_dict(moderation_log_dict)
