"""
agora.api.routes.notifications — The caller's own notifications
================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from agora.api.deps import get_engine, get_identity, get_session
from agora.engine.identity import Identity
from agora.services import query_service
from agora.services.projections import notification_dict

router = APIRouter(tags=["notifications"])


@router.get("/notifications")
def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    identity: Identity = Depends(get_identity),
    session: Session = Depends(get_session),
):
    result = query_service.list_notifications(
        session, identity.user_id, page=page, limit=limit,
    )
    return result.to_dict(notification_dict)


@router.delete("/notifications")
def clear_notifications(
    identity: Identity = Depends(get_identity),
    engine: Engine = Depends(get_engine),
):
    removed = query_service.clear_notifications(engine, identity)
    return {"status": "cleared", "removed": removed}
