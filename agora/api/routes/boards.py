"""
agora.api.routes.boards — Board listing & moderation endpoints
===============================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from agora.api.deps import get_identity, get_session, get_store
from agora.engine.identity import Identity
from agora.services import query_service
from agora.services.content_service import ContentStore
from agora.services.projections import board_dict

router = APIRouter(tags=["boards"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class BoardCreate(BaseModel):
    title: str
    position: int
    name: str | None = None
    body: str = ""


class BoardUpdate(BaseModel):
    title: str
    position: int
    name: str | None = None
    body: str | None = None


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
@router.get("/boards")
def list_boards(
    sort: str = "position",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    pagination: bool = True,
    session: Session = Depends(get_session),
):
    result = query_service.list_boards(
        session, sort=sort, page=page, limit=limit, pagination=pagination,
    )
    return result.to_dict(board_dict)


@router.get("/board")
def get_board(
    name: str | None = None,
    board_id: int | None = None,
    session: Session = Depends(get_session),
):
    """Single board by ``name`` (the URL slug) or ``board_id``."""
    return board_dict(query_service.get_board(session, board_id=board_id, name=name))


# ---------------------------------------------------------------------------
# Moderator writes
# ---------------------------------------------------------------------------
@router.post("/boards", status_code=201)
def create_board(
    body: BoardCreate,
    identity: Identity = Depends(get_identity),
    store: ContentStore = Depends(get_store),
):
    board = store.create_board(
        identity, body.title, body.position, name=body.name, body=body.body,
    )
    return board_dict(board)


@router.put("/boards/{board_id}")
def edit_board(
    board_id: int,
    body: BoardUpdate,
    identity: Identity = Depends(get_identity),
    store: ContentStore = Depends(get_store),
):
    board = store.edit_board(
        identity, board_id, body.title, body.position, name=body.name, body=body.body,
    )
    return board_dict(board)


@router.delete("/boards/{board_id}")
def delete_board(
    board_id: int,
    identity: Identity = Depends(get_identity),
    store: ContentStore = Depends(get_store),
):
    store.delete_board(identity, board_id)
    return {"status": "deleted", "id": board_id}
