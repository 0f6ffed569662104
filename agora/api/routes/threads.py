"""
agora.api.routes.threads — Thread endpoints
============================================
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, Header, Query, UploadFile
from pydantic import BaseModel
from sqlalchemy.orm import Session

from agora.api.deps import get_identity, get_resolver, get_session, get_store
from agora.api.uploads import parse_post_data, with_attachments
from agora.database.engine import run_db
from agora.engine.identity import Identity
from agora.services import query_service
from agora.services.content_service import ContentStore
from agora.services.projections import thread_dict
from agora.services.upload_service import AttachmentResolver

router = APIRouter(tags=["threads"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ThreadCreate(BaseModel):
    board_id: int
    title: str
    body: str


class ThreadUpdate(BaseModel):
    title: str
    body: str
    closed: bool | None = None


class ThreadModerate(BaseModel):
    title: str
    body: str
    pined: bool | None = None
    closed: bool | None = None


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
@router.get("/threads")
def list_threads(
    board_id: int,
    sort: str = "createdAt",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    pagination: bool = True,
    session: Session = Depends(get_session),
):
    result = query_service.list_threads(
        session, board_id, sort=sort, page=page, limit=limit, pagination=pagination,
    )
    return result.to_dict(thread_dict)


@router.get("/threads/recent")
def list_recent_threads(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    session: Session = Depends(get_session),
):
    return query_service.list_recent_threads(session, page=page, limit=limit).to_dict(thread_dict)


@router.get("/threads/{thread_id}")
def get_thread(thread_id: int, session: Session = Depends(get_session)):
    board, thread = query_service.get_thread(session, thread_id)
    return {"board": board, "thread": thread_dict(thread)}


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
@router.post("/threads", status_code=201)
async def create_thread(
    post_data: Annotated[str, Form()],
    attach: Annotated[list[UploadFile] | None, File()] = None,
    idempotency_key: Annotated[str | None, Header()] = None,
    identity: Identity = Depends(get_identity),
    store: ContentStore = Depends(get_store),
    resolver: AttachmentResolver = Depends(get_resolver),
):
    """Open a thread.  ``post_data`` is ``{"board_id", "title", "body"}``."""
    data = parse_post_data(post_data, ThreadCreate)

    async def create(attachments):
        return await run_db(
            store.create_thread,
            identity, data.board_id, data.title, data.body,
            attachments=attachments, idempotency_key=idempotency_key,
        )

    thread = await with_attachments(resolver, attach, create)
    return thread_dict(thread)


@router.put("/threads/{thread_id}")
def edit_thread(
    thread_id: int,
    body: ThreadUpdate,
    identity: Identity = Depends(get_identity),
    store: ContentStore = Depends(get_store),
):
    """Author edit; ``closed`` lets an author close or reopen their thread."""
    thread = store.edit_thread(identity, thread_id, body.title, body.body, closed=body.closed)
    return thread_dict(thread)


@router.put("/admin/threads/{thread_id}")
def admin_edit_thread(
    thread_id: int,
    body: ThreadModerate,
    identity: Identity = Depends(get_identity),
    store: ContentStore = Depends(get_store),
):
    thread = store.admin_edit_thread(
        identity, thread_id, body.title, body.body, pined=body.pined, closed=body.closed,
    )
    return thread_dict(thread)


@router.delete("/threads/{thread_id}")
def delete_thread(
    thread_id: int,
    identity: Identity = Depends(get_identity),
    store: ContentStore = Depends(get_store),
):
    store.delete_thread(identity, thread_id)
    return {"status": "deleted", "id": thread_id}


@router.post("/threads/{thread_id}/like")
def like_thread(
    thread_id: int,
    identity: Identity = Depends(get_identity),
    store: ContentStore = Depends(get_store),
):
    return store.like_thread(identity, thread_id).to_dict()
