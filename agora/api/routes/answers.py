"""
agora.api.routes.answers — Answer endpoints
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
from agora.services.projections import answer_dict
from agora.services.upload_service import AttachmentResolver

router = APIRouter(tags=["answers"])


class AnswerCreate(BaseModel):
    thread_id: int
    body: str
    answered_to_id: int | None = None


class AnswerUpdate(BaseModel):
    body: str


@router.get("/answers")
def list_answers(
    thread_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    pagination: bool = True,
    session: Session = Depends(get_session),
):
    result = query_service.list_answers(
        session, thread_id, page=page, limit=limit, pagination=pagination,
    )
    return result.to_dict(answer_dict)


@router.post("/answers", status_code=201)
async def create_answer(
    post_data: Annotated[str, Form()],
    attach: Annotated[list[UploadFile] | None, File()] = None,
    idempotency_key: Annotated[str | None, Header()] = None,
    identity: Identity = Depends(get_identity),
    store: ContentStore = Depends(get_store),
    resolver: AttachmentResolver = Depends(get_resolver),
):
    """Answer a thread.  ``post_data`` is ``{"thread_id", "body", "answered_to_id"?}``."""
    data = parse_post_data(post_data, AnswerCreate)

    async def create(attachments):
        return await run_db(
            store.create_answer,
            identity, data.thread_id, data.body,
            answered_to_id=data.answered_to_id,
            attachments=attachments,
            idempotency_key=idempotency_key,
        )

    answer = await with_attachments(resolver, attach, create)
    return answer_dict(answer)


@router.put("/answers/{answer_id}")
def edit_answer(
    answer_id: int,
    body: AnswerUpdate,
    identity: Identity = Depends(get_identity),
    store: ContentStore = Depends(get_store),
):
    return answer_dict(store.edit_answer(identity, answer_id, body.body))


@router.delete("/answers/{answer_id}")
def delete_answer(
    answer_id: int,
    identity: Identity = Depends(get_identity),
    store: ContentStore = Depends(get_store),
):
    store.delete_answer(identity, answer_id)
    return {"status": "deleted", "id": answer_id}


@router.post("/answers/{answer_id}/like")
def like_answer(
    answer_id: int,
    identity: Identity = Depends(get_identity),
    store: ContentStore = Depends(get_store),
):
    return store.like_answer(identity, answer_id).to_dict()
