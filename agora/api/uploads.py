"""
agora.api.uploads — Multipart post helpers
===========================================

Thread and answer creation arrive as ``multipart/form-data``: a JSON
``post_data`` field plus zero or more ``attach`` files, the shape the web
client has always sent.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from fastapi import UploadFile
from pydantic import BaseModel, ValidationError

from agora.engine.errors import InvalidArgument
from agora.services.upload_service import Attachment, AttachmentResolver

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)
T = TypeVar("T")


def parse_post_data(raw: str, model: type[M]) -> M:
    """Validate the ``post_data`` JSON field into *model*."""
    try:
        return model.model_validate_json(raw)
    except ValidationError as exc:
        raise InvalidArgument(f"Invalid post_data: {exc.errors()[0]['msg']}") from exc


async def with_attachments(
    resolver: AttachmentResolver,
    files: list[UploadFile] | None,
    create: Callable[[list[Attachment]], Awaitable[T]],
) -> T:
    """Store *files*, then run *create*; stored files are removed if it fails."""
    payload = [
        (f.filename or "upload", await f.read(), f.content_type)
        for f in files or []
    ]
    attachments = await resolver.save_all(payload) if payload else []
    try:
        return await create(attachments)
    except Exception:
        for attachment in attachments:
            resolver.delete(attachment.url)
        logger.info("Removed %d orphaned attachment(s)", len(attachments))
        raise
