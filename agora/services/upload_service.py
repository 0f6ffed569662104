"""
agora.services.upload_service — Attachment Storage
===================================================

Turns uploaded files into immutable :class:`Attachment` records
(``url``, ``media_type``, ``byte_size``) before a thread or answer is
created.  Files are written to ``upload_dir`` (a Docker volume in
production) and served by the API's static mount.

The store itself never inspects file bytes; the per-item size bound is
enforced here.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from agora.constants import ATTACHMENT_MAX_BYTES
from agora.engine.errors import InvalidArgument

logger = logging.getLogger(__name__)

UPLOAD_URL_PREFIX = "/api/uploads/"


@dataclass(frozen=True, slots=True)
class Attachment:
    url: str
    media_type: str
    byte_size: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def coerce_attachments(items: Iterable[Attachment | Mapping[str, Any]] | None) -> list[dict] | None:
    """Validate attachment records and return the JSON list stored on a row.

    Accepts :class:`Attachment` instances or mappings with the same keys.
    Returns ``None`` for an empty input so rows without files store NULL.
    """
    result: list[dict] = []
    for item in items or ():
        if isinstance(item, Attachment):
            record = item.to_dict()
        elif isinstance(item, Mapping):
            record = {
                "url": item.get("url"),
                "media_type": item.get("media_type"),
                "byte_size": item.get("byte_size"),
            }
        else:
            raise InvalidArgument(f"Unsupported attachment record: {item!r}")

        if not isinstance(record["url"], str) or not record["url"].strip():
            raise InvalidArgument("Attachment url must not be empty")
        if not isinstance(record["media_type"], str) or not record["media_type"]:
            raise InvalidArgument("Attachment media_type must not be empty")
        size = record["byte_size"]
        if isinstance(size, bool) or not isinstance(size, int) or size < 0:
            raise InvalidArgument("Attachment byte_size must be a non-negative integer")
        result.append(record)
    return result or None


class AttachmentResolver:
    """Persist uploads on disk and describe them as :class:`Attachment`.

    Usage::

        resolver = AttachmentResolver(Path("uploads"))
        attachments = await resolver.save_all([("a.png", data, "image/png")])
    """

    def __init__(
        self,
        upload_dir: Path,
        *,
        max_total_bytes: int = ATTACHMENT_MAX_BYTES,
        base_url: str = "",
    ) -> None:
        self.upload_dir = Path(upload_dir)
        self.max_total_bytes = max_total_bytes
        self.base_url = base_url.rstrip("/")

    def ensure_upload_dir(self) -> None:
        """Create the upload directory if it doesn't exist."""
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    async def save_all(
        self, files: Iterable[tuple[str, bytes, str | None]],
    ) -> list[Attachment]:
        """Validate and persist ``(filename, content, content_type)`` triples.

        Raises
        ------
        InvalidArgument
            If the combined size exceeds ``max_total_bytes``.
        """
        files = list(files)
        total = sum(len(content) for _, content, _ in files)
        if total > self.max_total_bytes:
            raise InvalidArgument(
                f"Attachments too large: {total} bytes "
                f"(max {self.max_total_bytes // 1024 // 1024}MB)"
            )

        self.ensure_upload_dir()
        saved: list[Attachment] = []
        for filename, content, content_type in files:
            ext = Path(filename).suffix.lower()
            # Unique name; the original is only used for its extension
            unique_name = f"attach_{uuid.uuid4().hex}{ext}"
            dest = self.upload_dir / unique_name
            await asyncio.to_thread(dest.write_bytes, content)
            saved.append(Attachment(
                url=f"{self.base_url}{UPLOAD_URL_PREFIX}{unique_name}",
                media_type=content_type or "application/octet-stream",
                byte_size=len(content),
            ))
        logger.info("Stored %d attachment(s), %d bytes", len(saved), total)
        return saved

    def delete(self, url: str) -> bool:
        """Remove a stored file by URL.  Returns True if it existed."""
        marker = url.find(UPLOAD_URL_PREFIX)
        if marker < 0:
            return False
        filepath = self.upload_dir / Path(url[marker + len(UPLOAD_URL_PREFIX):]).name
        if filepath.exists() and filepath.is_file():
            filepath.unlink()
            return True
        return False
