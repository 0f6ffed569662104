"""
agora.engine.errors — Forum Error Taxonomy
===========================================

Validation and authorization errors are raised before any write.
``Conflict`` is retried by the store itself before it reaches a caller.
``Internal`` wraps storage failures; its message is safe to show.
"""

from __future__ import annotations

__all__ = [
    "ForumError",
    "InvalidArgument",
    "Unauthorized",
    "NotFound",
    "Conflict",
    "Internal",
]


class ForumError(Exception):
    """Base class for every error the store raises on purpose."""

    code = "forum_error"
    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> dict[str, str]:
        return {"error": self.code, "message": self.message}


class InvalidArgument(ForumError):
    code = "invalid_argument"
    status_code = 400


class Unauthorized(ForumError):
    code = "unauthorized"
    status_code = 403


class NotFound(ForumError):
    code = "not_found"
    status_code = 404


class Conflict(ForumError):
    code = "conflict"
    status_code = 409


class Internal(ForumError):
    code = "internal"
    status_code = 500
