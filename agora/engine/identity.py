"""
agora.engine.identity — Caller Identity
========================================

Every mutating operation receives an :class:`Identity`.  Where it comes
from (JWT, session cookie, test fixture) is not the store's concern.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

__all__ = ["Identity", "Role"]


class Role(enum.StrEnum):
    MEMBER = "member"
    MODERATOR = "moderator"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: str | None) -> Role:
        """Map a raw role claim to a :class:`Role`; unknown values are members."""
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.MEMBER


@dataclass(frozen=True, slots=True)
class Identity:
    """Resolved caller: who they are and what they may moderate."""

    user_id: int
    role: Role = Role.MEMBER
    name: str | None = None
    picture: str | None = None

    @property
    def is_moderator(self) -> bool:
        return self.role in (Role.MODERATOR, Role.ADMIN)

    @property
    def display_name(self) -> str:
        return self.name or f"user-{self.user_id}"
