"""
agora.services.like_service — Like / Unlike Toggle
===================================================

A like is a row keyed by ``(entity_id, user_id)``; the primary key makes
the "at most once per user" invariant structural.

The toggle is a conditional write, not read-then-overwrite:

1. ``DELETE`` the caller's row.  One row gone → the call was an unlike.
2. Nothing deleted → plain ``INSERT``.  If a concurrent toggle by the same
   user inserted first, the primary key rejects ours and the attempt
   becomes a :class:`~agora.engine.errors.Conflict`; the retry then sees
   the row and unlikes.  Two same-user toggles therefore never both
   "like", and toggles by different users never touch each other's rows.

Toggling never touches board/thread counters.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Engine, delete, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agora.database.models import Answer, AnswerLike, Thread, ThreadLike
from agora.engine.errors import Conflict, InvalidArgument, NotFound
from agora.engine.identity import Identity
from agora.engine.policy import Action, require
from agora.services.projections import like_projection
from agora.services.retry import run_with_retry
from agora.services.user_service import get_or_create_user

logger = logging.getLogger(__name__)

# kind → (entity model, like model, name of the FK column on the like model)
LIKE_TARGETS: dict[str, tuple[type, type, str]] = {
    "thread": (Thread, ThreadLike, "thread_id"),
    "answer": (Answer, AnswerLike, "answer_id"),
}


@dataclass(frozen=True, slots=True)
class LikeResult:
    """Outcome of one toggle plus the refreshed, populated like set."""

    kind: str
    entity_id: int
    liked: bool
    likes: list[dict[str, Any]] = field(default_factory=list)

    @property
    def like_count(self) -> int:
        return len(self.likes)

    @property
    def user_ids(self) -> set[int]:
        return {like["id"] for like in self.likes}

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "id": self.entity_id,
            "liked": self.liked,
            "like_count": self.like_count,
            "likes": self.likes,
        }


def _toggle_once(engine: Engine, kind: str, entity_id: int, identity: Identity) -> LikeResult:
    entity_cls, like_cls, fk_name = LIKE_TARGETS[kind]
    fk_col = getattr(like_cls, fk_name)

    with Session(engine, expire_on_commit=False) as session:
        entity = session.get(entity_cls, entity_id)
        if entity is None:
            raise NotFound(f"{kind.capitalize()} {entity_id} not found")
        require(Action.LIKE, identity, entity)

        try:
            get_or_create_user(session, identity)
            removed = session.execute(
                delete(like_cls)
                .where(fk_col == entity_id, like_cls.user_id == identity.user_id)
                .execution_options(synchronize_session=False)
            ).rowcount
            liked = removed == 0
            if liked:
                session.execute(
                    insert(like_cls).values({
                        fk_name: entity_id,
                        "user_id": identity.user_id,
                        "created_at": datetime.now(UTC),
                    })
                )
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise Conflict(f"Concurrent like toggle on {kind} {entity_id}") from exc

        session.expire_all()
        rows = session.scalars(
            select(like_cls)
            .where(fk_col == entity_id)
            .order_by(like_cls.created_at, like_cls.user_id)
        ).all()
        likes = [like_projection(row) for row in rows]

    logger.debug(
        "User %s %s %s %s", identity.user_id, "liked" if liked else "unliked", kind, entity_id,
    )
    return LikeResult(kind=kind, entity_id=entity_id, liked=liked, likes=likes)


def toggle_like(
    engine: Engine,
    kind: str,
    entity_id: int,
    identity: Identity,
    *,
    attempts: int = 3,
) -> LikeResult:
    """Flip *identity*'s membership in the like set of a thread or answer.

    Raises
    ------
    InvalidArgument
        If *kind* is not ``"thread"`` or ``"answer"``.
    NotFound
        If the entity does not exist.
    Conflict
        If every attempt lost a race.
    """
    if kind not in LIKE_TARGETS:
        raise InvalidArgument(f"Cannot like a {kind!r}")
    return run_with_retry(_toggle_once, engine, kind, entity_id, identity, attempts=attempts)
