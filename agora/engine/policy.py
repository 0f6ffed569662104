"""
agora.engine.policy — Authorization Policy
===========================================

One table answers "may *actor* do *action* to *resource*?" for every
mutation in the store.  Services call :func:`require` before writing.

Rules:

===================  =========================================
Action               Allowed when
===================  =========================================
CREATE_BOARD         moderator
EDIT_BOARD           moderator
DELETE_BOARD         moderator
CREATE_THREAD        any authenticated user
EDIT_THREAD          author of the thread
MODERATE_THREAD      moderator
DELETE_THREAD        moderator
CREATE_ANSWER        any user on an open thread; moderator always
EDIT_ANSWER          author of the answer
DELETE_ANSWER        moderator
LIKE                 any authenticated user
RECONCILE            moderator
===================  =========================================
"""

from __future__ import annotations

import enum
from typing import Any

from agora.engine.errors import Unauthorized
from agora.engine.identity import Identity


class Action(enum.StrEnum):
    CREATE_BOARD = "create_board"
    EDIT_BOARD = "edit_board"
    DELETE_BOARD = "delete_board"
    CREATE_THREAD = "create_thread"
    EDIT_THREAD = "edit_thread"
    MODERATE_THREAD = "moderate_thread"
    DELETE_THREAD = "delete_thread"
    CREATE_ANSWER = "create_answer"
    EDIT_ANSWER = "edit_answer"
    DELETE_ANSWER = "delete_answer"
    LIKE = "like"
    RECONCILE = "reconcile"


_MODERATOR_ONLY = frozenset({
    Action.CREATE_BOARD,
    Action.EDIT_BOARD,
    Action.DELETE_BOARD,
    Action.MODERATE_THREAD,
    Action.DELETE_THREAD,
    Action.DELETE_ANSWER,
    Action.RECONCILE,
})

_AUTHOR_ONLY = frozenset({
    Action.EDIT_THREAD,
    Action.EDIT_ANSWER,
})


def can_perform(action: Action, actor: Identity | None, resource: Any = None) -> bool:
    """Return ``True`` if *actor* may perform *action* on *resource*.

    *resource* is the ORM row being acted on (a Thread for CREATE_ANSWER,
    the edited Thread/Answer for author-only actions) or ``None``.
    """
    if actor is None:
        return False

    if action in _MODERATOR_ONLY:
        return actor.is_moderator

    if action in _AUTHOR_ONLY:
        return resource is not None and getattr(resource, "author_id", None) == actor.user_id

    if action == Action.CREATE_ANSWER:
        if resource is not None and getattr(resource, "closed", False):
            return actor.is_moderator
        return True

    # CREATE_THREAD, LIKE
    return True


def require(action: Action, actor: Identity | None, resource: Any = None) -> None:
    """Raise :class:`Unauthorized` unless :func:`can_perform` allows it."""
    if not can_perform(action, actor, resource):
        raise Unauthorized("Action not allowed")
