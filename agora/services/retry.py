"""
agora.services.retry — Conflict Retry & Storage Error Translation
==================================================================

Wraps one unit of store work (one session, one transaction) so that:

* a lost race (:class:`~agora.engine.errors.Conflict`, deadlock, PG
  serialization failure, SQLite "database is locked", a duplicate key
  raised at flush or commit) is retried with
  exponential backoff + jitter, bounded by ``attempts``;
* any other ``SQLAlchemyError`` is logged and surfaced as
  :class:`~agora.engine.errors.Internal`;
* :class:`~agora.engine.errors.ForumError` subclasses raised by the unit
  (validation, authorization, not-found) pass through untouched.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import ParamSpec, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from agora.engine.errors import Conflict, ForumError, Internal

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

# Substrings of driver messages that mean "someone else won, try again"
_TRANSIENT_MARKERS = (
    "database is locked",
    "deadlock detected",
    "could not serialize access",
    "could not obtain lock",
)


# Unique / primary key violations: another writer inserted the same key first
_DUPLICATE_KEY_MARKERS = (
    "unique constraint failed",
    "duplicate key value",
)


def is_transient(exc: SQLAlchemyError) -> bool:
    """True if *exc* is a lost race rather than a real failure."""
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    message = str(getattr(exc, "orig", exc)).lower()
    if isinstance(exc, IntegrityError):
        return any(marker in message for marker in _DUPLICATE_KEY_MARKERS)
    return any(marker in message for marker in _TRANSIENT_MARKERS)


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.info(
        "Retrying %s after conflict (attempt %d): %s",
        getattr(retry_state.fn, "__qualname__", "store operation"),
        retry_state.attempt_number,
        exc,
    )


def _translated(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    try:
        return func(*args, **kwargs)
    except ForumError:
        raise
    except SQLAlchemyError as exc:
        if is_transient(exc):
            raise Conflict("Concurrent update, please retry") from exc
        logger.exception("Storage failure in %s", getattr(func, "__qualname__", func))
        raise Internal("Storage failure") from exc


def run_with_retry(
    func: Callable[P, T],
    *args: P.args,
    attempts: int = 3,
    **kwargs: P.kwargs,
) -> T:
    """Call ``func(*args, **kwargs)``, retrying on :class:`Conflict`.

    *func* must open and close its own session so that every attempt
    starts from a fresh transaction.
    """
    retryer = Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential_jitter(initial=0.02, max=0.5),
        retry=retry_if_exception_type(Conflict),
        before_sleep=_log_retry,
        reraise=True,
    )
    try:
        for attempt in retryer:
            with attempt:
                return _translated(func, *args, **kwargs)
    except Conflict:
        logger.warning(
            "Giving up on %s after %d conflicting attempts",
            getattr(func, "__qualname__", func), attempts,
        )
        raise
    raise Internal("Retry loop exited without a result")  # pragma: no cover
