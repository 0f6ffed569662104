"""
agora.engine.notify — Real-Time Event Emitters
===============================================

The store announces creations (``newThread``, ``newAnswer``,
``newNotification``) through an :class:`EventEmitter`.  Emission is
fire-and-forget: the store calls :meth:`emit` after its transaction has
committed and never waits for, retries or rolls back on delivery.

Implementations:

* :class:`NullEmitter` — drops everything (tests, CLI tools).
* :class:`CallbackEmitter` — in-process subscribers; async callbacks are
  scheduled on a registered event loop (e.g. a WebSocket fan-out).
* :class:`PgNotifyEmitter` — ``pg_notify('forum_events', <json>)`` so any
  process LISTENing on PostgreSQL can push to its own clients.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
import threading
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol

from sqlalchemy import text

from agora.constants import EVENT_KINDS

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

# PG channel for forum event fan-out
EVENT_NOTIFY_CHANNEL = "forum_events"

# PostgreSQL rejects NOTIFY payloads of 8000 bytes or more
_PG_PAYLOAD_LIMIT = 7999


class EventEmitter(Protocol):
    def emit(self, kind: str, payload: dict[str, Any]) -> None: ...


def _check_kind(kind: str) -> None:
    if kind not in EVENT_KINDS:
        raise ValueError(f"Unknown event kind {kind!r}. Allowed: {sorted(EVENT_KINDS)}")


class NullEmitter:
    """Accepts and discards every event."""

    def emit(self, kind: str, payload: dict[str, Any]) -> None:
        _check_kind(kind)


class CallbackEmitter:
    """In-process subscriber registry.

    Usage::

        emitter = CallbackEmitter()
        emitter.register("newThread", on_new_thread)           # sync
        emitter.register("newAnswer", broadcast, loop=loop)    # async

    Sync callbacks run inline on the emitting thread.  Coroutine functions
    are handed to the registered loop with ``run_coroutine_threadsafe`` so
    the store (running in a worker thread) never awaits delivery.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._callbacks: dict[str, list[Callable[[dict[str, Any]], Any]]] = {}
        self._loop: asyncio.AbstractEventLoop | None = None

    def register(
        self,
        kind: str,
        callback: Callable[[dict[str, Any]], Any],
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        _check_kind(kind)
        with self._lock:
            self._callbacks.setdefault(kind, []).append(callback)
            if loop is not None:
                self._loop = loop
        logger.info("Registered event callback for '%s'", kind)

    def unregister(self, kind: str, callback: Callable[[dict[str, Any]], Any]) -> None:
        with self._lock:
            callbacks = self._callbacks.get(kind, [])
            if callback in callbacks:
                callbacks.remove(callback)

    def emit(self, kind: str, payload: dict[str, Any]) -> None:
        _check_kind(kind)
        with self._lock:
            callbacks = list(self._callbacks.get(kind, []))
            loop = self._loop

        if not callbacks:
            logger.debug("No subscribers for event '%s'", kind)
            return

        for callback in callbacks:
            if inspect.iscoroutinefunction(callback):
                if loop is None or loop.is_closed():
                    logger.warning(
                        "Cannot dispatch event '%s' — no event loop available", kind,
                    )
                    continue
                asyncio.run_coroutine_threadsafe(callback(payload), loop)
            else:
                callback(payload)


class PgNotifyEmitter:
    """Publish events on the ``forum_events`` PostgreSQL channel.

    The payload is ``{"type": kind, "data": payload}`` as JSON.  Payloads
    over PostgreSQL's limit are reduced to the entity id so listeners can
    re-fetch instead of silently losing the event.
    """

    def __init__(self, engine: Engine, channel: str = EVENT_NOTIFY_CHANNEL) -> None:
        self._engine = engine
        self._channel = channel

    def emit(self, kind: str, payload: dict[str, Any]) -> None:
        _check_kind(kind)
        raw = json.dumps({"type": kind, "data": payload}, default=str)
        if len(raw.encode("utf-8")) > _PG_PAYLOAD_LIMIT:
            raw = json.dumps(
                {"type": kind, "data": {"id": payload.get("id")}, "truncated": True},
                default=str,
            )
        with self._engine.connect() as conn:
            conn.execute(
                text("SELECT pg_notify(:channel, :payload)"),
                {"channel": self._channel, "payload": raw},
            )
            conn.commit()
