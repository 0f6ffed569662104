"""
agora.services.content_service — Board / Thread / Answer Store
===============================================================

:class:`ContentStore` owns every mutation of the forum hierarchy.  Each
public method runs one unit of work:

1. Validate arguments (nothing written yet)
2. Open a session, load the target, check the authorization policy
3. Write the entity
4. Apply counter deltas in the same transaction (aggregate_service)
5. Write moderation_log / mutation_log / notifications as needed
6. Commit, reload the entity, emit real-time events

Lost races surface as :class:`~agora.engine.errors.Conflict` and are
retried by :func:`~agora.services.retry.run_with_retry`; a retried creation
carrying the same idempotency key finds its mutation_log row and returns
the entity created the first time.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Engine, delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agora.config import AgoraConfig
from agora.constants import EVENT_NEW_ANSWER, EVENT_NEW_NOTIFICATION, EVENT_NEW_THREAD, slugify
from agora.database.models import (
    Answer,
    AnswerLike,
    Board,
    MutationLog,
    Notification,
    Thread,
    ThreadLike,
)
from agora.engine.errors import Conflict, InvalidArgument, NotFound
from agora.engine.identity import Identity
from agora.engine.notify import EventEmitter, NullEmitter
from agora.engine.policy import Action, require
from agora.services.aggregate_service import apply_answer_delta, apply_thread_delta
from agora.services.audit_service import log_moderation, row_to_dict
from agora.services.like_service import LikeResult, toggle_like
from agora.services.projections import answer_dict, notification_dict, thread_dict
from agora.services.reconciliation_service import reconcile_aggregates
from agora.services.retry import run_with_retry
from agora.services.upload_service import Attachment, coerce_attachments
from agora.services.user_service import get_or_create_user

logger = logging.getLogger(__name__)

NOTIFY_THREAD_ANSWER = "thread_answer"
NOTIFY_ANSWER_REPLY = "answer_reply"


# ---------------------------------------------------------------------------
# Argument validation
# ---------------------------------------------------------------------------
def _require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgument(f"{field} must not be empty")
    return value.strip()


def _require_position(value: Any) -> int:
    # bool is an int subclass; True is not a position
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument("position must be an integer")
    if value < 0:
        raise InvalidArgument("position must not be negative")
    return value


def _optional_flag(value: Any, field: str) -> bool | None:
    if value is None or isinstance(value, bool):
        return value
    raise InvalidArgument(f"{field} must be a boolean")


def _optional_user_id(value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument("answered_to_id must be a user id")
    return value


def _load(session: Session, model: type, entity_id: int):
    """Re-read *entity_id* with fresh eager-loaded relationships."""
    session.expire_all()
    return session.get(model, entity_id, populate_existing=True)


class ContentStore:
    """Mutations of boards, threads and answers.

    Usage::

        store = ContentStore(engine, emitter=CallbackEmitter(), config=cfg)
        board = store.create_board(mod, "General", 0)
        thread = store.create_thread(member, board.id, "Hello", "First post")
    """

    def __init__(
        self,
        engine: Engine,
        *,
        emitter: EventEmitter | None = None,
        config: AgoraConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.engine = engine
        self.emitter = emitter or NullEmitter()
        self.config = config or AgoraConfig()
        self._clock = clock or (lambda: datetime.now(UTC))

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------
    def _run(self, func, *args, **kwargs):
        return run_with_retry(func, *args, attempts=self.config.conflict_retry_attempts, **kwargs)

    def _emit(self, kind: str, payload: dict[str, Any]) -> None:
        """Fire-and-forget delivery; the write has already committed."""
        try:
            self.emitter.emit(kind, payload)
        except Exception:
            logger.warning("Failed to emit '%s' for id=%s", kind, payload.get("id"), exc_info=True)

    def _now(self) -> datetime:
        return self._clock()

    def _clip_title(self, value: Any) -> str:
        return _require_text(value, "title")[: self.config.title_max_length]

    def _clip_body(self, value: Any) -> str:
        return _require_text(value, "body")[: self.config.body_max_length]

    def _next_edited_at(
        self,
        current: datetime | None,
        *,
        changed: bool,
        flags_sent: bool,
    ) -> datetime | None:
        """Edit marker after a write.

        ``content`` mode marks real title/body changes and clears the marker
        on flag-only writes.  ``legacy`` mode marks every write that carries
        no moderation flag.
        """
        if self.config.edit_marker == "legacy":
            return None if flags_sent else self._now()
        if changed:
            return self._now()
        if flags_sent:
            return None
        return current

    @staticmethod
    def _commit(session: Session, what: str) -> None:
        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise Conflict(f"Concurrent write while saving {what}") from exc

    @staticmethod
    def _replay(session: Session, key: str, operation: str, model: type):
        """Return the entity an earlier call with *key* created, or ``None``."""
        entry = session.scalar(select(MutationLog).where(MutationLog.idempotency_key == key))
        if entry is None:
            return None
        if entry.operation != operation:
            raise InvalidArgument("Idempotency key was already used for another operation")
        entity = session.get(model, entry.entity_id) if entry.entity_id is not None else None
        if entity is None:
            raise NotFound("The entity created with this idempotency key no longer exists")
        logger.info("Replayed %s for idempotency key %r", operation, key)
        return entity

    # ------------------------------------------------------------------
    # Boards
    # ------------------------------------------------------------------
    def _board_name(self, session: Session, title: str, name: Any, board_id: int | None) -> str:
        if name is None:
            candidate = slugify(title) or f"board-{uuid.uuid4().hex[:8]}"
        else:
            candidate = _require_text(name, "name")
        stmt = select(Board.id).where(Board.name == candidate)
        if board_id is not None:
            stmt = stmt.where(Board.id != board_id)
        if session.scalar(stmt) is not None:
            raise InvalidArgument(f"Board name {candidate!r} is already taken")
        return candidate

    def create_board(
        self,
        identity: Identity,
        title: str,
        position: int,
        name: str | None = None,
        body: str = "",
    ) -> Board:
        """Create an empty board.  Moderators only."""
        require(Action.CREATE_BOARD, identity)
        title = self._clip_title(title)
        position = _require_position(position)
        body = body.strip() if isinstance(body, str) else ""
        return self._run(self._create_board_once, identity, title, position, name, body)

    def _create_board_once(self, identity, title, position, name, body) -> Board:
        with Session(self.engine, expire_on_commit=False) as session:
            now = self._now()
            board = Board(
                name=self._board_name(session, title, name, None),
                title=title,
                body=body,
                position=position,
                created_at=now,
                threads_count=0,
                answers_count=0,
                newest_thread=now,
                newest_answer=now,
            )
            session.add(board)
            session.flush()
            log_moderation(
                session,
                actor_id=identity.user_id,
                action_type="create_board",
                target_table="boards",
                target_id=board.id,
                before=None,
                after=row_to_dict(board),
            )
            self._commit(session, "board")
            board = _load(session, Board, board.id)
        logger.info("Board %s (%s) created by %s", board.id, board.name, identity.user_id)
        return board

    def edit_board(
        self,
        identity: Identity,
        board_id: int,
        title: str,
        position: int,
        name: str | None = None,
        body: str | None = None,
    ) -> Board:
        """Replace a board's title and position (and name/body when given)."""
        require(Action.EDIT_BOARD, identity)
        title = self._clip_title(title)
        position = _require_position(position)
        if name is not None:
            name = _require_text(name, "name")
        if body is not None and not isinstance(body, str):
            raise InvalidArgument("body must be a string")
        return self._run(self._edit_board_once, identity, board_id, title, position, name, body)

    def _edit_board_once(self, identity, board_id, title, position, name, body) -> Board:
        with Session(self.engine, expire_on_commit=False) as session:
            board = session.get(Board, board_id)
            if board is None:
                raise NotFound(f"Board {board_id} not found")
            before = row_to_dict(board)

            if name is not None:
                board.name = self._board_name(session, title, name, board_id)
            board.title = title
            board.position = position
            if body is not None:
                board.body = body.strip()
            session.flush()

            log_moderation(
                session,
                actor_id=identity.user_id,
                action_type="edit_board",
                target_table="boards",
                target_id=board_id,
                before=before,
                after=row_to_dict(board),
            )
            self._commit(session, "board")
            board = _load(session, Board, board_id)
        return board

    def delete_board(self, identity: Identity, board_id: int) -> None:
        """Delete a board with every thread, answer, like and notification under it."""
        require(Action.DELETE_BOARD, identity)
        self._run(self._delete_board_once, identity, board_id)

    def _delete_board_once(self, identity, board_id) -> None:
        with Session(self.engine, expire_on_commit=False) as session:
            board = session.get(Board, board_id)
            if board is None:
                raise NotFound(f"Board {board_id} not found")
            before = row_to_dict(board)

            thread_ids = select(Thread.id).where(Thread.board_id == board_id)
            answer_ids = select(Answer.id).where(Answer.board_id == board_id)
            no_sync = {"synchronize_session": False}
            session.execute(
                delete(Notification).where(Notification.thread_id.in_(thread_ids)),
                execution_options=no_sync,
            )
            session.execute(
                delete(AnswerLike).where(AnswerLike.answer_id.in_(answer_ids)),
                execution_options=no_sync,
            )
            answers = session.execute(
                delete(Answer).where(Answer.board_id == board_id), execution_options=no_sync,
            ).rowcount
            session.execute(
                delete(ThreadLike).where(ThreadLike.thread_id.in_(thread_ids)),
                execution_options=no_sync,
            )
            threads = session.execute(
                delete(Thread).where(Thread.board_id == board_id), execution_options=no_sync,
            ).rowcount
            removed = session.execute(
                delete(Board).where(Board.id == board_id), execution_options=no_sync,
            ).rowcount
            if not removed:
                session.rollback()
                raise NotFound(f"Board {board_id} not found")

            log_moderation(
                session,
                actor_id=identity.user_id,
                action_type="delete_board",
                target_table="boards",
                target_id=board_id,
                before=before,
                after=None,
                reason=f"cascade: {threads} thread(s), {answers} answer(s)",
            )
            self._commit(session, "board deletion")
        logger.info(
            "Board %s deleted by %s (%d threads, %d answers)",
            board_id, identity.user_id, threads, answers,
        )

    # ------------------------------------------------------------------
    # Threads
    # ------------------------------------------------------------------
    def create_thread(
        self,
        identity: Identity,
        board_id: int,
        title: str,
        body: str,
        attachments: Iterable[Attachment | dict] = (),
        idempotency_key: str | None = None,
    ) -> Thread:
        """Open a thread on *board_id* and announce it with ``newThread``."""
        require(Action.CREATE_THREAD, identity)
        title = self._clip_title(title)
        body = self._clip_body(body)
        records = coerce_attachments(attachments)
        thread, created = self._run(
            self._create_thread_once, identity, board_id, title, body, records, idempotency_key,
        )
        if created:
            self._emit(EVENT_NEW_THREAD, thread_dict(thread))
        return thread

    def _create_thread_once(self, identity, board_id, title, body, records, key):
        with Session(self.engine, expire_on_commit=False) as session:
            if key:
                existing = self._replay(session, key, "create_thread", Thread)
                if existing is not None:
                    return _load(session, Thread, existing.id), False

            if session.get(Board, board_id) is None:
                raise NotFound(f"Board {board_id} not found")
            get_or_create_user(session, identity)

            now = self._now()
            thread = Thread(
                board_id=board_id,
                author_id=identity.user_id,
                title=title,
                body=body,
                pined=False,
                closed=False,
                created_at=now,
                attachments=records,
                answers_count=0,
                newest_answer=now,
            )
            session.add(thread)
            session.flush()
            apply_thread_delta(session, board_id, 1, created_at=now)
            if key:
                session.add(MutationLog(
                    idempotency_key=key, operation="create_thread", entity_id=thread.id,
                ))
            self._commit(session, "thread")
            thread = _load(session, Thread, thread.id)
        logger.info("Thread %s created on board %s by %s", thread.id, board_id, identity.user_id)
        return thread, True

    def edit_thread(
        self,
        identity: Identity,
        thread_id: int,
        title: str,
        body: str,
        closed: bool | None = None,
    ) -> Thread:
        """Author edit: replace title/body, optionally open or close the thread."""
        title = self._clip_title(title)
        body = self._clip_body(body)
        closed = _optional_flag(closed, "closed")
        return self._run(
            self._edit_thread_once, identity, thread_id, title, body, None, closed, False,
        )

    def admin_edit_thread(
        self,
        identity: Identity,
        thread_id: int,
        title: str,
        body: str,
        pined: bool | None = None,
        closed: bool | None = None,
    ) -> Thread:
        """Moderator edit: content plus the ``pined`` / ``closed`` flags."""
        require(Action.MODERATE_THREAD, identity)
        title = self._clip_title(title)
        body = self._clip_body(body)
        pined = _optional_flag(pined, "pined")
        closed = _optional_flag(closed, "closed")
        return self._run(
            self._edit_thread_once, identity, thread_id, title, body, pined, closed, True,
        )

    def _edit_thread_once(self, identity, thread_id, title, body, pined, closed, moderated):
        with Session(self.engine, expire_on_commit=False) as session:
            thread = session.get(Thread, thread_id)
            if thread is None:
                raise NotFound(f"Thread {thread_id} not found")
            if not moderated:
                require(Action.EDIT_THREAD, identity, thread)
            before = row_to_dict(thread) if moderated else None

            changed = thread.title != title or thread.body != body
            thread.edited_at = self._next_edited_at(
                thread.edited_at,
                changed=changed,
                flags_sent=pined is not None or closed is not None,
            )
            thread.title = title
            thread.body = body
            if pined is not None:
                thread.pined = pined
            if closed is not None:
                thread.closed = closed
            session.flush()

            if moderated:
                log_moderation(
                    session,
                    actor_id=identity.user_id,
                    action_type="edit_thread",
                    target_table="threads",
                    target_id=thread_id,
                    before=before,
                    after=row_to_dict(thread),
                )
            self._commit(session, "thread")
            thread = _load(session, Thread, thread_id)
        return thread

    def delete_thread(self, identity: Identity, thread_id: int) -> None:
        """Delete a thread and its answers; board counters follow."""
        require(Action.DELETE_THREAD, identity)
        self._run(self._delete_thread_once, identity, thread_id)

    def _delete_thread_once(self, identity, thread_id) -> None:
        with Session(self.engine, expire_on_commit=False) as session:
            thread = session.get(Thread, thread_id)
            if thread is None:
                raise NotFound(f"Thread {thread_id} not found")
            board_id = thread.board_id
            before = row_to_dict(thread)

            answer_ids = select(Answer.id).where(Answer.thread_id == thread_id)
            no_sync = {"synchronize_session": False}
            session.execute(
                delete(Notification).where(Notification.thread_id == thread_id),
                execution_options=no_sync,
            )
            session.execute(
                delete(AnswerLike).where(AnswerLike.answer_id.in_(answer_ids)),
                execution_options=no_sync,
            )
            answers = session.execute(
                delete(Answer).where(Answer.thread_id == thread_id), execution_options=no_sync,
            ).rowcount
            session.execute(
                delete(ThreadLike).where(ThreadLike.thread_id == thread_id),
                execution_options=no_sync,
            )
            removed = session.execute(
                delete(Thread).where(Thread.id == thread_id), execution_options=no_sync,
            ).rowcount
            if not removed:
                session.rollback()
                raise NotFound(f"Thread {thread_id} not found")

            apply_thread_delta(session, board_id, -removed)
            apply_answer_delta(session, board_id, None, -answers)
            log_moderation(
                session,
                actor_id=identity.user_id,
                action_type="delete_thread",
                target_table="threads",
                target_id=thread_id,
                before=before,
                after=None,
                reason=f"cascade: {answers} answer(s)",
            )
            self._commit(session, "thread deletion")
        logger.info("Thread %s deleted by %s (%d answers)", thread_id, identity.user_id, answers)

    # ------------------------------------------------------------------
    # Answers
    # ------------------------------------------------------------------
    def create_answer(
        self,
        identity: Identity,
        thread_id: int,
        body: str,
        answered_to_id: int | None = None,
        attachments: Iterable[Attachment | dict] = (),
        idempotency_key: str | None = None,
    ) -> Answer:
        """Answer a thread, notify the people answered, emit ``newAnswer``."""
        require(Action.CREATE_ANSWER, identity)
        body = self._clip_body(body)
        answered_to_id = _optional_user_id(answered_to_id)
        records = coerce_attachments(attachments)
        answer, notifications, created = self._run(
            self._create_answer_once,
            identity, thread_id, body, answered_to_id, records, idempotency_key,
        )
        if created:
            self._emit(EVENT_NEW_ANSWER, answer_dict(answer))
            for payload in notifications:
                self._emit(EVENT_NEW_NOTIFICATION, payload)
        return answer

    def _create_answer_once(self, identity, thread_id, body, answered_to_id, records, key):
        with Session(self.engine, expire_on_commit=False) as session:
            if key:
                existing = self._replay(session, key, "create_answer", Answer)
                if existing is not None:
                    return _load(session, Answer, existing.id), [], False

            thread = session.get(Thread, thread_id)
            if thread is None:
                raise NotFound(f"Thread {thread_id} not found")
            require(Action.CREATE_ANSWER, identity, thread)
            get_or_create_user(session, identity)

            now = self._now()
            answer = Answer(
                thread_id=thread_id,
                board_id=thread.board_id,
                author_id=identity.user_id,
                answered_to_id=answered_to_id,
                body=body,
                created_at=now,
                attachments=records,
            )
            session.add(answer)
            session.flush()
            apply_answer_delta(session, thread.board_id, thread_id, 1, created_at=now)

            notifications = []
            seen = {identity.user_id}
            for recipient, kind in (
                (thread.author_id, NOTIFY_THREAD_ANSWER),
                (answered_to_id, NOTIFY_ANSWER_REPLY),
            ):
                if recipient is None or recipient in seen:
                    continue
                seen.add(recipient)
                notification = Notification(
                    user_id=recipient,
                    actor_id=identity.user_id,
                    kind=kind,
                    thread_id=thread_id,
                    answer_id=answer.id,
                    read=False,
                    created_at=now,
                )
                session.add(notification)
                notifications.append(notification)

            if key:
                session.add(MutationLog(
                    idempotency_key=key, operation="create_answer", entity_id=answer.id,
                ))
            self._commit(session, "answer")
            payloads = [notification_dict(n) for n in notifications]
            answer = _load(session, Answer, answer.id)
        logger.info(
            "Answer %s on thread %s by %s (%d notification(s))",
            answer.id, thread_id, identity.user_id, len(payloads),
        )
        return answer, payloads, True

    def edit_answer(self, identity: Identity, answer_id: int, body: str) -> Answer:
        """Author edit of an answer body."""
        body = self._clip_body(body)
        return self._run(self._edit_answer_once, identity, answer_id, body)

    def _edit_answer_once(self, identity, answer_id, body) -> Answer:
        with Session(self.engine, expire_on_commit=False) as session:
            answer = session.get(Answer, answer_id)
            if answer is None:
                raise NotFound(f"Answer {answer_id} not found")
            require(Action.EDIT_ANSWER, identity, answer)

            # answers carry no moderation flags: every author edit is marked
            answer.edited_at = self._now()
            answer.body = body
            self._commit(session, "answer")
            answer = _load(session, Answer, answer_id)
        return answer

    def delete_answer(self, identity: Identity, answer_id: int) -> None:
        """Delete one answer; thread and board counters both drop by one."""
        require(Action.DELETE_ANSWER, identity)
        self._run(self._delete_answer_once, identity, answer_id)

    def _delete_answer_once(self, identity, answer_id) -> None:
        with Session(self.engine, expire_on_commit=False) as session:
            answer = session.get(Answer, answer_id)
            if answer is None:
                raise NotFound(f"Answer {answer_id} not found")
            board_id, thread_id = answer.board_id, answer.thread_id
            before = row_to_dict(answer)

            no_sync = {"synchronize_session": False}
            session.execute(
                delete(Notification).where(Notification.answer_id == answer_id),
                execution_options=no_sync,
            )
            session.execute(
                delete(AnswerLike).where(AnswerLike.answer_id == answer_id),
                execution_options=no_sync,
            )
            removed = session.execute(
                delete(Answer).where(Answer.id == answer_id), execution_options=no_sync,
            ).rowcount
            if not removed:
                session.rollback()
                raise NotFound(f"Answer {answer_id} not found")

            apply_answer_delta(session, board_id, thread_id, -removed)
            log_moderation(
                session,
                actor_id=identity.user_id,
                action_type="delete_answer",
                target_table="answers",
                target_id=answer_id,
                before=before,
                after=None,
            )
            self._commit(session, "answer deletion")
        logger.info("Answer %s deleted by %s", answer_id, identity.user_id)

    # ------------------------------------------------------------------
    # Likes & maintenance
    # ------------------------------------------------------------------
    def like_thread(self, identity: Identity, thread_id: int) -> LikeResult:
        return toggle_like(
            self.engine, "thread", thread_id, identity,
            attempts=self.config.conflict_retry_attempts,
        )

    def like_answer(self, identity: Identity, answer_id: int) -> LikeResult:
        return toggle_like(
            self.engine, "answer", answer_id, identity,
            attempts=self.config.conflict_retry_attempts,
        )

    def reconcile(self, identity: Identity) -> dict[str, Any]:
        """Moderator-triggered recount of every aggregate."""
        require(Action.RECONCILE, identity)
        return reconcile_aggregates(self.engine)
