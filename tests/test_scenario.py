"""
tests/test_scenario.py — End-to-End Forum Walkthrough
======================================================
One board, one thread, one answer, a like and an unlike, checking every
denormalized counter and "newest" field along the way.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from agora.database.models import Board, Thread
from agora.services import query_service
from agora.services.reconciliation_service import reconcile_aggregates


def test_board_thread_answer_like_unlike(store, moderator, member, other_member, db_engine):
    board = store.create_board(moderator, "General", 0)
    assert (board.threads_count, board.answers_count) == (0, 0)

    thread = store.create_thread(member, board.id, "Hello", "First post")
    answer = store.create_answer(other_member, thread.id, "Welcome!")

    with Session(db_engine) as session:
        b = session.get(Board, board.id)
        t = session.get(Thread, thread.id)
        assert (b.threads_count, b.answers_count) == (1, 1)
        assert b.newest_thread == t.created_at
        assert b.newest_answer == t.newest_answer
        assert t.answers_count == 1

    liked = store.like_thread(other_member, thread.id)
    assert liked.liked and liked.user_ids == {other_member.user_id}
    assert store.like_answer(member, answer.id).like_count == 1

    unliked = store.like_thread(other_member, thread.id)
    assert not unliked.liked and unliked.like_count == 0

    with Session(db_engine) as session:
        page = query_service.list_notifications(session, member.user_id)
        assert [n.kind for n in page.docs] == ["thread_answer"]

    report = reconcile_aggregates(db_engine)
    assert report["corrected"] == 0
