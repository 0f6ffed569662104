"""
tests/test_like_toggle.py — Like / Unlike Toggle Tests
=======================================================
Membership flips, populated projections, missing entities, and parallel
toggles by many users against a file-backed SQLite database.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from agora.config import AgoraConfig
from agora.database.models import Board, Thread, ThreadLike
from agora.engine.errors import InvalidArgument, NotFound
from agora.engine.identity import Identity, Role
from agora.services.content_service import ContentStore
from agora.services.like_service import toggle_like


@pytest.fixture
def thread(store, moderator, member):
    board = store.create_board(moderator, "General", 0)
    return store.create_thread(member, board.id, "Hello", "World")


class TestToggle:
    def test_first_toggle_likes(self, store, other_member, thread):
        result = store.like_thread(other_member, thread.id)
        assert result.liked is True
        assert result.like_count == 1
        assert result.user_ids == {other_member.user_id}

    def test_likes_are_populated(self, store, other_member, thread):
        result = store.like_thread(other_member, thread.id)
        (like,) = result.likes
        assert like["id"] == other_member.user_id
        assert like["name"] == "Bob"
        assert like["created_at"] is not None

    def test_double_toggle_restores_membership(self, store, member, other_member, thread):
        store.like_thread(member, thread.id)
        store.like_thread(other_member, thread.id)
        store.like_thread(other_member, thread.id)
        result = store.like_thread(member, thread.id)
        assert result.liked is False
        assert result.likes == []

    def test_answer_likes(self, store, member, other_member, thread):
        answer = store.create_answer(other_member, thread.id, "Reply")
        liked = store.like_answer(member, answer.id)
        assert liked.kind == "answer"
        assert liked.user_ids == {member.user_id}
        assert store.like_answer(member, answer.id).like_count == 0

    def test_toggle_leaves_counters_alone(self, store, member, thread, db_engine):
        store.like_thread(member, thread.id)
        with Session(db_engine) as session:
            board = session.get(Board, thread.board_id)
            fresh = session.get(Thread, thread.id)
        assert board.threads_count == 1
        assert board.answers_count == 0
        assert fresh.answers_count == 0

    def test_like_missing_thread(self, store, member):
        with pytest.raises(NotFound):
            store.like_thread(member, 12345)

    def test_like_missing_answer(self, store, member):
        with pytest.raises(NotFound):
            store.like_answer(member, 12345)

    def test_unknown_kind(self, db_engine, member):
        with pytest.raises(InvalidArgument):
            toggle_like(db_engine, "board", 1, member)

    def test_to_dict_shape(self, store, member, thread):
        payload = store.like_thread(member, thread.id).to_dict()
        assert payload["kind"] == "thread"
        assert payload["id"] == thread.id
        assert payload["liked"] is True
        assert payload["like_count"] == 1
        assert payload["likes"][0]["id"] == member.user_id


class TestConcurrentToggles:
    def test_parallel_toggles_by_distinct_users(self, file_engine):
        store = ContentStore(file_engine, config=AgoraConfig(conflict_retry_attempts=10))
        mod = Identity(user_id=1, role=Role.MODERATOR, name="Mod")
        board = store.create_board(mod, "General", 0)
        thread = store.create_thread(mod, board.id, "Hello", "World")

        users = [Identity(user_id=100 + i, name=f"user{i}") for i in range(10)]
        with ThreadPoolExecutor(max_workers=5) as pool:
            results = list(pool.map(lambda who: store.like_thread(who, thread.id), users))

        assert all(result.liked for result in results)
        with Session(file_engine) as session:
            likers = set(session.scalars(
                select(ThreadLike.user_id).where(ThreadLike.thread_id == thread.id)
            ).all())
            total = session.scalar(select(func.count()).select_from(ThreadLike))
        assert likers == {u.user_id for u in users}
        assert total == len(users)

    @pytest.mark.parametrize("toggles", [2, 3, 6])
    def test_parallel_toggles_by_one_user_alternate(self, file_engine, toggles):
        store = ContentStore(file_engine, config=AgoraConfig(conflict_retry_attempts=10))
        mod = Identity(user_id=1, role=Role.MODERATOR, name="Mod")
        board = store.create_board(mod, "General", 0)
        thread = store.create_thread(mod, board.id, "Hello", "World")
        fan = Identity(user_id=50, name="Fan")

        with ThreadPoolExecutor(max_workers=toggles) as pool:
            results = list(pool.map(lambda _: store.like_thread(fan, thread.id), range(toggles)))

        likes = sum(1 for result in results if result.liked)
        assert likes == (toggles + 1) // 2
        assert len(results) - likes == toggles // 2
        with Session(file_engine) as session:
            rows = session.scalar(
                select(func.count()).select_from(ThreadLike).where(ThreadLike.thread_id == thread.id)
            )
        assert rows == toggles % 2
