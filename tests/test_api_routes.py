"""
tests/test_api_routes.py — FastAPI Route Integration Tests
===========================================================
Drives the HTTP surface with the FastAPI TestClient against the shared
in-memory SQLite engine: auth guards, error mapping, multipart posts with
attachments, and the read endpoints' response shapes.
"""

from __future__ import annotations

import json

import jwt
import pytest
from fastapi.testclient import TestClient

from agora.api import deps
from agora.config import AgoraConfig
from agora.engine.identity import Identity, Role
from agora.engine.notify import NullEmitter

MOD = Identity(user_id=1, role=Role.MODERATOR, name="Mod")
ALICE = Identity(user_id=2, name="Alice")
BOB = Identity(user_id=3, name="Bob")


@pytest.fixture
def client(db_engine, tmp_path):
    """TestClient wired to the in-memory engine and a temp upload dir."""
    from agora.api.main import app

    cfg = AgoraConfig(upload_dir=str(tmp_path / "uploads"))
    app.dependency_overrides[deps.get_engine] = lambda: db_engine
    app.dependency_overrides[deps.get_config] = lambda: cfg
    app.dependency_overrides[deps.get_emitter] = NullEmitter
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


def _auth(identity: Identity) -> dict:
    return {"Authorization": f"Bearer {deps.create_token(identity)}"}


def _post_thread(client, board_id, title="Hello", body="World", who=ALICE, **kwargs):
    return client.post(
        "/api/threads",
        data={"post_data": json.dumps({"board_id": board_id, "title": title, "body": body})},
        headers={**_auth(who), **kwargs.pop("headers", {})},
        **kwargs,
    )


def _post_answer(client, thread_id, body="Reply", who=BOB, answered_to_id=None):
    return client.post(
        "/api/answers",
        data={"post_data": json.dumps({
            "thread_id": thread_id, "body": body, "answered_to_id": answered_to_id,
        })},
        headers=_auth(who),
    )


@pytest.fixture
def board(client):
    resp = client.post("/api/boards", json={"title": "General", "position": 0}, headers=_auth(MOD))
    assert resp.status_code == 201
    return resp.json()


# ===========================================================================
# Health & auth
# ===========================================================================
class TestHealthAndAuth:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    def test_missing_token_is_401(self, client):
        resp = client.post("/api/boards", json={"title": "X", "position": 0})
        assert resp.status_code == 401

    def test_bad_signature_is_401(self, client):
        token = jwt.encode({"sub": "1", "role": "admin"}, "x" * 40, algorithm="HS256")
        resp = client.post(
            "/api/boards", json={"title": "X", "position": 0},
            headers={"Authorization": f"Bearer {token}"},
        )
        assert resp.status_code == 401

    def test_token_without_subject_is_401(self, client):
        token = jwt.encode({"role": "admin"}, deps.JWT_SECRET, algorithm=deps.JWT_ALGORITHM)
        resp = client.delete("/api/notifications", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    def test_member_gets_forum_error_body(self, client):
        resp = client.post("/api/boards", json={"title": "X", "position": 0}, headers=_auth(ALICE))
        assert resp.status_code == 403
        assert resp.json() == {"error": "unauthorized", "message": "Action not allowed"}


# ===========================================================================
# Boards
# ===========================================================================
class TestBoardRoutes:
    def test_create_and_fetch(self, client, board):
        assert board["name"] == "general"
        assert board["threads_count"] == 0

        by_name = client.get("/api/board", params={"name": "general"})
        assert by_name.status_code == 200
        assert by_name.json()["id"] == board["id"]

        listing = client.get("/api/boards").json()
        assert listing["total_docs"] == 1
        assert listing["docs"][0]["title"] == "General"

    def test_missing_board_is_404(self, client):
        resp = client.get("/api/board", params={"name": "nope"})
        assert resp.status_code == 404
        assert resp.json()["error"] == "not_found"

    def test_board_lookup_needs_a_key(self, client):
        assert client.get("/api/board").status_code == 400

    def test_edit_and_delete(self, client, board):
        resp = client.put(
            f"/api/boards/{board['id']}",
            json={"title": "Lobby", "position": 4},
            headers=_auth(MOD),
        )
        assert resp.status_code == 200
        assert resp.json()["title"] == "Lobby"

        resp = client.delete(f"/api/boards/{board['id']}", headers=_auth(MOD))
        assert resp.status_code == 200
        assert client.get("/api/boards").json()["total_docs"] == 0


# ===========================================================================
# Threads
# ===========================================================================
class TestThreadRoutes:
    def test_create_thread_with_attachment(self, client, board, tmp_path):
        resp = _post_thread(
            client, board["id"],
            files=[("attach", ("shot.png", b"\x89PNG", "image/png"))],
        )
        assert resp.status_code == 201
        thread = resp.json()
        (attachment,) = thread["attachments"]
        assert attachment["media_type"] == "image/png"
        assert attachment["byte_size"] == 4
        assert attachment["url"].startswith("/api/uploads/attach_")
        assert len(list((tmp_path / "uploads").iterdir())) == 1
        assert thread["author"]["name"] == "Alice"
        assert thread["edited"] is None

    def test_failed_create_removes_uploaded_files(self, client, tmp_path):
        resp = _post_thread(
            client, 999, files=[("attach", ("shot.png", b"data", "image/png"))],
        )
        assert resp.status_code == 404
        assert list((tmp_path / "uploads").iterdir()) == []

    def test_invalid_post_data_is_400(self, client, board):
        resp = client.post(
            "/api/threads", data={"post_data": "{not json"}, headers=_auth(ALICE),
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_argument"

    def test_blank_title_is_400(self, client, board):
        assert _post_thread(client, board["id"], title="   ").status_code == 400

    def test_idempotency_key_header(self, client, board):
        first = _post_thread(client, board["id"], headers={"Idempotency-Key": "abc"})
        again = _post_thread(client, board["id"], headers={"Idempotency-Key": "abc"})
        assert first.json()["id"] == again.json()["id"]
        fetched = client.get("/api/board", params={"board_id": board["id"]}).json()
        assert fetched["threads_count"] == 1

    def test_list_get_and_recent(self, client, board):
        thread = _post_thread(client, board["id"]).json()
        listing = client.get("/api/threads", params={"board_id": board["id"]}).json()
        assert [t["id"] for t in listing["docs"]] == [thread["id"]]

        detail = client.get(f"/api/threads/{thread['id']}").json()
        assert detail["board"] == {"id": board["id"], "name": "general", "title": "General"}
        assert detail["thread"]["title"] == "Hello"

        recent = client.get("/api/threads/recent").json()
        assert recent["docs"][0]["id"] == thread["id"]

    def test_author_edit_and_foreign_edit(self, client, board):
        thread = _post_thread(client, board["id"]).json()
        ok = client.put(
            f"/api/threads/{thread['id']}",
            json={"title": "Hello", "body": "Edited"},
            headers=_auth(ALICE),
        )
        assert ok.status_code == 200
        assert ok.json()["edited"] is not None

        denied = client.put(
            f"/api/threads/{thread['id']}",
            json={"title": "Mine", "body": "Now"},
            headers=_auth(BOB),
        )
        assert denied.status_code == 403

    def test_admin_edit_pins(self, client, board):
        thread = _post_thread(client, board["id"]).json()
        resp = client.put(
            f"/api/admin/threads/{thread['id']}",
            json={"title": "Hello", "body": "World", "pined": True},
            headers=_auth(MOD),
        )
        assert resp.status_code == 200
        assert resp.json()["pined"] is True

    def test_like_toggle_route(self, client, board):
        thread = _post_thread(client, board["id"]).json()
        liked = client.post(f"/api/threads/{thread['id']}/like", headers=_auth(BOB)).json()
        assert liked["liked"] is True
        assert liked["likes"][0]["id"] == BOB.user_id
        unliked = client.post(f"/api/threads/{thread['id']}/like", headers=_auth(BOB)).json()
        assert unliked["like_count"] == 0

    def test_delete_thread(self, client, board):
        thread = _post_thread(client, board["id"]).json()
        assert client.delete(f"/api/threads/{thread['id']}", headers=_auth(ALICE)).status_code == 403
        assert client.delete(f"/api/threads/{thread['id']}", headers=_auth(MOD)).status_code == 200
        assert client.get(f"/api/threads/{thread['id']}").status_code == 404


# ===========================================================================
# Answers & notifications
# ===========================================================================
class TestAnswerRoutes:
    def test_answer_flow(self, client, board):
        thread = _post_thread(client, board["id"]).json()
        resp = _post_answer(client, thread["id"])
        assert resp.status_code == 201
        answer = resp.json()

        listing = client.get("/api/answers", params={"thread_id": thread["id"]}).json()
        assert [a["id"] for a in listing["docs"]] == [answer["id"]]

        edited = client.put(
            f"/api/answers/{answer['id']}", json={"body": "Better"}, headers=_auth(BOB),
        )
        assert edited.json()["body"] == "Better"

        liked = client.post(f"/api/answers/{answer['id']}/like", headers=_auth(ALICE))
        assert liked.json()["liked"] is True

        assert client.delete(f"/api/answers/{answer['id']}", headers=_auth(MOD)).status_code == 200
        detail = client.get(f"/api/threads/{thread['id']}").json()
        assert detail["thread"]["answers_count"] == 0

    def test_closed_thread_rejects_member_answer(self, client, board):
        thread = _post_thread(client, board["id"]).json()
        client.put(
            f"/api/admin/threads/{thread['id']}",
            json={"title": "Hello", "body": "World", "closed": True},
            headers=_auth(MOD),
        )
        assert _post_answer(client, thread["id"]).status_code == 403
        assert _post_answer(client, thread["id"], who=MOD).status_code == 201

    def test_notifications_list_and_clear(self, client, board):
        thread = _post_thread(client, board["id"]).json()
        _post_answer(client, thread["id"])

        listing = client.get("/api/notifications", headers=_auth(ALICE)).json()
        assert listing["total_docs"] == 1
        assert listing["docs"][0]["kind"] == "thread_answer"
        assert listing["docs"][0]["actor_id"] == BOB.user_id

        cleared = client.delete("/api/notifications", headers=_auth(ALICE)).json()
        assert cleared == {"status": "cleared", "removed": 1}


# ===========================================================================
# Admin
# ===========================================================================
class TestAdminRoutes:
    def test_reconcile_requires_moderator(self, client, board):
        assert client.post("/api/admin/reconcile", headers=_auth(ALICE)).status_code == 403
        report = client.post("/api/admin/reconcile", headers=_auth(MOD)).json()
        assert report["checked"] == 1
        assert report["corrected"] == 0

    def test_moderation_log(self, client, board):
        assert client.get("/api/admin/moderation-log", headers=_auth(ALICE)).status_code == 403
        log = client.get("/api/admin/moderation-log", headers=_auth(MOD)).json()
        assert log["docs"][0]["action_type"] == "create_board"
        assert log["docs"][0]["after"]["name"] == "general"


# ===========================================================================
# Lifespan
# ===========================================================================
class TestLifespan:
    def test_startup_creates_sqlite_schema(self, tmp_path, monkeypatch):
        from sqlalchemy import create_engine, inspect

        from agora.api import main

        engine = create_engine(
            f"sqlite:///{tmp_path / 'dev.db'}", connect_args={"check_same_thread": False},
        )
        cfg = AgoraConfig(upload_dir=str(tmp_path / "uploads"), reconcile_interval_minutes=0)
        monkeypatch.setattr(main, "get_engine", lambda: engine)
        monkeypatch.setattr(main, "get_config", lambda: cfg)

        with TestClient(main.app) as client:
            assert client.get("/api/health").status_code == 200

        assert {"boards", "threads", "answers", "users"} <= set(inspect(engine).get_table_names())
        assert (tmp_path / "uploads").is_dir()
        engine.dispose()
