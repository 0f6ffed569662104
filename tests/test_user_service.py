"""
tests/test_user_service.py — Member Display Row Tests
======================================================
"""

from __future__ import annotations

from agora.engine.identity import Identity, Role
from agora.services.user_service import get_or_create_user


def test_nameless_newcomer_gets_fallback_name(db_session):
    user = get_or_create_user(db_session, Identity(user_id=9))
    assert user.name == "user-9"
    assert user.display_name is None
    assert user.role == "member"


def test_insert_and_update_map_names_the_same_way(db_session):
    inserted = get_or_create_user(db_session, Identity(user_id=5, name="Alice"))
    assert (inserted.name, inserted.display_name) == ("Alice", "Alice")

    renamed = get_or_create_user(
        db_session, Identity(user_id=5, role=Role.MODERATOR, name="Alicia", picture="/a.png"),
    )
    assert renamed is inserted
    assert (renamed.name, renamed.display_name) == ("Alicia", "Alicia")
    assert renamed.picture == "/a.png"
    assert renamed.role == "moderator"


def test_missing_name_keeps_known_name(db_session):
    get_or_create_user(db_session, Identity(user_id=6, name="Bob", picture="/b.png"))
    user = get_or_create_user(db_session, Identity(user_id=6))
    assert (user.name, user.display_name) == ("Bob", "Bob")
    assert user.picture == "/b.png"
