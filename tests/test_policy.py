"""
tests/test_policy.py — Authorization Policy Tests
==================================================
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from agora.engine.errors import Unauthorized
from agora.engine.identity import Identity, Role
from agora.engine.policy import Action, can_perform, require

MEMBER = Identity(user_id=10, role=Role.MEMBER)
MODERATOR = Identity(user_id=20, role=Role.MODERATOR)
ADMIN = Identity(user_id=30, role=Role.ADMIN)


@pytest.mark.parametrize("action", [
    Action.CREATE_BOARD,
    Action.EDIT_BOARD,
    Action.DELETE_BOARD,
    Action.MODERATE_THREAD,
    Action.DELETE_THREAD,
    Action.DELETE_ANSWER,
    Action.RECONCILE,
])
def test_moderator_only_actions(action):
    assert can_perform(action, MODERATOR)
    assert can_perform(action, ADMIN)
    assert not can_perform(action, MEMBER)


@pytest.mark.parametrize("action", [Action.EDIT_THREAD, Action.EDIT_ANSWER])
def test_author_only_actions(action):
    own = SimpleNamespace(author_id=MEMBER.user_id)
    assert can_perform(action, MEMBER, own)
    assert not can_perform(action, MODERATOR, own)
    assert not can_perform(action, MEMBER, None)


def test_closed_thread_accepts_only_moderator_answers():
    closed = SimpleNamespace(closed=True)
    open_ = SimpleNamespace(closed=False)
    assert can_perform(Action.CREATE_ANSWER, MEMBER, open_)
    assert not can_perform(Action.CREATE_ANSWER, MEMBER, closed)
    assert can_perform(Action.CREATE_ANSWER, MODERATOR, closed)


def test_anyone_authenticated_may_post_and_like():
    assert can_perform(Action.CREATE_THREAD, MEMBER)
    assert can_perform(Action.LIKE, MEMBER)


def test_anonymous_may_do_nothing():
    for action in Action:
        assert not can_perform(action, None)


def test_require_raises_unauthorized():
    with pytest.raises(Unauthorized):
        require(Action.DELETE_BOARD, MEMBER)
    require(Action.DELETE_BOARD, ADMIN)


def test_role_parse_defaults_to_member():
    assert Role.parse("Moderator") is Role.MODERATOR
    assert Role.parse("ADMIN") is Role.ADMIN
    assert Role.parse("superuser") is Role.MEMBER
    assert Role.parse(None) is Role.MEMBER
