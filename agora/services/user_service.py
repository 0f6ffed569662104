"""
agora.services.user_service — Member Display Rows
==================================================
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy.orm import Session

from agora.database.models import User
from agora.engine.identity import Identity


def _refresh(user: User, identity: Identity) -> None:
    # name is never null: fall back to "user-<id>" until a real name arrives
    if identity.name or user.name is None:
        user.name = identity.display_name
        user.display_name = identity.name
    if identity.picture:
        user.picture = identity.picture
    user.role = identity.role.value
    user.online_at = datetime.now(UTC)


def get_or_create_user(session: Session, identity: Identity) -> User:
    """Fetch or insert the User row for *identity* and refresh its display data."""
    user = session.get(User, identity.user_id)
    if user is None:
        user = User(id=identity.user_id)
        _refresh(user, identity)
        session.add(user)
        session.flush()
    else:
        _refresh(user, identity)
    return user
