"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of agora.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from agora.database.engine import init_db  # noqa: E402
from agora.engine.identity import Identity, Role  # noqa: E402
from agora.services.content_service import ContentStore  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so autoincrement works on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Agora tables.

    Uses StaticPool so every thread (``run_db``, the TestClient's worker
    threads) shares the same in-memory database.
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    return engine


@pytest.fixture
def file_engine(tmp_path) -> Engine:
    """SQLite file database for tests that really run writers in parallel.

    Each thread gets its own connection; the busy timeout makes concurrent
    writers queue instead of failing.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'forum.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


# ---------------------------------------------------------------------------
# Identities & store
# ---------------------------------------------------------------------------
@pytest.fixture
def moderator() -> Identity:
    return Identity(user_id=1, role=Role.MODERATOR, name="Mod")


@pytest.fixture
def member() -> Identity:
    return Identity(user_id=2, role=Role.MEMBER, name="Alice")


@pytest.fixture
def other_member() -> Identity:
    return Identity(user_id=3, role=Role.MEMBER, name="Bob")


class TickClock:
    """Deterministic clock: every call is one second after the previous one."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture
def store(db_engine: Engine) -> ContentStore:
    return ContentStore(db_engine, clock=TickClock())



@pytest.fixture
def make_store(db_engine: Engine):
    """Factory for stores with a custom emitter or config."""
    def _make(**kwargs) -> ContentStore:
        kwargs.setdefault("clock", TickClock())
        return ContentStore(db_engine, **kwargs)
    return _make
