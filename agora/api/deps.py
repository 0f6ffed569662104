"""
agora.api.deps — FastAPI dependency injection
==============================================

Bearer tokens are HS256 JWTs issued by the community's login service with
the claims ``sub`` (user id), ``role`` and ``username``.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine
from sqlalchemy.orm import Session

from agora.config import AgoraConfig, load_config
from agora.database.engine import create_db_engine
from agora.engine.identity import Identity, Role
from agora.engine.notify import CallbackEmitter, EventEmitter, PgNotifyEmitter
from agora.services.content_service import ContentStore
from agora.services.upload_service import AttachmentResolver

_WEAK_SECRETS = frozenset({
    "agora-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> AgoraConfig:
    return load_config()


@lru_cache(maxsize=1)
def get_emitter() -> EventEmitter:
    """PostgreSQL NOTIFY in production, in-process callbacks elsewhere."""
    engine = get_engine()
    if engine.dialect.name == "postgresql":
        return PgNotifyEmitter(engine)
    return CallbackEmitter()


def get_store(
    engine: Annotated[Engine, Depends(get_engine)],
    cfg: Annotated[AgoraConfig, Depends(get_config)],
    emitter: Annotated[EventEmitter, Depends(get_emitter)],
) -> ContentStore:
    return ContentStore(engine, emitter=emitter, config=cfg)


def get_resolver(cfg: Annotated[AgoraConfig, Depends(get_config)]) -> AttachmentResolver:
    return AttachmentResolver(
        Path(cfg.upload_dir),
        max_total_bytes=cfg.attachment_max_bytes,
        base_url=cfg.public_base_url,
    )


def get_session(engine: Annotated[Engine, Depends(get_engine)]):
    with Session(engine) as session:
        yield session


def _decode(authorization: str | None) -> Identity:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
        user_id = int(payload["sub"])
    except (InvalidTokenError, KeyError, TypeError, ValueError):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    return Identity(
        user_id=user_id,
        role=Role.parse(payload.get("role")),
        name=payload.get("username"),
        picture=payload.get("picture"),
    )


def get_identity(
    authorization: Annotated[str | None, Header()] = None,
) -> Identity:
    """Validate the bearer JWT and return the caller.  Raises 401 if invalid."""
    return _decode(authorization)


def create_token(identity: Identity) -> str:
    """Sign a bearer token for *identity* (login service and tests)."""
    return jwt.encode(
        {"sub": str(identity.user_id), "role": identity.role.value, "username": identity.name},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )
