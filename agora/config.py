"""
agora.config — YAML Configuration Loader
=========================================

Reads ``config.yaml`` for forum tuning values (content limits, edit-marker
policy, retry budget, reconciliation cadence).  Secrets and infrastructure
(``DATABASE_URL``, ``JWT_SECRET``) stay in the environment.

Usage::

    from agora.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.body_max_length)   # 1000
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from agora.constants import (
    ATTACHMENT_MAX_BYTES,
    BODY_MAX_LENGTH,
    EDIT_MARKER_MODES,
    TITLE_MAX_LENGTH,
)


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AgoraConfig:
    """Immutable configuration loaded from ``config.yaml``.

    Every field has a default so a bare ``AgoraConfig()`` is a valid
    development configuration.
    """

    community_name: str = "Agora"

    # Content limits (overflow is clipped, not rejected)
    title_max_length: int = TITLE_MAX_LENGTH
    body_max_length: int = BODY_MAX_LENGTH

    # Total attachment bytes accepted per thread/answer
    attachment_max_bytes: int = ATTACHMENT_MAX_BYTES

    # "content": edited marker follows real content changes
    # "legacy":  edited marker suppressed whenever a moderation flag is sent
    edit_marker: str = "content"

    # Bounded retry for lost races (like toggles, serialization failures)
    conflict_retry_attempts: int = 3

    # Background recount of counters; 0 disables the loop
    reconcile_interval_minutes: int = 60

    # Attachment storage
    upload_dir: str = "uploads"
    public_base_url: str = ""


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path | None = None) -> AgoraConfig:
    """Read *path* and return an :class:`AgoraConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.  Defaults to
        ``$AGORA_CONFIG`` or ``config.yaml`` in the working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    ValueError
        If a value is out of range.
    """
    config_path = Path(path or os.getenv("AGORA_CONFIG", "config.yaml"))
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = AgoraConfig()
    cfg = AgoraConfig(
        community_name=str(raw.get("community_name", defaults.community_name)),
        title_max_length=int(raw.get("title_max_length", defaults.title_max_length)),
        body_max_length=int(raw.get("body_max_length", defaults.body_max_length)),
        attachment_max_bytes=int(
            raw.get("attachment_max_bytes", defaults.attachment_max_bytes)
        ),
        edit_marker=str(raw.get("edit_marker", defaults.edit_marker)),
        conflict_retry_attempts=int(
            raw.get("conflict_retry_attempts", defaults.conflict_retry_attempts)
        ),
        reconcile_interval_minutes=int(
            raw.get("reconcile_interval_minutes", defaults.reconcile_interval_minutes)
        ),
        upload_dir=str(raw.get("upload_dir", defaults.upload_dir)),
        public_base_url=str(raw.get("public_base_url", defaults.public_base_url)),
    )
    validate_config(cfg)
    return cfg


def validate_config(cfg: AgoraConfig) -> None:
    """Raise ``ValueError`` if *cfg* holds an unusable value."""
    if cfg.edit_marker not in EDIT_MARKER_MODES:
        raise ValueError(
            f"edit_marker must be one of {sorted(EDIT_MARKER_MODES)}, "
            f"got {cfg.edit_marker!r}"
        )
    if cfg.title_max_length < 1 or cfg.body_max_length < 1:
        raise ValueError("title_max_length and body_max_length must be positive")
    if cfg.conflict_retry_attempts < 1:
        raise ValueError("conflict_retry_attempts must be at least 1")
    if cfg.reconcile_interval_minutes < 0:
        raise ValueError("reconcile_interval_minutes must not be negative")
