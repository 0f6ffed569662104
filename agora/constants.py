"""
agora.constants — Shared Constants & Helpers
=============================================

Single source of truth for content limits, sort keys and the slug helper.
Import from here instead of duplicating in services and routes.
"""

from __future__ import annotations

import re
import unicodedata

# ---------------------------------------------------------------------------
# Content limits
# ---------------------------------------------------------------------------
TITLE_MAX_LENGTH = 100
BODY_MAX_LENGTH = 1000
ATTACHMENT_MAX_BYTES = 24 * 1024 * 1024  # 24 MiB per thread/answer

EDIT_MARKER_MODES = frozenset({"content", "legacy"})


# ---------------------------------------------------------------------------
# Event kinds pushed to real-time subscribers
# ---------------------------------------------------------------------------
EVENT_NEW_THREAD = "newThread"
EVENT_NEW_ANSWER = "newAnswer"
EVENT_NEW_NOTIFICATION = "newNotification"

EVENT_KINDS = frozenset({EVENT_NEW_THREAD, EVENT_NEW_ANSWER, EVENT_NEW_NOTIFICATION})


# ---------------------------------------------------------------------------
# Sort keys accepted by the listing endpoints
# ---------------------------------------------------------------------------
BOARD_SORT_KEYS = ("position", "threadsCount", "answersCount", "newestThread", "newestAnswer")
THREAD_SORT_KEYS = ("createdAt", "answersCount", "newestAnswer")

# "popular" is the name the web client has always sent for threadsCount
BOARD_SORT_ALIASES = {"popular": "threadsCount"}


# ---------------------------------------------------------------------------
# Slug helper
# ---------------------------------------------------------------------------
_SLUG_STRIP = re.compile(r"[^\w\s-]")
_SLUG_DASH = re.compile(r"[-\s_]+")


def slugify(value: str) -> str:
    """Turn a board title into a URL-safe slug.

    ``"General Talk!"`` → ``"general-talk"``.  Non-ASCII letters are folded
    to their closest ASCII form; anything left that is not a word character
    is dropped.
    """
    folded = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    cleaned = _SLUG_STRIP.sub("", folded).strip().lower()
    return _SLUG_DASH.sub("-", cleaned).strip("-")
