"""
Agora — Discussion Forum Content Store
=======================================
Boards contain threads, threads contain answers.  Threads and answers carry
toggleable likes, an edit marker and optional attachments.  Agora keeps the
denormalized counters and "newest activity" timestamps of the hierarchy
consistent while items are created, edited, deleted and moderated.

Package layout::

    agora/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Limits, sort keys, slug helper
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # ORM models (boards, threads, answers, likes, …)
    ├── engine/
    │   ├── identity.py    # Caller identity + roles
    │   ├── policy.py      # can_perform() authorization policy
    │   ├── errors.py      # ForumError taxonomy
    │   └── notify.py      # Event emitters (callbacks, PG NOTIFY)
    ├── services/
    │   ├── content_service.py        # ContentStore mutations
    │   ├── aggregate_service.py      # Counter deltas + newest recompute
    │   ├── like_service.py           # Like/unlike toggle
    │   ├── query_service.py          # Read-only listings
    │   ├── reconciliation_service.py # Periodic recount
    │   ├── pagination.py             # Page windows
    │   ├── projections.py            # ORM → JSON-ready dicts
    │   ├── retry.py                  # Conflict retry policy
    │   └── upload_service.py         # Attachment storage
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT → Identity, engine, store
        └── routes/        # Boards, threads, answers, notifications, admin
"""

__version__ = "0.1.0"
