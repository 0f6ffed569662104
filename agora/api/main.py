"""
agora.api.main — FastAPI application entry point
=================================================

Run with::

    uvicorn agora.api.main:app --reload --port 8000
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.staticfiles import StaticFiles

load_dotenv()

from agora.api.deps import get_config, get_engine  # noqa: E402
from agora.api.routes.admin import router as admin_router  # noqa: E402
from agora.api.routes.answers import router as answers_router  # noqa: E402
from agora.api.routes.boards import router as boards_router  # noqa: E402
from agora.api.routes.notifications import router as notifications_router  # noqa: E402
from agora.api.routes.threads import router as threads_router  # noqa: E402
from agora.database.engine import init_db, run_db  # noqa: E402
from agora.engine.errors import ForumError  # noqa: E402
from agora.services.reconciliation_service import reconcile_aggregates  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


async def _reconcile_loop(interval_minutes: int) -> None:
    """Recount aggregates every *interval_minutes* until cancelled."""
    while True:
        await asyncio.sleep(interval_minutes * 60)
        try:
            await run_db(reconcile_aggregates, get_engine())
        except Exception:
            logger.exception("Periodic aggregate reconciliation failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle: warm the DB engine, start reconciliation."""
    cfg = get_config()
    Path(cfg.upload_dir).mkdir(parents=True, exist_ok=True)

    # Serve uploaded attachments
    if not any(getattr(route, "name", None) == "uploads" for route in app.routes):
        app.mount(
            "/api/uploads",
            StaticFiles(directory=cfg.upload_dir),
            name="uploads",
        )

    engine = get_engine()
    # PostgreSQL schemas come from Alembic; SQLite dev databases are created here
    if engine.dialect.name == "sqlite":
        init_db(engine)
    task = None
    if cfg.reconcile_interval_minutes > 0:
        task = asyncio.create_task(_reconcile_loop(cfg.reconcile_interval_minutes))
    logger.info(
        "%s API started (engine ready: %s)",
        cfg.community_name, engine.url.database,
    )
    yield
    if task is not None:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
    logger.info("Agora API shutting down")


app = FastAPI(
    title="Agora Forum API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ForumError)
async def forum_error_handler(request: Request, exc: ForumError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Mount routers
app.include_router(boards_router, prefix="/api")
app.include_router(threads_router, prefix="/api")
app.include_router(answers_router, prefix="/api")
app.include_router(notifications_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}

