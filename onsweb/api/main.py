"""
onsweb.api.main — FastAPI application entry point
===================================================

Run with::

    uvicorn onsweb.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from onsweb import __version__  # noqa: E402
from onsweb.api.auth import router as auth_router  # noqa: E402
from onsweb.api.deps import get_config, get_engine, get_storage  # noqa: E402
from onsweb.api.responses import install_exception_handlers, ok  # noqa: E402
from onsweb.api.routes.content import router as content_router  # noqa: E402
from onsweb.api.routes.events import router as events_router  # noqa: E402
from onsweb.api.routes.media import router as media_router  # noqa: E402
from onsweb.database.engine import init_db  # noqa: E402
from onsweb.services.storage import ObjectStorage  # noqa: E402

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
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


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle: create tables and seed the admin."""
    engine = get_engine()
    init_db(engine)
    cfg = get_config()
    logger.info(
        "%s API started (engine %s, frontend %s)",
        cfg.community_name, engine.url.database, cfg.frontend_url,
    )
    yield
    logger.info("%s API shutting down", cfg.community_name)


app = FastAPI(
    title="ONS Community API",
    version=__version__,
    lifespan=lifespan,
)

# CORS: the frontend sends cookies, so origins must be explicit
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_exception_handlers(app)

# Mount routers
app.include_router(auth_router, prefix="/api")
app.include_router(content_router, prefix="/api")
app.include_router(events_router, prefix="/api")
app.include_router(media_router, prefix="/api")


@app.get("/api/health")
def health(storage: ObjectStorage = Depends(get_storage)):
    return ok({
        "status": "ok",
        "version": __version__,
        "storage_configured": storage.is_configured,
    })
