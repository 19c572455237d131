"""
devkit.api.main — FastAPI application entry point
==================================================

Run with::

    uvicorn devkit.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from devkit.api.deps import get_dispatcher, get_engine  # noqa: E402
from devkit.api.routes.admin import router as admin_router  # noqa: E402
from devkit.api.routes.badges import router as badges_router  # noqa: E402
from devkit.api.routes.notifications import router as notifications_router  # noqa: E402
from devkit.errors import DevKitError  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env.

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
    """Startup/shutdown lifecycle — warm the DB engine, drain notifications."""
    engine = get_engine()
    logger.info("DevKit API started — engine ready (%s)", engine.url.database)
    yield
    get_dispatcher().shutdown(wait=True)
    logger.info("DevKit API shutting down")


app = FastAPI(
    title="DevKit Achievements API",
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


@app.exception_handler(DevKitError)
async def devkit_error_handler(request: Request, exc: DevKitError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", exc.code, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Mount routers
app.include_router(badges_router, prefix="/api")
app.include_router(admin_router, prefix="/api")
app.include_router(notifications_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
