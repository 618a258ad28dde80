"""FastAPI application for the WorkVoice Trust & Safety API.

Provides REST API endpoints wrapping the ``workvoice`` package for:
- Content report intake and moderator listings
- The review workflow (dismiss, remove, warn, escalate, suspend)
- Restriction checks and early lifts
- Moderation history, activity log and per-report audit trails
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

# Ensure the workvoice package is importable by adding the project root to sys.path.
_project_root = str(Path(__file__).resolve().parents[3])
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from web.backend.app.routers import auth, moderation
from workvoice import __version__
from workvoice.moderation.errors import (
    DependencyUnavailable,
    DuplicateReport,
    InvalidTransition,
    ModerationError,
    NotFound,
    Unauthorized,
    ValidationError,
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="WorkVoice Trust & Safety API",
    description=(
        "REST API for the WorkVoice moderation engine. "
        "Provides endpoints for reporting content, reviewing reports, "
        "enforcing strikes and restrictions, and exporting audit trails."
    ),
    version=__version__,
)

# ---------------------------------------------------------------------------
# CORS middleware (allow all origins for development)
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

_STATUS_FOR_ERROR: list[tuple[type[ModerationError], int]] = [
    (DuplicateReport, status.HTTP_409_CONFLICT),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (InvalidTransition, status.HTTP_409_CONFLICT),
    (Unauthorized, status.HTTP_403_FORBIDDEN),
    (DependencyUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
]


def status_for(error: ModerationError) -> int:
    for error_type, code in _STATUS_FOR_ERROR:
        if isinstance(error, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@app.exception_handler(ModerationError)
async def moderation_error_handler(request: Request, exc: ModerationError) -> JSONResponse:
    code = status_for(exc)
    if code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(
        status_code=code,
        content={"detail": str(exc), "error": type(exc).__name__},
        headers=headers,
    )


# ---------------------------------------------------------------------------
# Include routers
# ---------------------------------------------------------------------------
app.include_router(auth.router)
app.include_router(moderation.router)


# ---------------------------------------------------------------------------
# Root and health-check endpoints
# ---------------------------------------------------------------------------


@app.get("/", tags=["meta"])
async def root():
    """Return basic API information."""
    return {
        "name": "WorkVoice Trust & Safety API",
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


@app.get("/health", tags=["meta"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
