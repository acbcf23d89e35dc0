"""
gangledger.api.main — FastAPI application entry point
======================================================

Run with::

    uvicorn gangledger.api.main:app --port 8000
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

from gangledger.api.deps import get_engine  # noqa: E402
from gangledger.api.routes.admin import router as admin_router  # noqa: E402
from gangledger.api.routes.public import router as public_router  # noqa: E402
from gangledger.errors import (  # noqa: E402
    ConflictError,
    LedgerError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Most specific first; LedgerError is the catch-all.
_ERROR_STATUS: tuple[tuple[type[LedgerError], int], ...] = (
    (NotFoundError, 404),
    (ValidationError, 422),
    (ConflictError, 409),
    (StoreUnavailableError, 503),
    (LedgerError, 500),
)


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
    """Startup/shutdown lifecycle — warm the DB engine."""
    engine = app.dependency_overrides.get(get_engine, get_engine)()
    logger.info("GangLedger API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("GangLedger API shutting down")


app = FastAPI(
    title="GangLedger Dashboard API",
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

app.include_router(public_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """Map the ledger's error taxonomy onto HTTP status codes."""
    status_code = next(code for kind, code in _ERROR_STATUS if isinstance(exc, kind))
    if status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


@app.get("/api/health")
def health():
    return {"status": "ok"}
