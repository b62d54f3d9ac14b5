"""
backend/app/main.py

Purpose:
    FastAPI application bootstrap, middleware/router wiring, scheduler lifecycle
    (session reaper), startup admin seeding and the dashboard socket manager.

Dependencies:
    - app.database
    - app.services.session_service
    - app.services.websocket_manager
"""

import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from bson.errors import InvalidId
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import ConnectionFailure, DuplicateKeyError, OperationFailure

from app.config import settings
import app.database as _db
from app.database import connect_db, close_db
from app.middleware.logging import StructuredLoggingMiddleware, setup_logging

logger = logging.getLogger("intrusion")
scheduler = AsyncIOScheduler()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await connect_db()
    from app.seed import ensure_startup_admin
    from app.services.audit_service import drain_pending_writes
    from app.services.session_service import session_registry
    from app.services.websocket_manager import websocket_manager
    from app.workers.session_reaper import reap_idle_sessions

    await ensure_startup_admin()

    scheduler.add_job(
        reap_idle_sessions,
        "interval",
        id="session_reaper",
        seconds=settings.SESSION_REAPER_INTERVAL_SECONDS,
        replace_existing=True,
    )
    scheduler.start()
    await websocket_manager.start()
    logger.info("Background scheduler started")

    yield

    if scheduler.running:
        scheduler.shutdown(wait=False)
    await session_registry.close_all()
    await drain_pending_writes()
    await websocket_manager.stop()
    await close_db()


app = FastAPI(
    title="Intrusion Watch",
    description="Role-based security monitoring dashboard",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type"],
    expose_headers=["Content-Disposition"],
)

# Structured logging
app.add_middleware(StructuredLoggingMiddleware)

# Routers
from app.routers.auth import router as auth_router
from app.routers.dashboard import router as dashboard_router
from app.routers.admin import router as admin_router
from app.routers.ws import router as ws_router

app.include_router(auth_router)
app.include_router(dashboard_router)
app.include_router(admin_router)
app.include_router(ws_router)


@app.exception_handler(InvalidId)
async def invalid_object_id_handler(request: Request, exc: InvalidId):
    return JSONResponse(status_code=400, content={"detail": "Invalid ID."})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Return clean validation errors without leaking internal field paths."""
    errors = []
    for err in exc.errors():
        loc = err.get("loc", ())
        # Strip the "body" / "query" prefix for cleaner messages
        field = ".".join(str(l) for l in loc[1:]) if len(loc) > 1 else str(loc[-1]) if loc else "unknown"
        message = str(err.get("msg", "Invalid value."))
        # pydantic prefixes messages raised from validators
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.append({"field": field, "message": message})
    detail = errors[0]["message"] if errors else "Validation error."
    return JSONResponse(status_code=422, content={"detail": detail, "errors": errors})


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    return JSONResponse(status_code=409, content={"detail": "Duplicate entry."})


@app.exception_handler(ConnectionFailure)
async def db_connection_handler(request: Request, exc: ConnectionFailure):
    # Also covers ServerSelectionTimeoutError
    logger.error("Database unreachable on %s %s: %s", request.method, request.url.path, type(exc).__name__)
    return JSONResponse(status_code=503, content={"detail": "Network error. Try again."})


@app.exception_handler(OperationFailure)
async def db_operation_handler(request: Request, exc: OperationFailure):
    logger.error("Database operation error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "An internal error occurred."})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Catch-all: log the real error, return a safe generic message."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "An internal error occurred."})


@app.get("/health")
async def health():
    """Health check -- verifies DB connection and live session counts."""
    from app.services.session_service import session_registry
    from app.services.websocket_manager import websocket_manager

    try:
        result = await _db.db.command("ping")
        db_ok = result.get("ok") == 1.0
    except Exception:
        db_ok = False

    return {
        "status": "healthy" if db_ok else "degraded",
        "db": "connected" if db_ok else "disconnected",
        "sessions": len(session_registry),
        "websocket": websocket_manager.stats()["active_connections"],
    }
