"""FastAPI application entry point."""

import asyncio
import json
import logging
import sys
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from starlette.middleware.base import BaseHTTPMiddleware

from possync.api.routes import api_router
from possync.core.config import settings
from possync.core.rate_limit import limiter
from possync.db.base import Base
from possync.db.session import SessionLocal, engine, ensure_sqlite_directory
from possync.services.pos.config_service import PosConfigurationService, PosConfigurationStore
from possync.services.pos.scheduled import SCHEDULED_TASK_NAME, run_scheduled_pos_sync
from possync.services.scheduler_service import scheduler

# Configure logging - use JSON format in production, human-readable in dev
root_logger = logging.getLogger()
root_logger.setLevel(getattr(logging, settings.log_level))
root_logger.handlers.clear()

if settings.debug:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
else:

    class JSONFormatter(logging.Formatter):
        def format(self, record):
            return json.dumps({
                "ts": self.formatTime(record, self.datefmt),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
                "module": record.module,
                "line": record.lineno,
            })

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())

root_logger.addHandler(handler)
logger = logging.getLogger(__name__)
request_logger = logging.getLogger("requests")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging all HTTP requests and responses."""

    async def dispatch(self, request: Request, call_next):
        # Skip logging for health checks and docs
        if request.url.path in ["/health", "/health/ready", "/docs", "/openapi.json"]:
            return await call_next(request)

        start_time = time.time()
        client_ip = request.client.host if request.client else "unknown"

        request_logger.info(f"Request: {request.method} {request.url.path} - Client: {client_ip}")

        try:
            response = await call_next(request)
            process_time = time.time() - start_time

            log_level = logging.WARNING if response.status_code >= 400 else logging.INFO
            request_logger.log(
                log_level,
                f"Response: {request.method} {request.url.path} - "
                f"Status: {response.status_code} - Time: {process_time:.3f}s - Client: {client_ip}"
            )
            return response
        except Exception as e:
            process_time = time.time() - start_time
            request_logger.error(
                f"Error: {request.method} {request.url.path} - "
                f"Exception: {str(e)} - Time: {process_time:.3f}s - Client: {client_ip}"
            )
            raise


def _bootstrap_pos_configuration():
    """Create the default POS configuration row. Never fails startup."""
    db = SessionLocal()
    try:
        PosConfigurationService(PosConfigurationStore(db)).create_default()
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting POS Sync Service")

    # Create tables if they don't exist (SQLite); other backends are provisioned externally
    if settings.database_url.startswith("sqlite"):
        ensure_sqlite_directory()
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created (SQLite mode)")

    _bootstrap_pos_configuration()

    scheduler_task = None
    if settings.pos_scheduler_enabled:
        scheduler.add_daily_task(
            SCHEDULED_TASK_NAME,
            run_scheduled_pos_sync,
            hour=settings.pos_sync_hour,
            minute=settings.pos_sync_minute,
            tz=settings.timezone,
        )
        scheduler_task = scheduler.start_background()
    else:
        logger.info("POS scheduler disabled")

    yield

    if scheduler_task is not None:
        scheduler.stop()
        try:
            await scheduler_task
        except asyncio.CancelledError:
            pass
        scheduler.remove_task(SCHEDULED_TASK_NAME)

    logger.info("Shutting down POS Sync Service")


app = FastAPI(
    title="POS Sync Service",
    description="Reconciles payment-terminal transactions into a local ledger",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# Rate limiting setup
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Request logging middleware
app.add_middleware(RequestLoggingMiddleware)

# CORS middleware - added last so it runs first (Starlette LIFO order)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "Origin", "X-Requested-With"],
    max_age=600,  # Cache preflight for 10 minutes
)

# Include API routes
app.include_router(api_router, prefix=settings.api_v1_prefix)


@app.get("/health")
def health_check():
    """Basic liveness check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}


@app.get("/health/ready")
def readiness_check():
    """Readiness probe with database connectivity and scheduler state."""
    checks = {"database": "unknown"}

    db = None
    try:
        db = SessionLocal()
        db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        checks["database"] = "unhealthy"
    finally:
        if db:
            db.close()

    return {
        "status": "ready" if checks["database"] == "healthy" else "degraded",
        "version": "1.0.0",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
        "scheduler": scheduler.get_status(),
    }
