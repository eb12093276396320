"""FastAPI application entry point."""

import threading
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

import structlog
from fastapi import FastAPI

from cycle_engine.api import health
from cycle_engine.config import settings
from cycle_engine.database import init_db
from cycle_engine.logging_setup import configure_logging
from cycle_engine.timeutil import ensure_utc_process

configure_logging()

logger = structlog.get_logger()

# Global scheduler thread reference
_scheduler_thread = None


def _run_scheduler():
    """Run the scheduler in a background thread."""
    from cycle_engine.tasks.scheduler import start_scheduler

    logger.info("Starting scheduler daemon in background thread")
    start_scheduler(install_signals=False)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager."""
    global _scheduler_thread

    # Startup
    ensure_utc_process()
    logger.info("Starting cycle engine API", environment=settings.environment)
    await init_db()

    # Start scheduler in background thread (only in production)
    if settings.is_production:
        _scheduler_thread = threading.Thread(target=_run_scheduler, name="scheduler", daemon=True)
        _scheduler_thread.start()
        logger.info("Scheduler daemon thread started")

    yield

    # Shutdown
    logger.info("Shutting down cycle engine API")
    if _scheduler_thread is not None:
        from cycle_engine.tasks.scheduler import stop_scheduler

        stop_scheduler()
        _scheduler_thread.join(timeout=settings.job_deadline_seconds)


app = FastAPI(
    title="Cycle Engine",
    description="Daily prediction cycle lifecycle engine",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

app.include_router(health.router, tags=["Health"])


@app.get("/")
async def root() -> dict:
    """Root endpoint."""
    return {
        "name": "Cycle Engine",
        "version": "0.1.0",
        "docs": "/docs",
    }
