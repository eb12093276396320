"""Health check endpoints."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cycle_engine.database import get_db
from cycle_engine.models import Cycle, HealthReport, JobExecution, SyncIssue
from cycle_engine.timeutil import as_utc

router = APIRouter()

# Expected interval per job in minutes; a job is overdue after twice that
JOB_INTERVALS = {
    "select-matches": 1440,
    "open-cycle": 1440,
    "poll-fixture-state": 5,
    "fetch-results": 5,
    "attempt-resolution": 5,
    "evaluate-slips": 5,
    "reconcile-chain": 10,
    "index-events": 1,
}


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)) -> dict:
    """
    Health check endpoint for load balancers and monitoring.

    Checks database connectivity and reports the latest cycle and any
    recent sync issues or health reports.
    """
    checks = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {},
    }

    # Database check
    try:
        await db.execute(text("SELECT 1"))
        checks["checks"]["database"] = "ok"
    except SQLAlchemyError as e:
        checks["checks"]["database"] = f"error: {str(e)}"
        checks["status"] = "unhealthy"
        return checks

    latest = await db.scalar(select(Cycle).order_by(Cycle.cycle_id.desc()).limit(1))
    checks["checks"]["latest_cycle"] = (
        {"cycle_id": latest.cycle_id, "status": latest.status, "is_resolved": latest.is_resolved}
        if latest
        else None
    )

    issues = await db.scalar(select(func.count()).select_from(SyncIssue))
    reports = await db.scalar(select(func.count()).select_from(HealthReport))
    checks["checks"]["sync_issues"] = issues
    checks["checks"]["health_reports"] = reports
    if issues:
        checks["status"] = "degraded"

    return checks


@router.get("/ready")
async def readiness_check() -> dict:
    """Report that the service is ready to take traffic."""
    return {"status": "ready"}


@router.get("/scheduler")
async def scheduler_status(db: AsyncSession = Depends(get_db)) -> dict:
    """
    Scheduler health endpoint - shows the last run of every job.

    Reads the execution log since the scheduler may run in another process.
    """
    checks = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "tasks": {},
        "overdue": [],
    }
    now = datetime.now(timezone.utc)

    for job_name, interval in JOB_INTERVALS.items():
        last = await db.scalar(
            select(JobExecution)
            .where(JobExecution.job_name == job_name)
            .order_by(JobExecution.started_at.desc())
            .limit(1)
        )
        if last is None:
            checks["tasks"][job_name] = {"last_run": None, "status": "no_data"}
            continue

        started_at = as_utc(last.started_at)
        minutes_ago = (now - started_at).total_seconds() / 60
        overdue = minutes_ago > interval * 2
        checks["tasks"][job_name] = {
            "last_run": started_at.isoformat(),
            "minutes_ago": round(minutes_ago, 1),
            "last_status": last.status,
            "duration_ms": last.duration_ms,
            "status": "overdue" if overdue else "healthy",
        }
        if overdue:
            checks["overdue"].append(job_name)

    if checks["overdue"]:
        checks["status"] = "degraded"

    return checks
