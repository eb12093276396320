"""Persist fatal job outcomes where operators and downstream APIs can see them."""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cycle_engine.database import async_session_maker
from cycle_engine.errors import ChainRevertError, InvariantViolation
from cycle_engine.models import HealthReport, SyncIssue

logger = structlog.get_logger()


def jsonable(value):
    if isinstance(value, dict):
        return {str(k): jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [jsonable(v) for v in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


async def record_health_report(
    job_name: str,
    error: Exception,
    cycle_id: int | None = None,
    session_maker: async_sessionmaker[AsyncSession] = async_session_maker,
) -> None:
    if isinstance(error, InvariantViolation):
        kind, details = error.kind, error.details
    elif isinstance(error, ChainRevertError):
        kind, details = f"revert:{error.kind.value}", {"reason": error.reason, "tx_hash": error.tx_hash}
    else:
        kind, details = error.__class__.__name__, {}

    async with session_maker() as session:
        async with session.begin():
            session.add(HealthReport(
                job_name=job_name,
                kind=kind,
                cycle_id=cycle_id if cycle_id is not None else details.get("cycle_id"),
                message=str(error),
                details=jsonable(details),
            ))
    logger.error("Recorded health report", job=job_name, kind=kind, cycle_id=cycle_id, error=str(error))


async def record_sync_issue(
    kind: str,
    chain_cycle_id: int | None,
    db_cycle_id: int | None,
    details: dict | None = None,
    session_maker: async_sessionmaker[AsyncSession] = async_session_maker,
) -> None:
    async with session_maker() as session:
        async with session.begin():
            session.add(SyncIssue(
                kind=kind,
                chain_cycle_id=chain_cycle_id,
                db_cycle_id=db_cycle_id,
                details=jsonable(details or {}),
            ))
    logger.error(
        "Recorded sync issue",
        kind=kind,
        chain_cycle_id=chain_cycle_id,
        db_cycle_id=db_cycle_id,
    )
