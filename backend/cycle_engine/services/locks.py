"""Database-backed advisory locks shared by every scheduler replica.

Lock names are ``job:<name>`` or ``cycle:<id>``. A job lock is always taken
before a cycle lock, never the other way round.
"""

import os
import socket
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta
from uuid import uuid4

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cycle_engine.config import settings
from cycle_engine.database import async_session_maker, insert_for
from cycle_engine.errors import LockNotAcquired
from cycle_engine.models import JobLock
from cycle_engine.timeutil import utcnow

logger = structlog.get_logger()


def holder_id() -> str:
    return f"{socket.gethostname()}-{os.getpid()}"


def job_lock_name(job_name: str) -> str:
    return f"job:{job_name}"


def cycle_lock_name(cycle_id: int) -> str:
    return f"cycle:{cycle_id}"


class AdvisoryLocks:
    """At-most-one-holder named locks with expiry."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession] = async_session_maker,
        holder: str | None = None,
    ):
        self.session_maker = session_maker
        self.holder = holder or holder_id()

    async def acquire(self, name: str, ttl_seconds: int | None = None) -> str | None:
        """Take the lock; returns an execution id, or None if someone holds it."""
        ttl = ttl_seconds or settings.job_lock_ttl_seconds
        execution_id = str(uuid4())
        now = utcnow()
        async with self.session_maker() as session:
            async with session.begin():
                await session.execute(
                    delete(JobLock).where(JobLock.lock_name == name, JobLock.expires_at < now)
                )
                insert = insert_for(session)
                stmt = (
                    insert(JobLock)
                    .values(
                        lock_name=name,
                        locked_by=self.holder,
                        execution_id=execution_id,
                        locked_at=now,
                        expires_at=now + timedelta(seconds=ttl),
                    )
                    .on_conflict_do_nothing(index_elements=["lock_name"])
                    .returning(JobLock.lock_name)
                )
                acquired = (await session.execute(stmt)).first() is not None

        if not acquired:
            logger.info("Lock held elsewhere", lock=name)
            return None
        logger.debug("Lock acquired", lock=name, execution_id=execution_id, holder=self.holder)
        return execution_id

    async def release(self, name: str, execution_id: str) -> bool:
        """Release only if we are still the holder."""
        async with self.session_maker() as session:
            async with session.begin():
                result = await session.execute(
                    delete(JobLock).where(
                        JobLock.lock_name == name,
                        JobLock.execution_id == execution_id,
                    )
                )
        released = result.rowcount > 0
        if not released:
            logger.warning("Lock was no longer ours at release", lock=name, execution_id=execution_id)
        return released

    async def cleanup_expired(self) -> int:
        async with self.session_maker() as session:
            async with session.begin():
                result = await session.execute(delete(JobLock).where(JobLock.expires_at < utcnow()))
        if result.rowcount:
            logger.info("Removed stale locks", count=result.rowcount)
        return result.rowcount

    @asynccontextmanager
    async def hold(self, name: str, ttl_seconds: int | None = None) -> AsyncIterator[str]:
        execution_id = await self.acquire(name, ttl_seconds)
        if execution_id is None:
            raise LockNotAcquired(name)
        try:
            yield execution_id
        finally:
            await self.release(name, execution_id)
