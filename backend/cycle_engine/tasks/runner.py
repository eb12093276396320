"""Job execution: re-entry guard, advisory lock, deadline and execution log."""

import asyncio
import os
import threading
import time
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cycle_engine.config import settings
from cycle_engine.database import job_session_maker
from cycle_engine.errors import (
    ChainRevertError,
    InvariantViolation,
    LockNotAcquired,
    SyncIssueError,
    TransientError,
)
from cycle_engine.models import JobExecution
from cycle_engine.services.locks import AdvisoryLocks, holder_id, job_lock_name
from cycle_engine.services.reports import jsonable, record_health_report
from cycle_engine.tasks.jobs import JOBS, build_components
from cycle_engine.timeutil import utcnow

logger = structlog.get_logger()

EXECUTION_STATUSES = {"failed", "skipped", "timeout"}


def execution_status(result: dict) -> str:
    status = result.get("status")
    return status if status in EXECUTION_STATUSES else "completed"


class Watchdog:
    """Exits the process when a job overruns its deadline."""

    def __init__(self, grace_seconds: float | None = None, exit_fn: Callable[[int], None] = os._exit):
        self.grace_seconds = settings.watchdog_grace_seconds if grace_seconds is None else grace_seconds
        self.exit_fn = exit_fn

    def arm(self, job_name: str, deadline_seconds: float) -> threading.Timer:
        """Backstop for a job that blocks its event loop past the deadline."""
        timer = threading.Timer(deadline_seconds + self.grace_seconds, self.trip, args=(job_name,))
        timer.daemon = True
        timer.start()
        return timer

    def trip(self, job_name: str) -> None:
        logger.critical("Job overran its deadline; exiting", job=job_name)
        self.exit_fn(1)


class JobRunner:
    def __init__(
        self,
        session_scope: Callable[[], AbstractAsyncContextManager[async_sessionmaker[AsyncSession]]] = job_session_maker,
        components_factory: Callable = build_components,
        watchdog: Watchdog | None = None,
        on_cycle_resolved: Callable[[int], object] | None = None,
        holder: str | None = None,
    ):
        self.session_scope = session_scope
        self.components_factory = components_factory
        self.watchdog = watchdog or Watchdog()
        self.on_cycle_resolved = on_cycle_resolved
        self.holder = holder or holder_id()
        self._running: set[str] = set()
        self._guard = threading.Lock()

    def run(self, job_name: str) -> dict:
        """Run a job to completion on a fresh event loop in the calling thread."""
        with self._guard:
            if job_name in self._running:
                logger.info("Job already running in this process", job=job_name)
                return {"status": "skipped", "reason": "already_running"}
            self._running.add(job_name)
        try:
            return asyncio.run(self.run_async(job_name))
        finally:
            with self._guard:
                self._running.discard(job_name)

    async def run_async(self, job_name: str) -> dict:
        spec = JOBS[job_name]
        async with self.session_scope() as session_maker:
            locks = AdvisoryLocks(session_maker, self.holder)
            lock_name = job_lock_name(job_name)
            execution_id = await locks.acquire(lock_name, max(settings.job_lock_ttl_seconds, spec.deadline_seconds))
            if execution_id is None:
                return {"status": "skipped", "reason": "locked"}

            async with session_maker() as session:
                async with session.begin():
                    session.add(JobExecution(job_name=job_name, execution_id=execution_id, status="started"))

            logger.info("Job started", job=job_name, execution_id=execution_id)
            started = time.monotonic()
            timer = self.watchdog.arm(job_name, spec.deadline_seconds)
            timed_out = False
            error = None
            try:
                components = self.components_factory(
                    session_maker,
                    on_cycle_resolved=self.on_cycle_resolved,
                    holder=self.holder,
                )
                result = await asyncio.wait_for(spec.func(components), timeout=spec.deadline_seconds)
            except asyncio.TimeoutError:
                timed_out = True
                result = {"status": "timeout", "deadline_seconds": spec.deadline_seconds}
            except (InvariantViolation, ChainRevertError) as e:
                await record_health_report(job_name, e, session_maker=session_maker)
                error = str(e)
                result = {"status": "failed", "error": error}
            except SyncIssueError as e:
                error = str(e)
                result = {"status": "failed", "reason": "sync_issue", "error": error}
            except LockNotAcquired as e:
                result = {"status": "skipped", "reason": f"lock {e.lock_name} held"}
            except TransientError as e:
                logger.warning("Job hit a transient error", job=job_name, error=str(e))
                error = str(e)
                result = {"status": "failed", "error": error}
            except Exception as e:
                logger.exception("Job crashed", job=job_name)
                error = f"{e.__class__.__name__}: {e}"
                result = {"status": "failed", "error": error}
            finally:
                timer.cancel()

            duration_ms = int((time.monotonic() - started) * 1000)
            async with session_maker() as session:
                async with session.begin():
                    await session.execute(
                        update(JobExecution)
                        .where(JobExecution.execution_id == execution_id)
                        .values(
                            status=execution_status(result),
                            finished_at=utcnow(),
                            duration_ms=duration_ms,
                            result=jsonable(result),
                            error=error,
                        )
                    )
            await locks.release(lock_name, execution_id)

        logger.info("Job finished", job=job_name, duration_ms=duration_ms, **jsonable(result))
        if timed_out:
            self.watchdog.trip(job_name)
        return result
