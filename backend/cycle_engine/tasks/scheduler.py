#!/usr/bin/env python3
"""
Scheduler for the daily cycle jobs.

This script runs scheduled tasks:
1. Select matches (daily, 00:01 UTC)
2. Open cycle (daily, 00:05 UTC)
3. Poll fixture state (every 5 min)
4. Fetch results (every 5 min)
5. Attempt resolution (every 5 min)
6. Evaluate slips (every 5 min, and whenever a CycleResolved event is indexed)
7. Reconcile with the chain (every 10 min, also clears stale locks)
8. Index contract events (every minute)

Can be run as a standalone process, from the API process, or job by job
from cron.
"""

import signal
import sys
import threading
from concurrent.futures import Future, ThreadPoolExecutor

import schedule
import structlog

from cycle_engine.config import settings
from cycle_engine.logging_setup import configure_logging
from cycle_engine.tasks.runner import JobRunner
from cycle_engine.timeutil import ensure_utc_process

logger = structlog.get_logger()

COMMANDS = {
    "select": "select-matches",
    "open": "open-cycle",
    "poll": "poll-fixture-state",
    "results": "fetch-results",
    "resolve": "attempt-resolution",
    "evaluate": "evaluate-slips",
    "reconcile": "reconcile-chain",
    "index": "index-events",
}

# Order for a one-shot run: chain state first, resolution after fresh results
RUN_ALL_ORDER = (
    "index-events",
    "reconcile-chain",
    "select-matches",
    "open-cycle",
    "poll-fixture-state",
    "fetch-results",
    "attempt-resolution",
    "evaluate-slips",
)


class Scheduler:
    """``schedule`` loop feeding a thread pool; one event loop per job run."""

    def __init__(self, runner: JobRunner | None = None, workers: int | None = None):
        self.runner = runner or JobRunner(on_cycle_resolved=self._cycle_resolved)
        self.executor = ThreadPoolExecutor(
            max_workers=workers or settings.scheduler_workers,
            thread_name_prefix="job",
        )
        self.scheduler = schedule.Scheduler()
        self._stop = threading.Event()
        self._in_flight: set[Future] = set()
        self._lock = threading.Lock()

    def _cycle_resolved(self, cycle_id: int) -> None:
        logger.info("Cycle resolved on chain; queueing evaluation", cycle_id=cycle_id)
        self.submit("evaluate-slips")

    def submit(self, job_name: str) -> Future | None:
        if self._stop.is_set():
            return None
        future = self.executor.submit(self.runner.run, job_name)
        with self._lock:
            self._in_flight.add(future)
        future.add_done_callback(lambda f, name=job_name: self._done(name, f))
        return future

    def _done(self, job_name: str, future: Future) -> None:
        with self._lock:
            self._in_flight.discard(future)
        if future.exception() is not None:
            logger.error("Job raised out of the runner", job=job_name, error=str(future.exception()))

    def configure(self) -> None:
        every = self.scheduler.every
        every().day.at(settings.select_matches_time_utc).do(self.submit, "select-matches")
        every().day.at(settings.open_cycle_time_utc).do(self.submit, "open-cycle")
        every(5).minutes.do(self.submit, "poll-fixture-state")
        every(5).minutes.do(self.submit, "fetch-results")
        every(5).minutes.do(self.submit, "attempt-resolution")
        every(5).minutes.do(self.submit, "evaluate-slips")
        every(10).minutes.do(self.submit, "reconcile-chain")
        every(1).minutes.do(self.submit, "index-events")

        logger.info(
            "Scheduler configured",
            select_matches=settings.select_matches_time_utc,
            open_cycle=settings.open_cycle_time_utc,
            jobs=len(self.scheduler.get_jobs()),
        )

    def stop(self, *_args) -> None:
        if not self._stop.is_set():
            logger.info("Stop requested; no new jobs will be scheduled")
        self._stop.set()

    def run_forever(self, install_signals: bool = True) -> int:
        if install_signals:
            signal.signal(signal.SIGINT, self.stop)
            signal.signal(signal.SIGTERM, self.stop)

        self.configure()
        # Catch up on chain state before the first tick
        self.submit("index-events")
        self.submit("reconcile-chain")

        while not self._stop.is_set():
            self.scheduler.run_pending()
            self._stop.wait(1)

        with self._lock:
            pending = len(self._in_flight)
        logger.info("Draining in-flight jobs", count=pending)
        self.executor.shutdown(wait=True)
        logger.info("Scheduler stopped")
        return 0


_scheduler: Scheduler | None = None


def start_scheduler(install_signals: bool = True) -> int:
    """Start the scheduler loop."""
    global _scheduler
    ensure_utc_process()
    _scheduler = Scheduler()
    return _scheduler.run_forever(install_signals=install_signals)


def stop_scheduler() -> None:
    if _scheduler is not None:
        _scheduler.stop()


def run_job(job_name: str) -> dict:
    """Run a single job in the foreground."""
    logger.info("Running job", job=job_name)
    result = JobRunner().run(job_name)
    logger.info("Job complete", job=job_name, status=result.get("status"))
    return result


def run_all() -> dict:
    """Run all jobs once, in dependency order."""
    return {job_name: run_job(job_name) for job_name in RUN_ALL_ORDER}


def main(argv: list[str]) -> int:
    configure_logging()
    ensure_utc_process()
    command = argv[1] if len(argv) > 1 else "all"
    if command == "daemon":
        return start_scheduler()
    if command == "all":
        results = run_all()
        return 0 if all(r.get("status") != "failed" for r in results.values()) else 1
    if command in COMMANDS:
        result = run_job(COMMANDS[command])
        return 1 if result.get("status") in ("failed", "timeout") else 0

    print(f"Unknown command: {command}")
    print(f"Usage: python -m cycle_engine.tasks.scheduler [{'|'.join([*COMMANDS, 'all', 'daemon'])}]")
    return 2


if __name__ == "__main__":
    sys.exit(main(sys.argv))
