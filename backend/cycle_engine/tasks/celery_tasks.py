"""Celery entry points for the scheduled jobs."""

import structlog

from cycle_engine.celery_app import RUN_JOB, celery_app
from cycle_engine.tasks.runner import JobRunner

logger = structlog.get_logger()

_runner = JobRunner()


def _queue_evaluation(cycle_id: int) -> None:
    logger.info("Cycle resolved on chain; queueing evaluation", cycle_id=cycle_id)
    run_job.delay("evaluate-slips")


_runner.on_cycle_resolved = _queue_evaluation


@celery_app.task(name=RUN_JOB)
def run_job(job_name: str) -> dict:
    """Run one scheduled job under its lock and deadline."""
    return _runner.run(job_name)
