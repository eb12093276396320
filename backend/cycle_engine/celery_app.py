"""Celery application configuration."""

from celery import Celery
from celery.schedules import crontab

from cycle_engine.config import settings

# Create Celery app
celery_app = Celery(
    "cycle_engine",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["cycle_engine.tasks.celery_tasks"],
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=settings.job_deadline_seconds + settings.watchdog_grace_seconds,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
)


def _daily(hhmm: str) -> crontab:
    hour, minute = hhmm.split(":")
    return crontab(minute=int(minute), hour=int(hour))


RUN_JOB = "cycle_engine.tasks.celery_tasks.run_job"

# Beat schedule for periodic tasks; the job locks keep beat and the daemon
# from running the same job twice
celery_app.conf.beat_schedule = {
    "select-matches": {"task": RUN_JOB, "schedule": _daily(settings.select_matches_time_utc), "args": ("select-matches",)},
    "open-cycle": {"task": RUN_JOB, "schedule": _daily(settings.open_cycle_time_utc), "args": ("open-cycle",)},
    "poll-fixture-state": {"task": RUN_JOB, "schedule": crontab(minute="*/5"), "args": ("poll-fixture-state",)},
    "fetch-results": {"task": RUN_JOB, "schedule": crontab(minute="*/5"), "args": ("fetch-results",)},
    "attempt-resolution": {"task": RUN_JOB, "schedule": crontab(minute="*/5"), "args": ("attempt-resolution",)},
    "evaluate-slips": {"task": RUN_JOB, "schedule": crontab(minute="*/5"), "args": ("evaluate-slips",)},
    "reconcile-chain": {"task": RUN_JOB, "schedule": crontab(minute="*/10"), "args": ("reconcile-chain",)},
    "index-events": {"task": RUN_JOB, "schedule": crontab(minute="*"), "args": ("index-events",)},
}
