"""
Tests for job execution and the scheduler wiring.
"""

import asyncio
from contextlib import asynccontextmanager

import pytest
from sqlalchemy import select

from cycle_engine.errors import InvariantViolation
from cycle_engine.models import HealthReport, JobExecution
from cycle_engine.services.locks import AdvisoryLocks
from cycle_engine.tasks import jobs
from cycle_engine.tasks.runner import JobRunner, Watchdog, execution_status
from cycle_engine.tasks.scheduler import COMMANDS, RUN_ALL_ORDER, Scheduler, main


class RecordingWatchdog(Watchdog):
    def __init__(self):
        self.exits = []
        super().__init__(grace_seconds=60, exit_fn=self.exits.append)


def _runner(session_maker, watchdog=None) -> JobRunner:
    @asynccontextmanager
    async def scope():
        yield session_maker

    return JobRunner(
        session_scope=scope,
        components_factory=lambda session_maker, **kwargs: {"session_maker": session_maker},
        watchdog=watchdog or RecordingWatchdog(),
        holder="test-runner",
    )


def _install_job(monkeypatch, func, deadline=5):
    monkeypatch.setitem(jobs.JOBS, "index-events", jobs.JobSpec("index-events", func, deadline))


async def _executions(session_maker):
    async with session_maker() as session:
        return (await session.scalars(select(JobExecution))).all()


class TestExecutionStatus:
    def test_statuses(self):
        assert execution_status({"status": "failed"}) == "failed"
        assert execution_status({"status": "timeout"}) == "timeout"
        assert execution_status({"status": "resolved"}) == "completed"
        assert execution_status({}) == "completed"


class TestWatchdog:
    def test_trips_after_deadline(self):
        codes = []
        timer = Watchdog(grace_seconds=0, exit_fn=codes.append).arm("stuck-job", 0.01)
        timer.join(timeout=2)
        assert codes == [1]

    def test_cancelled_timer_never_trips(self):
        codes = []
        timer = Watchdog(grace_seconds=0, exit_fn=codes.append).arm("quick-job", 0.2)
        timer.cancel()
        timer.join(timeout=2)
        assert codes == []


class TestJobRunner:
    @pytest.mark.asyncio
    async def test_completed_run_is_logged(self, session_maker, monkeypatch):
        async def job(components):
            return {"status": "completed", "processed": 3}

        _install_job(monkeypatch, job)
        result = await _runner(session_maker).run_async("index-events")
        assert result == {"status": "completed", "processed": 3}

        [execution] = await _executions(session_maker)
        assert execution.status == "completed"
        assert execution.result == {"status": "completed", "processed": 3}
        assert execution.finished_at is not None

    @pytest.mark.asyncio
    async def test_lock_held_elsewhere_skips(self, session_maker, monkeypatch):
        calls = []

        async def job(components):
            calls.append(components)
            return {"status": "completed"}

        _install_job(monkeypatch, job)
        await AdvisoryLocks(session_maker, "other-replica").acquire("job:index-events", 60)

        result = await _runner(session_maker).run_async("index-events")
        assert result == {"status": "skipped", "reason": "locked"}
        assert calls == []
        assert await _executions(session_maker) == []

    @pytest.mark.asyncio
    async def test_lock_released_after_run(self, session_maker, monkeypatch):
        async def job(components):
            return {"status": "completed"}

        _install_job(monkeypatch, job)
        runner = _runner(session_maker)
        await runner.run_async("index-events")
        assert (await runner.run_async("index-events"))["status"] == "completed"

    @pytest.mark.asyncio
    async def test_overrun_times_out_and_trips_watchdog(self, session_maker, monkeypatch):
        async def job(components):
            await asyncio.sleep(5)

        _install_job(monkeypatch, job, deadline=0.05)
        watchdog = RecordingWatchdog()
        result = await _runner(session_maker, watchdog).run_async("index-events")

        assert result["status"] == "timeout"
        assert watchdog.exits == [1]
        [execution] = await _executions(session_maker)
        assert execution.status == "timeout"

    @pytest.mark.asyncio
    async def test_invariant_violation_files_health_report(self, session_maker, monkeypatch):
        async def job(components):
            raise InvariantViolation("selection_short", "only 7 eligible fixtures", cycle_id=43)

        _install_job(monkeypatch, job)
        result = await _runner(session_maker).run_async("index-events")
        assert result["status"] == "failed"

        async with session_maker() as session:
            [report] = (await session.scalars(select(HealthReport))).all()
        assert report.job_name == "index-events"
        assert report.kind == "selection_short"
        assert report.cycle_id == 43
        [execution] = await _executions(session_maker)
        assert execution.status == "failed"
        assert "only 7" in execution.error

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_contained(self, session_maker, monkeypatch):
        async def job(components):
            raise KeyError("boom")

        _install_job(monkeypatch, job)
        result = await _runner(session_maker).run_async("index-events")
        assert result["status"] == "failed"
        assert result["error"].startswith("KeyError")

    def test_same_process_reentry_is_skipped(self):
        runner = _runner(None)
        runner._running.add("index-events")
        assert runner.run("index-events") == {"status": "skipped", "reason": "already_running"}


class FakeRunner:
    def __init__(self):
        self.ran = []

    def run(self, job_name):
        self.ran.append(job_name)
        return {"status": "completed"}


class TestScheduler:
    def test_commands_cover_every_job(self):
        assert set(COMMANDS.values()) == set(jobs.JOBS)
        assert set(RUN_ALL_ORDER) == set(jobs.JOBS)

    def test_configure_registers_all_jobs(self):
        scheduler = Scheduler(runner=FakeRunner(), workers=1)
        scheduler.configure()
        assert len(scheduler.scheduler.get_jobs()) == len(jobs.JOBS)
        scheduler.executor.shutdown(wait=True)

    def test_resolution_queues_evaluation(self):
        runner = FakeRunner()
        scheduler = Scheduler(runner=runner, workers=1)
        scheduler._cycle_resolved(42)
        scheduler.executor.shutdown(wait=True)
        assert runner.ran == ["evaluate-slips"]

    def test_stopped_scheduler_submits_nothing(self):
        runner = FakeRunner()
        scheduler = Scheduler(runner=runner, workers=1)
        scheduler.stop()
        assert scheduler.submit("index-events") is None
        scheduler.executor.shutdown(wait=True)
        assert runner.ran == []

    def test_unknown_command(self, capsys):
        assert main(["scheduler", "bogus"]) == 2
        assert "Unknown command: bogus" in capsys.readouterr().out
