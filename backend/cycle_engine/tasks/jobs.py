"""Scheduled jobs.

Every job takes the wired ``Components`` and returns a result dict with a
``status`` key. Locking, deadlines and the execution log live in
``cycle_engine.tasks.runner``.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cycle_engine.config import settings
from cycle_engine.errors import InvariantViolation
from cycle_engine.services.chain import CycleContract
from cycle_engine.services.cycle import CycleStateMachine, MatchSelector, SlipEvaluator
from cycle_engine.services.data import SportMonksClient
from cycle_engine.services.fixture_sync import FixtureSync
from cycle_engine.services.indexer import EventIndexer
from cycle_engine.services.locks import AdvisoryLocks
from cycle_engine.services.reports import record_health_report
from cycle_engine.timeutil import utcnow

logger = structlog.get_logger()


@dataclass
class Components:
    chain: object
    fixture_source: object
    session_maker: async_sessionmaker[AsyncSession]
    locks: AdvisoryLocks
    selector: MatchSelector
    state_machine: CycleStateMachine
    evaluator: SlipEvaluator
    fixture_sync: FixtureSync
    indexer: EventIndexer


def build_components(
    session_maker: async_sessionmaker[AsyncSession],
    chain=None,
    fixture_source=None,
    on_cycle_resolved: Callable[[int], object] | None = None,
    holder: str | None = None,
) -> Components:
    chain = chain or CycleContract()
    fixture_source = fixture_source or SportMonksClient()
    locks = AdvisoryLocks(session_maker, holder)
    selector = MatchSelector(fixture_source, session_maker)
    return Components(
        chain=chain,
        fixture_source=fixture_source,
        session_maker=session_maker,
        locks=locks,
        selector=selector,
        state_machine=CycleStateMachine(chain, selector, locks, session_maker),
        evaluator=SlipEvaluator(chain, session_maker),
        fixture_sync=FixtureSync(fixture_source, session_maker),
        indexer=EventIndexer(chain, session_maker, on_cycle_resolved=on_cycle_resolved),
    )


async def select_matches(c: Components, now: datetime | None = None) -> dict:
    """Pre-select today's matches against the next cycle id."""
    now = now or utcnow()
    reserved = await c.chain.read_current_cycle_id() + 1
    selection = await c.selector.select_for_date(now.date(), reserved, now=now)
    return {
        "status": "completed",
        "game_date": now.date().isoformat(),
        "reserved_cycle_id": reserved,
        "fixtures": [m.fixture_id for m in selection],
    }


async def open_cycle(c: Components) -> dict:
    return await c.state_machine.open_cycle()


async def poll_fixture_state(c: Components) -> dict:
    return await c.fixture_sync.poll_fixture_states()


async def fetch_results(c: Components) -> dict:
    return await c.fixture_sync.fetch_results()


async def attempt_resolution(c: Components) -> dict:
    return await c.state_machine.attempt_resolution()


async def evaluate_slips(c: Components) -> dict:
    cycles = {}
    for cycle_id in await c.evaluator.pending_cycles():
        try:
            result = await c.evaluator.evaluate_cycle(cycle_id)
        except InvariantViolation as e:
            await record_health_report("evaluate-slips", e, cycle_id, session_maker=c.session_maker)
            result = {"status": "invariant_violation", "kind": e.kind}
        cycles[cycle_id] = result
    return {"status": "completed", "cycles": cycles}


async def reconcile_chain(c: Components) -> dict:
    removed = await c.locks.cleanup_expired()
    result = await c.state_machine.reconcile_recent()
    result["stale_locks_removed"] = removed
    return result


async def index_events(c: Components) -> dict:
    return await c.indexer.run_once()


@dataclass(frozen=True)
class JobSpec:
    name: str
    func: Callable[[Components], Awaitable[dict]]
    deadline_seconds: int


JOBS = {
    spec.name: spec
    for spec in (
        JobSpec("select-matches", select_matches, settings.job_deadline_seconds),
        JobSpec("open-cycle", open_cycle, settings.job_deadline_seconds),
        JobSpec("poll-fixture-state", poll_fixture_state, 240),
        JobSpec("fetch-results", fetch_results, 240),
        JobSpec("attempt-resolution", attempt_resolution, settings.job_deadline_seconds),
        JobSpec("evaluate-slips", evaluate_slips, settings.job_deadline_seconds),
        JobSpec("reconcile-chain", reconcile_chain, settings.job_deadline_seconds),
        JobSpec("index-events", index_events, 55),
    )
}
