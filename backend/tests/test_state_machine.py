"""
Tests for the cycle lifecycle: opening, the resolution gate, submission and
reconciliation with the chain.
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select, update

from cycle_engine.errors import ChainRevertError, ReceiptTimeoutError, RevertKind, SyncIssueError
from cycle_engine.models import Cycle, DailyGameMatch, Fixture, FixtureResult, SyncIssue
from cycle_engine.schemas.chain import CycleStatus, Moneyline, OverUnder, ResultPair
from cycle_engine.schemas.outcomes import CyclePhase, CycleState, FixtureState
from cycle_engine.schemas.ten_slots import TenSlots
from cycle_engine.services.cycle import CycleStateMachine, MatchSelector
from cycle_engine.services.cycle.normaliser import normalise
from cycle_engine.services.cycle.slots import match_inputs_from_slots, pairs_from_resolution
from cycle_engine.services.cycle.state_machine import (
    GATE_CHAIN_ENDED,
    GATE_PAST_END_TIME,
    GATE_RESOLUTION_DELAY,
    GATE_RESULTS_READY,
    check_gate,
)
from cycle_engine.services.locks import AdvisoryLocks
from cycle_engine.timeutil import to_epoch

from conftest import GAME_DATE, MORNING, match_inputs

DELAY = 6300
SCORES = [(1, 0), (0, 0), (2, 2), (3, 1), (0, 1), (1, 1), (4, 0), (2, 3), (0, 0), (1, 2)]


def _status(state=CycleState.ENDED, end_time=1_000) -> CycleStatus:
    return CycleStatus(True, state, end_time, 0, 0, False)


class TestCheckGate:
    starts = TenSlots([500 + 10 * i for i in range(10)])

    def test_all_conditions_met(self):
        report = check_gate(1, _status(), 590 + DELAY, self.starts, [], DELAY)
        assert report.passed

    def test_block_time_equal_to_end_time_is_not_past(self):
        report = check_gate(1, _status(end_time=590 + DELAY), 590 + DELAY, self.starts, [], DELAY)
        assert report.failed_conditions == [GATE_PAST_END_TIME]

    def test_one_slot_still_inside_delay(self):
        report = check_gate(1, _status(), 589 + DELAY, self.starts, [], DELAY)
        assert report.failed_conditions == [GATE_RESOLUTION_DELAY]
        assert report.failures[GATE_RESOLUTION_DELAY]["slots"] == [9]

    def test_every_failure_reported(self):
        report = check_gate(1, _status(state=CycleState.ACTIVE, end_time=10_000), 600, self.starts, [7], DELAY)
        assert set(report.failed_conditions) == {
            GATE_CHAIN_ENDED,
            GATE_PAST_END_TIME,
            GATE_RESOLUTION_DELAY,
            GATE_RESULTS_READY,
        }


def _machine(chain, session_maker, fixture_source=None, holder="replica-a") -> CycleStateMachine:
    selector = MatchSelector(fixture_source, session_maker) if fixture_source else None
    return CycleStateMachine(
        chain,
        selector,
        AdvisoryLocks(session_maker, holder),
        session_maker,
        resolution_delay=DELAY,
    )


async def _stored_cycle(session_maker, cycle_id: int) -> Cycle | None:
    async with session_maker() as session:
        return await session.get(Cycle, cycle_id)


async def _finish_all(session_maker, cycle_id: int) -> None:
    """Mark the cycle's fixtures Finished and store their results."""
    cycle = await _stored_cycle(session_maker, cycle_id)
    async with session_maker() as session:
        async with session.begin():
            for fixture_id, (home, away) in zip(cycle.fixture_ids, SCORES):
                await session.execute(
                    update(Fixture)
                    .where(Fixture.fixture_id == fixture_id)
                    .values(state=FixtureState.FINISHED.value)
                )
                session.add(FixtureResult(fixture_id=fixture_id, **normalise(home, away).as_row()))


def _end_cycle(chain, cycle_id: int) -> None:
    chain.cycles[cycle_id]["state"] = CycleState.ENDED
    chain.block_time = max(m.start_time for m in chain.cycles[cycle_id]["matches"]) + DELAY + 1


class TestOpenCycle:
    @pytest.mark.asyncio
    async def test_opens_and_mirrors_chain(self, session_maker, chain, fixture_source):
        result = await _machine(chain, session_maker, fixture_source).open_cycle(now=MORNING)

        assert result["status"] == "completed"
        assert result["cycle_id"] == 1
        cycle = await _stored_cycle(session_maker, 1)
        assert cycle.game_date == GAME_DATE
        assert cycle.status == CyclePhase.OPEN.value
        assert cycle.fixture_ids == [m.fixture_id for m in chain.cycles[1]["matches"]]
        assert cycle.tx_hash == result["tx_hash"]

    @pytest.mark.asyncio
    async def test_second_open_same_day_skips(self, session_maker, chain, fixture_source):
        machine = _machine(chain, session_maker, fixture_source)
        await machine.open_cycle(now=MORNING)
        again = await machine.open_cycle(now=MORNING)
        assert again["status"] == "skipped"
        assert chain.start_calls == 1

    @pytest.mark.asyncio
    async def test_chain_ahead_of_db_records_sync_issue(self, session_maker, chain, fixture_source):
        chain.current_cycle_id = 43

        with pytest.raises(SyncIssueError):
            await _machine(chain, session_maker, fixture_source).open_cycle(now=MORNING)

        assert chain.start_calls == 0
        async with session_maker() as session:
            issue = (await session.execute(select(SyncIssue))).scalar_one()
        assert (issue.chain_cycle_id, issue.db_cycle_id) == (43, 0)

    @pytest.mark.asyncio
    async def test_unexpected_revert_writes_nothing(self, session_maker, chain, fixture_source):
        chain.start_error = ChainRevertError(RevertKind.NOT_ORACLE, "caller is not oracle")

        with pytest.raises(ChainRevertError):
            await _machine(chain, session_maker, fixture_source).open_cycle(now=MORNING)

        async with session_maker() as session:
            assert await session.scalar(select(func.count()).select_from(Cycle)) == 0

    @pytest.mark.asyncio
    async def test_expected_revert_reconciles(self, session_maker, chain, fixture_source):
        chain.start_error = ChainRevertError(RevertKind.INVALID_STATE, "invalid state")
        result = await _machine(chain, session_maker, fixture_source).open_cycle(now=MORNING)
        assert result["status"] == "reconciled"


class TestResolution:
    @pytest.mark.asyncio
    async def test_full_lifecycle(self, session_maker, chain, fixture_source):
        machine = _machine(chain, session_maker, fixture_source)
        await machine.open_cycle(now=MORNING)
        await _finish_all(session_maker, 1)
        _end_cycle(chain, 1)

        result = await machine.attempt_resolution()
        assert result["cycles"] == {1: "resolved"}
        assert chain.resolve_calls == 1

        cycle = await _stored_cycle(session_maker, 1)
        assert cycle.is_resolved
        assert cycle.status == CyclePhase.RESOLVED.value
        assert cycle.resolution_tx_hash == chain.resolved_logs[1]["tx_hash"]
        assert [m.result.as_abi() for m in chain.cycles[1]["matches"]] == [
            (1, 2), (2, 2), (2, 1), (1, 1), (3, 2), (2, 2), (1, 1), (3, 1), (2, 2), (3, 1),
        ]

        again = await machine.attempt_resolution()
        assert again["cycles"] == {}
        assert chain.resolve_calls == 1

    @pytest.mark.asyncio
    async def test_blocked_until_results_and_delay(self, session_maker, chain, fixture_source):
        machine = _machine(chain, session_maker, fixture_source)
        await machine.open_cycle(now=MORNING)
        chain.cycles[1]["state"] = CycleState.ENDED
        chain.block_time = to_epoch(datetime(2026, 10, 18, 14, 0, tzinfo=timezone.utc))

        result = await machine.attempt_resolution()
        assert result["cycles"] == {1: "blocked"}
        assert chain.resolve_calls == 0

        report = await machine.evaluate_gate(1)
        assert set(report.failed_conditions) == {GATE_RESOLUTION_DELAY, GATE_RESULTS_READY}
        cycle = await _stored_cycle(session_maker, 1)
        assert cycle.status == CyclePhase.ENDED_AWAITING_RESULTS.value

    @pytest.mark.asyncio
    async def test_cycle_lock_held_by_peer_skips(self, session_maker, chain, fixture_source):
        machine = _machine(chain, session_maker, fixture_source)
        await machine.open_cycle(now=MORNING)
        await _finish_all(session_maker, 1)
        _end_cycle(chain, 1)
        await machine.prepare_resolution(1)

        peer = AdvisoryLocks(session_maker, "replica-b")
        assert await peer.acquire("cycle:1", 60) is not None

        result = await machine.submit_resolution(1)
        assert result["status"] == "skipped"
        assert chain.resolve_calls == 0

    @pytest.mark.asyncio
    async def test_lost_receipt_then_adopts(self, session_maker, chain, fixture_source):
        machine = _machine(chain, session_maker, fixture_source)
        await machine.open_cycle(now=MORNING)
        await _finish_all(session_maker, 1)
        _end_cycle(chain, 1)

        async def mined_but_no_receipt(cycle_id, results):
            chain.resolve_calls += 1
            chain.resolve_on_chain(cycle_id, results)
            raise ReceiptTimeoutError("0xfeed", 120)

        chain.resolve_cycle = mined_but_no_receipt
        with pytest.raises(ReceiptTimeoutError):
            await machine.attempt_resolution()
        cycle = await _stored_cycle(session_maker, 1)
        assert cycle.status == CyclePhase.FAILED_RESOLVING.value
        assert not cycle.is_resolved

        result = await machine.attempt_resolution()
        assert result["cycles"] == {1: "adopted_resolution"}
        assert chain.resolve_calls == 1
        cycle = await _stored_cycle(session_maker, 1)
        assert cycle.is_resolved
        assert cycle.resolution_tx_hash == chain.resolved_logs[1]["tx_hash"]


class TestReconcile:
    @pytest.mark.asyncio
    async def test_adopts_resolution_after_db_write_failed(self, session_maker, chain, fixture_source):
        machine = _machine(chain, session_maker, fixture_source)
        await machine.open_cycle(now=MORNING)
        await _finish_all(session_maker, 1)
        _end_cycle(chain, 1)
        await machine.prepare_resolution(1)
        cycle = await _stored_cycle(session_maker, 1)
        chain.resolve_on_chain(1, pairs_from_resolution(cycle.resolution_data))

        result = await machine.reconcile_recent()
        assert result["cycles"] == {1: "adopted_resolution"}
        assert chain.resolve_calls == 0

        cycle = await _stored_cycle(session_maker, 1)
        assert cycle.is_resolved
        assert cycle.resolution_tx_hash == chain.resolved_logs[1]["tx_hash"]
        async with session_maker() as session:
            assert await session.scalar(select(func.count()).select_from(SyncIssue)) == 0

    @pytest.mark.asyncio
    async def test_adopts_cycle_opened_before_crash(self, session_maker, chain, fixture_source):
        machine = _machine(chain, session_maker, fixture_source)
        selection = await machine.selector.select_for_date(GAME_DATE, 1, now=MORNING)
        chain.open_on_chain(match_inputs_from_slots([m.to_slot() for m in selection]))

        result = await machine.reconcile_recent()
        assert result["cycles"] == {1: "not_resolved_on_chain"}

        cycle = await _stored_cycle(session_maker, 1)
        assert cycle.game_date == GAME_DATE
        assert cycle.fixture_ids == [m.fixture_id for m in selection]

        again = await machine.open_cycle(now=MORNING)
        assert again["status"] == "skipped"
        assert chain.start_calls == 0

    @pytest.mark.asyncio
    async def test_unknown_cycle_gets_placeholder_fixtures(self, session_maker, chain):
        chain.open_on_chain(match_inputs(range(500, 510)))
        await _machine(chain, session_maker).reconcile_recent()

        async with session_maker() as session:
            fixtures = (await session.execute(select(Fixture))).scalars().all()
            matches = await session.scalar(select(func.count()).select_from(DailyGameMatch))
        assert sorted(f.fixture_id for f in fixtures) == list(range(500, 510))
        assert matches == 0
        cycle = await _stored_cycle(session_maker, 1)
        assert cycle.game_date is None
        assert cycle.status == CyclePhase.OPEN.value

    @pytest.mark.asyncio
    async def test_db_ahead_of_chain_recorded(self, session_maker, chain):
        async with session_maker() as session:
            async with session.begin():
                session.add(Cycle(cycle_id=5, status="Open"))
        await _machine(chain, session_maker).reconcile_recent()

        async with session_maker() as session:
            issue = (await session.execute(select(SyncIssue))).scalar_one()
        assert issue.kind == "db_ahead_of_chain"

    @pytest.mark.asyncio
    async def test_indexed_resolution_keeps_resolved_phase_on_adoption(self, session_maker, chain):
        """Indexer mirrored start and resolution; the open-cycle write never landed."""
        chain.open_on_chain(match_inputs(range(600, 610)))
        chain.resolve_on_chain(1, TenSlots(ResultPair(Moneyline.HOME_WIN, OverUnder.UNDER) for _ in range(10)))
        async with session_maker() as session:
            async with session.begin():
                session.add(Cycle(cycle_id=1, status=CyclePhase.RESOLVED.value, is_resolved=True))

        result = await _machine(chain, session_maker).reconcile_recent()
        assert result["cycles"] == {1: "in_sync"}

        cycle = await _stored_cycle(session_maker, 1)
        assert cycle.is_resolved
        assert cycle.status == CyclePhase.RESOLVED.value
        assert len(cycle.matches_data) == 10
