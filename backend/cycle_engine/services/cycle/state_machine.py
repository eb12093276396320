"""Daily cycle lifecycle: open, gate, prepare, resolve and reconcile.

The chain is the source of truth. Database rows are written only after the
chain has confirmed the corresponding transition, so the database may lag
the contract but never leads it.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

import structlog
from sqlalchemy import case, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cycle_engine.config import settings
from cycle_engine.database import async_session_maker, insert_for
from cycle_engine.errors import (
    ChainRevertError,
    InvariantViolation,
    LockNotAcquired,
    ReceiptTimeoutError,
    SyncIssueError,
)
from cycle_engine.models import ChainEvent, Cycle, DailyGameMatch, Fixture, FixtureResult
from cycle_engine.schemas.chain import CycleStatus, MatchInput
from cycle_engine.schemas.outcomes import CyclePhase, CycleState, FixtureState
from cycle_engine.schemas.ten_slots import TenSlots
from cycle_engine.services.cycle.slots import (
    build_result_pairs,
    cross_check_slots,
    match_inputs_from_slots,
    pairs_from_resolution,
    serialise_resolution,
    slot_fixture_ids,
    slots_from_match_inputs,
)
from cycle_engine.services.locks import AdvisoryLocks, cycle_lock_name
from cycle_engine.services.reports import record_health_report, record_sync_issue
from cycle_engine.timeutil import from_epoch, utcnow

logger = structlog.get_logger()

GATE_CHAIN_ENDED = "chain_state_ended"
GATE_PAST_END_TIME = "block_time_past_end_time"
GATE_RESOLUTION_DELAY = "resolution_delay_elapsed"
GATE_RESULTS_READY = "fixture_results_ready"


@dataclass
class GateReport:
    """Outcome of the four resolution conditions for one cycle."""

    cycle_id: int
    block_time: int | None = None
    failures: dict[str, dict] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return not self.failures

    @property
    def failed_conditions(self) -> list[str]:
        return list(self.failures)


def unready_fixtures(
    fixture_ids: TenSlots[int],
    fixtures: dict[int, Fixture],
    results: dict[int, FixtureResult],
) -> list[int]:
    """Fixtures that are not finished or lack a complete result."""
    unready = []
    for fixture_id in fixture_ids:
        fixture = fixtures.get(fixture_id)
        result = results.get(fixture_id)
        if fixture is None or not FixtureState(fixture.state).is_finished:
            unready.append(fixture_id)
        elif result is None or not result.is_complete:
            unready.append(fixture_id)
    return unready


def check_gate(
    cycle_id: int,
    status: CycleStatus,
    block_time: int,
    start_times: TenSlots[int],
    unready: list[int],
    resolution_delay: int,
) -> GateReport:
    report = GateReport(cycle_id=cycle_id, block_time=block_time)

    if status.state != CycleState.ENDED:
        report.failures[GATE_CHAIN_ENDED] = {"chain_state": status.state.name}

    # Strict, as in the contract
    if not block_time > status.end_time:
        report.failures[GATE_PAST_END_TIME] = {
            "block_time": block_time,
            "end_time": status.end_time,
        }

    waiting = [slot for slot, start in enumerate(start_times) if block_time < start + resolution_delay]
    if waiting:
        report.failures[GATE_RESOLUTION_DELAY] = {
            "slots": waiting,
            "resolvable_at": max(start_times) + resolution_delay,
        }

    if unready:
        report.failures[GATE_RESULTS_READY] = {"fixture_ids": unready}

    return report


def phase_for_chain_state(state: CycleState, prepared: bool) -> CyclePhase:
    if state == CycleState.ACTIVE:
        return CyclePhase.OPEN
    if state == CycleState.RESOLVED:
        return CyclePhase.RESOLVED
    return CyclePhase.RESOLUTION_PREPARED if prepared else CyclePhase.ENDED_AWAITING_RESULTS


class CycleStateMachine:
    """Drives cycles from selection through on-chain resolution."""

    def __init__(
        self,
        chain,
        selector=None,
        locks: AdvisoryLocks | None = None,
        session_maker: async_sessionmaker[AsyncSession] = async_session_maker,
        resolution_delay: int | None = None,
    ):
        self.chain = chain
        self.selector = selector
        self.session_maker = session_maker
        self.locks = locks or AdvisoryLocks(session_maker)
        self.resolution_delay = (
            settings.resolution_delay_seconds if resolution_delay is None else resolution_delay
        )

    # Opening

    async def open_cycle(self, now: datetime | None = None) -> dict:
        now = now or utcnow()
        game_date = now.date()

        async with self.session_maker() as session:
            async with session.begin():
                existing = await session.scalar(
                    select(Cycle.cycle_id).where(Cycle.game_date == game_date)
                )
                db_latest = await session.scalar(select(func.max(Cycle.cycle_id))) or 0

        if existing is not None:
            logger.info("Cycle already open for date", game_date=game_date.isoformat(), cycle_id=existing)
            return {"status": "skipped", "reason": "already_open", "cycle_id": existing}

        chain_current = await self.chain.read_current_cycle_id()
        if chain_current != db_latest:
            await record_sync_issue(
                "cycle_id_mismatch",
                chain_current,
                db_latest,
                {"game_date": game_date.isoformat(), "operation": "open_cycle"},
                session_maker=self.session_maker,
            )
            raise SyncIssueError("cycle_id_mismatch", chain_current, db_latest)

        reserved_id = chain_current + 1
        selection = await self.selector.select_for_date(game_date, reserved_id, now=now)
        slots = [match.to_slot() for match in selection]
        matches = match_inputs_from_slots(slots)

        logger.info(
            "Opening cycle",
            game_date=game_date.isoformat(),
            reserved_cycle_id=reserved_id,
            phase=CyclePhase.OPENING.value,
            fixtures=[m.fixture_id for m in matches],
        )
        try:
            receipt = await self.chain.start_cycle(matches)
        except ChainRevertError as e:
            if e.expected:
                logger.warning("Start cycle reverted; adopting chain state", kind=e.kind.value, reason=e.reason)
                summary = await self.reconcile_recent()
                return {"status": "reconciled", "reconcile": summary}
            logger.error(
                "Cycle opening failed",
                game_date=game_date.isoformat(),
                phase=CyclePhase.FAILED_OPENING.value,
                kind=e.kind.value,
                reason=e.reason,
            )
            raise

        cycle_id = await self.chain.read_current_cycle_id()
        if cycle_id != reserved_id:
            logger.warning("Chain assigned a different cycle id", reserved=reserved_id, actual=cycle_id)
        status = await self.chain.read_cycle_status(cycle_id)
        chain_matches = await self.chain.read_daily_matches(cycle_id)
        if [m.fixture_id for m in chain_matches] != [m.fixture_id for m in matches]:
            raise InvariantViolation(
                "slot_mismatch",
                f"Cycle {cycle_id} was opened with different fixtures than selected",
                cycle_id=cycle_id,
            )

        try:
            await self._store_cycle(
                cycle_id,
                game_date,
                slots,
                status,
                CyclePhase.OPEN,
                tx_hash=receipt.tx_hash,
                start_time=now,
            )
        except IntegrityError:
            logger.warning("Cycle row written by a peer", cycle_id=cycle_id)

        logger.info(
            "Cycle opened",
            cycle_id=cycle_id,
            game_date=game_date.isoformat(),
            tx_hash=receipt.tx_hash,
            end_time=status.end_time,
        )
        return {"status": "completed", "cycle_id": cycle_id, "tx_hash": receipt.tx_hash}

    async def _store_cycle(
        self,
        cycle_id: int,
        game_date: date | None,
        slots: list[dict],
        status: CycleStatus,
        phase: CyclePhase,
        tx_hash: str | None = None,
        start_time: datetime | None = None,
    ) -> None:
        async with self.session_maker() as session:
            async with session.begin():
                if game_date is not None:
                    await self._rekey_selection(session, game_date, cycle_id)

                values = {
                    "matches_data": slots,
                    "status": phase.value,
                    "cycle_end_time": from_epoch(status.end_time),
                    "end_ts": status.end_time,
                    "prize_pool": Decimal(status.prize_pool),
                    "slip_count": status.slip_count,
                }
                if game_date is not None:
                    values["game_date"] = game_date
                if tx_hash is not None:
                    values["tx_hash"] = tx_hash
                if start_time is not None:
                    values["cycle_start_time"] = start_time

                # A row the indexer already marked resolved keeps its phase
                set_ = {
                    **values,
                    "status": case((Cycle.is_resolved.is_(True), Cycle.status), else_=phase.value),
                    "updated_at": utcnow(),
                }
                insert = insert_for(session)
                await session.execute(
                    insert(Cycle)
                    .values(cycle_id=cycle_id, **values)
                    .on_conflict_do_update(index_elements=["cycle_id"], set_=set_)
                )

    async def _rekey_selection(self, session: AsyncSession, game_date: date, cycle_id: int) -> None:
        """Point a date's selection rows at the cycle id the chain assigned."""
        await session.execute(
            delete(DailyGameMatch).where(
                DailyGameMatch.cycle_id == cycle_id,
                DailyGameMatch.game_date != game_date,
            )
        )
        await session.execute(
            update(DailyGameMatch)
            .where(DailyGameMatch.game_date == game_date, DailyGameMatch.cycle_id != cycle_id)
            .values(cycle_id=cycle_id)
            .execution_options(synchronize_session=False)
        )

    # Resolution

    async def _fixtures_and_results(
        self, session: AsyncSession, fixture_ids: TenSlots[int]
    ) -> tuple[dict[int, Fixture], dict[int, FixtureResult]]:
        ids = list(fixture_ids)
        fixtures = await session.execute(select(Fixture).where(Fixture.fixture_id.in_(ids)))
        results = await session.execute(select(FixtureResult).where(FixtureResult.fixture_id.in_(ids)))
        return (
            {f.fixture_id: f for f in fixtures.scalars().all()},
            {r.fixture_id: r for r in results.scalars().all()},
        )

    async def evaluate_gate(self, cycle_id: int, status: CycleStatus | None = None) -> GateReport:
        """Check all resolution conditions without touching the chain state."""
        async with self.session_maker() as session:
            cycle = await session.get(Cycle, cycle_id)
            if cycle is None:
                raise InvariantViolation("cycle_missing", f"Cycle {cycle_id} is not stored", cycle_id=cycle_id)
            fixture_ids = slot_fixture_ids(cycle)
            fixtures, results = await self._fixtures_and_results(session, fixture_ids)

        status = status or await self.chain.read_cycle_status(cycle_id)
        block_time = await self.chain.current_block_time()
        chain_matches = await self.chain.read_daily_matches(cycle_id)
        cross_check_slots(cycle, chain_matches)

        report = check_gate(
            cycle_id,
            status,
            block_time,
            chain_matches.map(lambda m: m.start_time),
            unready_fixtures(fixture_ids, fixtures, results),
            self.resolution_delay,
        )
        for condition, details in report.failures.items():
            logger.info("Resolution condition not met", cycle_id=cycle_id, condition=condition, **details)
        return report

    async def prepare_resolution(self, cycle_id: int) -> bool:
        """Persist slot-ordered results once every fixture is finished and scored."""
        async with self.session_maker() as session:
            async with session.begin():
                cycle = await session.get(Cycle, cycle_id)
                if cycle is None or cycle.is_resolved:
                    return False
                if cycle.ready_for_resolution and cycle.resolution_data:
                    return True

                fixture_ids = slot_fixture_ids(cycle)
                fixtures, results = await self._fixtures_and_results(session, fixture_ids)
                if unready_fixtures(fixture_ids, fixtures, results):
                    return False

                pairs = build_result_pairs(cycle, results)
                cycle.resolution_data = serialise_resolution(fixture_ids, pairs)
                cycle.ready_for_resolution = True
                cycle.resolution_prepared_at = utcnow()
                cycle.status = CyclePhase.RESOLUTION_PREPARED.value

        logger.info("Prepared cycle resolution", cycle_id=cycle_id, results=[p.as_abi() for p in pairs])
        return True

    async def submit_resolution(self, cycle_id: int) -> dict:
        try:
            async with self.locks.hold(cycle_lock_name(cycle_id)):
                return await self._submit_locked(cycle_id)
        except LockNotAcquired:
            return {"cycle_id": cycle_id, "status": "skipped", "reason": "cycle_locked"}

    async def _submit_locked(self, cycle_id: int) -> dict:
        # Another leader may have resolved it since the gate ran
        status = await self.chain.read_cycle_status(cycle_id)
        if status.state == CycleState.RESOLVED:
            return await self.reconcile(cycle_id, status)
        if status.state != CycleState.ENDED:
            return {"cycle_id": cycle_id, "status": "blocked", "failures": [GATE_CHAIN_ENDED]}

        async with self.session_maker() as session:
            cycle = await session.get(Cycle, cycle_id)
            if cycle is None or not cycle.ready_for_resolution or not cycle.resolution_data:
                return {"cycle_id": cycle_id, "status": "blocked", "failures": [GATE_RESULTS_READY]}
            chain_matches = await self.chain.read_daily_matches(cycle_id)
            cross_check_slots(cycle, chain_matches)
            pairs = pairs_from_resolution(cycle.resolution_data)

        logger.info("Submitting cycle resolution", cycle_id=cycle_id, phase=CyclePhase.RESOLVING.value)
        try:
            receipt = await self.chain.resolve_cycle(cycle_id, pairs)
        except ChainRevertError as e:
            if e.expected:
                current = await self.chain.read_cycle_status(cycle_id)
                if current.state == CycleState.RESOLVED:
                    logger.info("Cycle already resolved on chain", cycle_id=cycle_id, kind=e.kind.value)
                    return await self.reconcile(cycle_id, current)
            await self._mark_failed_resolving(cycle_id, e)
            raise
        except ReceiptTimeoutError as e:
            await self._mark_failed_resolving(cycle_id, e)
            raise

        block_time = await self.chain.block_timestamp(receipt.block_number)
        resolved_status = await self.chain.read_cycle_status(cycle_id)
        await self._mark_resolved(
            cycle_id,
            tx_hash=receipt.tx_hash,
            resolved_at=from_epoch(block_time),
            prize_pool=resolved_status.prize_pool,
        )
        logger.info("Cycle resolved", cycle_id=cycle_id, tx_hash=receipt.tx_hash, block=receipt.block_number)
        return {"cycle_id": cycle_id, "status": "resolved", "tx_hash": receipt.tx_hash}

    async def _mark_failed_resolving(self, cycle_id: int, error: Exception) -> None:
        async with self.session_maker() as session:
            async with session.begin():
                await session.execute(
                    update(Cycle)
                    .where(Cycle.cycle_id == cycle_id, Cycle.is_resolved.is_(False))
                    .values(status=CyclePhase.FAILED_RESOLVING.value)
                )
        logger.error("Cycle resolution failed", cycle_id=cycle_id, error=str(error))

    async def _mark_resolved(
        self,
        cycle_id: int,
        tx_hash: str | None,
        resolved_at: datetime | None,
        prize_pool: int | None,
        resolution_data: list[dict] | None = None,
    ) -> bool:
        """Write chain-confirmed resolution; False if a peer already did."""
        async with self.session_maker() as session:
            async with session.begin():
                cycle = await session.get(Cycle, cycle_id)
                if cycle is None or cycle.is_resolved:
                    return False
                cycle.is_resolved = True
                cycle.ready_for_resolution = False
                cycle.status = CyclePhase.RESOLVED.value
                cycle.resolved_at = resolved_at
                cycle.resolution_tx_hash = tx_hash
                if prize_pool is not None:
                    cycle.prize_pool = Decimal(prize_pool)
                if cycle.resolution_data is None and resolution_data is not None:
                    cycle.resolution_data = resolution_data
        return True

    async def _sync_phase(self, cycle_id: int, status: CycleStatus) -> None:
        """Mirror the chain's view of an unresolved cycle into ``status``."""
        async with self.session_maker() as session:
            async with session.begin():
                cycle = await session.get(Cycle, cycle_id)
                if cycle is None or cycle.is_resolved or status.state == CycleState.RESOLVED:
                    return
                phase = phase_for_chain_state(status.state, cycle.ready_for_resolution)
                if cycle.status != phase.value:
                    logger.info("Cycle phase changed", cycle_id=cycle_id, old=cycle.status, new=phase.value)
                    cycle.status = phase.value
                cycle.slip_count = status.slip_count
                cycle.prize_pool = Decimal(status.prize_pool)

    async def resolve_if_ready(self, cycle_id: int) -> dict:
        await self.prepare_resolution(cycle_id)

        status = await self.chain.read_cycle_status(cycle_id)
        if status.state == CycleState.RESOLVED:
            return await self.reconcile(cycle_id, status)

        await self._sync_phase(cycle_id, status)
        report = await self.evaluate_gate(cycle_id, status)
        if not report.passed:
            return {"cycle_id": cycle_id, "status": "blocked", "failures": report.failed_conditions}
        return await self.submit_resolution(cycle_id)

    async def attempt_resolution(self) -> dict:
        async with self.session_maker() as session:
            result = await session.execute(
                select(Cycle.cycle_id)
                .where(Cycle.is_resolved.is_(False), Cycle.matches_data.is_not(None))
                .order_by(Cycle.cycle_id)
            )
            cycle_ids = [row[0] for row in result.all()]

        outcomes = {}
        for cycle_id in cycle_ids:
            try:
                outcome = await self.resolve_if_ready(cycle_id)
            except InvariantViolation as e:
                await record_health_report("attempt-resolution", e, cycle_id, session_maker=self.session_maker)
                outcome = {"cycle_id": cycle_id, "status": "invariant_violation", "kind": e.kind}
            outcomes[cycle_id] = outcome["status"]

        return {"status": "completed", "cycles": outcomes}

    # Reconciliation

    async def reconcile(self, cycle_id: int, status: CycleStatus | None = None) -> dict:
        """Bring one cycle's row in line with the chain. Never marks ahead of it."""
        status = status or await self.chain.read_cycle_status(cycle_id)
        if not status.exists:
            return {"cycle_id": cycle_id, "status": "missing_on_chain"}

        async with self.session_maker() as session:
            cycle = await session.get(Cycle, cycle_id)
        if cycle is None or not cycle.matches_data:
            await self.adopt_cycle(cycle_id, status)
            async with self.session_maker() as session:
                cycle = await session.get(Cycle, cycle_id)

        if status.state != CycleState.RESOLVED:
            await self._sync_phase(cycle_id, status)
            return {"cycle_id": cycle_id, "status": "not_resolved_on_chain", "chain_state": status.state.name}
        if cycle.is_resolved:
            return {"cycle_id": cycle_id, "status": "in_sync"}

        chain_matches = await self.chain.read_daily_matches(cycle_id)
        chain_pairs = chain_matches.map(lambda m: m.result)
        chain_resolution = None
        if all(pair.is_set for pair in chain_pairs):
            chain_resolution = serialise_resolution(slot_fixture_ids(cycle), chain_pairs)
            if cycle.resolution_data and pairs_from_resolution(cycle.resolution_data) != chain_pairs:
                await record_sync_issue(
                    "resolution_divergence",
                    cycle_id,
                    cycle_id,
                    {"db": cycle.resolution_data, "chain": chain_resolution},
                    session_maker=self.session_maker,
                )

        evidence = await self._resolution_evidence(cycle)
        if evidence is None:
            logger.warning("CycleResolved log not found; adopting without tx hash", cycle_id=cycle_id)
            evidence = {"tx_hash": None, "block_timestamp": None, "prize_pool": status.prize_pool}

        adopted = await self._mark_resolved(
            cycle_id,
            tx_hash=evidence["tx_hash"],
            resolved_at=from_epoch(evidence["block_timestamp"]) if evidence["block_timestamp"] else None,
            prize_pool=evidence["prize_pool"],
            resolution_data=chain_resolution,
        )
        if not adopted:
            return {"cycle_id": cycle_id, "status": "in_sync"}
        logger.info("Adopted on-chain resolution", cycle_id=cycle_id, tx_hash=evidence["tx_hash"])
        return {"cycle_id": cycle_id, "status": "adopted_resolution", "tx_hash": evidence["tx_hash"]}

    async def _resolution_evidence(self, cycle: Cycle) -> dict | None:
        async with self.session_maker() as session:
            result = await session.execute(
                select(ChainEvent)
                .where(
                    ChainEvent.cycle_id == cycle.cycle_id,
                    ChainEvent.event_name.in_(("CycleResolved", "CycleStarted")),
                )
                .order_by(ChainEvent.block_number)
            )
            events = list(result.scalars().all())

        for event in events:
            if event.event_name == "CycleResolved":
                return {
                    "tx_hash": event.tx_hash,
                    "block_timestamp": await self.chain.block_timestamp(event.block_number),
                    "prize_pool": int(event.args["prizePool"]),
                }

        started = [e.block_number for e in events if e.event_name == "CycleStarted"]
        if started:
            from_block = started[0]
        else:
            from_block = max(0, await self.chain.head_block() - settings.reconcile_lookback_blocks)
        return await self.chain.find_cycle_resolved(cycle.cycle_id, from_block)

    async def adopt_cycle(self, cycle_id: int, status: CycleStatus | None = None) -> None:
        """Store an on-chain cycle the database is missing."""
        status = status or await self.chain.read_cycle_status(cycle_id)
        matches = await self.chain.read_daily_matches(cycle_id)
        slots = slots_from_match_inputs(matches)
        game_date = await self._selection_date(cycle_id, matches)
        await self._ensure_fixtures(matches)

        async with self.session_maker() as session:
            tx_hash = await session.scalar(
                select(ChainEvent.tx_hash)
                .where(ChainEvent.cycle_id == cycle_id, ChainEvent.event_name == "CycleStarted")
                .order_by(ChainEvent.block_number)
                .limit(1)
            )

        phase = phase_for_chain_state(status.state, prepared=False)
        if phase == CyclePhase.RESOLVED:
            phase = CyclePhase.ENDED_AWAITING_RESULTS
        await self._store_cycle(cycle_id, game_date, slots, status, phase, tx_hash=tx_hash)
        logger.warning(
            "Adopted cycle missing from database",
            cycle_id=cycle_id,
            game_date=game_date.isoformat() if game_date else None,
            chain_state=status.state.name,
        )

    async def _selection_date(self, cycle_id: int, matches: TenSlots[MatchInput]) -> date | None:
        """Game date whose stored selection is exactly these fixtures, if free."""
        fixture_ids = [m.fixture_id for m in matches]
        async with self.session_maker() as session:
            rows = await session.execute(
                select(DailyGameMatch).where(DailyGameMatch.fixture_id.in_(fixture_ids))
            )
            by_date: dict[date, list[int]] = {}
            for row in sorted(rows.scalars().all(), key=lambda r: r.display_order):
                by_date.setdefault(row.game_date, []).append(row.fixture_id)

            for game_date, ids in by_date.items():
                if ids != fixture_ids:
                    continue
                owner = await session.scalar(select(Cycle.cycle_id).where(Cycle.game_date == game_date))
                if owner is None or owner == cycle_id:
                    return game_date
        return None

    async def _ensure_fixtures(self, matches: TenSlots[MatchInput]) -> None:
        """Placeholder fixture rows so state polling picks adopted matches up."""
        async with self.session_maker() as session:
            async with session.begin():
                insert = insert_for(session)
                for match in matches:
                    await session.execute(
                        insert(Fixture)
                        .values(
                            fixture_id=match.fixture_id,
                            home_team="Unknown",
                            away_team="Unknown",
                            starting_at=from_epoch(match.start_time),
                            start_ts=match.start_time,
                            state=FixtureState.NOT_STARTED.value,
                        )
                        .on_conflict_do_nothing(index_elements=["fixture_id"])
                    )

    async def reconcile_recent(self) -> dict:
        """Adopt recent on-chain cycles and on-chain resolutions the database lacks."""
        chain_current = await self.chain.read_current_cycle_id()
        window_start = max(1, chain_current - settings.reconcile_cycle_window + 1)

        async with self.session_maker() as session:
            stored = await session.execute(
                select(Cycle.cycle_id, Cycle.is_resolved, Cycle.matches_data).where(
                    (Cycle.cycle_id >= window_start) | Cycle.is_resolved.is_(False)
                )
            )
            rows = stored.all()

        ahead = sorted(cid for cid, _, _ in rows if cid > chain_current)
        if ahead:
            await record_sync_issue(
                "db_ahead_of_chain",
                chain_current,
                ahead[-1],
                {"cycle_ids": ahead},
                session_maker=self.session_maker,
            )

        complete = {cid for cid, _, matches in rows if matches}
        unresolved = {cid for cid, resolved, _ in rows if not resolved and cid <= chain_current}
        missing = {cid for cid in range(window_start, chain_current + 1) if cid not in complete}

        outcomes = {}
        for cycle_id in sorted(missing | unresolved):
            try:
                async with self.locks.hold(cycle_lock_name(cycle_id)):
                    outcome = await self.reconcile(cycle_id)
            except LockNotAcquired:
                outcome = {"status": "skipped"}
            outcomes[cycle_id] = outcome["status"]

        logger.info("Reconciled recent cycles", chain_cycle_id=chain_current, cycles=outcomes)
        return {"status": "completed", "chain_cycle_id": chain_current, "cycles": outcomes}
