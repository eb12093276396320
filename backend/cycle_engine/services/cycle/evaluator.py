"""Slip scoring, identical to the contract's own evaluation.

Scores are integers throughout: each correct prediction multiplies the
running score by its locked odd and floor-divides by 1000.
"""

from dataclasses import dataclass, field

import structlog
from eth_utils import encode_hex, keccak
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cycle_engine.config import settings
from cycle_engine.database import async_session_maker
from cycle_engine.errors import InvariantViolation
from cycle_engine.models import Cycle, FixtureResult, Slip
from cycle_engine.schemas.chain import ChainPrediction
from cycle_engine.schemas.outcomes import (
    SELECTION_AWAY,
    SELECTION_DRAW,
    SELECTION_FOR_1X2,
    SELECTION_FOR_OU,
    SELECTION_HOME,
    SELECTION_OVER,
    SELECTION_UNDER,
    BetType,
    CycleState,
    Outcome1X2,
    OutcomeOU,
)
from cycle_engine.schemas.ten_slots import TenSlots
from cycle_engine.services.cycle.slots import (
    build_result_pairs,
    pairs_from_resolution,
    slot_fixture_ids,
)
from cycle_engine.timeutil import utcnow

logger = structlog.get_logger()

ODDS_SCALE = 1000

SELECTION_ALIASES = {
    "1": SELECTION_HOME,
    "x": SELECTION_DRAW,
    "2": SELECTION_AWAY,
    "home": SELECTION_HOME,
    "draw": SELECTION_DRAW,
    "away": SELECTION_AWAY,
    "over": SELECTION_OVER,
    "under": SELECTION_UNDER,
    "o": SELECTION_OVER,
    "u": SELECTION_UNDER,
}

# Legacy slips store keccak256 of the selection string
_HASH_SOURCES = ("1", "X", "2", "Home", "Draw", "Away", "Over", "Under", "O", "U")
SELECTION_HASHES = {
    encode_hex(keccak(text=source)).lower(): SELECTION_ALIASES[source.lower()]
    for source in _HASH_SOURCES
}


def canonical_selection(raw: str) -> str | None:
    """Canonical form of a stored selection, or None if unrecognised."""
    value = (raw or "").strip()
    if value.startswith("0x") and len(value) == 66:
        return SELECTION_HASHES.get(value.lower())
    return SELECTION_ALIASES.get(value.lower())


@dataclass(frozen=True)
class SlotOutcome:
    outcome_1x2: Outcome1X2
    outcome_ou25: OutcomeOU


@dataclass
class SlipScore:
    correct_count: int
    final_score: int
    correct_slots: list[int] = field(default_factory=list)
    unknown_selections: list[int] = field(default_factory=list)


def score_slip(predictions: TenSlots[ChainPrediction], outcomes: TenSlots[SlotOutcome]) -> SlipScore:
    """Correct count and scaled odds product, in slot order."""
    score = SlipScore(correct_count=0, final_score=ODDS_SCALE)
    for slot, (prediction, outcome) in enumerate(zip(predictions, outcomes)):
        selection = canonical_selection(prediction.selection)
        if selection is None:
            score.unknown_selections.append(slot)
            continue
        if prediction.bet_type == BetType.MONEYLINE:
            expected = SELECTION_FOR_1X2[outcome.outcome_1x2]
        else:
            expected = SELECTION_FOR_OU[outcome.outcome_ou25]
        if selection == expected:
            score.correct_count += 1
            score.final_score = score.final_score * prediction.selected_odd // ODDS_SCALE
            score.correct_slots.append(slot)
    return score


class SlipEvaluator:
    """Evaluates every unevaluated slip of a cycle the chain reports Resolved."""

    def __init__(
        self,
        chain,
        session_maker: async_sessionmaker[AsyncSession] = async_session_maker,
        leaderboard_size: int | None = None,
    ):
        self.chain = chain
        self.session_maker = session_maker
        self.leaderboard_size = leaderboard_size or settings.leaderboard_size

    async def slot_outcomes(self, session: AsyncSession, cycle: Cycle) -> TenSlots[SlotOutcome]:
        fixture_ids = slot_fixture_ids(cycle)
        rows = await session.execute(
            select(FixtureResult).where(FixtureResult.fixture_id.in_(list(fixture_ids)))
        )
        results = {r.fixture_id: r for r in rows.scalars().all()}

        missing = [fid for fid in fixture_ids if fid not in results or not results[fid].is_complete]
        if missing:
            raise InvariantViolation(
                "results_missing",
                f"Cycle {cycle.cycle_id} is resolved but {len(missing)} results are missing",
                cycle_id=cycle.cycle_id,
                fixture_ids=missing,
            )

        if cycle.resolution_data:
            submitted = pairs_from_resolution(cycle.resolution_data)
            if submitted != build_result_pairs(cycle, results):
                raise InvariantViolation(
                    "resolution_mismatch",
                    f"Stored results for cycle {cycle.cycle_id} differ from submitted resolution",
                    cycle_id=cycle.cycle_id,
                )

        return fixture_ids.map(
            lambda fid: SlotOutcome(
                Outcome1X2(results[fid].outcome_1x2),
                OutcomeOU(results[fid].outcome_ou25),
            )
        )

    async def evaluate_cycle(self, cycle_id: int) -> dict:
        status = await self.chain.read_cycle_status(cycle_id)
        if status.state != CycleState.RESOLVED:
            logger.info("Cycle not resolved on chain; skipping evaluation", cycle_id=cycle_id, state=status.state.name)
            return {"cycle_id": cycle_id, "status": "not_resolved"}

        evaluated = 0
        lost_races = 0
        mismatches = []

        async with self.session_maker() as session:
            async with session.begin():
                cycle = await session.get(Cycle, cycle_id)
                if cycle is None or not cycle.is_resolved:
                    logger.info("Cycle not yet resolved in database", cycle_id=cycle_id)
                    return {"cycle_id": cycle_id, "status": "db_lagging"}

                outcomes = await self.slot_outcomes(session, cycle)
                fixture_ids = slot_fixture_ids(cycle)

                pending = await session.execute(
                    select(Slip)
                    .where(Slip.cycle_id == cycle_id, Slip.is_evaluated.is_(False))
                    .order_by(Slip.slip_id)
                )
                for slip in pending.scalars().all():
                    predictions = TenSlots(ChainPrediction.from_dict(p) for p in slip.predictions)
                    for slot, prediction in enumerate(predictions):
                        if prediction.match_id != fixture_ids[slot]:
                            logger.warning(
                                "Prediction references a different fixture than its slot",
                                slip_id=slip.slip_id,
                                slot=slot,
                                match_id=prediction.match_id,
                                fixture_id=fixture_ids[slot],
                            )
                    score = score_slip(predictions, outcomes)
                    if score.unknown_selections:
                        logger.warning(
                            "Unknown selections counted as wrong",
                            slip_id=slip.slip_id,
                            slots=score.unknown_selections,
                        )

                    result = await session.execute(
                        update(Slip)
                        .where(Slip.slip_id == slip.slip_id, Slip.is_evaluated.is_(False))
                        .values(
                            is_evaluated=True,
                            correct_count=score.correct_count,
                            final_score=score.final_score,
                            evaluated_at=utcnow(),
                        )
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount == 0:
                        lost_races += 1
                        continue
                    evaluated += 1

                    if slip.onchain_final_score is not None and (
                        int(slip.onchain_final_score) != score.final_score
                        or slip.onchain_correct_count != score.correct_count
                    ):
                        mismatches.append(slip.slip_id)
                        logger.error(
                            "Evaluation differs from contract",
                            slip_id=slip.slip_id,
                            correct_count=score.correct_count,
                            final_score=score.final_score,
                            onchain_correct_count=slip.onchain_correct_count,
                            onchain_final_score=int(slip.onchain_final_score),
                        )

                await self._update_leaderboard(session, cycle_id)

        logger.info(
            "Evaluated cycle slips",
            cycle_id=cycle_id,
            evaluated=evaluated,
            already_evaluated=lost_races,
            mismatches=len(mismatches),
        )
        return {
            "cycle_id": cycle_id,
            "status": "completed",
            "evaluated": evaluated,
            "already_evaluated": lost_races,
            "mismatches": mismatches,
        }

    async def _update_leaderboard(self, session: AsyncSession, cycle_id: int) -> None:
        """Rank by final score, then correct count, then slip id."""
        rows = await session.execute(
            select(Slip.slip_id, Slip.leaderboard_rank)
            .where(
                Slip.cycle_id == cycle_id,
                Slip.is_evaluated.is_(True),
                Slip.correct_count > 0,
            )
            .order_by(Slip.final_score.desc(), Slip.correct_count.desc(), Slip.slip_id.asc())
        )
        for position, (slip_id, current_rank) in enumerate(rows.all(), start=1):
            rank = position if position <= self.leaderboard_size else None
            if rank != current_rank:
                await session.execute(
                    update(Slip)
                    .where(Slip.slip_id == slip_id)
                    .values(leaderboard_rank=rank)
                    .execution_options(synchronize_session=False)
                )

    async def pending_cycles(self) -> list[int]:
        """Resolved cycles that still have unevaluated slips."""
        async with self.session_maker() as session:
            result = await session.execute(
                select(Slip.cycle_id)
                .join(Cycle, Cycle.cycle_id == Slip.cycle_id)
                .where(Cycle.is_resolved.is_(True), Slip.is_evaluated.is_(False))
                .distinct()
                .order_by(Slip.cycle_id)
            )
            return [row[0] for row in result.all()]
