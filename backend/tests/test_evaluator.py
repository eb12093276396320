"""
Tests for slip scoring and cycle evaluation.
"""

from decimal import Decimal

import pytest
from eth_utils import encode_hex, keccak
from sqlalchemy import select

from cycle_engine.models import Cycle, FixtureResult, Slip
from cycle_engine.schemas.chain import ChainPrediction
from cycle_engine.schemas.outcomes import BetType, CycleState, Outcome1X2, OutcomeOU
from cycle_engine.schemas.ten_slots import TenSlots
from cycle_engine.services.cycle.evaluator import (
    SlipEvaluator,
    SlotOutcome,
    canonical_selection,
    score_slip,
)
from cycle_engine.services.cycle.normaliser import normalise
from cycle_engine.services.cycle.slots import slots_from_match_inputs

from conftest import match_inputs

FIXTURE_IDS = list(range(1, 11))
SCORES = [(1, 0), (0, 0), (2, 2), (3, 1), (0, 1), (1, 1), (4, 0), (2, 3), (0, 0), (1, 2)]


def _outcomes() -> TenSlots[SlotOutcome]:
    return TenSlots(
        SlotOutcome(normalise(h, a).outcome_1x2, normalise(h, a).outcome_ou25) for h, a in SCORES
    )


def _three_correct() -> TenSlots[ChainPrediction]:
    """Home on slot 1, Over on slot 4, Home on slot 7, the rest wrong."""
    predictions = []
    for slot, fid in enumerate(FIXTURE_IDS):
        if slot == 0:
            predictions.append(ChainPrediction(fid, BetType.MONEYLINE, "1", 1800))
        elif slot == 3:
            predictions.append(ChainPrediction(fid, BetType.OVER_UNDER, "Over", 1900))
        elif slot == 6:
            predictions.append(ChainPrediction(fid, BetType.MONEYLINE, "1", 1500))
        elif SCORES[slot][0] + SCORES[slot][1] > 2:
            predictions.append(ChainPrediction(fid, BetType.OVER_UNDER, "Under", 2000))
        else:
            predictions.append(ChainPrediction(fid, BetType.OVER_UNDER, "Over", 2000))
    return TenSlots(predictions)


class TestScoreSlip:
    def test_three_correct(self):
        score = score_slip(_three_correct(), _outcomes())
        assert score.correct_count == 3
        assert score.final_score == 5130
        assert score.correct_slots == [0, 3, 6]

    def test_all_wrong_keeps_base_score(self):
        wrong = TenSlots(
            ChainPrediction(fid, BetType.MONEYLINE, "X", 3000)
            for fid in (1, 4, 5, 7, 8, 10, 1, 4, 5, 7)
        )
        outcomes = TenSlots(SlotOutcome(Outcome1X2.HOME, OutcomeOU.OVER) for _ in range(10))
        score = score_slip(wrong, outcomes)
        assert score.correct_count == 0
        assert score.final_score == 1000

    def test_floor_division_per_step(self):
        outcomes = TenSlots(SlotOutcome(Outcome1X2.DRAW, OutcomeOU.UNDER) for _ in range(10))
        predictions = TenSlots(
            ChainPrediction(i, BetType.MONEYLINE, "X", 1333) if i < 2 else ChainPrediction(i, BetType.MONEYLINE, "1", 1000)
            for i in range(10)
        )
        # 1000 * 1333 // 1000 = 1333; 1333 * 1333 // 1000 = 1776
        assert score_slip(predictions, outcomes).final_score == 1776

    def test_unknown_selection_counts_as_wrong(self):
        outcomes = TenSlots(SlotOutcome(Outcome1X2.HOME, OutcomeOU.OVER) for _ in range(10))
        predictions = TenSlots(ChainPrediction(i, BetType.MONEYLINE, "maybe", 2000) for i in range(10))
        score = score_slip(predictions, outcomes)
        assert score.correct_count == 0
        assert score.unknown_selections == list(range(10))


class TestCanonicalSelection:
    @pytest.mark.parametrize("raw,expected", [
        ("1", "1"), ("home", "1"), ("X", "X"), ("draw", "X"),
        ("2", "2"), ("Away", "2"), ("over", "Over"), ("U", "Under"),
    ])
    def test_aliases(self, raw, expected):
        assert canonical_selection(raw) == expected

    def test_keccak_hash(self):
        assert canonical_selection(encode_hex(keccak(text="Over"))) == "Over"
        assert canonical_selection(encode_hex(keccak(text="1")).upper().replace("0X", "0x")) == "1"

    def test_unknown(self):
        assert canonical_selection("") is None
        assert canonical_selection("0x" + "ab" * 32) is None


async def _seed_resolved_cycle(session_maker, slips: list[Slip]) -> None:
    async with session_maker() as session:
        async with session.begin():
            session.add(Cycle(
                cycle_id=42,
                status="Resolved",
                is_resolved=True,
                matches_data=slots_from_match_inputs(match_inputs(FIXTURE_IDS)),
            ))
            for fid, (home, away) in zip(FIXTURE_IDS, SCORES):
                session.add(FixtureResult(fixture_id=fid, **normalise(home, away).as_row()))
            session.add_all(slips)


def _slip(slip_id: int, predictions: TenSlots[ChainPrediction], **extra) -> Slip:
    return Slip(
        slip_id=slip_id,
        cycle_id=42,
        player_address=f"0x{slip_id:040x}",
        predictions=[p.to_dict() for p in predictions],
        **extra,
    )


class TestSlipEvaluator:
    @pytest.mark.asyncio
    async def test_evaluates_and_ranks(self, session_maker, chain):
        chain.cycles[42] = {
            "matches": list(match_inputs(FIXTURE_IDS)),
            "state": CycleState.RESOLVED,
            "end_time": 0,
            "prize_pool": 0,
            "slip_count": 2,
        }
        losing = TenSlots(ChainPrediction(fid, BetType.MONEYLINE, "2", 2000) for fid in FIXTURE_IDS)
        await _seed_resolved_cycle(session_maker, [_slip(1, losing), _slip(2, _three_correct())])

        evaluator = SlipEvaluator(chain, session_maker)
        assert await evaluator.pending_cycles() == [42]
        result = await evaluator.evaluate_cycle(42)
        assert result["status"] == "completed"
        assert result["evaluated"] == 2

        async with session_maker() as session:
            slips = {s.slip_id: s for s in (await session.execute(select(Slip))).scalars()}
        assert slips[2].correct_count == 3
        assert int(slips[2].final_score) == 5130
        # Away wins in slots 5, 8 and 10
        assert slips[1].correct_count == 3
        assert int(slips[1].final_score) == 8000
        assert slips[1].leaderboard_rank == 1
        assert slips[2].leaderboard_rank == 2

    @pytest.mark.asyncio
    async def test_second_run_is_a_no_op(self, session_maker, chain):
        chain.cycles[42] = {
            "matches": list(match_inputs(FIXTURE_IDS)),
            "state": CycleState.RESOLVED,
            "end_time": 0,
            "prize_pool": 0,
            "slip_count": 1,
        }
        await _seed_resolved_cycle(session_maker, [_slip(7, _three_correct())])
        evaluator = SlipEvaluator(chain, session_maker)

        first = await evaluator.evaluate_cycle(42)
        second = await evaluator.evaluate_cycle(42)
        assert first["evaluated"] == 1
        assert second["evaluated"] == 0
        assert await evaluator.pending_cycles() == []

    @pytest.mark.asyncio
    async def test_skips_cycle_not_resolved_on_chain(self, session_maker, chain):
        chain.cycles[42] = {
            "matches": list(match_inputs(FIXTURE_IDS)),
            "state": CycleState.ENDED,
            "end_time": 0,
            "prize_pool": 0,
            "slip_count": 1,
        }
        await _seed_resolved_cycle(session_maker, [_slip(7, _three_correct())])
        result = await SlipEvaluator(chain, session_maker).evaluate_cycle(42)
        assert result["status"] == "not_resolved"

    @pytest.mark.asyncio
    async def test_flags_contract_disagreement(self, session_maker, chain):
        chain.cycles[42] = {
            "matches": list(match_inputs(FIXTURE_IDS)),
            "state": CycleState.RESOLVED,
            "end_time": 0,
            "prize_pool": 0,
            "slip_count": 1,
        }
        slip = _slip(9, _three_correct(), onchain_correct_count=3, onchain_final_score=Decimal(5000))
        await _seed_resolved_cycle(session_maker, [slip])
        result = await SlipEvaluator(chain, session_maker).evaluate_cycle(42)
        assert result["mismatches"] == [9]
