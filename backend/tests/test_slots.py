"""
Unit tests for slot mapping and the ten-slot container.
"""

import pytest

from cycle_engine.errors import InvariantViolation
from cycle_engine.models import Cycle, FixtureResult
from cycle_engine.schemas.chain import MatchInput, Moneyline, OverUnder, ResultPair
from cycle_engine.schemas.ten_slots import TenSlots
from cycle_engine.services.cycle.normaliser import normalise
from cycle_engine.services.cycle.slots import (
    build_result_pairs,
    cross_check_slots,
    pairs_from_resolution,
    serialise_resolution,
    slot_fixture_ids,
    slots_from_match_inputs,
    to_result_pair,
)

from conftest import match_inputs

FIXTURE_IDS = list(range(1, 11))
SCORES = [(1, 0), (0, 0), (2, 2), (3, 1), (0, 1), (1, 1), (4, 0), (2, 3), (0, 0), (1, 2)]


def _cycle(fixture_ids=FIXTURE_IDS) -> Cycle:
    return Cycle(cycle_id=42, matches_data=slots_from_match_inputs(match_inputs(fixture_ids)))


def _results() -> dict[int, FixtureResult]:
    results = {}
    for fid, (home, away) in zip(FIXTURE_IDS, SCORES):
        results[fid] = FixtureResult(fixture_id=fid, **normalise(home, away).as_row())
    return results


class TestTenSlots:
    def test_rejects_wrong_length(self):
        with pytest.raises(InvariantViolation) as exc:
            TenSlots(range(9))
        assert exc.value.kind == "slot_count"

    def test_map_keeps_order(self):
        slots = TenSlots(range(10)).map(lambda x: x * 2)
        assert list(slots) == [0, 2, 4, 6, 8, 10, 12, 14, 16, 18]


class TestResultPairs:
    def test_ten_finished_fixtures(self):
        """Slot order follows matches_data, not fixture id or kickoff."""
        pairs = build_result_pairs(_cycle(), _results())
        assert [p.as_abi() for p in pairs] == [
            (1, 2), (2, 2), (2, 1), (1, 1), (3, 2),
            (2, 2), (1, 1), (3, 1), (2, 2), (3, 1),
        ]

    def test_slot_order_is_stored_order(self):
        reversed_ids = list(reversed(FIXTURE_IDS))
        pairs = build_result_pairs(_cycle(reversed_ids), _results())
        assert pairs[0].as_abi() == (3, 1)  # fixture 10: 1-2
        assert pairs[9].as_abi() == (1, 2)  # fixture 1: 1-0

    def test_missing_result_is_not_set(self):
        results = _results()
        del results[5]
        pairs = build_result_pairs(_cycle(), results)
        assert pairs[4] == ResultPair()
        assert not pairs[4].is_set

    def test_to_result_pair(self):
        assert to_result_pair("Home", "Under") == ResultPair(Moneyline.HOME_WIN, OverUnder.UNDER)
        assert to_result_pair(None, "Over") == ResultPair(Moneyline.NOT_SET, OverUnder.OVER)

    def test_resolution_serialisation_keeps_slots(self):
        cycle = _cycle()
        pairs = build_result_pairs(cycle, _results())
        data = serialise_resolution(slot_fixture_ids(cycle), pairs)
        assert data[1] == {
            "slot": 1,
            "fixture_id": 2,
            "outcome_1x2": "Draw",
            "outcome_ou25": "Under",
            "moneyline": 2,
            "over_under": 2,
        }
        assert pairs_from_resolution(list(reversed(data))) == pairs


class TestCrossCheck:
    def test_matching_chain_passes(self):
        cross_check_slots(_cycle(), match_inputs(FIXTURE_IDS))

    def test_swapped_slots_fail(self):
        swapped = FIXTURE_IDS[:]
        swapped[0], swapped[1] = swapped[1], swapped[0]
        with pytest.raises(InvariantViolation) as exc:
            cross_check_slots(_cycle(), match_inputs(swapped))
        assert exc.value.kind == "slot_mismatch"
        assert [m["slot"] for m in exc.value.details["mismatches"]] == [0, 1]

    def test_cycle_without_matches(self):
        with pytest.raises(InvariantViolation):
            slot_fixture_ids(Cycle(cycle_id=1, matches_data=None))


class TestMatchInput:
    def test_odds_out_of_uint32_range(self):
        with pytest.raises(InvariantViolation) as exc:
            MatchInput(1, 1, 2**32, 1000, 1000, 1000, 1000)
        assert exc.value.kind == "abi_range"
