"""Slot mapping between a cycle's stored fixture list and the contract.

Slot ``i`` always means the i-th entry of ``Cycle.matches_data``. Nothing in
here looks fixtures up any other way.
"""

from collections.abc import Mapping

from cycle_engine.errors import InvariantViolation
from cycle_engine.models import Cycle, FixtureResult
from cycle_engine.schemas.chain import MatchInput, Moneyline, OverUnder, ResultPair
from cycle_engine.schemas.outcomes import Outcome1X2, OutcomeOU
from cycle_engine.schemas.ten_slots import TenSlots

MONEYLINE_FOR_OUTCOME = {
    Outcome1X2.HOME: Moneyline.HOME_WIN,
    Outcome1X2.DRAW: Moneyline.DRAW,
    Outcome1X2.AWAY: Moneyline.AWAY_WIN,
}
OVER_UNDER_FOR_OUTCOME = {
    OutcomeOU.OVER: OverUnder.OVER,
    OutcomeOU.UNDER: OverUnder.UNDER,
}
OUTCOME_FOR_MONEYLINE = {v: k for k, v in MONEYLINE_FOR_OUTCOME.items()}
OUTCOME_FOR_OVER_UNDER = {v: k for k, v in OVER_UNDER_FOR_OUTCOME.items()}


def to_result_pair(outcome_1x2: str | None, outcome_ou25: str | None) -> ResultPair:
    """Numeric pair for stored outcome strings; missing maps to NotSet."""
    moneyline = Moneyline.NOT_SET
    over_under = OverUnder.NOT_SET
    if outcome_1x2 is not None:
        moneyline = MONEYLINE_FOR_OUTCOME[Outcome1X2(outcome_1x2)]
    if outcome_ou25 is not None:
        over_under = OVER_UNDER_FOR_OUTCOME[OutcomeOU(outcome_ou25)]
    return ResultPair(moneyline, over_under)


def slot_fixture_ids(cycle: Cycle) -> TenSlots[int]:
    if not cycle.matches_data:
        raise InvariantViolation(
            "cycle_without_matches",
            f"Cycle {cycle.cycle_id} has no stored matches",
            cycle_id=cycle.cycle_id,
        )
    return TenSlots(int(slot["fixture_id"]) for slot in cycle.matches_data)


def slot_start_times(cycle: Cycle) -> TenSlots[int]:
    return TenSlots(int(slot["start_time"]) for slot in cycle.matches_data or [])


def match_inputs_from_slots(slots: list[dict]) -> TenSlots[MatchInput]:
    return TenSlots(
        MatchInput(
            fixture_id=int(slot["fixture_id"]),
            start_time=int(slot["start_time"]),
            odds_home=int(slot["odds_home"]),
            odds_draw=int(slot["odds_draw"]),
            odds_away=int(slot["odds_away"]),
            odds_over=int(slot["odds_over"]),
            odds_under=int(slot["odds_under"]),
        )
        for slot in slots
    )


def slots_from_match_inputs(matches: TenSlots[MatchInput]) -> list[dict]:
    return [
        {
            "fixture_id": m.fixture_id,
            "start_time": m.start_time,
            "odds_home": m.odds_home,
            "odds_draw": m.odds_draw,
            "odds_away": m.odds_away,
            "odds_over": m.odds_over,
            "odds_under": m.odds_under,
        }
        for m in matches
    ]


def build_result_pairs(
    cycle: Cycle, results: Mapping[int, FixtureResult]
) -> TenSlots[ResultPair]:
    """Slot-ordered result pairs. Slots without a result come back NotSet."""
    pairs = []
    for fixture_id in slot_fixture_ids(cycle):
        result = results.get(fixture_id)
        if result is None:
            pairs.append(ResultPair())
        else:
            pairs.append(to_result_pair(result.outcome_1x2, result.outcome_ou25))
    return TenSlots(pairs)


def cross_check_slots(cycle: Cycle, chain_matches: TenSlots[MatchInput]) -> None:
    """Raise unless every slot's fixture id and start time match the chain."""
    ids = slot_fixture_ids(cycle)
    starts = slot_start_times(cycle)
    mismatches = []
    for i, chain_match in enumerate(chain_matches):
        if chain_match.fixture_id != ids[i] or chain_match.start_time != starts[i]:
            mismatches.append({
                "slot": i,
                "db_fixture_id": ids[i],
                "chain_fixture_id": chain_match.fixture_id,
                "db_start_time": starts[i],
                "chain_start_time": chain_match.start_time,
            })
    if mismatches:
        raise InvariantViolation(
            "slot_mismatch",
            f"Cycle {cycle.cycle_id} slots differ from chain in {len(mismatches)} places",
            cycle_id=cycle.cycle_id,
            mismatches=mismatches,
        )


def serialise_resolution(fixture_ids: TenSlots[int], pairs: TenSlots[ResultPair]) -> list[dict]:
    return [
        {
            "slot": i,
            "fixture_id": fixture_id,
            "outcome_1x2": OUTCOME_FOR_MONEYLINE[pair.moneyline].value,
            "outcome_ou25": OUTCOME_FOR_OVER_UNDER[pair.over_under].value,
            "moneyline": int(pair.moneyline),
            "over_under": int(pair.over_under),
        }
        for i, (fixture_id, pair) in enumerate(zip(fixture_ids, pairs))
    ]


def pairs_from_resolution(resolution_data: list[dict]) -> TenSlots[ResultPair]:
    ordered = sorted(resolution_data, key=lambda entry: entry["slot"])
    return TenSlots(
        ResultPair(Moneyline(entry["moneyline"]), OverUnder(entry["over_under"]))
        for entry in ordered
    )
