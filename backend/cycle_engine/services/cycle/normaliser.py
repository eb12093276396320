"""Raw scores to canonical outcomes.

All functions here are pure. A missing score is ``None`` and never zero;
0-0 is a Draw and Under like any other scoreline.
"""

from dataclasses import dataclass
from decimal import Decimal

from cycle_engine.schemas.outcomes import BTTS, Outcome1X2, OutcomeOU
from cycle_engine.schemas.sportmonks import FinalScore


@dataclass(frozen=True)
class NormalisedResult:
    home_score: int
    away_score: int
    ht_home_score: int | None
    ht_away_score: int | None
    outcome_1x2: Outcome1X2
    outcome_ou25: OutcomeOU
    # Auxiliary markets for user-created pools
    outcome_ou05: OutcomeOU
    outcome_ou15: OutcomeOU
    outcome_ou35: OutcomeOU
    outcome_btts: BTTS
    outcome_ht_1x2: Outcome1X2 | None
    outcome_ht_ou05: OutcomeOU | None
    outcome_ht_ou15: OutcomeOU | None

    def as_row(self) -> dict:
        """Column values for ``fixture_results``."""
        return {
            "home_score": self.home_score,
            "away_score": self.away_score,
            "ht_home_score": self.ht_home_score,
            "ht_away_score": self.ht_away_score,
            "outcome_1x2": self.outcome_1x2.value,
            "outcome_ou25": self.outcome_ou25.value,
            "outcome_ou05": self.outcome_ou05.value,
            "outcome_ou15": self.outcome_ou15.value,
            "outcome_ou35": self.outcome_ou35.value,
            "outcome_btts": self.outcome_btts.value,
            "outcome_ht_1x2": self.outcome_ht_1x2.value if self.outcome_ht_1x2 else None,
            "outcome_ht_ou05": self.outcome_ht_ou05.value if self.outcome_ht_ou05 else None,
            "outcome_ht_ou15": self.outcome_ht_ou15.value if self.outcome_ht_ou15 else None,
        }


def _valid_score(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def outcome_1x2(home: int, away: int) -> Outcome1X2:
    if home > away:
        return Outcome1X2.HOME
    if home < away:
        return Outcome1X2.AWAY
    return Outcome1X2.DRAW


def outcome_ou(home: int, away: int, line: str | Decimal = "2.5") -> OutcomeOU:
    return OutcomeOU.OVER if Decimal(home + away) > Decimal(str(line)) else OutcomeOU.UNDER


def outcome_btts(home: int, away: int) -> BTTS:
    return BTTS.YES if home > 0 and away > 0 else BTTS.NO


def normalise(
    home: int | None,
    away: int | None,
    ht_home: int | None = None,
    ht_away: int | None = None,
) -> NormalisedResult | None:
    """Outcomes for a final score, or None if either side is missing."""
    if not (_valid_score(home) and _valid_score(away)):
        return None
    has_ht = _valid_score(ht_home) and _valid_score(ht_away)
    return NormalisedResult(
        home_score=home,
        away_score=away,
        ht_home_score=ht_home if has_ht else None,
        ht_away_score=ht_away if has_ht else None,
        outcome_1x2=outcome_1x2(home, away),
        outcome_ou25=outcome_ou(home, away, "2.5"),
        outcome_ou05=outcome_ou(home, away, "0.5"),
        outcome_ou15=outcome_ou(home, away, "1.5"),
        outcome_ou35=outcome_ou(home, away, "3.5"),
        outcome_btts=outcome_btts(home, away),
        outcome_ht_1x2=outcome_1x2(ht_home, ht_away) if has_ht else None,
        outcome_ht_ou05=outcome_ou(ht_home, ht_away, "0.5") if has_ht else None,
        outcome_ht_ou15=outcome_ou(ht_home, ht_away, "1.5") if has_ht else None,
    )


def normalise_score(score: FinalScore | None) -> NormalisedResult | None:
    if score is None:
        return None
    return normalise(score.home, score.away, score.ht_home, score.ht_away)
