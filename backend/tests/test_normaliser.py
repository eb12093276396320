"""
Unit tests for services/cycle/normaliser.py -- scores to canonical outcomes.
"""

from cycle_engine.schemas.outcomes import BTTS, Outcome1X2, OutcomeOU
from cycle_engine.schemas.sportmonks import FinalScore
from cycle_engine.services.cycle.normaliser import normalise, normalise_score, outcome_ou


class TestNormalise:
    def test_goalless_draw_is_draw_and_under(self):
        """0-0 is a real result, not a missing one."""
        result = normalise(0, 0)
        assert result is not None
        assert result.outcome_1x2 == Outcome1X2.DRAW
        assert result.outcome_ou25 == OutcomeOU.UNDER
        assert result.outcome_btts == BTTS.NO

    def test_home_win_over(self):
        result = normalise(3, 1)
        assert result.outcome_1x2 == Outcome1X2.HOME
        assert result.outcome_ou25 == OutcomeOU.OVER
        assert result.outcome_ou35 == OutcomeOU.OVER
        assert result.outcome_btts == BTTS.YES

    def test_away_win(self):
        assert normalise(0, 1).outcome_1x2 == Outcome1X2.AWAY

    def test_two_goals_is_under(self):
        assert normalise(1, 1).outcome_ou25 == OutcomeOU.UNDER
        assert normalise(2, 0).outcome_ou15 == OutcomeOU.OVER

    def test_missing_side_returns_none(self):
        assert normalise(None, 2) is None
        assert normalise(1, None) is None

    def test_negative_or_bool_scores_rejected(self):
        assert normalise(-1, 0) is None
        assert normalise(True, 0) is None

    def test_half_time_outcomes_only_with_both_sides(self):
        with_ht = normalise(2, 1, 1, 0)
        assert with_ht.outcome_ht_1x2 == Outcome1X2.HOME
        assert with_ht.outcome_ht_ou05 == OutcomeOU.OVER

        without_ht = normalise(2, 1, 1, None)
        assert without_ht.outcome_ht_1x2 is None
        assert without_ht.ht_home_score is None

    def test_as_row_uses_string_values(self):
        row = normalise(0, 0).as_row()
        assert row["outcome_1x2"] == "Draw"
        assert row["outcome_ou25"] == "Under"
        assert row["outcome_ht_1x2"] is None


class TestOutcomeOU:
    def test_line_is_compared_exactly(self):
        assert outcome_ou(1, 2, "2.5") == OutcomeOU.OVER
        assert outcome_ou(1, 1, "2.5") == OutcomeOU.UNDER
        assert outcome_ou(0, 0, "0.5") == OutcomeOU.UNDER


class TestNormaliseScore:
    def test_none_score(self):
        assert normalise_score(None) is None

    def test_final_score(self):
        result = normalise_score(FinalScore(2, 2, 1, 1))
        assert result.outcome_1x2 == Outcome1X2.DRAW
        assert result.outcome_ou25 == OutcomeOU.OVER
        assert result.outcome_ht_1x2 == Outcome1X2.DRAW
