"""Cycle selection, scoring and lifecycle."""

from cycle_engine.services.cycle.evaluator import SlipEvaluator, score_slip
from cycle_engine.services.cycle.selector import MatchSelector
from cycle_engine.services.cycle.state_machine import CycleStateMachine, GateReport

__all__ = ["SlipEvaluator", "score_slip", "MatchSelector", "CycleStateMachine", "GateReport"]
