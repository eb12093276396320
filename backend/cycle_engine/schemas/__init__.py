"""Typed shapes shared across the engine."""

from cycle_engine.schemas.outcomes import (
    BetType,
    CyclePhase,
    CycleState,
    FixtureState,
    Outcome1X2,
    OutcomeOU,
)
from cycle_engine.schemas.ten_slots import SLOT_COUNT, TenSlots
from cycle_engine.schemas.chain import (
    ChainPrediction,
    CycleStatus,
    LogEntry,
    MatchInput,
    Moneyline,
    OverUnder,
    ResultPair,
    SlipData,
    TxReceipt,
)
from cycle_engine.schemas.sportmonks import (
    FinalScore,
    FixtureInfo,
    FixtureSnapshot,
    OddsSet,
)

__all__ = [
    "BetType",
    "CyclePhase",
    "CycleState",
    "FixtureState",
    "Outcome1X2",
    "OutcomeOU",
    "SLOT_COUNT",
    "TenSlots",
    "ChainPrediction",
    "CycleStatus",
    "LogEntry",
    "MatchInput",
    "Moneyline",
    "OverUnder",
    "ResultPair",
    "SlipData",
    "TxReceipt",
    "FinalScore",
    "FixtureInfo",
    "FixtureSnapshot",
    "OddsSet",
]
