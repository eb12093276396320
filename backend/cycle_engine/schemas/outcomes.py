"""Canonical outcome, state and phase enums used across the engine."""

from enum import Enum, IntEnum


class Outcome1X2(str, Enum):
    """Full-time result."""

    HOME = "Home"
    DRAW = "Draw"
    AWAY = "Away"


class OutcomeOU(str, Enum):
    """Goals over/under a line."""

    OVER = "Over"
    UNDER = "Under"


class BTTS(str, Enum):
    YES = "Yes"
    NO = "No"


class BetType(IntEnum):
    MONEYLINE = 0
    OVER_UNDER = 1


# Canonical prediction strings as stored on slips
SELECTION_HOME = "1"
SELECTION_DRAW = "X"
SELECTION_AWAY = "2"
SELECTION_OVER = "Over"
SELECTION_UNDER = "Under"

SELECTION_FOR_1X2 = {
    Outcome1X2.HOME: SELECTION_HOME,
    Outcome1X2.DRAW: SELECTION_DRAW,
    Outcome1X2.AWAY: SELECTION_AWAY,
}
SELECTION_FOR_OU = {
    OutcomeOU.OVER: SELECTION_OVER,
    OutcomeOU.UNDER: SELECTION_UNDER,
}


class FixtureState(str, Enum):
    """Fixture lifecycle as seen by the sports data vendor."""

    NOT_STARTED = "NotStarted"
    IN_PLAY_FIRST_HALF = "InPlayFirstHalf"
    HALF_TIME = "HalfTime"
    IN_PLAY_SECOND_HALF = "InPlaySecondHalf"
    EXTRA_TIME = "ExtraTime"
    PENALTIES = "Penalties"
    FINISHED = "Finished"
    FINISHED_AFTER_EXTRA = "FinishedAfterExtra"
    FINISHED_AFTER_PENALTIES = "FinishedAfterPenalties"
    CANCELLED = "Cancelled"
    POSTPONED = "Postponed"

    @property
    def is_finished(self) -> bool:
        return self in FINISHED_STATES

    @property
    def is_live(self) -> bool:
        return self in LIVE_STATES


FINISHED_STATES = frozenset({
    FixtureState.FINISHED,
    FixtureState.FINISHED_AFTER_EXTRA,
    FixtureState.FINISHED_AFTER_PENALTIES,
})

LIVE_STATES = frozenset({
    FixtureState.IN_PLAY_FIRST_HALF,
    FixtureState.HALF_TIME,
    FixtureState.IN_PLAY_SECOND_HALF,
    FixtureState.EXTRA_TIME,
    FixtureState.PENALTIES,
})

# Scheduling states a fixture may leave in any direction
PRE_MATCH_STATES = frozenset({FixtureState.NOT_STARTED, FixtureState.POSTPONED})

# Progression order; vendor flaps backwards are ignored unless forced
STATE_RANK = {
    FixtureState.NOT_STARTED: 0,
    FixtureState.POSTPONED: 0,
    FixtureState.IN_PLAY_FIRST_HALF: 1,
    FixtureState.HALF_TIME: 2,
    FixtureState.IN_PLAY_SECOND_HALF: 3,
    FixtureState.EXTRA_TIME: 4,
    FixtureState.PENALTIES: 5,
    FixtureState.FINISHED: 6,
    FixtureState.FINISHED_AFTER_EXTRA: 6,
    FixtureState.FINISHED_AFTER_PENALTIES: 6,
    FixtureState.CANCELLED: 6,
}

# SportMonks v3 developer_name codes
VENDOR_STATE_CODES = {
    "NS": FixtureState.NOT_STARTED,
    "TBA": FixtureState.NOT_STARTED,
    "INPLAY_1ST_HALF": FixtureState.IN_PLAY_FIRST_HALF,
    "HT": FixtureState.HALF_TIME,
    "BREAK": FixtureState.HALF_TIME,
    "INPLAY_2ND_HALF": FixtureState.IN_PLAY_SECOND_HALF,
    "INPLAY_ET": FixtureState.EXTRA_TIME,
    "EXTRA_TIME_BREAK": FixtureState.EXTRA_TIME,
    "INPLAY_PENALTIES": FixtureState.PENALTIES,
    "PEN_BREAK": FixtureState.PENALTIES,
    "FT": FixtureState.FINISHED,
    "AET": FixtureState.FINISHED_AFTER_EXTRA,
    "FT_PEN": FixtureState.FINISHED_AFTER_PENALTIES,
    "CANCL": FixtureState.CANCELLED,
    "ABANDONED": FixtureState.CANCELLED,
    "POSTP": FixtureState.POSTPONED,
    "DELAYED": FixtureState.POSTPONED,
    "SUSP": FixtureState.POSTPONED,
    "INTERRUPTED": FixtureState.POSTPONED,
}


def state_from_vendor(code: str | None) -> FixtureState | None:
    if not code:
        return None
    return VENDOR_STATE_CODES.get(code.upper())


class CycleState(IntEnum):
    """On-chain cycle state."""

    NOT_STARTED = 0
    ACTIVE = 1
    ENDED = 2
    RESOLVED = 3


class CyclePhase(str, Enum):
    """Database view of a cycle's lifecycle."""

    PLANNED = "Planned"
    OPENING = "Opening"
    OPEN = "Open"
    ENDED_AWAITING_RESULTS = "EndedAwaitingResults"
    RESOLUTION_PREPARED = "ResolutionPrepared"
    RESOLVING = "Resolving"
    RESOLVED = "Resolved"
    FAILED_OPENING = "FailedOpening"
    FAILED_RESOLVING = "FailedResolving"
