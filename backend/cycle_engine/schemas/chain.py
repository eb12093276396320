"""Typed shapes exchanged with the cycle contract."""

from dataclasses import dataclass, field
from enum import IntEnum

from cycle_engine.errors import InvariantViolation
from cycle_engine.schemas.outcomes import BetType, CycleState
from cycle_engine.schemas.ten_slots import TenSlots

UINT32_MAX = 2**32 - 1
UINT64_MAX = 2**64 - 1


class Moneyline(IntEnum):
    NOT_SET = 0
    HOME_WIN = 1
    DRAW = 2
    AWAY_WIN = 3


class OverUnder(IntEnum):
    NOT_SET = 0
    OVER = 1
    UNDER = 2


def _check_range(name: str, value: int, upper: int) -> None:
    if not isinstance(value, int) or value < 0 or value > upper:
        raise InvariantViolation("abi_range", f"{name}={value!r} out of range", field=name)


@dataclass(frozen=True)
class ResultPair:
    """Numeric result for one slot, as the contract stores it."""

    moneyline: Moneyline = Moneyline.NOT_SET
    over_under: OverUnder = OverUnder.NOT_SET

    @property
    def is_set(self) -> bool:
        return self.moneyline != Moneyline.NOT_SET and self.over_under != OverUnder.NOT_SET

    def as_abi(self) -> tuple[int, int]:
        return (int(self.moneyline), int(self.over_under))

    @classmethod
    def from_abi(cls, raw) -> "ResultPair":
        return cls(Moneyline(raw[0]), OverUnder(raw[1]))


@dataclass(frozen=True)
class MatchInput:
    """One slot of ``startDailyCycle``."""

    fixture_id: int
    start_time: int
    odds_home: int
    odds_draw: int
    odds_away: int
    odds_over: int
    odds_under: int
    result: ResultPair = field(default_factory=ResultPair)

    def __post_init__(self):
        _check_range("fixture_id", self.fixture_id, UINT64_MAX)
        _check_range("start_time", self.start_time, UINT64_MAX)
        for name in ("odds_home", "odds_draw", "odds_away", "odds_over", "odds_under"):
            _check_range(name, getattr(self, name), UINT32_MAX)

    def as_abi(self) -> tuple:
        return (
            self.fixture_id,
            self.start_time,
            self.odds_home,
            self.odds_draw,
            self.odds_away,
            self.odds_over,
            self.odds_under,
            self.result.as_abi(),
        )

    @classmethod
    def from_abi(cls, raw) -> "MatchInput":
        return cls(
            fixture_id=int(raw[0]),
            start_time=int(raw[1]),
            odds_home=int(raw[2]),
            odds_draw=int(raw[3]),
            odds_away=int(raw[4]),
            odds_over=int(raw[5]),
            odds_under=int(raw[6]),
            result=ResultPair.from_abi(raw[7]),
        )


@dataclass(frozen=True)
class CycleStatus:
    exists: bool
    state: CycleState
    end_time: int
    prize_pool: int
    slip_count: int
    has_winner: bool


@dataclass(frozen=True)
class ChainPrediction:
    match_id: int
    bet_type: BetType
    selection: str
    selected_odd: int

    def to_dict(self) -> dict:
        return {
            "match_id": self.match_id,
            "bet_type": int(self.bet_type),
            "selection": self.selection,
            "selected_odd": self.selected_odd,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ChainPrediction":
        return cls(
            match_id=int(data["match_id"]),
            bet_type=BetType(int(data["bet_type"])),
            selection=str(data["selection"]),
            selected_odd=int(data["selected_odd"]),
        )


@dataclass(frozen=True)
class SlipData:
    slip_id: int
    player: str
    cycle_id: int
    placed_at: int
    predictions: TenSlots[ChainPrediction]
    final_score: int
    correct_count: int
    is_evaluated: bool


@dataclass(frozen=True)
class LogEntry:
    """A raw ``eth_getLogs`` entry."""

    address: str
    topics: tuple[str, ...]
    data: str
    block_number: int
    tx_hash: str
    log_index: int

    @classmethod
    def from_rpc(cls, raw: dict) -> "LogEntry":
        return cls(
            address=raw["address"].lower(),
            topics=tuple(t.lower() for t in raw.get("topics", [])),
            data=raw.get("data", "0x"),
            block_number=int(raw["blockNumber"], 16),
            tx_hash=raw["transactionHash"].lower(),
            log_index=int(raw["logIndex"], 16),
        )


@dataclass(frozen=True)
class TxReceipt:
    tx_hash: str
    block_number: int
    status: int
    gas_used: int
    logs: tuple[LogEntry, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    @classmethod
    def from_rpc(cls, raw: dict) -> "TxReceipt":
        return cls(
            tx_hash=raw["transactionHash"].lower(),
            block_number=int(raw["blockNumber"], 16),
            status=int(raw.get("status", "0x0"), 16),
            gas_used=int(raw.get("gasUsed", "0x0"), 16),
            logs=tuple(LogEntry.from_rpc(log) for log in raw.get("logs", [])),
        )
