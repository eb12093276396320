from __future__ import annotations

import os
import sys
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("ENVIRONMENT", "development")

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import cycle_engine.models  # noqa: F401
from cycle_engine.database import Base
from cycle_engine.errors import ChainRevertError, RevertKind
from cycle_engine.schemas.chain import CycleStatus, LogEntry, MatchInput, ResultPair, TxReceipt
from cycle_engine.schemas.outcomes import CycleState, FixtureState
from cycle_engine.schemas.sportmonks import FinalScore, FixtureInfo, FixtureSnapshot, OddsSet
from cycle_engine.schemas.ten_slots import TenSlots
from cycle_engine.timeutil import to_epoch

CONTRACT_ADDRESS = "0x00000000000000000000000000000000000000A1"
GAME_DATE = date(2026, 10, 18)
MORNING = datetime(2026, 10, 18, 8, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def session_maker():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


def make_fixture(fixture_id: int, kickoff: datetime, league: str = "Eredivisie", **overrides) -> FixtureInfo:
    values = dict(
        fixture_id=fixture_id,
        home_team=f"Home {fixture_id}",
        away_team=f"Away {fixture_id}",
        league_id=fixture_id % 7,
        league_name=league,
        starting_at=kickoff,
        start_ts=to_epoch(kickoff),
        state=FixtureState.NOT_STARTED,
    )
    values.update(overrides)
    return FixtureInfo(**values)


def make_odds(home=1800, draw=3400, away=4200, over=1900, under=1900, bookmaker_id=2) -> OddsSet:
    return OddsSet(bookmaker_id=bookmaker_id, home=home, draw=draw, away=away, over=over, under=under)


class FakeFixtureSource:
    """In-memory stand-in for the SportMonks client."""

    def __init__(self, fixtures: list[FixtureInfo] | None = None):
        self.fixtures = fixtures or []
        self.odds: dict[int, OddsSet] = {f.fixture_id: make_odds() for f in self.fixtures}
        self.snapshots: dict[int, FixtureSnapshot] = {}
        self.snapshot_calls: list[int] = []

    async def fixtures_for_date(self, game_date):
        return [f for f in self.fixtures if f.starting_at.date() == game_date]

    async def odds_for_fixture(self, fixture_id):
        return self.odds.get(fixture_id)

    async def fixture_snapshot(self, fixture_id):
        self.snapshot_calls.append(fixture_id)
        return self.snapshots.get(
            fixture_id, FixtureSnapshot(fixture_id, FixtureState.NOT_STARTED, None)
        )

    def finish(self, fixture_id: int, home: int, away: int, state=FixtureState.FINISHED) -> None:
        self.snapshots[fixture_id] = FixtureSnapshot(fixture_id, state, FinalScore(home, away))


@pytest.fixture
def day_fixtures() -> list[FixtureInfo]:
    """Twelve selectable fixtures on the game date, kicking off hourly from noon."""
    kickoff = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
    return [
        make_fixture(1000 + i, kickoff + timedelta(hours=i // 2), league=f"League {i % 6}")
        for i in range(12)
    ]


@pytest.fixture
def fixture_source(day_fixtures) -> FakeFixtureSource:
    return FakeFixtureSource(day_fixtures)


class FakeChain:
    """Contract double holding cycles, slips and logs in memory."""

    def __init__(self, address: str = CONTRACT_ADDRESS):
        self.address = address
        self.current_cycle_id = 0
        self.cycles: dict[int, dict] = {}
        self.slips: dict = {}
        self.logs: list[LogEntry] = []
        self.head = 100
        self.block_time = to_epoch(MORNING)
        self.block_times: dict[int, int] = {}
        self.start_error: Exception | None = None
        self.resolve_error: Exception | None = None
        self.start_calls = 0
        self.resolve_calls = 0
        self.resolved_logs: dict[int, dict] = {}

    def _receipt(self) -> TxReceipt:
        self.head += 1
        return TxReceipt(tx_hash=f"0x{self.head:064x}", block_number=self.head, status=1, gas_used=21000)

    async def read_current_cycle_id(self) -> int:
        return self.current_cycle_id

    async def read_cycle_status(self, cycle_id: int) -> CycleStatus:
        cycle = self.cycles.get(cycle_id)
        if cycle is None:
            return CycleStatus(False, CycleState.NOT_STARTED, 0, 0, 0, False)
        return CycleStatus(True, cycle["state"], cycle["end_time"], cycle["prize_pool"], cycle["slip_count"], False)

    async def read_daily_matches(self, cycle_id: int) -> TenSlots[MatchInput]:
        return TenSlots(self.cycles[cycle_id]["matches"])

    async def read_slip(self, slip_id: int):
        return self.slips[slip_id]

    async def head_block(self) -> int:
        return self.head

    async def current_block_time(self) -> int:
        return self.block_time

    async def block_timestamp(self, block_number: int) -> int:
        return self.block_times.get(block_number, self.block_time)

    async def subscribe_logs(self, from_block, topics=None, to_block=None):
        head = self.head if to_block is None else to_block
        yield head, [log for log in self.logs if from_block <= log.block_number <= head]

    async def find_cycle_resolved(self, cycle_id: int, from_block: int):
        return self.resolved_logs.get(cycle_id)

    def open_on_chain(self, matches: TenSlots[MatchInput], state=CycleState.ACTIVE) -> TxReceipt:
        self.current_cycle_id += 1
        self.cycles[self.current_cycle_id] = {
            "matches": list(matches),
            "state": state,
            "end_time": min(m.start_time for m in matches),
            "prize_pool": 5_000,
            "slip_count": 0,
        }
        return self._receipt()

    def resolve_on_chain(self, cycle_id: int, results: TenSlots[ResultPair]) -> TxReceipt:
        cycle = self.cycles[cycle_id]
        cycle["matches"] = [replace(m, result=r) for m, r in zip(cycle["matches"], results)]
        cycle["state"] = CycleState.RESOLVED
        receipt = self._receipt()
        self.resolved_logs[cycle_id] = {
            "tx_hash": receipt.tx_hash,
            "block_number": receipt.block_number,
            "block_timestamp": self.block_time,
            "prize_pool": cycle["prize_pool"],
        }
        return receipt

    async def start_cycle(self, matches: TenSlots[MatchInput]) -> TxReceipt:
        self.start_calls += 1
        if self.start_error is not None:
            raise self.start_error
        return self.open_on_chain(matches)

    async def resolve_cycle(self, cycle_id: int, results: TenSlots[ResultPair]) -> TxReceipt:
        self.resolve_calls += 1
        if self.resolve_error is not None:
            raise self.resolve_error
        if self.cycles[cycle_id]["state"] == CycleState.RESOLVED:
            raise ChainRevertError(RevertKind.ALREADY_RESOLVED, "already resolved")
        if self.cycles[cycle_id]["state"] != CycleState.ENDED:
            raise ChainRevertError(RevertKind.TIMING_NOT_MET, "cycle not ended")
        return self.resolve_on_chain(cycle_id, results)


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


def match_inputs(fixture_ids, first_kickoff: datetime = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)):
    return TenSlots(
        MatchInput(
            fixture_id=fid,
            start_time=to_epoch(first_kickoff + timedelta(minutes=30 * i)),
            odds_home=1800,
            odds_draw=3400,
            odds_away=4200,
            odds_over=1900,
            odds_under=1900,
        )
        for i, fid in enumerate(fixture_ids)
    )
