"""SportMonks v3 payload shapes and the engine-facing fixture types.

Vendor JSON is validated into the pydantic models below (unknown fields are
ignored) and immediately converted into the plain dataclasses the rest of the
engine works with.
"""

from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from cycle_engine.schemas.outcomes import FixtureState


class VendorModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class SMParticipantMeta(VendorModel):
    location: str | None = None


class SMParticipant(VendorModel):
    id: int
    name: str
    meta: SMParticipantMeta = Field(default_factory=SMParticipantMeta)


class SMLeague(VendorModel):
    id: int
    name: str


class SMState(VendorModel):
    id: int | None = None
    state: str | None = None
    developer_name: str | None = None
    short_name: str | None = None

    @property
    def code(self) -> str | None:
        return self.developer_name or self.state or self.short_name


class SMScoreValue(VendorModel):
    goals: int | None = None
    participant: str | None = None


class SMScore(VendorModel):
    description: str
    participant_id: int | None = None
    score: SMScoreValue


class SMOdd(VendorModel):
    market_id: int
    bookmaker_id: int
    label: str
    value: str | float
    total: str | float | None = None
    name: str | None = None


class SMFixture(VendorModel):
    id: int
    name: str | None = None
    starting_at: str | None = None
    starting_at_timestamp: int | None = None
    state_id: int | None = None
    league: SMLeague | None = None
    participants: list[SMParticipant] = Field(default_factory=list)
    odds: list[SMOdd] = Field(default_factory=list)
    scores: list[SMScore] = Field(default_factory=list)
    state: SMState | None = None


class SMPagination(VendorModel):
    current_page: int = 1
    has_more: bool = False


class SMFixtureList(VendorModel):
    data: list[SMFixture] = Field(default_factory=list)
    pagination: SMPagination | None = None


class SMFixtureEnvelope(VendorModel):
    data: SMFixture


@dataclass
class FixtureInfo:
    """A fixture as listed for a game date."""

    fixture_id: int
    home_team: str
    away_team: str
    league_id: int | None
    league_name: str
    starting_at: datetime
    start_ts: int
    state: FixtureState


@dataclass(frozen=True)
class OddsSet:
    """Five markets from one bookmaker, decimal odds scaled x1000."""

    bookmaker_id: int
    home: int
    draw: int
    away: int
    over: int
    under: int

    def as_tuple(self) -> tuple[int, int, int, int, int]:
        return (self.home, self.draw, self.away, self.over, self.under)


@dataclass(frozen=True)
class FinalScore:
    """90-minute score. Half-time goals are optional."""

    home: int
    away: int
    ht_home: int | None = None
    ht_away: int | None = None


@dataclass
class FixtureSnapshot:
    """State and (when finished) score of a fixture from a single request."""

    fixture_id: int
    state: FixtureState
    score: FinalScore | None
