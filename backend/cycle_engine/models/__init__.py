"""SQLAlchemy database models."""

from cycle_engine.models.fixture import Fixture, FixtureOdds
from cycle_engine.models.fixture_result import FixtureResult
from cycle_engine.models.cycle import Cycle
from cycle_engine.models.daily_game_match import DailyGameMatch
from cycle_engine.models.slip import Slip, PrizeClaim
from cycle_engine.models.chain_event import ChainEvent, EventWatermark
from cycle_engine.models.job_lock import JobLock, JobExecution
from cycle_engine.models.health_report import SyncIssue, HealthReport

__all__ = [
    "Fixture",
    "FixtureOdds",
    "FixtureResult",
    "Cycle",
    "DailyGameMatch",
    "Slip",
    "PrizeClaim",
    "ChainEvent",
    "EventWatermark",
    "JobLock",
    "JobExecution",
    "SyncIssue",
    "HealthReport",
]
