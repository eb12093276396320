"""Fixture and odds models."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from cycle_engine.database import Base
from cycle_engine.timeutil import utcnow


class Fixture(Base):
    """A football fixture as last reported by the sports data vendor."""

    __tablename__ = "fixtures"

    fixture_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    home_team: Mapped[str] = mapped_column(String(255), nullable=False)
    away_team: Mapped[str] = mapped_column(String(255), nullable=False)
    league_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    league_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    starting_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    start_ts: Mapped[int] = mapped_column(BigInteger, nullable=False)
    state: Mapped[str] = mapped_column(String(32), nullable=False, default="NotStarted", index=True)
    state_checked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


class FixtureOdds(Base):
    """Pre-match odds from a single bookmaker, decimal odds x1000."""

    __tablename__ = "fixture_odds"

    fixture_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    bookmaker_id: Mapped[int] = mapped_column(Integer, nullable=False)
    odds_home: Mapped[int] = mapped_column(Integer, nullable=False)
    odds_draw: Mapped[int] = mapped_column(Integer, nullable=False)
    odds_away: Mapped[int] = mapped_column(Integer, nullable=False)
    odds_over: Mapped[int] = mapped_column(Integer, nullable=False)
    odds_under: Mapped[int] = mapped_column(Integer, nullable=False)

    fetched_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
