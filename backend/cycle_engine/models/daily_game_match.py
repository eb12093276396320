"""Daily game match selection model."""

from datetime import date, datetime

from sqlalchemy import BigInteger, Date, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from cycle_engine.database import Base, BigIntId
from cycle_engine.timeutil import utcnow


class DailyGameMatch(Base):
    """One of the ten fixtures selected for a game date, in slot order."""

    __tablename__ = "daily_game_matches"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    fixture_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    cycle_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    game_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False)

    home_team: Mapped[str] = mapped_column(String(255), nullable=False)
    away_team: Mapped[str] = mapped_column(String(255), nullable=False)
    league_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    match_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    start_ts: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Odds (decimal x1000)
    odds_home: Mapped[int] = mapped_column(Integer, nullable=False)
    odds_draw: Mapped[int] = mapped_column(Integer, nullable=False)
    odds_away: Mapped[int] = mapped_column(Integer, nullable=False)
    odds_over: Mapped[int] = mapped_column(Integer, nullable=False)
    odds_under: Mapped[int] = mapped_column(Integer, nullable=False)

    priority_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        UniqueConstraint("fixture_id", "cycle_id", name="uq_daily_game_matches_fixture_cycle"),
        UniqueConstraint("cycle_id", "display_order", name="uq_daily_game_matches_cycle_order"),
    )

    def to_slot(self) -> dict:
        return {
            "fixture_id": self.fixture_id,
            "start_time": self.start_ts,
            "odds_home": self.odds_home,
            "odds_draw": self.odds_draw,
            "odds_away": self.odds_away,
            "odds_over": self.odds_over,
            "odds_under": self.odds_under,
        }
