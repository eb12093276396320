"""Fixture result model."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from cycle_engine.database import Base
from cycle_engine.timeutil import utcnow


class FixtureResult(Base):
    """Final 90-minute score and the outcomes derived from it.

    Once ``outcome_1x2`` and ``outcome_ou25`` are both set the row is
    never updated again.
    """

    __tablename__ = "fixture_results"

    fixture_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)

    # Final Scores
    home_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    away_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    ht_home_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    ht_away_score: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Cycle outcomes
    outcome_1x2: Mapped[str | None] = mapped_column(String(8), nullable=True)
    outcome_ou25: Mapped[str | None] = mapped_column(String(8), nullable=True)

    # Auxiliary outcomes
    outcome_ou05: Mapped[str | None] = mapped_column(String(8), nullable=True)
    outcome_ou15: Mapped[str | None] = mapped_column(String(8), nullable=True)
    outcome_ou35: Mapped[str | None] = mapped_column(String(8), nullable=True)
    outcome_btts: Mapped[str | None] = mapped_column(String(8), nullable=True)
    outcome_ht_1x2: Mapped[str | None] = mapped_column(String(8), nullable=True)
    outcome_ht_ou05: Mapped[str | None] = mapped_column(String(8), nullable=True)
    outcome_ht_ou15: Mapped[str | None] = mapped_column(String(8), nullable=True)

    finished_state: Mapped[str | None] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    @property
    def is_complete(self) -> bool:
        return (
            self.home_score is not None
            and self.away_score is not None
            and self.outcome_1x2 is not None
            and self.outcome_ou25 is not None
        )
