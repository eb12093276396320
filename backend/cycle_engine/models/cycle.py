"""Cycle model."""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import BigInteger, Boolean, Date, DateTime, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from cycle_engine.database import Base, JSONType
from cycle_engine.timeutil import utcnow


class Cycle(Base):
    """Database mirror of one on-chain daily cycle.

    ``matches_data`` holds the ten slots in display order, each a dict with
    ``fixture_id``, ``start_time`` and the five scaled odds.
    """

    __tablename__ = "cycles"

    cycle_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    game_date: Mapped[date | None] = mapped_column(Date, nullable=True, unique=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="Open", index=True)

    matches_data: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    cycle_start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cycle_end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    end_ts: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    prize_pool: Mapped[Decimal | None] = mapped_column(Numeric(78, 0), nullable=True)
    slip_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tx_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)

    # Resolution
    ready_for_resolution: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    resolution_data: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    resolution_prepared_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolution_tx_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    @property
    def fixture_ids(self) -> list[int]:
        return [int(slot["fixture_id"]) for slot in (self.matches_data or [])]
