"""Slip and prize claim models."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, Boolean, DateTime, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from cycle_engine.database import Base, JSONType
from cycle_engine.timeutil import utcnow


class Slip(Base):
    """A player's ten predictions for one cycle."""

    __tablename__ = "slips"

    slip_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    cycle_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    player_address: Mapped[str] = mapped_column(String(42), nullable=False, index=True)
    placed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    predictions: Mapped[list] = mapped_column(JSONType, nullable=False)
    tx_hash: Mapped[str | None] = mapped_column(String(66), nullable=True)

    # Evaluation
    is_evaluated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    correct_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    final_score: Mapped[Decimal | None] = mapped_column(Numeric(78, 0), nullable=True)
    evaluated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    leaderboard_rank: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Values reported by the contract's own evaluation
    onchain_correct_count: Mapped[int | None] = mapped_column(Integer, nullable=True)
    onchain_final_score: Mapped[Decimal | None] = mapped_column(Numeric(78, 0), nullable=True)

    prize_claimed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class PrizeClaim(Base):
    """Mirror of a ``PrizeClaimed`` event."""

    __tablename__ = "prize_claims"

    cycle_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    player_address: Mapped[str] = mapped_column(String(42), primary_key=True)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(78, 0), nullable=False)
    tx_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    claimed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
