"""Indexed chain event and watermark models."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from cycle_engine.database import Base, JSONType
from cycle_engine.timeutil import utcnow


class ChainEvent(Base):
    """A decoded contract log, keyed by its position in the chain."""

    __tablename__ = "chain_events"

    tx_hash: Mapped[str] = mapped_column(String(66), primary_key=True)
    log_index: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    event_name: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    cycle_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True, index=True)
    contract_address: Mapped[str] = mapped_column(String(42), nullable=False)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    args: Mapped[dict] = mapped_column(JSONType, nullable=False)
    indexed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class EventWatermark(Base):
    """Last block fully processed by the indexer for a contract."""

    __tablename__ = "event_watermarks"

    contract_address: Mapped[str] = mapped_column(String(42), primary_key=True)
    last_block: Mapped[int] = mapped_column(BigInteger, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )
