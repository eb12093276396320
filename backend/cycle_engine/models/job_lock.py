"""Advisory lock and job execution log models."""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from cycle_engine.database import Base, BigIntId, JSONType
from cycle_engine.timeutil import utcnow


class JobLock(Base):
    """Named lock with a holder and an expiry. One row per held lock."""

    __tablename__ = "job_locks"

    lock_name: Mapped[str] = mapped_column(String(128), primary_key=True)
    locked_by: Mapped[str] = mapped_column(String(255), nullable=False)
    execution_id: Mapped[str] = mapped_column(String(36), nullable=False)
    locked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)


class JobExecution(Base):
    """One scheduler run of a job."""

    __tablename__ = "job_executions"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)
    job_name: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    execution_id: Mapped[str] = mapped_column(String(36), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False)  # started, completed, failed, skipped, timeout
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    result: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
