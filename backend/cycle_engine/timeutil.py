"""UTC-only time helpers.

Every instant compared against block time is an integer count of UTC
seconds. Naive datetimes are rejected rather than guessed at.
"""

import os
import time
from datetime import date, datetime, timezone

from cycle_engine.errors import InvariantViolation


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def utc_today() -> date:
    return utcnow().date()


def to_epoch(value: datetime) -> int:
    """Seconds since the epoch for an aware datetime."""
    if value.tzinfo is None or value.utcoffset() is None:
        raise InvariantViolation(
            "timezone_ambiguous",
            f"Refusing to convert naive datetime {value.isoformat()}",
        )
    return int(value.timestamp())


def from_epoch(seconds: int) -> datetime:
    return datetime.fromtimestamp(int(seconds), tz=timezone.utc)


def parse_vendor_utc(value: str) -> datetime:
    """Parse ``YYYY-MM-DD HH:MM:SS`` vendor strings, which are always UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def ensure_utc_process() -> None:
    """Pin the process timezone to UTC and fail if that did not take."""
    os.environ["TZ"] = "UTC"
    if hasattr(time, "tzset"):
        time.tzset()
    if time.timezone != 0 or time.localtime().tm_gmtoff != 0:
        raise RuntimeError("Process timezone is not UTC; refusing to start")


def as_utc(value: datetime) -> datetime:
    """Attach UTC to datetimes read back from drivers that drop the offset."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
