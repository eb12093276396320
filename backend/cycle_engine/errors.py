"""Error kinds raised by the engine and how jobs react to them."""

from enum import Enum


class EngineError(Exception):
    """Base class for all engine errors."""


class TransientError(EngineError):
    """Network failure, 5xx, timeout or malformed payload. Safe to retry reads."""


class RateLimitedError(TransientError):
    """HTTP 429 from an upstream API."""

    def __init__(self, message: str, retry_after: float = 1.0):
        super().__init__(message)
        self.retry_after = retry_after


class ReceiptTimeoutError(TransientError):
    """A submitted transaction was not mined before the deadline."""

    def __init__(self, tx_hash: str, timeout: float):
        super().__init__(f"No receipt for {tx_hash} after {timeout:.0f}s")
        self.tx_hash = tx_hash


class InvariantViolation(EngineError):
    """Fatal for the current run. Nothing partial may be written."""

    def __init__(self, kind: str, message: str, **details):
        super().__init__(message)
        self.kind = kind
        self.details = details


class SyncIssueError(EngineError):
    """Chain and database disagree about cycle identity. Already recorded."""

    def __init__(self, kind: str, chain_cycle_id: int | None, db_cycle_id: int | None):
        super().__init__(f"{kind}: chain={chain_cycle_id} db={db_cycle_id}")
        self.kind = kind
        self.chain_cycle_id = chain_cycle_id
        self.db_cycle_id = db_cycle_id


class RevertKind(str, Enum):
    INVALID_STATE = "InvalidState"
    TIMING_NOT_MET = "TimingNotMet"
    NOT_ORACLE = "NotOracle"
    ALREADY_RESOLVED = "AlreadyResolved"
    ARRAY_LENGTH = "ArrayLength"
    OTHER = "Other"


class ChainRevertError(EngineError):
    """A contract call reverted (at estimation or on-chain)."""

    def __init__(self, kind: RevertKind, reason: str = "", tx_hash: str | None = None):
        super().__init__(f"{kind.value}: {reason}" if reason else kind.value)
        self.kind = kind
        self.reason = reason
        self.tx_hash = tx_hash

    @property
    def expected(self) -> bool:
        """Reverts that mean another writer already got there."""
        return self.kind in (RevertKind.ALREADY_RESOLVED, RevertKind.INVALID_STATE)


class LockNotAcquired(EngineError):
    """Advisory lock is held by another worker."""

    def __init__(self, lock_name: str):
        super().__init__(f"Lock {lock_name} is held")
        self.lock_name = lock_name
