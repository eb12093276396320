"""Sports data ingestion services."""

from cycle_engine.services.data.rate_limiter import TokenBucket
from cycle_engine.services.data.sportmonks import SportMonksClient

__all__ = ["TokenBucket", "SportMonksClient"]
