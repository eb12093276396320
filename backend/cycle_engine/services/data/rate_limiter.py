"""Token bucket shared by every caller of an upstream API."""

import asyncio
import threading
import time


class TokenBucket:
    """Async token bucket safe to share across threads and event loops.

    Jobs run in separate threads, each with its own event loop, so state is
    guarded by a thread lock and waiting happens outside it.
    """

    def __init__(self, rate: float, burst: int, clock=time.monotonic, sleep=asyncio.sleep):
        self.rate = rate
        self.burst = burst
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._tokens = float(burst)
        self._updated = clock()
        self._paused_until = 0.0

    def _refill(self, now: float) -> None:
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
        self._updated = now

    def try_acquire(self) -> float:
        """Take a token if available. Returns 0 on success or the seconds to wait."""
        with self._lock:
            now = self._clock()
            self._refill(now)
            if now < self._paused_until:
                return self._paused_until - now
            if self._tokens >= 1:
                self._tokens -= 1
                return 0.0
            return (1 - self._tokens) / self.rate

    async def acquire(self) -> None:
        while True:
            wait = self.try_acquire()
            if wait <= 0:
                return
            await self._sleep(wait)

    def pause(self, seconds: float) -> None:
        """Block all callers for ``seconds`` (upstream said Retry-After)."""
        with self._lock:
            self._paused_until = max(self._paused_until, self._clock() + seconds)
            self._tokens = 0.0
