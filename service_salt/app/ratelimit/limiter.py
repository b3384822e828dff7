"""
In-memory fixed window rate limiter keyed by client.
"""

import asyncio
import threading
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from shared.logging import get_logger
from shared.metrics import MetricsCollector


@dataclass
class RateLimitEntry:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of counting one request against a client's window."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    current_count: int

    def reset_in_seconds(self, now: float) -> int:
        return max(0, int(self.reset_at - now + 0.999))


class FixedWindowRateLimiter:
    """Counts requests per client key within a fixed window.

    The first request from a client opens a window of ``window_seconds``;
    once the window has passed the next request starts a fresh one.
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
        metrics: Optional[MetricsCollector] = None,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.metrics = metrics
        self.logger = get_logger("salt.rate_limiter")

        self._clock = clock
        self._entries: Dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()

    def now(self) -> float:
        return self._clock()

    def hit(self, client_id: str) -> RateLimitResult:
        """Count a request for ``client_id`` and report whether it is allowed."""
        with self._lock:
            now = self._clock()
            entry = self._entries.get(client_id)
            if entry is None or now > entry.reset_at:
                entry = RateLimitEntry(count=0, reset_at=now + self.window_seconds)
                self._entries[client_id] = entry
            entry.count += 1
            count, reset_at = entry.count, entry.reset_at

        allowed = count <= self.max_requests
        if not allowed and self.metrics is not None:
            self.metrics.increment_counter("rate_limit_hits_total")

        return RateLimitResult(
            allowed=allowed,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - count),
            reset_at=reset_at,
            current_count=count,
        )

    def sweep(self) -> int:
        """Remove expired entries; returns how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if now > entry.reset_at]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    async def run_sweeper(
        self,
        interval: float = 60.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Sweep expired entries every ``interval`` seconds until cancelled."""
        while True:
            await sleep(interval)
            removed = self.sweep()
            if removed:
                self.logger.debug("Rate limit entries swept", removed=removed)
