"""
Signing key cache for trusted issuers.

Key sets are cached per key-source URI for ``ttl`` seconds. A missing or
expired entry is fetched synchronously by the requesting caller; each
successful on-demand fetch (re)arms a background task that refreshes the
entry ``refresh_margin`` seconds before it would expire. A failed
background refresh is logged and not rescheduled: the entry keeps serving
until it expires and the next caller fetches on demand.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import httpx

from shared.errors import ConfigurationError, KeyFetchError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

DEFAULT_TTL_SECONDS = 3600.0
DEFAULT_REFRESH_MARGIN_SECONDS = 300.0


@dataclass(frozen=True)
class CachedKeySet:
    """Immutable snapshot of a key source; replaced wholesale on refresh."""

    jwks_uri: str
    keys: Tuple[Dict[str, Any], ...]
    fetched_at: float
    expires_at: float

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at

    def find(self, kid: str) -> Optional[Dict[str, Any]]:
        for key in self.keys:
            if key.get("kid") == kid:
                return key
        return None

    def as_jwks(self) -> Dict[str, Any]:
        return {"keys": list(self.keys)}


class SigningKeyCache:
    """Per-URI key set cache with on-demand fetch and scheduled refresh."""

    def __init__(
        self,
        ttl: float = DEFAULT_TTL_SECONDS,
        refresh_margin: float = DEFAULT_REFRESH_MARGIN_SECONDS,
        fetch_timeout: float = 10.0,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        metrics: Optional[MetricsCollector] = None,
    ):
        if refresh_margin >= ttl:
            raise ConfigurationError(
                "JWKS refresh margin must be smaller than the cache TTL",
                details={"ttl": ttl, "refresh_margin": refresh_margin}
            )
        self.ttl = ttl
        self.refresh_margin = refresh_margin
        self.logger = get_logger("salt.jwks")
        self.metrics = metrics

        self._clock = clock
        self._sleep = sleep
        self._client = httpx.AsyncClient(timeout=fetch_timeout, transport=transport)
        self._entries: Dict[str, CachedKeySet] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._refresh_tasks: Dict[str, asyncio.Task] = {}

    @property
    def refresh_after(self) -> float:
        return self.ttl - self.refresh_margin

    def peek(self, jwks_uri: str) -> Optional[CachedKeySet]:
        """Current entry for ``jwks_uri`` without fetching, fresh or not."""
        return self._entries.get(jwks_uri)

    def has_scheduled_refresh(self, jwks_uri: str) -> bool:
        task = self._refresh_tasks.get(jwks_uri)
        return task is not None and not task.done()

    async def get_keys(self, jwks_uri: str) -> CachedKeySet:
        """Return a fresh key set, fetching on demand when missing or expired."""
        entry = self._entries.get(jwks_uri)
        if entry is not None and entry.is_fresh(self._clock()):
            return entry

        lock = self._locks.setdefault(jwks_uri, asyncio.Lock())
        async with lock:
            # Another caller may have fetched while we waited
            entry = self._entries.get(jwks_uri)
            if entry is not None and entry.is_fresh(self._clock()):
                return entry

            entry = await self._fetch(jwks_uri, trigger="on_demand")
            self._schedule_refresh(jwks_uri)
            return entry

    async def _fetch(self, jwks_uri: str, trigger: str) -> CachedKeySet:
        try:
            response = await self._client.get(jwks_uri)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            self._record_fetch(trigger, "error")
            raise KeyFetchError(
                f"Key source returned {e.response.status_code}",
                details={"jwks_uri": jwks_uri, "status_code": e.response.status_code}
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            self._record_fetch(trigger, "error")
            raise KeyFetchError(
                f"Key source unreachable: {str(e) or type(e).__name__}",
                details={"jwks_uri": jwks_uri}
            ) from e

        keys = payload.get("keys") if isinstance(payload, dict) else None
        if not isinstance(keys, list):
            self._record_fetch(trigger, "error")
            raise KeyFetchError("Key source response has no key list", details={"jwks_uri": jwks_uri})

        now = self._clock()
        entry = CachedKeySet(
            jwks_uri=jwks_uri,
            keys=tuple(key for key in keys if isinstance(key, dict)),
            fetched_at=now,
            expires_at=now + self.ttl,
        )
        self._entries[jwks_uri] = entry
        self._record_fetch(trigger, "success")

        self.logger.info(
            "Signing keys fetched",
            jwks_uri=jwks_uri,
            trigger=trigger,
            keys_count=len(entry.keys),
        )
        return entry

    def _schedule_refresh(self, jwks_uri: str) -> None:
        existing = self._refresh_tasks.get(jwks_uri)
        if existing is not None and not existing.done():
            existing.cancel()
        self._refresh_tasks[jwks_uri] = asyncio.create_task(
            self._refresh_loop(jwks_uri),
            name=f"jwks-refresh:{jwks_uri}",
        )

    async def _refresh_loop(self, jwks_uri: str) -> None:
        while True:
            await self._sleep(self.refresh_after)
            self.logger.info("Refreshing signing keys", jwks_uri=jwks_uri)
            try:
                await self._fetch(jwks_uri, trigger="background")
            except KeyFetchError as e:
                self.logger.error(
                    "Background signing key refresh failed",
                    jwks_uri=jwks_uri,
                    error=e.message,
                )
                return

    def _record_fetch(self, trigger: str, status: str) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter("jwks_fetch_total", trigger=trigger, status=status)

    def clear(self) -> None:
        """Drop all cached entries; scheduled refreshes keep running."""
        self._entries.clear()

    async def close(self) -> None:
        """Cancel scheduled refreshes and close the HTTP client."""
        tasks = [task for task in self._refresh_tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._refresh_tasks.clear()
        await self._client.aclose()
