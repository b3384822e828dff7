"""
Hybrid salt provider: local derivation with failover to a remote authority.

The provider is either serving from the primary or failing over. A primary
failure records the time; for ``fallback_after_seconds`` afterwards requests
go straight to the fallback. The first primary success returns to normal.
"""

import time
from typing import Any, Callable, Mapping, Optional

import httpx

from shared.logging import get_logger, mask_subject
from .base import HealthCheckResult, SaltProvider
from .local import LocalProvider
from .remote import RemoteProvider
from ..settings import HybridProviderConfig


class HybridProvider:
    """Local primary with optional remote fallback."""

    name = "hybrid"

    def __init__(
        self,
        primary: SaltProvider,
        fallback: SaltProvider,
        fallback_enabled: bool = True,
        fallback_after_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.primary = primary
        self.fallback = fallback
        self.fallback_enabled = fallback_enabled
        self.fallback_after_seconds = fallback_after_seconds
        self._clock = clock
        self._primary_failed_at: Optional[float] = None
        self.logger = get_logger("salt.provider.hybrid")

    @classmethod
    async def create(
        cls,
        config: HybridProviderConfig,
        environ: Optional[Mapping[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs: Any,
    ) -> "HybridProvider":
        primary = await LocalProvider.create(config.primary, environ=environ, transport=transport)
        fallback = await RemoteProvider.create(config.fallback, transport=transport)
        return cls(
            primary,
            fallback,
            fallback_enabled=config.fallback_enabled,
            fallback_after_seconds=config.fallback_after_seconds,
            **kwargs,
        )

    @property
    def failing_over(self) -> bool:
        if self._primary_failed_at is None:
            return False
        return self._clock() - self._primary_failed_at < self.fallback_after_seconds

    async def get_salt(self, subject: str, audience: str, token: Optional[str] = None) -> str:
        if self.fallback_enabled and self.failing_over:
            return await self.fallback.get_salt(subject, audience, token)

        try:
            salt = await self.primary.get_salt(subject, audience, token)
        except Exception as e:
            self._primary_failed_at = self._clock()
            self.logger.error(
                "Primary salt provider failed",
                subject=mask_subject(subject),
                error=str(e),
                fallback_enabled=self.fallback_enabled,
            )
            if not self.fallback_enabled:
                raise
            return await self.fallback.get_salt(subject, audience, token)

        if self._primary_failed_at is not None:
            self.logger.info("Primary salt provider recovered")
        self._primary_failed_at = None
        return salt

    async def health_check(self) -> HealthCheckResult:
        primary_health = await self.primary.health_check()
        if primary_health.healthy:
            return primary_health
        if self.fallback_enabled:
            return await self.fallback.health_check()
        return primary_health

    async def destroy(self) -> None:
        await self.primary.destroy()
        await self.fallback.destroy()
