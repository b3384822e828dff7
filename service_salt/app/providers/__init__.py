"""
Salt provider strategies and the factory that builds them from configuration.
"""

import asyncio
from typing import Any, Awaitable, Callable, Mapping, Optional

import httpx

from shared.errors import ConfigurationError
from shared.logging import get_logger
from .base import HealthCheckResult, SaltProvider
from .hybrid import HybridProvider
from .local import LocalProvider
from .remote import RemoteProvider
from .router import RouterProvider
from ..settings import (
    HybridProviderConfig,
    LocalProviderConfig,
    RemoteProviderConfig,
    RouterProviderConfig,
)

logger = get_logger("salt.provider")

__all__ = [
    "HealthCheckResult",
    "SaltProvider",
    "LocalProvider",
    "RemoteProvider",
    "HybridProvider",
    "RouterProvider",
    "ProviderHolder",
    "create_provider",
]


async def create_provider(
    config: Any,
    environ: Optional[Mapping[str, str]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> SaltProvider:
    """Build the provider described by a validated provider config."""
    if isinstance(config, LocalProviderConfig):
        provider: SaltProvider = await LocalProvider.create(config, environ=environ, transport=transport)
    elif isinstance(config, RemoteProviderConfig):
        provider = await RemoteProvider.create(config, transport=transport)
    elif isinstance(config, HybridProviderConfig):
        provider = await HybridProvider.create(config, environ=environ, transport=transport)
    elif isinstance(config, RouterProviderConfig):
        provider = await RouterProvider.create(config, environ=environ, transport=transport)
    else:
        raise ConfigurationError(f"Unknown salt provider type: {getattr(config, 'type', type(config).__name__)}")

    logger.info("Salt provider initialized", provider_type=provider.name)
    return provider


class ProviderHolder:
    """Lazily builds the process-wide provider exactly once."""

    def __init__(
        self,
        config: Any,
        factory: Callable[[Any], Awaitable[SaltProvider]] = create_provider,
    ):
        self.config = config
        self._factory = factory
        self._provider: Optional[SaltProvider] = None
        self._lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._provider is not None

    async def get(self) -> SaltProvider:
        if self._provider is not None:
            return self._provider
        async with self._lock:
            if self._provider is None:
                self._provider = await self._factory(self.config)
        return self._provider

    async def close(self) -> None:
        async with self._lock:
            if self._provider is not None:
                await self._provider.destroy()
                self._provider = None
