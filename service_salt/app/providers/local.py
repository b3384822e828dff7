"""
Local salt provider: derives salts from a master seed held in memory.
"""

from typing import Mapping, Optional

import httpx

from shared.errors import ConfigurationError, ProviderError
from shared.logging import get_logger
from .base import HealthCheckResult
from ..derivation.kdf import SEED_LENGTH, derive_salt, salt_to_hex
from ..derivation.seed import resolve_seed
from ..settings import LocalProviderConfig


class LocalProvider:
    """Derive salts with HKDF over a 32-byte master seed."""

    name = "local"

    def __init__(self, seed: bytearray):
        if len(seed) != SEED_LENGTH:
            raise ConfigurationError(f"Master seed must be {SEED_LENGTH} bytes")
        self._seed = seed
        self._destroyed = False
        self.logger = get_logger("salt.provider.local")

    @classmethod
    async def create(
        cls,
        config: LocalProviderConfig,
        environ: Optional[Mapping[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "LocalProvider":
        """Resolve the configured seed source and build the provider."""
        seed = await resolve_seed(config.seed, environ=environ, transport=transport)
        provider = cls(seed)
        provider.logger.info("Local provider ready", seed_source=config.seed.type)
        return provider

    async def get_salt(self, subject: str, audience: str, token: Optional[str] = None) -> str:
        if self._destroyed:
            raise ProviderError("Local provider has been destroyed")
        return salt_to_hex(derive_salt(self._seed, subject, audience))

    async def health_check(self) -> HealthCheckResult:
        if len(self._seed) != SEED_LENGTH:
            return HealthCheckResult(healthy=False, message="Master seed has invalid length")
        return HealthCheckResult(healthy=True)

    async def destroy(self) -> None:
        # Zero in place
        for i in range(len(self._seed)):
            self._seed[i] = 0
        self._destroyed = True
