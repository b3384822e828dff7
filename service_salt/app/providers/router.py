"""
Router salt provider: selects a named provider per request by audience.

Rules are evaluated in declaration order; the first rule whose audience
pattern matches wins, otherwise the default provider is used. ``*`` in a
pattern matches any run of characters, and the whole audience must match.
"""

import asyncio
import re
from typing import Dict, List, Mapping, Optional, Pattern, Sequence, Tuple

import httpx

from shared.errors import ConfigurationError, ProviderNotFoundError
from shared.logging import get_logger
from .base import HealthCheckResult, SaltProvider
from .local import LocalProvider
from .remote import RemoteProvider
from ..settings import LocalProviderConfig, RouterProviderConfig, RouterRule


def compile_audience_pattern(pattern: str) -> Pattern[str]:
    """Compile a ``*`` glob into an anchored regular expression."""
    return re.compile(".*".join(re.escape(part) for part in pattern.split("*")))


class RouterProvider:
    """Dispatch to one of several named providers."""

    name = "router"

    def __init__(
        self,
        providers: Mapping[str, SaltProvider],
        routes: Sequence[RouterRule],
        default_provider: str,
    ):
        _validate_targets(providers.keys(), routes, default_provider)
        self.providers: Dict[str, SaltProvider] = dict(providers)
        self.default_provider = default_provider
        self.logger = get_logger("salt.provider.router")

        self._routes: List[Tuple[RouterRule, Optional[Pattern[str]]]] = [
            (rule, compile_audience_pattern(rule.match.audience) if rule.match.audience else None)
            for rule in routes
        ]

    @classmethod
    async def create(
        cls,
        config: RouterProviderConfig,
        environ: Optional[Mapping[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "RouterProvider":
        _validate_targets(config.providers.keys(), config.routes, config.default_provider)

        providers: Dict[str, SaltProvider] = {}
        try:
            for name, provider_config in config.providers.items():
                if isinstance(provider_config, LocalProviderConfig):
                    providers[name] = await LocalProvider.create(provider_config, environ=environ, transport=transport)
                else:
                    providers[name] = await RemoteProvider.create(provider_config, transport=transport)
        except Exception:
            for provider in providers.values():
                await provider.destroy()
            raise

        router = cls(providers, config.routes, config.default_provider)
        router.logger.info(
            "Router provider ready",
            providers=sorted(providers),
            routes=[rule.name for rule in config.routes],
            default_provider=config.default_provider,
        )
        return router

    def resolve(self, audience: str) -> str:
        """Name of the provider that serves ``audience``."""
        for rule, pattern in self._routes:
            # Issuer-only rules never match
            if pattern is not None and pattern.fullmatch(audience):
                return rule.provider
        return self.default_provider

    async def get_salt(self, subject: str, audience: str, token: Optional[str] = None) -> str:
        provider_name = self.resolve(audience)
        provider = self.providers.get(provider_name)
        if provider is None:
            raise ProviderNotFoundError(provider_name)
        return await provider.get_salt(subject, audience, token)

    async def health_check(self) -> HealthCheckResult:
        names = list(self.providers)
        results = await asyncio.gather(*(self.providers[name].health_check() for name in names))
        unhealthy = [name for name, result in zip(names, results) if not result.healthy]

        if len(unhealthy) == len(names):
            return HealthCheckResult(healthy=False, message="No routed provider is healthy")
        if unhealthy:
            return HealthCheckResult(healthy=True, message=f"Unhealthy providers: {', '.join(unhealthy)}")
        return HealthCheckResult(healthy=True)

    async def destroy(self) -> None:
        await asyncio.gather(*(provider.destroy() for provider in self.providers.values()))


def _validate_targets(names, routes: Sequence[RouterRule], default_provider: str) -> None:
    known = set(names)
    if default_provider not in known:
        raise ConfigurationError(
            f"Default provider not found: {default_provider}",
            details={"provider": default_provider}
        )
    for rule in routes:
        if rule.provider not in known:
            raise ConfigurationError(
                f"Route '{rule.name}' references unknown provider: {rule.provider}",
                details={"route": rule.name, "provider": rule.provider}
            )
