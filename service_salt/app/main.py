"""
zkLogin salt service.

Verifies an OAuth identity token and returns the deterministic salt for
its (subject, audience) pair.
"""

import asyncio
from typing import Any, Dict, Mapping, Optional

import httpx
from fastapi import Request
from fastapi.responses import JSONResponse

from shared.base_service import BaseService
from shared.errors import (
    KeyFetchError,
    ProviderError,
    ProviderNotFoundError,
    SaltServiceError,
    VerificationError,
)
from shared.logging import mask_subject
from shared.metrics import MetricsCollector
from .jwks.cache import SigningKeyCache
from .providers import ProviderHolder, create_provider
from .ratelimit import FixedWindowRateLimiter, RateLimitMiddleware
from .settings import AppConfig, load_app_config
from .validation import IssuerRegistry, TokenVerifier

SWEEP_INTERVAL_SECONDS = 60.0


def _error(status_code: int, error: str, message: str, details: Optional[Dict[str, Any]] = None) -> JSONResponse:
    content: Dict[str, Any] = {"error": error, "message": message}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


class SaltService(BaseService):
    """Salt service implementation."""

    def __init__(
        self,
        app_config: Optional[AppConfig] = None,
        *,
        verifier: Optional[TokenVerifier] = None,
        provider_holder: Optional[ProviderHolder] = None,
        rate_limiter: Optional[FixedWindowRateLimiter] = None,
        metrics: Optional[MetricsCollector] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.app_config = app_config or load_app_config(environ=environ)
        settings = self.app_config.settings
        metrics = metrics or MetricsCollector("salt")

        self.key_cache: Optional[SigningKeyCache] = None
        if verifier is None:
            self.key_cache = SigningKeyCache(
                ttl=settings.jwks_cache_ttl_seconds,
                refresh_margin=settings.jwks_refresh_margin_seconds,
                fetch_timeout=settings.jwks_fetch_timeout,
                transport=transport,
                metrics=metrics,
            )
            registry = IssuerRegistry.from_config(self.app_config.oauth, match=settings.issuer_match)
            verifier = TokenVerifier(registry, self.key_cache, metrics=metrics)
        self.verifier = verifier

        if provider_holder is None:
            provider_config = self.app_config.provider

            async def _build(config):
                return await create_provider(config, environ=environ, transport=transport)

            provider_holder = ProviderHolder(provider_config, factory=_build)
        self.provider_holder = provider_holder

        self.rate_limiter = rate_limiter or FixedWindowRateLimiter(
            max_requests=settings.rate_limit_max,
            window_seconds=settings.rate_limit_window_seconds,
            metrics=metrics,
        )
        self._sweeper: Optional[asyncio.Task] = None

        super().__init__("salt", settings, metrics=metrics)
        self._setup_salt_routes()

    async def startup(self) -> None:
        provider = await self.provider_holder.get()
        self._sweeper = asyncio.create_task(self.rate_limiter.run_sweeper(SWEEP_INTERVAL_SECONDS))
        self.logger.info(
            "Salt service started",
            provider_type=provider.name,
            rate_limit_max=self.rate_limiter.max_requests,
        )

    async def shutdown(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            await asyncio.gather(self._sweeper, return_exceptions=True)
            self._sweeper = None
        if self.key_cache is not None:
            await self.key_cache.close()
        await self.provider_holder.close()
        self.logger.info("Salt service stopped")

    def _setup_service_middleware(self):
        self.app.middleware("http")(RateLimitMiddleware(self.rate_limiter))

    def _setup_salt_routes(self):
        """Set up salt-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "salt",
                "message": "zkLogin salt service",
                "version": "1.0.0"
            }

        @self.app.post("/v1/salt")
        async def get_salt(request: Request):
            """Verify the identity token and return its salt."""
            try:
                body = await request.json()
            except ValueError:
                self.metrics.increment_counter("salt_requests_total", outcome="invalid_request")
                return _error(400, "invalid_json", "Invalid JSON in request body")

            token = body.get("jwt") if isinstance(body, dict) else None
            if not isinstance(token, str) or not token:
                self.metrics.increment_counter("salt_requests_total", outcome="invalid_request")
                return _error(400, "missing_jwt", "JWT is required")

            try:
                claims = await self.verifier.verify(token)
            except KeyFetchError as e:
                self.metrics.increment_counter("salt_requests_total", outcome="upstream_error")
                return _error(502, e.code, e.message)
            except VerificationError as e:
                self.metrics.increment_counter("salt_requests_total", outcome="invalid_jwt")
                return _error(401, "invalid_jwt", e.message, {"reason": e.code})

            try:
                provider = await self.provider_holder.get()
                salt = await provider.get_salt(claims.subject, claims.primary_audience, token)
            except (ProviderError, ProviderNotFoundError) as e:
                self.metrics.increment_counter("salt_requests_total", outcome="provider_error")
                self.logger.error(
                    "Salt generation failed",
                    code=e.code,
                    error=e.message,
                    sub=mask_subject(claims.subject),
                )
                return _error(502, e.code, "Salt provider failed to produce a salt")

            self.metrics.increment_counter("salt_requests_total", outcome="success")
            self.logger.info(
                "Salt generated",
                provider=claims.provider,
                sub=mask_subject(claims.subject),
            )
            return {"salt": salt}

        @self.app.get("/ready")
        async def ready():
            """Readiness endpoint backed by the provider health check."""
            try:
                provider = await self.provider_holder.get()
            except SaltServiceError as e:
                self.logger.error("Salt provider unavailable", code=e.code, error=e.message)
                return JSONResponse(
                    status_code=503,
                    content={"status": "degraded", "provider": {"healthy": False, "message": e.message}}
                )

            health = await provider.health_check()
            if not health.healthy:
                return JSONResponse(
                    status_code=503,
                    content={"status": "degraded", "provider": {"type": provider.name, **health.to_dict()}}
                )
            return {"status": "ready", "provider": {"type": provider.name, **health.to_dict()}}


def create_app(app_config: Optional[AppConfig] = None, **kwargs: Any):
    """Create FastAPI application."""
    service = SaltService(app_config, **kwargs)
    return service.app


def run() -> None:
    """Console entry point."""
    service = SaltService()
    service.run(host=service.config.host, port=service.config.port)


if __name__ == "__main__":
    run()
