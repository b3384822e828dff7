"""
Remote salt provider: delegates salt retrieval to an external salt authority.
"""

from typing import Any, Dict, Mapping, Optional

import httpx

from shared.errors import ProviderError, RemoteProviderError
from shared.logging import get_logger, mask_subject
from shared.retry import RetryConfig, RetryError, retry_on_exception
from .base import HealthCheckResult
from ..settings import RemoteProviderConfig

_HEALTH_SUFFIX = "/health"
_SALT_SUFFIX = "/get_salt"


def health_endpoint(endpoint: str) -> str:
    """Derive the health URL from the configured salt endpoint."""
    base = endpoint.rstrip("/")
    if base.endswith(_HEALTH_SUFFIX):
        return base
    if base.endswith(_SALT_SUFFIX):
        return base[: -len(_SALT_SUFFIX)] + _HEALTH_SUFFIX
    return base + _HEALTH_SUFFIX


def _describe(error: BaseException) -> str:
    return str(error) or type(error).__name__


class RemoteProvider:
    """POST (sub, aud, jwt) to a remote salt server, retrying failed attempts."""

    name = "remote"

    def __init__(self, config: RemoteProviderConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.logger = get_logger("salt.provider.remote")
        self._client = httpx.AsyncClient(timeout=config.timeout, transport=transport)
        self._retry_config = RetryConfig.immediate(config.retry_count)

    @classmethod
    async def create(
        cls,
        config: RemoteProviderConfig,
        environ: Optional[Mapping[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "RemoteProvider":
        provider = cls(config, transport=transport)
        provider.logger.info(
            "Remote provider ready",
            endpoint=config.endpoint,
            retry_count=config.retry_count,
            timeout=config.timeout,
        )
        return provider

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key is not None:
            headers["Authorization"] = f"Bearer {self.config.api_key.get_secret_value()}"
        return headers

    async def _request_salt(self, subject: str, audience: str, token: Optional[str]) -> str:
        body: Dict[str, Any] = {"sub": subject, "aud": audience}
        if token is not None:
            body["jwt"] = token

        response = await self._client.post(self.config.endpoint, json=body, headers=self._headers())
        if not response.is_success:
            raise ProviderError(
                f"Remote salt server returned {response.status_code}",
                details={"status_code": response.status_code}
            )
        try:
            payload = response.json()
        except ValueError:
            raise ProviderError("Remote salt server returned invalid JSON") from None

        salt = payload.get("salt") if isinstance(payload, dict) else None
        if not isinstance(salt, str) or not salt:
            raise ProviderError("Remote salt server response missing salt")
        return salt

    async def get_salt(self, subject: str, audience: str, token: Optional[str] = None) -> str:
        request = retry_on_exception(
            exceptions=(httpx.HTTPError, ProviderError),
            config=self._retry_config,
            operation="remote_salt",
        )(self._request_salt)

        try:
            return await request(subject, audience, token)
        except RetryError as e:
            self.logger.error(
                "Remote salt request failed",
                subject=mask_subject(subject),
                attempts=e.attempts,
                error=_describe(e.last_exception),
            )
            raise RemoteProviderError(
                f"Remote salt request failed: {_describe(e.last_exception)}",
                attempts=e.attempts,
            ) from e.last_exception

    async def health_check(self) -> HealthCheckResult:
        url = health_endpoint(self.config.endpoint)
        try:
            response = await self._client.get(url, headers=self._headers())
        except httpx.HTTPError as e:
            return HealthCheckResult(healthy=False, message=f"Remote salt server unreachable: {_describe(e)}")

        if response.is_success:
            return HealthCheckResult(healthy=True)
        return HealthCheckResult(
            healthy=False,
            message=f"Remote salt server health returned {response.status_code}"
        )

    async def destroy(self) -> None:
        await self._client.aclose()
