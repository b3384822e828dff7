"""
Shared error handling for the zkLogin salt service.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: str
    message: str
    details: Dict[str, Any] = {}


class SaltServiceError(Exception):
    """Base exception for salt service errors."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            error=self.code,
            message=self.message,
            details=self.details
        )


class VerificationError(SaltServiceError):
    """Identity token was rejected."""

    code = "verification_failed"

    def __init__(self, message: str = "Token verification failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(type(self).code, message, details)


class MalformedTokenError(VerificationError):
    """Token could not be decoded at all."""

    code = "invalid_jwt"


class MissingIssuerError(VerificationError):
    """Token carries no issuer claim."""

    code = "missing_issuer"


class UnknownIssuerError(VerificationError):
    """No trusted issuer matches the token's issuer claim."""

    code = "unknown_issuer"


class MalformedKeySourceError(VerificationError):
    """The trusted issuer's key-source URI is not a valid URI."""

    code = "invalid_jwks_uri"


class TokenExpiredError(VerificationError):
    """Token expiry is in the past."""

    code = "jwt_expired"


class SignatureInvalidError(VerificationError):
    """Token signature does not verify against the issuer's keys."""

    code = "invalid_signature"


class ClaimsInvalidError(VerificationError):
    """Token claims are missing or inconsistent."""

    code = "invalid_claims"


class VerificationFailedError(VerificationError):
    """Any other verification library failure."""

    code = "verification_failed"


class KeyFetchError(VerificationError):
    """Signing keys could not be fetched from the key source."""

    code = "jwks_fetch_failed"


class ProviderError(SaltServiceError):
    """Salt provider failed to produce a salt."""

    def __init__(self, message: str = "Salt provider error", details: Optional[Dict[str, Any]] = None):
        super().__init__("provider_error", message, details)


class RemoteProviderError(ProviderError):
    """Remote salt authority call failed after all attempts."""

    def __init__(self, message: str, attempts: int, details: Optional[Dict[str, Any]] = None):
        self.attempts = attempts
        super().__init__(message, {"attempts": attempts, **(details or {})})


class ProviderNotFoundError(SaltServiceError):
    """A router rule references a provider that does not exist."""

    def __init__(self, provider_name: str):
        self.provider_name = provider_name
        super().__init__("provider_not_found", f"Provider not found: {provider_name}", {"provider": provider_name})


class ConfigurationError(SaltServiceError):
    """Invalid or missing configuration detected at construction time."""

    def __init__(self, message: str = "Invalid configuration", details: Optional[Dict[str, Any]] = None,
                 code: str = "configuration_error"):
        super().__init__(code, message, details)


class SeedError(ConfigurationError):
    """Master seed could not be resolved to exactly 32 bytes."""

    def __init__(self, message: str = "Master seed unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details, code="seed_error")


class RateLimitError(SaltServiceError):
    """Rate limiting errors."""

    def __init__(self, message: str = "Too many requests, please try again later", details: Optional[Dict[str, Any]] = None):
        super().__init__("rate_limit_exceeded", message, details)


class InvariantViolation(AssertionError):
    """Internal invariant broken; indicates a defect, not a recoverable condition."""


def http_status_for(exc: SaltServiceError) -> int:
    """HTTP status for a service error surfaced at the API boundary."""
    if isinstance(exc, KeyFetchError):
        return 502
    if isinstance(exc, VerificationError):
        return 401
    if isinstance(exc, RateLimitError):
        return 429
    if isinstance(exc, (ProviderError, ProviderNotFoundError)):
        return 502
    if isinstance(exc, ConfigurationError):
        return 500
    return 400
