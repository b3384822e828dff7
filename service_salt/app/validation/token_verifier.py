"""
Identity token verification.

Verification runs in order: decode the unverified token to learn its
issuer, resolve the trusted issuer, obtain that issuer's signing keys,
check the signature, then check expiry, issuer and the presence of
subject and audience. Every failure is raised as a ``VerificationError``
subclass carrying a stable code.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

from jose import jws, jwt
from jose.exceptions import ExpiredSignatureError, JWSError, JWTClaimsError, JWTError

from shared.errors import (
    ClaimsInvalidError,
    MalformedKeySourceError,
    MalformedTokenError,
    MissingIssuerError,
    SignatureInvalidError,
    TokenExpiredError,
    UnknownIssuerError,
    VerificationError,
    VerificationFailedError,
)
from shared.logging import get_logger, mask_subject
from shared.metrics import MetricsCollector
from .issuers import IssuerRegistry, TrustedIssuer, is_valid_key_source
from ..jwks.cache import SigningKeyCache

ALLOWED_ALGORITHMS = ["RS256", "RS384", "RS512", "ES256", "ES384", "ES512"]


@dataclass(frozen=True)
class IdentityClaims:
    """Claims of a verified identity token."""

    subject: str
    audience: Tuple[str, ...]
    issuer: str
    provider: str
    issued_at: Optional[int] = None
    expires_at: Optional[int] = None
    nonce: Optional[str] = None

    @property
    def primary_audience(self) -> str:
        return self.audience[0]


def _normalize_audience(value: Any) -> Tuple[str, ...]:
    if isinstance(value, str):
        values = [value]
    elif isinstance(value, (list, tuple)):
        values = list(value)
    else:
        return ()
    return tuple(v for v in values if isinstance(v, str) and v)


def _int_claim(claims: Dict[str, Any], name: str) -> Optional[int]:
    value = claims.get(name)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


class TokenVerifier:
    """Verifies identity tokens against trusted issuers' published keys."""

    def __init__(
        self,
        registry: IssuerRegistry,
        key_cache: SigningKeyCache,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.registry = registry
        self.key_cache = key_cache
        self.metrics = metrics
        self.logger = get_logger("salt.verifier")

    async def verify(self, token: str) -> IdentityClaims:
        try:
            claims = await self._verify(token)
        except VerificationError as e:
            self._record(e.code)
            self.logger.warning("Token verification failed", reason=e.code, error=e.message)
            raise

        self._record("success")
        self.logger.info(
            "Token verified",
            provider=claims.provider,
            sub=mask_subject(claims.subject),
        )
        return claims

    async def _verify(self, token: str) -> IdentityClaims:
        try:
            header = jwt.get_unverified_header(token)
            unverified = jwt.get_unverified_claims(token)
        except JWTError as e:
            raise MalformedTokenError(f"Token could not be decoded: {e}") from None

        issuer = unverified.get("iss")
        if not isinstance(issuer, str) or not issuer:
            raise MissingIssuerError("Token has no issuer claim")

        trusted = self.registry.lookup(issuer)
        if trusted is None:
            raise UnknownIssuerError(f"Unknown issuer: {issuer}", details={"issuer": issuer})
        if not is_valid_key_source(trusted.jwks_uri):
            raise MalformedKeySourceError(
                f"Key source for {trusted.name} is not a valid URI",
                details={"provider": trusted.name}
            )

        key = await self._signing_key(trusted, header)

        try:
            jws.verify(token, key, algorithms=ALLOWED_ALGORITHMS)
        except JWSError as e:
            raise SignatureInvalidError(f"Signature verification failed: {e}") from None

        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=ALLOWED_ALGORITHMS,
                options={"verify_aud": False},
            )
        except ExpiredSignatureError:
            raise TokenExpiredError("Token has expired") from None
        except JWTClaimsError as e:
            raise ClaimsInvalidError(str(e)) from None
        except JWTError as e:
            raise VerificationFailedError(str(e) or type(e).__name__) from None

        # The issuer must belong to the provider whose keys verified the signature
        if not trusted.accepts(claims.get("iss", ""), self.registry.match):
            raise ClaimsInvalidError("Invalid issuer", details={"provider": trusted.name})

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise ClaimsInvalidError("Token has no subject claim")
        audience = _normalize_audience(claims.get("aud"))
        if not audience:
            raise ClaimsInvalidError("Token has no audience claim")

        nonce = claims.get("nonce")
        return IdentityClaims(
            subject=subject,
            audience=audience,
            issuer=claims["iss"],
            provider=trusted.name,
            issued_at=_int_claim(claims, "iat"),
            expires_at=_int_claim(claims, "exp"),
            nonce=nonce if isinstance(nonce, str) else None,
        )

    async def _signing_key(self, trusted: TrustedIssuer, header: Dict[str, Any]) -> Union[Dict[str, Any], Any]:
        key_set = await self.key_cache.get_keys(trusted.jwks_uri)
        kid = header.get("kid")
        if not kid:
            return key_set.as_jwks()

        key = key_set.find(kid)
        if key is None:
            raise SignatureInvalidError(
                "No signing key matches the token key id",
                details={"provider": trusted.name, "kid": kid}
            )
        return key

    def _record(self, status: str) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter("token_verifications_total", status=status)
