"""
Trusted OAuth issuer registry.
"""

from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from ..settings import TrustedIssuerConfig

EXACT = "exact"
PREFIX = "prefix"


@dataclass(frozen=True)
class TrustedIssuer:
    """An OAuth provider whose tokens are accepted."""

    name: str
    jwks_uri: str
    issuers: Tuple[str, ...]

    def accepts(self, issuer: str, match: str = EXACT) -> bool:
        if match == PREFIX:
            return any(issuer.startswith(candidate) for candidate in self.issuers)
        return issuer in self.issuers

    @classmethod
    def from_config(cls, config: TrustedIssuerConfig) -> "TrustedIssuer":
        return cls(name=config.name, jwks_uri=config.jwks_uri, issuers=tuple(config.issuers))


DEFAULT_TRUSTED_ISSUERS: Tuple[TrustedIssuer, ...] = (
    TrustedIssuer(
        name="google",
        jwks_uri="https://www.googleapis.com/oauth2/v3/certs",
        issuers=("https://accounts.google.com", "accounts.google.com"),
    ),
    TrustedIssuer(
        name="facebook",
        jwks_uri="https://www.facebook.com/.well-known/oauth/openid/jwks/",
        issuers=("https://www.facebook.com",),
    ),
    TrustedIssuer(
        name="apple",
        jwks_uri="https://appleid.apple.com/auth/keys",
        issuers=("https://appleid.apple.com",),
    ),
    TrustedIssuer(
        name="twitch",
        jwks_uri="https://id.twitch.tv/oauth2/keys",
        issuers=("https://id.twitch.tv/oauth2",),
    ),
)


def is_valid_key_source(uri: str) -> bool:
    """An absolute http(s) URI with a host."""
    try:
        parsed = urlparse(uri)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class IssuerRegistry:
    """Ordered, immutable set of trusted issuers looked up by issuer string."""

    def __init__(self, issuers: Iterable[TrustedIssuer] = DEFAULT_TRUSTED_ISSUERS, match: str = EXACT):
        if match not in (EXACT, PREFIX):
            raise ValueError(f"Unknown issuer match policy: {match}")
        self._issuers: Tuple[TrustedIssuer, ...] = tuple(issuers)
        self.match = match

    @classmethod
    def from_config(
        cls,
        configs: Optional[Sequence[TrustedIssuerConfig]] = None,
        match: str = EXACT,
    ) -> "IssuerRegistry":
        """Build from configured issuers, or the built-in defaults when none are configured."""
        if configs is None:
            return cls(DEFAULT_TRUSTED_ISSUERS, match=match)
        return cls((TrustedIssuer.from_config(c) for c in configs if c.enabled), match=match)

    def lookup(self, issuer: str) -> Optional[TrustedIssuer]:
        """First trusted issuer accepting ``issuer``, in declaration order."""
        for trusted in self._issuers:
            if trusted.accepts(issuer, self.match):
                return trusted
        return None

    @property
    def names(self) -> List[str]:
        return [trusted.name for trusted in self._issuers]

    def __iter__(self) -> Iterator[TrustedIssuer]:
        return iter(self._issuers)

    def __len__(self) -> int:
        return len(self._issuers)
