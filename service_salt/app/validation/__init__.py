"""
Trusted issuers and identity token verification.
"""

from .issuers import DEFAULT_TRUSTED_ISSUERS, IssuerRegistry, TrustedIssuer
from .token_verifier import IdentityClaims, TokenVerifier

__all__ = [
    "DEFAULT_TRUSTED_ISSUERS",
    "IssuerRegistry",
    "TrustedIssuer",
    "IdentityClaims",
    "TokenVerifier",
]
