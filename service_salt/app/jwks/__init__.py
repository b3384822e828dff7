"""
Signing key retrieval and caching.
"""

from .cache import CachedKeySet, SigningKeyCache

__all__ = ["CachedKeySet", "SigningKeyCache"]
