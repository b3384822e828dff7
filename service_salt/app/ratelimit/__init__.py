"""
Per-client request rate limiting.
"""

from .limiter import FixedWindowRateLimiter, RateLimitEntry, RateLimitResult
from .middleware import RateLimitMiddleware

__all__ = ["FixedWindowRateLimiter", "RateLimitEntry", "RateLimitResult", "RateLimitMiddleware"]
