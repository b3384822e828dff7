"""
HTTP rate limiting middleware.
"""

import math

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from shared.errors import RateLimitError
from shared.logging import get_logger, set_client_context
from .limiter import FixedWindowRateLimiter, RateLimitResult


class RateLimitMiddleware:
    """Applies the per-client limiter to every request."""

    def __init__(self, rate_limiter: FixedWindowRateLimiter):
        self.rate_limiter = rate_limiter
        self.logger = get_logger("salt.rate_limit_middleware")

    async def __call__(self, request: Request, call_next) -> Response:
        client_id = self._get_client_id(request)
        set_client_context(client_id)
        result = self.rate_limiter.hit(client_id)
        if not result.allowed:
            self.logger.warning(
                "Rate limit exceeded",
                path=request.url.path,
                current_count=result.current_count,
                limit=result.limit,
            )
            error = RateLimitError()
            response: Response = JSONResponse(
                status_code=429,
                content={"error": error.code, "message": error.message},
            )
            response.headers["Retry-After"] = str(result.reset_in_seconds(self.rate_limiter.now()))
        else:
            response = await call_next(request)

        self._set_rate_limit_headers(response, result)
        return response

    def check_request(self, request: Request) -> RateLimitResult:
        return self.rate_limiter.hit(self._get_client_id(request))

    def _set_rate_limit_headers(self, response: Response, result: RateLimitResult) -> None:
        response.headers["X-RateLimit-Limit"] = str(result.limit)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)
        response.headers["X-RateLimit-Reset"] = str(math.ceil(result.reset_at))

    def _get_client_id(self, request: Request) -> str:
        """Extract client ID from request."""
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            client_id = forwarded_for.split(",")[0].strip()
            if client_id:
                return client_id

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip

        return request.client.host if request.client else "unknown"
