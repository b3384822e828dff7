"""
Retry mechanism for outbound calls.

Only the final failure is surfaced, wrapped in ``RetryError``; earlier
failures are logged at warning level and discarded.
"""

import asyncio
import functools
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type

from shared.logging import get_logger

BACKOFF_STRATEGIES = ("exponential", "linear", "fixed")


@dataclass(frozen=True)
class RetryConfig:
    """Attempt budget and delay policy for ``retry_on_exception``."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: bool = True
    backoff_strategy: str = "exponential"

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.backoff_strategy not in BACKOFF_STRATEGIES:
            raise ValueError(f"Unknown backoff strategy: {self.backoff_strategy}")

    @classmethod
    def immediate(cls, retries: int) -> "RetryConfig":
        """``retries`` extra attempts with no delay between them."""
        return cls(max_attempts=retries + 1, base_delay=0.0, jitter=False, backoff_strategy="fixed")

    def delay_for(self, attempt: int) -> float:
        """Delay after failed ``attempt`` (1-based)."""
        if self.backoff_strategy == "exponential":
            delay = self.base_delay * (self.exponential_base ** (attempt - 1))
        elif self.backoff_strategy == "linear":
            delay = self.base_delay * attempt
        else:
            delay = self.base_delay

        delay = min(delay, self.max_delay)
        if self.jitter:
            spread = delay * 0.1
            delay += random.uniform(-spread, spread)
        return max(0.0, delay)


class RetryError(Exception):
    """Raised when all attempts are exhausted."""

    def __init__(self, message: str, last_exception: BaseException, attempts: int):
        super().__init__(message)
        self.last_exception = last_exception
        self.attempts = attempts


def retry_on_exception(
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    config: Optional[RetryConfig] = None,
    operation: Optional[str] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Callable:
    """Decorator retrying an async function on ``exceptions``."""
    config = config or RetryConfig()

    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        name = operation or func.__name__
        logger = get_logger(f"retry.{name}")

        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            for attempt in range(1, config.max_attempts + 1):
                try:
                    result = await func(*args, **kwargs)
                except exceptions as e:
                    if attempt == config.max_attempts:
                        logger.error(
                            "All retry attempts exhausted",
                            operation=name,
                            attempts=attempt,
                            error=str(e) or type(e).__name__,
                        )
                        raise RetryError(
                            f"{name} failed after {attempt} attempts",
                            last_exception=e,
                            attempts=attempt,
                        ) from e

                    delay = config.delay_for(attempt)
                    logger.warning(
                        "Retry attempt failed",
                        operation=name,
                        attempt=attempt,
                        delay=delay,
                        error=str(e) or type(e).__name__,
                    )
                    if delay > 0:
                        await sleep(delay)
                    continue

                if attempt > 1:
                    logger.info("Retry succeeded", operation=name, attempt=attempt)
                return result

        return wrapper

    return decorator
