"""Fixed-delay retry for vendor error codes."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, FrozenSet, Optional, TypeVar

from coffee_coach.errors import UpstreamError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RetryPolicy:
    """Which vendor error codes are retried, how often and how far apart."""

    max_attempts: int = 3
    delay: float = 30.0
    error_codes: FrozenSet[int] = field(default_factory=lambda: frozenset({10004}))

    def matches(self, exc: UpstreamError) -> bool:
        return exc.code in self.error_codes

    def wait_hint(self) -> str:
        return (
            "Concurrent session limit reached after "
            f"{self.max_attempts} attempts. Please wait about 10 minutes "
            "for existing sessions to expire, or upgrade your plan."
        )


class RetriesExhausted(Exception):
    """Raised when every attempt failed with a retryable vendor code."""

    def __init__(self, last_error: UpstreamError, attempts: int) -> None:
        self.last_error = last_error
        self.attempts = attempts
        super().__init__(f"All {attempts} attempts failed: {last_error}")


async def retry_on_codes(
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    sleep: Optional[Sleep] = None,
    on_retry: Optional[Callable[[int, UpstreamError], None]] = None,
) -> T:
    """Call ``func`` until it succeeds or the policy gives up.

    Only ``UpstreamError`` whose code the policy matches is retried; any
    other exception propagates immediately. There is no sleep after the
    final attempt.
    """
    sleep = sleep or asyncio.sleep
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return await func()
        except UpstreamError as exc:
            if not policy.matches(exc):
                raise
            if attempt == policy.max_attempts:
                logger.warning("All %d attempts failed: %s", policy.max_attempts, exc)
                raise RetriesExhausted(exc, attempt) from exc

            logger.info(
                "Attempt %d/%d hit vendor code %s, retrying in %.1fs",
                attempt,
                policy.max_attempts,
                exc.code,
                policy.delay,
            )
            if on_retry:
                on_retry(attempt, exc)
            await sleep(policy.delay)

    raise RuntimeError("Retry policy allows no attempts")
