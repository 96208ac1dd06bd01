"""
Retry Policy
============
Exponential backoff for the sign → submit → confirm cycle.

    attempt 1 fails ──► wait base        ──► attempt 2
    attempt 2 fails ──► wait base * 2    ──► attempt 3
    attempt 3 fails ──► wait base * 4    ──► attempt 4 (last, max_retries=3)

Only transient failures are retried; everything else surfaces immediately.
"""

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Tuple, TypeVar

from src.execution.errors import (
    BuilderError,
    RelayError,
    SigningError,
    TransactionFailedError,
)
from src.shared.system.logging import Logger

T = TypeVar("T")

RETRYABLE_PATTERNS: Tuple[str, ...] = (
    "network",
    "timeout",
    "timed out",
    "rate limit",
    "429",
    "too many requests",
    "econnreset",
    "socket hang up",
    "fetch failed",
    "connection",
    "502",
    "503",
    "blockhash not found",
    "block height exceeded",
)


def is_retryable(error: BaseException) -> bool:
    """Transient network / congestion failures are worth another attempt."""
    if isinstance(error, RelayError) and error.retryable:
        return True
    if isinstance(error, (BuilderError, SigningError, TransactionFailedError)):
        return False
    msg = str(error).lower()
    return any(pattern in msg for pattern in RETRYABLE_PATTERNS)


OnRetry = Callable[[int, BaseException], Optional[Awaitable[None]]]


@dataclass
class RetryPolicy:
    """Bounded exponential backoff with an injectable sleep."""

    max_retries: int = 3
    base_delay: float = 1.0
    retryable: Callable[[BaseException], bool] = is_retryable
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep)

    def delay_for(self, attempt: int) -> float:
        """Delay after the ``attempt``-th failure (1-based)."""
        return self.base_delay * (2 ** (attempt - 1))

    async def run(self, operation: Callable[[], Awaitable[T]], on_retry: Optional[OnRetry] = None) -> T:
        """
        Run ``operation`` up to ``max_retries + 1`` times.

        ``on_retry(attempt, error)`` fires before each backoff with attempts
        1..max_retries. The last error is re-raised unchanged.
        """
        attempt = 0
        while True:
            try:
                return await operation()
            except Exception as e:
                attempt += 1
                if attempt > self.max_retries or not self.retryable(e):
                    if attempt > 1:
                        Logger.error(f"[SIGNER] Giving up after {attempt} attempt(s): {e}")
                    raise

                delay = self.delay_for(attempt)
                Logger.warning(
                    f"[SIGNER] Attempt {attempt}/{self.max_retries + 1} failed: {e}. "
                    f"Retrying in {delay:.1f}s"
                )
                if on_retry is not None:
                    result = on_retry(attempt, e)
                    if inspect.isawaitable(result):
                        await result
                await self.sleep(delay)
