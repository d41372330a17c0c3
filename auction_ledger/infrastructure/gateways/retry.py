import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from auction_ledger.core.errors import UpstreamError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TransientFetchError(Exception):
    """A failed attempt that is worth retrying (rate limit, network error, malformed body)."""


def linear_backoff(unit_seconds: float = 1.0) -> Callable[[int], float]:
    """attempt × unit: 1s, 2s, 3s ... with the default unit."""
    return lambda attempt: attempt * unit_seconds


class RetryPolicy:
    """
    Bounded retry, independent of transport.
    `sleep` is injectable so tests run without real delays.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        backoff: Optional[Callable[[int], float]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.backoff = backoff or linear_backoff()
        self.sleep = sleep

    async def run(self, operation: Callable[[int], Awaitable[T]], page: int) -> T:
        """
        Calls `operation(attempt)` until it returns, retrying on TransientFetchError.
        Raises UpstreamError after the last failed attempt; no sleep follows it.
        """
        last_reason = "no attempt made"
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation(attempt)
            except TransientFetchError as e:
                last_reason = str(e)
                logger.warning(f"Page {page} attempt {attempt}/{self.max_attempts} failed: {last_reason}")
                if attempt < self.max_attempts:
                    await self.sleep(self.backoff(attempt))

        logger.error(f"Giving up on page {page} after {self.max_attempts} attempts: {last_reason}")
        raise UpstreamError(page=page, attempts=self.max_attempts, reason=last_reason)
