from __future__ import annotations
import asyncio, logging, random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .config import RETRY_BASE_DELAY_SEC, RETRY_JITTER_SEC, RETRY_MAX_ATTEMPTS, RETRY_MAX_DELAY_SEC
from .errors import FetchAborted, RetryableFetchError

log = logging.getLogger(__name__)

T = TypeVar("T")


def default_is_retryable(err: BaseException) -> bool:
    if isinstance(err, FetchAborted):
        return False
    return isinstance(err, (RetryableFetchError, asyncio.TimeoutError))


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = RETRY_MAX_ATTEMPTS
    base_delay: float = RETRY_BASE_DELAY_SEC
    max_delay: float = RETRY_MAX_DELAY_SEC
    jitter: float = RETRY_JITTER_SEC
    is_retryable: Callable[[BaseException], bool] = default_is_retryable

    def delay_for(self, attempt: int, rng: Any = random) -> float:
        """Backoff before attempt `attempt + 1` (attempts are 1-based)."""

        base = self.base_delay * (2 ** max(0, attempt - 1))
        extra = rng.uniform(0.0, self.jitter) if self.jitter > 0 else 0.0
        return max(0.0, min(self.max_delay, base + extra))


async def with_retry(
    operation: Callable[[int], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    *,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    rng: Any = random,
) -> T:
    """Run `operation(attempt)` until it succeeds, fails non-retryably or attempts run out.

    The last error is re-raised unchanged.  Cancellation always propagates.
    """

    policy = policy or RetryPolicy()
    attempts = max(1, int(policy.max_attempts))
    attempt = 1
    while True:
        try:
            return await operation(attempt)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if attempt >= attempts or not policy.is_retryable(e):
                raise
            delay = policy.delay_for(attempt, rng)
            log.info("retry attempt=%d/%d err=%s delay=%.2fs", attempt, attempts, type(e).__name__, delay)
            if on_retry is not None:
                on_retry(attempt, e, delay)
            await sleep(delay)
            attempt += 1
