# app/core/retry.py
"""
Shared retry utility for calls to external AI providers.

`with_retry` is a higher-order helper: the caller passes the coroutine factory,
a BackoffPolicy and (optionally) its own retryability predicate. The reward
orchestrator and the persona portrait fallback chain both go through it.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

import httpx

from app.core.exceptions import ProviderTimeoutError, ProviderTransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class BackoffPolicy:
    """
    Backoff policy for `with_retry`.

    Delays are in seconds. When `delays` is given, it is used as an explicit
    ladder (delay before retry #1, #2, ...) and the exponential parameters are
    ignored; the last rung repeats if there are more retries than rungs.
    """
    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    multiplier: float = 2.0
    delays: Sequence[float] = field(default_factory=tuple)

    @classmethod
    def linear(cls, step: float, max_attempts: int = 3) -> "BackoffPolicy":
        """step, 2*step, 3*step, ..."""
        return cls(
            max_attempts=max_attempts,
            delays=tuple(step * i for i in range(1, max_attempts)),
        )

    @classmethod
    def ladder(cls, *delays: float) -> "BackoffPolicy":
        """Fixed ladder; max_attempts is len(delays) + 1."""
        return cls(max_attempts=len(delays) + 1, delays=tuple(delays))

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after failed attempt number `attempt` (1-based)."""
        if self.delays:
            idx = min(attempt - 1, len(self.delays) - 1)
            return max(0.0, float(self.delays[idx]))
        delay = self.initial_delay * (self.multiplier ** (attempt - 1))
        return max(0.0, min(delay, self.max_delay))


DEFAULT_POLICY = BackoffPolicy()

_TIMEOUT_HINTS = ("timeout", "timed out", "etimedout")
_NETWORK_HINTS = ("econnreset", "econnrefused", "enotfound", "connection reset", "network")


def is_retryable_error(exc: BaseException) -> bool:
    """
    Default retryability classifier.

    Retryable:
      - ProviderTransientError and subclasses (timeouts, 5xx, 429, content filter)
      - httpx timeouts and transport errors
      - httpx status errors with 5xx or 429
      - asyncio timeouts and connection errors
      - anything whose message mentions a timeout or network failure
    Everything else (4xx, validation, programming errors) fails fast.
    """
    if isinstance(exc, ProviderTransientError):
        return True
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        return code == 429 or 500 <= code < 600
    if isinstance(exc, (asyncio.TimeoutError, ConnectionError)):
        return True

    msg = str(exc).lower()
    if any(h in msg for h in _TIMEOUT_HINTS):
        return True
    if any(h in msg for h in _NETWORK_HINTS):
        return True
    return False


async def with_retry(
    fn: Callable[[int], Awaitable[T]],
    policy: BackoffPolicy = DEFAULT_POLICY,
    is_retryable: Callable[[BaseException], bool] = is_retryable_error,
    on_retry: Optional[Callable[[int, BaseException, float], Any]] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    label: str = "call",
) -> T:
    """
    Run `fn(attempt)` until it succeeds or the policy is exhausted.

    Parameters:
    - fn: coroutine factory; receives the 1-based attempt number so callers can
      vary the request (e.g. a more conservative prompt on retry)
    - policy: attempts and delays
    - is_retryable: predicate; a non-retryable error is re-raised immediately
    - on_retry: hook called as on_retry(next_attempt, error, delay) before sleeping;
      may be sync or async
    - sleep: injectable for tests
    - label: used in log lines

    Raises:
    - The last error once attempts are exhausted, or the first non-retryable one
    """
    attempts = max(1, policy.max_attempts)
    last_error: BaseException | None = None

    for attempt in range(1, attempts + 1):
        try:
            return await fn(attempt)
        except Exception as e:
            last_error = e
            if not is_retryable(e):
                logger.warning("[Retry] %s failed with non-retryable error: %s", label, e)
                raise
            if attempt >= attempts:
                logger.error("[Retry] %s failed after %d attempts: %s", label, attempts, e)
                raise

            delay = policy.delay_for(attempt)
            logger.warning(
                "[Retry] %s attempt %d/%d failed (%s), retrying in %.1fs",
                label, attempt, attempts, e, delay,
            )
            if on_retry is not None:
                res = on_retry(attempt + 1, e, delay)
                if asyncio.iscoroutine(res):
                    await res
            await sleep(delay)

    # Unreachable: the loop either returns or raises
    raise last_error  # type: ignore[misc]


async def call_with_timeout(coro: Awaitable[T], timeout: float, provider: str) -> T:
    """
    Await `coro` with a timeout, surfacing expiry as ProviderTimeoutError.
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except asyncio.TimeoutError:
        raise ProviderTimeoutError(provider, timeout)
