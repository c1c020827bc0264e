import asyncio
import logging
import typing as ty
from dataclasses import dataclass

import httpx
import openai

logger = logging.getLogger(__name__)

R = ty.TypeVar("R")

RETRYABLE_STATUS_CODES: ty.Final = frozenset({408, 429, 500, 502, 503, 504})


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_s: float = 1.0

    def delay_before(self, attempt: int) -> float:
        """Delay before the given (1-based) retry: base, 2*base, 4*base, ..."""
        return self.base_delay_s * 2 ** (attempt - 1)


def is_retryable(exc: BaseException) -> bool:
    """Network trouble, timeouts, throttling and server-side hiccups are worth another try."""
    if isinstance(exc, openai.APIConnectionError):  # includes APITimeoutError
        return True
    if isinstance(exc, openai.APIStatusError):
        return exc.status_code in RETRYABLE_STATUS_CODES
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    return isinstance(exc, (httpx.TransportError, asyncio.TimeoutError))


async def with_retry(
    operation: ty.Callable[[], ty.Awaitable[R]],
    policy: RetryPolicy = RetryPolicy(),
    *,
    retryable: ty.Callable[[BaseException], bool] = is_retryable,
    sleep: ty.Callable[[float], ty.Awaitable[None]] = asyncio.sleep,
    what: str = "operation",
) -> R:
    """Await operation(), retrying with exponential backoff while errors are retryable.

    The last error is re-raised once attempts run out; non-retryable errors are
    re-raised immediately.
    """
    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as exc:
            if attempt >= policy.max_attempts or not retryable(exc):
                raise
            delay = policy.delay_before(attempt)
            logger.warning(
                f"{what} failed (attempt {attempt}/{policy.max_attempts}), "
                f"retrying in {delay:.1f}s: {type(exc).__name__}: {exc}"
            )
            await sleep(delay)
            attempt += 1
