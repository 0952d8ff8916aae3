import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

import openai

from .cancellation import CancellationToken
from .errors import GenerationCancelled
from .models import Tier

logger = logging.getLogger(__name__)

T = TypeVar("T")

RATE_LIMIT_MARKERS = ("429", "quota", "RESOURCE_EXHAUSTED")


def is_transient_error(error: BaseException) -> bool:
    """
    True for request-quota exhaustion (HTTP 429 and friends) and for errors
    that flag themselves as retryable, such as an empty image result.
    """
    if isinstance(error, GenerationCancelled):
        return False
    if isinstance(error, openai.RateLimitError):
        return True
    if getattr(error, "retryable", False):
        return True

    response = getattr(error, "response", None)
    statuses = (
        getattr(error, "status_code", None),
        getattr(error, "status", None),
        getattr(error, "code", None),
        getattr(response, "status_code", None),
    )
    if any(str(status) == "429" for status in statuses if status is not None):
        return True

    message = str(error)
    return any(marker in message for marker in RATE_LIMIT_MARKERS)


class RetryPolicy:
    """Retry an async operation on transient errors with exponential backoff."""

    def __init__(
        self,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        is_retryable: Callable[[BaseException], bool] = is_transient_error,
    ) -> None:
        self._sleep = sleep
        self.is_retryable = is_retryable

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        max_retries: int = 3,
        initial_delay: float = 2.0,
        token: Optional[CancellationToken] = None,
    ) -> T:
        if token is not None:
            token.raise_if_cancelled()

        try:
            return await operation()
        except Exception as exc:
            if max_retries <= 0 or not self.is_retryable(exc):
                raise
            logger.warning(
                "Rate limit hit, retrying in %.1fs (%d retries left): %s",
                initial_delay,
                max_retries,
                exc,
            )

        await self._wait(initial_delay, token)
        return await self.run(operation, max_retries - 1, initial_delay * 2, token)

    async def _wait(self, delay: float, token: Optional[CancellationToken]) -> None:
        if self._sleep is not None:
            await self._sleep(delay)
        elif token is not None:
            await token.sleep(delay)
        else:
            await asyncio.sleep(delay)


@dataclass(frozen=True)
class Attempt:
    """One entry of a fallback chain: which tier to call and how hard to retry it."""

    tier: Tier
    max_retries: int
    initial_delay: float


async def run_attempt_chain(
    attempts: Sequence[Attempt],
    operation: Callable[[Tier], Awaitable[T]],
    policy: RetryPolicy,
    token: Optional[CancellationToken] = None,
) -> T:
    """
    Evaluate `attempts` in order and return the first success.

    Each attempt gets its own retry budget. Cancellation stops the chain
    immediately; otherwise the last error is re-raised once every attempt
    has failed.
    """
    if not attempts:
        raise ValueError("attempt chain is empty")

    last_error: Optional[Exception] = None
    for attempt in attempts:
        try:
            return await policy.run(
                lambda: operation(attempt.tier),
                max_retries=attempt.max_retries,
                initial_delay=attempt.initial_delay,
                token=token,
            )
        except GenerationCancelled:
            raise
        except Exception as exc:
            logger.warning("%s tier failed: %s", attempt.tier.value, exc)
            last_error = exc

    assert last_error is not None
    raise last_error
