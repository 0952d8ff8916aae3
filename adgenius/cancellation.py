import asyncio
import logging
import time
from typing import Awaitable, Optional, TypeVar

from .errors import GenerationCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """
    Cancel flag plus optional deadline for one generation attempt.

    Every suspension point of the pipeline goes through `run()` (provider
    calls) or `sleep()` (backoff), so a cancel or an expired deadline aborts
    promptly instead of waiting for the provider to answer.
    """

    def __init__(self, timeout: Optional[float] = None) -> None:
        self._event = asyncio.Event()
        self._reason: Optional[str] = None
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            logger.info("Cancelling generation: %s", reason)
            self._reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self._expired()

    @property
    def reason(self) -> Optional[str]:
        if self._event.is_set():
            return self._reason
        if self._expired():
            return "deadline exceeded"
        return None

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise GenerationCancelled(self.reason)

    def remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def _expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    async def sleep(self, delay: float) -> None:
        self.raise_if_cancelled()
        remaining = self.remaining()
        wait = delay if remaining is None else min(delay, remaining)
        try:
            await asyncio.wait_for(self._event.wait(), timeout=wait)
        except asyncio.TimeoutError:
            pass
        if remaining is not None and remaining < delay:
            raise GenerationCancelled("deadline exceeded")
        self.raise_if_cancelled()

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await `awaitable`, abandoning it if the token fires first."""
        if self.cancelled and asyncio.iscoroutine(awaitable):
            awaitable.close()
        self.raise_if_cancelled()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter},
                timeout=self.remaining(),
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            waiter.cancel()
            if not task.done():
                # Also reached when the caller itself is cancelled.
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

        if task in done:
            return task.result()

        raise GenerationCancelled(self.reason or "deadline exceeded")
