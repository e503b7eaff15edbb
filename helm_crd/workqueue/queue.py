"""Work queues feeding keys to the controller workers.

A `WorkQueue` hands out each key to at most one worker at a time. A key added
while it is waiting is only queued once, and a key added while a worker is
processing it is queued again once the worker calls `done`.
"""

import asyncio
from collections import deque
import logging

from .rate_limiter import RateLimiter, default_controller_rate_limiter

__all__ = [
    "WorkQueue",
    "RateLimitingQueue",
]

_LOGGER = logging.getLogger(__name__)


class WorkQueue:
    """A queue of keys with dedup and no concurrent processing of a key."""

    def __init__(self) -> None:
        """Initialize WorkQueue."""
        self._queue: deque[str] = deque()
        self._dirty: set[str] = set()
        self._processing: set[str] = set()
        self._getters: deque[asyncio.Future[None]] = deque()
        self._shutting_down = False

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def shutting_down(self) -> bool:
        """Return True once `shut_down` has been called."""
        return self._shutting_down

    def _wakeup_next(self) -> None:
        while self._getters:
            waiter = self._getters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return

    def add(self, item: str) -> None:
        """Mark the item as needing processing."""
        if self._shutting_down:
            return
        if item in self._dirty:
            return
        self._dirty.add(item)
        if item in self._processing:
            return
        self._queue.append(item)
        self._wakeup_next()

    async def get(self) -> str | None:
        """Wait for the next item to process, returning None once shut down.

        Every item returned must be passed to `done` when processing finishes.
        """
        loop = asyncio.get_running_loop()
        while not self._queue and not self._shutting_down:
            waiter = loop.create_future()
            self._getters.append(waiter)
            try:
                await waiter
            except asyncio.CancelledError:
                waiter.cancel()
                if waiter in self._getters:
                    self._getters.remove(waiter)
                # Pass a wakeup on to another getter
                if self._queue and not waiter.cancelled():
                    self._wakeup_next()
                raise
        if self._shutting_down:
            return None
        item = self._queue.popleft()
        self._processing.add(item)
        self._dirty.discard(item)
        return item

    def done(self, item: str) -> None:
        """Mark the item as done processing, queueing it again if it was re-added."""
        self._processing.discard(item)
        if item in self._dirty:
            self._queue.append(item)
            self._wakeup_next()

    def shut_down(self) -> None:
        """Stop handing out items and wake up all waiting workers."""
        _LOGGER.debug("Shutting down work queue")
        self._shutting_down = True
        while self._getters:
            waiter = self._getters.popleft()
            if not waiter.done():
                waiter.set_result(None)


class RateLimitingQueue(WorkQueue):
    """A WorkQueue supporting delayed and rate limited insertion."""

    def __init__(self, rate_limiter: RateLimiter | None = None) -> None:
        """Initialize RateLimitingQueue."""
        super().__init__()
        self._rate_limiter = rate_limiter or default_controller_rate_limiter()
        self._waiting: dict[str, asyncio.TimerHandle] = {}

    def add_after(self, item: str, delay: float) -> None:
        """Add the item once the delay has passed.

        When the item is already waiting the earliest deadline is kept.
        """
        if self._shutting_down:
            return
        if delay <= 0:
            self.add(item)
            return
        loop = asyncio.get_running_loop()
        deadline = loop.time() + delay
        if (existing := self._waiting.get(item)) is not None:
            if existing.when() <= deadline:
                return
            existing.cancel()
        self._waiting[item] = loop.call_at(deadline, self._waiting_ready, item)

    def _waiting_ready(self, item: str) -> None:
        self._waiting.pop(item, None)
        self.add(item)

    def add_rate_limited(self, item: str) -> None:
        """Add the item after the delay chosen by the rate limiter."""
        self.add_after(item, self._rate_limiter.when(item))

    def forget(self, item: str) -> None:
        """Stop tracking retries of the item."""
        self._rate_limiter.forget(item)

    def num_requeues(self, item: str) -> int:
        """Return the number of times the item has been rate limited."""
        return self._rate_limiter.num_requeues(item)

    def shut_down(self) -> None:
        """Stop handing out items and cancel items waiting to be added."""
        super().shut_down()
        for timer in self._waiting.values():
            timer.cancel()
        self._waiting.clear()
