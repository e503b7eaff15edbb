"""Rate limiters deciding how long a failed key waits before it is retried."""

from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Callable
import logging
import time

__all__ = [
    "RateLimiter",
    "ItemExponentialFailureRateLimiter",
    "BucketRateLimiter",
    "MaxOfRateLimiter",
    "default_controller_rate_limiter",
]

_LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_DELAY = 0.005
DEFAULT_MAX_DELAY = 1000.0
DEFAULT_QPS = 10.0
DEFAULT_BURST = 100


class RateLimiter(ABC):
    """Tracks retries of keys and computes their delays."""

    @abstractmethod
    def when(self, item: str) -> float:
        """Return the number of seconds to wait before the item is retried."""

    @abstractmethod
    def forget(self, item: str) -> None:
        """Stop tracking the item, resetting its delay."""

    @abstractmethod
    def num_requeues(self, item: str) -> int:
        """Return the number of times the item has been rate limited."""


class ItemExponentialFailureRateLimiter(RateLimiter):
    """Delay doubling with every failure of an item, up to a maximum."""

    def __init__(
        self,
        base_delay: float = DEFAULT_BASE_DELAY,
        max_delay: float = DEFAULT_MAX_DELAY,
    ) -> None:
        """Initialize ItemExponentialFailureRateLimiter."""
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._failures: defaultdict[str, int] = defaultdict(int)

    def when(self, item: str) -> float:
        exp = self._failures[item]
        self._failures[item] += 1
        # Avoid float overflow for items failing for a very long time
        if exp >= 64:
            return self._max_delay
        return min(self._base_delay * 2**exp, self._max_delay)

    def forget(self, item: str) -> None:
        self._failures.pop(item, None)

    def num_requeues(self, item: str) -> int:
        return self._failures.get(item, 0)


class BucketRateLimiter(RateLimiter):
    """Token bucket limiting the overall rate of retries across all items."""

    def __init__(
        self,
        qps: float = DEFAULT_QPS,
        burst: int = DEFAULT_BURST,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize BucketRateLimiter."""
        self._qps = qps
        self._burst = burst
        self._clock = clock
        self._tokens = float(burst)
        self._last = clock()

    def when(self, item: str) -> float:
        now = self._clock()
        self._tokens = min(
            float(self._burst), self._tokens + (now - self._last) * self._qps
        )
        self._last = now
        self._tokens -= 1
        if self._tokens >= 0:
            return 0.0
        return -self._tokens / self._qps

    def forget(self, item: str) -> None:
        pass

    def num_requeues(self, item: str) -> int:
        return 0


class MaxOfRateLimiter(RateLimiter):
    """Uses the longest delay of several rate limiters."""

    def __init__(self, *limiters: RateLimiter) -> None:
        """Initialize MaxOfRateLimiter."""
        self._limiters = limiters

    def when(self, item: str) -> float:
        return max((limiter.when(item) for limiter in self._limiters), default=0.0)

    def forget(self, item: str) -> None:
        for limiter in self._limiters:
            limiter.forget(item)

    def num_requeues(self, item: str) -> int:
        return max(
            (limiter.num_requeues(item) for limiter in self._limiters), default=0
        )


def default_controller_rate_limiter() -> RateLimiter:
    """Rate limiter with per-item exponential backoff and an overall limit."""
    return MaxOfRateLimiter(
        ItemExponentialFailureRateLimiter(),
        BucketRateLimiter(),
    )
