from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from freshscan.core.errors import RateLimitError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SimpleRateLimiter:
    """
    Minimum-interval gate shared by every request of one ledger client.

    Safe to call from worker threads: the slot reservation happens under a lock,
    the sleep happens outside it, so callers queue up in arrival order.
    """

    def __init__(
        self,
        min_interval_sec: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if min_interval_sec < 0:
            raise ValueError("min_interval_sec must be >= 0")
        self._min_interval = float(min_interval_sec)
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._next_slot = 0.0
        self._count = 0

    @classmethod
    def per_second(cls, requests_per_sec: float, **kwargs) -> "SimpleRateLimiter":
        if requests_per_sec <= 0:
            raise ValueError("requests_per_sec must be > 0")
        return cls(1.0 / requests_per_sec, **kwargs)

    @property
    def request_count(self) -> int:
        return self._count

    def reset_count(self) -> None:
        with self._lock:
            self._count = 0

    def wait(self) -> None:
        with self._lock:
            now = self._clock()
            slot = max(now, self._next_slot)
            self._next_slot = slot + self._min_interval
            self._count += 1
        sleep_for = slot - now
        if sleep_for > 0:
            self._sleep(sleep_for)


def backoff_delay(attempt: int, base: float = 1.0, cap: float = 8.0) -> float:
    return min(cap, base * (2 ** attempt))


def is_throttling_error(exc: BaseException) -> bool:
    return isinstance(exc, RateLimitError)


@dataclass
class RetryPolicy:
    """
    Bounded exponential backoff for throttled calls.

    Only errors accepted by `is_retryable` are retried; anything else is raised
    on the first attempt. The last retryable error is re-raised once
    `max_attempts` calls have failed.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    cap: float = 8.0
    is_retryable: Callable[[BaseException], bool] = is_throttling_error
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def delay_for(self, attempt: int) -> float:
        return backoff_delay(attempt, self.base_delay, self.cap)

    def run(self, fn: Callable[[], T], label: str = "call") -> T:
        attempt = 0
        while True:
            try:
                return fn()
            except Exception as e:
                if not self.is_retryable(e) or attempt >= self.max_attempts - 1:
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "%s throttled, retrying in %.1fs (attempt %d/%d)",
                    label, delay, attempt + 1, self.max_attempts,
                )
                self.sleep(delay)
                attempt += 1
