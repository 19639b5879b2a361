"""
Rate limiting for backend-facing operations.

Provides a simple spacing limiter:
- At most `max_operations_per_second` acquisitions per second
- Sleeps only as long as needed since the previous acquisition
- Clock and sleep are injectable so tests never wait

Usage:
    limiter = RateLimiter(max_operations_per_second=5)
    for key in keys:
        limiter.acquire()
        s3.delete_file(key)
"""
import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class RateLimiter:
    """Spaces out operations so they never exceed a fixed rate."""

    def __init__(
        self,
        max_operations_per_second: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep
    ):
        if max_operations_per_second <= 0:
            raise ValueError("max_operations_per_second must be positive")
        self.max_operations_per_second = max_operations_per_second
        self.min_interval = 1.0 / max_operations_per_second
        self._clock = clock
        self._sleep = sleep
        self._last_acquired: Optional[float] = None
        self.total_wait = 0.0

    def acquire(self) -> float:
        """Block until the next operation is allowed. Returns the seconds waited."""
        now = self._clock()
        waited = 0.0
        if self._last_acquired is not None:
            remaining = self.min_interval - (now - self._last_acquired)
            if remaining > 0:
                self._sleep(remaining)
                waited = remaining
                now += remaining
        self._last_acquired = now
        self.total_wait += waited
        return waited

    def reset(self):
        """Forget the previous acquisition (e.g., between independent runs)."""
        self._last_acquired = None


def create_rate_limiter(max_operations_per_second: Optional[float]) -> Optional[RateLimiter]:
    """Build a limiter from config; None or 0 disables limiting."""
    if not max_operations_per_second:
        return None
    logger.debug(f"Limiting backend operations to {max_operations_per_second}/s")
    return RateLimiter(max_operations_per_second)
