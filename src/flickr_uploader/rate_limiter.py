"""Sliding-window limiter for outbound Flickr API calls."""

import logging
import threading
import time
from collections import deque
from collections.abc import Callable

from flickr_uploader.errors import RateLimitExceeded

logger = logging.getLogger(__name__)

# Flickr allows 3600 calls per key per hour
DEFAULT_QUOTA = 3600
DEFAULT_WINDOW_SECONDS = 3600.0


class RateLimiter:
    """Tracks recent remote calls and rejects new ones once the quota is used."""

    def __init__(
        self,
        quota: int = DEFAULT_QUOTA,
        window: float = DEFAULT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize rate limiter.

        Args:
            quota: Maximum number of calls allowed inside the window
            window: Length of the rolling window in seconds
            clock: Monotonic time source
        """
        if quota < 1:
            raise ValueError("Rate limit quota must be at least 1")
        self.quota = quota
        self.window = window
        self._clock = clock
        self._calls: deque[float] = deque()
        self._lock = threading.Lock()

    def _prune(self, now: float) -> None:
        cutoff = now - self.window
        while self._calls and self._calls[0] <= cutoff:
            self._calls.popleft()

    def check_and_record(self) -> None:
        """Record one remote call, or refuse it if the quota is exhausted.

        Raises:
            RateLimitExceeded: If ``quota`` calls were already made in the window
        """
        with self._lock:
            now = self._clock()
            self._prune(now)
            if len(self._calls) >= self.quota:
                logger.warning(
                    f"Rate limit reached: {len(self._calls)} calls in the last "
                    f"{self.window:.0f}s"
                )
                raise RateLimitExceeded(
                    f"Rate limit exceeded: {self.quota} calls per {self.window:.0f} seconds"
                )
            self._calls.append(now)

    def remaining(self) -> int:
        """Get the number of calls still allowed in the current window."""
        with self._lock:
            self._prune(self._clock())
            return self.quota - len(self._calls)
