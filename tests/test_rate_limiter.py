"""Tests for the sliding-window rate limiter."""

import threading

import pytest

from flickr_uploader.errors import RateLimitExceeded
from flickr_uploader.rate_limiter import RateLimiter


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestRateLimiter:
    """Test rate limiter quota enforcement."""

    def test_allows_calls_up_to_quota(self) -> None:
        """Test that exactly ``quota`` calls pass inside the window."""
        limiter = RateLimiter(quota=3, window=60, clock=FakeClock())

        for _ in range(3):
            limiter.check_and_record()

        assert limiter.remaining() == 0

    def test_rejects_call_over_quota(self) -> None:
        """Test that the call after the quota fails."""
        limiter = RateLimiter(quota=3, window=60, clock=FakeClock())
        for _ in range(3):
            limiter.check_and_record()

        with pytest.raises(RateLimitExceeded):
            limiter.check_and_record()

    def test_rejected_call_not_recorded(self) -> None:
        """Test that a refused call does not consume budget."""
        clock = FakeClock()
        limiter = RateLimiter(quota=1, window=60, clock=clock)
        limiter.check_and_record()

        clock.now += 30
        with pytest.raises(RateLimitExceeded):
            limiter.check_and_record()

        # Only the first call counts, so capacity returns 60s after it
        clock.now += 30.5
        limiter.check_and_record()

    def test_capacity_restored_after_window(self) -> None:
        """Test that capacity comes back once the window has elapsed."""
        clock = FakeClock()
        limiter = RateLimiter(quota=2, window=3600, clock=clock)
        limiter.check_and_record()
        limiter.check_and_record()

        clock.now += 3600
        assert limiter.remaining() == 2
        limiter.check_and_record()

    def test_window_slides(self) -> None:
        """Test that old calls expire individually."""
        clock = FakeClock()
        limiter = RateLimiter(quota=2, window=100, clock=clock)
        limiter.check_and_record()
        clock.now += 60
        limiter.check_and_record()

        clock.now += 50
        assert limiter.remaining() == 1

    def test_default_quota(self) -> None:
        """Test the default hourly quota."""
        limiter = RateLimiter()

        assert limiter.quota == 3600
        assert limiter.window == 3600
        assert limiter.remaining() == 3600

    def test_invalid_quota(self) -> None:
        """Test that a zero quota is rejected."""
        with pytest.raises(ValueError):
            RateLimiter(quota=0)

    def test_concurrent_checks_do_not_overcommit(self) -> None:
        """Test that concurrent threads never take more slots than the quota."""
        limiter = RateLimiter(quota=50, window=3600)
        passed = []
        refused = []
        barrier = threading.Barrier(8)

        def worker() -> None:
            barrier.wait()
            for _ in range(20):
                try:
                    limiter.check_and_record()
                    passed.append(1)
                except RateLimitExceeded:
                    refused.append(1)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(passed) == 50
        assert len(refused) == 110
