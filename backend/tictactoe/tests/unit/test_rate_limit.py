"""Tests for the sliding-window request limiter."""

from unittest.mock import patch

from tictactoe.server.rate_limit import HOUR_SECONDS, MINUTE_SECONDS, RateLimitExceeded, SlidingWindowLimiter


class TestSlidingWindowLimiter:
    def test_allows_up_to_minute_limit(self):
        limiter = SlidingWindowLimiter(per_minute=3, per_hour=100)
        with patch("tictactoe.server.rate_limit.time") as mock_time:
            mock_time.monotonic.return_value = 1000.0
            assert [limiter.check("c") for _ in range(3)] == [None, None, None]
            exceeded = limiter.check("c")

        assert exceeded == RateLimitExceeded(limit=3, window="minute")
        assert exceeded.message == "Rate limit exceeded. Maximum 3 requests per minute allowed."

    def test_clients_are_independent(self):
        limiter = SlidingWindowLimiter(per_minute=1, per_hour=100)
        with patch("tictactoe.server.rate_limit.time") as mock_time:
            mock_time.monotonic.return_value = 1000.0
            assert limiter.check("a") is None
            assert limiter.check("b") is None
            assert limiter.check("a") is not None
        assert limiter.tracked_clients == 2

    def test_minute_window_slides(self):
        limiter = SlidingWindowLimiter(per_minute=2, per_hour=100)
        with patch("tictactoe.server.rate_limit.time") as mock_time:
            mock_time.monotonic.return_value = 1000.0
            limiter.check("c")
            mock_time.monotonic.return_value = 1030.0
            limiter.check("c")
            assert limiter.check("c") is not None

            # the first request has left the window, the second has not
            mock_time.monotonic.return_value = 1000.0 + MINUTE_SECONDS + 1
            assert limiter.check("c") is None
            assert limiter.check("c") is not None

    def test_hour_limit(self):
        limiter = SlidingWindowLimiter(per_minute=2, per_hour=3)
        with patch("tictactoe.server.rate_limit.time") as mock_time:
            for t in (0.0, 100.0, 200.0):
                mock_time.monotonic.return_value = 1000.0 + t
                assert limiter.check("c") is None
            mock_time.monotonic.return_value = 1300.0
            exceeded = limiter.check("c")
            assert exceeded is not None
            assert exceeded.window == "hour"

            mock_time.monotonic.return_value = 1000.0 + HOUR_SECONDS
            assert limiter.check("c") is None

    def test_rejected_requests_are_not_counted(self):
        limiter = SlidingWindowLimiter(per_minute=1, per_hour=100)
        with patch("tictactoe.server.rate_limit.time") as mock_time:
            mock_time.monotonic.return_value = 1000.0
            limiter.check("c")
            for _ in range(10):
                limiter.check("c")
            mock_time.monotonic.return_value = 1000.0 + MINUTE_SECONDS
            assert limiter.check("c") is None

    def test_prune_idle_drops_quiet_clients(self):
        limiter = SlidingWindowLimiter(per_minute=5, per_hour=100)
        with patch("tictactoe.server.rate_limit.time") as mock_time:
            mock_time.monotonic.return_value = 1000.0
            limiter.check("old")
            mock_time.monotonic.return_value = 1000.0 + HOUR_SECONDS - 10
            limiter.check("recent")
            mock_time.monotonic.return_value = 1000.0 + HOUR_SECONDS + 1

            assert limiter.prune_idle() == 1
        assert limiter.tracked_clients == 1
