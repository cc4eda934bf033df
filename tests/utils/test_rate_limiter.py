"""Tests for the rate_limited retry decorator."""

from unittest.mock import patch

import pytest

from src.utils.rate_limiter import MAX_RETRY_DELAY_SECONDS, RateLimitedError, rate_limited


class TestRateLimited:
    @patch("src.utils.rate_limiter.time.sleep")
    def test_retries_until_success(self, mock_sleep):
        calls = []

        @rate_limited(max_retries=3, base_delay=2)
        def fetch():
            calls.append(1)
            if len(calls) < 3:
                raise RateLimitedError()
            return "ok"

        assert fetch() == "ok"
        assert [c.args[0] for c in mock_sleep.call_args_list] == [2, 4]

    @patch("src.utils.rate_limiter.time.sleep")
    def test_server_retry_after_wins_and_is_capped(self, mock_sleep):
        attempts = iter([RateLimitedError(retry_after=30), RateLimitedError(retry_after=10_000)])

        @rate_limited(max_retries=3, base_delay=2)
        def fetch():
            error = next(attempts, None)
            if error:
                raise error
            return "ok"

        assert fetch() == "ok"
        assert [c.args[0] for c in mock_sleep.call_args_list] == [30, MAX_RETRY_DELAY_SECONDS]

    @patch("src.utils.rate_limiter.time.sleep")
    def test_reraises_after_max_retries(self, mock_sleep):
        @rate_limited(max_retries=2, base_delay=1)
        def fetch():
            raise RateLimitedError(message="still limited")

        with pytest.raises(RateLimitedError, match="still limited"):
            fetch()
        assert mock_sleep.call_count == 1

    def test_other_errors_propagate_immediately(self):
        @rate_limited()
        def fetch():
            raise ValueError("bad query")

        with pytest.raises(ValueError):
            fetch()
