"""Retry classification tests."""

import pytest

from rankworker.services.retry_policy import MAX_RETRIES, is_transient_error, should_retry


class TestIsTransientError:

    @pytest.mark.parametrize("message", [
        "Request timeout (30 seconds)",
        "Connection error: [Errno 104] Connection reset by peer",
        "DFS-429 API returned 429: Too Many Requests",
        "DFS-503 API returned 503: Service Unavailable",
        "DFS-40202 Task failed: Rate limit per minute exceeded",
        "DFS-50000 Task failed: Internal Error.",
    ])
    def test_transient(self, message):
        assert is_transient_error(message) is True

    @pytest.mark.parametrize("message", [
        "DFS-402 quota exceeded",
        "DFS-401 API returned 401: Unauthorized",
        "DFS-40200 Task failed: Payment Required.",
        "DFS-40501 Task failed: Invalid Field: 'location_code'.",
        "DataForSEO credentials not configured. Set DATAFORSEO_LOGIN and DATAFORSEO_PASSWORD.",
        "No task returned from API",
        "",
        None,
    ])
    def test_permanent(self, message):
        assert is_transient_error(message) is False

    def test_status_code_beats_text(self):
        """A permanent code stays permanent even if the text mentions a timeout."""
        assert is_transient_error("DFS-402 quota exceeded after timeout") is False

    def test_permanent_text_beats_transient_text(self):
        assert is_transient_error("Connection refused: invalid API key") is False


class TestShouldRetry:

    def test_retries_transient_under_cap(self):
        for count in range(MAX_RETRIES):
            assert should_retry(count, "Request timeout (30 seconds)") is True

    def test_stops_at_cap(self):
        assert should_retry(MAX_RETRIES, "Request timeout (30 seconds)") is False
        assert should_retry(MAX_RETRIES + 5, "Request timeout (30 seconds)") is False

    def test_never_retries_permanent(self):
        assert should_retry(0, "DFS-402 quota exceeded") is False
