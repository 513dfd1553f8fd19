"""Tests for retry module."""

import pytest

from site_extractor.exceptions import BrowserError, InvalidSelectorError, StaleElementError
from site_extractor.retry import retry_operation


class Operation:
    """Callable failing a fixed number of times before succeeding."""

    def __init__(self, failures, error=BrowserError):
        self.failures = failures
        self.error = error
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error(f"failure {self.calls}")
        return "ok"


class RecordingBrowser:
    """Minimal session recording refreshes and sleeps."""

    def __init__(self):
        self.refreshes = 0
        self.sleeps = []

    async def refresh(self):
        self.refreshes += 1

    async def sleep(self, seconds):
        self.sleeps.append(seconds)


class TestRetryOperation:
    """Test retry_operation."""

    @pytest.mark.asyncio
    async def test_success_on_first_attempt(self):
        """Test that a succeeding operation runs once."""
        operation = Operation(failures=0)

        assert await retry_operation(operation, max_attempts=3, delay=0) == "ok"
        assert operation.calls == 1

    @pytest.mark.asyncio
    async def test_success_after_max_minus_one_failures(self):
        """Test that the last allowed attempt can still succeed."""
        operation = Operation(failures=2)

        assert await retry_operation(operation, max_attempts=3, delay=0) == "ok"
        assert operation.calls == 3

    @pytest.mark.asyncio
    async def test_exhausted_attempts_raise_last_error(self):
        """Test that the final failure propagates with no extra attempts."""
        operation = Operation(failures=5)

        with pytest.raises(BrowserError, match="failure 3"):
            await retry_operation(operation, max_attempts=3, delay=0)

        assert operation.calls == 3

    @pytest.mark.asyncio
    async def test_non_retryable_error_raises_immediately(self):
        """Test that invalid selectors are not retried."""
        operation = Operation(failures=5, error=InvalidSelectorError)

        with pytest.raises(InvalidSelectorError):
            await retry_operation(operation, max_attempts=3, delay=0)

        assert operation.calls == 1

    @pytest.mark.asyncio
    async def test_stale_element_refreshes_page(self):
        """Test that a stale element triggers a refresh before the retry."""
        operation = Operation(failures=1, error=StaleElementError)
        browser = RecordingBrowser()

        assert await retry_operation(operation, max_attempts=3, delay=0.5, browser=browser) == "ok"
        assert browser.refreshes == 1
        assert browser.sleeps == [0.5]

    @pytest.mark.asyncio
    async def test_stale_element_without_browser_retries_plainly(self):
        """Test that stale errors are ordinary retries when no browser is given."""
        operation = Operation(failures=1, error=StaleElementError)

        assert await retry_operation(operation, max_attempts=2, delay=0) == "ok"
        assert operation.calls == 2

    @pytest.mark.asyncio
    async def test_stale_element_every_attempt(self):
        """Test that persistent staleness still respects the attempt budget."""
        operation = Operation(failures=10, error=StaleElementError)
        browser = RecordingBrowser()

        with pytest.raises(StaleElementError):
            await retry_operation(operation, max_attempts=3, delay=0, browser=browser)

        assert operation.calls == 3
        assert browser.refreshes == 2

    @pytest.mark.asyncio
    async def test_plain_failure_waits_through_browser(self):
        """Test that ordinary retries also wait with the session's sleep when a browser is given."""
        operation = Operation(failures=2)
        browser = RecordingBrowser()

        assert await retry_operation(operation, max_attempts=3, delay=0.25, browser=browser) == "ok"
        assert browser.refreshes == 0
        assert browser.sleeps == [0.25, 0.25]

    @pytest.mark.asyncio
    async def test_invalid_max_attempts(self):
        """Test that at least one attempt is required."""
        with pytest.raises(ValueError):
            await retry_operation(Operation(failures=0), max_attempts=0)
