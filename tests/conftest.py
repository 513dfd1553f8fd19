"""Pytest configuration and fixtures."""

from contextlib import asynccontextmanager

import pytest

from site_extractor.crawler import FrontierCrawler
from site_extractor.exceptions import StaleElementError
from site_extractor.extractor import PatternExtractor
from site_extractor.registry import PatternRegistry
from site_extractor.static_browser import StaticBrowser
from site_extractor.validation_cache import ProfileValidationCache

SEED_URL = "https://shop.test/"

CONTACT_HTML = """
<!DOCTYPE html>
<html>
<head><title>Contact</title></head>
<body>
    <h1>Contact us</h1>
    <a href="mailto:a@b.com">a@b.com</a>
    <p>call us at (555) 123-4567</p>
</body>
</html>
"""

PROFILE_HTML = """
<html><body>
    <div data-testid="primaryColumn">
        <div data-testid="UserName">Real User</div>
    </div>
</body></html>
"""

MISSING_PROFILE_HTML = """
<html><body>
    <div data-testid="error-detail">This account doesn't exist</div>
</body></html>
"""


class RevealingBrowser(StaticBrowser):
    """Static browser where clicking an element with ``data-reveal`` un-hides its target."""

    async def handle_click(self, tag):
        target = tag.get("data-reveal")
        if target:
            for hidden in self.soup.select(target):
                del hidden["hidden"]
            return
        await super().handle_click(tag)


class FlakyBrowser(StaticBrowser):
    """Static browser whose first lookup of ``flaky_selector`` raises a stale element error."""

    def __init__(self, pages, flaky_selector):
        super().__init__(pages)
        self.flaky_selector = flaky_selector
        self.refreshes = 0
        self._failed = False

    async def find_elements(self, selector):
        if selector == self.flaky_selector and not self._failed:
            self._failed = True
            raise StaleElementError("element is not attached to the DOM")
        return await super().find_elements(selector)

    async def refresh(self):
        self.refreshes += 1
        await super().refresh()


@pytest.fixture
def validation_cache():
    """Isolated validation cache without settle delay."""
    return ProfileValidationCache(settle_delay=0)


@pytest.fixture
def registry():
    """Registry with the built-in patterns."""
    return PatternRegistry()


@pytest.fixture
def extractor(validation_cache):
    """Extractor with short timeouts and no retry delay."""
    return PatternExtractor(
        validation_cache=validation_cache,
        ready_timeout=0.5,
        max_attempts=3,
        retry_delay=0,
    )


@pytest.fixture
def crawler(extractor):
    """Crawler with no settle delays."""
    return FrontierCrawler(
        extractor,
        page_settle_delay=0,
        click_settle_delay=0,
        visibility_timeout=0.5,
        retry_delay=0,
    )


@pytest.fixture
def crawler_settings():
    """``crawler`` config section with no delays."""
    return {
        "page_settle_delay": 0,
        "click_settle_delay": 0,
        "ready_timeout": 0.5,
        "visibility_timeout": 0.5,
        "max_attempts": 3,
        "retry_delay": 0,
        "follow_links": True,
    }


@pytest.fixture
def browser_factory():
    """
    Factory producing managed static browser sessions.

    Call ``factory.use(browser)`` to choose the browser handed out; every
    session created is recorded in ``factory.sessions``.
    """

    class Factory:
        def __init__(self):
            self.browser = None
            self.sessions = []

        def use(self, browser):
            self.browser = browser
            return self

        @asynccontextmanager
        async def __call__(self):
            self.sessions.append(self.browser)
            try:
                yield self.browser
            finally:
                await self.browser.quit()

    return Factory()
