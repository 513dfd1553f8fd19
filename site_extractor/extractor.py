"""Apply extraction patterns to the page currently loaded in the browser."""

from typing import Any, Dict, List, Optional

import structlog

from .browser import BrowserSession, ElementHandle
from .models import DataPattern
from .retry import retry_operation
from .validation_cache import ProfileValidationCache

logger = structlog.get_logger(__name__, service="extractor")


class PatternExtractor:
    """
    Extract the values of one pattern from the current page.

    Failures are isolated at the smallest scope: a broken selector skips
    only that selector, an unreadable element skips only that element.
    """

    def __init__(
        self,
        validation_cache: Optional[ProfileValidationCache] = None,
        ready_timeout: float = 10.0,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
    ):
        """
        Initialize extractor.

        Args:
            validation_cache: Shared handle validation cache for transforms that need it
            ready_timeout: Seconds to wait for the page body before extracting anyway
            max_attempts: Attempts for each browser call
            retry_delay: Seconds between attempts
        """
        self.validation_cache = validation_cache
        self.ready_timeout = ready_timeout
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay

    async def wait_until_ready(self, browser: BrowserSession) -> bool:
        """
        Wait for the root element, returning False on timeout instead of raising.

        Args:
            browser: Browser session

        Returns:
            True if the page body appeared in time
        """

        async def body_present():
            return await browser.find_elements("body")

        try:
            await browser.wait_until(body_present, self.ready_timeout)
            return True
        except Exception as e:
            logger.warning("page_not_ready", error=str(e))
            return False

    async def extract(self, browser: BrowserSession, pattern: DataPattern) -> List[Any]:
        """
        Extract deduplicated values for a pattern from the current page.

        Args:
            browser: Browser session with the page loaded
            pattern: Pattern to apply

        Returns:
            Values in discovery order, without duplicates
        """
        await self.wait_until_ready(browser)

        results: Dict[Any, None] = {}
        for selector in pattern.config.selectors:
            try:
                elements = await retry_operation(
                    lambda: browser.find_elements(selector),
                    max_attempts=self.max_attempts,
                    delay=self.retry_delay,
                    browser=browser,
                )
            except Exception as e:
                logger.warning("selector_failed", pattern=pattern.name, selector=selector, error=str(e))
                continue

            for element in elements:
                try:
                    text = await retry_operation(
                        lambda: self._read(element, pattern.config.attribute),
                        max_attempts=self.max_attempts,
                        delay=self.retry_delay,
                    )
                    if not text:
                        continue
                    for value in await self._process_text(text, pattern, browser):
                        results.setdefault(value, None)
                except Exception as e:
                    logger.debug("element_skipped", pattern=pattern.name, selector=selector, error=str(e))
                    continue

        if pattern.config.include_page_source:
            try:
                source = await retry_operation(
                    browser.page_source,
                    max_attempts=self.max_attempts,
                    delay=self.retry_delay,
                    browser=browser,
                )
                for value in await self._process_text(source, pattern, browser):
                    results.setdefault(value, None)
            except Exception as e:
                logger.warning("page_source_failed", pattern=pattern.name, error=str(e))

        values = list(results)
        logger.debug("pattern_extracted", pattern=pattern.name, count=len(values))
        return values

    @staticmethod
    async def _read(element: ElementHandle, attribute: Optional[str]) -> Optional[str]:
        if attribute:
            return await element.attribute(attribute)
        return await element.text()

    async def _process_text(self, text: str, pattern: DataPattern, browser: BrowserSession) -> List[Any]:
        """Run regexes, then transform, then validate."""
        config = pattern.config
        values = []
        for regex in pattern.compiled:
            for match in regex.finditer(text):
                value: Any = match.group(0)

                if config.transform is not None:
                    value = await config.transform.apply(value, browser, self.validation_cache)
                    if not value:
                        continue

                if config.validate_ is not None and not config.validate_.check(value):
                    continue

                values.append(value)
        return values
