"""Bounded crawl of a site neighborhood for one extraction pattern."""

from typing import List, Optional, Tuple
from urllib.parse import urldefrag, urljoin, urlparse

import structlog

from .browser import DOM_SNAPSHOT_SCRIPT, BrowserSession
from .extractor import PatternExtractor
from .models import CrawlState, CrawlStats, DataPattern
from .retry import retry_operation

logger = structlog.get_logger(__name__, service="crawler")

MAX_PAGES = 10

INTERACTIVE_SELECTOR = 'nav a, .nav-link, button:not([disabled]), [role="button"]'

# Links likely to hold contact details are visited first
KEYWORD_PRIORITY = (
    "contact",
    "about",
    "team",
    "staff",
    "locations",
    "location",
    "social",
    "press",
)

_SKIP_SCHEMES = ("mailto:", "tel:", "javascript:", "data:")


def _same_origin(a: str, b: str) -> bool:
    ua, ub = urlparse(a), urlparse(b)
    return ua.scheme in ("http", "https") and (ua.scheme, ua.netloc.lower()) == (ub.scheme, ub.netloc.lower())


def _resolve_link(base_url: str, href: Optional[str]) -> Optional[str]:
    """Absolute URL a link points to, or None for in-page and non-http links."""
    if not href:
        return None
    href = href.strip()
    if not href or href.startswith(_SKIP_SCHEMES) or href.startswith("#"):
        return None
    return urldefrag(urljoin(base_url, href))[0]


class FrontierCrawler:
    """
    Visit up to MAX_PAGES pages from a seed URL, extracting one pattern.

    After each navigation the page is extracted, then every visible
    interactive element is clicked; if the serialized DOM changed, the page
    is extracted again. Any per-URL failure skips that URL only.
    """

    def __init__(
        self,
        extractor: PatternExtractor,
        max_pages: int = MAX_PAGES,
        page_settle_delay: float = 2.0,
        click_settle_delay: float = 1.0,
        visibility_timeout: float = 5.0,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        follow_links: bool = True,
    ):
        """
        Initialize crawler.

        Args:
            extractor: Extractor run after each navigation / interaction
            max_pages: Maximum number of distinct URLs visited
            page_settle_delay: Seconds to wait after navigation for dynamic content
            click_settle_delay: Seconds to wait after a click
            visibility_timeout: Seconds to wait for an element to become visible
            max_attempts: Attempts for each browser call
            retry_delay: Seconds between attempts
            follow_links: Whether to enqueue same-origin links found on pages
        """
        self.extractor = extractor
        self.max_pages = max_pages
        self.page_settle_delay = page_settle_delay
        self.click_settle_delay = click_settle_delay
        self.visibility_timeout = visibility_timeout
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.follow_links = follow_links

    async def _retry(self, operation, browser: Optional[BrowserSession] = None):
        return await retry_operation(
            operation,
            max_attempts=self.max_attempts,
            delay=self.retry_delay,
            browser=browser,
        )

    async def crawl(
        self,
        browser: BrowserSession,
        seed_url: str,
        pattern: DataPattern,
        pattern_key: Optional[str] = None,
    ) -> Tuple[List, CrawlStats]:
        """
        Crawl from a seed URL and extract a pattern.

        Args:
            browser: Browser session (used exclusively by this crawl)
            seed_url: First URL to visit
            pattern: Pattern to extract
            pattern_key: Key used for logging and stats

        Returns:
            Tuple of (deduplicated values in discovery order, crawl stats)
        """
        state = CrawlState(seed_url=seed_url)
        stats = CrawlStats(pattern_key=pattern_key or pattern.name)
        log = logger.bind(pattern=stats.pattern_key, seed_url=seed_url)
        log.info("crawl_started", max_pages=self.max_pages)

        while state.frontier and len(state.history) < self.max_pages:
            url = state.frontier.pop(0)
            state.history.append(url)
            try:
                await self._visit(browser, url, pattern, state, stats)
                stats.pages_visited += 1
            except Exception as e:
                stats.pages_failed += 1
                log.error("page_failed", url=url, error=str(e), error_type=type(e).__name__)
                continue

        stats.values_found = len(state.results)
        log.info(
            "crawl_completed",
            pages_visited=stats.pages_visited,
            pages_failed=stats.pages_failed,
            interactions=stats.interactions,
            values_found=stats.values_found,
        )
        return state.values(), stats

    async def _visit(
        self,
        browser: BrowserSession,
        url: str,
        pattern: DataPattern,
        state: CrawlState,
        stats: CrawlStats,
    ) -> None:
        await self._retry(lambda: browser.navigate(url), browser)
        await self.extractor.wait_until_ready(browser)
        await browser.sleep(self.page_settle_delay)

        # Links resolve against where the page landed, not what was requested
        landed_url = await browser.current_url()
        state.record_landing(url, landed_url)

        new = state.add_results(await self.extractor.extract(browser, pattern))
        logger.info("page_visited", url=url, landed_url=landed_url, pattern=stats.pattern_key, new_values=new)

        if self.follow_links:
            await self._discover_links(browser, landed_url, state)

        await self._interact(browser, url, pattern, state, stats)

    def _in_scope(self, link: str, state: CrawlState) -> bool:
        if state.origin is not None and _same_origin(link, state.origin):
            return True
        return _same_origin(link, state.seed_url)

    def _claim(self, link: str, state: CrawlState) -> bool:
        """Reserve a same-origin URL within the page budget."""
        return self._in_scope(link, state) and state.claim(link, self.max_pages)

    async def _discover_links(self, browser: BrowserSession, page_url: str, state: CrawlState) -> None:
        """Enqueue same-origin links while the page budget allows."""
        try:
            anchors = await self._retry(lambda: browser.find_elements("a[href]"), browser)
        except Exception as e:
            logger.warning("link_discovery_failed", url=page_url, error=str(e))
            return

        seen = set()
        candidates = []
        for anchor in anchors:
            try:
                href = await anchor.attribute("href")
            except Exception:
                continue
            link = _resolve_link(page_url, href)
            if link is None or not self._in_scope(link, state):
                continue
            key = state.url_key(link)
            if key not in seen and not state.is_known(link):
                candidates.append(link)
                seen.add(key)

        def priority(link: str) -> int:
            path = urlparse(link).path.lower()
            for rank, keyword in enumerate(KEYWORD_PRIORITY):
                if keyword in path:
                    return rank
            return len(KEYWORD_PRIORITY)

        for link in sorted(candidates, key=priority):
            if not state.claim(link, self.max_pages):
                break
            state.frontier.append(link)
            logger.debug("link_enqueued", url=link)

    async def _interact(
        self,
        browser: BrowserSession,
        page_url: str,
        pattern: DataPattern,
        state: CrawlState,
        stats: CrawlStats,
    ) -> None:
        """
        Click interactive elements and re-extract when the DOM changes.

        A link is only clicked if its target could be claimed as a new page:
        same origin, not yet known, and within the page budget. A click that
        navigates anyway is extracted under the same rule, and the crawler
        returns to the page under crawl either way.
        """
        landing_url = await browser.current_url()
        try:
            elements = await self._retry(lambda: browser.find_elements(INTERACTIVE_SELECTOR), browser)
        except Exception as e:
            logger.warning("interactive_lookup_failed", url=page_url, error=str(e))
            return

        logger.debug("interactive_elements_found", url=page_url, count=len(elements))

        for index in range(len(elements)):
            try:
                # Re-locate by index; earlier clicks may have re-rendered the page
                current = await browser.find_elements(INTERACTIVE_SELECTOR)
                if index >= len(current):
                    continue
                element = current[index]

                try:
                    displayed = await self._retry(element.is_displayed)
                except Exception:
                    continue
                if not displayed:
                    continue

                target = _resolve_link(landing_url, await self._retry(lambda: element.attribute("href")))
                if target is not None and not self._claim(target, state):
                    logger.debug("link_click_skipped", url=page_url, index=index, target=target)
                    continue

                before = await browser.execute_script(DOM_SNAPSHOT_SCRIPT)

                async def click():
                    await element.scroll_into_view()
                    await browser.wait_until(element.is_displayed, self.visibility_timeout)
                    await element.click()

                await self._retry(click)
                stats.interactions += 1
                await browser.sleep(self.click_settle_delay)

                arrived_url = await browser.current_url()
                if arrived_url != landing_url:
                    if target is not None or self._claim(arrived_url, state):
                        new = state.add_results(await self.extractor.extract(browser, pattern))
                        stats.reextractions += 1
                        logger.debug("navigated_page_extracted", url=arrived_url, index=index, new_values=new)
                    else:
                        logger.debug("navigated_page_ignored", url=arrived_url, index=index)

                    await self._retry(lambda: browser.navigate(landing_url), browser)
                    await browser.sleep(self.click_settle_delay)
                    continue

                after = await browser.execute_script(DOM_SNAPSHOT_SCRIPT)
                if before != after:
                    new = state.add_results(await self.extractor.extract(browser, pattern))
                    stats.reextractions += 1
                    logger.debug("interaction_revealed_content", url=page_url, index=index, new_values=new)

            except Exception as e:
                logger.debug("interaction_skipped", url=page_url, index=index, error=str(e))
                continue
