"""Top-level extraction action: request in, result mapping out."""

import re
import time
from typing import Any, AsyncContextManager, Callable, Dict, List, Optional, Sequence

import structlog

from .aggregator import ResultAggregator, format_summary
from .browser import BrowserSession, launch_browser
from .crawler import FrontierCrawler
from .exceptions import NotConfiguredError
from .extractor import PatternExtractor
from .models import ExtractionOutcome
from .registry import PatternRegistry, PatternSuggester
from .validation_cache import ProfileValidationCache

logger = structlog.get_logger(__name__, service="extractor")

URL_PATTERN = re.compile(r"https?://[^\s]+")

UNCLEAR_REQUEST = (
    "I'm not sure what type of data you want me to extract. Could you please be more specific?"
)

BrowserFactory = Callable[[], AsyncContextManager[BrowserSession]]


def extract_url_from_text(text: str) -> Optional[str]:
    """
    Find the first http(s) URL in free text.

    Args:
        text: Request text

    Returns:
        URL without trailing punctuation, or None
    """
    match = URL_PATTERN.search(text or "")
    if not match:
        return None
    return match.group(0).rstrip(".,;:!?)]}'\"")


class SiteExtractor:
    """
    Crawl a site and extract the requested patterns.

    The browser session is created per request, shared by the sequential
    crawls of that request, and always released before returning. Failures
    are returned as an unsuccessful ExtractionOutcome, never raised.
    """

    def __init__(
        self,
        registry: Optional[PatternRegistry] = None,
        validation_cache: Optional[ProfileValidationCache] = None,
        browser_factory: Optional[BrowserFactory] = None,
        website_url: Optional[str] = None,
        crawler_settings: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize extractor service.

        Args:
            registry: Pattern registry (built-in patterns if None)
            validation_cache: Shared handle validation cache (new one if None)
            browser_factory: Zero-argument callable returning an async context
                manager that yields a BrowserSession (Playwright if None)
            website_url: Fallback seed URL
            crawler_settings: ``crawler`` section of the configuration
        """
        settings = crawler_settings or {}
        self.registry = PatternRegistry() if registry is None else registry
        self.validation_cache = ProfileValidationCache() if validation_cache is None else validation_cache
        self.browser_factory = browser_factory or launch_browser
        self.website_url = website_url

        max_attempts = settings.get("max_attempts", 3)
        retry_delay = settings.get("retry_delay", 1.0)
        self.extractor = PatternExtractor(
            validation_cache=self.validation_cache,
            ready_timeout=settings.get("ready_timeout", 10.0),
            max_attempts=max_attempts,
            retry_delay=retry_delay,
        )
        self.crawler = FrontierCrawler(
            self.extractor,
            page_settle_delay=settings.get("page_settle_delay", 2.0),
            click_settle_delay=settings.get("click_settle_delay", 1.0),
            visibility_timeout=settings.get("visibility_timeout", 5.0),
            max_attempts=max_attempts,
            retry_delay=retry_delay,
            follow_links=settings.get("follow_links", True),
        )

    @classmethod
    def from_config(
        cls,
        config: Dict[str, Any],
        browser_factory: Optional[BrowserFactory] = None,
        validation_cache: Optional[ProfileValidationCache] = None,
    ) -> "SiteExtractor":
        """
        Build the service from a configuration dictionary (see ``load_config``).

        Args:
            config: Configuration dictionary
            browser_factory: Override for the browser factory
            validation_cache: Override for the validation cache

        Returns:
            Configured SiteExtractor
        """
        registry = PatternRegistry()
        patterns_file = config.get("patterns", {}).get("file")
        if patterns_file:
            registry.load_file(patterns_file)

        if validation_cache is None:
            validation = config.get("validation", {})
            validation_cache = ProfileValidationCache(
                settle_delay=validation.get("settle_delay", 2.0),
                max_entries=validation.get("max_entries"),
            )

        if browser_factory is None:
            browser_settings = config.get("browser", {})

            def browser_factory():
                return launch_browser(browser_settings)

        return cls(
            registry=registry,
            validation_cache=validation_cache,
            browser_factory=browser_factory,
            website_url=config.get("site", {}).get("website_url"),
            crawler_settings=config.get("crawler", {}),
        )

    def _seed_url(self, seed_url: Optional[str]) -> str:
        website_url = seed_url or self.website_url
        if not website_url:
            raise NotConfiguredError("No website URL provided or configured")
        return website_url

    def _failure(self, start_time: float, error: str, error_type: str, **kwargs) -> ExtractionOutcome:
        return ExtractionOutcome(
            success=False,
            error=error,
            error_type=error_type,
            duration_ms=int((time.time() - start_time) * 1000),
            **kwargs,
        )

    async def crawl_and_extract(
        self,
        seed_url: Optional[str],
        pattern_keys: Sequence[str],
    ) -> ExtractionOutcome:
        """
        Crawl from a seed URL and extract each requested pattern.

        Args:
            seed_url: Seed URL; the configured website URL is used if empty
            pattern_keys: Pattern keys, crawled in order

        Returns:
            ExtractionOutcome with a key -> values mapping in discovery order
        """
        start_time = time.time()
        try:
            website_url = self._seed_url(seed_url)
        except NotConfiguredError as e:
            logger.error("website_url_not_configured")
            return self._failure(start_time, str(e), "not_configured")

        keys: List[str] = []
        for key in pattern_keys:
            key = key.strip().lower()
            if key in self.registry and key not in keys:
                keys.append(key)
            else:
                logger.warning("pattern_key_skipped", key=key)

        if not keys:
            return self._failure(
                start_time,
                "None of the requested data types are known",
                "unknown_pattern",
                website_url=website_url,
            )

        logger.info("extraction_started", website_url=website_url, keys=keys)
        aggregator = ResultAggregator()
        stats = []

        try:
            async with self.browser_factory() as browser:
                for key in keys:
                    values, crawl_stats = await self.crawler.crawl(
                        browser, website_url, self.registry.get(key), pattern_key=key
                    )
                    aggregator.merge(key, values)
                    stats.append(crawl_stats)
        except Exception as e:
            logger.error("extraction_failed", website_url=website_url, error=str(e), exc_info=True)
            return self._failure(
                start_time,
                f"Sorry, I encountered an error while extracting data: {e}",
                "unexpected",
                website_url=website_url,
                results=aggregator.as_mapping(),
                stats=stats,
            )

        results = aggregator.as_mapping()
        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            "extraction_completed",
            website_url=website_url,
            counts={key: len(values) for key, values in results.items()},
            duration_ms=duration_ms,
        )

        return ExtractionOutcome(
            success=True,
            website_url=website_url,
            results=results,
            summary=format_summary(results, self.registry),
            stats=stats,
            duration_ms=duration_ms,
        )

    async def handle_request(
        self,
        text: str,
        suggester: Optional[PatternSuggester] = None,
        seed_url: Optional[str] = None,
    ) -> ExtractionOutcome:
        """
        Handle a free-text extraction request.

        Args:
            text: Request such as "Find emails on https://example.com"
            suggester: Optional external classifier / pattern generator
            seed_url: Seed URL taking precedence over a URL in the text

        Returns:
            ExtractionOutcome
        """
        start_time = time.time()
        keys = await self.registry.resolve(text, suggester)
        logger.info("request_resolved", keys=keys)

        if not keys:
            return self._failure(start_time, UNCLEAR_REQUEST, "unclear_request")

        return await self.crawl_and_extract(seed_url or extract_url_from_text(text), keys)
