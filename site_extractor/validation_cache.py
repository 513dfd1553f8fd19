"""Memoized existence checks for social media handles."""

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

import structlog

if TYPE_CHECKING:
    from .browser import BrowserSession

logger = structlog.get_logger(__name__, service="validation")


@dataclass
class ProfileCheck:
    """How to tell whether a profile page exists on one platform."""

    profile_url: str  # Format string with {handle}
    error_selectors: List[str] = field(default_factory=list)
    profile_selectors: List[str] = field(default_factory=list)


PROFILE_CHECKS: Dict[str, ProfileCheck] = {
    "twitter": ProfileCheck(
        profile_url="https://x.com/{handle}",
        error_selectors=[
            '[data-testid="error-detail"]',
            ".PageNotFound",
            'div[class*="error"]',
            'span[class*="error"]',
        ],
        profile_selectors=[
            '[data-testid="UserName"]',
            '[data-testid="UserAvatar"]',
            '[data-testid="primaryColumn"]',
        ],
    ),
}


class ProfileValidationCache:
    """
    Process-wide cache of handle validation results.

    Construct one instance at startup and pass it to every extractor that
    needs handle validation. A handle is checked against the live site at most
    once: both positive and negative results are stored, and so are failures
    (as negative). ``max_entries`` bounds the cache by evicting the oldest
    entry; None means unbounded.
    """

    def __init__(
        self,
        settle_delay: float = 2.0,
        max_entries: Optional[int] = None,
        checks: Optional[Dict[str, ProfileCheck]] = None,
    ):
        self.settle_delay = settle_delay
        self.max_entries = max_entries
        self.checks = dict(checks or PROFILE_CHECKS)
        self._results: "OrderedDict[Tuple[str, str], bool]" = OrderedDict()

        logger.info(
            "validation_cache_initialized",
            platforms=list(self.checks),
            max_entries=max_entries,
        )

    def __len__(self) -> int:
        return len(self._results)

    def __contains__(self, handle: str) -> bool:
        return self.cached(handle) is not None

    @staticmethod
    def _key(handle: str, platform: str) -> Tuple[str, str]:
        return platform.lower(), handle.strip().lstrip("@").lower()

    def cached(self, handle: str, platform: str = "twitter") -> Optional[bool]:
        """
        Look up a stored result without validating.

        Args:
            handle: Profile handle (any case)
            platform: Platform name

        Returns:
            Stored result, or None if the handle was never validated
        """
        return self._results.get(self._key(handle, platform))

    def valid_handles(self, platform: str = "twitter") -> List[str]:
        """Handles confirmed to exist on a platform, in validation order."""
        platform = platform.lower()
        return [h for (p, h), ok in self._results.items() if p == platform and ok]

    def _store(self, key: Tuple[str, str], value: bool) -> None:
        # Insert-if-absent
        self._results.setdefault(key, value)
        if self.max_entries is not None:
            while len(self._results) > self.max_entries:
                evicted, _ = self._results.popitem(last=False)
                logger.debug("validation_cache_evicted", platform=evicted[0], handle=evicted[1])

    async def is_valid_handle(
        self,
        handle: str,
        browser: "BrowserSession",
        platform: str = "twitter",
    ) -> bool:
        """
        Check whether a handle resolves to a live profile.

        The profile page is opened in a new browsing context so the page under
        crawl is left untouched; the original context is restored afterwards.

        Args:
            handle: Profile handle
            browser: Browser session to validate with
            platform: Key into the configured profile checks

        Returns:
            True if the profile exists
        """
        key = self._key(handle, platform)
        if key in self._results:
            logger.debug("handle_cache_hit", platform=key[0], handle=key[1], valid=self._results[key])
            return self._results[key]

        check = self.checks.get(key[0])
        if check is None:
            logger.warning("no_profile_check", platform=key[0], handle=key[1])
            return False

        logger.info("validating_handle", platform=key[0], handle=key[1])
        try:
            valid = await self._check_profile(key[1], check, browser)
        except Exception as e:
            logger.error("handle_validation_failed", platform=key[0], handle=key[1], error=str(e))
            valid = False

        self._store(key, valid)
        logger.info("handle_validated", platform=key[0], handle=key[1], valid=valid)
        return valid

    async def _check_profile(self, handle: str, check: ProfileCheck, browser: "BrowserSession") -> bool:
        original = await browser.current_context()
        opened = await browser.new_context()
        try:
            await browser.navigate(check.profile_url.format(handle=handle))
            await browser.sleep(self.settle_delay)

            for selector in check.error_selectors:
                if await browser.find_elements(selector):
                    return False

            for selector in check.profile_selectors:
                if await browser.find_elements(selector):
                    return True
            return False
        finally:
            await self._restore(browser, original, opened)

    async def _restore(self, browser: "BrowserSession", original: str, opened: str) -> None:
        try:
            if opened in await browser.list_contexts():
                await browser.switch_to(opened)
                await browser.close_current_context()
        except Exception as e:
            logger.warning("context_close_failed", context=opened, error=str(e))
        finally:
            await browser.switch_to(original)
