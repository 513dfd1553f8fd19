"""
Browser capability used by the crawl-and-extract engine.

The engine only talks to ``BrowserSession`` / ``ElementHandle``. The
Playwright backend below is the production implementation; the static
backend in ``static_browser`` serves saved HTML.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Protocol

import structlog

from .exceptions import (
    BrowserError,
    BrowserTimeoutError,
    ElementNotInteractableError,
    InvalidSelectorError,
    NavigationError,
    StaleElementError,
)

logger = structlog.get_logger(__name__, service="browser")

# Launch args and context options for a browser that looks like a regular one
BROWSER_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-extensions",
    "--no-sandbox",
    "--window-size=1920,1080",
]

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

WEBDRIVER_PATCH_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', {
    get: () => undefined
});
"""

# Serialized DOM of the current document
DOM_SNAPSHOT_SCRIPT = "() => document.documentElement.outerHTML"


def get_context_options() -> Dict[str, Any]:
    """
    Get browser context options.

    Returns:
        Dictionary of Playwright context options
    """
    return {
        "user_agent": USER_AGENT,
        "viewport": {"width": 1920, "height": 1080},
        "locale": "en-US",
        "java_script_enabled": True,
        "extra_http_headers": {
            "Accept-Language": "en-US,en;q=0.9",
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        },
    }


class ElementHandle(Protocol):
    """A located element on the current page."""

    async def text(self) -> str: ...

    async def attribute(self, name: str) -> Optional[str]: ...

    async def click(self) -> None: ...

    async def is_displayed(self) -> bool: ...

    async def scroll_into_view(self) -> None: ...


class BrowserSession(Protocol):
    """Browser automation capability consumed by the crawler and extractor."""

    async def navigate(self, url: str) -> None: ...

    async def refresh(self) -> None: ...

    async def current_url(self) -> str: ...

    async def page_source(self) -> str: ...

    async def execute_script(self, expression: str, arg: Any = None) -> Any: ...

    async def find_elements(self, selector: str) -> List[ElementHandle]: ...

    async def wait_until(self, condition: Callable[[], Awaitable[Any]], timeout: float) -> Any: ...

    async def sleep(self, seconds: float) -> None: ...

    async def new_context(self) -> str: ...

    async def list_contexts(self) -> List[str]: ...

    async def current_context(self) -> str: ...

    async def switch_to(self, context_id: str) -> None: ...

    async def close_current_context(self) -> None: ...

    async def quit(self) -> None: ...


class PollingMixin:
    """``wait_until`` and ``sleep`` shared by the backends."""

    poll_interval: float = 0.1

    async def wait_until(self, condition: Callable[[], Awaitable[Any]], timeout: float) -> Any:
        """
        Poll an async condition until it returns a truthy value.

        Errors raised by the condition count as "not yet".

        Args:
            condition: Zero-argument coroutine function
            timeout: Seconds before giving up

        Returns:
            The first truthy value returned by the condition

        Raises:
            BrowserTimeoutError: If the condition never became truthy
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        last_error: Optional[Exception] = None

        while True:
            try:
                result = await condition()
                if result:
                    return result
            except BrowserError as e:
                last_error = e

            if loop.time() >= deadline:
                message = f"Condition not met within {timeout:.1f}s"
                if last_error:
                    message += f" (last error: {last_error})"
                raise BrowserTimeoutError(message)
            await asyncio.sleep(self.poll_interval)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


def _translate_error(error: Exception) -> BrowserError:
    """Map a Playwright error onto the extractor error taxonomy."""
    from playwright.async_api import TimeoutError as PlaywrightTimeoutError

    message = str(error)
    if "not attached to the DOM" in message or "Element is detached" in message:
        return StaleElementError(message)
    if "not visible" in message or "not enabled" in message or "intercepts pointer events" in message:
        return ElementNotInteractableError(message)
    if isinstance(error, PlaywrightTimeoutError):
        return BrowserTimeoutError(message)
    if "Unexpected token" in message or "is not a valid selector" in message or "Unknown engine" in message:
        return InvalidSelectorError(message)
    if "net::ERR_" in message or "NS_ERROR" in message:
        return NavigationError(message)
    return BrowserError(message)


class PlaywrightElement:
    """ElementHandle backed by a Playwright element handle."""

    def __init__(self, handle, click_timeout: float = 5.0):
        self._handle = handle
        self._click_timeout_ms = click_timeout * 1000

    async def text(self) -> str:
        try:
            return await self._handle.inner_text()
        except Exception as e:
            raise _translate_error(e) from e

    async def attribute(self, name: str) -> Optional[str]:
        try:
            return await self._handle.get_attribute(name)
        except Exception as e:
            raise _translate_error(e) from e

    async def click(self) -> None:
        try:
            await self._handle.click(timeout=self._click_timeout_ms)
        except Exception as e:
            error = _translate_error(e)
            if not isinstance(error, ElementNotInteractableError):
                raise error from e
            # Covered or off-screen: fall back to a script click
            logger.debug("native_click_failed", error=str(e))
            try:
                await self._handle.evaluate("el => el.click()")
            except Exception as script_error:
                raise _translate_error(script_error) from script_error

    async def is_displayed(self) -> bool:
        try:
            return await self._handle.is_visible()
        except Exception as e:
            raise _translate_error(e) from e

    async def scroll_into_view(self) -> None:
        try:
            await self._handle.scroll_into_view_if_needed(timeout=self._click_timeout_ms)
        except Exception as e:
            raise _translate_error(e) from e


class PlaywrightBrowser(PollingMixin):
    """
    BrowserSession backed by one Playwright browser context.

    Browsing contexts of the capability map to pages (tabs) of that context,
    addressed by generated ids.
    """

    def __init__(self, context, navigation_timeout: float = 30.0, element_timeout: float = 5.0):
        self._context = context
        self._pages: Dict[str, Any] = {}
        self._current: Optional[str] = None
        self._counter = 0
        self.navigation_timeout_ms = navigation_timeout * 1000
        self.element_timeout = element_timeout

    def _register(self, page) -> str:
        self._counter += 1
        context_id = f"page-{self._counter}"
        self._pages[context_id] = page
        return context_id

    @property
    def page(self):
        if self._current is None:
            raise BrowserError("No open page")
        return self._pages[self._current]

    async def open(self) -> None:
        """Open the initial page."""
        page = await self._context.new_page()
        await page.add_init_script(WEBDRIVER_PATCH_SCRIPT)
        self._current = self._register(page)

    async def navigate(self, url: str) -> None:
        logger.debug("navigating", url=url)
        try:
            await self.page.goto(url, wait_until="domcontentloaded", timeout=self.navigation_timeout_ms)
        except Exception as e:
            error = _translate_error(e)
            if type(error) is BrowserError:
                error = NavigationError(str(e))
            raise error from e

    async def refresh(self) -> None:
        try:
            await self.page.reload(wait_until="domcontentloaded", timeout=self.navigation_timeout_ms)
        except Exception as e:
            raise _translate_error(e) from e

    async def current_url(self) -> str:
        return self.page.url

    async def page_source(self) -> str:
        try:
            return await self.page.content()
        except Exception as e:
            raise _translate_error(e) from e

    async def execute_script(self, expression: str, arg: Any = None) -> Any:
        try:
            return await self.page.evaluate(expression, arg)
        except Exception as e:
            raise _translate_error(e) from e

    async def find_elements(self, selector: str) -> List[PlaywrightElement]:
        try:
            handles = await self.page.query_selector_all(selector)
        except Exception as e:
            raise _translate_error(e) from e
        return [PlaywrightElement(h, click_timeout=self.element_timeout) for h in handles]

    async def new_context(self) -> str:
        try:
            page = await self._context.new_page()
        except Exception as e:
            raise _translate_error(e) from e
        self._current = self._register(page)
        return self._current

    async def list_contexts(self) -> List[str]:
        return list(self._pages)

    async def current_context(self) -> str:
        if self._current is None:
            raise BrowserError("No open page")
        return self._current

    async def switch_to(self, context_id: str) -> None:
        if context_id not in self._pages:
            raise BrowserError(f"Unknown browsing context {context_id}")
        self._current = context_id
        await self._pages[context_id].bring_to_front()

    async def close_current_context(self) -> None:
        page = self.page
        del self._pages[self._current]
        self._current = None
        try:
            await page.close()
        except Exception as e:
            raise _translate_error(e) from e

    async def quit(self) -> None:
        self._pages.clear()
        self._current = None
        await self._context.close()


@asynccontextmanager
async def launch_browser(settings: Optional[Dict[str, Any]] = None) -> AsyncIterator[PlaywrightBrowser]:
    """
    Launch Chromium and yield a session; the browser is closed on every exit path.

    Args:
        settings: ``browser`` section of the configuration

    Yields:
        PlaywrightBrowser ready to navigate
    """
    from playwright.async_api import async_playwright

    settings = settings or {}
    headless = settings.get("headless", True)

    async with async_playwright() as p:
        browser = await p.chromium.launch(
            headless=headless,
            args=settings.get("args", BROWSER_ARGS),
        )
        logger.info("browser_launched", headless=headless)
        try:
            context = await browser.new_context(**get_context_options())
            session = PlaywrightBrowser(
                context,
                navigation_timeout=settings.get("navigation_timeout", 30.0),
                element_timeout=settings.get("element_timeout", 5.0),
            )
            await session.open()
            yield session
        finally:
            try:
                await browser.close()
                logger.info("browser_closed")
            except Exception as e:
                logger.error("browser_close_failed", error=str(e))


@asynccontextmanager
async def managed_session(session: BrowserSession) -> AsyncIterator[BrowserSession]:
    """
    Yield an already created session and quit it on every exit path.

    Args:
        session: Session to manage

    Yields:
        The same session
    """
    try:
        yield session
    finally:
        try:
            await session.quit()
        except Exception as e:
            logger.error("browser_close_failed", error=str(e))
