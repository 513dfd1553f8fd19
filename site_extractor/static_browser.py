"""
Offline BrowserSession over saved HTML pages.

Pages are parsed with BeautifulSoup (lxml) and selectors are evaluated with
soupsieve. There is no JavaScript: clicks only follow links between the
loaded pages, and the only script understood is the DOM snapshot.
"""

from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import urldefrag, urljoin

import structlog
from bs4 import BeautifulSoup, NavigableString, Tag
from soupsieve import SelectorSyntaxError

from .browser import DOM_SNAPSHOT_SCRIPT, PollingMixin
from .exceptions import BrowserError, InvalidSelectorError, NavigationError, StaleElementError

logger = structlog.get_logger(__name__, service="browser")

BLANK_PAGE = "<html><head></head><body></body></html>"
INVISIBLE_TAGS = {"script", "style", "template", "noscript", "head", "title", "meta", "link"}


def _hidden_self(tag: Tag) -> bool:
    """Check whether the tag itself hides its content."""
    if tag.name in INVISIBLE_TAGS:
        return True
    if tag.has_attr("hidden"):
        return True
    style = (tag.get("style") or "").replace(" ", "").lower()
    return "display:none" in style or "visibility:hidden" in style


def _collect_text(tag: Tag, parts: List[str]) -> None:
    for child in tag.children:
        if isinstance(child, Tag):
            if not _hidden_self(child):
                _collect_text(child, parts)
        elif type(child) is NavigableString:
            text = child.strip()
            if text:
                parts.append(text)


class _Document:
    def __init__(self, url: str, html: str, generation: int):
        self.url = url
        self.html = html
        self.soup = BeautifulSoup(html, "lxml")
        self.generation = generation


class StaticElement:
    """ElementHandle over a parsed tag."""

    def __init__(self, browser: "StaticBrowser", context_id: str, tag: Tag, generation: int):
        self._browser = browser
        self._context_id = context_id
        self._generation = generation
        self.tag = tag

    def _check_attached(self) -> None:
        document = self._browser._documents.get(self._context_id)
        if document is None or document.generation != self._generation:
            raise StaleElementError(f"<{self.tag.name}> is not attached to the current document")

    async def text(self) -> str:
        self._check_attached()
        if not await self.is_displayed():
            return ""
        parts: List[str] = []
        _collect_text(self.tag, parts)
        return " ".join(parts)

    async def attribute(self, name: str) -> Optional[str]:
        self._check_attached()
        value = self.tag.get(name)
        if isinstance(value, list):
            return " ".join(value)
        return value

    async def click(self) -> None:
        self._check_attached()
        self._browser.clicks.append(self.tag)
        await self._browser.handle_click(self.tag)

    async def is_displayed(self) -> bool:
        self._check_attached()
        node = self.tag
        while isinstance(node, Tag) and node.name != "[document]":
            if _hidden_self(node):
                return False
            node = node.parent
        return True

    async def scroll_into_view(self) -> None:
        self._check_attached()


class StaticBrowser(PollingMixin):
    """
    BrowserSession serving a fixed set of pages keyed by URL.

    ``navigations`` records every URL loaded (including refreshes) so callers
    can tell which pages were fetched.
    """

    def __init__(self, pages: Dict[str, str]):
        self.pages = {self._key(url): html for url, html in pages.items()}
        self.navigations: List[str] = []
        self.clicks: List[Tag] = []
        self.closed = False
        self._documents: Dict[str, _Document] = {}
        self._generation = 0
        self._counter = 0
        self._current = self._open_document("about:blank", BLANK_PAGE)

    @classmethod
    def from_file(cls, path, url: str) -> "StaticBrowser":
        """
        Serve one saved HTML file under the given URL.

        Args:
            path: Path to the HTML file
            url: URL the page is served as

        Returns:
            StaticBrowser with that single page
        """
        html = Path(path).read_text(encoding="utf-8", errors="replace")
        return cls({url: html})

    @staticmethod
    def _key(url: str) -> str:
        url = urldefrag(url)[0]
        return url.rstrip("/") or url

    def _open_document(self, url: str, html: str, context_id: Optional[str] = None) -> str:
        self._generation += 1
        if context_id is None:
            self._counter += 1
            context_id = f"page-{self._counter}"
        self._documents[context_id] = _Document(url, html, self._generation)
        return context_id

    def _ensure_open(self) -> None:
        if self.closed:
            raise BrowserError("Browser session has been closed")

    @property
    def document(self) -> _Document:
        self._ensure_open()
        if self._current is None:
            raise BrowserError("No open page")
        return self._documents[self._current]

    @property
    def soup(self) -> BeautifulSoup:
        return self.document.soup

    async def handle_click(self, tag: Tag) -> None:
        """Follow links to loaded pages; anything else is a no-op."""
        href = tag.get("href") if tag.name == "a" else None
        if not href or href.startswith(("#", "javascript:", "mailto:", "tel:")):
            return
        target = urljoin(self.document.url, href)
        if self._key(target) in self.pages:
            await self.navigate(target)

    async def navigate(self, url: str) -> None:
        self._ensure_open()
        html = self.pages.get(self._key(url))
        if html is None:
            raise NavigationError(f"net::ERR_NAME_NOT_RESOLVED at {url}")
        self.navigations.append(url)
        self._open_document(url, html, context_id=self._current)

    async def refresh(self) -> None:
        document = self.document
        self.navigations.append(document.url)
        html = self.pages.get(self._key(document.url), document.html)
        self._open_document(document.url, html, context_id=self._current)

    async def current_url(self) -> str:
        return self.document.url

    async def page_source(self) -> str:
        return str(self.soup)

    async def execute_script(self, expression: str, arg=None):
        if expression == DOM_SNAPSHOT_SCRIPT:
            return str(self.soup)
        raise BrowserError("Script evaluation is not supported for static pages")

    async def find_elements(self, selector: str) -> List[StaticElement]:
        document = self.document
        try:
            tags = document.soup.select(selector)
        except SelectorSyntaxError as e:
            raise InvalidSelectorError(f"{selector!r} is not a valid selector: {e}") from e
        except (ValueError, NotImplementedError) as e:
            raise InvalidSelectorError(f"{selector!r} is not supported: {e}") from e
        return [StaticElement(self, self._current, tag, document.generation) for tag in tags]

    async def new_context(self) -> str:
        self._ensure_open()
        self._current = self._open_document("about:blank", BLANK_PAGE)
        return self._current

    async def list_contexts(self) -> List[str]:
        self._ensure_open()
        return list(self._documents)

    async def current_context(self) -> str:
        self._ensure_open()
        if self._current is None:
            raise BrowserError("No open page")
        return self._current

    async def switch_to(self, context_id: str) -> None:
        self._ensure_open()
        if context_id not in self._documents:
            raise BrowserError(f"Unknown browsing context {context_id}")
        self._current = context_id

    async def close_current_context(self) -> None:
        self._ensure_open()
        if self._current is None:
            raise BrowserError("No open page")
        del self._documents[self._current]
        self._current = None

    async def quit(self) -> None:
        self.closed = True
        self._documents.clear()
        self._current = None
        logger.debug("static_browser_closed", navigations=len(self.navigations))
