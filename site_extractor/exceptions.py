"""Exception types raised by the crawl-and-extract engine."""


class SiteExtractorError(Exception):
    """Base class for all site extractor errors."""

    retryable = True


class BrowserError(SiteExtractorError):
    """A browser operation failed."""


class StaleElementError(BrowserError):
    """Element reference was invalidated by the document (e.g. after a re-render)."""


class ElementNotInteractableError(BrowserError):
    """Element exists but cannot be clicked or read right now."""


class BrowserTimeoutError(BrowserError):
    """A bounded wait expired."""


class NavigationError(BrowserError):
    """Navigation to a URL failed."""


class InvalidSelectorError(BrowserError):
    """Selector cannot be parsed by the browser. Retrying will not help."""

    retryable = False


class PatternError(SiteExtractorError):
    """A pattern specification was rejected."""

    retryable = False


class NotConfiguredError(SiteExtractorError):
    """No website URL was provided or configured."""

    retryable = False
