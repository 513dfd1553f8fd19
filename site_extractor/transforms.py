"""
Transform and validator variants for extraction patterns.

Patterns never carry executable code. A transform or validator is one of a
closed set of variants, selected by its ``kind`` tag, so that patterns built
from a generated specification (or a YAML file) can only compose behavior
that is defined here.
"""

import re
from typing import TYPE_CHECKING, Annotated, Any, List, Literal, Optional, Union
from urllib.parse import urlparse

import structlog
from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from .browser import BrowserSession
    from .validation_cache import ProfileValidationCache

logger = structlog.get_logger(__name__, service="extractor")

# Path segments that are site features, not profiles
RESERVED_HANDLES = [
    "home",
    "login",
    "signup",
    "explore",
    "notifications",
    "messages",
    "search",
    "settings",
    "privacy",
    "about",
    "help",
    "status",
    "share",
    "intent",
    "i",
]


def normalize_handle(value: str) -> Optional[str]:
    """
    Reduce a profile URL or ``@name`` string to a lowercase handle.

    Args:
        value: Raw match such as ``https://x.com/SomeUser/`` or ``@someuser``

    Returns:
        Lowercase handle or None if nothing usable remains
    """
    if not value:
        return None

    text = str(value).strip()
    if "/" in text:
        if "://" not in text:
            text = "https://" + text
        path = urlparse(text).path
        segments = [s for s in path.split("/") if s]
        text = segments[-1] if segments else ""

    handle = text.lstrip("@").strip().lower()
    return handle or None


def parse_currency(text: str) -> Optional[float]:
    """
    Parse a displayed price into a float.

    Handles "$1,990.50", "1.990,50€", "1 990,-" and plain "$29.99".

    Args:
        text: Raw price text

    Returns:
        Price as float or None if parsing fails
    """
    if not text:
        return None

    text = str(text).strip()
    text = text.replace(" ", "").replace("kr", "").replace("$", "")
    text = text.replace("€", "").replace("£", "").replace(",-", "")

    if "," in text and "." in text:
        if text.rindex(",") > text.rindex("."):
            # 1.990,50
            text = text.replace(".", "").replace(",", ".")
        else:
            # 1,990.50
            text = text.replace(",", "")
    elif "," in text:
        parts = text.split(",")
        if len(parts) == 2 and len(parts[1]) == 2:
            text = text.replace(",", ".")
        else:
            text = text.replace(",", "")

    match = re.search(r"\d+\.?\d*", text)
    if not match:
        return None
    try:
        return float(match.group())
    except ValueError:
        return None


# --- Transforms -------------------------------------------------------------


class RegexCapture(BaseModel):
    """Return one capture group of a regex applied to the match."""

    kind: Literal["regex_capture"] = "regex_capture"
    pattern: str
    group: int = 1
    fallback_to_input: bool = True

    async def apply(self, value: str, browser=None, cache=None) -> Optional[Any]:
        match = re.search(self.pattern, value, re.IGNORECASE)
        if match:
            try:
                return match.group(self.group)
            except IndexError:
                return match.group(0)
        return value if self.fallback_to_input else None


class ParseCurrency(BaseModel):
    """Turn a displayed price into a number."""

    kind: Literal["parse_currency"] = "parse_currency"

    async def apply(self, value: str, browser=None, cache=None) -> Optional[Any]:
        return parse_currency(value)


class NormalizeHandle(BaseModel):
    """Reduce a profile URL to its lowercase handle."""

    kind: Literal["normalize_handle"] = "normalize_handle"

    async def apply(self, value: str, browser=None, cache=None) -> Optional[Any]:
        return normalize_handle(value)


class Lowercase(BaseModel):
    """Lowercase and strip the match."""

    kind: Literal["lowercase"] = "lowercase"

    async def apply(self, value: str, browser=None, cache=None) -> Optional[Any]:
        return str(value).strip().lower() or None


class VerifiedHandle(BaseModel):
    """
    Normalize a profile URL to a handle and keep it only if the profile exists.

    Existence is checked through the injected ProfileValidationCache, which
    opens the profile page in a separate browsing context. Handles that fail
    the cheap local filters never reach the network.
    """

    kind: Literal["verified_handle"] = "verified_handle"
    platform: str = "twitter"
    reserved: List[str] = Field(default_factory=lambda: list(RESERVED_HANDLES))
    min_length: int = 4
    max_length: int = 15
    handle_pattern: str = r"^[a-z][a-z0-9_]*$"
    excluded_substrings: List[str] = Field(default_factory=lambda: ["token", "pump"])

    def is_candidate(self, handle: str) -> bool:
        """Check local filters before any network validation."""
        if not (self.min_length <= len(handle) <= self.max_length):
            return False
        if handle.isdigit() or handle in self.reserved:
            return False
        if any(part in handle for part in self.excluded_substrings):
            return False
        return re.match(self.handle_pattern, handle) is not None

    async def apply(
        self,
        value: str,
        browser: Optional["BrowserSession"] = None,
        cache: Optional["ProfileValidationCache"] = None,
    ) -> Optional[Any]:
        handle = normalize_handle(value)
        if not handle or not self.is_candidate(handle):
            return None

        if cache is None or browser is None:
            logger.warning("handle_validation_unavailable", handle=handle, platform=self.platform)
            return None

        if await cache.is_valid_handle(handle, browser, platform=self.platform):
            return handle
        return None


Transform = Annotated[
    Union[RegexCapture, ParseCurrency, NormalizeHandle, Lowercase, VerifiedHandle],
    Field(discriminator="kind"),
]


# --- Validators -------------------------------------------------------------


class FullMatch(BaseModel):
    """Value must match the regex completely."""

    kind: Literal["full_match"] = "full_match"
    pattern: str

    def check(self, value: Any) -> bool:
        return re.fullmatch(self.pattern, str(value)) is not None


class LengthBetween(BaseModel):
    """String length must fall within bounds (inclusive)."""

    kind: Literal["length_between"] = "length_between"
    min_length: int = 0
    max_length: Optional[int] = None

    def check(self, value: Any) -> bool:
        length = len(str(value))
        if length < self.min_length:
            return False
        return self.max_length is None or length <= self.max_length


class NotIn(BaseModel):
    """Value must not be one of the listed values."""

    kind: Literal["not_in"] = "not_in"
    values: List[str]
    case_sensitive: bool = False

    def check(self, value: Any) -> bool:
        if self.case_sensitive:
            return str(value) not in self.values
        return str(value).lower() not in {v.lower() for v in self.values}


class NumericRange(BaseModel):
    """Numeric value must fall within bounds (inclusive)."""

    kind: Literal["numeric_range"] = "numeric_range"
    minimum: Optional[float] = None
    maximum: Optional[float] = None

    def check(self, value: Any) -> bool:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return False
        if self.minimum is not None and number < self.minimum:
            return False
        if self.maximum is not None and number > self.maximum:
            return False
        return True


class AllOf(BaseModel):
    """Every nested validator must pass."""

    kind: Literal["all_of"] = "all_of"
    validators: List["Validator"]

    def check(self, value: Any) -> bool:
        return all(v.check(value) for v in self.validators)


Validator = Annotated[
    Union[FullMatch, LengthBetween, NotIn, NumericRange, AllOf],
    Field(discriminator="kind"),
]

AllOf.model_rebuild()
