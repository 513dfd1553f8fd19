"""Registry of named extraction patterns."""

import json
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Protocol, Union

import structlog
import yaml
from pydantic import ValidationError

from .exceptions import PatternError
from .models import DataPattern, ExtractionConfig
from .transforms import FullMatch, NormalizeHandle, ParseCurrency, RegexCapture, VerifiedHandle

logger = structlog.get_logger(__name__, service="registry")


def builtin_patterns() -> Dict[str, DataPattern]:
    """Fresh copies of the built-in patterns."""
    return {
        "email": DataPattern(
            name="Email Addresses",
            patterns=[r"\b[\w\.-]+@[\w\.-]+\.\w+\b"],
            config=ExtractionConfig(
                selectors=['a[href^="mailto:"]', "body"],
                validate=FullMatch(pattern=r"[\w\.-]+@[\w\.-]+\.\w+"),
            ),
        ),
        "phone": DataPattern(
            name="Phone Numbers",
            patterns=[r"[\+]?[(]?[0-9]{3}[)]?[-\s\.]?[0-9]{3}[-\s\.]?[0-9]{4,6}"],
            config=ExtractionConfig(selectors=['a[href^="tel:"]', "body"]),
        ),
        "twitter": DataPattern(
            name="Twitter Profiles",
            patterns=[
                r"(?<![\w.-])(?:https?://)?(?:www\.)?(?:twitter\.com|x\.com)/[a-zA-Z0-9_]+/?(?=[\s\"'<>}\]?#]|$)"
            ],
            config=ExtractionConfig(
                selectors=['a[href*="twitter.com/"]', 'a[href*="//x.com/"]', 'a[href*="www.x.com/"]'],
                attribute="href",
                transform=VerifiedHandle(platform="twitter"),
                include_page_source=True,
            ),
        ),
        "linkedin": DataPattern(
            name="LinkedIn Profiles",
            patterns=[r"(?:https?://)?(?:www\.)?linkedin\.com/(?:in|company)/[^/\s]+"],
            config=ExtractionConfig(
                selectors=['a[href*="linkedin.com"]'],
                attribute="href",
                transform=RegexCapture(pattern=r"linkedin\.com/(?:in|company)/([^/\s?#]+)"),
            ),
        ),
        "instagram": DataPattern(
            name="Instagram Profiles",
            patterns=[r"(?:https?://)?(?:www\.)?instagram\.com/[a-zA-Z0-9_\.]+"],
            config=ExtractionConfig(
                selectors=['a[href*="instagram.com"]'],
                attribute="href",
                transform=NormalizeHandle(),
            ),
        ),
        "facebook": DataPattern(
            name="Facebook Profiles",
            patterns=[r"(?:https?://)?(?:www\.)?facebook\.com/[a-zA-Z0-9\.]+"],
            config=ExtractionConfig(
                selectors=['a[href*="facebook.com"]'],
                attribute="href",
                transform=NormalizeHandle(),
            ),
        ),
        "prices": DataPattern(
            name="Prices",
            patterns=[r"\$\d+(?:\.\d{2})?"],
            config=ExtractionConfig(
                selectors=['[class*="price"]', '[class*="cost"]', "body"],
                transform=ParseCurrency(),
            ),
        ),
        "dates": DataPattern(
            name="Dates",
            patterns=[r"\d{1,2}/\d{1,2}/\d{2,4}", r"\d{4}-\d{2}-\d{2}"],
            config=ExtractionConfig(
                selectors=['[class*="date"]', "time", "*[datetime]"],
                attribute="datetime",
            ),
        ),
    }


class PatternSuggester(Protocol):
    """
    External classifier / pattern generator.

    Used only when no registered pattern matches a request.
    """

    async def suggest_key(self, text: str) -> Optional[str]:
        """Propose a single pattern key for the request text."""
        ...

    async def generate_spec(self, key: str) -> Optional[Union[str, Dict[str, Any]]]:
        """Produce a pattern specification (JSON string or dict) for a key."""
        ...


class PatternRegistry:
    """
    Mapping of lowercase pattern key to DataPattern.

    One registry lives for the whole process and may grow at runtime when
    new patterns are synthesized or loaded from a file.
    """

    def __init__(self, patterns: Optional[Dict[str, DataPattern]] = None):
        self._patterns: Dict[str, DataPattern] = {}
        for key, pattern in (builtin_patterns() if patterns is None else patterns).items():
            self.register(key, pattern)

    def __contains__(self, key: str) -> bool:
        return key.lower() in self._patterns

    def __iter__(self) -> Iterator[str]:
        return iter(self._patterns)

    def __len__(self) -> int:
        return len(self._patterns)

    def keys(self) -> List[str]:
        return list(self._patterns)

    def get(self, key: str) -> Optional[DataPattern]:
        return self._patterns.get(key.lower())

    def display_name(self, key: str) -> str:
        pattern = self.get(key)
        return pattern.name if pattern else key

    def register(self, key: str, pattern: DataPattern) -> None:
        """
        Register a pattern under a key, replacing any existing one.

        Args:
            key: Pattern key (stored lowercase)
            pattern: Pattern to register

        Raises:
            PatternError: If the key is empty or the pattern is incomplete
        """
        key = key.strip().lower()
        if not key:
            raise PatternError("Pattern key must not be empty")
        self._check_complete(pattern)
        self._patterns[key] = pattern
        logger.debug("pattern_registered", key=key, name=pattern.name)

    @staticmethod
    def _check_complete(pattern: DataPattern) -> None:
        if not pattern.name.strip():
            raise PatternError("Pattern name must not be empty")
        if not pattern.patterns:
            raise PatternError(f"Pattern {pattern.name!r} has no regexes")
        if not pattern.config.selectors:
            raise PatternError(f"Pattern {pattern.name!r} has no selectors")

    def match_keys(self, text: str) -> List[str]:
        """
        Find the registered keys a free-text request refers to.

        A key applies if the text mentions the key or the pattern's display
        name, or if any of the pattern's regexes match the text.

        Args:
            text: Request text

        Returns:
            Matching keys in registry order
        """
        lowered = text.lower()
        keys = []
        for key, pattern in self._patterns.items():
            if key in lowered or pattern.name.lower() in lowered or pattern.matches_text(text):
                keys.append(key)
        return keys

    def synthesize(self, key: str, spec: Union[str, Dict[str, Any]]) -> Optional[DataPattern]:
        """
        Build and register a pattern from a generated specification.

        The specification may only use the known transform / validator
        variants. Incomplete or malformed specifications are rejected.

        Args:
            key: Key to register the pattern under
            spec: Pattern specification as a dict or JSON string

        Returns:
            The registered pattern, or None if the specification was rejected
        """
        try:
            data = json.loads(spec) if isinstance(spec, str) else spec
            pattern = DataPattern.model_validate(data)
            self.register(key, pattern)
        except (json.JSONDecodeError, ValidationError, PatternError, TypeError) as e:
            logger.error("pattern_synthesis_rejected", key=key, error=str(e))
            return None

        logger.info("pattern_synthesized", key=key.lower(), name=pattern.name)
        return pattern

    def load_file(self, path: Union[str, Path]) -> List[str]:
        """
        Register patterns from a YAML (or JSON) file mapping key to specification.

        Args:
            path: Path to the pattern file

        Returns:
            Keys that were registered
        """
        path = Path(path)
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise PatternError(f"Pattern file {path} must contain a mapping of key to pattern")

        loaded = []
        for key, spec in data.items():
            if self.synthesize(str(key), spec) is not None:
                loaded.append(str(key).lower())

        logger.info("pattern_file_loaded", path=str(path), loaded=loaded, skipped=len(data) - len(loaded))
        return loaded

    async def resolve(self, text: str, suggester: Optional[PatternSuggester] = None) -> List[str]:
        """
        Decide which pattern keys a request asks for.

        Falls back to the suggester when no registered pattern matches: an
        unknown suggested key gets a synthesized pattern, which is registered
        for future requests.

        Args:
            text: Request text
            suggester: Optional external classifier / generator

        Returns:
            Ordered list of pattern keys (possibly empty)
        """
        keys = self.match_keys(text)
        logger.debug("pattern_keys_matched", keys=keys)
        if keys or suggester is None:
            return keys

        try:
            suggested = await suggester.suggest_key(text)
        except Exception as e:
            logger.error("pattern_suggestion_failed", error=str(e))
            return []

        suggested = (suggested or "").strip().lower()
        if not suggested:
            return []
        if suggested in self._patterns:
            return [suggested]

        try:
            spec = await suggester.generate_spec(suggested)
        except Exception as e:
            logger.error("pattern_generation_failed", key=suggested, error=str(e))
            return []

        if spec is None or self.synthesize(suggested, spec) is None:
            return []
        return [suggested]
