"""Data models for the site extractor."""

import re
from dataclasses import dataclass, field
from datetime import datetime
from functools import cached_property
from typing import Any, Dict, List, Optional
from urllib.parse import urldefrag

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .transforms import Transform, Validator


class ExtractionConfig(BaseModel):
    """Where to look for a pattern on a page and how to post-process matches."""

    selectors: List[str]
    attribute: Optional[str] = None  # Read this attribute instead of rendered text
    transform: Optional[Transform] = None
    validate_: Optional[Validator] = Field(default=None, alias="validate")
    include_page_source: bool = False  # Also scan the raw page source

    model_config = ConfigDict(populate_by_name=True)


class DataPattern(BaseModel):
    """Named extraction pattern: regexes plus extraction config."""

    name: str
    patterns: List[str]
    config: ExtractionConfig

    model_config = ConfigDict(ignored_types=(cached_property,))

    @field_validator("patterns")
    @classmethod
    def _patterns_compile(cls, value: List[str]) -> List[str]:
        for source in value:
            try:
                re.compile(source)
            except re.error as e:
                raise ValueError(f"Invalid regex {source!r}: {e}") from e
        return value

    @cached_property
    def compiled(self) -> List[re.Pattern]:
        """Compiled regexes, case-insensitive."""
        return [re.compile(p, re.IGNORECASE) for p in self.patterns]

    def matches_text(self, text: str) -> bool:
        """Check whether any regex finds a match in text."""
        return any(regex.search(text) for regex in self.compiled)


class CrawlStats(BaseModel):
    """Counters for a single crawl."""

    pattern_key: str
    pages_visited: int = 0
    pages_failed: int = 0
    interactions: int = 0
    reextractions: int = 0
    values_found: int = 0


class ExtractionOutcome(BaseModel):
    """Result of a top-level extraction request."""

    success: bool
    website_url: Optional[str] = None
    results: Dict[str, List[Any]] = Field(default_factory=dict)
    summary: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    stats: List[CrawlStats] = Field(default_factory=list)
    duration_ms: int = 0
    timestamp: datetime = Field(default_factory=datetime.utcnow)


@dataclass
class CrawlState:
    """
    Per-crawl state, owned by one crawl invocation and discarded afterwards.

    ``visited`` holds every URL claimed for a visit (seed included) and never
    exceeds the page limit. ``aliases`` holds URLs a visit was redirected to;
    they count as known but not against the limit. ``origin`` is the URL the
    seed actually landed on. ``results`` is a dict used as an insertion-ordered
    set so output keeps discovery order.
    """

    seed_url: str
    visited: set = field(default_factory=set)
    frontier: List[str] = field(default_factory=list)
    history: List[str] = field(default_factory=list)
    results: Dict[Any, None] = field(default_factory=dict)
    origin: Optional[str] = None
    aliases: set = field(default_factory=set)

    def __post_init__(self):
        self.visited.add(self.seed_url)
        self.frontier.append(self.seed_url)

    @staticmethod
    def url_key(url: str) -> str:
        """Comparison key: no fragment, no trailing slash."""
        return urldefrag(url)[0].rstrip("/")

    def is_known(self, url: str) -> bool:
        """Check whether a URL was already claimed or landed on."""
        key = self.url_key(url)
        return key in self.aliases or any(self.url_key(v) == key for v in self.visited)

    def claim(self, url: str, max_pages: int) -> bool:
        """
        Reserve a URL for a visit.

        Args:
            url: URL about to be loaded
            max_pages: Page limit of the crawl

        Returns:
            False if the URL is known or the limit is reached
        """
        if self.is_known(url) or len(self.visited) >= max_pages:
            return False
        self.visited.add(url)
        return True

    def record_landing(self, requested: str, landed: str) -> None:
        """Remember where a navigation ended up after redirects."""
        if self.origin is None:
            self.origin = landed
        if self.url_key(landed) != self.url_key(requested):
            self.aliases.add(self.url_key(landed))

    def add_results(self, values) -> int:
        """Merge values, returning how many were new."""
        before = len(self.results)
        for value in values:
            self.results.setdefault(value, None)
        return len(self.results) - before

    def values(self) -> List[Any]:
        return list(self.results)
