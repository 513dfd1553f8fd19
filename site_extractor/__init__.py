"""Crawl a small neighborhood of a website and extract structured facts."""

from .crawler import MAX_PAGES, FrontierCrawler
from .extractor import PatternExtractor
from .models import DataPattern, ExtractionConfig, ExtractionOutcome
from .registry import PatternRegistry
from .retry import retry_operation
from .service import SiteExtractor
from .validation_cache import ProfileValidationCache

__all__ = [
    "MAX_PAGES",
    "DataPattern",
    "ExtractionConfig",
    "ExtractionOutcome",
    "FrontierCrawler",
    "PatternExtractor",
    "PatternRegistry",
    "ProfileValidationCache",
    "SiteExtractor",
    "retry_operation",
]
