"""Merge per-pattern results and render them for people."""

from typing import Any, Dict, Iterable, List

from .registry import PatternRegistry

NOTHING_FOUND = "I couldn't find any of the requested data on this website."


class ResultAggregator:
    """Collects values per pattern key, keeping discovery order and dropping duplicates."""

    def __init__(self):
        self._results: Dict[str, Dict[Any, None]] = {}

    def merge(self, key: str, values: Iterable[Any]) -> None:
        bucket = self._results.setdefault(key, {})
        for value in values:
            bucket.setdefault(value, None)

    def as_mapping(self) -> Dict[str, List[Any]]:
        return {key: list(values) for key, values in self._results.items()}


def format_summary(results: Dict[str, List[Any]], registry: PatternRegistry) -> str:
    """
    Render extraction results as a short human-readable summary.

    Args:
        results: Mapping of pattern key to values
        registry: Registry used for display names

    Returns:
        Summary text
    """
    sections = []
    for key, values in results.items():
        if not values:
            continue
        lines = [f"{registry.display_name(key)}:"]
        lines.extend(f"- {value}" for value in values)
        sections.append("\n".join(lines))

    if not sections:
        return NOTHING_FOUND
    return "Here's what I found:\n\n" + "\n\n".join(sections)
