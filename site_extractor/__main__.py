"""CLI entry point for site_extractor."""

from .cli import run

run()
