"""
Command line interface.

Usage:
    site-extractor "Find emails and phone numbers on https://example.com"
    site-extractor --url https://example.com --key email --key twitter
    site-extractor --url https://example.com --html-file page.html --key prices
    site-extractor ... --json          # Output the outcome as JSON
    site-extractor ... --verbose       # Enable debug logging
"""

import argparse
import asyncio
import json
import logging
import sys

import structlog

from .browser import managed_session
from .config import load_config
from .service import SiteExtractor
from .static_browser import StaticBrowser


def setup_logging(verbose: bool = False, log_format: str = "console", level: str = "INFO"):
    """Configure structured logging."""
    log_level = "DEBUG" if verbose else level.upper()

    if log_format == "json":
        # JSON output for parsing and storage
        renderer = structlog.processors.JSONRenderer()
    else:
        # Console output for human readability
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.CallsiteParameterAdder(
                [structlog.processors.CallsiteParameter.FILENAME]
            ),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level, logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="site-extractor",
        description="Crawl a website and extract emails, phones, social profiles, prices and more",
    )
    parser.add_argument(
        "request",
        nargs="?",
        help='Free-text request, e.g. "Find emails on https://example.com"',
    )
    parser.add_argument("--url", help="Seed URL (overrides the URL in the request text)")
    parser.add_argument(
        "--key",
        action="append",
        dest="keys",
        help="Pattern key to extract (repeatable); skips free-text resolution",
    )
    parser.add_argument(
        "--html-file",
        help="Extract from a saved HTML file served as --url instead of a live browser",
    )
    parser.add_argument("--config", help="Path to config file (default: bundled settings.yaml)")
    parser.add_argument("--patterns", help="YAML file with extra patterns")
    parser.add_argument("--list-patterns", action="store_true", help="List known pattern keys and exit")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--json", action="store_true", help="Output results as JSON")
    parser.add_argument(
        "--log-format",
        choices=["console", "json"],
        default=None,
        help="Log output format (default: from config)",
    )
    return parser


async def main(argv=None) -> int:
    """Main execution function."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except Exception as e:
        setup_logging(args.verbose, args.log_format or "console")
        structlog.get_logger().error("config_load_failed", error=str(e))
        return 1

    setup_logging(
        args.verbose,
        args.log_format or config["logging"].get("format", "console"),
        config["logging"].get("level", "INFO"),
    )
    logger = structlog.get_logger()

    if args.patterns:
        config["patterns"]["file"] = args.patterns

    browser_factory = None
    if args.html_file:
        if not args.url:
            logger.error("html_file_requires_url")
            return 2
        html_file, url = args.html_file, args.url

        def browser_factory():
            return managed_session(StaticBrowser.from_file(html_file, url))

    try:
        extractor = SiteExtractor.from_config(config, browser_factory=browser_factory)
    except Exception as e:
        logger.error("setup_failed", error=str(e))
        return 1

    if args.list_patterns:
        for key in extractor.registry:
            print(f"{key:12} {extractor.registry.display_name(key)}")
        return 0

    if args.keys:
        outcome = await extractor.crawl_and_extract(args.url, args.keys)
    elif args.request:
        outcome = await extractor.handle_request(args.request, seed_url=args.url)
    else:
        logger.error("nothing_to_do", hint="pass a request or --key")
        return 2

    if args.json:
        print(json.dumps(outcome.model_dump(), indent=2, default=str))
    elif outcome.success:
        print(outcome.summary)
    else:
        print(outcome.error)

    return 0 if outcome.success else 1


def run():
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    run()
