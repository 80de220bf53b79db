"""CLI entrypoint for contact-hunter."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence

from .config import (
    DEFAULT_COUNTRY,
    DEFAULT_MAX_DELAY,
    DEFAULT_MIN_DELAY,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_WORKERS,
    HuntRequest,
)
from .errors import ConfigError
from .logging_utils import configure_logging, get_logger
from .pipeline import hunt
from .validation import (
    GLOBAL_URL_BUDGET_CEILING,
    MAX_QUERIES_CEILING,
    MAX_URLS_PER_QUERY_CEILING,
    clamp,
)

SINGLE_MODE_QUERIES = 3
SINGLE_MODE_URL_CEILING = 20

EXIT_OK = 0
EXIT_CONFIG = 2
EXIT_BLOCKED = 3


def _add_shared_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("query", help="Organization or search term to hunt emails for.")
    parser.add_argument(
        "--country", default=DEFAULT_COUNTRY, help="Geo modifier appended to every query."
    )
    parser.add_argument(
        "--no-hr-focus",
        action="store_true",
        help="Keep generic mailboxes and skip the HR-specific query variants.",
    )
    parser.add_argument(
        "--debug-trace", action="store_true", help="Include the per-query debug trace."
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=DEFAULT_WORKERS,
        help="Page-visit worker threads per query (1 = sequential).",
    )
    parser.add_argument(
        "--min-delay",
        type=float,
        default=DEFAULT_MIN_DELAY,
        help="Minimum polite delay between search queries.",
    )
    parser.add_argument(
        "--max-delay",
        type=float,
        default=DEFAULT_MAX_DELAY,
        help="Maximum polite delay between search queries.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_REQUEST_TIMEOUT,
        help="Wall-clock timeout per request, in seconds.",
    )
    parser.add_argument("--no-progress", action="store_true", help="Disable tqdm progress bars.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""
    parser = argparse.ArgumentParser(
        description="Contact Hunter - search-engine driven HR and contact email discovery."
    )
    commands = parser.add_subparsers(dest="command", required=True)

    single = commands.add_parser("search", help="Quick hunt: a few queries, small URL budget.")
    _add_shared_options(single)
    single.add_argument(
        "--urls",
        type=int,
        default=5,
        help=f"URLs to visit per query and overall (1-{SINGLE_MODE_URL_CEILING}).",
    )

    comprehensive = commands.add_parser("search-all", help="Comprehensive multi-query hunt.")
    _add_shared_options(comprehensive)
    comprehensive.add_argument(
        "--max-pages",
        type=int,
        default=3,
        help=f"Search queries to issue (1-{MAX_QUERIES_CEILING}).",
    )
    comprehensive.add_argument(
        "--urls-per-page",
        type=int,
        default=5,
        help=f"URLs to visit per query (1-{MAX_URLS_PER_QUERY_CEILING}).",
    )
    comprehensive.add_argument(
        "--max-urls",
        type=int,
        default=50,
        help=f"Total URL visit budget (1-{GLOBAL_URL_BUDGET_CEILING}).",
    )
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    return build_parser().parse_args(argv)


def namespace_to_request(args: argparse.Namespace) -> HuntRequest:
    """Convert CLI args to a validated HuntRequest, clamping budgets to their ceilings."""
    if args.command == "search":
        url_count = clamp(args.urls, 1, SINGLE_MODE_URL_CEILING)
        max_queries = SINGLE_MODE_QUERIES
        max_urls_per_query = url_count
        global_url_budget = url_count
    else:
        max_queries = clamp(args.max_pages, 1, MAX_QUERIES_CEILING)
        max_urls_per_query = clamp(args.urls_per_page, 1, MAX_URLS_PER_QUERY_CEILING)
        global_url_budget = clamp(args.max_urls, 1, GLOBAL_URL_BUDGET_CEILING)

    return HuntRequest(
        query=args.query,
        hr_focus=not args.no_hr_focus,
        country=args.country,
        max_queries=max_queries,
        max_urls_per_query=max_urls_per_query,
        global_url_budget=global_url_budget,
        collect_debug=args.debug_trace,
        min_delay=args.min_delay,
        max_delay=args.max_delay,
        request_timeout=args.timeout,
        workers=args.workers,
        show_progress=not args.no_progress,
    )


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint."""
    args = parse_args(argv)
    configure_logging(args.verbose)
    logger = get_logger()
    try:
        request = namespace_to_request(args)
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return EXIT_CONFIG

    result = hunt(request, logger=logger)
    payload = {"query": request.query, **result.to_dict(hr_focus=request.hr_focus)}
    json.dump(payload, sys.stdout, indent=2)
    sys.stdout.write("\n")
    if result.is_blocked:
        logger.error("Search engine blocked the hunt (captcha or empty fallback).")
        return EXIT_BLOCKED
    logger.info(
        "Found %d HR and %d general emails.", len(result.hr_emails), len(result.general_emails)
    )
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
