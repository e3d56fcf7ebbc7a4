# main.py

"""Entry point for the retail_crawler command-line tool."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from retail_crawler.config.logging_config import setup_logging

logger = logging.getLogger("retail_crawler.main")

KINDS = ("listing", "detail", "review")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="retail_crawler",
        description="UK pet-food retailer crawler and extractor.",
    )
    parser.add_argument(
        "urls",
        nargs="*",
        help="Page URLs to crawl.",
    )
    parser.add_argument(
        "-k",
        "--kind",
        choices=KINDS,
        default="listing",
        help="Page kind to extract (default: listing).",
    )
    parser.add_argument(
        "-p",
        "--pages",
        type=int,
        default=1,
        dest="max_pages",
        help="Listing pages to follow per URL (default: 1).",
    )
    parser.add_argument(
        "-f",
        "--format",
        choices=["json", "table"],
        default="json",
        dest="output_format",
        help="Output format (default: json).",
    )
    parser.add_argument(
        "--db",
        default=None,
        dest="db_path",
        help="SQLite database for events and read models (default: data/crawler.db).",
    )
    parser.add_argument(
        "--stats",
        action="store_true",
        default=False,
        help="Print crawl statistics and retailer health, then exit.",
    )
    parser.add_argument(
        "--retailers",
        action="store_true",
        default=False,
        help="List the configured retailers, then exit.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Show INFO progress on stderr as well as warnings.",
    )
    return parser


def _run_crawl(args: argparse.Namespace) -> None:
    """Crawl the given URLs and exit."""
    from retail_crawler.cli.runner import cli_crawl

    exit_code = asyncio.run(
        cli_crawl(
            urls=args.urls,
            kind=args.kind,
            output_format=args.output_format,
            max_pages=max(1, args.max_pages),
            db_path=Path(args.db_path) if args.db_path else None,
        )
    )
    sys.exit(exit_code)


def _run_stats(args: argparse.Namespace) -> None:
    from retail_crawler.cli.runner import run_stats

    sys.exit(run_stats(Path(args.db_path) if args.db_path else None))


def _run_list_retailers() -> None:
    from retail_crawler.cli.runner import run_list_retailers

    sys.exit(run_list_retailers())


def main() -> None:
    """Route to the stats view, the retailer list, or a crawl."""
    parser = _build_parser()
    args = parser.parse_args()

    log_file = setup_logging(
        console_level=logging.INFO if args.verbose else logging.WARNING
    )
    logger.info("retail_crawler starting, log file: %s", log_file)

    if args.stats:
        _run_stats(args)
    elif args.retailers:
        _run_list_retailers()
    elif not args.urls:
        parser.print_help()
        sys.exit(2)
    else:
        _run_crawl(args)


if __name__ == "__main__":
    main()
