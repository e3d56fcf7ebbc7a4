# retail_crawler/cli/runner.py

"""Headless CLI runner: crawl URLs and print the statistics read models."""

import json
import logging
import sys
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from retail_crawler.config.retailers import load_profiles, load_taxonomy
from retail_crawler.domain.projectors import HEALTH_MODEL, STATISTICS_MODEL
from retail_crawler.extractors.registry import ExtractorRegistry
from retail_crawler.inference.brand_detector import BrandDetector
from retail_crawler.inference.category_inferer import CategoryInferer
from retail_crawler.models.product import (
    ListingUrl,
    PaginatedListingUrl,
    ProductDetail,
    ProductReview,
    format_pence,
)
from retail_crawler.services.crawl_runner import CrawlResult, CrawlRunner
from retail_crawler.storage.event_store import SqliteEventStore
from retail_crawler.storage.read_model_store import SqliteReadModelStore

logger = logging.getLogger("retail_crawler.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)

_STATUS_STYLES = {
    "active": "[green]active[/green]",
    "degraded": "[yellow]degraded[/yellow]",
    "failed": "[red]failed[/red]",
}


def build_registry() -> ExtractorRegistry:
    """Registry over every shipped retailer profile."""
    taxonomy = load_taxonomy()
    return ExtractorRegistry(
        load_profiles(),
        CategoryInferer.from_taxonomy(taxonomy),
        BrandDetector.from_taxonomy(taxonomy),
    )


def build_runner(db_path: Path | None = None) -> CrawlRunner:
    """CrawlRunner backed by the local SQLite event and read-model stores."""
    return CrawlRunner(
        build_registry(),
        SqliteEventStore(db_path),
        SqliteReadModelStore(db_path),
    )


def _close(runner: CrawlRunner) -> None:
    runner.event_store.close()
    runner.read_store.close()


# ── Rendering ────────────────────────────────────────────


def _items_to_dicts(results: list[CrawlResult]) -> list[dict[str, Any]]:
    return [
        {
            "url": r.url,
            "kind": r.kind,
            "retailer": r.retailer,
            "crawl_id": r.crawl_id,
            "pages": r.pages,
            "error": r.error,
            "items": [item.to_dict() for item in r.items],
        }
        for r in results
    ]


def _print_listing_table(result: CrawlResult) -> None:
    table = Table(
        title=f"Listings: {result.url}",
        show_lines=False,
        title_style="bold cyan",
    )
    table.add_column("#", style="dim", width=4)
    table.add_column("Category", style="magenta")
    table.add_column("URL", overflow="fold")
    idx = 0
    for item in result.items:
        if isinstance(item, ListingUrl):
            idx += 1
            table.add_row(str(idx), item.category or "—", item.url)
        elif isinstance(item, PaginatedListingUrl):
            table.caption = f"Next page ({item.page_number}): {item.url}"
    Console().print(table)


def _print_detail_table(result: CrawlResult) -> None:
    table = Table(title="Product details", show_lines=True, title_style="bold cyan")
    table.add_column("Title", max_width=50)
    table.add_column("Brand", style="magenta")
    table.add_column("Price", justify="right", style="green")
    table.add_column("Was", justify="right", style="dim")
    table.add_column("Weight", justify="right")
    table.add_column("Stock", justify="center")
    table.add_column("Category")
    for item in result.items:
        if not isinstance(item, ProductDetail):
            continue
        table.add_row(
            item.title[:50],
            item.brand or "—",
            item.price.formatted(),
            (
                format_pence(item.original_price_pence, item.currency)
                if item.original_price_pence
                else "—"
            ),
            f"{item.weight_grams:,}g" if item.weight_grams else "—",
            "[green]yes[/green]" if item.in_stock else "[red]no[/red]",
            item.category or "—",
        )
    Console().print(table)


def _print_review_table(result: CrawlResult) -> None:
    table = Table(title="Reviews", show_lines=True, title_style="bold cyan")
    table.add_column("Rating", justify="center", style="yellow")
    table.add_column("Author")
    table.add_column("Title", max_width=40)
    table.add_column("Body", max_width=70)
    table.add_column("Verified", justify="center")
    for item in result.items:
        if not isinstance(item, ProductReview):
            continue
        table.add_row(
            f"{item.rating:.1f}",
            item.author or "—",
            item.title or "—",
            item.body[:200],
            "✓" if item.verified_purchase else "",
        )
    Console().print(table)


_TABLE_PRINTERS = {
    "listing": _print_listing_table,
    "detail": _print_detail_table,
    "review": _print_review_table,
}


# ── Commands ─────────────────────────────────────────────


async def cli_crawl(
    urls: list[str],
    kind: str,
    output_format: str,
    max_pages: int = 1,
    db_path: Path | None = None,
) -> int:
    """Crawl *urls* and print the DTOs; return an exit code (0=ok, 1=fail)."""
    runner = build_runner(db_path)
    try:
        _err.print(
            f"[bold]Crawling {len(urls)} URL(s)[/bold]  [dim]kind={kind}[/dim]"
        )
        results = await runner.crawl_many(urls, kind=kind, max_pages=max_pages)
    finally:
        _close(runner)

    for result in results:
        if result.error:
            _err.print(f"[red]Error: {result.url}: {result.error}[/red]")
        else:
            _err.print(
                f"[green]✓ {len(result.items)} item(s) from {result.url}"
                f"[/green] [dim]({result.retailer})[/dim]"
            )

    if output_format == "table":
        for result in results:
            if result.ok:
                _TABLE_PRINTERS[result.kind](result)
    else:
        json.dump(
            _items_to_dicts(results), sys.stdout, ensure_ascii=False, indent=2,
        )
        sys.stdout.write("\n")

    return 0 if all(r.ok for r in results) else 1


def run_stats(db_path: Path | None = None) -> int:
    """Print the per-retailer/day statistics and retailer health tables."""
    store = SqliteReadModelStore(db_path)
    try:
        stats = store.rows(STATISTICS_MODEL)
        health = store.rows(HEALTH_MODEL)
    finally:
        store.close()

    if not stats and not health:
        _err.print("[yellow]No crawl statistics recorded yet.[/yellow]")
        return 0

    table = Table(
        title="Crawl statistics", show_lines=False, title_style="bold cyan"
    )
    table.add_column("Retailer", style="bold")
    table.add_column("Day")
    table.add_column("Started", justify="right")
    table.add_column("Completed", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Listings", justify="right")
    table.add_column("Avg duration", justify="right", style="dim")
    for key, row in stats.items():
        retailer, _, day = key.partition(":")
        average = row.get("average_duration_ms")
        table.add_row(
            retailer,
            day,
            str(row["started"]),
            str(row["completed"]),
            str(row["failed"]),
            str(row["listings_discovered"]),
            f"{average:,.0f}ms" if average is not None else "—",
        )
    Console().print(table)

    table = Table(
        title="Retailer health", show_lines=False, title_style="bold cyan"
    )
    table.add_column("Retailer", style="bold")
    table.add_column("Status", justify="center")
    table.add_column("Consecutive failures", justify="right")
    table.add_column("Completed", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Last success", style="dim")
    table.add_column("Last failure", style="dim")
    for retailer, row in health.items():
        table.add_row(
            retailer,
            _STATUS_STYLES.get(row["status"], row["status"]),
            str(row["consecutive_failures"]),
            str(row["total_completed"]),
            str(row["total_failed"]),
            row.get("last_success_at") or "—",
            row.get("last_failure_at") or "—",
        )
    Console().print(table)
    return 0


def run_list_retailers() -> int:
    """Print the configured retailer profiles."""
    profiles = load_profiles()
    table = Table(title="Retailers", show_lines=False, title_style="bold cyan")
    table.add_column("Slug", style="bold")
    table.add_column("Name")
    table.add_column("Domains", style="dim")
    table.add_column("Delay", justify="right")
    for slug, profile in profiles.items():
        table.add_row(
            slug,
            profile.label,
            ", ".join(profile.domains),
            f"{profile.request_delay:.1f}s",
        )
    Console().print(table)
    return 0
