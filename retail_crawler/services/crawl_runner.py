# retail_crawler/services/crawl_runner.py

"""Local orchestration: pick an extractor, fetch, extract, record events."""

import asyncio
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from retail_crawler.config.retailers import RetailerProfile
from retail_crawler.config.settings import Settings
from retail_crawler.domain.crawl_lifecycle import CrawlLifecycle
from retail_crawler.domain.projectors import Projector, default_projectors, project
from retail_crawler.extractors.base_extractor import Extractor
from retail_crawler.extractors.registry import ExtractorRegistry
from retail_crawler.fetch.http_fetcher import FetchError, HttpFetcher, merge_headers
from retail_crawler.fetch.proxies import BrightDataProxyProvider, ProxyManager
from retail_crawler.models.product import ListingUrl, PaginatedListingUrl
from retail_crawler.storage.event_store import EventStore
from retail_crawler.storage.read_model_store import ReadModelStore

logger = logging.getLogger("retail_crawler.runner")


class NoExtractorFound(LookupError):
    """No registered extractor of the requested kind claims the URL."""


@dataclass
class CrawlResult:
    """Outcome of one crawl or extraction run."""

    url: str
    kind: str
    retailer: str | None = None
    crawl_id: str | None = None
    items: list[Any] = field(default_factory=list)
    pages: int = 0
    duration_ms: float | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class RetailerThrottle:
    """Space successive fetches to one retailer by its ``request_delay``.

    Slots are reserved under the lock and slept outside it, so a slow
    retailer never holds up the others.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._clock = clock
        self._sleep = sleep
        self._next_allowed: dict[str, float] = {}
        self._lock = threading.Lock()

    def wait(self, profile: RetailerProfile) -> float:
        """Block until *profile* may be fetched again; returns seconds slept."""
        with self._lock:
            now = self._clock()
            slot = max(now, self._next_allowed.get(profile.slug, now))
            self._next_allowed[profile.slug] = slot + profile.request_delay
        delay = slot - now
        if delay > 0:
            logger.debug("[%s] Throttling for %.2fs", profile.slug, delay)
            self._sleep(delay)
        return delay


def default_fetcher() -> HttpFetcher:
    """Fetcher routed through BrightData when credentials are configured."""
    return HttpFetcher(proxy=ProxyManager([BrightDataProxyProvider()]))


def _failure_context(url: str, exc: BaseException) -> dict[str, Any]:
    cause = exc.cause if isinstance(exc, FetchError) else exc
    return {
        "url": url,
        "exception_class": (
            type(cause).__name__
            if isinstance(cause, BaseException)
            else type(exc).__name__
        ),
        "status_code": getattr(exc, "status_code", None),
    }


class CrawlRunner:
    """Coordinates fetching, extraction, lifecycle events and projections.

    Each crawl or extract call builds one fetcher with *fetcher_factory*,
    uses it for all of its pages and closes it when the call ends.
    """

    def __init__(
        self,
        registry: ExtractorRegistry,
        event_store: EventStore,
        read_store: ReadModelStore,
        fetcher_factory: Callable[[], HttpFetcher] | None = None,
        projectors: list[Projector] | None = None,
        throttle: RetailerThrottle | None = None,
        max_concurrency: int | None = None,
    ) -> None:
        self.registry = registry
        self.event_store = event_store
        self.read_store = read_store
        self.fetcher_factory = fetcher_factory or default_fetcher
        self.projectors = (
            projectors
            if projectors is not None
            else default_projectors(
                read_store, event_store, registry.profiles.keys()
            )
        )
        self.throttle = throttle or RetailerThrottle()
        self.max_concurrency = (
            max_concurrency or Settings.MAX_CONCURRENT_CRAWLS
        )

    # ── Private helpers ──────────────────────────────────

    def _extractor(self, url: str, kind: str) -> Extractor[Any]:
        extractor = self.registry.find(url, kind)
        if extractor is None:
            raise NoExtractorFound(f"No {kind} extractor handles {url}")
        return extractor

    def _fetch(
        self,
        fetcher: HttpFetcher,
        url: str,
        profile: RetailerProfile,
        headers: dict[str, str] | None = None,
    ) -> str:
        """One throttled GET on the fetcher owned by the calling task."""
        self.throttle.wait(profile)
        return fetcher.fetch(url, headers=merge_headers(profile.headers, headers))

    def _finish(self, lifecycle: CrawlLifecycle) -> None:
        pending = lifecycle.pending_events
        lifecycle.persist(self.event_store)
        project(self.projectors, pending)

    # ── Public API ───────────────────────────────────────

    def extract(
        self,
        url: str,
        kind: str,
        headers: dict[str, str] | None = None,
    ) -> CrawlResult:
        """Fetch and extract a detail or review page (no lifecycle events)."""
        extractor = self._extractor(url, kind)
        started = time.monotonic()
        fetcher = self.fetcher_factory()
        try:
            html = self._fetch(fetcher, url, extractor.profile, headers)
        finally:
            fetcher.close()
        items = list(extractor.extract(html, url))
        return CrawlResult(
            url=url,
            kind=kind,
            retailer=extractor.retailer_slug,
            items=items,
            pages=1,
            duration_ms=(time.monotonic() - started) * 1000,
        )

    def crawl_listing(
        self,
        url: str,
        max_pages: int = 1,
        headers: dict[str, str] | None = None,
    ) -> CrawlResult:
        """Crawl a listing (following up to *max_pages* pages) as one crawl.

        Every discovered product URL becomes a ``ListingDiscovered`` event.
        Any failure is recorded as ``CrawlFailed`` and then re-raised.
        """
        extractor = self._extractor(url, "listing")
        profile = extractor.profile
        lifecycle = CrawlLifecycle.start(
            url, profile.slug, {"kind": "listing", "max_pages": max_pages}
        )
        logger.info(
            "[%s] Crawl %s started for %s",
            profile.slug,
            lifecycle.crawl_id,
            url,
        )
        started = time.monotonic()
        items: list[Any] = []
        pages = 0
        page_url: str | None = url
        current = url
        fetcher = self.fetcher_factory()

        try:
            while page_url is not None and pages < max_pages:
                current = page_url
                html = self._fetch(fetcher, current, profile, headers)
                pages += 1
                page_url = None
                for item in extractor.extract(html, current):
                    items.append(item)
                    if isinstance(item, ListingUrl):
                        lifecycle.record_listing(
                            item.url, item.category, item.metadata
                        )
                    elif isinstance(item, PaginatedListingUrl):
                        page_url = item.url
        except Exception as exc:
            lifecycle.mark_failed(str(exc), _failure_context(current, exc))
            self._finish(lifecycle)
            logger.error(
                "[%s] Crawl %s failed: %s",
                profile.slug,
                lifecycle.crawl_id,
                exc,
            )
            raise
        finally:
            fetcher.close()

        duration_ms = (time.monotonic() - started) * 1000
        lifecycle.complete({"duration_ms": duration_ms, "pages": pages})
        self._finish(lifecycle)
        logger.info(
            "[%s] Crawl %s completed: %d listings in %d page(s)",
            profile.slug,
            lifecycle.crawl_id,
            lifecycle.state.listings_discovered,
            pages,
        )
        return CrawlResult(
            url=url,
            kind="listing",
            retailer=profile.slug,
            crawl_id=lifecycle.crawl_id,
            items=items,
            pages=pages,
            duration_ms=duration_ms,
        )

    def crawl(self, url: str, kind: str = "listing", max_pages: int = 1) -> CrawlResult:
        if kind == "listing":
            return self.crawl_listing(url, max_pages=max_pages)
        return self.extract(url, kind)

    async def crawl_many(
        self,
        urls: list[str],
        kind: str = "listing",
        max_pages: int = 1,
    ) -> list[CrawlResult]:
        """Run independent crawls concurrently; failures become results."""
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run_one(url: str) -> CrawlResult:
            async with semaphore:
                result: CrawlResult = await asyncio.to_thread(
                    self.crawl, url, kind, max_pages
                )
                return result

        outcomes = await asyncio.gather(
            *(run_one(url) for url in urls), return_exceptions=True
        )

        results: list[CrawlResult] = []
        for url, outcome in zip(urls, outcomes):
            if isinstance(outcome, CrawlResult):
                results.append(outcome)
            elif isinstance(outcome, Exception):
                logger.error(
                    "Crawl error for '%s': %s",
                    url,
                    outcome,
                    exc_info=outcome,
                )
                results.append(
                    CrawlResult(url=url, kind=kind, error=str(outcome))
                )
        return results
