# retail_crawler/domain/projectors.py

"""Read-model projectors fed by crawl lifecycle events.

Delivery is at-least-once, so every projector records the ``event_id`` it
has applied and skips it on redelivery. The check, the row update and the
mark happen inside one read-store transaction.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime

from retail_crawler.config.settings import Settings
from retail_crawler.models.events import (
    CrawlCompleted,
    CrawlEvent,
    CrawlFailed,
    CrawlStarted,
)
from retail_crawler.storage.event_store import EventStore
from retail_crawler.storage.read_model_store import ReadModelStore, Row

logger = logging.getLogger("retail_crawler.projectors")

STATISTICS_MODEL = "crawl_statistics"
HEALTH_MODEL = "retailer_health"


class UnrecognizedRetailer(Exception):
    """An event could not be attributed to a known retailer."""


class Projector(ABC):
    """Apply events to one named read model exactly once each."""

    name: str = ""

    def __init__(
        self,
        read_store: ReadModelStore,
        event_store: EventStore,
        known_retailers: Iterable[str],
    ) -> None:
        self.read_store = read_store
        self.event_store = event_store
        self.known_retailers = frozenset(known_retailers)

    def handle(self, event: CrawlEvent) -> bool:
        """Project *event*; False when skipped as a duplicate or unattributable."""
        try:
            with self.read_store.transaction():
                if self.read_store.is_processed(self.name, event.event_id):
                    logger.debug(
                        "[%s] Event %s already applied",
                        self.name,
                        event.event_id,
                    )
                    return False
                applied = self.apply(event)
                self.read_store.mark_processed(self.name, event.event_id)
                return applied
        except UnrecognizedRetailer as exc:
            logger.warning(
                "[%s] Skipping %s %s: %s",
                self.name,
                event.event_type,
                event.event_id,
                exc,
            )
            return False

    def replay(self, events: Iterable[CrawlEvent]) -> int:
        """Handle every event in order; returns how many were applied."""
        return sum(1 for event in events if self.handle(event))

    @abstractmethod
    def apply(self, event: CrawlEvent) -> bool:
        """Update rows for *event*; return False if the event is irrelevant."""
        ...

    def retailer_of(self, event: CrawlEvent) -> str:
        """Retailer for *event*, read from the crawl's own ``CrawlStarted``."""
        if isinstance(event, CrawlStarted):
            retailer = event.retailer
        else:
            started = self.event_store.find_started(event.crawl_id)
            if started is None:
                raise UnrecognizedRetailer(
                    f"no CrawlStarted recorded for crawl {event.crawl_id}"
                )
            retailer = started.retailer
        if retailer not in self.known_retailers:
            raise UnrecognizedRetailer(f"unknown retailer '{retailer}'")
        return retailer


def _day_key(retailer: str, occurred_at: datetime) -> str:
    return f"{retailer}:{occurred_at.date().isoformat()}"


class CrawlStatisticsProjector(Projector):
    """Per-retailer, per-day crawl counts and average duration."""

    name = STATISTICS_MODEL

    @staticmethod
    def empty_row() -> Row:
        return {
            "started": 0,
            "completed": 0,
            "failed": 0,
            "listings_discovered": 0,
            "average_duration_ms": None,
        }

    def apply(self, event: CrawlEvent) -> bool:
        if not isinstance(event, (CrawlStarted, CrawlCompleted, CrawlFailed)):
            return False
        retailer = self.retailer_of(event)
        key = _day_key(retailer, event.occurred_at)
        row = self.read_store.get(self.name, key) or self.empty_row()

        if isinstance(event, CrawlStarted):
            row["started"] += 1
        elif isinstance(event, CrawlCompleted):
            duration = event.duration_ms
            if duration is not None:
                average = row["average_duration_ms"]
                completed = row["completed"]
                row["average_duration_ms"] = (
                    duration
                    if average is None
                    else (average * completed + duration) / (completed + 1)
                )
            row["completed"] += 1
            row["listings_discovered"] += event.discovered_count
        else:
            row["failed"] += 1

        self.read_store.upsert(self.name, key, row)
        return True


class RetailerHealthProjector(Projector):
    """Consecutive-failure tracking and an active/degraded/failed status."""

    name = HEALTH_MODEL

    def __init__(
        self,
        read_store: ReadModelStore,
        event_store: EventStore,
        known_retailers: Iterable[str],
        degraded_after: int = Settings.DEGRADED_AFTER_FAILURES,
        failed_after: int = Settings.FAILED_AFTER_FAILURES,
    ) -> None:
        super().__init__(read_store, event_store, known_retailers)
        self.degraded_after = degraded_after
        self.failed_after = failed_after

    @staticmethod
    def empty_row() -> Row:
        return {
            "consecutive_failures": 0,
            "status": "active",
            "last_success_at": None,
            "last_failure_at": None,
            "total_completed": 0,
            "total_failed": 0,
        }

    def status_for(self, consecutive_failures: int) -> str:
        if consecutive_failures >= self.failed_after:
            return "failed"
        if consecutive_failures >= self.degraded_after:
            return "degraded"
        return "active"

    def apply(self, event: CrawlEvent) -> bool:
        if not isinstance(event, (CrawlCompleted, CrawlFailed)):
            return False
        retailer = self.retailer_of(event)
        row = self.read_store.get(self.name, retailer) or self.empty_row()
        when = event.occurred_at.isoformat()

        if isinstance(event, CrawlCompleted):
            row["consecutive_failures"] = 0
            row["last_success_at"] = when
            row["total_completed"] += 1
        else:
            row["consecutive_failures"] += 1
            row["last_failure_at"] = when
            row["total_failed"] += 1

        previous = row["status"]
        row["status"] = self.status_for(row["consecutive_failures"])
        if row["status"] != previous:
            log = logger.info if row["status"] == "active" else logger.warning
            log(
                "[%s] Retailer status %s -> %s (%d consecutive failures)",
                retailer,
                previous,
                row["status"],
                row["consecutive_failures"],
            )
        self.read_store.upsert(self.name, retailer, row)
        return True


def default_projectors(
    read_store: ReadModelStore,
    event_store: EventStore,
    known_retailers: Iterable[str],
) -> list[Projector]:
    retailers = tuple(known_retailers)
    projectors: list[Projector] = [
        CrawlStatisticsProjector(read_store, event_store, retailers),
        RetailerHealthProjector(read_store, event_store, retailers),
    ]
    return projectors


def project(
    projectors: Iterable[Projector], events: Iterable[CrawlEvent],
) -> None:
    """Feed *events* to every projector, in order."""
    events = list(events)
    for projector in projectors:
        projector.replay(events)
