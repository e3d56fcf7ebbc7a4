# retail_crawler/domain/crawl_lifecycle.py

"""Event-sourced crawl lifecycle.

A crawl's state is never stored; it is the left fold of its events. Every
command folds the events so far, checks the proposed event against that
state, and only then appends it. ``Started`` must come first and exactly
once. ``Completed`` and ``Failed`` are terminal: repeating the same
terminal command is a no-op, crossing to the other one is an error.
"""

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Protocol

from retail_crawler.models.events import (
    CrawlCompleted,
    CrawlEvent,
    CrawlFailed,
    CrawlStarted,
    ListingDiscovered,
)

logger = logging.getLogger("retail_crawler.lifecycle")


class InvalidState(Exception):
    """A lifecycle command is not allowed in the crawl's current state."""


class CrawlStatus(Enum):
    NEW = "new"
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class CrawlState:
    """Snapshot of one crawl, derived purely from its events."""

    crawl_id: str | None = None
    url: str | None = None
    retailer: str | None = None
    status: CrawlStatus = CrawlStatus.NEW
    listings_discovered: int = 0
    completed_event: CrawlCompleted | None = None
    failed_event: CrawlFailed | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (CrawlStatus.COMPLETED, CrawlStatus.FAILED)


def apply(state: CrawlState, event: CrawlEvent) -> CrawlState:
    """Apply one event; events that cannot change the state are ignored."""
    if isinstance(event, CrawlStarted):
        if state.status is not CrawlStatus.NEW:
            return state
        return replace(
            state,
            crawl_id=event.crawl_id,
            url=event.url,
            retailer=event.retailer,
            status=CrawlStatus.STARTED,
        )
    if isinstance(event, ListingDiscovered):
        if state.status is not CrawlStatus.STARTED:
            return state
        return replace(state, listings_discovered=state.listings_discovered + 1)
    if isinstance(event, CrawlCompleted):
        if state.status is not CrawlStatus.STARTED:
            return state
        return replace(state, status=CrawlStatus.COMPLETED, completed_event=event)
    if isinstance(event, CrawlFailed):
        if state.status is not CrawlStatus.STARTED:
            return state
        return replace(state, status=CrawlStatus.FAILED, failed_event=event)
    return state


def fold(events: Iterable[CrawlEvent]) -> CrawlState:
    """Left fold of *events* from the empty state."""
    state = CrawlState()
    for event in events:
        state = apply(state, event)
    return state


class EventSink(Protocol):
    def append(self, event: CrawlEvent) -> bool: ...


class CrawlLifecycle:
    """Aggregate guarding the event sequence of a single crawl."""

    def __init__(
        self, crawl_id: str, events: Iterable[CrawlEvent] = (),
    ) -> None:
        self.crawl_id = crawl_id
        self.events: tuple[CrawlEvent, ...] = tuple(events)
        self._persisted = len(self.events)

    @classmethod
    def start(
        cls,
        url: str,
        retailer: str,
        metadata: dict[str, Any] | None = None,
        crawl_id: str | None = None,
    ) -> "CrawlLifecycle":
        """Open a new crawl; the first event is always ``CrawlStarted``."""
        lifecycle = cls(crawl_id or str(uuid.uuid4()))
        lifecycle.begin(url, retailer, metadata)
        return lifecycle

    @classmethod
    def replay(
        cls, crawl_id: str, events: Iterable[CrawlEvent],
    ) -> "CrawlLifecycle":
        """Rebuild an aggregate from stored events (all already persisted)."""
        return cls(crawl_id, (e for e in events if e.crawl_id == crawl_id))

    @property
    def state(self) -> CrawlState:
        return fold(self.events)

    @property
    def pending_events(self) -> tuple[CrawlEvent, ...]:
        """Events recorded since construction or the last :meth:`persist`."""
        return self.events[self._persisted:]

    # ── Commands ─────────────────────────────────────────

    def begin(
        self,
        url: str,
        retailer: str,
        metadata: dict[str, Any] | None = None,
    ) -> CrawlStarted:
        if self.state.status is not CrawlStatus.NEW:
            raise InvalidState(f"Crawl {self.crawl_id} already started")
        event = CrawlStarted(
            self.crawl_id,
            url=url,
            retailer=retailer,
            metadata=dict(metadata or {}),
        )
        self._record(event)
        return event

    def record_listing(
        self,
        url: str,
        category: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ListingDiscovered:
        state = self._require_started("record a listing for")
        if state.is_terminal:
            raise InvalidState(
                f"Crawl {self.crawl_id} is {state.status.value}; "
                "cannot record a listing"
            )
        event = ListingDiscovered(
            self.crawl_id,
            url=url,
            retailer=state.retailer or "",
            category=category,
            metadata=dict(metadata or {}),
        )
        self._record(event)
        return event

    def complete(
        self, stats: dict[str, Any] | None = None,
    ) -> CrawlCompleted | None:
        """Close the crawl successfully; None if it already completed."""
        state = self._require_started("complete")
        if state.status is CrawlStatus.COMPLETED:
            logger.debug("[%s] Crawl already completed", self.crawl_id)
            return None
        if state.status is CrawlStatus.FAILED:
            raise InvalidState(
                f"Crawl {self.crawl_id} already failed; cannot complete"
            )
        event = CrawlCompleted(
            self.crawl_id,
            discovered_count=state.listings_discovered,
            stats=dict(stats or {}),
        )
        self._record(event)
        return event

    def mark_failed(
        self, reason: str, context: dict[str, Any] | None = None,
    ) -> CrawlFailed | None:
        """Close the crawl as failed; None if it already failed."""
        state = self._require_started("fail")
        if state.status is CrawlStatus.FAILED:
            logger.debug("[%s] Crawl already failed", self.crawl_id)
            return None
        if state.status is CrawlStatus.COMPLETED:
            raise InvalidState(
                f"Crawl {self.crawl_id} already completed; cannot fail"
            )
        event = CrawlFailed(
            self.crawl_id, reason=reason, context=dict(context or {}),
        )
        self._record(event)
        return event

    def persist(self, store: EventSink) -> int:
        """Append pending events to *store* in order; returns the count."""
        pending = self.pending_events
        for event in pending:
            store.append(event)
        self._persisted = len(self.events)
        return len(pending)

    # ── Internals ────────────────────────────────────────

    def _require_started(self, action: str) -> CrawlState:
        state = self.state
        if state.status is CrawlStatus.NEW:
            raise InvalidState(
                f"Cannot {action} crawl {self.crawl_id} before it started"
            )
        return state

    def _record(self, event: CrawlEvent) -> None:
        if event.crawl_id != self.crawl_id:
            raise InvalidState(
                f"Event for crawl {event.crawl_id} recorded on {self.crawl_id}"
            )
        self.events = self.events + (event,)
