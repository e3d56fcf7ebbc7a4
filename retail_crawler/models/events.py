# retail_crawler/models/events.py

"""Immutable crawl lifecycle events.

Events are the durable record of a crawl. Each carries a unique
``event_id`` (the idempotency key projectors deduplicate on) and the UTC
``occurred_at`` timestamp used for day bucketing.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar


def _new_event_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CrawlEvent:
    """Fields shared by every lifecycle event."""

    event_type: ClassVar[str] = "crawl_event"

    crawl_id: str
    event_id: str = field(default_factory=_new_event_id, kw_only=True)
    occurred_at: datetime = field(default_factory=_utcnow, kw_only=True)

    def payload(self) -> dict[str, Any]:
        """Event-specific fields, without the envelope."""
        return {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type,
            "event_id": self.event_id,
            "crawl_id": self.crawl_id,
            "occurred_at": self.occurred_at.isoformat(),
            **self.payload(),
        }


@dataclass(frozen=True)
class CrawlStarted(CrawlEvent):
    event_type: ClassVar[str] = "crawl_started"

    url: str
    retailer: str
    metadata: dict[str, Any] = field(default_factory=dict)

    def payload(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "retailer": self.retailer,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class ListingDiscovered(CrawlEvent):
    event_type: ClassVar[str] = "listing_discovered"

    url: str
    retailer: str
    category: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def payload(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "retailer": self.retailer,
            "category": self.category,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class CrawlCompleted(CrawlEvent):
    event_type: ClassVar[str] = "crawl_completed"

    discovered_count: int
    stats: dict[str, Any] = field(default_factory=dict)

    @property
    def duration_ms(self) -> float | None:
        value = self.stats.get("duration_ms")
        return float(value) if value is not None else None

    def payload(self) -> dict[str, Any]:
        return {
            "discovered_count": self.discovered_count,
            "stats": dict(self.stats),
        }


@dataclass(frozen=True)
class CrawlFailed(CrawlEvent):
    event_type: ClassVar[str] = "crawl_failed"

    reason: str
    context: dict[str, Any] = field(default_factory=dict)

    def payload(self) -> dict[str, Any]:
        return {"reason": self.reason, "context": dict(self.context)}


EVENT_TYPES: dict[str, type[CrawlEvent]] = {
    cls.event_type: cls
    for cls in (CrawlStarted, ListingDiscovered, CrawlCompleted, CrawlFailed)
}


def event_from_dict(data: dict[str, Any]) -> CrawlEvent:
    """Rebuild an event from :meth:`CrawlEvent.to_dict` output."""
    fields = dict(data)
    event_type = fields.pop("event_type")
    try:
        cls = EVENT_TYPES[event_type]
    except KeyError:
        raise ValueError(f"Unknown event type: {event_type!r}") from None
    fields["occurred_at"] = datetime.fromisoformat(fields["occurred_at"])
    return cls(**fields)
