# retail_crawler/storage/event_store.py

"""Append-only stores for crawl lifecycle events."""

import json
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from pathlib import Path

from retail_crawler.config.settings import Settings
from retail_crawler.models.events import CrawlEvent, CrawlStarted, event_from_dict

logger = logging.getLogger("retail_crawler.event_store")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS events (
    seq         INTEGER PRIMARY KEY AUTOINCREMENT,
    event_id    TEXT    NOT NULL UNIQUE,
    crawl_id    TEXT    NOT NULL,
    event_type  TEXT    NOT NULL,
    occurred_at TEXT    NOT NULL,
    body        TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_events_crawl
    ON events(crawl_id, seq);
"""


class EventStore(ABC):
    """Immutable event log; appending a known ``event_id`` is a no-op."""

    @abstractmethod
    def append(self, event: CrawlEvent) -> bool:
        """Store *event*; False when its ``event_id`` was already stored."""
        ...

    @abstractmethod
    def events_for(self, crawl_id: str) -> list[CrawlEvent]:
        ...

    @abstractmethod
    def all_events(self) -> list[CrawlEvent]:
        """Every stored event in append order."""
        ...

    def find_started(self, crawl_id: str) -> CrawlStarted | None:
        for event in self.events_for(crawl_id):
            if isinstance(event, CrawlStarted):
                return event
        return None

    def close(self) -> None:
        """Release resources; a no-op for stores that hold none."""


class InMemoryEventStore(EventStore):
    def __init__(self) -> None:
        self._events: list[CrawlEvent] = []
        self._ids: set[str] = set()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._events)

    def append(self, event: CrawlEvent) -> bool:
        with self._lock:
            if event.event_id in self._ids:
                return False
            self._ids.add(event.event_id)
            self._events.append(event)
            return True

    def events_for(self, crawl_id: str) -> list[CrawlEvent]:
        with self._lock:
            return [e for e in self._events if e.crawl_id == crawl_id]

    def all_events(self) -> list[CrawlEvent]:
        with self._lock:
            return list(self._events)


class SqliteEventStore(EventStore):
    """SQLite-backed event log, one JSON body per row."""

    def __init__(self, db_path: Path | str | None = None) -> None:
        path = db_path or Settings.DB_PATH
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)
        self._lock = threading.Lock()
        logger.debug("SqliteEventStore opened at %s", path)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def append(self, event: CrawlEvent) -> bool:
        with self._lock:
            cur = self._conn.execute(
                "INSERT OR IGNORE INTO events "
                "(event_id, crawl_id, event_type, occurred_at, body) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    event.event_id,
                    event.crawl_id,
                    event.event_type,
                    event.occurred_at.isoformat(),
                    json.dumps(event.to_dict(), ensure_ascii=False),
                ),
            )
            self._conn.commit()
        inserted = cur.rowcount == 1
        if not inserted:
            logger.debug("Duplicate event %s ignored", event.event_id)
        return inserted

    def _load(self, rows: list[tuple[str]]) -> list[CrawlEvent]:
        return [event_from_dict(json.loads(body)) for (body,) in rows]

    def events_for(self, crawl_id: str) -> list[CrawlEvent]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT body FROM events WHERE crawl_id = ? ORDER BY seq",
                (crawl_id,),
            ).fetchall()
        return self._load(rows)

    def all_events(self) -> list[CrawlEvent]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT body FROM events ORDER BY seq"
            ).fetchall()
        return self._load(rows)
