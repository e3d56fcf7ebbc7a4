# retail_crawler/storage/read_model_store.py

"""Keyed read-model rows plus the processed-event ledger projectors use.

Rows are plain JSON-compatible dicts addressed by ``(model, key)``. The
processed ledger records which ``event_id`` each projection has already
applied, so redelivered events can be skipped. ``transaction()`` makes the
ledger check, the row writes and the ledger mark a single atomic unit.
"""

import copy
import json
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from retail_crawler.config.settings import Settings

logger = logging.getLogger("retail_crawler.read_models")

Row = dict[str, Any]

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS read_models (
    model TEXT NOT NULL,
    key   TEXT NOT NULL,
    body  TEXT NOT NULL,
    PRIMARY KEY (model, key)
);

CREATE TABLE IF NOT EXISTS processed_events (
    projection TEXT NOT NULL,
    event_id   TEXT NOT NULL,
    PRIMARY KEY (projection, event_id)
);
"""


class ReadModelStore(ABC):
    @abstractmethod
    def get(self, model: str, key: str) -> Row | None:
        ...

    @abstractmethod
    def upsert(self, model: str, key: str, row: Row) -> None:
        ...

    @abstractmethod
    def rows(self, model: str) -> dict[str, Row]:
        """All rows of *model* keyed by row key, in key order."""
        ...

    @abstractmethod
    def is_processed(self, projection: str, event_id: str) -> bool:
        ...

    @abstractmethod
    def mark_processed(self, projection: str, event_id: str) -> None:
        ...

    @abstractmethod
    def transaction(self) -> Any:
        """Context manager; all writes inside commit or roll back together."""
        ...

    def close(self) -> None:
        """Release resources; a no-op for stores that hold none."""


class InMemoryReadModelStore(ReadModelStore):
    def __init__(self) -> None:
        self._rows: dict[str, dict[str, Row]] = {}
        self._processed: set[tuple[str, str]] = set()
        self._lock = threading.RLock()
        self._depth = 0

    def get(self, model: str, key: str) -> Row | None:
        with self._lock:
            row = self._rows.get(model, {}).get(key)
            return copy.deepcopy(row) if row is not None else None

    def upsert(self, model: str, key: str, row: Row) -> None:
        with self._lock:
            self._rows.setdefault(model, {})[key] = copy.deepcopy(row)

    def rows(self, model: str) -> dict[str, Row]:
        with self._lock:
            return {
                key: copy.deepcopy(row)
                for key, row in sorted(self._rows.get(model, {}).items())
            }

    def is_processed(self, projection: str, event_id: str) -> bool:
        with self._lock:
            return (projection, event_id) in self._processed

    def mark_processed(self, projection: str, event_id: str) -> None:
        with self._lock:
            self._processed.add((projection, event_id))

    @contextmanager
    def transaction(self) -> Iterator["InMemoryReadModelStore"]:
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return
            rows = copy.deepcopy(self._rows)
            processed = set(self._processed)
            self._depth = 1
            try:
                yield self
            except BaseException:
                self._rows = rows
                self._processed = processed
                raise
            finally:
                self._depth = 0


class SqliteReadModelStore(ReadModelStore):
    """SQLite-backed read models; rows are stored as JSON bodies."""

    def __init__(self, db_path: Path | str | None = None) -> None:
        path = db_path or Settings.DB_PATH
        if str(path) != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        # Autocommit; transaction() issues BEGIN/COMMIT itself
        self._conn = sqlite3.connect(
            str(path), check_same_thread=False, isolation_level=None,
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)
        self._lock = threading.RLock()
        self._depth = 0
        logger.debug("SqliteReadModelStore opened at %s", path)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def get(self, model: str, key: str) -> Row | None:
        with self._lock:
            found = self._conn.execute(
                "SELECT body FROM read_models WHERE model = ? AND key = ?",
                (model, key),
            ).fetchone()
        return json.loads(found[0]) if found else None

    def upsert(self, model: str, key: str, row: Row) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT INTO read_models (model, key, body) VALUES (?, ?, ?) "
                "ON CONFLICT(model, key) DO UPDATE SET body = excluded.body",
                (model, key, json.dumps(row, ensure_ascii=False)),
            )

    def rows(self, model: str) -> dict[str, Row]:
        with self._lock:
            found = self._conn.execute(
                "SELECT key, body FROM read_models WHERE model = ? "
                "ORDER BY key",
                (model,),
            ).fetchall()
        return {key: json.loads(body) for key, body in found}

    def is_processed(self, projection: str, event_id: str) -> bool:
        with self._lock:
            found = self._conn.execute(
                "SELECT 1 FROM processed_events "
                "WHERE projection = ? AND event_id = ?",
                (projection, event_id),
            ).fetchone()
        return found is not None

    def mark_processed(self, projection: str, event_id: str) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT OR IGNORE INTO processed_events "
                "(projection, event_id) VALUES (?, ?)",
                (projection, event_id),
            )

    @contextmanager
    def transaction(self) -> Iterator["SqliteReadModelStore"]:
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return
            self._conn.execute("BEGIN IMMEDIATE")
            self._depth = 1
            try:
                yield self
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            else:
                self._conn.execute("COMMIT")
            finally:
                self._depth = 0
