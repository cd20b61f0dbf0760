"""Durable FIFO queue of serialized documents awaiting redelivery.

Entries are opaque byte blobs in a single SQLite file. Every operation opens
its own connection and commits before returning, so an entry that
``enqueue`` has accepted survives an abrupt process exit. One lock
serializes the foreground path (enqueue on a failed POST) against the retry
driver (peek / remove).

Table: delivery_queue
  - One row per undelivered document, ``id`` gives insertion order.
  - Rows are only ever removed from the head.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator

from ..errors import QueueEmptyError

logger = logging.getLogger(__name__)

_QUEUE_DDL = """
CREATE TABLE IF NOT EXISTS delivery_queue (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    payload    BLOB    NOT NULL,
    queued_at  TEXT    NOT NULL
);
"""


class DeliveryQueue:
    """Persistent FIFO of document bytes."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()
        self._closed = False
        with self._connection() as conn:
            conn.executescript(_QUEUE_DDL)
        logger.info("Delivery queue at %s holds %d queued document(s)", self.path, self.size())

    @contextmanager
    def _connection(self) -> Generator[sqlite3.Connection, None, None]:
        """Open connection that commits on clean exit and rolls back on error."""
        if self._closed:
            raise RuntimeError(f"delivery queue {self.path} is closed")
        conn = sqlite3.connect(str(self.path))
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def enqueue(self, payload: bytes) -> None:
        with self._lock, self._connection() as conn:
            conn.execute(
                "INSERT INTO delivery_queue (payload, queued_at) VALUES (?, ?)",
                (sqlite3.Binary(payload), datetime.now(timezone.utc).isoformat()),
            )

    def peek_oldest(self) -> bytes:
        """Return the head entry without removing it.

        Raises:
            QueueEmptyError: if the queue holds no entries.
        """
        with self._lock, self._connection() as conn:
            row = conn.execute(
                "SELECT payload FROM delivery_queue ORDER BY id LIMIT 1"
            ).fetchone()
        if row is None:
            raise QueueEmptyError(f"delivery queue {self.path} is empty")
        return bytes(row[0])

    def remove_oldest(self) -> None:
        """Delete the head entry.

        Raises:
            QueueEmptyError: if the queue holds no entries.
        """
        with self._lock, self._connection() as conn:
            cursor = conn.execute(
                "DELETE FROM delivery_queue WHERE id = (SELECT MIN(id) FROM delivery_queue)"
            )
            removed = cursor.rowcount
        if removed == 0:
            raise QueueEmptyError(f"delivery queue {self.path} is empty")

    def size(self) -> int:
        with self._lock, self._connection() as conn:
            (count,) = conn.execute("SELECT COUNT(*) FROM delivery_queue").fetchone()
        return count

    def is_empty(self) -> bool:
        return self.size() == 0

    def close(self) -> None:
        self._closed = True

    def __enter__(self) -> "DeliveryQueue":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
