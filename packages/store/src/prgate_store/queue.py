"""Durable task queue that hands admitted reviews to the workers.

The webhook handler must answer quickly, while a review takes two slow
network calls. The dispatcher sits between the two: ``enqueue`` commits the
intent to run a review before admission returns, and workers ``dequeue``
tasks under a lease. A task whose worker dies before ``ack`` becomes
visible again once its lease expires, so delivery is at-least-once and the
consumer (ReviewOrchestrator.execute) is idempotent.

No ordering is promised between tasks; duplicate protection lives in the
reviews table, not here.
"""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass

from prgate_store.sqlite import connect

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS tasks (
    id            INTEGER PRIMARY KEY AUTOINCREMENT,
    review_id     TEXT NOT NULL,
    status        TEXT NOT NULL DEFAULT 'queued',
    attempts      INTEGER NOT NULL DEFAULT 0,
    available_at  REAL NOT NULL,
    leased_until  REAL,
    enqueued_at   REAL NOT NULL,
    last_error    TEXT
);
CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks (status, available_at);
"""

QUEUED = "queued"
LEASED = "leased"
DONE = "done"
DEAD = "dead"


def insert_task(conn: sqlite3.Connection, review_id: str) -> int:
    """Insert a queued task using ``conn``, inside whatever transaction it has open."""
    now = time.time()
    cur = conn.execute(
        "INSERT INTO tasks (review_id, status, attempts, available_at, enqueued_at) VALUES (?, ?, 0, ?, ?)",
        (review_id, QUEUED, now, now),
    )
    logger.debug("Enqueued task %d for review %s", cur.lastrowid, review_id)
    return cur.lastrowid


@dataclass
class Task:
    """A leased unit of work: run the review identified by ``review_id``."""

    id: int
    review_id: str
    attempts: int


class BaseDispatcher(ABC):
    """Enqueue / dequeue-with-ack contract shared by every queue backend."""

    @abstractmethod
    def enqueue(self, review_id: str) -> int:
        """Durably record a task for ``review_id`` and return its id.

        Must not return before the task would survive a process crash.
        """

    @abstractmethod
    def dequeue(self, lease_seconds: float) -> Task | None:
        """Lease the next available task, or return None when the queue is idle."""

    @abstractmethod
    def ack(self, task_id: int) -> None:
        """Mark a leased task as done; it will never be delivered again."""

    @abstractmethod
    def nack(self, task_id: int, error: str, delay: float = 0) -> None:
        """Release a leased task for redelivery after ``delay`` seconds."""

    @abstractmethod
    def counts(self) -> dict[str, int]:
        """Number of tasks per state, for health checks and the CLI."""

    def outbox_for(self, store) -> Callable | None:
        """Return a callable that enqueues inside ``store``'s create transaction.

        The callable receives the store's open connection and the review id.
        None means the dispatcher cannot share a transaction with that store
        and the caller must ``enqueue`` after the review is committed.
        """
        return None

    def close(self) -> None:
        """Release any resources held by the dispatcher."""


class SQLiteDispatcher(BaseDispatcher):
    """Task queue stored in the ``tasks`` table of the prgate database.

    Several processes may share the file: ``dequeue`` takes SQLite's write
    lock (BEGIN IMMEDIATE) before choosing a task, so two workers can never
    lease the same task at the same time.
    """

    def __init__(self, db_path: str = ".prgate.db", max_attempts: int = 5):
        self.db_path = db_path
        self._lock = threading.Lock()
        self._conn = connect(db_path)
        self._conn.isolation_level = None  # explicit BEGIN/COMMIT below
        self._conn.executescript(_SCHEMA)
        self.max_attempts = max_attempts

    def enqueue(self, review_id: str) -> int:
        with self._lock:
            return insert_task(self._conn, review_id)

    def outbox_for(self, store) -> Callable[[sqlite3.Connection, str], int] | None:
        # Same database file: the task row can be written in the review's transaction.
        store_path = getattr(store, "db_path", None)
        if store_path and store_path != ":memory:" and os.path.realpath(store_path) == os.path.realpath(self.db_path):
            return insert_task
        return None

    def dequeue(self, lease_seconds: float) -> Task | None:
        now = time.time()
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                row = self._next_candidate(now)
                # Exhausted tasks are dead-lettered and skipped in the same transaction.
                while row is not None and row["attempts"] >= self.max_attempts:
                    self._dead_letter(row)
                    row = self._next_candidate(now)
                if row is None:
                    self._conn.execute("COMMIT")
                    return None

                attempts = row["attempts"] + 1
                self._conn.execute(
                    "UPDATE tasks SET status=?, attempts=?, leased_until=? WHERE id=?",
                    (LEASED, attempts, now + lease_seconds, row["id"]),
                )
                self._conn.execute("COMMIT")
            except sqlite3.Error:
                self._conn.execute("ROLLBACK")
                raise
        return Task(id=row["id"], review_id=row["review_id"], attempts=attempts)

    def _next_candidate(self, now: float) -> sqlite3.Row | None:
        return self._conn.execute(
            """
            SELECT id, review_id, attempts FROM tasks
            WHERE (status=? AND available_at <= ?) OR (status=? AND leased_until < ?)
            ORDER BY available_at, id
            LIMIT 1
            """,
            (QUEUED, now, LEASED, now),
        ).fetchone()

    def _dead_letter(self, row: sqlite3.Row) -> None:
        self._conn.execute(
            "UPDATE tasks SET status=?, leased_until=NULL, last_error=COALESCE(last_error, ?) WHERE id=?",
            (DEAD, "lease expired too many times", row["id"]),
        )
        logger.error(
            "Task %d for review %s dead-lettered after %d attempts",
            row["id"],
            row["review_id"],
            row["attempts"],
        )

    def ack(self, task_id: int) -> None:
        with self._lock:
            self._conn.execute(
                "UPDATE tasks SET status=?, leased_until=NULL WHERE id=?",
                (DONE, task_id),
            )

    def nack(self, task_id: int, error: str, delay: float = 0) -> None:
        with self._lock:
            row = self._conn.execute("SELECT attempts FROM tasks WHERE id=?", (task_id,)).fetchone()
            if row is None:
                return
            if row["attempts"] >= self.max_attempts:
                status = DEAD
                logger.error("Task %d dead-lettered after %d attempts: %s", task_id, row["attempts"], error)
            else:
                status = QUEUED
            self._conn.execute(
                "UPDATE tasks SET status=?, leased_until=NULL, available_at=?, last_error=? WHERE id=?",
                (status, time.time() + delay, error, task_id),
            )

    def counts(self) -> dict[str, int]:
        with self._lock:
            rows = self._conn.execute("SELECT status, COUNT(*) AS n FROM tasks GROUP BY status").fetchall()
        result = {QUEUED: 0, LEASED: 0, DONE: 0, DEAD: 0}
        result.update({r["status"]: r["n"] for r in rows})
        return result

    def close(self) -> None:
        with self._lock:
            self._conn.close()
