"""SQLiteStore — file-based store for repositories, reviews and credentials.

Why SQLite:
- Batteries included: ships with Python, no extra dependencies.
- Partial unique indexes: the "one active review per PR" rule is a schema
  constraint (``ux_reviews_active``), so it holds across threads and across
  processes sharing the same database file.
- WAL mode lets the API process and worker processes read while one writes.

Schema:
  repositories — one row per connected repository, unique on external_id.
  reviews      — one row per review attempt; findings stored as JSON
                 (they are immutable once written and always read together).
  credentials  — provider access tokens keyed by (user_id, provider).
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from collections.abc import Callable, Iterable

from prgate_store.base import ActiveReviewConflict, BaseStore
from prgate_store.models import (
    ACTIVE_STATUSES,
    Finding,
    Repository,
    Review,
    ReviewStatus,
    utcnow,
)

logger = logging.getLogger(__name__)

DISCONNECTED_ERROR = "Repository was disconnected"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS repositories (
    id            TEXT PRIMARY KEY,
    external_id   TEXT NOT NULL UNIQUE,
    name          TEXT NOT NULL,
    full_name     TEXT NOT NULL,
    private       INTEGER NOT NULL DEFAULT 0,
    html_url      TEXT,
    user_id       TEXT NOT NULL,
    connected_at  TEXT NOT NULL,
    updated_at    TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_repositories_user ON repositories (user_id);

CREATE TABLE IF NOT EXISTS reviews (
    id             TEXT PRIMARY KEY,
    repository_id  TEXT NOT NULL,
    user_id        TEXT NOT NULL,
    pr_number      INTEGER NOT NULL,
    pr_title       TEXT,
    pr_url         TEXT,
    status         TEXT NOT NULL,
    summary        TEXT,
    risk_score     INTEGER,
    findings_json  TEXT NOT NULL DEFAULT '[]',
    error          TEXT,
    created_at     TEXT NOT NULL,
    updated_at     TEXT NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS ux_reviews_active
    ON reviews (repository_id, pr_number) WHERE status IN ('PENDING', 'PROCESSING');
CREATE INDEX IF NOT EXISTS idx_reviews_pr     ON reviews (repository_id, pr_number, created_at);
CREATE INDEX IF NOT EXISTS idx_reviews_user   ON reviews (user_id, created_at);
CREATE INDEX IF NOT EXISTS idx_reviews_status ON reviews (status, updated_at);

CREATE TABLE IF NOT EXISTS credentials (
    user_id       TEXT NOT NULL,
    provider      TEXT NOT NULL,
    access_token  TEXT NOT NULL,
    updated_at    TEXT NOT NULL,
    PRIMARY KEY (user_id, provider)
);
"""

_ACTIVE_VALUES = tuple(s.value for s in ACTIVE_STATUSES)


def connect(db_path: str) -> sqlite3.Connection:
    """Open a connection shared by the threads of one process."""
    conn = sqlite3.connect(db_path, timeout=30, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=30000")
    return conn


class SQLiteStore(BaseStore):
    """Stores repositories, reviews and credentials in a local SQLite file.

    The database path defaults to `.prgate.db` in the current working
    directory. Configure via .prgate.yml: `store_path: /path/to/prgate.db`.
    One connection is shared between threads and serialised by a lock.
    """

    def __init__(self, db_path: str = ".prgate.db"):
        self.db_path = db_path
        self._lock = threading.RLock()
        self._conn = connect(db_path)
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    # ------------------------------------------------------------------ #
    # Repositories                                                         #
    # ------------------------------------------------------------------ #

    def connect_repository(self, repository: Repository) -> Repository:
        now = utcnow()
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO repositories
                  (id, external_id, name, full_name, private, html_url, user_id, connected_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (external_id) DO UPDATE SET
                  name = excluded.name,
                  full_name = excluded.full_name,
                  private = excluded.private,
                  html_url = excluded.html_url,
                  updated_at = excluded.updated_at
                """,
                (
                    repository.id,
                    str(repository.external_id),
                    repository.name,
                    repository.full_name,
                    int(repository.private),
                    repository.html_url,
                    repository.user_id,
                    repository.connected_at,
                    now,
                ),
            )
        stored = self.find_repository_by_external_id(str(repository.external_id))
        logger.info("Connected repository %s (%s)", stored.full_name, stored.id)
        return stored

    def disconnect_repository(self, repository_id: str) -> bool:
        with self._lock, self._conn:
            cur = self._conn.execute("DELETE FROM repositories WHERE id=?", (repository_id,))
            if cur.rowcount == 0:
                return False
            failed = self._conn.execute(
                f"""
                UPDATE reviews SET status=?, error=?, updated_at=?
                WHERE repository_id=? AND status IN ({_placeholders(_ACTIVE_VALUES)})
                """,
                (ReviewStatus.FAILED.value, DISCONNECTED_ERROR, utcnow(), repository_id, *_ACTIVE_VALUES),
            ).rowcount
        logger.info("Disconnected repository %s (%d active review(s) failed)", repository_id, failed)
        return True

    def get_repository(self, repository_id: str) -> Repository | None:
        row = self._fetchone("SELECT * FROM repositories WHERE id=?", (repository_id,))
        return self._row_to_repository(row) if row else None

    def find_repository_by_external_id(self, external_id: str) -> Repository | None:
        row = self._fetchone("SELECT * FROM repositories WHERE external_id=?", (str(external_id),))
        return self._row_to_repository(row) if row else None

    def list_repositories(self, user_id: str | None = None) -> list[Repository]:
        if user_id is not None:
            rows = self._fetchall(
                "SELECT * FROM repositories WHERE user_id=? ORDER BY connected_at DESC",
                (user_id,),
            )
        else:
            rows = self._fetchall("SELECT * FROM repositories ORDER BY connected_at DESC", ())
        return [self._row_to_repository(r) for r in rows]

    # ------------------------------------------------------------------ #
    # Reviews                                                              #
    # ------------------------------------------------------------------ #

    def create_review(
        self, review: Review, outbox: Callable[[sqlite3.Connection, str], object] | None = None
    ) -> Review:
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    """
                    INSERT INTO reviews
                      (id, repository_id, user_id, pr_number, pr_title, pr_url, status,
                       summary, risk_score, findings_json, error, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, NULL, NULL, '[]', NULL, ?, ?)
                    """,
                    (
                        review.id,
                        review.repository_id,
                        review.user_id,
                        review.pr_number,
                        review.pr_title,
                        review.pr_url,
                        ReviewStatus.PENDING.value,
                        review.created_at,
                        review.updated_at,
                    ),
                )
                if outbox is not None:
                    outbox(self._conn, review.id)
        except sqlite3.IntegrityError as e:
            active = self.find_active_review(review.repository_id, review.pr_number)
            raise ActiveReviewConflict(
                review.repository_id, review.pr_number, review_id=active.id if active else None
            ) from e
        return self.get_review(review.id)

    def get_review(self, review_id: str) -> Review | None:
        row = self._fetchone("SELECT * FROM reviews WHERE id=?", (review_id,))
        return self._row_to_review(row) if row else None

    def find_active_review(self, repository_id: str, pr_number: int) -> Review | None:
        row = self._fetchone(
            f"SELECT * FROM reviews WHERE repository_id=? AND pr_number=? AND status IN ({_placeholders(_ACTIVE_VALUES)})",
            (repository_id, pr_number, *_ACTIVE_VALUES),
        )
        return self._row_to_review(row) if row else None

    def find_latest_review(self, repository_id: str, pr_number: int) -> Review | None:
        row = self._fetchone(
            "SELECT * FROM reviews WHERE repository_id=? AND pr_number=? ORDER BY created_at DESC, rowid DESC LIMIT 1",
            (repository_id, pr_number),
        )
        return self._row_to_review(row) if row else None

    def update_review_status(
        self,
        review_id: str,
        expected: ReviewStatus | Iterable[ReviewStatus],
        new_status: ReviewStatus,
        error: str | None = None,
    ) -> bool:
        if new_status == ReviewStatus.COMPLETED:
            raise ValueError("Use complete_review() to mark a review COMPLETED.")
        if new_status == ReviewStatus.FAILED and not error:
            raise ValueError("A FAILED review requires an error message.")

        expected_values = _status_values(expected)
        with self._lock, self._conn:
            cur = self._conn.execute(
                f"UPDATE reviews SET status=?, error=?, updated_at=? WHERE id=? AND status IN ({_placeholders(expected_values)})",
                (
                    new_status.value,
                    error if new_status == ReviewStatus.FAILED else None,
                    utcnow(),
                    review_id,
                    *expected_values,
                ),
            )
        return cur.rowcount == 1

    def complete_review(self, review_id: str, summary: str, risk_score: int, findings: list[Finding]) -> bool:
        findings_json = json.dumps([f.to_dict() for f in findings])
        with self._lock, self._conn:
            cur = self._conn.execute(
                """
                UPDATE reviews
                SET status=?, summary=?, risk_score=?, findings_json=?, error=NULL, updated_at=?
                WHERE id=? AND status=?
                """,
                (
                    ReviewStatus.COMPLETED.value,
                    summary,
                    risk_score,
                    findings_json,
                    utcnow(),
                    review_id,
                    ReviewStatus.PROCESSING.value,
                ),
            )
        return cur.rowcount == 1

    def list_reviews(
        self,
        user_id: str | None = None,
        repository_id: str | None = None,
        status: ReviewStatus | None = None,
        pr_number: int | None = None,
        limit: int = 50,
    ) -> list[Review]:
        clauses: list[str] = []
        params: list = []
        if user_id is not None:
            clauses.append("user_id=?")
            params.append(user_id)
        if repository_id is not None:
            clauses.append("repository_id=?")
            params.append(repository_id)
        if status is not None:
            clauses.append("status=?")
            params.append(ReviewStatus(status).value)
        if pr_number is not None:
            clauses.append("pr_number=?")
            params.append(pr_number)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self._fetchall(
            f"SELECT * FROM reviews {where} ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (*params, limit),
        )
        return [self._row_to_review(r) for r in rows]

    def find_stale_reviews(self, older_than: str) -> list[Review]:
        rows = self._fetchall(
            f"SELECT * FROM reviews WHERE status IN ({_placeholders(_ACTIVE_VALUES)}) AND updated_at < ? ORDER BY updated_at",
            (*_ACTIVE_VALUES, older_than),
        )
        return [self._row_to_review(r) for r in rows]

    # ------------------------------------------------------------------ #
    # Credentials                                                          #
    # ------------------------------------------------------------------ #

    def save_credential(self, user_id: str, provider: str, access_token: str) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO credentials (user_id, provider, access_token, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (user_id, provider) DO UPDATE SET
                  access_token = excluded.access_token,
                  updated_at = excluded.updated_at
                """,
                (user_id, provider, access_token, utcnow()),
            )

    def get_access_credential(self, user_id: str, provider: str) -> str | None:
        row = self._fetchone(
            "SELECT access_token FROM credentials WHERE user_id=? AND provider=?",
            (user_id, provider),
        )
        return row["access_token"] if row else None

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------ #
    # Helpers                                                              #
    # ------------------------------------------------------------------ #

    def _fetchone(self, sql: str, params: tuple) -> sqlite3.Row | None:
        with self._lock:
            return self._conn.execute(sql, params).fetchone()

    def _fetchall(self, sql: str, params: tuple) -> list[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    @staticmethod
    def _row_to_repository(row: sqlite3.Row) -> Repository:
        return Repository(
            id=row["id"],
            external_id=row["external_id"],
            name=row["name"],
            full_name=row["full_name"],
            private=bool(row["private"]),
            html_url=row["html_url"] or "",
            user_id=row["user_id"],
            connected_at=row["connected_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_review(row: sqlite3.Row) -> Review:
        findings_data = json.loads(row["findings_json"] or "[]")
        return Review(
            id=row["id"],
            repository_id=row["repository_id"],
            user_id=row["user_id"],
            pr_number=row["pr_number"],
            pr_title=row["pr_title"] or "",
            pr_url=row["pr_url"] or "",
            status=ReviewStatus(row["status"]),
            summary=row["summary"],
            risk_score=row["risk_score"],
            findings=[Finding.from_dict(f) for f in findings_data],
            error=row["error"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


def _placeholders(values: tuple | list) -> str:
    return ", ".join("?" for _ in values)


def _status_values(statuses: ReviewStatus | Iterable[ReviewStatus]) -> tuple[str, ...]:
    if isinstance(statuses, ReviewStatus):
        return (statuses.value,)
    return tuple(ReviewStatus(s).value for s in statuses)
