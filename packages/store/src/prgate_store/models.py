"""Persisted records: connected repositories, reviews and their findings.

Kept in the store package so the persistence layer can be used on its own;
prgate_core builds on these types rather than defining parallel ones.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


def timestamp(dt: datetime) -> str:
    """ISO-8601 text with a fixed-width fraction, so stored times compare as strings."""
    return dt.isoformat(timespec="microseconds")


def utcnow() -> str:
    """UTC timestamp used for every persisted time column."""
    return timestamp(datetime.now(timezone.utc))


def new_id() -> str:
    return uuid.uuid4().hex


class ReviewStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


ACTIVE_STATUSES = frozenset({ReviewStatus.PENDING, ReviewStatus.PROCESSING})


class Severity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Category(str, Enum):
    BUG = "bug"
    SECURITY = "security"
    PERFORMANCE = "performance"
    STYLE = "style"
    SUGGESTION = "suggestion"


@dataclass(frozen=True)
class Finding:
    """A single reviewer comment attached to a completed review."""

    file: str
    line: int
    severity: Severity
    category: Category
    message: str
    suggestion: str | None = None

    def to_dict(self) -> dict:
        data = {
            "file": self.file,
            "line": self.line,
            "severity": self.severity.value,
            "category": self.category.value,
            "message": self.message,
        }
        if self.suggestion is not None:
            data["suggestion"] = self.suggestion
        return data

    @classmethod
    def from_dict(cls, d: dict) -> Finding:
        return cls(
            file=d.get("file", ""),
            line=d.get("line", 0),
            severity=Severity(d.get("severity", "low")),
            category=Category(d.get("category", "suggestion")),
            message=d.get("message", ""),
            suggestion=d.get("suggestion"),
        )


@dataclass
class Repository:
    """A source-control project connected by one user.

    ``external_id`` is the provider's repository id and is unique across the
    system. The webhook only carries that id, so it is the lookup key.
    """

    external_id: str
    name: str
    full_name: str
    user_id: str
    private: bool = False
    html_url: str = ""
    id: str = field(default_factory=new_id)
    connected_at: str = field(default_factory=utcnow)
    updated_at: str = field(default_factory=utcnow)


@dataclass
class Review:
    """One attempt to analyze a pull request.

    summary, risk_score and findings stay empty until the review is
    COMPLETED; error is set only when it is FAILED.
    """

    repository_id: str
    user_id: str
    pr_number: int
    pr_title: str
    pr_url: str
    status: ReviewStatus = ReviewStatus.PENDING
    summary: str | None = None
    risk_score: int | None = None
    findings: list[Finding] = field(default_factory=list)
    error: str | None = None
    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=utcnow)
    updated_at: str = field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES
