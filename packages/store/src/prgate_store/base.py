"""Abstract store interface.

The orchestrator and the HTTP layer depend on BaseStore, not on a concrete
backend, so the storage engine is swappable without touching either. The
one hard requirement on a backend is that ``create_review`` enforces the
"one active review per pull request" rule atomically: a uniqueness
constraint, not a read-then-write in application code.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from prgate_store.models import Finding, Repository, Review, ReviewStatus


class ActiveReviewConflict(Exception):
    """Raised by create_review when the PR already has a PENDING/PROCESSING review."""

    def __init__(self, repository_id: str, pr_number: int, review_id: str | None = None):
        super().__init__(f"Review already in progress for repository {repository_id} PR #{pr_number}")
        self.repository_id = repository_id
        self.pr_number = pr_number
        self.review_id = review_id


class BaseStore(ABC):
    """Pluggable persistence layer for repositories, reviews and credentials."""

    # ------------------------------------------------------------------ #
    # Repositories                                                         #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def connect_repository(self, repository: Repository) -> Repository:
        """Insert a repository, or refresh its metadata if the external id is known.

        The owner of an already-connected repository is never changed.
        Returns the stored record (with the existing internal id on update).
        """

    @abstractmethod
    def disconnect_repository(self, repository_id: str) -> bool:
        """Delete a repository; its review history is retained.

        Reviews of that repository still PENDING/PROCESSING are failed in the
        same transaction. Returns False when the repository did not exist.
        """

    @abstractmethod
    def get_repository(self, repository_id: str) -> Repository | None: ...

    @abstractmethod
    def find_repository_by_external_id(self, external_id: str) -> Repository | None: ...

    @abstractmethod
    def list_repositories(self, user_id: str | None = None) -> list[Repository]: ...

    # ------------------------------------------------------------------ #
    # Reviews                                                              #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def create_review(self, review: Review, outbox: Callable | None = None) -> Review:
        """Persist a new PENDING review.

        Raises ActiveReviewConflict when another active review exists for the
        same (repository_id, pr_number). Must be race-free.

        When ``outbox`` is given it is called with the backend connection and
        the review id before the insert commits; if it raises, the review is
        not created.
        """

    @abstractmethod
    def get_review(self, review_id: str) -> Review | None: ...

    @abstractmethod
    def find_active_review(self, repository_id: str, pr_number: int) -> Review | None: ...

    @abstractmethod
    def find_latest_review(self, repository_id: str, pr_number: int) -> Review | None: ...

    @abstractmethod
    def update_review_status(
        self,
        review_id: str,
        expected: ReviewStatus | Iterable[ReviewStatus],
        new_status: ReviewStatus,
        error: str | None = None,
    ) -> bool:
        """Move a review to ``new_status`` only if it is currently in ``expected``.

        Returns True when the transition happened. Never used for COMPLETED;
        see complete_review.
        """

    @abstractmethod
    def complete_review(self, review_id: str, summary: str, risk_score: int, findings: list[Finding]) -> bool:
        """PROCESSING → COMPLETED, writing summary, risk score and findings together."""

    @abstractmethod
    def list_reviews(
        self,
        user_id: str | None = None,
        repository_id: str | None = None,
        status: ReviewStatus | None = None,
        pr_number: int | None = None,
        limit: int = 50,
    ) -> list[Review]:
        """Return reviews newest first. Returns an empty list when nothing matches."""

    @abstractmethod
    def find_stale_reviews(self, older_than: str) -> list[Review]:
        """Active reviews whose last update is before the ISO timestamp ``older_than``."""

    # ------------------------------------------------------------------ #
    # Credentials                                                          #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def save_credential(self, user_id: str, provider: str, access_token: str) -> None: ...

    @abstractmethod
    def get_access_credential(self, user_id: str, provider: str) -> str | None: ...

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Subclasses that need cleanup override this.
        """
