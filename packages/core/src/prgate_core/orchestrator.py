"""Review lifecycle: admission, execution, retry and stale-review cleanup.

    request_review ──► PENDING ──enqueue──► worker ──► execute
                                                         │
                        PROCESSING ◄─────────────────────┘
                            │
               ┌────────────┴────────────┐
           COMPLETED                   FAILED ──► retry_review (new record)

Admission is race-free because the store's create_review is a single
INSERT guarded by a partial unique index; there is no read-then-write
window here. Execution is idempotent because it only proceeds after winning
the PENDING → PROCESSING transition; a duplicate delivery loses that race
and returns without touching GitHub or the model.
"""

from __future__ import annotations

import fnmatch
import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable

from prgate_core.errors import (
    AlreadyInProgress,
    AnalysisError,
    CredentialInvalid,
    DiffFetchError,
    NotRetryable,
    ProviderError,
    RepositoryNotFound,
)
from prgate_core.gh import pull_request
from prgate_core.gh.pull_request import FileChange
from prgate_core.providers.base import empty_result
from prgate_store.base import ActiveReviewConflict
from prgate_store.models import ACTIVE_STATUSES, Review, ReviewStatus, timestamp

if TYPE_CHECKING:
    from prgate_core.providers.base import BaseAnalyzer, ReviewResult
    from prgate_store.base import BaseStore
    from prgate_store.queue import BaseDispatcher

logger = logging.getLogger(__name__)

PROVIDER = "github"

_MAX_ERROR_CHARS = 500

STALE_ERROR = "Review timeout: marked stale by reconciliation"
ENQUEUE_ERROR = "Review could not be queued for execution"
MISSING_CREDENTIAL_ERROR = "No GitHub credential found for the repository owner. Re-authorize GitHub access."


def _is_excluded(filename: str, patterns: list[str]) -> bool:
    """Return True if filename matches any exclude pattern.

    Supports:
    - fnmatch globs on the full path: "src/generated/*.py"
    - fnmatch globs on the basename: "*.lock", "*.min.js"
    - Directory names/prefixes: "migrations/", "tests" (matches any file within that tree)
    """
    for pattern in patterns:
        if fnmatch.fnmatch(filename, pattern):
            return True
        if fnmatch.fnmatch(filename.rsplit("/", 1)[-1], pattern):
            return True
        prefix = pattern.rstrip("/") + "/"
        if filename.startswith(prefix) or ("/" + prefix) in filename:
            return True
    return False


def select_reviewable_files(
    files: list[FileChange],
    exclude: list[str] | None = None,
    max_chars_per_file: int = 20000,
    max_files: int = 50,
) -> list[FileChange]:
    """Choose what the analyzer sees: patched, not excluded, bounded in size.

    Keeps the fetcher's order. Patches longer than ``max_chars_per_file`` are
    truncated with a marker; files beyond ``max_files`` are dropped.
    """
    selected: list[FileChange] = []
    for f in files:
        if not f.patch:
            continue
        if exclude and _is_excluded(f.filename, exclude):
            logger.debug("Excluded %s from analysis", f.filename)
            continue
        if len(f.patch) > max_chars_per_file:
            f = replace(f, patch=f.patch[:max_chars_per_file] + "\n... [diff truncated]")
        selected.append(f)

    if len(selected) > max_files:
        logger.info("Analyzing the first %d of %d patched files", max_files, len(selected))
        selected = selected[:max_files]
    return selected


def sanitize_error(exc: BaseException) -> str:
    """Turn an exception into the one-line, bounded text stored on a FAILED review."""
    message = " ".join(str(exc).split()) or type(exc).__name__
    if len(message) > _MAX_ERROR_CHARS:
        message = message[: _MAX_ERROR_CHARS - 3] + "..."
    return message


class ReviewOrchestrator:
    """Owns every state change of a Review.

    Collaborators are injected so tests can substitute doubles:
      store       — BaseStore (reviews, repositories, credentials)
      dispatcher  — BaseDispatcher that hands review ids to workers
      analyzer    — BaseAnalyzer, or None in a process that never executes reviews
      fetch_files — callable with the signature of
                    prgate_core.gh.pull_request.fetch_changed_files
    """

    def __init__(
        self,
        store: BaseStore,
        dispatcher: BaseDispatcher,
        analyzer: BaseAnalyzer | None,
        config: dict | None = None,
        fetch_files: Callable[..., list[FileChange]] | None = None,
        fallback_token: str | None = None,
    ):
        config = config or {}
        self.store = store
        self.dispatcher = dispatcher
        self.analyzer = analyzer
        self.fetch_files = fetch_files or pull_request.fetch_changed_files
        self.fallback_token = fallback_token
        self.fetch_timeout = config.get("fetch_timeout", 30)
        self.fetch_retries = config.get("fetch_retries", 3)
        self.analysis_timeout = config.get("analysis_timeout", 120)
        self.exclude = list(config.get("exclude", []))
        self.max_chars_per_file = config.get("max_chars_per_file", 20000)
        self.max_files = config.get("max_files", 50)

    # ------------------------------------------------------------------ #
    # Admission                                                            #
    # ------------------------------------------------------------------ #

    def request_review(self, repository_id: str, pr_number: int, pr_title: str, pr_url: str, user_id: str) -> str:
        """Admit a review for a PR and queue it. Returns the new review id.

        Raises RepositoryNotFound or AlreadyInProgress; never creates a second
        active review for the same PR.
        """
        if self.store.get_repository(repository_id) is None:
            raise RepositoryNotFound(repository_id)

        review = Review(
            repository_id=repository_id,
            user_id=user_id,
            pr_number=pr_number,
            pr_title=pr_title,
            pr_url=pr_url,
        )
        outbox = self.dispatcher.outbox_for(self.store)
        try:
            review = self.store.create_review(review, outbox=outbox)
        except ActiveReviewConflict as e:
            logger.info("Review already in progress for %s PR #%d (%s)", repository_id, pr_number, e.review_id)
            raise AlreadyInProgress(repository_id, pr_number, review_id=e.review_id) from e

        if outbox is None:
            try:
                self.dispatcher.enqueue(review.id)
            except Exception:
                logger.exception("Could not enqueue review %s; failing it", review.id)
                self.store.update_review_status(
                    review.id, ReviewStatus.PENDING, ReviewStatus.FAILED, error=ENQUEUE_ERROR
                )
                raise

        logger.info("Review %s admitted for %s PR #%d", review.id, repository_id, pr_number)
        return review.id

    def retry_review(self, repository_id: str, pr_number: int) -> str:
        """Re-admit the most recent review of a PR if it FAILED.

        Creates a new record; the failed one is kept as history.
        """
        latest = self.store.find_latest_review(repository_id, pr_number)
        if latest is None:
            if self.store.get_repository(repository_id) is None:
                raise RepositoryNotFound(repository_id)
            raise NotRetryable(repository_id, pr_number, "no previous review")
        if latest.is_active:
            raise AlreadyInProgress(repository_id, pr_number, review_id=latest.id)
        if latest.status != ReviewStatus.FAILED:
            raise NotRetryable(repository_id, pr_number, f"latest review is {latest.status.value}")

        logger.info("Retrying failed review %s", latest.id)
        return self.request_review(repository_id, pr_number, latest.pr_title, latest.pr_url, latest.user_id)

    def trigger_review(self, repository_id: str, pr_number: int) -> str:
        """Admit a review on demand, reading the PR title/url from GitHub."""
        repository = self.store.get_repository(repository_id)
        if repository is None:
            raise RepositoryNotFound(repository_id)
        credential = self._credential_for(repository.user_id)
        if credential is None:
            raise CredentialInvalid(MISSING_CREDENTIAL_ERROR)
        pr = pull_request.get_pull_request(
            repository.external_id,
            pr_number,
            credential,
            timeout=self.fetch_timeout,
            max_retries=self.fetch_retries,
        )
        return self.request_review(repository_id, pr_number, pr.title, pr.html_url, repository.user_id)

    # ------------------------------------------------------------------ #
    # Execution                                                            #
    # ------------------------------------------------------------------ #

    def execute(self, review_id: str) -> None:
        """Run one admitted review to a terminal state.

        Called by workers only. A missing or non-PENDING review means the
        task was delivered twice; that is logged and ignored. Per-review
        failures end as FAILED records and are never raised.
        """
        review = self.store.get_review(review_id)
        if review is None:
            logger.warning("Review %s not found; ignoring task", review_id)
            return
        if not self.store.update_review_status(review_id, ReviewStatus.PENDING, ReviewStatus.PROCESSING):
            logger.info("Review %s is %s, not PENDING; duplicate delivery ignored", review_id, review.status.value)
            return

        logger.info("Processing review %s (PR #%d)", review_id, review.pr_number)
        try:
            result = self._run(review)
        except (DiffFetchError, AnalysisError) as e:
            logger.warning("Review %s failed: %s: %s", review_id, type(e).__name__, e)
            self._fail(review_id, sanitize_error(e))
            return
        except Exception as e:
            logger.exception("Review %s failed unexpectedly", review_id)
            self._fail(review_id, f"Unexpected error during review: {type(e).__name__}")
            return

        if self.store.complete_review(review_id, result.summary, result.risk_score, result.findings):
            logger.info(
                "Review %s completed: risk %d, %d finding(s)", review_id, result.risk_score, len(result.findings)
            )
        else:
            logger.warning("Review %s left PROCESSING before it completed; result discarded", review_id)

    def _run(self, review: Review) -> ReviewResult:
        repository = self.store.get_repository(review.repository_id)
        if repository is None:
            raise DiffFetchError("Repository was disconnected")

        credential = self._credential_for(review.user_id)
        if credential is None:
            raise CredentialInvalid(MISSING_CREDENTIAL_ERROR)

        files = self.fetch_files(
            repository.external_id,
            review.pr_number,
            credential,
            timeout=self.fetch_timeout,
            max_retries=self.fetch_retries,
        )
        selected = select_reviewable_files(files, self.exclude, self.max_chars_per_file, self.max_files)
        if not selected:
            logger.info("Review %s has no patch content; completing without analysis", review.id)
            return empty_result()
        if self.analyzer is None:
            raise ProviderError("No analyzer is configured for this process")

        return self.analyzer.analyze(review.pr_title, selected, timeout=self.analysis_timeout)

    def _fail(self, review_id: str, error: str) -> None:
        if not self.store.update_review_status(review_id, ReviewStatus.PROCESSING, ReviewStatus.FAILED, error=error):
            logger.warning("Review %s left PROCESSING before it could be failed", review_id)

    def _credential_for(self, user_id: str) -> str | None:
        return self.store.get_access_credential(user_id, PROVIDER) or self.fallback_token

    # ------------------------------------------------------------------ #
    # Reconciliation                                                       #
    # ------------------------------------------------------------------ #

    def mark_stale(self, review_id: str) -> bool:
        """Fail a review stuck in PENDING/PROCESSING. False if it already finished."""
        marked = self.store.update_review_status(review_id, ACTIVE_STATUSES, ReviewStatus.FAILED, error=STALE_ERROR)
        if marked:
            logger.warning("Review %s marked stale", review_id)
        return marked

    def reconcile(self, stale_after_seconds: float) -> list[str]:
        """Mark every review not updated for ``stale_after_seconds`` as stale."""
        cutoff = timestamp(datetime.now(timezone.utc) - timedelta(seconds=stale_after_seconds))
        marked = [r.id for r in self.store.find_stale_reviews(cutoff) if self.mark_stale(r.id)]
        if marked:
            logger.info("Reconciliation failed %d stale review(s)", len(marked))
        return marked
