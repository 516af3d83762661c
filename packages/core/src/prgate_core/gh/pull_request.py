"""GitHub access for the review pipeline: changed files, PR metadata and the
repositories a user can connect.

Every call goes through _call_with_retry, which separates failures that a
retry can fix (5xx, rate limiting, timeouts, dropped connections) from
those it cannot (bad credentials, missing PR). Only the first kind is
retried; the second is raised immediately so the review can fail with an
actionable message.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

import requests
from github import (
    Auth,
    BadCredentialsException,
    Github,
    GithubException,
    RateLimitExceededException,
    UnknownObjectException,
)

from prgate_core.errors import (
    CredentialInvalid,
    DiffFetchError,
    PullRequestNotFound,
    UpstreamTimeout,
    UpstreamUnavailable,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MAX_RETRIES = 3
_PER_PAGE = 100

REAUTHORIZE_MESSAGE = "GitHub rejected the stored credential. Re-authorize GitHub access and retry the review."


@dataclass(frozen=True)
class FileChange:
    """One changed file of a pull request.

    ``patch`` is None for binary files and for diffs GitHub declines to
    render (very large files). That is a normal state, not an error.
    """

    filename: str
    status: str  # "added" | "modified" | "removed" | "renamed" | "copied" | "changed" | "unchanged"
    additions: int = 0
    deletions: int = 0
    patch: str | None = None
    previous_filename: str | None = None


@dataclass(frozen=True)
class PullRequestInfo:
    number: int
    title: str
    html_url: str
    draft: bool
    state: str


@dataclass(frozen=True)
class AccessibleRepository:
    """A repository the token's user can connect, as listed by /user/repos."""

    id: int
    name: str
    full_name: str
    private: bool
    html_url: str
    language: str | None = None
    stars: int = 0
    updated_at: str | None = None


def get_client(token: str, timeout: float | None = None) -> Github:
    """Return a Github client without PyGithub's built-in retry policy.

    Retries are owned by _call_with_retry so the attempt bound is explicit.
    """
    kwargs = {"auth": Auth.Token(token), "retry": None, "per_page": _PER_PAGE}
    if timeout is not None:
        kwargs["timeout"] = timeout
    return Github(**kwargs)


def get_repo(gh: Github, repository_external_id: str):
    """Look a repository up by its numeric GitHub id (or by owner/name)."""
    key = str(repository_external_id)
    return gh.get_repo(int(key) if key.isdigit() else key)


def get_repo_by_name(full_name: str, token: str, timeout: float | None = None):
    return _call_with_retry(lambda: get_client(token, timeout).get_repo(full_name), f"repository {full_name}")


def list_accessible_repositories(
    token: str,
    *,
    timeout: float | None = None,
    limit: int | None = None,
    max_retries: int = _MAX_RETRIES,
) -> list[AccessibleRepository]:
    """Repositories of the authenticated user, most recently updated first.

    Covers owned, collaborator and organization repositories; pages are
    fetched lazily until ``limit`` entries (or all of them) are read.
    """

    def _fetch() -> list[AccessibleRepository]:
        repos = get_client(token, timeout).get_user().get_repos(sort="updated")
        if limit is not None:
            repos = repos[:limit]
        return [
            AccessibleRepository(
                id=r.id,
                name=r.name,
                full_name=r.full_name,
                private=bool(r.private),
                html_url=r.html_url or "",
                language=r.language,
                stars=r.stargazers_count or 0,
                updated_at=r.updated_at.isoformat() if r.updated_at else None,
            )
            for r in repos
        ]

    repositories = _call_with_retry(_fetch, "repositories of the authenticated user", max_retries)
    logger.info("Listed %d accessible repositories", len(repositories))
    return repositories


def fetch_changed_files(
    repository_external_id: str,
    pr_number: int,
    credential: str,
    *,
    timeout: float | None = None,
    max_retries: int = _MAX_RETRIES,
) -> list[FileChange]:
    """Return every changed file of a PR, in GitHub's order.

    PyGithub's PaginatedList requests further pages lazily while iterating,
    so materialising the list inside the retry wrapper fetches all pages and
    a failure on any page retries the whole listing.
    """

    def _fetch() -> list[FileChange]:
        gh = get_client(credential, timeout)
        pr = get_repo(gh, repository_external_id).get_pull(pr_number)
        return [_to_file_change(f) for f in pr.get_files()]

    files = _call_with_retry(_fetch, f"files of PR #{pr_number}", max_retries)
    logger.info("Fetched %d changed file(s) for PR #%d", len(files), pr_number)
    return files


def get_pull_request(
    repository_external_id: str,
    pr_number: int,
    credential: str,
    *,
    timeout: float | None = None,
    max_retries: int = _MAX_RETRIES,
) -> PullRequestInfo:
    def _fetch() -> PullRequestInfo:
        gh = get_client(credential, timeout)
        pr = get_repo(gh, repository_external_id).get_pull(pr_number)
        return PullRequestInfo(
            number=pr.number,
            title=pr.title or "",
            html_url=pr.html_url or "",
            draft=bool(pr.draft),
            state=pr.state or "",
        )

    return _call_with_retry(_fetch, f"PR #{pr_number}", max_retries)


def _to_file_change(file) -> FileChange:
    return FileChange(
        filename=file.filename,
        status=file.status,
        additions=file.additions or 0,
        deletions=file.deletions or 0,
        patch=file.patch or None,
        previous_filename=getattr(file, "previous_filename", None),
    )


def _call_with_retry(fn: Callable[[], T], what: str, max_retries: int = _MAX_RETRIES) -> T:
    """Call ``fn`` up to ``max_retries`` times with exponential backoff.

    Non-retryable errors (credentials, not found) propagate on the first
    attempt. Retryable ones are retried and, once attempts are exhausted,
    raised as UpstreamUnavailable / UpstreamTimeout.
    """
    attempts = max(1, max_retries)
    for attempt in range(attempts):
        try:
            return fn()
        except Exception as e:
            error = _classify(e, what)
            if not isinstance(error, UpstreamUnavailable):
                logger.warning("GitHub error for %s is not retryable: %s", what, error)
                raise error from e
            if attempt == attempts - 1:
                logger.error("GitHub request for %s failed after %d attempts: %s", what, attempts, e)
                raise error from e
            delay = 2**attempt
            logger.warning(
                "GitHub error for %s (attempt %d/%d): %s. Retrying in %ds...",
                what,
                attempt + 1,
                attempts,
                e,
                delay,
            )
            time.sleep(delay)
    raise AssertionError("unreachable")


def _classify(exc: Exception, what: str) -> DiffFetchError:
    if isinstance(exc, DiffFetchError):
        return exc
    if isinstance(exc, requests.exceptions.Timeout):
        return UpstreamTimeout(f"GitHub timeout while fetching {what}")
    if isinstance(exc, requests.exceptions.ConnectionError):
        return UpstreamUnavailable(f"Could not reach GitHub while fetching {what}")
    if isinstance(exc, RateLimitExceededException):
        return UpstreamUnavailable(f"GitHub rate limit exceeded while fetching {what}")
    if isinstance(exc, BadCredentialsException):
        return CredentialInvalid(REAUTHORIZE_MESSAGE)
    if isinstance(exc, UnknownObjectException):
        return PullRequestNotFound(f"GitHub could not find {what} (404)")
    if isinstance(exc, GithubException):
        if exc.status in (401, 403):
            return CredentialInvalid(REAUTHORIZE_MESSAGE)
        if exc.status == 404:
            return PullRequestNotFound(f"GitHub could not find {what} (404)")
        if exc.status == 429 or (exc.status or 0) >= 500:
            return UpstreamUnavailable(f"GitHub returned HTTP {exc.status} while fetching {what}")
        return DiffFetchError(f"GitHub returned HTTP {exc.status} while fetching {what}")
    return UpstreamUnavailable(f"Unexpected error while fetching {what}: {type(exc).__name__}")
