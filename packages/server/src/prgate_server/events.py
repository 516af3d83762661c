"""Turn GitHub pull_request payloads into review admissions.

normalize_pull_request_event flattens the provider payload into a
PullRequestEvent; handle_pull_request_event applies the trigger filters and
calls ReviewOrchestrator.request_review. Filtered events are ordinary
outcomes ("ignored"), not errors: GitHub delivers events for repositories
that were never connected here, and for actions we do not review.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from prgate_core.errors import AlreadyInProgress

if TYPE_CHECKING:
    from prgate_core.orchestrator import ReviewOrchestrator
    from prgate_store.base import BaseStore

logger = logging.getLogger(__name__)

TRIGGER_ACTIONS = frozenset({"opened", "synchronize", "reopened"})


class InvalidEvent(ValueError):
    """The payload lacks fields every pull_request event carries."""


@dataclass(frozen=True)
class PullRequestEvent:
    action: str
    is_draft: bool
    pr_number: int
    pr_title: str
    pr_url: str
    provider_repository_id: str
    actor_credential_ref: str = ""


@dataclass(frozen=True)
class IngestionOutcome:
    status: str  # "queued" | "in_progress" | "ignored"
    reason: str = ""
    review_id: str | None = None

    def to_dict(self) -> dict:
        data = {"status": self.status}
        if self.reason:
            data["reason"] = self.reason
        if self.review_id:
            data["review_id"] = self.review_id
        return data


def _section(payload: dict, key: str) -> dict:
    value = payload.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise InvalidEvent(f"'{key}' must be an object")
    return value


def _text(data: dict, key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise InvalidEvent(f"'{key}' must be a string")
    return value


def normalize_pull_request_event(payload: dict) -> PullRequestEvent:
    """Flatten a pull_request payload, raising InvalidEvent for missing or mistyped fields."""
    pr = _section(payload, "pull_request")
    repo = _section(payload, "repository")
    number = pr.get("number", payload.get("number"))
    repo_id = repo.get("id")
    if number is None or repo_id is None:
        raise InvalidEvent("pull_request event without a PR number or repository id")
    # bool is an int subclass; a PR number of True is still malformed.
    if not isinstance(number, int) or isinstance(number, bool) or number <= 0:
        raise InvalidEvent("PR number must be a positive integer")
    if isinstance(repo_id, bool) or not isinstance(repo_id, (int, str)):
        raise InvalidEvent("repository id must be an integer or string")
    draft = pr.get("draft") or False
    if not isinstance(draft, bool):
        raise InvalidEvent("'draft' must be a boolean")
    return PullRequestEvent(
        action=_text(payload, "action"),
        is_draft=draft,
        pr_number=number,
        pr_title=_text(pr, "title"),
        pr_url=_text(pr, "html_url"),
        provider_repository_id=str(repo_id),
    )


def handle_pull_request_event(
    event: PullRequestEvent,
    store: BaseStore,
    orchestrator: ReviewOrchestrator,
) -> IngestionOutcome:
    if event.action not in TRIGGER_ACTIONS:
        return IngestionOutcome("ignored", f"Action '{event.action}' ignored")
    if event.is_draft:
        return IngestionOutcome("ignored", "Draft PR ignored")

    repository = store.find_repository_by_external_id(event.provider_repository_id)
    if repository is None:
        return IngestionOutcome("ignored", "Repository not connected")

    # Reviews run with the credential of the user who connected the repository.
    event = replace(event, actor_credential_ref=repository.user_id)
    try:
        review_id = orchestrator.request_review(
            repository.id,
            event.pr_number,
            event.pr_title,
            event.pr_url,
            event.actor_credential_ref,
        )
    except AlreadyInProgress as e:
        return IngestionOutcome("in_progress", "Review already in progress", review_id=e.review_id)

    logger.info("Queued review %s for %s#%d", review_id, repository.full_name, event.pr_number)
    return IngestionOutcome("queued", "Review triggered", review_id=review_id)
