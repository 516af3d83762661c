"""Exception taxonomy for the review pipeline.

Admission errors are raised synchronously to whoever asked for a review.
Fetch and analysis errors are raised inside ReviewOrchestrator.execute and
end up as the ``error`` text of a FAILED review. Their messages are what
users read, so they are written as human-readable causes.
"""

from __future__ import annotations


class ReviewError(Exception):
    """Base class for every error raised by prgate_core."""


# --------------------------------------------------------------------------- #
# Admission                                                                    #
# --------------------------------------------------------------------------- #


class AdmissionError(ReviewError):
    """A review request was refused."""


class AlreadyInProgress(AdmissionError):
    def __init__(self, repository_id: str, pr_number: int, review_id: str | None = None):
        super().__init__(f"A review is already in progress for PR #{pr_number}.")
        self.repository_id = repository_id
        self.pr_number = pr_number
        self.review_id = review_id


class RepositoryNotFound(AdmissionError):
    def __init__(self, repository_id: str):
        super().__init__(f"Repository {repository_id} is not connected.")
        self.repository_id = repository_id


class NotRetryable(AdmissionError):
    def __init__(self, repository_id: str, pr_number: int, reason: str):
        super().__init__(f"PR #{pr_number} cannot be retried: {reason}.")
        self.repository_id = repository_id
        self.pr_number = pr_number


# --------------------------------------------------------------------------- #
# Diff fetching                                                                #
# --------------------------------------------------------------------------- #


class DiffFetchError(ReviewError):
    """The changed files of a pull request could not be retrieved."""


class UpstreamUnavailable(DiffFetchError):
    """Transient GitHub failure that survived every retry."""


class UpstreamTimeout(UpstreamUnavailable):
    """The last attempt against GitHub timed out."""


class CredentialInvalid(DiffFetchError):
    """GitHub rejected the credential; the user has to re-authorize."""


class PullRequestNotFound(DiffFetchError):
    """The repository or pull request does not exist or is not visible."""


# --------------------------------------------------------------------------- #
# Analysis                                                                     #
# --------------------------------------------------------------------------- #


class AnalysisError(ReviewError):
    """The analyzer could not produce a review."""


class MalformedOutput(AnalysisError):
    """The model answered, but not with a valid review document."""


class ProviderError(AnalysisError):
    """The model provider returned an error."""


class AnalysisTimeout(AnalysisError):
    """The model call exceeded its timeout."""
