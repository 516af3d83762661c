"""Tests for the GitHub diff fetcher."""

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
import requests
from github import BadCredentialsException, GithubException, RateLimitExceededException, UnknownObjectException

from prgate_core.errors import (
    CredentialInvalid,
    DiffFetchError,
    PullRequestNotFound,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from prgate_core.gh.pull_request import fetch_changed_files, get_pull_request, get_repo, list_accessible_repositories


def _gh_file(filename, status="modified", patch="@@ -1 +1 @@\n+x", additions=1, deletions=0, previous_filename=None):
    return SimpleNamespace(
        filename=filename,
        status=status,
        patch=patch,
        additions=additions,
        deletions=deletions,
        previous_filename=previous_filename,
    )


@pytest.fixture
def github(mocker):
    """Patch the Github client class; returns the mocked client instance."""
    mocker.patch("prgate_core.gh.pull_request.time.sleep")
    gh_cls = mocker.patch("prgate_core.gh.pull_request.Github")
    return gh_cls.return_value


def _set_files(github, files):
    github.get_repo.return_value.get_pull.return_value.get_files.return_value = files


class TestGetRepo:
    def test_numeric_id_looked_up_as_int(self):
        gh = MagicMock()
        get_repo(gh, "123456")
        gh.get_repo.assert_called_once_with(123456)

    def test_full_name_passed_through(self):
        gh = MagicMock()
        get_repo(gh, "owner/repo")
        gh.get_repo.assert_called_once_with("owner/repo")


class TestFetchChangedFiles:
    def test_maps_every_file_in_order(self, github):
        _set_files(
            github,
            [
                _gh_file("src/a.py"),
                _gh_file("logo.png", status="added", patch=None),
                _gh_file("src/new.py", status="renamed", previous_filename="src/old.py"),
            ],
        )

        files = fetch_changed_files("42", 7, "tok", timeout=5)

        assert [f.filename for f in files] == ["src/a.py", "logo.png", "src/new.py"]
        assert files[0].patch.startswith("@@")
        assert files[1].patch is None
        assert files[2].previous_filename == "src/old.py"
        github.get_repo.assert_called_once_with(42)
        github.get_repo.return_value.get_pull.assert_called_once_with(7)

    def test_client_built_without_builtin_retry(self, mocker):
        gh_cls = mocker.patch("prgate_core.gh.pull_request.Github")
        gh_cls.return_value.get_repo.return_value.get_pull.return_value.get_files.return_value = []

        fetch_changed_files("42", 1, "tok", timeout=12)

        kwargs = gh_cls.call_args.kwargs
        assert kwargs["retry"] is None
        assert kwargs["timeout"] == 12

    def test_empty_pr_returns_empty_list(self, github):
        _set_files(github, [])
        assert fetch_changed_files("42", 1, "tok") == []

    def test_bad_credentials_not_retried(self, github):
        github.get_repo.side_effect = BadCredentialsException(401, {"message": "Bad credentials"}, None)

        with pytest.raises(CredentialInvalid):
            fetch_changed_files("42", 1, "tok", max_retries=3)
        assert github.get_repo.call_count == 1

    def test_forbidden_is_credential_error(self, github):
        github.get_repo.side_effect = GithubException(403, {"message": "Forbidden"}, None)

        with pytest.raises(CredentialInvalid):
            fetch_changed_files("42", 1, "tok")

    def test_missing_pr_not_retried(self, github):
        github.get_repo.return_value.get_pull.side_effect = UnknownObjectException(404, {"message": "Not Found"}, None)

        with pytest.raises(PullRequestNotFound):
            fetch_changed_files("42", 99, "tok", max_retries=3)
        assert github.get_repo.return_value.get_pull.call_count == 1

    def test_server_error_retried_then_succeeds(self, github):
        repo = MagicMock()
        repo.get_pull.return_value.get_files.return_value = [_gh_file("a.py")]
        github.get_repo.side_effect = [GithubException(502, {"message": "Bad Gateway"}, None), repo]

        files = fetch_changed_files("42", 1, "tok", max_retries=3)
        assert [f.filename for f in files] == ["a.py"]
        assert github.get_repo.call_count == 2

    def test_server_error_exhausts_retries(self, github):
        github.get_repo.side_effect = GithubException(503, {"message": "Unavailable"}, None)

        with pytest.raises(UpstreamUnavailable):
            fetch_changed_files("42", 1, "tok", max_retries=3)
        assert github.get_repo.call_count == 3

    def test_backoff_is_exponential(self, github, mocker):
        sleep = mocker.patch("prgate_core.gh.pull_request.time.sleep")
        github.get_repo.side_effect = GithubException(500, {"message": "boom"}, None)

        with pytest.raises(UpstreamUnavailable):
            fetch_changed_files("42", 1, "tok", max_retries=3)
        assert [c.args[0] for c in sleep.call_args_list] == [1, 2]

    def test_rate_limit_is_retryable(self, github):
        github.get_repo.side_effect = RateLimitExceededException(403, {"message": "rate limit"}, None)

        with pytest.raises(UpstreamUnavailable):
            fetch_changed_files("42", 1, "tok", max_retries=2)
        assert github.get_repo.call_count == 2

    def test_timeout_surfaces_as_upstream_timeout(self, github):
        github.get_repo.side_effect = requests.exceptions.ReadTimeout("read timed out")

        with pytest.raises(UpstreamTimeout, match="timeout"):
            fetch_changed_files("42", 1, "tok", max_retries=2)

    def test_connection_error_is_upstream_unavailable(self, github):
        github.get_repo.side_effect = requests.exceptions.ConnectionError("reset")

        with pytest.raises(UpstreamUnavailable) as exc_info:
            fetch_changed_files("42", 1, "tok", max_retries=1)
        assert not isinstance(exc_info.value, UpstreamTimeout)

    def test_other_client_error_not_retried(self, github):
        github.get_repo.side_effect = GithubException(422, {"message": "Unprocessable"}, None)

        with pytest.raises(DiffFetchError):
            fetch_changed_files("42", 1, "tok", max_retries=3)
        assert github.get_repo.call_count == 1


class TestGetPullRequest:
    def test_returns_metadata(self, github):
        pr = github.get_repo.return_value.get_pull.return_value
        pr.number = 42
        pr.title = "Add caching"
        pr.html_url = "https://github.com/o/r/pull/42"
        pr.draft = False
        pr.state = "open"

        info = get_pull_request("1", 42, "tok")

        assert info.title == "Add caching"
        assert info.html_url.endswith("/42")
        assert info.draft is False


def _gh_repo(repo_id, full_name, private=False, language="Python", stars=3, updated_at=None):
    return SimpleNamespace(
        id=repo_id,
        name=full_name.split("/")[-1],
        full_name=full_name,
        private=private,
        html_url=f"https://github.com/{full_name}",
        language=language,
        stargazers_count=stars,
        updated_at=updated_at,
    )


class TestListAccessibleRepositories:
    def test_lists_most_recently_updated(self, github):
        updated = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
        github.get_user.return_value.get_repos.return_value = [
            _gh_repo(1, "owner/api", updated_at=updated),
            _gh_repo(2, "org/web", private=True, language=None, stars=None),
        ]

        repos = list_accessible_repositories("tok")

        github.get_user.return_value.get_repos.assert_called_once_with(sort="updated")
        assert [r.full_name for r in repos] == ["owner/api", "org/web"]
        assert repos[0].updated_at == "2026-03-01T10:00:00+00:00"
        assert repos[0].language == "Python"
        assert repos[1].private is True
        assert repos[1].stars == 0
        assert repos[1].updated_at is None

    def test_limit_stops_reading_pages(self, github):
        github.get_user.return_value.get_repos.return_value = [_gh_repo(n, f"o/r{n}") for n in range(5)]

        repos = list_accessible_repositories("tok", limit=2)

        assert [r.id for r in repos] == [0, 1]

    def test_bad_token_not_retried(self, github):
        github.get_user.side_effect = BadCredentialsException(401, {"message": "Bad credentials"}, None)

        with pytest.raises(CredentialInvalid):
            list_accessible_repositories("tok")
        assert github.get_user.call_count == 1

    def test_server_errors_retried(self, github):
        github.get_user.return_value.get_repos.side_effect = [
            GithubException(502, {"message": "Bad gateway"}, None),
            [_gh_repo(1, "owner/api")],
        ]

        repos = list_accessible_repositories("tok")

        assert [r.full_name for r in repos] == ["owner/api"]
