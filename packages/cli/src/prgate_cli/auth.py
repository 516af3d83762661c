"""GitHub token lookup for the commands that talk to GitHub on a user's behalf.

`repos connect` and `repos available` use the token to look repositories up;
`credentials set` stores it as the user's review credential. Workers never
come through here: they read the stored credential, or the configured
github_token, for the repository being reviewed.

Order: an explicit --token, then GITHUB_TOKEN, then the `gh auth token`
of a GitHub CLI session.
"""

from __future__ import annotations

import logging
import os
import subprocess

import click

logger = logging.getLogger(__name__)

_GH_CLI_TIMEOUT = 5

MISSING_TOKEN_MESSAGE = "GitHub token not found. Set GITHUB_TOKEN, pass --token, or authenticate with `gh auth login`."


def _gh_cli_token() -> str | None:
    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            timeout=_GH_CLI_TIMEOUT,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        logger.debug("No gh CLI session to read a token from (%s)", type(e).__name__)
        return None

    token = (result.stdout or "").strip()
    if result.returncode != 0 or not token:
        logger.debug("`gh auth token` returned no token (exit %s)", result.returncode)
        return None
    return token


def resolve_github_token() -> str | None:
    """GITHUB_TOKEN, else the gh CLI session token, else None."""
    token = os.environ.get("GITHUB_TOKEN", "").strip()
    if token:
        return token
    token = _gh_cli_token()
    if token:
        logger.debug("Using the GitHub token of the gh CLI session")
    return token


def require_github_token(explicit: str | None) -> str:
    """Return ``explicit`` or a resolved token; a UsageError when there is none."""
    token = explicit or resolve_github_token()
    if not token:
        raise click.UsageError(MISSING_TOKEN_MESSAGE)
    return token
