"""credentials command — store the GitHub token reviews run with."""

from __future__ import annotations

import click
from rich.console import Console

from prgate_cli.state import get_store

console = Console()


@click.group("credentials")
def credentials_cmd():
    """Manage stored GitHub credentials."""


@credentials_cmd.command("set")
@click.option("--user", "user_id", default="default", show_default=True, envvar="PRGATE_USER", help="User id.")
@click.option("--token", default=None, help="GitHub token (default: GITHUB_TOKEN or gh CLI session).")
@click.pass_context
def set_cmd(ctx, user_id: str, token: str | None):
    """Save a GitHub access token for USER.

    Reviews of repositories connected by USER fetch diffs with this token.
    """
    from prgate_cli.auth import require_github_token

    token = require_github_token(token)
    get_store(ctx).save_credential(user_id, "github", token)
    console.print(f"[green]Saved GitHub credential for user '{user_id}'.[/green]")
