"""repos commands — manage which GitHub repositories are reviewed."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from prgate_cli.state import get_config, get_store, resolve_repository

console = Console()

_user_option = click.option(
    "--user",
    "user_id",
    default="default",
    show_default=True,
    envvar="PRGATE_USER",
    help="Owner of the connection; reviews run with this user's GitHub credential.",
)


@click.group("repos")
def repos_cmd():
    """Connect, disconnect and list repositories, or browse the ones available on GitHub."""


@repos_cmd.command("connect")
@click.argument("full_names", metavar="FULL_NAME...", nargs=-1, required=True)
@_user_option
@click.option("--token", default=None, help="GitHub token used for the lookup (default: GITHUB_TOKEN or gh CLI).")
@click.pass_context
def connect_cmd(ctx, full_names: tuple[str, ...], user_id: str, token: str | None):
    """Connect one or more owner/name repositories so their pull_request webhooks trigger reviews."""
    from prgate_cli.auth import require_github_token
    from prgate_core.errors import DiffFetchError
    from prgate_core.gh.pull_request import get_repo_by_name
    from prgate_store.models import Repository

    token = require_github_token(token)
    config = get_config(ctx)
    store = get_store(ctx)

    failed = []
    for full_name in full_names:
        try:
            gh_repo = get_repo_by_name(full_name, token, timeout=config["fetch_timeout"])
        except DiffFetchError as e:
            console.print(f"[red]Could not connect {full_name}:[/red] {e}")
            failed.append(full_name)
            continue
        repository = store.connect_repository(
            Repository(
                external_id=str(gh_repo.id),
                name=gh_repo.name,
                full_name=gh_repo.full_name,
                user_id=user_id,
                private=bool(gh_repo.private),
                html_url=gh_repo.html_url,
            )
        )
        console.print(
            f"[green]Connected {repository.full_name}[/green] (id {repository.id}, GitHub id {repository.external_id})"
        )

    if store.get_access_credential(user_id, "github") is None:
        console.print(
            f"[yellow]No credential stored for user '{user_id}'. "
            "Run `prgate credentials set` or reviews will use GITHUB_TOKEN.[/yellow]"
        )
    if failed:
        raise click.ClickException(f"{len(failed)} of {len(full_names)} repositories could not be connected.")


@repos_cmd.command("available")
@click.option("--token", default=None, help="Token whose repositories are listed (default: GITHUB_TOKEN or gh CLI).")
@click.option("--limit", default=100, show_default=True, type=click.IntRange(min=1), help="Maximum rows to list.")
@click.pass_context
def available_cmd(ctx, token: str | None, limit: int):
    """List repositories the token can access, most recently updated first."""
    from prgate_cli.auth import require_github_token
    from prgate_core.errors import DiffFetchError
    from prgate_core.gh.pull_request import list_accessible_repositories

    token = require_github_token(token)
    config = get_config(ctx)
    try:
        repositories = list_accessible_repositories(token, timeout=config["fetch_timeout"], limit=limit)
    except DiffFetchError as e:
        raise click.ClickException(str(e))
    if not repositories:
        console.print("[yellow]No repositories visible to this token.[/yellow]")
        return

    store = get_store(ctx)
    table = Table(title="Available Repositories", show_header=True, header_style="bold cyan")
    table.add_column("Repository", style="bold")
    table.add_column("Language")
    table.add_column("Stars", justify="right")
    table.add_column("Updated", width=10)
    table.add_column("Connected")
    for r in repositories:
        name = f"{r.full_name} [dim](private)[/dim]" if r.private else r.full_name
        connected = store.find_repository_by_external_id(str(r.id)) is not None
        table.add_row(
            name,
            r.language or "",
            str(r.stars),
            (r.updated_at or "")[:10],
            "[green]yes[/green]" if connected else "",
        )
    console.print(table)


@repos_cmd.command("disconnect")
@click.argument("repo")
@click.pass_context
def disconnect_cmd(ctx, repo: str):
    """Disconnect a repository. Its review history is kept; active reviews are failed."""
    store = get_store(ctx)
    repository = resolve_repository(store, repo)
    store.disconnect_repository(repository.id)
    console.print(f"[green]Disconnected {repository.full_name}[/green]")


@repos_cmd.command("list")
@click.option("--user", "user_id", default=None, help="Only repositories connected by this user.")
@click.pass_context
def list_cmd(ctx, user_id: str | None):
    """List connected repositories."""
    repositories = get_store(ctx).list_repositories(user_id=user_id)
    if not repositories:
        console.print("[yellow]No repositories connected.[/yellow]")
        return

    table = Table(title="Connected Repositories", show_header=True, header_style="bold cyan")
    table.add_column("Repository", style="bold")
    table.add_column("ID")
    table.add_column("GitHub ID", justify="right")
    table.add_column("User")
    for r in repositories:
        name = f"{r.full_name} [dim](private)[/dim]" if r.private else r.full_name
        table.add_row(name, r.id, r.external_id, r.user_id)
    console.print(table)
