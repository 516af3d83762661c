"""retry command — re-admit the latest failed review of a pull request."""

from __future__ import annotations

import click
from rich.console import Console

from prgate_cli.state import get_services, resolve_repository

console = Console()


@click.command("retry")
@click.option("--repo", required=True, help="Repository (owner/name, GitHub id or internal id).")
@click.option("--pr", "pr_number", required=True, type=int, help="Pull request number.")
@click.pass_context
def retry_cmd(ctx, repo: str, pr_number: int):
    """Queue a new review for a PR whose latest review FAILED."""
    from prgate_core.errors import AdmissionError

    services = get_services(ctx)
    repository = resolve_repository(services.store, repo)
    try:
        review_id = services.orchestrator.retry_review(repository.id, pr_number)
    except AdmissionError as e:
        raise click.ClickException(str(e))
    console.print(f"[green]Queued review {review_id}[/green] for {repository.full_name}#{pr_number}")
