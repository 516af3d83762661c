"""history command — display past reviews from the store."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from prgate_cli.state import get_store, resolve_repository

console = Console()

_STATUS_STYLE = {
    "PENDING": "dim",
    "PROCESSING": "cyan",
    "COMPLETED": "green",
    "FAILED": "red",
}


def _risk_style(score: int) -> str:
    if score >= 70:
        return "red"
    if score >= 40:
        return "yellow"
    return "green"


@click.command("history")
@click.option("--repo", required=True, help="Repository (owner/name, GitHub id or internal id).")
@click.option("--pr", "pr_number", type=int, default=None, help="Filter by PR number.")
@click.option(
    "--status",
    type=click.Choice(["PENDING", "PROCESSING", "COMPLETED", "FAILED"], case_sensitive=False),
    default=None,
    help="Filter by review status.",
)
@click.option("--limit", default=20, show_default=True, help="Maximum number of records to show.")
@click.pass_context
def history_cmd(ctx, repo: str, pr_number: int | None, status: str | None, limit: int):
    """Show past reviews for a repository, newest first."""
    from prgate_store.models import ReviewStatus

    store = get_store(ctx)
    repository = resolve_repository(store, repo)
    reviews = store.list_reviews(
        repository_id=repository.id,
        pr_number=pr_number,
        status=ReviewStatus(status.upper()) if status else None,
        limit=limit,
    )
    if not reviews:
        console.print("[yellow]No reviews found.[/yellow]")
        return

    table = Table(title=f"Review History — {repository.full_name}", show_header=True, header_style="bold cyan")
    table.add_column("PR", style="bold", width=6)
    table.add_column("Title", max_width=40)
    table.add_column("Status", width=12)
    table.add_column("Risk", justify="right")
    table.add_column("Findings", justify="right")
    table.add_column("Created At", width=16)
    table.add_column("Error", max_width=40)

    for r in reviews:
        status_style = _STATUS_STYLE.get(r.status.value, "white")
        risk = ""
        if r.risk_score is not None:
            style = _risk_style(r.risk_score)
            risk = f"[{style}]{r.risk_score}[/{style}]"
        table.add_row(
            f"#{r.pr_number}",
            r.pr_title[:40] if r.pr_title else "",
            f"[{status_style}]{r.status.value}[/{status_style}]",
            risk,
            str(len(r.findings)),
            r.created_at[:16].replace("T", " "),
            r.error or "",
        )

    console.print(table)
