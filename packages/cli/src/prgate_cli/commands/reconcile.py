"""reconcile command — clean up reviews nobody is working on."""

from __future__ import annotations

import click
from rich.console import Console

from prgate_cli.state import get_config, get_services

console = Console()


@click.command("reconcile")
@click.option(
    "--stale-after",
    type=float,
    default=None,
    help="Seconds without progress before a review counts as stale (default from config).",
)
@click.pass_context
def reconcile_cmd(ctx, stale_after: float | None):
    """Mark PENDING/PROCESSING reviews that stopped making progress as FAILED.

    Safe to run from cron; a review that finishes in the meantime is left alone.
    """
    config = get_config(ctx)
    services = get_services(ctx)
    threshold = stale_after if stale_after is not None else config["stale_after_seconds"]

    marked = services.orchestrator.reconcile(threshold)
    if not marked:
        console.print("[green]No stale reviews.[/green]")
        return
    for review_id in marked:
        console.print(f"[yellow]Marked stale:[/yellow] {review_id}")
    console.print(f"{len(marked)} review(s) failed. Use `prgate retry` to run them again.")
