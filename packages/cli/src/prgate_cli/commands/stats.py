"""stats command — aggregate patterns across review history."""

from __future__ import annotations

from collections import Counter

import click
from rich.console import Console
from rich.table import Table

from prgate_cli.state import get_store, resolve_repository

console = Console()

_SEVERITIES = ["critical", "high", "medium", "low"]
_SEV_STYLE = {"critical": "red", "high": "yellow", "medium": "blue", "low": "dim"}


@click.command("stats")
@click.option("--repo", required=True, help="Repository (owner/name, GitHub id or internal id).")
@click.option("--top", default=10, show_default=True, help="Number of top entries to show per table.")
@click.option("--limit", default=500, show_default=True, help="Number of most recent reviews to aggregate.")
@click.pass_context
def stats_cmd(ctx, repo: str, top: int, limit: int):
    """Show aggregated review statistics for a repository.

    Reports review outcomes, average risk, the severity and category mix of
    findings and the most frequently flagged files.
    """
    store = get_store(ctx)
    repository = resolve_repository(store, repo)
    reviews = store.list_reviews(repository_id=repository.id, limit=limit)
    if not reviews:
        console.print("[yellow]No reviews found for this repository.[/yellow]")
        return

    status_counter: Counter[str] = Counter(r.status.value for r in reviews)
    completed = [r for r in reviews if r.risk_score is not None]
    severity_counter: Counter[str] = Counter()
    category_counter: Counter[str] = Counter()
    file_counter: Counter[str] = Counter()
    for review in completed:
        for finding in review.findings:
            severity_counter[finding.severity.value] += 1
            category_counter[finding.category.value] += 1
            file_counter[finding.file] += 1
    total_findings = sum(severity_counter.values())

    # --- Summary ---
    console.print(f"\n[bold]Review stats for [cyan]{repository.full_name}[/cyan][/bold]")
    console.print(f"  Total reviews:  {len(reviews)}")
    for status in ("COMPLETED", "FAILED", "PROCESSING", "PENDING"):
        if status_counter[status]:
            console.print(f"    {status.lower():<11} {status_counter[status]}")
    console.print(f"  Total findings: {total_findings}")
    if completed:
        avg_risk = sum(r.risk_score for r in completed) / len(completed)
        console.print(f"  Avg risk score: {avg_risk:.1f}")
        console.print(f"  Avg findings:   {total_findings / len(completed):.1f}")

    # --- Severity breakdown ---
    if severity_counter:
        sev_table = Table(title="Severity Breakdown", show_header=True)
        sev_table.add_column("Severity", style="bold")
        sev_table.add_column("Count", justify="right")
        sev_table.add_column("% of total", justify="right")
        for sev in _SEVERITIES:
            count = severity_counter.get(sev, 0)
            pct = f"{count / total_findings * 100:.1f}%"
            style = _SEV_STYLE[sev]
            sev_table.add_row(f"[{style}]{sev}[/{style}]", str(count), pct)
        console.print(sev_table)

    # --- Category breakdown ---
    if category_counter:
        cat_table = Table(title="Category Breakdown", show_header=True)
        cat_table.add_column("Category", style="bold")
        cat_table.add_column("Count", justify="right")
        for category, count in category_counter.most_common():
            cat_table.add_row(category, str(count))
        console.print(cat_table)

    # --- Most flagged files ---
    if file_counter:
        file_table = Table(title=f"Top {top} Most Flagged Files", show_header=True)
        file_table.add_column("File")
        file_table.add_column("Findings", justify="right")
        for file_path, count in file_counter.most_common(top):
            file_table.add_row(file_path, str(count))
        console.print(file_table)
