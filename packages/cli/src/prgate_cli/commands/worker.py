"""worker command — consume the review queue."""

from __future__ import annotations

import logging
import threading

import click
from rich.console import Console

from prgate_cli.state import get_config, get_services

console = Console()
logger = logging.getLogger(__name__)


@click.command("worker")
@click.option("--concurrency", "-c", default=1, show_default=True, type=click.IntRange(min=1), help="Worker threads.")
@click.option("--once", is_flag=True, default=False, help="Drain the queue and exit instead of polling forever.")
@click.pass_context
def worker_cmd(ctx, concurrency: int, once: bool):
    """Execute queued reviews: fetch the diff, run the analyzer, store the result."""
    from prgate_core.worker import ReviewWorker

    config = get_config(ctx)
    services = get_services(ctx, with_analyzer=True)

    workers = [
        ReviewWorker(
            services.orchestrator,
            services.dispatcher,
            lease_seconds=config["task_lease_seconds"],
            poll_interval=config["poll_interval"],
            name=f"worker-{i + 1}",
        )
        for i in range(concurrency)
    ]

    if once:
        processed = 0
        while workers[0].run_once():
            processed += 1
        console.print(f"[green]Processed {processed} task(s).[/green]")
        return

    stop = threading.Event()
    threads = [threading.Thread(target=w.run, args=(stop,), name=w.name, daemon=True) for w in workers]
    for t in threads:
        t.start()
    console.print(f"[bold]Running {concurrency} worker(s).[/bold] Press Ctrl+C to stop.")

    try:
        while any(t.is_alive() for t in threads):
            for t in threads:
                t.join(timeout=1.0)
    except KeyboardInterrupt:
        logger.info("Stopping workers...")
        stop.set()
        for t in threads:
            t.join()
