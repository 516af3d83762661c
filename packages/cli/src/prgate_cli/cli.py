"""CLI entry point for prgate.

Commands:
  serve        — run the webhook/API server
  worker       — execute queued reviews
  reconcile    — fail reviews stuck in PENDING/PROCESSING
  retry        — re-run the latest failed review of a PR
  repos        — connect, disconnect, list and browse repositories
  credentials  — store a GitHub token for a user
  history      — display past reviews from the store
  stats        — aggregate findings across review history
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from prgate_cli.commands.credentials import credentials_cmd
from prgate_cli.commands.history import history_cmd
from prgate_cli.commands.reconcile import reconcile_cmd
from prgate_cli.commands.repos import repos_cmd
from prgate_cli.commands.retry import retry_cmd
from prgate_cli.commands.serve import serve_cmd
from prgate_cli.commands.stats import stats_cmd
from prgate_cli.commands.worker import worker_cmd

console = Console()


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
    )


@click.group()
@click.version_option(
    version=importlib.metadata.version("prgate"),
    prog_name="prgate",
)
@click.option(
    "--config",
    "config_path",
    default=".prgate.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRGATE_CONFIG",
)
@click.option(
    "--log-level",
    default="INFO",
    show_default=True,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging verbosity.",
)
@click.pass_context
def main(ctx: click.Context, config_path: str, log_level: str):
    """Queue and run AI code reviews for GitHub pull requests."""
    from prgate_core.config import load_config

    _setup_logging(log_level)
    ctx.ensure_object(dict)
    ctx.obj["config"] = load_config(config_path)
    ctx.obj["log_level"] = log_level.upper()


main.add_command(serve_cmd)
main.add_command(worker_cmd)
main.add_command(reconcile_cmd)
main.add_command(retry_cmd)
main.add_command(repos_cmd)
main.add_command(credentials_cmd)
main.add_command(history_cmd)
main.add_command(stats_cmd)
