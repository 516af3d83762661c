"""Per-invocation objects shared by subcommands through the click context."""

from __future__ import annotations

import click

from prgate_store.base import BaseStore
from prgate_store.models import Repository


def get_config(ctx: click.Context) -> dict:
    return ctx.find_root().obj["config"]


def get_services(ctx: click.Context, with_analyzer: bool = False):
    """Build the store/dispatcher/orchestrator once per invocation and close them on exit.

    Commands that execute reviews ask for the analyzer; a missing SDK or an
    unknown analyzer name is reported as a usage error rather than a traceback.
    """
    from prgate_core.services import build_services

    root = ctx.find_root()
    services = root.obj.get("services")
    if services is not None and (services.orchestrator.analyzer is not None or not with_analyzer):
        return services

    config = root.obj["config"]
    try:
        services = build_services(config, with_analyzer=with_analyzer)
    except (ImportError, ValueError) as e:
        raise click.UsageError(str(e))

    root.obj["services"] = services
    root.call_on_close(services.close)
    return services


def get_store(ctx: click.Context) -> BaseStore:
    return get_services(ctx).store


def resolve_repository(store: BaseStore, ref: str) -> Repository:
    """Find a connected repository by internal id, GitHub id or owner/name."""
    repository = store.get_repository(ref) or store.find_repository_by_external_id(ref)
    if repository is not None:
        return repository
    for candidate in store.list_repositories():
        if candidate.full_name.lower() == ref.lower():
            return candidate
    raise click.UsageError(f"Repository '{ref}' is not connected. Run `prgate repos connect {ref}` first.")
