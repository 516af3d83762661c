"""serve command — run the webhook and review API with uvicorn."""

from __future__ import annotations

import click

from prgate_cli.state import get_config


@click.command("serve")
@click.option("--host", default=None, help="Bind address (default from config).")
@click.option("--port", type=int, default=None, help="Bind port (default from config).")
@click.pass_context
def serve_cmd(ctx, host: str | None, port: int | None):
    """Start the HTTP server that receives GitHub webhooks.

    Reviews are only queued here; run `prgate worker` to execute them.
    """
    import uvicorn

    from prgate_server.app import create_app

    config = get_config(ctx)
    if not config.get("webhook_secret") and not config.get("allow_unsigned_webhooks"):
        click.echo(
            "Warning: GITHUB_WEBHOOK_SECRET is not set; webhook deliveries will be rejected with 503.",
            err=True,
        )

    uvicorn.run(
        create_app(config),
        host=host or config["host"],
        port=port or config["port"],
        log_level=ctx.find_root().obj["log_level"].lower(),
    )
