"""Click CLI for running the relay and signing test requests."""

from __future__ import annotations

import logging
import time

import click

from src.config import RelayConfig
from src.webhook.signature import SIGNATURE_HEADER, TIMESTAMP_HEADER, compute_signature


@click.group()
@click.option("--log-level", default="INFO", help="Root logging level.")
def cli(log_level: str) -> None:
    """Slack → Notion task relay."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@cli.command()
@click.option("--host", default="0.0.0.0", help="Interface to bind.")
@click.option("--port", type=int, default=None, help="Port (defaults to PORT or 4567).")
def serve(host: str, port: int | None) -> None:
    """Run the HTTP server."""
    import uvicorn

    from src.server.app import create_app

    config = RelayConfig.from_env()
    uvicorn.run(create_app(config), host=host, port=port or config.port)


@cli.command()
@click.argument("body")
@click.option("--secret", envvar="SLACK_SIGNING_SECRET", required=True,
              help="Signing secret (defaults to SLACK_SIGNING_SECRET).")
@click.option("--timestamp", type=int, default=None, help="Unix seconds; defaults to now.")
def sign(body: str, secret: str, timestamp: int | None) -> None:
    """Print Slack signature headers for BODY."""
    ts = timestamp if timestamp is not None else int(time.time())
    click.echo(f"{TIMESTAMP_HEADER}: {ts}")
    click.echo(f"{SIGNATURE_HEADER}: {compute_signature(secret, ts, body.encode())}")


if __name__ == "__main__":
    cli()
