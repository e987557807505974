"""Serve command: run the supervisor behind its HTTP surface."""

from __future__ import annotations

import sys
from typing import Optional

import click

from inferguard.cli_helpers import _load_config


def register(cli: click.Group) -> None:
    cli.add_command(serve)


@click.command()
@click.option("--host", default="127.0.0.1", help="Host to bind the HTTP surface to.")
@click.option("--port", "-p", default=8765, help="Port for the HTTP surface.")
@click.option("--server-port", default=None, type=int, help="Port for the owned model server.")
@click.option("--force-cpu", is_flag=True, help="Never use the compute backend.")
@click.option("--log-dir", default=None, help="Directory for the diagnostics log.")
@click.option(
    "--watchdog",
    default=None,
    type=float,
    help="Seconds before a chat call is treated as hung (default 90).",
)
@click.pass_context
def serve(
    ctx: click.Context,
    host: str,
    port: int,
    server_port: Optional[int],
    force_cpu: bool,
    log_dir: Optional[str],
    watchdog: Optional[float],
) -> None:
    """Start the runtime supervisor and its HTTP API."""
    config = _load_config(
        ctx,
        port=server_port,
        log_dir=log_dir,
        watchdog_seconds=watchdog,
        force_cpu_only=True if force_cpu else None,
    )
    try:
        from inferguard.serve import run_server
    except ImportError:
        click.echo(
            "Serving needs the 'serve' extra: pip install 'inferguard[serve]'",
            err=True,
        )
        sys.exit(1)

    click.echo(f"inferguard listening on http://{host}:{port} (logs: {config.log_dir})")
    run_server(config, host=host, port=port)
