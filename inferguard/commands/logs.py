"""Logs command: locate and tail the diagnostics log."""

from __future__ import annotations

from collections import deque

import click

from inferguard.cli_helpers import _load_config
from inferguard.diagnostics import get_diagnostics


def register(cli: click.Group) -> None:
    cli.add_command(logs)


@click.command()
@click.option("--lines", "-n", default=20, help="Number of trailing entries to print.")
@click.option("--path", "path_only", is_flag=True, help="Only print the log file path.")
@click.option("--log-dir", default=None, help="Directory of the diagnostics log.")
@click.pass_context
def logs(ctx: click.Context, lines: int, path_only: bool, log_dir: str) -> None:
    """Show the diagnostics log."""
    _load_config(ctx, log_dir=log_dir)
    diag = get_diagnostics()
    if diag is None:
        raise click.ClickException("diagnostics log is not configured")
    diag.handler.flush()
    if path_only:
        click.echo(str(diag.path))
        return

    click.echo(f"# {diag.path}")
    for rotated in diag.rotated_files():
        click.echo(f"# rotated: {rotated.name}")
    if not diag.path.exists():
        return
    with open(diag.path, encoding="utf-8", errors="replace") as f:
        for line in deque(f, maxlen=max(lines, 0)):
            click.echo(line.rstrip("\n"))
