"""
inferguard command-line interface.

Usage::

    inferguard profile
    inferguard profile --json
    inferguard serve --port 8765 --force-cpu
    inferguard chat llama3.2 "Summarize this paragraph"
    inferguard logs --lines 50
"""

from __future__ import annotations

import click

from inferguard import __version__


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="inferguard")
@click.option("--verbose", "-v", is_flag=True, help="Show INFO log lines on stderr.")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """inferguard: run local models without hanging on weak hardware."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# ---------------------------------------------------------------------------
# Register command modules
# ---------------------------------------------------------------------------

from inferguard.commands import chat, logs, profile, serve  # noqa: E402

for _mod in [profile, serve, chat, logs]:
    _mod.register(main)
