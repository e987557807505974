"""Chat command: one supervised request from the terminal."""

from __future__ import annotations

import asyncio
import sys

import click

from inferguard.cli_helpers import _load_config
from inferguard.config import SupervisorConfig
from inferguard.errors import RuntimeSupervisorError
from inferguard.supervisor import ChatRequest, ChatResult, RuntimeSupervisor


def register(cli: click.Group) -> None:
    cli.add_command(chat)


async def _run_once(config: SupervisorConfig, request: ChatRequest) -> ChatResult:
    supervisor = RuntimeSupervisor(config)
    try:
        await supervisor.initialize()
        await supervisor.start()
        return await supervisor.chat(request)
    finally:
        await supervisor.shutdown()


@click.command()
@click.argument("model")
@click.argument("prompt")
@click.option("--force-cpu", is_flag=True, help="Never use the compute backend.")
@click.pass_context
def chat(ctx: click.Context, model: str, prompt: str, force_cpu: bool) -> None:
    """Start the runtime, send PROMPT to MODEL, print the reply."""
    config = _load_config(ctx, force_cpu_only=True if force_cpu else None)
    request = ChatRequest(model=model, messages=[{"role": "user", "content": prompt}])
    try:
        result = asyncio.run(_run_once(config, request))
    except RuntimeSupervisorError as exc:
        click.echo(exc.user_message, err=True)
        sys.exit(1)
    click.echo(result.content)
