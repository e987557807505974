"""Shared helpers for CLI commands."""

from __future__ import annotations

import logging
from typing import Any

import click

from .config import SupervisorConfig, resolve_config
from .diagnostics import configure_diagnostics

_logger = logging.getLogger(__name__)


def _setup_console_logging(verbose: bool) -> None:
    root = logging.getLogger("inferguard")
    if any(getattr(h, "_inferguard_console", False) for h in root.handlers):
        return
    handler = logging.StreamHandler(click.get_text_stream("stderr"))
    handler.setLevel(logging.INFO if verbose else logging.WARNING)
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s: %(message)s"))
    handler._inferguard_console = True  # type: ignore[attr-defined]
    root.addHandler(handler)


def _load_config(ctx: click.Context, **cli: Any) -> SupervisorConfig:
    """Resolve the effective config and open the diagnostics log."""
    verbose = bool(ctx.obj and ctx.obj.get("verbose"))
    config = resolve_config(**cli)
    configure_diagnostics(
        config.log_dir,
        max_bytes=config.log_max_bytes,
        backup_count=config.log_backup_count,
    )
    _setup_console_logging(verbose)
    return config
