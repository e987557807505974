"""Profile command: show detected hardware and the execution profile."""

from __future__ import annotations

import json

import click

from inferguard.cli_helpers import _load_config
from inferguard.classifier import apply_overrides, classify
from inferguard.hardware import HardwareProfiler, load_tables


def register(cli: click.Group) -> None:
    cli.add_command(profile)


def _fmt_flag(value: object) -> str:
    if value is None:
        return "unknown"
    return "yes" if value else "no"


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Print machine-readable JSON.")
@click.option("--force-cpu", is_flag=True, help="Apply the CPU-only override.")
@click.pass_context
def profile(ctx: click.Context, as_json: bool, force_cpu: bool) -> None:
    """Detect hardware and show how local models would run."""
    config = _load_config(ctx, force_cpu_only=True if force_cpu else None)
    tables = load_tables(config.hardware_tables_path) if config.hardware_tables_path else None
    hardware = HardwareProfiler(tables=tables).detect()
    execution = apply_overrides(classify(hardware, config.thresholds()), config.overrides)

    if as_json:
        click.echo(
            json.dumps(
                {"hardware": hardware.to_dict(), "executionProfile": execution.to_dict()},
                indent=2,
            )
        )
        return

    cpu, gpu, disk = hardware.cpu, hardware.gpu, hardware.disk
    click.echo(f"CPU:      {cpu.model_name} ({cpu.physical_cores} cores / {cpu.logical_cores} threads)")
    click.echo(
        f"          AVX {_fmt_flag(cpu.has_avx)}, AVX2 {_fmt_flag(cpu.has_avx2)}, "
        f"AVX-512 {_fmt_flag(cpu.has_avx512)}  [{cpu.detection_method}]"
    )
    click.echo(f"Memory:   {hardware.ram_total_gb:.1f} GB total, {hardware.ram_free_gb:.1f} GB free")
    click.echo(f"Disk:     {disk.type.value}")
    backend = gpu.backend or "none"
    health = "healthy" if gpu.compute_backend_healthy else "unhealthy"
    click.echo(f"GPU:      {gpu.model_name} ({backend}, {health})")
    click.echo()
    click.echo(f"Tier:     {execution.tier.value}")
    click.echo(f"Mode:     {execution.fallback_mode_on_start.value}")
    click.echo(
        f"Limits:   context {execution.max_context_tokens}, batch {execution.max_batch_size}, "
        f"threads {execution.thread_count}, quantization {execution.recommended_quantization}"
    )
    for warning in execution.warnings:
        click.echo(f"  ! {warning}")
    click.echo()
    click.echo(execution.summary)
