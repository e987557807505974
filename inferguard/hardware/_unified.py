"""Unified hardware profiler with caching."""

from __future__ import annotations

import logging
import os
import sys
import time
from pathlib import Path

from ._base import PlatformProbe, get_platform_probe
from ._cpu import detect_cpu
from ._disk import detect_disk
from ._gpu import detect_gpu
from ._tables import HardwareTables, load_tables
from ._types import UNKNOWN_BYTES, HardwareProfile

logger = logging.getLogger(__name__)


class HardwareProfiler:
    """Detects CPU, memory, disk and GPU capability.

    ``detect()`` never raises for a failed sub-probe: the affected field
    carries its unknown sentinel and a diagnostics line explains why.
    The last profile is cached for the lifetime of the profiler;
    ``detect(force=True)`` builds a fresh one.
    """

    def __init__(
        self,
        probe: PlatformProbe | None = None,
        tables: HardwareTables | None = None,
        storage_path: str | os.PathLike[str] | None = None,
    ) -> None:
        self._probe = probe
        self._tables = tables
        self._storage_path = str(storage_path or Path.home())
        self._cache: HardwareProfile | None = None

    @property
    def probe(self) -> PlatformProbe:
        if self._probe is None:
            self._probe = get_platform_probe()
        return self._probe

    @property
    def tables(self) -> HardwareTables:
        if self._tables is None:
            self._tables = load_tables()
        return self._tables

    def detect(self, force: bool = False) -> HardwareProfile:
        if self._cache is not None and not force:
            return self._cache

        started = time.monotonic()
        diagnostics: list[str] = []
        probe = self.probe
        tables = self.tables

        cpu = detect_cpu(probe, tables)
        diagnostics.append(f"cpu: {cpu.detection_method}")

        ram_total = ram_free = UNKNOWN_BYTES
        try:
            import psutil

            mem = psutil.virtual_memory()
            ram_total = int(mem.total)
            ram_free = int(mem.available)
        except Exception as exc:
            logger.warning("memory: detection failed: %s", exc)
            diagnostics.append(f"memory: detection failed - {exc}")

        disk = detect_disk(probe, self._storage_path)
        diagnostics.append(f"disk: {disk.type.value}")

        gpu = detect_gpu(probe, tables)
        diagnostics.append(
            f"gpu: {gpu.backend or 'none'} "
            f"{'healthy' if gpu.compute_backend_healthy else 'unhealthy'}"
        )

        profile = HardwareProfile(
            cpu=cpu,
            ram_total_bytes=ram_total,
            ram_free_bytes=ram_free,
            disk=disk,
            gpu=gpu,
            platform=sys.platform,
            captured_at=time.time(),
            diagnostics=tuple(diagnostics),
        )
        logger.info(
            "Hardware profile captured in %.0f ms",
            (time.monotonic() - started) * 1000,
            extra={
                "context": {
                    "cpu": cpu.model_name,
                    "physical_cores": cpu.physical_cores,
                    "logical_cores": cpu.logical_cores,
                    "sse42": cpu.has_sse42,
                    "avx": cpu.has_avx,
                    "avx2": cpu.has_avx2,
                    "avx512": cpu.has_avx512,
                    "fma": cpu.has_fma,
                    "cpu_detection": cpu.detection_method,
                    "ram_total_gb": profile.ram_total_gb,
                    "ram_free_gb": profile.ram_free_gb,
                    "disk": disk.type.value,
                    "disk_free_bytes": disk.free_bytes,
                    "gpu": gpu.model_name,
                    "gpu_backend": gpu.backend,
                    "gpu_healthy": gpu.compute_backend_healthy,
                    "gpu_known_issue": gpu.known_issue,
                }
            },
        )
        self._cache = profile
        return profile

    def refresh(self) -> HardwareProfile:
        return self.detect(force=True)


_profiler: HardwareProfiler | None = None


def detect_hardware(force: bool = False) -> HardwareProfile:
    """One-liner API: detect all hardware capabilities."""
    global _profiler
    if _profiler is None:
        _profiler = HardwareProfiler()
    return _profiler.detect(force=force)
