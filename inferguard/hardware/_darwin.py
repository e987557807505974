"""macOS probe: sysctl, diskutil, system_profiler."""

from __future__ import annotations

import logging
import re

from ._base import BackendReport, GPUDevice, PlatformProbe
from ._types import DiskType

logger = logging.getLogger(__name__)


class DarwinProbe(PlatformProbe):
    @property
    def name(self) -> str:
        return "darwin"

    def cpu_model_name(self) -> str | None:
        result = self._query(["sysctl", "-n", "machdep.cpu.brand_string"])
        if result is not None and result.ok and result.stdout.strip():
            return result.stdout.strip()
        return None

    def cpu_flags(self) -> set[str] | None:
        # Apple Silicon has no machdep.cpu.features key at all
        result = self._query(["sysctl", "-n", "machdep.cpu.features"])
        if result is None or not result.ok or not result.stdout.strip():
            return None
        flags = set(result.stdout.lower().split())
        leaf7 = self._query(["sysctl", "-n", "machdep.cpu.leaf7_features"])
        if leaf7 is not None and leaf7.ok:
            flags |= set(leaf7.stdout.lower().split())
        return flags

    def disk_type(self, path: str) -> DiskType:
        result = self._query(["diskutil", "info", "/"], timeout=10.0)
        if result is None or not result.ok:
            return DiskType.UNKNOWN
        m = re.search(r"Solid State:\s*(Yes|No)", result.stdout, re.IGNORECASE)
        if m:
            return DiskType.SSD if m.group(1).lower() == "yes" else DiskType.HDD
        return DiskType.UNKNOWN

    def gpu_devices(self) -> list[GPUDevice]:
        output = self._displays()
        if not output:
            return []
        names: list[str] = []
        vendors: list[str] = []
        for line in output.splitlines():
            key, _, value = line.strip().partition(":")
            if key == "Chipset Model":
                names.append(value.strip())
                vendors.append("unknown")
            elif key == "Vendor" and names:
                # "Vendor: Apple (0x106b)" / "Vendor: sppci_vendor_Apple"
                vendors[-1] = value.split("(")[0].replace("sppci_vendor_", "").strip()
        return [GPUDevice(vendor=v, name=n) for n, v in zip(names, vendors)]

    def compute_backend(self) -> BackendReport:
        output = self._displays()
        if not output:
            return BackendReport(
                backend="metal",
                available=False,
                healthy=False,
                issues=("system_profiler returned no display information",),
            )
        m = re.search(r"Metal(?: Support| Family)?:\s*(.+)", output)
        if not m or "not supported" in m.group(1).lower():
            return BackendReport(
                backend="metal",
                available=False,
                healthy=False,
                issues=("No Metal-capable GPU found",),
            )
        return BackendReport(
            backend="metal", available=True, healthy=True, version=m.group(1).strip()
        )

    def _displays(self) -> str:
        result = self._query(["system_profiler", "SPDisplaysDataType"], timeout=15.0)
        if result is None or not result.ok:
            return ""
        return result.stdout

    def server_search_paths(self) -> list[str]:
        return ["/usr/local/bin/ollama", "/opt/homebrew/bin/ollama"]
