"""Windows probe: CIM/WMI queries via PowerShell, vulkaninfo.

Windows exposes no instruction-set listing to a plain subprocess query, so
``cpu_flags`` returns None and the CPU module falls back to the
generation table.
"""

from __future__ import annotations

import csv
import io
import logging
import os

from ._base import BackendReport, GPUDevice, PlatformProbe
from ._linux import parse_vulkan_summary
from ._types import DiskType

logger = logging.getLogger(__name__)


def _powershell(command: str) -> list[str]:
    return ["powershell", "-NoProfile", "-NonInteractive", "-Command", command]


class WindowsProbe(PlatformProbe):
    @property
    def name(self) -> str:
        return "windows"

    def cpu_model_name(self) -> str | None:
        result = self._query(
            _powershell("(Get-CimInstance Win32_Processor | Select-Object -First 1).Name")
        )
        if result is not None and result.ok and result.stdout.strip():
            return result.stdout.strip().splitlines()[0].strip()
        return None

    def cpu_flags(self) -> set[str] | None:
        return None

    def disk_type(self, path: str) -> DiskType:
        drive = os.path.splitdrive(os.path.abspath(path))[0].rstrip(":") or "C"
        result = self._query(
            _powershell(
                f"(Get-Partition -DriveLetter {drive} | Get-Disk | Get-PhysicalDisk).MediaType"
            ),
            timeout=10.0,
        )
        if result is None or not result.ok:
            return DiskType.UNKNOWN
        media = result.stdout.strip().lower()
        if "ssd" in media or "solid" in media:
            return DiskType.SSD
        if "hdd" in media or "hard disk" in media:
            return DiskType.HDD
        # "Unspecified" is common on VMs and RAID volumes
        return DiskType.UNKNOWN

    def gpu_devices(self) -> list[GPUDevice]:
        result = self._query(
            _powershell(
                "Get-CimInstance Win32_VideoController | "
                "Select-Object AdapterCompatibility,Name | ConvertTo-Csv -NoTypeInformation"
            )
        )
        if result is None or not result.ok:
            return []
        devices = []
        reader = csv.DictReader(io.StringIO(result.stdout.strip()))
        for row in reader:
            name = (row.get("Name") or "").strip()
            if not name:
                continue
            vendor = (row.get("AdapterCompatibility") or "").strip() or "unknown"
            devices.append(GPUDevice(vendor=vendor, name=name))
        return devices

    def compute_backend(self) -> BackendReport:
        result = self._query(["vulkaninfo", "--summary"], timeout=10.0)
        if result is None:
            return BackendReport(
                backend="vulkan",
                available=False,
                healthy=False,
                issues=("vulkaninfo command failed - Vulkan runtime not installed or broken",),
            )
        return parse_vulkan_summary(result.returncode, result.stdout, result.stderr)

    def server_search_paths(self) -> list[str]:
        local = os.environ.get("LOCALAPPDATA") or os.path.join(
            os.environ.get("USERPROFILE", ""), "AppData", "Local"
        )
        return [os.path.join(local, "Programs", "Ollama", "ollama.exe")]
