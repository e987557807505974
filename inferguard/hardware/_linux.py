"""Linux probe: /proc/cpuinfo, sysfs rotational flags, lspci, vulkaninfo."""

from __future__ import annotations

import logging
import os
import re

from ._base import BackendReport, GPUDevice, PlatformProbe
from ._types import DiskType

logger = logging.getLogger(__name__)

_VGA_RE = re.compile(
    r"(?:VGA compatible controller|3D controller|Display controller)\s*(?:\[[0-9a-f]+\])?:\s*(.+)",
    re.IGNORECASE,
)
_NUMBERED_PARTITION_RE = re.compile(r"^(nvme\d+n\d+|mmcblk\d+)(p\d+)?$")
_LETTERED_DISK_RE = re.compile(r"^((?:sd|hd|vd|xvd)[a-z]+)\d*$")


def parent_block_device(devname: str) -> str:
    """Disk holding a partition: ``nvme0n1p2`` -> ``nvme0n1``, ``sda1`` -> ``sda``.

    Names without a partition scheme (``dm-0``, ``md0``, ``loop3``) are
    block devices in their own right and come back unchanged.
    """
    for pattern in (_NUMBERED_PARTITION_RE, _LETTERED_DISK_RE):
        m = pattern.match(devname)
        if m:
            return m.group(1)
    return devname


class LinuxProbe(PlatformProbe):
    @property
    def name(self) -> str:
        return "linux"

    def cpu_model_name(self) -> str | None:
        try:
            content = self._read_text("/proc/cpuinfo")
        except OSError:
            return None
        for line in content.splitlines():
            key, _, value = line.partition(":")
            if key.strip().lower() in ("model name", "hardware", "processor") and value.strip():
                # "processor : 0" on x86 is an index, skip pure digits
                if value.strip().isdigit():
                    continue
                return value.strip()
        return None

    def cpu_flags(self) -> set[str] | None:
        try:
            content = self._read_text("/proc/cpuinfo")
        except OSError as exc:
            logger.warning("linux: cannot read /proc/cpuinfo: %s", exc)
            return None
        for line in content.splitlines():
            key, _, value = line.partition(":")
            # x86 uses "flags", arm64 uses "Features"
            if key.strip().lower() in ("flags", "features") and value.strip():
                return set(value.lower().split())
        return None

    def disk_type(self, path: str) -> DiskType:
        device = self._block_device_for(path)
        if device:
            try:
                raw = self._read_text(f"/sys/block/{device}/queue/rotational").strip()
                if raw == "1":
                    return DiskType.HDD
                if raw == "0":
                    return DiskType.SSD
            except OSError:
                logger.debug("linux: no rotational attribute for %s", device)

        result = self._query(["lsblk", "-d", "-n", "-o", "NAME,ROTA,TYPE"])
        if result is None or not result.ok:
            return DiskType.UNKNOWN
        rotas: dict[str, str] = {}
        for line in result.stdout.splitlines():
            parts = line.split()
            if len(parts) >= 3 and parts[2] == "disk":
                rotas[parts[0]] = parts[1]
        if device and device in rotas:
            return DiskType.HDD if rotas[device] == "1" else DiskType.SSD
        values = set(rotas.values())
        # Only decisive when every physical disk agrees
        if values == {"0"}:
            return DiskType.SSD
        if values == {"1"}:
            return DiskType.HDD
        return DiskType.UNKNOWN

    def _block_device_for(self, path: str) -> str | None:
        """Map a filesystem path to its parent block device name (e.g. ``sda``)."""
        try:
            st = os.stat(path)
        except OSError:
            return None
        major, minor = os.major(st.st_dev), os.minor(st.st_dev)
        try:
            uevent = self._read_text(f"/sys/dev/block/{major}:{minor}/uevent")
        except OSError:
            return None
        devname = None
        for line in uevent.splitlines():
            if line.startswith("DEVNAME="):
                devname = line.split("=", 1)[1].strip()
        if not devname:
            return None
        return parent_block_device(devname)

    def gpu_devices(self) -> list[GPUDevice]:
        result = self._query(["lspci"])
        if result is None or not result.ok:
            return []
        devices = []
        for line in result.stdout.splitlines():
            m = _VGA_RE.search(line)
            if not m:
                continue
            desc = m.group(1).strip()
            devices.append(GPUDevice(vendor=_vendor_of(desc), name=desc))
        return devices

    def compute_backend(self) -> BackendReport:
        result = self._query(["vulkaninfo", "--summary"], timeout=10.0)
        if result is not None:
            return parse_vulkan_summary(result.returncode, result.stdout, result.stderr)

        # No Vulkan tooling: an NVIDIA driver answering nvidia-smi is enough
        smi = self._query(["nvidia-smi", "--query-gpu=name,driver_version", "--format=csv,noheader"])
        if smi is not None and smi.ok and smi.stdout.strip():
            version = smi.stdout.strip().splitlines()[0].split(",")[-1].strip()
            return BackendReport(backend="cuda", available=True, healthy=True, version=version)
        if smi is not None and not smi.ok:
            return BackendReport(
                backend="cuda",
                available=True,
                healthy=False,
                issues=("NVIDIA driver query failed - driver may be outdated or broken",),
            )
        return BackendReport(
            backend=None,
            available=False,
            healthy=False,
            issues=("No compute backend query tool available",),
        )


def _vendor_of(desc: str) -> str:
    lower = desc.lower()
    if "nvidia" in lower:
        return "NVIDIA"
    if "advanced micro devices" in lower or "amd" in lower or "ati" in lower.split():
        return "AMD"
    if "intel" in lower:
        return "Intel"
    return desc.split()[0] if desc else "unknown"


def parse_vulkan_summary(returncode: int, stdout: str, stderr: str) -> BackendReport:
    """Interpret ``vulkaninfo --summary`` output.

    Shared by the Linux and Windows probes.
    """
    issues: list[str] = []
    version = None
    m = re.search(r"Vulkan Instance Version:\s*(\d+\.\d+\.\d+)", stdout)
    if m:
        version = m.group(1)

    if returncode != 0:
        issues.append("vulkaninfo exited with an error - drivers may be outdated")
    if "ERROR" in stderr or "FAILED" in stderr:
        issues.append("Vulkan reports errors - drivers may be outdated")
    if "ERROR" in stdout or "No devices found" in stdout or "Found no drivers" in stdout:
        issues.append("No Vulkan-compatible devices found")

    devices = re.findall(r"deviceType\s*=\s*(\S+)", stdout)
    usable = [d for d in devices if "CPU" not in d.upper()]
    if devices and not usable:
        issues.append("Only a software Vulkan renderer is present")
    elif not devices and not issues:
        issues.append("No Vulkan-compatible devices found")

    return BackendReport(
        backend="vulkan",
        available=True,
        healthy=not issues,
        version=version,
        issues=tuple(issues),
    )
