"""Hardware detection subsystem for inferguard.

Pure detection, no policy: the classifier decides what a profile means.
"""

from __future__ import annotations

from ._base import PlatformProbe, get_platform_probe
from ._tables import HardwareTables, load_tables
from ._types import CPUInfo, DiskInfo, DiskType, GPUInfo, HardwareProfile
from ._unified import HardwareProfiler, detect_hardware

__all__ = [
    "CPUInfo",
    "DiskInfo",
    "DiskType",
    "GPUInfo",
    "HardwareProfile",
    "HardwareProfiler",
    "HardwareTables",
    "PlatformProbe",
    "detect_hardware",
    "get_platform_probe",
    "load_tables",
]
