"""Shared dataclasses for hardware detection.

Every profile is immutable.  Re-detection builds a new ``HardwareProfile``;
nothing in this package mutates one after construction.
"""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field
from typing import Any, Optional

UNKNOWN = "unknown"
UNKNOWN_BYTES = 0


class DiskType(str, enum.Enum):
    HDD = "HDD"
    SSD = "SSD"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class CPUInfo:
    model_name: str = UNKNOWN
    physical_cores: int = 0  # 0 = unknown
    logical_cores: int = 0
    architecture: str = UNKNOWN  # "x86_64", "arm64"
    # None = could not be determined; classification treats it as absent
    has_sse42: Optional[bool] = None
    has_avx: Optional[bool] = None
    has_avx2: Optional[bool] = None
    has_avx512: Optional[bool] = None
    has_fma: Optional[bool] = None
    generation: Optional[str] = None
    detection_method: str = UNKNOWN  # "flags", "generation-table", "unknown"


@dataclass(frozen=True)
class DiskInfo:
    type: DiskType = DiskType.UNKNOWN
    free_bytes: int = UNKNOWN_BYTES
    path: str = ""


@dataclass(frozen=True)
class GPUInfo:
    vendor: str = UNKNOWN
    model_name: str = UNKNOWN
    is_integrated: bool = False
    backend: Optional[str] = None  # "vulkan", "cuda", "metal"
    compute_backend_available: bool = False
    compute_backend_healthy: Optional[bool] = None
    backend_version: Optional[str] = None
    known_issue: Optional[str] = None
    issues: tuple[str, ...] = ()


@dataclass(frozen=True)
class HardwareProfile:
    cpu: CPUInfo
    ram_total_bytes: int
    ram_free_bytes: int
    disk: DiskInfo
    gpu: GPUInfo
    platform: str  # "linux", "darwin", "win32"
    captured_at: float
    diagnostics: tuple[str, ...] = field(default_factory=tuple)

    @property
    def ram_total_gb(self) -> float:
        return round(self.ram_total_bytes / (1024**3), 2)

    @property
    def ram_free_gb(self) -> float:
        return round(self.ram_free_bytes / (1024**3), 2)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["disk"]["type"] = self.disk.type.value
        data["ram_total_gb"] = self.ram_total_gb
        data["ram_free_gb"] = self.ram_free_gb
        return data
