"""Capability classifier: ``HardwareProfile -> ExecutionProfile``.

``classify`` is a pure, total function.  It reads nothing but its
arguments, so the same profile and thresholds always produce an equal
ExecutionProfile.  Unknown hardware facts are treated as unfavourable: a
false "limited" verdict is cheaper than a hung session.

Tier rules, first match decides the tier (every match adds a warning):

1. no AVX2                                   -> too_old
2. RAM < 6 GB                                -> too_old
3. HDD and RAM < 8 GB                        -> too_old
4. compute backend unhealthy and RAM < 12 GB -> limited
5. RAM < 8 GB                                -> limited
6. otherwise                                 -> good

Rule 1 applies the same way to every architecture.  ARM CPUs report their
real flags (no AVX2) on every platform and are classified by the same rule;
only the warning text names the architecture.
"""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, replace
from typing import TYPE_CHECKING, Any

from .hardware import DiskType, HardwareProfile

if TYPE_CHECKING:
    from .config import RuntimeOverrides

GIB = 1024**3


class Tier(str, enum.Enum):
    GOOD = "good"
    LIMITED = "limited"
    TOO_OLD = "too_old"


class StartMode(str, enum.Enum):
    COMPUTE_BACKEND = "compute_backend"
    CPU_ONLY = "cpu_only"


@dataclass(frozen=True)
class ClassifierThresholds:
    too_old_ram_gb: float = 6.0
    hdd_ram_gb: float = 8.0
    unhealthy_backend_ram_gb: float = 12.0
    limited_ram_gb: float = 8.0
    large_ram_gb: float = 16.0
    huge_ram_gb: float = 32.0


DEFAULT_THRESHOLDS = ClassifierThresholds()


@dataclass(frozen=True)
class ResourceTier:
    name: str
    max_context_tokens: int
    max_batch_size: int
    max_threads: int | None  # None = all physical cores
    quantization: str


# Ordered smallest to largest; index 0 is the floor.
RESOURCE_TIERS: tuple[ResourceTier, ...] = (
    ResourceTier("small", 512, 8, 2, "coarse"),
    ResourceTier("medium", 1024, 16, 4, "balanced"),
    ResourceTier("large", 2048, 32, None, "fine"),
    ResourceTier("huge", 4096, 64, None, "fine"),
)

REDUCED_THREAD_CAP = 2

_SUMMARIES = {
    Tier.GOOD: "Your hardware is well-suited for local AI models.",
    Tier.LIMITED: (
        "Your hardware can run local AI, but performance may be limited. "
        "Cloud mode will give a smoother experience."
    ),
    Tier.TOO_OLD: (
        "Your computer is a bit too old for fast on-device AI. Local models "
        "may be very slow; cloud mode runs at full speed on any hardware."
    ),
}


@dataclass(frozen=True)
class ExecutionProfile:
    tier: Tier
    use_compute_backend: bool
    max_context_tokens: int
    max_batch_size: int
    thread_count: int
    recommended_quantization: str
    warnings: tuple[str, ...]
    fallback_mode_on_start: StartMode
    summary: str = ""

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["tier"] = self.tier.value
        data["fallback_mode_on_start"] = self.fallback_mode_on_start.value
        data["warnings"] = list(self.warnings)
        return data

    def server_options(self) -> dict[str, int]:
        """Per-request resource options understood by the model server."""
        return {
            "num_ctx": self.max_context_tokens,
            "num_batch": self.max_batch_size,
            "num_thread": self.thread_count,
        }


def _gb(n_bytes: int) -> float:
    return n_bytes / GIB


def resource_tier_for(ram_total_bytes: int, thresholds: ClassifierThresholds) -> int:
    """Index into RESOURCE_TIERS for the given amount of RAM."""
    if ram_total_bytes < thresholds.too_old_ram_gb * GIB:
        return 0
    if ram_total_bytes <= thresholds.large_ram_gb * GIB:
        return 1
    if ram_total_bytes < thresholds.huge_ram_gb * GIB:
        return 2
    return 3


def _threads(tier: ResourceTier, physical_cores: int) -> int:
    cores = max(1, physical_cores)
    if tier.max_threads is None:
        return cores
    return max(1, min(tier.max_threads, cores))


_ARM_ARCHITECTURES = ("arm64", "aarch64")


def _is_arm(architecture: str) -> bool:
    arch = architecture.lower()
    return arch in _ARM_ARCHITECTURES or arch.startswith("armv")


def _instruction_set_warning(architecture: str) -> str:
    if _is_arm(architecture):
        return (
            f"{architecture} CPU has no AVX2 instruction set; the local engine "
            "build needs it for fast inference"
        )
    return "CPU lacks the AVX2 instruction set required for fast local inference"


def classify(
    profile: HardwareProfile,
    thresholds: ClassifierThresholds = DEFAULT_THRESHOLDS,
) -> ExecutionProfile:
    ram = max(0, profile.ram_total_bytes)
    ram_gb = _gb(ram)
    backend_healthy = profile.gpu.compute_backend_healthy is True

    decisions: list[tuple[Tier, str]] = []
    if profile.cpu.has_avx2 is not True:
        decisions.append((Tier.TOO_OLD, _instruction_set_warning(profile.cpu.architecture)))
    if ram < thresholds.too_old_ram_gb * GIB:
        decisions.append(
            (
                Tier.TOO_OLD,
                f"Only {ram_gb:.1f} GB RAM (at least {thresholds.too_old_ram_gb:g} GB "
                "is needed for local models)",
            )
        )
    if profile.disk.type == DiskType.HDD and ram < thresholds.hdd_ram_gb * GIB:
        decisions.append(
            (
                Tier.TOO_OLD,
                f"Hard disk drive with only {ram_gb:.1f} GB RAM (causes severe "
                "swapping to slow storage)",
            )
        )
    if not backend_healthy and ram < thresholds.unhealthy_backend_ram_gb * GIB:
        decisions.append(
            (
                Tier.LIMITED,
                "Graphics acceleration is unavailable or unstable and there is not "
                "enough RAM for comfortable CPU-only inference",
            )
        )
    if ram < thresholds.limited_ram_gb * GIB:
        decisions.append(
            (
                Tier.LIMITED,
                f"{ram_gb:.1f} GB RAM is below the {thresholds.limited_ram_gb:g} GB "
                "recommended for smooth local inference",
            )
        )

    tier = decisions[0][0] if decisions else Tier.GOOD
    resources = RESOURCE_TIERS[resource_tier_for(ram, thresholds)]

    return ExecutionProfile(
        tier=tier,
        use_compute_backend=backend_healthy,
        max_context_tokens=resources.max_context_tokens,
        max_batch_size=resources.max_batch_size,
        thread_count=_threads(resources, profile.cpu.physical_cores),
        recommended_quantization=resources.quantization,
        warnings=tuple(reason for _, reason in decisions),
        fallback_mode_on_start=(
            StartMode.COMPUTE_BACKEND if backend_healthy else StartMode.CPU_ONLY
        ),
        summary=_SUMMARIES[tier],
    )


def reduce_profile(profile: ExecutionProfile, physical_cores: int) -> ExecutionProfile:
    """Step resources down to the next lower tier, threads capped at 2.

    The small tier is the floor; reducing it again keeps its values.
    """
    current = 0
    for idx, tier in enumerate(RESOURCE_TIERS):
        if profile.max_context_tokens >= tier.max_context_tokens:
            current = idx
    lower = RESOURCE_TIERS[max(0, current - 1)]
    return replace(
        profile,
        use_compute_backend=False,
        fallback_mode_on_start=StartMode.CPU_ONLY,
        max_context_tokens=min(profile.max_context_tokens, lower.max_context_tokens),
        max_batch_size=min(profile.max_batch_size, lower.max_batch_size),
        thread_count=max(
            1, min(_threads(lower, physical_cores), profile.thread_count, REDUCED_THREAD_CAP)
        ),
        recommended_quantization=lower.quantization,
    )


def without_compute_backend(profile: ExecutionProfile) -> ExecutionProfile:
    return replace(
        profile, use_compute_backend=False, fallback_mode_on_start=StartMode.CPU_ONLY
    )


def apply_overrides(
    profile: ExecutionProfile, overrides: "RuntimeOverrides | None"
) -> ExecutionProfile:
    """Layer user-chosen resource parameters over a classified profile."""
    if overrides is None:
        return profile
    changes: dict[str, Any] = {}
    if overrides.force_cpu_only:
        changes["use_compute_backend"] = False
        changes["fallback_mode_on_start"] = StartMode.CPU_ONLY
    if overrides.max_context_tokens:
        changes["max_context_tokens"] = overrides.max_context_tokens
    if overrides.max_batch_size:
        changes["max_batch_size"] = overrides.max_batch_size
    if overrides.thread_count:
        changes["thread_count"] = overrides.thread_count
    return replace(profile, **changes) if changes else profile
