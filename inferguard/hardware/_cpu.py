"""CPU feature detection using psutil, the platform probe and the generation table."""

from __future__ import annotations

import logging
import platform

from ._base import PlatformProbe
from ._tables import HardwareTables
from ._types import UNKNOWN, CPUInfo

logger = logging.getLogger(__name__)

# flag spelling differs between /proc/cpuinfo and sysctl
_FLAG_ALIASES: dict[str, tuple[str, ...]] = {
    "sse42": ("sse4_2", "sse4.2"),
    "avx": ("avx", "avx1.0"),
    "avx2": ("avx2",),
    "fma": ("fma", "fma3"),
}


def features_from_flags(flags: set[str]) -> dict[str, bool]:
    """Map a raw flag listing onto the instruction sets we care about."""
    features = {
        name: any(alias in flags for alias in aliases)
        for name, aliases in _FLAG_ALIASES.items()
    }
    features["avx512"] = any(f.startswith("avx512") for f in flags)
    return features


def detect_cpu(probe: PlatformProbe, tables: HardwareTables) -> CPUInfo:
    """Detect CPU name, core counts and instruction-set support.

    A direct flag listing is authoritative.  The generation table is only
    consulted when the platform offers no listing.
    """
    import psutil

    logical = 0
    physical = 0
    try:
        logical = psutil.cpu_count(logical=True) or 0
        physical = psutil.cpu_count(logical=False) or 0
    except Exception as exc:
        logger.warning("cpu: core count detection failed: %s", exc)
    if not physical and logical:
        # psutil cannot count physical cores on some VMs; assume SMT pairs
        physical = max(1, logical // 2)

    model_name = UNKNOWN
    try:
        model_name = probe.cpu_model_name() or platform.processor() or UNKNOWN
    except Exception as exc:
        logger.warning("cpu: model name detection failed: %s", exc)

    flags = None
    try:
        flags = probe.cpu_flags()
    except Exception as exc:
        logger.warning("cpu: flag listing failed: %s", exc)

    generation = None
    if flags:
        features = features_from_flags(flags)
        method = "flags"
    else:
        match = tables.lookup_cpu(model_name)
        if match is not None:
            features = match.features
            generation = match.generation
            method = "generation-table"
        else:
            logger.warning(
                "cpu: no flag listing and no table entry for %r; instruction sets unknown",
                model_name,
                extra={"context": {"model_name": model_name, "tables_version": tables.version}},
            )
            features = {}
            method = UNKNOWN

    return CPUInfo(
        model_name=model_name,
        physical_cores=physical,
        logical_cores=logical,
        architecture=platform.machine() or UNKNOWN,
        has_sse42=features.get("sse42"),
        has_avx=features.get("avx"),
        has_avx2=features.get("avx2"),
        has_avx512=features.get("avx512"),
        has_fma=features.get("fma"),
        generation=generation,
        detection_method=method,
    )
