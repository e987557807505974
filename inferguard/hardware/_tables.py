"""Versioned lookup tables used by the probes.

The tables ship as ``inferguard/data/hardware_tables.json`` and can be
replaced with an edited copy (``hardware_tables_path`` in the config) so
corrections do not need a new release.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

_DEFAULT_PATH = Path(__file__).resolve().parent.parent / "data" / "hardware_tables.json"

_FEATURES = ("sse42", "avx", "avx2", "avx512", "fma")


@dataclass(frozen=True)
class CPUFamily:
    pattern: re.Pattern[str]
    generation: str
    features: dict[str, bool]


@dataclass(frozen=True)
class GenerationMatch:
    """Result of a table lookup for a CPU model name."""

    generation: str
    features: dict[str, bool]


@dataclass(frozen=True)
class HardwareTables:
    version: int
    cpu_families: tuple[CPUFamily, ...] = ()
    intel_core_pattern: Optional[re.Pattern[str]] = None
    intel_core_min_generation: dict[str, int] = field(default_factory=dict)
    gpu_denylist: tuple[tuple[re.Pattern[str], str], ...] = ()
    integrated_gpu_patterns: tuple[re.Pattern[str], ...] = ()

    def lookup_cpu(self, model_name: str) -> GenerationMatch | None:
        """Best-effort instruction-set lookup keyed by CPU model name."""
        name = _normalize(model_name)
        if not name:
            return None

        # Brand families first: a "Pentium" with an i-series style number
        # must not be mistaken for a Core part.
        for family in self.cpu_families:
            if family.pattern.search(name):
                return GenerationMatch(family.generation, dict(family.features))

        if self.intel_core_pattern is not None:
            match = self.intel_core_pattern.search(name)
            if match:
                digits = match.group(1)
                # i7-1165G7 / i5-1235U: 4-digit mobile parts from gen 10 on
                if len(digits) == 4 and digits[0] == "1":
                    gen = int(digits[:2])
                else:
                    gen = int(digits[:-3])
                features = {
                    feat: gen >= min_gen
                    for feat, min_gen in self.intel_core_min_generation.items()
                }
                features.setdefault("avx512", False)
                return GenerationMatch(_ordinal(gen) + " Gen Intel Core", features)

        return None

    def known_gpu_issue(self, gpu_name: str) -> str | None:
        name = _normalize(gpu_name)
        for pattern, issue in self.gpu_denylist:
            if pattern.search(name):
                return issue
        return None

    def is_integrated_gpu(self, gpu_name: str) -> bool:
        name = _normalize(gpu_name)
        return any(p.search(name) for p in self.integrated_gpu_patterns)


def _normalize(name: str) -> str:
    return " ".join(name.lower().replace("®", "(r)").replace("™", "(tm)").split())


def _ordinal(n: int) -> str:
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def parse_tables(raw: dict[str, Any]) -> HardwareTables:
    families = []
    for entry in raw.get("cpu_families", []):
        families.append(
            CPUFamily(
                pattern=re.compile(entry["pattern"], re.IGNORECASE),
                generation=entry.get("generation", ""),
                features={f: bool(entry.get(f, False)) for f in _FEATURES},
            )
        )

    intel = raw.get("intel_core") or {}
    intel_pattern = (
        re.compile(intel["pattern"], re.IGNORECASE) if intel.get("pattern") else None
    )

    denylist = tuple(
        (re.compile(entry["pattern"], re.IGNORECASE), entry["issue"])
        for entry in raw.get("gpu_denylist", [])
    )
    integrated = tuple(
        re.compile(p, re.IGNORECASE) for p in raw.get("integrated_gpu_patterns", [])
    )

    return HardwareTables(
        version=int(raw.get("version", 0)),
        cpu_families=tuple(families),
        intel_core_pattern=intel_pattern,
        intel_core_min_generation=dict(intel.get("features_from_generation", {})),
        gpu_denylist=denylist,
        integrated_gpu_patterns=integrated,
    )


def load_tables(path: str | Path | None = None) -> HardwareTables:
    """Load lookup tables, falling back to the packaged copy on any error."""
    if path is not None:
        try:
            tables = parse_tables(json.loads(Path(path).read_text(encoding="utf-8")))
            logger.info(
                "Loaded hardware tables v%d from %s",
                tables.version,
                path,
                extra={"context": {"path": str(path), "version": tables.version}},
            )
            return tables
        except (OSError, ValueError, KeyError, re.error) as exc:
            logger.warning(
                "Could not load hardware tables from %s, using packaged copy: %s",
                path,
                exc,
            )
    return parse_tables(json.loads(_DEFAULT_PATH.read_text(encoding="utf-8")))
