"""GPU identification and compute-backend health check."""

from __future__ import annotations

import logging

from ._base import BackendReport, GPUDevice, PlatformProbe
from ._tables import HardwareTables
from ._types import UNKNOWN, GPUInfo

logger = logging.getLogger(__name__)


def _pick_primary(devices: list[GPUDevice], tables: HardwareTables) -> GPUDevice | None:
    """Prefer a discrete adapter; the backend picks it over an iGPU as well."""
    if not devices:
        return None
    for device in devices:
        if not tables.is_integrated_gpu(device.name):
            return device
    return devices[0]


def detect_gpu(probe: PlatformProbe, tables: HardwareTables) -> GPUInfo:
    devices: list[GPUDevice] = []
    try:
        devices = probe.gpu_devices()
    except Exception as exc:
        logger.warning("gpu: device enumeration failed: %s", exc)

    try:
        report = probe.compute_backend()
    except Exception as exc:
        logger.warning("gpu: compute backend query failed: %s", exc)
        report = BackendReport(
            backend=None,
            available=False,
            healthy=False,
            issues=("Could not determine compute backend health",),
        )

    primary = _pick_primary(devices, tables)
    vendor = primary.vendor if primary else UNKNOWN
    name = primary.name if primary else UNKNOWN

    issues = list(report.issues)
    healthy = report.healthy
    known_issue = None
    for device in devices:
        known_issue = tables.known_gpu_issue(device.name)
        if known_issue:
            break
    if known_issue:
        if healthy:
            logger.warning(
                "gpu: %s is on the instability denylist; marking backend unhealthy",
                name,
                extra={"context": {"gpu": name, "issue": known_issue}},
            )
        healthy = False
        issues.append(known_issue)

    if not report.available:
        healthy = False

    info = GPUInfo(
        vendor=vendor,
        model_name=name,
        is_integrated=tables.is_integrated_gpu(name) if primary else False,
        backend=report.backend,
        compute_backend_available=report.available,
        compute_backend_healthy=healthy,
        backend_version=report.version,
        known_issue=known_issue,
        issues=tuple(issues),
    )
    if not healthy:
        logger.warning(
            "gpu: compute backend unhealthy, CPU-only execution will be used",
            extra={
                "context": {
                    "gpu": name,
                    "backend": report.backend,
                    "issues": list(issues),
                }
            },
        )
    return info
