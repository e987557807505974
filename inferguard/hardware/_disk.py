"""Primary-disk type and free space."""

from __future__ import annotations

import logging
import os

from ._base import PlatformProbe
from ._types import UNKNOWN_BYTES, DiskInfo, DiskType

logger = logging.getLogger(__name__)


def detect_disk(probe: PlatformProbe, path: str) -> DiskInfo:
    """Detect the disk holding ``path``.

    Unknown rotational state stays ``DiskType.UNKNOWN``; nothing here
    assumes solid-state storage.
    """
    import psutil

    target = path
    while target and not os.path.exists(target):
        parent = os.path.dirname(target)
        if parent == target:
            break
        target = parent

    free = UNKNOWN_BYTES
    try:
        free = int(psutil.disk_usage(target or os.sep).free)
    except Exception as exc:
        logger.warning("disk: free space query failed for %s: %s", target, exc)

    disk_type = DiskType.UNKNOWN
    try:
        disk_type = probe.disk_type(target or os.sep)
    except Exception as exc:
        logger.warning("disk: type detection failed for %s: %s", target, exc)

    return DiskInfo(type=disk_type, free_bytes=free, path=path)
