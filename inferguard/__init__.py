"""inferguard: local inference runtime supervisor."""

from __future__ import annotations

__version__ = "0.1.0"

from .classifier import ExecutionProfile, Tier, classify  # noqa: E402
from .config import RuntimeOverrides, SupervisorConfig  # noqa: E402
from .diagnostics import configure_diagnostics, get_diagnostics  # noqa: E402
from .errors import RuntimeSupervisorError  # noqa: E402
from .hardware import HardwareProfile, detect_hardware  # noqa: E402
from .supervisor import (  # noqa: E402
    ChatRequest,
    ChatResult,
    HealthStatus,
    RuntimeMode,
    RuntimeSupervisor,
)

__all__ = [
    "ChatRequest",
    "ChatResult",
    "ExecutionProfile",
    "HardwareProfile",
    "HealthStatus",
    "RuntimeMode",
    "RuntimeOverrides",
    "RuntimeSupervisor",
    "RuntimeSupervisorError",
    "SupervisorConfig",
    "Tier",
    "classify",
    "configure_diagnostics",
    "detect_hardware",
    "get_diagnostics",
]
