"""Error taxonomy for the runtime supervisor.

Each error carries a fixed ``category``, a plain-language ``user_message``
that is safe to show to an end user, and the raw ``technical`` detail,
which is only ever logged.
"""

from __future__ import annotations

import asyncio
import re
from typing import Optional

import httpx


class RuntimeSupervisorError(Exception):
    """Base class for every error the supervisor surfaces."""

    category = "request_failed"
    default_message = "The local AI model could not complete this request."
    retryable = False

    def __init__(
        self,
        technical: str = "",
        *,
        user_message: Optional[str] = None,
        retryable: Optional[bool] = None,
    ) -> None:
        self.technical = technical
        self.user_message = user_message or self.default_message
        if retryable is not None:
            self.retryable = retryable
        super().__init__(technical or self.user_message)

    def to_dict(self) -> dict[str, object]:
        return {
            "category": self.category,
            "message": self.user_message,
            "retryable": self.retryable,
        }


class HardwareDetectionError(RuntimeSupervisorError):
    category = "hardware_detection"
    default_message = "Some hardware details could not be detected."


class BackendUnhealthyError(RuntimeSupervisorError):
    category = "backend_unhealthy"
    default_message = "Switched to a slower but stable mode."


class ProcessStartError(RuntimeSupervisorError):
    category = "process_start"
    default_message = "The local AI engine failed to start. Retrying in a safer mode."


class CallTimeoutError(RuntimeSupervisorError):
    category = "call_timeout"
    default_message = "This request took too long and was cancelled. Please try again."
    retryable = True


class ResourceExhaustionError(RuntimeSupervisorError):
    category = "resource_exhaustion"
    default_message = (
        "Your computer ran out of memory for this request. Close other "
        "applications or try a smaller model."
    )
    retryable = True


class InstallationError(RuntimeSupervisorError):
    category = "installation"
    default_message = (
        "The local AI engine could not be started on this computer. Try "
        "reinstalling it, or switch to cloud mode."
    )


class ModelNotInstalledError(RuntimeSupervisorError):
    category = "model_not_installed"
    default_message = (
        "This model is not installed yet. Install it from the model settings first."
    )

    def __init__(self, model: str, technical: str = "") -> None:
        self.model = model
        super().__init__(
            technical or f"model {model!r} not found",
            user_message=(
                f"The model '{model}' is not installed yet. Install it from the "
                "model settings first."
            ),
        )


class RuntimeNotReadyError(RuntimeSupervisorError):
    category = "not_ready"
    default_message = "The local AI engine is still starting. Please wait a moment."
    retryable = True


class RequestFailedError(RuntimeSupervisorError):
    category = "request_failed"


_OOM_RE = re.compile(
    r"out of memory|\boom\b|cannot allocate|failed to allocate|insufficient memory"
    r"|requires more system memory",
    re.IGNORECASE,
)
_GPU_RE = re.compile(r"vulkan|cuda|rocm|\bhip\b|metal|\bgpu\b|vk_error", re.IGNORECASE)
_MODEL_MISSING_RE = re.compile(
    r"model\s+['\"]?([^'\"\s]+)['\"]?\s+not found|pull the model|no such model",
    re.IGNORECASE,
)


def classify_error_text(text: str, status_code: Optional[int] = None) -> RuntimeSupervisorError:
    """Map raw server error text into the taxonomy."""
    if _OOM_RE.search(text):
        return ResourceExhaustionError(text)
    match = _MODEL_MISSING_RE.search(text)
    if match or status_code == 404:
        model = match.group(1) if match and match.groups() and match.group(1) else ""
        return ModelNotInstalledError(model or "unknown", text)
    if _GPU_RE.search(text):
        return BackendUnhealthyError(text)
    if "timeout" in text.lower() or "timed out" in text.lower():
        return CallTimeoutError(text)
    return RequestFailedError(text)


def translate_error(exc: BaseException) -> RuntimeSupervisorError:
    """Translate any low-level failure into a :class:`RuntimeSupervisorError`."""
    if isinstance(exc, RuntimeSupervisorError):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return CallTimeoutError(str(exc) or type(exc).__name__)
    if isinstance(exc, MemoryError):
        return ResourceExhaustionError(str(exc) or "MemoryError")
    if isinstance(exc, httpx.HTTPStatusError):
        return classify_error_text(exc.response.text, exc.response.status_code)
    if isinstance(exc, httpx.ConnectError):
        return RuntimeNotReadyError(str(exc))
    if isinstance(exc, httpx.HTTPError):
        return classify_error_text(str(exc))
    if isinstance(exc, FileNotFoundError):
        return InstallationError(str(exc))
    if isinstance(exc, PermissionError):
        return InstallationError(str(exc))
    if isinstance(exc, OSError):
        return ProcessStartError(str(exc))
    return classify_error_text(f"{type(exc).__name__}: {exc}")
