"""Per-OS probe strategy base class and selection.

Each platform module (``_linux``, ``_windows``, ``_darwin``) implements
``PlatformProbe``.  Probes only gather raw facts; the ``_cpu``, ``_disk``
and ``_gpu`` modules turn them into profile dataclasses.  Shelling out goes
through an injectable command runner so every probe can be exercised with
fixed fixture output.
"""

from __future__ import annotations

import abc
import logging
import subprocess
import sys
from dataclasses import dataclass, field
from typing import Callable, Optional

from ._types import DiskType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


Runner = Callable[[list[str], float], CommandResult]


def run_command(cmd: list[str], timeout: float = 5.0) -> CommandResult:
    """Run an OS query utility.

    Raises ``FileNotFoundError`` when the tool is missing and
    ``subprocess.TimeoutExpired`` when it hangs; callers decide what that
    means for their field.
    """
    kwargs = {}
    if sys.platform == "win32":
        kwargs["creationflags"] = getattr(subprocess, "CREATE_NO_WINDOW", 0)
    proc = subprocess.run(
        cmd,
        capture_output=True,
        text=True,
        timeout=timeout,
        **kwargs,
    )
    return CommandResult(proc.returncode, proc.stdout or "", proc.stderr or "")


def read_text_file(path: str) -> str:
    with open(path, encoding="utf-8", errors="replace") as f:
        return f.read()


@dataclass(frozen=True)
class GPUDevice:
    vendor: str
    name: str


@dataclass(frozen=True)
class BackendReport:
    """Outcome of the compute-backend capability query."""

    backend: Optional[str]
    available: bool
    healthy: bool
    version: Optional[str] = None
    issues: tuple[str, ...] = field(default_factory=tuple)


class PlatformProbe(abc.ABC):
    """Base class for per-OS hardware probes."""

    def __init__(
        self,
        runner: Runner | None = None,
        read_text: Callable[[str], str] | None = None,
    ) -> None:
        self._run = runner or run_command
        self._read_text = read_text or read_text_file

    @property
    @abc.abstractmethod
    def name(self) -> str: ...

    def cpu_model_name(self) -> str | None:
        """Marketing name of the CPU, or None when the OS does not say."""
        return None

    @abc.abstractmethod
    def cpu_flags(self) -> set[str] | None:
        """Lower-cased instruction-set flags, or None if no direct listing exists."""

    @abc.abstractmethod
    def disk_type(self, path: str) -> DiskType: ...

    @abc.abstractmethod
    def gpu_devices(self) -> list[GPUDevice]: ...

    @abc.abstractmethod
    def compute_backend(self) -> BackendReport: ...

    def server_search_paths(self) -> list[str]:
        """Platform install locations of the model server binary."""
        return []

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _query(self, cmd: list[str], timeout: float = 5.0) -> CommandResult | None:
        """Run a query tool; None when it is missing, hangs or cannot start."""
        try:
            return self._run(cmd, timeout)
        except FileNotFoundError:
            logger.debug("%s: %s not found", self.name, cmd[0])
        except subprocess.TimeoutExpired:
            logger.warning(
                "%s: %s timed out after %.0fs",
                self.name,
                cmd[0],
                timeout,
                extra={"context": {"command": " ".join(cmd)}},
            )
        except (OSError, subprocess.SubprocessError) as exc:
            logger.warning(
                "%s: %s failed: %s",
                self.name,
                cmd[0],
                exc,
                extra={"context": {"command": " ".join(cmd)}},
            )
        return None


def get_platform_probe(
    platform: str | None = None,
    runner: Runner | None = None,
    read_text: Callable[[str], str] | None = None,
) -> PlatformProbe:
    """Select the probe strategy for ``platform`` (defaults to ``sys.platform``)."""
    plat = platform or sys.platform
    if plat.startswith("linux"):
        from ._linux import LinuxProbe

        return LinuxProbe(runner=runner, read_text=read_text)
    if plat == "darwin":
        from ._darwin import DarwinProbe

        return DarwinProbe(runner=runner, read_text=read_text)
    if plat in ("win32", "cygwin"):
        from ._windows import WindowsProbe

        return WindowsProbe(runner=runner, read_text=read_text)

    from ._linux import LinuxProbe

    logger.warning("No dedicated probe for platform %r, using Linux probe", plat)
    return LinuxProbe(runner=runner, read_text=read_text)
