"""Model server subprocess: binary resolution, launch, health wait, stop."""

from __future__ import annotations

import asyncio
import logging
import os
import re
import shutil
import subprocess
import sys
import time
from pathlib import Path
from typing import IO, Optional

from .errors import InstallationError, ProcessStartError
from .hardware import PlatformProbe, get_platform_probe
from .hardware._base import Runner, run_command
from .ollama import OllamaClient

logger = logging.getLogger(__name__)

SERVER_BINARY = "ollama.exe" if sys.platform == "win32" else "ollama"
BUNDLED_DIR = Path(__file__).resolve().parent / "bin"
STOP_GRACE_SECONDS = 5.0

# Forces the server onto its CPU library regardless of installed drivers.
CPU_ONLY_ENV = {
    "OLLAMA_NO_GPU": "1",
    "OLLAMA_LLM_LIBRARY": "cpu",
    "CUDA_VISIBLE_DEVICES": "-1",
    "HIP_VISIBLE_DEVICES": "-1",
}

_VERSION_RE = re.compile(r"(\d+\.\d+(?:\.\d+)?(?:[-+.\w]*)?)")


def resolve_server_binary(
    explicit: Optional[str] = None,
    probe: Optional[PlatformProbe] = None,
) -> str:
    """Locate the server executable.

    Order: explicit path, bundled copy, platform install locations, PATH.
    Raises :class:`InstallationError` when none exists.
    """
    if explicit:
        if os.path.isfile(explicit):
            return explicit
        raise InstallationError(f"configured server binary not found: {explicit}")

    candidates = [str(BUNDLED_DIR / SERVER_BINARY)]
    try:
        candidates.extend((probe or get_platform_probe()).server_search_paths())
    except Exception as exc:
        logger.warning("Could not list platform install locations: %s", exc)

    for candidate in candidates:
        if os.path.isfile(candidate):
            logger.debug("Using server binary %s", candidate)
            return candidate

    found = shutil.which(SERVER_BINARY)
    if found:
        return found
    raise InstallationError(
        f"{SERVER_BINARY} not found (searched {', '.join(candidates)} and PATH)"
    )


def server_version(binary: str, runner: Runner = run_command) -> Optional[str]:
    """Version reported by ``<binary> --version``, or None."""
    try:
        result = runner([binary, "--version"], 5.0)
    except (OSError, subprocess.SubprocessError) as exc:
        logger.warning("Could not query server version: %s", exc)
        return None
    match = _VERSION_RE.search(result.stdout or result.stderr)
    return match.group(1) if match else None


def server_env(
    cpu_only: bool,
    host: str,
    port: int,
    base: Optional[dict[str, str]] = None,
) -> dict[str, str]:
    env = dict(os.environ if base is None else base)
    env["OLLAMA_HOST"] = f"{host}:{port}"
    env["OLLAMA_NUM_PARALLEL"] = "1"
    if cpu_only:
        env.update(CPU_ONLY_ENV)
    return env


def _tail(path: Optional[Path], limit: int = 2000) -> str:
    if path is None:
        return ""
    try:
        data = path.read_bytes()
    except OSError:
        return ""
    return data[-limit:].decode("utf-8", errors="replace")


class ServerProcess:
    """One owned ``<binary> serve`` subprocess."""

    def __init__(
        self,
        binary: str,
        *,
        host: str,
        port: int,
        cpu_only: bool,
        stderr_path: Optional[Path] = None,
    ) -> None:
        self.binary = binary
        self.host = host
        self.port = port
        self.cpu_only = cpu_only
        self.stderr_path = stderr_path
        self.client = OllamaClient(f"http://{host}:{port}")
        self._proc: Optional[subprocess.Popen] = None
        self._stderr: Optional[IO[bytes]] = None

    @property
    def pid(self) -> Optional[int]:
        return self._proc.pid if self._proc else None

    @property
    def running(self) -> bool:
        return self._proc is not None and self._proc.poll() is None

    def spawn(self) -> None:
        kwargs = {}
        if sys.platform == "win32":
            kwargs["creationflags"] = getattr(subprocess, "CREATE_NO_WINDOW", 0)
        if self.stderr_path is not None:
            self.stderr_path.parent.mkdir(parents=True, exist_ok=True)
            self._stderr = open(self.stderr_path, "ab")
        try:
            self._proc = subprocess.Popen(
                [self.binary, "serve"],
                env=server_env(self.cpu_only, self.host, self.port),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=self._stderr or subprocess.DEVNULL,
                **kwargs,
            )
        except FileNotFoundError as exc:
            self._close_stderr()
            raise InstallationError(str(exc)) from exc
        except OSError as exc:
            self._close_stderr()
            raise ProcessStartError(str(exc)) from exc
        logger.info(
            "Server process launched",
            extra={
                "context": {
                    "pid": self._proc.pid,
                    "cpu_only": self.cpu_only,
                    "address": f"{self.host}:{self.port}",
                }
            },
        )

    async def wait_healthy(self, timeout: float, poll_interval: float = 0.5) -> None:
        """Poll the server until it answers, it exits, or ``timeout`` elapses."""
        deadline = time.monotonic() + timeout
        while True:
            if self._proc is not None and self._proc.poll() is not None:
                code = self._proc.returncode
                raise ProcessStartError(
                    f"server exited with code {code} during startup: "
                    f"{_tail(self.stderr_path)}".strip()
                )
            if await self.client.ping(timeout=min(2.0, max(poll_interval, 0.1))):
                return
            if time.monotonic() >= deadline:
                raise ProcessStartError(
                    f"server did not become healthy within {timeout:.0f}s: "
                    f"{_tail(self.stderr_path)}".strip()
                )
            await asyncio.sleep(poll_interval)

    def stop(self, grace: float = STOP_GRACE_SECONDS) -> None:
        proc = self._proc
        if proc is not None and proc.poll() is None:
            proc.terminate()
            try:
                proc.wait(timeout=grace)
            except subprocess.TimeoutExpired:
                logger.warning("Server process %d ignored terminate; killing", proc.pid)
                proc.kill()
                proc.wait(timeout=grace)
            logger.info("Server process stopped", extra={"context": {"pid": proc.pid}})
        self._proc = None
        self._close_stderr()

    def _close_stderr(self) -> None:
        if self._stderr is not None:
            self._stderr.close()
            self._stderr = None


class ProcessLauncher:
    """Launches a healthy server in the requested mode.

    Resolves the binary once; a missing binary is an installation problem
    and is raised immediately, since no fallback tier could fix it.
    """

    def __init__(
        self,
        *,
        host: str,
        port: int,
        startup_timeout: float = 15.0,
        poll_interval: float = 0.5,
        binary: Optional[str] = None,
        log_dir: Optional[str] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.startup_timeout = startup_timeout
        self.poll_interval = poll_interval
        self._explicit_binary = binary
        self._binary: Optional[str] = None
        self._stderr_path = Path(log_dir) / "server-stderr.log" if log_dir else None

    @property
    def binary(self) -> str:
        if self._binary is None:
            self._binary = resolve_server_binary(self._explicit_binary)
        return self._binary

    def version(self) -> Optional[str]:
        return server_version(self.binary)

    async def launch(self, cpu_only: bool) -> ServerProcess:
        proc = ServerProcess(
            self.binary,
            host=self.host,
            port=self.port,
            cpu_only=cpu_only,
            stderr_path=self._stderr_path,
        )
        proc.spawn()
        try:
            await proc.wait_healthy(self.startup_timeout, self.poll_interval)
        except BaseException:
            await asyncio.to_thread(proc.stop)
            raise
        return proc
