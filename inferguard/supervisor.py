"""Runtime supervisor: fallback state machine and per-call watchdog.

The supervisor owns one model server process.  It starts in the most
capable mode the execution profile allows and only ever moves down the
fallback ladder::

    compute backend  ->  CPU only  ->  CPU only (reduced)  ->  failed

A start failure moves to the next rung immediately.  While running, a
chat call that hits the watchdog (or exhausts memory) counts as a
failure; ``failure_threshold`` consecutive failures restart the server
one rung down.  A call that finds the server process gone (connection
refused or dropped, or the process exited) restarts it one rung down
straight away.  Only :meth:`RuntimeSupervisor.initialize` resets the
ladder.

State-changing operations (start, downgrade, shutdown) run under one
``asyncio.Lock``.  Each launched process gets a new *generation*; a
failure reported by a call that began under an older generation is
ignored, so concurrent timeouts trigger at most one restart.
``health_status()`` reads an immutable snapshot and never waits.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import subprocess
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from .catalog import ModelCatalog, ServerModelCatalog
from .classifier import (
    ExecutionProfile,
    apply_overrides,
    classify,
    reduce_profile,
    without_compute_backend,
)
from .config import SupervisorConfig
from .errors import (
    BackendUnhealthyError,
    CallTimeoutError,
    InstallationError,
    ModelNotInstalledError,
    ProcessStartError,
    ResourceExhaustionError,
    RuntimeNotReadyError,
    RuntimeSupervisorError,
    translate_error,
)
from .hardware import HardwareProfile, HardwareProfiler, load_tables
from .ollama import OllamaClient, OllamaModel
from .process import ProcessLauncher

logger = logging.getLogger(__name__)


class RuntimeMode(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    STARTING_COMPUTE_BACKEND = "starting_compute_backend"
    STARTING_CPU_ONLY = "starting_cpu_only"
    STARTING_CPU_REDUCED = "starting_cpu_reduced"
    RUNNING_COMPUTE_BACKEND = "running_compute_backend"
    RUNNING_CPU_ONLY = "running_cpu_only"
    RUNNING_CPU_REDUCED = "running_cpu_reduced"
    FAILED = "failed"

    @property
    def is_running(self) -> bool:
        return self in _RUNNING

    @property
    def is_starting(self) -> bool:
        return self in _STARTING


# Fallback ladder, most capable first.  Index == rung.
_STARTING = (
    RuntimeMode.STARTING_COMPUTE_BACKEND,
    RuntimeMode.STARTING_CPU_ONLY,
    RuntimeMode.STARTING_CPU_REDUCED,
)
_RUNNING = (
    RuntimeMode.RUNNING_COMPUTE_BACKEND,
    RuntimeMode.RUNNING_CPU_ONLY,
    RuntimeMode.RUNNING_CPU_REDUCED,
)
RUNG_COMPUTE_BACKEND = 0
RUNG_CPU_ONLY = 1
RUNG_CPU_REDUCED = 2
RUNG_FAILED = 3


@dataclass(frozen=True)
class HealthStatus:
    mode: RuntimeMode
    active_profile: Optional[ExecutionProfile] = None
    warnings: tuple[str, ...] = ()
    consecutive_failures: int = 0
    restarts: int = 0
    server_version: Optional[str] = None
    last_error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "activeExecutionProfile": (
                self.active_profile.to_dict() if self.active_profile else None
            ),
            "warnings": list(self.warnings),
            "consecutiveFailures": self.consecutive_failures,
            "restarts": self.restarts,
            "serverVersion": self.server_version,
            "lastError": self.last_error,
        }


@dataclass
class ChatRequest:
    model: str
    messages: list[dict[str, Any]]
    options: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class ChatResult:
    content: str
    model: str
    mode: RuntimeMode
    duration_ms: float


def _server_lost(handle: Any, exc: BaseException) -> bool:
    """Whether a failed call means the owned server process is gone."""
    if getattr(handle, "running", True) is False:
        return True
    return isinstance(exc, (httpx.NetworkError, httpx.RemoteProtocolError))


def cap_request_options(
    profile: ExecutionProfile, options: Optional[dict[str, Any]]
) -> dict[str, Any]:
    """Merge caller options with the profile's resource limits.

    Resource keys never exceed the active profile; other options pass
    through untouched.
    """
    merged = dict(options or {})
    for key, limit in profile.server_options().items():
        value = merged.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0:
            merged[key] = min(int(value), limit)
        else:
            merged[key] = limit
    return merged


class RuntimeSupervisor:
    """Owns the model server process and its fallback state.

    Parameters
    ----------
    config:
        Tunables and user overrides.
    profiler:
        Hardware profiler; defaults to one using the configured tables.
    launcher:
        Object with ``async launch(cpu_only) -> handle``.  The handle needs
        ``client.chat(...)`` and ``stop()``.  Defaults to a
        :class:`ProcessLauncher` for the configured address.
    catalog:
        Installed-model lookup; defaults to the server's own listing.
    """

    def __init__(
        self,
        config: Optional[SupervisorConfig] = None,
        *,
        profiler: Optional[HardwareProfiler] = None,
        launcher: Any = None,
        catalog: Optional[ModelCatalog] = None,
    ) -> None:
        self.config = config or SupervisorConfig()
        if profiler is None:
            tables = (
                load_tables(self.config.hardware_tables_path)
                if self.config.hardware_tables_path
                else None
            )
            profiler = HardwareProfiler(tables=tables)
        self._profiler = profiler
        self._launcher = launcher or ProcessLauncher(
            host=self.config.host,
            port=self.config.port,
            startup_timeout=self.config.startup_timeout_seconds,
            poll_interval=self.config.health_poll_interval,
            binary=self.config.server_binary,
            log_dir=self.config.log_dir,
        )
        self._catalog = catalog or ServerModelCatalog(OllamaClient(self.config.base_url))

        self._lock = asyncio.Lock()
        self._hardware: Optional[HardwareProfile] = None
        self._base_profile: Optional[ExecutionProfile] = None
        self._active_profile: Optional[ExecutionProfile] = None
        self._handle: Any = None
        self._mode = RuntimeMode.UNINITIALIZED
        self._rung = RUNG_COMPUTE_BACKEND
        self._generation = 0
        self._failures = 0
        self._restarts = 0
        self._server_version: Optional[str] = None
        self._last_error: Optional[str] = None
        self._pending: Optional[asyncio.Task] = None
        self._status = HealthStatus(mode=RuntimeMode.UNINITIALIZED)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def mode(self) -> RuntimeMode:
        return self._status.mode

    def health_status(self) -> HealthStatus:
        return self._status

    def hardware_report(self) -> dict[str, Any]:
        status = self._status
        profile = status.active_profile or self._base_profile
        return {
            "mode": status.mode.value,
            "hardware": self._hardware.to_dict() if self._hardware else None,
            "executionProfile": profile.to_dict() if profile else None,
        }

    async def list_models(self) -> list[OllamaModel]:
        return await self._catalog.list_models()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> HealthStatus:
        """Detect hardware, classify it and reset the fallback ladder.

        Stops any running server; call :meth:`start` afterwards.
        """
        await self._await_pending()
        async with self._lock:
            await self._stop_handle()
            await self._initialize_locked(force=self._hardware is not None)
        return self._status

    async def start(self) -> HealthStatus:
        """Launch the server, walking down the ladder on failure.

        Raises :class:`InstallationError` when every rung fails.
        """
        await self._await_pending()
        async with self._lock:
            if self._mode.is_running:
                return self._status
            if self._mode == RuntimeMode.FAILED:
                raise InstallationError(
                    self._last_error or "all fallback modes already failed"
                )
            if self._base_profile is None:
                await self._initialize_locked(force=False)
            await self._start_from(self._rung)
        return self._status

    async def shutdown(self) -> None:
        await self._await_pending()
        async with self._lock:
            await self._stop_handle()
            self._generation += 1
            self._failures = 0
            self._set_mode(RuntimeMode.UNINITIALIZED, "shutdown")
            self._active_profile = None
            self._rung = RUNG_COMPUTE_BACKEND
            self._base_profile = None
            self._publish()

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def chat(self, request: ChatRequest) -> ChatResult:
        """Run one chat completion under the watchdog.

        Returns the completion or raises a :class:`RuntimeSupervisorError`.
        A timed-out call is cancelled and reported to this caller; any
        resulting downgrade applies to later calls.
        """
        await self._await_pending()
        async with self._lock:
            mode = self._mode
            handle = self._handle
            generation = self._generation
            profile = self._active_profile

        if mode == RuntimeMode.FAILED:
            raise InstallationError(self._last_error or "runtime failed")
        if not mode.is_running or handle is None or profile is None:
            raise RuntimeNotReadyError(f"runtime is {mode.value}")

        options = cap_request_options(profile, request.options)
        watchdog = self.config.watchdog_seconds
        started = time.monotonic()
        try:
            # The installed-model lookup counts against the same deadline.
            content = await asyncio.wait_for(
                self._checked_chat(handle, request, options),
                timeout=watchdog,
            )
        except asyncio.TimeoutError:
            err = CallTimeoutError(f"watchdog fired after {watchdog:g}s")
            self._note_failure(generation, err, request.model)
            raise err from None
        except RuntimeSupervisorError as exc:
            self._handle_call_error(
                generation, exc, request.model, lost=_server_lost(handle, exc)
            )
            raise
        except Exception as exc:
            lost = _server_lost(handle, exc)
            if lost:
                err = ProcessStartError(
                    f"server process lost: {type(exc).__name__}: {exc}", retryable=True
                )
            else:
                err = translate_error(exc)
            self._handle_call_error(generation, err, request.model, lost=lost)
            raise err from exc

        duration_ms = (time.monotonic() - started) * 1000
        if generation == self._generation and self._failures:
            self._failures = 0
            self._publish()
        logger.info(
            "Chat completed",
            extra={
                "context": {
                    "model": request.model,
                    "mode": mode.value,
                    "duration_ms": round(duration_ms),
                }
            },
        )
        return ChatResult(
            content=content, model=request.model, mode=mode, duration_ms=duration_ms
        )

    async def _checked_chat(
        self, handle: Any, request: ChatRequest, options: dict[str, Any]
    ) -> str:
        if not await self._catalog.is_installed(request.model):
            logger.warning(
                "Chat rejected: model not installed",
                extra={"context": {"model": request.model}},
            )
            raise ModelNotInstalledError(request.model)
        return await handle.client.chat(request.model, request.messages, options)

    def _handle_call_error(
        self,
        generation: int,
        err: RuntimeSupervisorError,
        model: str,
        lost: bool = False,
    ) -> None:
        if lost:
            # server process gone: restart one rung down now
            self._note_failure(generation, err, model, force=True)
        elif isinstance(err, (CallTimeoutError, ResourceExhaustionError)):
            self._note_failure(generation, err, model)
        elif isinstance(err, BackendUnhealthyError) and self._rung == RUNG_COMPUTE_BACKEND:
            self._note_failure(generation, err, model, force=True)
        else:
            logger.warning(
                "Chat failed: %s",
                err.category,
                extra={"context": {"model": model, "technical": err.technical}},
            )

    def _note_failure(
        self,
        generation: int,
        err: RuntimeSupervisorError,
        model: str,
        force: bool = False,
    ) -> None:
        # Runs without awaiting, so the check-and-increment is atomic on the loop.
        if generation != self._generation:
            logger.info(
                "Ignoring failure from a superseded server process",
                extra={"context": {"category": err.category, "model": model}},
            )
            return
        self._failures += 1
        self._last_error = err.user_message
        logger.warning(
            "Chat failure %d/%d: %s",
            self._failures,
            self.config.failure_threshold,
            err.category,
            extra={
                "context": {
                    "model": model,
                    "mode": self._mode.value,
                    "technical": err.technical,
                }
            },
        )
        if force or self._failures >= self.config.failure_threshold:
            self._generation += 1
            self._pending = asyncio.ensure_future(self._downgrade(err))
        self._publish()

    async def _await_pending(self) -> None:
        pending = self._pending
        if pending is not None and not pending.done():
            await asyncio.shield(pending)

    async def _downgrade(self, reason: RuntimeSupervisorError) -> None:
        async with self._lock:
            previous = self._mode
            await self._stop_handle()
            self._rung = min(self._rung + 1, RUNG_FAILED)
            self._failures = 0
            logger.warning(
                "Downgrading runtime",
                extra={
                    "context": {
                        "from": previous.value,
                        "reason": reason.category,
                        "technical": reason.technical,
                    }
                },
            )
            if self._rung >= RUNG_FAILED:
                self._fail(reason.technical or reason.user_message)
                return
            try:
                await self._start_from(self._rung)
            except RuntimeSupervisorError as exc:
                logger.error(
                    "Runtime could not be restarted in a lower mode",
                    extra={"context": {"category": exc.category, "technical": exc.technical}},
                )
            else:
                self._restarts += 1
                self._publish()

    # ------------------------------------------------------------------
    # Internals (lock held)
    # ------------------------------------------------------------------

    async def _initialize_locked(self, force: bool) -> None:
        hardware = await asyncio.to_thread(self._profiler.detect, force)
        profile = apply_overrides(
            classify(hardware, self.config.thresholds()), self.config.overrides
        )
        self._hardware = hardware
        self._base_profile = profile
        self._active_profile = None
        self._rung = (
            RUNG_COMPUTE_BACKEND if profile.use_compute_backend else RUNG_CPU_ONLY
        )
        self._generation += 1
        self._failures = 0
        self._last_error = None
        self._set_mode(RuntimeMode.UNINITIALIZED, "initialize")
        logger.info(
            "Execution profile selected",
            extra={"context": profile.to_dict()},
        )
        if not profile.use_compute_backend:
            logger.warning(
                "Compute backend not used; starting CPU-only",
                extra={
                    "context": {
                        "backend": hardware.gpu.backend,
                        "healthy": hardware.gpu.compute_backend_healthy,
                        "forced": self.config.overrides.force_cpu_only,
                    }
                },
            )
        self._publish()

    def _profile_for(self, rung: int) -> ExecutionProfile:
        assert self._base_profile is not None
        if rung == RUNG_COMPUTE_BACKEND:
            return self._base_profile
        cpu = without_compute_backend(self._base_profile)
        if rung == RUNG_CPU_ONLY:
            return cpu
        cores = self._hardware.cpu.physical_cores if self._hardware else 1
        return reduce_profile(cpu, cores)

    async def _start_from(self, rung: int) -> None:
        last: Optional[RuntimeSupervisorError] = None
        while rung < RUNG_FAILED:
            profile = self._profile_for(rung)
            self._rung = rung
            self._active_profile = profile
            self._set_mode(_STARTING[rung], "start")
            self._publish()
            try:
                handle = await self._launcher.launch(cpu_only=rung != RUNG_COMPUTE_BACKEND)
            except InstallationError as exc:
                self._fail(exc.technical)
                raise
            except (RuntimeSupervisorError, OSError) as exc:
                last = translate_error(exc)
                logger.warning(
                    "Server failed to start in %s mode; falling back",
                    _STARTING[rung].value,
                    extra={"context": {"category": last.category, "technical": last.technical}},
                )
                rung += 1
                continue

            self._handle = handle
            self._generation += 1
            self._failures = 0
            self._set_mode(_RUNNING[rung], "healthy")
            if self._server_version is None:
                version = getattr(self._launcher, "version", None)
                if callable(version):
                    self._server_version = await asyncio.to_thread(version)
            self._publish()
            return

        technical = last.technical if last else "no fallback mode left"
        self._fail(technical)
        raise InstallationError(technical)

    def _fail(self, technical: str) -> None:
        self._rung = RUNG_FAILED
        self._handle = None
        self._active_profile = None
        self._last_error = InstallationError.default_message
        self._set_mode(RuntimeMode.FAILED, "exhausted")
        logger.error(
            "Runtime failed; no fallback mode left",
            extra={"context": {"technical": technical}},
        )
        self._publish()

    async def _stop_handle(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            try:
                await asyncio.to_thread(handle.stop)
            except (OSError, subprocess.SubprocessError) as exc:
                logger.warning("Error stopping server process: %s", exc)

    def _set_mode(self, mode: RuntimeMode, reason: str) -> None:
        if mode != self._mode:
            logger.info(
                "Runtime mode %s -> %s",
                self._mode.value,
                mode.value,
                extra={"context": {"from": self._mode.value, "to": mode.value, "reason": reason}},
            )
        self._mode = mode

    def _publish(self) -> None:
        warnings: list[str] = list(self._base_profile.warnings) if self._base_profile else []
        if self._mode in (RuntimeMode.RUNNING_CPU_ONLY, RuntimeMode.RUNNING_CPU_REDUCED):
            if self._base_profile is not None and self._base_profile.use_compute_backend:
                warnings.append(BackendUnhealthyError.default_message)
        self._status = HealthStatus(
            mode=self._mode,
            active_profile=self._active_profile,
            warnings=tuple(warnings),
            consecutive_failures=self._failures,
            restarts=self._restarts,
            server_version=self._server_version,
            last_error=self._last_error,
        )
