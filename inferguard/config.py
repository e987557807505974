"""Supervisor configuration.

Sources, lowest to highest precedence: built-in defaults,
``~/.inferguard/config.json``, ``INFERGUARD_*`` environment variables,
explicit keyword overrides (CLI flags).
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Optional

from .classifier import ClassifierThresholds
from .diagnostics import DEFAULT_BACKUP_COUNT, DEFAULT_MAX_BYTES, default_log_dir

logger = logging.getLogger(__name__)

ENV_PREFIX = "INFERGUARD_"
DEFAULT_WATCHDOG_SECONDS = 90.0


@dataclass(frozen=True)
class RuntimeOverrides:
    """User-chosen resource parameters layered over the classifier's verdict."""

    force_cpu_only: bool = False
    max_context_tokens: Optional[int] = None
    max_batch_size: Optional[int] = None
    thread_count: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RuntimeOverrides":
        def _pos_int(key: str) -> Optional[int]:
            value = data.get(key)
            if value in (None, ""):
                return None
            try:
                n = int(value)
            except (TypeError, ValueError):
                logger.warning("Ignoring invalid override %s=%r", key, value)
                return None
            return n if n > 0 else None

        return cls(
            force_cpu_only=_as_bool(data.get("force_cpu_only", False)),
            max_context_tokens=_pos_int("max_context_tokens"),
            max_batch_size=_pos_int("max_batch_size"),
            thread_count=_pos_int("thread_count"),
        )


@dataclass(frozen=True)
class SupervisorConfig:
    watchdog_seconds: float = DEFAULT_WATCHDOG_SECONDS
    startup_timeout_seconds: float = 15.0
    failure_threshold: int = 2
    health_poll_interval: float = 0.5

    too_old_ram_gb: float = 6.0
    hdd_ram_gb: float = 8.0
    unhealthy_backend_ram_gb: float = 12.0
    limited_ram_gb: float = 8.0
    large_ram_gb: float = 16.0

    log_max_bytes: int = DEFAULT_MAX_BYTES
    log_backup_count: int = DEFAULT_BACKUP_COUNT
    log_dir: str = field(default_factory=lambda: str(default_log_dir()))

    host: str = "127.0.0.1"
    port: int = 11435
    server_binary: Optional[str] = None
    hardware_tables_path: Optional[str] = None

    overrides: RuntimeOverrides = field(default_factory=RuntimeOverrides)

    def __post_init__(self) -> None:
        if not self.watchdog_seconds or self.watchdog_seconds <= 0:
            logger.warning(
                "watchdog_seconds must be positive; using %.0f",
                DEFAULT_WATCHDOG_SECONDS,
                extra={"context": {"rejected": self.watchdog_seconds}},
            )
            object.__setattr__(self, "watchdog_seconds", DEFAULT_WATCHDOG_SECONDS)
        if self.failure_threshold < 1:
            object.__setattr__(self, "failure_threshold", 1)

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def thresholds(self) -> ClassifierThresholds:
        return ClassifierThresholds(
            too_old_ram_gb=self.too_old_ram_gb,
            hdd_ram_gb=self.hdd_ram_gb,
            unhealthy_backend_ram_gb=self.unhealthy_backend_ram_gb,
            limited_ram_gb=self.limited_ram_gb,
            large_ram_gb=self.large_ram_gb,
        )

    def with_updates(self, **changes: Any) -> "SupervisorConfig":
        """Apply non-None keyword changes; override keys go to ``overrides``."""
        override_keys = {f.name for f in fields(RuntimeOverrides)}
        top: dict[str, Any] = {}
        ov: dict[str, Any] = {}
        for key, value in changes.items():
            if value is None:
                continue
            if key in override_keys:
                ov[key] = value
            else:
                top[key] = value
        if ov:
            top["overrides"] = replace(self.overrides, **ov)
        return replace(self, **top) if top else self

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Config file helpers (~/.inferguard/config.json)
# ---------------------------------------------------------------------------


def _config_path() -> Path:
    return Path.home() / ".inferguard" / "config.json"


def load_config(path: Optional[Path] = None) -> dict[str, Any]:
    """Load the raw persisted config from ``~/.inferguard/config.json``."""
    path = path or _config_path()
    if path.exists():
        try:
            data = json.loads(path.read_text())
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Could not read %s: %s", path, exc)
            return {}
        return data if isinstance(data, dict) else {}
    return {}


def save_config(config: dict[str, Any], path: Optional[Path] = None) -> None:
    """Persist config to ``~/.inferguard/config.json``."""
    path = path or _config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(config, indent=2) + "\n")


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _coerce(name: str, raw: Any) -> Any:
    """Coerce a raw file/env value to the type of the named config field."""
    default = getattr(SupervisorConfig, name, None)
    if isinstance(default, bool):
        return _as_bool(raw)
    if isinstance(default, int) and not isinstance(default, bool):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw


def _merge(values: dict[str, Any], source: dict[str, Any], origin: str) -> None:
    simple = {f.name for f in fields(SupervisorConfig)} - {"overrides", "log_dir"}
    for key, raw in source.items():
        if key == "overrides" and isinstance(raw, dict):
            values.setdefault("overrides", {}).update(raw)
        elif key in {f.name for f in fields(RuntimeOverrides)}:
            values.setdefault("overrides", {})[key] = raw
        elif key == "log_dir":
            values["log_dir"] = str(Path(raw).expanduser())
        elif key in simple:
            try:
                values[key] = _coerce(key, raw)
            except (TypeError, ValueError):
                logger.warning("Ignoring invalid %s value for %s: %r", origin, key, raw)


def _env_values(environ: dict[str, str]) -> dict[str, Any]:
    names = {f.name for f in fields(SupervisorConfig)} | {
        f.name for f in fields(RuntimeOverrides)
    }
    out: dict[str, Any] = {}
    for name in names - {"overrides"}:
        env_name = ENV_PREFIX + name.upper()
        if env_name in environ:
            out[name] = environ[env_name]
    return out


def resolve_config(
    path: Optional[Path] = None,
    environ: Optional[dict[str, str]] = None,
    **cli: Any,
) -> SupervisorConfig:
    """Build the effective config from file, environment and CLI values."""
    values: dict[str, Any] = {}
    _merge(values, load_config(path), "config file")
    _merge(values, _env_values(dict(os.environ) if environ is None else environ), "environment")
    _merge(values, {k: v for k, v in cli.items() if v is not None}, "command line")

    overrides = RuntimeOverrides.from_dict(values.pop("overrides", {}))
    config = SupervisorConfig(overrides=overrides, **values)
    logger.debug("Effective config: %s", config.to_dict())
    return config
