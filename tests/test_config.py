"""Tests for inferguard.config: defaults, persisted file, environment."""

from __future__ import annotations

import json
import logging

from inferguard.config import (
    RuntimeOverrides,
    SupervisorConfig,
    load_config,
    resolve_config,
    save_config,
)


class TestSupervisorConfig:
    def test_defaults(self) -> None:
        config = SupervisorConfig()
        assert config.watchdog_seconds == 90
        assert config.startup_timeout_seconds == 15
        assert config.failure_threshold == 2
        assert config.log_max_bytes == 5 * 1024 * 1024
        assert config.log_backup_count == 3
        assert config.base_url == "http://127.0.0.1:11435"

    def test_watchdog_cannot_be_disabled(self, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="inferguard.config"):
            config = SupervisorConfig(watchdog_seconds=0)
        assert config.watchdog_seconds == 90
        assert "watchdog_seconds" in caplog.text

    def test_negative_watchdog(self) -> None:
        assert SupervisorConfig(watchdog_seconds=-5).watchdog_seconds == 90

    def test_thresholds(self) -> None:
        thresholds = SupervisorConfig(too_old_ram_gb=4, limited_ram_gb=6).thresholds()
        assert thresholds.too_old_ram_gb == 4
        assert thresholds.limited_ram_gb == 6
        assert thresholds.unhealthy_backend_ram_gb == 12

    def test_with_updates_routes_overrides(self) -> None:
        config = SupervisorConfig().with_updates(port=9999, force_cpu_only=True, host=None)
        assert config.port == 9999
        assert config.host == "127.0.0.1"
        assert config.overrides.force_cpu_only is True


class TestConfigFile:
    def test_missing(self, tmp_path) -> None:
        assert load_config(tmp_path / "none.json") == {}

    def test_corrupt(self, tmp_path) -> None:
        path = tmp_path / "config.json"
        path.write_text("{broken")
        assert load_config(path) == {}

    def test_save_and_load(self, tmp_path) -> None:
        path = tmp_path / "sub" / "config.json"
        save_config({"watchdog_seconds": 30}, path)
        assert load_config(path) == {"watchdog_seconds": 30}


class TestResolveConfig:
    def _write(self, tmp_path, data) -> object:
        path = tmp_path / "config.json"
        path.write_text(json.dumps(data))
        return path

    def test_file_values(self, tmp_path) -> None:
        path = self._write(
            tmp_path,
            {"watchdog_seconds": 30, "overrides": {"force_cpu_only": True, "thread_count": 2}},
        )
        config = resolve_config(path, environ={})
        assert config.watchdog_seconds == 30
        assert config.overrides == RuntimeOverrides(force_cpu_only=True, thread_count=2)

    def test_precedence(self, tmp_path) -> None:
        path = self._write(tmp_path, {"watchdog_seconds": 30, "port": 1111})
        env = {"INFERGUARD_WATCHDOG_SECONDS": "45"}
        assert resolve_config(path, environ=env).watchdog_seconds == 45
        assert resolve_config(path, environ=env, watchdog_seconds=60).watchdog_seconds == 60
        assert resolve_config(path, environ=env).port == 1111

    def test_env_override_flags(self, tmp_path) -> None:
        env = {"INFERGUARD_FORCE_CPU_ONLY": "yes", "INFERGUARD_MAX_CONTEXT_TOKENS": "768"}
        config = resolve_config(tmp_path / "none.json", environ=env)
        assert config.overrides.force_cpu_only is True
        assert config.overrides.max_context_tokens == 768

    def test_invalid_env_value_ignored(self, tmp_path, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="inferguard.config"):
            config = resolve_config(tmp_path / "none.json", environ={"INFERGUARD_PORT": "abc"})
        assert config.port == 11435
        assert "port" in caplog.text

    def test_none_cli_values_ignored(self, tmp_path) -> None:
        config = resolve_config(tmp_path / "none.json", environ={}, port=None, log_dir=None)
        assert config.port == 11435

    def test_log_dir_expanded(self, tmp_path) -> None:
        config = resolve_config(tmp_path / "none.json", environ={}, log_dir="~/x/logs")
        assert not config.log_dir.startswith("~")

    def test_invalid_override_ignored(self, tmp_path) -> None:
        path = self._write(tmp_path, {"thread_count": "lots", "max_batch_size": -1})
        config = resolve_config(path, environ={})
        assert config.overrides.thread_count is None
        assert config.overrides.max_batch_size is None
