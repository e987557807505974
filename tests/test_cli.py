"""Tests for the inferguard command-line interface."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

from click.testing import CliRunner

from factories import make_hardware

from inferguard.cli import main
from inferguard.errors import ModelNotInstalledError
from inferguard.supervisor import ChatResult, RuntimeMode


class TestMain:
    def test_version(self):
        result = CliRunner().invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_help_without_command(self):
        result = CliRunner().invoke(main, [])
        assert result.exit_code == 0
        assert "profile" in result.output
        assert "serve" in result.output


class TestProfileCommand:
    @patch("inferguard.commands.profile.HardwareProfiler")
    def test_json(self, mock_profiler):
        mock_profiler.return_value.detect.return_value = make_hardware(ram_gb=7)
        result = CliRunner().invoke(main, ["profile", "--json"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.output)
        assert data["hardware"]["cpu"]["model_name"] == "Test CPU"
        assert data["executionProfile"]["tier"] == "limited"

    @patch("inferguard.commands.profile.HardwareProfiler")
    def test_force_cpu(self, mock_profiler):
        mock_profiler.return_value.detect.return_value = make_hardware()
        result = CliRunner().invoke(main, ["profile", "--json", "--force-cpu"])
        data = json.loads(result.output)
        assert data["executionProfile"]["use_compute_backend"] is False
        assert data["executionProfile"]["fallback_mode_on_start"] == "cpu_only"

    @patch("inferguard.commands.profile.HardwareProfiler")
    def test_text(self, mock_profiler):
        mock_profiler.return_value.detect.return_value = make_hardware(avx2=False)
        result = CliRunner().invoke(main, ["profile"])
        assert result.exit_code == 0, result.output
        assert "Tier:     too_old" in result.output
        assert "AVX2" in result.output


class TestLogsCommand:
    @patch("inferguard.commands.logs.get_diagnostics", return_value=None)
    def test_unconfigured_log_is_a_clean_error(self, mock_get):
        result = CliRunner().invoke(main, ["logs"])
        assert result.exit_code == 1
        assert "diagnostics log is not configured" in result.output
        assert not isinstance(result.exception, AssertionError)

    def test_path(self, tmp_path):
        result = CliRunner().invoke(main, ["logs", "--path"])
        assert result.exit_code == 0
        assert result.output.strip() == str(tmp_path / "logs" / "inferguard.log")

    def test_tail(self):
        result = CliRunner().invoke(main, ["logs", "-n", "5"])
        assert result.exit_code == 0
        lines = [line for line in result.output.splitlines() if not line.startswith("#")]
        entry = json.loads(lines[-1])
        assert entry["message"] == "Diagnostics log opened"
        assert entry["level"] == "INFO"


class TestChatCommand:
    @patch("inferguard.commands.chat._run_once", new_callable=AsyncMock)
    def test_success(self, mock_run):
        mock_run.return_value = ChatResult(
            content="Hello there", model="llama3.2",
            mode=RuntimeMode.RUNNING_CPU_ONLY, duration_ms=12.0,
        )
        result = CliRunner().invoke(main, ["chat", "llama3.2", "hi"])
        assert result.exit_code == 0
        assert "Hello there" in result.output
        request = mock_run.await_args.args[1]
        assert request.messages == [{"role": "user", "content": "hi"}]

    @patch("inferguard.commands.chat._run_once", new_callable=AsyncMock)
    def test_error_prints_user_message(self, mock_run):
        mock_run.side_effect = ModelNotInstalledError("mistral", "404 from /api/chat")
        result = CliRunner().invoke(main, ["chat", "mistral", "hi"])
        assert result.exit_code == 1
        assert "mistral" in result.output
        assert "404 from" not in result.output

    @patch("inferguard.commands.chat._run_once", new_callable=AsyncMock)
    def test_force_cpu(self, mock_run):
        mock_run.return_value = ChatResult("ok", "llama3.2", RuntimeMode.RUNNING_CPU_ONLY, 1.0)
        CliRunner().invoke(main, ["chat", "--force-cpu", "llama3.2", "hi"])
        config = mock_run.await_args.args[0]
        assert config.overrides.force_cpu_only is True


class TestServeCommand:
    @patch("inferguard.serve.run_server")
    def test_passes_options(self, mock_run):
        result = CliRunner().invoke(
            main,
            ["serve", "--port", "9000", "--server-port", "12000", "--watchdog", "30", "--force-cpu"],
        )
        assert result.exit_code == 0, result.output
        config = mock_run.call_args.args[0]
        assert mock_run.call_args.kwargs == {"host": "127.0.0.1", "port": 9000}
        assert config.port == 12000
        assert config.watchdog_seconds == 30
        assert config.overrides.force_cpu_only is True

    def test_missing_extra(self):
        with patch.dict("sys.modules", {"inferguard.serve": None}):
            result = CliRunner().invoke(main, ["serve"])
        assert result.exit_code == 1
        assert "pip install" in result.output
