"""Tests for inferguard.hardware._cpu: instruction-set detection."""

from __future__ import annotations

from dataclasses import replace
from unittest.mock import MagicMock, patch

import pytest

from factories import StubProbe, make_hardware

from inferguard.classifier import Tier, classify
from inferguard.hardware import load_tables
from inferguard.hardware._cpu import detect_cpu, features_from_flags


@pytest.fixture
def mock_psutil():
    m = MagicMock()
    m.cpu_count.side_effect = lambda logical: 12 if logical else 6
    with patch.dict("sys.modules", {"psutil": m}):
        yield m


class TestFeaturesFromFlags:
    def test_linux_spelling(self) -> None:
        features = features_from_flags({"sse4_2", "avx", "avx2", "fma", "avx512f"})
        assert features == {
            "sse42": True,
            "avx": True,
            "avx2": True,
            "fma": True,
            "avx512": True,
        }

    def test_macos_spelling(self) -> None:
        features = features_from_flags({"sse4.2", "avx1.0"})
        assert features["sse42"] is True
        assert features["avx"] is True
        assert features["avx2"] is False

    def test_empty(self) -> None:
        assert not any(features_from_flags(set()).values())


class TestDetectCpu:
    def test_flags_are_used(self, mock_psutil) -> None:
        probe = StubProbe(flags={"sse4_2", "avx", "avx2", "fma"})
        cpu = detect_cpu(probe, load_tables())
        assert cpu.detection_method == "flags"
        assert cpu.has_avx2 is True
        assert cpu.has_avx512 is False
        assert cpu.physical_cores == 6
        assert cpu.logical_cores == 12

    def test_flags_win_over_table(self, mock_psutil) -> None:
        # table says 3rd gen (no AVX2) but the flag listing says otherwise
        probe = StubProbe(
            model_name="Intel(R) Core(TM) i5-3470 CPU @ 3.20GHz",
            flags={"sse4_2", "avx", "avx2"},
        )
        cpu = detect_cpu(probe, load_tables())
        assert cpu.has_avx2 is True
        assert cpu.generation is None

    def test_table_fallback_without_flags(self, mock_psutil) -> None:
        probe = StubProbe(model_name="Intel(R) Core(TM) i5-3470 CPU @ 3.20GHz", flags=None)
        cpu = detect_cpu(probe, load_tables())
        assert cpu.detection_method == "generation-table"
        assert cpu.generation == "3rd Gen Intel Core"
        assert cpu.has_avx is True
        assert cpu.has_avx2 is False

    def test_unknown_cpu_leaves_features_unknown(self, mock_psutil) -> None:
        probe = StubProbe(model_name="Mystery Chip 9000", flags=None)
        cpu = detect_cpu(probe, load_tables())
        assert cpu.detection_method == "unknown"
        assert cpu.has_avx2 is None

    def test_flag_probe_error_falls_back_to_table(self, mock_psutil) -> None:
        probe = StubProbe(model_name="AMD Ryzen 7 5800X 8-Core Processor")
        with patch.object(probe, "cpu_flags", side_effect=OSError("boom")):
            cpu = detect_cpu(probe, load_tables())
        assert cpu.detection_method == "generation-table"
        assert cpu.has_avx2 is True

    def test_physical_cores_fallback(self) -> None:
        m = MagicMock()
        m.cpu_count.side_effect = lambda logical: 8 if logical else None
        with patch.dict("sys.modules", {"psutil": m}):
            cpu = detect_cpu(StubProbe(flags={"avx2"}), load_tables())
        assert cpu.logical_cores == 8
        assert cpu.physical_cores == 4

    def test_core_count_failure(self) -> None:
        m = MagicMock()
        m.cpu_count.side_effect = RuntimeError("no /proc")
        with patch.dict("sys.modules", {"psutil": m}):
            cpu = detect_cpu(StubProbe(flags={"avx2"}), load_tables())
        assert cpu.physical_cores == 0
        assert cpu.has_avx2 is True


class TestArmCpus:
    """ARM CPUs report real flags and classify identically on every platform."""

    def _detect(self, probe: StubProbe):
        with patch("inferguard.hardware._cpu.platform.machine", return_value="arm64"):
            return detect_cpu(probe, load_tables())

    def test_apple_silicon_without_listing(self, mock_psutil) -> None:
        cpu = self._detect(StubProbe(model_name="Apple M2", flags=None))
        assert cpu.detection_method == "generation-table"
        assert cpu.generation == "Apple Silicon"
        assert cpu.has_avx2 is False
        assert cpu.architecture == "arm64"

    def test_linux_arm_feature_listing(self, mock_psutil) -> None:
        cpu = self._detect(StubProbe(model_name=None, flags={"fp", "asimd", "aes"}))
        assert cpu.detection_method == "flags"
        assert cpu.has_avx2 is False

    def test_same_verdict_on_both_platforms(self, mock_psutil) -> None:
        darwin = self._detect(StubProbe(model_name="Apple M2", flags=None))
        linux = self._detect(StubProbe(model_name=None, flags={"fp", "asimd"}))
        verdicts = [
            classify(replace(make_hardware(ram_gb=16), cpu=cpu)) for cpu in (darwin, linux)
        ]
        assert {v.tier for v in verdicts} == {Tier.TOO_OLD}
        assert verdicts[0].warnings[0] == verdicts[1].warnings[0]
        assert verdicts[0].warnings[0].startswith("arm64 CPU has no AVX2")
