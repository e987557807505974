"""Tests for inferguard.hardware._unified: HardwareProfiler."""

from __future__ import annotations

import dataclasses
from unittest.mock import MagicMock, patch

import pytest

from factories import GIB, StubProbe

from inferguard.hardware import DiskType, HardwareProfiler, load_tables
from inferguard.hardware._base import GPUDevice


@pytest.fixture
def mock_psutil():
    m = MagicMock()
    m.cpu_count.side_effect = lambda logical: 8 if logical else 4
    m.virtual_memory.return_value = MagicMock(total=16 * GIB, available=9 * GIB)
    m.disk_usage.return_value = MagicMock(free=200 * GIB)
    with patch.dict("sys.modules", {"psutil": m}):
        yield m


def _profiler(tmp_path, **probe_kw) -> HardwareProfiler:
    probe = StubProbe(
        flags={"sse4_2", "avx", "avx2", "fma"},
        devices=[GPUDevice("NVIDIA", "NVIDIA GeForce RTX 3060")],
        **probe_kw,
    )
    return HardwareProfiler(probe=probe, tables=load_tables(), storage_path=tmp_path)


class TestHardwareProfiler:
    def test_detect(self, tmp_path, mock_psutil) -> None:
        profile = _profiler(tmp_path).detect()
        assert profile.cpu.has_avx2 is True
        assert profile.cpu.physical_cores == 4
        assert profile.ram_total_bytes == 16 * GIB
        assert profile.ram_total_gb == 16.0
        assert profile.ram_free_gb == 9.0
        assert profile.disk.type == DiskType.SSD
        assert profile.disk.free_bytes == 200 * GIB
        assert profile.gpu.compute_backend_healthy is True
        assert any(d.startswith("cpu:") for d in profile.diagnostics)

    def test_cached(self, tmp_path, mock_psutil) -> None:
        profiler = _profiler(tmp_path)
        assert profiler.detect() is profiler.detect()

    def test_force_redetects(self, tmp_path, mock_psutil) -> None:
        profiler = _profiler(tmp_path)
        first = profiler.detect()
        mock_psutil.virtual_memory.return_value = MagicMock(total=8 * GIB, available=GIB)
        second = profiler.detect(force=True)
        assert second is not first
        assert second.ram_total_bytes == 8 * GIB
        assert profiler.refresh() is not second

    def test_memory_failure_is_unknown(self, tmp_path, mock_psutil) -> None:
        mock_psutil.virtual_memory.side_effect = OSError("no meminfo")
        profile = _profiler(tmp_path).detect()
        assert profile.ram_total_bytes == 0
        assert any("memory" in d for d in profile.diagnostics)

    def test_hdd_reported(self, tmp_path, mock_psutil) -> None:
        profile = _profiler(tmp_path, disk=DiskType.HDD).detect()
        assert profile.disk.type == DiskType.HDD

    def test_missing_storage_path_walks_up(self, tmp_path, mock_psutil) -> None:
        profiler = HardwareProfiler(
            probe=StubProbe(flags={"avx2"}),
            tables=load_tables(),
            storage_path=tmp_path / "does" / "not" / "exist",
        )
        profile = profiler.detect()
        mock_psutil.disk_usage.assert_called_with(str(tmp_path))
        assert profile.disk.path.endswith("exist")

    def test_profile_is_immutable(self, tmp_path, mock_psutil) -> None:
        profile = _profiler(tmp_path).detect()
        with pytest.raises(dataclasses.FrozenInstanceError):
            profile.ram_total_bytes = 1  # type: ignore[misc]

    def test_to_dict(self, tmp_path, mock_psutil) -> None:
        data = _profiler(tmp_path).detect().to_dict()
        assert data["disk"]["type"] == "SSD"
        assert data["ram_total_gb"] == 16.0
        assert data["cpu"]["has_avx2"] is True
