"""Tests for inferguard.hardware._tables: CPU generation and GPU denylist lookups."""

from __future__ import annotations

import json

import pytest

from inferguard.hardware import load_tables
from inferguard.hardware._tables import parse_tables


@pytest.fixture(scope="module")
def tables():
    return load_tables()


class TestCpuLookup:
    @pytest.mark.parametrize(
        "name, generation, avx, avx2",
        [
            ("Intel(R) Core(TM) i7-8700K CPU @ 3.70GHz", "8th Gen Intel Core", True, True),
            ("Intel(R) Core(TM) i5-3470 CPU @ 3.20GHz", "3rd Gen Intel Core", True, False),
            ("Intel(R) Core(TM) i7-4790 CPU @ 3.60GHz", "4th Gen Intel Core", True, True),
            ("Intel(R) Core(TM) i7-1165G7 @ 2.80GHz", "11th Gen Intel Core", True, True),
            ("12th Gen Intel(R) Core(TM) i9-12900K", "12th Gen Intel Core", True, True),
            ("Intel® Core™ i5-2500 CPU", "2nd Gen Intel Core", True, False),
        ],
    )
    def test_intel_core_generations(self, tables, name, generation, avx, avx2) -> None:
        match = tables.lookup_cpu(name)
        assert match is not None
        assert match.generation == generation
        assert match.features["avx"] is avx
        assert match.features["avx2"] is avx2

    @pytest.mark.parametrize(
        "name, generation, avx2",
        [
            ("Intel(R) Core(TM)2 Duo CPU E8400 @ 3.00GHz", "Intel Core 2", False),
            ("Intel(R) Pentium(R) CPU G4560 @ 3.50GHz", "Intel low-power", False),
            ("Intel(R) Celeron(R) N4020 CPU @ 1.10GHz", "Intel low-power", False),
            ("Intel(R) Core(TM) Ultra 7 155H", "Intel Core Ultra", True),
            ("AMD Ryzen 5 3600 6-Core Processor", "AMD Ryzen", True),
            ("AMD FX(tm)-8350 Eight-Core Processor", "AMD FX", False),
            ("AMD Athlon(tm) II X2 250", "AMD pre-Zen", False),
            ("Apple M2", "Apple Silicon", False),
        ],
    )
    def test_brand_families(self, tables, name, generation, avx2) -> None:
        match = tables.lookup_cpu(name)
        assert match is not None
        assert match.generation == generation
        assert match.features["avx2"] is avx2

    def test_fx_has_avx_without_avx2(self, tables) -> None:
        match = tables.lookup_cpu("AMD FX(tm)-8350 Eight-Core Processor")
        assert match.features["avx"] is True

    @pytest.mark.parametrize("name", ["", "unknown", "Some Mystery Processor"])
    def test_no_match(self, tables, name) -> None:
        assert tables.lookup_cpu(name) is None


class TestGpuLookup:
    def test_denylisted_intel_hd(self, tables) -> None:
        assert tables.known_gpu_issue("Intel(R) HD Graphics 4000") is not None

    def test_haswell_integrated(self, tables) -> None:
        issue = tables.known_gpu_issue("Intel(R) HD Graphics 4600")
        assert "Haswell" in issue

    def test_basic_display_adapter(self, tables) -> None:
        assert tables.known_gpu_issue("Microsoft Basic Display Adapter") is not None

    def test_modern_gpu_not_listed(self, tables) -> None:
        assert tables.known_gpu_issue("NVIDIA GeForce RTX 3060") is None
        assert tables.known_gpu_issue("Intel(R) UHD Graphics 620") is None

    def test_integrated_detection(self, tables) -> None:
        assert tables.is_integrated_gpu("Intel(R) UHD Graphics 620") is True
        assert tables.is_integrated_gpu("Intel(R) Iris(R) Xe Graphics") is True
        assert tables.is_integrated_gpu("NVIDIA GeForce RTX 3060") is False


class TestLoadTables:
    def test_packaged_copy(self) -> None:
        assert load_tables().version == 3

    def test_custom_file(self, tmp_path) -> None:
        path = tmp_path / "tables.json"
        path.write_text(
            json.dumps(
                {
                    "version": 99,
                    "cpu_families": [
                        {"pattern": "\\bweird\\b", "generation": "Weird", "avx2": True}
                    ],
                }
            )
        )
        tables = load_tables(path)
        assert tables.version == 99
        assert tables.lookup_cpu("Weird CPU").features["avx2"] is True
        assert tables.lookup_cpu("Intel(R) Core(TM) i7-8700K") is None

    def test_broken_file_falls_back(self, tmp_path) -> None:
        path = tmp_path / "tables.json"
        path.write_text("{not json")
        assert load_tables(path).version == 3

    def test_missing_file_falls_back(self, tmp_path) -> None:
        assert load_tables(tmp_path / "nope.json").version == 3

    def test_parse_empty(self) -> None:
        tables = parse_tables({})
        assert tables.version == 0
        assert tables.lookup_cpu("Intel(R) Core(TM) i7-8700K") is None
        assert tables.known_gpu_issue("anything") is None
