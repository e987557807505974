from __future__ import annotations

import logging
import os

import pytest

from inferguard.diagnostics import shutdown_diagnostics


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep config and logs out of the real home directory."""
    monkeypatch.setattr(
        "inferguard.config._config_path", lambda: tmp_path / "home" / "config.json"
    )
    for name in list(os.environ):
        if name.startswith("INFERGUARD_"):
            monkeypatch.delenv(name)
    monkeypatch.setenv("INFERGUARD_LOG_DIR", str(tmp_path / "logs"))
    yield
    shutdown_diagnostics()
    root = logging.getLogger("inferguard")
    for handler in list(root.handlers):
        if getattr(handler, "_inferguard_console", False):
            root.removeHandler(handler)
