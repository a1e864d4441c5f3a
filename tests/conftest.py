"""Shared fixtures for extfile_mirror tests."""

from __future__ import annotations

import datetime as dt
from pathlib import Path

import pytest

from extfile_mirror import MappingStore, MirrorConfig

FIXED_NOW = dt.datetime(2024, 3, 1, 10, 15, 30)


@pytest.fixture
def vault(tmp_path: Path) -> Path:
    path = tmp_path / "vault"
    path.mkdir()
    return path


@pytest.fixture
def config(vault: Path, tmp_path: Path) -> MirrorConfig:
    cfg = MirrorConfig.for_vault(vault, log_dir=tmp_path / "logs", reconcile_interval_sec=0.05)
    cfg.mirror_dir.mkdir(parents=True, exist_ok=True)
    return cfg


@pytest.fixture
def store(config: MirrorConfig) -> MappingStore:
    return MappingStore(config.data_file)


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def make_external(tmp_path: Path):
    def make(relative: str, content: str = "# note\n") -> Path:
        path = tmp_path / "external" / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path.resolve()

    return make
