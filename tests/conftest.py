from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pytest


@pytest.fixture
def fake_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    return home


@dataclass
class Layout:
    source_root: Path
    dest_root: Path
    backup_root: Path


@pytest.fixture
def layout(tmp_path: Path) -> Layout:
    root = tmp_path.resolve()
    source_root = root / "dotfiles"
    dest_root = root / "config"
    source_root.mkdir()
    dest_root.mkdir()
    return Layout(source_root=source_root, dest_root=dest_root, backup_root=root / "config_backup_test")
