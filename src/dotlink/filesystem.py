"""Filesystem helpers for dotlink."""

from __future__ import annotations

import os
import shutil
import stat
from pathlib import Path

from .models import EntryKind, TargetState

EXECUTABLE_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


def ensure_parent(path: Path) -> None:
    """Ensure the parent directory exists."""

    path.parent.mkdir(parents=True, exist_ok=True)


def exists(path: Path) -> bool:
    """Return ``True`` if anything, including a dangling symlink, is at ``path``."""

    return path.exists() or path.is_symlink()


def inspect_entry(path: Path) -> TargetState:
    """Return the state of ``path`` without following a final symlink."""

    if path.is_symlink():
        return TargetState(EntryKind.SYMLINK, os.readlink(path))
    if path.exists():
        return TargetState(EntryKind.REGULAR)
    return TargetState(EntryKind.ABSENT)


def copy_physical(source: Path, destination: Path) -> None:
    """Copy ``source`` to ``destination``, replacing nested symlinks with real content.

    ``destination`` must not exist. A partially written copy is removed before the
    error propagates.
    """

    if exists(destination):
        raise FileExistsError(f"'{destination}' already exists")

    ensure_parent(destination)
    try:
        if source.is_dir():
            shutil.copytree(source, destination, symlinks=False, copy_function=shutil.copy2)
        else:
            shutil.copy2(source, destination)
    except (OSError, shutil.Error):
        remove_path(destination)
        raise


def create_symlink(link: Path, target: Path) -> None:
    """Create ``link`` pointing at the absolute ``target``."""

    link.symlink_to(target.absolute(), target_is_directory=target.is_dir())


def symlink_points_to(source: Path, target: Path) -> bool:
    """Return ``True`` if ``source`` symlink resolves to ``target``."""

    if not source.is_symlink():
        return False
    current = Path(os.readlink(source))
    current_resolved = (source.parent / current).resolve(strict=False)
    target_resolved = target.resolve(strict=False)
    return current_resolved == target_resolved


def move_entry(source: Path, destination: Path) -> None:
    """Move ``source`` to ``destination``, which must not exist."""

    ensure_parent(destination)
    shutil.move(os.fspath(source), os.fspath(destination))


def remove_path(path: Path) -> None:
    """Delete ``path`` whether it is a file, directory, or symlink."""

    if not exists(path):
        return
    if path.is_symlink() or not path.is_dir():
        path.unlink()
        return
    shutil.rmtree(path)


def merge_tree(source: Path, destination: Path) -> list[Path]:
    """Copy the children of ``source`` into ``destination``, overwriting files.

    Returns the top-level paths written under ``destination``.
    """

    destination.mkdir(parents=True, exist_ok=True)
    copied: list[Path] = []
    for child in sorted(source.iterdir()):
        target = destination / child.name
        if child.is_dir():
            if target.is_symlink() or (target.exists() and not target.is_dir()):
                remove_path(target)
            shutil.copytree(child, target, dirs_exist_ok=True, copy_function=shutil.copy2)
        else:
            if target.is_symlink() or target.is_dir():
                remove_path(target)
            shutil.copy2(child, target)
        copied.append(target)
    return copied


def wants_executable(path: Path) -> bool:
    """Shell scripts and suffix-less files are treated as commands."""

    return path.suffix == ".sh" or path.suffix == ""


def mark_executable(root: Path) -> int:
    """Add executable bits to command-like files below ``root``."""

    changed = 0
    candidates = [root] if root.is_file() else sorted(p for p in root.rglob("*") if p.is_file())
    for candidate in candidates:
        if candidate.is_symlink() or not wants_executable(candidate):
            continue
        mode = candidate.stat().st_mode
        if mode & EXECUTABLE_BITS != EXECUTABLE_BITS:
            candidate.chmod(mode | EXECUTABLE_BITS)
            changed += 1
    return changed
