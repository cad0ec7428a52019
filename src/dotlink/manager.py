"""High level orchestration for dotlink operations."""

from __future__ import annotations

import logging
import re
import shutil
from datetime import datetime
from pathlib import Path
from typing import Iterable

from . import reconciler
from .assets import install_assets
from .config import Config
from .filesystem import inspect_entry, symlink_points_to
from .models import (
    AssetResult,
    ConfigTarget,
    EntryKind,
    ReconciliationReport,
    RestoreReport,
    StatusEntry,
    StatusReport,
    StatusState,
)

logger = logging.getLogger(__name__)

BACKUP_STAMP_FORMAT = "%Y%m%d_%H%M%S"


class DotlinkError(RuntimeError):
    """Raised when dotlink encounters an unrecoverable state."""


class DotlinkManager:
    """Coordinates reconcile, restore and status runs for a loaded configuration."""

    def __init__(self, config: Config, *, revert_on_link_failure: bool = True) -> None:
        self.config = config
        self.settings = config.settings
        self.revert_on_link_failure = revert_on_link_failure

    def missing_sources(self, targets: Iterable[str] | None = None) -> list[str]:
        """Return configured targets that have no folder in the source root."""

        names = self.config.select_targets(list(targets or []))
        missing = [name for name in names if not (self.settings.source_root / name).is_dir()]
        if missing:
            logger.warning("Missing from source directory, will be skipped: %s", ", ".join(missing))
        else:
            logger.info("Source directory structure validated.")
        return missing

    def backup_root_for(self, moment: datetime | None = None) -> Path:
        stamp = (moment or datetime.now()).strftime(BACKUP_STAMP_FORMAT)
        candidate = self.settings.backup_parent / f"{self.settings.backup_prefix}{stamp}"
        counter = 1
        while candidate.exists() or candidate.is_symlink():
            counter += 1
            candidate = self.settings.backup_parent / f"{self.settings.backup_prefix}{stamp}_{counter}"
        return candidate

    def reconcile(
        self,
        targets: Iterable[str] | None = None,
        *,
        backup_root: Path | None = None,
    ) -> ReconciliationReport:
        if not self.settings.source_root.is_dir():
            raise DotlinkError(f"Source directory '{self.settings.source_root}' does not exist")

        names = self.config.select_targets(list(targets or []))
        root = backup_root or self.backup_root_for()
        logger.info(
            "Linking %d target(s) from %s into %s", len(names), self.settings.source_root, self.settings.dest_root
        )
        return reconciler.reconcile(
            names,
            self.settings.source_root,
            self.settings.dest_root,
            root,
            revert_on_link_failure=self.revert_on_link_failure,
        )

    def restore(self, backup_root: Path | None = None) -> RestoreReport:
        root = backup_root or self.latest_backup()
        if root is None:
            raise DotlinkError(f"No backups found in '{self.settings.backup_parent}'")
        return reconciler.restore(root, self.settings.dest_root)

    def install_assets(self) -> list[AssetResult]:
        return install_assets(self.config.assets.values())

    def status(self, targets: Iterable[str] | None = None) -> StatusReport:
        names = self.config.select_targets(list(targets or []))
        entries = [
            self._status_for_target(target)
            for target in reconciler.resolve_targets(names, self.settings.source_root, self.settings.dest_root)
        ]
        return StatusReport(entries=tuple(entries))

    def list_backups(self) -> list[Path]:
        """Return backup roots next to the destination directory, oldest first."""

        parent = self.settings.backup_parent
        if not parent.is_dir():
            return []
        pattern = re.compile(re.escape(self.settings.backup_prefix) + r"\d{8}_\d{6}(_\d+)?$")
        found = [child for child in parent.iterdir() if child.is_dir() and pattern.match(child.name)]
        return sorted(found, key=lambda path: path.name)

    def latest_backup(self) -> Path | None:
        backups = self.list_backups()
        return backups[-1] if backups else None

    def discard_backup(self, backup_root: Path) -> None:
        if backup_root.resolve(strict=False) not in {path.resolve(strict=False) for path in self.list_backups()}:
            raise DotlinkError(f"'{backup_root}' is not a dotlink backup directory")
        shutil.rmtree(backup_root)
        logger.info("Backup directory removed: %s", backup_root)

    # ------------------------------------------------------------------
    # Internal helpers

    def _status_for_target(self, target: ConfigTarget) -> StatusEntry:
        if not target.source.is_dir():
            return StatusEntry(
                target=target,
                state=StatusState.SOURCE_MISSING,
                details="Not found in source directory",
            )

        state = inspect_entry(target.destination)
        if state.kind is EntryKind.ABSENT:
            return StatusEntry(target=target, state=StatusState.ABSENT, details="Nothing at destination")
        if state.kind is EntryKind.REGULAR:
            return StatusEntry(target=target, state=StatusState.UNMANAGED, details="Regular entry will be backed up")
        if not symlink_points_to(target.destination, target.source):
            return StatusEntry(
                target=target,
                state=StatusState.FOREIGN_LINK,
                details=f"Points to {state.link_target}",
            )
        return StatusEntry(target=target, state=StatusState.LINKED)
