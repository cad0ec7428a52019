"""Backup, link and restore configuration directories.

The reconciler walks a fixed list of targets once, in order. Each target is
handled independently: a failure is recorded on that target's outcome and the
run continues with the next one. Only problems with the roots themselves raise
:class:`ReconcileError`.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Sequence

from .filesystem import (
    copy_physical,
    create_symlink,
    exists,
    inspect_entry,
    move_entry,
    remove_path,
    symlink_points_to,
)
from .models import (
    ConfigTarget,
    EntryKind,
    ErrorKind,
    LinkAction,
    ReconciliationReport,
    RestoreAction,
    RestoreOutcome,
    RestoreReport,
    TargetOutcome,
)

logger = logging.getLogger(__name__)


class ReconcileError(RuntimeError):
    """Raised when a reconcile or restore run cannot start at all."""


def resolve_targets(names: Iterable[str], source_root: Path, dest_root: Path) -> list[ConfigTarget]:
    return [ConfigTarget(name, source_root / name, dest_root / name) for name in names]


def reconcile(
    targets: Sequence[str],
    source_root: Path,
    dest_root: Path,
    backup_root: Path,
    *,
    revert_on_link_failure: bool = True,
) -> ReconciliationReport:
    """Replace every target in ``dest_root`` with a symlink into ``source_root``.

    Regular entries are copied into ``backup_root`` first; foreign symlinks are
    removed without a backup. Targets without a source are left alone.
    """

    _prepare_dest_root(dest_root)
    _create_backup_root(backup_root)

    outcomes: list[TargetOutcome] = []
    for target in resolve_targets(targets, source_root, dest_root):
        outcome = _reconcile_target(target, backup_root, revert_on_link_failure=revert_on_link_failure)
        _log_outcome(outcome)
        outcomes.append(outcome)

    kept_root: Path | None = backup_root
    if not any(backup_root.iterdir()):
        backup_root.rmdir()
        kept_root = None

    report = ReconciliationReport(backup_root=kept_root, outcomes=tuple(outcomes))
    if report.discarded:
        logger.warning(
            "Removed %d symlink(s) without backup. Recreate them manually if they pointed to important data.",
            report.discarded,
        )
    if kept_root is not None:
        logger.info("Backed up %d configuration(s) to %s", report.backed_up, kept_root)
    logger.info("Reconciliation finished: %s", report.summary())
    return report


def restore(backup_root: Path, dest_root: Path) -> RestoreReport:
    """Move every entry of ``backup_root`` back into ``dest_root``.

    Whatever currently sits at the destination is deleted first. The first failure
    stops the run; the remaining entries stay in ``backup_root`` and are reported
    as pending.
    """

    if not backup_root.is_dir():
        raise ReconcileError(f"Backup directory '{backup_root}' does not exist")

    entries = sorted(backup_root.iterdir(), key=lambda path: path.name)
    if not entries:
        logger.info("Backup directory %s is empty; nothing to restore", backup_root)
        return RestoreReport(backup_root=backup_root, outcomes=())

    dest_root.mkdir(parents=True, exist_ok=True)
    logger.info("Restoring %d entr%s from %s", len(entries), "y" if len(entries) == 1 else "ies", backup_root)

    outcomes: list[RestoreOutcome] = []
    for index, entry in enumerate(entries):
        destination = dest_root / entry.name
        try:
            remove_path(destination)
            move_entry(entry, destination)
        except OSError as exc:
            logger.error("Failed to restore %s: %s", entry.name, exc)
            outcomes.append(
                RestoreOutcome(
                    name=entry.name,
                    backup_path=entry,
                    destination=destination,
                    action=RestoreAction.FAILED,
                    error=ErrorKind.RESTORE_MOVE_FAILED,
                    details=str(exc),
                )
            )
            for remaining in entries[index + 1 :]:
                outcomes.append(
                    RestoreOutcome(
                        name=remaining.name,
                        backup_path=remaining,
                        destination=dest_root / remaining.name,
                        action=RestoreAction.PENDING,
                        details="Left in backup directory",
                    )
                )
            logger.error("Restore aborted; remaining entries are still in %s", backup_root)
            break

        logger.info("Restored: %s", entry.name)
        outcomes.append(
            RestoreOutcome(
                name=entry.name,
                backup_path=entry,
                destination=destination,
                action=RestoreAction.RESTORED,
            )
        )

    report = RestoreReport(backup_root=backup_root, outcomes=tuple(outcomes))
    if not report.aborted:
        backup_root.rmdir()
        logger.info("Backup restored successfully.")
    return report


# ----------------------------------------------------------------------
# Internal helpers


def _prepare_dest_root(dest_root: Path) -> None:
    if exists(dest_root) and not dest_root.is_dir():
        raise ReconcileError(f"Destination '{dest_root}' exists but is not a directory")
    try:
        dest_root.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ReconcileError(f"Cannot create destination directory '{dest_root}': {exc}") from exc
    if not os.access(dest_root, os.R_OK | os.W_OK | os.X_OK):
        raise ReconcileError(f"Insufficient permissions on destination directory '{dest_root}'")


def _create_backup_root(backup_root: Path) -> None:
    if exists(backup_root):
        raise ReconcileError(f"Backup directory '{backup_root}' already exists")
    try:
        backup_root.mkdir(parents=True)
    except OSError as exc:
        raise ReconcileError(f"Cannot create backup directory '{backup_root}': {exc}") from exc


def _reconcile_target(target: ConfigTarget, backup_root: Path, *, revert_on_link_failure: bool) -> TargetOutcome:
    if not target.source.is_dir():
        return TargetOutcome(
            target=target,
            prior=inspect_entry(target.destination),
            action=LinkAction.SKIPPED,
            error=ErrorKind.SOURCE_ABSENT,
            details="Not found in source directory",
        )

    prior = inspect_entry(target.destination)
    backup_path: Path | None = None
    discarded: str | None = None

    if prior.kind is EntryKind.SYMLINK:
        if symlink_points_to(target.destination, target.source):
            return TargetOutcome(target=target, prior=prior, action=LinkAction.UNCHANGED)
        logger.warning("Symlink detected: %s -> %s", target.name, prior.link_target)
        try:
            target.destination.unlink()
        except OSError as exc:
            return TargetOutcome(
                target=target,
                prior=prior,
                action=LinkAction.LINK_FAILED,
                error=ErrorKind.SYMLINK_CREATE_FAILED,
                details=f"Could not remove existing symlink: {exc}",
            )
        discarded = prior.link_target
    elif prior.kind is EntryKind.REGULAR:
        candidate = backup_root / target.name
        try:
            copy_physical(target.destination, candidate)
        except OSError as exc:
            return TargetOutcome(
                target=target,
                prior=prior,
                action=LinkAction.BACKUP_FAILED,
                error=ErrorKind.BACKUP_WRITE_FAILED,
                details=str(exc),
            )
        try:
            remove_path(target.destination)
        except OSError as exc:
            # The copy is complete; keep it and leave whatever is left of the original.
            return TargetOutcome(
                target=target,
                prior=prior,
                action=LinkAction.BACKUP_FAILED,
                backup_path=candidate,
                error=ErrorKind.BACKUP_WRITE_FAILED,
                details=f"Backed up but could not remove original: {exc}",
            )
        backup_path = candidate

    try:
        create_symlink(target.destination, target.source)
    except OSError as exc:
        reverted = False
        details = str(exc)
        if revert_on_link_failure:
            reverted, details = _revert(target, backup_path, discarded, details)
        return TargetOutcome(
            target=target,
            prior=prior,
            action=LinkAction.LINK_FAILED,
            backup_path=None if reverted else backup_path,
            discarded_link=None if reverted else discarded,
            error=ErrorKind.SYMLINK_CREATE_FAILED,
            details=details,
            reverted=reverted,
        )

    return TargetOutcome(
        target=target,
        prior=prior,
        action=LinkAction.LINKED,
        backup_path=backup_path,
        discarded_link=discarded,
    )


def _revert(target: ConfigTarget, backup_path: Path | None, discarded: str | None, details: str) -> tuple[bool, str]:
    if backup_path is None and discarded is None:
        return False, details
    try:
        if backup_path is not None:
            move_entry(backup_path, target.destination)
        elif discarded is not None:
            target.destination.symlink_to(discarded)
    except OSError as exc:
        return False, f"{details}; revert failed: {exc}"
    return True, f"{details}; previous entry put back"


def _log_outcome(outcome: TargetOutcome) -> None:
    name = outcome.target.name
    if outcome.action is LinkAction.LINKED:
        if outcome.backup_path is not None:
            logger.info("Backed up: %s", name)
        if outcome.discarded_link is not None:
            logger.info("Removed symlink: %s", name)
        logger.info("Linked: %s", name)
    elif outcome.action is LinkAction.UNCHANGED:
        logger.info("Already linked: %s", name)
    elif outcome.action is LinkAction.SKIPPED:
        logger.info("Skipping: %s (not found in source directory)", name)
    elif outcome.action is LinkAction.BACKUP_FAILED:
        logger.warning("Failed to back up: %s (%s); left in place", name, outcome.details)
    else:
        logger.error("Failed to link: %s (%s)", name, outcome.details)
