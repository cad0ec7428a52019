"""Shared models and enums for dotlink."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class EntryKind(str, Enum):
    """How a destination path looks when inspected without following it."""

    ABSENT = "absent"
    REGULAR = "regular"
    SYMLINK = "symlink"


@dataclass(frozen=True, slots=True)
class TargetState:
    """Observed state of a destination path."""

    kind: EntryKind
    link_target: str | None = None


@dataclass(frozen=True, slots=True)
class ConfigTarget:
    """A named configuration directory and where it lives on both sides."""

    name: str
    source: Path
    destination: Path


class ErrorKind(str, Enum):
    """Per-item failure categories aggregated into reports."""

    SOURCE_ABSENT = "source_absent"
    BACKUP_WRITE_FAILED = "backup_write_failed"
    SYMLINK_CREATE_FAILED = "symlink_create_failed"
    RESTORE_MOVE_FAILED = "restore_move_failed"


class LinkAction(str, Enum):
    """Outcome of reconciling a single target."""

    LINKED = "linked"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    BACKUP_FAILED = "backup_failed"
    LINK_FAILED = "link_failed"


@dataclass(frozen=True, slots=True)
class TargetOutcome:
    """Result emitted when reconciling a target."""

    target: ConfigTarget
    prior: TargetState
    action: LinkAction
    backup_path: Path | None = None
    discarded_link: str | None = None
    error: ErrorKind | None = None
    details: str | None = None
    reverted: bool = False

    @property
    def failed(self) -> bool:
        return self.action in (LinkAction.BACKUP_FAILED, LinkAction.LINK_FAILED)


@dataclass(frozen=True, slots=True)
class ReconciliationReport:
    """Aggregate of a reconcile run."""

    backup_root: Path | None
    outcomes: tuple[TargetOutcome, ...]

    def _count(self, action: LinkAction) -> int:
        return sum(1 for outcome in self.outcomes if outcome.action is action)

    @property
    def linked(self) -> int:
        return self._count(LinkAction.LINKED)

    @property
    def unchanged(self) -> int:
        return self._count(LinkAction.UNCHANGED)

    @property
    def skipped(self) -> int:
        return self._count(LinkAction.SKIPPED)

    @property
    def backed_up(self) -> int:
        # backup_failed keeps its copy when only removing the original failed; it counts as failed.
        return sum(
            1
            for outcome in self.outcomes
            if outcome.backup_path is not None and outcome.action is not LinkAction.BACKUP_FAILED
        )

    @property
    def discarded(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.discarded_link is not None)

    @property
    def failed(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.failed)

    def counts(self) -> dict[str, int]:
        return {
            "linked": self.linked,
            "unchanged": self.unchanged,
            "skipped": self.skipped,
            "backed_up": self.backed_up,
            "discarded": self.discarded,
            "failed": self.failed,
        }

    def summary(self) -> str:
        return ", ".join(f"{key.replace('_', ' ')}: {value}" for key, value in self.counts().items())


class RestoreAction(str, Enum):
    """Outcome of restoring a single backup entry."""

    RESTORED = "restored"
    FAILED = "failed"
    PENDING = "pending"


@dataclass(frozen=True, slots=True)
class RestoreOutcome:
    """Result emitted for one entry of a backup root."""

    name: str
    backup_path: Path
    destination: Path
    action: RestoreAction
    error: ErrorKind | None = None
    details: str | None = None


@dataclass(frozen=True, slots=True)
class RestoreReport:
    """Aggregate of a restore run."""

    backup_root: Path
    outcomes: tuple[RestoreOutcome, ...]

    @property
    def restored(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.action is RestoreAction.RESTORED)

    @property
    def pending(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.action is RestoreAction.PENDING)

    @property
    def aborted(self) -> bool:
        return any(outcome.action is RestoreAction.FAILED for outcome in self.outcomes)

    def summary(self) -> str:
        failed = 1 if self.aborted else 0
        return f"restored: {self.restored}, failed: {failed}, pending: {self.pending}"


class StatusState(str, Enum):
    """High-level states reported by ``dotlink status``."""

    LINKED = "linked"
    FOREIGN_LINK = "foreign_link"
    UNMANAGED = "unmanaged"
    ABSENT = "absent"
    SOURCE_MISSING = "source_missing"


@dataclass(frozen=True, slots=True)
class StatusEntry:
    """Status information for a configured target."""

    target: ConfigTarget
    state: StatusState
    details: str | None = None


@dataclass(frozen=True, slots=True)
class StatusReport:
    """Collection of status results for a manager run."""

    entries: tuple[StatusEntry, ...]

    @property
    def healthy(self) -> bool:
        return all(entry.state is StatusState.LINKED for entry in self.entries)


class AssetAction(str, Enum):
    """Outcome of installing an asset folder."""

    COPIED = "copied"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class AssetResult:
    """Result emitted when installing an asset folder."""

    name: str
    source: Path
    destination: Path
    action: AssetAction
    copied: int = 0
    details: str | None = None
