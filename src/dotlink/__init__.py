"""Core package for the dotlink project."""

from .cli import app, run
from .config import AssetConfig, Config, Settings
from .manager import DotlinkError, DotlinkManager
from .models import (
    AssetAction,
    AssetResult,
    ConfigTarget,
    EntryKind,
    ErrorKind,
    LinkAction,
    ReconciliationReport,
    RestoreAction,
    RestoreOutcome,
    RestoreReport,
    StatusEntry,
    StatusReport,
    StatusState,
    TargetOutcome,
    TargetState,
)
from .reconciler import ReconcileError, reconcile, restore

__all__ = [
    "AssetConfig",
    "Config",
    "Settings",
    "DotlinkManager",
    "DotlinkError",
    "ReconcileError",
    "reconcile",
    "restore",
    "AssetAction",
    "AssetResult",
    "ConfigTarget",
    "EntryKind",
    "ErrorKind",
    "LinkAction",
    "ReconciliationReport",
    "RestoreAction",
    "RestoreOutcome",
    "RestoreReport",
    "StatusEntry",
    "StatusReport",
    "StatusState",
    "TargetOutcome",
    "TargetState",
    "app",
    "run",
]
