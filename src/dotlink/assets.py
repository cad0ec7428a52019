"""Copy-in installation of asset folders (wallpapers, scripts)."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable

from .config import AssetConfig
from .filesystem import mark_executable, merge_tree
from .models import AssetAction, AssetResult

logger = logging.getLogger(__name__)


def install_assets(assets: Iterable[AssetConfig]) -> list[AssetResult]:
    return [install_asset(asset) for asset in assets]


def install_asset(asset: AssetConfig) -> AssetResult:
    if not asset.source.is_dir():
        logger.info("No %s directory found in source directory.", asset.name)
        return _result(asset, AssetAction.SKIPPED, details="Source folder missing")

    if not any(asset.source.iterdir()):
        logger.info("No %s found in source directory.", asset.name)
        return _result(asset, AssetAction.SKIPPED, details="Source folder empty")

    try:
        written = merge_tree(asset.source, asset.destination)
        if asset.executable:
            for path in written:
                mark_executable(path)
    except OSError as exc:
        logger.warning("Failed to copy %s: %s", asset.name, exc)
        return _result(asset, AssetAction.FAILED, details=str(exc))

    logger.info("%s installed to: %s", asset.name.capitalize(), asset.destination)
    if asset.executable and not on_path(asset.destination):
        logger.warning("%s is not in your PATH.", asset.destination)
    return _result(asset, AssetAction.COPIED, copied=len(written))


def on_path(directory: Path) -> bool:
    entries = [entry for entry in os.environ.get("PATH", "").split(os.pathsep) if entry]
    target = directory.resolve(strict=False)
    return any(Path(entry).expanduser().resolve(strict=False) == target for entry in entries)


def _result(asset: AssetConfig, action: AssetAction, *, copied: int = 0, details: str | None = None) -> AssetResult:
    return AssetResult(
        name=asset.name,
        source=asset.source,
        destination=asset.destination,
        action=action,
        copied=copied,
        details=details,
    )
