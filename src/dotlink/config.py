"""TOML configuration loading for dotlink."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Mapping

from pydantic import BaseModel, ConfigDict

DEFAULT_CONFIG_FILENAME = "dotlink.toml"


class ConfigError(RuntimeError):
    """Raised when a configuration file cannot be parsed or validated."""


def _expand_path(raw: str | os.PathLike[str] | Path, *, base_dir: Path) -> Path:
    """Return an absolute ``Path`` by expanding env vars and user segments."""

    text = str(raw)
    expanded = Path(os.path.expandvars(text)).expanduser()
    if expanded.is_absolute():
        return expanded.resolve(strict=False)
    return (base_dir / expanded).resolve(strict=False)


def _validate_name(kind: str, name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ConfigError(f"{kind} names must be non-empty strings, got {name!r}")
    if name in (".", "..") or "/" in name or os.sep in name:
        raise ConfigError(f"{kind} '{name}' must be a single directory name")
    return name


class Settings(BaseModel):
    """Global configuration options."""

    model_config = ConfigDict(frozen=True)

    source_root: Path
    dest_root: Path
    backup_parent: Path
    log_dir: Path

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], *, base_dir: Path) -> "Settings":
        for key in ("source_root", "dest_root"):
            if key not in raw:
                raise ConfigError(f"[settings] must define '{key}'")

        source = _expand_path(raw["source_root"], base_dir=base_dir)
        dest = _expand_path(raw["dest_root"], base_dir=base_dir)
        backup_raw = raw.get("backup_parent")
        backup_parent = _expand_path(backup_raw, base_dir=base_dir) if backup_raw is not None else dest.parent
        log_dir = _expand_path(raw.get("log_dir", "~/.cache"), base_dir=base_dir)

        if source == dest:
            raise ConfigError("'source_root' and 'dest_root' must be different directories")

        return cls(source_root=source, dest_root=dest, backup_parent=backup_parent, log_dir=log_dir)

    @property
    def backup_prefix(self) -> str:
        return f"{self.dest_root.name}_backup_"


class AssetConfig(BaseModel):
    """A folder from the source root that is copied, not linked."""

    model_config = ConfigDict(frozen=True)

    name: str
    source: Path
    destination: Path
    executable: bool = False

    @classmethod
    def from_raw(cls, name: str, raw: Mapping[str, Any], *, source_root: Path, base_dir: Path) -> "AssetConfig":
        destination_raw = raw.get("destination")
        if destination_raw is None:
            raise ConfigError(f"Asset '{name}' must define a 'destination'")

        source_raw = Path(str(raw.get("source", name)))
        if source_raw.is_absolute() or ".." in source_raw.parts:
            raise ConfigError(f"Asset '{name}' source '{source_raw}' must be relative to the source root")

        return cls(
            name=name,
            source=source_root / source_raw,
            destination=_expand_path(destination_raw, base_dir=base_dir),
            executable=bool(raw.get("executable", False)),
        )


class Config(BaseModel):
    """Fully parsed configuration file."""

    model_config = ConfigDict(frozen=True)

    config_path: Path
    settings: Settings
    targets: tuple[str, ...]
    assets: Dict[str, AssetConfig]

    def select_targets(self, names: list[str] | None) -> list[str]:
        """Return ``names`` in configured order, or every target when ``names`` is empty."""

        if not names:
            return list(self.targets)
        unknown = [name for name in names if name not in self.targets]
        if unknown:
            raise ConfigError(f"Unknown target(s): {', '.join(unknown)}")
        wanted = set(names)
        return [name for name in self.targets if name in wanted]


def load_config(path: Path | None = None) -> Config:
    """Load and validate a configuration file.

    Args:
        path: Optional path to the TOML file or its directory. Defaults to
            ``dotlink.toml`` in the current working directory.
    """

    config_path = _resolve_config_path(path)
    base_dir = config_path.parent

    try:
        with config_path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Configuration file '{config_path}' is not valid TOML: {exc}") from exc

    settings = Settings.from_raw(data.get("settings") or {}, base_dir=base_dir)

    names_raw = (data.get("targets") or {}).get("names")
    if not names_raw:
        raise ConfigError("Configuration must list at least one name under [targets]")

    targets: list[str] = []
    for raw_name in names_raw:
        name = _validate_name("Target", raw_name)
        if name in targets:
            raise ConfigError(f"Target '{name}' is listed more than once")
        targets.append(name)

    assets: Dict[str, AssetConfig] = {}
    for asset_name, asset_body in (data.get("assets") or {}).items():
        _validate_name("Asset", asset_name)
        assets[asset_name] = AssetConfig.from_raw(
            asset_name, asset_body, source_root=settings.source_root, base_dir=base_dir
        )

    return Config(config_path=config_path, settings=settings, targets=tuple(targets), assets=assets)


def _resolve_config_path(path: Path | None) -> Path:
    if path is None:
        path = Path.cwd() / DEFAULT_CONFIG_FILENAME
    else:
        path = Path(path)

    if not path.exists():
        raise ConfigError(f"Configuration file '{path}' does not exist")
    if path.is_dir():
        candidate = path / DEFAULT_CONFIG_FILENAME
        if not candidate.exists():
            raise ConfigError(f"Expected to find '{DEFAULT_CONFIG_FILENAME}' inside '{path}', but none was located")
        path = candidate

    return path.resolve(strict=False)
