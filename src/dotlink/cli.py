"""Command-line interface for dotlink."""

from __future__ import annotations

import io
from pathlib import Path
from typing import Iterable

import tomli_w
import typer
from rich.console import Console
from rich.prompt import Confirm
from rich.table import Table

from .config import DEFAULT_CONFIG_FILENAME, ConfigError, load_config
from .logs import default_log_file, setup_logging
from .manager import DotlinkError, DotlinkManager
from .models import (
    AssetAction,
    AssetResult,
    LinkAction,
    ReconciliationReport,
    RestoreAction,
    RestoreReport,
    StatusReport,
    StatusState,
)
from .reconciler import ReconcileError

app = typer.Typer(help="Link managed configuration folders into place, with backup and restore")
console = Console()

DEFAULT_TARGETS = (
    "niri",
    "waybar",
    "fish",
    "zsh",
    "fastfetch",
    "mako",
    "alacritty",
    "kitty",
    "starship",
    "nvim",
    "yazi",
    "vicinae",
    "gtklock",
    "zathura",
    "wallust",
    "rofi",
)


def _load_manager(config: Path | None, *, verbose: bool = False) -> DotlinkManager:
    config_obj = load_config(config)
    setup_logging(default_log_file(config_obj.settings.log_dir), console, verbose=verbose)
    return DotlinkManager(config_obj)


def _handle_error(exc: Exception) -> None:
    if isinstance(exc, typer.Exit):
        raise exc
    if isinstance(exc, PermissionError):
        console.print("[red]Permission denied.[/red] Check ownership of the source and destination directories.")
        raise typer.Exit(code=1)
    if isinstance(exc, ConfigError):
        message = str(exc)
        console.print(f"[red]{message}[/red]")
        if "does not exist" in message:
            console.print("[yellow]Use 'dotlink init --config <path>' to create a configuration file.[/yellow]")
        elif "Expected to find" in message:
            console.print(
                "[yellow]Make sure you pointed to the directory containing the config file, or to the file itself.[/yellow]"
            )
        raise typer.Exit(code=1)
    if isinstance(exc, (DotlinkError, ReconcileError)):
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)
    raise exc


_LINK_STYLES = {
    LinkAction.LINKED: "green",
    LinkAction.UNCHANGED: "green",
    LinkAction.SKIPPED: "yellow",
    LinkAction.BACKUP_FAILED: "red",
    LinkAction.LINK_FAILED: "red",
}


def _format_reconcile(report: ReconciliationReport) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Target")
    table.add_column("Before")
    table.add_column("Action")
    table.add_column("Details", overflow="fold")

    for outcome in report.outcomes:
        style = _LINK_STYLES.get(outcome.action, "white")
        notes: list[str] = []
        if outcome.backup_path is not None and outcome.action is not LinkAction.BACKUP_FAILED:
            notes.append("backed up")
        if outcome.discarded_link is not None:
            notes.append(f"discarded link to {outcome.discarded_link}")
        if outcome.details:
            notes.append(outcome.details)
        table.add_row(
            outcome.target.name,
            outcome.prior.kind.value,
            f"[{style}]{outcome.action.value}[/{style}]",
            "; ".join(notes),
        )

    console.print(table)
    console.print(report.summary(), soft_wrap=True)
    if report.backup_root is not None:
        console.print(f"Backup directory: {report.backup_root}", soft_wrap=True)


def _format_restore(report: RestoreReport) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Entry")
    table.add_column("Action")
    table.add_column("Details", overflow="fold")

    styles = {RestoreAction.RESTORED: "green", RestoreAction.FAILED: "red", RestoreAction.PENDING: "yellow"}
    for outcome in report.outcomes:
        style = styles[outcome.action]
        table.add_row(outcome.name, f"[{style}]{outcome.action.value}[/{style}]", outcome.details or "")

    console.print(table)
    console.print(report.summary(), soft_wrap=True)


def _format_status(report: StatusReport) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Target")
    table.add_column("State")
    table.add_column("Details", overflow="fold")

    status_styles = {
        StatusState.LINKED: "green",
        StatusState.ABSENT: "yellow",
        StatusState.UNMANAGED: "yellow",
        StatusState.FOREIGN_LINK: "red",
        StatusState.SOURCE_MISSING: "red",
    }

    for entry in report.entries:
        style = status_styles.get(entry.state, "white")
        table.add_row(entry.target.name, f"[{style}]{entry.state.value}[/{style}]", entry.details or "")

    console.print(table)


def _format_assets(results: Iterable[AssetResult]) -> None:
    rows = list(results)
    if not rows:
        return
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Asset")
    table.add_column("Action")
    table.add_column("Destination", overflow="fold")

    styles = {AssetAction.COPIED: "green", AssetAction.SKIPPED: "yellow", AssetAction.FAILED: "red"}
    for result in rows:
        style = styles[result.action]
        table.add_row(result.name, f"[{style}]{result.action.value}[/{style}]", str(result.destination))

    console.print(table)


def _render_init_config(*, source_root: str, dest_root: str, targets: list[str]) -> str:
    data = {
        "settings": {
            "source_root": source_root,
            "dest_root": dest_root,
            "log_dir": "~/.cache",
        },
        "targets": {"names": targets},
        "assets": {
            "wallpapers": {"source": "wallpapers", "destination": "~/Pictures/wallpapers"},
            "scripts": {"source": "scripts", "destination": "~/.local/bin", "executable": True},
        },
    }

    buffer = io.StringIO()
    buffer.write("# dotlink configuration\n\n")
    buffer.write(tomli_w.dumps(data))
    return buffer.getvalue()


def _discover_targets(source_root: str, config_dir: Path) -> list[str]:
    base = Path(source_root).expanduser()
    if not base.is_absolute():
        base = (config_dir / base).resolve()
    try:
        children = list(base.iterdir())
    except FileNotFoundError:
        console.print(f"[yellow]Source directory '{base}' does not exist; using the default target list.[/yellow]")
        return list(DEFAULT_TARGETS)
    names = sorted(child.name for child in children if child.is_dir() and not child.name.startswith("."))
    return names or list(DEFAULT_TARGETS)


@app.command()
def init(
    config: Path = typer.Option(
        Path(DEFAULT_CONFIG_FILENAME),
        "--config",
        "-c",
        help="Path to write the configuration file",
        dir_okay=False,
        writable=True,
    ),
    source_root: str = typer.Option("~/.dotfiles-sevens", "--source-root", help="Managed dotfiles checkout"),
    dest_root: str = typer.Option("~/.config", "--dest-root", help="Directory that receives the symlinks"),
    discover: bool = typer.Option(
        False,
        "--discover/--no-discover",
        help="List the source root's folders as targets instead of the default set",
    ),
    force: bool = typer.Option(False, "--force", help="Overwrite existing config if present"),
) -> None:
    """Create a starter dotlink configuration file."""

    config_path = config
    if config_path.exists() and not force:
        console.print(f"[red]Configuration '{config_path}' already exists. Use --force to overwrite.[/red]")
        raise typer.Exit(code=1)

    config_path.parent.mkdir(parents=True, exist_ok=True)
    targets = _discover_targets(source_root, config_path.parent) if discover else list(DEFAULT_TARGETS)
    config_path.write_text(_render_init_config(source_root=source_root, dest_root=dest_root, targets=targets))
    console.print(f"[green]Created '{config_path}'.[/green]")


@app.command()
def apply(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotlink.toml"),
    target: list[str] = typer.Option(None, "--target", "-t", help="Limit to specific target(s)"),
    assets: bool = typer.Option(True, "--assets/--no-assets", help="Also copy asset folders"),
    restore_on_failure: bool | None = typer.Option(
        None,
        "--restore-on-failure/--keep-on-failure",
        help="Decide up front whether to restore the backup when a target fails (asks otherwise)",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug messages"),
) -> None:
    """Back up existing configuration and link the managed folders into place."""

    try:
        manager = _load_manager(config, verbose=verbose)
        manager.missing_sources(target or None)
        report = manager.reconcile(target or None)
        _format_reconcile(report)

        if report.failed:
            _offer_restore(manager, report, restore_on_failure)
            raise typer.Exit(code=1)

        if assets:
            asset_results = manager.install_assets()
            _format_assets(asset_results)
            if any(result.action is AssetAction.FAILED for result in asset_results):
                raise typer.Exit(code=1)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


def _offer_restore(manager: DotlinkManager, report: ReconciliationReport, decision: bool | None) -> None:
    if report.backup_root is None:
        return
    console.print("[yellow]Some targets failed. Your previous configurations are backed up at:[/yellow]")
    console.print(f"  {report.backup_root}", soft_wrap=True)
    if decision is None:
        decision = Confirm.ask("Would you like to restore your backup now?", default=False, console=console)
    if decision:
        _format_restore(manager.restore(report.backup_root))


@app.command()
def restore(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotlink.toml"),
    backup: Path | None = typer.Option(None, "--backup", "-b", help="Backup directory (defaults to the latest)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Move a backup back into the destination directory, replacing what is there."""

    try:
        manager = _load_manager(config)
        root = backup or manager.latest_backup()
        if root is None:
            raise DotlinkError(f"No backups found in '{manager.settings.backup_parent}'")
        if not yes and not Confirm.ask(f"Restore '{root}' over '{manager.settings.dest_root}'?", console=console):
            console.print("Restore cancelled.")
            return
        report = manager.restore(root)
        _format_restore(report)
        if report.aborted:
            raise typer.Exit(code=1)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def status(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotlink.toml"),
    target: list[str] = typer.Option(None, "--target", "-t", help="Limit to specific target(s)"),
) -> None:
    """Show every target and what currently sits at its destination."""

    try:
        manager = _load_manager(config)
        report = manager.status(target or None)
        _format_status(report)
        if not report.healthy:
            console.print("[yellow]Some targets are not linked. Run 'dotlink apply' to link them.[/yellow]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def doctor(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotlink.toml"),
    target: list[str] = typer.Option(None, "--target", "-t", help="Limit to specific target(s)"),
) -> None:
    """Run health checks and exit with non-zero status if issues are found."""

    try:
        manager = _load_manager(config)
        missing = manager.missing_sources(target or None)
        report = manager.status(target or None)
        _format_status(report)

        if missing or not report.healthy:
            console.print("[red]Issues detected. Review the table above or run 'dotlink apply'.[/red]")
            raise typer.Exit(code=1)

        console.print("[green]All targets are linked.[/green]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def backups(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotlink.toml"),
) -> None:
    """List backup directories, oldest first."""

    try:
        manager = _load_manager(config)
        found = manager.list_backups()
        if not found:
            console.print("No backups found.")
            return
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Backup", overflow="fold")
        table.add_column("Entries")
        for root in found:
            table.add_row(str(root), ", ".join(sorted(child.name for child in root.iterdir())))
        console.print(table)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def discard(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotlink.toml"),
    backup: Path | None = typer.Option(None, "--backup", "-b", help="Backup directory (defaults to the latest)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete a backup directory once it is no longer needed."""

    try:
        manager = _load_manager(config)
        root = backup or manager.latest_backup()
        if root is None:
            console.print("No backups found.")
            return
        if not yes and not Confirm.ask(f"Remove the backup directory '{root}'?", default=False, console=console):
            console.print("Backup kept for your reference.")
            return
        manager.discard_backup(root)
        console.print(f"[green]Removed '{root}'.[/green]", soft_wrap=True)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


def run() -> None:
    """Entry point used for console_script bindings."""

    app()
