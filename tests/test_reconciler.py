from __future__ import annotations

import os
from pathlib import Path

import pytest

from dotlink import reconciler
from dotlink.models import EntryKind, ErrorKind, LinkAction, RestoreAction
from dotlink.reconciler import ReconcileError, reconcile, restore


def _make_source(source_root: Path, *names: str) -> None:
    for name in names:
        (source_root / name).mkdir()
        (source_root / name / "config").write_text(f"{name} managed\n")


def test_backs_up_directory_links_and_skips(layout) -> None:
    _make_source(layout.source_root, "a")
    (layout.dest_root / "a").mkdir()
    (layout.dest_root / "a" / "x.txt").write_text("mine\n")

    report = reconcile(["a", "b"], layout.source_root, layout.dest_root, layout.backup_root)

    assert (layout.backup_root / "a" / "x.txt").read_text() == "mine\n"
    dest_a = layout.dest_root / "a"
    assert dest_a.is_symlink()
    assert dest_a.resolve() == (layout.source_root / "a").resolve()
    assert not os.path.lexists(layout.dest_root / "b")
    assert report.linked == 1
    assert report.skipped == 1
    assert report.backed_up == 1
    assert report.failed == 0
    assert report.backup_root == layout.backup_root


def test_foreign_symlink_is_discarded_without_backup(layout, tmp_path: Path) -> None:
    _make_source(layout.source_root, "a")
    old = tmp_path / "somewhere" / "old"
    old.mkdir(parents=True)
    (old / "keep.txt").write_text("untouched\n")
    (layout.dest_root / "a").symlink_to(old)

    report = reconcile(["a"], layout.source_root, layout.dest_root, layout.backup_root)

    outcome = report.outcomes[0]
    assert outcome.prior.kind is EntryKind.SYMLINK
    assert outcome.discarded_link == str(old)
    assert outcome.action is LinkAction.LINKED
    assert report.discarded == 1
    assert report.linked == 1
    assert not os.path.lexists(layout.backup_root / "a")
    assert (old / "keep.txt").read_text() == "untouched\n"
    assert (layout.dest_root / "a").resolve() == (layout.source_root / "a").resolve()


def test_absent_destination_is_linked(layout) -> None:
    _make_source(layout.source_root, "kitty", "fish")

    report = reconcile(["kitty", "fish"], layout.source_root, layout.dest_root, layout.backup_root)

    for name in ("kitty", "fish"):
        link = layout.dest_root / name
        assert link.is_symlink()
        assert os.readlink(link) == str(layout.source_root / name)
    assert report.linked == 2
    assert report.backed_up == 0
    assert report.backup_root is None
    assert not layout.backup_root.exists()


def test_missing_source_leaves_destination_untouched(layout) -> None:
    (layout.dest_root / "nvim").mkdir()
    (layout.dest_root / "nvim" / "init.lua").write_text("vim.o.number = true\n")
    (layout.dest_root / "mako").symlink_to(layout.dest_root / "nvim")

    report = reconcile(["nvim", "mako"], layout.source_root, layout.dest_root, layout.backup_root)

    assert [outcome.action for outcome in report.outcomes] == [LinkAction.SKIPPED, LinkAction.SKIPPED]
    assert all(outcome.error is ErrorKind.SOURCE_ABSENT for outcome in report.outcomes)
    assert (layout.dest_root / "nvim" / "init.lua").read_text() == "vim.o.number = true\n"
    assert not (layout.dest_root / "nvim").is_symlink()
    assert os.readlink(layout.dest_root / "mako") == str(layout.dest_root / "nvim")


def test_source_that_is_a_file_is_skipped(layout) -> None:
    (layout.source_root / "kitty").write_text("not a folder\n")
    (layout.dest_root / "kitty").mkdir()
    (layout.dest_root / "kitty" / "kitty.conf").write_text("font_size 11\n")

    report = reconcile(["kitty"], layout.source_root, layout.dest_root, layout.backup_root)

    outcome = report.outcomes[0]
    assert outcome.action is LinkAction.SKIPPED
    assert outcome.error is ErrorKind.SOURCE_ABSENT
    assert not (layout.dest_root / "kitty").is_symlink()
    assert (layout.dest_root / "kitty" / "kitty.conf").read_text() == "font_size 11\n"
    assert report.backup_root is None


def test_regular_file_is_backed_up(layout) -> None:
    _make_source(layout.source_root, "starship")
    (layout.dest_root / "starship").write_text("format = '$all'\n")

    report = reconcile(["starship"], layout.source_root, layout.dest_root, layout.backup_root)

    assert (layout.backup_root / "starship").read_text() == "format = '$all'\n"
    assert (layout.dest_root / "starship").is_symlink()
    assert report.backed_up == 1


def test_backup_dereferences_nested_symlinks(layout, tmp_path: Path) -> None:
    _make_source(layout.source_root, "waybar")
    shared = tmp_path / "shared.css"
    shared.write_text("* { color: red; }\n")
    (layout.dest_root / "waybar").mkdir()
    (layout.dest_root / "waybar" / "style.css").symlink_to(shared)

    reconcile(["waybar"], layout.source_root, layout.dest_root, layout.backup_root)

    copied = layout.backup_root / "waybar" / "style.css"
    assert not copied.is_symlink()
    assert copied.read_text() == "* { color: red; }\n"


def test_backup_failure_keeps_original_and_skips_link(layout, monkeypatch: pytest.MonkeyPatch) -> None:
    _make_source(layout.source_root, "a", "b")
    (layout.dest_root / "a").mkdir()
    (layout.dest_root / "a" / "x.txt").write_text("mine\n")

    def fail_copy(*_args, **_kwargs):
        raise PermissionError("disk says no")

    monkeypatch.setattr(reconciler, "copy_physical", fail_copy)

    report = reconcile(["a", "b"], layout.source_root, layout.dest_root, layout.backup_root)

    first, second = report.outcomes
    assert first.action is LinkAction.BACKUP_FAILED
    assert first.error is ErrorKind.BACKUP_WRITE_FAILED
    assert "disk says no" in (first.details or "")
    assert (layout.dest_root / "a" / "x.txt").read_text() == "mine\n"
    assert not (layout.dest_root / "a").is_symlink()
    assert second.action is LinkAction.LINKED
    assert report.failed == 1


def test_copied_but_unremovable_original_counts_as_failed(layout, monkeypatch: pytest.MonkeyPatch) -> None:
    _make_source(layout.source_root, "a")
    (layout.dest_root / "a").mkdir()
    (layout.dest_root / "a" / "x.txt").write_text("mine\n")

    def fail_remove(*_args, **_kwargs):
        raise PermissionError("busy")

    monkeypatch.setattr(reconciler, "remove_path", fail_remove)

    report = reconcile(["a"], layout.source_root, layout.dest_root, layout.backup_root)

    outcome = report.outcomes[0]
    assert outcome.action is LinkAction.BACKUP_FAILED
    assert outcome.backup_path == layout.backup_root / "a"
    assert (layout.backup_root / "a" / "x.txt").read_text() == "mine\n"
    assert report.failed == 1
    assert report.backed_up == 0
    assert "backed up: 0" in report.summary()


def test_existing_backup_entry_is_never_overwritten(layout, monkeypatch: pytest.MonkeyPatch) -> None:
    _make_source(layout.source_root, "a")
    (layout.dest_root / "a").mkdir()
    (layout.dest_root / "a" / "x.txt").write_text("new\n")

    original_copy = reconciler.copy_physical

    def copy_after_collision(source: Path, destination: Path) -> None:
        destination.mkdir()
        (destination / "x.txt").write_text("earlier\n")
        original_copy(source, destination)

    monkeypatch.setattr(reconciler, "copy_physical", copy_after_collision)

    report = reconcile(["a"], layout.source_root, layout.dest_root, layout.backup_root)

    assert report.outcomes[0].action is LinkAction.BACKUP_FAILED
    assert (layout.backup_root / "a" / "x.txt").read_text() == "earlier\n"
    assert (layout.dest_root / "a" / "x.txt").read_text() == "new\n"


def test_link_failure_reverts_backed_up_entry(layout, monkeypatch: pytest.MonkeyPatch) -> None:
    _make_source(layout.source_root, "a")
    (layout.dest_root / "a").mkdir()
    (layout.dest_root / "a" / "x.txt").write_text("mine\n")

    def fail_link(*_args, **_kwargs):
        raise OSError("read-only file system")

    monkeypatch.setattr(reconciler, "create_symlink", fail_link)

    report = reconcile(["a"], layout.source_root, layout.dest_root, layout.backup_root)

    outcome = report.outcomes[0]
    assert outcome.action is LinkAction.LINK_FAILED
    assert outcome.error is ErrorKind.SYMLINK_CREATE_FAILED
    assert outcome.reverted is True
    assert outcome.backup_path is None
    assert (layout.dest_root / "a" / "x.txt").read_text() == "mine\n"
    assert report.backup_root is None


def test_link_failure_recreates_discarded_symlink(layout, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _make_source(layout.source_root, "a")
    old = tmp_path / "old"
    old.mkdir()
    (layout.dest_root / "a").symlink_to(old)

    def fail_link(*_args, **_kwargs):
        raise OSError("nope")

    monkeypatch.setattr(reconciler, "create_symlink", fail_link)

    report = reconcile(["a"], layout.source_root, layout.dest_root, layout.backup_root)

    assert report.outcomes[0].reverted is True
    assert os.readlink(layout.dest_root / "a") == str(old)


def test_link_failure_on_absent_destination_reports_no_revert(layout, monkeypatch: pytest.MonkeyPatch) -> None:
    _make_source(layout.source_root, "a")

    def fail_link(*_args, **_kwargs):
        raise OSError("read-only file system")

    monkeypatch.setattr(reconciler, "create_symlink", fail_link)

    report = reconcile(["a"], layout.source_root, layout.dest_root, layout.backup_root)

    outcome = report.outcomes[0]
    assert outcome.action is LinkAction.LINK_FAILED
    assert outcome.prior.kind is EntryKind.ABSENT
    assert outcome.reverted is False
    assert outcome.details == "read-only file system"
    assert not os.path.lexists(layout.dest_root / "a")


def test_link_failure_without_revert_keeps_backup(layout, monkeypatch: pytest.MonkeyPatch) -> None:
    _make_source(layout.source_root, "a")
    (layout.dest_root / "a").mkdir()
    (layout.dest_root / "a" / "x.txt").write_text("mine\n")

    def fail_link(*_args, **_kwargs):
        raise OSError("read-only file system")

    monkeypatch.setattr(reconciler, "create_symlink", fail_link)

    report = reconcile(
        ["a"], layout.source_root, layout.dest_root, layout.backup_root, revert_on_link_failure=False
    )

    outcome = report.outcomes[0]
    assert outcome.action is LinkAction.LINK_FAILED
    assert outcome.reverted is False
    assert outcome.backup_path == layout.backup_root / "a"
    assert (layout.backup_root / "a" / "x.txt").read_text() == "mine\n"
    assert not os.path.lexists(layout.dest_root / "a")


def test_second_run_is_idempotent(layout, tmp_path: Path) -> None:
    _make_source(layout.source_root, "a", "b")
    (layout.dest_root / "a").mkdir()
    (layout.dest_root / "a" / "x.txt").write_text("mine\n")

    reconcile(["a", "b", "c"], layout.source_root, layout.dest_root, layout.backup_root)
    second_root = tmp_path / "config_backup_second"
    report = reconcile(["a", "b", "c"], layout.source_root, layout.dest_root, second_root)

    assert [outcome.action for outcome in report.outcomes] == [
        LinkAction.UNCHANGED,
        LinkAction.UNCHANGED,
        LinkAction.SKIPPED,
    ]
    assert report.backed_up == 0
    assert not second_root.exists()
    for name in ("a", "b"):
        assert (layout.dest_root / name).resolve() == (layout.source_root / name).resolve()


def test_existing_backup_root_is_fatal(layout) -> None:
    layout.backup_root.mkdir()

    with pytest.raises(ReconcileError):
        reconcile(["a"], layout.source_root, layout.dest_root, layout.backup_root)


def test_destination_root_must_be_directory(layout, tmp_path: Path) -> None:
    not_a_dir = tmp_path / "file"
    not_a_dir.write_text("")

    with pytest.raises(ReconcileError):
        reconcile(["a"], layout.source_root, not_a_dir, layout.backup_root)


def test_missing_destination_root_is_created(layout, tmp_path: Path) -> None:
    _make_source(layout.source_root, "a")
    dest_root = tmp_path / "fresh" / ".config"

    report = reconcile(["a"], layout.source_root, dest_root, layout.backup_root)

    assert report.linked == 1
    assert (dest_root / "a").is_symlink()


def test_restore_after_reconcile_round_trips(layout) -> None:
    _make_source(layout.source_root, "a")
    (layout.dest_root / "a").mkdir()
    (layout.dest_root / "a" / "x.txt").write_bytes(b"\x00binary\xffdata")

    reconcile(["a", "b"], layout.source_root, layout.dest_root, layout.backup_root)
    report = restore(layout.backup_root, layout.dest_root)

    dest_a = layout.dest_root / "a"
    assert not dest_a.is_symlink()
    assert dest_a.is_dir()
    assert (dest_a / "x.txt").read_bytes() == b"\x00binary\xffdata"
    assert [outcome.action for outcome in report.outcomes] == [RestoreAction.RESTORED]
    assert not os.path.lexists(layout.backup_root / "a")
    assert (layout.source_root / "a" / "config").exists()


def test_restore_overwrites_any_destination_type(layout) -> None:
    layout.backup_root.mkdir()
    (layout.backup_root / "fish").mkdir()
    (layout.backup_root / "fish" / "config.fish").write_text("set -g fish_greeting\n")
    (layout.backup_root / "kitty").write_text("font_size 12\n")
    (layout.dest_root / "fish").write_text("replace me\n")
    (layout.dest_root / "kitty").mkdir()

    report = restore(layout.backup_root, layout.dest_root)

    assert report.restored == 2
    assert (layout.dest_root / "fish" / "config.fish").read_text() == "set -g fish_greeting\n"
    assert (layout.dest_root / "kitty").read_text() == "font_size 12\n"
    assert not layout.backup_root.exists()


def test_restore_aborts_on_first_failure(layout, monkeypatch: pytest.MonkeyPatch) -> None:
    layout.backup_root.mkdir()
    for name in ("alpha", "beta", "gamma"):
        (layout.backup_root / name).mkdir()

    original_move = reconciler.move_entry

    def flaky_move(source: Path, destination: Path) -> None:
        if source.name == "beta":
            raise OSError("device busy")
        original_move(source, destination)

    monkeypatch.setattr(reconciler, "move_entry", flaky_move)

    report = restore(layout.backup_root, layout.dest_root)

    assert [outcome.action for outcome in report.outcomes] == [
        RestoreAction.RESTORED,
        RestoreAction.FAILED,
        RestoreAction.PENDING,
    ]
    assert report.outcomes[1].error is ErrorKind.RESTORE_MOVE_FAILED
    assert report.aborted
    assert (layout.dest_root / "alpha").is_dir()
    assert (layout.backup_root / "beta").is_dir()
    assert (layout.backup_root / "gamma").is_dir()


def test_restore_requires_backup_root(layout) -> None:
    with pytest.raises(ReconcileError):
        restore(layout.backup_root, layout.dest_root)


def test_restore_empty_backup_root(layout) -> None:
    layout.backup_root.mkdir()

    report = restore(layout.backup_root, layout.dest_root)

    assert report.outcomes == ()
    assert not report.aborted
