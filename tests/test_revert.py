from __future__ import annotations

import logging
from pathlib import Path

import pytest

from dotmerge.errors import DotmergeError
from dotmerge.manifest import BackupLedger
from dotmerge.models import BackupEntry, Manifest, MutationKind, RevertAction
from dotmerge.revert import revert_entries


class RecordingLinker:
    def __init__(self, *, fail: bool = False) -> None:
        self.unlinked: list[str] = []
        self.fail = fail

    def targets(self, package: str) -> list[Path]:
        return []

    def is_linked(self, path: Path, package: str) -> bool:
        return False

    def link(self, package: str) -> None:
        raise AssertionError("revert must not link")

    def unlink(self, package: str) -> None:
        self.unlinked.append(package)
        if self.fail:
            raise DotmergeError("stow exploded")


class CountingLedger(BackupLedger):
    def __init__(self, path: Path) -> None:
        super().__init__(path)
        self.saves = 0

    def save(self, manifest: Manifest) -> None:
        self.saves += 1
        super().save(manifest)


def test_restore_file_from_backup(tmp_path: Path) -> None:
    ledger = CountingLedger(tmp_path / "manifest.toml")
    target = tmp_path / ".zshrc"
    target.write_text("original\n")
    entry = ledger.preserve(target)
    target.write_text("merged\n")
    ledger.saves = 0

    results = revert_entries([entry], ledger)

    assert [result.action for result in results] == [RevertAction.RESTORED]
    assert target.read_text() == "original\n"
    assert not entry.backup.exists()
    assert ledger.load().entries == []
    assert ledger.saves == 1


def test_missing_backup_is_reported_and_batch_continues(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    ledger = CountingLedger(tmp_path / "manifest.toml")
    first = tmp_path / ".bashrc"
    second = tmp_path / ".zshrc"
    first.write_text("bash\n")
    second.write_text("zsh\n")
    lost = ledger.preserve(first)
    kept = ledger.preserve(second)
    lost.backup.unlink()
    first.write_text("changed\n")
    second.write_text("changed\n")
    ledger.saves = 0

    with caplog.at_level(logging.ERROR):
        results = revert_entries([lost, kept], ledger)

    assert [(result.entry, result.action) for result in results] == [
        (lost, RevertAction.MISSING_BACKUP),
        (kept, RevertAction.RESTORED),
    ]
    assert "not found" in (results[0].details or "")
    assert "Backup file not found" in caplog.text
    assert first.read_text() == "changed\n"
    assert second.read_text() == "zsh\n"
    assert ledger.load().entries == [lost]
    assert ledger.saves == 1


def test_restore_replaces_directory_with_backed_up_file(tmp_path: Path) -> None:
    ledger = BackupLedger(tmp_path / "manifest.toml")
    target = tmp_path / "config"
    target.write_text("file\n")
    entry = ledger.preserve(target, move=True)
    target.mkdir()
    (target / "nested").write_text("x")

    results = revert_entries([entry], ledger)

    assert results[0].action is RevertAction.RESTORED
    assert target.is_file()
    assert target.read_text() == "file\n"


def test_stow_entry_unlinks_package_first(tmp_path: Path) -> None:
    ledger = BackupLedger(tmp_path / "manifest.toml")
    target = tmp_path / ".vimrc"
    target.write_text("mine\n")
    entry = ledger.preserve(target, MutationKind.STOW, "vim", move=True)
    target.symlink_to(tmp_path / "packages" / "vim" / ".vimrc")
    linker = RecordingLinker()

    results = revert_entries([entry], ledger, linker)

    assert linker.unlinked == ["vim"]
    assert results[0].action is RevertAction.RESTORED
    assert not target.is_symlink()
    assert target.read_text() == "mine\n"


def test_unlink_failure_does_not_stop_restore(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    ledger = BackupLedger(tmp_path / "manifest.toml")
    target = tmp_path / ".tmux.conf"
    target.write_text("mine\n")
    entry = ledger.preserve(target, MutationKind.STOW, "tmux", move=True)

    with caplog.at_level(logging.WARNING):
        results = revert_entries([entry], ledger, RecordingLinker(fail=True))

    assert results[0].action is RevertAction.RESTORED
    assert "Could not unlink package 'tmux'" in caplog.text
    assert target.read_text() == "mine\n"


def test_file_entries_never_touch_the_linker(tmp_path: Path) -> None:
    ledger = BackupLedger(tmp_path / "manifest.toml")
    target = tmp_path / ".zshrc"
    target.write_text("mine\n")
    entry = ledger.preserve(target)
    linker = RecordingLinker()

    revert_entries([entry], ledger, linker)

    assert linker.unlinked == []


def test_os_error_marks_entry_failed(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    ledger = BackupLedger(tmp_path / "manifest.toml")
    target = tmp_path / ".zshrc"
    target.write_text("mine\n")
    entry = ledger.preserve(target)

    def refuse(src: object, dst: object) -> None:
        raise PermissionError("read-only")

    monkeypatch.setattr("dotmerge.revert.os.replace", refuse)

    results = revert_entries([entry], ledger)

    assert results[0].action is RevertAction.FAILED
    assert results[0].details == "read-only"
    assert ledger.load().entries == [entry]
    assert entry.backup.exists()
    assert target.read_text() == "mine\n"


def test_entries_are_processed_in_given_order(tmp_path: Path) -> None:
    ledger = BackupLedger(tmp_path / "manifest.toml")
    target = tmp_path / ".zshrc"
    target.write_text("v1\n")
    first = ledger.preserve(target)
    target.write_text("v2\n")
    second = ledger.preserve(target)
    target.write_text("v3\n")

    revert_entries([second, first], ledger)

    assert target.read_text() == "v1\n"
    assert ledger.load().entries == []


def test_unknown_entry_still_restores(tmp_path: Path) -> None:
    ledger = BackupLedger(tmp_path / "manifest.toml")
    original = tmp_path / "file"
    backup = tmp_path / "file.dotmerge-backup.1"
    backup.write_text("old")
    entry = BackupEntry(original=original, backup=backup, timestamp=1)

    results = revert_entries([entry], ledger)

    assert results[0].action is RevertAction.RESTORED
    assert original.read_text() == "old"
