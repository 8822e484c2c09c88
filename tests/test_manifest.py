from __future__ import annotations

import logging
from pathlib import Path

import pytest

from dotmerge import manifest as manifest_module
from dotmerge.errors import DotmergeError
from dotmerge.manifest import BackupLedger, backup_file, backup_path_for
from dotmerge.models import BackupEntry, Manifest, MutationKind


def test_missing_manifest_loads_empty(tmp_path: Path) -> None:
    manifest = BackupLedger(tmp_path / "manifest.toml").load()

    assert manifest.version == 1
    assert manifest.entries == []


def test_corrupt_manifest_loads_empty(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    path = tmp_path / "manifest.toml"
    path.write_text("this is = = not toml")

    with caplog.at_level(logging.WARNING):
        manifest = BackupLedger(path).load()

    assert manifest.entries == []
    assert "Could not parse backup manifest" in caplog.text


def test_malformed_entries_are_skipped(tmp_path: Path) -> None:
    path = tmp_path / "manifest.toml"
    path.write_text(
        """
version = 1

[[entries]]
original = "/home/u/.zshrc"
backup = "/home/u/.zshrc.dotmerge-backup.5"
kind = "file"
timestamp = 5

[[entries]]
original = "/home/u/.vimrc"

[[entries]]
original = "/home/u/.bashrc"
backup = "/home/u/.bashrc.dotmerge-backup.6"
kind = "teleport"
timestamp = 6
"""
    )

    manifest = BackupLedger(path).load()

    assert [entry.original for entry in manifest.entries] == [Path("/home/u/.zshrc")]


def test_save_and_load_preserves_entries(tmp_path: Path) -> None:
    ledger = BackupLedger(tmp_path / "state" / "manifest.toml")
    entries = [
        BackupEntry(original=Path("/h/.zshrc"), backup=Path("/h/.zshrc.dotmerge-backup.1"), timestamp=1),
        BackupEntry(
            original=Path("/h/.config/nvim"),
            backup=Path("/h/.config/nvim.dotmerge-backup.2"),
            kind=MutationKind.STOW,
            package="nvim",
            timestamp=2,
        ),
    ]

    ledger.save(Manifest(version=1, entries=list(entries)))
    loaded = ledger.load()

    assert loaded.entries == entries
    assert 'package = "nvim"' in ledger.path.read_text()
    assert ledger.path.read_text().count("package") == 1


def test_append_stamps_entry_and_keeps_order(tmp_path: Path) -> None:
    ledger = BackupLedger(tmp_path / "manifest.toml")

    first = ledger.append(BackupEntry(original=Path("/a"), backup=Path("/a.bak")))
    second = ledger.append(BackupEntry(original=Path("/b"), backup=Path("/b.bak")))

    assert first.timestamp > 0
    assert second.timestamp >= first.timestamp
    assert [entry.original for entry in ledger.load().entries] == [Path("/a"), Path("/b")]


def test_backup_file_copies_by_default(tmp_path: Path) -> None:
    target = tmp_path / ".zshrc"
    target.write_text("export A=1\n")

    backup = backup_file(target, now=1700000000000)

    assert backup == tmp_path / ".zshrc.dotmerge-backup.1700000000000"
    assert backup.read_text() == "export A=1\n"
    assert target.read_text() == "export A=1\n"


def test_backup_file_move(tmp_path: Path) -> None:
    target = tmp_path / ".gitconfig"
    target.write_text("[user]\n")

    backup = backup_file(target, move=True, now=7)

    assert not target.exists()
    assert backup.read_text() == "[user]\n"


def test_backup_file_keeps_symlinks_as_links(tmp_path: Path) -> None:
    real = tmp_path / "real"
    real.write_text("x")
    link = tmp_path / "link"
    link.symlink_to(real)

    backup = backup_file(link, now=3)

    assert backup.is_symlink()
    assert backup.resolve() == real.resolve()


def test_backup_file_refuses_existing_backup_path(tmp_path: Path) -> None:
    target = tmp_path / ".zshrc"
    target.write_text("new")
    backup_path_for(target, 9).write_text("old")

    with pytest.raises(DotmergeError):
        backup_file(target, now=9)

    assert backup_path_for(target, 9).read_text() == "old"


def test_backup_file_missing_source(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        backup_file(tmp_path / "missing")


def test_preserve_records_then_backs_up(tmp_path: Path) -> None:
    ledger = BackupLedger(tmp_path / "manifest.toml")
    target = tmp_path / ".zshrc"
    target.write_text("mine\n")

    entry = ledger.preserve(target)

    assert entry.original == target
    assert entry.backup.read_text() == "mine\n"
    assert entry.backup.name.startswith(".zshrc.dotmerge-backup.")
    assert ledger.load().entries == [entry]


def test_preserve_twice_in_a_row_uses_distinct_paths(tmp_path: Path) -> None:
    ledger = BackupLedger(tmp_path / "manifest.toml")
    target = tmp_path / ".zshrc"
    target.write_text("mine\n")

    first = ledger.preserve(target)
    second = ledger.preserve(target)

    assert first.backup != second.backup
    assert len(ledger.load().entries) == 2


def test_preserve_withdraws_entry_when_backup_fails(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    ledger = BackupLedger(tmp_path / "manifest.toml")
    target = tmp_path / ".zshrc"
    target.write_text("mine\n")
    seen: list[int] = []

    def failing_backup(path: Path, *, move: bool = False, now: int | None = None) -> Path:
        seen.append(len(ledger.load().entries))
        raise OSError("disk full")

    monkeypatch.setattr(manifest_module, "backup_file", failing_backup)

    with pytest.raises(OSError):
        ledger.preserve(target)

    assert seen == [1]
    assert ledger.load().entries == []
    assert target.read_text() == "mine\n"


def test_preserve_missing_path(tmp_path: Path) -> None:
    ledger = BackupLedger(tmp_path / "manifest.toml")

    with pytest.raises(FileNotFoundError):
        ledger.preserve(tmp_path / "missing")

    assert not ledger.path.exists()


def test_latest_by_original_and_for_original() -> None:
    a_old = BackupEntry(original=Path("/a"), backup=Path("/a.1"), timestamp=1)
    b_only = BackupEntry(original=Path("/b"), backup=Path("/b.2"), timestamp=2)
    a_new = BackupEntry(original=Path("/a"), backup=Path("/a.3"), timestamp=3)
    manifest = Manifest(entries=[a_old, b_only, a_new])

    assert manifest.latest_by_original() == [a_new, b_only]
    assert manifest.for_original("/a") == [a_new, a_old]
    assert manifest.for_original("/c") == []


def test_remove_matches_original_and_backup() -> None:
    entry = BackupEntry(original=Path("/a"), backup=Path("/a.1"), timestamp=1)
    manifest = Manifest(entries=[entry])

    assert not manifest.remove(BackupEntry(original=Path("/a"), backup=Path("/a.2")))
    assert manifest.remove(BackupEntry(original=Path("/a"), backup=Path("/a.1"), timestamp=99))
    assert manifest.entries == []
