"""Backup ledger persistence for dotmerge."""

from __future__ import annotations

import logging
import os
import tomllib
from dataclasses import replace
from pathlib import Path
from typing import Any, Mapping

import tomli_w

from .errors import DotmergeError
from .filesystem import copy_entry, epoch_millis, lexists, write_text_atomic
from .models import BackupEntry, Manifest, MutationKind

BACKUP_MARKER = "dotmerge-backup"
MANIFEST_VERSION = 1

logger = logging.getLogger(__name__)


def backup_path_for(path: Path, millis: int) -> Path:
    """Return ``<path>.dotmerge-backup.<millis>``."""

    return path.with_name(f"{path.name}.{BACKUP_MARKER}.{millis}")


def backup_file(path: Path, *, move: bool = False, now: int | None = None) -> Path:
    """Preserve ``path`` next to itself and return where it went.

    Files that stay in place are copied; files about to be replaced are renamed, which
    is atomic. The backup is not recorded: callers append a ledger entry themselves.
    """

    if not lexists(path):
        raise FileNotFoundError(path)

    backup = backup_path_for(path, epoch_millis() if now is None else now)
    if lexists(backup):
        raise DotmergeError(f"Backup path '{backup}' already exists; refusing to overwrite it")

    if move:
        os.rename(path, backup)
    else:
        copy_entry(path, backup)
    logger.info("Backed up %s -> %s", path, backup)
    return backup


class BackupLedger:
    """Reads and writes the backup manifest.

    Every operation goes back to disk; nothing is cached between calls, so separate
    invocations always see the latest saved state. There is no locking: the last writer
    wins.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> Manifest:
        if not self.path.exists():
            return Manifest(version=MANIFEST_VERSION, entries=[])

        try:
            with self.path.open("rb") as handle:
                data = tomllib.load(handle)
            version = int(data.get("version", MANIFEST_VERSION))
            raw_entries = data.get("entries", [])
            if not isinstance(raw_entries, list):
                raise TypeError("'entries' must be an array of tables")
        except (tomllib.TOMLDecodeError, UnicodeDecodeError, TypeError, ValueError) as exc:
            logger.warning("Could not parse backup manifest '%s' (%s); starting with empty history", self.path, exc)
            return Manifest(version=MANIFEST_VERSION, entries=[])

        entries: list[BackupEntry] = []
        for item in raw_entries:
            try:
                entries.append(self._entry_from_dict(item))
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                logger.warning("Ignoring malformed backup entry %r in '%s': %s", item, self.path, exc)
        return Manifest(version=version, entries=entries)

    def save(self, manifest: Manifest) -> None:
        payload = {
            "version": manifest.version,
            "entries": [self._entry_to_dict(entry) for entry in manifest.entries],
        }
        write_text_atomic(self.path, tomli_w.dumps(payload))

    def append(self, entry: BackupEntry) -> BackupEntry:
        """Record ``entry`` with a fresh timestamp and persist the whole manifest."""

        manifest = self.load()
        stamped = replace(entry, timestamp=epoch_millis())
        manifest.entries.append(stamped)
        self.save(manifest)
        return stamped

    def discard(self, entry: BackupEntry) -> bool:
        manifest = self.load()
        removed = manifest.remove(entry)
        if removed:
            self.save(manifest)
        return removed

    def preserve(
        self,
        path: Path,
        kind: MutationKind = MutationKind.FILE,
        package: str | None = None,
        *,
        move: bool = False,
    ) -> BackupEntry:
        """Back up ``path`` and record it, ledger entry first.

        The entry is written before the physical backup so an interruption can only leave
        an entry whose backup is missing, which revert reports and skips. If taking the
        backup fails the entry is withdrawn again.
        """

        original = Path(os.path.abspath(path))
        if not lexists(original):
            raise FileNotFoundError(original)

        millis = epoch_millis()
        # Two backups of one file within the same millisecond must not collide.
        while lexists(backup_path_for(original, millis)):
            millis += 1
        backup = backup_path_for(original, millis)
        entry = self.append(BackupEntry(original=original, backup=backup, kind=kind, package=package))
        try:
            backup_file(original, move=move, now=millis)
        except BaseException:
            self.discard(entry)
            raise
        return entry

    @staticmethod
    def _entry_from_dict(item: Mapping[str, Any]) -> BackupEntry:
        package = item.get("package")
        return BackupEntry(
            original=Path(item["original"]),
            backup=Path(item["backup"]),
            kind=MutationKind(item.get("kind", MutationKind.FILE.value)),
            package=str(package) if package is not None else None,
            timestamp=int(item.get("timestamp", 0)),
        )

    @staticmethod
    def _entry_to_dict(entry: BackupEntry) -> dict[str, object]:
        payload: dict[str, object] = {
            "original": str(entry.original),
            "backup": str(entry.backup),
            "kind": entry.kind.value,
            "timestamp": entry.timestamp,
        }
        if entry.package is not None:
            payload["package"] = entry.package
        return payload
