"""Restoring recorded backups."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable

from .errors import DotmergeError
from .filesystem import lexists, remove_path
from .linker import PackageLinker
from .manifest import BackupLedger
from .models import BackupEntry, MutationKind, RevertAction, RevertResult

logger = logging.getLogger(__name__)


def revert_entries(
    entries: Iterable[BackupEntry],
    ledger: BackupLedger,
    linker: PackageLinker | None = None,
) -> list[RevertResult]:
    """Restore ``entries`` in the given order and drop them from the ledger.

    A missing backup or an OS error affects only its own entry. The manifest is saved
    once, after every entry has been processed.
    """

    manifest = ledger.load()
    results: list[RevertResult] = []

    for entry in entries:
        if entry.kind is MutationKind.STOW and entry.package:
            _unlink_package(entry, linker)

        if not lexists(entry.backup):
            logger.error("Backup file not found: %s", entry.backup)
            results.append(
                RevertResult(entry=entry, action=RevertAction.MISSING_BACKUP, details=f"Backup '{entry.backup}' not found")
            )
            continue

        try:
            # Files and links are swapped in atomically; directories have to be cleared first.
            if _is_directory(entry.original) or _is_directory(entry.backup):
                remove_path(entry.original)
            entry.original.parent.mkdir(parents=True, exist_ok=True)
            os.replace(entry.backup, entry.original)
        except OSError as exc:
            logger.error("Failed to restore %s: %s", entry.original, exc)
            results.append(RevertResult(entry=entry, action=RevertAction.FAILED, details=str(exc)))
            continue

        manifest.remove(entry)
        logger.info("Restored %s from %s", entry.original, entry.backup)
        results.append(RevertResult(entry=entry, action=RevertAction.RESTORED))

    ledger.save(manifest)
    return results


def _unlink_package(entry: BackupEntry, linker: PackageLinker | None) -> None:
    if linker is None:
        logger.warning("No package linker available to unlink '%s' before restoring %s", entry.package, entry.original)
        return
    try:
        linker.unlink(entry.package or "")
    except (DotmergeError, OSError) as exc:
        logger.warning("Could not unlink package '%s': %s", entry.package, exc)


def _is_directory(path: Path) -> bool:
    return path.is_dir() and not path.is_symlink()
