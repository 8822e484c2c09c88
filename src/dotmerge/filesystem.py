"""Filesystem helpers for dotmerge."""

from __future__ import annotations

import os
import shutil
import tempfile
import time
from pathlib import Path


def ensure_parent(path: Path) -> None:
    """Ensure the parent directory exists."""

    path.parent.mkdir(parents=True, exist_ok=True)


def lexists(path: Path) -> bool:
    """Return ``True`` for existing paths and for dangling symlinks."""

    return path.exists() or path.is_symlink()


def epoch_millis() -> int:
    return time.time_ns() // 1_000_000


def read_text(path: Path) -> str:
    """Return the file contents, or an empty string when ``path`` is missing."""

    if not path.exists():
        return ""
    with path.open("r", encoding="utf-8", newline="") as handle:
        return handle.read()


def write_text_atomic(path: Path, content: str) -> None:
    """Replace ``path`` in full with ``content`` via a temporary sibling file."""

    ensure_parent(path)
    fd, temp_name = tempfile.mkstemp(prefix=f".{path.name}.dotmerge-tmp-", dir=path.parent)
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(content)
        if path.exists():
            shutil.copymode(path, temp_path)
        os.replace(temp_path, path)
    except Exception:
        temp_path.unlink(missing_ok=True)
        raise


def copy_entry(source: Path, destination: Path) -> None:
    """Copy ``source`` to a fresh ``destination`` preserving metadata and links."""

    if lexists(destination):
        raise FileExistsError(destination)
    ensure_parent(destination)

    if source.is_symlink():
        destination.symlink_to(os.readlink(source))
    elif source.is_dir():
        shutil.copytree(source, destination, symlinks=True, copy_function=shutil.copy2)
    else:
        shutil.copy2(source, destination)


def ensure_symlink(source: Path, target: Path) -> bool:
    """Ensure ``source`` is a symlink to ``target``.

    Returns ``True`` if a change was made.
    """

    if lexists(source):
        if source.is_symlink():
            if symlink_points_to(source, target):
                return False
            source.unlink()
        elif source.is_dir():
            shutil.rmtree(source)
        else:
            source.unlink()

    ensure_parent(source)
    try:
        relative_target = os.path.relpath(target, start=source.parent)
        source.symlink_to(relative_target)
    except ValueError:
        source.symlink_to(target)
    return True


def symlink_points_to(source: Path, target: Path) -> bool:
    """Return ``True`` if ``source`` symlink resolves to ``target``."""

    if not source.is_symlink():
        return False
    current = Path(os.readlink(source))
    current_resolved = (source.parent / current).resolve(strict=False)
    target_resolved = target.resolve(strict=False)
    return current_resolved == target_resolved


def remove_path(path: Path) -> None:
    """Delete ``path`` whether it is a file, directory, or symlink."""

    if not lexists(path):
        return
    if path.is_symlink() or path.is_file():
        path.unlink()
        return
    shutil.rmtree(path)


def prune_empty_dirs(start: Path, stop: Path) -> None:
    """Remove empty directories from ``start`` upwards, never touching ``stop``."""

    current = start
    stop_resolved = stop.resolve(strict=False)
    while current.resolve(strict=False) != stop_resolved and stop_resolved in current.resolve(strict=False).parents:
        try:
            current.rmdir()
        except OSError:
            return
        current = current.parent
