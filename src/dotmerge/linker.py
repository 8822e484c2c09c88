"""Package linking: symlink farms of configuration packages into a target directory."""

from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Callable, Protocol

from .errors import DotmergeError, LinkConflictError
from .filesystem import ensure_symlink, lexists, prune_empty_dirs, symlink_points_to
from .manifest import BACKUP_MARKER

logger = logging.getLogger(__name__)


class PackageLinker(Protocol):
    """Links and unlinks named packages. Reverting a ``stow`` backup unlinks first."""

    def targets(self, package: str) -> list[Path]: ...

    def is_linked(self, path: Path, package: str) -> bool: ...

    def link(self, package: str) -> None: ...

    def unlink(self, package: str) -> None: ...


class SymlinkFarmLinker:
    """Links every file of ``packages_dir/<package>`` to the same place under ``target_dir``."""

    def __init__(self, packages_dir: Path, target_dir: Path) -> None:
        self.packages_dir = packages_dir
        self.target_dir = target_dir

    def package_dir(self, package: str) -> Path:
        path = self.packages_dir / package
        if not path.is_dir():
            raise DotmergeError(f"Package '{package}' not found in '{self.packages_dir}'")
        return path

    def members(self, package: str) -> list[Path]:
        """Paths inside the package, relative to it, that become links.

        Backups taken inside the package, e.g. by a merge through a linked rc file, are
        not members.
        """

        root = self.package_dir(package)
        members: list[Path] = []
        for dirpath, dirnames, filenames in os.walk(root):
            current = Path(dirpath)
            for name in dirnames:
                if (current / name).is_symlink() and not _is_backup_name(name):
                    members.append((current / name).relative_to(root))
            for name in filenames:
                if not _is_backup_name(name):
                    members.append((current / name).relative_to(root))
        return sorted(members)

    def targets(self, package: str) -> list[Path]:
        return [self.target_dir / member for member in self.members(package)]

    def is_linked(self, path: Path, package: str) -> bool:
        if not path.is_symlink() and not any(parent.is_symlink() for parent in path.parents):
            return False
        root = self.package_dir(package).resolve()
        return path.resolve(strict=False).is_relative_to(root)

    def link(self, package: str) -> None:
        root = self.package_dir(package)
        members = self.members(package)
        conflicts = [
            self.target_dir / member
            for member in members
            if lexists(self.target_dir / member) and not self.is_linked(self.target_dir / member, package)
        ]
        if conflicts:
            listed = ", ".join(str(path) for path in conflicts)
            raise LinkConflictError(f"Cannot link '{package}': existing paths would be replaced: {listed}")

        for member in members:
            if ensure_symlink(self.target_dir / member, root / member):
                logger.debug("Linked %s -> %s", self.target_dir / member, root / member)

    def unlink(self, package: str) -> None:
        root = self.package_dir(package)
        for member in self.members(package):
            target = self.target_dir / member
            if symlink_points_to(target, root / member):
                target.unlink()
                prune_empty_dirs(target.parent, self.target_dir)
                logger.debug("Unlinked %s", target)


def _is_backup_name(name: str) -> bool:
    return f".{BACKUP_MARKER}." in name


Runner = Callable[..., "subprocess.CompletedProcess[str]"]


class StowLinker(SymlinkFarmLinker):
    """Delegates linking to GNU stow, which may fold whole directories into one link."""

    def __init__(
        self,
        packages_dir: Path,
        target_dir: Path,
        *,
        executable: str = "stow",
        runner: Runner = subprocess.run,
    ) -> None:
        super().__init__(packages_dir, target_dir)
        self.executable = executable
        self._runner = runner

    def link(self, package: str) -> None:
        self.package_dir(package)
        self._run(package)

    def unlink(self, package: str) -> None:
        self.package_dir(package)
        self._run("-D", package)

    def _run(self, *args: str) -> None:
        command = [self.executable, "-d", str(self.packages_dir), "-t", str(self.target_dir), *args]
        logger.debug("Running %s", " ".join(command))
        try:
            result = self._runner(command, capture_output=True, text=True, check=False)
        except FileNotFoundError as exc:
            raise DotmergeError(f"'{self.executable}' is not installed") from exc
        if result.returncode != 0:
            message = (result.stderr or result.stdout or "").strip()
            raise DotmergeError(f"{' '.join(command)} failed with exit code {result.returncode}: {message}")
