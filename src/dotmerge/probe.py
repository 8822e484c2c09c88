"""Injectable checks against the host system."""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Callable, Iterable, Sequence

from .models import ToolState

logger = logging.getLogger(__name__)


class SystemProbe:
    """Answers "does X exist" questions. Tests pass a fake with the same methods."""

    def exists(self, path: Path) -> bool:
        return path.exists()

    def command_available(self, name: str) -> bool:
        return shutil.which(name) is not None


class InstalledPackages:
    """Memoised set of installed package names.

    The loader runs at most once until :meth:`invalidate` is called, e.g. after
    installing something.
    """

    def __init__(self, loader: Callable[[], Iterable[str]]) -> None:
        self._loader = loader
        self._cache: frozenset[str] | None = None

    @classmethod
    def from_command(cls, command: Sequence[str]) -> "InstalledPackages":
        return cls(lambda: list_command_output(command))

    def names(self) -> frozenset[str]:
        if self._cache is None:
            self._cache = frozenset(self._loader())
        return self._cache

    def contains(self, name: str) -> bool:
        return name in self.names()

    def invalidate(self) -> None:
        self._cache = None


def list_command_output(command: Sequence[str]) -> list[str]:
    """Run ``command`` and return its non-empty output lines; failures mean nothing installed."""

    if not command:
        return []
    try:
        result = subprocess.run(list(command), capture_output=True, text=True, check=False)
    except OSError as exc:
        logger.debug("Package list command %s unavailable: %s", command[0], exc)
        return []
    if result.returncode != 0:
        logger.debug("Package list command %s exited with %s", command[0], result.returncode)
        return []
    return [line.strip() for line in result.stdout.splitlines() if line.strip()]


def detect_tool(
    *,
    package: str | None = None,
    detect_path: Path | None = None,
    detect_command: str | None = None,
    dependencies: Sequence[str] = (),
    probe: SystemProbe,
    installed: InstalledPackages,
) -> tuple[ToolState, tuple[str, ...]]:
    """Return the install state of a tool and the dependencies it is missing.

    A configured path wins over a command check, which wins over the package lookup.
    """

    if detect_path is not None:
        present = probe.exists(detect_path)
    elif detect_command is not None:
        present = probe.command_available(detect_command)
    elif package:
        present = installed.contains(package)
    else:
        present = False

    if not present:
        return ToolState.NOT_INSTALLED, ()

    missing = tuple(dep for dep in dependencies if not installed.contains(dep))
    if missing:
        return ToolState.PARTIAL, missing
    return ToolState.INSTALLED, ()
