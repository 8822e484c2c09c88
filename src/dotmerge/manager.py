"""High level orchestration for dotmerge operations."""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Iterable, Mapping

from .config import Config
from .diff import classify_sections, compare_files, select_sections
from .errors import DotmergeError
from .filesystem import ensure_parent, lexists, read_text, remove_path
from .linker import PackageLinker, StowLinker, SymlinkFarmLinker
from .manifest import BackupLedger
from .merge import apply_sections, extract_block, merge_text, strip_block
from .models import (
    BackupEntry,
    FileComparison,
    InstallAction,
    InstallResult,
    LinkAction,
    LinkResult,
    MergePlan,
    MergeResult,
    MutationKind,
    RevertResult,
    Section,
    SetupSelections,
    ToolStatus,
)
from .probe import InstalledPackages, SystemProbe, detect_tool
from .revert import revert_entries
from .sections import parse_sections
from .selections import SelectionStore

__all__ = ["DotmergeError", "DotmergeManager"]


class DotmergeManager:
    """Coordinates merges, installs, links and reverts through the backup ledger.

    Every destructive step records its backup before the mutation happens.
    """

    def __init__(
        self,
        config: Config,
        *,
        ledger: BackupLedger | None = None,
        linker: PackageLinker | None = None,
        probe: SystemProbe | None = None,
        installed: InstalledPackages | None = None,
        selection_store: SelectionStore | None = None,
    ) -> None:
        self.config = config
        settings = config.settings
        self.ledger = ledger or BackupLedger(settings.manifest_path)
        self.probe = probe or SystemProbe()
        self.linker = linker or self._default_linker()
        self.installed = installed or InstalledPackages.from_command(settings.package_list_command)
        self.selection_store = selection_store or SelectionStore(settings.selections_path)

    # ------------------------------------------------------------------
    # Shell configuration merge

    def plan_merge(self, target: Path, reference: Path) -> MergePlan:
        """Classify ``reference`` sections against ``target``.

        The managed block in ``target`` is left out of the comparison, so sections merged
        earlier keep showing up as candidates and re-merging them is a no-op.
        """

        if not reference.is_file():
            raise DotmergeError(f"Reference file '{reference}' does not exist")

        user = parse_sections(strip_block(read_text(target)))
        reference_script = parse_sections(read_text(reference))
        return MergePlan(
            target=target,
            reference=reference,
            user=user,
            reference_script=reference_script,
            diff=classify_sections(user, reference_script),
        )

    def merge(
        self,
        target: Path,
        reference: Path,
        names: Iterable[str] | None = None,
        *,
        include_conflicts: bool = False,
    ) -> MergeResult:
        plan = self.plan_merge(target, reference)
        selected = self._select_for_merge(plan, names, include_conflicts=include_conflicts)

        current = read_text(target)
        if not selected and extract_block(current) is None:
            return MergeResult(target=target, applied=(), changed=False)
        if merge_text(current, selected) == current:
            return MergeResult(target=target, applied=tuple(selected), changed=False)

        backup: BackupEntry | None = None
        if lexists(target):
            # A linked rc file is edited through the link; back up what actually changes.
            real_target = target.resolve(strict=False) if target.is_symlink() else target
            backup = self.ledger.preserve(real_target, MutationKind.FILE)

        apply_sections(target, selected)
        return MergeResult(target=target, applied=tuple(selected), backup=backup)

    def compare(self, left: Path, right: Path) -> FileComparison:
        for path in (left, right):
            if not path.is_file():
                raise DotmergeError(f"File '{path}' does not exist")
        return compare_files(read_text(left), read_text(right))

    # ------------------------------------------------------------------
    # Template files and packages

    def install_file(self, source: Path, target: Path, *, backup: bool = True) -> InstallResult:
        """Copy ``source`` to ``target``, moving an existing target aside first."""

        if not source.is_file():
            raise DotmergeError(f"Template '{source}' does not exist")

        entry: BackupEntry | None = None
        if lexists(target):
            if backup:
                entry = self.ledger.preserve(target, MutationKind.FILE, move=True)
                action = InstallAction.REPLACED
            else:
                remove_path(target)
                action = InstallAction.OVERWRITTEN
        else:
            action = InstallAction.INSTALLED

        ensure_parent(target)
        shutil.copy2(source, target)
        return InstallResult(source=source, target=target, action=action, backup=entry)

    def link_package(self, package: str) -> list[LinkResult]:
        """Link ``package`` into the target directory, backing up files in the way."""

        results: list[LinkResult] = []
        for target in self.linker.targets(package):
            if self.linker.is_linked(target, package):
                results.append(LinkResult(package=package, target=target, action=LinkAction.ALREADY_LINKED))
            elif lexists(target):
                entry = self.ledger.preserve(target, MutationKind.STOW, package, move=True)
                results.append(LinkResult(package=package, target=target, action=LinkAction.REPLACED, backup=entry))
            else:
                results.append(LinkResult(package=package, target=target, action=LinkAction.LINKED))

        if any(result.action is not LinkAction.ALREADY_LINKED for result in results):
            self.linker.link(package)

        selections = self.selection_store.load()
        if package not in selections.configs:
            selections.configs.append(package)
            self.selection_store.save(selections)
        return results

    # ------------------------------------------------------------------
    # Backups

    def backups(self) -> list[BackupEntry]:
        return list(self.ledger.load().entries)

    def revert_candidates(self) -> list[BackupEntry]:
        """Newest backup per original path; older ones stay in the ledger."""

        return self.ledger.load().latest_by_original()

    def revert(self, entries: Iterable[BackupEntry]) -> list[RevertResult]:
        return revert_entries(entries, self.ledger, self.linker)

    def revert_paths(self, paths: Iterable[Path]) -> list[RevertResult]:
        """Revert the newest backup recorded for each of ``paths``."""

        manifest = self.ledger.load()
        selected: list[BackupEntry] = []
        for path in paths:
            entries = manifest.for_original(Path(os.path.abspath(path)))
            if not entries:
                # Merges through a linked rc file are recorded against the file it points at.
                entries = manifest.for_original(Path(path).resolve(strict=False))
            if not entries:
                raise DotmergeError(f"No backup recorded for '{path}'")
            selected.append(entries[0])
        return self.revert(selected)

    # ------------------------------------------------------------------
    # Setup selections

    def selections(self) -> SetupSelections:
        return self.selection_store.load()

    def set_features(self, features: Mapping[str, bool]) -> SetupSelections:
        """Merge ``features`` into the stored feature flags."""

        selections = self.selection_store.load()
        selections.set_features(dict(features))
        return self.selection_store.save(selections)

    def set_apps(self, apps: Iterable[str]) -> SetupSelections:
        """Replace the recorded list of installed apps."""

        selections = self.selection_store.load()
        selections.apps = list(apps)
        return self.selection_store.save(selections)

    # ------------------------------------------------------------------
    # Tools

    def tool_states(self) -> list[ToolStatus]:
        statuses: list[ToolStatus] = []
        for tool in self.config.tools.values():
            state, missing = detect_tool(
                package=tool.package,
                detect_path=tool.detect_path,
                detect_command=tool.detect_command,
                dependencies=tool.dependencies,
                probe=self.probe,
                installed=self.installed,
            )
            statuses.append(ToolStatus(name=tool.name, state=state, missing=missing))
        return statuses

    # ------------------------------------------------------------------
    # Internal helpers

    def _default_linker(self) -> PackageLinker:
        settings = self.config.settings
        if settings.linker == "stow":
            return StowLinker(settings.packages_dir, settings.target_dir)
        return SymlinkFarmLinker(settings.packages_dir, settings.target_dir)

    @staticmethod
    def _select_for_merge(
        plan: MergePlan,
        names: Iterable[str] | None,
        *,
        include_conflicts: bool,
    ) -> list[Section]:
        if names is None:
            selected = list(plan.diff.new)
            if include_conflicts:
                selected.extend(conflict.reference for conflict in plan.diff.conflicts)
            return selected

        try:
            return select_sections(plan.reference_script, names)
        except KeyError as exc:
            raise DotmergeError(f"Reference '{plan.reference}' has no section named '{exc.args[0]}'") from None
