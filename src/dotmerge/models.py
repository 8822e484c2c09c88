"""Shared models and enums for dotmerge."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterator, overload


class SectionKind(str, Enum):
    """Kinds of sections recognised in a shell script."""

    ALIAS = "alias"
    FUNCTION = "function"
    EXPORT = "export"
    COMMENT = "comment"
    CONDITIONAL = "conditional"
    CODE = "code"


@dataclass(frozen=True, slots=True)
class Section:
    """A contiguous, independently adoptable unit of a shell script."""

    name: str
    kind: SectionKind
    content: str
    description: str
    leading: str = ""
    start_line: int = 0
    end_line: int = 0

    @property
    def key(self) -> str:
        return self.name.lower()


@dataclass(frozen=True, slots=True)
class ParsedScript:
    """Ordered sections of a script plus the blank text after the last one."""

    sections: tuple[Section, ...]
    trailing: str = ""

    def __iter__(self) -> Iterator[Section]:
        return iter(self.sections)

    def __len__(self) -> int:
        return len(self.sections)

    @overload
    def __getitem__(self, index: int) -> Section: ...

    @overload
    def __getitem__(self, index: slice) -> tuple[Section, ...]: ...

    def __getitem__(self, index):
        return self.sections[index]

    def names(self) -> list[str]:
        return [section.name for section in self.sections]


@dataclass(frozen=True, slots=True)
class SectionConflict:
    """A reference section whose user counterpart has different content."""

    user: Section
    reference: Section


@dataclass(frozen=True, slots=True)
class SectionDiff:
    """Classification of reference sections against a user's sections."""

    new: tuple[Section, ...] = ()
    conflicts: tuple[SectionConflict, ...] = ()
    identical: tuple[Section, ...] = ()

    @property
    def has_changes(self) -> bool:
        return bool(self.new or self.conflicts)

    def summary(self) -> str:
        return f"{len(self.new)} new, {len(self.conflicts)} conflicting, {len(self.identical)} identical"


@dataclass(frozen=True, slots=True)
class LineDifference:
    """A line index where two files disagree. Missing lines are ``None``."""

    index: int
    left: str | None
    right: str | None


@dataclass(frozen=True, slots=True)
class FileComparison:
    """Whole-file comparison used for display of non-shell files."""

    identical: bool
    differences: tuple[LineDifference, ...] = ()


class MutationKind(str, Enum):
    """How the original path was mutated."""

    FILE = "file"
    STOW = "stow"


@dataclass(frozen=True, slots=True)
class BackupEntry:
    """Record of one destructive mutation and where its previous state lives."""

    original: Path
    backup: Path
    kind: MutationKind = MutationKind.FILE
    package: str | None = None
    timestamp: int = 0

    def same_backup(self, other: "BackupEntry") -> bool:
        return self.original == other.original and self.backup == other.backup


@dataclass(slots=True)
class Manifest:
    """In-memory view of the backup ledger file."""

    version: int = 1
    entries: list[BackupEntry] = field(default_factory=list)

    def remove(self, entry: BackupEntry) -> bool:
        """Drop the entry matching ``entry`` by original and backup path."""

        for index, existing in enumerate(self.entries):
            if existing.same_backup(entry):
                del self.entries[index]
                return True
        return False

    def for_original(self, original: Path | str) -> list[BackupEntry]:
        """All entries recorded for ``original``, newest first."""

        target = Path(original)
        matches = [entry for entry in self.entries if entry.original == target]
        # Later entries win ties, so sort ascending and reverse.
        return list(reversed(sorted(matches, key=lambda entry: entry.timestamp)))

    def latest_by_original(self) -> list[BackupEntry]:
        """The newest entry for every original, in the order originals first appear."""

        latest: dict[Path, BackupEntry] = {}
        for entry in self.entries:
            current = latest.get(entry.original)
            if current is None or entry.timestamp >= current.timestamp:
                latest[entry.original] = entry
        return list(latest.values())


@dataclass(slots=True)
class SetupSelections:
    """What the user has set up: installed apps, linked configs and feature flags."""

    version: int = 1
    timestamp: int = 0
    apps: list[str] = field(default_factory=list)
    configs: list[str] = field(default_factory=list)
    features: dict[str, bool] = field(default_factory=dict)

    def set_feature(self, feature: str, enabled: bool) -> None:
        self.features[feature] = enabled

    def set_features(self, features: dict[str, bool]) -> None:
        self.features.update(features)

    def is_feature_enabled(self, feature: str) -> bool:
        # Unknown features are off.
        return self.features.get(feature) is True


class RevertAction(str, Enum):
    """Outcome of reverting a single backup entry."""

    RESTORED = "restored"
    MISSING_BACKUP = "missing_backup"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class RevertResult:
    """Result emitted when reverting a backup entry."""

    entry: BackupEntry
    action: RevertAction
    details: str | None = None


@dataclass(frozen=True, slots=True)
class MergePlan:
    """Parsed target and reference scripts and their classification."""

    target: Path
    reference: Path
    user: ParsedScript
    reference_script: ParsedScript
    diff: SectionDiff


@dataclass(frozen=True, slots=True)
class MergeResult:
    """Result of injecting reference sections into a target file."""

    target: Path
    applied: tuple[Section, ...]
    backup: BackupEntry | None = None
    changed: bool = True


class InstallAction(str, Enum):
    """Outcome of installing a template file."""

    INSTALLED = "installed"
    REPLACED = "replaced"
    OVERWRITTEN = "overwritten"


@dataclass(frozen=True, slots=True)
class InstallResult:
    """Result of copying a template into place."""

    source: Path
    target: Path
    action: InstallAction
    backup: BackupEntry | None = None


class LinkAction(str, Enum):
    """Outcome for one target path of a linked package."""

    LINKED = "linked"
    REPLACED = "replaced"
    ALREADY_LINKED = "already_linked"


@dataclass(frozen=True, slots=True)
class LinkResult:
    """Per-target outcome of linking a package."""

    package: str
    target: Path
    action: LinkAction
    backup: BackupEntry | None = None


class ToolState(str, Enum):
    """Install state of a tool on this machine."""

    INSTALLED = "installed"
    PARTIAL = "partial"
    NOT_INSTALLED = "not_installed"


@dataclass(frozen=True, slots=True)
class ToolStatus:
    """Detected state for a configured tool."""

    name: str
    state: ToolState
    missing: tuple[str, ...] = ()
