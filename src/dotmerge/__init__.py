"""Core package for the dotmerge project."""

from .cli import app, run
from .config import Config, Settings, ToolConfig
from .diff import classify_sections, compare_files
from .errors import DotmergeError, LinkConflictError
from .manager import DotmergeManager
from .manifest import BackupLedger, backup_file
from .merge import MARKER_END, MARKER_START, apply_sections
from .models import (
    BackupEntry,
    Manifest,
    MutationKind,
    ParsedScript,
    RevertAction,
    RevertResult,
    Section,
    SectionConflict,
    SectionDiff,
    SectionKind,
    SetupSelections,
)
from .revert import revert_entries
from .selections import SelectionStore
from .sections import parse_sections, reconstruct

__all__ = [
    "Config",
    "Settings",
    "ToolConfig",
    "DotmergeManager",
    "DotmergeError",
    "LinkConflictError",
    "BackupLedger",
    "backup_file",
    "MARKER_START",
    "MARKER_END",
    "apply_sections",
    "classify_sections",
    "compare_files",
    "parse_sections",
    "reconstruct",
    "revert_entries",
    "SelectionStore",
    "BackupEntry",
    "Manifest",
    "MutationKind",
    "ParsedScript",
    "RevertAction",
    "RevertResult",
    "Section",
    "SectionConflict",
    "SectionDiff",
    "SectionKind",
    "SetupSelections",
    "app",
    "run",
]
