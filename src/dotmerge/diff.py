"""Classification of shell sections against a reference configuration."""

from __future__ import annotations

from itertools import zip_longest
from typing import Iterable

from .models import FileComparison, LineDifference, Section, SectionConflict, SectionDiff
from .sections import split_lines


def classify_sections(user: Iterable[Section], reference: Iterable[Section]) -> SectionDiff:
    """Compare ``reference`` sections with ``user`` sections by name and kind.

    A reference section whose name is unknown to the user file is new. A reference
    section whose name and kind both match a user section but whose content differs is
    a conflict. Matching never looks at content similarity, so a renamed function shows
    up as new. Sections that only exist in the user file are ignored.
    """

    user_names: set[str] = set()
    by_key: dict[tuple[str, str], list[Section]] = {}
    for section in user:
        user_names.add(section.key)
        by_key.setdefault((section.key, section.kind.value), []).append(section)

    new: list[Section] = []
    conflicts: list[SectionConflict] = []
    identical: list[Section] = []

    for section in reference:
        if section.key not in user_names:
            new.append(section)
            continue

        candidates = by_key.get((section.key, section.kind.value))
        if not candidates:
            continue
        if any(candidate.content == section.content for candidate in candidates):
            identical.append(section)
        else:
            conflicts.append(SectionConflict(user=candidates[0], reference=section))

    return SectionDiff(new=tuple(new), conflicts=tuple(conflicts), identical=tuple(identical))


def select_sections(sections: Iterable[Section], names: Iterable[str]) -> list[Section]:
    """Return sections matching ``names`` case-insensitively, in ``names`` order."""

    index: dict[str, Section] = {}
    for section in sections:
        index.setdefault(section.key, section)

    selected: list[Section] = []
    seen: set[str] = set()
    for name in names:
        key = name.lower()
        if key in seen:
            continue
        section = index.get(key)
        if section is None:
            raise KeyError(name)
        seen.add(key)
        selected.append(section)
    return selected


def compare_files(left: str, right: str) -> FileComparison:
    """Whole-file equality with an index-aligned line diff for display."""

    if left == right:
        return FileComparison(identical=True)

    differences = [
        LineDifference(index=index, left=_strip_eol(a), right=_strip_eol(b))
        for index, (a, b) in enumerate(zip_longest(split_lines(left), split_lines(right)))
        if a != b
    ]
    return FileComparison(identical=False, differences=tuple(differences))


def _strip_eol(line: str | None) -> str | None:
    if line is None:
        return None
    return line.rstrip("\r\n")
