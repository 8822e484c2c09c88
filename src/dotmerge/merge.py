"""Idempotent injection of reference sections into a target file.

The applier owns one region of the target, delimited by two fixed marker lines. Every
application removes the previous region and appends a freshly rendered one, so applying
the same selection twice leaves the file byte-identical to applying it once. Nothing
outside the markers is touched, apart from adding a final newline to the remaining text
when it lacks one.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

from .filesystem import read_text, write_text_atomic
from .models import Section

MARKER_START = "# >>> dotmerge managed block >>>"
MARKER_END = "# <<< dotmerge managed block <<<"


def apply_sections(target: Path, sections: Iterable[Section]) -> str:
    """Rewrite ``target`` with a managed block holding ``sections``.

    Returns the text written. A symlinked target is written through to the file it
    points at. No backup is taken here.
    """

    destination = target.resolve(strict=False) if target.is_symlink() else target
    current = read_text(destination)
    updated = merge_text(current, sections)
    write_text_atomic(destination, updated)
    return updated


def merge_text(current: str, sections: Iterable[Section]) -> str:
    remaining = strip_block(current)
    if remaining and not remaining.endswith("\n"):
        remaining += "\n"
    return remaining + render_block(sections)


def render_block(sections: Iterable[Section]) -> str:
    parts = [MARKER_START, "\n"]
    for section in sections:
        content = section.content
        if not content.endswith("\n"):
            content += "\n"
        parts.append(content)
        parts.append("\n")
    parts.append(MARKER_END)
    parts.append("\n")
    return "".join(parts)


def strip_block(text: str) -> str:
    """Remove the managed block, markers included, if both markers are present."""

    span = _block_span(text)
    if span is None:
        return text
    start, end = span
    return text[:start] + text[end:]


def extract_block(text: str) -> str | None:
    """Return the text between the markers, or ``None`` when there is no block."""

    markers = _find_markers(text)
    if markers is None:
        return None
    start, end = markers
    return text[start + len(MARKER_START) : end].removeprefix("\n")


def _block_span(text: str) -> tuple[int, int] | None:
    markers = _find_markers(text)
    if markers is None:
        return None
    start, end = markers
    end += len(MARKER_END)
    if text.startswith("\n", end):
        end += 1
    return start, end


def _find_markers(text: str) -> tuple[int, int] | None:
    """Offsets of the start and end marker of the managed block.

    The block is the last end marker paired with the nearest start marker before it, so
    a stray start marker earlier in the file never swallows the lines that follow it.
    """

    end = text.rfind(MARKER_END)
    if end == -1:
        return None
    start = text.rfind(MARKER_START, 0, end)
    if start == -1:
        return None
    return start, end
