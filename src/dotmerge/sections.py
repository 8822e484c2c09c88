"""Line-oriented structural parsing of shell configuration files.

The parser is not a shell grammar. It delimits units a user can adopt on their own
(aliases, functions, exported variables, conditional blocks, comments and free-form
code) with a single forward scan over the lines of a script. It never raises: input it
cannot make sense of ends up in ``code`` sections, and unterminated blocks absorb the
rest of the file.
"""

from __future__ import annotations

import re
from typing import Iterable

from .models import ParsedScript, Section, SectionKind

COMMENT_LABEL_LIMIT = 50
BLOCK_LABEL_LIMIT = 40

_ALIAS_RE = re.compile(r"^\s*alias\s+(?:-\w+\s+)*([^\s=]+)=")
_EXPORT_RE = re.compile(r"^\s*export\s+([A-Za-z_][A-Za-z0-9_]*)=")
_FUNCTION_RE = re.compile(r"^\s*(?:function\s+([^\s(){}]+)|([A-Za-z_][\w.:-]*)\s*\(\s*\))")
_CONDITIONAL_RE = re.compile(r"^\s*(if|case)\s")
_INLINE_COMMENT_RE = re.compile(r"(?:^|\s)#.*$", re.DOTALL)

_COMMAND_START = r"(?:^|[;&|(`]|\bthen|\bdo|\belse)\s*"
_WORD_END = r"(?=$|[\s;&|)#])"
_IF_OPEN_RE = re.compile(_COMMAND_START + r"if\s")
_IF_CLOSE_RE = re.compile(r"(?:^|[;&\s])fi" + _WORD_END)
_CASE_OPEN_RE = re.compile(_COMMAND_START + r"case\s")
_CASE_CLOSE_RE = re.compile(r"(?:^|[;&\s])esac" + _WORD_END)


def parse_sections(text: str) -> ParsedScript:
    """Split ``text`` into an ordered sequence of typed, named sections."""

    lines = split_lines(text)
    total = len(lines)
    sections: list[Section] = []
    pending: list[str] = []
    index = 0

    while index < total:
        line = lines[index]

        if _is_blank(line):
            pending.append(line)
            index += 1
            continue

        if _is_comment(line):
            end = index
            while end + 1 < total and _is_comment(lines[end + 1]):
                end += 1
            following = end + 1
            if following < total and not _is_blank(lines[following]):
                # Lead-in comment: kept for reconstruction only.
                pending.extend(lines[index:following])
                index = following
                continue
            label = _comment_label(line)
            sections.append(_build(SectionKind.COMMENT, label, label, lines, index, end, pending))
            pending = []
            index = end + 1
            continue

        kind, name, description, end = _scan_block(lines, index)
        sections.append(_build(kind, name, description, lines, index, end, pending))
        pending = []
        index = end + 1

    return ParsedScript(sections=tuple(sections), trailing="".join(pending))


def reconstruct(script: ParsedScript | Iterable[Section]) -> str:
    """Rebuild the exact text a script was parsed from."""

    if isinstance(script, ParsedScript):
        body = "".join(section.leading + section.content for section in script.sections)
        return body + script.trailing
    return "".join(section.leading + section.content for section in script)


def split_lines(text: str) -> list[str]:
    """Split on ``\\n`` only, keeping terminators so lines concatenate back to ``text``."""

    parts = text.split("\n")
    lines = [part + "\n" for part in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


def describe(kind: SectionKind, name: str) -> str:
    """Return the one-line description shown for a section."""

    if kind is SectionKind.ALIAS:
        return f"alias {name}"
    if kind is SectionKind.EXPORT:
        return f"export {name}"
    if kind is SectionKind.FUNCTION:
        return f"function {name}()"
    return name


def _scan_block(lines: list[str], index: int) -> tuple[SectionKind, str, str, int]:
    line = lines[index]

    match = _ALIAS_RE.match(line)
    if match:
        name = match.group(1)
        return SectionKind.ALIAS, name, describe(SectionKind.ALIAS, name), index

    match = _EXPORT_RE.match(line)
    if match:
        name = match.group(1)
        return SectionKind.EXPORT, name, describe(SectionKind.EXPORT, name), index

    match = _FUNCTION_RE.match(line)
    if match:
        name = match.group(1) or match.group(2)
        return SectionKind.FUNCTION, name, describe(SectionKind.FUNCTION, name), _function_end(lines, index)

    match = _CONDITIONAL_RE.match(line)
    if match:
        if match.group(1) == "if":
            end = _conditional_end(lines, index, _IF_OPEN_RE, _IF_CLOSE_RE)
        else:
            end = _conditional_end(lines, index, _CASE_OPEN_RE, _CASE_CLOSE_RE)
        label = _truncate(line.strip(), BLOCK_LABEL_LIMIT)
        return SectionKind.CONDITIONAL, label, label, end

    end = index
    while end + 1 < len(lines) and not _is_blank(lines[end + 1]) and not _is_boundary(lines[end + 1]):
        end += 1
    label = _truncate(line.strip(), BLOCK_LABEL_LIMIT)
    return SectionKind.CODE, label, label, end


def _function_end(lines: list[str], index: int) -> int:
    depth = 0
    opened = False
    for position in range(index, len(lines)):
        if position > index and _is_comment(lines[position]):
            continue
        code = _code_part(lines[position])
        if "{" in code:
            opened = True
        depth += code.count("{") - code.count("}")
        if opened and depth <= 0:
            return position
    return len(lines) - 1


def _conditional_end(lines: list[str], index: int, opener: re.Pattern[str], closer: re.Pattern[str]) -> int:
    depth = 0
    for position in range(index, len(lines)):
        if _is_comment(lines[position]):
            continue
        code = _code_part(lines[position])
        depth += len(opener.findall(code)) - len(closer.findall(code))
        if depth <= 0:
            return position
    return len(lines) - 1


def _build(
    kind: SectionKind,
    name: str,
    description: str,
    lines: list[str],
    start: int,
    end: int,
    pending: list[str],
) -> Section:
    return Section(
        name=name,
        kind=kind,
        content="".join(lines[start : end + 1]),
        description=description,
        leading="".join(pending),
        start_line=start + 1,
        end_line=end + 1,
    )


def _is_blank(line: str) -> bool:
    return not line.strip()


def _is_comment(line: str) -> bool:
    stripped = line.strip()
    return stripped.startswith("#") and not stripped.startswith("#!")


def _is_boundary(line: str) -> bool:
    return bool(
        _is_comment(line)
        or _ALIAS_RE.match(line)
        or _EXPORT_RE.match(line)
        or _FUNCTION_RE.match(line)
        or _CONDITIONAL_RE.match(line)
    )


def _code_part(line: str) -> str:
    return _INLINE_COMMENT_RE.sub("", line)


def _comment_label(line: str) -> str:
    stripped = line.strip()
    label = stripped.lstrip("#").strip() or stripped
    return _truncate(label, COMMENT_LABEL_LIMIT)


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit].rstrip()
