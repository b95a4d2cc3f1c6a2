"""
maptext/tokenizer.py

Primitive tokenizer for single lines of map text.

A statement line splits into four fields:

    <keyword> <name-or-"quoted"> [<coordinates>] <trailing decorators/labels>

Quoted names may contain escaped quotes and brackets, so every scan that
looks for a delimiter skips over quoted runs.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Tuple

_KEYWORD_RE = re.compile(r'[^\s\["]+')

# Where a bare (unquoted) name stops when no bracket follows it
_BARE_NAME_END_RE = re.compile(
    r"\s+\((?:buy|build|outsource|market|ecosystem|inertia)\)"
    r"|\s+inertia\b"
    r"|\s+label\s*\["
)

LABEL_RE = re.compile(r"label\s*\[\s*(-?\d*\.?\d+)\s*,\s*(-?\d*\.?\d+)\s*\]")
DECORATOR_RE = re.compile(r"\((buy|build|outsource|market|ecosystem)\)")
INERTIA_RE = re.compile(r"(?:^|\s)\(?inertia\)?(?=\s|$)")


@dataclass
class LineTokens:
    """Fields of one tokenized line.

    Spans are ``(start, end)`` offsets into the original line so that a
    mutation can rewrite one field and copy the rest verbatim.
    """
    keyword: str
    raw_name: str
    bracket: Optional[str]
    trailing: str
    indent: str
    name_span: Tuple[int, int]
    bracket_span: Optional[Tuple[int, int]] = None
    source: str = ""

    @property
    def rest(self) -> str:
        """Everything after the keyword, as written."""
        return self.source[self.name_span[0]:].strip()

    @property
    def is_quoted(self) -> bool:
        return self.raw_name.startswith('"')


def scan_quoted(text: str, start: int) -> Optional[int]:
    """Return the index of the quote closing the run opened at ``start``.

    A quote preceded by a backslash is part of the name.  Returns None when
    the run is never closed.
    """
    i = start + 1
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == '"':
            return i
        i += 1
    return None


def find_unquoted(text: str, needle: str, start: int = 0) -> int:
    """Like ``str.find`` but ignores matches inside quoted runs."""
    i = start
    while i < len(text):
        if text[i] == '"':
            close = scan_quoted(text, i)
            if close is None:
                return -1
            i = close + 1
            continue
        if text.startswith(needle, i):
            return i
        i += 1
    return -1


def _find_coordinate_bracket(line: str, start: int) -> Optional[Tuple[int, int]]:
    """Find the first ``[...]`` at or after ``start`` that is not a label offset."""
    pos = start
    while True:
        open_idx = find_unquoted(line, "[", pos)
        if open_idx < 0:
            return None
        close_idx = line.find("]", open_idx)
        if line[:open_idx].rstrip().endswith("label"):
            if close_idx < 0:
                return None
            pos = close_idx + 1
            continue
        return open_idx, (close_idx + 1 if close_idx >= 0 else len(line))


def tokenize(line: str) -> LineTokens:
    """Split one line into keyword, name field, coordinate bracket and trailing text.

    Args:
        line: A single line without its line terminator.

    Returns:
        LineTokens.  ``raw_name`` keeps its quotes (and escapes) exactly as
        written; decoding is left to :mod:`maptext.recovery`.
    """
    if not isinstance(line, str):
        line = ""
    indent_len = len(line) - len(line.lstrip())
    indent = line[:indent_len]

    keyword = ""
    pos = indent_len
    match = _KEYWORD_RE.match(line, pos)
    if match:
        keyword = match.group(0)
        pos = match.end()
    while pos < len(line) and line[pos] in " \t":
        pos += 1

    # Name field
    name_start = pos
    if pos < len(line) and line[pos] == '"':
        close = scan_quoted(line, pos)
        if close is not None:
            name_end = close + 1
        else:
            # Unterminated: the name runs up to the next bracket, if any
            bracket_idx = line.find("[", pos)
            name_end = bracket_idx if bracket_idx >= 0 else len(line)
            while name_end > name_start + 1 and line[name_end - 1] in " \t":
                name_end -= 1
    else:
        bracket_idx = line.find("[", pos)
        stop = _BARE_NAME_END_RE.search(line, pos)
        candidates = [idx for idx in (bracket_idx, stop.start() if stop else -1) if idx >= 0]
        name_end = min(candidates) if candidates else len(line)
        while name_end > name_start and line[name_end - 1] in " \t":
            name_end -= 1
    raw_name = line[name_start:name_end]

    bracket_span = _find_coordinate_bracket(line, name_end)
    if bracket_span is not None:
        open_idx, close_end = bracket_span
        inner_end = close_end - 1 if line[close_end - 1:close_end] == "]" else close_end
        bracket = line[open_idx + 1:inner_end]
        trailing = (line[name_end:open_idx] + " " + line[close_end:]).strip()
    else:
        bracket = None
        trailing = line[name_end:].strip()

    return LineTokens(
        keyword=keyword,
        raw_name=raw_name,
        bracket=bracket,
        trailing=trailing,
        indent=indent,
        name_span=(name_start, name_end),
        bracket_span=bracket_span,
        source=line,
    )


def parse_label(trailing: str) -> Optional[Tuple[float, float]]:
    """Return the ``label [dx, dy]`` offset from trailing text, if present."""
    match = LABEL_RE.search(trailing or "")
    if not match:
        return None
    return float(match.group(1)), float(match.group(2))


def parse_decorators(trailing: str) -> Tuple[str, ...]:
    """Return the ``(buy)``/``(market)``-style decorators in trailing text."""
    return tuple(DECORATOR_RE.findall(trailing or ""))


def has_inertia(trailing: str) -> bool:
    return bool(INERTIA_RE.search(trailing or ""))
