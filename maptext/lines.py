"""
maptext/lines.py

Line-level primitives shared by parsing and mutation: line ending
normalization, comment-aware source iteration and pipeline block scanning.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

from settings import get_settings

LF = "\n"
CRLF = "\r\n"
CR = "\r"

_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.DOTALL)
_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")


def detect_line_ending(text: str) -> str:
    """Return the dominant line ending of ``text`` (LF when there is none).

    Ties are resolved in favour of LF, then CRLF.
    """
    if not text:
        return LF
    crlf = text.count(CRLF)
    cr = text.count(CR) - crlf
    lf = text.count(LF) - crlf
    top = max(lf, crlf, cr)
    if top == lf:
        return LF
    if top == crlf:
        return CRLF
    return CR


def normalize_line_endings(text: str) -> str:
    """Convert every CR, LF and CRLF to LF."""
    return _LINE_BREAK_RE.sub(LF, text)


def split_lines(text: str) -> Tuple[List[str], str]:
    """Split text into LF-normalized lines and the ending to write back.

    The ending honours ``formatting.line_ending`` from settings; with
    ``"preserve"`` it is the document's dominant convention.

    Returns:
        ``(lines, line_ending)``.  A trailing newline yields a final empty line.
    """
    choice = get_settings().settings.formatting.line_ending
    if choice == "lf":
        eol = LF
    elif choice == "crlf":
        eol = CRLF
    else:
        eol = detect_line_ending(text)
    return normalize_line_endings(text).split(LF), eol


def join_lines(lines: List[str], eol: str = LF) -> str:
    return eol.join(lines)


def _blank_block_comments(text: str) -> str:
    # Keep line numbering stable: a removed block leaves its newlines behind.
    return _BLOCK_COMMENT_RE.sub(lambda m: LF * m.group(0).count(LF), text)


def is_comment_line(line: str) -> bool:
    return line.strip().startswith("//")


def iter_source_lines(text: str) -> Iterator[Tuple[int, str]]:
    """Yield ``(line_number, line)`` for every non-comment line.

    Line numbers are 1-based and refer to the original text, so ``//``
    lines and ``/* ... */`` blocks are skipped without renumbering.
    """
    if not isinstance(text, str) or not text:
        return
    cleaned = _blank_block_comments(normalize_line_endings(text))
    for index, line in enumerate(cleaned.split(LF)):
        if is_comment_line(line):
            continue
        yield index + 1, line


# ----------------------------
# Pipeline block scanning
# ----------------------------

@dataclass
class BlockSpan:
    """Location of a pipeline line and its ``{ ... }`` block.

    Line numbers are 1-based.  ``open_line`` is None when the pipeline has
    no block; ``close_line`` is None when the block is never closed, and
    ``child_lines`` then holds only the leading run of indented children.
    """
    header_line: int
    open_line: Optional[int] = None
    close_line: Optional[int] = None
    child_lines: List[int] = field(default_factory=list)

    @property
    def terminated(self) -> bool:
        return self.open_line is None or self.close_line is not None

    def contains(self, line_number: int) -> bool:
        """True when ``line_number`` lies strictly inside a closed block."""
        if self.open_line is None or self.close_line is None:
            return False
        return self.open_line < line_number < self.close_line


def _first_word(line: str) -> str:
    stripped = line.strip()
    match = re.match(r'[^\s\["]+', stripped)
    return match.group(0) if match else ""


def _is_child_line(line: str) -> bool:
    return line[:1].isspace() and _first_word(line) == "component"


def scan_pipeline_blocks(source: List[Tuple[int, str]], keyword: str = "pipeline") -> List[BlockSpan]:
    """Locate every pipeline header and the block that follows it.

    A block opens at the first line containing ``{`` after the header.
    Blank lines may sit in between; any other line, or another pipeline
    header, means the pipeline has no block.  An open block ends at the
    first line starting with ``}``.

    A block still open at the next pipeline header or at the end of the
    text is unterminated.  It then ends after its leading run of indented
    ``component`` lines, and everything after that run is scanned as top
    level text again.

    Args:
        source: ``(line_number, line)`` pairs from :func:`iter_source_lines`.
        keyword: Header keyword.

    Returns:
        One BlockSpan per header, in document order.
    """
    spans: List[BlockSpan] = []
    i = 0
    while i < len(source):
        line_no, line = source[i]
        if _first_word(line) != keyword:
            i += 1
            continue

        span = BlockSpan(header_line=line_no)
        spans.append(span)
        open_index = None
        child_indexes: List[int] = []
        j = i + 1
        while j < len(source):
            inner_no, inner = source[j]
            stripped = inner.strip()
            if span.open_line is None:
                if "{" in stripped:
                    span.open_line = inner_no
                    open_index = j
                elif stripped:
                    break
            else:
                if stripped.startswith("}"):
                    span.close_line = inner_no
                    j += 1
                    break
                if _first_word(inner) == keyword:
                    break
                if stripped:
                    child_indexes.append(j)
            j += 1

        if span.open_line is None:
            i += 1
            continue
        if span.close_line is None:
            kept: List[int] = []
            for index in child_indexes:
                if not _is_child_line(source[index][1]):
                    break
                kept.append(index)
            child_indexes = kept
            j = (kept[-1] if kept else open_index) + 1
        span.child_lines = [source[index][0] for index in child_indexes]
        i = j
    return spans
