"""
maptext/links.py

Link extraction.

Link lines have no keyword; any line that does not start with a known
statement keyword and contains an arrow is a link.  Supported forms::

    A->B            A<->B           A->>B           A->>B:value
    A+>B            A+<B            A+<>B
    A+'value'>B     A+'value'<B     A+'value'<>B

and any of them followed by ``;context``.  Endpoints may be quoted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from maptext.lines import iter_source_lines
from maptext.recovery import RecoveryLog, recover_name
from maptext.tokenizer import find_unquoted, scan_quoted, tokenize
from models import NON_LINK_KEYWORDS, ExtractionResult, Link

# (operator, flow, future, past, bidirectional), longest first at each position
_OPERATORS: Tuple[Tuple[str, bool, bool, bool, bool], ...] = (
    ("<->", False, False, False, True),
    ("->>", True, False, False, False),
    ("+<>", True, False, True, False),
    ("->", False, False, False, False),
    ("+>", True, False, False, False),
    ("+<", True, True, False, False),
)


@dataclass
class LinkSyntax:
    """Positions of the parts of one link line, as offsets into the line."""
    start_span: Tuple[int, int]
    end_span: Tuple[int, int]
    operator: str
    flow: bool
    future: bool
    past: bool
    bidirectional: bool
    flow_value: Optional[str] = None
    context: Optional[str] = None
    context_start: Optional[int] = None


def is_link_candidate(line: str) -> bool:
    """True when a line may hold a link (not blank, no statement keyword)."""
    stripped = line.strip()
    if not stripped:
        return False
    if stripped[0] in "{}" or tokenize(stripped).keyword in NON_LINK_KEYWORDS:
        return False
    return not any(f"({keyword})" in stripped for keyword in NON_LINK_KEYWORDS)


def _find_operator(line: str, limit: int) -> Optional[Tuple[int, Tuple[str, bool, bool, bool, bool]]]:
    i = 0
    while i < limit:
        ch = line[i]
        if ch == '"':
            close = scan_quoted(line, i)
            if close is None:
                return None
            i = close + 1
            continue
        if ch == "+" and line.startswith("+'", i):
            return i, ("+'", True, False, False, False)
        for operator in _OPERATORS:
            if line.startswith(operator[0], i):
                return i, operator
        i += 1
    return None


def _strip_span(line: str, start: int, end: int) -> Tuple[int, int]:
    while start < end and line[start].isspace():
        start += 1
    while end > start and line[end - 1].isspace():
        end -= 1
    return start, end


def parse_link_syntax(line: str) -> Optional[LinkSyntax]:
    """Locate the endpoints, operator, flow value and context of a link line.

    Returns:
        LinkSyntax, or None when the line holds no arrow.
    """
    context_start = find_unquoted(line, ";")
    limit = context_start if context_start >= 0 else len(line)
    found = _find_operator(line, limit)
    if found is None:
        return None
    op_index, (operator, flow, future, past, bidirectional) = found

    flow_value: Optional[str] = None
    end_from = op_index + len(operator)
    if operator == "+'":
        # +'value'> / +'value'< / +'value'<>
        close = line.find("'", end_from)
        if close < 0 or close >= limit:
            return None
        flow_value = line[end_from:close].strip()
        tail = line[close + 1:limit]
        if tail.startswith("<>"):
            operator, past, future, end_from = "+'<>", True, True, close + 3
        elif tail.startswith(">"):
            operator, future, end_from = "+'>", True, close + 2
        elif tail.startswith("<"):
            operator, past, end_from = "+'<", True, close + 2
        else:
            return None

    end_stop = limit
    if operator == "->>":
        colon = find_unquoted(line[:limit], ":", end_from)
        if colon >= 0:
            flow_value = line[colon + 1:limit].strip()
            end_stop = colon

    context = None
    if context_start >= 0:
        context = line[context_start + 1:].strip()

    return LinkSyntax(
        start_span=_strip_span(line, 0, op_index),
        end_span=_strip_span(line, end_from, end_stop),
        operator=operator,
        flow=flow,
        future=future,
        past=past,
        bidirectional=bidirectional,
        flow_value=flow_value,
        context=context,
        context_start=context_start if context_start >= 0 else None,
    )


class LinksExtractionStrategy:
    """Extracts links; same ``apply(text)`` contract as the element strategies."""

    element_kind = "link"

    def apply(self, text: Any) -> ExtractionResult:
        result = ExtractionResult()
        if not isinstance(text, str) or not text:
            return result
        recovery_log = RecoveryLog()
        for line_no, line in iter_source_lines(text):
            link = self.extract_line(line, line_no, recovery_log)
            if link is not None:
                result.elements.append(link)
        result.events = recovery_log.events
        return result

    def extract_line(self, line: str, line_no: int, recovery_log: RecoveryLog) -> Optional[Link]:
        if not is_link_candidate(line):
            return None
        syntax = parse_link_syntax(line)
        if syntax is None:
            return None
        raw_start = line[syntax.start_span[0]:syntax.start_span[1]]
        raw_end = line[syntax.end_span[0]:syntax.end_span[1]]
        if not raw_start.strip() and not raw_end.strip():
            return None
        return Link(
            start=recover_name(raw_start, self.element_kind, line_no, recovery_log),
            end=recover_name(raw_end, self.element_kind, line_no, recovery_log),
            flow=syntax.flow,
            flow_value=syntax.flow_value,
            future=syntax.future,
            past=syntax.past,
            bidirectional=syntax.bidirectional,
            context=syntax.context,
            line=line_no,
        )


def link_endpoints(line: str) -> Optional[Tuple[str, str]]:
    """Decoded ``(start, end)`` of a link line, without recording events."""
    if not is_link_candidate(line):
        return None
    link = LinksExtractionStrategy().extract_line(line, 0, RecoveryLog(emit=False))
    if link is None:
        return None
    return link.start, link.end


def collect_links(text: Any) -> List[Link]:
    return LinksExtractionStrategy().apply(text).elements
