"""
maptext/rename.py

Rename an element and every reference to it.

A name is referenced from its declaration line(s), from link endpoints,
from ``evolve`` lines (source and override) and from method lines.  All
of them are rewritten in one pass over the text or none are: collisions
and missing targets are detected before any line changes.  Comment lines
are left alone.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Tuple

from maptext.errors import (
    ElementNotFoundError,
    InvalidNameError,
    MutationError,
    MutationResult,
    NameCollisionError,
    StaleLineError,
)
from maptext.lines import iter_source_lines, join_lines, split_lines
from maptext.links import is_link_candidate, parse_link_syntax
from maptext.naming import format_name, names_match
from maptext.parser import parse
from maptext.recovery import RecoveryLog, check_name, recover_name, sanitize_name
from maptext.strategies import evolve_spans
from maptext.tokenizer import tokenize
from models import METHOD_DECORATORS, Anchor, Pipeline

log = logging.getLogger(__name__)

# Keywords whose name field declares (or, for methods, names) an element
DECLARATION_KEYWORDS = ("component", "anchor", "market", "ecosystem", "pipeline") + METHOD_DECORATORS

# Anchor names may not contain link or bracket syntax
ANCHOR_FORBIDDEN_CHARS = "[]->;"


def _element_label(element: Any) -> str:
    if isinstance(element, Anchor):
        return "An anchor"
    if isinstance(element, Pipeline):
        return "A pipeline"
    return "A component"


def _matches(raw: str, name: str) -> bool:
    return names_match(recover_name(raw, "component", 0, RecoveryLog(emit=False)), name)


def _replace_spans(line: str, spans: List[Tuple[int, int]], replacement: str) -> str:
    # Right to left so earlier offsets stay valid
    for start, end in sorted(spans, reverse=True):
        line = line[:start] + replacement + line[end:]
    return line


def _reference_spans(line: str, old_name: str) -> List[Tuple[int, int]]:
    """Spans on one line that hold a reference to ``old_name``."""
    tokens = tokenize(line)
    if tokens.keyword in DECLARATION_KEYWORDS:
        start, end = tokens.name_span
        return [tokens.name_span] if _matches(line[start:end], old_name) else []
    if tokens.keyword == "evolve":
        name_span, override_span, _ = evolve_spans(tokens)
        return [span for span in (name_span, override_span)
                if span is not None and _matches(line[span[0]:span[1]], old_name)]
    if is_link_candidate(line):
        syntax = parse_link_syntax(line)
        if syntax is None:
            return []
        return [span for span in (syntax.start_span, syntax.end_span)
                if _matches(line[span[0]:span[1]], old_name)]
    return []


def rename_element(text: str, old_name: str, new_name: str) -> str:
    """Rename an element, rewriting its declarations and all references.

    Args:
        text: Current map text.
        old_name: Name of the element to rename (compared normalized).
        new_name: New name; quoted automatically when it needs to be.

    Returns:
        The rewritten text.

    Raises:
        InvalidNameError: ``new_name`` is empty or unusable.
        ElementNotFoundError: Nothing is declared as ``old_name``.
        NameCollisionError: A different element already uses ``new_name``.
    """
    text = text if isinstance(text, str) else ""
    cleaned = sanitize_name(new_name or "")
    if not cleaned.strip():
        raise InvalidNameError("Name cannot be empty")
    if check_name(cleaned) is not None:
        raise InvalidNameError(f'"{cleaned}" is not a usable name')

    parsed = parse(text)
    owners = [element for element in parsed.named_elements() if names_match(element.name, old_name)]
    overrides = [e for e in parsed.evolutions if e.override and names_match(e.override, old_name)]
    if not owners and not overrides:
        raise ElementNotFoundError(f'No element named "{old_name}"')

    # A case or spacing change of the same name is not a collision
    if not names_match(old_name, cleaned):
        for element in parsed.named_elements():
            if names_match(element.name, cleaned):
                raise NameCollisionError(f'{_element_label(element)} named "{cleaned}" already exists')
        for evolution in parsed.evolutions:
            if evolution.override and names_match(evolution.override, cleaned):
                raise NameCollisionError(f'A component named "{cleaned}" already exists')

    lines, eol = split_lines(text)
    replacement = format_name(cleaned)
    changed = 0
    for line_no, line in iter_source_lines(text):
        spans = _reference_spans(line, old_name)
        if spans:
            lines[line_no - 1] = _replace_spans(lines[line_no - 1], spans, replacement)
            changed += 1
    log.debug("renamed %r to %r on %d line(s)", old_name, cleaned, changed)
    return join_lines(lines, eol)


def rename_identifier_and_references(text: str, old_name: str, new_name: str) -> MutationResult:
    """Non-raising form of :func:`rename_element`.

    Returns:
        MutationResult; on failure ``text`` is the input unchanged.
    """
    try:
        return MutationResult(text=rename_element(text, old_name, new_name))
    except MutationError as e:
        log.info("rename rejected: %s", e.message)
        return MutationResult.failed(text if isinstance(text, str) else "", e)


def rename_anchor_text(text: str, old_name: str, new_name: str, line: Optional[int] = None) -> str:
    """Rename an anchor with the anchor-specific checks, then all its references.

    Args:
        line: Optional 1-based line the caller believes holds the anchor.

    Raises:
        InvalidNameError: Empty name or one containing ``[ ] - > ;``.
        ElementNotFoundError: No anchor called ``old_name``.
        StaleLineError: ``line`` no longer holds that anchor.
        NameCollisionError: A component or anchor already uses ``new_name``.
    """
    text = text if isinstance(text, str) else ""
    cleaned = (new_name or "").strip()
    if not cleaned:
        raise InvalidNameError("Anchor name cannot be empty")
    if any(ch in ANCHOR_FORBIDDEN_CHARS for ch in cleaned):
        raise InvalidNameError("Anchor name cannot contain [ ] - > or ;")

    parsed = parse(text)
    anchors = [anchor for anchor in parsed.anchors if names_match(anchor.name, old_name)]
    if not anchors:
        raise ElementNotFoundError(f'Anchor "{old_name}" not found')
    if line is not None and not any(anchor.line == line for anchor in anchors):
        raise StaleLineError(f'Line {line} no longer holds anchor "{old_name}"')

    if not names_match(old_name, cleaned):
        component_like = parsed.components + parsed.markets + parsed.ecosystems
        if any(names_match(c.name, cleaned) for c in component_like):
            raise NameCollisionError(f'A component named "{cleaned}" already exists')
        if any(names_match(a.name, cleaned) for a in parsed.anchors):
            raise NameCollisionError(f'An anchor named "{cleaned}" already exists')

    return rename_element(text, old_name, cleaned)


def rename_anchor(text: str, old_name: str, new_name: str, line: Optional[int] = None) -> MutationResult:
    """Non-raising form of :func:`rename_anchor_text`."""
    try:
        return MutationResult(text=rename_anchor_text(text, old_name, new_name, line))
    except MutationError as e:
        log.info("anchor rename rejected: %s", e.message)
        return MutationResult.failed(text if isinstance(text, str) else "", e)
