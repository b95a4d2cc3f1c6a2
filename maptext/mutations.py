"""
maptext/mutations.py

Mutation and serialization layer.

Every operation takes the current text and returns new text that differs
only in the addressed line(s); every other line is copied verbatim,
comments and blank lines included.  Preconditions are checked before
anything is written and failures raise a MutationError subclass.
``apply_mutation`` wraps the whole surface and turns those failures into a
MutationResult carrying the unchanged text.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from debug_trace import trace_call
from maptext.coordinates import (
    check_quad,
    format_coordinate,
    format_pair,
    format_quad,
    format_values,
    is_number,
    round_coordinate,
)
from maptext.errors import (
    ElementNotFoundError,
    InvalidCoordinatesError,
    InvalidNameError,
    MutationError,
    MutationResult,
    NameCollisionError,
    StaleLineError,
)
from maptext.lines import LF, iter_source_lines, join_lines, normalize_line_endings, scan_pipeline_blocks, split_lines
from maptext.links import is_link_candidate, parse_link_syntax
from maptext.naming import format_name, names_match, unique_name
from maptext.parser import parse
from maptext.pipelines import generate_pipeline_text, insert_into_pipeline_block, insert_pipeline_component
from maptext.recovery import RecoveryLog, recover_name
from maptext.rename import rename_anchor_text, rename_element
from maptext.strategies import TitleStrategy
from maptext.tokenizer import DECORATOR_RE, tokenize
from models import ATTITUDE_TYPES, COMPONENT_DECORATORS

log = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 200

# Evolution stages as (start, end) maturity ranges
EVOLUTION_STAGES: Tuple[Tuple[float, float], ...] = (
    (0.0, 0.25),    # Genesis
    (0.25, 0.5),    # Custom built
    (0.5, 0.75),    # Product
    (0.75, 1.0),    # Commodity
)
EVOLVE_STEP = 0.05

_DECORATOR_TOKEN_RE = re.compile(r"\s*" + DECORATOR_RE.pattern)

# Keywords whose bracket holds [visibility, maturity] (pipeline: [maturity1, maturity2])
_PAIR_KEYWORDS = ("component", "anchor", "note", "market", "ecosystem", "pipeline")


class InsertPolicy:
    """Where ``insert_element`` places new lines."""
    AFTER_LAST_MATCHING_KEYWORD = "after-last-matching-keyword"
    END_OF_DOCUMENT = "end-of-document"
    INSIDE_PIPELINE = "inside-pipeline"


@dataclass
class ElementRef:
    """Addresses an element by its 1-based line.

    When ``name`` is set the line must still declare that name, which
    catches edits made against an outdated parse.
    """
    line: int
    name: Optional[str] = None


# ----------------------------
# Helpers
# ----------------------------

def _as_text(text) -> str:
    return text if isinstance(text, str) else ""


def _line_index(lines: List[str], line_number: int) -> int:
    if not isinstance(line_number, int) or not 1 <= line_number <= len(lines):
        raise ElementNotFoundError(f"Line {line_number} does not exist")
    return line_number - 1


def _decode(raw: str, element_kind: str = "component") -> str:
    return recover_name(raw, element_kind, 0, RecoveryLog(emit=False))


def _declared_name(line: str) -> str:
    tokens = tokenize(line)
    if tokens.keyword in ATTITUDE_TYPES:
        return _decode(tokens.trailing, "attitude") if tokens.trailing else ""
    return _decode(tokens.raw_name)


def _block_lines(text: str) -> set:
    lines = set()
    for span in scan_pipeline_blocks(list(iter_source_lines(text))):
        if span.open_line is not None:
            end = span.close_line or max(span.child_lines, default=span.open_line)
            lines.update(range(span.open_line, end + 1))
    return lines


def _insert_at_end(lines: List[str], new_lines: List[str]) -> None:
    # Keep a trailing newline trailing
    at = len(lines) - 1 if lines and lines[-1] == "" else len(lines)
    lines[at:at] = new_lines


# ----------------------------
# Core operations
# ----------------------------

def _pipeline_child_lines(text: str) -> set:
    lines = set()
    for span in scan_pipeline_blocks(list(iter_source_lines(text))):
        lines.update(span.child_lines)
    return lines


def _coordinate_arity(text: str, line_number: int, tokens) -> Optional[int]:
    """Number of bracket values the element on a line takes, or None for non-elements."""
    if tokens.keyword in ATTITUDE_TYPES:
        return 4
    if tokens.keyword == "component" and line_number in _pipeline_child_lines(text):
        return 1
    if tokens.keyword in _PAIR_KEYWORDS:
        return 2
    return None


def update_element_coordinates(text: str, ref: ElementRef, coords: Sequence[float]) -> str:
    """Rewrite the coordinate bracket on the referenced line.

    The number of values must match the element: one for a pipeline
    child's maturity, four for an attitude box and two for everything else
    (a pipeline header takes its two maturities).  Values are clamped to
    [0, 1] and written with two decimals; a line without a bracket gets one
    after its name.

    Raises:
        InvalidCoordinatesError: Wrong arity, non-numbers, or a box that
            breaks the ordering or minimum size once rounded.
        ElementNotFoundError: The line does not exist or holds no element.
        StaleLineError: ``ref.name`` no longer matches the line.
    """
    coords = tuple(coords)
    if not all(is_number(value) for value in coords):
        raise InvalidCoordinatesError("invalid coordinates: values must be numbers")

    text = _as_text(text)
    lines, eol = split_lines(text)
    idx = _line_index(lines, ref.line)
    line = lines[idx]
    tokens = tokenize(line)
    commented = ref.line not in dict(iter_source_lines(text))
    arity = None if commented else _coordinate_arity(text, ref.line, tokens)
    if arity is None:
        raise ElementNotFoundError(f"Line {ref.line} holds no element with coordinates")
    if ref.name is not None and not names_match(_declared_name(line), ref.name):
        raise StaleLineError(f'Line {ref.line} no longer holds "{ref.name}"')
    if len(coords) != arity:
        raise InvalidCoordinatesError(f"invalid coordinates: {tokens.keyword} takes {arity} values, got {len(coords)}")

    coords = tuple(round_coordinate(value) for value in coords)
    if arity == 4:
        reason = check_quad(*coords)
        if reason:
            raise InvalidCoordinatesError(f"invalid coordinates: {reason}")

    bracket = format_values(coords)
    if tokens.bracket_span is not None:
        start, end = tokens.bracket_span
        lines[idx] = line[:start] + bracket + line[end:]
    else:
        at = tokens.name_span[1]
        lines[idx] = line[:at] + " " + bracket + line[at:]
    return join_lines(lines, eol)


def insert_element(text: str, element_text: str,
                   policy: str = InsertPolicy.AFTER_LAST_MATCHING_KEYWORD,
                   keyword: Optional[str] = None,
                   pipeline: Optional[str] = None) -> str:
    """Insert one or more lines according to ``policy``.

    Args:
        text: Current map text.
        element_text: Line(s) to insert, LF-separated.
        policy: One of the InsertPolicy values.  "After last matching
            keyword" falls back to the end of the document when no line
            uses the keyword.
        keyword: Keyword to match; defaults to the first word of
            ``element_text``.
        pipeline: Target pipeline name for InsertPolicy.INSIDE_PIPELINE.

    Raises:
        ElementNotFoundError: The target pipeline does not exist.
        ValueError: Unknown policy.
    """
    text = _as_text(text)
    new_lines = normalize_line_endings(element_text).split(LF)
    if policy == InsertPolicy.INSIDE_PIPELINE:
        if not pipeline:
            raise ElementNotFoundError("No pipeline given for insertion")
        return insert_into_pipeline_block(text, pipeline, new_lines)
    if policy not in (InsertPolicy.AFTER_LAST_MATCHING_KEYWORD, InsertPolicy.END_OF_DOCUMENT):
        raise ValueError(f"Unknown insert policy: {policy}")
    if not text:
        return LF.join(new_lines)

    lines, eol = split_lines(text)
    if policy == InsertPolicy.AFTER_LAST_MATCHING_KEYWORD:
        keyword = keyword or tokenize(new_lines[0]).keyword
        blocked = _block_lines(text)
        last = None
        for line_no, line in iter_source_lines(text):
            if line_no not in blocked and tokenize(line).keyword == keyword:
                last = line_no
        if last is not None:
            lines[last:last] = new_lines
            return join_lines(lines, eol)

    _insert_at_end(lines, new_lines)
    return join_lines(lines, eol)


def delete_line(text: str, line_number: int) -> str:
    """Remove one line (1-based); all other lines are untouched.

    Raises:
        ElementNotFoundError: The line does not exist.
    """
    lines, eol = split_lines(_as_text(text))
    idx = _line_index(lines, line_number)
    del lines[idx]
    return join_lines(lines, eol)


def _find_link_line(text: str, start: str, end: str, either_direction: bool) -> Optional[int]:
    for line_no, line in iter_source_lines(text):
        if not is_link_candidate(line):
            continue
        syntax = parse_link_syntax(line)
        if syntax is None:
            continue
        link_start = _decode(line[syntax.start_span[0]:syntax.start_span[1]], "link")
        link_end = _decode(line[syntax.end_span[0]:syntax.end_span[1]], "link")
        if names_match(link_start, start) and names_match(link_end, end):
            return line_no
        if either_direction and not syntax.flow and names_match(link_start, end) and names_match(link_end, start):
            return line_no
    return None


def delete_link(text: str, start: str, end: str) -> str:
    """Delete the first link between two elements.

    Plain links match in either direction (``A->B``, ``B->A``, ``A<->B``);
    flow links only as written.

    Raises:
        ElementNotFoundError: No such link.
    """
    text = _as_text(text)
    line_no = _find_link_line(text, start, end, either_direction=True)
    if line_no is None:
        raise ElementNotFoundError(f'Link "{start}->{end}" not found')
    return delete_line(text, line_no)


def update_decorator(text: str, line_number: int, decorator: Optional[str]) -> str:
    """Replace the ``(buy)``-style decorator on a component line.

    Args:
        decorator: New decorator, or None to remove the existing one.

    Raises:
        MutationError: Unknown decorator or a line that is not a component.
    """
    if decorator is not None and decorator not in COMPONENT_DECORATORS:
        raise MutationError(f'Unknown decorator "{decorator}"')
    lines, eol = split_lines(_as_text(text))
    idx = _line_index(lines, line_number)
    line = lines[idx]
    tokens = tokenize(line)
    if tokens.keyword not in ("component", "market", "ecosystem"):
        raise MutationError(f"Line {line_number} is not a component")

    name_end = tokens.name_span[1]
    cut = tokens.bracket_span[1] if tokens.bracket_span else name_end
    middle = _DECORATOR_TOKEN_RE.sub("", line[name_end:cut])
    tail = _DECORATOR_TOKEN_RE.sub("", line[cut:])
    added = f" ({decorator})" if decorator else ""
    lines[idx] = line[:name_end] + middle + added + tail
    return join_lines(lines, eol)


# ----------------------------
# Title
# ----------------------------

def get_current_title(text: str) -> str:
    """The map title, or "Untitled Map"."""
    return TitleStrategy().title_of(text)


def update_title(text: str, title: str) -> str:
    """Replace the first title line, or add one at the top.

    Raises:
        InvalidNameError: Empty, multi-line or over-long title.
    """
    title = (title or "").strip()
    if not title or len(title) > MAX_TITLE_LENGTH or "\n" in title or "\r" in title:
        raise InvalidNameError(f"Title must be a single line of 1 to {MAX_TITLE_LENGTH} characters")
    text = _as_text(text)
    if not text:
        return f"title {title}"
    lines, eol = split_lines(text)
    for line_no, line in iter_source_lines(text):
        tokens = tokenize(line)
        if tokens.keyword == "title":
            lines[line_no - 1] = f"{tokens.indent}title {title}"
            return join_lines(lines, eol)
    lines.insert(0, f"title {title}")
    return join_lines(lines, eol)


# ----------------------------
# Links
# ----------------------------

def link_text(start: str, end: str) -> str:
    return f"{format_name(start)}->{format_name(end)}"


def add_link(text: str, start: str, end: str) -> str:
    """Add ``start->end`` after the last declaration line.

    Raises:
        NameCollisionError: A link between the two already exists.
    """
    text = _as_text(text)
    if _find_link_line(text, start, end, either_direction=True) is not None:
        raise NameCollisionError(f'A link between "{start}" and "{end}" already exists')

    lines, eol = split_lines(text)
    source = list(iter_source_lines(text))
    closes = {span.header_line: span.close_line for span in scan_pipeline_blocks(source)}
    blocked = _block_lines(text)
    last = None
    for line_no, line in source:
        if line_no in blocked:
            continue
        if tokenize(line).keyword in ("component", "anchor", "note", "pipeline"):
            last = closes.get(line_no) or line_no
    if last is None:
        _insert_at_end(lines, [link_text(start, end)])
    else:
        lines.insert(last, link_text(start, end))
    return join_lines(lines, eol)


def update_link_context(text: str, start: str, end: str, context: Optional[str]) -> str:
    """Set, replace or (with an empty context) remove ``;context`` on a link.

    Raises:
        ElementNotFoundError: No link ``start->end``.
        InvalidNameError: Multi-line context.
    """
    context = (context or "").strip()
    if "\n" in context or "\r" in context:
        raise InvalidNameError("Link context must be a single line")
    text = _as_text(text)
    line_no = _find_link_line(text, start, end, either_direction=False)
    if line_no is None:
        raise ElementNotFoundError(f'Link "{start}->{end}" not found')
    lines, eol = split_lines(text)
    line = lines[line_no - 1]
    syntax = parse_link_syntax(line)
    link_part = line[:syntax.context_start] if syntax.context_start is not None else line
    link_part = link_part.rstrip()
    lines[line_no - 1] = f"{link_part};{context}" if context else link_part
    return join_lines(lines, eol)


# ----------------------------
# Element templates
# ----------------------------

def component_text(name: str, visibility: float, maturity: float,
                   decorator: Optional[str] = None, inertia: bool = False,
                   keyword: str = "component") -> str:
    text = f"{keyword} {format_name(name)} {format_pair(visibility, maturity)}"
    if inertia:
        text += " inertia"
    if decorator:
        text += f" ({decorator})"
    return text


def anchor_text(name: str, visibility: float, maturity: float) -> str:
    return f"anchor {format_name(name)} {format_pair(visibility, maturity)}"


def note_text(note: str, visibility: float, maturity: float) -> str:
    return f"note {format_name(note)} {format_pair(visibility, maturity)}"


def attitude_text(attitude: str, coords: Sequence[float], name: str = "") -> str:
    text = f"{attitude} {format_quad(*coords)}"
    if name:
        text += f" {format_name(name)}"
    return text


def evolve_text(name: str, target: str, maturity: float) -> str:
    if names_match(name, target):
        return f"evolve {format_name(name)} {format_coordinate(maturity)}"
    return f"evolve {format_name(name)}->{format_name(target)} {format_coordinate(maturity)}"


# ----------------------------
# Element creation
# ----------------------------

def add_component(text: str, name: str, visibility: float, maturity: float,
                  decorator: Optional[str] = None, inertia: bool = False,
                  keyword: str = "component") -> str:
    """Insert a component-like line after its peers, with a globally unique name."""
    if keyword not in ("component", "anchor", "market", "ecosystem"):
        raise MutationError(f'Unknown element keyword "{keyword}"')
    if decorator is not None and decorator not in COMPONENT_DECORATORS:
        raise MutationError(f'Unknown decorator "{decorator}"')
    if not is_number(visibility) or not is_number(maturity):
        raise InvalidCoordinatesError("invalid coordinates: values must be numbers")
    text = _as_text(text)
    name = unique_name((name or "").strip() or "New Component", parse(text).all_names())
    if keyword == "anchor":
        line = anchor_text(name, visibility, maturity)
    else:
        line = component_text(name, visibility, maturity, decorator, inertia, keyword)
    return insert_element(text, line, InsertPolicy.AFTER_LAST_MATCHING_KEYWORD, keyword)


def add_note(text: str, note: str, visibility: float, maturity: float) -> str:
    if not (note or "").strip():
        raise InvalidNameError("Note text cannot be empty")
    if not is_number(visibility) or not is_number(maturity):
        raise InvalidCoordinatesError("invalid coordinates: values must be numbers")
    return insert_element(_as_text(text), note_text(note, visibility, maturity))


def add_attitude(text: str, attitude: str, coords: Sequence[float], name: str = "") -> str:
    if attitude not in ATTITUDE_TYPES:
        raise MutationError(f'Unknown attitude "{attitude}"')
    coords = tuple(coords)
    if len(coords) != 4:
        raise InvalidCoordinatesError("invalid coordinates: expected 4 values")
    reason = check_quad(*coords)
    if reason:
        raise InvalidCoordinatesError(f"invalid coordinates: {reason}")
    coords = tuple(round_coordinate(value) for value in coords)
    return insert_element(_as_text(text), attitude_text(attitude, coords, name))


def add_pipeline(text: str, name: str, visibility: float, maturity: float) -> str:
    """Insert a pipeline component, header and a two-child block after the components."""
    if not is_number(visibility) or not is_number(maturity):
        raise InvalidCoordinatesError("invalid coordinates: values must be numbers")
    text = _as_text(text)
    names = parse(text).all_names()
    name = unique_name((name or "").strip() or "New Pipeline", names)
    block = generate_pipeline_text(name, visibility, maturity, existing_names=names)
    return insert_element(text, block, InsertPolicy.AFTER_LAST_MATCHING_KEYWORD, "component")


def add_pipeline_component(text: str, pipeline: str, name: str, maturity: float,
                           label: Optional[Tuple[float, float]] = None) -> str:
    if not is_number(maturity):
        raise InvalidCoordinatesError("invalid coordinates: values must be numbers")
    text = _as_text(text)
    name = unique_name((name or "").strip() or "New Component", parse(text).all_names())
    return insert_pipeline_component(text, pipeline, name, maturity, label)


def next_stage_maturity(maturity: float) -> float:
    """Maturity just inside the next evolution stage (or a small step in the last one)."""
    for index, (start, end) in enumerate(EVOLUTION_STAGES):
        if start <= maturity < end and index + 1 < len(EVOLUTION_STAGES):
            return round(EVOLUTION_STAGES[index + 1][0] + EVOLVE_STEP, 2)
    return round(min(1.0, maturity + EVOLVE_STEP), 2)


def evolve_component(text: str, name: str, target_name: Optional[str] = None,
                     target_maturity: Optional[float] = None) -> str:
    """Append an ``evolve`` line for a component.

    The target defaults to "<name> Evolved" (made unique) at the start of
    the next evolution stage.

    Raises:
        ElementNotFoundError: No such component.
        NameCollisionError: Already evolved, or the target name is taken.
    """
    text = _as_text(text)
    parsed = parse(text)
    component = next((c for c in parsed.components if names_match(c.name, name)), None)
    if component is None:
        raise ElementNotFoundError(f'Component "{name}" not found')
    if any(names_match(e.name, component.name) for e in parsed.evolutions):
        raise NameCollisionError(f'Component "{component.name}" is already evolved')

    names = parsed.all_names()
    if target_name:
        target_name = target_name.strip()
        if not names_match(target_name, component.name) and any(names_match(n, target_name) for n in names):
            raise NameCollisionError(f'A component named "{target_name}" already exists')
    else:
        target_name = unique_name(f"{component.name} Evolved", names)

    if target_maturity is None:
        target_maturity = next_stage_maturity(component.maturity)
    elif not is_number(target_maturity):
        raise InvalidCoordinatesError("invalid coordinates: maturity must be a number")

    return insert_element(text, evolve_text(component.name, target_name, target_maturity))


# ----------------------------
# Dispatcher
# ----------------------------

@dataclass
class UpdateCoordinates:
    ref: ElementRef
    coords: Sequence[float]


@dataclass
class InsertElement:
    element_text: str
    policy: str = InsertPolicy.AFTER_LAST_MATCHING_KEYWORD
    keyword: Optional[str] = None
    pipeline: Optional[str] = None


@dataclass
class DeleteLine:
    line: int


@dataclass
class DeleteLink:
    start: str
    end: str


@dataclass
class UpdateDecorator:
    line: int
    decorator: Optional[str]


@dataclass
class RenameElement:
    old_name: str
    new_name: str


@dataclass
class RenameAnchor:
    old_name: str
    new_name: str
    line: Optional[int] = None


@dataclass
class UpdateTitle:
    title: str


@dataclass
class AddLink:
    start: str
    end: str


@dataclass
class UpdateLinkContext:
    start: str
    end: str
    context: Optional[str]


@dataclass
class AddComponent:
    name: str
    visibility: float
    maturity: float
    decorator: Optional[str] = None
    inertia: bool = False
    keyword: str = "component"


@dataclass
class AddNote:
    text: str
    visibility: float
    maturity: float


@dataclass
class AddAttitude:
    attitude: str
    coords: Sequence[float]
    name: str = ""


@dataclass
class AddPipeline:
    name: str
    visibility: float
    maturity: float


@dataclass
class AddPipelineComponent:
    pipeline: str
    name: str
    maturity: float
    label: Optional[Tuple[float, float]] = None


@dataclass
class EvolveComponent:
    name: str
    target_name: Optional[str] = None
    target_maturity: Optional[float] = None


_HANDLERS: Dict[type, Callable[[str, object], str]] = {
    UpdateCoordinates: lambda text, op: update_element_coordinates(text, op.ref, op.coords),
    InsertElement: lambda text, op: insert_element(text, op.element_text, op.policy, op.keyword, op.pipeline),
    DeleteLine: lambda text, op: delete_line(text, op.line),
    DeleteLink: lambda text, op: delete_link(text, op.start, op.end),
    UpdateDecorator: lambda text, op: update_decorator(text, op.line, op.decorator),
    RenameElement: lambda text, op: rename_element(text, op.old_name, op.new_name),
    RenameAnchor: lambda text, op: rename_anchor_text(text, op.old_name, op.new_name, op.line),
    UpdateTitle: lambda text, op: update_title(text, op.title),
    AddLink: lambda text, op: add_link(text, op.start, op.end),
    UpdateLinkContext: lambda text, op: update_link_context(text, op.start, op.end, op.context),
    AddComponent: lambda text, op: add_component(text, op.name, op.visibility, op.maturity,
                                                 op.decorator, op.inertia, op.keyword),
    AddNote: lambda text, op: add_note(text, op.text, op.visibility, op.maturity),
    AddAttitude: lambda text, op: add_attitude(text, op.attitude, op.coords, op.name),
    AddPipeline: lambda text, op: add_pipeline(text, op.name, op.visibility, op.maturity),
    AddPipelineComponent: lambda text, op: add_pipeline_component(text, op.pipeline, op.name,
                                                                  op.maturity, op.label),
    EvolveComponent: lambda text, op: evolve_component(text, op.name, op.target_name, op.target_maturity),
}


@trace_call("MUTATION")
def apply_mutation(text: str, op) -> MutationResult:
    """Apply one structural edit.

    Args:
        text: Current map text (None is treated as empty).
        op: One of the operation dataclasses in this module.

    Returns:
        MutationResult with the new text, or the unchanged text and the
        rejected precondition.

    Raises:
        TypeError: ``op`` is not a known operation.
    """
    handler = _HANDLERS.get(type(op))
    if handler is None:
        raise TypeError(f"Unsupported mutation: {type(op).__name__}")
    text = _as_text(text)
    try:
        new_text = handler(text, op)
    except MutationError as e:
        log.info("%s rejected: %s", type(op).__name__, e.message)
        return MutationResult.failed(text, e)
    return MutationResult(text=new_text)
