"""
maptext/pipelines.py

Pipeline extraction, bounds detection and pipeline text generation.

A pipeline is declared as::

    pipeline Kettle [0.20, 0.80]
    {
      component Electric Kettle [0.35] label [-10, -10]
      component Gas Kettle [0.65]
    }

The bracket on the pipeline line holds the two maturity bounds; the
pipeline's visibility is that of the component with the same name.  When
the block has children their maturities define the bounds instead.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from maptext.coordinates import clamp_unit, format_coordinate, format_label, format_pair, parse_single, parse_values
from maptext.errors import ElementNotFoundError
from maptext.lines import join_lines, split_lines, iter_source_lines, scan_pipeline_blocks
from maptext.naming import format_name, names_match, unique_name
from maptext.recovery import RecoveryLog, recover_name
from maptext.strategies import label_from
from maptext.tokenizer import tokenize
from models import (
    DEFAULT_PIPELINE_CHILD_MATURITY,
    DEFAULT_PIPELINE_MATURITY1,
    DEFAULT_PIPELINE_MATURITY2,
    UNTERMINATED_BLOCK,
    ExtractionResult,
    Pipeline,
    PipelineComponent,
)
from settings import get_settings

log = logging.getLogger(__name__)

CHILD_INDENT = "  "
UNBOUNDED_PADDING = 0.1   # bounds padding for a pipeline with no children
MIN_CHILD_GAP = 0.1


class PipelineStrategy:
    """Extracts pipelines and their block children.

    Same ``apply(text)`` contract as the element strategies.  An unclosed
    block drops its children (and logs an event); the rest of the document
    is parsed as usual.
    """

    keywords = ("pipeline",)
    element_kind = "pipeline"

    def apply(self, text: Any) -> ExtractionResult:
        result = ExtractionResult()
        if not isinstance(text, str) or not text:
            return result

        source = list(iter_source_lines(text))
        by_line: Dict[int, str] = dict(source)
        recovery_log = RecoveryLog()
        for span in scan_pipeline_blocks(source, self.keywords[0]):
            tokens = tokenize(by_line[span.header_line])
            pipeline = Pipeline(
                name=recover_name(tokens.raw_name, self.element_kind, span.header_line, recovery_log),
                line=span.header_line,
            )
            values = parse_values(tokens.bracket)
            if values:
                first = values[0]
                second = values[1] if len(values) > 1 else None
                pipeline.maturity1 = clamp_unit(first) if first is not None else DEFAULT_PIPELINE_MATURITY1
                pipeline.maturity2 = clamp_unit(second) if second is not None else DEFAULT_PIPELINE_MATURITY2
                pipeline.hidden = False

            if not span.terminated:
                recovery_log.record(
                    UNTERMINATED_BLOCK, self.element_kind, span.open_line,
                    original="{", replacement="",
                    message=f'block of pipeline "{pipeline.name}" is never closed; children dropped',
                )
            else:
                for child_line in span.child_lines:
                    child = self._extract_child(by_line[child_line], child_line, recovery_log)
                    if child is not None:
                        pipeline.components.append(child)

            if pipeline.components:
                maturities = [child.maturity for child in pipeline.components]
                pipeline.maturity1 = min(maturities)
                pipeline.maturity2 = max(maturities)
                pipeline.hidden = False
            result.elements.append(pipeline)

        result.events = recovery_log.events
        return result

    @staticmethod
    def _extract_child(line: str, line_no: int, recovery_log: RecoveryLog) -> Optional[PipelineComponent]:
        tokens = tokenize(line)
        if tokens.keyword != "component":
            return None
        return PipelineComponent(
            name=recover_name(tokens.raw_name, "pipeline-component", line_no, recovery_log),
            maturity=parse_single(tokens.bracket, DEFAULT_PIPELINE_CHILD_MATURITY),
            line=line_no,
            label=label_from(tokens.trailing),
        )


# ----------------------------
# Bounds detection
# ----------------------------

def pipeline_bounds(pipeline: Pipeline) -> Tuple[float, float]:
    """Maturity range covered by a pipeline.

    Children define the range when present; otherwise the declared
    maturities padded by UNBOUNDED_PADDING.
    """
    if pipeline.components:
        maturities = [child.maturity for child in pipeline.components]
        return min(maturities), max(maturities)
    low = min(pipeline.maturity1, pipeline.maturity2)
    high = max(pipeline.maturity1, pipeline.maturity2)
    return clamp_unit(low - UNBOUNDED_PADDING), clamp_unit(high + UNBOUNDED_PADDING)


def is_within_pipeline(pipeline: Pipeline, visibility: float, maturity: float,
                       tolerance: Optional[float] = None,
                       above_factor: Optional[float] = None) -> bool:
    """True when a point falls inside a pipeline's snapping zone.

    The zone is asymmetric: the full tolerance applies below the
    pipeline's visibility and ``tolerance * above_factor`` above it.
    Maturity must fall inside :func:`pipeline_bounds` with no tolerance.
    """
    if pipeline.visibility is None:
        return False
    cfg = get_settings().settings.pipelines
    if tolerance is None:
        tolerance = cfg.snap_tolerance
    if above_factor is None:
        above_factor = cfg.above_tolerance_factor

    low, high = pipeline_bounds(pipeline)
    if not low <= maturity <= high:
        return False
    delta = visibility - pipeline.visibility
    limit = tolerance * above_factor if delta > 0 else tolerance
    return abs(delta) <= limit


def find_pipeline_at(pipelines: Iterable[Pipeline], visibility: float, maturity: float,
                     tolerance: Optional[float] = None,
                     above_factor: Optional[float] = None) -> Optional[Pipeline]:
    """Return the pipeline a point snaps to; the closest visibility wins."""
    matches = [p for p in pipelines
               if is_within_pipeline(p, visibility, maturity, tolerance, above_factor)]
    if not matches:
        return None
    return min(matches, key=lambda p: abs(p.visibility - visibility))


# ----------------------------
# Text generation
# ----------------------------

def child_maturities(maturity: float, spacing: Optional[float] = None) -> Tuple[float, float]:
    """Maturities of the two default children placed around ``maturity``.

    The pair is shifted to stay inside [0, 1] without shrinking the gap.
    """
    if spacing is None:
        spacing = get_settings().settings.pipelines.component_spacing
    spacing = min(1.0, max(MIN_CHILD_GAP, spacing))
    left = maturity - spacing / 2
    right = maturity + spacing / 2
    if left < 0.0:
        left, right = 0.0, spacing
    elif right > 1.0:
        left, right = 1.0 - spacing, 1.0
    return round(left, 2), round(right, 2)


def pipeline_component_text(name: str, maturity: float, label: Optional[Tuple[float, float]] = None) -> str:
    """``component <name> [<maturity>]`` with an optional label offset."""
    text = f"component {format_name(name)} [{format_coordinate(maturity)}]"
    if label is not None:
        text += " " + format_label(label[0], label[1])
    return text


def generate_pipeline_text(name: str, visibility: float, maturity: float,
                           existing_names: Sequence[str] = (),
                           spacing: Optional[float] = None) -> str:
    """Lines for a new pipeline: its component, header and a block of two children.

    Child names are made unique against ``existing_names``.

    Returns:
        LF-joined text without a trailing newline.
    """
    left, right = child_maturities(maturity, spacing)
    taken = list(existing_names) + [name]
    first = unique_name("Pipeline Component 1", taken)
    taken.append(first)
    second = unique_name("Pipeline Component 2", taken)
    return "\n".join([
        f"component {format_name(name)} {format_pair(visibility, maturity)}",
        f"pipeline {format_name(name)}",
        "{",
        CHILD_INDENT + pipeline_component_text(first, left),
        CHILD_INDENT + pipeline_component_text(second, right),
        "}",
    ])


def insert_pipeline_component(text: str, pipeline_name: str, name: str, maturity: float,
                              label: Optional[Tuple[float, float]] = None) -> str:
    """Insert ``component <name> [<maturity>]`` at the top of a pipeline's block.

    Raises:
        ElementNotFoundError: If no pipeline has that name.
    """
    return insert_into_pipeline_block(text, pipeline_name, [pipeline_component_text(name, maturity, label)])


def insert_into_pipeline_block(text: str, pipeline_name: str, child_lines: Sequence[str]) -> str:
    """Insert lines right after the ``{`` of a pipeline's block, before existing children.

    The new lines copy the indentation of the existing children.  A
    pipeline without a block gets one.

    Raises:
        ElementNotFoundError: If no pipeline has that name.
    """
    lines, eol = split_lines(text)
    source = list(iter_source_lines(text))
    for span in scan_pipeline_blocks(source):
        header = tokenize(lines[span.header_line - 1])
        decoded = recover_name(header.raw_name, "pipeline", span.header_line, RecoveryLog(emit=False))
        if not names_match(decoded, pipeline_name):
            continue

        children = [child.strip() for child in child_lines]
        if span.open_line is None:
            indent = header.indent
            block = [indent + "{"] + [indent + CHILD_INDENT + child for child in children] + [indent + "}"]
            lines[span.header_line:span.header_line] = block
        else:
            if span.child_lines:
                indent = tokenize(lines[span.child_lines[0] - 1]).indent
            else:
                indent = tokenize(lines[span.open_line - 1]).indent + CHILD_INDENT
            lines[span.open_line:span.open_line] = [indent + child for child in children]
        log.debug("inserted %d line(s) into pipeline %r", len(children), pipeline_name)
        return join_lines(lines, eol)

    raise ElementNotFoundError(f'Pipeline "{pipeline_name}" not found in map text')


def pipelines_in(text: Any) -> List[Pipeline]:
    return PipelineStrategy().apply(text).elements
