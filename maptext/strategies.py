"""
maptext/strategies.py

Extraction strategies for the line-oriented map language.

Each strategy is a pure function of the text: ``apply(text)`` scans the
lines, picks the ones whose keyword it owns (case-sensitive, at line start
after trimming) and returns typed elements plus the recovery events met on
the way.  Strategies share no state, so any subset can run on the same
text in any order.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, List, Optional, Set, Tuple

from maptext.coordinates import clamp_unit, parse_coordinate, parse_pair, parse_quad
from maptext.lines import iter_source_lines, scan_pipeline_blocks
from maptext.recovery import RecoveryLog, recover_name
from maptext.tokenizer import LineTokens, find_unquoted, has_inertia, parse_decorators, parse_label, tokenize
from models import (
    ATTITUDE_TYPES,
    DEFAULT_EVOLVE_MATURITY,
    DEFAULT_TITLE,
    METHOD_DECORATORS,
    Anchor,
    Attitude,
    Component,
    Evolution,
    ExtractionResult,
    LabelOffset,
    Method,
    Note,
)

_EVOLVE_MATURITY_RE = re.compile(r"(?:^|\s)(\d*\.\d+)\s*$")
_TRAILING_LABEL_RE = re.compile(r"\s*label\s*\[[^\]]*\]\s*$")


class ElementStrategy:
    """Base class for a single element kind.

    Subclasses set ``keywords`` and ``element_kind`` and implement
    :meth:`extract` for one tokenized line.
    """

    keywords: Tuple[str, ...] = ()
    element_kind: str = ""
    # Lines inside a pipeline's { } block belong to the pipeline
    skip_pipeline_blocks: bool = False

    def apply(self, text: Any, emit: bool = True) -> ExtractionResult:
        """Extract this strategy's elements from ``text``.

        Non-string input yields an empty result.  With ``emit`` off the
        recovery events are still returned but not logged.
        """
        result = ExtractionResult()
        if not isinstance(text, str) or not text:
            return result

        source = list(iter_source_lines(text))
        blocked = _pipeline_block_lines(source) if self.skip_pipeline_blocks else set()
        recovery_log = RecoveryLog(emit=emit)
        for line_no, line in source:
            if line_no in blocked:
                continue
            tokens = tokenize(line)
            if tokens.keyword not in self.keywords:
                continue
            element = self.extract(tokens, line_no, recovery_log)
            if element is not None:
                result.elements.append(element)
        result.events = recovery_log.events
        return result

    def extract(self, tokens: LineTokens, line_no: int, recovery_log: RecoveryLog) -> Optional[Any]:
        raise NotImplementedError


def _pipeline_block_lines(source: List[Tuple[int, str]]) -> Set[int]:
    lines: Set[int] = set()
    for span in scan_pipeline_blocks(source):
        if span.open_line is None:
            continue
        end = span.close_line if span.close_line is not None else max(span.child_lines, default=span.open_line)
        lines.update(range(span.open_line, end + 1))
    return lines


def label_from(trailing: str) -> LabelOffset:
    offset = parse_label(trailing)
    if offset is None:
        return LabelOffset()
    return LabelOffset(x=offset[0], y=offset[1])


# ----------------------------
# Component-like elements
# ----------------------------

class ComponentStrategy(ElementStrategy):
    """``component <name> [v, m]`` with decorators, inertia and label."""

    keywords = ("component",)
    element_kind = "component"
    skip_pipeline_blocks = True

    def extract(self, tokens, line_no, recovery_log):
        name = recover_name(tokens.raw_name, self.element_kind, line_no, recovery_log)
        visibility, maturity = parse_pair(tokens.bracket)
        component = Component(
            name=name,
            visibility=visibility,
            maturity=maturity,
            line=line_no,
            kind=self.element_kind,
            inertia=has_inertia(tokens.trailing),
            label=label_from(tokens.trailing),
        )
        for decorator in parse_decorators(tokens.trailing):
            if decorator in METHOD_DECORATORS:
                component.method = component.method or decorator
            elif decorator == "market":
                component.market = True
            elif decorator == "ecosystem":
                component.ecosystem = True
        return component


class MarketStrategy(ComponentStrategy):
    keywords = ("market",)
    element_kind = "market"

    def extract(self, tokens, line_no, recovery_log):
        component = super().extract(tokens, line_no, recovery_log)
        component.market = True
        return component


class EcosystemStrategy(ComponentStrategy):
    keywords = ("ecosystem",)
    element_kind = "ecosystem"

    def extract(self, tokens, line_no, recovery_log):
        component = super().extract(tokens, line_no, recovery_log)
        component.ecosystem = True
        return component


class AnchorStrategy(ElementStrategy):
    keywords = ("anchor",)
    element_kind = "anchor"

    def extract(self, tokens, line_no, recovery_log):
        name = recover_name(tokens.raw_name, self.element_kind, line_no, recovery_log)
        visibility, maturity = parse_pair(tokens.bracket)
        return Anchor(name=name, visibility=visibility, maturity=maturity, line=line_no)


class NoteStrategy(ElementStrategy):
    keywords = ("note",)
    element_kind = "note"

    def extract(self, tokens, line_no, recovery_log):
        text = recover_name(tokens.raw_name, self.element_kind, line_no, recovery_log)
        visibility, maturity = parse_pair(tokens.bracket)
        return Note(text=text, visibility=visibility, maturity=maturity, line=line_no)


class MethodStrategy(ElementStrategy):
    """Methods from ``buy|build|outsource <name>`` lines and from component decorators.

    A component that is both decorated and named by a method line yields a
    single Method (the first one found).
    """

    keywords = METHOD_DECORATORS
    element_kind = "method"

    def apply(self, text: Any, emit: bool = True) -> ExtractionResult:
        result = super().apply(text, emit)
        seen = {method.name for method in result.elements}
        # Component recovery is already logged by ComponentStrategy
        for component in ComponentStrategy().apply(text, emit=False).elements:
            if component.method and component.name not in seen:
                seen.add(component.name)
                result.elements.append(Method(name=component.name, decorator=component.method,
                                              line=component.line))
        result.elements.sort(key=lambda method: method.line)
        return result

    def extract(self, tokens, line_no, recovery_log):
        name = recover_name(tokens.raw_name, self.element_kind, line_no, recovery_log)
        return Method(name=name, decorator=tokens.keyword, line=line_no)


class AttitudeStrategy(ElementStrategy):
    """``pioneers|settlers|townplanners [v1, m1, v2, m2] [name]``."""

    keywords = ATTITUDE_TYPES
    element_kind = "attitude"

    def extract(self, tokens, line_no, recovery_log):
        visibility, maturity, visibility2, maturity2 = parse_quad(tokens.bracket)
        name = ""
        if tokens.trailing:
            # The name is optional, so only a non-empty field goes through recovery
            name = recover_name(tokens.trailing, self.element_kind, line_no, recovery_log)
        return Attitude(
            attitude=tokens.keyword,
            visibility=visibility,
            maturity=maturity,
            visibility2=visibility2,
            maturity2=maturity2,
            name=name,
            line=line_no,
        )


class EvolutionStrategy(ElementStrategy):
    """``evolve <name> [-> <override>] <maturity>``."""

    keywords = ("evolve",)
    element_kind = "evolution"

    def extract(self, tokens, line_no, recovery_log):
        name_span, override_span, maturity = evolve_spans(tokens)
        line = tokens.source
        override: Optional[str] = None
        if override_span is not None:
            override = recover_name(line[override_span[0]:override_span[1]], self.element_kind,
                                    line_no, recovery_log)
        name = recover_name(line[name_span[0]:name_span[1]], self.element_kind, line_no, recovery_log)
        return Evolution(name=name, maturity=maturity, override=override, line=line_no)


def evolve_spans(tokens: LineTokens) -> Tuple[Tuple[int, int], Optional[Tuple[int, int]], float]:
    """Locate the name and override of an evolve line.

    Evolve lines have no bracket, so the maturity is the trailing number
    (after dropping any label offset) and an unquoted ``->`` separates the
    name from its override.

    Returns:
        ``(name_span, override_span, maturity)``; spans are offsets into
        ``tokens.source`` and ``override_span`` is None without an override.
    """
    line = tokens.source
    start = tokens.name_span[0]
    body = _TRAILING_LABEL_RE.sub("", line[start:])
    maturity = DEFAULT_EVOLVE_MATURITY
    match = _EVOLVE_MATURITY_RE.search(body)
    if match:
        value = parse_coordinate(match.group(1))
        if value is not None:
            maturity = clamp_unit(value)
        body = body[:match.start(1)]

    arrow = find_unquoted(body, "->")
    if arrow < 0:
        return _trimmed(line, start, start + len(body)), None, maturity
    name_span = _trimmed(line, start, start + arrow)
    override_span = _trimmed(line, start + arrow + 2, start + len(body))
    return name_span, override_span, maturity


def _trimmed(line: str, start: int, end: int) -> Tuple[int, int]:
    while start < end and line[start] in " \t":
        start += 1
    while end > start and line[end - 1] in " \t":
        end -= 1
    return start, end


# ----------------------------
# Title
# ----------------------------

class TitleStrategy(ElementStrategy):
    """``title <text>``; only the first title line counts."""

    keywords = ("title",)
    element_kind = "title"

    def extract(self, tokens, line_no, recovery_log):
        return tokens.rest or None

    def title_of(self, text: Any) -> str:
        elements = self.apply(text).elements
        return elements[0] if elements else DEFAULT_TITLE


def run_strategies(text: Any, strategies: Iterable[ElementStrategy]) -> List[ExtractionResult]:
    return [strategy.apply(text) for strategy in strategies]
