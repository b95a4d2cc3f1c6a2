"""
maptext/parser.py

Aggregate parse: runs every extraction strategy over the text and
assembles a ParsedMap.

The result is a disposable view of the text.  Callers re-parse after each
mutation instead of holding on to elements from an earlier version.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from debug_trace import trace
from maptext.links import LinksExtractionStrategy
from maptext.naming import names_match
from maptext.pipelines import PipelineStrategy
from maptext.strategies import (
    AnchorStrategy,
    AttitudeStrategy,
    ComponentStrategy,
    EcosystemStrategy,
    EvolutionStrategy,
    MarketStrategy,
    MethodStrategy,
    NoteStrategy,
    TitleStrategy,
)
from models import ParsedMap

log = logging.getLogger(__name__)

# ParsedMap field -> strategy filling it
STRATEGIES: Dict[str, Any] = {
    "components": ComponentStrategy(),
    "anchors": AnchorStrategy(),
    "markets": MarketStrategy(),
    "ecosystems": EcosystemStrategy(),
    "notes": NoteStrategy(),
    "methods": MethodStrategy(),
    "pipelines": PipelineStrategy(),
    "attitudes": AttitudeStrategy(),
    "links": LinksExtractionStrategy(),
    "evolutions": EvolutionStrategy(),
}


def parse(text: Any) -> ParsedMap:
    """Parse map text into a ParsedMap.

    Non-string input parses as an empty map.  Recovery events from all
    strategies are gathered in ``ParsedMap.events`` in line order.

    Args:
        text: The map text.

    Returns:
        A freshly built ParsedMap.
    """
    parsed = ParsedMap()
    if not isinstance(text, str) or not text:
        return parsed

    events = []
    for field_name, strategy in STRATEGIES.items():
        result = strategy.apply(text)
        setattr(parsed, field_name, result.elements)
        events.extend(result.events)
    parsed.events = sorted(events, key=lambda event: event.line)
    parsed.title = TitleStrategy().title_of(text)
    _resolve_pipeline_visibility(parsed)

    if parsed.events:
        trace(f"parse: {len(parsed.events)} recovery event(s)", "PARSE")
    return parsed


def _resolve_pipeline_visibility(parsed: ParsedMap) -> None:
    for pipeline in parsed.pipelines:
        for component in parsed.components:
            if names_match(component.name, pipeline.name):
                pipeline.visibility = component.visibility
                break


def declared_names(text: Any) -> List[str]:
    """Every name declared anywhere in the text, pipeline children included."""
    return parse(text).all_names()
