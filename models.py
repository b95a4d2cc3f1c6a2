"""
models.py

Data models and constants for the map text engine.

Every element is an ephemeral parse result: it is rebuilt from the text on
each parse and never edited to drive a change to the map.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Tuple


# ----------------------------
# Language keywords
# ----------------------------

METHOD_DECORATORS = ("buy", "build", "outsource")
COMPONENT_DECORATORS = METHOD_DECORATORS + ("market", "ecosystem")
ATTITUDE_TYPES = ("pioneers", "settlers", "townplanners")

# Lines starting with one of these are never links
NON_LINK_KEYWORDS = (
    "evolution", "anchor", "evolve", "component", "style", "build", "buy",
    "outsource", "title", "annotation", "annotations", "pipeline", "note",
    "pioneers", "settlers", "townplanners", "submap", "url", "market",
    "ecosystem", "{", "}", "accelerator", "deaccelerator", "size",
)


# ----------------------------
# Documented defaults
# ----------------------------

DEFAULT_VISIBILITY = 0.9
DEFAULT_MATURITY = 0.1
DEFAULT_QUAD = (0.9, 0.1, 0.8, 0.2)        # visibility1, maturity1, visibility2, maturity2
DEFAULT_PIPELINE_MATURITY1 = 0.2
DEFAULT_PIPELINE_MATURITY2 = 0.8
DEFAULT_PIPELINE_CHILD_MATURITY = 0.2
DEFAULT_EVOLVE_MATURITY = 0.85
DEFAULT_LABEL_X = 5.0
DEFAULT_LABEL_Y = -10.0
DEFAULT_TITLE = "Untitled Map"


# ----------------------------
# Recovery policy
# ----------------------------

# Recovery event kinds
EMPTY_NAME = "empty-name"
UNTERMINATED_QUOTE = "unterminated-quote"
INVALID_ESCAPE = "invalid-escape"
SYNTAX_BREAKING_CHARS = "syntax-breaking-chars"
NAME_TOO_LONG = "name-too-long"
UNTERMINATED_BLOCK = "unterminated-block"

SEVERITY_WARN = "warn"   # content was lost or replaced
SEVERITY_INFO = "info"   # cosmetic normalization only

RECOVERY_SEVERITY: Dict[str, str] = {
    EMPTY_NAME: SEVERITY_WARN,
    UNTERMINATED_QUOTE: SEVERITY_WARN,
    INVALID_ESCAPE: SEVERITY_INFO,
    SYNTAX_BREAKING_CHARS: SEVERITY_WARN,
    NAME_TOO_LONG: SEVERITY_WARN,
    UNTERMINATED_BLOCK: SEVERITY_WARN,
}

# Fallback names keyed by (element kind, failure reason).  "*" matches any kind.
RECOVERY_FALLBACKS: Dict[Tuple[str, str], str] = {
    ("component", EMPTY_NAME): "Recovered Component Name",
    ("component", SYNTAX_BREAKING_CHARS): "Component",
    ("component", NAME_TOO_LONG): "Recovered Component Name",
    ("anchor", EMPTY_NAME): "Recovered Anchor Name",
    ("anchor", SYNTAX_BREAKING_CHARS): "Anchor",
    ("market", EMPTY_NAME): "Recovered Market Name",
    ("market", SYNTAX_BREAKING_CHARS): "Market",
    ("ecosystem", EMPTY_NAME): "Recovered Ecosystem Name",
    ("ecosystem", SYNTAX_BREAKING_CHARS): "Ecosystem",
    ("note", EMPTY_NAME): "Recovered Note Text",
    ("note", SYNTAX_BREAKING_CHARS): "Note",
    ("method", EMPTY_NAME): "Recovered Method Name",
    ("method", SYNTAX_BREAKING_CHARS): "Method",
    ("pipeline", EMPTY_NAME): "Recovered Pipeline Name",
    ("pipeline", SYNTAX_BREAKING_CHARS): "Pipeline",
    ("pipeline-component", EMPTY_NAME): "Recovered Pipeline Component Name",
    ("pipeline-component", SYNTAX_BREAKING_CHARS): "Pipeline Component",
    ("evolution", EMPTY_NAME): "Recovered Evolution Name",
    ("evolution", SYNTAX_BREAKING_CHARS): "Evolution",
    ("link", EMPTY_NAME): "Recovered Link Endpoint",
    ("link", SYNTAX_BREAKING_CHARS): "Link Endpoint",
    ("*", EMPTY_NAME): "Recovered Name",
    ("*", SYNTAX_BREAKING_CHARS): "Element",
    ("*", NAME_TOO_LONG): "Recovered Name",
}


def resolve_fallback_name(element_kind: str, reason: str) -> str:
    """Return the fallback name for an element kind and failure reason.

    Name-too-long falls back to the kind's empty-name entry when the kind
    has no dedicated one.

    Args:
        element_kind: Element kind such as ``"component"`` or ``"note"``.
        reason: Recovery event kind.

    Returns:
        A non-empty replacement name.
    """
    for key in ((element_kind, reason),
                (element_kind, EMPTY_NAME if reason == NAME_TOO_LONG else reason),
                ("*", reason)):
        if key in RECOVERY_FALLBACKS:
            return RECOVERY_FALLBACKS[key]
    return RECOVERY_FALLBACKS[("*", EMPTY_NAME)]


# ----------------------------
# Element models
# ----------------------------

class _Serializable:
    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RecoveryEvent(_Serializable):
    """One non-fatal anomaly found while parsing, plus the action taken."""
    kind: str
    severity: str
    element_kind: str
    line: int
    original: str = ""
    replacement: str = ""
    message: str = ""


@dataclass
class LabelOffset(_Serializable):
    x: float = DEFAULT_LABEL_X
    y: float = DEFAULT_LABEL_Y


@dataclass
class Component(_Serializable):
    """A component-like element (component, market or ecosystem line).

    ``method`` holds a buy/build/outsource decorator, and ``market`` /
    ``ecosystem`` mark the matching decorators on a plain component.
    """
    name: str
    visibility: float = DEFAULT_VISIBILITY
    maturity: float = DEFAULT_MATURITY
    line: int = 0
    kind: str = "component"
    method: Optional[str] = None
    market: bool = False
    ecosystem: bool = False
    inertia: bool = False
    label: LabelOffset = field(default_factory=LabelOffset)


@dataclass
class Anchor(_Serializable):
    name: str
    visibility: float = DEFAULT_VISIBILITY
    maturity: float = DEFAULT_MATURITY
    line: int = 0


@dataclass
class Note(_Serializable):
    text: str
    visibility: float = DEFAULT_VISIBILITY
    maturity: float = DEFAULT_MATURITY
    line: int = 0

    @property
    def name(self) -> str:
        return self.text


@dataclass
class Method(_Serializable):
    """A buy/build/outsource marker attached to a component by name."""
    name: str
    decorator: str
    line: int = 0


@dataclass
class PipelineComponent(_Serializable):
    name: str
    maturity: float = DEFAULT_PIPELINE_CHILD_MATURITY
    line: int = 0
    label: LabelOffset = field(default_factory=LabelOffset)


@dataclass
class Pipeline(_Serializable):
    """A pipeline line with its optional ``{ ... }`` block of children.

    ``visibility`` is taken from the component of the same name, when
    one exists.
    """
    name: str
    maturity1: float = DEFAULT_PIPELINE_MATURITY1
    maturity2: float = DEFAULT_PIPELINE_MATURITY2
    hidden: bool = True
    line: int = 0
    visibility: Optional[float] = None
    components: List[PipelineComponent] = field(default_factory=list)


@dataclass
class Attitude(_Serializable):
    """A pioneers/settlers/townplanners box."""
    attitude: str
    visibility: float = DEFAULT_QUAD[0]
    maturity: float = DEFAULT_QUAD[1]
    visibility2: float = DEFAULT_QUAD[2]
    maturity2: float = DEFAULT_QUAD[3]
    name: str = ""
    line: int = 0


@dataclass
class Link(_Serializable):
    start: str
    end: str
    flow: bool = False
    flow_value: Optional[str] = None
    future: bool = False
    past: bool = False
    bidirectional: bool = False
    context: Optional[str] = None
    line: int = 0


@dataclass
class Evolution(_Serializable):
    name: str
    maturity: float = DEFAULT_EVOLVE_MATURITY
    override: Optional[str] = None
    line: int = 0


@dataclass
class ExtractionResult:
    """Output of a single extraction strategy."""
    elements: List[Any] = field(default_factory=list)
    events: List[RecoveryEvent] = field(default_factory=list)


@dataclass
class ParsedMap:
    """Aggregate of every strategy's output for one version of the text."""
    title: str = DEFAULT_TITLE
    components: List[Component] = field(default_factory=list)
    anchors: List[Anchor] = field(default_factory=list)
    markets: List[Component] = field(default_factory=list)
    ecosystems: List[Component] = field(default_factory=list)
    notes: List[Note] = field(default_factory=list)
    methods: List[Method] = field(default_factory=list)
    pipelines: List[Pipeline] = field(default_factory=list)
    attitudes: List[Attitude] = field(default_factory=list)
    links: List[Link] = field(default_factory=list)
    evolutions: List[Evolution] = field(default_factory=list)
    events: List[RecoveryEvent] = field(default_factory=list)

    def named_elements(self) -> List[Any]:
        """Return every element that declares a name in the map."""
        named: List[Any] = []
        named.extend(self.components)
        named.extend(self.anchors)
        named.extend(self.markets)
        named.extend(self.ecosystems)
        named.extend(self.pipelines)
        for pipeline in self.pipelines:
            named.extend(pipeline.components)
        return named

    def all_names(self) -> List[str]:
        """Return every declared name, including pipeline children and evolve targets."""
        names = [element.name for element in self.named_elements()]
        for evolution in self.evolutions:
            if evolution.override:
                names.append(evolution.override)
        return names

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "components": [c.to_dict() for c in self.components],
            "anchors": [a.to_dict() for a in self.anchors],
            "markets": [m.to_dict() for m in self.markets],
            "ecosystems": [e.to_dict() for e in self.ecosystems],
            "notes": [n.to_dict() for n in self.notes],
            "methods": [m.to_dict() for m in self.methods],
            "pipelines": [p.to_dict() for p in self.pipelines],
            "attitudes": [a.to_dict() for a in self.attitudes],
            "links": [link.to_dict() for link in self.links],
            "evolutions": [e.to_dict() for e in self.evolutions],
            "events": [e.to_dict() for e in self.events],
        }
