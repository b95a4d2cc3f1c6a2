"""
maptext/recovery.py

Name and quote recovery shared by every extraction strategy.

Quoted names are decoded (escapes, embedded newlines, unterminated quotes)
and every name is checked against the fallback policy in
``models.RECOVERY_FALLBACKS``.  Nothing here raises: anomalies become
RecoveryEvent records plus a safe replacement value.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from models import (
    EMPTY_NAME,
    INVALID_ESCAPE,
    NAME_TOO_LONG,
    RECOVERY_SEVERITY,
    SEVERITY_INFO,
    SEVERITY_WARN,
    SYNTAX_BREAKING_CHARS,
    UNTERMINATED_QUOTE,
    RecoveryEvent,
    resolve_fallback_name,
)
from settings import get_settings

log = logging.getLogger(__name__)

_ESCAPES = {"\\": "\\", '"': '"', "n": "\n", "r": "\r", "t": "\t"}

# C0/C1 controls other than tab, newline and carriage return
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")
# Bidirectional embedding/override/isolate characters
_BIDI_RE = re.compile(r"[\u202a-\u202e\u2066-\u2069]")
_SPACE_RUN_RE = re.compile(r"[ \t]{2,}")


@dataclass
class DecodedName:
    """Result of decoding a name field.

    ``reasons`` lists every anomaly in the order met; ``reason`` is the
    first one for callers that only report a single cause.
    """
    value: str
    recovered: bool = False
    reasons: List[str] = field(default_factory=list)

    @property
    def reason(self) -> Optional[str]:
        return self.reasons[0] if self.reasons else None


def sanitize_name(value: str) -> str:
    """Strip invisible and layout-breaking characters from a decoded name.

    Surrounding spaces/tabs are trimmed and inner runs collapsed; embedded
    newlines are kept.
    """
    value = _CONTROL_RE.sub("", value)
    value = _BIDI_RE.sub("", value)
    value = _SPACE_RUN_RE.sub(" ", value)
    return value.strip(" \t")


def decode_quoted(raw: str) -> DecodedName:
    """Decode a name field, quoted or bare.

    Bare fields are returned stripped with no escape processing.  Quoted
    fields process ``\\\\``, ``\\"``, ``\\n``, ``\\r`` and ``\\t``; an
    unknown escape keeps the character and drops the backslash.  A field
    with no closing quote keeps whatever follows the opening quote.

    Args:
        raw: The name field exactly as written in the line.

    Returns:
        DecodedName with the decoded value and any anomalies met.
    """
    if not isinstance(raw, str):
        return DecodedName(value="", recovered=True, reasons=[EMPTY_NAME])

    stripped = raw.strip()
    if not stripped.startswith('"'):
        return DecodedName(value=sanitize_name(stripped))

    reasons: List[str] = []
    chars: List[str] = []
    i = 1
    closed = False
    while i < len(stripped):
        ch = stripped[i]
        if ch == "\\":
            if i + 1 >= len(stripped):
                reasons.append(INVALID_ESCAPE)
                i += 1
                continue
            nxt = stripped[i + 1]
            if nxt in _ESCAPES:
                chars.append(_ESCAPES[nxt])
            else:
                chars.append(nxt)
                if INVALID_ESCAPE not in reasons:
                    reasons.append(INVALID_ESCAPE)
            i += 2
            continue
        if ch == '"':
            closed = True
            break
        chars.append(ch)
        i += 1

    if not closed:
        reasons.insert(0, UNTERMINATED_QUOTE)

    return DecodedName(value=sanitize_name("".join(chars)), recovered=bool(reasons), reasons=reasons)


def is_syntax_breaking(value: str, chars: Optional[str] = None) -> bool:
    """True when ``value`` is made only of syntax-breaking characters (and whitespace).

    Args:
        value: Decoded name.
        chars: Character set to test against; defaults to
            ``recovery.syntax_breaking_chars`` from settings.
    """
    if chars is None:
        chars = get_settings().settings.recovery.syntax_breaking_chars
    body = "".join(value.split())
    return bool(body) and all(ch in chars for ch in body)


def check_name(value: str, chars: Optional[str] = None, max_length: Optional[int] = None) -> Optional[str]:
    """Return the reason a decoded name is unusable, or None."""
    if max_length is None:
        max_length = get_settings().settings.recovery.max_name_length
    if not value or not value.strip():
        return EMPTY_NAME
    if is_syntax_breaking(value, chars):
        return SYNTAX_BREAKING_CHARS
    if len(value) > max_length:
        return NAME_TOO_LONG
    return None


class RecoveryLog:
    """Collects recovery events for one strategy run and mirrors them to logging."""

    def __init__(self, emit: bool = True):
        self.events: List[RecoveryEvent] = []
        self.emit = emit

    def record(self, kind: str, element_kind: str, line: int,
               original: str = "", replacement: str = "", message: str = "") -> RecoveryEvent:
        severity = RECOVERY_SEVERITY.get(kind, SEVERITY_WARN)
        event = RecoveryEvent(
            kind=kind,
            severity=severity,
            element_kind=element_kind,
            line=line,
            original=original,
            replacement=replacement,
            message=message or f"{kind} in {element_kind} name",
        )
        self.events.append(event)
        if self.emit and get_settings().settings.recovery.log_events:
            level = logging.INFO if severity == SEVERITY_INFO else logging.WARNING
            log.log(level, "line %d: %s (%r -> %r)", line, event.message, original, replacement)
        return event


def recover_name(raw: str, element_kind: str, line: int, recovery_log: RecoveryLog,
                 chars: Optional[str] = None) -> str:
    """Decode a name field and apply the fallback policy.

    Every anomaly is recorded in ``recovery_log``.  The returned name is
    never empty, and a returned fallback name passes through this function
    again unchanged.

    Args:
        raw: Raw name field from the tokenizer.
        element_kind: Kind used to pick the fallback name.
        line: 1-based source line, for the event record.
        recovery_log: Event sink.
        chars: Optional syntax-breaking character override.

    Returns:
        The usable name.
    """
    decoded = decode_quoted(raw)
    for reason in decoded.reasons:
        if reason == EMPTY_NAME:
            continue
        message = ("unterminated quote in name" if reason == UNTERMINATED_QUOTE
                   else "invalid escape sequence in name")
        recovery_log.record(reason, element_kind, line, original=raw or "",
                            replacement=decoded.value, message=message)

    name, reason = apply_fallback(decoded.value, element_kind, chars)
    if reason is not None:
        recovery_log.record(reason, element_kind, line, original=raw or "",
                            replacement=name, message=f"unusable {element_kind} name replaced")
    return name


def apply_fallback(value: str, element_kind: str, chars: Optional[str] = None) -> Tuple[str, Optional[str]]:
    """Replace an unusable decoded name with the fallback for its kind.

    Returns:
        ``(name, reason)`` where ``reason`` is None when no replacement was needed.
    """
    reason = check_name(value, chars)
    if reason is None:
        return value, None
    return resolve_fallback_name(element_kind, reason), reason
