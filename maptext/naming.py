"""
maptext/naming.py

Name matching, quoting and unique-name generation.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional

_WHITESPACE_RE = re.compile(r"\s+")

# Characters that force a name into quoted form
_QUOTE_TRIGGERS = ("\n", "\r", '"', "\\", "[", "]", ";", "->")

MAX_UNIQUE_ATTEMPTS = 1000


def normalize_name(name: Optional[str]) -> str:
    """Canonical form for comparing names: newlines as spaces, collapsed, lower case."""
    if not name:
        return ""
    return _WHITESPACE_RE.sub(" ", name.replace("\r", " ").replace("\n", " ")).strip().lower()


def names_match(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and normalize_name(a) == normalize_name(b)


def needs_quotes(name: str) -> bool:
    """True when a name must be written as a quoted string to survive a re-parse."""
    if name != name.strip(" \t"):
        return True
    return any(trigger in name for trigger in _QUOTE_TRIGGERS)


def escape_name(name: str) -> str:
    """Escape a name for use inside double quotes."""
    return (name.replace("\\", "\\\\")
                .replace('"', '\\"')
                .replace("\n", "\\n")
                .replace("\r", "\\r"))


def format_name(name: str) -> str:
    """Render a name for map text: bare when safe, quoted and escaped otherwise."""
    if needs_quotes(name):
        return f'"{escape_name(name)}"'
    return name


def unique_name(base: str, existing: Iterable[str]) -> str:
    """Return ``base`` or ``base N`` with the smallest positive N not in use.

    Comparison uses :func:`normalize_name`, so case and whitespace
    differences count as collisions.

    Args:
        base: Preferred name.
        existing: Every name already declared anywhere in the document.

    Raises:
        ValueError: If no free suffix is found within MAX_UNIQUE_ATTEMPTS.
    """
    taken = {normalize_name(name) for name in existing}
    if normalize_name(base) not in taken:
        return base
    for suffix in range(1, MAX_UNIQUE_ATTEMPTS + 1):
        candidate = f"{base} {suffix}"
        if normalize_name(candidate) not in taken:
            return candidate
    raise ValueError(f'Could not find a unique name for "{base}"')
