"""
maptext/coordinates.py

Coordinate formatter: converts normalized [0, 1] values to and from the
bracket form used in map text.

Coordinates are always written with exactly two decimals.  Simple elements
use ``[visibility, maturity]``; attitude boxes use
``[visibility1, maturity1, visibility2, maturity2]``.
"""

from __future__ import annotations

import math
from numbers import Real
from typing import List, Optional, Sequence, Tuple

from models import DEFAULT_MATURITY, DEFAULT_QUAD, DEFAULT_VISIBILITY

PRECISION = 2
MIN_QUAD_EXTENT = 0.01


def clamp_unit(value: float) -> float:
    """Clamp a value into [0, 1]."""
    return max(0.0, min(1.0, float(value)))


def is_number(value) -> bool:
    """True for finite real numbers (bools excluded)."""
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def format_coordinate(value: float) -> str:
    """Format one coordinate with two decimals after clamping to [0, 1].

    Raises:
        ValueError: If ``value`` is not a finite number.
    """
    if not is_number(value):
        raise ValueError(f"Invalid coordinate value: {value!r}")
    return f"{clamp_unit(value):.{PRECISION}f}"


def format_values(values: Sequence[float]) -> str:
    """Format a bracket: ``[0.30, 0.80]``."""
    return "[" + ", ".join(format_coordinate(v) for v in values) + "]"


def format_pair(visibility: float, maturity: float) -> str:
    return format_values((visibility, maturity))


def format_quad(visibility1: float, maturity1: float, visibility2: float, maturity2: float) -> str:
    return format_values((visibility1, maturity1, visibility2, maturity2))


def format_offset(value: float) -> str:
    """Format a label offset: pixel offsets are not clamped, and integers drop the decimals."""
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return f"{number:g}"


def format_label(x: float, y: float) -> str:
    return f"label [{format_offset(x)}, {format_offset(y)}]"


def parse_coordinate(text: Optional[str]) -> Optional[float]:
    """Parse one bracket value; returns None for anything non-numeric or NaN."""
    if text is None:
        return None
    try:
        value = float(text.strip())
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def parse_values(contents: Optional[str]) -> List[Optional[float]]:
    """Split bracket contents on commas and parse each value."""
    if contents is None or not contents.strip():
        return []
    return [parse_coordinate(part) for part in contents.split(",")]


def _pick(values: List[Optional[float]], index: int, default: float) -> float:
    if index < len(values) and values[index] is not None:
        return clamp_unit(values[index])
    return default


def parse_pair(contents: Optional[str],
               default: Tuple[float, float] = (DEFAULT_VISIBILITY, DEFAULT_MATURITY)) -> Tuple[float, float]:
    """Parse ``visibility, maturity``; missing or non-numeric values take the default.

    Returns:
        ``(visibility, maturity)`` clamped to [0, 1].
    """
    values = parse_values(contents)
    return _pick(values, 0, default[0]), _pick(values, 1, default[1])


def parse_quad(contents: Optional[str],
               default: Tuple[float, float, float, float] = DEFAULT_QUAD) -> Tuple[float, float, float, float]:
    values = parse_values(contents)
    return tuple(_pick(values, i, default[i]) for i in range(4))  # type: ignore[return-value]


def parse_single(contents: Optional[str], default: float) -> float:
    values = parse_values(contents)
    return _pick(values, 0, default)


def validate_quad(visibility1: float, maturity1: float, visibility2: float, maturity2: float) -> Optional[str]:
    """Check the ordering contract of an attitude box.

    The first corner is the top-left: it must have the higher visibility
    and the lower maturity.

    Returns:
        None when valid, otherwise a short reason.
    """
    values = (visibility1, maturity1, visibility2, maturity2)
    if not all(is_number(v) for v in values):
        return "coordinates must be numbers"
    if not all(0.0 <= v <= 1.0 for v in values):
        return "coordinates must be between 0 and 1"
    if maturity2 <= maturity1:
        return "maturity2 must be greater than maturity1"
    if visibility1 <= visibility2:
        return "visibility1 must be greater than visibility2"
    return None


def quad_is_degenerate(visibility1: float, maturity1: float, visibility2: float, maturity2: float) -> bool:
    """True when the box is narrower or shorter than the minimum extent."""
    # Float subtraction of two-decimal values can land just under 0.01
    width = round(maturity2 - maturity1, PRECISION + 2)
    height = round(visibility1 - visibility2, PRECISION + 2)
    return width < MIN_QUAD_EXTENT or height < MIN_QUAD_EXTENT


def round_coordinate(value: float) -> float:
    """Clamp and round a value to what ``format_coordinate`` will write."""
    return round(clamp_unit(value), PRECISION)


def check_quad(visibility1: float, maturity1: float, visibility2: float, maturity2: float) -> Optional[str]:
    """Validate a box as it will be written.

    The values are rounded to two decimals first, so a box that only
    collapses when written is rejected too.

    Returns:
        None when valid, otherwise a short reason.
    """
    values = (visibility1, maturity1, visibility2, maturity2)
    if not all(is_number(v) for v in values):
        return "coordinates must be numbers"
    rounded = tuple(round_coordinate(v) for v in values)
    reason = validate_quad(*rounded)
    if reason:
        return reason
    if quad_is_degenerate(*rounded):
        return f"box must be at least {MIN_QUAD_EXTENT} wide and high"
    return None
