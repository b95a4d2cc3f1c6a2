"""
debug_trace.py

Debug instrumentation for following parses, mutations and history commits.

Enable by setting MAPTEXT_TRACE=1 in the environment.  MAPTEXT_TRACE_FILE
names an optional log file, and MAPTEXT_TRACE_CATEGORIES limits output to
a comma-separated list of categories (e.g. ``MUTATION,HISTORY``).
"""

from __future__ import annotations

import os
import sys
import traceback
from datetime import datetime
from functools import wraps
from typing import Optional, Set

_TRUTHY = ("1", "true", "yes", "on")

# Read once at import; set_trace_enabled() overrides at runtime
DEBUG_TRACE = os.environ.get("MAPTEXT_TRACE", "").strip().lower() in _TRUTHY

# Log file (None for stderr only)
LOG_FILE: Optional[str] = os.environ.get("MAPTEXT_TRACE_FILE") or None

_categories: Optional[Set[str]] = {
    c.strip().upper() for c in os.environ.get("MAPTEXT_TRACE_CATEGORIES", "").split(",") if c.strip()
} or None

_log_file = None


def set_trace_enabled(enabled: bool, categories: Optional[Set[str]] = None) -> None:
    """Turn tracing on or off at runtime.

    Args:
        enabled: New state.
        categories: Categories to keep, or None for all.
    """
    global DEBUG_TRACE, _categories
    DEBUG_TRACE = enabled
    _categories = {c.upper() for c in categories} if categories else None


def _get_log_file():
    global _log_file
    if LOG_FILE and _log_file is None:
        try:
            _log_file = open(LOG_FILE, "a", encoding="utf-8")
        except OSError as e:
            print(f"[debug_trace] cannot open {LOG_FILE}: {e}", file=sys.stderr)
    return _log_file


def trace(msg: str, category: str = "INFO"):
    """Print a trace message with timestamp."""
    if not DEBUG_TRACE:
        return
    if _categories is not None and category.upper() not in _categories and category != "ERROR":
        return

    timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
    line = f"[{timestamp}] [{category}] {msg}"

    print(line, file=sys.stderr, flush=True)

    log_file = _get_log_file()
    if log_file:
        log_file.write(line + "\n")
        log_file.flush()


def trace_exception(msg: str = "Exception"):
    """Trace the exception currently being handled."""
    if not DEBUG_TRACE:
        return
    trace(f"{msg}: {traceback.format_exc()}", "ERROR")


def trace_call(category: str = "CALL"):
    """Decorator to trace entry, exit and failure of a call.

    The check happens per call, so tracing can be switched on after the
    decorated module was imported.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            if not DEBUG_TRACE:
                return func(*args, **kwargs)
            func_name = func.__qualname__
            trace(f">>> {func_name}", category)
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                trace(f"!!! {func_name} raised {type(e).__name__}: {e}", "ERROR")
                raise
            trace(f"<<< {func_name}", category)
            return result
        return wrapper
    return decorator


def close_log():
    """Close the trace log file, if one is open."""
    global _log_file
    if _log_file:
        _log_file.close()
        _log_file = None
