"""
schemas/__init__.py

JSON Schema definition and validation for the parsed-map export
(``ParsedMap.to_dict()``).
"""

from __future__ import annotations

import json
import os
from typing import Any, Dict, List, Optional, Tuple

from jsonschema import Draft202012Validator

# Schema file paths
SCHEMA_DIR = os.path.dirname(os.path.abspath(__file__))
PARSED_MAP_SCHEMA_PATH = os.path.join(SCHEMA_DIR, "parsed_map_schema.json")

# Cached schema
_parsed_map_schema: Optional[Dict] = None


def get_parsed_map_schema() -> Dict:
    """Load and return the parsed-map schema."""
    global _parsed_map_schema
    if _parsed_map_schema is None:
        with open(PARSED_MAP_SCHEMA_PATH, "r", encoding="utf-8") as f:
            _parsed_map_schema = json.load(f)
    return _parsed_map_schema


def validate_parsed_map(data: Any) -> Tuple[bool, List[str]]:
    """
    Validate a parsed-map export against the schema.

    Args:
        data: Output of ``ParsedMap.to_dict()`` (or JSON loaded from it)

    Returns:
        Tuple of (is_valid, list_of_error_messages)
    """
    validator = Draft202012Validator(get_parsed_map_schema())
    errors = sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path])
    if not errors:
        return True, []

    error_messages = []
    for error in errors:
        path = " -> ".join(str(p) for p in error.absolute_path) if error.absolute_path else "root"
        error_messages.append(f"{path}: {error.message}")
    return False, error_messages


def export_parsed_map(parsed) -> str:
    """Serialize a ParsedMap to indented JSON."""
    return json.dumps(parsed.to_dict(), indent=2, ensure_ascii=False)
