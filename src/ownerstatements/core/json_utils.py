#!/usr/bin/env python3
"""
JSON Utilities Module

Provides centralized JSON reading and writing functions with consistent formatting,
plus tolerant extraction of JSON objects from free-form AI replies (which are often
wrapped in prose or markdown fences).
"""

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def write_json(filepath: str | Path, data: Any, ensure_ascii: bool = False, sort_keys: bool = False) -> None:
    """
    Write data to a JSON file with standard pretty-printing.

    Args:
        filepath: Path to the JSON file
        data: Data to write to the file
        ensure_ascii: If True, escape non-ASCII characters (default: False)
        sort_keys: If True, sort dictionary keys (default: False)
    """
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    with open(filepath, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=ensure_ascii, sort_keys=sort_keys)


def read_json(filepath: str | Path) -> Any:
    """
    Read data from a JSON file.

    Args:
        filepath: Path to the JSON file

    Returns:
        The parsed JSON data
    """
    with open(filepath, encoding="utf-8") as f:
        return json.load(f)


def format_json(data: Any, ensure_ascii: bool = False, sort_keys: bool = False, default: Any = None) -> str:
    """
    Format data as a pretty-printed JSON string.

    Args:
        data: Data to format
        ensure_ascii: If True, escape non-ASCII characters (default: False)
        sort_keys: If True, sort dictionary keys (default: False)
        default: Function to serialize non-JSON types (default: None)

    Returns:
        Pretty-printed JSON string
    """
    if default is not None:
        return json.dumps(data, indent=2, ensure_ascii=ensure_ascii, sort_keys=sort_keys, default=default)
    return json.dumps(data, indent=2, ensure_ascii=ensure_ascii, sort_keys=sort_keys)


def extract_json_object(text: str) -> str | None:
    """
    Find the first balanced {...} span in free text.

    Braces inside JSON string literals are ignored, so values such as
    "Unit {A}" do not unbalance the scan.

    Args:
        text: Reply text, possibly with prose or markdown around the object

    Returns:
        The JSON object text, or None if no balanced object exists

    Example:
        extract_json_object('Sure! ```json\\n{"a": 1}\\n```') -> '{"a": 1}'
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start : index + 1]
        # Unbalanced from this brace; try the next opening brace
        start = text.find("{", start + 1)
    return None


def parse_json_object(text: str | None) -> dict[str, Any]:
    """
    Parse the first JSON object found in text.

    Returns an empty dict for empty input, text without an object, invalid
    JSON, or JSON that is not an object. Failures are logged, never raised.
    """
    if not text or not text.strip():
        return {}

    candidate = extract_json_object(text)
    if candidate is None:
        logger.warning("No JSON object found in reply (%d chars)", len(text))
        return {}

    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        logger.warning("Failed to parse JSON object from reply: %s", e)
        return {}

    if not isinstance(parsed, dict):
        logger.warning("Reply JSON is %s, expected object", type(parsed).__name__)
        return {}
    return parsed
