"""Helpers for formatting and inspecting JSON documents."""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger("pactkit")


def format_json_string(document: str) -> str:
    """Re-indent a JSON document with tabs; returns "" if it is not valid JSON."""
    try:
        parsed = json.loads(document)
    except (TypeError, ValueError) as err:
        logger.error("failed to format string: %s", err)
        return ""
    return json.dumps(parsed, indent="\t", ensure_ascii=False)


def format_json_object(obj: Any) -> str:
    """Serialise an object and indent it; returns "" if it cannot be encoded."""
    try:
        encoded = json.dumps(obj, sort_keys=True, ensure_ascii=False)
    except (TypeError, ValueError) as err:
        logger.error("failed to encode string to json: %s", err)
        return ""
    return format_json_string(encoded)


def is_json_formatted_object(value: Any) -> bool:
    """Tell whether ``value`` is a string holding a JSON object."""
    if not isinstance(value, str):
        return False
    try:
        parsed = json.loads(value)
    except ValueError:
        return False
    return isinstance(parsed, dict)