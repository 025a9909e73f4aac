"""Shared utilities for provider implementations."""

from __future__ import annotations

from copy import deepcopy
import json
from typing import Any


def parse_or_default(text: str | None, default: Any = None) -> tuple[Any, bool]:
    """Parse *text* as JSON, falling back to *default* on failure.

    Returns ``(value, was_valid)``. Empty or missing text parses as an empty
    object, which is what vendors mean by a tool call with no arguments.
    The default is an empty dict when not given.
    """
    fallback = {} if default is None else default
    if text is None or not text.strip():
        return {}, True
    try:
        return json.loads(text), True
    except (json.JSONDecodeError, ValueError):
        return fallback, False


def normalize_tool_schema(schema: Any) -> Any:
    """Normalize a JSON schema for Responses API function tools.

    Every object schema gets ``additionalProperties: false`` and its nested
    properties and array items are walked. An existing ``required`` list is
    kept as authored and never generated, so optional fields stay optional.
    """
    normalized = deepcopy(schema)

    def walk(node: Any) -> Any:
        if isinstance(node, list):
            return [walk(item) for item in node]
        if not isinstance(node, dict):
            return node

        if node.get("type") == "object" or "properties" in node:
            properties = node.get("properties") or {}
            updated = dict(node)
            updated["type"] = "object"
            if isinstance(properties, dict):
                updated["properties"] = {k: walk(v) for k, v in properties.items()}
            updated["additionalProperties"] = False
            return updated

        if node.get("type") == "array" and "items" in node:
            return {**node, "items": walk(node["items"])}

        return node

    return walk(normalized)
