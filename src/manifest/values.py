# src/manifest/values.py — v1
"""Dotted-key access into Helm values documents.

    get_value(doc, "image.tag")
    set_value(doc, "image.tag", "abc123")

Keys may address list items by index ("containers.0.image"). set_value
creates intermediate mappings but never replaces a scalar with a mapping.
"""

from __future__ import annotations

from typing import Any

import yaml


class ValuesError(ValueError):
    """Raised on malformed values documents or unusable key paths."""


_MISSING = object()


def split_key(key: str) -> list[str]:
    parts = key.split(".")
    if not key or any(p == "" for p in parts):
        raise ValuesError(f"Invalid key path: {key!r}")
    return parts


def load_values(text: str | None) -> dict[str, Any]:
    """Parse a values file; empty or missing content yields an empty mapping."""
    if not text:
        return {}
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ValuesError(f"Invalid YAML: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValuesError("Values document must be a mapping at the top level")
    return data


def dump_values(data: dict[str, Any]) -> str:
    return yaml.safe_dump(data, sort_keys=False, default_flow_style=False, allow_unicode=True)


def _step(node: Any, part: str) -> Any:
    if isinstance(node, dict):
        return node.get(part, _MISSING)
    if isinstance(node, list) and part.isdigit():
        idx = int(part)
        return node[idx] if idx < len(node) else _MISSING
    return _MISSING


def get_value(data: dict[str, Any], key: str, default: Any = None) -> Any:
    node: Any = data
    for part in split_key(key):
        node = _step(node, part)
        if node is _MISSING:
            return default
    return node


def set_value(data: dict[str, Any], key: str, value: Any) -> None:
    parts = split_key(key)
    node: Any = data
    for part in parts[:-1]:
        child = _step(node, part)
        if child is _MISSING:
            if not isinstance(node, dict):
                raise ValuesError(f"Cannot create {part!r} under a list in {key!r}")
            child = node[part] = {}
        elif not isinstance(child, (dict, list)):
            raise ValuesError(f"{key!r}: {part!r} is a scalar, not a mapping")
        node = child

    last = parts[-1]
    if isinstance(node, dict):
        node[last] = value
    elif isinstance(node, list) and last.isdigit() and int(last) < len(node):
        node[int(last)] = value
    else:
        raise ValuesError(f"Cannot set {key!r}")
