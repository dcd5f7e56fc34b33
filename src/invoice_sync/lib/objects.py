"""
Object utilities for JSON serialization.

Persisted snapshots and WebSocket messages are plain JSON. These helpers
convert dataclasses (and anything exposing ``to_dict``) on the way out and
parse strictly on the way in.
"""

import json
from dataclasses import asdict, is_dataclass
from enum import Enum
from typing import Any


def to_json(obj: Any, indent: int | None = None) -> str:
    """
    Serialize an object to JSON string.

    Handles dataclasses by converting them to dictionaries first.
    Falls back to str() for non-serializable objects.

    Args:
        obj: Object to serialize.
        indent: Optional indentation for pretty printing.

    Returns:
        JSON string representation.
    """
    if is_dataclass(obj) and not isinstance(obj, type):
        obj = asdict(obj)
    return json.dumps(obj, default=_default_serializer, indent=indent)


def from_json(text: str) -> Any:
    """
    Parse a JSON string.

    Raises:
        ValueError: If the text is not valid JSON.
    """
    return json.loads(text)


def _default_serializer(obj: Any) -> Any:
    if isinstance(obj, Enum):
        return obj.value
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if is_dataclass(obj) and not isinstance(obj, type):
        return asdict(obj)
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    return str(obj)
