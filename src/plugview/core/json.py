"""JSON helpers: serializability checks and frame limits."""

from typing import Any

import orjson

from .errors import ProtocolError


def is_json_serializable(value: Any) -> bool:
    """
    Check whether a value can cross the boundary as JSON.

    Args:
        value: Candidate prop value

    Returns:
        True if orjson can encode it (string keys only)
    """
    try:
        orjson.dumps(value)
        return True
    except (TypeError, ValueError):
        return False


def validate_json_size(data: str | bytes, max_size: int, name: str = "Frame") -> None:
    """
    Validate payload size before decoding.

    Args:
        data: Raw payload
        max_size: Maximum allowed size in bytes
        name: Name for error messages

    Raises:
        ProtocolError: If size exceeds limit
    """
    size = len(data.encode("utf-8")) if isinstance(data, str) else len(data)
    if size > max_size:
        raise ProtocolError(f"{name} size {size} bytes exceeds maximum {max_size} bytes")


def validate_json_depth(obj: Any, max_depth: int = 256, current_depth: int = 0) -> None:
    """
    Validate JSON nesting depth to prevent stack overflow.

    Args:
        obj: Object to validate
        max_depth: Maximum allowed nesting depth
        current_depth: Current depth (internal)

    Raises:
        ProtocolError: If depth exceeds limit
    """
    if current_depth > max_depth:
        raise ProtocolError(f"JSON nesting depth {current_depth} exceeds maximum {max_depth}")

    if isinstance(obj, dict):
        for value in obj.values():
            validate_json_depth(value, max_depth, current_depth + 1)
    elif isinstance(obj, list):
        for item in obj:
            validate_json_depth(item, max_depth, current_depth + 1)
