"""JSON parsing helpers with runtime type guards."""

from __future__ import annotations

import json
from typing import Any, Callable, Optional, TypeGuard, TypeVar

from .errors import JsonParseError, JsonTypeError

T = TypeVar("T")

Predicate = Callable[[Any], TypeGuard[T]]

__all__ = ["parse_json", "try_parse_json", "is_object"]


def is_object(value: Any) -> TypeGuard[dict]:
    """Return ``True`` for JSON objects (decoded as ``dict``)."""
    return isinstance(value, dict)


def parse_json(text: str, predicate: Optional[Predicate[Any]] = None) -> Any:
    """Parse ``text`` as JSON and optionally check it with ``predicate``.

    Raises:
        JsonParseError: ``text`` is not valid JSON; the message includes it.
        JsonTypeError: ``predicate`` rejected the parsed value.
    """
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise JsonParseError(f"{exc} due to JSON: {text}") from exc
    if predicate is not None and not predicate(parsed):
        raise JsonTypeError("Parsed JSON did not match required form")
    return parsed


def try_parse_json(text: str, predicate: Optional[Predicate[Any]] = None) -> Optional[Any]:
    """Like :func:`parse_json`, but return ``None`` instead of raising."""
    try:
        return parse_json(text, predicate)
    except (JsonParseError, JsonTypeError):
        return None
