"""
Base domain model with camelCase JSON serialization.

Machine-readable reports use camelCase keys (stepId, exitCode, durationMs).
All domain dataclasses mix in BaseDomainModel.
"""

from __future__ import annotations

from dataclasses import fields
from datetime import datetime
from enum import Enum
from typing import Any, Dict


def to_camel_case(snake_str: str) -> str:
    """
    Convert snake_case to camelCase.

    Examples:
        >>> to_camel_case("step_id")
        'stepId'
        >>> to_camel_case("duration_ms")
        'durationMs'
    """
    components = snake_str.split("_")
    return components[0] + "".join(x.title() for x in components[1:])


def to_snake_case(camel_str: str) -> str:
    """
    Convert camelCase to snake_case.

    Examples:
        >>> to_snake_case("dependsOn")
        'depends_on'
        >>> to_snake_case("maxAttempts")
        'max_attempts'
    """
    if not camel_str:
        return camel_str
    result = [camel_str[0].lower()]
    for char in camel_str[1:]:
        if char.isupper():
            result.extend(["_", char.lower()])
        else:
            result.append(char)
    return "".join(result)


def _serialize(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, BaseDomainModel):
        return value.to_json()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [_serialize(item) for item in value]
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    return value


class BaseDomainModel:
    """
    Mixin for domain dataclasses.

    Not a dataclass itself, so both frozen and mutable dataclasses can
    inherit from it.

    - to_json() serializes to camelCase keys
    - Enum values are serialized by value
    - Dates are serialized as ISO 8601 strings
    - Tuples are serialized as lists
    """

    def to_json(self) -> Dict[str, Any]:
        """Serialize public fields to a JSON-compatible dict with camelCase keys."""
        result: Dict[str, Any] = {}
        for field in fields(self):  # type: ignore[arg-type]
            if field.name.startswith("_"):
                continue
            result[to_camel_case(field.name)] = _serialize(getattr(self, field.name))
        return result
