"""Parameter validation against a tool's JSON-schema-like declaration."""
from typing import Any, Optional


def json_type_name(value: Any) -> str:
    """JSON type name of a Python value (lists are arrays, not objects)."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def matches_type(value: Any, expected: str) -> bool:
    actual = json_type_name(value)
    if expected == "number":
        return actual in ("number", "integer")
    return actual == expected


def validate_parameters(params: dict, schema: Optional[dict]) -> Optional[str]:
    """Check params against schema; return the first problem found, or None.

    Order: required fields, then per-field type, then enum membership.
    Undeclared fields are not checked.
    """
    schema = schema or {}
    for name in schema.get("required") or []:
        if name not in params:
            return f"Missing required property: {name}"

    properties = schema.get("properties") or {}
    for name, value in params.items():
        prop = properties.get(name)
        if not isinstance(prop, dict):
            continue

        expected = prop.get("type")
        if expected:
            allowed = expected if isinstance(expected, list) else [expected]
            if not any(matches_type(value, t) for t in allowed):
                return f'Property "{name}" must be {" or ".join(allowed)}, got {json_type_name(value)}'

        choices = prop.get("enum")
        if isinstance(choices, list) and value not in choices:
            return f'Property "{name}" must be one of: {", ".join(str(c) for c in choices)}'

    return None
