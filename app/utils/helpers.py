"""Request-parsing helpers shared by the API blueprints."""

from flask import request

from app.core.exceptions import ValidationError

_TRUTHY = frozenset({"1", "true", "yes", "on"})


def json_body() -> dict:
    """Return the JSON object sent with the request.

    Raises ValidationError if the body is present but not a JSON object.
    """
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def parse_bool(value) -> bool:
    """Interpret a query-string flag (``?include_completed=true``)."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in _TRUTHY


def optional_int(data: dict, key: str):
    """Read an optional integer id from a JSON body.

    Returns None when the key is absent or null; raises ValidationError for
    anything that is not an integer (booleans included).
    """
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{key} must be an integer", details={key: "must be an integer"})
    return value


def required_int(data: dict, key: str) -> int:
    value = optional_int(data, key)
    if value is None:
        raise ValidationError(f"{key} is required", details={key: "required"})
    return value
