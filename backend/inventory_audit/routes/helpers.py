# Overview: Small request helpers shared by the API blueprints.

from flask import request

from ..errors import ValidationError


def json_body() -> dict:
    """Request JSON as a dict; an empty body is {}."""
    data = request.get_json(silent=True)
    if data is None:
        if request.data:
            raise ValidationError("Invalid JSON payload")
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


def require_fields(data: dict, *fields: str) -> None:
    missing = [f for f in fields if data.get(f) is None]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")


def int_arg(name: str) -> int | None:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")
