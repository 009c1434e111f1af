# Overview: Shared helpers for API routes; error bodies and argument parsing.

from __future__ import annotations

from flask import jsonify, request

from ..errors import LoungeError, ValidationError
from lounge.time_utils import parse_iso_date


def error_response(exc: LoungeError):
    """{"error", "kind", ...details} with the error's status code."""
    return jsonify(exc.to_dict()), exc.status_code


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


def date_arg(name: str):
    raw = request.args.get(name)
    try:
        return parse_iso_date(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date (YYYY-MM-DD)")


def int_field(data: dict, name: str, required: bool = False) -> int | None:
    value = data.get(name)
    if value is None:
        if required:
            raise ValidationError(f"{name} is required")
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer")
    return value
