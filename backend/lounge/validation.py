from __future__ import annotations
from datetime import datetime
import re
from lounge.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError


# Maximum rate: KSh 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_RATE_CENTS = 999_999_999

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

STATION_TYPES = ("PS5", "XBOX", "PC", "VR")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            # Reject scientific notation (e.g., "1e15", "1E10")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            # Reject decimal points (e.g., "12.5")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        # Reject floats explicitly
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        # Other types
        raise ValidationError(f"{col.key} must be an integer")

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rate(name: str, value: int | None) -> None:
    if value is None:
        return
    if value < 0:
        raise ValidationError(f"{name} must be >= 0")
    if value > MAX_RATE_CENTS:
        raise ValidationError(f"{name} cannot exceed {MAX_RATE_CENTS} (KSh {MAX_RATE_CENTS / 100:,.2f})")


def enforce_rules_station(patch: dict) -> None:
    if "station_type" in patch and patch["station_type"] not in STATION_TYPES:
        raise ValidationError(f"station_type must be one of {list(STATION_TYPES)}")
    enforce_rate("rate_per_hour_cents", patch.get("rate_per_hour_cents"))
    enforce_rate("rate_per_game_cents", patch.get("rate_per_game_cents"))


def enforce_rules_game(patch: dict) -> None:
    enforce_rate("rate_per_game_cents", patch.get("rate_per_game_cents"))


def enforce_rules_customer(patch: dict) -> None:
    email = patch.get("email")
    if email and not EMAIL_RE.match(email):
        raise ValidationError("email must be a valid email address")


def require_positive_amount(amount_cents: Any, field: str = "amount_cents") -> int:
    """Amounts arrive as JSON; accept ints only (cents), reject bools/floats."""
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise ValidationError(f"{field} must be an integer number of cents")
    if amount_cents <= 0:
        raise ValidationError(f"{field} must be positive")
    return amount_cents
