from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999
MAX_STOCK = 10_000_000


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = frozenset()  # type: ignore[assignment]


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(value: Any, label: str) -> int:
    """
    Strict integer coercion: ints and plain digit strings only.

    Floats, bools and scientific notation are rejected so "12.5" never
    silently becomes 12.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{label} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{label} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{label} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{label} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{label} must be an integer, not a decimal")
    raise ValidationError(f"{label} must be an integer")


def require_positive_int(value: Any, label: str) -> int:
    if value is None:
        raise ValidationError(f"{label} is required")
    number = coerce_int(value, label)
    if number <= 0:
        raise ValidationError(f"{label} must be > 0")
    return number


def require_cents(value: Any, label: str) -> int:
    """Non-negative money amount in cents, capped at MAX_PRICE_CENTS."""
    if value is None:
        return 0
    cents = coerce_int(value, label)
    if cents < 0:
        raise ValidationError(f"{label} must be >= 0")
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{label} cannot exceed {MAX_PRICE_CENTS}")
    return cents


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    if isinstance(coltype, (String, Text)):
        if isinstance(value, (dict, list)):
            raise ValidationError(f"{col.key} must be a string")
        return str(value).strip()

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
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) in (None, ""))
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

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict, current=None) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.

    `current` is the product being updated (None on create); bounds are
    checked against the merged result.
    """
    for key in ("price_cents", "cost_price_cents"):
        if patch.get(key) is not None:
            price = patch[key]
            if price < 0:
                raise ValidationError(f"{key} must be >= 0")
            if price > MAX_PRICE_CENTS:
                raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS}")

    for key in ("min_stock", "max_stock"):
        if patch.get(key) is not None and not 0 <= patch[key] <= MAX_STOCK:
            raise ValidationError(f"{key} must be between 0 and {MAX_STOCK}")

    min_stock = patch.get("min_stock", getattr(current, "min_stock", None))
    max_stock = patch.get("max_stock", getattr(current, "max_stock", None))
    if min_stock is not None and max_stock is not None and min_stock > max_stock:
        raise ValidationError("min_stock cannot exceed max_stock")


def parse_opening_stock(value: Any) -> int:
    if value is None:
        return 0
    stock = coerce_int(value, "stock")
    if stock < 0:
        raise ValidationError("stock must be >= 0")
    if stock > MAX_STOCK:
        raise ValidationError(f"stock cannot exceed {MAX_STOCK}")
    return stock
