from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from sierra.time_utils import parse_iso_date, parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Date, Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Maximum money amount: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

PERCENT_QUANT = Decimal("0.01")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate account number)."""


class NotFoundError(LookupError):
    """404-level reference to an entity that does not exist."""


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


def _coerce_int(key: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        return _coerce_int(col.key, value)

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

    # Business dates ("YYYY-MM-DD")
    if isinstance(coltype, Date):
        return parse_date(col.key, value, required=not col.nullable)

    if isinstance(coltype, Numeric):
        return parse_percent(col.key, value)

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

        # Money columns are never negative
        if k.endswith("_cents") and isinstance(val, int):
            _check_money_range(k, val)

        patch[k] = val

    return patch


# =============================================================================
# Scalar parsers for request bodies that do not map 1:1 onto a model
# =============================================================================

def _check_money_range(key: str, value: int) -> None:
    if value < 0:
        raise ValidationError(f"{key} must be >= 0")
    if value > MAX_PRICE_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_PRICE_CENTS}")


def parse_int(key: str, value: Any, *, required: bool = True) -> int | None:
    if value is None:
        if required:
            raise ValidationError(f"{key} is required")
        return None
    return _coerce_int(key, value)


def parse_money(key: str, value: Any, *, required: bool = True, positive: bool = False) -> int | None:
    """Parse an amount in cents. positive=True rejects zero as well."""
    amount = parse_int(key, value, required=required)
    if amount is None:
        return None
    _check_money_range(key, amount)
    if positive and amount == 0:
        raise ValidationError(f"{key} must be > 0")
    return amount


def parse_percent(key: str, value: Any) -> Decimal:
    """Parse a 0-100 percentage with two decimal places."""
    if value is None or value == "":
        return Decimal("0.00")
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    try:
        pct = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"{key} must be a number")
    if not pct.is_finite():
        raise ValidationError(f"{key} must be a number")
    if pct < 0 or pct > 100:
        raise ValidationError(f"{key} must be between 0 and 100")
    return pct.quantize(PERCENT_QUANT, rounding=ROUND_HALF_UP)


def parse_date(key: str, value: Any, *, required: bool = True) -> date | None:
    try:
        parsed = parse_iso_date(value)
    except ValueError:
        raise ValidationError(f"{key} must be a date (YYYY-MM-DD)")
    if parsed is None and required:
        raise ValidationError(f"{key} is required")
    return parsed


def parse_choice(key: str, value: Any, choices, *, required: bool = True) -> str | None:
    if value is None or value == "":
        if required:
            raise ValidationError(f"{key} is required")
        return None
    if not isinstance(value, str) or value not in choices:
        raise ValidationError(f"{key} must be one of: {', '.join(sorted(choices))}")
    return value


def parse_text(key: str, value: Any, *, max_length: int | None = None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if max_length and len(text) > max_length:
        raise ValidationError(f"{key} exceeds max length {max_length}")
    return text


# =============================================================================
# Line items (orders and purchases)
# =============================================================================

@dataclass(frozen=True)
class LineInput:
    """One validated order/purchase line."""
    product_id: int
    quantity: int
    unit_price_cents: int
    discount_percent: Decimal
    mrp_cents: int | None = None


def parse_line_items(items: Any, *, key: str = "items") -> list[LineInput]:
    """
    Validate a non-empty list of line items.

    Each line needs product_id, quantity > 0 and unit_price_cents >= 0;
    discount_percent (0-100) and mrp_cents are optional.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError(f"{key} must be a non-empty list")

    lines: list[LineInput] = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"{key}[{index}] must be an object")
        product_id = parse_int(f"{key}[{index}].product_id", raw.get("product_id"))
        quantity = parse_int(f"{key}[{index}].quantity", raw.get("quantity"))
        if quantity <= 0:
            raise ValidationError(f"{key}[{index}].quantity must be > 0")
        unit_price = parse_money(f"{key}[{index}].unit_price_cents", raw.get("unit_price_cents"))
        discount = parse_percent(f"{key}[{index}].discount_percent", raw.get("discount_percent"))
        mrp = parse_money(f"{key}[{index}].mrp_cents", raw.get("mrp_cents"), required=False)
        lines.append(
            LineInput(
                product_id=product_id,
                quantity=quantity,
                unit_price_cents=unit_price,
                discount_percent=discount,
                mrp_cents=mrp,
            )
        )
    return lines


def compute_line_total(unit_price_cents: int, quantity: int, discount_percent: Decimal) -> int:
    """round(unit * qty * (1 - disc/100)), half-up to the cent."""
    gross = Decimal(unit_price_cents) * quantity
    net = gross * (Decimal(100) - Decimal(discount_percent)) / Decimal(100)
    return int(net.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def quantities_by_product(lines) -> dict[int, int]:
    """Sum requested quantities per product_id (same product may repeat)."""
    totals: dict[int, int] = {}
    for line in lines:
        totals[line.product_id] = totals.get(line.product_id, 0) + line.quantity
    return totals


def derive_payment_status(paid_cents: int, total_cents: int) -> str:
    """paid iff paid >= total; partial iff 0 < paid < total; else unpaid."""
    if paid_cents >= total_cents:
        return "paid"
    if paid_cents > 0:
        return "partial"
    return "unpaid"


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if "stock_quantity" in patch and patch["stock_quantity"] is not None:
        if patch["stock_quantity"] < 0:
            raise ValidationError("stock_quantity must be >= 0")
    if "reorder_level" in patch and patch["reorder_level"] is not None:
        if patch["reorder_level"] < 0:
            raise ValidationError("reorder_level must be >= 0")
