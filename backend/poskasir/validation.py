from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from flask import request
from sqlalchemy import Boolean, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import NotFoundError, ValidationError


# Maximum price: Rp 9.999.999.999 (Numeric(12, 2) leaves room for cents)
MAX_PRICE = Decimal("9999999999")

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

DEFAULT_PAGE_LIMIT = 10
MAX_PAGE_LIMIT = 100
# Row offsets must fit a signed 64-bit database integer
MAX_ROW_OFFSET = 2 ** 62


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - min_lengths: per-field lower bound for strings (upper bound comes from the column)
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    min_lengths: dict[str, int] | None = None


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def to_decimal(field: str, value: Any) -> Decimal:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, (int, float, str, Decimal)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number")
        if not result.is_finite():
            raise ValidationError(f"{field} must be a number")
        return result
    raise ValidationError(f"{field} must be a number")


def to_int(field: str, value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if re.fullmatch(r"-?\d+", stripped):
            return int(stripped)
    raise ValidationError(f"{field} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Numeric before Integer: money columns
    if isinstance(coltype, Numeric):
        return to_decimal(col.key, value)

    if isinstance(coltype, Integer):
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        return to_int(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    if isinstance(coltype, (String, Text)):
        if not isinstance(value, str):
            raise ValidationError(f"{col.key} must be a string")
        return value.strip()

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

    Keys outside writable_fields are ignored here so routes can pull extra,
    non-column fields (e.g. nested options) from the same payload.
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
    min_lengths = policy.min_lengths or {}
    patch: dict = {}

    for k, raw in payload.items():
        if k not in policy.writable_fields:
            continue
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and isinstance(val, str):
            if not col.nullable and val == "":
                raise ValidationError(f"{k} cannot be blank")
            if k in min_lengths and len(val) < min_lengths[k]:
                raise ValidationError(f"{k} must be at least {min_lengths[k]} characters")
            if isinstance(col.type, String) and col.type.length and len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    for field in ("price", "cost_price"):
        if field in patch and patch[field] is not None:
            if patch[field] < 0:
                raise ValidationError(f"{field} must be >= 0")
            if patch[field] > MAX_PRICE:
                raise ValidationError(f"{field} cannot exceed {MAX_PRICE}")
    if "stock" in patch and patch["stock"] is not None and patch["stock"] < 0:
        raise ValidationError("stock must be >= 0")


def require_str(payload: dict, field: str, *, min_len: int = 1, max_len: int | None = None) -> str:
    value = payload.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    value = value.strip()
    if len(value) < min_len:
        raise ValidationError(f"{field} must be at least {min_len} characters")
    if max_len is not None and len(value) > max_len:
        raise ValidationError(f"{field} must be at most {max_len} characters")
    return value


def require_email(payload: dict, field: str = "email") -> str:
    value = require_str(payload, field, max_len=255)
    if not EMAIL_RE.match(value):
        raise ValidationError(f"{field} must be a valid email address")
    return value.lower()


def require_password(payload: dict, field: str = "password") -> str:
    # Passwords are not stripped: surrounding spaces are part of the secret
    value = payload.get(field)
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{field} is required")
    if not 8 <= len(value) <= 32:
        raise ValidationError(f"{field} must be between 8 and 32 characters")
    return value


def require_choice(payload: dict, field: str, choices, *, default: str | None = None) -> str:
    value = payload.get(field, default)
    if value is None:
        raise ValidationError(f"{field} is required")
    if value not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}")
    return value


def require_positive_int(payload: dict, field: str) -> int:
    if field not in payload or payload[field] is None:
        raise ValidationError(f"{field} is required")
    value = to_int(field, payload[field])
    if value <= 0:
        raise ValidationError(f"{field} must be greater than 0")
    return value


def parse_uuid(value: Any, field: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        raise ValidationError(f"{field} must be a valid UUID")


def parse_optional_uuid(value: Any, field: str) -> uuid.UUID | None:
    if value in (None, ""):
        return None
    return parse_uuid(value, field)


def parse_date(value: str | None, field: str) -> date:
    """YYYY-MM-DD only."""
    if not value:
        raise ValidationError(f"{field} is required (YYYY-MM-DD)")
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError(f"{field} must be a date in YYYY-MM-DD format")


def parse_optional_date(value: str | None, field: str) -> date | None:
    if not value:
        return None
    return parse_date(value, field)


def parse_date_range(args, *, required: bool = True) -> tuple[date | None, date | None]:
    parse = parse_date if required else parse_optional_date
    start = parse(args.get("start_date"), "start_date")
    end = parse(args.get("end_date"), "end_date")
    if start and end and start > end:
        raise ValidationError("start_date must not be after end_date")
    return start, end


def parse_bool_arg(value: str | None, field: str) -> bool | None:
    if value is None or value == "":
        return None
    lowered = value.strip().lower()
    if lowered in {"true", "1", "yes"}:
        return True
    if lowered in {"false", "0", "no"}:
        return False
    raise ValidationError(f"{field} must be true or false")


def parse_pagination(args, *, default_limit: int = DEFAULT_PAGE_LIMIT) -> tuple[int, int]:
    """page >= 1 (default 1), 1 <= limit <= 100 (default 10)."""
    page = args.get("page", 1)
    limit = args.get("limit", default_limit)
    page = to_int("page", page)
    limit = to_int("limit", limit)
    if page < 1:
        raise ValidationError("page must be >= 1")
    if limit < 1 or limit > MAX_PAGE_LIMIT:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_LIMIT}")
    if (page - 1) * limit > MAX_ROW_OFFSET:
        raise ValidationError("page is out of range")
    return page, limit


def path_uuid(value: str, what: str) -> uuid.UUID:
    """Path ids that are not UUIDs address nothing, so they read as not-found."""
    try:
        return uuid.UUID(value)
    except (TypeError, ValueError):
        raise NotFoundError(f"{what} not found")


def json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload
