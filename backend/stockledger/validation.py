from __future__ import annotations

import math
import re
from typing import Any

from .errors import ValidationError
from .time_utils import parse_iso_datetime


COLUMN_TYPES = ("text", "number", "currency", "date", "select")
COLUMN_ROLES = ("name", "quantity", "minQuantity", "price", "cost")

# Maximum lengths for free-text fields on operations
STRING_LIMITS = {
    "reference": 500,
    "supplier": 255,
    "customer": 255,
    "notes": 2000,
    "check_number": 50,
    "tax_name": 50,
    "column_name": 100,
}

PAYMENT_METHODS = ("CASH", "CARD", "CHECK", "OTHER")
REFUND_METHODS = ("CASH", "CARD", "ORIGINAL_METHOD")
CARD_TYPES = ("VISA", "MASTERCARD", "AMEX", "DISCOVER")
DISCOUNT_TYPES = ("percent", "fixed")
RETURN_CONDITIONS = ("resellable", "damaged", "defective")

_CURRENCY_NOISE = re.compile(r"[$€£¥,\s]")


# =============================================================================
# SCALAR INPUT HELPERS
# =============================================================================

def is_number(value: Any) -> bool:
    """True for finite int/float values; bool is not a number here."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def require_positive_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a positive integer")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return value


def require_non_negative_number(value: Any, field: str) -> float:
    if not is_number(value) or value < 0:
        raise ValidationError(f"{field} must be a non-negative number")
    return value


def optional_non_negative_number(value: Any, field: str) -> float | None:
    if value is None:
        return None
    return require_non_negative_number(value, field)


def normalize_string(value: Any, field: str, max_length: int | None = None) -> str | None:
    """
    Trim a free-text input. Empty / whitespace-only / None -> None.
    Non-strings are rejected rather than stringified.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    stripped = value.strip()
    if not stripped:
        return None
    if max_length is not None and len(stripped) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return stripped


def require_choice(value: Any, choices: tuple, message: str) -> str:
    if value not in choices:
        raise ValidationError(message)
    return value


def require_list(value: Any, message: str) -> list:
    if not isinstance(value, list) or not value:
        raise ValidationError(message)
    return value


def require_int_id(value: Any, field: str) -> int:
    """Ids arrive as JSON numbers or numeric strings."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a valid id")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValidationError(f"{field} must be a valid id")


def get_pagination_params(args, default_limit: int = 20, max_limit: int = 100) -> tuple[int, int]:
    """Parse ?page=&limit= from a request args mapping."""
    try:
        page = int(args.get("page", 1))
        limit = int(args.get("limit", default_limit))
    except (TypeError, ValueError):
        raise ValidationError("page and limit must be integers")
    if page < 1:
        raise ValidationError("page must be at least 1")
    if limit < 1 or limit > max_limit:
        raise ValidationError(f"limit must be between 1 and {max_limit}")
    return page, limit


def pagination_response(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": (total + limit - 1) // limit if total else 0,
    }


# =============================================================================
# DYNAMIC INVENTORY DATA
# =============================================================================

class _Missing:
    pass


MISSING = _Missing()


def _is_blank(value: Any) -> bool:
    return value is None or value is MISSING or (isinstance(value, str) and not value.strip())


def _coerce_column_value(column: dict, value: Any) -> Any:
    """Normalise loosely-typed input (imports, form posts) before type checks."""
    col_type = column.get("type")

    if _is_blank(value):
        return MISSING

    if col_type == "text":
        return value if isinstance(value, str) else str(value)

    if col_type in ("number", "currency"):
        if isinstance(value, str):
            cleaned = _CURRENCY_NOISE.sub("", value.strip())
            try:
                parsed = float(cleaned)
            except ValueError:
                return value
            return int(parsed) if parsed.is_integer() and "." not in cleaned else parsed
        return value

    if col_type == "date":
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                return value
            return dt.isoformat() + "Z" if dt else MISSING
        return value

    return value


def _check_column_value(column: dict, value: Any) -> str | None:
    """Return an error message for value, or None if it is acceptable."""
    col_type = column.get("type")

    if value is MISSING or value is None:
        return "Required" if column.get("required") else None

    if col_type == "text":
        if not isinstance(value, str):
            return "Expected a string"
        return None

    if col_type in ("number", "currency"):
        if not is_number(value):
            return "Expected a number"
        return None

    if col_type == "date":
        if not isinstance(value, str):
            return "Invalid date format"
        if not value.strip():
            return None
        try:
            parse_iso_datetime(value)
        except ValueError:
            return "Invalid date format"
        return None

    if col_type == "select":
        options = column.get("options") or []
        if options:
            if value not in options:
                return f"Must be one of: {', '.join(options)}"
            return None
        if not isinstance(value, str):
            return "Expected a string"
        return None

    return None


def collect_data_errors(
    data: dict,
    columns: list[dict],
    coerce: bool = False,
) -> tuple[dict, list[str]]:
    """
    Check an item's data blob against column definitions.

    Returns (cleaned_data, errors). Keys without a column pass through
    untouched; errors are "<column name>: <message>" strings.
    """
    cleaned = dict(data)
    errors: list[str] = []

    for column in columns:
        col_id = column.get("id")
        value = data.get(col_id, MISSING)
        if coerce:
            value = _coerce_column_value(column, value)
            if value is MISSING:
                cleaned.pop(col_id, None)
            else:
                cleaned[col_id] = value

        message = _check_column_value(column, value)
        if message:
            errors.append(f"{column.get('name') or col_id}: {message}")

    return cleaned, errors


def validate_inventory_data(data: Any, columns: list[dict], coerce: bool = False) -> dict:
    """Validate (and optionally coerce) item data; raises ValidationError listing every problem."""
    if not isinstance(data, dict):
        raise ValidationError("Invalid data format")

    cleaned, errors = collect_data_errors(data, columns, coerce=coerce)
    if errors:
        raise ValidationError(", ".join(errors), details={"errors": errors})
    return cleaned
