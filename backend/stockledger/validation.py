from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

from .services.errors import InvalidArgument


# Quantities are stored as Numeric(14, 3); money as Numeric(12, 2)
QUANTITY_QUANTUM = Decimal("0.001")
MONEY_QUANTUM = Decimal("0.01")
MAX_QUANTITY = Decimal("99999999999.999")


def require_fields(data: dict | None, *fields: str) -> dict:
    """Reject bodies missing any of the listed keys (None counts as missing)."""
    if not isinstance(data, dict):
        raise InvalidArgument("Request body must be a JSON object")
    missing = [f for f in fields if data.get(f) is None]
    if missing:
        raise InvalidArgument(
            f"Missing required field(s): {', '.join(missing)}",
            details={"missing": missing},
        )
    return data


def parse_id(value: Any, field: str) -> int:
    """Positive integer identifier. Accepts ints and plain digit strings."""
    if isinstance(value, bool):
        raise InvalidArgument(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str) and value.strip().isdigit():
        result = int(value.strip())
    else:
        raise InvalidArgument(f"{field} must be an integer")
    if result <= 0:
        raise InvalidArgument(f"{field} must be positive")
    return result


def _to_decimal(value: Any, field: str) -> Decimal:
    if value is None or isinstance(value, bool):
        raise InvalidArgument(f"{field} must be a number")
    if isinstance(value, str):
        stripped = value.strip()
        # Reject scientific notation (e.g., "1e15", "1E10")
        if not stripped or "e" in stripped.lower():
            raise InvalidArgument(f"{field} must be a plain decimal number")
        value = stripped
    elif isinstance(value, float):
        # repr-based conversion keeps 0.1 as 0.1 rather than its binary expansion
        value = repr(value)
    elif not isinstance(value, (int, Decimal)):
        raise InvalidArgument(f"{field} must be a number")
    try:
        result = Decimal(value)
    except (InvalidOperation, ValueError):
        raise InvalidArgument(f"{field} must be a number")
    if not result.is_finite():
        raise InvalidArgument(f"{field} must be finite")
    return result


def parse_quantity(value: Any, field: str = "quantity") -> Decimal:
    """Strictly positive fixed-point quantity."""
    result = _to_decimal(value, field)
    if result <= 0:
        raise InvalidArgument(f"{field} must be greater than zero")
    if result > MAX_QUANTITY:
        raise InvalidArgument(f"{field} is too large")
    if result != result.quantize(QUANTITY_QUANTUM):
        raise InvalidArgument(f"{field} allows at most 3 decimal places")
    return result


def parse_delta(value: Any, field: str = "delta") -> Decimal:
    """Signed, non-zero quantity change (stock adjustments)."""
    result = _to_decimal(value, field)
    if result == 0:
        raise InvalidArgument(f"{field} must not be zero")
    if abs(result) > MAX_QUANTITY:
        raise InvalidArgument(f"{field} is too large")
    if result != result.quantize(QUANTITY_QUANTUM):
        raise InvalidArgument(f"{field} allows at most 3 decimal places")
    return result


def parse_money(value: Any, field: str, default: Decimal | None = None) -> Decimal | None:
    """Non-negative amount rounded to cents. None -> default."""
    if value is None:
        return default
    result = _to_decimal(value, field)
    if result < 0:
        raise InvalidArgument(f"{field} must not be negative")
    return result.quantize(MONEY_QUANTUM)


def parse_choice(value: Any, allowed: Iterable[str], field: str = "status") -> str:
    """Case-insensitive enumerated string, returned in canonical upper case."""
    allowed = tuple(allowed)
    if not isinstance(value, str) or value.strip().upper() not in allowed:
        raise InvalidArgument(
            f"Valid {field} is required ({', '.join(allowed)})",
            details={"allowed": list(allowed), "received": value if isinstance(value, str) else None},
        )
    return value.strip().upper()


def parse_id_list(values: Any, field: str) -> list[int]:
    """List of distinct positive ids, order preserved."""
    if values is None:
        return []
    if not isinstance(values, (list, tuple)):
        raise InvalidArgument(f"{field} must be a list")
    seen: list[int] = []
    for raw in values:
        parsed = parse_id(raw, field)
        if parsed not in seen:
            seen.append(parsed)
    return seen


def parse_opening_quantity(value: Any, field: str = "quantity") -> Decimal:
    """Optional starting balance: None -> 0, otherwise a non-negative quantity."""
    if value is None:
        return Decimal("0")
    result = _to_decimal(value, field)
    if result == 0:
        return Decimal("0")
    return parse_quantity(result, field)
