"""Closed-schema argument coercion helpers for tool builders.

Every helper either returns a normalized value or raises
``InvalidArgumentError`` naming the offending field. Builders never place
a raw caller value into argv without passing it through one of these.
"""

from __future__ import annotations

import math
import re
from typing import Any, Iterable, Literal

from polymarket_veto.core.errors import InvalidArgumentError

type Side = Literal["buy", "sell"]
type OrderType = Literal["GTC", "FOK", "GTD", "FAK"]

ORDER_TYPES: tuple[str, ...] = ("GTC", "FOK", "GTD", "FAK")
SIDES: tuple[str, ...] = ("buy", "sell")

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def assert_allowed_fields(args: dict[str, Any], allowed: Iterable[str]) -> None:
    allowed_set = set(allowed)
    for key in args:
        if key not in allowed_set:
            raise InvalidArgumentError(f"Unexpected argument '{key}'")


def as_string(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgumentError(f"Invalid '{field}': expected non-empty string")
    trimmed = value.strip()
    if _CONTROL_CHARS.search(trimmed):
        raise InvalidArgumentError(f"Invalid '{field}': control characters are not allowed")
    return trimmed


def as_number(value: Any, field: str) -> float | int:
    # bool is an int subclass; a flag is never a quantity
    if isinstance(value, bool):
        raise InvalidArgumentError(f"Invalid '{field}': expected number")
    if isinstance(value, int):
        try:
            float(value)
        except OverflowError:
            raise InvalidArgumentError(f"Invalid '{field}': expected number") from None
        parsed: float | int = value
    elif isinstance(value, float):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = float(value.strip())
        except ValueError:
            raise InvalidArgumentError(f"Invalid '{field}': expected number") from None
    else:
        raise InvalidArgumentError(f"Invalid '{field}': expected number")
    if not math.isfinite(parsed):
        raise InvalidArgumentError(f"Invalid '{field}': expected number")
    return parsed


def as_positive_number(value: Any, field: str) -> float | int:
    parsed = as_number(value, field)
    if parsed <= 0:
        raise InvalidArgumentError(f"Invalid '{field}': expected positive number")
    return parsed


def as_bool(value: Any, field: str) -> bool:
    if not isinstance(value, bool):
        raise InvalidArgumentError(f"Invalid '{field}': expected boolean")
    return value


def maybe_positive_number(value: Any, field: str) -> float | int | None:
    if value is None:
        return None
    return as_positive_number(value, field)


def maybe_bool(value: Any, field: str) -> bool | None:
    if value is None:
        return None
    return as_bool(value, field)


def maybe_string(value: Any, field: str) -> str | None:
    if value is None:
        return None
    return as_string(value, field)


def as_side(value: Any, field: str) -> Side:
    side = as_string(value, field).lower()
    if side not in SIDES:
        raise InvalidArgumentError(f"Invalid '{field}': expected 'buy' or 'sell'")
    return side  # type: ignore[return-value]


def as_order_type(value: str) -> OrderType:
    normalized = value.strip().upper()
    if normalized not in ORDER_TYPES:
        raise InvalidArgumentError("Invalid 'orderType': expected " + "|".join(ORDER_TYPES))
    return normalized  # type: ignore[return-value]


def format_number(value: float | int) -> str:
    """Render a number the way the CLI expects it (``10`` not ``10.0``)."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return repr(value) if isinstance(value, float) else str(value)


def to_flag_bool(value: bool) -> str:
    return "true" if value else "false"


def compact(record: dict[str, Any]) -> dict[str, Any]:
    """Drop unset optional fields from a guard-argument record."""
    return {key: value for key, value in record.items() if value is not None}
