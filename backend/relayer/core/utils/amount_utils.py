from __future__ import annotations

from decimal import ROUND_CEILING, ROUND_FLOOR, Decimal
from typing import Union

Number = Union[int, float, str, Decimal]


def _dec(value: Number) -> Decimal:
    """Exact Decimal conversion; floats go through their repr to avoid binary noise."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def ceil_int(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_CEILING))


def floor_int(value: Decimal) -> int:
    return int(value.to_integral_value(rounding=ROUND_FLOOR))


def parse_base_units(raw: object, field_name: str = "amount") -> int:
    """
    Parse a strictly positive integer amount expressed in base units.

    Accepts ints and decimal-digit strings; rejects bools, floats, signs and blanks.
    Raises ValueError with a message naming the field.
    """
    if isinstance(raw, bool):
        raise ValueError(f"{field_name} must be an integer number of base units")
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, str) and raw.strip().isdigit():
        value = int(raw.strip())
    else:
        raise ValueError(f"{field_name} must be an integer number of base units")
    if value <= 0:
        raise ValueError(f"{field_name} must be greater than zero")
    return value
