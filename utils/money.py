"""Decimal helpers for cent-exact money math.

Floats enter and leave the engine; everything in between is Decimal and is
rounded to the cent after each arithmetic step (banker's rounding).
"""

import math
import re
from decimal import Decimal, ROUND_HALF_EVEN, ROUND_DOWN, InvalidOperation
from typing import Any, Iterable, Union

Number = Union[Decimal, float, int, str]

CENT = Decimal("0.01")
ZERO = Decimal("0")
ONE = Decimal("1")

_NUMERIC_RE = re.compile(r"-?\d+(?:\.\d+)?")


def to_decimal(value: Number) -> Decimal:
    """Convert a number to Decimal via its shortest string form.

    Going through str() keeps 0.015 as Decimal('0.015') instead of the
    binary expansion of the float.
    """
    if isinstance(value, Decimal):
        return value
    if value is None:
        return ZERO
    return Decimal(str(value))


def round_to_cents(value: Number) -> Decimal:
    """Round to 2 decimal places with ROUND_HALF_EVEN."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_EVEN)


def truncate(value: Number, places: int = 4) -> Decimal:
    """Cut (never round up) to a fixed number of decimal places."""
    exponent = Decimal(1).scaleb(-places)
    return to_decimal(value).quantize(exponent, rounding=ROUND_DOWN)


def to_money(value: Number) -> float:
    """Round to cents and hand back a float for the output models."""
    return float(round_to_cents(value))


def sum_cents(values: Iterable[Number]) -> Decimal:
    """Sum values as Decimal and round the result to cents."""
    total = ZERO
    for value in values:
        total += to_decimal(value)
    return round_to_cents(total)


def coerce_number(value: Any) -> float:
    """Best-effort numeric coercion for spreadsheet cells.

    Blank, malformed, boolean and non-finite cells become 0.0; strings such as
    "10mm", "$1,250.00" or "3,500 nits" yield their first number.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
        return number if math.isfinite(number) else 0.0
    text = str(value).strip().replace(",", "").replace("$", "")
    if not text:
        return 0.0
    try:
        number = float(Decimal(text))
        return number if math.isfinite(number) else 0.0
    except (InvalidOperation, ValueError):
        pass
    match = _NUMERIC_RE.search(text)
    return float(match.group(0)) if match else 0.0
