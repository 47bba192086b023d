"""
Module: settlement_kernel.db.types
Responsibility: Decimal coercion and the single cent-rounding rule
    used by the tax engine, the installment splitter, and the credit-note
    generator.
Architecture position: Kernel > DB.  Importable from every layer; imports
    nothing from the kernel itself.

Invariants enforced:
    - round_money() is the only sanctioned rounding function.  It rounds
      half away from zero (ROUND_HALF_UP), so negating an amount before or
      after rounding gives the same cents.  Deduction lines rely on that.
    - Amounts below MATERIALITY_THRESHOLD in absolute value are treated as
      zero by callers that drop negligible lines.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")
CENT = Decimal("0.01")
MATERIALITY_THRESHOLD = CENT


def to_decimal(value: Any) -> Decimal:
    """
    Coerce a numeric input to Decimal without passing through float.

    Floats are converted through ``str`` so that ``0.1`` becomes
    ``Decimal("0.1")`` rather than its binary expansion.

    Raises:
        ValueError: If value is None or not numeric.
    """
    if isinstance(value, Decimal):
        return value
    if value is None or isinstance(value, bool):
        raise ValueError(f"Cannot convert {value!r} to Decimal")
    try:
        if isinstance(value, float):
            return Decimal(str(value))
        return Decimal(value)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Cannot convert {value!r} to Decimal") from exc


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to ``decimal_places`` (cents by default).

    Preconditions: value is a Decimal.
    Postconditions: value quantized with ROUND_HALF_UP unless told otherwise.
    """
    quantum = Decimal(1).scaleb(-decimal_places)
    return value.quantize(quantum, rounding=rounding)


def is_negligible(value: Decimal) -> bool:
    """True when ``|value|`` is below one cent."""
    return abs(value) < MATERIALITY_THRESHOLD
