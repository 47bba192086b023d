"""
Tax engine for settlement lines.

A configured percentage is first mapped to a category (0 -> EXEMPT,
7 -> REDUCED, anything else -> STANDARD); the category's rate is then
taken from the tenant's tax table.  Tax and gross are rounded to cents
with ``round_money`` (half away from zero).
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal

from settlement_kernel.db.types import ZERO, round_money, to_decimal
from settlement_kernel.exceptions import InvalidTaxInputError
from settlement_modules.lease_revenue.models import TaxSplit, TaxType

DEFAULT_TAX_RATES: dict[TaxType, Decimal] = {
    TaxType.STANDARD: Decimal("19.00"),
    TaxType.REDUCED: Decimal("7.00"),
    TaxType.EXEMPT: Decimal("0.00"),
}

_REDUCED_MARKER = Decimal("7")


def tax_type_for_rate(rate: Decimal | int | str) -> TaxType:
    """Map a stored percentage to its tax category."""
    value = to_decimal(rate)
    if value == ZERO:
        return TaxType.EXEMPT
    if value == _REDUCED_MARKER:
        return TaxType.REDUCED
    return TaxType.STANDARD


def resolve_tax_rate(
    tax_type: TaxType,
    rates: Mapping[TaxType, Decimal] | None = None,
) -> Decimal:
    """The category's percentage from ``rates``, falling back to the defaults."""
    if rates and tax_type in rates:
        return rates[tax_type]
    return DEFAULT_TAX_RATES[tax_type]


def calculate_tax(
    net: Decimal,
    tax_type: TaxType,
    rates: Mapping[TaxType, Decimal] | None = None,
) -> TaxSplit:
    """
    Split a net amount into tax and gross.

    Raises:
        InvalidTaxInputError: ``net`` is negative.  Deduction and
            cancellation lines negate a split computed on the positive amount.
    """
    net = to_decimal(net)
    if net < ZERO:
        raise InvalidTaxInputError(net)

    net = round_money(net)
    rate = resolve_tax_rate(tax_type, rates)
    tax = round_money(net * rate / Decimal(100))
    return TaxSplit(
        net_amount=net,
        tax_type=tax_type,
        tax_rate=rate,
        tax_amount=tax,
        gross_amount=net + tax,
    )

