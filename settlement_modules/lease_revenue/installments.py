"""
Installment splitter for advance periods.

Divides each parcel's yearly allocation by the interval divisor (yearly 1,
quarterly 4, monthly 12), rounds to cents, and drops lines below one cent.
Also derives the service date range and the human labels of an interval.
For QUARTERLY periods the period ``month`` field carries the quarter index.
"""

from __future__ import annotations

import calendar
from datetime import date
from decimal import Decimal

from settlement_kernel.db.types import is_negligible, round_money
from settlement_kernel.exceptions import InvalidPeriodError
from settlement_modules.lease_revenue.models import (
    AdvanceInterval,
    InstallmentLine,
    LeaseAllocation,
)

DIVISORS: dict[AdvanceInterval, int] = {
    AdvanceInterval.YEARLY: 1,
    AdvanceInterval.QUARTERLY: 4,
    AdvanceInterval.MONTHLY: 12,
}

GERMAN_MONTHS: tuple[str, ...] = (
    "Januar", "Februar", "Maerz", "April", "Mai", "Juni",
    "Juli", "August", "September", "Oktober", "November", "Dezember",
)

INTERVAL_TYPE_NAMES: dict[AdvanceInterval, str] = {
    AdvanceInterval.YEARLY: "Jahresvorschuss",
    AdvanceInterval.QUARTERLY: "Quartalsvorschuss",
    AdvanceInterval.MONTHLY: "Monatsvorschuss",
}


def validate_interval_index(interval: AdvanceInterval, index: int | None) -> None:
    """
    Raises:
        InvalidPeriodError: index missing or out of range for the interval.
    """
    if interval == AdvanceInterval.YEARLY:
        return
    upper = 12 if interval == AdvanceInterval.MONTHLY else 4
    if index is None:
        raise InvalidPeriodError("month", index, f"required for {interval.value} advances")
    if isinstance(index, bool) or not isinstance(index, int) or not 1 <= index <= upper:
        raise InvalidPeriodError("month", index, f"must be between 1 and {upper} for {interval.value}")


def interval_service_dates(
    interval: AdvanceInterval,
    year: int,
    index: int | None = None,
) -> tuple[date, date]:
    """Calendar bounds of the year, quarter or month."""
    validate_interval_index(interval, index)
    if interval == AdvanceInterval.YEARLY:
        return date(year, 1, 1), date(year, 12, 31)
    if interval == AdvanceInterval.QUARTERLY:
        first_month = (index - 1) * 3 + 1
        last_month = first_month + 2
        return (
            date(year, first_month, 1),
            date(year, last_month, calendar.monthrange(year, last_month)[1]),
        )
    return date(year, index, 1), date(year, index, calendar.monthrange(year, index)[1])


def interval_label(interval: AdvanceInterval, year: int, index: int | None = None) -> str:
    """e.g. "Leistungszeitraum 2025", "2. Quartal 2025", "Maerz 2025"."""
    validate_interval_index(interval, index)
    if interval == AdvanceInterval.YEARLY:
        return f"Leistungszeitraum {year}"
    if interval == AdvanceInterval.QUARTERLY:
        return f"{index}. Quartal {year}"
    return f"{GERMAN_MONTHS[index - 1]} {year}"


def interval_type_name(interval: AdvanceInterval) -> str:
    return INTERVAL_TYPE_NAMES[interval]


def installment_amount(yearly_amount: Decimal, interval: AdvanceInterval) -> Decimal:
    return round_money(yearly_amount / DIVISORS[interval])


def split_installments(
    allocation: LeaseAllocation,
    interval: AdvanceInterval,
) -> tuple[InstallmentLine, ...]:
    """Installment lines of one lease; negligible lines are dropped."""
    lines = []
    for parcel in allocation.parcels:
        amount = installment_amount(parcel.amount, interval)
        if is_negligible(amount):
            continue
        lines.append(InstallmentLine(parcel=parcel, yearly_amount=parcel.amount, amount=amount))
    return tuple(lines)
