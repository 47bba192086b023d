"""
Credit-note builder -- pure functions turning allocations into drafts.

ADVANCE drafts carry one line per installment.  FINAL drafts carry one
positive line per parcel for the full year plus one negative deduction per
item of every advance credit note already issued to the lease that year.
Deductions copy the advance item's net, tax and gross with the sign
flipped instead of recomputing them, so

    final.net = yearly allocation - sum(advance item nets)

holds to the cent (and likewise for tax and gross).

Drafts carry no invoice number; numbering happens when they are persisted.
"""

from __future__ import annotations

import calendar
from collections.abc import Mapping, Sequence
from datetime import date
from decimal import Decimal

from settlement_kernel.db.types import ZERO, is_negligible, round_money
from settlement_modules.lease_revenue.articles import article_for
from settlement_modules.lease_revenue.installments import (
    interval_label,
    interval_service_dates,
    interval_type_name,
    split_installments,
)
from settlement_modules.lease_revenue.models import (
    AdvanceInterval,
    AreaType,
    ArticleType,
    CreditNoteDraft,
    CreditNoteItemDraft,
    InvoiceType,
    IssuedItem,
    LeaseAllocation,
    ParcelAllocation,
    PeriodType,
    SettlementArticle,
    TaxType,
)
from settlement_modules.lease_revenue.tax import calculate_tax, tax_type_for_rate

ONE = Decimal("1")
SQM_PER_HECTARE = Decimal("10000")
UNIT_LUMP_SUM = "pauschal"
UNIT_SQM = "m²"
UNIT_METER = "m"


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def describe_parcel(label: str, parcel: ParcelAllocation) -> str:
    """Line description with the cadastral reference of the parcel."""
    area = parcel.plot_area
    text = (
        f"{label}: Flurstueck G:{area.cadastral_district}, "
        f"Flur:{area.field_number}, FS:{area.plot_number}"
    )
    if area.area_type == AreaType.WEA_STANDORT:
        text += ", WEA(s):1"
    elif area.area_type == AreaType.POOL and area.area_sqm:
        text += f", Fl:{area.area_sqm / SQM_PER_HECTARE:.5f} ha"
    return text


def resolve_unit(parcel: ParcelAllocation, amount: Decimal) -> tuple[Decimal, str, Decimal]:
    """
    (quantity, unit, unit price) for a line of ``amount``.

    Square meters for WEG/AUSGLEICH and meters for KABEL when they were
    priced by rate; everything else is one lump sum.
    """
    area = parcel.plot_area
    if not parcel.uses_fixed_amount and parcel.rate > ZERO:
        if area.area_type in (AreaType.WEG, AreaType.AUSGLEICH) and area.area_sqm:
            return area.area_sqm, UNIT_SQM, round_money(amount / area.area_sqm, 4)
        if area.area_type == AreaType.KABEL and area.length_m:
            return area.length_m, UNIT_METER, round_money(amount / area.length_m, 4)
    return ONE, UNIT_LUMP_SUM, amount


def calculate_due_date(invoice_date: date, payment_day: int) -> date:
    """
    The payment day in the invoice month, or in the next month when the
    invoice date is already past it.  Clamped to the month's last day.
    """
    year, month = invoice_date.year, invoice_date.month
    if invoice_date.day > payment_day:
        month += 1
        if month > 12:
            year, month = year + 1, 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(payment_day, last_day))


def _line(
    position: int,
    parcel: ParcelAllocation,
    amount: Decimal,
    article: SettlementArticle,
    tax_rates: Mapping[TaxType, Decimal] | None,
) -> CreditNoteItemDraft:
    split = calculate_tax(amount, tax_type_for_rate(article.tax_rate), tax_rates)
    quantity, unit, unit_price = resolve_unit(parcel, split.net_amount)
    return CreditNoteItemDraft(
        position=position,
        description=describe_parcel(article.label, parcel),
        quantity=quantity,
        unit=unit,
        unit_price=unit_price,
        net_amount=split.net_amount,
        tax_type=split.tax_type,
        tax_rate=split.tax_rate,
        tax_amount=split.tax_amount,
        gross_amount=split.gross_amount,
        article_type=article.article_type,
        account_code=article.account_code,
        plot_area_id=parcel.plot_area.id,
    )


def _mirror(
    position: int,
    item: IssuedItem,
    description: str,
    article_type: ArticleType,
    account_code: str,
) -> CreditNoteItemDraft:
    return CreditNoteItemDraft(
        position=position,
        description=description,
        quantity=ONE,
        unit=UNIT_LUMP_SUM,
        unit_price=-item.net_amount,
        net_amount=-item.net_amount,
        tax_type=item.tax_type,
        tax_rate=item.tax_rate,
        tax_amount=-item.tax_amount,
        gross_amount=-item.gross_amount,
        article_type=article_type,
        account_code=account_code,
        plot_area_id=item.plot_area_id,
        reference_item_id=item.item_id,
    )


# ---------------------------------------------------------------------------
# ADVANCE
# ---------------------------------------------------------------------------


def build_advance_credit_note(
    allocation: LeaseAllocation,
    *,
    park_name: str,
    year: int,
    interval: AdvanceInterval,
    index: int | None,
    invoice_date: date,
    payment_day: int,
    articles: Mapping[ArticleType, SettlementArticle],
    tax_rates: Mapping[TaxType, Decimal] | None = None,
) -> CreditNoteDraft | None:
    """One advance credit note, or None when the installment total is negligible."""
    installments = split_installments(allocation, interval)
    total = sum((line.amount for line in installments), ZERO)
    if not installments or is_negligible(total):
        return None

    items = tuple(
        _line(
            position,
            line.parcel,
            line.amount,
            article_for(line.parcel.area_type, PeriodType.ADVANCE, articles),
            tax_rates,
        )
        for position, line in enumerate(installments, start=1)
    )
    start, end = interval_service_dates(interval, year, index)
    label = interval_label(interval, year, index)
    if interval == AdvanceInterval.YEARLY:
        internal = f"{interval_type_name(interval)} {year}"
    else:
        internal = f"{interval_type_name(interval)} {index}/{year}"

    return CreditNoteDraft(
        lease_id=allocation.lease_id,
        invoice_type=InvoiceType.CREDIT_NOTE,
        recipient_name=allocation.lessor_name,
        recipient_address=allocation.lessor_address,
        invoice_date=invoice_date,
        due_date=calculate_due_date(invoice_date, payment_day),
        service_start_date=start,
        service_end_date=end,
        payment_reference=f"Pacht {label} - {park_name}",
        internal_reference=internal,
        items=items,
    )


# ---------------------------------------------------------------------------
# FINAL
# ---------------------------------------------------------------------------


def deduction_description(item: IssuedItem) -> str:
    return f"{item.description} (Vorschuss {item.invoice_number} vom {item.invoice_date:%d.%m.%Y})"


def build_final_credit_note(
    allocation: LeaseAllocation,
    *,
    park_name: str,
    year: int,
    advance_items: Sequence[IssuedItem],
    invoice_date: date,
    payment_day: int,
    articles: Mapping[ArticleType, SettlementArticle],
    tax_rates: Mapping[TaxType, Decimal] | None = None,
) -> CreditNoteDraft | None:
    """
    Year-end credit note: full allocation minus every advance item.

    Returns None when the lease has no lines at all, or when the net after
    deductions is below one cent.
    """
    items: list[CreditNoteItemDraft] = []
    position = 0
    for parcel in allocation.parcels:
        amount = round_money(parcel.amount)
        if is_negligible(amount):
            continue
        position += 1
        items.append(
            _line(
                position,
                parcel,
                amount,
                article_for(parcel.area_type, PeriodType.FINAL, articles),
                tax_rates,
            )
        )

    offset = articles[ArticleType.VORSCHUSSVERRECHNUNG]
    ordered = sorted(advance_items, key=lambda i: (i.invoice_date, i.invoice_number, i.position))
    for item in ordered:
        position += 1
        items.append(
            _mirror(
                position,
                item,
                deduction_description(item),
                offset.article_type,
                offset.account_code,
            )
        )

    if not items:
        return None
    draft = CreditNoteDraft(
        lease_id=allocation.lease_id,
        invoice_type=InvoiceType.CREDIT_NOTE,
        recipient_name=allocation.lessor_name,
        recipient_address=allocation.lessor_address,
        invoice_date=invoice_date,
        due_date=calculate_due_date(invoice_date, payment_day),
        service_start_date=date(year, 1, 1),
        service_end_date=date(year, 12, 31),
        payment_reference=f"Pachtabrechnung {year} - {park_name}",
        internal_reference=f"Endabrechnung {year}",
        items=tuple(items),
    )
    if is_negligible(draft.net_amount):
        return None
    return draft


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------


def build_cancellation(
    *,
    original_invoice_id,
    original_number: str,
    lease_id,
    recipient_name: str,
    recipient_address: str | None,
    service_start_date: date,
    service_end_date: date,
    items: Sequence[IssuedItem],
    invoice_date: date,
    reason: str,
) -> CreditNoteDraft:
    """Storno document: every item of the original with its sign flipped."""
    mirrored = tuple(
        _mirror(
            position,
            item,
            f"Storno: {item.description}",
            item.article_type or ArticleType.VORSCHUSSVERRECHNUNG,
            item.account_code or "",
        )
        for position, item in enumerate(sorted(items, key=lambda i: i.position), start=1)
    )
    return CreditNoteDraft(
        lease_id=lease_id,
        invoice_type=InvoiceType.CANCELLATION,
        recipient_name=recipient_name,
        recipient_address=recipient_address,
        invoice_date=invoice_date,
        due_date=invoice_date,
        service_start_date=service_start_date,
        service_end_date=service_end_date,
        payment_reference=f"Storno {original_number}",
        internal_reference=f"Storno {original_number}: {reason}",
        items=mirrored,
        cancelled_invoice_id=original_invoice_id,
    )
