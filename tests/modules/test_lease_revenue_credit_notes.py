"""
Tests for the credit-note builders.

Validates:
- advance drafts: installment lines, articles, dates, references
- final drafts: full-year lines minus mirrored advance items
- reconciliation: final.net == yearly allocation - sum(advance nets)
- due date rule and units
- cancellation drafts
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from settlement_modules.lease_revenue.articles import DEFAULT_ARTICLES, resolve_articles
from settlement_modules.lease_revenue.credit_notes import (
    UNIT_LUMP_SUM,
    UNIT_METER,
    UNIT_SQM,
    build_advance_credit_note,
    build_cancellation,
    build_final_credit_note,
    calculate_due_date,
    describe_parcel,
    resolve_unit,
)
from settlement_modules.lease_revenue.models import (
    AdvanceInterval,
    AreaType,
    ArticleType,
    InvoiceType,
    IssuedItem,
    LeaseAllocation,
    ParcelAllocation,
    PlotAreaSnapshot,
    SettlementArticle,
    TaxType,
)

ARTICLES = resolve_articles([])


# =============================================================================
# Builders
# =============================================================================


def _parcel(area_type: AreaType, amount: str, rate: str = "0", fixed: bool = False, **area) -> ParcelAllocation:
    return ParcelAllocation(
        plot_area=PlotAreaSnapshot(
            id=uuid4(),
            area_type=area_type,
            cadastral_district="Nordfeld",
            field_number="3",
            plot_number="10",
            **area,
        ),
        revenue_share=Decimal(amount),
        minimum_rent=Decimal("0"),
        amount=Decimal(amount),
        rate=Decimal(rate),
        uses_fixed_amount=fixed,
    )


def _allocation(*parcels: ParcelAllocation, payment_day: int | None = None) -> LeaseAllocation:
    total = sum((p.amount for p in parcels), Decimal("0"))
    return LeaseAllocation(
        lease_id=uuid4(),
        lease_number="L-001",
        lessor_name="Anna Schmidt",
        lessor_address="Dorfstrasse 12, 25821 Bredstedt",
        payment_day=payment_day,
        parcels=parcels,
        total_revenue_share=total,
        total_minimum_rent=Decimal("0"),
        special_compensation=Decimal("0"),
        total_payment=total,
        used_minimum=False,
    )


def _issued(draft, number: str, invoice_date: date) -> tuple[IssuedItem, ...]:
    """Turn a draft into the items it would have after being persisted."""
    invoice_id = uuid4()
    return tuple(
        IssuedItem(
            item_id=uuid4(),
            invoice_id=invoice_id,
            invoice_number=number,
            invoice_date=invoice_date,
            position=item.position,
            description=item.description,
            quantity=item.quantity,
            unit=item.unit,
            unit_price=item.unit_price,
            net_amount=item.net_amount,
            tax_type=item.tax_type,
            tax_rate=item.tax_rate,
            tax_amount=item.tax_amount,
            gross_amount=item.gross_amount,
            article_type=item.article_type,
            account_code=item.account_code,
            plot_area_id=item.plot_area_id,
        )
        for item in draft.items
    )


def _monthly_advances(allocation: LeaseAllocation, articles=ARTICLES) -> list[IssuedItem]:
    items: list[IssuedItem] = []
    for month in range(1, 13):
        invoice_date = date(2025, month, 5)
        draft = build_advance_credit_note(
            allocation,
            park_name="Windpark Nordfeld",
            year=2025,
            interval=AdvanceInterval.MONTHLY,
            index=month,
            invoice_date=invoice_date,
            payment_day=15,
            articles=articles,
        )
        items.extend(_issued(draft, f"GS-2025-{month:05d}", invoice_date))
    return items


# =============================================================================
# Due date
# =============================================================================


class TestDueDate:

    def test_payment_day_later_in_month(self):
        assert calculate_due_date(date(2025, 3, 10), 15) == date(2025, 3, 15)

    def test_payment_day_same_day(self):
        assert calculate_due_date(date(2025, 3, 15), 15) == date(2025, 3, 15)

    def test_past_payment_day_moves_to_next_month(self):
        assert calculate_due_date(date(2025, 3, 20), 15) == date(2025, 4, 15)

    def test_year_rollover(self):
        assert calculate_due_date(date(2025, 12, 20), 15) == date(2026, 1, 15)

    def test_clamped_to_month_end(self):
        assert calculate_due_date(date(2025, 1, 31), 30) == date(2025, 2, 28)

    def test_never_before_invoice_date(self):
        start = date(2025, 1, 1)
        for offset in range(0, 365, 7):
            invoice_date = start + timedelta(days=offset)
            for day in (1, 15, 28, 31):
                assert calculate_due_date(invoice_date, day) >= invoice_date


# =============================================================================
# Units and descriptions
# =============================================================================


class TestUnits:

    def test_lump_sum_for_revenue_share(self):
        parcel = _parcel(AreaType.WEA_STANDORT, "5000.00")
        assert resolve_unit(parcel, Decimal("416.67")) == (Decimal("1"), UNIT_LUMP_SUM, Decimal("416.67"))

    def test_square_meters_for_weg_by_rate(self):
        parcel = _parcel(AreaType.WEG, "100.00", rate="0.50", area_sqm=Decimal("200"))
        quantity, unit, price = resolve_unit(parcel, Decimal("100.00"))
        assert (quantity, unit, price) == (Decimal("200"), UNIT_SQM, Decimal("0.5000"))

    def test_meters_for_kabel_by_rate(self):
        parcel = _parcel(AreaType.KABEL, "300.00", rate="2.00", length_m=Decimal("150"))
        quantity, unit, price = resolve_unit(parcel, Decimal("25.00"))
        assert unit == UNIT_METER
        assert quantity == Decimal("150")
        assert price == Decimal("0.1667")

    def test_fixed_amount_is_lump_sum(self):
        parcel = _parcel(AreaType.WEG, "250.00", rate="0.50", fixed=True, area_sqm=Decimal("200"))
        assert resolve_unit(parcel, Decimal("250.00"))[1] == UNIT_LUMP_SUM

    def test_description_carries_cadastral_reference(self):
        parcel = _parcel(AreaType.POOL, "100", area_sqm=Decimal("6000"))
        text = describe_parcel("Mindestnutzungsentgeld", parcel)
        assert text.startswith("Mindestnutzungsentgeld: Flurstueck G:Nordfeld, Flur:3, FS:10")
        assert text.endswith("Fl:0.60000 ha")

    def test_description_of_turbine_site(self):
        parcel = _parcel(AreaType.WEA_STANDORT, "100")
        assert describe_parcel("X", parcel).endswith("WEA(s):1")


# =============================================================================
# Advance
# =============================================================================


class TestAdvanceCreditNote:

    @pytest.fixture
    def allocation(self):
        return _allocation(
            _parcel(AreaType.WEA_STANDORT, "5000.00"),
            _parcel(AreaType.POOL, "54000.00", area_sqm=Decimal("6000")),
            _parcel(AreaType.KABEL, "300.00", rate="2.00", length_m=Decimal("150")),
        )

    def _build(self, allocation, **kwargs):
        values = dict(
            park_name="Windpark Nordfeld",
            year=2025,
            interval=AdvanceInterval.MONTHLY,
            index=3,
            invoice_date=date(2025, 3, 10),
            payment_day=15,
            articles=ARTICLES,
        )
        values.update(kwargs)
        return build_advance_credit_note(allocation, **values)

    def test_installment_lines(self, allocation):
        draft = self._build(allocation)
        assert [i.net_amount for i in draft.items] == [Decimal("416.67"), Decimal("4500.00"), Decimal("25.00")]
        assert [i.position for i in draft.items] == [1, 2, 3]
        assert draft.net_amount == Decimal("4941.67")

    def test_articles(self, allocation):
        draft = self._build(allocation)
        assert [i.article_type for i in draft.items] == [
            ArticleType.MINDESTPACHT,
            ArticleType.MINDESTPACHT,
            ArticleType.KABELTRASSE,
        ]
        assert draft.items[2].account_code == "8401"

    def test_header(self, allocation):
        draft = self._build(allocation)
        assert draft.invoice_type == InvoiceType.CREDIT_NOTE
        assert draft.recipient_name == "Anna Schmidt"
        assert draft.service_start_date == date(2025, 3, 1)
        assert draft.service_end_date == date(2025, 3, 31)
        assert draft.due_date == date(2025, 3, 15)
        assert draft.payment_reference == "Pacht Maerz 2025 - Windpark Nordfeld"
        assert draft.internal_reference == "Monatsvorschuss 3/2025"

    def test_yearly_reference(self, allocation):
        draft = self._build(allocation, interval=AdvanceInterval.YEARLY, index=None)
        assert draft.internal_reference == "Jahresvorschuss 2025"
        assert draft.net_amount == Decimal("59300.00")

    def test_tax_from_article_rate(self, allocation):
        articles = dict(ARTICLES)
        articles[ArticleType.MINDESTPACHT] = SettlementArticle(
            ArticleType.MINDESTPACHT, "Mindestnutzungsentgeld", Decimal("19"), "8400"
        )
        draft = self._build(allocation, articles=articles)
        first = draft.items[0]
        assert first.tax_type == TaxType.STANDARD
        assert first.tax_amount == Decimal("79.17")
        assert draft.gross_amount == draft.net_amount + draft.tax_amount

    def test_nothing_to_settle(self):
        assert self._build(_allocation(_parcel(AreaType.POOL, "0.00"))) is None


# =============================================================================
# Final
# =============================================================================


class TestFinalCreditNote:

    def test_deductions_mirror_advances(self):
        allocation = _allocation(_parcel(AreaType.POOL, "10000.00", area_sqm=Decimal("1000")))
        advances = _monthly_advances(allocation)
        draft = build_final_credit_note(
            allocation,
            park_name="Windpark Nordfeld",
            year=2025,
            advance_items=advances,
            invoice_date=date(2026, 2, 1),
            payment_day=15,
            articles=ARTICLES,
        )
        positive, deductions = draft.items[0], draft.items[1:]
        assert positive.net_amount == Decimal("10000.00")
        assert positive.article_type == ArticleType.JAHRESNUTZUNGSENTGELD
        assert len(deductions) == 12
        assert all(d.net_amount == Decimal("-833.33") for d in deductions)
        assert all(d.article_type == ArticleType.VORSCHUSSVERRECHNUNG for d in deductions)
        assert sum(d.net_amount for d in deductions) == Decimal("-9999.96")
        assert draft.net_amount == Decimal("0.04")

    def test_deduction_references_and_description(self):
        allocation = _allocation(_parcel(AreaType.POOL, "10000.00", area_sqm=Decimal("1000")))
        advances = _monthly_advances(allocation)
        draft = build_final_credit_note(
            allocation,
            park_name="Windpark Nordfeld",
            year=2025,
            advance_items=list(reversed(advances)),
            invoice_date=date(2026, 2, 1),
            payment_day=15,
            articles=ARTICLES,
        )
        first_deduction = draft.items[1]
        assert first_deduction.reference_item_id == advances[0].item_id
        assert first_deduction.description.endswith("(Vorschuss GS-2025-00001 vom 05.01.2025)")

    def test_reconciliation_identity_with_tax(self):
        articles = dict(ARTICLES)
        for article_type in (ArticleType.MINDESTPACHT, ArticleType.JAHRESNUTZUNGSENTGELD):
            articles[article_type] = SettlementArticle(article_type, article_type.value, Decimal("19"), "8400")
        allocation = _allocation(
            _parcel(AreaType.WEA_STANDORT, "5000.00"),
            _parcel(AreaType.POOL, "54000.00", area_sqm=Decimal("6000")),
        )
        advances = _monthly_advances(allocation, articles)
        draft = build_final_credit_note(
            allocation,
            park_name="Windpark Nordfeld",
            year=2025,
            advance_items=advances,
            invoice_date=date(2026, 2, 1),
            payment_day=15,
            articles=articles,
        )
        advance_net = sum(i.net_amount for i in advances)
        advance_tax = sum(i.tax_amount for i in advances)
        positive = [i for i in draft.items if i.net_amount > 0]
        assert draft.net_amount == allocation.total_payment - advance_net
        assert draft.tax_amount == sum(i.tax_amount for i in positive) - advance_tax
        # Deductions keep the advance tax rate.
        assert all(i.tax_rate == Decimal("19.00") for i in draft.items)

    def test_no_advances(self):
        allocation = _allocation(_parcel(AreaType.POOL, "1200.00", area_sqm=Decimal("1000")))
        draft = build_final_credit_note(
            allocation,
            park_name="Windpark Nordfeld",
            year=2025,
            advance_items=(),
            invoice_date=date(2026, 2, 1),
            payment_day=15,
            articles=ARTICLES,
        )
        assert draft.net_amount == Decimal("1200.00")
        assert draft.service_start_date == date(2025, 1, 1)
        assert draft.service_end_date == date(2025, 12, 31)
        assert draft.internal_reference == "Endabrechnung 2025"
        assert draft.payment_reference == "Pachtabrechnung 2025 - Windpark Nordfeld"

    def test_fully_advanced_lease_yields_none(self):
        allocation = _allocation(_parcel(AreaType.POOL, "1200.00", area_sqm=Decimal("1000")))
        advances = _monthly_advances(allocation)  # 12 x 100.00
        draft = build_final_credit_note(
            allocation,
            park_name="Windpark Nordfeld",
            year=2025,
            advance_items=advances,
            invoice_date=date(2026, 2, 1),
            payment_day=15,
            articles=ARTICLES,
        )
        assert draft is None

    def test_overpaid_lease_gets_negative_credit_note(self):
        paid = _allocation(_parcel(AreaType.POOL, "1200.00", area_sqm=Decimal("1000")))
        advances = _monthly_advances(paid)
        lower = _allocation(_parcel(AreaType.POOL, "1000.00", area_sqm=Decimal("1000")))
        draft = build_final_credit_note(
            lower,
            park_name="Windpark Nordfeld",
            year=2025,
            advance_items=advances,
            invoice_date=date(2026, 2, 1),
            payment_day=15,
            articles=ARTICLES,
        )
        assert draft.net_amount == Decimal("-200.00")

    def test_no_lines(self):
        draft = build_final_credit_note(
            _allocation(),
            park_name="Windpark Nordfeld",
            year=2025,
            advance_items=(),
            invoice_date=date(2026, 2, 1),
            payment_day=15,
            articles=ARTICLES,
        )
        assert draft is None


# =============================================================================
# Cancellation
# =============================================================================


class TestCancellation:

    def test_mirrors_every_item(self):
        allocation = _allocation(
            _parcel(AreaType.WEA_STANDORT, "5000.00"),
            _parcel(AreaType.POOL, "54000.00", area_sqm=Decimal("6000")),
        )
        original = build_advance_credit_note(
            allocation,
            park_name="Windpark Nordfeld",
            year=2025,
            interval=AdvanceInterval.QUARTERLY,
            index=1,
            invoice_date=date(2025, 1, 5),
            payment_day=15,
            articles=ARTICLES,
        )
        items = _issued(original, "GS-2025-00001", date(2025, 1, 5))
        invoice_id = items[0].invoice_id

        cancellation = build_cancellation(
            original_invoice_id=invoice_id,
            original_number="GS-2025-00001",
            lease_id=allocation.lease_id,
            recipient_name=original.recipient_name,
            recipient_address=original.recipient_address,
            service_start_date=original.service_start_date,
            service_end_date=original.service_end_date,
            items=items,
            invoice_date=date(2025, 2, 1),
            reason="Falscher Flaechenanteil",
        )
        assert cancellation.invoice_type == InvoiceType.CANCELLATION
        assert cancellation.cancelled_invoice_id == invoice_id
        assert cancellation.net_amount == -original.net_amount
        assert cancellation.gross_amount == -original.gross_amount
        assert cancellation.due_date == date(2025, 2, 1)
        assert cancellation.payment_reference == "Storno GS-2025-00001"
        assert cancellation.internal_reference == "Storno GS-2025-00001: Falscher Flaechenanteil"
        assert all(i.description.startswith("Storno: ") for i in cancellation.items)
        assert [i.reference_item_id for i in cancellation.items] == [i.item_id for i in items]
        assert [i.article_type for i in cancellation.items] == [i.article_type for i in items]


class TestDefaultArticles:

    def test_every_article_type_has_a_default(self):
        assert {a.article_type for a in DEFAULT_ARTICLES} == set(ArticleType)

    def test_park_articles_override_defaults(self):
        custom = SettlementArticle(ArticleType.ZUWEGUNG, "Wegenutzung", Decimal("19"), "8410")
        resolved = resolve_articles([custom])
        assert resolved[ArticleType.ZUWEGUNG] is custom
        assert resolved[ArticleType.KABELTRASSE].account_code == "8401"
