"""
Module: settlement_modules.lease_revenue.orm
Responsibility:
    SQLAlchemy ORM persistence models for the lease revenue settlement.
    Maps park master data, leases and parcels, settlement periods, and the
    generated credit notes to relational tables, and converts rows into
    the frozen value objects of ``settlement_modules.lease_revenue.models``.

Architecture position:
    **Modules layer** -- ORM models inheriting from ``TrackedBase``
    (kernel DB base).  Tenant-scoped tables add ``TenantScopedMixin``.

Invariants enforced:
    - All monetary fields use Decimal (Numeric(38,9) via the type map);
      percentages use Numeric(9,4).
    - Enum fields stored as String(50).
    - ``period_key`` is unique per (tenant, park).
    - ``invoice_number`` is unique per tenant.
    - Invoice header totals are written from the item sums.

Failure modes:
    - IntegrityError on duplicate unique constraints.
    - ForeignKey violation on invalid parent references.

Audit relevance:
    - SettlementPeriodModel keeps who created, reviewed and cancelled a
      period, when, and why.
    - InvoiceItemModel links every deduction to the advance item it nets
      out (``reference_item_id``) and every cancellation to its original.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from settlement_kernel.db.base import TenantScopedMixin, TrackedBase, UUIDString
from settlement_kernel.db.types import ZERO, round_money
from settlement_modules.lease_revenue.models import (
    AdvanceInterval,
    AreaType,
    ArticleType,
    CreditNoteDraft,
    InvoiceStatus,
    InvoiceSummary,
    InvoiceType,
    IssuedItem,
    LeaseSnapshot,
    Lessor,
    ParkSnapshot,
    PeriodStatus,
    PeriodType,
    PlotAreaSnapshot,
    RevenuePhase,
    RevenueSourceInput,
    SettlementArticle,
    SettlementPeriodInfo,
    TaxType,
)


def _pct() -> Numeric:
    return Numeric(9, 4)


# =============================================================================
# Park master data
# =============================================================================


class ParkModel(TenantScopedMixin, TrackedBase):
    """
    A wind park with its lease compensation parameters.

    Guarantees:
        - ``wea_share_percentage`` + ``pool_share_percentage`` is expected
          to be 100; the calculator warns but computes through otherwise.
        - Rates default to 0 (no compensation by rate).
    """

    __tablename__ = "settlement_parks"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    commissioning_date: Mapped[date | None] = mapped_column(nullable=True)
    turbine_count: Mapped[int] = mapped_column(Integer, default=0)
    minimum_rent_per_turbine: Mapped[Decimal | None] = mapped_column(nullable=True)
    wea_share_percentage: Mapped[Decimal | None] = mapped_column(_pct(), nullable=True)
    pool_share_percentage: Mapped[Decimal | None] = mapped_column(_pct(), nullable=True)
    weg_compensation_per_sqm: Mapped[Decimal] = mapped_column(default=ZERO)
    ausgleich_compensation_per_sqm: Mapped[Decimal] = mapped_column(default=ZERO)
    kabel_compensation_per_m: Mapped[Decimal] = mapped_column(default=ZERO)
    default_payment_day: Mapped[int | None] = mapped_column(Integer, nullable=True)

    revenue_phases: Mapped[list[RevenuePhaseModel]] = relationship(
        "RevenuePhaseModel",
        back_populates="park",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="RevenuePhaseModel.phase_number",
    )
    articles: Mapped[list[SettlementArticleModel]] = relationship(
        "SettlementArticleModel",
        back_populates="park",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_snapshot(self) -> ParkSnapshot:
        return ParkSnapshot(
            id=self.id,
            name=self.name,
            turbine_count=self.turbine_count or 0,
            commissioning_year=self.commissioning_date.year if self.commissioning_date else None,
            minimum_rent_per_turbine=self.minimum_rent_per_turbine,
            wea_share_percentage=self.wea_share_percentage,
            pool_share_percentage=self.pool_share_percentage,
            weg_rate_per_sqm=self.weg_compensation_per_sqm or ZERO,
            ausgleich_rate_per_sqm=self.ausgleich_compensation_per_sqm or ZERO,
            kabel_rate_per_m=self.kabel_compensation_per_m or ZERO,
            default_payment_day=self.default_payment_day,
            revenue_phases=tuple(p.to_dto() for p in self.revenue_phases),
        )


class RevenuePhaseModel(TrackedBase):
    """Revenue-share percentage for a range of operating years of a park."""

    __tablename__ = "settlement_revenue_phases"

    __table_args__ = (
        UniqueConstraint("park_id", "phase_number", name="uq_revenue_phase_number"),
    )

    park_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("settlement_parks.id"), nullable=False
    )
    phase_number: Mapped[int] = mapped_column(Integer, nullable=False)
    start_year: Mapped[int] = mapped_column(Integer, nullable=False)
    end_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    revenue_share_percentage: Mapped[Decimal] = mapped_column(_pct(), nullable=False)

    park: Mapped[ParkModel] = relationship("ParkModel", back_populates="revenue_phases")

    def to_dto(self) -> RevenuePhase:
        return RevenuePhase(
            phase_number=self.phase_number,
            start_year=self.start_year,
            end_year=self.end_year,
            revenue_share_percentage=self.revenue_share_percentage,
        )


class SettlementArticleModel(TrackedBase):
    """Park-level article: label, tax rate and account for one line type."""

    __tablename__ = "settlement_articles"

    __table_args__ = (
        UniqueConstraint("park_id", "article_type", name="uq_settlement_article_type"),
    )

    park_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("settlement_parks.id"), nullable=False
    )
    article_type: Mapped[str] = mapped_column(String(50), nullable=False)
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(_pct(), default=ZERO)
    account_code: Mapped[str] = mapped_column(String(50), nullable=False)

    park: Mapped[ParkModel] = relationship("ParkModel", back_populates="articles")

    def to_dto(self) -> SettlementArticle:
        return SettlementArticle(
            article_type=ArticleType(self.article_type),
            label=self.label,
            tax_rate=self.tax_rate,
            account_code=self.account_code,
        )


class TaxRateConfigModel(TenantScopedMixin, TrackedBase):
    """Tenant tax table: one percentage per tax category."""

    __tablename__ = "settlement_tax_rates"

    __table_args__ = (
        UniqueConstraint("tenant_id", "tax_type", name="uq_tax_rate_type"),
    )

    tax_type: Mapped[str] = mapped_column(String(50), nullable=False)
    rate: Mapped[Decimal] = mapped_column(_pct(), nullable=False)


class EnergySettlementModel(TenantScopedMixin, TrackedBase):
    """Metered-energy settlement of a park-year, supplied by the billing side."""

    __tablename__ = "settlement_energy_settlements"

    __table_args__ = (
        Index("idx_energy_settlement_park_year", "park_id", "year"),
    )

    park_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("settlement_parks.id"), nullable=False
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    net_revenue: Mapped[Decimal] = mapped_column(nullable=False)
    total_production_kwh: Mapped[Decimal | None] = mapped_column(nullable=True)


# =============================================================================
# Leases
# =============================================================================


class PersonModel(TenantScopedMixin, TrackedBase):
    """A lessor: a company or a natural person, with postal and bank data."""

    __tablename__ = "settlement_persons"

    company_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    first_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    street: Mapped[str | None] = mapped_column(String(255), nullable=True)
    house_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    postal_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    country: Mapped[str | None] = mapped_column(String(100), nullable=True)
    iban: Mapped[str | None] = mapped_column(String(34), nullable=True)
    bic: Mapped[str | None] = mapped_column(String(11), nullable=True)
    bank_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def to_lessor(self) -> Lessor:
        return Lessor(
            id=self.id,
            company_name=self.company_name,
            first_name=self.first_name,
            last_name=self.last_name,
            street=self.street,
            house_number=self.house_number,
            postal_code=self.postal_code,
            city=self.city,
            country=self.country,
        )


class LeaseModel(TenantScopedMixin, TrackedBase):
    """
    Land lease between the park operator and a lessor.

    Guarantees:
        - ``lease_number`` is unique per tenant.
        - Only ``status == "ACTIVE"`` leases are settled.
    """

    __tablename__ = "settlement_leases"

    __table_args__ = (
        UniqueConstraint("tenant_id", "lease_number", name="uq_settlement_lease_number"),
        Index("idx_settlement_lease_park_status", "park_id", "status"),
    )

    lease_number: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(50), default="ACTIVE")
    payment_day: Mapped[int | None] = mapped_column(Integer, nullable=True)
    park_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("settlement_parks.id"), nullable=False
    )
    lessor_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("settlement_persons.id"), nullable=False
    )

    lessor: Mapped[PersonModel] = relationship("PersonModel", lazy="selectin")
    plot_areas: Mapped[list[PlotAreaModel]] = relationship(
        "PlotAreaModel",
        back_populates="lease",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PlotAreaModel.position",
    )

    def to_snapshot(self) -> LeaseSnapshot:
        return LeaseSnapshot(
            id=self.id,
            lease_number=self.lease_number,
            lessor=self.lessor.to_lessor(),
            payment_day=self.payment_day,
            plot_areas=tuple(a.to_snapshot() for a in self.plot_areas),
        )


class PlotAreaModel(TrackedBase):
    """A cadastral parcel (or part of one) covered by a lease."""

    __tablename__ = "settlement_plot_areas"

    __table_args__ = (
        Index("idx_settlement_plot_area_lease", "lease_id"),
    )

    lease_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("settlement_leases.id"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, default=0)
    area_type: Mapped[str] = mapped_column(String(50), nullable=False)
    cadastral_district: Mapped[str] = mapped_column(String(100), default="")
    field_number: Mapped[str] = mapped_column(String(50), default="")
    plot_number: Mapped[str] = mapped_column(String(50), default="")
    area_sqm: Mapped[Decimal | None] = mapped_column(nullable=True)
    length_m: Mapped[Decimal | None] = mapped_column(nullable=True)
    compensation_fixed_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    lease: Mapped[LeaseModel] = relationship("LeaseModel", back_populates="plot_areas")

    def to_snapshot(self) -> PlotAreaSnapshot:
        return PlotAreaSnapshot(
            id=self.id,
            area_type=AreaType(self.area_type),
            cadastral_district=self.cadastral_district or "",
            field_number=self.field_number or "",
            plot_number=self.plot_number or "",
            area_sqm=self.area_sqm,
            length_m=self.length_m,
            compensation_fixed_amount=self.compensation_fixed_amount,
        )


# =============================================================================
# Settlement periods
# =============================================================================


class SettlementPeriodModel(TenantScopedMixin, TrackedBase):
    """
    One billing cycle of a park: (year, period type[, interval, index]).

    Contract:
        ``status`` changes only through the settlement period workflow.
        ``created_by_id`` is the one actor who may not approve the period.
    """

    __tablename__ = "settlement_periods"

    __table_args__ = (
        UniqueConstraint("tenant_id", "park_id", "period_key", name="uq_settlement_period_key"),
        Index("idx_settlement_period_park_year", "park_id", "year"),
    )

    park_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("settlement_parks.id"), nullable=False
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    period_type: Mapped[str] = mapped_column(String(50), nullable=False)
    advance_interval: Mapped[str | None] = mapped_column(String(50), nullable=True)
    month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    period_key: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(50), default=PeriodStatus.OPEN.value)

    total_revenue: Mapped[Decimal | None] = mapped_column(nullable=True)
    total_minimum_rent: Mapped[Decimal | None] = mapped_column(nullable=True)
    total_actual_rent: Mapped[Decimal | None] = mapped_column(nullable=True)
    used_minimum: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    linked_energy_settlement_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("settlement_energy_settlements.id"), nullable=True
    )

    reviewed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    review_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    revenue_sources: Mapped[list[RevenueSourceModel]] = relationship(
        "RevenueSourceModel",
        back_populates="period",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="RevenueSourceModel.position",
    )

    def to_dto(self) -> SettlementPeriodInfo:
        return SettlementPeriodInfo(
            id=self.id,
            tenant_id=self.tenant_id,
            park_id=self.park_id,
            year=self.year,
            period_type=PeriodType(self.period_type),
            status=PeriodStatus(self.status),
            period_key=self.period_key,
            created_by_id=self.created_by_id,
            advance_interval=AdvanceInterval(self.advance_interval) if self.advance_interval else None,
            month=self.month,
            total_revenue=self.total_revenue,
            total_minimum_rent=self.total_minimum_rent,
            total_actual_rent=self.total_actual_rent,
            used_minimum=self.used_minimum,
            linked_energy_settlement_id=self.linked_energy_settlement_id,
            reviewed_by_id=self.reviewed_by_id,
            review_notes=self.review_notes,
            reviewed_at=self.reviewed_at,
            cancel_reason=self.cancel_reason,
            notes=self.notes,
        )


class RevenueSourceModel(TrackedBase):
    """One line of a period's revenue breakdown."""

    __tablename__ = "settlement_revenue_sources"

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("settlement_periods.id"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, default=0)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    production_kwh: Mapped[Decimal | None] = mapped_column(nullable=True)
    revenue_eur: Mapped[Decimal] = mapped_column(nullable=False)

    period: Mapped[SettlementPeriodModel] = relationship(
        "SettlementPeriodModel", back_populates="revenue_sources"
    )

    def to_dto(self) -> RevenueSourceInput:
        return RevenueSourceInput(
            category=self.category,
            revenue_eur=self.revenue_eur,
            production_kwh=self.production_kwh,
        )

    @classmethod
    def from_dto(cls, dto: RevenueSourceInput, position: int, created_by_id: UUID) -> RevenueSourceModel:
        return cls(
            position=position,
            category=dto.category,
            production_kwh=dto.production_kwh,
            revenue_eur=dto.revenue_eur,
            created_by_id=created_by_id,
        )


# =============================================================================
# Credit notes
# =============================================================================


class InvoiceModel(TenantScopedMixin, TrackedBase):
    """
    A generated credit note or cancellation.

    Guarantees:
        - ``invoice_number`` is unique per tenant.
        - ``net_amount``/``tax_amount`` equal the sums over ``items``;
          ``gross_amount`` = net + tax.
        - A CANCELLATION row points at the invoice it cancels via
          ``cancelled_invoice_id``; the original gets status CANCELLED.
    """

    __tablename__ = "settlement_invoices"

    __table_args__ = (
        UniqueConstraint("tenant_id", "invoice_number", name="uq_settlement_invoice_number"),
        Index("idx_settlement_invoice_period_lease", "settlement_period_id", "lease_id"),
    )

    invoice_type: Mapped[str] = mapped_column(String(50), nullable=False)
    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)
    invoice_date: Mapped[date] = mapped_column(nullable=False)
    due_date: Mapped[date | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String(50), default=InvoiceStatus.DRAFT.value)

    recipient_name: Mapped[str] = mapped_column(String(255), nullable=False)
    recipient_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    service_start_date: Mapped[date | None] = mapped_column(nullable=True)
    service_end_date: Mapped[date | None] = mapped_column(nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)
    internal_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    net_amount: Mapped[Decimal] = mapped_column(default=ZERO)
    tax_amount: Mapped[Decimal] = mapped_column(default=ZERO)
    gross_amount: Mapped[Decimal] = mapped_column(default=ZERO)

    settlement_period_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("settlement_periods.id"), nullable=True
    )
    lease_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("settlement_leases.id"), nullable=True
    )
    park_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("settlement_parks.id"), nullable=True
    )
    cancelled_invoice_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("settlement_invoices.id"), nullable=True
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    items: Mapped[list[InvoiceItemModel]] = relationship(
        "InvoiceItemModel",
        back_populates="invoice",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="InvoiceItemModel.position",
    )

    @classmethod
    def from_draft(
        cls,
        draft: CreditNoteDraft,
        *,
        tenant_id: UUID,
        invoice_number: str,
        created_by_id: UUID,
        settlement_period_id: UUID | None = None,
        park_id: UUID | None = None,
    ) -> InvoiceModel:
        """Header and items of a draft; totals are taken from the items."""
        invoice = cls(
            tenant_id=tenant_id,
            invoice_type=draft.invoice_type.value,
            invoice_number=invoice_number,
            invoice_date=draft.invoice_date,
            due_date=draft.due_date,
            status=InvoiceStatus.DRAFT.value,
            recipient_name=draft.recipient_name,
            recipient_address=draft.recipient_address,
            service_start_date=draft.service_start_date,
            service_end_date=draft.service_end_date,
            payment_reference=draft.payment_reference,
            internal_reference=draft.internal_reference,
            net_amount=draft.net_amount,
            tax_amount=draft.tax_amount,
            gross_amount=draft.gross_amount,
            settlement_period_id=settlement_period_id,
            lease_id=draft.lease_id,
            park_id=park_id,
            cancelled_invoice_id=draft.cancelled_invoice_id,
            created_by_id=created_by_id,
        )
        invoice.items = [
            InvoiceItemModel(
                position=item.position,
                description=item.description,
                quantity=item.quantity,
                unit=item.unit,
                unit_price=item.unit_price,
                net_amount=item.net_amount,
                tax_type=item.tax_type.value,
                tax_rate=item.tax_rate,
                tax_amount=item.tax_amount,
                gross_amount=item.gross_amount,
                article_type=item.article_type.value,
                account_code=item.account_code,
                plot_area_id=item.plot_area_id,
                reference_item_id=item.reference_item_id,
                created_by_id=created_by_id,
            )
            for item in draft.items
        ]
        return invoice

    def to_summary(self) -> InvoiceSummary:
        return InvoiceSummary(
            id=self.id,
            invoice_number=self.invoice_number,
            invoice_type=InvoiceType(self.invoice_type),
            status=InvoiceStatus(self.status),
            lease_id=self.lease_id,
            recipient_name=self.recipient_name,
            invoice_date=self.invoice_date,
            due_date=self.due_date,
            net_amount=round_money(self.net_amount),
            tax_amount=round_money(self.tax_amount),
            gross_amount=round_money(self.gross_amount),
            item_count=len(self.items),
        )

    def issued_items(self) -> tuple[IssuedItem, ...]:
        return tuple(item.to_issued(self) for item in self.items)


class InvoiceItemModel(TrackedBase):
    """
    One credit-note line.

    A positive allocation line references the parcel it pays
    (``plot_area_id``); a deduction or cancellation line references the
    item it mirrors (``reference_item_id``).
    """

    __tablename__ = "settlement_invoice_items"

    __table_args__ = (
        Index("idx_settlement_invoice_item_invoice", "invoice_id"),
        Index("idx_settlement_invoice_item_reference", "reference_item_id"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("settlement_invoices.id"), nullable=False
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit: Mapped[str] = mapped_column(String(20), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(nullable=False)
    tax_type: Mapped[str] = mapped_column(String(50), nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(_pct(), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(nullable=False)
    gross_amount: Mapped[Decimal] = mapped_column(nullable=False)
    article_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    account_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    plot_area_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("settlement_plot_areas.id"), nullable=True
    )
    reference_item_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("settlement_invoice_items.id"), nullable=True
    )

    invoice: Mapped[InvoiceModel] = relationship("InvoiceModel", back_populates="items")

    def to_issued(self, invoice: InvoiceModel) -> IssuedItem:
        return IssuedItem(
            item_id=self.id,
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            invoice_date=invoice.invoice_date,
            position=self.position,
            description=self.description,
            quantity=self.quantity,
            unit=self.unit,
            unit_price=self.unit_price,
            net_amount=round_money(self.net_amount),
            tax_type=TaxType(self.tax_type),
            tax_rate=self.tax_rate,
            tax_amount=round_money(self.tax_amount),
            gross_amount=round_money(self.gross_amount),
            article_type=ArticleType(self.article_type) if self.article_type else None,
            account_code=self.account_code,
            plot_area_id=self.plot_area_id,
        )
