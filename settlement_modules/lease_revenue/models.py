"""
Lease Revenue Domain Models (``settlement_modules.lease_revenue.models``).

Responsibility
--------------
Enums and frozen dataclass value objects for the lease revenue settlement:
park and lease snapshots fed to the allocation calculator, the allocation
results, installment lines, tax splits, settlement articles, credit-note
drafts, and the read models returned to callers.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Produced by the
ORM ``to_*`` methods and the pure calculators, consumed by the services.

Invariants enforced
-------------------
* All models are ``frozen=True``.
* All monetary fields use ``Decimal``.
* A ``CreditNoteDraft``'s totals are derived from its items, never passed in.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from settlement_kernel.db.types import ZERO


class PeriodType(str, Enum):
    ADVANCE = "ADVANCE"
    FINAL = "FINAL"


class AdvanceInterval(str, Enum):
    YEARLY = "YEARLY"
    QUARTERLY = "QUARTERLY"
    MONTHLY = "MONTHLY"


class PeriodStatus(str, Enum):
    """Settlement period lifecycle states."""
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    CALCULATED = "CALCULATED"
    ADVANCE_CREATED = "ADVANCE_CREATED"
    SETTLED = "SETTLED"
    PENDING_REVIEW = "PENDING_REVIEW"
    APPROVED = "APPROVED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class AreaType(str, Enum):
    """Use classification of a leased parcel."""
    WEA_STANDORT = "WEA_STANDORT"  # turbine site
    POOL = "POOL"
    WEG = "WEG"  # access road
    KABEL = "KABEL"  # cable route
    AUSGLEICH = "AUSGLEICH"  # ecological compensation

    @property
    def is_revenue_share(self) -> bool:
        return self in (AreaType.WEA_STANDORT, AreaType.POOL)


class ArticleType(str, Enum):
    MINDESTPACHT = "MINDESTPACHT"
    JAHRESNUTZUNGSENTGELD = "JAHRESNUTZUNGSENTGELD"
    VORSCHUSSVERRECHNUNG = "VORSCHUSSVERRECHNUNG"
    ZUWEGUNG = "ZUWEGUNG"
    KABELTRASSE = "KABELTRASSE"
    AUSGLEICH = "AUSGLEICH"


class TaxType(str, Enum):
    STANDARD = "STANDARD"
    REDUCED = "REDUCED"
    EXEMPT = "EXEMPT"


class LeaseStatus(str, Enum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    TERMINATED = "TERMINATED"
    EXPIRED = "EXPIRED"


class InvoiceType(str, Enum):
    CREDIT_NOTE = "CREDIT_NOTE"
    CANCELLATION = "CANCELLATION"


class InvoiceStatus(str, Enum):
    DRAFT = "DRAFT"
    CANCELLED = "CANCELLED"


class ReviewAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


# ---------------------------------------------------------------------------
# Master data snapshots (calculator input)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RevenuePhase:
    """Revenue-share percentage applicable to a range of operating years."""
    phase_number: int
    start_year: int
    end_year: int | None
    revenue_share_percentage: Decimal


@dataclass(frozen=True)
class ParkSnapshot:
    """Park configuration as read at the start of a calculation."""
    id: UUID
    name: str
    turbine_count: int = 0
    commissioning_year: int | None = None
    minimum_rent_per_turbine: Decimal | None = None
    wea_share_percentage: Decimal | None = None
    pool_share_percentage: Decimal | None = None
    weg_rate_per_sqm: Decimal = ZERO
    ausgleich_rate_per_sqm: Decimal = ZERO
    kabel_rate_per_m: Decimal = ZERO
    default_payment_day: int | None = None
    revenue_phases: tuple[RevenuePhase, ...] = ()


@dataclass(frozen=True)
class Lessor:
    """The land owner, either a company or a natural person."""
    id: UUID
    company_name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    street: str | None = None
    house_number: str | None = None
    postal_code: str | None = None
    city: str | None = None
    country: str | None = None


@dataclass(frozen=True)
class PlotAreaSnapshot:
    id: UUID
    area_type: AreaType
    cadastral_district: str = ""
    field_number: str = ""
    plot_number: str = ""
    area_sqm: Decimal | None = None
    length_m: Decimal | None = None
    compensation_fixed_amount: Decimal | None = None


@dataclass(frozen=True)
class LeaseSnapshot:
    id: UUID
    lease_number: str
    lessor: Lessor
    payment_day: int | None = None
    plot_areas: tuple[PlotAreaSnapshot, ...] = ()


# ---------------------------------------------------------------------------
# Allocation results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ParcelAllocation:
    """
    Yearly allocation for one parcel.

    ``amount`` is what the parcel pays after the lease-level floor was
    applied: the revenue share, or the minimum-rent share when the floor
    binds, or the special compensation for WEG/KABEL/AUSGLEICH.
    """
    plot_area: PlotAreaSnapshot
    revenue_share: Decimal
    minimum_rent: Decimal
    amount: Decimal
    rate: Decimal = ZERO
    uses_fixed_amount: bool = False

    @property
    def area_type(self) -> AreaType:
        return self.plot_area.area_type


@dataclass(frozen=True)
class LeaseAllocation:
    """Per-lease result of the allocation calculator."""
    lease_id: UUID
    lease_number: str
    lessor_name: str
    lessor_address: str | None
    payment_day: int | None
    parcels: tuple[ParcelAllocation, ...]
    total_revenue_share: Decimal
    total_minimum_rent: Decimal
    special_compensation: Decimal
    total_payment: Decimal
    used_minimum: bool
    wea_count: int = 0
    pool_count: int = 0
    other_count: int = 0

    def _sum_for(self, area_type: AreaType) -> Decimal:
        return sum((p.amount for p in self.parcels if p.area_type == area_type), ZERO)

    @property
    def wea_share_amount(self) -> Decimal:
        return self._sum_for(AreaType.WEA_STANDORT)

    @property
    def pool_share_amount(self) -> Decimal:
        return self._sum_for(AreaType.POOL)

    @property
    def total_difference(self) -> Decimal:
        """Revenue share minus minimum; positive means revenue exceeded the floor."""
        return self.total_revenue_share - self.total_minimum_rent


@dataclass(frozen=True)
class SettlementCalculation:
    """Park-level result of the allocation calculator."""
    park_id: UUID
    park_name: str
    year: int
    period_type: PeriodType
    total_revenue: Decimal
    revenue_base: Decimal
    revenue_phase_percentage: Decimal | None
    wea_share_percentage: Decimal | None
    pool_share_percentage: Decimal | None
    leases: tuple[LeaseAllocation, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def used_minimum(self) -> bool:
        return any(lease.used_minimum for lease in self.leases)

    @property
    def total_minimum_rent(self) -> Decimal:
        return sum((lease.total_minimum_rent for lease in self.leases), ZERO)

    @property
    def total_revenue_share(self) -> Decimal:
        return sum((lease.total_revenue_share for lease in self.leases), ZERO)

    @property
    def total_payment(self) -> Decimal:
        return sum((lease.total_payment for lease in self.leases), ZERO)

    def lease(self, lease_id: UUID) -> LeaseAllocation | None:
        for allocation in self.leases:
            if allocation.lease_id == lease_id:
                return allocation
        return None


@dataclass(frozen=True)
class InstallmentLine:
    """One parcel's share of one advance installment."""
    parcel: ParcelAllocation
    yearly_amount: Decimal
    amount: Decimal


# ---------------------------------------------------------------------------
# Tax and articles
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TaxSplit:
    net_amount: Decimal
    tax_type: TaxType
    tax_rate: Decimal
    tax_amount: Decimal
    gross_amount: Decimal


@dataclass(frozen=True)
class SettlementArticle:
    """A settlement line type with its tax rate and ledger account."""
    article_type: ArticleType
    label: str
    tax_rate: Decimal
    account_code: str


# ---------------------------------------------------------------------------
# Credit notes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IssuedItem:
    """
    An item of an already issued credit note.

    Feeds the final-period deductions (advance items) and cancellations.
    """
    item_id: UUID
    invoice_id: UUID
    invoice_number: str
    invoice_date: date
    position: int
    description: str
    quantity: Decimal
    unit: str
    unit_price: Decimal
    net_amount: Decimal
    tax_type: TaxType
    tax_rate: Decimal
    tax_amount: Decimal
    gross_amount: Decimal
    article_type: ArticleType | None = None
    account_code: str | None = None
    plot_area_id: UUID | None = None


@dataclass(frozen=True)
class CreditNoteItemDraft:
    position: int
    description: str
    quantity: Decimal
    unit: str
    unit_price: Decimal
    net_amount: Decimal
    tax_type: TaxType
    tax_rate: Decimal
    tax_amount: Decimal
    gross_amount: Decimal
    article_type: ArticleType
    account_code: str
    plot_area_id: UUID | None = None
    reference_item_id: UUID | None = None


@dataclass(frozen=True)
class CreditNoteDraft:
    """A credit note ready to be numbered and persisted."""
    lease_id: UUID
    invoice_type: InvoiceType
    recipient_name: str
    recipient_address: str | None
    invoice_date: date
    due_date: date
    service_start_date: date
    service_end_date: date
    payment_reference: str
    internal_reference: str
    items: tuple[CreditNoteItemDraft, ...]
    cancelled_invoice_id: UUID | None = None

    @property
    def net_amount(self) -> Decimal:
        return sum((i.net_amount for i in self.items), ZERO)

    @property
    def tax_amount(self) -> Decimal:
        return sum((i.tax_amount for i in self.items), ZERO)

    @property
    def gross_amount(self) -> Decimal:
        return self.net_amount + self.tax_amount


# ---------------------------------------------------------------------------
# Inputs and read models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RevenueSourceInput:
    """One line of the revenue breakdown supplied with a request."""
    category: str
    revenue_eur: Decimal
    production_kwh: Decimal | None = None


@dataclass(frozen=True)
class InvoiceSummary:
    id: UUID
    invoice_number: str
    invoice_type: InvoiceType
    status: InvoiceStatus
    lease_id: UUID | None
    recipient_name: str
    invoice_date: date
    due_date: date | None
    net_amount: Decimal
    tax_amount: Decimal
    gross_amount: Decimal
    item_count: int


@dataclass(frozen=True)
class SettlementPeriodInfo:
    id: UUID
    tenant_id: UUID
    park_id: UUID
    year: int
    period_type: PeriodType
    status: PeriodStatus
    period_key: str
    created_by_id: UUID
    advance_interval: AdvanceInterval | None = None
    month: int | None = None
    total_revenue: Decimal | None = None
    total_minimum_rent: Decimal | None = None
    total_actual_rent: Decimal | None = None
    used_minimum: bool | None = None
    linked_energy_settlement_id: UUID | None = None
    reviewed_by_id: UUID | None = None
    review_notes: str | None = None
    reviewed_at: datetime | None = None
    cancel_reason: str | None = None
    notes: str | None = None

    @property
    def is_calculated(self) -> bool:
        return self.total_actual_rent is not None


@dataclass(frozen=True)
class PeriodDetail:
    """A period with its generated documents and their totals."""
    period: SettlementPeriodInfo
    invoices: tuple[InvoiceSummary, ...] = ()
    revenue_sources: tuple[RevenueSourceInput, ...] = ()

    @property
    def credit_note_net_total(self) -> Decimal:
        return sum(
            (
                i.net_amount
                for i in self.invoices
                if i.invoice_type == InvoiceType.CREDIT_NOTE
                and i.status != InvoiceStatus.CANCELLED
            ),
            ZERO,
        )


@dataclass(frozen=True)
class BulkCreateResult:
    created: tuple[SettlementPeriodInfo, ...] = ()
    skipped_keys: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class CalculationOptions:
    """
    Revenue inputs for a calculation, in priority order.

    An explicit ``revenue_override`` wins over the linked energy settlement,
    which wins over ``fallback_revenue`` (the period's stored figure).
    """
    revenue_override: Decimal | None = None
    linked_energy_settlement_id: UUID | None = None
    fallback_revenue: Decimal | None = None


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SkippedLease:
    lease_id: UUID
    lease_number: str
    reason: str


@dataclass(frozen=True)
class LeaseFailure:
    """A lease whose credit note could not be built or written."""
    lease_id: UUID
    code: str
    message: str
    lease_number: str | None = None


@dataclass(frozen=True)
class GenerationPlan:
    """
    Everything a generation run writes, computed up front.

    ``drafts`` are in lease-number order and each needs one invoice number.
    """
    period: SettlementPeriodInfo
    action: str
    calculation: SettlementCalculation
    invoice_date: date
    drafts: tuple[CreditNoteDraft, ...] = ()
    skipped: tuple[SkippedLease, ...] = ()
    failures: tuple[LeaseFailure, ...] = ()
