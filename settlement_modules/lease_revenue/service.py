"""
Lease Revenue Module Service (``settlement_modules.lease_revenue.service``).

Responsibility
--------------
Loads park, lease and period data, runs the pure allocation calculator
and credit-note builders, and drives the settlement period through its
workflow: creation, calculation, advance and final credit-note
generation, review, closing, cancelling and deletion.  Also cancels
issued credit notes with a mirrored cancellation document.

Architecture position
---------------------
**Modules layer** -- thin glue between the ORM and the pure functions in
``calculations``, ``installments``, ``credit_notes`` and ``tax``.  The
generation orchestrator in ``settlement_services`` owns transactions and
calls this service once per transaction.

Invariants enforced
-------------------
* The service flushes and never commits; the caller owns the transaction.
* Every status change goes through ``SETTLEMENT_PERIOD_WORKFLOW``.  A
  rejected action raises before anything is written.
* A period never receives two live credit notes for the same lease:
  ``persist_credit_note`` re-checks under the period row lock.
* Invoice headers are balanced against their items before flush returns.

Failure modes
-------------
* ``ParkNotFoundError``, ``SettlementPeriodNotFoundError``,
  ``EnergySettlementNotFoundError``, ``InvoiceNotFoundError``.
* ``InvalidPeriodError`` / ``InvalidRevenueInputError`` /
  ``InvalidReviewActionError`` before any computation.
* ``PeriodStateError`` subclasses from the workflow guards.

Audit relevance
---------------
Structured log events for every period transition, every credit note and
cancellation written, and every data-quality warning raised by the
calculator.  Reviewer, review time and notes are stored on the period.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from settlement_kernel.db.types import ZERO, round_money, to_decimal
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.workflow import Transition
from settlement_kernel.exceptions import (
    DuplicatePeriodError,
    EnergySettlementNotFoundError,
    InvalidPeriodError,
    InvalidRevenueInputError,
    InvalidReviewActionError,
    InvalidTransitionError,
    InvoiceAlreadyCancelledError,
    InvoiceNotCancellableError,
    InvoiceNotFoundError,
    MissingReasonError,
    ParkNotFoundError,
    PeriodClosedError,
    PeriodNotCalculatedError,
    SelfApprovalError,
    SettlementKernelError,
    SettlementPeriodNotFoundError,
    UnbalancedInvoiceError,
)
from settlement_kernel.logging_config import get_logger
from settlement_kernel.services.base import BaseService
from settlement_kernel.services.invoice_number_service import (
    DocumentType,
    InvoiceNumberService,
)
from settlement_modules.lease_revenue.articles import resolve_articles
from settlement_modules.lease_revenue.calculations import allocate
from settlement_modules.lease_revenue.config import LeaseRevenueConfig
from settlement_modules.lease_revenue.credit_notes import (
    build_advance_credit_note,
    build_cancellation,
    build_final_credit_note,
)
from settlement_modules.lease_revenue.installments import validate_interval_index
from settlement_modules.lease_revenue.models import (
    AdvanceInterval,
    ArticleType,
    BulkCreateResult,
    CalculationOptions,
    CreditNoteDraft,
    GenerationPlan,
    InvoiceStatus,
    InvoiceSummary,
    InvoiceType,
    IssuedItem,
    LeaseFailure,
    LeaseSnapshot,
    LeaseStatus,
    ParkSnapshot,
    PeriodDetail,
    PeriodType,
    ReviewAction,
    RevenueSourceInput,
    SettlementArticle,
    SettlementCalculation,
    SettlementPeriodInfo,
    SkippedLease,
    TaxType,
)
from settlement_modules.lease_revenue.orm import (
    EnergySettlementModel,
    InvoiceModel,
    LeaseModel,
    ParkModel,
    RevenueSourceModel,
    SettlementPeriodModel,
    TaxRateConfigModel,
)
from settlement_modules.lease_revenue.workflows import (
    APPROVE,
    CALCULATE,
    CANCEL,
    CLOSE,
    DELETABLE_STATES,
    GENERATE_ADVANCE,
    GENERATE_FINAL,
    NO_SELF_APPROVAL,
    PERIOD_CALCULATED,
    REJECT,
    SETTLEMENT_PERIOD_WORKFLOW,
    SUBMIT_FOR_REVIEW,
)

logger = get_logger("modules.lease_revenue.service")

MIN_YEAR = 1990
MAX_YEAR = 2100

SKIP_ALREADY_GENERATED = "already_generated"
SKIP_NOTHING_TO_SETTLE = "nothing_to_settle"
SKIP_BELOW_MATERIALITY = "below_materiality"


def build_period_key(
    year: int,
    period_type: PeriodType,
    advance_interval: AdvanceInterval | None = None,
    month: int | None = None,
) -> str:
    """e.g. ``2025-FINAL``, ``2025-ADVANCE-YEARLY``, ``2025-ADVANCE-MONTHLY-03``."""
    key = f"{year}-{period_type.value}"
    if advance_interval is not None:
        key += f"-{advance_interval.value}"
    if month is not None:
        key += f"-{month:02d}"
    return key


def validate_period_fields(
    year: int,
    period_type: PeriodType | str,
    advance_interval: AdvanceInterval | str | None = None,
    month: int | None = None,
) -> tuple[PeriodType, AdvanceInterval | None, int | None]:
    """
    Normalize and check the identifying fields of a period.

    Raises:
        InvalidPeriodError: unknown type or interval, year out of range,
            interval or index missing or superfluous.
    """
    if isinstance(year, bool) or not isinstance(year, int) or not MIN_YEAR <= year <= MAX_YEAR:
        raise InvalidPeriodError("year", year, f"must be between {MIN_YEAR} and {MAX_YEAR}")
    try:
        ptype = PeriodType(period_type)
    except ValueError:
        raise InvalidPeriodError("period_type", period_type, "must be ADVANCE or FINAL") from None

    if ptype == PeriodType.FINAL:
        if advance_interval is not None:
            raise InvalidPeriodError("advance_interval", advance_interval, "only ADVANCE periods have an interval")
        if month is not None:
            raise InvalidPeriodError("month", month, "only ADVANCE periods have a month or quarter")
        return ptype, None, None

    if advance_interval is None:
        raise InvalidPeriodError("advance_interval", None, "required for ADVANCE periods")
    try:
        interval = AdvanceInterval(advance_interval)
    except ValueError:
        raise InvalidPeriodError(
            "advance_interval", advance_interval, "must be YEARLY, QUARTERLY or MONTHLY"
        ) from None
    if interval == AdvanceInterval.YEARLY:
        if month is not None:
            raise InvalidPeriodError("month", month, "YEARLY advances have no month or quarter")
        return ptype, interval, None
    validate_interval_index(interval, month)
    return ptype, interval, month


def validate_revenue_sources(
    sources: Sequence[RevenueSourceInput],
) -> tuple[RevenueSourceInput, ...]:
    """
    Coerce amounts to Decimal and reject negative figures.

    Raises:
        InvalidRevenueInputError: a revenue or production value is negative
            or not a number.
    """
    checked = []
    for index, source in enumerate(sources):
        try:
            revenue = to_decimal(source.revenue_eur)
            production = (
                to_decimal(source.production_kwh) if source.production_kwh is not None else None
            )
        except ValueError:
            raise InvalidRevenueInputError(f"revenue_sources[{index}]", source) from None
        if revenue < ZERO:
            raise InvalidRevenueInputError(f"revenue_sources[{index}].revenue_eur", revenue)
        if production is not None and production < ZERO:
            raise InvalidRevenueInputError(f"revenue_sources[{index}].production_kwh", production)
        checked.append(RevenueSourceInput(source.category, revenue, production))
    return tuple(checked)


class LeaseRevenueService(BaseService[SettlementPeriodModel]):
    """
    Settlement calculations and the settlement period lifecycle.

    Contract
    --------
    * Reads and writes through ``self.session``; flushes, never commits.
    * Period methods take ``tenant_id``; a period of another tenant is
      reported as not found.
    * Returns frozen value objects, never ORM rows.

    Non-goals
    ---------
    * Does NOT authorize the actor; ``actor_id`` is trusted as given.
    * Does NOT render documents.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: LeaseRevenueConfig | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._config = config or LeaseRevenueConfig.from_active_config()

    @property
    def config(self) -> LeaseRevenueConfig:
        return self._config

    # =========================================================================
    # Master data
    # =========================================================================

    def _get_park(self, park_id: UUID, tenant_id: UUID) -> ParkModel:
        park = self.session.get(ParkModel, park_id)
        if park is None or park.tenant_id != tenant_id:
            raise ParkNotFoundError(park_id)
        return park

    def load_park_snapshot(self, park_id: UUID, tenant_id: UUID) -> ParkSnapshot:
        return self._get_park(park_id, tenant_id).to_snapshot()

    def load_lease_snapshots(self, park_id: UUID, tenant_id: UUID) -> tuple[LeaseSnapshot, ...]:
        """Active leases of the park, by lease number."""
        leases = self.session.execute(
            select(LeaseModel)
            .where(
                LeaseModel.park_id == park_id,
                LeaseModel.tenant_id == tenant_id,
                LeaseModel.status == LeaseStatus.ACTIVE.value,
            )
            .order_by(LeaseModel.lease_number)
        ).scalars().all()
        return tuple(lease.to_snapshot() for lease in leases)

    def load_articles(self, park_id: UUID, tenant_id: UUID) -> dict[ArticleType, SettlementArticle]:
        park = self._get_park(park_id, tenant_id)
        return resolve_articles(
            [a.to_dto() for a in park.articles],
            self._config.default_articles,
        )

    def load_tax_rates(self, tenant_id: UUID) -> dict[TaxType, Decimal]:
        """Configured defaults overlaid with the tenant's own rates."""
        rates = dict(self._config.tax_rates)
        rows = self.session.execute(
            select(TaxRateConfigModel).where(TaxRateConfigModel.tenant_id == tenant_id)
        ).scalars()
        for row in rows:
            rates[TaxType(row.tax_type)] = row.rate
        return rates

    def _energy_settlement(self, energy_settlement_id: UUID, tenant_id: UUID) -> EnergySettlementModel:
        settlement = self.session.get(EnergySettlementModel, energy_settlement_id)
        if settlement is None or settlement.tenant_id != tenant_id:
            raise EnergySettlementNotFoundError(energy_settlement_id)
        return settlement

    def resolve_revenue(self, tenant_id: UUID, options: CalculationOptions) -> Decimal:
        """Revenue figure by priority: override, energy settlement, stored figure."""
        if options.revenue_override is not None:
            revenue = to_decimal(options.revenue_override)
            source = "override"
        elif options.linked_energy_settlement_id is not None:
            revenue = self._energy_settlement(options.linked_energy_settlement_id, tenant_id).net_revenue
            source = "energy_settlement"
        elif options.fallback_revenue is not None:
            revenue = options.fallback_revenue
            source = "period"
        else:
            revenue = ZERO
            source = "none"
        if revenue < ZERO:
            raise InvalidRevenueInputError("total_revenue", revenue)
        logger.debug("settlement_revenue_resolved", extra={"source": source, "total_revenue": revenue})
        return revenue

    # =========================================================================
    # Calculation
    # =========================================================================

    def calculate_settlement(
        self,
        park_id: UUID,
        year: int,
        period_type: PeriodType | str,
        tenant_id: UUID,
        options: CalculationOptions | None = None,
    ) -> SettlementCalculation:
        """
        Allocate a park-year revenue figure over the park's active leases.

        Read-only.  A park without active leases yields an empty result.
        """
        if isinstance(year, bool) or not isinstance(year, int) or not MIN_YEAR <= year <= MAX_YEAR:
            raise InvalidPeriodError("year", year, f"must be between {MIN_YEAR} and {MAX_YEAR}")
        try:
            ptype = PeriodType(period_type)
        except ValueError:
            raise InvalidPeriodError("period_type", period_type, "must be ADVANCE or FINAL") from None

        park = self.load_park_snapshot(park_id, tenant_id)
        revenue = self.resolve_revenue(tenant_id, options or CalculationOptions())
        leases = self.load_lease_snapshots(park_id, tenant_id)
        return allocate(park, leases, revenue, year, ptype, self._config.home_country)

    # =========================================================================
    # Period lifecycle
    # =========================================================================

    def _get_period(self, period_id: UUID, tenant_id: UUID, lock: bool = False) -> SettlementPeriodModel:
        stmt = select(SettlementPeriodModel).where(SettlementPeriodModel.id == period_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        period = self.session.execute(stmt).scalar_one_or_none()
        if period is None or period.tenant_id != tenant_id:
            raise SettlementPeriodNotFoundError(period_id)
        return period

    def _check_transition(
        self,
        period: SettlementPeriodModel,
        action: str,
        actor_id: UUID,
        reason: str | None = None,
    ) -> Transition:
        """
        The workflow edge for ``action``, or the error explaining why not.

        Raises before anything is mutated.
        """
        status = period.status
        if SETTLEMENT_PERIOD_WORKFLOW.is_terminal(status):
            raise PeriodClosedError(period.id, status, action)
        transition = SETTLEMENT_PERIOD_WORKFLOW.find(status, action)
        if transition is None:
            raise InvalidTransitionError(
                period.id, status, action, SETTLEMENT_PERIOD_WORKFLOW.sources_for(action)
            )
        if transition.requires_reason and not (reason and reason.strip()):
            raise MissingReasonError(action)
        if transition.guard == NO_SELF_APPROVAL and period.created_by_id == actor_id:
            raise SelfApprovalError(period.id, actor_id)
        if transition.guard == PERIOD_CALCULATED and period.total_actual_rent is None:
            raise PeriodNotCalculatedError(period.id)
        return transition

    def _apply(self, period: SettlementPeriodModel, transition: Transition, actor_id: UUID) -> None:
        period.status = transition.to_state
        period.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "settlement_period_transition",
            extra={
                "period_id": period.id,
                "action": transition.action,
                "from_status": transition.from_state,
                "to_status": transition.to_state,
                "actor_id": actor_id,
            },
        )

    def create_period(
        self,
        *,
        tenant_id: UUID,
        park_id: UUID,
        year: int,
        period_type: PeriodType | str,
        actor_id: UUID,
        advance_interval: AdvanceInterval | str | None = None,
        month: int | None = None,
        total_revenue: Decimal | None = None,
        linked_energy_settlement_id: UUID | None = None,
        notes: str | None = None,
    ) -> SettlementPeriodInfo:
        """
        Open a new settlement period.

        Raises:
            InvalidPeriodError: bad identifying fields.
            InvalidRevenueInputError: negative ``total_revenue``.
            ParkNotFoundError / EnergySettlementNotFoundError.
            DuplicatePeriodError: the park already has this period.
        """
        ptype, interval, index = validate_period_fields(year, period_type, advance_interval, month)
        if total_revenue is not None:
            total_revenue = to_decimal(total_revenue)
            if total_revenue < ZERO:
                raise InvalidRevenueInputError("total_revenue", total_revenue)
        self._get_park(park_id, tenant_id)
        if linked_energy_settlement_id is not None:
            self._energy_settlement(linked_energy_settlement_id, tenant_id)

        key = build_period_key(year, ptype, interval, index)
        if self._period_exists(tenant_id, park_id, key):
            raise DuplicatePeriodError(park_id, key)

        period = SettlementPeriodModel(
            tenant_id=tenant_id,
            park_id=park_id,
            year=year,
            period_type=ptype.value,
            advance_interval=interval.value if interval else None,
            month=index,
            period_key=key,
            status=SETTLEMENT_PERIOD_WORKFLOW.initial_state,
            total_revenue=total_revenue,
            linked_energy_settlement_id=linked_energy_settlement_id,
            notes=notes,
            created_by_id=actor_id,
        )
        self.session.add(period)
        self.session.flush()
        logger.info(
            "settlement_period_created",
            extra={"period_id": period.id, "park_id": park_id, "period_key": key},
        )
        return period.to_dto()

    def _period_exists(self, tenant_id: UUID, park_id: UUID, key: str) -> bool:
        return self.session.execute(
            select(SettlementPeriodModel.id).where(
                SettlementPeriodModel.tenant_id == tenant_id,
                SettlementPeriodModel.park_id == park_id,
                SettlementPeriodModel.period_key == key,
            )
        ).first() is not None

    def bulk_create_periods(
        self,
        *,
        tenant_id: UUID,
        park_id: UUID,
        year: int,
        advance_interval: AdvanceInterval | str,
        actor_id: UUID,
        include_final: bool = True,
    ) -> BulkCreateResult:
        """
        All advance periods of a year (12 monthly or 4 quarterly), plus the
        final period if asked.  Periods that already exist are skipped.
        """
        try:
            interval = AdvanceInterval(advance_interval)
        except ValueError:
            raise InvalidPeriodError(
                "advance_interval", advance_interval, "must be QUARTERLY or MONTHLY"
            ) from None
        if interval == AdvanceInterval.YEARLY:
            raise InvalidPeriodError("advance_interval", interval.value, "bulk creation needs QUARTERLY or MONTHLY")

        count = 12 if interval == AdvanceInterval.MONTHLY else 4
        specs: list[tuple[PeriodType, AdvanceInterval | None, int | None]] = [
            (PeriodType.ADVANCE, interval, index) for index in range(1, count + 1)
        ]
        if include_final:
            specs.append((PeriodType.FINAL, None, None))

        created: list[SettlementPeriodInfo] = []
        skipped: list[str] = []
        for ptype, spec_interval, index in specs:
            key = build_period_key(year, ptype, spec_interval, index)
            if self._period_exists(tenant_id, park_id, key):
                skipped.append(key)
                continue
            created.append(
                self.create_period(
                    tenant_id=tenant_id,
                    park_id=park_id,
                    year=year,
                    period_type=ptype,
                    actor_id=actor_id,
                    advance_interval=spec_interval,
                    month=index,
                )
            )
        logger.info(
            "settlement_periods_bulk_created",
            extra={
                "park_id": park_id,
                "year": year,
                "created_count": len(created),
                "skipped_count": len(skipped),
            },
        )
        return BulkCreateResult(created=tuple(created), skipped_keys=tuple(skipped))

    def _options_for(self, period: SettlementPeriodModel, override: Decimal | None) -> CalculationOptions:
        return CalculationOptions(
            revenue_override=override,
            linked_energy_settlement_id=period.linked_energy_settlement_id,
            fallback_revenue=period.total_revenue,
        )

    def _store_totals(self, period: SettlementPeriodModel, calculation: SettlementCalculation) -> None:
        period.total_revenue = calculation.total_revenue
        period.total_minimum_rent = calculation.total_minimum_rent
        period.total_actual_rent = calculation.total_payment
        period.used_minimum = calculation.used_minimum

    def calculate_period(
        self,
        period_id: UUID,
        tenant_id: UUID,
        actor_id: UUID,
        revenue_override: Decimal | None = None,
    ) -> SettlementCalculation:
        """Run the calculation and store its totals on the period (-> CALCULATED)."""
        period = self._get_period(period_id, tenant_id, lock=True)
        transition = self._check_transition(period, CALCULATE, actor_id)
        calculation = self.calculate_settlement(
            period.park_id,
            period.year,
            period.period_type,
            tenant_id,
            self._options_for(period, revenue_override),
        )
        self._store_totals(period, calculation)
        self._apply(period, transition, actor_id)
        return calculation

    def submit_for_review(self, period_id: UUID, tenant_id: UUID, actor_id: UUID) -> SettlementPeriodInfo:
        """Hand the period to a reviewer; any earlier review outcome is cleared."""
        period = self._get_period(period_id, tenant_id, lock=True)
        transition = self._check_transition(period, SUBMIT_FOR_REVIEW, actor_id)
        period.reviewed_by_id = None
        period.review_notes = None
        period.reviewed_at = None
        self._apply(period, transition, actor_id)
        return period.to_dto()

    def review_period(
        self,
        period_id: UUID,
        tenant_id: UUID,
        actor_id: UUID,
        action: ReviewAction | str,
        notes: str | None = None,
    ) -> SettlementPeriodInfo:
        """
        Approve or reject a period in PENDING_REVIEW.

        Approval needs a reviewer other than the creator; rejection needs
        notes and sends the period back to IN_PROGRESS.

        Raises:
            InvalidReviewActionError: ``action`` is neither approve nor reject.
            InvalidTransitionError: period is not in PENDING_REVIEW.
            PeriodClosedError: period is CLOSED or CANCELLED.
            SelfApprovalError: ``actor_id`` created the period.
            MissingReasonError: reject without notes.
        """
        try:
            review_action = ReviewAction(action)
        except ValueError:
            raise InvalidReviewActionError(str(action)) from None

        period = self._get_period(period_id, tenant_id, lock=True)
        workflow_action = APPROVE if review_action == ReviewAction.APPROVE else REJECT
        transition = self._check_transition(period, workflow_action, actor_id, reason=notes)

        period.reviewed_by_id = actor_id
        period.reviewed_at = self._clock.now()
        period.review_notes = notes.strip() if notes and notes.strip() else None
        self._apply(period, transition, actor_id)
        logger.info(
            "settlement_period_reviewed",
            extra={"period_id": period.id, "review_action": review_action.value, "reviewer_id": actor_id},
        )
        return period.to_dto()

    def close_period(self, period_id: UUID, tenant_id: UUID, actor_id: UUID) -> SettlementPeriodInfo:
        period = self._get_period(period_id, tenant_id, lock=True)
        transition = self._check_transition(period, CLOSE, actor_id)
        self._apply(period, transition, actor_id)
        return period.to_dto()

    def cancel_period(
        self,
        period_id: UUID,
        tenant_id: UUID,
        actor_id: UUID,
        reason: str,
    ) -> SettlementPeriodInfo:
        """Cancel a started period.  Issued credit notes are left as they are."""
        period = self._get_period(period_id, tenant_id, lock=True)
        transition = self._check_transition(period, CANCEL, actor_id, reason=reason)
        period.cancel_reason = reason.strip()
        period.cancelled_at = self._clock.now()
        self._apply(period, transition, actor_id)
        return period.to_dto()

    def delete_period(self, period_id: UUID, tenant_id: UUID, actor_id: UUID) -> None:
        """Delete a period that was never worked on (OPEN only)."""
        period = self._get_period(period_id, tenant_id, lock=True)
        if SETTLEMENT_PERIOD_WORKFLOW.is_terminal(period.status):
            raise PeriodClosedError(period.id, period.status, "delete")
        if period.status not in DELETABLE_STATES:
            raise InvalidTransitionError(period.id, period.status, "delete", DELETABLE_STATES)
        self.session.delete(period)
        self.session.flush()
        logger.info(
            "settlement_period_deleted",
            extra={"period_id": period_id, "period_key": period.period_key, "actor_id": actor_id},
        )

    def get_period(self, period_id: UUID, tenant_id: UUID) -> SettlementPeriodInfo:
        return self._get_period(period_id, tenant_id).to_dto()

    def get_period_detail(self, period_id: UUID, tenant_id: UUID) -> PeriodDetail:
        """The period with its credit notes, cancellations and revenue breakdown."""
        period = self._get_period(period_id, tenant_id)
        invoices = self.session.execute(
            select(InvoiceModel)
            .where(InvoiceModel.settlement_period_id == period.id)
            .order_by(InvoiceModel.invoice_number)
        ).scalars().all()
        return PeriodDetail(
            period=period.to_dto(),
            invoices=tuple(i.to_summary() for i in invoices),
            revenue_sources=tuple(s.to_dto() for s in period.revenue_sources),
        )

    # =========================================================================
    # Credit-note generation
    # =========================================================================

    @staticmethod
    def generation_action(period_type: PeriodType | str) -> str:
        return GENERATE_ADVANCE if PeriodType(period_type) == PeriodType.ADVANCE else GENERATE_FINAL

    def _live_credit_note_leases(self, period_id: UUID) -> set[UUID]:
        rows = self.session.execute(
            select(InvoiceModel.lease_id).where(
                InvoiceModel.settlement_period_id == period_id,
                InvoiceModel.invoice_type == InvoiceType.CREDIT_NOTE.value,
                InvoiceModel.status != InvoiceStatus.CANCELLED.value,
            )
        ).scalars()
        return {lease_id for lease_id in rows if lease_id is not None}

    def _replace_revenue_sources(
        self,
        period: SettlementPeriodModel,
        sources: tuple[RevenueSourceInput, ...],
        actor_id: UUID,
    ) -> None:
        period.revenue_sources.clear()
        self.session.flush()
        period.revenue_sources.extend(
            RevenueSourceModel.from_dto(source, position, actor_id)
            for position, source in enumerate(sources, start=1)
        )
        self.session.flush()

    def load_advance_items(
        self,
        tenant_id: UUID,
        lease_id: UUID,
        park_id: UUID,
        year: int,
    ) -> tuple[IssuedItem, ...]:
        """Items of every live advance credit note issued to the lease in ``year``."""
        invoices = self.session.execute(
            select(InvoiceModel)
            .join(SettlementPeriodModel, InvoiceModel.settlement_period_id == SettlementPeriodModel.id)
            .where(
                InvoiceModel.tenant_id == tenant_id,
                InvoiceModel.lease_id == lease_id,
                InvoiceModel.invoice_type == InvoiceType.CREDIT_NOTE.value,
                InvoiceModel.status != InvoiceStatus.CANCELLED.value,
                SettlementPeriodModel.park_id == park_id,
                SettlementPeriodModel.year == year,
                SettlementPeriodModel.period_type == PeriodType.ADVANCE.value,
            )
            .order_by(InvoiceModel.invoice_date, InvoiceModel.invoice_number)
        ).scalars().all()
        return tuple(item for invoice in invoices for item in invoice.issued_items())

    def prepare_generation(
        self,
        period_id: UUID,
        tenant_id: UUID,
        actor_id: UUID,
        invoice_date: date | None = None,
        revenue_sources: Sequence[RevenueSourceInput] | None = None,
    ) -> GenerationPlan:
        """
        Recalculate the period and build one draft per lease still owed a
        credit note.

        Supplied ``revenue_sources`` replace the stored breakdown and their
        sum becomes the revenue figure.  The recalculated totals are stored
        on the period.  Leases that already have a live credit note for the
        period are skipped, which makes a re-run after a partial failure
        pick up only what is missing.

        Raises:
            PeriodStateError subclasses when the period cannot generate.
            InvalidRevenueInputError for negative revenue figures.
        """
        period = self._get_period(period_id, tenant_id, lock=True)
        action = self.generation_action(period.period_type)
        self._check_transition(period, action, actor_id)

        override = None
        if revenue_sources is not None:
            checked = validate_revenue_sources(revenue_sources)
            self._replace_revenue_sources(period, checked, actor_id)
            override = sum((s.revenue_eur for s in checked), ZERO)

        calculation = self.calculate_settlement(
            period.park_id,
            period.year,
            period.period_type,
            tenant_id,
            self._options_for(period, override),
        )
        self._store_totals(period, calculation)
        self.session.flush()

        park = self.load_park_snapshot(period.park_id, tenant_id)
        leases = {lease.id: lease for lease in self.load_lease_snapshots(period.park_id, tenant_id)}
        articles = self.load_articles(period.park_id, tenant_id)
        tax_rates = self.load_tax_rates(tenant_id)
        issued = self._live_credit_note_leases(period.id)
        issue_date = invoice_date or self._clock.today()

        drafts: list[CreditNoteDraft] = []
        skipped: list[SkippedLease] = []
        failures: list[LeaseFailure] = []
        for allocation in calculation.leases:
            if allocation.lease_id in issued:
                skipped.append(SkippedLease(allocation.lease_id, allocation.lease_number, SKIP_ALREADY_GENERATED))
                continue
            lease = leases[allocation.lease_id]
            payment_day = lease.payment_day or park.default_payment_day or self._config.default_payment_day
            try:
                if action == GENERATE_ADVANCE:
                    draft = build_advance_credit_note(
                        allocation,
                        park_name=park.name,
                        year=period.year,
                        interval=AdvanceInterval(period.advance_interval),
                        index=period.month,
                        invoice_date=issue_date,
                        payment_day=payment_day,
                        articles=articles,
                        tax_rates=tax_rates,
                    )
                else:
                    draft = build_final_credit_note(
                        allocation,
                        park_name=park.name,
                        year=period.year,
                        advance_items=self.load_advance_items(
                            tenant_id, allocation.lease_id, period.park_id, period.year
                        ),
                        invoice_date=issue_date,
                        payment_day=payment_day,
                        articles=articles,
                        tax_rates=tax_rates,
                    )
            except SettlementKernelError as exc:
                logger.warning(
                    "credit_note_build_failed",
                    extra={"lease_id": allocation.lease_id, "error_code": exc.code},
                )
                failures.append(LeaseFailure(allocation.lease_id, exc.code, str(exc), allocation.lease_number))
                continue

            if draft is None:
                skipped.append(SkippedLease(allocation.lease_id, allocation.lease_number, SKIP_NOTHING_TO_SETTLE))
            elif abs(draft.net_amount) < self._config.materiality_threshold:
                skipped.append(SkippedLease(allocation.lease_id, allocation.lease_number, SKIP_BELOW_MATERIALITY))
            else:
                drafts.append(draft)

        logger.info(
            "credit_note_generation_prepared",
            extra={
                "period_id": period.id,
                "action": action,
                "draft_count": len(drafts),
                "skipped_count": len(skipped),
                "failure_count": len(failures),
                "warning_count": len(calculation.warnings),
            },
        )
        return GenerationPlan(
            period=period.to_dto(),
            action=action,
            calculation=calculation,
            invoice_date=issue_date,
            drafts=tuple(drafts),
            skipped=tuple(skipped),
            failures=tuple(failures),
        )

    def _verify_balanced(self, invoice: InvoiceModel) -> None:
        net = sum((i.net_amount for i in invoice.items), ZERO)
        tax = sum((i.tax_amount for i in invoice.items), ZERO)
        if invoice.net_amount != net:
            raise UnbalancedInvoiceError(invoice.invoice_number, "net_amount", invoice.net_amount, net)
        if invoice.tax_amount != tax:
            raise UnbalancedInvoiceError(invoice.invoice_number, "tax_amount", invoice.tax_amount, tax)
        if invoice.gross_amount != net + tax:
            raise UnbalancedInvoiceError(invoice.invoice_number, "gross_amount", invoice.gross_amount, net + tax)

    def persist_credit_note(
        self,
        period_id: UUID,
        tenant_id: UUID,
        draft: CreditNoteDraft,
        invoice_number: str,
        actor_id: UUID,
    ) -> InvoiceSummary | None:
        """
        Write one credit note (header and items).

        Returns None when the lease got a live credit note for this period
        in the meantime.  The period row is locked, so two concurrent runs
        cannot both write one.
        """
        period = self._get_period(period_id, tenant_id, lock=True)
        self._check_transition(period, self.generation_action(period.period_type), actor_id)
        if draft.lease_id in self._live_credit_note_leases(period.id):
            logger.info(
                "credit_note_already_exists",
                extra={"period_id": period.id, "lease_id": draft.lease_id},
            )
            return None

        invoice = InvoiceModel.from_draft(
            draft,
            tenant_id=tenant_id,
            invoice_number=invoice_number,
            created_by_id=actor_id,
            settlement_period_id=period.id,
            park_id=period.park_id,
        )
        self.session.add(invoice)
        self.session.flush()
        self._verify_balanced(invoice)
        logger.info(
            "credit_note_created",
            extra={
                "invoice_id": invoice.id,
                "invoice_number": invoice.invoice_number,
                "lease_id": draft.lease_id,
                "period_id": period.id,
                "item_count": len(invoice.items),
                "net_amount": invoice.net_amount,
                "gross_amount": invoice.gross_amount,
            },
        )
        return invoice.to_summary()

    def mark_credit_notes_generated(
        self,
        period_id: UUID,
        tenant_id: UUID,
        actor_id: UUID,
    ) -> SettlementPeriodInfo:
        """Advance the period after a run wrote at least one credit note."""
        period = self._get_period(period_id, tenant_id, lock=True)
        transition = self._check_transition(period, self.generation_action(period.period_type), actor_id)
        self._apply(period, transition, actor_id)
        return period.to_dto()

    # =========================================================================
    # Cancellation of issued credit notes
    # =========================================================================

    def cancel_invoice(
        self,
        invoice_id: UUID,
        tenant_id: UUID,
        actor_id: UUID,
        reason: str,
        invoice_date: date | None = None,
        number_service: InvoiceNumberService | None = None,
    ) -> InvoiceSummary:
        """
        Cancel a credit note by issuing a mirrored CANCELLATION document.

        The original is marked CANCELLED and stops counting as issued: a
        later generation run writes a fresh credit note for its lease, and
        a cancelled advance is no longer deducted in the final settlement.

        Raises:
            MissingReasonError: empty ``reason``.
            InvoiceNotFoundError / InvoiceAlreadyCancelledError /
            InvoiceNotCancellableError.
            PeriodClosedError: the invoice's period is CLOSED or CANCELLED.
        """
        if not (reason and reason.strip()):
            raise MissingReasonError("cancel an invoice of")
        invoice = self.session.get(InvoiceModel, invoice_id)
        if invoice is None or invoice.tenant_id != tenant_id:
            raise InvoiceNotFoundError(invoice_id)
        if invoice.status == InvoiceStatus.CANCELLED.value:
            raise InvoiceAlreadyCancelledError(invoice.invoice_number)
        if invoice.invoice_type != InvoiceType.CREDIT_NOTE.value:
            raise InvoiceNotCancellableError(invoice.invoice_number, "only credit notes can be cancelled")
        if invoice.settlement_period_id is not None:
            period = self._get_period(invoice.settlement_period_id, tenant_id, lock=True)
            if SETTLEMENT_PERIOD_WORKFLOW.is_terminal(period.status):
                raise PeriodClosedError(period.id, period.status, "cancel an invoice of")

        issue_date = invoice_date or self._clock.today()
        draft = build_cancellation(
            original_invoice_id=invoice.id,
            original_number=invoice.invoice_number,
            lease_id=invoice.lease_id,
            recipient_name=invoice.recipient_name,
            recipient_address=invoice.recipient_address,
            service_start_date=invoice.service_start_date or issue_date,
            service_end_date=invoice.service_end_date or issue_date,
            items=invoice.issued_items(),
            invoice_date=issue_date,
            reason=reason.strip(),
        )
        numbers = number_service or InvoiceNumberService(self.session, self._config.number_formats)
        number = numbers.get_next_invoice_numbers(
            tenant_id, DocumentType.CANCELLATION, 1, year=issue_date.year
        )[0]

        cancellation = InvoiceModel.from_draft(
            draft,
            tenant_id=tenant_id,
            invoice_number=number,
            created_by_id=actor_id,
            settlement_period_id=invoice.settlement_period_id,
            park_id=invoice.park_id,
        )
        self.session.add(cancellation)
        invoice.status = InvoiceStatus.CANCELLED.value
        invoice.cancelled_at = self._clock.now()
        invoice.cancel_reason = reason.strip()
        invoice.updated_by_id = actor_id
        self.session.flush()
        self._verify_balanced(cancellation)
        logger.info(
            "credit_note_cancelled",
            extra={
                "invoice_id": invoice.id,
                "invoice_number": invoice.invoice_number,
                "cancellation_number": number,
                "net_amount": round_money(invoice.net_amount),
            },
        )
        return cancellation.to_summary()


__all__ = [
    "LeaseRevenueService",
    "build_period_key",
    "validate_period_fields",
    "validate_revenue_sources",
    "SKIP_ALREADY_GENERATED",
    "SKIP_BELOW_MATERIALITY",
    "SKIP_NOTHING_TO_SETTLE",
]
