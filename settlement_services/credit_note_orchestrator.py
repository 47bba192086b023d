"""
settlement_services.credit_note_orchestrator -- Credit-note generation runs.

Responsibility:
    Turns a generation request for a settlement period into credit notes,
    one database transaction per document, and reports what happened as a
    structured ``GenerationResult``.  Also wraps the review decision and
    the period detail read in their own transactions.

Architecture position:
    Services -- owns transaction boundaries.  Composes
    ``LeaseRevenueService`` (module facade, flush-only) and the kernel
    ``InvoiceNumberService``.  Takes a session factory, not a session:
    every phase of a run opens its own ``session_scope``.

Invariants enforced:
    - A run has three phases, each committed on its own:
        1. plan: guard the period, recalculate, build drafts, reserve one
           invoice number per draft;
        2. write: one transaction per credit note (header plus items);
        3. advance: move the period to ADVANCE_CREATED / SETTLED if at
           least one credit note was written.
    - A failed credit note rolls back only itself.  Documents already
      written stay; the failure is reported with its lease id.
    - Re-running after a partial failure writes only the missing credit
      notes (leases with a live credit note are skipped).
    - Reserved numbers of failed or skipped drafts are not reused.

Failure modes:
    - Guard or validation error in phase 1 -> status REJECTED with the
      error code; nothing is written.
    - SettlementKernelError or SQLAlchemyError in phase 2 -> recorded per
      lease; the run continues.

Audit relevance:
    Every run binds ``correlation_id``, ``actor_id``, ``tenant_id`` and
    ``period_id`` into the log context; each credit-note transaction adds
    ``lease_id``.  Start, per-document outcome and completion are logged.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from settlement_kernel.db.engine import session_scope
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.exceptions import SettlementKernelError
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.services.invoice_number_service import (
    DocumentType,
    InvoiceNumberService,
)
from settlement_modules.lease_revenue.config import LeaseRevenueConfig
from settlement_modules.lease_revenue.models import (
    GenerationPlan,
    InvoiceSummary,
    LeaseFailure,
    PeriodDetail,
    ReviewAction,
    RevenueSourceInput,
    SkippedLease,
)
from settlement_modules.lease_revenue.service import (
    SKIP_ALREADY_GENERATED,
    LeaseRevenueService,
)
from settlement_services._generation_types import (
    GenerationResult,
    GenerationStatus,
    ReviewResult,
)

logger = get_logger("services.credit_notes")

DATABASE_ERROR_CODE = "DATABASE_ERROR"


class CreditNoteOrchestrator:
    """
    Runs credit-note generation for settlement periods.

    Contract:
        Receives a session factory, a clock and the module configuration
        via constructor injection.  Without a configuration the active
        YAML set is loaded once, at construction.
    Guarantees:
        - ``request_invoice_generation`` never raises for guard, validation
          or per-lease errors; they come back in the result.
        - Each credit note is committed on its own.
    Non-goals:
        - Does not authorize the actor.
        - Does not retry failed leases itself; callers re-run the request.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        config: LeaseRevenueConfig | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._config = config or LeaseRevenueConfig.from_active_config()

    def _service(self, session: Session) -> LeaseRevenueService:
        return LeaseRevenueService(session, clock=self._clock, config=self._config)

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def request_invoice_generation(
        self,
        period_id: UUID,
        tenant_id: UUID,
        actor_id: UUID,
        invoice_date: date | None = None,
        revenue_sources: Sequence[RevenueSourceInput] | None = None,
    ) -> GenerationResult:
        """
        Generate the advance or final credit notes of a period.

        The period type decides the mode.  ``revenue_sources`` replace the
        period's revenue breakdown; their sum becomes the revenue figure.
        """
        correlation_id = str(uuid4())
        with LogContext.bind(
            correlation_id=correlation_id,
            actor_id=actor_id,
            tenant_id=tenant_id,
            period_id=period_id,
        ):
            logger.info(
                "credit_note_generation_started",
                extra={"invoice_date": invoice_date, "has_revenue_sources": revenue_sources is not None},
            )
            try:
                plan, numbers = self._plan(period_id, tenant_id, actor_id, invoice_date, revenue_sources)
            except SettlementKernelError as exc:
                logger.warning(
                    "credit_note_generation_rejected",
                    extra={"error_code": exc.code, "reason": str(exc)},
                )
                return GenerationResult(
                    period_id=period_id,
                    status=GenerationStatus.REJECTED,
                    correlation_id=correlation_id,
                    error_code=exc.code,
                    message=str(exc),
                )

            created, skipped, failures = self._write_all(plan, numbers, tenant_id, actor_id)
            period_status = plan.period.status
            if created:
                period_status = self._advance_period(period_id, tenant_id, actor_id) or period_status

            status = GenerationStatus.derive(len(created), len(failures))
            logger.info(
                "credit_note_generation_completed",
                extra={
                    "status": status.value,
                    "created_count": len(created),
                    "skipped_count": len(skipped),
                    "failure_count": len(failures),
                    "period_status": period_status,
                },
            )
            return GenerationResult(
                period_id=period_id,
                status=status,
                correlation_id=correlation_id,
                created=tuple(created),
                skipped=tuple(skipped),
                failures=tuple(failures),
                period_status=period_status,
                warnings=plan.calculation.warnings,
                message=_summary_message(status, len(created), len(skipped), len(failures)),
            )

    def _plan(
        self,
        period_id: UUID,
        tenant_id: UUID,
        actor_id: UUID,
        invoice_date: date | None,
        revenue_sources: Sequence[RevenueSourceInput] | None,
    ) -> tuple[GenerationPlan, tuple[str, ...]]:
        """Phase 1: drafts plus one reserved number per draft, committed together."""
        with session_scope(self._session_factory) as session:
            plan = self._service(session).prepare_generation(
                period_id,
                tenant_id,
                actor_id,
                invoice_date=invoice_date,
                revenue_sources=revenue_sources,
            )
            if not plan.drafts:
                return plan, ()
            batch = InvoiceNumberService(session, self._config.number_formats).get_next_invoice_numbers(
                tenant_id,
                DocumentType.CREDIT_NOTE,
                len(plan.drafts),
                year=plan.invoice_date.year,
            )
            return plan, batch.numbers

    def _write_all(
        self,
        plan: GenerationPlan,
        numbers: tuple[str, ...],
        tenant_id: UUID,
        actor_id: UUID,
    ) -> tuple[list[InvoiceSummary], list[SkippedLease], list[LeaseFailure]]:
        """Phase 2: one transaction per credit note."""
        created: list[InvoiceSummary] = []
        skipped = list(plan.skipped)
        failures = list(plan.failures)

        for draft, number in zip(plan.drafts, numbers, strict=True):
            allocation = plan.calculation.lease(draft.lease_id)
            lease_number = allocation.lease_number if allocation else None
            with LogContext.bind(lease_id=draft.lease_id):
                try:
                    with session_scope(self._session_factory) as session:
                        summary = self._service(session).persist_credit_note(
                            plan.period.id, tenant_id, draft, number, actor_id
                        )
                except SettlementKernelError as exc:
                    logger.warning(
                        "credit_note_write_failed",
                        extra={"error_code": exc.code, "invoice_number": number},
                    )
                    failures.append(LeaseFailure(draft.lease_id, exc.code, str(exc), lease_number))
                    continue
                except SQLAlchemyError as exc:
                    logger.error(
                        "credit_note_write_failed",
                        extra={"error_code": DATABASE_ERROR_CODE, "invoice_number": number},
                        exc_info=True,
                    )
                    failures.append(LeaseFailure(draft.lease_id, DATABASE_ERROR_CODE, str(exc), lease_number))
                    continue

            if summary is None:
                skipped.append(SkippedLease(draft.lease_id, lease_number or "", SKIP_ALREADY_GENERATED))
            else:
                created.append(summary)
        return created, skipped, failures

    def _advance_period(self, period_id: UUID, tenant_id: UUID, actor_id: UUID):
        """Phase 3: move the period forward; the written documents stand either way."""
        try:
            with session_scope(self._session_factory) as session:
                return self._service(session).mark_credit_notes_generated(
                    period_id, tenant_id, actor_id
                ).status
        except SettlementKernelError as exc:
            logger.warning(
                "settlement_period_not_advanced",
                extra={"error_code": exc.code, "reason": str(exc)},
            )
            return None

    # ------------------------------------------------------------------
    # Review and reads
    # ------------------------------------------------------------------

    def review_period(
        self,
        period_id: UUID,
        tenant_id: UUID,
        actor_id: UUID,
        action: ReviewAction | str,
        notes: str | None = None,
    ) -> ReviewResult:
        """Approve or reject; guard failures come back as an unsuccessful result."""
        with LogContext.bind(actor_id=actor_id, tenant_id=tenant_id, period_id=period_id):
            try:
                with session_scope(self._session_factory) as session:
                    info = self._service(session).review_period(
                        period_id, tenant_id, actor_id, action, notes
                    )
            except SettlementKernelError as exc:
                logger.warning(
                    "settlement_period_review_rejected",
                    extra={"error_code": exc.code, "reason": str(exc)},
                )
                return ReviewResult(
                    period_id=period_id,
                    success=False,
                    error_code=exc.code,
                    message=str(exc),
                )
            return ReviewResult(period_id=period_id, success=True, period=info)

    def cancel_credit_note(
        self,
        invoice_id: UUID,
        tenant_id: UUID,
        actor_id: UUID,
        reason: str,
        invoice_date: date | None = None,
    ) -> InvoiceSummary:
        """Issue a cancellation for a credit note in its own transaction."""
        with LogContext.bind(actor_id=actor_id, tenant_id=tenant_id):
            with session_scope(self._session_factory) as session:
                return self._service(session).cancel_invoice(
                    invoice_id, tenant_id, actor_id, reason, invoice_date=invoice_date
                )

    def get_period_detail(self, period_id: UUID, tenant_id: UUID) -> PeriodDetail:
        with session_scope(self._session_factory) as session:
            return self._service(session).get_period_detail(period_id, tenant_id)


def _summary_message(status: GenerationStatus, created: int, skipped: int, failed: int) -> str:
    if status == GenerationStatus.NO_OP:
        return f"No credit notes to create ({skipped} lease(s) skipped)"
    return f"{created} credit note(s) created, {skipped} skipped, {failed} failed"
