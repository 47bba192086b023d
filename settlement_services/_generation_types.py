"""
settlement_services._generation_types -- DTOs for the credit-note orchestrator.

Responsibility:
    Frozen result types returned to callers of the generation orchestrator:
    the outcome of a generation run and the outcome of a review decision.

Architecture position:
    Services -- these types live here because the orchestrator that
    produces them lives here.  They carry module value objects
    (``InvoiceSummary``, ``SkippedLease``, ``LeaseFailure``) unchanged.

Invariants enforced:
    - All DTOs are frozen dataclasses.
    - ``GenerationResult.status`` is derived from what happened, never set
      independently: see ``GenerationStatus.derive``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from settlement_modules.lease_revenue.models import (
    InvoiceSummary,
    LeaseFailure,
    PeriodStatus,
    SettlementPeriodInfo,
    SkippedLease,
)


class GenerationStatus(str, Enum):
    """Outcome of one generation request."""
    CREATED = "CREATED"  # every drafted credit note was written
    PARTIAL = "PARTIAL"  # some written, some failed
    FAILED = "FAILED"  # nothing written, at least one lease failed
    NO_OP = "NO_OP"  # nothing to write
    REJECTED = "REJECTED"  # period or input refused before any work

    @classmethod
    def derive(cls, created: int, failed: int) -> GenerationStatus:
        if created and failed:
            return cls.PARTIAL
        if created:
            return cls.CREATED
        if failed:
            return cls.FAILED
        return cls.NO_OP


@dataclass(frozen=True)
class GenerationResult:
    """Return type of ``CreditNoteOrchestrator.request_invoice_generation``."""
    period_id: UUID
    status: GenerationStatus
    correlation_id: str
    created: tuple[InvoiceSummary, ...] = ()
    skipped: tuple[SkippedLease, ...] = ()
    failures: tuple[LeaseFailure, ...] = ()
    period_status: PeriodStatus | None = None
    warnings: tuple[str, ...] = ()
    error_code: str | None = None
    message: str = ""

    @property
    def is_success(self) -> bool:
        return self.status in (GenerationStatus.CREATED, GenerationStatus.NO_OP)

    @property
    def created_count(self) -> int:
        return len(self.created)


@dataclass(frozen=True)
class ReviewResult:
    """Return type of ``CreditNoteOrchestrator.review_period``."""
    period_id: UUID
    success: bool
    period: SettlementPeriodInfo | None = None
    error_code: str | None = None
    message: str = ""
