"""
Lease Revenue Settlement Module (``settlement_modules.lease_revenue``).

Responsibility
--------------
Yearly land-lease billing of a wind park: allocation of the park's revenue
to leases and parcels under a revenue-share model with a guaranteed
minimum, advance installments, year-end final settlement that nets out
every advance, and the settlement period lifecycle around it.

Architecture position
---------------------
**Modules layer** -- pure calculators (``tax``, ``calculations``,
``installments``, ``credit_notes``), a declarative workflow, ORM models
and ``LeaseRevenueService`` as the facade.  Invoice numbers come from the
kernel ``InvoiceNumberService``.

Invariants enforced
-------------------
* Per lease: payment = max(revenue share, minimum rent) + special
  compensation.
* Final credit note net = yearly allocation - sum of advance nets.
* Header totals equal item sums, to the cent.
* CLOSED and CANCELLED periods accept no changes.

Failure modes
-------------
* Typed ``SettlementKernelError`` subclasses; see ``settlement_kernel.exceptions``.
* Data-quality problems (missing rates, share percentages not summing to
  100) are logged as warnings and carried on the calculation result.

Audit relevance
---------------
Every transition, credit note and cancellation is logged with the actor;
deductions reference the advance items they net out.
"""

from settlement_modules.lease_revenue.config import LeaseRevenueConfig
from settlement_modules.lease_revenue.models import (
    AdvanceInterval,
    AreaType,
    ArticleType,
    CalculationOptions,
    CreditNoteDraft,
    GenerationPlan,
    LeaseAllocation,
    PeriodDetail,
    PeriodStatus,
    PeriodType,
    ReviewAction,
    RevenueSourceInput,
    SettlementCalculation,
    SettlementPeriodInfo,
)
from settlement_modules.lease_revenue.service import LeaseRevenueService
from settlement_modules.lease_revenue.workflows import SETTLEMENT_PERIOD_WORKFLOW

__all__ = [
    "AdvanceInterval",
    "AreaType",
    "ArticleType",
    "CalculationOptions",
    "CreditNoteDraft",
    "GenerationPlan",
    "LeaseAllocation",
    "LeaseRevenueConfig",
    "LeaseRevenueService",
    "PeriodDetail",
    "PeriodStatus",
    "PeriodType",
    "ReviewAction",
    "RevenueSourceInput",
    "SETTLEMENT_PERIOD_WORKFLOW",
    "SettlementCalculation",
    "SettlementPeriodInfo",
]
