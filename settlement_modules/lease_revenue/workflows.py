"""
Settlement Period Workflow (``settlement_modules.lease_revenue.workflows``).

Responsibility
--------------
Declares the state machine of a settlement period: calculation, advance
and final credit-note generation, the four-eyes review, closing and
cancelling.  Guards name the preconditions the period service checks
before a transition fires.

Architecture position
---------------------
**Modules layer** -- declarative workflow definition.  Imports the
canonical Guard, Transition, Workflow from ``settlement_kernel.domain.workflow``.
Evaluated by ``LeaseRevenueService`` on every status change.

Invariants enforced
-------------------
* CLOSED and CANCELLED are terminal; no transition leaves them.
* ``reject`` and ``cancel`` require a reason.
* Periods in review (PENDING_REVIEW, APPROVED) accept no new documents.
* Only OPEN periods may be deleted.

Failure modes
-------------
* Malformed definition (unknown state, edge out of a terminal state)
  raises ``ValueError`` at import time.

Audit relevance
---------------
The workflow definition is logged at module-load time with its state and
transition counts.
"""

from settlement_kernel.domain.workflow import Guard, Transition, Workflow
from settlement_kernel.logging_config import get_logger
from settlement_modules.lease_revenue.models import PeriodStatus

logger = get_logger("modules.lease_revenue.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

PERIOD_CALCULATED = Guard(
    name="period_calculated",
    description="Period totals were calculated before final credit notes are built",
)

NO_SELF_APPROVAL = Guard(
    name="no_self_approval",
    description="The approver is not the user who created the period",
)


# -----------------------------------------------------------------------------
# Actions
# -----------------------------------------------------------------------------

CALCULATE = "calculate"
GENERATE_ADVANCE = "generate_advance"
GENERATE_FINAL = "generate_final"
SUBMIT_FOR_REVIEW = "submit_for_review"
APPROVE = "approve"
REJECT = "reject"
CLOSE = "close"
CANCEL = "cancel"


_OPEN = PeriodStatus.OPEN.value
_IN_PROGRESS = PeriodStatus.IN_PROGRESS.value
_CALCULATED = PeriodStatus.CALCULATED.value
_ADVANCE_CREATED = PeriodStatus.ADVANCE_CREATED.value
_SETTLED = PeriodStatus.SETTLED.value
_PENDING_REVIEW = PeriodStatus.PENDING_REVIEW.value
_APPROVED = PeriodStatus.APPROVED.value
_CLOSED = PeriodStatus.CLOSED.value
_CANCELLED = PeriodStatus.CANCELLED.value


def _edges(sources: tuple[str, ...], target: str, action: str, **kwargs) -> tuple[Transition, ...]:
    return tuple(Transition(s, target, action=action, **kwargs) for s in sources)


SETTLEMENT_PERIOD_WORKFLOW = Workflow(
    name="settlement_period",
    description="Lease revenue settlement period lifecycle",
    initial_state=_OPEN,
    states=tuple(s.value for s in PeriodStatus),
    terminal_states=(_CLOSED, _CANCELLED),
    transitions=(
        _edges((_OPEN, _IN_PROGRESS, _CALCULATED), _CALCULATED, CALCULATE)
        + _edges(
            (_OPEN, _IN_PROGRESS, _CALCULATED, _ADVANCE_CREATED),
            _ADVANCE_CREATED,
            GENERATE_ADVANCE,
        )
        + _edges(
            (_IN_PROGRESS, _CALCULATED, _SETTLED),
            _SETTLED,
            GENERATE_FINAL,
            guard=PERIOD_CALCULATED,
        )
        + _edges(
            (_IN_PROGRESS, _CALCULATED, _ADVANCE_CREATED, _SETTLED),
            _PENDING_REVIEW,
            SUBMIT_FOR_REVIEW,
        )
        + (
            Transition(_PENDING_REVIEW, _APPROVED, action=APPROVE, guard=NO_SELF_APPROVAL),
            Transition(_PENDING_REVIEW, _IN_PROGRESS, action=REJECT, requires_reason=True),
            Transition(_APPROVED, _CLOSED, action=CLOSE),
        )
        + _edges(
            (_IN_PROGRESS, _CALCULATED, _ADVANCE_CREATED, _SETTLED, _PENDING_REVIEW, _APPROVED),
            _CANCELLED,
            CANCEL,
            requires_reason=True,
        )
    ),
)

DELETABLE_STATES: tuple[str, ...] = (_OPEN,)

# Statuses in which no credit note may be generated.
REVIEW_STATES: tuple[str, ...] = (_PENDING_REVIEW, _APPROVED)

logger.info(
    "settlement_period_workflow_registered",
    extra={
        "workflow_name": SETTLEMENT_PERIOD_WORKFLOW.name,
        "state_count": len(SETTLEMENT_PERIOD_WORKFLOW.states),
        "transition_count": len(SETTLEMENT_PERIOD_WORKFLOW.transitions),
        "initial_state": SETTLEMENT_PERIOD_WORKFLOW.initial_state,
    },
)
