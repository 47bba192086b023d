"""
Typed exception hierarchy for the settlement engine.

Every error a caller can act on has its own class, a machine-readable
``code`` class attribute, and structured attributes carrying the data the
message was built from.  Callers catch by type and report ``exc.code``;
they never parse message text.

    SettlementKernelError (base)
    |
    +-- ValidationError
    |   +-- InvalidPeriodError
    |   +-- InvalidTaxInputError
    |   +-- InvalidRevenueInputError
    |   +-- InvalidNumberRequestError
    |   +-- InvalidReviewActionError
    |
    +-- NotFoundError
    |   +-- ParkNotFoundError
    |   +-- SettlementPeriodNotFoundError
    |   +-- EnergySettlementNotFoundError
    |   +-- InvoiceNotFoundError
    |
    +-- PeriodStateError
    |   +-- InvalidTransitionError
    |   +-- PeriodClosedError
    |   +-- SelfApprovalError
    |   +-- MissingReasonError
    |   +-- PeriodNotCalculatedError
    |   +-- DuplicatePeriodError
    |
    +-- InvoiceError
    |   +-- InvoiceAlreadyCancelledError
    |   +-- InvoiceNotCancellableError
    |   +-- UnbalancedInvoiceError
    |
    +-- ConfigurationError
        +-- MissingArticleMappingError
        +-- NumberSequenceExhaustedError

Validation errors are raised before any computation or write.  State-guard
errors name the current status and never leave a mutation behind.
"""


class SettlementKernelError(Exception):
    """
    Base exception for all settlement errors.

    All subclasses define a ``code`` class attribute.
    """

    code: str = "SETTLEMENT_KERNEL_ERROR"


# Validation


class ValidationError(SettlementKernelError):
    """Input rejected before any computation."""

    code: str = "VALIDATION_ERROR"


class InvalidPeriodError(ValidationError):
    """Settlement period attributes are missing or out of range."""

    code: str = "INVALID_PERIOD"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid settlement period {field}={value!r}: {reason}")


class InvalidTaxInputError(ValidationError):
    """Tax was requested for a negative net amount."""

    code: str = "INVALID_TAX_INPUT"

    def __init__(self, net_amount: object):
        self.net_amount = net_amount
        super().__init__(f"Net amount must not be negative: {net_amount}")


class InvalidRevenueInputError(ValidationError):
    """A revenue or production figure failed the basic range check."""

    code: str = "INVALID_REVENUE_INPUT"

    def __init__(self, field: str, value: object):
        self.field = field
        self.value = value
        super().__init__(f"{field} must be a non-negative number, got {value!r}")


class InvalidNumberRequestError(ValidationError):
    """Invoice numbers were requested with a bad count or document type."""

    code: str = "INVALID_NUMBER_REQUEST"

    def __init__(self, document_type: str, count: int, reason: str):
        self.document_type = document_type
        self.count = count
        self.reason = reason
        super().__init__(
            f"Cannot allocate {count} number(s) for {document_type}: {reason}"
        )


class InvalidReviewActionError(ValidationError):
    """Review action is neither approve nor reject."""

    code: str = "INVALID_REVIEW_ACTION"

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"Unknown review action {action!r}; expected 'approve' or 'reject'")


# Not found


class NotFoundError(SettlementKernelError):
    """Referenced entity does not exist for this tenant."""

    code: str = "NOT_FOUND"


class ParkNotFoundError(NotFoundError):
    code: str = "PARK_NOT_FOUND"

    def __init__(self, park_id: object):
        self.park_id = park_id
        super().__init__(f"Park not found: {park_id}")


class SettlementPeriodNotFoundError(NotFoundError):
    code: str = "SETTLEMENT_PERIOD_NOT_FOUND"

    def __init__(self, period_id: object):
        self.period_id = period_id
        super().__init__(f"Settlement period not found: {period_id}")


class EnergySettlementNotFoundError(NotFoundError):
    code: str = "ENERGY_SETTLEMENT_NOT_FOUND"

    def __init__(self, energy_settlement_id: object):
        self.energy_settlement_id = energy_settlement_id
        super().__init__(f"Linked energy settlement not found: {energy_settlement_id}")


class InvoiceNotFoundError(NotFoundError):
    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: object):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice not found: {invoice_id}")


# Period state guards


class PeriodStateError(SettlementKernelError):
    """Action not allowed in the period's current state."""

    code: str = "PERIOD_STATE_ERROR"


class InvalidTransitionError(PeriodStateError):
    """The requested action has no transition from the current status."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        period_id: object,
        current_status: str,
        action: str,
        allowed_from: tuple[str, ...] = (),
    ):
        self.period_id = period_id
        self.current_status = current_status
        self.action = action
        self.allowed_from = allowed_from
        required = f" (allowed from: {', '.join(allowed_from)})" if allowed_from else ""
        super().__init__(
            f"Cannot {action} settlement period {period_id} "
            f"in status {current_status}{required}"
        )


class PeriodClosedError(PeriodStateError):
    """The period is CLOSED or CANCELLED and accepts no further changes."""

    code: str = "PERIOD_CLOSED"

    def __init__(self, period_id: object, status: str, operation: str):
        self.period_id = period_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation}: settlement period {period_id} is {status}"
        )


class SelfApprovalError(PeriodStateError):
    """The creator of a period tried to approve it."""

    code: str = "SELF_APPROVAL_FORBIDDEN"

    def __init__(self, period_id: object, actor_id: object):
        self.period_id = period_id
        self.actor_id = actor_id
        super().__init__(
            f"Actor {actor_id} created settlement period {period_id} "
            "and may not approve it"
        )


class MissingReasonError(PeriodStateError):
    """Reject and cancel need a non-empty justification."""

    code: str = "REASON_REQUIRED"

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"A reason is required to {action} a settlement period")


class PeriodNotCalculatedError(PeriodStateError):
    """Final credit notes need the period totals to be calculated first."""

    code: str = "PERIOD_NOT_CALCULATED"

    def __init__(self, period_id: object):
        self.period_id = period_id
        super().__init__(
            f"Settlement period {period_id} has no calculated totals; "
            "run the calculation before creating final credit notes"
        )


class DuplicatePeriodError(PeriodStateError):
    code: str = "DUPLICATE_PERIOD"

    def __init__(self, park_id: object, period_key: str):
        self.park_id = park_id
        self.period_key = period_key
        super().__init__(f"Settlement period {period_key} already exists for park {park_id}")


# Invoices


class InvoiceError(SettlementKernelError):
    code: str = "INVOICE_ERROR"


class InvoiceAlreadyCancelledError(InvoiceError):
    code: str = "INVOICE_ALREADY_CANCELLED"

    def __init__(self, invoice_number: str):
        self.invoice_number = invoice_number
        super().__init__(f"Invoice {invoice_number} is already cancelled")


class InvoiceNotCancellableError(InvoiceError):
    """Only issued credit notes can be cancelled."""

    code: str = "INVOICE_NOT_CANCELLABLE"

    def __init__(self, invoice_number: str, reason: str):
        self.invoice_number = invoice_number
        self.reason = reason
        super().__init__(f"Invoice {invoice_number} cannot be cancelled: {reason}")


class UnbalancedInvoiceError(InvoiceError):
    """Header totals disagree with the sum of the items."""

    code: str = "UNBALANCED_INVOICE"

    def __init__(self, invoice_number: str, field: str, header: object, items: object):
        self.invoice_number = invoice_number
        self.field = field
        self.header = header
        self.items = items
        super().__init__(
            f"Invoice {invoice_number}: header {field} {header} != item sum {items}"
        )


# Configuration


class ConfigurationError(SettlementKernelError):
    code: str = "CONFIGURATION_ERROR"


class MissingArticleMappingError(ConfigurationError):
    code: str = "MISSING_ARTICLE_MAPPING"

    def __init__(self, area_type: str, period_type: str):
        self.area_type = area_type
        self.period_type = period_type
        super().__init__(
            f"No settlement article mapped for area type {area_type} "
            f"in {period_type} periods"
        )


class NumberSequenceExhaustedError(ConfigurationError):
    """The configured number format cannot represent the next value."""

    code: str = "NUMBER_SEQUENCE_EXHAUSTED"

    def __init__(self, document_type: str, max_value: int):
        self.document_type = document_type
        self.max_value = max_value
        super().__init__(
            f"Number sequence for {document_type} exhausted (max {max_value})"
        )
