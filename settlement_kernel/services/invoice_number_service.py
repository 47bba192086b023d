"""
InvoiceNumberService -- document number allocation via locked counter rows.

Responsibility:
    Issues invoice numbers that are unique per (tenant, document type),
    strictly increasing, and duplicate-free when several generation runs
    for the same tenant execute concurrently.  A generation run reserves
    its whole batch with one call before it loops over leases.

Architecture position:
    Kernel > Services.  Called by the lease revenue module when it turns a
    calculation into credit notes or cancellations.

Invariants enforced:
    - The counter row is the only source of truth for the next value.
      Computing MAX(invoice_number) + 1 from the invoice table is never
      done: two readers would both see the same maximum.
    - The row is read with SELECT ... FOR UPDATE (PostgreSQL) inside the
      caller's transaction; on SQLite the engine opens every transaction
      with BEGIN IMMEDIATE, which gives the same exclusivity.
    - Reserved numbers are committed with the caller's transaction.  If the
      caller commits the reservation and then fails before using every
      number, the unused numbers are a gap, not a retry.

Failure modes:
    - InvalidNumberRequestError for count < 1 or an unknown document type.
    - NumberSequenceExhaustedError when the format cannot represent the
      last number of the batch.
    - IntegrityError on the first-use insert race, handled with a savepoint
      rollback and a locked re-read.
"""

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from sqlalchemy import BigInteger, String, UniqueConstraint, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from settlement_kernel.db.base import Base, UUIDString
from settlement_kernel.exceptions import (
    InvalidNumberRequestError,
    NumberSequenceExhaustedError,
)
from settlement_kernel.logging_config import get_logger
from settlement_kernel.services.base import BaseService

logger = get_logger("services.invoice_numbers")


class DocumentType(str, Enum):
    """Numbered document families; each has its own sequence."""
    INVOICE = "INVOICE"
    CREDIT_NOTE = "CREDIT_NOTE"
    CANCELLATION = "CANCELLATION"


@dataclass(frozen=True)
class NumberFormat:
    """Display pattern for one document type.

    ``pattern`` is a ``str.format`` template receiving ``year`` and ``seq``.
    ``max_value`` bounds the sequence; the padded width in the pattern
    should be able to hold it.
    """
    pattern: str
    max_value: int = 99_999

    def render(self, value: int, year: int) -> str:
        return self.pattern.format(year=year, seq=value)


DEFAULT_NUMBER_FORMATS: dict[DocumentType, NumberFormat] = {
    DocumentType.INVOICE: NumberFormat("RE-{year}-{seq:05d}"),
    DocumentType.CREDIT_NOTE: NumberFormat("GS-{year}-{seq:05d}"),
    DocumentType.CANCELLATION: NumberFormat("ST-{year}-{seq:05d}"),
}


class InvoiceNumberCounter(Base):
    """
    One counter row per (tenant, document type).

    ``current_value`` is the last number handed out; 0 means none yet.
    """

    __tablename__ = "invoice_number_counters"

    __table_args__ = (
        UniqueConstraint("tenant_id", "document_type", name="uq_invoice_counter_scope"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    document_type: Mapped[str] = mapped_column(String(50), nullable=False)
    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


@dataclass(frozen=True)
class InvoiceNumberBatch:
    """A contiguous range of reserved numbers, already formatted."""
    document_type: DocumentType
    first_value: int
    last_value: int
    numbers: tuple[str, ...]

    def __len__(self) -> int:
        return len(self.numbers)

    def __getitem__(self, index: int) -> str:
        return self.numbers[index]


class InvoiceNumberService(BaseService[InvoiceNumberCounter]):
    """
    Allocates sequential invoice numbers in batches.

    Contract:
        ``get_next_invoice_numbers`` increments the counter by ``count``
        under a row lock and returns the reserved range.  The service
        flushes; the caller commits.

    Usage:
        with session_scope() as session:
            batch = InvoiceNumberService(session).get_next_invoice_numbers(
                tenant_id, DocumentType.CREDIT_NOTE, 3, year=2025,
            )
    """

    def __init__(
        self,
        session: Session,
        formats: dict[DocumentType, NumberFormat] | None = None,
    ):
        super().__init__(session)
        self._formats = dict(DEFAULT_NUMBER_FORMATS)
        if formats:
            self._formats.update(formats)

    def _locked_counter(self, tenant_id: UUID, document_type: str) -> InvoiceNumberCounter | None:
        return self.session.execute(
            select(InvoiceNumberCounter)
            .where(
                InvoiceNumberCounter.tenant_id == tenant_id,
                InvoiceNumberCounter.document_type == document_type,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _reserve(self, tenant_id: UUID, document_type: DocumentType, count: int) -> int:
        """Advance the counter by ``count``; return the new last value."""
        fmt = self._formats[document_type]
        counter = self._locked_counter(tenant_id, document_type.value)

        if counter is None:
            if count > fmt.max_value:
                raise NumberSequenceExhaustedError(document_type.value, fmt.max_value)
            # First use for this tenant and type; another transaction may be
            # inserting the same row, so isolate the insert in a savepoint.
            savepoint = self.session.begin_nested()
            try:
                self.session.add(
                    InvoiceNumberCounter(
                        tenant_id=tenant_id,
                        document_type=document_type.value,
                        current_value=count,
                    )
                )
                self.session.flush()
                savepoint.commit()
                return count
            except IntegrityError:
                logger.debug(
                    "invoice_counter_race_retry",
                    extra={"tenant_id": tenant_id, "document_type": document_type.value},
                )
                savepoint.rollback()
                counter = self._locked_counter(tenant_id, document_type.value)
                if counter is None:
                    raise

        new_value = counter.current_value + count
        if new_value > fmt.max_value:
            raise NumberSequenceExhaustedError(document_type.value, fmt.max_value)
        counter.current_value = new_value
        self.session.flush()
        return new_value

    def get_next_invoice_numbers(
        self,
        tenant_id: UUID,
        document_type: DocumentType | str,
        count: int,
        year: int,
    ) -> InvoiceNumberBatch:
        """
        Reserve ``count`` consecutive numbers.

        Preconditions:
            - ``count >= 1``.
            - ``document_type`` names a configured document type.
            - The caller holds an open transaction on this session.

        Postconditions:
            - Returns numbers ``last - count + 1 .. last`` formatted with the
              document type's pattern, in increasing order.
            - No other transaction can be handed any of these numbers.

        Raises:
            InvalidNumberRequestError: Bad count or document type.
            NumberSequenceExhaustedError: Format maximum would be exceeded.
        """
        try:
            doc_type = DocumentType(document_type)
        except ValueError:
            raise InvalidNumberRequestError(
                str(document_type), count, "unknown document type"
            ) from None
        if doc_type not in self._formats:
            raise InvalidNumberRequestError(doc_type.value, count, "no number format configured")
        if not isinstance(count, int) or isinstance(count, bool) or count < 1:
            raise InvalidNumberRequestError(doc_type.value, count, "count must be a positive integer")

        last = self._reserve(tenant_id, doc_type, count)
        first = last - count + 1
        fmt = self._formats[doc_type]
        numbers = tuple(fmt.render(value, year) for value in range(first, last + 1))

        logger.info(
            "invoice_numbers_allocated",
            extra={
                "tenant_id": tenant_id,
                "document_type": doc_type.value,
                "count": count,
                "first_value": first,
                "last_value": last,
            },
        )
        return InvoiceNumberBatch(
            document_type=doc_type,
            first_value=first,
            last_value=last,
            numbers=numbers,
        )

    def current_value(self, tenant_id: UUID, document_type: DocumentType | str) -> int | None:
        """Last number handed out, or None if the sequence was never used."""
        counter = self.session.execute(
            select(InvoiceNumberCounter).where(
                InvoiceNumberCounter.tenant_id == tenant_id,
                InvoiceNumberCounter.document_type == DocumentType(document_type).value,
            )
        ).scalar_one_or_none()
        return counter.current_value if counter else None
