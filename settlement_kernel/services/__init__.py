"""Services for the settlement kernel (write side)."""

from settlement_kernel.services.base import BaseService
from settlement_kernel.services.invoice_number_service import (
    DocumentType,
    InvoiceNumberBatch,
    InvoiceNumberCounter,
    InvoiceNumberService,
    NumberFormat,
)

__all__ = [
    "BaseService",
    "DocumentType",
    "InvoiceNumberBatch",
    "InvoiceNumberCounter",
    "InvoiceNumberService",
    "NumberFormat",
]
