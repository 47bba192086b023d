"""
Settlement services -- transaction-owning orchestration over the modules.

The modules flush; the services here commit, one document per transaction.
"""

from settlement_services._generation_types import (
    GenerationResult,
    GenerationStatus,
    ReviewResult,
)
from settlement_services.credit_note_orchestrator import CreditNoteOrchestrator

__all__ = [
    "CreditNoteOrchestrator",
    "GenerationResult",
    "GenerationStatus",
    "ReviewResult",
]
