"""
Pure domain layer.

Clock abstraction and workflow value objects.  No ORM, no database,
no I/O (SystemClock being the one sanctioned exception for time).
"""

from settlement_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from settlement_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "Guard",
    "Transition",
    "Workflow",
]
