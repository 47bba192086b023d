"""
BaseService -- abstract base for services that write through a session.

Responsibility:
    Common constructor and session contract.  Services receive a SQLAlchemy
    ``Session`` and use ``session.flush()``; they never commit or roll back.
    The caller (the generation orchestrator, an API handler, a test) owns
    the transaction, which is what lets one credit note and its items land
    in a single commit.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from settlement_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for session-bound services.

    Guarantees:
        - Never calls ``session.commit()`` or ``session.rollback()``.
    """

    def __init__(self, session: Session):
        self.session = session
