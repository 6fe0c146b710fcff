"""
Shared parent of the ledger's writing services.

A service is handed the caller's ``Session`` and only ever flushes.  Commit
and rollback stay with whoever opened the transaction; in this package that
is ``PaymentService``, which commits the payment write and then each
reconciliation separately.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from pledge_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """Holds the session.  ``ModelType`` names the table the service owns."""

    def __init__(self, session: Session):
        self.session = session
