"""
Parent of the ledger's read-side query objects.

Selectors run SELECTs on a session they are given and hand back frozen
DTOs.  They do not add, delete, flush or commit.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from pledge_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    def __init__(self, session: Session):
        self.session = session
