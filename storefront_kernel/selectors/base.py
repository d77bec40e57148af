"""
Module: storefront_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.  Selectors
    form the "Q" side of the CQRS-lite split, serving reporting and admin
    collaborators without mutation capability.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain DTOs.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: Selectors MUST NOT call session.add(), session.delete(),
      session.commit(), or session.flush().
    - DTO return convention: Selectors return frozen dataclasses, NOT ORM
      instances.
    - Session ownership: the caller owns the session and its transaction.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from storefront_kernel.db.base import Base
from storefront_kernel.domain.dtos import PageRequest

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return DTOs or computed results.  They MUST NOT mutate any data.
    """

    def __init__(self, session: Session):
        self.session = session

    def _count(self, stmt: Select) -> int:
        """Row count of ``stmt`` ignoring ordering, limit and offset."""
        inner = stmt.order_by(None).limit(None).offset(None).subquery()
        return self.session.execute(select(func.count()).select_from(inner)).scalar_one()

    @staticmethod
    def _paginate(stmt: Select, page: PageRequest) -> Select:
        return stmt.limit(page.limit).offset(page.offset)
