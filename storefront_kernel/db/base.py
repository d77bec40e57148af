"""
Module: storefront_kernel.db.base
Responsibility: Declarative bases shared by every storefront table: UUID
    primary keys, the column-type map and created/updated timestamps.
Architecture position: Kernel > DB.  Imported by models/; imports nothing
    from the rest of the kernel.

Invariants enforced:
    - Prices, line totals and order totals are Numeric(38, 9) on every
      backend.  Floats never reach a money column.
    - Every datetime column is timezone-aware.
    - Ids are uuid4, stored as 36-character strings so SQLite and
      PostgreSQL rows compare the same way.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Integer, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

__all__ = ["UUID", "Base", "TimestampedBase", "UUIDString"]


class UUIDString(TypeDecorator):
    """``uuid.UUID`` in Python, ``VARCHAR(36)`` in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    """Root of the storefront schema; supplies ``id`` to every table."""

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        UUID: UUIDString(),
        int: Integer,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TimestampedBase(Base):
    """
    Adds ``created_at``/``updated_at`` for mutable tables (products, orders).

    The services stamp both from their injected Clock, which keeps grace
    periods and history filters reproducible in tests; the server-side
    ``now()`` default covers rows inserted by hand.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
