"""
Module: earnings_kernel.db.base
Responsibility: Declarative base and portable column types for the ledger
    store's ORM models.
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel.  MUST NOT import from models/, store/, domain/, or outer layers.

Invariants enforced:
    - Exact money: DecimalString stores Decimal as its canonical string, so
      amounts round-trip bit-for-bit on every dialect (SQLite has no exact
      NUMERIC).  NEVER use float for monetary amounts.
    - Timezone-aware timestamps: UTCDateTime normalizes to UTC on write and
      re-attaches UTC on read, even where the dialect drops tzinfo.

Failure modes:
    - ValueError on binding a naive datetime or a float amount.
"""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class DecimalString(TypeDecorator):
    """
    Decimal stored as String(64) for exact cross-database round-trips.

    Guarantees:
        - process_bind_param: Decimal -> str on INSERT/UPDATE.
        - process_result_value: str -> Decimal on SELECT.
    """

    impl = String(64)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, float):
            raise ValueError(f"Refusing to store float amount {value!r}")
        return str(Decimal(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime, always UTC when loaded."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Refusing to store naive datetime {value!r}")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Declarative base for all ledger store models.

    Guarantees:
        - Decimal maps to DecimalString (exact).
        - datetime maps to UTCDateTime (always aware).
    """

    type_annotation_map = {
        Decimal: DecimalString(),
        datetime: UTCDateTime(),
    }


class TrackedBase(Base):
    """Abstract base with created/updated timestamps."""

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
