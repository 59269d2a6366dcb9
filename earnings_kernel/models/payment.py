"""
Module: earnings_kernel.models.payment
Responsibility: ORM persistence for course payments written by the billing
    subsystem.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Amounts are stored exactly (DecimalString); never float.
    - instructor_amount is nullable: legacy rows without one are read as
      earning the full base price.
    - Rows are append-only from the point of view of this repository; the
      store exposes no update path for payments.

Failure modes:
    - IntegrityError on duplicate payment id.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from earnings_kernel.db.base import TrackedBase


class PaymentRecord(TrackedBase):
    """A single course payment row."""

    __tablename__ = "payments"

    __table_args__ = (
        Index("idx_payment_instructor_status", "instructor_id", "status"),
        Index("idx_payment_course", "course_id"),
        Index("idx_payment_created", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(128), primary_key=True)

    student_id: Mapped[str] = mapped_column(String(128), nullable=False)

    instructor_id: Mapped[str] = mapped_column(String(128), nullable=False)

    course_id: Mapped[str] = mapped_column(String(128), nullable=False)

    course_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    student_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    base_price: Mapped[Decimal] = mapped_column(nullable=False)

    instructor_amount: Mapped[Decimal | None] = mapped_column(nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False)

    # NULL is read as pending
    transfer_status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    payment_method: Mapped[str] = mapped_column(String(50), nullable=False, default="card")

    # Overrides TrackedBase.created_at: the charge time, not the insert time
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<PaymentRecord {self.id}: {self.instructor_id} {self.status}>"
