"""
Payment -- immutable course-payment record as seen by the earnings core.

Responsibility:
    Read-only view of a charge written by the billing subsystem.  The
    earnings engine aggregates these; nothing in this repository creates
    or mutates them outside of test fixtures and the store's seeding API.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - 0 <= instructor_amount <= base_price, same currency.  The platform
      fee (base_price - instructor_amount) is therefore never negative.
    - created_at is timezone-aware.

Failure modes:
    - ValidationError on any violated invariant.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from earnings_kernel.domain.values import Money
from earnings_kernel.exceptions import ValidationError


class PaymentStatus(str, Enum):
    """Charge status owned by the billing subsystem."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class TransferStatus(str, Enum):
    """Whether the instructor's share has been moved to their sub-account."""

    PENDING = "pending"
    COMPLETED = "completed"

    @classmethod
    def parse(cls, value: str | None) -> TransferStatus:
        """Anything other than ``completed`` (including missing) is pending."""
        return cls.COMPLETED if value == cls.COMPLETED.value else cls.PENDING


CARD_PAYMENT_METHOD = "card"


@dataclass(frozen=True)
class Payment:
    """
    A completed, pending or failed course payment.

    Contract:
        Frozen.  ``instructor_amount`` is what the instructor earns; the
        engine never reads ``base_price`` for aggregation.
    """

    id: str
    student_id: str
    instructor_id: str
    course_id: str
    course_name: str
    student_name: str
    base_price: Money
    instructor_amount: Money
    status: PaymentStatus
    transfer_status: TransferStatus
    payment_method: str
    created_at: datetime

    def __post_init__(self) -> None:
        if not isinstance(self.status, PaymentStatus):
            object.__setattr__(self, "status", PaymentStatus(self.status))
        if not isinstance(self.transfer_status, TransferStatus):
            object.__setattr__(
                self, "transfer_status", TransferStatus.parse(self.transfer_status)
            )

        if self.created_at.tzinfo is None:
            raise ValidationError(
                f"Payment {self.id} created_at must be timezone-aware",
                field="created_at",
                value=self.created_at,
            )
        if self.base_price.currency != self.instructor_amount.currency:
            raise ValidationError(
                f"Payment {self.id} mixes currencies "
                f"{self.base_price.currency} and {self.instructor_amount.currency}",
                field="instructor_amount",
            )
        if self.instructor_amount.is_negative:
            raise ValidationError(
                f"Payment {self.id} has a negative instructor amount",
                field="instructor_amount",
                value=str(self.instructor_amount.amount),
            )
        if self.instructor_amount > self.base_price:
            raise ValidationError(
                f"Payment {self.id} instructor amount {self.instructor_amount} "
                f"exceeds base price {self.base_price}",
                field="instructor_amount",
                value=str(self.instructor_amount.amount),
            )

    @property
    def platform_fee(self) -> Money:
        return self.base_price - self.instructor_amount

    @property
    def is_completed(self) -> bool:
        return self.status is PaymentStatus.COMPLETED

    @property
    def is_transferred(self) -> bool:
        return self.transfer_status is TransferStatus.COMPLETED

    @property
    def is_card_payment(self) -> bool:
        return self.payment_method == CARD_PAYMENT_METHOD
