"""
Module: earnings_engines.filters
Responsibility:
    Filtered views over an instructor's already-loaded payments: free-text
    search, transfer-status selection, course selection and an inclusive
    date range, plus the summary shown next to the filtered table.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Predicates compose with AND semantics; an empty filter matches
      everything.
    - Date bounds are whole days, inclusive at both ends, compared in the
      caller-supplied timezone (UTC by default).
    - A payment whose transfer status is missing counts as pending.

Failure modes:
    - ValidationError when date_from is after date_to or the transfer
      status selector is unknown.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timezone, tzinfo
from enum import Enum
from typing import Iterable, Sequence

from earnings_kernel.domain.payment import Payment, TransferStatus
from earnings_kernel.domain.values import Currency, Money, sum_money
from earnings_kernel.exceptions import ValidationError


class TransferFilter(str, Enum):
    """Transfer-status selector of the payments table."""

    ALL = "all"
    COMPLETED = "completed"
    PENDING = "pending"


@dataclass(frozen=True)
class PaymentFilter:
    """
    Conjunction of payment predicates.

    Contract:
        Unset fields do not constrain.  ``search`` matches student or course
        name, case-insensitively, as a substring.
    """

    search: str = ""
    transfer_status: TransferFilter = TransferFilter.ALL
    course_id: str | None = None
    date_from: date | None = None
    date_to: date | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.transfer_status, TransferFilter):
            try:
                object.__setattr__(
                    self, "transfer_status", TransferFilter(self.transfer_status)
                )
            except ValueError as e:
                raise ValidationError(
                    f"Unknown transfer status filter {self.transfer_status!r}",
                    field="transfer_status",
                    value=self.transfer_status,
                ) from e
        if (
            self.date_from is not None
            and self.date_to is not None
            and self.date_from > self.date_to
        ):
            raise ValidationError(
                f"date_from {self.date_from} is after date_to {self.date_to}",
                field="date_from",
                value=self.date_from,
            )

    @property
    def is_active(self) -> bool:
        return bool(
            self.search.strip()
            or self.transfer_status is not TransferFilter.ALL
            or self.course_id
            or self.date_from
            or self.date_to
        )

    def describe(self) -> list[tuple[str, str]]:
        """Active filters as (label, value) pairs, for report headers."""
        parts: list[tuple[str, str]] = []
        if self.search.strip():
            parts.append(("Search", self.search.strip()))
        if self.transfer_status is not TransferFilter.ALL:
            parts.append(("Transfer status", self.transfer_status.value))
        if self.course_id:
            parts.append(("Course", self.course_id))
        if self.date_from:
            parts.append(("From", self.date_from.isoformat()))
        if self.date_to:
            parts.append(("To", self.date_to.isoformat()))
        return parts

    def matches(self, payment: Payment, tz: tzinfo = timezone.utc) -> bool:
        needle = self.search.strip().lower()
        if needle and not (
            needle in (payment.student_name or "").lower()
            or needle in (payment.course_name or "").lower()
        ):
            return False

        if self.transfer_status is TransferFilter.COMPLETED:
            if payment.transfer_status is not TransferStatus.COMPLETED:
                return False
        elif self.transfer_status is TransferFilter.PENDING:
            if payment.transfer_status is TransferStatus.COMPLETED:
                return False

        if self.course_id and payment.course_id != self.course_id:
            return False

        day = payment.created_at.astimezone(tz).date()
        if self.date_from is not None and day < self.date_from:
            return False
        if self.date_to is not None and day > self.date_to:
            return False
        return True


@dataclass(frozen=True)
class FilteredSummary:
    """Totals over a filtered payment set."""

    total: Money
    count: int
    student_count: int


def filter_payments(
    payments: Iterable[Payment],
    payment_filter: PaymentFilter,
    tz: tzinfo = timezone.utc,
) -> list[Payment]:
    """Payments matching every predicate of ``payment_filter``, order preserved."""
    return [p for p in payments if payment_filter.matches(p, tz)]


def summarize(payments: Sequence[Payment], currency: str | Currency = "USD") -> FilteredSummary:
    """Instructor-amount total, payment count and distinct students."""
    return FilteredSummary(
        total=sum_money((p.instructor_amount for p in payments), currency),
        count=len(payments),
        student_count=len({p.student_id for p in payments}),
    )
