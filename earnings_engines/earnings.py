"""
Module: earnings_engines.earnings
Responsibility:
    Reconcile an instructor's completed payments into the earnings
    dashboard aggregates: lifetime total, current-month total, the
    available/pending split, a 12-month series for the current year, a
    per-course ranking, and the month-over-month growth figure.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Imports earnings_kernel.domain only.  The caller supplies the payment
    collection and the reference time; this module never reads a clock or
    a store.

Invariants enforced:
    - available_funds + pending_funds == total_earnings, exactly.  Checked
      after every aggregation; a mismatch raises
      ReconciliationInconsistencyError.
    - total_earnings is the sum of instructor_amount over the contributing
      payments (the instructor's completed payments inside the window).
    - Decimal-only arithmetic via Money; no floats anywhere.
    - Calendar math (current month, current year, month buckets) happens in
      the timezone of ``window.as_of``.

Failure modes:
    - ValidationError for a naive ``as_of``, inverted window bounds, a
      payment in a different currency, a non-positive ranking size, or an
      empty palette.
    - ReconciliationInconsistencyError on the invariant above.

Audit relevance:
    Every reconciliation is traced via ``@traced_engine`` with an input
    fingerprint over the instructor, the window and the payment set, so a
    reported figure can be reproduced from the same inputs.

Usage:
    from earnings_engines.earnings import EarningsWindow, reconcile_earnings

    snapshot = reconcile_earnings(
        instructor_id="teacher-1",
        window=EarningsWindow(as_of=clock.now()),
        payments=payments,
    )
    snapshot.available_funds + snapshot.pending_funds == snapshot.total_earnings
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_FLOOR, Decimal
from typing import Mapping, Sequence

from earnings_engines.tracer import traced_engine
from earnings_kernel.domain.payment import Payment
from earnings_kernel.domain.values import Currency, Money
from earnings_kernel.exceptions import (
    ReconciliationInconsistencyError,
    ValidationError,
)
from earnings_kernel.logging_config import get_logger

logger = get_logger("engines.earnings")

DEFAULT_RANKING_SIZE = 5
RECENT_TRANSACTION_COUNT = 5

MONTH_LABELS: tuple[str, ...] = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)

# Chart colors assigned by rank index (wraps around)
DEFAULT_PALETTE: tuple[str, ...] = (
    "#3B82F6",
    "#10B981",
    "#F59E0B",
    "#EF4444",
    "#8B5CF6",
    "#EC4899",
)

_HUNDRED = Decimal("100")
_HALF = Decimal("0.5")


# =============================================================================
# Value objects
# =============================================================================


@dataclass(frozen=True)
class EarningsWindow:
    """
    Reference time plus optional inclusive date bounds.

    Contract:
        ``as_of`` fixes "this month" and "this year".  ``start``/``end``
        restrict which payments contribute; dates are compared in the
        timezone of ``as_of``.
    """

    as_of: datetime
    start: date | None = None
    end: date | None = None

    def __post_init__(self) -> None:
        if self.as_of.tzinfo is None:
            raise ValidationError(
                "EarningsWindow.as_of must be timezone-aware",
                field="as_of",
                value=self.as_of,
            )
        if self.start is not None and self.end is not None and self.start > self.end:
            raise ValidationError(
                f"Window start {self.start} is after end {self.end}",
                field="start",
                value=self.start,
            )

    def local(self, moment: datetime) -> datetime:
        """``moment`` expressed in the window's timezone."""
        return moment.astimezone(self.as_of.tzinfo)

    def contains(self, moment: datetime) -> bool:
        day = self.local(moment).date()
        if self.start is not None and day < self.start:
            return False
        if self.end is not None and day > self.end:
            return False
        return True

    @property
    def previous_month(self) -> tuple[int, int]:
        """(year, month) of the month before ``as_of``; January wraps to December."""
        if self.as_of.month == 1:
            return self.as_of.year - 1, 12
        return self.as_of.year, self.as_of.month - 1


@dataclass(frozen=True)
class MonthlyEarnings:
    """One month-of-year bucket of the current year."""

    month: int  # 1-12
    label: str
    earnings: Money
    student_count: int


@dataclass(frozen=True)
class CourseEarnings:
    """One entry of the per-course ranking."""

    course_name: str
    earnings: Money
    color: str


@dataclass(frozen=True)
class EarningsSnapshot:
    """
    Derived earnings aggregates for one instructor.  Never persisted.

    Guarantees:
        - available_funds + pending_funds == total_earnings.
        - per_month_series has 12 entries, January first.
        - per_course_ranking is sorted by earnings, descending.
        - recent_transactions is newest first.
    """

    instructor_id: str
    as_of: datetime
    total_earnings: Money
    monthly_earnings: Money
    previous_month_earnings: Money
    available_funds: Money
    pending_funds: Money
    monthly_growth_percent: int
    per_month_series: tuple[MonthlyEarnings, ...]
    per_course_ranking: tuple[CourseEarnings, ...]
    payment_count: int
    student_count: int
    card_payments_total: Money
    recent_transactions: tuple[Payment, ...]


# =============================================================================
# Building blocks
# =============================================================================


def calculate_growth_percent(current: Money | Decimal, previous: Money | Decimal) -> int:
    """
    Month-over-month growth as a signed whole percentage.

    ``(current - previous) / previous * 100`` rounded to the nearest integer,
    halves toward positive infinity.  A zero previous month yields 100 when
    the current month earned anything and 0 otherwise.
    """
    cur = current.amount if isinstance(current, Money) else Decimal(current)
    prev = previous.amount if isinstance(previous, Money) else Decimal(previous)

    if prev > 0:
        ratio = (cur - prev) / prev * _HUNDRED
        return int((ratio + _HALF).to_integral_value(rounding=ROUND_FLOOR))
    if cur > 0:
        return 100
    return 0


def rank_courses(
    course_totals: Mapping[str, Money],
    ranking_size: int = DEFAULT_RANKING_SIZE,
    palette: Sequence[str] = DEFAULT_PALETTE,
) -> tuple[CourseEarnings, ...]:
    """
    Top ``ranking_size`` courses by earnings.

    Ties keep the mapping's insertion order (first payment seen first).
    Colors are assigned by rank index modulo the palette length.
    """
    if ranking_size < 1:
        raise ValidationError(
            f"ranking_size must be positive, got {ranking_size}",
            field="ranking_size",
            value=ranking_size,
        )
    if not palette:
        raise ValidationError("palette must not be empty", field="palette")

    ordered = sorted(course_totals.items(), key=lambda item: item[1].amount, reverse=True)
    return tuple(
        CourseEarnings(course_name=name, earnings=total, color=palette[i % len(palette)])
        for i, (name, total) in enumerate(ordered[:ranking_size])
    )


# =============================================================================
# Engine
# =============================================================================


@traced_engine(
    "earnings",
    "1.0",
    fingerprint_fields=("instructor_id", "window", "payments", "currency"),
)
def reconcile_earnings(
    *,
    instructor_id: str,
    window: EarningsWindow,
    payments: Sequence[Payment],
    currency: str | Currency = "USD",
    ranking_size: int = DEFAULT_RANKING_SIZE,
    palette: Sequence[str] = DEFAULT_PALETTE,
) -> EarningsSnapshot:
    """
    Aggregate ``payments`` into an EarningsSnapshot for ``instructor_id``.

    Only payments that belong to the instructor, have status completed and
    fall inside the window contribute; everything else is ignored, so the
    caller may pass an unfiltered collection.

    Raises:
        ValidationError: On malformed input (see module docstring).
        ReconciliationInconsistencyError: If available + pending != total.
    """
    zero = Money.zero(currency)
    ccy = zero.currency

    contributing: list[Payment] = []
    for payment in payments:
        if payment.instructor_id != instructor_id or not payment.is_completed:
            continue
        if not window.contains(payment.created_at):
            continue
        if payment.instructor_amount.currency != ccy:
            raise ValidationError(
                f"Payment {payment.id} is in {payment.instructor_amount.currency}, "
                f"expected {ccy}",
                field="currency",
                value=payment.instructor_amount.currency.code,
            )
        contributing.append(payment)

    current_year = window.as_of.year
    current_month = window.as_of.month
    prev_year, prev_month = window.previous_month

    total = zero
    monthly = zero
    previous = zero
    available = zero
    pending = zero
    card_total = zero
    month_totals: dict[int, Money] = defaultdict(lambda: zero)
    month_students: dict[int, set[str]] = defaultdict(set)
    course_totals: dict[str, Money] = {}
    students: set[str] = set()

    for payment in contributing:
        amount = payment.instructor_amount
        local = window.local(payment.created_at)

        total = total + amount
        students.add(payment.student_id)

        if payment.is_transferred:
            available = available + amount
        else:
            pending = pending + amount

        if payment.is_card_payment:
            card_total = card_total + amount

        if local.year == current_year:
            month_totals[local.month] = month_totals[local.month] + amount
            month_students[local.month].add(payment.student_id)
            if local.month == current_month:
                monthly = monthly + amount
        if (local.year, local.month) == (prev_year, prev_month):
            previous = previous + amount

        course_totals[payment.course_name] = (
            course_totals.get(payment.course_name, zero) + amount
        )

    # INVARIANT: available + pending == total
    if available + pending != total:
        raise ReconciliationInconsistencyError(
            instructor_id,
            total=str(total.amount),
            available=str(available.amount),
            pending=str(pending.amount),
        )

    series = tuple(
        MonthlyEarnings(
            month=m,
            label=MONTH_LABELS[m - 1],
            earnings=month_totals[m],
            student_count=len(month_students[m]),
        )
        for m in range(1, 13)
    )

    recent = tuple(
        sorted(contributing, key=lambda p: p.created_at, reverse=True)[
            :RECENT_TRANSACTION_COUNT
        ]
    )

    snapshot = EarningsSnapshot(
        instructor_id=instructor_id,
        as_of=window.as_of,
        total_earnings=total,
        monthly_earnings=monthly,
        previous_month_earnings=previous,
        available_funds=available,
        pending_funds=pending,
        monthly_growth_percent=calculate_growth_percent(monthly, previous),
        per_month_series=series,
        per_course_ranking=rank_courses(course_totals, ranking_size, palette),
        payment_count=len(contributing),
        student_count=len(students),
        card_payments_total=card_total,
        recent_transactions=recent,
    )

    logger.debug(
        "earnings_reconciled",
        extra={
            "instructor_id": instructor_id,
            "payment_count": snapshot.payment_count,
            "total_earnings": total.amount,
            "available_funds": available.amount,
            "pending_funds": pending.amount,
        },
    )
    return snapshot
