"""
Tests for the earnings reconciliation engine.

Covers:
- Instructor/status/window filtering of contributing payments
- available + pending == total
- Current-month, previous-month and growth figures
- 12-month series for the current year
- Per-course ranking and palette assignment
- Recent transactions, student counts, card totals
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from earnings_engines.earnings import (
    DEFAULT_PALETTE,
    MONTH_LABELS,
    EarningsWindow,
    calculate_growth_percent,
    rank_courses,
    reconcile_earnings,
)
from earnings_kernel.domain.values import Money
from earnings_kernel.exceptions import ValidationError

AS_OF = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def usd(amount: str) -> Money:
    return Money.of(amount, "USD")


def reconcile(payments, instructor_id="teacher-a", as_of=AS_OF, bounds=None, **kwargs):
    window = EarningsWindow(as_of=as_of, **(bounds or {}))
    return reconcile_earnings(
        instructor_id=instructor_id, window=window, payments=payments, **kwargs
    )


class TestAvailablePendingSplit:
    def test_two_instructor_scenario(self, make_payment):
        """Other instructors' payments are excluded entirely."""
        payments = [
            make_payment("40", instructor_id="A", transfer_status="completed"),
            make_payment("60", instructor_id="A", transfer_status="pending"),
            make_payment("999", instructor_id="B", transfer_status="completed"),
        ]
        snapshot = reconcile(payments, instructor_id="A")

        assert snapshot.total_earnings == usd("100")
        assert snapshot.available_funds == usd("40")
        assert snapshot.pending_funds == usd("60")
        assert snapshot.payment_count == 2

    def test_missing_transfer_status_counts_as_pending(self, make_payment):
        snapshot = reconcile([make_payment("25.50", transfer_status=None)])
        assert snapshot.pending_funds == usd("25.50")
        assert snapshot.available_funds.is_zero

    def test_only_completed_payments_contribute(self, make_payment):
        payments = [
            make_payment("10"),
            make_payment("20", status="pending"),
            make_payment("30", status="failed"),
        ]
        snapshot = reconcile(payments)
        assert snapshot.total_earnings == usd("10")
        assert snapshot.payment_count == 1

    def test_exact_decimal_sum(self, make_payment):
        payments = [make_payment("0.10", transfer_status="pending") for _ in range(3)]
        payments.append(make_payment("0.20"))
        snapshot = reconcile(payments)
        assert snapshot.total_earnings.amount == Decimal("0.50")
        assert snapshot.available_funds + snapshot.pending_funds == snapshot.total_earnings

    def test_empty_ledger_is_all_zero(self):
        snapshot = reconcile([])
        assert snapshot.total_earnings.is_zero
        assert snapshot.monthly_growth_percent == 0
        assert snapshot.per_course_ranking == ()
        assert len(snapshot.per_month_series) == 12

    def test_instructor_amount_not_base_price(self, make_payment):
        snapshot = reconcile([make_payment("40.00", base_price="50.00")])
        assert snapshot.total_earnings == usd("40.00")

    def test_foreign_currency_payment_rejected(self, make_payment):
        with pytest.raises(ValidationError):
            reconcile([make_payment("10", currency="EUR")])

    def test_other_currency_ledger(self, make_payment):
        snapshot = reconcile([make_payment("10", currency="EUR")], currency="EUR")
        assert snapshot.total_earnings == Money.of("10", "EUR")


class TestMonthlyFigures:
    def test_current_and_previous_month(self, make_payment):
        payments = [
            make_payment("50", created_at=datetime(2024, 6, 2, tzinfo=timezone.utc)),
            make_payment("100", created_at=datetime(2024, 5, 20, tzinfo=timezone.utc)),
            make_payment("7", created_at=datetime(2023, 6, 2, tzinfo=timezone.utc)),
        ]
        snapshot = reconcile(payments)

        assert snapshot.monthly_earnings == usd("50")
        assert snapshot.previous_month_earnings == usd("100")
        assert snapshot.monthly_growth_percent == -50
        assert snapshot.total_earnings == usd("157")

    def test_january_compares_against_prior_december(self, make_payment):
        as_of = datetime(2024, 1, 10, tzinfo=timezone.utc)
        payments = [
            make_payment("30", created_at=datetime(2024, 1, 3, tzinfo=timezone.utc)),
            make_payment("20", created_at=datetime(2023, 12, 28, tzinfo=timezone.utc)),
        ]
        snapshot = reconcile(payments, as_of=as_of)

        assert snapshot.previous_month_earnings == usd("20")
        assert snapshot.monthly_growth_percent == 50
        # December belongs to last year and stays out of this year's series
        assert snapshot.per_month_series[11].earnings.is_zero

    def test_series_is_current_year_only(self, make_payment):
        payments = [
            make_payment("10", created_at=datetime(2024, 2, 1, tzinfo=timezone.utc)),
            make_payment("15", created_at=datetime(2024, 2, 20, tzinfo=timezone.utc), student_id="s2"),
            make_payment("99", created_at=datetime(2023, 2, 1, tzinfo=timezone.utc)),
        ]
        snapshot = reconcile(payments)
        feb = snapshot.per_month_series[1]

        assert [m.label for m in snapshot.per_month_series] == list(MONTH_LABELS)
        assert feb.month == 2
        assert feb.earnings == usd("25")
        assert feb.student_count == 2

    def test_month_bucket_uses_window_timezone(self, make_payment):
        tz = timezone(timedelta(hours=-5))
        as_of = datetime(2024, 6, 15, 8, 0, tzinfo=tz)
        # 02:00 UTC on June 1st is still May 31st at UTC-5
        payment = make_payment("10", created_at=datetime(2024, 6, 1, 2, 0, tzinfo=timezone.utc))
        snapshot = reconcile([payment], as_of=as_of)

        assert snapshot.monthly_earnings.is_zero
        assert snapshot.previous_month_earnings == usd("10")


class TestGrowthPercent:
    @pytest.mark.parametrize(
        "current, previous, expected",
        [
            ("0", "0", 0),
            ("50", "0", 100),
            ("50", "100", -50),
            ("150", "100", 50),
            ("4", "3", 33),
            ("2.01", "2", 1),  # +0.5 rounds up
            ("1.99", "2", 0),  # -0.5 rounds toward +inf
            ("0", "80", -100),
        ],
    )
    def test_growth(self, current, previous, expected):
        assert calculate_growth_percent(usd(current), usd(previous)) == expected

    def test_accepts_decimals(self):
        assert calculate_growth_percent(Decimal("120"), Decimal("100")) == 20


class TestCourseRanking:
    def test_top_five_descending_with_palette(self, make_payment):
        amounts = ["10", "60", "30", "50", "20", "40"]
        payments = [
            make_payment(a, course_id=f"c{i}", course_name=f"Course {i}")
            for i, a in enumerate(amounts)
        ]
        snapshot = reconcile(payments)
        ranking = snapshot.per_course_ranking

        assert [c.course_name for c in ranking] == [
            "Course 1", "Course 3", "Course 5", "Course 2", "Course 4",
        ]
        assert [c.color for c in ranking] == list(DEFAULT_PALETTE[:5])
        ranked_sum = sum(c.earnings.amount for c in ranking)
        assert ranked_sum < snapshot.total_earnings.amount

    def test_ranking_equals_total_with_few_courses(self, make_payment):
        payments = [
            make_payment("10", course_name="Algebra I"),
            make_payment("15", course_name="Algebra I"),
            make_payment("5", course_name="Geometry"),
        ]
        snapshot = reconcile(payments)
        assert [c.course_name for c in snapshot.per_course_ranking] == ["Algebra I", "Geometry"]
        assert sum(c.earnings.amount for c in snapshot.per_course_ranking) == Decimal("30")

    def test_ties_keep_first_seen_order(self):
        totals = {"B": usd("5"), "A": usd("5"), "C": usd("9")}
        assert [c.course_name for c in rank_courses(totals)] == ["C", "B", "A"]

    def test_palette_wraps(self):
        totals = {f"c{i}": usd(str(10 - i)) for i in range(3)}
        ranking = rank_courses(totals, ranking_size=3, palette=("red", "blue"))
        assert [c.color for c in ranking] == ["red", "blue", "red"]

    def test_custom_ranking_size(self, make_payment):
        payments = [make_payment("1", course_name=f"c{i}") for i in range(4)]
        assert len(reconcile(payments, ranking_size=2).per_course_ranking) == 2

    @pytest.mark.parametrize("size", [0, -1])
    def test_non_positive_ranking_size_rejected(self, size):
        with pytest.raises(ValidationError):
            rank_courses({}, ranking_size=size)

    def test_empty_palette_rejected(self):
        with pytest.raises(ValidationError):
            rank_courses({}, palette=())


class TestCountsAndRecent:
    def test_distinct_students_and_card_total(self, make_payment):
        payments = [
            make_payment("10", student_id="s1"),
            make_payment("20", student_id="s1", payment_method="bank_transfer"),
            make_payment("30", student_id="s2"),
        ]
        snapshot = reconcile(payments)
        assert snapshot.student_count == 2
        assert snapshot.card_payments_total == usd("40")

    def test_recent_transactions_newest_first(self, make_payment):
        base = datetime(2024, 6, 1, tzinfo=timezone.utc)
        payments = [
            make_payment("1", created_at=base + timedelta(days=d), payment_id=f"p{d}")
            for d in range(7)
        ]
        recent = reconcile(payments).recent_transactions
        assert [p.id for p in recent] == ["p6", "p5", "p4", "p3", "p2"]


class TestWindow:
    def test_naive_as_of_rejected(self):
        with pytest.raises(ValidationError):
            EarningsWindow(as_of=datetime(2024, 6, 15))

    def test_inverted_bounds_rejected(self):
        with pytest.raises(ValidationError):
            EarningsWindow(as_of=AS_OF, start=date(2024, 6, 2), end=date(2024, 6, 1))

    def test_bounds_are_inclusive(self, make_payment):
        payments = [
            make_payment("1", created_at=datetime(2024, 3, 1, tzinfo=timezone.utc)),
            make_payment("2", created_at=datetime(2024, 3, 31, 23, 0, tzinfo=timezone.utc)),
            make_payment("4", created_at=datetime(2024, 4, 1, tzinfo=timezone.utc)),
        ]
        snapshot = reconcile(
            payments, bounds={"start": date(2024, 3, 1), "end": date(2024, 3, 31)}
        )
        assert snapshot.total_earnings == usd("3")

    def test_previous_month_wraps_year(self):
        window = EarningsWindow(as_of=datetime(2025, 1, 5, tzinfo=timezone.utc))
        assert window.previous_month == (2024, 12)

    def test_identical_inputs_identical_snapshot(self, make_payment):
        payments = [make_payment("10"), make_payment("5", transfer_status="pending")]
        assert reconcile(payments) == reconcile(payments)
