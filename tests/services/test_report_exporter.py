"""Tests for XLSX/CSV earnings report writers."""

import csv
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from openpyxl import load_workbook

from earnings_engines.earnings import EarningsWindow, reconcile_earnings
from earnings_engines.filters import PaymentFilter, summarize
from earnings_kernel.exceptions import ValidationError
from earnings_services.report_exporter import (
    PAYMENT_COLUMNS,
    EarningsReport,
    write_csv,
    write_report,
    write_xlsx,
)

GENERATED = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_report(make_payment):
    def _make(payments=None, payment_filter=None):
        if payments is None:
            base = datetime(2024, 6, 1, tzinfo=timezone.utc)
            payments = [
                make_payment("40", payment_id="old", student_name="Ada Lovelace", created_at=base),
                make_payment(
                    "60.50",
                    base_price="75.00",
                    payment_id="new",
                    student_name="Alan Turing",
                    course_name="Geometry",
                    transfer_status="pending",
                    created_at=base + timedelta(days=5),
                ),
            ]
        snapshot = reconcile_earnings(
            instructor_id="teacher-a",
            window=EarningsWindow(as_of=GENERATED),
            payments=payments,
        )
        return EarningsReport(
            instructor_id="teacher-a",
            instructor_name="Grace Hopper",
            generated_at=GENERATED,
            snapshot=snapshot,
            payments=tuple(payments),
            summary=summarize(payments),
            payment_filter=payment_filter or PaymentFilter(),
        )

    return _make


def _summary_values(sheet) -> dict:
    return {row[0]: row[1] if len(row) > 1 else None for row in sheet.iter_rows(values_only=True) if row[0]}


class TestXlsx:
    def test_summary_sheet(self, make_report, tmp_path):
        path = write_xlsx(tmp_path / "report.xlsx", make_report())
        values = _summary_values(load_workbook(path)["Summary"])

        assert values["Instructor"] == "Grace Hopper"
        assert values["Currency"] == "USD"
        assert Decimal(str(values["Total earnings"])) == Decimal("100.50")
        assert Decimal(str(values["Available funds"])) == Decimal("40")
        assert Decimal(str(values["Pending funds"])) == Decimal("60.50")
        assert values["Payments"] == 2
        assert values["Generated at"] == datetime(2024, 6, 15, 12, 0)

    def test_payments_sheet_newest_first(self, make_report, tmp_path):
        path = write_xlsx(tmp_path / "report.xlsx", make_report())
        rows = list(load_workbook(path)["Payments"].iter_rows(values_only=True))

        assert rows[0] == PAYMENT_COLUMNS
        assert [r[1] for r in rows[1:]] == ["Alan Turing", "Ada Lovelace"]
        newest = rows[1]
        assert newest[0] == datetime(2024, 6, 6)
        assert Decimal(str(newest[3])) == Decimal("75.00")
        assert Decimal(str(newest[4])) == Decimal("60.50")
        assert newest[5] == "pending"

    def test_active_filters_listed(self, make_report, tmp_path):
        report = make_report(payment_filter=PaymentFilter(search="ada", date_from=date(2024, 6, 1)))
        path = write_xlsx(tmp_path / "report.xlsx", report)
        values = _summary_values(load_workbook(path)["Summary"])

        assert "Active filters" in values
        assert values["Search"] == "ada"
        assert values["From"] == "2024-06-01"

    def test_creates_parent_directories(self, make_report, tmp_path):
        path = write_xlsx(tmp_path / "nested" / "dir" / "report.xlsx", make_report())
        assert path.exists()


class TestCsv:
    def test_payment_table(self, make_report, tmp_path):
        path = write_csv(tmp_path / "report.csv", make_report())
        with open(path, newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))

        assert tuple(rows[0]) == PAYMENT_COLUMNS
        assert rows[1] == ["2024-06-06", "Alan Turing", "Geometry", "75.00", "60.50", "pending"]
        assert rows[2][0] == "2024-06-01"


class TestWriteReport:
    def test_dispatch_by_format(self, make_report, tmp_path):
        path = write_report(tmp_path / "r.csv", make_report(), fmt="CSV")
        assert path.read_text(encoding="utf-8").startswith("Date,")

    def test_unknown_format_rejected(self, make_report, tmp_path):
        with pytest.raises(ValidationError):
            write_report(tmp_path / "r.pdf", make_report(), fmt="pdf")

    @pytest.mark.parametrize("fmt", ["xlsx", "csv"])
    def test_empty_payment_set_rejected(self, make_report, tmp_path, fmt):
        with pytest.raises(ValidationError):
            write_report(tmp_path / f"r.{fmt}", make_report(payments=[]), fmt=fmt)
        assert not (tmp_path / f"r.{fmt}").exists()
