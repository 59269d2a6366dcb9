"""
Report exporter -- durable earnings reports as XLSX workbooks or CSV files.

Responsibility:
    Formats a reconciled EarningsSnapshot plus a (possibly filtered)
    payment table.  The XLSX workbook carries a Summary sheet and a
    Payments sheet; the CSV carries the payment table only.

Architecture position:
    Services -- imperative shell (file I/O).  Reads engine outputs; never
    recomputes aggregates.

Invariants enforced:
    - Payments are written newest first.
    - Amounts are written as exact Decimals, never floats.
    - An empty payment set is rejected rather than producing an empty
      report.

Failure modes:
    - ValidationError for an empty payment set or an unknown format.
    - OSError from the filesystem propagates.
"""

from __future__ import annotations

import csv
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from openpyxl import Workbook
from openpyxl.styles import Font

from earnings_engines.earnings import EarningsSnapshot
from earnings_engines.filters import FilteredSummary, PaymentFilter
from earnings_kernel.domain.payment import Payment
from earnings_kernel.exceptions import ValidationError
from earnings_kernel.logging_config import get_logger

logger = get_logger("services.report_exporter")

PAYMENT_COLUMNS: tuple[str, ...] = (
    "Date",
    "Student",
    "Course",
    "Price",
    "Instructor amount",
    "Transfer status",
)

SUPPORTED_FORMATS = frozenset({"xlsx", "csv"})

_MONEY_FORMAT = "#,##0.00"


@dataclass(frozen=True)
class EarningsReport:
    """Everything a report needs, already computed."""

    instructor_id: str
    instructor_name: str
    generated_at: datetime
    snapshot: EarningsSnapshot
    payments: tuple[Payment, ...]
    summary: FilteredSummary
    payment_filter: PaymentFilter

    @property
    def currency(self) -> str:
        return self.snapshot.total_earnings.currency.code


def _newest_first(payments: tuple[Payment, ...]) -> list[Payment]:
    return sorted(payments, key=lambda p: p.created_at, reverse=True)


def _require_payments(report: EarningsReport) -> None:
    if not report.payments:
        raise ValidationError(
            f"No payments to export for instructor {report.instructor_id}",
            field="payments",
        )


def _naive_utc(moment: datetime) -> datetime:
    # Excel cells cannot hold timezone-aware datetimes
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def write_xlsx(path: Path | str, report: EarningsReport) -> Path:
    """Write the Summary and Payments sheets.  Returns the written path."""
    _require_payments(report)
    path = Path(path)
    snapshot = report.snapshot

    wb = Workbook()
    summary = wb.active
    summary.title = "Summary"

    summary.append(["Earnings report"])
    summary["A1"].font = Font(bold=True, size=14)
    summary.append(["Instructor", report.instructor_name])
    summary.append(["Generated at", _naive_utc(report.generated_at)])
    summary.append(["Currency", report.currency])
    summary.append([])

    money_rows = [
        ("Total earnings", snapshot.total_earnings.amount),
        ("This month", snapshot.monthly_earnings.amount),
        ("Available funds", snapshot.available_funds.amount),
        ("Pending funds", snapshot.pending_funds.amount),
        ("Filtered total", report.summary.total.amount),
    ]
    for label, amount in money_rows:
        summary.append([label, amount])
        summary.cell(row=summary.max_row, column=2).number_format = _MONEY_FORMAT

    summary.append(["Monthly growth (%)", snapshot.monthly_growth_percent])
    summary.append(["Students", snapshot.student_count])
    summary.append(["Payments", snapshot.payment_count])
    summary.append(["Filtered payments", report.summary.count])
    summary.append(["Filtered students", report.summary.student_count])

    active_filters = report.payment_filter.describe()
    if active_filters:
        summary.append([])
        summary.append(["Active filters"])
        summary.cell(row=summary.max_row, column=1).font = Font(bold=True)
        for label, value in active_filters:
            summary.append([label, value])

    summary.column_dimensions["A"].width = 22
    summary.column_dimensions["B"].width = 28

    sheet = wb.create_sheet("Payments")
    sheet.append(list(PAYMENT_COLUMNS))
    for cell in sheet[1]:
        cell.font = Font(bold=True)

    for payment in _newest_first(report.payments):
        sheet.append([
            _naive_utc(payment.created_at),
            payment.student_name,
            payment.course_name,
            payment.base_price.amount,
            payment.instructor_amount.amount,
            payment.transfer_status.value,
        ])
        row = sheet.max_row
        sheet.cell(row=row, column=1).number_format = "yyyy-mm-dd"
        sheet.cell(row=row, column=4).number_format = _MONEY_FORMAT
        sheet.cell(row=row, column=5).number_format = _MONEY_FORMAT

    for column, width in zip("ABCDEF", (12, 24, 32, 12, 18, 16)):
        sheet.column_dimensions[column].width = width

    path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(path)

    logger.info(
        "earnings_report_written",
        extra={
            "instructor_id": report.instructor_id,
            "format": "xlsx",
            "path": str(path),
            "payment_count": len(report.payments),
        },
    )
    return path


def write_csv(path: Path | str, report: EarningsReport) -> Path:
    """Write the payment table only.  Returns the written path."""
    _require_payments(report)
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(PAYMENT_COLUMNS)
        for payment in _newest_first(report.payments):
            writer.writerow([
                payment.created_at.astimezone(timezone.utc).date().isoformat(),
                payment.student_name,
                payment.course_name,
                str(payment.base_price.amount),
                str(payment.instructor_amount.amount),
                payment.transfer_status.value,
            ])

    logger.info(
        "earnings_report_written",
        extra={
            "instructor_id": report.instructor_id,
            "format": "csv",
            "path": str(path),
            "payment_count": len(report.payments),
        },
    )
    return path


def write_report(path: Path | str, report: EarningsReport, fmt: str = "xlsx") -> Path:
    fmt = (fmt or "").lower()
    if fmt not in SUPPORTED_FORMATS:
        raise ValidationError(
            f"Unsupported report format {fmt!r}; expected one of {sorted(SUPPORTED_FORMATS)}",
            field="fmt",
            value=fmt,
        )
    if fmt == "csv":
        return write_csv(path, report)
    return write_xlsx(path, report)
