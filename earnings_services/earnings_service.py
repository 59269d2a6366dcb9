"""
EarningsService -- loads an instructor's payments once and serves every
derived earnings view from that in-memory ledger.

Responsibility:
    One store query per ledger load; snapshots, filtered tables and report
    exports are then computed by the pure engines over the loaded
    collection.  The reference time always comes from the injected Clock.

Architecture position:
    Services -- imperative shell between the LedgerStore and
    earnings_engines.

Invariants enforced:
    - Only completed payments are loaded.
    - Snapshots and filtered views over the same InstructorLedger see the
      same payments.
    - No ``datetime.now()``: the window defaults to ``clock.now()``.

Failure modes:
    - UserNotFoundError when building a report for an unknown instructor.
    - ValidationError from the engines and the exporter.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from earnings_config.schema import EarningsSettings
from earnings_engines.earnings import EarningsSnapshot, EarningsWindow, reconcile_earnings
from earnings_engines.filters import (
    FilteredSummary,
    PaymentFilter,
    filter_payments,
    summarize,
)
from earnings_kernel.domain.clock import Clock
from earnings_kernel.domain.payment import Payment, PaymentStatus
from earnings_kernel.logging_config import get_logger
from earnings_kernel.store.ledger_store import LedgerStore, PaymentQuery
from earnings_services.report_exporter import EarningsReport, write_report

logger = get_logger("services.earnings")


@dataclass(frozen=True)
class InstructorLedger:
    """An instructor's completed payments as loaded at ``loaded_at``."""

    instructor_id: str
    payments: tuple[Payment, ...]
    loaded_at: datetime


class EarningsService:
    """Dashboard and report entry point for instructor earnings."""

    def __init__(
        self,
        store: LedgerStore,
        clock: Clock,
        settings: EarningsSettings | None = None,
    ):
        self._store = store
        self._clock = clock
        self._settings = settings or EarningsSettings()

    def load_ledger(self, instructor_id: str) -> InstructorLedger:
        payments = self._store.query_payments(
            PaymentQuery(instructor_id=instructor_id, status=PaymentStatus.COMPLETED)
        )
        ledger = InstructorLedger(
            instructor_id=instructor_id,
            payments=tuple(payments),
            loaded_at=self._clock.now(),
        )
        logger.info(
            "instructor_ledger_loaded",
            extra={"instructor_id": instructor_id, "payment_count": len(payments)},
        )
        return ledger

    def snapshot(
        self,
        instructor_id: str,
        window: EarningsWindow | None = None,
        ledger: InstructorLedger | None = None,
    ) -> EarningsSnapshot:
        """Reconcile the instructor's earnings; window defaults to now."""
        ledger = ledger or self.load_ledger(instructor_id)
        return reconcile_earnings(
            instructor_id=instructor_id,
            window=window or EarningsWindow(as_of=self._clock.now()),
            payments=ledger.payments,
            currency=self._settings.currency,
            ranking_size=self._settings.ranking_size,
            palette=self._settings.palette,
        )

    def filtered(
        self,
        instructor_id: str,
        payment_filter: PaymentFilter,
        ledger: InstructorLedger | None = None,
    ) -> tuple[list[Payment], FilteredSummary]:
        ledger = ledger or self.load_ledger(instructor_id)
        payments = filter_payments(ledger.payments, payment_filter)
        return payments, summarize(payments, self._settings.currency)

    def build_report(
        self,
        instructor_id: str,
        payment_filter: PaymentFilter | None = None,
    ) -> EarningsReport:
        user = self._store.get_user(instructor_id)
        payment_filter = payment_filter or PaymentFilter()
        ledger = self.load_ledger(instructor_id)
        payments, summary = self.filtered(instructor_id, payment_filter, ledger=ledger)
        return EarningsReport(
            instructor_id=instructor_id,
            instructor_name=user.name,
            generated_at=self._clock.now(),
            snapshot=self.snapshot(instructor_id, ledger=ledger),
            payments=tuple(payments),
            summary=summary,
            payment_filter=payment_filter,
        )

    def export_report(
        self,
        instructor_id: str,
        path: Path | str,
        payment_filter: PaymentFilter | None = None,
        fmt: str = "xlsx",
    ) -> Path:
        """Write an XLSX or CSV report; an empty payment set is rejected."""
        report = self.build_report(instructor_id, payment_filter)
        return write_report(path, report, fmt)
