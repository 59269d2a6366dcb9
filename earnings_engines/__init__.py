"""
Module: earnings_engines
Responsibility:
    Package entrypoint re-exporting the pure earnings calculations.  This is
    the import surface for earnings_services and scripts.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import earnings_kernel (domain, exceptions, logging).
    MUST NOT import earnings_services or earnings_config.

Invariants enforced:
    - Engines never call ``datetime.now()``; the reference time arrives in
      an EarningsWindow built by the caller.
    - Decimal-only arithmetic through Money.
    - Identical inputs give identical outputs.
"""

from earnings_engines.earnings import (
    DEFAULT_PALETTE,
    DEFAULT_RANKING_SIZE,
    MONTH_LABELS,
    CourseEarnings,
    EarningsSnapshot,
    EarningsWindow,
    MonthlyEarnings,
    calculate_growth_percent,
    rank_courses,
    reconcile_earnings,
)
from earnings_engines.filters import (
    FilteredSummary,
    PaymentFilter,
    TransferFilter,
    filter_payments,
    summarize,
)
from earnings_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    "CourseEarnings",
    "DEFAULT_PALETTE",
    "DEFAULT_RANKING_SIZE",
    "EarningsSnapshot",
    "EarningsWindow",
    "FilteredSummary",
    "MONTH_LABELS",
    "MonthlyEarnings",
    "PaymentFilter",
    "TransferFilter",
    "calculate_growth_percent",
    "compute_input_fingerprint",
    "filter_payments",
    "rank_courses",
    "reconcile_earnings",
    "summarize",
    "traced_engine",
]
