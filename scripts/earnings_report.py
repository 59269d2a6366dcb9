#!/usr/bin/env python3
"""
Operator CLI for instructor earnings and payment accounts.

Subcommands:
  snapshot <instructor>                 Print the reconciled earnings snapshot.
  export <instructor> <path>            Write an XLSX (default) or CSV report.
  verify <instructor>                   Re-verify onboarding with the processor.
  backfill-flags <instructor>           Fill unrecorded capability flags.

Usage:
  python3 scripts/earnings_report.py snapshot teacher-1
  python3 scripts/earnings_report.py export teacher-1 out/earnings.xlsx \\
    --transfer-status pending --from 2024-01-01 --to 2024-06-30
  python3 scripts/earnings_report.py --database-url sqlite:///earnings.db verify teacher-1

Configuration comes from earnings_config (EARNINGS_* environment variables
and an optional --config YAML file).  Exit status is 0 on success and 1 on
any reported error.
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import date, datetime, time, timezone
from pathlib import Path

# Project root on sys.path when run as a file
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from earnings_config import EarningsConfig, get_active_config  # noqa: E402
from earnings_engines.earnings import EarningsSnapshot, EarningsWindow  # noqa: E402
from earnings_engines.filters import PaymentFilter  # noqa: E402
from earnings_kernel.db.engine import (  # noqa: E402
    create_tables,
    init_engine_from_url,
    session_scope,
)
from earnings_kernel.domain.clock import SystemClock  # noqa: E402
from earnings_kernel.exceptions import EarningsKernelError  # noqa: E402
from earnings_kernel.logging_config import configure_logging  # noqa: E402
from earnings_kernel.store.sql_store import SqlLedgerStore  # noqa: E402
from earnings_services.account_lifecycle import AccountLifecycleManager  # noqa: E402
from earnings_services.earnings_service import EarningsService  # noqa: E402
from earnings_services.processor_client import ProcessorClient  # noqa: E402


def _parse_date(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid date (use YYYY-MM-DD): {value}") from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Instructor earnings and payment-account operations.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--config", type=Path, default=None, help="YAML override file")
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy URL (default: configured database.url)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    snap = sub.add_parser("snapshot", help="Print the earnings snapshot")
    snap.add_argument("instructor")
    snap.add_argument("--as-of", type=_parse_date, default=None, help="Reference date YYYY-MM-DD")

    export = sub.add_parser("export", help="Write an earnings report")
    export.add_argument("instructor")
    export.add_argument("path", type=Path)
    export.add_argument("--format", choices=("xlsx", "csv"), default="xlsx")
    export.add_argument("--search", default="", help="Student or course name substring")
    export.add_argument(
        "--transfer-status",
        choices=("all", "completed", "pending"),
        default="all",
    )
    export.add_argument("--course", default=None, help="Course id")
    export.add_argument("--from", dest="date_from", type=_parse_date, default=None)
    export.add_argument("--to", dest="date_to", type=_parse_date, default=None)

    verify = sub.add_parser("verify", help="Verify onboarding and activate")
    verify.add_argument("instructor")

    backfill = sub.add_parser("backfill-flags", help="Backfill capability flags")
    backfill.add_argument("instructor")

    return parser


def format_snapshot(snapshot: EarningsSnapshot) -> str:
    ccy = snapshot.total_earnings.currency.code
    lines = [
        f"Instructor:        {snapshot.instructor_id}",
        f"As of:             {snapshot.as_of.isoformat()}",
        f"Total earnings:    {snapshot.total_earnings.amount} {ccy}",
        f"This month:        {snapshot.monthly_earnings.amount} {ccy}",
        f"Previous month:    {snapshot.previous_month_earnings.amount} {ccy}",
        f"Growth:            {snapshot.monthly_growth_percent:+d}%",
        f"Available funds:   {snapshot.available_funds.amount} {ccy}",
        f"Pending funds:     {snapshot.pending_funds.amount} {ccy}",
        f"Card payments:     {snapshot.card_payments_total.amount} {ccy}",
        f"Payments:          {snapshot.payment_count}",
        f"Students:          {snapshot.student_count}",
        "",
        "Top courses:",
    ]
    for rank, course in enumerate(snapshot.per_course_ranking, start=1):
        lines.append(f"  {rank}. {course.course_name}: {course.earnings.amount} {ccy}")
    if not snapshot.per_course_ranking:
        lines.append("  (none)")
    lines.append("")
    lines.append("Monthly series:")
    for month in snapshot.per_month_series:
        lines.append(
            f"  {month.label}: {month.earnings.amount} {ccy} ({month.student_count} students)"
        )
    return "\n".join(lines)


def run(args: argparse.Namespace, config: EarningsConfig) -> int:
    init_engine_from_url(args.database_url or config.database.url, echo=config.database.echo)
    create_tables()
    clock = SystemClock()

    with session_scope() as session:
        store = SqlLedgerStore(session)

        if args.command == "snapshot":
            service = EarningsService(store, clock, config.earnings)
            window = None
            if args.as_of is not None:
                window = EarningsWindow(
                    as_of=datetime.combine(args.as_of, time(23, 59, 59), tzinfo=timezone.utc)
                )
            print(format_snapshot(service.snapshot(args.instructor, window=window)))
            return 0

        if args.command == "export":
            service = EarningsService(store, clock, config.earnings)
            payment_filter = PaymentFilter(
                search=args.search,
                transfer_status=args.transfer_status,
                course_id=args.course,
                date_from=args.date_from,
                date_to=args.date_to,
            )
            path = service.export_report(
                args.instructor, args.path, payment_filter=payment_filter, fmt=args.format
            )
            print(f"Wrote {path}")
            return 0

        manager = AccountLifecycleManager(store, ProcessorClient(config.processor))

        if args.command == "verify":
            result = manager.verify_and_activate(args.instructor)
            print(f"Outcome: {result.outcome.value}")
            print(f"Status:  {result.account.status.value}")
            if result.onboarding_url:
                print(f"Onboarding URL: {result.onboarding_url}")
            if result.error is not None:
                print(f"ERROR: {result.error}")
                return 1
            return 0

        if args.command == "backfill-flags":
            account = manager.reconcile_capability_flags(args.instructor)
            print(f"Status:          {account.status.value}")
            print(f"Charges enabled: {account.charges_enabled}")
            print(f"Payouts enabled: {account.payouts_enabled}")
            return 0

    raise AssertionError(f"unhandled command {args.command!r}")


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(level=logging.DEBUG if args.verbose else logging.WARNING)

    try:
        config = get_active_config(config_path=args.config)
        return run(args, config)
    except EarningsKernelError as e:
        print(f"ERROR [{e.code}]: {e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
