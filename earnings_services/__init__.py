"""
Earnings services -- the imperative shell around the kernel and engines.

- ProcessorClient: payment processor REST API (the only network I/O).
- AccountLifecycleManager: NONE -> PENDING -> COMPLETE account state machine.
- EarningsService: ledger load, snapshots, filtered views, report export.
- report_exporter: XLSX / CSV report files.
"""

from earnings_services.account_lifecycle import (
    AccountLifecycleManager,
    LifecycleOperation,
    ProvisionOutcome,
    ProvisionResult,
    RegistrationResult,
    ReturnIntent,
    VerificationOutcome,
    VerificationResult,
    parse_return_intent,
)
from earnings_services.earnings_service import EarningsService, InstructorLedger
from earnings_services.processor_client import (
    AccountStatusReport,
    ConnectAccount,
    ProcessorClient,
)
from earnings_services.report_exporter import (
    EarningsReport,
    write_csv,
    write_report,
    write_xlsx,
)

__all__ = [
    "AccountLifecycleManager",
    "AccountStatusReport",
    "ConnectAccount",
    "EarningsReport",
    "EarningsService",
    "InstructorLedger",
    "LifecycleOperation",
    "ProcessorClient",
    "ProvisionOutcome",
    "ProvisionResult",
    "RegistrationResult",
    "ReturnIntent",
    "VerificationOutcome",
    "VerificationResult",
    "parse_return_intent",
    "write_csv",
    "write_report",
    "write_xlsx",
]
