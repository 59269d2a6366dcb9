"""Ledger store: persistence contract and its SQLAlchemy implementation."""

from earnings_kernel.store.ledger_store import (
    UPDATABLE_USER_FIELDS,
    LedgerStore,
    PaymentQuery,
    payment_account_fields,
)
from earnings_kernel.store.sql_store import SqlLedgerStore

__all__ = [
    "LedgerStore",
    "PaymentQuery",
    "SqlLedgerStore",
    "UPDATABLE_USER_FIELDS",
    "payment_account_fields",
]
