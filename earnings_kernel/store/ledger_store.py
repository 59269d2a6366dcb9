"""
Module: earnings_kernel.store.ledger_store
Responsibility: The persistence contract the lifecycle manager and earnings
    service depend on.  Any backend (SQL, document store, in-memory fake)
    that satisfies LedgerStore can be injected.
Architecture position: Kernel > Store.  Imports domain types only.

Invariants enforced:
    - Implementations return domain objects (User, Payment), never ORM rows.
    - update_user re-validates the resulting PaymentAccount before writing.
    - Payments are read-only through this contract.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, runtime_checkable

from earnings_kernel.domain.payment import Payment, PaymentStatus
from earnings_kernel.domain.payment_account import PaymentAccount
from earnings_kernel.domain.user import User

# Fields update_user accepts.  Anything else is a ValidationError.
UPDATABLE_USER_FIELDS: frozenset[str] = frozenset({
    "email",
    "name",
    "role",
    "country_code",
    "payment_account_id",
    "payment_account_status",
    "charges_enabled",
    "payouts_enabled",
})


def payment_account_fields(account: PaymentAccount) -> dict[str, Any]:
    """Flatten a PaymentAccount into the update_user field names."""
    return {
        "payment_account_id": account.account_id,
        "payment_account_status": account.status.value,
        "charges_enabled": account.charges_enabled,
        "payouts_enabled": account.payouts_enabled,
    }


@dataclass(frozen=True)
class PaymentQuery:
    """Selection of payments for one instructor."""

    instructor_id: str
    status: PaymentStatus | None = PaymentStatus.COMPLETED
    course_id: str | None = None


@runtime_checkable
class LedgerStore(Protocol):
    """Users with embedded payment accounts, plus read-only payments."""

    def get_user(self, user_id: str) -> User:
        """Raises UserNotFoundError when absent."""
        ...

    def create_user(self, user: User) -> User:
        """Raises UserAlreadyExistsError when the id is taken."""
        ...

    def update_user(self, user_id: str, fields: Mapping[str, Any]) -> User:
        """Partial update restricted to UPDATABLE_USER_FIELDS."""
        ...

    def query_payments(self, query: PaymentQuery) -> list[Payment]:
        ...
