"""SQLAlchemy ORM models for the ledger store."""

from earnings_kernel.models.payment import PaymentRecord
from earnings_kernel.models.user import UserRecord

__all__ = [
    "PaymentRecord",
    "UserRecord",
]
