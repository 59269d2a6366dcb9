"""
Pure domain layer.

This module contains value objects and domain records with NO
dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (other than the Clock abstraction itself)
- Network I/O

All domain objects are immutable and deterministic.
"""

from earnings_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from earnings_kernel.domain.currency import CurrencyRegistry
from earnings_kernel.domain.payment import (
    Payment,
    PaymentStatus,
    TransferStatus,
)
from earnings_kernel.domain.payment_account import (
    VALID_ACCOUNT_TRANSITIONS,
    AccountStatus,
    PaymentAccount,
    can_transition,
)
from earnings_kernel.domain.user import NewUserProfile, User, UserRole
from earnings_kernel.domain.values import Currency, Money, sum_money

__all__ = [
    "AccountStatus",
    "Clock",
    "Currency",
    "CurrencyRegistry",
    "DeterministicClock",
    "Money",
    "NewUserProfile",
    "Payment",
    "PaymentAccount",
    "PaymentStatus",
    "SystemClock",
    "TransferStatus",
    "User",
    "UserRole",
    "VALID_ACCOUNT_TRANSITIONS",
    "can_transition",
    "sum_money",
]
