"""User -- profile fields the earnings core reads, plus the embedded account."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from earnings_kernel.domain.payment_account import PaymentAccount


class UserRole(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    BOTH = "both"

    @property
    def teaches(self) -> bool:
        return self in (UserRole.TEACHER, UserRole.BOTH)


@dataclass(frozen=True)
class User:
    """Immutable snapshot of a user record."""

    id: str
    email: str
    name: str
    role: UserRole = UserRole.STUDENT
    country_code: str | None = None
    payment_account: PaymentAccount = field(default_factory=PaymentAccount.unprovisioned)

    def __post_init__(self) -> None:
        if not isinstance(self.role, UserRole):
            object.__setattr__(self, "role", UserRole(self.role))


@dataclass(frozen=True)
class NewUserProfile:
    """Input for profile completion (sign-up)."""

    id: str
    email: str
    name: str
    role: UserRole
    country_code: str = "US"

    def to_user(self) -> User:
        return User(
            id=self.id,
            email=self.email,
            name=self.name,
            role=self.role,
            country_code=self.country_code,
        )
