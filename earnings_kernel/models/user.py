"""
Module: earnings_kernel.models.user
Responsibility: ORM persistence for platform users and the payment-account
    state embedded in each user row.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from store/, domain/, or outer layers.

Invariants enforced:
    - payment_account_status is one of "none", "pending", "complete".  The
      cross-field invariants (account id vs status vs capability flags) are
      enforced by the PaymentAccount domain type before every write; this
      model does NOT re-check them.
    - charges_enabled / payouts_enabled are nullable: NULL means "never
      recorded", which is distinct from False.

Failure modes:
    - IntegrityError on duplicate user id.
"""

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from earnings_kernel.db.base import TrackedBase


class UserRecord(TrackedBase):
    """
    A platform user (student, instructor, or both).

    Guarantees:
        - id is the identity-provider subject and never changes.
        - payment_account_id is unique when present.
    """

    __tablename__ = "users"

    __table_args__ = (
        Index("idx_user_role", "role"),
        Index("idx_user_account_status", "payment_account_status"),
    )

    id: Mapped[str] = mapped_column(String(128), primary_key=True)

    email: Mapped[str] = mapped_column(String(320), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    role: Mapped[str] = mapped_column(String(20), nullable=False, default="student")

    country_code: Mapped[str | None] = mapped_column(String(2), nullable=True)

    # Processor sub-account
    payment_account_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        unique=True,
    )

    payment_account_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="none",
    )

    charges_enabled: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    payouts_enabled: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    def __repr__(self) -> str:
        return f"<UserRecord {self.id}: {self.role} account={self.payment_account_status}>"
