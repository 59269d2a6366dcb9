"""
Module: earnings_kernel.store.sql_store
Responsibility: SQLAlchemy implementation of the LedgerStore contract over
    the ``users`` and ``payments`` tables.
Architecture position: Kernel > Store.  May import from models/, domain/
    and exceptions.  MUST NOT import from earnings_services or engines.

Invariants enforced:
    - Returns frozen domain objects, never ORM rows.
    - update_user rebuilds the PaymentAccount from the merged fields before
      touching the row, so an invalid combination never reaches the
      database.
    - The store flushes; the caller owns commit/rollback (session_scope).

Failure modes:
    - UserNotFoundError from get_user/update_user.
    - UserAlreadyExistsError from create_user.
    - ValidationError for unknown update fields or an unknown role.
    - PaymentAccountInvariantError when an update would leave the payment
      account in a contradictory state.
"""

from __future__ import annotations

from typing import Any, Mapping

from sqlalchemy import select
from sqlalchemy.orm import Session

from earnings_kernel.domain.payment import Payment, TransferStatus
from earnings_kernel.domain.payment_account import PaymentAccount
from earnings_kernel.domain.user import User, UserRole
from earnings_kernel.domain.values import Money
from earnings_kernel.exceptions import (
    UserAlreadyExistsError,
    UserNotFoundError,
    ValidationError,
)
from earnings_kernel.logging_config import get_logger
from earnings_kernel.models.payment import PaymentRecord
from earnings_kernel.models.user import UserRecord
from earnings_kernel.store.ledger_store import UPDATABLE_USER_FIELDS, PaymentQuery

logger = get_logger("store.sql")


class SqlLedgerStore:
    """
    LedgerStore backed by a caller-owned SQLAlchemy Session.

    Contract:
        Every write ends with ``session.flush()``; nothing is committed
        here.
    """

    def __init__(self, session: Session):
        self.session = session

    # -----------------------------------------------------------------
    # Row <-> domain mapping
    # -----------------------------------------------------------------

    @staticmethod
    def _to_user(row: UserRecord) -> User:
        return User(
            id=row.id,
            email=row.email,
            name=row.name,
            role=UserRole(row.role),
            country_code=row.country_code,
            payment_account=PaymentAccount(
                status=row.payment_account_status,
                account_id=row.payment_account_id,
                charges_enabled=row.charges_enabled,
                payouts_enabled=row.payouts_enabled,
            ),
        )

    @staticmethod
    def _to_payment(row: PaymentRecord) -> Payment:
        base_price = Money.of(row.base_price, row.currency)
        # Legacy rows without an instructor amount earn the full base price
        instructor_amount = (
            Money.of(row.instructor_amount, row.currency)
            if row.instructor_amount is not None
            else base_price
        )
        return Payment(
            id=row.id,
            student_id=row.student_id,
            instructor_id=row.instructor_id,
            course_id=row.course_id,
            course_name=row.course_name,
            student_name=row.student_name,
            base_price=base_price,
            instructor_amount=instructor_amount,
            status=row.status,
            transfer_status=TransferStatus.parse(row.transfer_status),
            payment_method=row.payment_method,
            created_at=row.created_at,
        )

    def _get_row(self, user_id: str) -> UserRecord:
        row = self.session.get(UserRecord, user_id)
        if row is None:
            raise UserNotFoundError(user_id)
        return row

    # -----------------------------------------------------------------
    # Users
    # -----------------------------------------------------------------

    def get_user(self, user_id: str) -> User:
        return self._to_user(self._get_row(user_id))

    def create_user(self, user: User) -> User:
        if self.session.get(UserRecord, user.id) is not None:
            raise UserAlreadyExistsError(user.id)

        account = user.payment_account
        row = UserRecord(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role.value,
            country_code=user.country_code,
            payment_account_id=account.account_id,
            payment_account_status=account.status.value,
            charges_enabled=account.charges_enabled,
            payouts_enabled=account.payouts_enabled,
        )
        self.session.add(row)
        self.session.flush()

        logger.info(
            "user_created",
            extra={"user_id": user.id, "role": user.role.value},
        )
        return self._to_user(row)

    def update_user(self, user_id: str, fields: Mapping[str, Any]) -> User:
        unknown = set(fields) - UPDATABLE_USER_FIELDS
        if unknown:
            raise ValidationError(
                f"Cannot update user fields: {sorted(unknown)}",
                field="fields",
                value=sorted(unknown),
            )

        row = self._get_row(user_id)

        if "role" in fields:
            try:
                role = UserRole(fields["role"])
            except ValueError as e:
                raise ValidationError(
                    f"Unknown role {fields['role']!r}", field="role", value=fields["role"]
                ) from e
        else:
            role = UserRole(row.role)

        # Validate the merged account before the row is touched
        account = PaymentAccount(
            status=fields.get("payment_account_status", row.payment_account_status),
            account_id=fields.get("payment_account_id", row.payment_account_id),
            charges_enabled=fields.get("charges_enabled", row.charges_enabled),
            payouts_enabled=fields.get("payouts_enabled", row.payouts_enabled),
        )

        row.email = fields.get("email", row.email)
        row.name = fields.get("name", row.name)
        row.country_code = fields.get("country_code", row.country_code)
        row.role = role.value
        row.payment_account_id = account.account_id
        row.payment_account_status = account.status.value
        row.charges_enabled = account.charges_enabled
        row.payouts_enabled = account.payouts_enabled
        self.session.flush()

        logger.info(
            "user_updated",
            extra={
                "user_id": user_id,
                "fields": sorted(fields),
                "payment_account_status": account.status.value,
            },
        )
        return self._to_user(row)

    # -----------------------------------------------------------------
    # Payments
    # -----------------------------------------------------------------

    def query_payments(self, query: PaymentQuery) -> list[Payment]:
        stmt = select(PaymentRecord).where(
            PaymentRecord.instructor_id == query.instructor_id
        )
        if query.status is not None:
            stmt = stmt.where(PaymentRecord.status == query.status.value)
        if query.course_id is not None:
            stmt = stmt.where(PaymentRecord.course_id == query.course_id)
        stmt = stmt.order_by(PaymentRecord.created_at, PaymentRecord.id)

        payments = [self._to_payment(row) for row in self.session.scalars(stmt)]
        logger.debug(
            "payments_queried",
            extra={
                "instructor_id": query.instructor_id,
                "status": query.status.value if query.status else None,
                "count": len(payments),
            },
        )
        return payments

    def add_payment(self, payment: Payment) -> Payment:
        """
        Insert a payment row.

        Payments are owned by the billing subsystem; this is the seeding
        path used by fixtures and data imports, not by the earnings core.
        """
        self.session.add(
            PaymentRecord(
                id=payment.id,
                student_id=payment.student_id,
                instructor_id=payment.instructor_id,
                course_id=payment.course_id,
                course_name=payment.course_name,
                student_name=payment.student_name,
                currency=payment.base_price.currency.code,
                base_price=payment.base_price.amount,
                instructor_amount=payment.instructor_amount.amount,
                status=payment.status.value,
                transfer_status=payment.transfer_status.value,
                payment_method=payment.payment_method,
                created_at=payment.created_at,
            )
        )
        self.session.flush()
        return payment
