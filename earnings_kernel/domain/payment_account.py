"""
PaymentAccount -- single-state model of an instructor's processor sub-account.

Responsibility:
    Represents the lifecycle of a connect account as ONE tagged status plus
    the processor's capability mirror.  Replaces the four independent
    booleans (onboarding complete, setup pending, charges enabled, payouts
    enabled) that used to drift apart.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Persisted by the ledger store, transitioned only by
    earnings_services.account_lifecycle.

Invariants enforced (on construction, therefore on every store write):
    - account_id set  <=>  status in {PENDING, COMPLETE}
    - status NONE/PENDING  =>  no capability flag is True
    - status COMPLETE      =>  no capability flag is False
      (a flag may still be None: "never recorded", see backfill)
    - Transitions follow VALID_ACCOUNT_TRANSITIONS; nothing leads back to
      NONE and nothing leaves COMPLETE except a flag backfill.

Failure modes:
    - PaymentAccountInvariantError on contradictory state.
    - InvalidAccountTransitionError from ``transition()`` (raised by caller
      helpers in the lifecycle manager).
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum

from earnings_kernel.exceptions import PaymentAccountInvariantError


class AccountStatus(str, Enum):
    """Lifecycle status of a payment sub-account."""

    NONE = "none"  # No external account yet
    PENDING = "pending"  # Account exists, onboarding not confirmed
    COMPLETE = "complete"  # Onboarding confirmed by explicit verification


VALID_ACCOUNT_TRANSITIONS: dict[AccountStatus, frozenset[AccountStatus]] = {
    AccountStatus.NONE: frozenset({AccountStatus.PENDING}),
    AccountStatus.PENDING: frozenset({AccountStatus.PENDING, AccountStatus.COMPLETE}),
    AccountStatus.COMPLETE: frozenset({AccountStatus.COMPLETE}),
}


def can_transition(current: AccountStatus, target: AccountStatus) -> bool:
    """True if ``current -> target`` is an allowed lifecycle transition."""
    return target in VALID_ACCOUNT_TRANSITIONS.get(current, frozenset())


@dataclass(frozen=True)
class PaymentAccount:
    """
    Payment-account state embedded in a user record.

    Contract:
        Immutable.  Every state change produces a new instance through one
        of the named constructors below, each of which re-checks the
        invariants.

    Guarantees:
        - ``status`` is the only source of lifecycle truth; capability
          flags never imply a status.
    """

    status: AccountStatus = AccountStatus.NONE
    account_id: str | None = None
    charges_enabled: bool | None = None
    payouts_enabled: bool | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.status, AccountStatus):
            try:
                object.__setattr__(self, "status", AccountStatus(self.status))
            except ValueError as e:
                raise PaymentAccountInvariantError(
                    f"unknown status {self.status!r}", account_id=self.account_id
                ) from e

        if self.account_id is not None and not self.account_id.strip():
            raise PaymentAccountInvariantError(
                "account_id must not be blank", status=self.status.value
            )

        has_id = self.account_id is not None
        if self.status is AccountStatus.NONE and has_id:
            raise PaymentAccountInvariantError(
                "status none cannot carry an account_id",
                account_id=self.account_id,
                status=self.status.value,
            )
        if self.status is not AccountStatus.NONE and not has_id:
            raise PaymentAccountInvariantError(
                f"status {self.status.value} requires an account_id",
                status=self.status.value,
            )

        flags = (self.charges_enabled, self.payouts_enabled)
        if self.status is AccountStatus.COMPLETE and False in flags:
            raise PaymentAccountInvariantError(
                "a complete account cannot have a disabled capability",
                account_id=self.account_id,
                status=self.status.value,
            )
        if self.status is not AccountStatus.COMPLETE and True in flags:
            raise PaymentAccountInvariantError(
                f"capabilities cannot be enabled while {self.status.value}",
                account_id=self.account_id,
                status=self.status.value,
            )

    # -----------------------------------------------------------------
    # Named constructors
    # -----------------------------------------------------------------

    @classmethod
    def unprovisioned(cls) -> PaymentAccount:
        """State at profile creation."""
        return cls()

    def provisioned(self, account_id: str) -> PaymentAccount:
        """NONE -> PENDING once the processor created the account."""
        if self.status is not AccountStatus.NONE:
            raise PaymentAccountInvariantError(
                f"cannot provision a second account while {self.status.value}",
                account_id=self.account_id,
                status=self.status.value,
            )
        return PaymentAccount(
            status=AccountStatus.PENDING,
            account_id=account_id,
            charges_enabled=False,
            payouts_enabled=False,
        )

    def activated(self) -> PaymentAccount:
        """PENDING -> COMPLETE with both capabilities recorded as enabled."""
        self._require(AccountStatus.COMPLETE)
        return replace(
            self,
            status=AccountStatus.COMPLETE,
            charges_enabled=True,
            payouts_enabled=True,
        )

    def with_backfilled_flags(
        self,
        charges_enabled: bool | None,
        payouts_enabled: bool | None,
    ) -> PaymentAccount:
        """
        Fill in capability flags that were never recorded.

        Only ``True`` values are written and only into unrecorded slots; a
        capability the processor has not granted yet stays unrecorded.
        """
        if self.status is not AccountStatus.COMPLETE:
            raise PaymentAccountInvariantError(
                f"capability flags can only be backfilled on a complete account, not {self.status.value}",
                account_id=self.account_id,
                status=self.status.value,
            )
        return replace(
            self,
            charges_enabled=self.charges_enabled
            if self.charges_enabled is not None
            else (True if charges_enabled else None),
            payouts_enabled=self.payouts_enabled
            if self.payouts_enabled is not None
            else (True if payouts_enabled else None),
        )

    def _require(self, target: AccountStatus) -> None:
        if not can_transition(self.status, target):
            raise PaymentAccountInvariantError(
                f"transition {self.status.value} -> {target.value} is not allowed",
                account_id=self.account_id,
                status=self.status.value,
            )

    # -----------------------------------------------------------------
    # Derived views
    # -----------------------------------------------------------------

    @property
    def is_provisioned(self) -> bool:
        return self.status is not AccountStatus.NONE

    @property
    def is_pending(self) -> bool:
        return self.status is AccountStatus.PENDING

    @property
    def is_complete(self) -> bool:
        return self.status is AccountStatus.COMPLETE

    @property
    def can_receive_funds(self) -> bool:
        """Complete with both capabilities recorded as enabled."""
        return (
            self.is_complete
            and self.charges_enabled is True
            and self.payouts_enabled is True
        )

    @property
    def needs_capability_backfill(self) -> bool:
        """Complete, but a capability flag was never recorded."""
        return self.is_complete and (
            self.charges_enabled is None or self.payouts_enabled is None
        )
