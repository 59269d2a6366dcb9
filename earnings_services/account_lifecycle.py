"""
AccountLifecycleManager -- owns the NONE -> PENDING -> COMPLETE state
machine of an instructor's processor sub-account.

Responsibility:
    Mediates every payment-account transition: validates preconditions,
    calls the ProcessorClient, and persists the resulting PaymentAccount
    through the LedgerStore.  Expected failures (validation, processor
    rejection, network trouble, missing credentials, concurrent operation)
    come back as structured results; precondition violations raise.

Architecture position:
    Services -- imperative shell.
    Depends on earnings_kernel (domain, store contract, exceptions) and
    ProcessorClient.  Called by profile completion, the settings screen,
    the onboarding return handler and operator scripts.

Invariants enforced:
    - provision() runs only from NONE, so at most one external account is
      ever created per instructor.
    - Nothing is persisted when account creation fails; the account stays
      NONE.  An account created without an onboarding link is persisted as
      PENDING so that it is never created twice.
    - COMPLETE is reached only through verify_and_activate(), never from a
      redirect query string.
    - Capability backfill only fills unrecorded flags and is idempotent.
    - At most one lifecycle operation per instructor is in flight within
      this process (advisory; not a distributed lock).

Failure modes:
    - InvalidAccountTransitionError: provision when not NONE, verify
      without an account id.
    - UserNotFoundError / UserAlreadyExistsError from the store.
    - Everything else is reported through the result objects.

Audit relevance:
    Activation on ``details_submitted`` is optimistic: the processor may
    still be granting capabilities asynchronously.  Every such activation
    is logged as ``optimistic_activation`` with the capability flags the
    processor actually reported, so the business can audit the gap.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Mapping
from urllib.parse import parse_qs

from earnings_kernel.domain.payment_account import AccountStatus, PaymentAccount
from earnings_kernel.domain.user import NewUserProfile, User
from earnings_kernel.domain.validation import normalize_country_code, normalize_email
from earnings_kernel.exceptions import (
    ConfigurationError,
    EarningsKernelError,
    InvalidAccountTransitionError,
    OnboardingLinkError,
    OperationInProgressError,
    ProcessorError,
    TransientNetworkError,
    ValidationError,
)
from earnings_kernel.logging_config import LogContext, get_logger
from earnings_kernel.store.ledger_store import LedgerStore, payment_account_fields
from earnings_services.processor_client import ProcessorClient

logger = get_logger("services.account_lifecycle")

# Failures that are reported, not raised
RECOVERABLE_ERRORS = (
    ValidationError,
    ProcessorError,
    TransientNetworkError,
    ConfigurationError,
)


class LifecycleOperation(str, Enum):
    PROVISION = "provision"
    VERIFY = "verify"
    BACKFILL_FLAGS = "backfill_flags"


class ProvisionOutcome(str, Enum):
    PROVISIONED = "provisioned"  # account created, onboarding URL issued
    LINK_PENDING = "link_pending"  # account created, no onboarding URL
    FAILED = "failed"  # nothing created, status unchanged


class VerificationOutcome(str, Enum):
    ACTIVATED = "activated"
    ALREADY_ACTIVE = "already_active"
    INCOMPLETE = "incomplete"  # fresh onboarding URL issued
    FAILED = "failed"


class ReturnIntent(str, Enum):
    """What the onboarding redirect claims.  Never trusted as proof."""

    COMPLETED = "completed"  # success=true
    REFRESH = "refresh"  # refresh=true (link expired or reused)
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ProvisionResult:
    instructor_id: str
    outcome: ProvisionOutcome
    account: PaymentAccount
    onboarding_url: str | None = None
    error: EarningsKernelError | None = None

    @property
    def success(self) -> bool:
        return self.outcome is ProvisionOutcome.PROVISIONED

    @property
    def account_id(self) -> str | None:
        return self.account.account_id


@dataclass(frozen=True)
class VerificationResult:
    instructor_id: str
    outcome: VerificationOutcome
    account: PaymentAccount
    onboarding_url: str | None = None
    requirements: tuple[str, ...] = ()
    error: EarningsKernelError | None = None

    @property
    def success(self) -> bool:
        return self.outcome is not VerificationOutcome.FAILED

    @property
    def is_complete(self) -> bool:
        return self.account.is_complete


@dataclass(frozen=True)
class RegistrationResult:
    """Profile creation always succeeds; payment setup may not."""

    user: User
    provision: ProvisionResult | None = None

    @property
    def payment_setup_attempted(self) -> bool:
        return self.provision is not None

    @property
    def payment_setup_succeeded(self) -> bool:
        return self.provision is not None and self.provision.success


def parse_return_intent(query: str | Mapping[str, str]) -> ReturnIntent:
    """Read ``success=true`` / ``refresh=true`` from a redirect query."""
    if isinstance(query, str):
        parsed = parse_qs(query.lstrip("?"))
        flags = {key: values[-1] for key, values in parsed.items() if values}
    else:
        flags = dict(query)

    if str(flags.get("success", "")).lower() == "true":
        return ReturnIntent.COMPLETED
    if str(flags.get("refresh", "")).lower() == "true":
        return ReturnIntent.REFRESH
    return ReturnIntent.UNKNOWN


class AccountLifecycleManager:
    """
    State machine driver for instructor payment accounts.

    Contract:
        The store flushes; the caller commits (session_scope).  One manager
        instance may serve many instructors and threads.
    """

    def __init__(self, store: LedgerStore, client: ProcessorClient):
        self._store = store
        self._client = client
        self._lock = threading.Lock()
        self._in_flight: dict[str, LifecycleOperation] = {}

    # -----------------------------------------------------------------
    # In-progress flags
    # -----------------------------------------------------------------

    def is_in_progress(
        self,
        instructor_id: str,
        operation: LifecycleOperation | str | None = None,
    ) -> bool:
        """True while a lifecycle operation (optionally a specific one) runs."""
        with self._lock:
            current = self._in_flight.get(instructor_id)
        if current is None:
            return False
        return operation is None or current is LifecycleOperation(operation)

    @contextmanager
    def _exclusive(self, instructor_id: str, operation: LifecycleOperation) -> Iterator[None]:
        with self._lock:
            if instructor_id in self._in_flight:
                raise OperationInProgressError(instructor_id, operation.value)
            self._in_flight[instructor_id] = operation
        try:
            with LogContext.bind(instructor_id=instructor_id, operation=operation.value):
                yield
        finally:
            with self._lock:
                self._in_flight.pop(instructor_id, None)

    # -----------------------------------------------------------------
    # Provisioning
    # -----------------------------------------------------------------

    def provision(self, instructor_id: str) -> ProvisionResult:
        """
        NONE -> PENDING: create the processor account and return its
        onboarding URL.

        Raises:
            InvalidAccountTransitionError: status is not NONE (no processor
                call is made).
            UserNotFoundError: unknown instructor.
        """
        try:
            with self._exclusive(instructor_id, LifecycleOperation.PROVISION):
                return self._provision(instructor_id)
        except OperationInProgressError as e:
            logger.warning("provision_already_in_progress", extra={"user_id": instructor_id})
            account = self._store.get_user(instructor_id).payment_account
            return ProvisionResult(instructor_id, ProvisionOutcome.FAILED, account, error=e)

    def _provision(self, instructor_id: str) -> ProvisionResult:
        user = self._store.get_user(instructor_id)
        account = user.payment_account
        if account.status is not AccountStatus.NONE:
            raise InvalidAccountTransitionError(
                instructor_id, account.status.value, LifecycleOperation.PROVISION.value
            )

        try:
            email = normalize_email(user.email)
            country = normalize_country_code(user.country_code)
            created = self._client.create_connect_account(
                email, user.name, country, user_id=instructor_id
            )
        except OnboardingLinkError as e:
            pending = account.provisioned(e.account_id)
            self._store.update_user(instructor_id, payment_account_fields(pending))
            logger.warning(
                "payment_account_provisioned_without_link",
                extra={"account_id": e.account_id, "error_code": e.code},
            )
            return ProvisionResult(
                instructor_id, ProvisionOutcome.LINK_PENDING, pending, error=e
            )
        except RECOVERABLE_ERRORS as e:
            logger.warning(
                "payment_account_provision_failed",
                extra={"error_code": e.code, "error_message": str(e)},
            )
            return ProvisionResult(instructor_id, ProvisionOutcome.FAILED, account, error=e)

        pending = account.provisioned(created.account_id)
        self._store.update_user(instructor_id, payment_account_fields(pending))
        logger.info(
            "payment_account_provisioned",
            extra={"account_id": created.account_id},
        )
        return ProvisionResult(
            instructor_id,
            ProvisionOutcome.PROVISIONED,
            pending,
            onboarding_url=created.onboarding_url,
        )

    def register_instructor(self, profile: NewUserProfile) -> RegistrationResult:
        """
        Create the user record (account status NONE), then attempt
        provisioning for teaching roles.

        The user record is kept whatever the provisioning outcome.
        """
        user = self._store.create_user(profile.to_user())
        if not profile.role.teaches:
            return RegistrationResult(user=user)

        result = self.provision(user.id)
        if not result.success:
            logger.info(
                "registration_completed_without_payment_setup",
                extra={
                    "user_id": user.id,
                    "provision_outcome": result.outcome.value,
                    "error_code": result.error.code if result.error else None,
                },
            )
        return RegistrationResult(user=self._store.get_user(user.id), provision=result)

    # -----------------------------------------------------------------
    # Verification
    # -----------------------------------------------------------------

    def verify_and_activate(self, instructor_id: str) -> VerificationResult:
        """
        PENDING -> COMPLETE when the processor reports details submitted;
        otherwise return a fresh onboarding URL and stay PENDING.

        Raises:
            InvalidAccountTransitionError: no account id recorded.
            UserNotFoundError: unknown instructor.
        """
        try:
            with self._exclusive(instructor_id, LifecycleOperation.VERIFY):
                return self._verify(instructor_id)
        except OperationInProgressError as e:
            logger.warning("verify_already_in_progress", extra={"user_id": instructor_id})
            account = self._store.get_user(instructor_id).payment_account
            return VerificationResult(
                instructor_id, VerificationOutcome.FAILED, account, error=e
            )

    def _verify(self, instructor_id: str) -> VerificationResult:
        account = self._store.get_user(instructor_id).payment_account
        if account.account_id is None:
            raise InvalidAccountTransitionError(
                instructor_id, account.status.value, LifecycleOperation.VERIFY.value
            )
        if account.is_complete:
            return VerificationResult(instructor_id, VerificationOutcome.ALREADY_ACTIVE, account)

        try:
            report = self._client.fetch_account_status(account.account_id)
        except RECOVERABLE_ERRORS as e:
            logger.warning(
                "payment_account_verification_failed",
                extra={"account_id": account.account_id, "error_code": e.code},
            )
            return VerificationResult(
                instructor_id, VerificationOutcome.FAILED, account, error=e
            )

        if report.details_submitted:
            activated = account.activated()
            self._store.update_user(instructor_id, payment_account_fields(activated))
            logger.info(
                "optimistic_activation",
                extra={
                    "account_id": account.account_id,
                    "reported_charges_enabled": report.charges_enabled,
                    "reported_payouts_enabled": report.payouts_enabled,
                    "outstanding_requirements": list(report.requirements),
                },
            )
            return VerificationResult(
                instructor_id,
                VerificationOutcome.ACTIVATED,
                activated,
                requirements=report.requirements,
            )

        try:
            url = self._client.create_onboarding_link(account.account_id)
        except RECOVERABLE_ERRORS as e:
            logger.warning(
                "onboarding_link_refresh_failed",
                extra={"account_id": account.account_id, "error_code": e.code},
            )
            return VerificationResult(
                instructor_id,
                VerificationOutcome.FAILED,
                account,
                requirements=report.requirements,
                error=e,
            )

        logger.info(
            "payment_account_onboarding_incomplete",
            extra={
                "account_id": account.account_id,
                "outstanding_requirements": list(report.requirements),
            },
        )
        return VerificationResult(
            instructor_id,
            VerificationOutcome.INCOMPLETE,
            account,
            onboarding_url=url,
            requirements=report.requirements,
        )

    def handle_return(
        self,
        instructor_id: str,
        query: str | Mapping[str, str],
    ) -> VerificationResult:
        """Onboarding redirect landed; log what it claims and re-verify."""
        intent = parse_return_intent(query)
        logger.info(
            "onboarding_return_received",
            extra={"user_id": instructor_id, "return_intent": intent.value},
        )
        return self.verify_and_activate(instructor_id)

    # -----------------------------------------------------------------
    # Capability backfill
    # -----------------------------------------------------------------

    def reconcile_capability_flags(self, instructor_id: str) -> PaymentAccount:
        """
        Fill capability flags that were never recorded on a complete account.

        No processor call when nothing is missing.  Processor failures and
        a concurrent lifecycle operation leave the account untouched.
        """
        try:
            with self._exclusive(instructor_id, LifecycleOperation.BACKFILL_FLAGS):
                return self._backfill(instructor_id)
        except OperationInProgressError:
            logger.info("capability_backfill_skipped", extra={"user_id": instructor_id})
            return self._store.get_user(instructor_id).payment_account

    def _backfill(self, instructor_id: str) -> PaymentAccount:
        account = self._store.get_user(instructor_id).payment_account
        if not account.needs_capability_backfill:
            return account

        try:
            report = self._client.fetch_account_status(account.account_id)
        except RECOVERABLE_ERRORS as e:
            logger.warning(
                "capability_backfill_failed",
                extra={"account_id": account.account_id, "error_code": e.code},
            )
            return account

        updated = account.with_backfilled_flags(report.charges_enabled, report.payouts_enabled)
        if updated != account:
            self._store.update_user(instructor_id, payment_account_fields(updated))
            logger.info(
                "capability_flags_backfilled",
                extra={
                    "account_id": account.account_id,
                    "charges_enabled": updated.charges_enabled,
                    "payouts_enabled": updated.payouts_enabled,
                },
            )
        return updated
