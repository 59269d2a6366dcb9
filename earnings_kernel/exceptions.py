"""
Typed Exception Hierarchy for the Earnings Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Payment-account and earnings code must tell apart a missing credential, a
malformed request, a processor rejection and a flaky network. Callers catch
by type, never by message text, and every exception carries a static ``code``
plus the structured data needed to log or display it.

Example - WRONG way to handle errors:
    try:
        client.create_connect_account(...)
    except Exception as e:
        if "country" in str(e):  # FRAGILE - message might change
            show_country_picker()

Example - RIGHT way:
    try:
        client.create_connect_account(...)
    except ProcessorError as e:
        log.warning("provisioning_rejected", extra={"processor_code": e.processor_code})
        api_response(code=e.code, message=e.message)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from EarningsKernelError:

    EarningsKernelError (base)
    |
    +-- ConfigurationError
    +-- ValidationError
    +-- ProcessorError
    |   +-- OnboardingLinkError
    +-- TransientNetworkError
    |
    +-- AccountLifecycleError
    |   +-- InvalidAccountTransitionError
    |   +-- OperationInProgressError
    |   +-- PaymentAccountInvariantError
    |
    +-- LedgerStoreError
    |   +-- UserNotFoundError
    |   +-- UserAlreadyExistsError
    |
    +-- ReconciliationInconsistencyError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|---------------------------------------
Configuration   | CONFIGURATION_ERROR           | Secret key missing, bad mode, bad YAML
Validation      | VALIDATION_ERROR              | Empty email, unsupported country, bad window
Processor       | PROCESSOR_ERROR               | Processor rejected the request (4xx)
                | ONBOARDING_LINK_FAILED        | Account created, link creation failed
Network         | TRANSIENT_NETWORK_ERROR       | Timeout, connection error, 5xx
----------------|-------------------------------|---------------------------------------
Lifecycle       | INVALID_ACCOUNT_TRANSITION    | Provision when not NONE, verify w/o id
                | OPERATION_IN_PROGRESS         | Duplicate submission for same instructor
                | PAYMENT_ACCOUNT_INVARIANT     | Stored account state is self-contradictory
----------------|-------------------------------|---------------------------------------
Store           | USER_NOT_FOUND                | No user with this id
                | USER_ALREADY_EXISTS           | Duplicate user id on create
----------------|-------------------------------|---------------------------------------
Reconciliation  | RECONCILIATION_INCONSISTENCY  | available + pending != total (bug)

===============================================================================
HANDLING PATTERNS
===============================================================================

1. RECOVERABLE PROCESSOR OUTCOMES are returned, not raised, by the lifecycle
   manager; inspect ``result.error.code``.

2. TransientNetworkError is only raised after the client's retry budget is
   spent on read-only calls. Account creation and transfers are never retried.

3. ReconciliationInconsistencyError is a programming error. Alert, do not show
   it to the instructor.
"""


class EarningsKernelError(Exception):
    """
    Base exception for all earnings kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "EARNINGS_KERNEL_ERROR"


# Configuration and input


class ConfigurationError(EarningsKernelError):
    """Missing or invalid configuration (credentials, mode, YAML)."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, message: str, setting: str | None = None):
        self.setting = setting
        super().__init__(message)


class ValidationError(EarningsKernelError):
    """Malformed input rejected before any network call or aggregation."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None, value: object = None):
        self.field = field
        self.value = value
        super().__init__(message)


# Processor


class ProcessorError(EarningsKernelError):
    """
    The payment processor rejected the request.

    ``processor_code`` is the processor's own error code (may be None);
    ``code`` stays the static kernel code.
    """

    code: str = "PROCESSOR_ERROR"

    def __init__(
        self,
        message: str,
        processor_code: str | None = None,
        http_status: int | None = None,
    ):
        self.message = message
        self.processor_code = processor_code
        self.http_status = http_status
        super().__init__(
            f"Processor error ({processor_code or http_status or 'unknown'}): {message}"
        )


class OnboardingLinkError(ProcessorError):
    """
    The connect account was created but its onboarding link was not.

    Carries ``account_id`` so the caller persists the account instead of
    creating a second one on retry.
    """

    code: str = "ONBOARDING_LINK_FAILED"

    def __init__(
        self,
        account_id: str,
        message: str,
        processor_code: str | None = None,
        http_status: int | None = None,
    ):
        self.account_id = account_id
        super().__init__(message, processor_code=processor_code, http_status=http_status)


class TransientNetworkError(EarningsKernelError):
    """Connectivity failure, timeout or processor 5xx."""

    code: str = "TRANSIENT_NETWORK_ERROR"

    def __init__(self, operation: str, message: str, attempts: int = 1):
        self.operation = operation
        self.attempts = attempts
        self.detail = message
        super().__init__(
            f"{operation} failed after {attempts} attempt(s): {message}"
        )


# Account lifecycle


class AccountLifecycleError(EarningsKernelError):
    """Base exception for payment-account lifecycle errors."""

    code: str = "ACCOUNT_LIFECYCLE_ERROR"


class InvalidAccountTransitionError(AccountLifecycleError):
    """Requested lifecycle operation is not allowed from the current status."""

    code: str = "INVALID_ACCOUNT_TRANSITION"

    def __init__(self, user_id: str, current_status: str, operation: str):
        self.user_id = user_id
        self.current_status = current_status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} payment account for user {user_id}: "
            f"status is {current_status}"
        )


class OperationInProgressError(AccountLifecycleError):
    """A lifecycle operation for this instructor is already in flight."""

    code: str = "OPERATION_IN_PROGRESS"

    def __init__(self, user_id: str, operation: str):
        self.user_id = user_id
        self.operation = operation
        super().__init__(f"{operation} already in progress for user {user_id}")


class PaymentAccountInvariantError(AccountLifecycleError):
    """Account id, status and capability flags disagree."""

    code: str = "PAYMENT_ACCOUNT_INVARIANT"

    def __init__(self, reason: str, account_id: str | None = None, status: str | None = None):
        self.reason = reason
        self.account_id = account_id
        self.status = status
        super().__init__(f"Invalid payment account state: {reason}")


# Ledger store


class LedgerStoreError(EarningsKernelError):
    """Base exception for ledger store errors."""

    code: str = "LEDGER_STORE_ERROR"


class UserNotFoundError(LedgerStoreError):
    """User with given ID was not found."""

    code: str = "USER_NOT_FOUND"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class UserAlreadyExistsError(LedgerStoreError):
    """User with given ID already exists."""

    code: str = "USER_ALREADY_EXISTS"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User already exists: {user_id}")


# Reconciliation


class ReconciliationInconsistencyError(EarningsKernelError):
    """
    available + pending != total after aggregation.

    Exact decimal arithmetic makes this unreachable; raising it signals a
    defect in the engine, not bad user input.
    """

    code: str = "RECONCILIATION_INCONSISTENCY"

    def __init__(self, instructor_id: str, total: str, available: str, pending: str):
        self.instructor_id = instructor_id
        self.total = total
        self.available = available
        self.pending = pending
        super().__init__(
            f"Reconciliation mismatch for instructor {instructor_id}: "
            f"available {available} + pending {pending} != total {total}"
        )
