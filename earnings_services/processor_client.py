"""
ProcessorClient -- request/response wrapper around the payment processor's
REST API.

Responsibility:
    Translates domain intents (create a connect account, read its status,
    issue an onboarding link, move money) into processor HTTP calls and
    classifies every failure into the kernel exception hierarchy.  Holds no
    business state.

Architecture position:
    Services -- imperative shell, the only component doing network I/O.
    Called by AccountLifecycleManager and operator scripts.

Invariants enforced:
    - Fail fast: every operation raises ConfigurationError before any
      request when the secret key is absent, the sandbox transfer
      short-circuit included.
    - Account creation and transfers are never retried; status reads and
      onboarding-link creation are retried on transient failures only.
    - Sandbox mode comes from ProcessorConfig.mode, never from the shape
      of the credentials.
    - Amounts are sent in minor units; a Money with sub-cent precision is
      rejected rather than rounded.
    - The secret key is never logged.

Failure modes:
    - ConfigurationError: secret key missing.
    - ValidationError: malformed email, country, account id or amount.
    - TransientNetworkError: connection error, timeout or HTTP 5xx (after
      the retry budget for retried calls).
    - ProcessorError: any other non-2xx response, with the processor's own
      error code and message.
    - OnboardingLinkError: account created, onboarding link not.  Carries
      the new account id.

Audit relevance:
    Account creation, link issuance and transfers are logged with the
    account id and operation; sandbox transfers are logged as such so that
    synthetic identifiers are never mistaken for real payouts.
"""

from __future__ import annotations

import hashlib
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping

import requests

from earnings_config.schema import ProcessorConfig
from earnings_kernel.domain.validation import normalize_country_code, normalize_email
from earnings_kernel.domain.values import Money
from earnings_kernel.exceptions import (
    ConfigurationError,
    OnboardingLinkError,
    ProcessorError,
    TransientNetworkError,
    ValidationError,
)
from earnings_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.processor_client")

SANDBOX_TRANSFER_PREFIX = "tr_sandbox_"


@dataclass(frozen=True)
class ConnectAccount:
    """A freshly created connect account and its first onboarding link."""

    account_id: str
    onboarding_url: str


@dataclass(frozen=True)
class AccountStatusReport:
    """The processor's view of a connect account."""

    account_id: str
    details_submitted: bool
    charges_enabled: bool
    payouts_enabled: bool
    requirements: tuple[str, ...] = ()


class ProcessorClient:
    """
    Thin client for the processor's accounts, account-links and transfers
    endpoints.

    Contract:
        ``session`` is any object with a ``requests.Session``-compatible
        ``request()`` method; ``sleep`` is called between retries.
    """

    def __init__(
        self,
        config: ProcessorConfig,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._config = config
        self._session = session if session is not None else requests.Session()
        self._sleep = sleep

    @property
    def config(self) -> ProcessorConfig:
        return self._config

    # -----------------------------------------------------------------
    # Public operations
    # -----------------------------------------------------------------

    def create_connect_account(
        self,
        email: str,
        legal_name: str,
        country_code: str,
        user_id: str | None = None,
    ) -> ConnectAccount:
        """
        Create an express individual account, then its onboarding link.

        Not retried: a retry after an ambiguous failure could create a
        second external account.

        Raises:
            ConfigurationError, ValidationError, ProcessorError,
            TransientNetworkError, OnboardingLinkError.
        """
        operation = "create_connect_account"
        self._require_secret(operation)
        email = normalize_email(email)
        country = normalize_country_code(country_code)
        name = (legal_name or "").strip() or email

        form: dict[str, Any] = {
            "type": "express",
            "country": country,
            "email": email,
            "business_type": "individual",
            "capabilities[card_payments][requested]": "true",
            "capabilities[transfers][requested]": "true",
            "metadata[platform]": self._config.platform_name,
            "business_profile[mcc]": self._config.business_mcc,
            "business_profile[name]": name,
            "business_profile[product_description]": self._config.product_description,
            "business_profile[support_email]": self._config.support_email or email,
            "individual[email]": email,
            "settings[payouts][schedule][interval]": "manual",
        }
        if user_id:
            form["metadata[user_id]"] = user_id

        payload = self._send("POST", "/accounts", operation, data=form)
        account_id = payload.get("id")
        if not account_id:
            raise ProcessorError("Account response did not include an id")

        logger.info(
            "connect_account_created",
            extra={"account_id": account_id, "country_code": country, "user_id": user_id},
        )

        try:
            url = self.create_onboarding_link(account_id)
        except (ProcessorError, TransientNetworkError) as e:
            logger.warning(
                "onboarding_link_failed_after_account_creation",
                extra={"account_id": account_id, "error_code": e.code},
            )
            detail = e.message if isinstance(e, ProcessorError) else e.detail
            raise OnboardingLinkError(
                account_id,
                f"Account created but onboarding link failed: {detail}",
                processor_code=getattr(e, "processor_code", None),
                http_status=getattr(e, "http_status", None),
            ) from e

        return ConnectAccount(account_id=account_id, onboarding_url=url)

    def fetch_account_status(self, account_id: str) -> AccountStatusReport:
        """Read-only; retried on transient failures."""
        operation = "fetch_account_status"
        self._require_secret(operation)
        account_id = self._require_account_id(account_id)

        payload = self._with_retry(
            operation,
            lambda: self._send("GET", f"/accounts/{account_id}", operation),
        )
        requirements = (payload.get("requirements") or {}).get("currently_due") or ()
        report = AccountStatusReport(
            account_id=account_id,
            details_submitted=bool(payload.get("details_submitted")),
            charges_enabled=bool(payload.get("charges_enabled")),
            payouts_enabled=bool(payload.get("payouts_enabled")),
            requirements=tuple(requirements),
        )
        logger.debug(
            "account_status_fetched",
            extra={
                "account_id": account_id,
                "details_submitted": report.details_submitted,
                "charges_enabled": report.charges_enabled,
                "payouts_enabled": report.payouts_enabled,
            },
        )
        return report

    def create_onboarding_link(self, account_id: str) -> str:
        """
        Onboarding URL for first-time and repeat onboarding.

        The return URL carries ``success=true`` and the refresh URL
        ``refresh=true``; both only signal intent.
        """
        operation = "create_onboarding_link"
        self._require_secret(operation)
        account_id = self._require_account_id(account_id)

        form = {
            "account": account_id,
            "refresh_url": self._config.refresh_url,
            "return_url": self._config.return_url,
            "type": "account_onboarding",
            "collect": "eventually_due",
        }
        payload = self._with_retry(
            operation,
            lambda: self._send("POST", "/account_links", operation, data=form),
        )
        url = payload.get("url")
        if not url:
            raise ProcessorError("Account link response did not include a url")

        logger.info("onboarding_link_created", extra={"account_id": account_id})
        return url

    def initiate_transfer(
        self,
        account_id: str,
        amount: Money,
        reference: str,
        description: str | None = None,
        metadata: Mapping[str, str] | None = None,
    ) -> str:
        """
        Move ``amount`` to the connect account.  Never retried.

        In sandbox mode returns ``tr_sandbox_<16 hex>`` derived from the
        account, amount and reference, without any request.
        """
        operation = "initiate_transfer"
        self._require_secret(operation)
        account_id = self._require_account_id(account_id)
        if not amount.is_positive:
            raise ValidationError(
                f"Transfer amount must be positive, got {amount}",
                field="amount",
                value=str(amount.amount),
            )
        if amount.currency.code != self._config.transfer_currency:
            raise ValidationError(
                f"Transfers settle in {self._config.transfer_currency}, got {amount.currency.code}",
                field="currency",
                value=amount.currency.code,
            )
        try:
            minor_units = amount.to_minor_units()
        except ValueError as e:
            raise ValidationError(str(e), field="amount", value=str(amount.amount)) from e
        if not reference:
            raise ValidationError("Transfer reference is required", field="reference")

        if self._config.is_sandbox:
            digest = hashlib.sha256(
                f"{account_id}|{minor_units}|{amount.currency.code}|{reference}".encode("utf-8")
            ).hexdigest()[:16]
            transfer_id = f"{SANDBOX_TRANSFER_PREFIX}{digest}"
            logger.info(
                "transfer_sandboxed",
                extra={
                    "account_id": account_id,
                    "transfer_id": transfer_id,
                    "amount": amount.amount,
                    "currency": amount.currency.code,
                    "reference": reference,
                },
            )
            return transfer_id

        form: dict[str, Any] = {
            "amount": str(minor_units),
            "currency": amount.currency.code.lower(),
            "destination": account_id,
            "transfer_group": reference,
            "metadata[reference]": reference,
        }
        if description:
            form["description"] = description
        for key, value in (metadata or {}).items():
            form[f"metadata[{key}]"] = value

        with LogContext.bind(account_id=account_id, operation=operation):
            payload = self._send("POST", "/transfers", operation, data=form)
        transfer_id = payload.get("id")
        if not transfer_id:
            raise ProcessorError("Transfer response did not include an id")

        logger.info(
            "transfer_initiated",
            extra={
                "account_id": account_id,
                "transfer_id": transfer_id,
                "amount": amount.amount,
                "currency": amount.currency.code,
                "reference": reference,
            },
        )
        return transfer_id

    # -----------------------------------------------------------------
    # Transport
    # -----------------------------------------------------------------

    def _require_secret(self, operation: str) -> None:
        if not self._config.has_secret_key:
            logger.error("processor_secret_key_missing", extra={"processor_operation": operation})
            raise ConfigurationError(
                f"Processor secret key is not configured; cannot {operation}",
                setting="EARNINGS_PROCESSOR_SECRET_KEY",
            )

    @staticmethod
    def _require_account_id(account_id: str) -> str:
        normalized = (account_id or "").strip()
        if not normalized:
            raise ValidationError("Account id is required", field="account_id", value=account_id)
        return normalized

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._config.secret_key}",
            "Accept": "application/json",
        }

    def _send(
        self,
        method: str,
        path: str,
        operation: str,
        data: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """One HTTP exchange, classified.  No retry here."""
        url = f"{self._config.api_base}{path}"
        try:
            response = self._session.request(
                method,
                url,
                data=data,
                headers=self._headers(),
                timeout=self._config.timeout_seconds,
            )
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise TransientNetworkError(operation, str(e)) from e
        except requests.exceptions.RequestException as e:
            raise ProcessorError(f"{operation} request failed: {e}") from e

        status = response.status_code
        if status >= 500:
            raise TransientNetworkError(operation, f"processor returned HTTP {status}")

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not 200 <= status < 300:
            error = (payload or {}).get("error") if isinstance(payload, dict) else None
            error = error if isinstance(error, dict) else {}
            logger.warning(
                "processor_request_rejected",
                extra={
                    "processor_operation": operation,
                    "http_status": status,
                    "processor_code": error.get("code"),
                },
            )
            raise ProcessorError(
                error.get("message") or f"{operation} failed with HTTP {status}",
                processor_code=error.get("code"),
                http_status=status,
            )

        if not isinstance(payload, dict):
            raise ProcessorError(
                f"{operation} returned a non-JSON response", http_status=status
            )
        return payload

    def _with_retry(
        self,
        operation: str,
        call: Callable[[], dict[str, Any]],
    ) -> dict[str, Any]:
        """Run ``call`` with exponential backoff on TransientNetworkError only."""
        policy = self._config.retry
        for attempt in range(1, policy.max_attempts + 1):
            try:
                return call()
            except TransientNetworkError as e:
                if attempt >= policy.max_attempts:
                    logger.error(
                        "processor_retries_exhausted",
                        extra={"processor_operation": operation, "attempts": attempt},
                    )
                    raise TransientNetworkError(operation, e.detail, attempts=attempt) from e
                delay = policy.delay_for(attempt)
                logger.warning(
                    "processor_call_retrying",
                    extra={
                        "processor_operation": operation,
                        "attempt": attempt,
                        "delay_seconds": delay,
                    },
                )
                self._sleep(delay)
        # max_attempts >= 1 is enforced by the config loader
        raise TransientNetworkError(operation, "no attempts made", attempts=0)
