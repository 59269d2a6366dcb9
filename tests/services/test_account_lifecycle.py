"""
Tests for AccountLifecycleManager.

Covers:
- provision: NONE -> PENDING, precondition rejection, failure leaves NONE,
  account-without-link persisted as PENDING
- register_instructor: profile kept whatever the provisioning outcome
- verify_and_activate / handle_return: activation only on explicit
  verification, fresh link when incomplete
- reconcile_capability_flags: fills unrecorded flags once, idempotent
- In-progress guard per instructor
"""

from dataclasses import replace

import pytest
import requests

from earnings_kernel.domain.payment_account import AccountStatus, PaymentAccount
from earnings_kernel.domain.user import NewUserProfile, UserRole
from earnings_kernel.exceptions import (
    ConfigurationError,
    InvalidAccountTransitionError,
    OnboardingLinkError,
    OperationInProgressError,
    ProcessorError,
    TransientNetworkError,
    UserNotFoundError,
    ValidationError,
)
from earnings_services.account_lifecycle import (
    AccountLifecycleManager,
    LifecycleOperation,
    ProvisionOutcome,
    ReturnIntent,
    VerificationOutcome,
    parse_return_intent,
)
from earnings_services.processor_client import ProcessorClient
from tests.conftest import FakeResponse

ACCOUNT = {"id": "acct_new"}
LINK = {"url": "https://connect.test/onboard/acct_new"}
PENDING = PaymentAccount(
    status=AccountStatus.PENDING,
    account_id="acct_new",
    charges_enabled=False,
    payouts_enabled=False,
)


def _status(details, charges=False, payouts=False, due=()):
    return FakeResponse(
        200,
        {
            "id": "acct_new",
            "details_submitted": details,
            "charges_enabled": charges,
            "payouts_enabled": payouts,
            "requirements": {"currently_due": list(due)},
        },
    )


@pytest.fixture
def lifecycle(store, processor_client):
    return AccountLifecycleManager(store, processor_client)


class TestProvision:
    def test_none_to_pending(self, lifecycle, store, make_user, fake_session):
        store.create_user(make_user())
        fake_session.script("POST", "/accounts", FakeResponse(200, ACCOUNT))
        fake_session.script("POST", "/account_links", FakeResponse(200, LINK))

        result = lifecycle.provision("teacher-a")

        assert result.success
        assert result.outcome is ProvisionOutcome.PROVISIONED
        assert result.onboarding_url == LINK["url"]
        assert result.account_id == "acct_new"
        stored = store.get_user("teacher-a").payment_account
        assert stored == PENDING

    @pytest.mark.parametrize(
        "account",
        [
            PENDING,
            PaymentAccount(
                status=AccountStatus.COMPLETE,
                account_id="acct_old",
                charges_enabled=True,
                payouts_enabled=True,
            ),
        ],
    )
    def test_rejected_when_already_provisioned(
        self, lifecycle, store, make_user, fake_session, account
    ):
        store.create_user(make_user(payment_account=account))

        with pytest.raises(InvalidAccountTransitionError) as exc:
            lifecycle.provision("teacher-a")

        assert exc.value.current_status == account.status.value
        assert fake_session.calls == []
        assert store.get_user("teacher-a").payment_account == account

    def test_unsupported_country_leaves_none(self, lifecycle, store, make_user, fake_session):
        store.create_user(make_user(country_code="ZZ"))
        fake_session.script(
            "POST",
            "/accounts",
            FakeResponse(400, {"error": {"code": "country_unsupported", "message": "ZZ"}}),
        )

        result = lifecycle.provision("teacher-a")

        assert result.outcome is ProvisionOutcome.FAILED
        assert isinstance(result.error, ProcessorError)
        stored = store.get_user("teacher-a").payment_account
        assert stored.status is AccountStatus.NONE
        assert stored.account_id is None

    def test_malformed_country_fails_without_request(
        self, lifecycle, store, make_user, fake_session
    ):
        store.create_user(make_user(country_code=None))

        result = lifecycle.provision("teacher-a")

        assert result.outcome is ProvisionOutcome.FAILED
        assert isinstance(result.error, ValidationError)
        assert fake_session.calls == []

    def test_network_failure_leaves_none(self, lifecycle, store, make_user, fake_session):
        store.create_user(make_user())
        fake_session.script("POST", "/accounts", requests.exceptions.ConnectionError("down"))

        result = lifecycle.provision("teacher-a")

        assert isinstance(result.error, TransientNetworkError)
        assert store.get_user("teacher-a").payment_account.status is AccountStatus.NONE

    def test_missing_secret_reported(self, store, make_user, processor_config, fake_session):
        client = ProcessorClient(replace(processor_config, secret_key=None), session=fake_session)
        manager = AccountLifecycleManager(store, client)
        store.create_user(make_user())

        result = manager.provision("teacher-a")

        assert isinstance(result.error, ConfigurationError)
        assert fake_session.calls == []

    def test_account_without_link_persisted_pending(
        self, lifecycle, store, make_user, fake_session, sleeps
    ):
        store.create_user(make_user())
        fake_session.script("POST", "/accounts", FakeResponse(200, ACCOUNT))
        fake_session.script("POST", "/account_links", FakeResponse(503, None))

        result = lifecycle.provision("teacher-a")

        assert result.outcome is ProvisionOutcome.LINK_PENDING
        assert not result.success
        assert isinstance(result.error, OnboardingLinkError)
        assert store.get_user("teacher-a").payment_account == PENDING
        # link creation is retried, account creation is not
        assert len(fake_session.calls_to("POST", "/accounts")) == 1
        assert len(fake_session.calls_to("POST", "/account_links")) == 3

    def test_unknown_instructor(self, lifecycle):
        with pytest.raises(UserNotFoundError):
            lifecycle.provision("ghost")

    def test_logs_carry_instructor_context(
        self, lifecycle, store, make_user, fake_session, captured_logs
    ):
        store.create_user(make_user())
        fake_session.script("POST", "/accounts", FakeResponse(200, ACCOUNT))
        fake_session.script("POST", "/account_links", FakeResponse(200, LINK))
        lifecycle.provision("teacher-a")

        record = next(
            r for r in captured_logs() if r["message"] == "payment_account_provisioned"
        )
        assert record["instructor_id"] == "teacher-a"
        assert record["operation"] == "provision"
        assert record["account_id"] == "acct_new"


class TestRegisterInstructor:
    def _profile(self, role=UserRole.TEACHER, country="US"):
        return NewUserProfile(
            id="teacher-a",
            email="grace@example.com",
            name="Grace Hopper",
            role=role,
            country_code=country,
        )

    def test_teacher_is_provisioned(self, lifecycle, fake_session):
        fake_session.script("POST", "/accounts", FakeResponse(200, ACCOUNT))
        fake_session.script("POST", "/account_links", FakeResponse(200, LINK))

        result = lifecycle.register_instructor(self._profile())

        assert result.payment_setup_succeeded
        assert result.user.payment_account.status is AccountStatus.PENDING

    def test_student_is_not_provisioned(self, lifecycle, fake_session):
        result = lifecycle.register_instructor(self._profile(role=UserRole.STUDENT))

        assert not result.payment_setup_attempted
        assert result.user.payment_account.status is AccountStatus.NONE
        assert fake_session.calls == []

    def test_profile_kept_when_provisioning_fails(self, lifecycle, store, fake_session):
        fake_session.script(
            "POST",
            "/accounts",
            FakeResponse(400, {"error": {"code": "country_unsupported", "message": "no"}}),
        )

        result = lifecycle.register_instructor(self._profile(country="ZZ"))

        assert result.payment_setup_attempted
        assert not result.payment_setup_succeeded
        assert store.get_user("teacher-a").name == "Grace Hopper"
        assert result.user.payment_account.status is AccountStatus.NONE


class TestVerifyAndActivate:
    def test_details_submitted_activates(self, lifecycle, store, make_user, fake_session):
        store.create_user(make_user(payment_account=PENDING))
        fake_session.script("GET", "/accounts/acct_new", _status(details=True))

        result = lifecycle.verify_and_activate("teacher-a")

        assert result.outcome is VerificationOutcome.ACTIVATED
        assert result.is_complete
        stored = store.get_user("teacher-a").payment_account
        assert stored.status is AccountStatus.COMPLETE
        assert stored.can_receive_funds

    def test_activation_is_logged_as_optimistic(
        self, lifecycle, store, make_user, fake_session, captured_logs
    ):
        store.create_user(make_user(payment_account=PENDING))
        fake_session.script(
            "GET", "/accounts/acct_new", _status(details=True, charges=False, payouts=True)
        )
        lifecycle.verify_and_activate("teacher-a")

        record = next(r for r in captured_logs() if r["message"] == "optimistic_activation")
        assert record["reported_charges_enabled"] is False
        assert record["reported_payouts_enabled"] is True

    def test_incomplete_returns_fresh_link_and_stays_pending(
        self, lifecycle, store, make_user, fake_session
    ):
        store.create_user(make_user(payment_account=PENDING))
        fake_session.script(
            "GET", "/accounts/acct_new", _status(details=False, due=("external_account",))
        )
        fake_session.script("POST", "/account_links", FakeResponse(200, LINK))

        result = lifecycle.verify_and_activate("teacher-a")

        assert result.outcome is VerificationOutcome.INCOMPLETE
        assert result.onboarding_url == LINK["url"]
        assert result.requirements == ("external_account",)
        assert store.get_user("teacher-a").payment_account == PENDING

    def test_already_complete_makes_no_call(self, lifecycle, store, make_user, fake_session):
        complete = PENDING.activated()
        store.create_user(make_user(payment_account=complete))

        result = lifecycle.verify_and_activate("teacher-a")

        assert result.outcome is VerificationOutcome.ALREADY_ACTIVE
        assert fake_session.calls == []

    def test_without_account_rejected(self, lifecycle, store, make_user):
        store.create_user(make_user())
        with pytest.raises(InvalidAccountTransitionError):
            lifecycle.verify_and_activate("teacher-a")

    def test_processor_failure_leaves_pending(
        self, lifecycle, store, make_user, fake_session
    ):
        store.create_user(make_user(payment_account=PENDING))
        fake_session.script("GET", "/accounts/acct_new", FakeResponse(500, None))

        result = lifecycle.verify_and_activate("teacher-a")

        assert result.outcome is VerificationOutcome.FAILED
        assert isinstance(result.error, TransientNetworkError)
        assert store.get_user("teacher-a").payment_account == PENDING


class TestHandleReturn:
    @pytest.mark.parametrize(
        "query, intent",
        [
            ("?success=true", ReturnIntent.COMPLETED),
            ("refresh=true", ReturnIntent.REFRESH),
            ({"success": "TRUE"}, ReturnIntent.COMPLETED),
            ("", ReturnIntent.UNKNOWN),
            ("success=false", ReturnIntent.UNKNOWN),
        ],
    )
    def test_parse_return_intent(self, query, intent):
        assert parse_return_intent(query) is intent

    def test_success_flag_is_not_proof(self, lifecycle, store, make_user, fake_session):
        """A success redirect still needs the processor to confirm."""
        store.create_user(make_user(payment_account=PENDING))
        fake_session.script("GET", "/accounts/acct_new", _status(details=False))
        fake_session.script("POST", "/account_links", FakeResponse(200, LINK))

        result = lifecycle.handle_return("teacher-a", "success=true")

        assert result.outcome is VerificationOutcome.INCOMPLETE
        assert store.get_user("teacher-a").payment_account.status is AccountStatus.PENDING

    def test_refresh_reverifies(self, lifecycle, store, make_user, fake_session):
        store.create_user(make_user(payment_account=PENDING))
        fake_session.script("GET", "/accounts/acct_new", _status(details=True))

        result = lifecycle.handle_return("teacher-a", "refresh=true")

        assert result.outcome is VerificationOutcome.ACTIVATED


class TestReconcileCapabilityFlags:
    def _legacy_complete(self, charges=None, payouts=None):
        return PaymentAccount(
            status=AccountStatus.COMPLETE,
            account_id="acct_new",
            charges_enabled=charges,
            payouts_enabled=payouts,
        )

    def test_fills_unrecorded_flags(self, lifecycle, store, make_user, fake_session):
        store.create_user(make_user(payment_account=self._legacy_complete()))
        fake_session.script(
            "GET", "/accounts/acct_new", _status(details=True, charges=True, payouts=True)
        )

        updated = lifecycle.reconcile_capability_flags("teacher-a")

        assert updated.can_receive_funds
        assert store.get_user("teacher-a").payment_account == updated

    def test_second_call_is_noop(self, lifecycle, store, make_user, fake_session):
        store.create_user(make_user(payment_account=self._legacy_complete()))
        fake_session.script(
            "GET", "/accounts/acct_new", _status(details=True, charges=True, payouts=True)
        )

        first = lifecycle.reconcile_capability_flags("teacher-a")
        second = lifecycle.reconcile_capability_flags("teacher-a")

        assert first == second
        assert len(fake_session.calls) == 1

    def test_partial_grant_keeps_missing_flag_unrecorded(
        self, lifecycle, store, make_user, fake_session
    ):
        store.create_user(make_user(payment_account=self._legacy_complete()))
        fake_session.script(
            "GET", "/accounts/acct_new", _status(details=True, charges=True, payouts=False)
        )

        updated = lifecycle.reconcile_capability_flags("teacher-a")

        assert updated.charges_enabled is True
        assert updated.payouts_enabled is None
        assert store.get_user("teacher-a").payment_account.payouts_enabled is None

    def test_nothing_missing_makes_no_call(self, lifecycle, store, make_user, fake_session):
        store.create_user(make_user(payment_account=self._legacy_complete(True, True)))
        lifecycle.reconcile_capability_flags("teacher-a")
        assert fake_session.calls == []

    def test_pending_account_untouched(self, lifecycle, store, make_user, fake_session):
        store.create_user(make_user(payment_account=PENDING))
        assert lifecycle.reconcile_capability_flags("teacher-a") == PENDING
        assert fake_session.calls == []

    def test_processor_failure_leaves_account(
        self, lifecycle, store, make_user, fake_session
    ):
        account = self._legacy_complete()
        store.create_user(make_user(payment_account=account))
        fake_session.script("GET", "/accounts/acct_new", FakeResponse(403, None))

        assert lifecycle.reconcile_capability_flags("teacher-a") == account
        assert store.get_user("teacher-a").payment_account == account


class _ReentrantSession:
    """Session that re-enters the manager while the first call is in flight."""

    def __init__(self, inner, on_request):
        self._inner = inner
        self._on_request = on_request

    def request(self, *args, **kwargs):
        self._on_request()
        return self._inner.request(*args, **kwargs)


class TestInProgressGuard:
    def test_concurrent_operation_reported(
        self, store, make_user, processor_config, fake_session, sleeps
    ):
        store.create_user(make_user(payment_account=PENDING))
        fake_session.script("GET", "/accounts/acct_new", _status(details=True))
        observed = {}

        def _reenter():
            if "verify" not in observed:
                observed["in_progress"] = manager.is_in_progress(
                    "teacher-a", LifecycleOperation.VERIFY
                )
                observed["verify"] = manager.verify_and_activate("teacher-a")

        client = ProcessorClient(
            processor_config,
            session=_ReentrantSession(fake_session, _reenter),
            sleep=sleeps.append,
        )
        manager = AccountLifecycleManager(store, client)

        result = manager.verify_and_activate("teacher-a")

        assert result.outcome is VerificationOutcome.ACTIVATED
        assert observed["in_progress"] is True
        assert observed["verify"].outcome is VerificationOutcome.FAILED
        assert isinstance(observed["verify"].error, OperationInProgressError)
        assert not manager.is_in_progress("teacher-a")

    def test_guard_released_after_error(self, lifecycle, store, make_user):
        store.create_user(make_user())
        with pytest.raises(InvalidAccountTransitionError):
            lifecycle.verify_and_activate("teacher-a")
        assert not lifecycle.is_in_progress("teacher-a")
