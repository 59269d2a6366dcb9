"""
Pytest fixtures for the earnings test suite.

Provides:
- In-memory SQLite ledger store (fresh schema per test)
- A scripted fake of the processor's HTTP session
- Deterministic clock and payment/user factories
- Captured structured logs
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from io import StringIO
from typing import Any

import pytest

from earnings_config.schema import ProcessorConfig, ProcessorMode, RetryPolicy
from earnings_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from earnings_kernel.domain.clock import DeterministicClock
from earnings_kernel.domain.payment import Payment
from earnings_kernel.domain.payment_account import PaymentAccount
from earnings_kernel.domain.user import User, UserRole
from earnings_kernel.domain.values import Money
from earnings_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from earnings_kernel.store.sql_store import SqlLedgerStore
from earnings_services.processor_client import ProcessorClient

TEST_API_BASE = "https://processor.test/v1"
TEST_SECRET_KEY = "sk_test_fixture_key"

# Wednesday, mid-June
FIXED_NOW = datetime(2024, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture earnings_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, lifecycle):
            lifecycle.provision("teacher-1")
            logs = captured_logs()
            assert any(r["message"] == "payment_account_provisioned" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("earnings_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def db_session():
    """A session on a fresh in-memory SQLite schema."""
    init_engine_from_url("sqlite://")
    create_tables()
    session = get_session()
    yield session
    session.rollback()
    session.close()
    drop_tables()
    reset_engine()


@pytest.fixture
def store(db_session):
    return SqlLedgerStore(db_session)


# =============================================================================
# Domain factories
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(FIXED_NOW)


@pytest.fixture
def make_payment():
    """
    Factory for Payment with sensible defaults.

    Amounts are strings so tests read like the ledger they describe.
    """
    counter = {"n": 0}

    def _make(
        instructor_amount: str = "40.00",
        *,
        instructor_id: str = "teacher-a",
        base_price: str | None = None,
        status: str = "completed",
        transfer_status: str | None = "completed",
        created_at: datetime = FIXED_NOW,
        course_id: str = "course-1",
        course_name: str = "Algebra I",
        student_id: str = "student-1",
        student_name: str = "Ada Lovelace",
        payment_method: str = "card",
        currency: str = "USD",
        payment_id: str | None = None,
    ) -> Payment:
        counter["n"] += 1
        return Payment(
            id=payment_id or f"pay-{counter['n']:04d}",
            student_id=student_id,
            instructor_id=instructor_id,
            course_id=course_id,
            course_name=course_name,
            student_name=student_name,
            base_price=Money.of(base_price or instructor_amount, currency),
            instructor_amount=Money.of(instructor_amount, currency),
            status=status,
            transfer_status=transfer_status,
            payment_method=payment_method,
            created_at=created_at,
        )

    return _make


@pytest.fixture
def make_user():
    def _make(
        user_id: str = "teacher-a",
        *,
        email: str = "teacher@example.com",
        name: str = "Grace Hopper",
        role: UserRole = UserRole.TEACHER,
        country_code: str | None = "US",
        payment_account: PaymentAccount | None = None,
    ) -> User:
        return User(
            id=user_id,
            email=email,
            name=name,
            role=role,
            country_code=country_code,
            payment_account=payment_account or PaymentAccount.unprovisioned(),
        )

    return _make


# =============================================================================
# Processor fakes
# =============================================================================


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, status_code: int = 200, payload: Any = None):
        self.status_code = status_code
        self._payload = payload

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("response body is not JSON")
        return self._payload


@dataclass
class RecordedCall:
    method: str
    path: str
    data: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    timeout: float | None = None


class FakeProcessorSession:
    """
    Scripted replacement for requests.Session.

    ``script(method, path, *responses)`` queues responses for a route; each
    call consumes one, the last one repeats.  A queued exception instance
    is raised instead of returned.  Unscripted routes fail the test.
    """

    def __init__(self, api_base: str = TEST_API_BASE):
        self.api_base = api_base
        self.routes: dict[tuple[str, str], list[Any]] = {}
        self.calls: list[RecordedCall] = []

    def script(self, method: str, path: str, *responses: Any) -> "FakeProcessorSession":
        self.routes.setdefault((method, path), []).extend(responses)
        return self

    def request(self, method, url, data=None, headers=None, timeout=None):
        assert url.startswith(self.api_base), url
        path = url[len(self.api_base):]
        self.calls.append(RecordedCall(method, path, dict(data or {}), dict(headers or {}), timeout))
        queue = self.routes.get((method, path))
        if not queue:
            raise AssertionError(f"unexpected processor request {method} {path}")
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        return response

    def calls_to(self, method: str, path: str) -> list[RecordedCall]:
        return [c for c in self.calls if c.method == method and c.path == path]


@pytest.fixture
def fake_session():
    return FakeProcessorSession()


@pytest.fixture
def processor_config():
    return ProcessorConfig(
        mode=ProcessorMode.SANDBOX,
        api_base=TEST_API_BASE,
        return_base_url="https://app.test",
        secret_key=TEST_SECRET_KEY,
        retry=RetryPolicy(max_attempts=3, initial_delay_seconds=0.5, max_delay_seconds=2.0),
    )


@pytest.fixture
def sleeps():
    """Records the delays the client would have slept."""
    return []


@pytest.fixture
def processor_client(processor_config, fake_session, sleeps):
    return ProcessorClient(processor_config, session=fake_session, sleep=sleeps.append)
