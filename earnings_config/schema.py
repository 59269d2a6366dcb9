"""
Earnings configuration schema.

Frozen dataclasses produced by ``earnings_config.loader`` from the YAML
defaults plus the process environment.  Callers receive an
``EarningsConfig`` from ``earnings_config.get_active_config()`` and never
read YAML or environment variables themselves.

Secrets (the processor secret key) live only in ``ProcessorConfig`` and are
excluded from ``repr`` and from the configuration checksum.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ProcessorMode(str, Enum):
    """Whether money movements reach the processor."""

    SANDBOX = "sandbox"  # transfers short-circuit to synthetic ids
    LIVE = "live"


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff for read-only processor calls."""

    max_attempts: int = 3
    initial_delay_seconds: float = 0.5
    max_delay_seconds: float = 2.0
    multiplier: float = 2.0

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        delay = self.initial_delay_seconds * (self.multiplier ** (attempt - 1))
        return min(delay, self.max_delay_seconds)


@dataclass(frozen=True)
class ProcessorConfig:
    """Payment processor credentials, endpoints and account defaults."""

    mode: ProcessorMode = ProcessorMode.SANDBOX
    api_base: str = "https://api.stripe.com/v1"
    return_base_url: str = "http://localhost:5173"
    return_path: str = "/payment-account/return"
    timeout_seconds: float = 15.0
    platform_name: str = "educonnect"
    business_mcc: str = "8299"
    product_description: str = "Educational courses and tutoring services"
    support_email: str | None = None
    transfer_currency: str = "USD"
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    secret_key: str | None = field(default=None, repr=False)
    publishable_key: str | None = None

    @property
    def has_secret_key(self) -> bool:
        return bool(self.secret_key)

    @property
    def is_sandbox(self) -> bool:
        return self.mode is ProcessorMode.SANDBOX

    @property
    def return_url(self) -> str:
        return f"{self.return_base_url.rstrip('/')}{self.return_path}?success=true"

    @property
    def refresh_url(self) -> str:
        return f"{self.return_base_url.rstrip('/')}{self.return_path}?refresh=true"


@dataclass(frozen=True)
class EarningsSettings:
    """Reconciliation and dashboard presentation settings."""

    currency: str = "USD"
    ranking_size: int = 5
    palette: tuple[str, ...] = (
        "#3B82F6",
        "#10B981",
        "#F59E0B",
        "#EF4444",
        "#8B5CF6",
        "#EC4899",
    )


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite://"
    echo: bool = False


@dataclass(frozen=True)
class EarningsConfig:
    """
    The runtime configuration artifact.

    Guarantees:
        - ``checksum`` identifies the effective non-secret settings; two
          loads with the same inputs produce the same checksum.
    """

    processor: ProcessorConfig
    earnings: EarningsSettings
    database: DatabaseConfig
    checksum: str
    source: str
