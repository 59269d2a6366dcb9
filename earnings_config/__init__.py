"""
earnings_config -- single public entrypoint for earnings configuration.

Responsibility:
    ``get_active_config()`` is the ONLY way to obtain configuration at
    runtime.  No other component reads configuration files or ``EARNINGS_*``
    environment variables directly.

Architecture position:
    Configuration -- sits above ``earnings_kernel`` and below
    ``earnings_services`` and ``scripts``.  The kernel MUST NEVER import
    from ``earnings_config``.

Invariants enforced:
    - Single entrypoint: all runtime config flows through
      ``get_active_config()``.
    - Deterministic checksum: the same defaults, override file and
      environment always produce the same checksum.
    - Secrets never appear in the checksum, the trace record or ``repr``.

Failure modes:
    - ``ConfigurationError`` for a missing override file, malformed YAML,
      a YAML-embedded secret, or any invalid setting.

Audit relevance:
    Every successful call emits an ``EARNINGS_CONFIG_TRACE`` log record
    with the checksum, source, processor mode and whether a secret key is
    present, tying each processor call to the configuration that governed
    it.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

from earnings_config.loader import load_config
from earnings_config.schema import (
    DatabaseConfig,
    EarningsConfig,
    EarningsSettings,
    ProcessorConfig,
    ProcessorMode,
    RetryPolicy,
)
from earnings_kernel.logging_config import get_logger

_logger = get_logger("config")


def get_active_config(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> EarningsConfig:
    """
    The ONLY public configuration entrypoint.

    Args:
        config_path: Optional YAML file merged over the packaged defaults.
            Falls back to ``EARNINGS_CONFIG_FILE``.
        environ: Environment mapping; defaults to ``os.environ``.

    Raises:
        ConfigurationError: If any setting is missing or invalid.
    """
    config = load_config(
        config_path=config_path,
        environ=os.environ if environ is None else environ,
    )

    _logger.info(
        "EARNINGS_CONFIG_TRACE",
        extra={
            "trace_type": "EARNINGS_CONFIG_TRACE",
            "checksum": config.checksum,
            "source": config.source,
            "processor_mode": config.processor.mode.value,
            "has_secret_key": config.processor.has_secret_key,
            "currency": config.earnings.currency,
        },
    )
    return config


__all__ = [
    "DatabaseConfig",
    "EarningsConfig",
    "EarningsSettings",
    "ProcessorConfig",
    "ProcessorMode",
    "RetryPolicy",
    "get_active_config",
]
