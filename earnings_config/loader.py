"""
Configuration Loader (``earnings_config.loader``).

Responsibility
--------------
Reads the packaged YAML defaults, deep-merges an optional override file on
top, overlays the ``EARNINGS_*`` environment variables, and parses the
result into the frozen dataclasses of ``earnings_config.schema``.  Runtime
callers go through ``earnings_config.get_active_config()``.

Invariants enforced
-------------------
* Every parse error raises ``ConfigurationError`` naming the offending
  setting; there are no silent fallbacks for malformed values.
* Secrets come from the environment only.  A ``secret_key`` in YAML is
  rejected.
* ``compute_checksum`` is deterministic and never sees a secret.

Failure modes
-------------
* Missing override file  -> ``ConfigurationError``.
* Malformed YAML  -> ``ConfigurationError`` (wrapping ``yaml.YAMLError``).
* Unknown mode, non-positive ranking size or attempts, negative delays,
  unknown currency  -> ``ConfigurationError``.
"""

from __future__ import annotations

import copy
import hashlib
import json
from pathlib import Path
from typing import Any, Mapping

import yaml

from earnings_config.schema import (
    DatabaseConfig,
    EarningsConfig,
    EarningsSettings,
    ProcessorConfig,
    ProcessorMode,
    RetryPolicy,
)
from earnings_kernel.domain.currency import CurrencyRegistry
from earnings_kernel.exceptions import ConfigurationError

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

# Environment variable -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "EARNINGS_PROCESSOR_SECRET_KEY": ("processor", "secret_key"),
    "EARNINGS_PROCESSOR_PUBLISHABLE_KEY": ("processor", "publishable_key"),
    "EARNINGS_PROCESSOR_MODE": ("processor", "mode"),
    "EARNINGS_PROCESSOR_API_BASE": ("processor", "api_base"),
    "EARNINGS_RETURN_BASE_URL": ("processor", "return_base_url"),
    "EARNINGS_DATABASE_URL": ("database", "url"),
}

CONFIG_FILE_ENV = "EARNINGS_CONFIG_FILE"

_SECRET_KEYS = frozenset({"secret_key"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML mapping.

    Raises:
        ConfigurationError: if the file is missing, unreadable, not valid
            YAML, or not a mapping at the top level.
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError as e:
        raise ConfigurationError(f"Configuration file not found: {path}", setting=str(path)) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}", setting=str(path)) from e
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Configuration file {path} must contain a mapping", setting=str(path)
        )
    return data


def deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Return ``base`` with ``override`` merged in; nested mappings merge recursively."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _reject_yaml_secrets(data: Mapping[str, Any], origin: str) -> None:
    for section, values in data.items():
        if isinstance(values, Mapping) and _SECRET_KEYS & set(values):
            raise ConfigurationError(
                f"{origin} must not contain {section}.secret_key; "
                "set EARNINGS_PROCESSOR_SECRET_KEY instead",
                setting=f"{section}.secret_key",
            )


def apply_environment(data: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    """Overlay non-empty ``EARNINGS_*`` variables onto ``data``."""
    merged = copy.deepcopy(data)
    for var, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(var)
        if value is None or value.strip() == "":
            continue
        merged.setdefault(section, {})[key] = value.strip()
    return merged


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of ``data`` with secrets removed."""
    scrubbed = {
        section: (
            {k: v for k, v in values.items() if k not in _SECRET_KEYS}
            if isinstance(values, dict)
            else values
        )
        for section, values in data.items()
    }
    canonical = json.dumps(scrubbed, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


# ---------------------------------------------------------------------------
# Section parsers
# ---------------------------------------------------------------------------


def _positive_int(value: Any, setting: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{setting} must be an integer, got {value!r}", setting=setting) from e
    if number < 1:
        raise ConfigurationError(f"{setting} must be positive, got {number}", setting=setting)
    return number


def _non_negative_float(value: Any, setting: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{setting} must be a number, got {value!r}", setting=setting) from e
    if number < 0:
        raise ConfigurationError(f"{setting} must not be negative, got {number}", setting=setting)
    return number


def _currency(value: Any, setting: str) -> str:
    code = str(value or "").strip().upper()
    if not CurrencyRegistry.is_valid(code):
        raise ConfigurationError(f"{setting} is not a known currency: {value!r}", setting=setting)
    return code


def parse_retry(data: Mapping[str, Any]) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=_positive_int(data.get("max_attempts", 3), "processor.retry.max_attempts"),
        initial_delay_seconds=_non_negative_float(
            data.get("initial_delay_seconds", 0.5), "processor.retry.initial_delay_seconds"
        ),
        max_delay_seconds=_non_negative_float(
            data.get("max_delay_seconds", 2.0), "processor.retry.max_delay_seconds"
        ),
        multiplier=_non_negative_float(data.get("multiplier", 2.0), "processor.retry.multiplier"),
    )


def parse_processor(data: Mapping[str, Any]) -> ProcessorConfig:
    raw_mode = str(data.get("mode", "sandbox")).strip().lower()
    try:
        mode = ProcessorMode(raw_mode)
    except ValueError as e:
        raise ConfigurationError(
            f"processor.mode must be 'sandbox' or 'live', got {data.get('mode')!r}",
            setting="processor.mode",
        ) from e

    api_base = str(data.get("api_base") or "").strip()
    if not api_base:
        raise ConfigurationError("processor.api_base is required", setting="processor.api_base")

    return ProcessorConfig(
        mode=mode,
        api_base=api_base.rstrip("/"),
        return_base_url=str(data.get("return_base_url") or "http://localhost:5173"),
        return_path=str(data.get("return_path") or "/payment-account/return"),
        timeout_seconds=_non_negative_float(
            data.get("timeout_seconds", 15), "processor.timeout_seconds"
        ),
        platform_name=str(data.get("platform_name") or "educonnect"),
        business_mcc=str(data.get("business_mcc") or "8299"),
        product_description=str(
            data.get("product_description") or "Educational courses and tutoring services"
        ),
        support_email=data.get("support_email") or None,
        transfer_currency=_currency(
            data.get("transfer_currency", "USD"), "processor.transfer_currency"
        ),
        retry=parse_retry(data.get("retry") or {}),
        secret_key=data.get("secret_key") or None,
        publishable_key=data.get("publishable_key") or None,
    )


def parse_earnings(data: Mapping[str, Any]) -> EarningsSettings:
    palette = data.get("palette") or EarningsSettings().palette
    if isinstance(palette, str) or not all(isinstance(c, str) for c in palette):
        raise ConfigurationError(
            "earnings.palette must be a list of color strings", setting="earnings.palette"
        )
    return EarningsSettings(
        currency=_currency(data.get("currency", "USD"), "earnings.currency"),
        ranking_size=_positive_int(data.get("ranking_size", 5), "earnings.ranking_size"),
        palette=tuple(palette),
    )


def parse_database(data: Mapping[str, Any]) -> DatabaseConfig:
    echo = data.get("echo", False)
    if isinstance(echo, str):
        echo = echo.strip().lower() in ("1", "true", "yes")
    return DatabaseConfig(url=str(data.get("url") or "sqlite://"), echo=bool(echo))


def load_config(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> EarningsConfig:
    """
    Build an EarningsConfig from defaults, an optional override file and
    the environment.

    ``config_path`` wins over ``EARNINGS_CONFIG_FILE``.  ``environ``
    defaults to an empty mapping here; ``get_active_config`` passes
    ``os.environ``.
    """
    environ = environ if environ is not None else {}

    data = load_yaml_file(DEFAULTS_PATH)
    source = "defaults"

    override_path = config_path or (
        Path(environ[CONFIG_FILE_ENV]) if environ.get(CONFIG_FILE_ENV) else None
    )
    if override_path is not None:
        override = load_yaml_file(Path(override_path))
        _reject_yaml_secrets(override, str(override_path))
        data = deep_merge(data, override)
        source = str(override_path)

    data = apply_environment(data, environ)

    return EarningsConfig(
        processor=parse_processor(data.get("processor") or {}),
        earnings=parse_earnings(data.get("earnings") or {}),
        database=parse_database(data.get("database") or {}),
        checksum=compute_checksum(data),
        source=source,
    )
