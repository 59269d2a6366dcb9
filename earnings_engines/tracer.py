"""
earnings_engines.tracer -- EARNINGS_ENGINE_TRACE records for pure engines.

``@traced_engine`` logs one structured record per successful engine call:
engine name and version, a fingerprint of the selected keyword inputs, how
many payments went in, and how long the call took. Two calls with equal
inputs always produce the same fingerprint, so a figure shown on a
dashboard can be traced back to the exact payment set it came from.

    @traced_engine("earnings", "1.0", fingerprint_fields=("instructor_id", "payments"))
    def reconcile_earnings(*, instructor_id, window, payments, ...):
        ...

Engines that raise emit nothing; the exception propagates untouched.
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import time
from collections.abc import Callable, Mapping
from datetime import date, datetime
from enum import Enum
from typing import Any

from earnings_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")

TRACE_TYPE = "EARNINGS_ENGINE_TRACE"


def _canonicalize(value: Any) -> str:
    """Order-stable text form; dataclasses such as Payment expand field by field."""
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Mapping):
        return "{" + ",".join(
            f"{k}:{_canonicalize(v)}" for k, v in sorted(value.items())
        ) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return "(" + ",".join(
            f"{f.name}={_canonicalize(getattr(value, f.name))}"
            for f in dataclasses.fields(value)
        ) + ")"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: Mapping[str, Any],
) -> str:
    """First 16 hex chars of SHA-256 over the named keyword arguments."""
    digest = hashlib.sha256()
    for name in fingerprint_fields:
        digest.update(f"{name}={_canonicalize(kwargs.get(name))}|".encode("utf-8"))
    return digest.hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = (
                compute_input_fingerprint(fingerprint_fields, kwargs)
                if fingerprint_fields
                else ""
            )
            payments = kwargs.get("payments")

            started = time.monotonic()
            result = func(*args, **kwargs)
            elapsed_ms = round((time.monotonic() - started) * 1000, 2)

            _logger.info(
                TRACE_TYPE,
                extra={
                    "trace_type": TRACE_TYPE,
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fingerprint,
                    "input_count": len(payments) if hasattr(payments, "__len__") else None,
                    "duration_ms": elapsed_ms,
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
