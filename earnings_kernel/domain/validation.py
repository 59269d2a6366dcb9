"""
Validation -- input normalization for lifecycle operations.

Responsibility:
    Rejects malformed provisioning input (empty email, malformed country
    code) before any processor request is made.

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Non-goals:
    - Does NOT decide whether the processor supports a country.  A
      well-formed ISO-3166 alpha-2 code passes; the processor's own
      rejection surfaces later as ProcessorError.
"""

import re

from earnings_kernel.exceptions import ValidationError

_COUNTRY_RE = re.compile(r"^[A-Z]{2}$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+$")


def normalize_country_code(country_code: str | None) -> str:
    """Return the uppercase alpha-2 code or raise ValidationError."""
    normalized = (country_code or "").strip().upper()
    if not _COUNTRY_RE.match(normalized):
        raise ValidationError(
            f"Country code must be an ISO-3166 alpha-2 code, got {country_code!r}",
            field="country_code",
            value=country_code,
        )
    return normalized


def normalize_email(email: str | None) -> str:
    """Return the stripped email or raise ValidationError."""
    normalized = (email or "").strip()
    if not normalized:
        raise ValidationError("Email is required", field="email", value=email)
    if not _EMAIL_RE.match(normalized):
        raise ValidationError(
            f"Email is malformed: {email!r}", field="email", value=email
        )
    return normalized
