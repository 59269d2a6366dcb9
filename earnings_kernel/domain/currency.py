"""Currency -- ISO 4217 codes instructors can be paid in, with minor-unit precision."""

from typing import ClassVar


class CurrencyRegistry:
    """Settlement currencies mapped to their number of decimal places."""

    _DECIMAL_PLACES: ClassVar[dict[str, int]] = {
        "USD": 2, "EUR": 2, "GBP": 2, "CAD": 2, "AUD": 2, "NZD": 2,
        "CHF": 2, "SEK": 2, "NOK": 2, "DKK": 2, "PLN": 2, "CZK": 2,
        "HUF": 2, "RON": 2, "BGN": 2, "SGD": 2, "HKD": 2, "MXN": 2,
        "BRL": 2, "AED": 2, "THB": 2, "MYR": 2, "INR": 2,
        "JPY": 0,
    }

    @classmethod
    def is_valid(cls, code: str | None) -> bool:
        return bool(code) and code.upper() in cls._DECIMAL_PLACES

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        """Decimal places for ``code``; unknown codes default to 2."""
        return cls._DECIMAL_PLACES.get(code.upper(), 2) if code else 2
