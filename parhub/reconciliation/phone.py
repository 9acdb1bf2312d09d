"""
US phone normalization to E.164 plus a ``NNN-NNN-NNNN`` display form.

Spreadsheet tools routinely coerce phone columns to floats, so values arrive
as ``5.551234567E+09`` or ``5551234567.0``. Those are recovered through
``Decimal`` before digits are extracted. ``normalize_phone`` never raises;
unparseable input is marked invalid and kept verbatim in ``display``.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

_SCI_NOTATION_RE = re.compile(r"e\+?\d+$", re.IGNORECASE)
_INTEGRAL_FLOAT_RE = re.compile(r"^\d+\.0+$")
_NON_DIGITS_RE = re.compile(r"\D")

# Largest exponent a phone number (with country code) can carry.
_MAX_RECOVERED_EXPONENT = 15

PLACEHOLDER_VALUES = frozenset({"null", "none", "n/a", "na", "-", "."})


@dataclass(frozen=True)
class PhoneResult:
    valid: bool
    e164: str | None
    display: str | None
    raw: str

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


def _integral_string(number: Decimal) -> str | None:
    if not number.is_finite() or number.adjusted() > _MAX_RECOVERED_EXPONENT:
        return None
    return str(int(number.to_integral_value(rounding=ROUND_HALF_UP)))


def to_raw_string(value: object | None) -> str:
    """Render a cell/column value as the string a human would have typed."""
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (float, Decimal)):
        try:
            recovered = _integral_string(Decimal(value))
        except (InvalidOperation, ValueError):
            recovered = None
        return recovered if recovered is not None else str(value).strip()

    text = str(value).strip()
    if " " not in text and (_SCI_NOTATION_RE.search(text) or _INTEGRAL_FLOAT_RE.match(text)):
        try:
            recovered = _integral_string(Decimal(text))
        except (InvalidOperation, ValueError):
            recovered = None
        if recovered is not None:
            return recovered
    return text


def _display_from_digits(digits: str) -> str:
    return f"{digits[:3]}-{digits[3:6]}-{digits[6:]}"


def normalize_phone(raw: object | None) -> PhoneResult:
    raw_string = to_raw_string(raw)
    digits = _NON_DIGITS_RE.sub("", raw_string)
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]

    if len(digits) == 10:
        return PhoneResult(
            valid=True,
            e164=f"+1{digits}",
            display=_display_from_digits(digits),
            raw=raw_string,
        )
    return PhoneResult(valid=False, e164=None, display=raw_string or None, raw=raw_string)


def format_e164_display(e164: str | None) -> str | None:
    """``+15551234567`` -> ``555-123-4567``; anything else -> ``None``."""
    if not e164:
        return None
    digits = _NON_DIGITS_RE.sub("", str(e164))
    if len(digits) == 11 and digits.startswith("1"):
        return _display_from_digits(digits[1:])
    if len(digits) == 10:
        return _display_from_digits(digits)
    return None


def is_placeholder_phone(raw: object | None) -> bool:
    if raw is None:
        return False
    return str(raw).strip().lower() in PLACEHOLDER_VALUES


def phone_key(raw: object | None) -> str | None:
    """E.164 lookup key for identity matching, or ``None`` when unparseable."""
    result = normalize_phone(raw)
    return result.e164 if result.valid else None
