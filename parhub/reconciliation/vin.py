"""
VIN format validation, triage and free-text extraction.

Validation is format-only: 17 characters with none of the reserved letters
I, O or Q. Check digits are not verified; shop data contains VINs with
transcription noise that still identify the vehicle.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal, MutableSet

from parhub.models.vehicle import TriageReason

VIN_LENGTH = 17
_RESERVED_LETTERS = frozenset("IOQ")

_VIN_ANNOTATION_RE = re.compile(r"\(\s*VIN\s*[:#]?\s*([^)\s]+)\s*\)", re.IGNORECASE)
_VIN_TOKEN_RE = re.compile(r"(?<![A-Za-z0-9])[A-HJ-NPR-Za-hj-npr-z0-9]{17}(?![A-Za-z0-9])")

TriageOutcome = Literal["migrated", "missing_vin", "invalid_vin_format", "duplicate_vin", "missing_customer"]


def normalize_vin(raw: object | None) -> str | None:
    """Trim and uppercase; empty input becomes ``None``."""
    if raw is None:
        return None
    text = str(raw).strip().upper()
    return text or None


def is_valid_vin(vin: str | None) -> bool:
    if not vin or len(vin) != VIN_LENGTH:
        return False
    return not any(char in _RESERVED_LETTERS for char in vin)


def validate_vin(raw: object | None) -> str | None:
    """Return the canonical VIN, or ``None`` when the format is invalid."""
    vin = normalize_vin(raw)
    return vin if is_valid_vin(vin) else None


@dataclass(frozen=True)
class VinTriage:
    outcome: TriageOutcome
    vin: str | None

    @property
    def migrated(self) -> bool:
        return self.outcome == "migrated"

    @property
    def reason(self) -> TriageReason | None:
        return None if self.migrated else TriageReason(self.outcome)


def triage_vin(raw: object | None, seen: MutableSet[str]) -> VinTriage:
    """
    Classify a pre-existing vehicle's VIN for the VIN-keyed table.

    ``seen`` collects VINs already accepted in this pass; an accepted VIN is
    added to it, so the caller processes rows in a stable order.
    """
    vin = normalize_vin(raw)
    if vin is None:
        return VinTriage("missing_vin", None)
    if not is_valid_vin(vin):
        return VinTriage("invalid_vin_format", vin)
    if vin in seen:
        return VinTriage("duplicate_vin", vin)
    seen.add(vin)
    return VinTriage("migrated", vin)


def extract_vin(*texts: object | None) -> str | None:
    """
    Find the first format-valid VIN across ``texts`` in the order given.

    Every text is checked for an explicit ``(VIN: ...)`` annotation before any
    text is swept for bare 17-character tokens.
    """
    candidates = [str(text) for text in texts if text is not None and str(text).strip()]
    for text in candidates:
        for match in _VIN_ANNOTATION_RE.finditer(text):
            vin = validate_vin(match.group(1))
            if vin:
                return vin
    for text in candidates:
        for match in _VIN_TOKEN_RE.finditer(text):
            vin = validate_vin(match.group(0))
            # Seventeen-letter words are prose, not VINs.
            if vin and any(char.isdigit() for char in vin):
                return vin
    return None
