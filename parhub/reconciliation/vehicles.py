"""
Vehicle create/update with manual-override layering.

User-supplied fields win over decoded fields per field, and every
user-supplied field is recorded in ``manual_overrides`` so a later re-decode
cannot overwrite a human correction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

from sqlalchemy.orm import Session

from parhub.models import Vehicle

from .accessor import is_blank
from .errors import UpstreamDecodeError, ValidationError
from .values import coerce_int
from .vin import validate_vin
from .vin_decode import DecodeResult, VinDecodeService

logger = logging.getLogger(__name__)

DECODED_FIELDS = ("year", "make", "model", "trim")
VEHICLE_FIELDS = DECODED_FIELDS + ("color", "plate", "mileage", "notes")
_INTEGER_FIELDS = frozenset({"year", "mileage"})


def _clean_user_fields(user_fields: Mapping[str, Any] | None) -> dict[str, Any]:
    cleaned: dict[str, Any] = {}
    for key, value in (user_fields or {}).items():
        if key not in VEHICLE_FIELDS or is_blank(value):
            continue
        if key in _INTEGER_FIELDS:
            value = coerce_int(value)
            if value is None:
                continue
        elif isinstance(value, str):
            value = value.strip()
        cleaned[key] = value
    return cleaned


def merge_vehicle_fields(
    decoded: Mapping[str, Any] | None,
    user_fields: Mapping[str, Any] | None,
    existing_overrides: Mapping[str, Any] | None = None,
) -> tuple[dict[str, Any], dict[str, Any]]:
    """
    Layer ``user_fields`` over ``decoded`` one field at a time.

    Returns ``(values, manual_overrides)``. Overrides recorded earlier keep
    winning over a re-decode unless the caller supplies a new value.
    """
    overrides = dict(existing_overrides or {})
    overrides.update(_clean_user_fields(user_fields))

    values: dict[str, Any] = {}
    for name in DECODED_FIELDS:
        value = (decoded or {}).get(name)
        if not is_blank(value):
            values[name] = value
    for name, value in overrides.items():
        if name in VEHICLE_FIELDS:
            values[name] = value
    return values, overrides


@dataclass(frozen=True)
class SavedVehicle:
    vehicle: Vehicle
    created: bool
    decode: DecodeResult | None = None
    warning: str | None = None


def save_vehicle(
    session: Session,
    vin: object,
    customer_id: int | None,
    user_fields: Mapping[str, Any] | None = None,
    *,
    decoder: VinDecodeService | None = None,
) -> SavedVehicle:
    """
    Create or update the vehicle keyed by ``vin``.

    When ``decoder`` is given the VIN is decoded first; a provider failure
    with nothing cached is logged and the vehicle is saved with user fields
    only. ``customer_id`` may be ``None`` only when updating.
    """
    canonical = validate_vin(vin)
    if canonical is None:
        raise ValidationError("vin", vin)

    vehicle = session.get(Vehicle, canonical)
    if vehicle is None and customer_id is None:
        raise ValidationError("customer_id", None, f"Vehicle {canonical} needs an owning customer")

    decode_result = None
    warning = None
    if decoder is not None:
        try:
            decode_result = decoder.decode(canonical)
        except UpstreamDecodeError as exc:
            warning = f"Saved {canonical} without decoded fields: {exc.detail}"
            logger.warning(warning, extra={"vin": canonical})
        else:
            warning = decode_result.warning

    values, overrides = merge_vehicle_fields(
        decode_result.parsed if decode_result else None,
        user_fields,
        vehicle.manual_overrides if vehicle is not None else None,
    )

    created = vehicle is None
    if created:
        vehicle = Vehicle(vin=canonical, customer_id=customer_id)
        session.add(vehicle)
    elif customer_id is not None:
        vehicle.customer_id = customer_id

    for name, value in values.items():
        setattr(vehicle, name, value)
    vehicle.manual_overrides = overrides or None
    if decode_result is not None:
        vehicle.decoded_source = decode_result.source
        vehicle.decoded_at = decode_result.decoded_at
        vehicle.raw_decode = decode_result.raw

    session.flush()
    return SavedVehicle(vehicle=vehicle, created=created, decode=decode_result, warning=warning)
