"""
TTL-bound VIN decode cache in front of the NHTSA vPIC API.

A cache row younger than the TTL (180 days by default) is served without a
provider call. Otherwise the provider is called with a hard timeout and the
row is refreshed with an insert-or-update keyed by VIN; that upsert is the
only concurrency control the cache needs. When the provider fails and any
row exists, however old, it is served with ``stale=True``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping

import requests
from flask import current_app
from sqlalchemy.orm import Session

from parhub.models import VinDecodeCacheEntry, db
from parhub.models.base import ensure_aware, utcnow
from parhub.utils.sql import upsert

from .errors import UpstreamDecodeError, ValidationError
from .vin import validate_vin

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://vpic.nhtsa.dot.gov/api/vehicles"
DEFAULT_TIMEOUT_SECONDS = 6
DEFAULT_TTL = timedelta(days=180)
DEFAULT_SOURCE = "nhtsa_vpic"

# Provider field -> projected field
_PROJECTION = (
    ("year", "ModelYear"),
    ("make", "Make"),
    ("model", "Model"),
    ("trim", "Trim"),
)


class NhtsaVinClient:
    """Blocking vPIC client. Every failure mode raises ``UpstreamDecodeError``."""

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def decode(self, vin: str) -> dict[str, Any]:
        url = f"{self.base_url}/DecodeVinValuesExtended/{vin}"
        try:
            response = self.session.get(url, params={"format": "json"}, timeout=self.timeout)
        except requests.Timeout as exc:
            raise UpstreamDecodeError(vin, f"provider timed out after {self.timeout}s") from exc
        except requests.RequestException as exc:
            raise UpstreamDecodeError(vin, f"provider request failed: {exc}") from exc

        if not response.ok:
            raise UpstreamDecodeError(
                vin,
                f"provider returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamDecodeError(vin, "provider returned a non-JSON body") from exc
        if not isinstance(payload, dict) or not isinstance(payload.get("Results"), list):
            raise UpstreamDecodeError(vin, "provider response has no Results array")
        return payload


def _clean(value: object | None) -> object | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value or value.lower() in {"null", "not applicable"}:
            return None
    return value


def parse_decode(raw: Mapping[str, Any] | None) -> dict[str, Any]:
    """Project ``{year, make, model, trim}`` from the first provider result."""
    parsed: dict[str, Any] = {name: None for name, _ in _PROJECTION}
    if not raw:
        return parsed
    results = raw.get("Results") or []
    first = results[0] if results and isinstance(results[0], Mapping) else None
    if first is None:
        return parsed
    for name, provider_key in _PROJECTION:
        parsed[name] = _clean(first.get(provider_key))
    year = parsed["year"]
    if year is not None:
        try:
            parsed["year"] = int(str(year).strip())
        except ValueError:
            parsed["year"] = None
    return parsed


@dataclass(frozen=True)
class DecodeResult:
    vin: str
    parsed: dict[str, Any]
    raw: dict[str, Any]
    decoded_at: datetime
    source: str
    cached: bool
    stale: bool = False
    warning: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = {
            "vin": self.vin,
            "parsed": dict(self.parsed),
            "raw": self.raw,
            "decodedAt": self.decoded_at.isoformat(),
            "source": self.source,
            "cached": self.cached,
        }
        if self.stale:
            payload["stale"] = True
            payload["warning"] = self.warning
        return payload


class VinDecodeService:
    def __init__(
        self,
        session: Session,
        client,
        *,
        ttl: timedelta = DEFAULT_TTL,
        source: str = DEFAULT_SOURCE,
        clock: Callable[[], datetime] = utcnow,
        autocommit: bool = True,
    ) -> None:
        self.session = session
        self.client = client
        self.ttl = ttl
        self.source = source
        self.clock = clock
        self.autocommit = autocommit

    def decode(self, vin: object) -> DecodeResult:
        canonical = validate_vin(vin)
        if canonical is None:
            raise ValidationError("vin", vin)

        entry = self.session.get(VinDecodeCacheEntry, canonical)
        now = self.clock()
        if entry is not None and now - ensure_aware(entry.decoded_at) <= self.ttl:
            return self._from_entry(entry, cached=True)

        try:
            raw = self.client.decode(canonical)
        except UpstreamDecodeError as exc:
            if entry is None:
                raise
            warning = f"Serving cached decode from {ensure_aware(entry.decoded_at).isoformat()}: {exc.detail}"
            logger.warning(
                "VIN decode provider failed, serving stale cache entry",
                extra={"vin": canonical, "decoded_at": entry.decoded_at, "detail": exc.detail},
            )
            return self._from_entry(entry, cached=True, stale=True, warning=warning)

        upsert(
            self.session,
            VinDecodeCacheEntry.__table__,
            {
                "vin": canonical,
                "decoded_at": now,
                "decoded_source": self.source,
                "result_json": raw,
            },
            index_elements=["vin"],
        )
        if entry is not None:
            self.session.expire(entry)
        if self.autocommit:
            self.session.commit()
        return DecodeResult(
            vin=canonical,
            parsed=parse_decode(raw),
            raw=raw,
            decoded_at=now,
            source=self.source,
            cached=False,
        )

    @staticmethod
    def _from_entry(entry: VinDecodeCacheEntry, **flags) -> DecodeResult:
        return DecodeResult(
            vin=entry.vin,
            parsed=parse_decode(entry.result_json),
            raw=entry.result_json,
            decoded_at=ensure_aware(entry.decoded_at),
            source=entry.decoded_source,
            **flags,
        )


def get_vin_client(app=None):
    """Return the app's decode client, building the vPIC client on first use."""
    app = app or current_app
    state = app.extensions.setdefault("parhub", {})
    client = state.get("vin_client")
    if client is None:
        client = NhtsaVinClient(
            base_url=app.config.get("VIN_DECODE_BASE_URL", DEFAULT_BASE_URL),
            timeout=app.config.get("VIN_DECODE_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
        )
        state["vin_client"] = client
    return client


def build_decode_service(app=None, session: Session | None = None, client=None, **kwargs) -> VinDecodeService:
    app = app or current_app
    return VinDecodeService(
        session or db.session,
        client or get_vin_client(app),
        ttl=timedelta(days=app.config.get("VIN_DECODE_TTL_DAYS", DEFAULT_TTL.days)),
        source=app.config.get("VIN_DECODE_SOURCE", DEFAULT_SOURCE),
        **kwargs,
    )


def decode_vin(vin: object) -> DecodeResult:
    """Decode through the app-configured cache and provider."""
    return build_decode_service().decode(vin)
