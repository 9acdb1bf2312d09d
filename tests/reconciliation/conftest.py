from __future__ import annotations

from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine, text

from parhub.models import VinDecodeCacheEntry, db
from parhub.reconciliation.errors import UpstreamDecodeError
from parhub.reconciliation.runtime import EXTENSION_KEY

LEGACY_SCHEMA_SQL = (
    """
    CREATE TABLE customers (
        id INTEGER PRIMARY KEY,
        name TEXT,
        business_name TEXT,
        phone TEXT,
        email TEXT,
        created_at TEXT
    )
    """,
    """
    CREATE TABLE vehicles (
        id INTEGER PRIMARY KEY,
        customer_id INTEGER,
        vin TEXT,
        year INTEGER,
        make TEXT,
        model TEXT,
        created_at TEXT
    )
    """,
)


def decode_payload(year="2003", make="HONDA", model="Accord", trim="EX"):
    return {
        "Count": 1,
        "Message": "Results returned successfully",
        "Results": [{"ModelYear": year, "Make": make, "Model": model, "Trim": trim, "ErrorCode": "0"}],
    }


class FakeVinClient:
    """Stands in for the vPIC client; records every decode call."""

    def __init__(self, payload=None, error: str | None = None):
        self.payload = payload if payload is not None else decode_payload()
        self.error = error
        self.calls: list[str] = []

    def decode(self, vin):
        self.calls.append(vin)
        if self.error:
            raise UpstreamDecodeError(vin, self.error)
        return self.payload


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def fake_vin_client(app):
    client = FakeVinClient()
    app.extensions.setdefault(EXTENSION_KEY, {})["vin_client"] = client
    return client


@pytest.fixture
def clock():
    return FixedClock(datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def cache_entry_factory(app):
    def _factory(vin, decoded_at, payload=None):
        entry = VinDecodeCacheEntry(
            vin=vin,
            decoded_at=decoded_at,
            decoded_source="nhtsa_vpic",
            result_json=payload if payload is not None else decode_payload(),
        )
        db.session.add(entry)
        db.session.commit()
        return entry

    return _factory


@pytest.fixture
def legacy_engine(app, tmp_path):
    """A second SQLite database holding legacy-shaped customer/vehicle tables."""
    url = f"sqlite:///{tmp_path / 'legacy.db'}"
    engine = create_engine(url)
    with engine.begin() as connection:
        for statement in LEGACY_SCHEMA_SQL:
            connection.execute(text(statement))
    app.config["LEGACY_DATABASE_URL"] = url
    yield engine
    engine.dispose()
    state = app.extensions.get(EXTENSION_KEY, {})
    cached = state.pop("legacy_engine", None)
    if cached is not None:
        cached.dispose()
    state.pop("legacy_engine_url", None)
    app.config["LEGACY_DATABASE_URL"] = None


@pytest.fixture
def seed_legacy(legacy_engine):
    """Insert legacy rows: ``seed_legacy(customers=[...], vehicles=[...])``."""

    def _seed(customers=(), vehicles=()):
        with legacy_engine.begin() as connection:
            for row in customers:
                connection.execute(
                    text(
                        "INSERT INTO customers (id, name, business_name, phone, email, created_at) "
                        "VALUES (:id, :name, :business_name, :phone, :email, :created_at)"
                    ),
                    {"business_name": None, "phone": None, "email": None, "created_at": None, **row},
                )
            for row in vehicles:
                connection.execute(
                    text(
                        "INSERT INTO vehicles (id, customer_id, vin, year, make, model, created_at) "
                        "VALUES (:id, :customer_id, :vin, :year, :make, :model, :created_at)"
                    ),
                    {"vin": None, "year": None, "make": None, "model": None, "created_at": None, **row},
                )

    return _seed


@pytest.fixture
def make_vin_client():
    return FakeVinClient


@pytest.fixture
def payload_factory():
    return decode_payload
