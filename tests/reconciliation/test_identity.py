import pytest

from parhub.models import Customer, db
from parhub.reconciliation.identity import (
    AMBIGUOUS,
    CustomerIndex,
    IdentityRecord,
    IdentityResolver,
    normalize_email,
    normalize_legacy_id,
    normalize_name,
    resolve_customer,
)

VIN = "1HGCM82633A004352"


def test_normalizers():
    assert normalize_email("  Ada+shop@Example.COM ") == "ada+shop@example.com"
    assert normalize_email("not-an-email") == "not-an-email"
    assert normalize_email("   ") is None
    assert normalize_name(" Ada ", None, "  LOVELACE") == "ada lovelace"
    assert normalize_name(None, "") is None
    assert normalize_legacy_id(42.0) == "42"
    assert normalize_legacy_id(" C-1 ") == "C-1"
    assert normalize_legacy_id(True) is None


def test_ambiguous_sentinel_is_falsy():
    assert not AMBIGUOUS
    assert repr(AMBIGUOUS) == "AMBIGUOUS"


def test_shared_phone_is_ambiguous_and_never_resolves(customer_factory):
    customer_factory(first_name="Ann", last_name="One", phone_e164="+15551234567")
    customer_factory(first_name="Bob", last_name="Two", phone="(555) 123-4567")

    resolution = resolve_customer(db.session, {"phone": "555.123.4567"})

    assert resolution.customer_id is None
    assert not resolution.resolved
    assert resolution.ambiguous == ("phone",)


def test_legacy_client_id_outranks_phone(customer_factory):
    a = customer_factory(first_name="Ann", legacy_client_id="C-100")
    b = customer_factory(first_name="Bob", phone_e164="+15551234567")

    resolution = resolve_customer(db.session, {"legacy_client_id": "C-100", "phone": "5551234567"})

    assert resolution.customer_id == a.id
    assert resolution.customer_id != b.id
    assert resolution.matched_by == "legacy_client_id"


def test_vin_owner_outranks_email(customer_factory, vehicle_factory):
    owner = customer_factory(first_name="Owner")
    other = customer_factory(first_name="Other", email="other@example.com")
    vehicle_factory(VIN, owner)

    resolution = resolve_customer(
        db.session,
        {"email": "other@example.com", "notes": f"Front brakes (VIN: {VIN.lower()})"},
    )

    assert resolution.customer_id == owner.id
    assert resolution.customer_id != other.id
    assert resolution.matched_by == "vin"
    assert resolution.vehicle_vin == VIN
    assert resolution.extracted_vin == VIN


def test_plus_addresses_are_distinct_people(customer_factory):
    tagged = customer_factory(first_name="Pat", email="pat+shop@example.com")

    untagged = resolve_customer(db.session, {"email": "pat@example.com"})
    exact = resolve_customer(db.session, {"email": " PAT+shop@Example.com "})

    assert untagged.customer_id is None
    assert not untagged.resolved
    assert exact.customer_id == tagged.id
    assert exact.matched_by == "email"


def test_chain_falls_through_ambiguous_key_to_next(customer_factory):
    customer_factory(first_name="Ann", email="shared@example.com")
    customer_factory(first_name="Bob", email="shared@example.com")
    target = customer_factory(first_name="Cy", phone_e164="+15550001111")

    resolution = resolve_customer(db.session, {"email": "shared@example.com", "phone": "555-000-1111"})

    assert resolution.customer_id == target.id
    assert resolution.matched_by == "phone"
    assert resolution.ambiguous == ("email",)


def test_name_match_is_case_insensitive(customer_factory):
    customer = customer_factory(first_name="Grace", last_name="Hopper")

    by_parts = resolve_customer(db.session, IdentityRecord(first_name="GRACE", last_name="hopper"))
    by_full_name = resolve_customer(db.session, IdentityRecord(full_name="  grace   HOPPER "))

    assert by_parts.customer_id == customer.id
    assert by_full_name.customer_id == customer.id
    assert by_full_name.matched_by == "name"


def test_vehicle_linked_only_when_owned_by_matched_customer(customer_factory, vehicle_factory):
    owner = customer_factory(first_name="Owner", legacy_client_id="C-1")
    customer = customer_factory(first_name="Someone", legacy_client_id="C-2")
    vehicle_factory(VIN, owner)

    resolution = resolve_customer(db.session, {"legacy_client_id": "C-2", "title": f"Detail {VIN}"})

    assert resolution.customer_id == customer.id
    assert resolution.vehicle_vin is None
    assert resolution.extracted_vin == VIN


def test_unresolved_record_reports_extracted_vin(app):
    resolution = resolve_customer(db.session, {"services": f"Oil change {VIN}", "email": "new@example.com"})
    assert resolution.customer_id is None
    assert resolution.extracted_vin == VIN
    assert resolution.to_dict()["ambiguous"] == []


def test_register_makes_new_customers_resolvable(app):
    index = CustomerIndex.build(db.session)
    resolver = IdentityResolver(index)
    assert not resolver.resolve({"email": "late@example.com"}).resolved

    customer = Customer(first_name="Late", email="Late@Example.com")
    db.session.add(customer)
    db.session.flush()
    index.register(customer)

    resolution = resolver.resolve({"email": "late@example.com"})
    assert resolution.customer_id == customer.id


def test_register_requires_flushed_customer(app):
    index = CustomerIndex()
    with pytest.raises(ValueError, match="flushed"):
        index.register(Customer(first_name="Unsaved"))


def test_same_customer_claiming_key_twice_is_not_ambiguous():
    index = CustomerIndex()
    index.add(7, phones=("+15551234567", "555-123-4567"))
    assert index.by_phone["+15551234567"] == 7
    index.add(8, phones=("5551234567",))
    assert index.by_phone["+15551234567"] is AMBIGUOUS


def test_free_text_is_swept_last():
    record = IdentityRecord.from_mapping({"vin": None, "title": "t", "free_text": "loc"})
    assert record.vin_sources() == (None, "t", None, None, "loc")
