from parhub.models import Customer, LegacyVehicle, TriageReason, db
from parhub.reconciliation import repair_customer_phones, verify_counts
from parhub.reconciliation.maintenance import repair_customer_phone
from parhub.reconciliation.summary import RunSummary


def test_repair_derives_phone_columns_from_legacy_phone():
    customer = Customer(phone="5551234567.0")
    assert repair_customer_phone(customer) == "repaired"
    assert customer.phone == "+15551234567"
    assert customer.phone_e164 == "+15551234567"
    assert customer.phone_display == "555-123-4567"
    assert customer.phone_raw == "5551234567"


def test_repair_leaves_consistent_rows_alone():
    customer = Customer(
        phone="+15551234567",
        phone_raw="(555) 123-4567",
        phone_e164="+15551234567",
        phone_display="555-123-4567",
    )
    assert repair_customer_phone(customer) == "unchanged"


def test_repair_clears_placeholders():
    customer = Customer(phone="n/a", phone_raw="NULL")
    assert repair_customer_phone(customer) == "cleared"
    assert customer.phone is None
    assert customer.phone_raw is None


def test_zero_filled_legacy_phone_yields_to_raw_value():
    customer = Customer(phone="5550000000", phone_raw="555-123-4567")
    assert repair_customer_phone(customer) == "repaired"
    assert customer.phone_e164 == "+15551234567"


def test_unparseable_values_are_reported():
    customer = Customer(phone="ext. 12")
    assert repair_customer_phone(customer) == "unparseable"


def test_repair_job_commits_and_tallies(customer_factory):
    fixed = customer_factory(first_name="Fix", phone="5.551234567E+09")
    customer_factory(first_name="Bad", phone="123")

    summary = repair_customer_phones()

    assert summary.status == "succeeded"
    assert summary.counts["customers_scanned"] == 2
    assert summary.counts["phones_repaired"] == 1
    assert summary.counts["phones_unparseable"] == 1
    db.session.expire_all()
    assert db.session.get(Customer, fixed.id).phone_e164 == "+15551234567"


def test_dry_run_writes_nothing(customer_factory):
    customer = customer_factory(first_name="Fix", phone="5551234567")

    summary = repair_customer_phones(summary=RunSummary(name="phone repair (dry run)"), dry_run=True)

    assert summary.counts["phones_repaired"] == 1
    db.session.expire_all()
    assert db.session.get(Customer, customer.id).phone_e164 is None


def test_verify_counts_without_legacy_tables(customer_factory):
    customer_factory(first_name="Only")
    report = verify_counts()
    assert report.legacy_customers is None
    assert report.new_customers == 1
    assert report.ok is True


def test_verify_counts_against_legacy_source(seed_legacy, customer_factory):
    seed_legacy(
        customers=[{"id": 1, "name": "Ada"}, {"id": 2, "name": "Bob"}],
        vehicles=[{"id": 10, "customer_id": 1}],
    )
    ada = customer_factory(first_name="Ada")

    report = verify_counts()
    assert report.customers_match is False
    assert report.ok is False

    customer_factory(first_name="Bob")
    db.session.add(LegacyVehicle(source_vehicle_id="10", customer_id=ada.id, reason=TriageReason.MISSING_VIN))
    db.session.commit()

    report = verify_counts()
    assert report.ok is True
    assert report.to_dict()["preserved_vehicles"] == 1
