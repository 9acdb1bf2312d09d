from datetime import datetime, timezone

from parhub.models import CustomerEvent, db
from parhub.reconciliation import import_events
from parhub.reconciliation.event_import import derive_event_id

VIN = "1HGCM82633A004352"


def _rows():
    return [
        {"Start": "2024-03-01 09:00:00", "Title": f"Oil change (VIN: {VIN})", "Description": "Synthetic"},
        {"Start": "03/02/2024 10:30 AM", "Title": "Brake check", "Phone": "(555) 123-4567"},
        {"Start": "2024-03-03", "Title": "Walk-in quote", "Description": "No contact left"},
    ]


def test_events_are_linked_and_tallied(customer_factory, vehicle_factory):
    owner = customer_factory(first_name="Ada", last_name="Lovelace")
    vehicle_factory(VIN, owner)
    caller = customer_factory(first_name="Bob", phone_e164="+15551234567")

    summary = import_events(_rows(), source="calendar.xlsx")

    assert summary.status == "succeeded"
    assert summary.counts["events_imported"] == 3
    assert summary.counts["linked_to_vehicle"] == 1
    assert summary.counts["linked_to_customer_only"] == 1
    assert summary.counts["unlinked_events"] == 1
    assert summary.counts["matched_by_vin"] == 1
    assert summary.counts["matched_by_phone"] == 1

    events = {event.title: event for event in db.session.query(CustomerEvent)}
    assert events[f"Oil change (VIN: {VIN})"].vehicle_vin == VIN
    assert events[f"Oil change (VIN: {VIN})"].customer_id == owner.id
    assert events["Brake check"].customer_id == caller.id
    assert events["Brake check"].vehicle_vin is None
    assert events["Walk-in quote"].customer_id is None
    assert events["Walk-in quote"].source == "calendar_import"


def test_reimport_inserts_nothing_new(app):
    import_events(_rows())

    second = import_events(_rows())

    assert second.counts["events_imported"] == 0
    assert second.counts["events_already_imported"] == 3
    assert db.session.query(CustomerEvent).count() == 3


def test_explicit_event_id_is_used(app):
    import_events([{"Event ID": "evt-1", "Title": "Detail", "Start": "2024-01-01"}])
    event = db.session.query(CustomerEvent).one()
    assert event.legacy_event_id == "evt-1"


def test_rows_without_date_title_or_description_are_skipped(app):
    summary = import_events([{"Phone": "555-123-4567"}, {"Location": "Bay 2"}])
    assert summary.counts["rows_skipped"] == 2
    assert db.session.query(CustomerEvent).count() == 0


def test_derived_event_id_is_deterministic():
    when = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
    first = derive_event_id(when, "Oil change", "+15551234567", "Ada")
    assert first == derive_event_id(when, "Oil change", "+15551234567", "Ada")
    assert first != derive_event_id(when, "Oil change", None, "Ada")
    assert len(first) == 64
    assert derive_event_id(None, None, None, None) == derive_event_id(None, "", "", "")


def test_event_id_ignores_phone_formatting(app):
    import_events([{"Start": "2024-03-01", "Title": "Tires", "Phone": "555-123-4567"}])
    summary = import_events([{"Start": "2024-03-01", "Title": "Tires", "Phone": "(555) 123 4567"}])
    assert summary.counts["events_already_imported"] == 1
