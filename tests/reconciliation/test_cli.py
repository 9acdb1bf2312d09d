import json

from parhub.models import Customer, SchemaMigration, db
from parhub.reconciliation.discovery import SchemaDiscovery

VIN = "1HGCM82633A004352"


def _json_tail(output):
    return json.loads(output[output.index("{") :])


def test_migrate_applies_everything_then_reports_nothing_pending(runner, seed_legacy):
    seed_legacy(customers=[{"id": 1, "name": "Ada Lovelace"}], vehicles=[{"id": 10, "customer_id": 1, "vin": VIN}])

    result = runner.invoke(args=["reconcile", "migrate"])

    assert result.exit_code == 0, result.output
    assert "migration 0001_customers_and_vehicles finished with status succeeded" in result.output
    assert "vehicles_migrated" in result.output
    assert db.session.query(SchemaMigration).count() == 4

    again = runner.invoke(args=["reconcile", "migrate"])
    assert again.exit_code == 0, again.output
    assert "No pending migrations." in again.output


def test_migrate_single_version_with_summary_json(runner, app):
    result = runner.invoke(args=["reconcile", "migrate", "--version", "0002_vin_decode_cache", "--summary-json"])

    assert result.exit_code == 0, result.output
    payload = _json_tail(result.output)
    assert payload["name"] == "migration 0002_vin_decode_cache"
    assert payload["status"] == "succeeded"


def test_migrate_failure_prints_summary_and_exits_nonzero(runner, seed_legacy, monkeypatch):
    seed_legacy(customers=[{"id": 1, "name": "Ada"}, {"id": 2, "name": "Bob"}])
    fetch_rows = SchemaDiscovery.fetch_rows
    monkeypatch.setattr(
        SchemaDiscovery,
        "fetch_rows",
        lambda self, table_name, order_by=(): fetch_rows(self, table_name, order_by)[:1],
    )

    result = runner.invoke(args=["reconcile", "migrate"])

    assert result.exit_code == 1
    assert "finished with status failed" in result.output
    assert "Migration failed" in result.output
    assert "verification failed" in result.output


def test_migrate_unknown_version(runner, app):
    result = runner.invoke(args=["reconcile", "migrate", "--version", "0000_missing"])
    assert result.exit_code == 1
    assert "Unknown migration version" in result.output


def test_import_customers_from_csv(runner, tmp_path):
    path = tmp_path / "customers.csv"
    path.write_text(
        "Client ID,First Name,Last Name,Email,Phone,VIN,Year,Make\n"
        f"C-1,Ada,Lovelace,ada@example.com,5551234567,{VIN},2003,Honda\n"
        "C-2,Grace,Hopper,grace@example.com,,,,\n",
        encoding="utf-8",
    )

    result = runner.invoke(args=["reconcile", "import-customers", str(path), "--summary-json"])

    assert result.exit_code == 0, result.output
    payload = _json_tail(result.output)
    assert payload["counts"]["customers_created"] == 2
    assert payload["counts"]["vehicles_created"] == 1
    assert db.session.query(Customer).count() == 2


def test_import_rejects_unsupported_file(runner, tmp_path):
    path = tmp_path / "customers.txt"
    path.write_text("nothing", encoding="utf-8")

    result = runner.invoke(args=["reconcile", "import-customers", str(path)])

    assert result.exit_code == 1
    assert "Unsupported file type" in result.output


def test_import_events_from_csv(runner, tmp_path):
    path = tmp_path / "calendar.csv"
    path.write_text("Start,Title\n2024-03-01,Oil change\n", encoding="utf-8")

    result = runner.invoke(args=["reconcile", "import-events", str(path)])

    assert result.exit_code == 0, result.output
    assert "unlinked_events" in result.output


def test_repair_phones_dry_run(runner, customer_factory):
    customer_factory(first_name="Ada", phone="5551234567")

    result = runner.invoke(args=["reconcile", "repair-phones", "--dry-run"])

    assert result.exit_code == 0, result.output
    assert "phone repair (dry run)" in result.output
    assert "phones_repaired" in result.output


def test_verify_passes_without_legacy_tables(runner, app):
    result = runner.invoke(args=["reconcile", "verify"])
    assert result.exit_code == 0, result.output
    assert "Verification passed" in result.output


def test_verify_fails_on_count_mismatch(runner, seed_legacy):
    seed_legacy(customers=[{"id": 1, "name": "Ada"}])

    result = runner.invoke(args=["reconcile", "verify"])

    assert result.exit_code == 1
    assert "Legacy customer count: 1" in result.output
    assert "Verification failed" in result.output


def test_decode_vin_prints_json(runner, fake_vin_client):
    result = runner.invoke(args=["reconcile", "decode-vin", VIN])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["parsed"]["make"] == "HONDA"
    assert fake_vin_client.calls == [VIN]


def test_decode_vin_rejects_invalid_vin(runner, fake_vin_client):
    result = runner.invoke(args=["reconcile", "decode-vin", "NOTAVIN"])
    assert result.exit_code == 1
    assert fake_vin_client.calls == []


def test_schema_report_for_target(runner, app):
    result = runner.invoke(args=["reconcile", "schema-report", "--target"])
    assert result.exit_code == 0, result.output
    assert "Table: customers" in result.output
    assert "Table: vin_decode_cache" in result.output


def test_schema_report_for_legacy_source(runner, legacy_engine):
    result = runner.invoke(args=["reconcile", "schema-report", "--summary-json"])
    assert result.exit_code == 0, result.output
    assert "Table: vehicles" in result.output
    assert _json_tail(result.output)["customers"][0] == "id"
