from datetime import datetime, timedelta, timezone

from parhub.reconciliation.runtime import EXTENSION_KEY

VIN = "1HGCM82633A004352"


def test_decode_returns_parsed_fields(client, fake_vin_client):
    response = client.get(f"/api/vin/{VIN.lower()}/decode")

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["vin"] == VIN
    assert payload["parsed"]["model"] == "Accord"
    assert payload["cached"] is False


def test_invalid_vin_is_a_bad_request(client, fake_vin_client):
    response = client.get("/api/vin/1HGCM82633A00435O/decode")

    assert response.status_code == 400
    assert "error" in response.get_json()
    assert fake_vin_client.calls == []


def test_provider_failure_without_cache_is_bad_gateway(app, client, make_vin_client):
    app.extensions.setdefault(EXTENSION_KEY, {})["vin_client"] = make_vin_client(error="provider returned HTTP 503")

    response = client.get(f"/api/vin/{VIN}/decode")

    assert response.status_code == 502
    assert response.get_json()["detail"] == "provider returned HTTP 503"


def test_provider_failure_serves_stale_cache(app, client, make_vin_client, cache_entry_factory):
    cache_entry_factory(VIN, datetime.now(timezone.utc) - timedelta(days=400))
    app.extensions.setdefault(EXTENSION_KEY, {})["vin_client"] = make_vin_client(error="provider timed out after 6s")

    response = client.get(f"/api/vin/{VIN}/decode")

    assert response.status_code == 200
    payload = response.get_json()
    assert payload["stale"] is True
    assert "timed out" in payload["warning"]


def test_unknown_route_returns_json_404(client):
    response = client.get("/api/does-not-exist")
    assert response.status_code == 404
    assert response.get_json() == {"error": "Not found"}
