import json
import logging

from config.base import _coerce_bool, _coerce_int, _normalize_database_url
from config.validation import validate_environment
from parhub.utils.logging_config import JSONFormatter, setup_logging


def test_coerce_helpers():
    assert _coerce_bool("YES") is True
    assert _coerce_bool("off") is False
    assert _coerce_bool("sometimes", default=True) is True
    assert _coerce_int("12", 6) == 12
    assert _coerce_int("zero", 6) == 6
    assert _coerce_int("0", 6, minimum=1) == 6


def test_postgres_scheme_is_normalized():
    assert _normalize_database_url("postgres://u@h/db") == "postgresql://u@h/db"
    assert _normalize_database_url(None) is None


def test_validation_only_applies_in_production(monkeypatch):
    monkeypatch.delenv("SECRET_KEY", raising=False)
    assert validate_environment("development") == (True, [])


def test_production_requires_database_and_legacy_location(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "a-real-secret")
    monkeypatch.setenv("DATABASE_URL", "postgresql://u@h/db")
    monkeypatch.delenv("LEGACY_DATABASE_URL", raising=False)
    monkeypatch.delenv("LEGACY_SCHEMA", raising=False)
    monkeypatch.setenv("VIN_DECODE_TTL_DAYS", "-5")

    is_valid, errors = validate_environment("production")

    assert is_valid is False
    assert any("VIN_DECODE_TTL_DAYS" in error for error in errors)
    assert any("LEGACY_DATABASE_URL" in error for error in errors)

    monkeypatch.setenv("LEGACY_SCHEMA", "public")
    monkeypatch.delenv("VIN_DECODE_TTL_DAYS")
    assert validate_environment("production") == (True, [])


def test_testing_config_is_loaded(app):
    assert app.config["TESTING"] is True
    assert app.config["VIN_DECODE_TIMEOUT_SECONDS"] == 6
    assert app.config["DEALER_FLAG_ALLOW_UNSET"] is False


def test_json_formatter_carries_extra_keys():
    record = logging.LogRecord("parhub.test", logging.WARNING, __file__, 1, "stale %s", ("cache",), None)
    record.reconcile_run_id = 7

    payload = json.loads(JSONFormatter(app_name="PARHub", app_version="1.0.0").format(record))

    assert payload["message"] == "stale cache"
    assert payload["level"] == "WARNING"
    assert payload["reconcile_run_id"] == 7


def test_setup_logging_does_not_stack_handlers(app):
    setup_logging(app)
    setup_logging(app)
    ours = [handler for handler in app.logger.handlers if getattr(handler, "_parhub_handler", False)]
    assert len(ours) == 1
    assert logging.getLogger("parhub").handlers == ours
