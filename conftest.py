# conftest.py

import os
import tempfile

import pytest

# Set testing environment BEFORE importing app to prevent database corruption
# This ensures app.py uses TestingConfig when imported
os.environ["FLASK_ENV"] = "testing"

# Now import app and other modules after environment is set
from app import app as flask_app
from parhub.models import Customer, Vehicle, db
from parhub.reconciliation import init_reconciliation


@pytest.fixture(scope="function")
def app():
    """Create and configure a test Flask application"""
    import uuid

    # Create a unique temporary database file for each test
    db_fd, temp_db = tempfile.mkstemp(suffix=f"_{uuid.uuid4().hex[:8]}.db")

    try:
        flask_app.config.update(
            {
                "TESTING": True,
                "SQLALCHEMY_DATABASE_URI": f"sqlite:///{temp_db}",
                "SECRET_KEY": "test-secret-key-for-testing-only",
                "ENABLE_FILE_LOGGING": False,
                "ENABLE_CONSOLE_LOGGING": True,
                "LOG_LEVEL": "DEBUG",
                "LOG_FORMAT": "text",
                # Legacy discovery reads the application database unless a
                # test points it somewhere else.
                "LEGACY_DATABASE_URL": None,
                "LEGACY_SCHEMA": None,
                "DEALER_FLAG_ALLOW_UNSET": False,
                "RECONCILE_BATCH_SIZE": 500,
                "VIN_DECODE_TTL_DAYS": 180,
            }
        )

        # Re-initialize logging with updated config to pick up LOG_LEVEL=DEBUG
        from parhub.utils.logging_config import setup_logging

        setup_logging(flask_app)
        init_reconciliation(flask_app)

        with flask_app.app_context():
            # Drop any existing tables to ensure clean state
            db.drop_all()
            # Create all tables
            db.create_all()
            yield flask_app
            # Clean up: remove all data and drop tables
            db.session.remove()
            db.session.close()
            db.drop_all()
    finally:
        # Always close and remove the temporary database file, even on error
        try:
            os.close(db_fd)
        except OSError:
            pass
        try:
            if os.path.exists(temp_db):
                os.unlink(temp_db)
        except OSError:
            pass


@pytest.fixture(autouse=True)
def app_context(app):
    """Automatically provide app context for all tests"""
    with app.app_context():
        yield


@pytest.fixture
def client(app):
    """Create a test client for the Flask application"""
    return app.test_client()


@pytest.fixture
def runner(app):
    """Create a test CLI runner for the Flask application"""
    return app.test_cli_runner()


@pytest.fixture
def customer_factory(app):
    """Persist customers with sensible defaults
    Note: app_context fixture is autouse, so app context is already available
    """

    def _factory(**fields):
        customer = Customer(**fields)
        db.session.add(customer)
        db.session.commit()
        return customer

    return _factory


@pytest.fixture
def vehicle_factory(app):
    """Persist a vehicle owned by an existing customer"""

    def _factory(vin, customer, **fields):
        vehicle = Vehicle(vin=vin, customer_id=customer.id, **fields)
        db.session.add(vehicle)
        db.session.commit()
        return vehicle

    return _factory


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers and ensure testing environment"""
    # Ensure FLASK_ENV is set to testing before any tests run
    # This is a safety measure in case conftest imports happen in unexpected order
    os.environ["FLASK_ENV"] = "testing"

    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "unit: marks tests as unit tests")


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers"""
    for item in items:
        # Add slow marker to integration tests
        if "integration" in item.nodeid:
            item.add_marker(pytest.mark.slow)
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
