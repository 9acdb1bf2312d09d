# config/base.py
import os


def _coerce_bool(value, default=False):
    """Convert environment-style truthy/falsey values to bool."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    value_str = str(value).strip().lower()
    if value_str in {"1", "true", "yes", "on"}:
        return True
    if value_str in {"0", "false", "no", "off"}:
        return False
    return default


def _coerce_int(value, default, *, minimum=None):
    """
    Parse an integer environment value, falling back to ``default`` when the
    value is missing, malformed or below ``minimum``.
    """
    if value is None or str(value).strip() == "":
        return default
    try:
        number = int(str(value).strip())
    except ValueError:
        return default
    if minimum is not None and number < minimum:
        return default
    return number


def _normalize_database_url(uri):
    """Heroku/Railway style URLs use the deprecated ``postgres://`` scheme."""
    if uri and uri.startswith("postgres://"):
        return uri.replace("postgres://", "postgresql://", 1)
    return uri


class Config:
    # SECRET_KEY must be set via environment variable in production.
    _flask_env = os.environ.get("FLASK_ENV", "development")
    _is_testing = _flask_env == "testing"
    _is_production = _flask_env == "production"

    SECRET_KEY = os.environ.get("SECRET_KEY")

    if not SECRET_KEY and _is_production:
        raise ValueError(
            "SECRET_KEY environment variable is required in production. "
            'Generate with: python -c "import secrets; print(secrets.token_hex(32))"'
        )

    if not SECRET_KEY and not _is_testing:
        import warnings

        warnings.warn(
            "SECRET_KEY not set. Using default for development only. "
            "Set SECRET_KEY environment variable before deploying.",
            UserWarning,
        )
        SECRET_KEY = "dev-secret-key-change-in-production"

    if not SECRET_KEY:
        SECRET_KEY = "test-secret-key-placeholder"

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {}

    # Legacy source location. When LEGACY_DATABASE_URL is unset the legacy
    # tables are read from the application database, optionally inside
    # LEGACY_SCHEMA (e.g. "public" when the target lives elsewhere).
    LEGACY_DATABASE_URL = _normalize_database_url(os.environ.get("LEGACY_DATABASE_URL"))
    LEGACY_SCHEMA = os.environ.get("LEGACY_SCHEMA") or None

    # VIN decode provider and cache freshness
    VIN_DECODE_BASE_URL = os.environ.get(
        "VIN_DECODE_BASE_URL",
        "https://vpic.nhtsa.dot.gov/api/vehicles",
    )
    VIN_DECODE_SOURCE = os.environ.get("VIN_DECODE_SOURCE", "nhtsa_vpic")
    VIN_DECODE_TIMEOUT_SECONDS = _coerce_int(os.environ.get("VIN_DECODE_TIMEOUT_SECONDS"), 6, minimum=1)
    VIN_DECODE_TTL_DAYS = _coerce_int(os.environ.get("VIN_DECODE_TTL_DAYS"), 180, minimum=1)

    # Dealer flag recomputation only ever sets the flag unless explicitly
    # allowed to clear it.
    DEALER_FLAG_ALLOW_UNSET = _coerce_bool(os.environ.get("DEALER_FLAG_ALLOW_UNSET"), default=False)

    RECONCILE_BATCH_SIZE = _coerce_int(os.environ.get("RECONCILE_BATCH_SIZE"), 500, minimum=1)


class DevelopmentConfig(Config):
    DEBUG = True
    _config_dir = os.path.dirname(os.path.abspath(__file__))
    _project_root = os.path.dirname(_config_dir)
    instance_path = os.path.join(_project_root, "instance")

    if not os.path.exists(instance_path):
        os.makedirs(instance_path, exist_ok=True)

    # SQLite URI format: sqlite:///absolute/path (forward slashes on Windows too)
    db_path = os.path.join(instance_path, "parhub_dev.db").replace("\\", "/")
    db_uri = f"sqlite:///{db_path}"

    SQLALCHEMY_DATABASE_URI = _normalize_database_url(os.environ.get("DATABASE_URL")) or db_uri
    SQLALCHEMY_ECHO = _coerce_bool(os.environ.get("SQLALCHEMY_ECHO"), default=False)
    if SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
        SQLALCHEMY_ENGINE_OPTIONS = {
            "connect_args": {
                "check_same_thread": False,
                "timeout": 5,
            }
        }
    else:
        SQLALCHEMY_ENGINE_OPTIONS = {}


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get("SECRET_KEY", "test-secret-key-for-testing-only")
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ECHO = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "connect_args": {
            "check_same_thread": False,
            "timeout": 5,
        }
    }
    VIN_DECODE_BASE_URL = "https://vpic.invalid/api/vehicles"


class ProductionConfig(Config):
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = _normalize_database_url(os.environ.get("DATABASE_URL"))
    SQLALCHEMY_ECHO = False
