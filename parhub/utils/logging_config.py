# parhub/utils/logging_config.py

"""
Logging setup shared by the web app and the reconciliation CLI.

Reads the ``LOG_*`` / ``ENABLE_*_LOGGING`` keys from ``config.monitoring`` and
installs a console handler plus an optional rotating file handler on the
Flask app logger. Structured ``extra`` keys passed to log calls are carried
into JSON output.
"""

import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime"}

TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class JSONFormatter(logging.Formatter):
    """Render log records as one JSON object per line."""

    def __init__(self, app_name="PARHub", app_version="1.0.0"):
        super().__init__()
        self.app_name = app_name
        self.app_version = app_version

    def format(self, record):
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "app": self.app_name,
            "version": self.app_version,
        }
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _build_formatter(app):
    if str(app.config.get("LOG_FORMAT", "text")).lower() == "json":
        return JSONFormatter(
            app_name=app.config.get("APP_NAME", "PARHub"),
            app_version=app.config.get("APP_VERSION", "1.0.0"),
        )
    return logging.Formatter(TEXT_FORMAT)


def setup_logging(app):
    """Configure application logging. Safe to call more than once."""
    level_name = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)
    formatter = _build_formatter(app)

    # Re-running setup (tests reconfigure the app) must not stack handlers.
    for handler in list(app.logger.handlers):
        if getattr(handler, "_parhub_handler", False):
            app.logger.removeHandler(handler)
            handler.close()

    if app.config.get("ENABLE_CONSOLE_LOGGING", True):
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        console_handler.setLevel(level)
        console_handler._parhub_handler = True
        app.logger.addHandler(console_handler)

    if app.config.get("ENABLE_FILE_LOGGING", False):
        log_dir = app.config.get("LOG_DIR", "logs")
        try:
            os.makedirs(log_dir, exist_ok=True)
            file_handler = RotatingFileHandler(
                os.path.join(log_dir, app.config.get("LOG_FILE_NAME", "parhub.log")),
                maxBytes=int(app.config.get("LOG_FILE_MAX_BYTES", 10485760)),
                backupCount=int(app.config.get("LOG_FILE_BACKUP_COUNT", 10)),
                encoding="utf-8",
            )
        except OSError as exc:
            app.logger.warning("File logging disabled, could not open log directory %s: %s", log_dir, exc)
        else:
            file_handler.setFormatter(formatter)
            file_handler.setLevel(level)
            file_handler._parhub_handler = True
            app.logger.addHandler(file_handler)

    app.logger.setLevel(level)

    # Module loggers (``logging.getLogger(__name__)``) inside the package share
    # the app's handlers.
    package_logger = logging.getLogger("parhub")
    package_logger.setLevel(level)
    package_logger.handlers = [h for h in app.logger.handlers if getattr(h, "_parhub_handler", False)]
    package_logger.propagate = False
    return app.logger
