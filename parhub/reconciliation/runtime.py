"""
Per-application reconciliation state kept in ``app.extensions['parhub']``.
"""

from __future__ import annotations

from typing import Any, Dict

from flask import Flask, current_app
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from parhub.models import db

from .discovery import SchemaContext, SchemaDiscovery

EXTENSION_KEY = "parhub"


def _ensure_extension_state(app: Flask) -> Dict[str, Any]:
    return app.extensions.setdefault(EXTENSION_KEY, {})


def get_legacy_engine(app: Flask | None = None) -> Engine:
    """
    Engine for the legacy source: ``LEGACY_DATABASE_URL`` when set, otherwise
    the application database.
    """
    app = app or current_app
    url = app.config.get("LEGACY_DATABASE_URL")
    if not url:
        return db.engine
    state = _ensure_extension_state(app)
    engine = state.get("legacy_engine")
    if engine is None or state.get("legacy_engine_url") != url:
        if engine is not None:
            engine.dispose()
        engine = create_engine(url, pool_pre_ping=True)
        state["legacy_engine"] = engine
        state["legacy_engine_url"] = url
    return engine


def get_schema_context(app: Flask | None = None) -> SchemaContext:
    """The process-wide schema cache for the target database."""
    app = app or current_app
    state = _ensure_extension_state(app)
    context = state.get("schema_context")
    if context is None or context.engine is not db.engine:
        context = SchemaContext(db.engine)
        state["schema_context"] = context
    return context


def get_legacy_discovery(app: Flask | None = None) -> SchemaDiscovery:
    app = app or current_app
    engine = get_legacy_engine(app)
    schema = app.config.get("LEGACY_SCHEMA") or None
    exclude: tuple[str, ...] = ()
    if engine is db.engine and schema is None:
        # Shared database: the target's own tables are not legacy sources.
        exclude = tuple(db.metadata.tables)
    return SchemaDiscovery(engine, schema=schema, exclude=exclude)
