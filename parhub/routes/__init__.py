# parhub/routes/__init__.py
"""
Application routes package
"""

from .vin import register_vin_routes


def init_routes(app):
    """Initialize all application routes"""
    register_vin_routes(app)
