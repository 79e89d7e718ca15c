# intake_app/routes/__init__.py
"""
Application routes package
"""

from .applications import register_application_routes


def init_routes(app):
    """Initialize all application routes"""
    register_application_routes(app)
