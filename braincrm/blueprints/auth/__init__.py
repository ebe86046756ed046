"""
Auth blueprint package.

Exposes the Blueprint object imported by braincrm.create_app.
The actual routes live in routes.py.
"""

from .routes import auth_bp  # noqa: F401
