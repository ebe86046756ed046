"""
Directory blueprint package.

Exposes the Blueprint object imported by braincrm.create_app.
The actual routes live in routes.py.
"""

from .routes import directory_bp  # noqa: F401
