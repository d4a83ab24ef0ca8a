"""
Auth blueprint package.

Exposes the Blueprint object; routes live in routes.py.
"""

from .routes import auth_bp  # noqa: F401
