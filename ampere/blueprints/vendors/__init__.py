"""
ampere/blueprints/vendors/__init__.py

Blueprint package export.
"""

from __future__ import annotations

from .routes import vendors_bp  # noqa: F401
