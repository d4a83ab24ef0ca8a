"""
ampere/blueprints/pages/__init__.py

Blueprint package export.
"""

from __future__ import annotations

from .routes import pages_bp  # noqa: F401
