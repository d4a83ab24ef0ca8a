"""
ampere/blueprints/xero/__init__.py

Blueprint package export.
"""

from __future__ import annotations

from .routes import xero_bp  # noqa: F401
