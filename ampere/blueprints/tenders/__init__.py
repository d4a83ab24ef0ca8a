"""
ampere/blueprints/tenders/__init__.py

Blueprint package export.
"""

from __future__ import annotations

from .routes import tenders_bp  # noqa: F401
