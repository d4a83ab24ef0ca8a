"""
ampere/blueprints/quotations/__init__.py

Blueprint package export.
"""

from __future__ import annotations

from .routes import quotations_bp  # noqa: F401
