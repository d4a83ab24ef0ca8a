"""
ampere/blueprints/servicing/__init__.py

Blueprint package export.
"""

from __future__ import annotations

from .routes import servicing_bp  # noqa: F401
