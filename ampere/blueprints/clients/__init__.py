"""
ampere/blueprints/clients/__init__.py

Blueprint package export.
"""

from __future__ import annotations

from .routes import clients_bp  # noqa: F401
