"""
ampere/blueprints/projects/__init__.py

Blueprint package export.
"""

from __future__ import annotations

from .routes import projects_bp  # noqa: F401
