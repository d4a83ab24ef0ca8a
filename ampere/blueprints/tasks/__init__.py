"""
ampere/blueprints/tasks/__init__.py

Blueprint package export.
"""

from __future__ import annotations

from .routes import tasks_bp  # noqa: F401
