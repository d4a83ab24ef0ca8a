"""
ampere/security.py

Server-side access control.

Key rules:
- Every /api route checks the caller's role against an explicit allow-list.
- Unauthenticated API calls get 401 JSON; unauthenticated page visits are
  redirected to the login page (see page_guard()).
- current_user is resolved either from the Flask-Login session or from the
  fallback session-token cookie (request loader in create_app()).

IMPORTANT:
- Decorators preserve wrapped function metadata (functools.wraps) to avoid
  Flask endpoint collisions.
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Optional
from urllib.parse import urlencode

from flask import jsonify, redirect, request
from flask_login import current_user

from .models import ADMIN, FINANCE, PROJECT_MANAGER, SUPERADMIN

# Page prefixes that require a session (API routes enforce their own checks)
PROTECTED_PAGE_PREFIXES = (
    "/dashboard",
    "/clients",
    "/vendors",
    "/projects",
    "/quotations",
    "/tenders",
    "/invoices",
    "/finance",
    "/servicing",
    "/tasks",
    "/users",
    "/settings",
)

# Role allow-lists shared by several blueprints
FINANCE_VIEW_ROLES = (SUPERADMIN, FINANCE)
SERVICE_VIEW_ROLES = (SUPERADMIN, ADMIN, PROJECT_MANAGER, FINANCE)
SERVICE_MANAGE_ROLES = (SUPERADMIN, ADMIN, PROJECT_MANAGER)


def _unauthorized():
    return jsonify({"error": "Unauthorized"}), 401


def forbidden(message: str = "Insufficient permissions"):
    """Consistent 403 JSON response."""
    return jsonify({"error": message}), 403


def has_role(*roles: str) -> bool:
    """True if the current user is authenticated and holds one of `roles`."""
    return bool(current_user.is_authenticated and current_user.role in roles)


def is_superadmin() -> bool:
    return has_role(SUPERADMIN)


def roles_required(*roles: str, message: str = "Insufficient permissions") -> Callable[..., Any]:
    """
    Decorator factory: authenticated user with one of `roles`.

    Usage:
        @roles_required(SUPERADMIN, FINANCE)
        def list_payments(): ...
    """
    def decorator(view_func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view_func)
        def wrapper(*args: Any, **kwargs: Any):
            if not current_user.is_authenticated:
                return _unauthorized()
            if current_user.role not in roles:
                return forbidden(message)
            return view_func(*args, **kwargs)

        return wrapper

    return decorator


def api_login_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: any authenticated, active user (401 JSON otherwise)."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not current_user.is_authenticated:
            return _unauthorized()
        return view_func(*args, **kwargs)

    return wrapper


def page_guard() -> Optional[Any]:
    """
    Global guard for server-rendered pages.

    Redirects to /auth/login?callbackUrl=<path> when neither the primary
    session nor the session-token cookie identifies a user.
    """
    path = request.path or "/"
    if not path.startswith(PROTECTED_PAGE_PREFIXES):
        return None
    if current_user.is_authenticated:
        return None
    return redirect("/auth/login?" + urlencode({"callbackUrl": request.full_path.rstrip("?")}))
