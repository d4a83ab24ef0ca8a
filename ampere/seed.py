"""
ampere/seed.py

Bootstrap data.

Rules:
- Safe to run multiple times (idempotent).
- The first SUPERADMIN cannot be created through the API (user creation
  itself requires SUPERADMIN), so it is created from the CLI.
"""

from __future__ import annotations

from flask import current_app

from .extensions import db
from .models import SUPERADMIN, User


def ensure_superadmin(name: str, email: str, password: str) -> tuple[User, bool]:
    """
    Create a SUPERADMIN, or promote/re-activate the user matching name or email.

    Returns (user, created).
    """
    name = name.strip()
    email = email.strip().lower()

    user = User.query.filter((User.email == email) | (User.name == name)).first()
    created = user is None
    if created:
        user = User(
            name=name,
            email=email,
            company_name=current_app.config.get("COMPANY_NAME"),
        )
        db.session.add(user)

    user.role = SUPERADMIN
    user.is_active = True
    user.set_password(password)
    db.session.commit()
    return user, created
