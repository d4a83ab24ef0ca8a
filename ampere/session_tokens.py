"""
Fallback session: a signed JWT carried in the `session-token` cookie.

Used by clients that cannot keep the primary Flask-Login session. The token
is HS256-signed with SECRET_KEY and expires after SESSION_TOKEN_TTL_HOURS.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from .models import User

logger = logging.getLogger(__name__)


def issue_session_token(user: User) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "companyName": user.company_name,
        "iat": now,
        "exp": now + timedelta(hours=current_app.config["SESSION_TOKEN_TTL_HOURS"]),
    }
    return jwt.encode(
        payload,
        current_app.config["SECRET_KEY"],
        algorithm=current_app.config["SESSION_TOKEN_ALGORITHM"],
    )


def decode_session_token(token: str) -> dict | None:
    """Payload of a valid token, None when expired or tampered."""
    try:
        return jwt.decode(
            token,
            current_app.config["SECRET_KEY"],
            algorithms=[current_app.config["SESSION_TOKEN_ALGORITHM"]],
        )
    except jwt.ExpiredSignatureError:
        logger.info("Expired session token rejected")
    except jwt.InvalidTokenError as exc:
        logger.warning("Invalid session token rejected: %s", exc)
    return None


def user_from_session_token(token: str | None) -> User | None:
    """Active user named by the token, if any."""
    if not token:
        return None
    payload = decode_session_token(token)
    if not payload or "id" not in payload:
        return None
    user = User.query.get(payload["id"])
    if user is None or not user.is_active:
        return None
    return user
