"""
User management.

Rules enforced:
- SUPERADMIN: list, create, view, full update (PUT), deactivate (DELETE).
- Everyone: PATCH on their own account (profile + password, no role or
  active flag change).
- DELETE deactivates; a SUPERADMIN cannot deactivate themselves.

Audit:
- CREATE / UPDATE / DEACTIVATE logged
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user
from sqlalchemy import func

from ...audit import log_action, serialize_model
from ...extensions import db
from ...models import SUPERADMIN, User
from ...schemas import UserCreate, UserUpdate
from ...security import forbidden, api_login_required, is_superadmin, roles_required
from ...utils import apply_updates, bad_request, column_changes, not_found, paginated, parse_body, search_term

logger = logging.getLogger(__name__)

users_bp = Blueprint("users", __name__, url_prefix="/api/users")

SELF_SERVICE_FIELDS = {"name", "email", "first_name", "last_name", "company_name"}


def _conflict(user_id: int | None, name: str | None, email: str | None):
    """400 response when name/email is taken by another user."""
    if email:
        other = User.query.filter(func.lower(User.email) == email.lower()).first()
        if other and other.id != user_id:
            return bad_request("User with this email already exists")
    if name:
        other = User.query.filter_by(name=name).first()
        if other and other.id != user_id:
            return bad_request("Username already taken")
    return None


def _apply_user_update(user: User, data: UserUpdate, allowed_fields: set[str] | None):
    changes = column_changes(user, data)
    if allowed_fields is not None:
        changes = {k: v for k, v in changes.items() if k in allowed_fields}
    if changes.get("email"):
        changes["email"] = changes["email"].lower()

    conflict = _conflict(user.id, changes.get("name"), changes.get("email"))
    if conflict is not None:
        return conflict

    before = serialize_model(user)
    apply_updates(user, changes)
    if data.password:
        user.set_password(data.password)
    db.session.flush()
    log_action(user, "UPDATE", before=before, after=serialize_model(user))
    db.session.commit()
    return jsonify(user.to_dict())


@users_bp.route("", methods=["GET"])
@roles_required(SUPERADMIN)
def list_users():
    query = User.query
    term = search_term()
    if term:
        query = query.filter(
            User.name.ilike(term)
            | User.email.ilike(term)
            | User.first_name.ilike(term)
            | User.last_name.ilike(term)
        )
    role = (request.args.get("role") or "").strip()
    if role:
        query = query.filter(User.role == role)
    if request.args.get("active") in ("1", "true"):
        query = query.filter(User.is_active.is_(True))

    query = query.order_by(User.created_at.desc(), User.id.desc())
    return jsonify(paginated(query, "users"))


@users_bp.route("", methods=["POST"])
@roles_required(SUPERADMIN)
def create_user():
    data = parse_body(UserCreate)

    email = str(data.email).lower()
    conflict = _conflict(None, data.name, email)
    if conflict is not None:
        return conflict

    user = User(
        name=data.name,
        email=email,
        first_name=data.first_name,
        last_name=data.last_name,
        role=data.role,
        company_name=data.company_name,
        is_active=data.is_active,
    )
    user.set_password(data.password)
    db.session.add(user)
    db.session.flush()
    log_action(user, "CREATE", after=serialize_model(user))
    db.session.commit()

    logger.info("User %s (%s) created by %s", user.name, user.role, current_user.name)
    return jsonify(user.to_dict()), 201


@users_bp.route("/<int:user_id>", methods=["GET"])
@api_login_required
def get_user(user_id: int):
    if not is_superadmin() and current_user.id != user_id:
        return forbidden()
    user = User.query.get(user_id)
    if user is None:
        return not_found("User")
    return jsonify(user.to_dict())


@users_bp.route("/<int:user_id>", methods=["PUT"])
@roles_required(SUPERADMIN)
def update_user(user_id: int):
    user = User.query.get(user_id)
    if user is None:
        return not_found("User")

    data = parse_body(UserUpdate)
    if user.id == current_user.id and data.is_active is False:
        return bad_request("You cannot deactivate your own account")
    return _apply_user_update(user, data, allowed_fields=None)


@users_bp.route("/<int:user_id>", methods=["PATCH"])
@api_login_required
def patch_user(user_id: int):
    if not is_superadmin() and current_user.id != user_id:
        return forbidden()
    user = User.query.get(user_id)
    if user is None:
        return not_found("User")

    data = parse_body(UserUpdate)
    allowed = None if is_superadmin() else SELF_SERVICE_FIELDS
    if allowed is not None and (data.role is not None or data.is_active is not None):
        return forbidden("You cannot change your own role or status")
    if user.id == current_user.id and data.is_active is False:
        return bad_request("You cannot deactivate your own account")
    return _apply_user_update(user, data, allowed_fields=allowed)


@users_bp.route("/<int:user_id>", methods=["DELETE"])
@roles_required(SUPERADMIN)
def deactivate_user(user_id: int):
    if user_id == current_user.id:
        return bad_request("You cannot delete your own account")
    user = User.query.get(user_id)
    if user is None:
        return not_found("User")

    before = serialize_model(user)
    user.is_active = False
    db.session.flush()
    log_action(user, "DEACTIVATE", before=before, after=serialize_model(user))
    db.session.commit()

    logger.info("User %s deactivated by %s", user.name, current_user.name)
    return jsonify({"message": "User deactivated successfully"})
