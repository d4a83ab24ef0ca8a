"""
Authentication routes.

Pages:
- /auth/login (GET form, POST form login -> Flask-Login session)
- /auth/logout

API:
- POST /api/auth/login      primary session (Flask-Login cookie)
- POST /api/custom-login    fallback session (session-token JWT cookie)
- POST /api/auth/logout     clears both
- GET  /api/auth/session    current user
- GET  /api/auth/csrf-token token for the X-CSRFToken header
- POST /api/signup          self-registration

Rules:
- Login accepts the user name or the email address.
- Inactive users cannot log in (401).
- Successful logins stamp last_login_at.
"""

from __future__ import annotations

import logging
from datetime import datetime
from urllib.parse import urlparse

from flask import (
    Blueprint,
    current_app,
    flash,
    jsonify,
    make_response,
    redirect,
    render_template,
    request,
    url_for,
)
from flask_login import current_user, login_user, logout_user
from flask_wtf.csrf import generate_csrf
from sqlalchemy import func

from ...extensions import db
from ...models import User
from ...schemas import LoginIn, SignupIn
from ...session_tokens import issue_session_token
from ...utils import parse_body

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__)


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _safe_next_url(value: str | None, default: str) -> str:
    """Only allow relative in-app paths as redirect targets."""
    if not value:
        return default
    parsed = urlparse(value)
    if parsed.scheme or parsed.netloc or not value.startswith("/") or value.startswith("//"):
        return default
    return value


def _find_user(identifier: str) -> User | None:
    if not identifier:
        return None
    return User.query.filter(
        (User.name == identifier) | (func.lower(User.email) == identifier.lower())
    ).first()


def _authenticate(identifier: str, password: str) -> tuple[User | None, str | None]:
    """Return (user, None) on success, (None, reason) otherwise."""
    user = _find_user(identifier)
    if not user or not user.check_password(password):
        return None, "Invalid credentials"
    if not user.is_active:
        return None, "Account is inactive"
    user.last_login_at = datetime.utcnow()
    db.session.commit()
    return user, None


# ---------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------
@auth_bp.route("/auth/login", methods=["GET", "POST"])
def login_page():
    callback_url = _safe_next_url(request.args.get("callbackUrl"), url_for("pages.dashboard"))

    if current_user.is_authenticated:
        return redirect(callback_url)

    if request.method == "POST":
        user, error = _authenticate(
            (request.form.get("username") or "").strip(),
            request.form.get("password") or "",
        )
        if error:
            flash(error, "danger")
            return render_template("auth/login.html", callback_url=callback_url), 401

        login_user(user)
        logger.info("User %s signed in (form)", user.name)
        return redirect(callback_url)

    return render_template("auth/login.html", callback_url=callback_url)


@auth_bp.route("/auth/logout", methods=["POST"])
def logout_page():
    logout_user()
    response = redirect(url_for("auth.login_page"))
    response.delete_cookie(current_app.config["SESSION_TOKEN_COOKIE"])
    response.delete_cookie("auth-method")
    return response


# ---------------------------------------------------------------------
# API
# ---------------------------------------------------------------------
@auth_bp.route("/api/auth/login", methods=["POST"])
def api_login():
    data = parse_body(LoginIn)
    user, error = _authenticate(data.identifier, data.password)
    if error:
        return jsonify({"error": error}), 401

    login_user(user)
    logger.info("User %s signed in", user.name)
    return jsonify({"success": True, "user": user.to_dict()})


@auth_bp.route("/api/custom-login", methods=["POST"])
def custom_login():
    """Sign in and hand out the session-token cookie instead of a Flask session."""
    data = parse_body(LoginIn)
    user, error = _authenticate(data.identifier, data.password)
    if error:
        return jsonify({"error": error}), 401

    token = issue_session_token(user)
    max_age = current_app.config["SESSION_TOKEN_TTL_HOURS"] * 3600
    secure = not (current_app.debug or current_app.testing)

    response = make_response(jsonify({"success": True, "user": user.to_dict()}))
    response.set_cookie(
        current_app.config["SESSION_TOKEN_COOKIE"],
        token,
        max_age=max_age,
        httponly=True,
        secure=secure,
        samesite="Lax",
        path="/",
    )
    response.set_cookie("auth-method", "custom", max_age=max_age, secure=secure, samesite="Lax", path="/")
    logger.info("User %s signed in (session token)", user.name)
    return response


@auth_bp.route("/api/auth/logout", methods=["POST"])
def api_logout():
    logout_user()
    response = make_response(jsonify({"success": True}))
    response.delete_cookie(current_app.config["SESSION_TOKEN_COOKIE"], path="/")
    response.delete_cookie("auth-method", path="/")
    return response


@auth_bp.route("/api/auth/session", methods=["GET"])
def api_session():
    if not current_user.is_authenticated:
        return jsonify({"user": None})
    return jsonify({"user": current_user.to_dict()})


@auth_bp.route("/api/auth/csrf-token", methods=["GET"])
def api_csrf_token():
    return jsonify({"csrfToken": generate_csrf()})


@auth_bp.route("/api/signup", methods=["POST"])
def signup():
    data = parse_body(SignupIn)

    email = str(data.email).lower()
    if User.query.filter(func.lower(User.email) == email).first():
        return jsonify({"error": "User with this email already exists"}), 400
    if User.query.filter_by(name=data.name).first():
        return jsonify({"error": "Username already taken"}), 400

    user = User(
        name=data.name,
        email=email,
        first_name=data.first_name,
        last_name=data.last_name,
        role=data.role,
        company_name=data.company_name or current_app.config["COMPANY_NAME"],
        is_active=True,
    )
    user.set_password(data.password)
    db.session.add(user)
    db.session.commit()

    logger.info("New account %s (%s)", user.name, user.role)
    return jsonify({"message": "User created successfully", "user": user.to_dict()}), 201
