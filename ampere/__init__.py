"""
ampere/__init__.py

Flask application factory for Ampere Business Management.

- JSON API under /api/<resource> (one blueprint per resource).
- Server-rendered pages (login, dashboard, completion certificates).
- Two ways to be signed in: the Flask-Login session (primary) and the
  `session-token` JWT cookie (fallback, resolved by the request loader).
- UI is never trusted; every API route enforces its own role allow-list.
"""

from __future__ import annotations

import logging

import click
from flask import Flask, jsonify, redirect, request, url_for
from flask_login import current_user
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from .extensions import csrf, db, login_manager, migrate
from .logging_config import setup_logging
from .models import User
from .security import page_guard
from .session_tokens import user_from_session_token

logger = logging.getLogger(__name__)


def _wants_json() -> bool:
    return request.path.startswith("/api/")


def create_app(config_object: str = "config.Config") -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    setup_logging(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)

    login_manager.init_app(app)
    login_manager.login_view = "auth.login_page"
    login_manager.login_message_category = "info"

    @login_manager.user_loader
    def load_user(user_id: str) -> User | None:
        """Primary session: Flask-Login cookie."""
        try:
            user = User.query.get(int(user_id))
        except (TypeError, ValueError):
            return None
        if user is None or not user.is_active:
            return None
        return user

    @login_manager.request_loader
    def load_user_from_cookie(req) -> User | None:
        """Fallback session: signed JWT in the session-token cookie."""
        return user_from_session_token(req.cookies.get(app.config["SESSION_TOKEN_COOKIE"]))

    @login_manager.unauthorized_handler
    def unauthorized():
        if _wants_json():
            return jsonify({"error": "Unauthorized"}), 401
        return redirect(url_for("auth.login_page", callbackUrl=request.full_path.rstrip("?")))

    # ----------------------------------------------------------------------
    # Page middleware
    # ----------------------------------------------------------------------
    @app.before_request
    def _page_guard_hook():
        return page_guard()

    # ----------------------------------------------------------------------
    # Errors: JSON for the API
    # ----------------------------------------------------------------------
    @app.errorhandler(ValidationError)
    def _validation_error(exc: ValidationError):
        return jsonify({"error": "Invalid input", "details": exc.errors(include_url=False, include_context=False)}), 400

    @app.errorhandler(IntegrityError)
    def _integrity_error(exc: IntegrityError):
        db.session.rollback()
        logger.warning("Integrity error on %s %s: %s", request.method, request.path, exc.orig)
        return jsonify({"error": "Conflicting record, please retry"}), 409

    @app.errorhandler(HTTPException)
    def _http_error(exc: HTTPException):
        if not _wants_json():
            return exc
        return jsonify({"error": exc.description or exc.name}), exc.code

    @app.errorhandler(Exception)
    def _unhandled_error(exc: Exception):
        db.session.rollback()
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return jsonify({"error": "Internal server error"}), 500

    # ----------------------------------------------------------------------
    # Blueprints
    # ----------------------------------------------------------------------
    from .blueprints.auth import auth_bp
    from .blueprints.pages import pages_bp
    from .blueprints.clients import clients_bp
    from .blueprints.vendors import vendors_bp
    from .blueprints.projects import projects_bp
    from .blueprints.quotations import quotations_bp
    from .blueprints.tenders import tenders_bp
    from .blueprints.invoices import invoices_bp
    from .blueprints.finance import finance_bp
    from .blueprints.servicing import servicing_bp
    from .blueprints.tasks import tasks_bp
    from .blueprints.users import users_bp
    from .blueprints.xero import xero_bp
    from .blueprints.admin import admin_bp

    for bp in (
        auth_bp,
        pages_bp,
        clients_bp,
        vendors_bp,
        projects_bp,
        quotations_bp,
        tenders_bp,
        invoices_bp,
        finance_bp,
        servicing_bp,
        tasks_bp,
        users_bp,
        xero_bp,
        admin_bp,
    ):
        app.register_blueprint(bp)

    @app.context_processor
    def inject_globals():
        return {"config": app.config, "current_user": current_user}

    # ----------------------------------------------------------------------
    # CLI
    # ----------------------------------------------------------------------
    @app.cli.command("create-superadmin")
    @click.option("--name", required=True)
    @click.option("--email", required=True)
    @click.option("--password", required=True, prompt=True, hide_input=True)
    def create_superadmin_command(name: str, email: str, password: str):
        """Create (or re-activate) a SUPERADMIN account."""
        from .seed import ensure_superadmin

        user, created = ensure_superadmin(name, email, password)
        click.echo(f"{'Created' if created else 'Updated'} superadmin {user.name} <{user.email}>.")

    @app.cli.command("backfill-numbers")
    def backfill_numbers_command():
        """Assign AE-C / AE-V numbers to clients and vendors without one."""
        from .numbering import backfill_master_numbers

        assigned = backfill_master_numbers()
        db.session.commit()
        click.echo(f"Assigned {assigned['clients']} client and {assigned['vendors']} vendor numbers.")

    return app
