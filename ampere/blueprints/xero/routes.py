"""
Xero integration routes (SUPERADMIN, FINANCE).

- GET  /api/xero/auth        consent URL; OAuth state kept in the session
- GET  /api/xero/callback    Xero redirects here; exchanges the code
- GET  /api/xero/status      connection details (never the tokens)
- POST /api/xero/sync        run a sync (syncType, direction)
- GET  /api/xero/sync        last sync outcome
- GET  /api/xero/test        fetch the organisation as a connectivity check
"""

from __future__ import annotations

import json
import logging

from flask import Blueprint, jsonify, redirect, request, session, url_for
from flask_login import current_user

from ...extensions import db
from ...models import FINANCE, SUPERADMIN
from ...schemas import XeroSyncIn
from ...security import roles_required
from ...utils import bad_request, parse_body
from ...xero import XeroError, XeroNotConnected, XeroService, active_integration, authorization_url, complete_authorization

logger = logging.getLogger(__name__)

xero_bp = Blueprint("xero", __name__, url_prefix="/api/xero")

XERO_ROLES = (SUPERADMIN, FINANCE)
STATE_SESSION_KEY = "xero_oauth_state"


def _xero_failure(exc: XeroError):
    if isinstance(exc, XeroNotConnected):
        return bad_request(str(exc))
    return jsonify({"error": str(exc)}), 502


@xero_bp.route("/auth", methods=["GET"])
@roles_required(*XERO_ROLES)
def start_auth():
    url, state = authorization_url()
    session[STATE_SESSION_KEY] = state
    return jsonify({"authUrl": url})


@xero_bp.route("/callback", methods=["GET"])
@roles_required(*XERO_ROLES)
def callback():
    dashboard = url_for("pages.dashboard")
    if request.args.get("error"):
        logger.warning("Xero authorisation denied: %s", request.args.get("error"))
        return redirect(f"{dashboard}?xero=denied")

    expected_state = session.pop(STATE_SESSION_KEY, None)
    code = request.args.get("code")
    if not code or not expected_state or request.args.get("state") != expected_state:
        return bad_request("Invalid OAuth callback")

    try:
        complete_authorization(code, expected_state, current_user)
    except XeroError:
        db.session.rollback()
        return redirect(f"{dashboard}?xero=error")
    db.session.commit()
    return redirect(f"{dashboard}?xero=connected")


@xero_bp.route("/status", methods=["GET"])
@roles_required(*XERO_ROLES)
def status():
    integration = active_integration()
    if integration is None:
        return jsonify({"connected": False})
    return jsonify({
        "connected": True,
        "tenantId": integration.tenant_id,
        "tenantName": integration.tenant_name,
        "expiresAt": integration.expires_at.isoformat(),
        "connectedAt": integration.created_at.isoformat() if integration.created_at else None,
        "lastSyncAt": integration.last_sync_at.isoformat() if integration.last_sync_at else None,
    })


@xero_bp.route("/sync", methods=["POST"])
@roles_required(*XERO_ROLES)
def run_sync():
    data = parse_body(XeroSyncIn)
    try:
        result = XeroService.connected().sync(data.sync_type, data.direction)
    except XeroError as exc:
        db.session.rollback()
        return _xero_failure(exc)
    return jsonify({"success": True, "syncType": data.sync_type, "direction": data.direction, "result": result})


@xero_bp.route("/sync", methods=["GET"])
@roles_required(*XERO_ROLES)
def last_sync():
    integration = active_integration()
    if integration is None:
        return bad_request("Xero is not connected")
    return jsonify({
        "lastSyncAt": integration.last_sync_at.isoformat() if integration.last_sync_at else None,
        "lastSyncType": integration.last_sync_type,
        "result": json.loads(integration.last_sync_result) if integration.last_sync_result else None,
    })


@xero_bp.route("/test", methods=["GET"])
@roles_required(*XERO_ROLES)
def test_connection():
    try:
        service = XeroService.connected()
        organisation = service.test_connection()
    except XeroError as exc:
        return _xero_failure(exc)
    # Token may have been refreshed
    db.session.commit()
    return jsonify({"success": True, "organisation": organisation})
