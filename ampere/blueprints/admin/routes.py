"""
ampere/blueprints/admin/routes.py

Administration endpoints (SUPERADMIN only).

- POST /api/admin/backfill-numbers    assign AE-C / AE-V numbers to records without one
- GET  /api/admin/audit-logs          recent audit entries (?entityType=, ?entityId=)
"""

from __future__ import annotations

import json
import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user

from ...extensions import db
from ...models import SUPERADMIN, AuditLog
from ...numbering import backfill_master_numbers
from ...security import roles_required
from ...utils import parse_optional_int, paginated

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _audit_row(entry: AuditLog) -> dict:
    return {
        "id": entry.id,
        "userId": entry.user_id,
        "userEmail": entry.user_email_snapshot,
        "entityType": entry.entity_type,
        "entityId": entry.entity_id,
        "action": entry.action,
        "before": json.loads(entry.before_data) if entry.before_data else None,
        "after": json.loads(entry.after_data) if entry.after_data else None,
        "ipAddress": entry.ip_address,
        "createdAt": entry.created_at.isoformat() if entry.created_at else None,
    }


@admin_bp.route("/backfill-numbers", methods=["POST"])
@roles_required(SUPERADMIN)
def backfill_numbers():
    assigned = backfill_master_numbers()
    db.session.commit()
    logger.info(
        "Backfill by %s: %d clients, %d vendors",
        current_user.name,
        assigned["clients"],
        assigned["vendors"],
    )
    return jsonify({"success": True, "assigned": assigned})


@admin_bp.route("/audit-logs", methods=["GET"])
@roles_required(SUPERADMIN)
def audit_logs():
    query = AuditLog.query
    entity_type = (request.args.get("entityType") or "").strip()
    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)
    entity_id = parse_optional_int(request.args.get("entityId"))
    if entity_id:
        query = query.filter(AuditLog.entity_id == entity_id)

    query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    return jsonify(paginated(query, "logs", _audit_row))
