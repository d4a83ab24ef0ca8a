"""
ampere/audit.py

Audit and activity-trail helpers.

- log_action(): generic AuditLog row with BEFORE/AFTER snapshots
  (users, clients, vendors, projects, contracts).
- log_quotation_activity() / log_purchase_order_activity(): the per-document
  trail shown on quotation and PO detail pages.

IMPORTANT:
- These helpers ADD rows to the current SQLAlchemy session.
  The calling route controls transaction boundaries (commit/rollback).
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from flask import has_request_context, request
from flask_login import current_user

from .extensions import db
from .models import AuditLog, PurchaseOrderActivity, QuotationActivity


def _safe_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def serialize_model(instance: Any) -> Dict[str, Optional[str]]:
    """
    Snapshot a SQLAlchemy model instance based on its table columns.

    Only scalar columns are captured; secrets are never included.
    """
    data: Dict[str, Optional[str]] = {}
    for column in instance.__table__.columns:
        if column.name in {"password_hash", "access_token", "refresh_token"}:
            continue
        data[column.name] = _safe_str(getattr(instance, column.name))
    return data


def _actor():
    if has_request_context() and current_user.is_authenticated:
        return current_user
    return None


def log_action(
    entity: Any,
    action: str,
    *,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Add an AuditLog entry for `entity` (must be flushed so it has an id).

    action: CREATE / UPDATE / DELETE / DEACTIVATE / SYNC
    """
    entity_id = getattr(entity, "id", None)
    if entity_id is None:
        raise ValueError("log_action entity must have an 'id' attribute (after flush).")

    actor = _actor()
    entry = AuditLog(
        user_id=actor.id if actor else None,
        user_email_snapshot=actor.email if actor else None,
        entity_type=entity.__class__.__name__,
        entity_id=int(entity_id),
        action=str(action),
        before_data=json.dumps(before, ensure_ascii=False) if before else None,
        after_data=json.dumps(after, ensure_ascii=False) if after else None,
        ip_address=request.remote_addr if has_request_context() else None,
    )
    db.session.add(entry)


def log_quotation_activity(
    quotation,
    action: str,
    description: str,
    *,
    old_value: Optional[str] = None,
    new_value: Optional[str] = None,
) -> QuotationActivity:
    actor = _actor()
    activity = QuotationActivity(
        quotation=quotation,
        action=action,
        description=description,
        old_value=old_value,
        new_value=new_value,
        user_id=actor.id if actor else None,
        user_email=actor.email if actor else None,
    )
    db.session.add(activity)
    return activity


def log_purchase_order_activity(
    purchase_order,
    action: str,
    description: str,
    *,
    old_value: Optional[str] = None,
    new_value: Optional[str] = None,
) -> PurchaseOrderActivity:
    actor = _actor()
    activity = PurchaseOrderActivity(
        purchase_order=purchase_order,
        action=action,
        description=description,
        old_value=old_value,
        new_value=new_value,
        user_id=actor.id if actor else None,
        user_email=actor.email if actor else None,
    )
    db.session.add(activity)
    return activity
