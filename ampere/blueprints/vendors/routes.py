"""
Vendors API.

- GET    /api/vendors              search + pagination, active vendors only
- POST   /api/vendors              create; assigns the next AE-V-NNN
- GET    /api/vendors/<id>         detail with purchase orders and vendor invoices
- PUT    /api/vendors/<id>         update
- DELETE /api/vendors/<id>         soft delete
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify
from flask_login import current_user

from ...audit import log_action, serialize_model
from ...extensions import db
from ...models import ADMIN, FINANCE, PROJECT_MANAGER, SUPERADMIN, PurchaseOrder, Vendor, VendorInvoice
from ...numbering import next_vendor_number
from ...schemas import VendorIn, VendorUpdate
from ...security import api_login_required, roles_required
from ...utils import apply_updates, column_changes, not_found, paginated, parse_body, search_term

logger = logging.getLogger(__name__)

vendors_bp = Blueprint("vendors", __name__, url_prefix="/api/vendors")

VENDOR_DELETE_ROLES = (SUPERADMIN, ADMIN, PROJECT_MANAGER, FINANCE)


def _active_vendor_or_none(vendor_id: int) -> Vendor | None:
    vendor = Vendor.query.get(vendor_id)
    if vendor is None or not vendor.is_active:
        return None
    return vendor


@vendors_bp.route("", methods=["GET"])
@api_login_required
def list_vendors():
    query = Vendor.query.filter(Vendor.is_active.is_(True))
    term = search_term()
    if term:
        query = query.filter(
            Vendor.name.ilike(term)
            | Vendor.email.ilike(term)
            | Vendor.contact_person.ilike(term)
            | Vendor.vendor_number.ilike(term)
        )
    query = query.order_by(Vendor.created_at.desc(), Vendor.id.desc())
    return jsonify(paginated(query, "vendors"))


@vendors_bp.route("", methods=["POST"])
@api_login_required
def create_vendor():
    data = parse_body(VendorIn)

    vendor = Vendor(**data.model_dump(), created_by_id=current_user.id)
    if vendor.email:
        vendor.email = vendor.email.lower()
    vendor.vendor_number = next_vendor_number()

    db.session.add(vendor)
    db.session.flush()
    log_action(vendor, "CREATE", after=serialize_model(vendor))
    db.session.commit()

    logger.info("Vendor %s created by %s", vendor.vendor_number, current_user.name)
    return jsonify(vendor.to_dict()), 201


@vendors_bp.route("/<int:vendor_id>", methods=["GET"])
@api_login_required
def get_vendor(vendor_id: int):
    vendor = _active_vendor_or_none(vendor_id)
    if vendor is None:
        return not_found("Vendor")

    data = vendor.to_dict()
    data["purchaseOrders"] = [
        po.to_dict()
        for po in PurchaseOrder.query.filter_by(vendor_id=vendor.id)
        .order_by(PurchaseOrder.created_at.desc())
        .all()
    ]
    data["invoices"] = [
        inv.to_dict()
        for inv in VendorInvoice.query.filter_by(vendor_id=vendor.id)
        .order_by(VendorInvoice.invoice_date.desc())
        .all()
    ]
    return jsonify(data)


@vendors_bp.route("/<int:vendor_id>", methods=["PUT"])
@api_login_required
def update_vendor(vendor_id: int):
    vendor = _active_vendor_or_none(vendor_id)
    if vendor is None:
        return not_found("Vendor")

    data = parse_body(VendorUpdate)
    before = serialize_model(vendor)
    changes = column_changes(vendor, data)
    if changes.get("email"):
        changes["email"] = changes["email"].lower()

    if apply_updates(vendor, changes):
        db.session.flush()
        log_action(vendor, "UPDATE", before=before, after=serialize_model(vendor))
    db.session.commit()
    return jsonify(vendor.to_dict())


@vendors_bp.route("/<int:vendor_id>", methods=["DELETE"])
@roles_required(*VENDOR_DELETE_ROLES)
def delete_vendor(vendor_id: int):
    vendor = _active_vendor_or_none(vendor_id)
    if vendor is None:
        return not_found("Vendor")

    before = serialize_model(vendor)
    vendor.is_active = False
    db.session.flush()
    log_action(vendor, "DELETE", before=before, after=serialize_model(vendor))
    db.session.commit()
    return jsonify({"message": "Vendor deleted successfully"})
