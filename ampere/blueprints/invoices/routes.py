"""
Legacy invoices API (pre-finance-module invoices).

- GET    /api/invoices             search/status/client/project filters + pagination
- POST   /api/invoices             create; INV-YYYY-NNNN
- GET    /api/invoices/<id>        detail with items
- PUT    /api/invoices/<id>        update (items replaced when sent)
- DELETE /api/invoices/<id>        delete

Totals: subtotal = sum(quantity * unit_price); total = subtotal + tax - discount.
"""

from __future__ import annotations

import logging
from datetime import datetime

from flask import Blueprint, jsonify, request
from flask_login import current_user

from ...audit import log_action, serialize_model
from ...extensions import db
from ...models import ADMIN, FINANCE, PROJECT_MANAGER, SUPERADMIN, Client, LegacyInvoice, LegacyInvoiceItem, Project
from ...numbering import next_legacy_invoice_number
from ...schemas import LegacyInvoiceIn, LegacyInvoiceUpdate
from ...security import api_login_required, roles_required
from ...utils import (
    parse_optional_int,
    apply_updates,
    column_changes,
    not_found,
    paginated,
    parse_body,
    search_term,
)

logger = logging.getLogger(__name__)

invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")

INVOICE_WRITE_ROLES = (SUPERADMIN, ADMIN, PROJECT_MANAGER, FINANCE)


def _build_items(items) -> list[LegacyInvoiceItem]:
    return [
        LegacyInvoiceItem(
            description=item.description,
            quantity=item.quantity,
            unit=item.unit,
            unit_price=item.unit_price,
            order=index,
        )
        for index, item in enumerate(items)
    ]


@invoices_bp.route("", methods=["GET"])
@api_login_required
def list_invoices():
    query = LegacyInvoice.query
    term = search_term()
    if term:
        query = query.filter(
            LegacyInvoice.invoice_number.ilike(term) | LegacyInvoice.description.ilike(term)
        )
    status = (request.args.get("status") or "").strip()
    if status:
        query = query.filter(LegacyInvoice.status == status)
    client_id = parse_optional_int(request.args.get("clientId"))
    if client_id:
        query = query.filter(LegacyInvoice.client_id == client_id)
    project_id = parse_optional_int(request.args.get("projectId"))
    if project_id:
        query = query.filter(LegacyInvoice.project_id == project_id)

    query = query.order_by(LegacyInvoice.created_at.desc(), LegacyInvoice.id.desc())
    return jsonify(paginated(query, "invoices"))


@invoices_bp.route("", methods=["POST"])
@roles_required(*INVOICE_WRITE_ROLES)
def create_invoice():
    data = parse_body(LegacyInvoiceIn)

    client = Client.query.get(data.client_id)
    if client is None or not client.is_active:
        return not_found("Client")
    if data.project_id is not None and Project.query.get(data.project_id) is None:
        return not_found("Project")

    invoice = LegacyInvoice(
        invoice_number=next_legacy_invoice_number(),
        description=data.description,
        client_id=client.id,
        project_id=data.project_id,
        tax_amount=data.tax_amount,
        discount_amount=data.discount_amount,
        status=data.status,
        issue_date=data.issue_date or datetime.utcnow().date(),
        due_date=data.due_date,
        terms=data.terms,
        notes=data.notes,
        created_by_id=current_user.id,
    )
    invoice.items = _build_items(data.items)
    invoice.recalc_totals()

    db.session.add(invoice)
    db.session.flush()
    log_action(invoice, "CREATE", after=serialize_model(invoice))
    db.session.commit()

    logger.info("Invoice %s created by %s", invoice.invoice_number, current_user.name)
    return jsonify(invoice.to_dict(detail=True)), 201


@invoices_bp.route("/<int:invoice_id>", methods=["GET"])
@api_login_required
def get_invoice(invoice_id: int):
    invoice = LegacyInvoice.query.get(invoice_id)
    if invoice is None:
        return not_found("Invoice")
    return jsonify(invoice.to_dict(detail=True))


@invoices_bp.route("/<int:invoice_id>", methods=["PUT"])
@roles_required(*INVOICE_WRITE_ROLES)
def update_invoice(invoice_id: int):
    invoice = LegacyInvoice.query.get(invoice_id)
    if invoice is None:
        return not_found("Invoice")

    data = parse_body(LegacyInvoiceUpdate)
    before = serialize_model(invoice)

    changes = column_changes(invoice, data)
    if changes.get("status") == "PAID" and not invoice.paid_date and "paid_date" not in changes:
        changes["paid_date"] = datetime.utcnow().date()
    apply_updates(invoice, changes)
    if data.items is not None:
        invoice.items = _build_items(data.items)
    invoice.recalc_totals()

    db.session.flush()
    log_action(invoice, "UPDATE", before=before, after=serialize_model(invoice))
    db.session.commit()
    return jsonify(invoice.to_dict(detail=True))


@invoices_bp.route("/<int:invoice_id>", methods=["DELETE"])
@roles_required(SUPERADMIN, FINANCE)
def delete_invoice(invoice_id: int):
    invoice = LegacyInvoice.query.get(invoice_id)
    if invoice is None:
        return not_found("Invoice")

    log_action(invoice, "DELETE", before=serialize_model(invoice))
    db.session.delete(invoice)
    db.session.commit()
    return jsonify({"message": "Invoice deleted successfully"})
