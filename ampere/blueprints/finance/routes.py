"""
Finance API.

Purchase orders:
- GET  /api/finance/purchase-orders         SUPERADMIN, FINANCE
- POST /api/finance/purchase-orders         SUPERADMIN, PROJECT_MANAGER
- GET  /api/finance/purchase-orders/<id>    finance roles + the requester

Vendor invoices:
- GET  /api/finance/vendor-invoices         SUPERADMIN, FINANCE
- POST /api/finance/vendor-invoices         SUPERADMIN, FINANCE

Payments:
- GET  /api/finance/payments                SUPERADMIN, FINANCE
- POST /api/finance/payments                SUPERADMIN, FINANCE, PROJECT_MANAGER

Client invoices:
- GET  /api/finance/client-invoices         SUPERADMIN, FINANCE

NOTES:
- Lists carry isOverdue / daysPastDue (PO: delivery date, invoices: due date).
- A payment against an invoice raises its amount_paid; the invoice is PAID
  once nothing is outstanding, PARTIALLY_PAID before that.
"""

from __future__ import annotations

import logging
from datetime import datetime

from flask import Blueprint, jsonify, request
from flask_login import current_user

from ...audit import log_action, log_purchase_order_activity, serialize_model
from ...extensions import db
from ...models import (
    FINANCE,
    PROJECT_MANAGER,
    SUPERADMIN,
    ClientInvoice,
    Payment,
    Project,
    PurchaseOrder,
    PurchaseOrderItem,
    Vendor,
    VendorInvoice,
    money,
    to_decimal,
)
from ...numbering import next_payment_number, next_purchase_order_number, next_vendor_invoice_number
from ...pricing import apply_document_totals, build_lines
from ...schemas import PaymentIn, PurchaseOrderIn, VendorInvoiceIn
from ...security import FINANCE_VIEW_ROLES, forbidden, has_role, roles_required
from ...utils import parse_optional_int, not_found, paginated, parse_body, search_term

logger = logging.getLogger(__name__)

finance_bp = Blueprint("finance", __name__, url_prefix="/api/finance")

PO_CREATE_ROLES = (SUPERADMIN, PROJECT_MANAGER)
VENDOR_INVOICE_CREATE_ROLES = (SUPERADMIN, FINANCE)
PAYMENT_CREATE_ROLES = (SUPERADMIN, FINANCE, PROJECT_MANAGER)


def _active_vendor_or_none(vendor_id: int) -> Vendor | None:
    vendor = Vendor.query.get(vendor_id)
    if vendor is None or not vendor.is_active:
        return None
    return vendor


# ---------------------------------------------------------------------
# Purchase orders
# ---------------------------------------------------------------------
@finance_bp.route("/purchase-orders", methods=["GET"])
@roles_required(*FINANCE_VIEW_ROLES)
def list_purchase_orders():
    query = PurchaseOrder.query
    term = search_term()
    if term:
        query = query.filter(PurchaseOrder.po_number.ilike(term) | PurchaseOrder.notes.ilike(term))
    status = (request.args.get("status") or "").strip()
    if status:
        query = query.filter(PurchaseOrder.status == status)
    vendor_id = parse_optional_int(request.args.get("vendorId"))
    if vendor_id:
        query = query.filter(PurchaseOrder.vendor_id == vendor_id)

    query = query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
    return jsonify(paginated(query, "purchaseOrders"))


@finance_bp.route("/purchase-orders", methods=["POST"])
@roles_required(*PO_CREATE_ROLES)
def create_purchase_order():
    data = parse_body(PurchaseOrderIn)

    vendor = _active_vendor_or_none(data.vendor_id)
    if vendor is None:
        return not_found("Vendor")
    if data.project_id is not None and Project.query.get(data.project_id) is None:
        return not_found("Project")

    po = PurchaseOrder(
        po_number=next_purchase_order_number(data.vendor_code),
        vendor_id=vendor.id,
        project_id=data.project_id,
        currency=data.currency.upper(),
        delivery_date=data.delivery_date,
        delivery_address=data.delivery_address,
        terms=data.terms,
        notes=data.notes,
        status="DRAFT",
        requested_by_id=current_user.id,
        created_by_id=current_user.id,
    )
    lines = build_lines(PurchaseOrderItem, data.items)
    po.items = lines
    apply_document_totals(po, lines, data.discount_amount)

    db.session.add(po)
    log_purchase_order_activity(
        po,
        "CREATED",
        f"Purchase order {po.po_number} created for {vendor.name}",
        new_value="DRAFT",
    )
    db.session.commit()

    logger.info("Purchase order %s created by %s", po.po_number, current_user.name)
    return jsonify(po.to_dict()), 201


@finance_bp.route("/purchase-orders/<int:po_id>", methods=["GET"])
@roles_required(*FINANCE_VIEW_ROLES, PROJECT_MANAGER)
def get_purchase_order(po_id: int):
    po = PurchaseOrder.query.get(po_id)
    if po is None:
        return not_found("Purchase order")
    if not has_role(*FINANCE_VIEW_ROLES) and po.requested_by_id != current_user.id:
        return forbidden()

    data = po.to_dict()
    data["activities"] = [
        {
            "action": a.action,
            "description": a.description,
            "oldValue": a.old_value,
            "newValue": a.new_value,
            "userEmail": a.user_email,
            "createdAt": a.created_at.isoformat() if a.created_at else None,
        }
        for a in sorted(po.activities, key=lambda a: a.created_at or datetime.min, reverse=True)
    ]
    return jsonify(data)


# ---------------------------------------------------------------------
# Vendor invoices
# ---------------------------------------------------------------------
@finance_bp.route("/vendor-invoices", methods=["GET"])
@roles_required(*FINANCE_VIEW_ROLES)
def list_vendor_invoices():
    query = VendorInvoice.query
    term = search_term()
    if term:
        query = query.filter(
            VendorInvoice.invoice_number.ilike(term)
            | VendorInvoice.supplier_invoice_ref.ilike(term)
            | VendorInvoice.description.ilike(term)
        )
    status = (request.args.get("status") or "").strip()
    if status:
        query = query.filter(VendorInvoice.status == status)
    vendor_id = parse_optional_int(request.args.get("vendorId"))
    if vendor_id:
        query = query.filter(VendorInvoice.vendor_id == vendor_id)

    query = query.order_by(VendorInvoice.created_at.desc(), VendorInvoice.id.desc())
    return jsonify(paginated(query, "vendorInvoices"))


@finance_bp.route("/vendor-invoices", methods=["POST"])
@roles_required(*VENDOR_INVOICE_CREATE_ROLES)
def create_vendor_invoice():
    data = parse_body(VendorInvoiceIn)

    vendor = _active_vendor_or_none(data.vendor_id)
    if vendor is None:
        return not_found("Vendor")
    if data.purchase_order_id is not None:
        po = PurchaseOrder.query.get(data.purchase_order_id)
        if po is None:
            return not_found("Purchase order")
        if po.vendor_id != vendor.id:
            return jsonify({"error": "Purchase order belongs to a different vendor"}), 400

    today = datetime.utcnow().date()
    invoice = VendorInvoice(
        invoice_number=next_vendor_invoice_number(),
        supplier_invoice_ref=data.supplier_invoice_ref,
        vendor_id=vendor.id,
        project_id=data.project_id,
        purchase_order_id=data.purchase_order_id,
        subtotal=money(to_decimal(data.subtotal)),
        tax_amount=money(to_decimal(data.tax_amount)),
        total_amount=money(to_decimal(data.subtotal) + to_decimal(data.tax_amount)),
        currency=data.currency.upper(),
        invoice_date=data.invoice_date or today,
        due_date=data.due_date,
        received_date=data.received_date or today,
        description=data.description,
        notes=data.notes,
        status="PENDING",
        created_by_id=current_user.id,
    )
    db.session.add(invoice)
    db.session.flush()
    log_action(invoice, "CREATE", after=serialize_model(invoice))
    db.session.commit()

    logger.info("Vendor invoice %s recorded by %s", invoice.invoice_number, current_user.name)
    return jsonify(invoice.to_dict()), 201


# ---------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------
@finance_bp.route("/payments", methods=["GET"])
@roles_required(*FINANCE_VIEW_ROLES)
def list_payments():
    query = Payment.query
    term = search_term()
    if term:
        query = query.filter(Payment.payment_number.ilike(term) | Payment.reference.ilike(term))
    status = (request.args.get("status") or "").strip()
    if status:
        query = query.filter(Payment.status == status)

    query = query.order_by(Payment.created_at.desc(), Payment.id.desc())
    return jsonify(paginated(query, "payments"))


def _settle(invoice, amount, paid_on) -> None:
    """Apply a payment to a vendor or client invoice."""
    invoice.amount_paid = money(to_decimal(invoice.amount_paid) + to_decimal(amount))
    outstanding = money(to_decimal(invoice.total_amount) - to_decimal(invoice.amount_paid))
    if isinstance(invoice, ClientInvoice):
        invoice.amount_due = max(outstanding, money(to_decimal(0)))
    if outstanding <= 0:
        invoice.status = "PAID"
        invoice.paid_date = paid_on
    else:
        invoice.status = "PARTIALLY_PAID"


@finance_bp.route("/payments", methods=["POST"])
@roles_required(*PAYMENT_CREATE_ROLES)
def create_payment():
    data = parse_body(PaymentIn)

    vendor_invoice = client_invoice = None
    if data.vendor_invoice_id is not None:
        vendor_invoice = VendorInvoice.query.get(data.vendor_invoice_id)
        if vendor_invoice is None:
            return not_found("Vendor invoice")
    if data.client_invoice_id is not None:
        client_invoice = ClientInvoice.query.get(data.client_invoice_id)
        if client_invoice is None:
            return not_found("Client invoice")
    if vendor_invoice is not None and client_invoice is not None:
        return jsonify({"error": "A payment settles either a vendor or a client invoice"}), 400

    paid_on = data.payment_date or datetime.utcnow().date()
    payment = Payment(
        payment_number=next_payment_number(),
        amount=money(to_decimal(data.amount)),
        currency=data.currency.upper(),
        payment_method=data.payment_method,
        payment_date=paid_on,
        reference=data.reference,
        notes=data.notes,
        status="COMPLETED",
        vendor_invoice_id=vendor_invoice.id if vendor_invoice else None,
        client_invoice_id=client_invoice.id if client_invoice else None,
        created_by_id=current_user.id,
    )
    db.session.add(payment)

    for invoice in (vendor_invoice, client_invoice):
        if invoice is not None:
            _settle(invoice, payment.amount, paid_on)

    db.session.flush()
    log_action(payment, "CREATE", after=serialize_model(payment))
    db.session.commit()

    logger.info("Payment %s recorded by %s", payment.payment_number, current_user.name)
    return jsonify(payment.to_dict()), 201


# ---------------------------------------------------------------------
# Client invoices
# ---------------------------------------------------------------------
@finance_bp.route("/client-invoices", methods=["GET"])
@roles_required(*FINANCE_VIEW_ROLES)
def list_client_invoices():
    query = ClientInvoice.query
    term = search_term()
    if term:
        query = query.filter(
            ClientInvoice.invoice_number.ilike(term) | ClientInvoice.description.ilike(term)
        )
    status = (request.args.get("status") or "").strip()
    if status:
        query = query.filter(ClientInvoice.status == status)
    client_id = parse_optional_int(request.args.get("clientId"))
    if client_id:
        query = query.filter(ClientInvoice.client_id == client_id)

    query = query.order_by(ClientInvoice.issue_date.desc(), ClientInvoice.id.desc())
    return jsonify(paginated(query, "invoices"))
