"""
Quotations API.

- GET    /api/quotations                   search/status/client filters + pagination
- POST   /api/quotations                   create (one transaction)
- GET    /api/quotations/item-library      reusable line descriptions (?search=)
- GET    /api/quotations/<id>              detail with items and activity trail
- PUT    /api/quotations/<id>              full edit (DRAFT) or status change
- DELETE /api/quotations/<id>              delete a DRAFT

Create transaction:
1) quotation row with AE-Q-{clientCode}-NNN
2) line items in the order given (SUBTITLE lines carry no quantity/price)
3) item-library upsert keyed on (description, category, unit)
4) CREATED activity

IMPORTANT:
- Quotations above APPROVAL_THRESHOLD require approval.
- A body carrying only `status` is a status change, allowed to managers,
  the creator and the salesperson. Anything else is a full edit,
  allowed to SUPERADMIN / PROJECT_MANAGER while the quotation is DRAFT.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal

from flask import Blueprint, jsonify, request
from flask_login import current_user

from ...audit import log_quotation_activity
from ...extensions import db
from ...models import (
    ADMIN,
    FINANCE,
    PROJECT_MANAGER,
    SUPERADMIN,
    Client,
    Project,
    Quotation,
    QuotationItem,
    QuotationItemLibrary,
    Tender,
    money,
    to_decimal,
)
from ...numbering import next_quotation_number
from ...pricing import apply_document_totals, build_lines
from ...schemas import QuotationIn, QuotationUpdate
from ...security import forbidden, api_login_required, has_role, roles_required
from ...utils import (
    parse_optional_int,
    apply_updates,
    bad_request,
    column_changes,
    not_found,
    paginated,
    parse_body,
    search_term,
)

logger = logging.getLogger(__name__)

quotations_bp = Blueprint("quotations", __name__, url_prefix="/api/quotations")

QUOTATION_CREATE_ROLES = (SUPERADMIN, ADMIN, PROJECT_MANAGER, FINANCE)
QUOTATION_EDIT_ROLES = (SUPERADMIN, PROJECT_MANAGER)
APPROVAL_THRESHOLD = Decimal("100")
DEFAULT_VALIDITY_DAYS = 30


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _upsert_library(items) -> None:
    """Remember non-heading line descriptions; repeated use bumps usage_count."""
    for item in items:
        if item.category == "SUBTITLE":
            continue
        entry = QuotationItemLibrary.query.filter_by(
            description=item.description, category=item.category, unit=item.unit
        ).first()
        price = to_decimal(item.unit_price)
        if entry is None:
            db.session.add(
                QuotationItemLibrary(
                    description=item.description,
                    category=item.category,
                    unit=item.unit,
                    average_unit_price=price,
                    last_unit_price=price,
                    usage_count=1,
                    created_by_id=current_user.id,
                )
            )
            continue
        total = to_decimal(entry.average_unit_price) * entry.usage_count + price
        entry.usage_count += 1
        entry.average_unit_price = money(total / entry.usage_count)
        entry.last_unit_price = price


def _check_links(client_id: int | None, project_id: int | None, tender_id: int | None):
    """404 response for a dangling reference, None when all exist."""
    if client_id is not None:
        client = Client.query.get(client_id)
        if client is None or not client.is_active:
            return not_found("Client")
    if project_id is not None and Project.query.get(project_id) is None:
        return not_found("Project")
    if tender_id is not None and Tender.query.get(tender_id) is None:
        return not_found("Tender")
    return None


def _is_status_only(payload: dict) -> bool:
    return set(payload.keys()) == {"status"}


# ---------------------------------------------------------------------
# List / create
# ---------------------------------------------------------------------
@quotations_bp.route("", methods=["GET"])
@api_login_required
def list_quotations():
    query = Quotation.query
    term = search_term()
    if term:
        query = query.filter(
            Quotation.quotation_number.ilike(term)
            | Quotation.title.ilike(term)
            | Quotation.client_reference.ilike(term)
        )
    status = (request.args.get("status") or "").strip()
    if status:
        query = query.filter(Quotation.status == status)
    client_id = parse_optional_int(request.args.get("clientId"))
    if client_id:
        query = query.filter(Quotation.client_id == client_id)

    query = query.order_by(Quotation.created_at.desc(), Quotation.id.desc())
    return jsonify(paginated(query, "quotations"))


@quotations_bp.route("", methods=["POST"])
@roles_required(*QUOTATION_CREATE_ROLES)
def create_quotation():
    data = parse_body(QuotationIn)

    missing = _check_links(data.client_id, data.project_id, data.tender_id)
    if missing is not None:
        return missing
    client = Client.query.get(data.client_id)

    quotation = Quotation(
        quotation_number=next_quotation_number(client),
        title=data.title,
        description=data.description,
        client_reference=data.client_reference,
        client_id=client.id,
        project_id=data.project_id,
        tender_id=data.tender_id,
        salesperson_id=data.salesperson_id or current_user.id,
        currency=data.currency.upper(),
        valid_until=data.valid_until or (datetime.utcnow() + timedelta(days=DEFAULT_VALIDITY_DAYS)).date(),
        terms=data.terms,
        notes=data.notes,
        template_type=data.template_type,
        status="DRAFT",
        created_by_id=current_user.id,
    )
    lines = build_lines(QuotationItem, data.items)
    quotation.items = lines
    apply_document_totals(quotation, lines, data.discount_amount)
    quotation.requires_approval = to_decimal(quotation.total_amount) > APPROVAL_THRESHOLD

    db.session.add(quotation)
    _upsert_library(lines)
    log_quotation_activity(
        quotation,
        "CREATED",
        f"Quotation {quotation.quotation_number} created",
        new_value="DRAFT",
    )
    db.session.commit()

    logger.info("Quotation %s created by %s", quotation.quotation_number, current_user.name)
    return jsonify(quotation.to_dict(detail=True)), 201


@quotations_bp.route("/item-library", methods=["GET"])
@api_login_required
def item_library():
    query = QuotationItemLibrary.query
    term = search_term()
    if term:
        query = query.filter(QuotationItemLibrary.description.ilike(term))
    category = (request.args.get("category") or "").strip()
    if category:
        query = query.filter(QuotationItemLibrary.category == category)
    entries = query.order_by(QuotationItemLibrary.usage_count.desc()).limit(20).all()
    return jsonify([
        {
            "id": e.id,
            "description": e.description,
            "category": e.category,
            "unit": e.unit,
            "averageUnitPrice": float(e.average_unit_price),
            "lastUnitPrice": float(e.last_unit_price),
            "usageCount": e.usage_count,
        }
        for e in entries
    ])


# ---------------------------------------------------------------------
# Detail / update / delete
# ---------------------------------------------------------------------
@quotations_bp.route("/<int:quotation_id>", methods=["GET"])
@api_login_required
def get_quotation(quotation_id: int):
    quotation = Quotation.query.get(quotation_id)
    if quotation is None:
        return not_found("Quotation")
    return jsonify(quotation.to_dict(detail=True))


@quotations_bp.route("/<int:quotation_id>", methods=["PUT"])
@api_login_required
def update_quotation(quotation_id: int):
    quotation = Quotation.query.get(quotation_id)
    if quotation is None:
        return not_found("Quotation")

    payload = request.get_json(silent=True) or {}
    data = parse_body(QuotationUpdate)

    if _is_status_only(payload):
        allowed = (
            has_role(*QUOTATION_EDIT_ROLES)
            or quotation.created_by_id == current_user.id
            or quotation.salesperson_id == current_user.id
        )
        if not allowed:
            return forbidden("Insufficient permissions to update this quotation")
        if data.status is None:
            return bad_request("Status is required")

        old_status = quotation.status
        if old_status != data.status:
            quotation.status = data.status
            log_quotation_activity(
                quotation,
                "STATUS_CHANGED",
                f"Status changed from {old_status} to {data.status}",
                old_value=old_status,
                new_value=data.status,
            )
        db.session.commit()
        return jsonify(quotation.to_dict(detail=True))

    if not has_role(*QUOTATION_EDIT_ROLES):
        return forbidden("Only Super Admins and Project Managers can edit quotations")
    if quotation.status != "DRAFT":
        return forbidden("Can only edit draft quotations")

    missing = _check_links(data.client_id, data.project_id, data.tender_id)
    if missing is not None:
        return missing

    changes = column_changes(quotation, data)
    changes.pop("status", None)
    if "currency" in changes:
        changes["currency"] = changes["currency"].upper()
    apply_updates(quotation, changes)

    if data.items is not None:
        lines = build_lines(QuotationItem, data.items)
        quotation.items = lines
    else:
        lines = list(quotation.items)
    apply_document_totals(
        quotation,
        lines,
        data.discount_amount if data.discount_amount is not None else quotation.discount_amount,
    )
    quotation.requires_approval = to_decimal(quotation.total_amount) > APPROVAL_THRESHOLD

    log_quotation_activity(quotation, "UPDATED", f"Quotation {quotation.quotation_number} updated")
    if data.status and data.status != quotation.status:
        old_status = quotation.status
        quotation.status = data.status
        log_quotation_activity(
            quotation,
            "STATUS_CHANGED",
            f"Status changed from {old_status} to {data.status}",
            old_value=old_status,
            new_value=data.status,
        )
    db.session.commit()
    return jsonify(quotation.to_dict(detail=True))


@quotations_bp.route("/<int:quotation_id>", methods=["DELETE"])
@roles_required(*QUOTATION_EDIT_ROLES, message="Only Super Admins and Project Managers can delete quotations")
def delete_quotation(quotation_id: int):
    quotation = Quotation.query.get(quotation_id)
    if quotation is None:
        return not_found("Quotation")
    if quotation.status != "DRAFT":
        return bad_request("Only draft quotations can be deleted")

    number = quotation.quotation_number
    db.session.delete(quotation)
    db.session.commit()

    logger.info("Quotation %s deleted by %s", number, current_user.name)
    return jsonify({"message": "Quotation deleted successfully"})
