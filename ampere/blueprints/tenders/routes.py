"""
Tenders API.

- GET    /api/tenders              search/status filters + pagination
- POST   /api/tenders              create; TND-YYYY-NNN
- GET    /api/tenders/<id>         detail with linked quotations
- PUT    /api/tenders/<id>         update
- DELETE /api/tenders/<id>         soft delete
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user

from ...audit import log_action, serialize_model
from ...extensions import db
from ...models import ADMIN, PROJECT_MANAGER, SALES, SUPERADMIN, Client, Quotation, Tender
from ...numbering import next_tender_number
from ...schemas import TenderIn, TenderUpdate
from ...security import api_login_required, roles_required
from ...utils import apply_updates, column_changes, not_found, paginated, parse_body, search_term

logger = logging.getLogger(__name__)

tenders_bp = Blueprint("tenders", __name__, url_prefix="/api/tenders")

TENDER_WRITE_ROLES = (SUPERADMIN, ADMIN, PROJECT_MANAGER, SALES)


def _active_tender_or_none(tender_id: int) -> Tender | None:
    tender = Tender.query.get(tender_id)
    if tender is None or not tender.is_active:
        return None
    return tender


@tenders_bp.route("", methods=["GET"])
@api_login_required
def list_tenders():
    query = Tender.query.filter(Tender.is_active.is_(True))
    term = search_term()
    if term:
        query = query.filter(
            Tender.title.ilike(term)
            | Tender.tender_number.ilike(term)
            | Tender.description.ilike(term)
        )
    status = (request.args.get("status") or "").strip()
    if status:
        query = query.filter(Tender.status == status)

    query = query.order_by(Tender.created_at.desc(), Tender.id.desc())
    return jsonify(paginated(query, "tenders"))


@tenders_bp.route("", methods=["POST"])
@roles_required(*TENDER_WRITE_ROLES)
def create_tender():
    data = parse_body(TenderIn)

    client = Client.query.get(data.client_id)
    if client is None or not client.is_active:
        return not_found("Client")

    tender = Tender(
        **data.model_dump(),
        tender_number=next_tender_number(),
        created_by_id=current_user.id,
    )
    db.session.add(tender)
    db.session.flush()
    log_action(tender, "CREATE", after=serialize_model(tender))
    db.session.commit()

    logger.info("Tender %s created by %s", tender.tender_number, current_user.name)
    return jsonify(tender.to_dict()), 201


@tenders_bp.route("/<int:tender_id>", methods=["GET"])
@api_login_required
def get_tender(tender_id: int):
    tender = _active_tender_or_none(tender_id)
    if tender is None:
        return not_found("Tender")

    data = tender.to_dict()
    data["quotations"] = [
        q.to_dict() for q in Quotation.query.filter_by(tender_id=tender.id).order_by(Quotation.created_at.desc())
    ]
    return jsonify(data)


@tenders_bp.route("/<int:tender_id>", methods=["PUT"])
@roles_required(*TENDER_WRITE_ROLES)
def update_tender(tender_id: int):
    tender = _active_tender_or_none(tender_id)
    if tender is None:
        return not_found("Tender")

    data = parse_body(TenderUpdate)
    if data.client_id is not None:
        client = Client.query.get(data.client_id)
        if client is None or not client.is_active:
            return not_found("Client")

    before = serialize_model(tender)
    if apply_updates(tender, column_changes(tender, data)):
        db.session.flush()
        log_action(tender, "UPDATE", before=before, after=serialize_model(tender))
    db.session.commit()
    return jsonify(tender.to_dict())


@tenders_bp.route("/<int:tender_id>", methods=["DELETE"])
@roles_required(SUPERADMIN, ADMIN, PROJECT_MANAGER)
def delete_tender(tender_id: int):
    tender = _active_tender_or_none(tender_id)
    if tender is None:
        return not_found("Tender")

    before = serialize_model(tender)
    tender.is_active = False
    db.session.flush()
    log_action(tender, "DELETE", before=before, after=serialize_model(tender))
    db.session.commit()
    return jsonify({"message": "Tender deleted successfully"})
