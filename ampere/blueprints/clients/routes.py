"""
Clients API.

- GET    /api/clients              search + pagination, active clients only
- GET    /api/clients/list         lightweight id/name/number list for selects
- POST   /api/clients              create; assigns the next AE-C-NNN
- GET    /api/clients/<id>         detail with projects, invoices, quotations
- PUT    /api/clients/<id>         update
- DELETE /api/clients/<id>         soft delete (is_active = False)
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify
from flask_login import current_user

from ...audit import log_action, serialize_model
from ...extensions import db
from ...models import ADMIN, Client, ClientInvoice, Project, Quotation, PROJECT_MANAGER, SUPERADMIN
from ...numbering import next_client_number
from ...schemas import ClientIn, ClientUpdate
from ...security import api_login_required, roles_required
from ...utils import apply_updates, column_changes, not_found, paginated, parse_body, search_term

logger = logging.getLogger(__name__)

clients_bp = Blueprint("clients", __name__, url_prefix="/api/clients")

CLIENT_DELETE_ROLES = (SUPERADMIN, ADMIN, PROJECT_MANAGER)


def _active_client_or_none(client_id: int) -> Client | None:
    client = Client.query.get(client_id)
    if client is None or not client.is_active:
        return None
    return client


def _client_row(client: Client) -> dict:
    data = client.to_dict()
    data["projectCount"] = Project.query.filter_by(client_id=client.id, is_active=True).count()
    return data


@clients_bp.route("", methods=["GET"])
@api_login_required
def list_clients():
    query = Client.query.filter(Client.is_active.is_(True))
    term = search_term()
    if term:
        query = query.filter(
            Client.name.ilike(term)
            | Client.email.ilike(term)
            | Client.contact_person.ilike(term)
            | Client.client_number.ilike(term)
        )
    query = query.order_by(Client.created_at.desc(), Client.id.desc())
    return jsonify(paginated(query, "clients", _client_row))


@clients_bp.route("/list", methods=["GET"])
@api_login_required
def list_client_options():
    clients = (
        Client.query.filter(Client.is_active.is_(True))
        .order_by(Client.name.asc())
        .all()
    )
    return jsonify([
        {"id": c.id, "name": c.name, "clientNumber": c.client_number} for c in clients
    ])


@clients_bp.route("", methods=["POST"])
@api_login_required
def create_client():
    data = parse_body(ClientIn)

    client = Client(**data.model_dump(), created_by_id=current_user.id)
    if client.email:
        client.email = client.email.lower()
    client.client_number = next_client_number()

    db.session.add(client)
    db.session.flush()
    log_action(client, "CREATE", after=serialize_model(client))
    db.session.commit()

    logger.info("Client %s created by %s", client.client_number, current_user.name)
    return jsonify(client.to_dict()), 201


@clients_bp.route("/<int:client_id>", methods=["GET"])
@api_login_required
def get_client(client_id: int):
    client = _active_client_or_none(client_id)
    if client is None:
        return not_found("Client")

    data = client.to_dict()
    data["projects"] = [
        p.to_dict()
        for p in Project.query.filter_by(client_id=client.id, is_active=True)
        .order_by(Project.created_at.desc())
        .all()
    ]
    data["invoices"] = [
        inv.to_dict()
        for inv in ClientInvoice.query.filter_by(client_id=client.id)
        .order_by(ClientInvoice.issue_date.desc())
        .all()
    ]
    data["quotations"] = [
        q.to_dict()
        for q in Quotation.query.filter_by(client_id=client.id)
        .order_by(Quotation.created_at.desc())
        .all()
    ]
    return jsonify(data)


@clients_bp.route("/<int:client_id>", methods=["PUT"])
@api_login_required
def update_client(client_id: int):
    client = _active_client_or_none(client_id)
    if client is None:
        return not_found("Client")

    data = parse_body(ClientUpdate)
    before = serialize_model(client)
    changes = column_changes(client, data)
    if changes.get("email"):
        changes["email"] = changes["email"].lower()

    if apply_updates(client, changes):
        db.session.flush()
        log_action(client, "UPDATE", before=before, after=serialize_model(client))
    db.session.commit()
    return jsonify(client.to_dict())


@clients_bp.route("/<int:client_id>", methods=["DELETE"])
@roles_required(*CLIENT_DELETE_ROLES)
def delete_client(client_id: int):
    client = _active_client_or_none(client_id)
    if client is None:
        return not_found("Client")

    before = serialize_model(client)
    client.is_active = False
    db.session.flush()
    log_action(client, "DELETE", before=before, after=serialize_model(client))
    db.session.commit()

    logger.info("Client %s deactivated by %s", client.client_number, current_user.name)
    return jsonify({"message": "Client deleted successfully"})
