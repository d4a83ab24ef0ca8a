"""
Projects API.

- GET    /api/projects             search/status/type filters + pagination
- GET    /api/projects/list        lightweight list for selects (?clientId=)
- POST   /api/projects             create; PRJ-YYYY-NNN or MNT-YYYY-NNN
- GET    /api/projects/<id>        detail with quotations, POs, tasks
- PUT    /api/projects/<id>        update
- DELETE /api/projects/<id>        soft delete

IMPORTANT:
- project_type is fixed at creation: it decides the number prefix.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user

from ...audit import log_action, serialize_model
from ...extensions import db
from ...models import (
    ADMIN,
    PROJECT_MANAGER,
    SUPERADMIN,
    Client,
    Project,
    PurchaseOrder,
    Quotation,
    Task,
)
from ...numbering import next_project_number
from ...schemas import ProjectIn, ProjectUpdate
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

projects_bp = Blueprint("projects", __name__, url_prefix="/api/projects")

PROJECT_WRITE_ROLES = (SUPERADMIN, ADMIN, PROJECT_MANAGER)


def _active_project_or_none(project_id: int) -> Project | None:
    project = Project.query.get(project_id)
    if project is None or not project.is_active:
        return None
    return project


@projects_bp.route("", methods=["GET"])
@api_login_required
def list_projects():
    query = Project.query.filter(Project.is_active.is_(True))

    term = search_term()
    if term:
        query = query.filter(
            Project.name.ilike(term)
            | Project.project_number.ilike(term)
            | Project.description.ilike(term)
        )
    status = (request.args.get("status") or "").strip()
    if status:
        query = query.filter(Project.status == status)
    project_type = (request.args.get("projectType") or "").strip()
    if project_type:
        query = query.filter(Project.project_type == project_type)
    client_id = parse_optional_int(request.args.get("clientId"))
    if client_id:
        query = query.filter(Project.client_id == client_id)

    query = query.order_by(Project.created_at.desc(), Project.id.desc())
    return jsonify(paginated(query, "projects"))


@projects_bp.route("/list", methods=["GET"])
@api_login_required
def list_project_options():
    query = Project.query.filter(Project.is_active.is_(True))
    client_id = parse_optional_int(request.args.get("clientId"))
    if client_id:
        query = query.filter(Project.client_id == client_id)
    return jsonify([
        {
            "id": p.id,
            "name": p.name,
            "projectNumber": p.project_number,
            "clientId": p.client_id,
            "status": p.status,
        }
        for p in query.order_by(Project.name.asc()).all()
    ])


@projects_bp.route("", methods=["POST"])
@roles_required(*PROJECT_WRITE_ROLES)
def create_project():
    data = parse_body(ProjectIn)

    client = Client.query.get(data.client_id)
    if client is None or not client.is_active:
        return not_found("Client")

    project = Project(
        **data.model_dump(),
        project_number=next_project_number(data.project_type),
        created_by_id=current_user.id,
    )
    if project.manager_id is None:
        project.manager_id = current_user.id

    db.session.add(project)
    db.session.flush()
    log_action(project, "CREATE", after=serialize_model(project))
    db.session.commit()

    logger.info("Project %s created by %s", project.project_number, current_user.name)
    return jsonify(project.to_dict()), 201


@projects_bp.route("/<int:project_id>", methods=["GET"])
@api_login_required
def get_project(project_id: int):
    project = _active_project_or_none(project_id)
    if project is None:
        return not_found("Project")

    data = project.to_dict()
    data["quotations"] = [
        q.to_dict() for q in Quotation.query.filter_by(project_id=project.id).order_by(Quotation.created_at.desc())
    ]
    data["purchaseOrders"] = [
        po.to_dict()
        for po in PurchaseOrder.query.filter_by(project_id=project.id).order_by(PurchaseOrder.created_at.desc())
    ]
    data["tasks"] = [
        t.to_dict()
        for t in Task.query.filter_by(project_id=project.id, is_archived=False).order_by(Task.created_at.desc())
    ]
    return jsonify(data)


@projects_bp.route("/<int:project_id>", methods=["PUT"])
@roles_required(*PROJECT_WRITE_ROLES)
def update_project(project_id: int):
    project = _active_project_or_none(project_id)
    if project is None:
        return not_found("Project")

    data = parse_body(ProjectUpdate)
    before = serialize_model(project)
    if apply_updates(project, column_changes(project, data)):
        db.session.flush()
        log_action(project, "UPDATE", before=before, after=serialize_model(project))
    db.session.commit()
    return jsonify(project.to_dict())


@projects_bp.route("/<int:project_id>", methods=["DELETE"])
@roles_required(SUPERADMIN, ADMIN, PROJECT_MANAGER)
def delete_project(project_id: int):
    project = _active_project_or_none(project_id)
    if project is None:
        return not_found("Project")

    before = serialize_model(project)
    project.is_active = False
    db.session.flush()
    log_action(project, "DELETE", before=before, after=serialize_model(project))
    db.session.commit()
    return jsonify({"message": "Project deleted successfully"})
