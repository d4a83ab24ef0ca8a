"""
Tasks API.

- GET    /api/tasks                  non-archived tasks (?status=, ?assigneeId=, ?mine=1)
- POST   /api/tasks                  SUPERADMIN, PROJECT_MANAGER, FINANCE
- GET    /api/tasks/<id>             detail with comments + my notifications
- PATCH  /api/tasks/<id>             task roles, the assignee or the assigner
- DELETE /api/tasks/<id>             archive (SUPERADMIN, PROJECT_MANAGER)
- POST   /api/tasks/<id>/comments    add a comment
- GET    /api/tasks/notifications    my unread notifications
- POST   /api/tasks/notifications/<id>/read

Notifications:
- TASK_ASSIGNED to the assignee on create (and on re-assignment).
- TASK_COMPLETED / TASK_STATUS_CHANGED to the assigner, unless the
  assigner made the change.
"""

from __future__ import annotations

import logging
from datetime import datetime

from flask import Blueprint, jsonify, request
from flask_login import current_user

from ...extensions import db
from ...models import (
    FINANCE,
    PROJECT_MANAGER,
    SUPERADMIN,
    Client,
    Project,
    Task,
    TaskComment,
    TaskNotification,
    User,
)
from ...schemas import TaskCommentIn, TaskIn, TaskUpdate
from ...security import forbidden, api_login_required, has_role, roles_required
from ...utils import parse_optional_int, apply_updates, column_changes, not_found, paginated, parse_body, search_term

logger = logging.getLogger(__name__)

tasks_bp = Blueprint("tasks", __name__, url_prefix="/api/tasks")

TASK_CREATE_ROLES = (SUPERADMIN, PROJECT_MANAGER, FINANCE)
TASK_DELETE_ROLES = (SUPERADMIN, PROJECT_MANAGER)


def _notify(task: Task, user_id: int, kind: str, message: str) -> None:
    db.session.add(TaskNotification(task=task, user_id=user_id, type=kind, message=message))


def _can_touch(task: Task) -> bool:
    return (
        has_role(*TASK_CREATE_ROLES)
        or task.assignee_id == current_user.id
        or task.assigner_id == current_user.id
    )


def _load_task(task_id: int):
    """(task, error_response) for a non-archived task."""
    task = Task.query.get(task_id)
    if task is None or task.is_archived:
        return None, not_found("Task")
    return task, None


@tasks_bp.route("", methods=["GET"])
@api_login_required
def list_tasks():
    query = Task.query.filter(Task.is_archived.is_(False))

    term = search_term()
    if term:
        query = query.filter(Task.title.ilike(term) | Task.description.ilike(term))
    status = (request.args.get("status") or "").strip()
    if status:
        query = query.filter(Task.status == status)
    assignee_id = parse_optional_int(request.args.get("assigneeId"))
    if assignee_id:
        query = query.filter(Task.assignee_id == assignee_id)
    if request.args.get("mine") in ("1", "true"):
        query = query.filter((Task.assignee_id == current_user.id) | (Task.assigner_id == current_user.id))

    query = query.order_by(Task.due_date.is_(None), Task.due_date.asc(), Task.created_at.desc())
    return jsonify(paginated(query, "tasks"))


@tasks_bp.route("", methods=["POST"])
@roles_required(*TASK_CREATE_ROLES)
def create_task():
    data = parse_body(TaskIn)

    assignee = User.query.get(data.assignee_id)
    if assignee is None or not assignee.is_active:
        return not_found("Assignee")
    if data.project_id is not None and Project.query.get(data.project_id) is None:
        return not_found("Project")
    if data.client_id is not None and Client.query.get(data.client_id) is None:
        return not_found("Client")

    task = Task(**data.model_dump(), assigner_id=current_user.id, status="TODO")
    db.session.add(task)
    _notify(task, assignee.id, "TASK_ASSIGNED", f"{current_user.full_name} assigned you a task: {task.title}")
    db.session.commit()

    logger.info("Task %s assigned to %s by %s", task.id, assignee.name, current_user.name)
    return jsonify(task.to_dict(detail=True)), 201


@tasks_bp.route("/notifications", methods=["GET"])
@api_login_required
def my_notifications():
    notifications = (
        TaskNotification.query.filter_by(user_id=current_user.id, is_read=False)
        .order_by(TaskNotification.created_at.desc())
        .all()
    )
    return jsonify([n.to_dict() for n in notifications])


@tasks_bp.route("/notifications/<int:notification_id>/read", methods=["POST"])
@api_login_required
def mark_notification_read(notification_id: int):
    notification = TaskNotification.query.get(notification_id)
    if notification is None or notification.user_id != current_user.id:
        return not_found("Notification")
    notification.is_read = True
    db.session.commit()
    return jsonify(notification.to_dict())


@tasks_bp.route("/<int:task_id>", methods=["GET"])
@api_login_required
def get_task(task_id: int):
    task, error = _load_task(task_id)
    if error is not None:
        return error

    data = task.to_dict(detail=True)
    data["notifications"] = [
        n.to_dict()
        for n in TaskNotification.query.filter_by(task_id=task.id, user_id=current_user.id)
        .order_by(TaskNotification.created_at.desc())
        .all()
    ]
    return jsonify(data)


@tasks_bp.route("/<int:task_id>", methods=["PATCH", "PUT"])
@api_login_required
def update_task(task_id: int):
    task, error = _load_task(task_id)
    if error is not None:
        return error
    if not _can_touch(task):
        return forbidden()

    data = parse_body(TaskUpdate)
    changes = column_changes(task, data)
    if "assignee_id" in changes and changes["assignee_id"] != task.assignee_id:
        if not has_role(*TASK_CREATE_ROLES):
            return forbidden("Only managers can reassign tasks")
        assignee = User.query.get(changes["assignee_id"])
        if assignee is None or not assignee.is_active:
            return not_found("Assignee")

    old_status = task.status
    old_assignee = task.assignee_id
    apply_updates(task, changes)

    if task.status != old_status:
        if task.status == "COMPLETED":
            task.completed_at = datetime.utcnow()
        elif old_status == "COMPLETED":
            task.completed_at = None

        if task.assigner_id != current_user.id:
            if task.status == "COMPLETED":
                _notify(task, task.assigner_id, "TASK_COMPLETED",
                        f"{current_user.full_name} completed: {task.title}")
            else:
                _notify(task, task.assigner_id, "TASK_STATUS_CHANGED",
                        f"{current_user.full_name} moved '{task.title}' from {old_status} to {task.status}")

    if task.assignee_id != old_assignee:
        _notify(task, task.assignee_id, "TASK_ASSIGNED", f"{current_user.full_name} assigned you a task: {task.title}")

    db.session.commit()
    return jsonify(task.to_dict(detail=True))


@tasks_bp.route("/<int:task_id>", methods=["DELETE"])
@roles_required(*TASK_DELETE_ROLES)
def archive_task(task_id: int):
    task, error = _load_task(task_id)
    if error is not None:
        return error
    task.is_archived = True
    db.session.commit()
    return jsonify({"message": "Task archived successfully"})


@tasks_bp.route("/<int:task_id>/comments", methods=["POST"])
@api_login_required
def add_comment(task_id: int):
    task, error = _load_task(task_id)
    if error is not None:
        return error
    if not _can_touch(task):
        return forbidden()

    data = parse_body(TaskCommentIn)
    comment = TaskComment(task=task, user_id=current_user.id, content=data.content)
    db.session.add(comment)
    db.session.commit()
    return jsonify(comment.to_dict()), 201
