"""
Server-rendered pages.

- /            -> dashboard when signed in, otherwise the login page
- /dashboard   headline counts for the signed-in user

Session checks for page prefixes happen in security.page_guard().
"""

from __future__ import annotations

from flask import Blueprint, redirect, render_template, url_for
from flask_login import current_user, login_required

from ...models import Client, Project, Quotation, ServiceJob, Task, TaskNotification

pages_bp = Blueprint("pages", __name__)


@pages_bp.route("/")
def index():
    if current_user.is_authenticated:
        return redirect(url_for("pages.dashboard"))
    return redirect(url_for("auth.login_page"))


@pages_bp.route("/dashboard")
@login_required
def dashboard():
    counts = {
        "clients": Client.query.filter_by(is_active=True).count(),
        "activeProjects": Project.query.filter(
            Project.is_active.is_(True), Project.status.in_(("PLANNING", "IN_PROGRESS"))
        ).count(),
        "openQuotations": Quotation.query.filter(Quotation.status.in_(("DRAFT", "SUBMITTED", "UNDER_REVIEW", "APPROVED", "SENT"))).count(),
        "myTasks": Task.query.filter(
            Task.assignee_id == current_user.id,
            Task.is_archived.is_(False),
            Task.status != "COMPLETED",
        ).count(),
        "scheduledJobs": ServiceJob.query.filter_by(status="Scheduled").count(),
        "unreadNotifications": TaskNotification.query.filter_by(user_id=current_user.id, is_read=False).count(),
    }
    return render_template("dashboard.html", counts=counts)
