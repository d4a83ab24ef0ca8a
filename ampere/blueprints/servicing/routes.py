"""
Servicing API: maintenance contracts and the jobs they schedule.

Contracts:
- GET    /api/servicing/contracts             SUPERADMIN, ADMIN, PROJECT_MANAGER, FINANCE
- POST   /api/servicing/contracts             SUPERADMIN, ADMIN, PROJECT_MANAGER
- GET    /api/servicing/contracts/<id>        view roles
- PUT    /api/servicing/contracts/<id>        manage roles
- DELETE /api/servicing/contracts/<id>        SUPERADMIN

Jobs:
- GET  /api/servicing/jobs                    view roles see all, others their own
- POST /api/servicing/jobs                    manage roles (ad-hoc visit)
- GET  /api/servicing/jobs/<id>
- PUT  /api/servicing/jobs/<id>               assignee: status/notes; managers: everything
- GET/POST /api/servicing/jobs/<id>/job-sheets
- GET/POST /api/servicing/jobs/<id>/vendor-reports
- GET/POST /api/servicing/jobs/<id>/invoices
- GET  /api/servicing/jobs/<id>/completion-certificate   HTML, Completed jobs only

IMPORTANT:
- Creating a contract creates all of its scheduled jobs in the same transaction.
- Completed / Endorsed stamps completed_at.
"""

from __future__ import annotations

import logging
from datetime import datetime

from flask import Blueprint, current_app, jsonify, render_template, request
from flask_login import current_user

from ...audit import log_action, serialize_model
from ...extensions import db
from ...models import (
    FINANCE,
    SUPERADMIN,
    Client,
    Project,
    ServiceContract,
    ServiceInvoice,
    ServiceJob,
    ServiceJobSheet,
    ServiceVendorReport,
    User,
    Vendor,
)
from ...numbering import completion_certificate_number, next_service_contract_number, next_service_invoice_number
from ...schemas import (
    JobSheetIn,
    ServiceContractIn,
    ServiceContractUpdate,
    ServiceInvoiceIn,
    ServiceJobIn,
    ServiceJobUpdate,
    VendorReportIn,
)
from ...security import (
    SERVICE_MANAGE_ROLES,
    SERVICE_VIEW_ROLES,
    forbidden,
    api_login_required,
    has_role,
    roles_required,
)
from ...servicing import expand_jobs, nas_job_path, vendor_code
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

servicing_bp = Blueprint("servicing", __name__, url_prefix="/api/servicing")

COMPLETED_STATUSES = ("Completed", "Endorsed")
ASSIGNEE_FIELDS = {"status", "completion_notes"}
SERVICE_INVOICE_ROLES = SERVICE_MANAGE_ROLES + (FINANCE,)


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _load_projects(project_ids: list[int], client_id: int):
    """(projects, error_response)"""
    projects = []
    for project_id in dict.fromkeys(project_ids):
        project = Project.query.get(project_id)
        if project is None or not project.is_active:
            return None, not_found("Project")
        if project.client_id != client_id:
            return None, bad_request("Project does not belong to the contract's client")
        projects.append(project)
    return projects, None


def _can_see_job(job: ServiceJob) -> bool:
    return has_role(*SERVICE_VIEW_ROLES) or job.assigned_to_id == current_user.id


def _load_visible_job(job_id: int):
    """(job, error_response)"""
    job = ServiceJob.query.get(job_id)
    if job is None:
        return None, not_found("Job")
    if not _can_see_job(job):
        return None, forbidden()
    return job, None


# ---------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------
@servicing_bp.route("/contracts", methods=["GET"])
@roles_required(*SERVICE_VIEW_ROLES)
def list_contracts():
    query = ServiceContract.query
    term = search_term()
    if term:
        query = query.filter(ServiceContract.contract_no.ilike(term) | ServiceContract.title.ilike(term))
    status = (request.args.get("status") or "").strip()
    if status:
        query = query.filter(ServiceContract.status == status)
    client_id = parse_optional_int(request.args.get("clientId"))
    if client_id:
        query = query.filter(ServiceContract.client_id == client_id)

    query = query.order_by(ServiceContract.created_at.desc(), ServiceContract.id.desc())
    return jsonify(paginated(query, "contracts"))


@servicing_bp.route("/contracts", methods=["POST"])
@roles_required(*SERVICE_MANAGE_ROLES)
def create_contract():
    data = parse_body(ServiceContractIn)

    if data.end_date < data.start_date:
        return bad_request("End date must be on or after start date")
    client = Client.query.get(data.client_id)
    if client is None or not client.is_active:
        return not_found("Client")
    projects, error = _load_projects(data.project_ids, client.id)
    if error is not None:
        return error

    contract = ServiceContract(
        contract_no=next_service_contract_number(),
        title=data.title,
        client_id=client.id,
        service_type=data.service_type,
        frequency=data.frequency,
        start_date=data.start_date,
        end_date=data.end_date,
        contract_value=data.contract_value,
        notes=data.notes,
        status="Active",
        created_by_id=current_user.id,
    )
    contract.projects = projects
    db.session.add(contract)
    jobs = expand_jobs(contract, current_user.id)
    db.session.add_all(jobs)

    db.session.flush()
    log_action(contract, "CREATE", after=serialize_model(contract))
    db.session.commit()

    logger.info(
        "Service contract %s created by %s with %d jobs",
        contract.contract_no,
        current_user.name,
        len(jobs),
    )
    return jsonify(contract.to_dict(detail=True)), 201


@servicing_bp.route("/contracts/<int:contract_id>", methods=["GET"])
@roles_required(*SERVICE_VIEW_ROLES)
def get_contract(contract_id: int):
    contract = ServiceContract.query.get(contract_id)
    if contract is None:
        return not_found("Contract")
    return jsonify(contract.to_dict(detail=True))


@servicing_bp.route("/contracts/<int:contract_id>", methods=["PUT"])
@roles_required(*SERVICE_MANAGE_ROLES)
def update_contract(contract_id: int):
    contract = ServiceContract.query.get(contract_id)
    if contract is None:
        return not_found("Contract")

    data = parse_body(ServiceContractUpdate)
    if data.end_date is not None and data.end_date < contract.start_date:
        return bad_request("End date must be on or after start date")

    before = serialize_model(contract)
    apply_updates(contract, column_changes(contract, data))
    if data.project_ids is not None:
        projects, error = _load_projects(data.project_ids, contract.client_id)
        if error is not None:
            return error
        contract.projects = projects

    db.session.flush()
    log_action(contract, "UPDATE", before=before, after=serialize_model(contract))
    db.session.commit()
    return jsonify(contract.to_dict(detail=True))


@servicing_bp.route("/contracts/<int:contract_id>", methods=["DELETE"])
@roles_required(SUPERADMIN)
def delete_contract(contract_id: int):
    contract = ServiceContract.query.get(contract_id)
    if contract is None:
        return not_found("Contract")

    log_action(contract, "DELETE", before=serialize_model(contract))
    db.session.delete(contract)
    db.session.commit()
    return jsonify({"message": "Contract deleted successfully"})


# ---------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------
@servicing_bp.route("/jobs", methods=["GET"])
@api_login_required
def list_jobs():
    query = ServiceJob.query
    if not has_role(*SERVICE_VIEW_ROLES):
        query = query.filter(ServiceJob.assigned_to_id == current_user.id)

    status = (request.args.get("status") or "").strip()
    if status:
        query = query.filter(ServiceJob.status == status)
    contract_id = parse_optional_int(request.args.get("contractId"))
    if contract_id:
        query = query.filter(ServiceJob.contract_id == contract_id)
    assigned_to_id = parse_optional_int(request.args.get("assignedToId"))
    if assigned_to_id:
        query = query.filter(ServiceJob.assigned_to_id == assigned_to_id)

    query = query.order_by(ServiceJob.scheduled_date.asc(), ServiceJob.id.asc())
    return jsonify(paginated(query, "jobs"))


@servicing_bp.route("/jobs", methods=["POST"])
@roles_required(*SERVICE_MANAGE_ROLES)
def create_job():
    data = parse_body(ServiceJobIn)

    contract = ServiceContract.query.get(data.contract_id)
    if contract is None:
        return not_found("Contract")
    if data.assigned_to_type == "Vendor":
        if data.assigned_vendor_id is None or Vendor.query.get(data.assigned_vendor_id) is None:
            return not_found("Vendor")
    elif data.assigned_to_id is not None and User.query.get(data.assigned_to_id) is None:
        return not_found("User")

    job = ServiceJob(
        contract=contract,
        client_id=contract.client_id,
        project_id=data.project_id,
        assigned_to_type=data.assigned_to_type,
        assigned_to_id=data.assigned_to_id if data.assigned_to_type == "Staff" else None,
        assigned_vendor_id=data.assigned_vendor_id if data.assigned_to_type == "Vendor" else None,
        scheduled_date=data.scheduled_date,
        status="Scheduled",
    )
    db.session.add(job)
    db.session.commit()
    return jsonify(job.to_dict(detail=True)), 201


@servicing_bp.route("/jobs/<int:job_id>", methods=["GET"])
@api_login_required
def get_job(job_id: int):
    job, error = _load_visible_job(job_id)
    if error is not None:
        return error
    return jsonify(job.to_dict(detail=True))


@servicing_bp.route("/jobs/<int:job_id>", methods=["PUT"])
@api_login_required
def update_job(job_id: int):
    job = ServiceJob.query.get(job_id)
    if job is None:
        return not_found("Job")

    is_manager = has_role(*SERVICE_MANAGE_ROLES)
    if not is_manager and job.assigned_to_id != current_user.id:
        return forbidden()

    data = parse_body(ServiceJobUpdate)
    # fields echoed back unchanged are not edits
    changes = {field: value for field, value in column_changes(job, data).items() if getattr(job, field) != value}
    if not is_manager and set(changes) - ASSIGNEE_FIELDS:
        return forbidden("Only managers can change assignment or schedule")

    if changes.get("assigned_to_type") == "Vendor":
        changes["assigned_to_id"] = None
    elif changes.get("assigned_to_type") == "Staff":
        changes["assigned_vendor_id"] = None

    old_status = job.status
    apply_updates(job, changes)
    if job.status != old_status and job.status in COMPLETED_STATUSES and job.completed_at is None:
        job.completed_at = datetime.utcnow()

    db.session.commit()
    return jsonify(job.to_dict(detail=True))


# ---------------------------------------------------------------------
# Job documents
# ---------------------------------------------------------------------
@servicing_bp.route("/jobs/<int:job_id>/job-sheets", methods=["GET"])
@api_login_required
def list_job_sheets(job_id: int):
    job, error = _load_visible_job(job_id)
    if error is not None:
        return error
    return jsonify([sheet.to_dict() for sheet in job.job_sheets])


@servicing_bp.route("/jobs/<int:job_id>/job-sheets", methods=["POST"])
@api_login_required
def create_job_sheet(job_id: int):
    job, error = _load_visible_job(job_id)
    if error is not None:
        return error

    data = parse_body(JobSheetIn)
    stamp = datetime.utcnow().strftime("%Y%m%d%H%M%S")
    sheet = ServiceJobSheet(
        job=job,
        file_path=nas_job_path(
            current_app.config["NAS_BASE_PATH"], job, "JobSheets", f"JobSheet_{job.id}_{stamp}.pdf"
        ),
        notes=data.notes,
        generated_by_id=current_user.id,
    )
    db.session.add(sheet)
    db.session.commit()
    return jsonify(sheet.to_dict()), 201


@servicing_bp.route("/jobs/<int:job_id>/vendor-reports", methods=["GET"])
@api_login_required
def list_vendor_reports(job_id: int):
    job, error = _load_visible_job(job_id)
    if error is not None:
        return error
    return jsonify([report.to_dict() for report in job.vendor_reports])


@servicing_bp.route("/jobs/<int:job_id>/vendor-reports", methods=["POST"])
@api_login_required
def create_vendor_report(job_id: int):
    job, error = _load_visible_job(job_id)
    if error is not None:
        return error
    if job.assigned_to_type != "Vendor" or job.assigned_vendor is None:
        return bad_request("Vendor reports can only be attached to vendor-assigned jobs")

    data = parse_body(VendorReportIn)
    report = ServiceVendorReport(
        job=job,
        vendor_id=job.assigned_vendor_id,
        file_name=data.file_name,
        file_path=nas_job_path(
            current_app.config["NAS_BASE_PATH"],
            job,
            "VendorReports",
            f"{vendor_code(job)}_{job.id}_{data.file_name}",
        ),
        notes=data.notes,
        uploaded_by_id=current_user.id,
    )
    db.session.add(report)
    db.session.commit()
    return jsonify(report.to_dict()), 201


@servicing_bp.route("/jobs/<int:job_id>/invoices", methods=["GET"])
@api_login_required
def list_service_invoices(job_id: int):
    job, error = _load_visible_job(job_id)
    if error is not None:
        return error
    return jsonify([invoice.to_dict() for invoice in job.invoices])


@servicing_bp.route("/jobs/<int:job_id>/invoices", methods=["POST"])
@roles_required(*SERVICE_INVOICE_ROLES)
def create_service_invoice(job_id: int):
    job = ServiceJob.query.get(job_id)
    if job is None:
        return not_found("Job")

    data = parse_body(ServiceInvoiceIn)
    vendor_id = None
    if data.invoice_type == "Vendor":
        vendor_id = data.vendor_id or job.assigned_vendor_id
        if vendor_id is None or Vendor.query.get(vendor_id) is None:
            return not_found("Vendor")

    invoice_no = next_service_invoice_number(data.invoice_type)
    invoice = ServiceInvoice(
        invoice_no=invoice_no,
        job=job,
        invoice_type=data.invoice_type,
        vendor_id=vendor_id,
        amount=data.amount,
        status="Draft",
        file_path=nas_job_path(current_app.config["NAS_BASE_PATH"], job, "Invoices", f"{invoice_no}.pdf"),
        notes=data.notes,
        created_by_id=current_user.id,
    )
    db.session.add(invoice)
    db.session.commit()
    return jsonify(invoice.to_dict()), 201


@servicing_bp.route("/jobs/<int:job_id>/completion-certificate", methods=["GET"])
@api_login_required
def completion_certificate(job_id: int):
    job, error = _load_visible_job(job_id)
    if error is not None:
        return error
    if job.status != "Completed":
        return bad_request("Certificate is only available for completed jobs")

    return render_template(
        "servicing/completion_certificate.html",
        job=job,
        certificate_no=completion_certificate_number(job.id),
        issued_on=datetime.utcnow().date(),
    )
