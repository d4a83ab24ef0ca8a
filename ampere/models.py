"""
Ampere Business Management – Domain Models

Entities:
- Users and roles
- Clients, Vendors, Projects, Tenders
- Quotations (+ items, item library, activity trail)
- Invoices: legacy invoices, client invoices (Xero-synced), vendor invoices
- Purchase orders (+ items, activity trail), payments
- Service contracts, jobs, job sheets, vendor reports, service invoices
- Tasks (+ comments, notifications)
- Xero integration tokens, audit log

IMPORTANT:
- Human-readable numbers (AE-C-001, PO-001-VEN-20240315, ...) are issued by
  ampere.numbering inside the creating transaction; the unique constraints
  below are the last line against duplicates.
- to_dict() returns the camelCase JSON shape consumed by the UI.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP

from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from .extensions import db


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def to_decimal(value) -> Decimal:
    """Convert Numeric/None to Decimal safely."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value))


def money(x: Decimal) -> Decimal:
    return x.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _num(value) -> float | None:
    """Numeric column -> JSON number."""
    if value is None:
        return None
    return float(value)


def _iso(value) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def days_past_due(due: date | None, settled: bool, today: date | None = None) -> tuple[bool, int]:
    """
    Return (is_overdue, days_past_due) for a due date.

    Settled documents (paid, delivered, completed) are never overdue.
    """
    if due is None or settled:
        return False, 0
    today = today or datetime.utcnow().date()
    if isinstance(due, datetime):
        due = due.date()
    if due < today:
        return True, (today - due).days
    return False, 0


class TimestampMixin:
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


def _user_brief(user: "User | None") -> dict | None:
    if user is None:
        return None
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "firstName": user.first_name,
        "lastName": user.last_name,
    }


def _client_brief(client: "Client | None") -> dict | None:
    if client is None:
        return None
    return {"id": client.id, "name": client.name, "clientNumber": client.client_number}


def _vendor_brief(vendor: "Vendor | None") -> dict | None:
    if vendor is None:
        return None
    return {"id": vendor.id, "name": vendor.name, "vendorNumber": vendor.vendor_number}


def _project_brief(project: "Project | None") -> dict | None:
    if project is None:
        return None
    return {"id": project.id, "name": project.name, "projectNumber": project.project_number}


# ---------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------
SUPERADMIN = "SUPERADMIN"
ADMIN = "ADMIN"
PROJECT_MANAGER = "PROJECT_MANAGER"
FINANCE = "FINANCE"
SALES = "SALES"
VENDOR = "VENDOR"

ROLES = (SUPERADMIN, ADMIN, PROJECT_MANAGER, FINANCE, SALES, VENDOR)


class User(UserMixin, TimestampMixin, db.Model):
    """Login user. `name` is the username; login accepts name or email."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(120), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    first_name = db.Column(db.String(120), nullable=True)
    last_name = db.Column(db.String(120), nullable=True)
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(30), nullable=False, default=PROJECT_MANAGER, index=True)
    company_name = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    last_login_at = db.Column(db.DateTime, nullable=True)

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def has_role(self, *roles: str) -> bool:
        return self.role in roles

    @property
    def full_name(self) -> str:
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) if parts else self.name

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "role": self.role,
            "companyName": self.company_name,
            "isActive": self.is_active,
            "lastLoginAt": _iso(self.last_login_at),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<User {self.name}>"


# ---------------------------------------------------------------------
# Clients / Vendors
# ---------------------------------------------------------------------
class Client(TimestampMixin, db.Model):
    __tablename__ = "clients"

    id = db.Column(db.Integer, primary_key=True)
    client_number = db.Column(db.String(30), unique=True, nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    address = db.Column(db.Text, nullable=True)
    city = db.Column(db.String(120), nullable=True)
    state = db.Column(db.String(120), nullable=True)
    country = db.Column(db.String(120), nullable=True, default="Singapore")
    postal_code = db.Column(db.String(20), nullable=True)
    contact_person = db.Column(db.String(255), nullable=True)
    company_reg = db.Column(db.String(100), nullable=True)
    website = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    client_type = db.Column(db.String(30), nullable=False, default="ENTERPRISE")

    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    xero_contact_id = db.Column(db.String(64), unique=True, nullable=True, index=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_by = db.relationship("User", foreign_keys=[created_by_id])

    projects = db.relationship("Project", back_populates="client", lazy=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "clientNumber": self.client_number,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "country": self.country,
            "postalCode": self.postal_code,
            "contactPerson": self.contact_person,
            "companyReg": self.company_reg,
            "website": self.website,
            "notes": self.notes,
            "clientType": self.client_type,
            "isActive": self.is_active,
            "xeroContactId": self.xero_contact_id,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "createdBy": _user_brief(self.created_by),
        }

    def __repr__(self):
        return f"<Client {self.client_number or self.id} {self.name}>"


class Vendor(TimestampMixin, db.Model):
    __tablename__ = "vendors"

    id = db.Column(db.Integer, primary_key=True)
    vendor_number = db.Column(db.String(30), unique=True, nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    address = db.Column(db.Text, nullable=True)
    city = db.Column(db.String(120), nullable=True)
    state = db.Column(db.String(120), nullable=True)
    country = db.Column(db.String(120), nullable=True, default="Singapore")
    postal_code = db.Column(db.String(20), nullable=True)
    contact_person = db.Column(db.String(255), nullable=True)
    company_reg = db.Column(db.String(100), nullable=True)
    website = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    vendor_type = db.Column(db.String(30), nullable=False, default="SUPPLIER")
    payment_terms = db.Column(db.String(30), nullable=False, default="NET_30")
    contract_details = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    is_approved = db.Column(db.Boolean, default=False, nullable=False)
    xero_contact_id = db.Column(db.String(64), unique=True, nullable=True, index=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_by = db.relationship("User", foreign_keys=[created_by_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vendorNumber": self.vendor_number,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "country": self.country,
            "postalCode": self.postal_code,
            "contactPerson": self.contact_person,
            "companyReg": self.company_reg,
            "website": self.website,
            "notes": self.notes,
            "vendorType": self.vendor_type,
            "paymentTerms": self.payment_terms,
            "contractDetails": self.contract_details,
            "isActive": self.is_active,
            "isApproved": self.is_approved,
            "xeroContactId": self.xero_contact_id,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "createdBy": _user_brief(self.created_by),
        }

    def __repr__(self):
        return f"<Vendor {self.vendor_number or self.id} {self.name}>"


# ---------------------------------------------------------------------
# Projects / Tenders
# ---------------------------------------------------------------------
class Project(TimestampMixin, db.Model):
    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    project_number = db.Column(db.String(30), unique=True, nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)
    project_type = db.Column(db.String(20), nullable=False, default="REGULAR")
    work_type = db.Column(db.String(50), nullable=True)
    status = db.Column(db.String(30), nullable=False, default="PLANNING", index=True)
    priority = db.Column(db.String(20), nullable=False, default="MEDIUM")

    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    estimated_budget = db.Column(db.Numeric(14, 2), nullable=True)
    actual_cost = db.Column(db.Numeric(14, 2), nullable=True)
    progress = db.Column(db.Integer, nullable=False, default=0)
    address = db.Column(db.Text, nullable=True)

    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    manager_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    salesperson_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)

    client = db.relationship("Client", back_populates="projects")
    manager = db.relationship("User", foreign_keys=[manager_id])
    salesperson = db.relationship("User", foreign_keys=[salesperson_id])
    created_by = db.relationship("User", foreign_keys=[created_by_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "projectNumber": self.project_number,
            "name": self.name,
            "description": self.description,
            "projectType": self.project_type,
            "workType": self.work_type,
            "status": self.status,
            "priority": self.priority,
            "startDate": _iso(self.start_date),
            "endDate": _iso(self.end_date),
            "estimatedBudget": _num(self.estimated_budget),
            "actualCost": _num(self.actual_cost),
            "progress": self.progress,
            "address": self.address,
            "clientId": self.client_id,
            "client": _client_brief(self.client),
            "manager": _user_brief(self.manager),
            "salesperson": _user_brief(self.salesperson),
            "createdBy": _user_brief(self.created_by),
            "isActive": self.is_active,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


class Tender(TimestampMixin, db.Model):
    __tablename__ = "tenders"

    id = db.Column(db.Integer, primary_key=True)
    tender_number = db.Column(db.String(30), unique=True, nullable=False, index=True)

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    estimated_value = db.Column(db.Numeric(14, 2), nullable=True)
    submission_deadline = db.Column(db.Date, nullable=False)
    opening_date = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(30), nullable=False, default="OPEN", index=True)
    priority = db.Column(db.String(20), nullable=False, default="MEDIUM")
    requirements = db.Column(db.Text, nullable=True)
    contact_person = db.Column(db.String(255), nullable=True)
    contact_email = db.Column(db.String(255), nullable=True)
    contact_phone = db.Column(db.String(50), nullable=True)
    location = db.Column(db.String(255), nullable=True)
    category = db.Column(db.String(50), nullable=False, default="GENERAL")
    nas_document_path = db.Column(db.String(500), nullable=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)

    assigned_to_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    salesperson_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    client = db.relationship("Client")
    assigned_to = db.relationship("User", foreign_keys=[assigned_to_id])
    salesperson = db.relationship("User", foreign_keys=[salesperson_id])
    created_by = db.relationship("User", foreign_keys=[created_by_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenderNumber": self.tender_number,
            "title": self.title,
            "description": self.description,
            "clientId": self.client_id,
            "client": _client_brief(self.client),
            "estimatedValue": _num(self.estimated_value),
            "submissionDeadline": _iso(self.submission_deadline),
            "openingDate": _iso(self.opening_date),
            "status": self.status,
            "priority": self.priority,
            "requirements": self.requirements,
            "contactPerson": self.contact_person,
            "contactEmail": self.contact_email,
            "contactPhone": self.contact_phone,
            "location": self.location,
            "category": self.category,
            "nasDocumentPath": self.nas_document_path,
            "isActive": self.is_active,
            "assignedTo": _user_brief(self.assigned_to),
            "salesperson": _user_brief(self.salesperson),
            "createdBy": _user_brief(self.created_by),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


# ---------------------------------------------------------------------
# Quotations
# ---------------------------------------------------------------------
class Quotation(TimestampMixin, db.Model):
    __tablename__ = "quotations"

    id = db.Column(db.Integer, primary_key=True)
    quotation_number = db.Column(db.String(50), unique=True, nullable=False, index=True)
    version = db.Column(db.Integer, nullable=False, default=1)

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    client_reference = db.Column(db.String(255), nullable=True)

    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="SET NULL"), nullable=True, index=True)
    tender_id = db.Column(db.Integer, db.ForeignKey("tenders.id", ondelete="SET NULL"), nullable=True, index=True)
    salesperson_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    subtotal = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="SGD")

    status = db.Column(db.String(30), nullable=False, default="DRAFT", index=True)
    valid_until = db.Column(db.Date, nullable=False)
    terms = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    template_type = db.Column(db.String(50), nullable=True)
    requires_approval = db.Column(db.Boolean, nullable=False, default=False)

    client = db.relationship("Client")
    project = db.relationship("Project")
    tender = db.relationship("Tender")
    salesperson = db.relationship("User", foreign_keys=[salesperson_id])
    created_by = db.relationship("User", foreign_keys=[created_by_id])

    items = db.relationship(
        "QuotationItem",
        back_populates="quotation",
        cascade="all, delete-orphan",
        order_by="QuotationItem.order",
    )
    activities = db.relationship(
        "QuotationActivity",
        back_populates="quotation",
        cascade="all, delete-orphan",
        order_by="QuotationActivity.created_at.desc()",
    )

    def to_dict(self, detail: bool = False) -> dict:
        data = {
            "id": self.id,
            "quotationNumber": self.quotation_number,
            "version": self.version,
            "title": self.title,
            "description": self.description,
            "clientReference": self.client_reference,
            "clientId": self.client_id,
            "projectId": self.project_id,
            "tenderId": self.tender_id,
            "client": _client_brief(self.client),
            "project": _project_brief(self.project),
            "tender": {"id": self.tender.id, "title": self.tender.title,
                       "tenderNumber": self.tender.tender_number} if self.tender else None,
            "salesperson": _user_brief(self.salesperson),
            "createdBy": _user_brief(self.created_by),
            "subtotal": _num(self.subtotal),
            "taxAmount": _num(self.tax_amount),
            "discountAmount": _num(self.discount_amount),
            "totalAmount": _num(self.total_amount),
            "currency": self.currency,
            "status": self.status,
            "validUntil": _iso(self.valid_until),
            "terms": self.terms,
            "notes": self.notes,
            "templateType": self.template_type,
            "requiresApproval": self.requires_approval,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
        if detail:
            data["items"] = [item.to_dict() for item in self.items]
            data["activities"] = [a.to_dict() for a in self.activities]
        else:
            data["itemCount"] = len(self.items)
        return data


class QuotationItem(db.Model):
    __tablename__ = "quotation_items"

    id = db.Column(db.Integer, primary_key=True)
    quotation_id = db.Column(
        db.Integer,
        db.ForeignKey("quotations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    description = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(30), nullable=False, default="MATERIALS")
    quantity = db.Column(db.Numeric(12, 2), nullable=False, default=1)
    unit = db.Column(db.String(30), nullable=False, default="pcs")
    unit_price = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    discount = db.Column(db.Numeric(6, 2), nullable=False, default=0)
    tax_rate = db.Column(db.Numeric(6, 2), nullable=False, default=0)
    subtotal = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_price = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)
    order = db.Column(db.Integer, nullable=False, default=0)

    quotation = db.relationship("Quotation", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "category": self.category,
            "quantity": _num(self.quantity),
            "unit": self.unit,
            "unitPrice": _num(self.unit_price),
            "discount": _num(self.discount),
            "taxRate": _num(self.tax_rate),
            "subtotal": _num(self.subtotal),
            "discountAmount": _num(self.discount_amount),
            "taxAmount": _num(self.tax_amount),
            "totalPrice": _num(self.total_price),
            "notes": self.notes,
            "order": self.order,
        }


class QuotationItemLibrary(TimestampMixin, db.Model):
    """Reusable line descriptions, keyed on (description, category, unit)."""

    __tablename__ = "quotation_item_library"
    __table_args__ = (
        db.UniqueConstraint("description", "category", "unit", name="uq_item_library_key"),
    )

    id = db.Column(db.Integer, primary_key=True)
    description = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(30), nullable=False)
    unit = db.Column(db.String(30), nullable=False)
    average_unit_price = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    last_unit_price = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    usage_count = db.Column(db.Integer, nullable=False, default=1)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)


class QuotationActivity(db.Model):
    __tablename__ = "quotation_activities"

    id = db.Column(db.Integer, primary_key=True)
    quotation_id = db.Column(
        db.Integer,
        db.ForeignKey("quotations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    action = db.Column(db.String(40), nullable=False)
    description = db.Column(db.Text, nullable=True)
    old_value = db.Column(db.String(255), nullable=True)
    new_value = db.Column(db.String(255), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    user_email = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    quotation = db.relationship("Quotation", back_populates="activities")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "action": self.action,
            "description": self.description,
            "oldValue": self.old_value,
            "newValue": self.new_value,
            "userId": self.user_id,
            "userEmail": self.user_email,
            "createdAt": _iso(self.created_at),
        }


# ---------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------
class LegacyInvoice(TimestampMixin, db.Model):
    """Stand-alone invoice kept from before the finance module."""

    __tablename__ = "legacy_invoices"

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(30), unique=True, nullable=False, index=True)

    description = db.Column(db.Text, nullable=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="SET NULL"), nullable=True, index=True)

    subtotal = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    amount_paid = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    status = db.Column(db.String(20), nullable=False, default="DRAFT", index=True)
    issue_date = db.Column(db.Date, nullable=False, default=lambda: datetime.utcnow().date())
    due_date = db.Column(db.Date, nullable=False)
    paid_date = db.Column(db.Date, nullable=True)
    terms = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    client = db.relationship("Client")
    project = db.relationship("Project")
    created_by = db.relationship("User", foreign_keys=[created_by_id])
    items = db.relationship(
        "LegacyInvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="LegacyInvoiceItem.order",
    )

    def recalc_totals(self):
        subtotal = Decimal("0.00")
        for line in self.items:
            line.total_price = money(to_decimal(line.quantity) * to_decimal(line.unit_price))
            subtotal += line.total_price
        self.subtotal = money(subtotal)
        self.total_amount = money(
            self.subtotal + to_decimal(self.tax_amount) - to_decimal(self.discount_amount)
        )

    def to_dict(self, detail: bool = False) -> dict:
        data = {
            "id": self.id,
            "invoiceNumber": self.invoice_number,
            "description": self.description,
            "clientId": self.client_id,
            "projectId": self.project_id,
            "client": _client_brief(self.client),
            "project": _project_brief(self.project),
            "subtotal": _num(self.subtotal),
            "taxAmount": _num(self.tax_amount),
            "discountAmount": _num(self.discount_amount),
            "totalAmount": _num(self.total_amount),
            "amountPaid": _num(self.amount_paid),
            "status": self.status,
            "issueDate": _iso(self.issue_date),
            "dueDate": _iso(self.due_date),
            "paidDate": _iso(self.paid_date),
            "terms": self.terms,
            "notes": self.notes,
            "createdBy": _user_brief(self.created_by),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
        if detail:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class LegacyInvoiceItem(db.Model):
    __tablename__ = "legacy_invoice_items"

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(
        db.Integer,
        db.ForeignKey("legacy_invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    description = db.Column(db.Text, nullable=False)
    quantity = db.Column(db.Numeric(12, 2), nullable=False, default=1)
    unit = db.Column(db.String(30), nullable=True)
    unit_price = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_price = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    order = db.Column(db.Integer, nullable=False, default=0)

    invoice = db.relationship("LegacyInvoice", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "quantity": _num(self.quantity),
            "unit": self.unit,
            "unitPrice": _num(self.unit_price),
            "totalPrice": _num(self.total_price),
            "order": self.order,
        }


class ClientInvoice(TimestampMixin, db.Model):
    """Receivable invoice; mirrored with Xero ACCREC invoices."""

    __tablename__ = "client_invoices"

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(50), unique=True, nullable=False, index=True)

    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="SET NULL"), nullable=True)

    description = db.Column(db.Text, nullable=True)
    subtotal = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    amount_paid = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    amount_due = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="SGD")

    status = db.Column(db.String(20), nullable=False, default="DRAFT", index=True)
    issue_date = db.Column(db.Date, nullable=False, default=lambda: datetime.utcnow().date())
    due_date = db.Column(db.Date, nullable=True)
    paid_date = db.Column(db.Date, nullable=True)

    xero_invoice_id = db.Column(db.String(64), unique=True, nullable=True, index=True)
    is_xero_synced = db.Column(db.Boolean, nullable=False, default=False)
    last_xero_sync = db.Column(db.DateTime, nullable=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    client = db.relationship("Client")
    project = db.relationship("Project")

    def to_dict(self) -> dict:
        overdue, days = days_past_due(self.due_date, self.status in ("PAID", "CANCELLED"))
        return {
            "id": self.id,
            "invoiceNumber": self.invoice_number,
            "clientId": self.client_id,
            "client": _client_brief(self.client),
            "project": _project_brief(self.project),
            "description": self.description,
            "subtotal": _num(self.subtotal),
            "taxAmount": _num(self.tax_amount),
            "totalAmount": _num(self.total_amount),
            "amountPaid": _num(self.amount_paid),
            "amountDue": _num(self.amount_due),
            "currency": self.currency,
            "status": self.status,
            "issueDate": _iso(self.issue_date),
            "dueDate": _iso(self.due_date),
            "paidDate": _iso(self.paid_date),
            "xeroInvoiceId": self.xero_invoice_id,
            "isXeroSynced": self.is_xero_synced,
            "lastXeroSync": _iso(self.last_xero_sync),
            "isOverdue": overdue,
            "daysPastDue": days,
            "createdAt": _iso(self.created_at),
        }


class VendorInvoice(TimestampMixin, db.Model):
    __tablename__ = "vendor_invoices"

    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(50), unique=True, nullable=False, index=True)
    supplier_invoice_ref = db.Column(db.String(100), nullable=True)

    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="SET NULL"), nullable=True)
    purchase_order_id = db.Column(
        db.Integer, db.ForeignKey("purchase_orders.id", ondelete="SET NULL"), nullable=True
    )

    subtotal = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    amount_paid = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="SGD")

    status = db.Column(db.String(20), nullable=False, default="PENDING", index=True)
    invoice_date = db.Column(db.Date, nullable=False, default=lambda: datetime.utcnow().date())
    due_date = db.Column(db.Date, nullable=True)
    received_date = db.Column(db.Date, nullable=True)
    paid_date = db.Column(db.Date, nullable=True)
    description = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    vendor = db.relationship("Vendor")
    project = db.relationship("Project")
    purchase_order = db.relationship("PurchaseOrder")
    created_by = db.relationship("User", foreign_keys=[created_by_id])

    @property
    def outstanding(self) -> Decimal:
        return money(to_decimal(self.total_amount) - to_decimal(self.amount_paid))

    def to_dict(self) -> dict:
        overdue, days = days_past_due(self.due_date, self.status in ("PAID", "CANCELLED"))
        return {
            "id": self.id,
            "invoiceNumber": self.invoice_number,
            "supplierInvoiceRef": self.supplier_invoice_ref,
            "vendorId": self.vendor_id,
            "vendor": _vendor_brief(self.vendor),
            "project": _project_brief(self.project),
            "purchaseOrderId": self.purchase_order_id,
            "subtotal": _num(self.subtotal),
            "taxAmount": _num(self.tax_amount),
            "totalAmount": _num(self.total_amount),
            "amountPaid": _num(self.amount_paid),
            "outstanding": _num(self.outstanding),
            "currency": self.currency,
            "status": self.status,
            "invoiceDate": _iso(self.invoice_date),
            "dueDate": _iso(self.due_date),
            "receivedDate": _iso(self.received_date),
            "paidDate": _iso(self.paid_date),
            "description": self.description,
            "notes": self.notes,
            "createdBy": _user_brief(self.created_by),
            "isOverdue": overdue,
            "daysPastDue": days,
            "createdAt": _iso(self.created_at),
        }


# ---------------------------------------------------------------------
# Purchase orders / payments
# ---------------------------------------------------------------------
class PurchaseOrder(TimestampMixin, db.Model):
    __tablename__ = "purchase_orders"

    id = db.Column(db.Integer, primary_key=True)
    po_number = db.Column(db.String(60), unique=True, nullable=False, index=True)

    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="SET NULL"), nullable=True)

    subtotal = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="SGD")

    status = db.Column(db.String(20), nullable=False, default="DRAFT", index=True)
    issue_date = db.Column(db.Date, nullable=False, default=lambda: datetime.utcnow().date())
    delivery_date = db.Column(db.Date, nullable=True)
    delivery_address = db.Column(db.Text, nullable=True)
    terms = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    requested_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    vendor = db.relationship("Vendor")
    project = db.relationship("Project")
    requested_by = db.relationship("User", foreign_keys=[requested_by_id])
    created_by = db.relationship("User", foreign_keys=[created_by_id])
    items = db.relationship(
        "PurchaseOrderItem",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderItem.order",
    )
    activities = db.relationship(
        "PurchaseOrderActivity",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        overdue, days = days_past_due(
            self.delivery_date, self.status in ("DELIVERED", "COMPLETED", "CANCELLED")
        )
        return {
            "id": self.id,
            "poNumber": self.po_number,
            "vendorId": self.vendor_id,
            "vendor": _vendor_brief(self.vendor),
            "projectId": self.project_id,
            "project": _project_brief(self.project),
            "subtotal": _num(self.subtotal),
            "taxAmount": _num(self.tax_amount),
            "discountAmount": _num(self.discount_amount),
            "totalAmount": _num(self.total_amount),
            "currency": self.currency,
            "status": self.status,
            "issueDate": _iso(self.issue_date),
            "deliveryDate": _iso(self.delivery_date),
            "deliveryAddress": self.delivery_address,
            "terms": self.terms,
            "notes": self.notes,
            "requestedBy": _user_brief(self.requested_by),
            "createdBy": _user_brief(self.created_by),
            "items": [item.to_dict() for item in self.items],
            "isOverdue": overdue,
            "daysPastDue": days,
            "createdAt": _iso(self.created_at),
        }


class PurchaseOrderItem(db.Model):
    __tablename__ = "purchase_order_items"

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(
        db.Integer,
        db.ForeignKey("purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    description = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(30), nullable=False, default="MATERIALS")
    quantity = db.Column(db.Numeric(12, 2), nullable=False, default=1)
    unit = db.Column(db.String(30), nullable=False, default="pcs")
    unit_price = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    discount = db.Column(db.Numeric(6, 2), nullable=False, default=0)
    tax_rate = db.Column(db.Numeric(6, 2), nullable=False, default=0)
    subtotal = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total_price = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)
    order = db.Column(db.Integer, nullable=False, default=0)

    purchase_order = db.relationship("PurchaseOrder", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "category": self.category,
            "quantity": _num(self.quantity),
            "unit": self.unit,
            "unitPrice": _num(self.unit_price),
            "discount": _num(self.discount),
            "taxRate": _num(self.tax_rate),
            "subtotal": _num(self.subtotal),
            "discountAmount": _num(self.discount_amount),
            "taxAmount": _num(self.tax_amount),
            "totalPrice": _num(self.total_price),
            "notes": self.notes,
            "order": self.order,
        }


class PurchaseOrderActivity(db.Model):
    __tablename__ = "purchase_order_activities"

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(
        db.Integer,
        db.ForeignKey("purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    action = db.Column(db.String(40), nullable=False)
    description = db.Column(db.Text, nullable=True)
    old_value = db.Column(db.String(255), nullable=True)
    new_value = db.Column(db.String(255), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    user_email = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    purchase_order = db.relationship("PurchaseOrder", back_populates="activities")


class Payment(TimestampMixin, db.Model):
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    payment_number = db.Column(db.String(40), unique=True, nullable=False, index=True)

    amount = db.Column(db.Numeric(14, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="SGD")
    payment_method = db.Column(db.String(30), nullable=False, default="BANK_TRANSFER")
    payment_date = db.Column(db.Date, nullable=False, default=lambda: datetime.utcnow().date())
    reference = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(20), nullable=False, default="COMPLETED", index=True)
    notes = db.Column(db.Text, nullable=True)

    vendor_invoice_id = db.Column(
        db.Integer, db.ForeignKey("vendor_invoices.id", ondelete="SET NULL"), nullable=True, index=True
    )
    client_invoice_id = db.Column(
        db.Integer, db.ForeignKey("client_invoices.id", ondelete="SET NULL"), nullable=True, index=True
    )
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    vendor_invoice = db.relationship("VendorInvoice", backref=db.backref("payments", lazy=True))
    client_invoice = db.relationship("ClientInvoice", backref=db.backref("payments", lazy=True))
    created_by = db.relationship("User", foreign_keys=[created_by_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "paymentNumber": self.payment_number,
            "amount": _num(self.amount),
            "currency": self.currency,
            "paymentMethod": self.payment_method,
            "paymentDate": _iso(self.payment_date),
            "reference": self.reference,
            "status": self.status,
            "notes": self.notes,
            "vendorInvoiceId": self.vendor_invoice_id,
            "clientInvoiceId": self.client_invoice_id,
            "vendorInvoice": {
                "id": self.vendor_invoice.id,
                "invoiceNumber": self.vendor_invoice.invoice_number,
                "vendor": _vendor_brief(self.vendor_invoice.vendor),
            } if self.vendor_invoice else None,
            "clientInvoice": {
                "id": self.client_invoice.id,
                "invoiceNumber": self.client_invoice.invoice_number,
                "client": _client_brief(self.client_invoice.client),
            } if self.client_invoice else None,
            "createdBy": _user_brief(self.created_by),
            "createdAt": _iso(self.created_at),
        }


# ---------------------------------------------------------------------
# Servicing
# ---------------------------------------------------------------------
service_contract_projects = db.Table(
    "service_contract_projects",
    db.Column("contract_id", db.Integer, db.ForeignKey("service_contracts.id", ondelete="CASCADE"),
              primary_key=True),
    db.Column("project_id", db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
              primary_key=True),
)


class ServiceContract(TimestampMixin, db.Model):
    __tablename__ = "service_contracts"

    id = db.Column(db.Integer, primary_key=True)
    contract_no = db.Column(db.String(30), unique=True, nullable=False, index=True)

    title = db.Column(db.String(255), nullable=False)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    service_type = db.Column(db.String(50), nullable=False)
    frequency = db.Column(db.String(20), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    contract_value = db.Column(db.Numeric(14, 2), nullable=True)
    status = db.Column(db.String(20), nullable=False, default="Active", index=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    client = db.relationship("Client")
    created_by = db.relationship("User", foreign_keys=[created_by_id])
    projects = db.relationship("Project", secondary=service_contract_projects, lazy="selectin")
    jobs = db.relationship(
        "ServiceJob",
        back_populates="contract",
        cascade="all, delete-orphan",
        order_by="ServiceJob.scheduled_date",
    )

    def to_dict(self, detail: bool = False) -> dict:
        data = {
            "id": self.id,
            "contractNo": self.contract_no,
            "title": self.title,
            "clientId": self.client_id,
            "client": _client_brief(self.client),
            "serviceType": self.service_type,
            "frequency": self.frequency,
            "startDate": _iso(self.start_date),
            "endDate": _iso(self.end_date),
            "contractValue": _num(self.contract_value),
            "status": self.status,
            "notes": self.notes,
            "projects": [_project_brief(p) for p in self.projects],
            "createdBy": _user_brief(self.created_by),
            "jobCount": len(self.jobs),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
        if detail:
            data["jobs"] = [job.to_dict() for job in self.jobs]
        return data


class ServiceJob(TimestampMixin, db.Model):
    __tablename__ = "service_jobs"

    id = db.Column(db.Integer, primary_key=True)
    contract_id = db.Column(
        db.Integer,
        db.ForeignKey("service_contracts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="SET NULL"), nullable=True)

    # Staff -> assigned_to_id is a user; Vendor -> assigned_vendor_id
    assigned_to_type = db.Column(db.String(10), nullable=False, default="Staff")
    assigned_to_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    assigned_vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id", ondelete="SET NULL"), nullable=True)

    scheduled_date = db.Column(db.Date, nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default="Scheduled", index=True)
    completion_notes = db.Column(db.Text, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)

    contract = db.relationship("ServiceContract", back_populates="jobs")
    client = db.relationship("Client")
    project = db.relationship("Project")
    assigned_user = db.relationship("User", foreign_keys=[assigned_to_id])
    assigned_vendor = db.relationship("Vendor", foreign_keys=[assigned_vendor_id])
    job_sheets = db.relationship("ServiceJobSheet", back_populates="job", cascade="all, delete-orphan")
    vendor_reports = db.relationship("ServiceVendorReport", back_populates="job", cascade="all, delete-orphan")
    invoices = db.relationship("ServiceInvoice", back_populates="job", cascade="all, delete-orphan")

    def to_dict(self, detail: bool = False) -> dict:
        data = {
            "id": self.id,
            "contractId": self.contract_id,
            "contract": {
                "id": self.contract.id,
                "contractNo": self.contract.contract_no,
                "title": self.contract.title,
                "serviceType": self.contract.service_type,
            } if self.contract else None,
            "client": _client_brief(self.client),
            "project": _project_brief(self.project),
            "assignedToType": self.assigned_to_type,
            "assignedToId": self.assigned_to_id,
            "assignedUser": _user_brief(self.assigned_user),
            "assignedVendor": _vendor_brief(self.assigned_vendor),
            "scheduledDate": _iso(self.scheduled_date),
            "status": self.status,
            "completionNotes": self.completion_notes,
            "completedAt": _iso(self.completed_at),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
        if detail:
            data["jobSheets"] = [s.to_dict() for s in self.job_sheets]
            data["vendorReports"] = [r.to_dict() for r in self.vendor_reports]
            data["invoices"] = [i.to_dict() for i in self.invoices]
        return data


class ServiceJobSheet(db.Model):
    __tablename__ = "service_job_sheets"

    id = db.Column(db.Integer, primary_key=True)
    job_id = db.Column(db.Integer, db.ForeignKey("service_jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    file_path = db.Column(db.String(500), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    generated_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    generated_at = db.Column(db.DateTime, default=datetime.utcnow)

    job = db.relationship("ServiceJob", back_populates="job_sheets")
    generated_by = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "jobId": self.job_id,
            "filePath": self.file_path,
            "notes": self.notes,
            "generatedBy": _user_brief(self.generated_by),
            "generatedAt": _iso(self.generated_at),
        }


class ServiceVendorReport(db.Model):
    __tablename__ = "service_vendor_reports"

    id = db.Column(db.Integer, primary_key=True)
    job_id = db.Column(db.Integer, db.ForeignKey("service_jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id", ondelete="SET NULL"), nullable=True)
    file_name = db.Column(db.String(255), nullable=False)
    file_path = db.Column(db.String(500), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    uploaded_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    uploaded_at = db.Column(db.DateTime, default=datetime.utcnow)

    job = db.relationship("ServiceJob", back_populates="vendor_reports")
    vendor = db.relationship("Vendor")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "jobId": self.job_id,
            "vendor": _vendor_brief(self.vendor),
            "fileName": self.file_name,
            "filePath": self.file_path,
            "notes": self.notes,
            "uploadedById": self.uploaded_by_id,
            "uploadedAt": _iso(self.uploaded_at),
        }


class ServiceInvoice(db.Model):
    __tablename__ = "service_invoices"

    id = db.Column(db.Integer, primary_key=True)
    invoice_no = db.Column(db.String(40), unique=True, nullable=False, index=True)
    job_id = db.Column(db.Integer, db.ForeignKey("service_jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    invoice_type = db.Column(db.String(10), nullable=False)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id", ondelete="SET NULL"), nullable=True)
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="Draft")
    file_path = db.Column(db.String(500), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    job = db.relationship("ServiceJob", back_populates="invoices")
    vendor = db.relationship("Vendor")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoiceNo": self.invoice_no,
            "jobId": self.job_id,
            "invoiceType": self.invoice_type,
            "vendor": _vendor_brief(self.vendor),
            "amount": _num(self.amount),
            "status": self.status,
            "filePath": self.file_path,
            "notes": self.notes,
            "createdAt": _iso(self.created_at),
        }


# ---------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------
class Task(TimestampMixin, db.Model):
    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    priority = db.Column(db.String(20), nullable=False, default="MEDIUM")
    status = db.Column(db.String(20), nullable=False, default="TODO", index=True)
    due_date = db.Column(db.Date, nullable=True)
    completed_at = db.Column(db.DateTime, nullable=True)

    assigner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    assignee_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="SET NULL"), nullable=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id", ondelete="SET NULL"), nullable=True)

    is_archived = db.Column(db.Boolean, nullable=False, default=False, index=True)

    assigner = db.relationship("User", foreign_keys=[assigner_id])
    assignee = db.relationship("User", foreign_keys=[assignee_id])
    project = db.relationship("Project")
    client = db.relationship("Client")
    comments = db.relationship(
        "TaskComment",
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="TaskComment.created_at",
    )
    notifications = db.relationship("TaskNotification", back_populates="task", cascade="all, delete-orphan")

    def to_dict(self, detail: bool = False) -> dict:
        overdue, days = days_past_due(self.due_date, self.status in ("COMPLETED", "CANCELLED"))
        data = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "status": self.status,
            "dueDate": _iso(self.due_date),
            "completedAt": _iso(self.completed_at),
            "assignerId": self.assigner_id,
            "assigneeId": self.assignee_id,
            "assigner": _user_brief(self.assigner),
            "assignee": _user_brief(self.assignee),
            "project": _project_brief(self.project),
            "client": _client_brief(self.client),
            "isArchived": self.is_archived,
            "isOverdue": overdue,
            "daysPastDue": days,
            "commentCount": len(self.comments),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }
        if detail:
            data["comments"] = [c.to_dict() for c in self.comments]
        return data


class TaskComment(db.Model):
    __tablename__ = "task_comments"

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    task = db.relationship("Task", back_populates="comments")
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "content": self.content,
            "user": _user_brief(self.user),
            "createdAt": _iso(self.created_at),
        }


class TaskNotification(db.Model):
    __tablename__ = "task_notifications"

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = db.Column(db.String(30), nullable=False)
    message = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    task = db.relationship("Task", back_populates="notifications")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "taskId": self.task_id,
            "type": self.type,
            "message": self.message,
            "isRead": self.is_read,
            "createdAt": _iso(self.created_at),
        }


# ---------------------------------------------------------------------
# Integrations / audit
# ---------------------------------------------------------------------
class XeroIntegration(TimestampMixin, db.Model):
    """OAuth tokens for the connected Xero organisation (one active row)."""

    __tablename__ = "xero_integrations"

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(64), nullable=False)
    tenant_name = db.Column(db.String(255), nullable=True)
    access_token = db.Column(db.Text, nullable=False)
    refresh_token = db.Column(db.Text, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    scopes = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    last_sync_at = db.Column(db.DateTime, nullable=True)
    last_sync_type = db.Column(db.String(20), nullable=True)
    last_sync_result = db.Column(db.Text, nullable=True)

    connected_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    connected_by = db.relationship("User")


class AuditLog(db.Model):
    """Who changed which record, with before/after snapshots."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    user_email_snapshot = db.Column(db.String(255), nullable=True)

    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    action = db.Column(db.String(20), nullable=False, index=True)

    before_data = db.Column(db.Text, nullable=True)
    after_data = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    user = db.relationship("User", backref=db.backref("audit_entries", lazy=True))
