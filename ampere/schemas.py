"""
Request schemas for the JSON API.


Field names are snake_case (matching model columns); the UI sends camelCase,
accepted through the alias generator. Unknown keys are ignored.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .models import FINANCE, PROJECT_MANAGER, ROLES, SALES, SUPERADMIN, VENDOR


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        str_strip_whitespace=True,
    )

    @model_validator(mode="before")
    @classmethod
    def blank_strings_to_none(cls, data):
        # HTML selects and date inputs submit "" for "nothing chosen"
        if isinstance(data, dict):
            return {
                key: None if isinstance(value, str) and not value.strip() else value
                for key, value in data.items()
            }
        return data


# ---------------------------------------------------------------------
# Auth / users
# ---------------------------------------------------------------------
class LoginIn(ApiModel):
    """`username` may be the user name or the email address."""

    username: Optional[str] = None
    email: Optional[str] = None
    password: str = Field(min_length=1)

    @property
    def identifier(self) -> str:
        return (self.username or self.email or "").strip()


class _NewUserFields(ApiModel):
    name: str = Field(min_length=1, max_length=120)
    email: EmailStr
    password: str = Field(min_length=6)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company_name: Optional[str] = None


# ADMIN accounts are only created by a SUPERADMIN
SIGNUP_ROLES = (SUPERADMIN, PROJECT_MANAGER, FINANCE, SALES, VENDOR)


class SignupIn(_NewUserFields):
    role: str = PROJECT_MANAGER

    @field_validator("role", mode="before")
    @classmethod
    def unknown_role_to_default(cls, value):
        return value if value in SIGNUP_ROLES else PROJECT_MANAGER


class UserCreate(_NewUserFields):
    role: Literal[ROLES] = PROJECT_MANAGER
    is_active: bool = True


class UserUpdate(ApiModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(default=None, min_length=6)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: Optional[Literal[ROLES]] = None
    company_name: Optional[str] = None
    is_active: Optional[bool] = None


# ---------------------------------------------------------------------
# Clients / vendors
# ---------------------------------------------------------------------
class _PartyFields(ApiModel):
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = "Singapore"
    postal_code: Optional[str] = None
    contact_person: Optional[str] = None
    company_reg: Optional[str] = None
    website: Optional[str] = None
    notes: Optional[str] = None


class ClientIn(_PartyFields):
    name: str = Field(min_length=1)
    client_type: Literal["ENTERPRISE", "SME", "GOVERNMENT", "INDIVIDUAL"] = "ENTERPRISE"


class ClientUpdate(ClientIn):
    name: Optional[str] = Field(default=None, min_length=1)
    client_type: Optional[Literal["ENTERPRISE", "SME", "GOVERNMENT", "INDIVIDUAL"]] = None
    country: Optional[str] = None


class VendorIn(_PartyFields):
    name: str = Field(min_length=1)
    vendor_type: Literal["SUPPLIER", "CONTRACTOR", "CONSULTANT", "SERVICE_PROVIDER"] = "SUPPLIER"
    payment_terms: Literal["NET_7", "NET_15", "NET_30", "NET_60", "NET_90", "COD", "ADVANCE"] = "NET_30"
    contract_details: Optional[str] = None
    is_approved: bool = False


class VendorUpdate(VendorIn):
    name: Optional[str] = Field(default=None, min_length=1)
    vendor_type: Optional[Literal["SUPPLIER", "CONTRACTOR", "CONSULTANT", "SERVICE_PROVIDER"]] = None
    payment_terms: Optional[Literal["NET_7", "NET_15", "NET_30", "NET_60", "NET_90", "COD", "ADVANCE"]] = None
    is_approved: Optional[bool] = None
    country: Optional[str] = None


# ---------------------------------------------------------------------
# Projects / tenders
# ---------------------------------------------------------------------
PROJECT_STATUSES = ("PLANNING", "IN_PROGRESS", "ON_HOLD", "COMPLETED", "CANCELLED")
PRIORITIES = ("LOW", "MEDIUM", "HIGH", "URGENT")


class ProjectIn(ApiModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    project_type: Literal["REGULAR", "MAINTENANCE"] = "REGULAR"
    work_type: Optional[str] = None
    status: Literal[PROJECT_STATUSES] = "PLANNING"
    priority: Literal[PRIORITIES] = "MEDIUM"
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    estimated_budget: Optional[Decimal] = Field(default=None, ge=0)
    progress: int = Field(default=0, ge=0, le=100)
    address: Optional[str] = None
    client_id: int
    manager_id: Optional[int] = None
    salesperson_id: Optional[int] = None


class ProjectUpdate(ApiModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    work_type: Optional[str] = None
    status: Optional[Literal[PROJECT_STATUSES]] = None
    priority: Optional[Literal[PRIORITIES]] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    estimated_budget: Optional[Decimal] = Field(default=None, ge=0)
    actual_cost: Optional[Decimal] = Field(default=None, ge=0)
    progress: Optional[int] = Field(default=None, ge=0, le=100)
    address: Optional[str] = None
    manager_id: Optional[int] = None
    salesperson_id: Optional[int] = None


TENDER_STATUSES = ("OPEN", "SUBMITTED", "WON", "LOST", "EXPIRED")


class TenderIn(ApiModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    client_id: int
    estimated_value: Optional[Decimal] = Field(default=None, ge=0)
    submission_deadline: date
    opening_date: Optional[date] = None
    status: Literal[TENDER_STATUSES] = "OPEN"
    priority: Literal[PRIORITIES] = "MEDIUM"
    requirements: Optional[str] = None
    contact_person: Optional[str] = None
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = None
    location: Optional[str] = None
    category: str = "GENERAL"
    nas_document_path: Optional[str] = None
    assigned_to_id: Optional[int] = None
    salesperson_id: Optional[int] = None


class TenderUpdate(TenderIn):
    title: Optional[str] = Field(default=None, min_length=1)
    client_id: Optional[int] = None
    submission_deadline: Optional[date] = None
    status: Optional[Literal[TENDER_STATUSES]] = None
    priority: Optional[Literal[PRIORITIES]] = None
    category: Optional[str] = None


# ---------------------------------------------------------------------
# Quotations
# ---------------------------------------------------------------------
QUOTATION_STATUSES = (
    "DRAFT", "SUBMITTED", "UNDER_REVIEW", "APPROVED", "REJECTED", "SENT", "ACCEPTED", "EXPIRED", "CANCELLED",
)
ITEM_CATEGORIES = ("MATERIALS", "SERVICES", "SUBCONTRACTORS", "MISCELLANEOUS", "SUBTITLE")
LINE_ITEMS_ALIAS = AliasChoices("items", "lineItems")


class LineItemIn(ApiModel):
    description: str = Field(min_length=1)
    category: Literal[ITEM_CATEGORIES] = "MATERIALS"
    quantity: Decimal = Field(default=Decimal("1"), ge=0)
    unit: str = "pcs"
    unit_price: Decimal = Field(default=Decimal("0"), ge=0)
    discount: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    notes: Optional[str] = None
    is_subtitle: bool = False

    @model_validator(mode="before")
    @classmethod
    def subtitle_type(cls, data):
        # editor rows mark headings with type: "subtitle"
        if isinstance(data, dict) and data.get("type") == "subtitle":
            return {**data, "isSubtitle": True, "category": "SUBTITLE", "quantity": 0, "unitPrice": 0}
        return data


class QuotationIn(ApiModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    client_reference: Optional[str] = None
    client_id: int
    project_id: Optional[int] = None
    tender_id: Optional[int] = None
    salesperson_id: Optional[int] = None
    valid_until: Optional[date] = None
    currency: str = Field(default="SGD", min_length=3, max_length=3)
    terms: Optional[str] = None
    notes: Optional[str] = None
    template_type: Optional[str] = None
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0)
    items: List[LineItemIn] = Field(default_factory=list, validation_alias=LINE_ITEMS_ALIAS)

    @field_validator("tender_id", "project_id", "salesperson_id", mode="before")
    @classmethod
    def empty_select_to_none(cls, value):
        # the UI sends "no-tender" / "no-project" / "" for an empty select
        if isinstance(value, str) and (not value.strip() or value.startswith("no-")):
            return None
        return value


class QuotationUpdate(QuotationIn):
    title: Optional[str] = Field(default=None, min_length=1)
    client_id: Optional[int] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    discount_amount: Optional[Decimal] = Field(default=None, ge=0)
    status: Optional[Literal[QUOTATION_STATUSES]] = None
    items: Optional[List[LineItemIn]] = Field(default=None, validation_alias=LINE_ITEMS_ALIAS)


# ---------------------------------------------------------------------
# Invoices / finance
# ---------------------------------------------------------------------
INVOICE_STATUSES = ("DRAFT", "SENT", "PAID", "OVERDUE", "CANCELLED")


class LegacyInvoiceItemIn(ApiModel):
    description: str = Field(min_length=1)
    quantity: Decimal = Field(default=Decimal("1"), ge=0)
    unit: Optional[str] = None
    unit_price: Decimal = Field(default=Decimal("0"), ge=0)


class LegacyInvoiceIn(ApiModel):
    description: Optional[str] = None
    client_id: int
    project_id: Optional[int] = None
    tax_amount: Decimal = Field(default=Decimal("0"), ge=0)
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0)
    status: Literal[INVOICE_STATUSES] = "DRAFT"
    issue_date: Optional[date] = None
    due_date: date
    terms: Optional[str] = None
    notes: Optional[str] = None
    items: List[LegacyInvoiceItemIn] = Field(min_length=1)


class LegacyInvoiceUpdate(ApiModel):
    description: Optional[str] = None
    project_id: Optional[int] = None
    tax_amount: Optional[Decimal] = Field(default=None, ge=0)
    discount_amount: Optional[Decimal] = Field(default=None, ge=0)
    amount_paid: Optional[Decimal] = Field(default=None, ge=0)
    status: Optional[Literal[INVOICE_STATUSES]] = None
    due_date: Optional[date] = None
    paid_date: Optional[date] = None
    terms: Optional[str] = None
    notes: Optional[str] = None
    items: Optional[List[LegacyInvoiceItemIn]] = None


class PurchaseOrderIn(ApiModel):
    vendor_id: int
    project_id: Optional[int] = None
    vendor_code: Optional[str] = Field(default=None, max_length=20)
    currency: str = Field(default="SGD", min_length=3, max_length=3)
    delivery_date: Optional[date] = None
    delivery_address: Optional[str] = None
    terms: Optional[str] = None
    notes: Optional[str] = None
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0)
    items: List[LineItemIn] = Field(min_length=1, validation_alias=LINE_ITEMS_ALIAS)


class VendorInvoiceIn(ApiModel):
    vendor_id: int
    project_id: Optional[int] = None
    purchase_order_id: Optional[int] = None
    supplier_invoice_ref: Optional[str] = None
    subtotal: Decimal = Field(ge=0)
    tax_amount: Decimal = Field(default=Decimal("0"), ge=0)
    currency: str = Field(default="SGD", min_length=3, max_length=3)
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    received_date: Optional[date] = None
    description: Optional[str] = None
    notes: Optional[str] = None


class PaymentIn(ApiModel):
    amount: Decimal = Field(gt=0)
    currency: str = Field(default="SGD", min_length=3, max_length=3)
    payment_method: Literal["BANK_TRANSFER", "CHEQUE", "CASH", "CREDIT_CARD", "PAYNOW", "OTHER"] = "BANK_TRANSFER"
    payment_date: Optional[date] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    vendor_invoice_id: Optional[int] = None
    client_invoice_id: Optional[int] = None


# ---------------------------------------------------------------------
# Servicing
# ---------------------------------------------------------------------
FREQUENCIES = ("Monthly", "Quarterly", "BiAnnual", "Annual", "Custom")
JOB_STATUSES = ("Scheduled", "InProgress", "Completed", "Endorsed", "Cancelled")


class ServiceContractIn(ApiModel):
    title: str = Field(min_length=1)
    client_id: int
    project_ids: List[int] = Field(default_factory=list)
    service_type: str = Field(min_length=1)
    frequency: Literal[FREQUENCIES]
    start_date: date
    end_date: date
    contract_value: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None


class ServiceContractUpdate(ApiModel):
    title: Optional[str] = Field(default=None, min_length=1)
    service_type: Optional[str] = None
    status: Optional[Literal["Active", "Suspended", "Expired", "Terminated"]] = None
    end_date: Optional[date] = None
    contract_value: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None
    project_ids: Optional[List[int]] = None


class ServiceJobIn(ApiModel):
    contract_id: int
    project_id: Optional[int] = None
    assigned_to_type: Literal["Staff", "Vendor"] = "Staff"
    assigned_to_id: Optional[int] = None
    assigned_vendor_id: Optional[int] = None
    scheduled_date: date


class ServiceJobUpdate(ApiModel):
    status: Optional[Literal[JOB_STATUSES]] = None
    completion_notes: Optional[str] = None
    assigned_to_type: Optional[Literal["Staff", "Vendor"]] = None
    assigned_to_id: Optional[int] = None
    assigned_vendor_id: Optional[int] = None
    scheduled_date: Optional[date] = None


class JobSheetIn(ApiModel):
    notes: Optional[str] = None


class VendorReportIn(ApiModel):
    file_name: str = Field(min_length=1)
    notes: Optional[str] = None


class ServiceInvoiceIn(ApiModel):
    invoice_type: Literal["Client", "Vendor"]
    amount: Decimal = Field(ge=0)
    vendor_id: Optional[int] = None
    notes: Optional[str] = None


# ---------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------
TASK_STATUSES = ("TODO", "IN_PROGRESS", "COMPLETED", "CANCELLED")


class TaskIn(ApiModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    priority: Literal[PRIORITIES] = "MEDIUM"
    due_date: Optional[date] = None
    assignee_id: int
    project_id: Optional[int] = None
    client_id: Optional[int] = None


class TaskUpdate(ApiModel):
    title: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    priority: Optional[Literal[PRIORITIES]] = None
    status: Optional[Literal[TASK_STATUSES]] = None
    due_date: Optional[date] = None
    assignee_id: Optional[int] = None


class TaskCommentIn(ApiModel):
    content: str = Field(min_length=1)


# ---------------------------------------------------------------------
# Xero
# ---------------------------------------------------------------------
class XeroSyncIn(ApiModel):
    sync_type: Literal["contacts", "invoices", "all"] = "all"
    direction: Literal["from_xero", "to_xero", "both"] = "from_xero"
