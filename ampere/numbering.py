"""
ampere/numbering.py

Human-readable sequential reference numbers.

Every generator scans the numbers already issued under the same prefix,
takes the highest numeric suffix and adds one (first number is 1).
Generators run inside the creating request's session, before commit.

IMPORTANT:
- Suffixes are compared numerically, so AE-C-1000 follows AE-C-999.
- Two concurrent requests can still compute the same number; the unique
  constraint on each number column turns that into an IntegrityError,
  which the app maps to 409.
"""

from __future__ import annotations

import re
from datetime import date, datetime

from sqlalchemy import select

from .extensions import db
from .models import (
    Client,
    LegacyInvoice,
    Payment,
    Project,
    PurchaseOrder,
    Quotation,
    ServiceContract,
    ServiceInvoice,
    Tender,
    Vendor,
    VendorInvoice,
)

PROJECT_PREFIXES = {"REGULAR": "PRJ", "MAINTENANCE": "MNT"}


def _today(today: date | None) -> date:
    return today or datetime.utcnow().date()


def _highest_suffix(column, like_pattern: str, regex: str) -> int:
    """
    Highest integer captured by `regex` group 1 among values LIKE `like_pattern`.
    Returns 0 when nothing matches.
    """
    compiled = re.compile(regex)
    highest = 0
    for value in db.session.execute(select(column).where(column.like(like_pattern))).scalars():
        if not value:
            continue
        match = compiled.match(value)
        if match:
            highest = max(highest, int(match.group(1)))
    return highest


# ---------------------------------------------------------------------
# Master data
# ---------------------------------------------------------------------
def next_client_number() -> str:
    """AE-C-001, AE-C-002, ..."""
    n = _highest_suffix(Client.client_number, "AE-C-%", r"AE-C-(\d+)")
    return f"AE-C-{n + 1:03d}"


def next_vendor_number() -> str:
    """AE-V-001, AE-V-002, ..."""
    n = _highest_suffix(Vendor.vendor_number, "AE-V-%", r"AE-V-(\d+)")
    return f"AE-V-{n + 1:03d}"


def next_project_number(project_type: str = "REGULAR", today: date | None = None) -> str:
    """PRJ-YYYY-NNN for regular projects, MNT-YYYY-NNN for maintenance; per type and year."""
    prefix = PROJECT_PREFIXES.get(project_type, "PRJ")
    year = _today(today).year
    n = _highest_suffix(
        Project.project_number, f"{prefix}-{year}-%", rf"{prefix}-{year}-(\d+)"
    )
    return f"{prefix}-{year}-{n + 1:03d}"


def next_tender_number(today: date | None = None) -> str:
    year = _today(today).year
    n = _highest_suffix(Tender.tender_number, f"TND-{year}-%", rf"TND-{year}-(\d+)")
    return f"TND-{year}-{n + 1:03d}"


# ---------------------------------------------------------------------
# Quotations
# ---------------------------------------------------------------------
def client_code(client: Client) -> str:
    """
    Short client code used inside quotation numbers.

    AE-C-007 -> C007. Clients without a number fall back to the first two
    letters of their name plus a two-digit id (Acme, id 5 -> AC05).
    """
    if client.client_number:
        digits = re.sub(r"\D", "", client.client_number)
        if digits:
            return f"C{digits}"
    letters = re.sub(r"[^A-Za-z]", "", client.name or "").upper()[:2] or "XX"
    return f"{letters}{(client.id or 0) % 100:02d}"


def next_quotation_number(client: Client) -> str:
    """AE-Q-{clientCode}-NNN, sequence per client code."""
    prefix = f"AE-Q-{client_code(client)}-"
    n = _highest_suffix(
        Quotation.quotation_number, f"{prefix}%", re.escape(prefix) + r"(\d+)"
    )
    return f"{prefix}{n + 1:03d}"


# ---------------------------------------------------------------------
# Finance
# ---------------------------------------------------------------------
def next_legacy_invoice_number(today: date | None = None) -> str:
    """INV-YYYY-NNNN (four digits)."""
    year = _today(today).year
    n = _highest_suffix(
        LegacyInvoice.invoice_number, f"INV-{year}-%", rf"INV-{year}-(\d+)"
    )
    return f"INV-{year}-{n + 1:04d}"


def _dated_number(column, prefix: str, today: date, tail: str) -> str:
    """
    {prefix}-NNN-...-YYYYMMDD, NNN counted across all numbers of the same year.
    """
    year = today.year
    n = _highest_suffix(column, f"{prefix}-%-{year}____", rf"{re.escape(prefix)}-(\d+)-")
    return f"{prefix}-{n + 1:03d}-{tail}{today.strftime('%Y%m%d')}"


def next_purchase_order_number(vendor_code: str | None = None, today: date | None = None) -> str:
    """PO-NNN-{vendorCode|GEN}-YYYYMMDD."""
    code = (vendor_code or "").strip().upper() or "GEN"
    return _dated_number(PurchaseOrder.po_number, "PO", _today(today), f"{code}-")


def next_vendor_invoice_number(today: date | None = None) -> str:
    """VINV-NNN-YYYYMMDD."""
    return _dated_number(VendorInvoice.invoice_number, "VINV", _today(today), "")


def next_payment_number(today: date | None = None) -> str:
    """PAY-NNN-YYYYMMDD."""
    return _dated_number(Payment.payment_number, "PAY", _today(today), "")


# ---------------------------------------------------------------------
# Servicing
# ---------------------------------------------------------------------
def next_service_contract_number(today: date | None = None) -> str:
    """SVC-YYYY-MM-NNN, sequence per month."""
    prefix = f"SVC-{_today(today).strftime('%Y-%m')}-"
    n = _highest_suffix(
        ServiceContract.contract_no, f"{prefix}%", re.escape(prefix) + r"(\d+)"
    )
    return f"{prefix}{n + 1:03d}"


def next_service_invoice_number(invoice_type: str, today: date | None = None) -> str:
    """SVC-INV-C-YYYY-MM-NNN for client invoices, SVC-INV-V-... for vendor invoices."""
    kind = "V" if invoice_type == "Vendor" else "C"
    prefix = f"SVC-INV-{kind}-{_today(today).strftime('%Y-%m')}-"
    n = _highest_suffix(
        ServiceInvoice.invoice_no, f"{prefix}%", re.escape(prefix) + r"(\d+)"
    )
    return f"{prefix}{n + 1:03d}"


def completion_certificate_number(job_id: int, today: date | None = None) -> str:
    return f"CERT-{job_id}-{_today(today).year}"


# ---------------------------------------------------------------------
# Backfill
# ---------------------------------------------------------------------
def backfill_master_numbers() -> dict:
    """
    Assign AE-C / AE-V numbers to clients and vendors that have none,
    oldest first. Caller commits.
    """
    assigned = {"clients": 0, "vendors": 0}

    clients = (
        Client.query.filter(Client.client_number.is_(None))
        .order_by(Client.created_at.asc(), Client.id.asc())
        .all()
    )
    for client in clients:
        client.client_number = next_client_number()
        db.session.flush()
        assigned["clients"] += 1

    vendors = (
        Vendor.query.filter(Vendor.vendor_number.is_(None))
        .order_by(Vendor.created_at.asc(), Vendor.id.asc())
        .all()
    )
    for vendor in vendors:
        vendor.vendor_number = next_vendor_number()
        db.session.flush()
        assigned["vendors"] += 1

    return assigned
