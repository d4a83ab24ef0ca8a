"""
ampere/xero.py

Xero accounting integration.

- OAuth2 authorization-code flow (requests-oauthlib) and token storage in
  XeroIntegration (one active row; reconnecting deactivates older rows).
- Pull: contacts (customers -> Client, suppliers -> Vendor) and ACCREC
  invoices (-> ClientInvoice), upserted by their Xero IDs.
- Push: clients without a Xero contact and client invoices without a
  Xero invoice.

IMPORTANT:
- Access tokens are refreshed when they expire within REFRESH_MARGIN.
- Sync helpers ADD/UPDATE rows in the current session; sync() commits once
  at the end and records the result on the integration row.
- Network and API failures surface as XeroError.
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional

import requests
from dateutil import parser as date_parser
from flask import current_app
from requests_oauthlib import OAuth2Session

from .extensions import db
from .models import Client, ClientInvoice, User, Vendor, XeroIntegration, money
from .numbering import next_client_number, next_vendor_number

logger = logging.getLogger(__name__)

AUTH_URL = "https://login.xero.com/identity/connect/authorize"
TOKEN_URL = "https://identity.xero.com/connect/token"
CONNECTIONS_URL = "https://api.xero.com/connections"
API_BASE = "https://api.xero.com/api.xro/2.0"

REFRESH_MARGIN = timedelta(minutes=5)
PAGE_SIZE = 100

# Xero invoice status -> local ClientInvoice status
INVOICE_STATUS_FROM_XERO = {
    "DRAFT": "DRAFT",
    "SUBMITTED": "SENT",
    "AUTHORISED": "SENT",
    "PAID": "PAID",
    "VOIDED": "CANCELLED",
    "DELETED": "CANCELLED",
}

SALES_ACCOUNT_CODE = "200"
SALES_TAX_TYPE = "OUTPUT2"


class XeroError(Exception):
    """Xero API call failed or returned an unusable response."""


class XeroNotConnected(XeroError):
    """No active Xero integration."""


# ---------------------------------------------------------------------
# OAuth
# ---------------------------------------------------------------------
def _oauth_session(state: Optional[str] = None, token: Optional[dict] = None) -> OAuth2Session:
    cfg = current_app.config
    return OAuth2Session(
        cfg["XERO_CLIENT_ID"],
        redirect_uri=cfg["XERO_REDIRECT_URI"],
        scope=cfg["XERO_SCOPES"],
        state=state,
        token=token,
    )


def _expiry(token: dict) -> datetime:
    return datetime.utcnow() + timedelta(seconds=int(token.get("expires_in") or 1800))


def authorization_url() -> tuple[str, str]:
    """(url, state) for the Xero consent screen."""
    return _oauth_session().authorization_url(AUTH_URL)


def complete_authorization(code: str, state: str, user: Optional[User] = None) -> XeroIntegration:
    """
    Exchange the callback code for tokens, look up the tenant and store a
    new active integration. Caller commits.
    """
    cfg = current_app.config
    try:
        token = _oauth_session(state=state).fetch_token(
            TOKEN_URL,
            code=code,
            client_secret=cfg["XERO_CLIENT_SECRET"],
            timeout=cfg["XERO_HTTP_TIMEOUT"],
        )
    except Exception as exc:
        logger.warning("Xero token exchange failed: %s", exc)
        raise XeroError(f"Token exchange failed: {exc}") from exc

    try:
        response = requests.get(
            CONNECTIONS_URL,
            headers={"Authorization": f"Bearer {token['access_token']}", "Accept": "application/json"},
            timeout=cfg["XERO_HTTP_TIMEOUT"],
        )
        response.raise_for_status()
        connections = response.json()
    except requests.RequestException as exc:
        raise XeroError(f"Could not list Xero connections: {exc}") from exc

    if not connections:
        raise XeroError("No Xero organisation was authorised")
    tenant = connections[0]

    XeroIntegration.query.filter_by(is_active=True).update({"is_active": False})
    integration = XeroIntegration(
        tenant_id=tenant["tenantId"],
        tenant_name=tenant.get("tenantName"),
        access_token=token["access_token"],
        refresh_token=token["refresh_token"],
        expires_at=_expiry(token),
        scopes=" ".join(cfg["XERO_SCOPES"]),
        is_active=True,
        connected_by_id=user.id if user is not None else None,
    )
    db.session.add(integration)
    logger.info("Connected Xero tenant %s (%s)", integration.tenant_name, integration.tenant_id)
    return integration


def active_integration() -> Optional[XeroIntegration]:
    return (
        XeroIntegration.query.filter_by(is_active=True)
        .order_by(XeroIntegration.id.desc())
        .first()
    )


# ---------------------------------------------------------------------
# Mapping helpers
# ---------------------------------------------------------------------
def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date_parser.isoparse(value).date()
    except ValueError:
        return None


def _contact_fields(contact: dict) -> Dict[str, Any]:
    """Local column values from a Xero Contact."""
    fields: Dict[str, Any] = {
        "name": (contact.get("Name") or "").strip(),
        "email": contact.get("EmailAddress") or None,
        "company_reg": contact.get("TaxNumber") or None,
    }

    for phone in contact.get("Phones") or []:
        if phone.get("PhoneType") == "DEFAULT" and phone.get("PhoneNumber"):
            parts = [phone.get("PhoneCountryCode"), phone.get("PhoneAreaCode"), phone.get("PhoneNumber")]
            fields["phone"] = " ".join(p for p in parts if p)
            break

    addresses = contact.get("Addresses") or []
    address = next((a for a in addresses if a.get("AddressType") == "STREET" and a.get("AddressLine1")), None)
    if address is None:
        address = next((a for a in addresses if a.get("AddressLine1")), None)
    if address is not None:
        fields["address"] = address.get("AddressLine1")
        fields["city"] = address.get("City") or None
        fields["state"] = address.get("Region") or None
        fields["postal_code"] = address.get("PostalCode") or None
        if address.get("Country"):
            fields["country"] = address["Country"]

    return {k: v for k, v in fields.items() if v is not None}


def _contact_payload(client: Client) -> dict:
    payload: Dict[str, Any] = {"Name": client.name}
    if client.email:
        payload["EmailAddress"] = client.email
    if client.company_reg:
        payload["TaxNumber"] = client.company_reg
    if client.phone:
        payload["Phones"] = [{"PhoneType": "DEFAULT", "PhoneNumber": client.phone}]
    if client.address:
        payload["Addresses"] = [{
            "AddressType": "STREET",
            "AddressLine1": client.address,
            "City": client.city or "",
            "Region": client.state or "",
            "PostalCode": client.postal_code or "",
            "Country": client.country or "",
        }]
    if client.client_number:
        payload["AccountNumber"] = client.client_number
    return payload


def _invoice_payload(invoice: ClientInvoice) -> dict:
    return {
        "Type": "ACCREC",
        "Contact": {"ContactID": invoice.client.xero_contact_id},
        "InvoiceNumber": invoice.invoice_number,
        "Date": invoice.issue_date.isoformat() if invoice.issue_date else None,
        "DueDate": invoice.due_date.isoformat() if invoice.due_date else None,
        "CurrencyCode": invoice.currency,
        "LineAmountTypes": "Exclusive",
        "Status": "DRAFT" if invoice.status == "DRAFT" else "AUTHORISED",
        "LineItems": [{
            "Description": invoice.description or invoice.invoice_number,
            "Quantity": 1,
            "UnitAmount": float(invoice.subtotal or 0),
            "AccountCode": SALES_ACCOUNT_CODE,
            "TaxType": SALES_TAX_TYPE,
        }],
    }


def _amount(value: Any) -> Decimal:
    return money(Decimal(str(value or 0)))


# ---------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------
class XeroService:
    """API client bound to one stored integration."""

    def __init__(self, integration: XeroIntegration):
        self.integration = integration
        self.timeout = current_app.config["XERO_HTTP_TIMEOUT"]

    @classmethod
    def connected(cls) -> "XeroService":
        integration = active_integration()
        if integration is None:
            raise XeroNotConnected("Xero is not connected")
        return cls(integration)

    # -- tokens ---------------------------------------------------------
    def ensure_fresh_token(self) -> None:
        if self.integration.expires_at > datetime.utcnow() + REFRESH_MARGIN:
            return

        cfg = current_app.config
        try:
            token = _oauth_session().refresh_token(
                TOKEN_URL,
                refresh_token=self.integration.refresh_token,
                auth=(cfg["XERO_CLIENT_ID"], cfg["XERO_CLIENT_SECRET"]),
                timeout=self.timeout,
            )
        except Exception as exc:
            logger.warning("Xero token refresh failed for tenant %s: %s", self.integration.tenant_id, exc)
            raise XeroError(f"Token refresh failed: {exc}") from exc

        self.integration.access_token = token["access_token"]
        self.integration.refresh_token = token.get("refresh_token") or self.integration.refresh_token
        self.integration.expires_at = _expiry(token)
        # Xero refresh tokens are single use; persist before any call that can fail
        db.session.commit()
        logger.info("Refreshed Xero token for tenant %s", self.integration.tenant_id)

    # -- transport ------------------------------------------------------
    def _request(self, method: str, path: str, params: Optional[dict] = None, payload: Optional[dict] = None) -> dict:
        self.ensure_fresh_token()
        url = f"{API_BASE}/{path.lstrip('/')}"
        headers = {
            "Authorization": f"Bearer {self.integration.access_token}",
            "Xero-tenant-id": self.integration.tenant_id,
            "Accept": "application/json",
        }
        try:
            response = requests.request(method, url, headers=headers, params=params, json=payload, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.HTTPError as exc:
            detail = exc.response.text[:500] if exc.response is not None else ""
            logger.warning("Xero %s %s failed: %s %s", method, path, exc, detail)
            raise XeroError(f"Xero API error: {exc}") from exc
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Xero %s %s failed: %s", method, path, exc)
            raise XeroError(f"Xero request failed: {exc}") from exc

    def _paged(self, path: str, key: str, params: Optional[dict] = None) -> list[dict]:
        rows: list[dict] = []
        page = 1
        while True:
            batch = self._request("GET", path, params={**(params or {}), "page": page}).get(key) or []
            rows.extend(batch)
            if len(batch) < PAGE_SIZE:
                return rows
            page += 1

    def test_connection(self) -> dict:
        organisations = self._request("GET", "Organisations").get("Organisations") or []
        if not organisations:
            raise XeroError("Xero returned no organisation")
        org = organisations[0]
        return {
            "name": org.get("Name"),
            "legalName": org.get("LegalName"),
            "countryCode": org.get("CountryCode"),
            "baseCurrency": org.get("BaseCurrency"),
            "tenantId": self.integration.tenant_id,
        }

    # -- pull -----------------------------------------------------------
    def pull_contacts(self) -> dict:
        result = {"clientsCreated": 0, "clientsUpdated": 0, "vendorsCreated": 0, "vendorsUpdated": 0, "skipped": 0}

        for contact in self._paged("Contacts", "Contacts"):
            contact_id = contact.get("ContactID")
            fields = _contact_fields(contact)
            if not contact_id or not fields.get("name") or contact.get("ContactStatus") == "ARCHIVED":
                result["skipped"] += 1
                continue

            is_customer = bool(contact.get("IsCustomer"))
            is_supplier = bool(contact.get("IsSupplier"))
            if not is_customer and not is_supplier:
                result["skipped"] += 1
                continue

            if is_customer:
                client = Client.query.filter_by(xero_contact_id=contact_id).first()
                if client is None:
                    client = Client(xero_contact_id=contact_id, client_number=next_client_number(), **fields)
                    db.session.add(client)
                    result["clientsCreated"] += 1
                else:
                    for key, value in fields.items():
                        setattr(client, key, value)
                    result["clientsUpdated"] += 1
                db.session.flush()

            if is_supplier:
                vendor = Vendor.query.filter_by(xero_contact_id=contact_id).first()
                if vendor is None:
                    vendor = Vendor(xero_contact_id=contact_id, vendor_number=next_vendor_number(), **fields)
                    db.session.add(vendor)
                    result["vendorsCreated"] += 1
                else:
                    for key, value in fields.items():
                        setattr(vendor, key, value)
                    result["vendorsUpdated"] += 1
                db.session.flush()

        return result

    def pull_invoices(self) -> dict:
        result = {"created": 0, "updated": 0, "skipped": 0}

        for data in self._paged("Invoices", "Invoices", params={"where": 'Type=="ACCREC"'}):
            if data.get("Type") != "ACCREC":
                continue
            xero_id = data.get("InvoiceID")
            contact_id = (data.get("Contact") or {}).get("ContactID")
            client = Client.query.filter_by(xero_contact_id=contact_id).first() if contact_id else None
            if not xero_id or client is None:
                result["skipped"] += 1
                continue

            number = data.get("InvoiceNumber") or f"XERO-{xero_id[:8]}"
            invoice = ClientInvoice.query.filter_by(xero_invoice_id=xero_id).first()
            if invoice is None:
                # A locally created invoice that was pushed before its ID was stored
                invoice = ClientInvoice.query.filter_by(invoice_number=number, xero_invoice_id=None).first()
            if invoice is None:
                invoice = ClientInvoice(invoice_number=number, xero_invoice_id=xero_id)
                db.session.add(invoice)
                result["created"] += 1
            else:
                invoice.xero_invoice_id = xero_id
                result["updated"] += 1

            invoice.client_id = client.id
            invoice.description = data.get("Reference") or invoice.description
            invoice.subtotal = _amount(data.get("SubTotal"))
            invoice.tax_amount = _amount(data.get("TotalTax"))
            invoice.total_amount = _amount(data.get("Total"))
            invoice.amount_paid = _amount(data.get("AmountPaid"))
            invoice.amount_due = _amount(data.get("AmountDue"))
            invoice.currency = data.get("CurrencyCode") or invoice.currency or "SGD"
            invoice.status = INVOICE_STATUS_FROM_XERO.get(data.get("Status"), "DRAFT")
            invoice.issue_date = _parse_date(data.get("DateString")) or invoice.issue_date or datetime.utcnow().date()
            invoice.due_date = _parse_date(data.get("DueDateString"))
            if invoice.status == "PAID":
                invoice.paid_date = invoice.paid_date or datetime.utcnow().date()
            else:
                invoice.paid_date = None
            invoice.is_xero_synced = True
            invoice.last_xero_sync = datetime.utcnow()
            db.session.flush()

        return result

    # -- push -----------------------------------------------------------
    def push_contacts(self) -> dict:
        result = {"pushed": 0}
        clients = Client.query.filter(Client.xero_contact_id.is_(None), Client.is_active.is_(True)).all()
        for client in clients:
            contacts = self._request("POST", "Contacts", payload={"Contacts": [_contact_payload(client)]}).get("Contacts") or []
            if contacts and contacts[0].get("ContactID"):
                client.xero_contact_id = contacts[0]["ContactID"]
                result["pushed"] += 1
                # Keep the link even if a later push fails
                db.session.commit()
        return result

    def push_invoices(self) -> dict:
        result = {"pushed": 0, "skipped": 0}
        invoices = (
            ClientInvoice.query.join(Client, ClientInvoice.client_id == Client.id)
            .filter(ClientInvoice.xero_invoice_id.is_(None), ClientInvoice.status != "CANCELLED")
            .all()
        )
        for invoice in invoices:
            if not invoice.client.xero_contact_id:
                result["skipped"] += 1
                continue
            created = self._request("POST", "Invoices", payload={"Invoices": [_invoice_payload(invoice)]}).get("Invoices") or []
            if created and created[0].get("InvoiceID"):
                invoice.xero_invoice_id = created[0]["InvoiceID"]
                invoice.is_xero_synced = True
                invoice.last_xero_sync = datetime.utcnow()
                result["pushed"] += 1
                db.session.commit()
        return result

    # -- orchestration --------------------------------------------------
    def sync(self, sync_type: str = "all", direction: str = "from_xero") -> dict:
        """Run the requested sync, commit, and record the outcome."""
        result: Dict[str, Any] = {}
        pull = direction in ("from_xero", "both")
        push = direction in ("to_xero", "both")

        if sync_type in ("contacts", "all"):
            if pull:
                result["contactsFromXero"] = self.pull_contacts()
            if push:
                result["contactsToXero"] = self.push_contacts()
        if sync_type in ("invoices", "all"):
            if pull:
                result["invoicesFromXero"] = self.pull_invoices()
            if push:
                result["invoicesToXero"] = self.push_invoices()

        self.integration.last_sync_at = datetime.utcnow()
        self.integration.last_sync_type = sync_type
        self.integration.last_sync_result = json.dumps(result)
        db.session.commit()

        logger.info("Xero sync %s/%s for tenant %s: %s", sync_type, direction, self.integration.tenant_id, result)
        return result
