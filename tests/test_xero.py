"""
Tests for the Xero integration (HTTP and OAuth calls are mocked)
"""
import json
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import requests

from ampere.models import Client, ClientInvoice, Vendor, XeroIntegration
from ampere.xero import XeroError, XeroService


def _response(data):
    response = MagicMock()
    response.json.return_value = data
    return response


def _fake_api(routes, calls=None):
    """requests.request replacement answering by (METHOD, last path segment)"""
    def _request(method, url, **kwargs):
        if calls is not None:
            calls.append((method, url, kwargs))
        return _response(routes[(method, url.rsplit("/", 1)[-1])])

    return _request


@pytest.fixture
def integration(db, users):
    integration = XeroIntegration(
        tenant_id="tenant-1",
        tenant_name="Ampere Engineering",
        access_token="access-1",
        refresh_token="refresh-1",
        expires_at=datetime.utcnow() + timedelta(minutes=30),
        is_active=True,
    )
    db.session.add(integration)
    db.session.commit()
    return integration


CONTACTS = {
    "Contacts": [
        {
            "ContactID": "c-1",
            "Name": "Orchard Mall",
            "EmailAddress": "ap@orchard.test",
            "IsCustomer": True,
            "IsSupplier": False,
            "Phones": [{"PhoneType": "DEFAULT", "PhoneCountryCode": "65", "PhoneNumber": "61234567"}],
            "Addresses": [{"AddressType": "STREET", "AddressLine1": "1 Orchard Rd", "City": "Singapore"}],
        },
        {"ContactID": "c-2", "Name": "Copper Works", "IsCustomer": False, "IsSupplier": True},
        {"ContactID": "c-3", "Name": "Neither", "IsCustomer": False, "IsSupplier": False},
    ]
}


@pytest.mark.unit
class TestTokens:
    """Tests for token refresh"""

    def test_fresh_token_is_not_refreshed(self, app, integration):
        with patch("ampere.xero.OAuth2Session") as session_cls:
            XeroService(integration).ensure_fresh_token()
        session_cls.assert_not_called()

    def test_expiring_token_is_refreshed(self, app, integration):
        integration.expires_at = datetime.utcnow() + timedelta(minutes=2)
        with patch("ampere.xero.OAuth2Session") as session_cls:
            session_cls.return_value.refresh_token.return_value = {
                "access_token": "access-2", "refresh_token": "refresh-2", "expires_in": 1800,
            }
            XeroService(integration).ensure_fresh_token()

        assert integration.access_token == "access-2"
        assert integration.refresh_token == "refresh-2"
        assert integration.expires_at > datetime.utcnow() + timedelta(minutes=25)

    def test_refresh_failure_raises(self, app, integration):
        integration.expires_at = datetime.utcnow()
        with patch("ampere.xero.OAuth2Session") as session_cls:
            session_cls.return_value.refresh_token.side_effect = ValueError("invalid_grant")
            with pytest.raises(XeroError):
                XeroService(integration).ensure_fresh_token()


@pytest.mark.unit
class TestPull:
    """Tests for pulling contacts and invoices"""

    def test_contacts_upsert(self, db, integration, sample_client):
        with patch("ampere.xero.requests.request", side_effect=_fake_api({("GET", "Contacts"): CONTACTS})):
            result = XeroService(integration).pull_contacts()

        assert result == {"clientsCreated": 1, "clientsUpdated": 0, "vendorsCreated": 1,
                          "vendorsUpdated": 0, "skipped": 1}
        client = Client.query.filter_by(xero_contact_id="c-1").one()
        assert client.client_number == "AE-C-002"
        assert client.phone == "65 61234567"
        assert client.address == "1 Orchard Rd"
        assert Vendor.query.filter_by(xero_contact_id="c-2").one().vendor_number == "AE-V-001"

    def test_contacts_update_existing(self, db, integration, sample_client):
        sample_client.xero_contact_id = "c-1"
        db.session.commit()
        with patch("ampere.xero.requests.request", side_effect=_fake_api({("GET", "Contacts"): CONTACTS})):
            result = XeroService(integration).pull_contacts()

        assert result["clientsUpdated"] == 1
        assert sample_client.name == "Orchard Mall"
        assert sample_client.client_number == "AE-C-001"

    def test_invoices_status_mapping(self, db, integration, sample_client):
        sample_client.xero_contact_id = "c-1"
        db.session.commit()
        invoices = {"Invoices": [
            {"InvoiceID": "i-1", "Type": "ACCREC", "InvoiceNumber": "INV-0001", "Status": "AUTHORISED",
             "Contact": {"ContactID": "c-1"}, "SubTotal": 100, "TotalTax": 9, "Total": 109,
             "AmountPaid": 0, "AmountDue": 109, "CurrencyCode": "SGD",
             "DateString": "2025-03-01T00:00:00", "DueDateString": "2025-03-31T00:00:00"},
            {"InvoiceID": "i-2", "Type": "ACCREC", "InvoiceNumber": "INV-0002", "Status": "VOIDED",
             "Contact": {"ContactID": "c-1"}, "Total": 50},
            {"InvoiceID": "i-3", "Type": "ACCREC", "InvoiceNumber": "INV-0003", "Status": "PAID",
             "Contact": {"ContactID": "unknown"}},
            {"InvoiceID": "i-4", "Type": "ACCPAY", "InvoiceNumber": "BILL-1", "Status": "PAID",
             "Contact": {"ContactID": "c-1"}},
        ]}
        with patch("ampere.xero.requests.request", side_effect=_fake_api({("GET", "Invoices"): invoices})):
            result = XeroService(integration).pull_invoices()

        assert result == {"created": 2, "updated": 0, "skipped": 1}
        sent = ClientInvoice.query.filter_by(xero_invoice_id="i-1").one()
        assert sent.status == "SENT"
        assert sent.total_amount == Decimal("109.00")
        assert sent.due_date.isoformat() == "2025-03-31"
        assert sent.is_xero_synced is True
        assert ClientInvoice.query.filter_by(xero_invoice_id="i-2").one().status == "CANCELLED"

    def test_http_error_becomes_xero_error(self, integration):
        failing = MagicMock()
        failing.raise_for_status.side_effect = requests.HTTPError("401 Unauthorized")
        with patch("ampere.xero.requests.request", return_value=failing):
            with pytest.raises(XeroError):
                XeroService(integration).test_connection()


@pytest.mark.unit
class TestPush:
    """Tests for pushing clients and invoices"""

    def test_push_contacts_and_invoices(self, db, integration, sample_client):
        invoice = ClientInvoice(invoice_number="CI-100", client_id=sample_client.id, subtotal=100,
                                total_amount=109, status="SENT")
        db.session.add(invoice)
        db.session.commit()

        calls = []
        routes = {
            ("POST", "Contacts"): {"Contacts": [{"ContactID": "new-contact"}]},
            ("POST", "Invoices"): {"Invoices": [{"InvoiceID": "new-invoice"}]},
        }
        with patch("ampere.xero.requests.request", side_effect=_fake_api(routes, calls)):
            service = XeroService(integration)
            assert service.push_contacts() == {"pushed": 1}
            assert service.push_invoices() == {"pushed": 1, "skipped": 0}

        assert sample_client.xero_contact_id == "new-contact"
        assert invoice.xero_invoice_id == "new-invoice"

        payload = calls[1][2]["json"]["Invoices"][0]
        assert payload["Type"] == "ACCREC"
        assert payload["Contact"] == {"ContactID": "new-contact"}
        assert payload["Status"] == "AUTHORISED"
        assert payload["LineItems"][0]["AccountCode"] == "200"
        assert payload["LineItems"][0]["TaxType"] == "OUTPUT2"
        assert calls[1][2]["headers"]["Xero-tenant-id"] == "tenant-1"

    def test_invoice_without_contact_is_skipped(self, db, integration, sample_client):
        db.session.add(ClientInvoice(invoice_number="CI-101", client_id=sample_client.id))
        db.session.commit()
        with patch("ampere.xero.requests.request") as request_mock:
            assert XeroService(integration).push_invoices() == {"pushed": 0, "skipped": 1}
        request_mock.assert_not_called()


@pytest.mark.integration
class TestXeroRoutes:
    """Tests for the Xero API routes"""

    def test_auth_url_and_state(self, login_as):
        api = login_as("FINANCE")
        response = api.get("/api/xero/auth")
        assert response.status_code == 200
        assert response.get_json()["authUrl"].startswith("https://login.xero.com/identity/connect/authorize")
        with api.session_transaction() as sess:
            assert sess["xero_oauth_state"]

    def test_routes_restricted(self, login_as):
        assert login_as("PROJECT_MANAGER").get("/api/xero/status").status_code == 403

    def test_callback_rejects_wrong_state(self, login_as):
        api = login_as("SUPERADMIN")
        with api.session_transaction() as sess:
            sess["xero_oauth_state"] = "expected"
        response = api.get("/api/xero/callback?code=abc&state=forged")
        assert response.status_code == 400

    def test_callback_stores_integration(self, login_as, users, integration):
        api = login_as("SUPERADMIN")
        with api.session_transaction() as sess:
            sess["xero_oauth_state"] = "expected"

        token = {"access_token": "new-access", "refresh_token": "new-refresh", "expires_in": 1800}
        connections = _response([{"tenantId": "tenant-2", "tenantName": "Ampere SG"}])
        with patch("ampere.xero.OAuth2Session") as session_cls, \
                patch("ampere.xero.requests.get", return_value=connections):
            session_cls.return_value.fetch_token.return_value = token
            response = api.get("/api/xero/callback?code=abc&state=expected")

        assert response.status_code == 302
        assert response.headers["Location"].endswith("/dashboard?xero=connected")
        active = XeroIntegration.query.filter_by(is_active=True).one()
        assert active.tenant_id == "tenant-2"
        assert active.connected_by_id == users["SUPERADMIN"].id

    def test_status(self, login_as, integration):
        body = login_as("FINANCE").get("/api/xero/status").get_json()
        assert body["connected"] is True
        assert body["tenantName"] == "Ampere Engineering"
        assert "accessToken" not in body

    def test_sync_when_not_connected(self, login_as):
        response = login_as("FINANCE").post("/api/xero/sync", json={"syncType": "contacts"})
        assert response.status_code == 400
        assert response.get_json()["error"] == "Xero is not connected"

    def test_sync_records_last_result(self, login_as, integration):
        api = login_as("FINANCE")
        with patch("ampere.xero.requests.request", side_effect=_fake_api({("GET", "Contacts"): CONTACTS})):
            response = api.post("/api/xero/sync", json={"syncType": "contacts", "direction": "from_xero"})
        assert response.status_code == 200
        assert response.get_json()["result"]["contactsFromXero"]["clientsCreated"] == 1

        last = api.get("/api/xero/sync").get_json()
        assert last["lastSyncType"] == "contacts"
        assert last["result"] == json.loads(integration.last_sync_result)

    def test_invalid_direction(self, login_as, integration):
        response = login_as("FINANCE").post("/api/xero/sync", json={"direction": "sideways"})
        assert response.status_code == 400

    def test_connection_check(self, login_as, integration):
        organisations = {"Organisations": [{"Name": "Ampere Engineering", "CountryCode": "SG"}]}
        with patch("ampere.xero.requests.request",
                   side_effect=_fake_api({("GET", "Organisations"): organisations})):
            response = login_as("FINANCE").get("/api/xero/test")
        assert response.status_code == 200
        assert response.get_json()["organisation"]["countryCode"] == "SG"

    def test_refreshed_token_kept_when_sync_fails(self, db, login_as, integration):
        integration.expires_at = datetime.utcnow() + timedelta(minutes=1)
        db.session.commit()
        failing = MagicMock()
        failing.raise_for_status.side_effect = requests.HTTPError("500 boom")

        api = login_as("FINANCE")
        with patch("ampere.xero.OAuth2Session") as session_cls, \
                patch("ampere.xero.requests.request", return_value=failing):
            session_cls.return_value.refresh_token.return_value = {
                "access_token": "access-2", "refresh_token": "refresh-2", "expires_in": 1800,
            }
            response = api.post("/api/xero/sync", json={"syncType": "contacts"})

        assert response.status_code == 502
        db.session.expire_all()
        assert XeroIntegration.query.filter_by(is_active=True).one().refresh_token == "refresh-2"

    def test_pushed_contacts_kept_when_later_push_fails(self, db, login_as, integration, sample_client):
        db.session.add(Client(name="Harbour Front Pte Ltd", client_number="AE-C-002"))
        db.session.commit()

        rate_limited = MagicMock()
        rate_limited.raise_for_status.side_effect = requests.HTTPError("429 Too Many Requests")
        responses = iter([_response({"Contacts": [{"ContactID": "xero-new-1"}]}), rate_limited])

        api = login_as("FINANCE")
        with patch("ampere.xero.requests.request", side_effect=lambda *args, **kwargs: next(responses)):
            response = api.post("/api/xero/sync", json={"syncType": "contacts", "direction": "to_xero"})

        assert response.status_code == 502
        db.session.expire_all()
        linked = [client.xero_contact_id for client in Client.query.order_by(Client.id).all()]
        assert sorted(linked, key=lambda value: value or "") == [None, "xero-new-1"]
