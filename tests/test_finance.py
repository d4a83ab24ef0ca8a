"""
Tests for legacy invoices, purchase orders, vendor invoices and payments
"""
from datetime import date, timedelta

import pytest

from ampere.models import ClientInvoice, LegacyInvoice, PurchaseOrderActivity, VendorInvoice


@pytest.mark.integration
class TestLegacyInvoices:
    """Tests for the legacy invoices API"""

    def _create(self, api, client_id, **extra):
        payload = {
            "clientId": client_id,
            "dueDate": (date.today() + timedelta(days=30)).isoformat(),
            "taxAmount": 9,
            "discountAmount": 4,
            "items": [
                {"description": "Survey", "quantity": 2, "unitPrice": 50},
                {"description": "Report", "quantity": 1, "unitPrice": 20.5},
            ],
        }
        payload.update(extra)
        return api.post("/api/invoices", json=payload)

    def test_create_computes_totals(self, login_as, sample_client):
        response = self._create(login_as("FINANCE"), sample_client.id)
        assert response.status_code == 201
        body = response.get_json()
        assert body["invoiceNumber"] == f"INV-{date.today().year}-0001"
        assert body["subtotal"] == 120.5
        assert body["totalAmount"] == 125.5

    def test_items_required(self, login_as, sample_client):
        response = self._create(login_as("FINANCE"), sample_client.id, items=[])
        assert response.status_code == 400

    def test_marking_paid_sets_paid_date(self, login_as, sample_client):
        api = login_as("FINANCE")
        invoice_id = self._create(api, sample_client.id).get_json()["id"]
        response = api.put(f"/api/invoices/{invoice_id}", json={"status": "PAID"})
        assert response.status_code == 200
        assert LegacyInvoice.query.get(invoice_id).paid_date == date.today()

    def test_replacing_items_recalculates(self, login_as, sample_client):
        api = login_as("FINANCE")
        invoice_id = self._create(api, sample_client.id).get_json()["id"]
        body = api.put(f"/api/invoices/{invoice_id}", json={
            "items": [{"description": "Survey", "quantity": 1, "unitPrice": 100}],
        }).get_json()
        assert body["subtotal"] == 100.0
        assert body["totalAmount"] == 105.0

    def test_sales_cannot_create(self, login_as, sample_client):
        assert self._create(login_as("SALES"), sample_client.id).status_code == 403

    def test_only_superadmin_and_finance_delete(self, login_as, sample_client):
        invoice_id = self._create(login_as("FINANCE"), sample_client.id).get_json()["id"]
        assert login_as("PROJECT_MANAGER").delete(f"/api/invoices/{invoice_id}").status_code == 403
        assert login_as("SUPERADMIN").delete(f"/api/invoices/{invoice_id}").status_code == 200


@pytest.mark.integration
class TestPurchaseOrders:
    """Tests for purchase orders"""

    def test_project_manager_creates_po(self, login_as, sample_vendor):
        response = login_as("PROJECT_MANAGER").post("/api/finance/purchase-orders", json={
            "vendorId": sample_vendor.id,
            "vendorCode": "volt",
            "items": [{"description": "Cable 2.5mm", "quantity": 100, "unit": "m", "unitPrice": 1.2, "taxRate": 9}],
        })
        assert response.status_code == 201
        body = response.get_json()
        assert body["poNumber"] == f"PO-001-VOLT-{date.today():%Y%m%d}"
        assert body["totalAmount"] == 130.8
        assert PurchaseOrderActivity.query.one().action == "CREATED"

    def test_finance_cannot_create_po(self, login_as, sample_vendor):
        response = login_as("FINANCE").post("/api/finance/purchase-orders", json={
            "vendorId": sample_vendor.id,
            "items": [{"description": "X"}],
        })
        assert response.status_code == 403

    def test_list_restricted_to_finance_roles(self, login_as, users):
        assert login_as("FINANCE").get("/api/finance/purchase-orders").status_code == 200
        assert login_as("PROJECT_MANAGER").get("/api/finance/purchase-orders").status_code == 403

    def test_overdue_flags(self, login_as, sample_vendor):
        api = login_as("SUPERADMIN")
        po = api.post("/api/finance/purchase-orders", json={
            "vendorId": sample_vendor.id,
            "deliveryDate": (date.today() - timedelta(days=3)).isoformat(),
            "items": [{"description": "X", "unitPrice": 1}],
        }).get_json()
        body = api.get(f"/api/finance/purchase-orders/{po['id']}").get_json()
        assert body["isOverdue"] is True
        assert body["daysPastDue"] == 3


@pytest.mark.integration
class TestPayments:
    """Tests for vendor invoices and payments"""

    @pytest.fixture
    def vendor_invoice(self, login_as, sample_vendor):
        return login_as("FINANCE").post("/api/finance/vendor-invoices", json={
            "vendorId": sample_vendor.id,
            "supplierInvoiceRef": "VS-7781",
            "subtotal": 100,
            "taxAmount": 9,
        }).get_json()

    def test_vendor_invoice_numbering(self, vendor_invoice):
        assert vendor_invoice["invoiceNumber"] == f"VINV-001-{date.today():%Y%m%d}"
        assert vendor_invoice["totalAmount"] == 109.0
        assert vendor_invoice["status"] == "PENDING"

    def test_partial_then_full_payment(self, login_as, vendor_invoice):
        api = login_as("FINANCE")
        first = api.post("/api/finance/payments", json={"amount": 50, "vendorInvoiceId": vendor_invoice["id"]})
        assert first.status_code == 201
        assert first.get_json()["paymentNumber"] == f"PAY-001-{date.today():%Y%m%d}"
        assert VendorInvoice.query.get(vendor_invoice["id"]).status == "PARTIALLY_PAID"

        api.post("/api/finance/payments", json={"amount": 59, "vendorInvoiceId": vendor_invoice["id"]})
        invoice = VendorInvoice.query.get(vendor_invoice["id"])
        assert invoice.status == "PAID"
        assert invoice.paid_date == date.today()

    def test_client_invoice_payment_updates_amount_due(self, db, login_as, sample_client):
        invoice = ClientInvoice(invoice_number="CI-1", client_id=sample_client.id, total_amount=200, amount_due=200)
        db.session.add(invoice)
        db.session.commit()

        login_as("FINANCE").post("/api/finance/payments", json={"amount": 80, "clientInvoiceId": invoice.id})
        refreshed = ClientInvoice.query.get(invoice.id)
        assert float(refreshed.amount_due) == 120.0
        assert refreshed.status == "PARTIALLY_PAID"

    def test_payment_cannot_target_both_sides(self, db, login_as, vendor_invoice, sample_client):
        invoice = ClientInvoice(invoice_number="CI-2", client_id=sample_client.id, total_amount=10)
        db.session.add(invoice)
        db.session.commit()
        response = login_as("FINANCE").post("/api/finance/payments", json={
            "amount": 5, "vendorInvoiceId": vendor_invoice["id"], "clientInvoiceId": invoice.id,
        })
        assert response.status_code == 400

    def test_amount_must_be_positive(self, login_as, users):
        response = login_as("FINANCE").post("/api/finance/payments", json={"amount": 0})
        assert response.status_code == 400

    def test_sales_cannot_pay(self, login_as, vendor_invoice):
        response = login_as("SALES").post("/api/finance/payments", json={"amount": 1})
        assert response.status_code == 403
