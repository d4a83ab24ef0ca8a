"""
Tests for line-item pricing and the quotations API
"""
from datetime import date, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from ampere.models import QuotationItemLibrary
from ampere.pricing import apply_document_totals, build_lines, price_line
from ampere.schemas import LineItemIn


def _items():
    return [
        {"description": "Electrical works", "category": "SUBTITLE", "quantity": 5, "unitPrice": 99},
        {"description": "LED panel 600x600", "quantity": 10, "unit": "pcs", "unitPrice": 45.5,
         "discount": 10, "taxRate": 9},
        {"description": "Installation labour", "category": "SERVICES", "quantity": 2, "unit": "day",
         "unitPrice": 300},
    ]


@pytest.mark.unit
class TestPricing:
    """Tests for per-line and document totals"""

    def test_price_line(self):
        line = SimpleNamespace()
        price_line(line, LineItemIn(description="Cable", quantity=3, unit_price=10, discount=10, tax_rate=9))
        assert line.subtotal == Decimal("30.00")
        assert line.discount_amount == Decimal("3.00")
        assert line.tax_amount == Decimal("2.43")
        assert line.total_price == Decimal("29.43")

    def test_subtitle_lines_carry_no_amounts(self):
        line = SimpleNamespace()
        price_line(line, LineItemIn(description="Section A", quantity=4, unit_price=50, is_subtitle=True))
        assert line.category == "SUBTITLE"
        assert line.quantity == Decimal("0")
        assert line.total_price == Decimal("0.00")

    def test_build_lines_keeps_order(self):
        items = [LineItemIn(description=d) for d in ("first", "second", "third")]
        lines = build_lines(SimpleNamespace, items)
        assert [(l.order, l.description) for l in lines] == [(0, "first"), (1, "second"), (2, "third")]

    def test_document_totals_with_header_discount(self):
        items = [LineItemIn.model_validate(i) for i in _items()]
        lines = build_lines(SimpleNamespace, items)
        doc = SimpleNamespace()
        apply_document_totals(doc, lines, Decimal("50"))

        # 455 - 45.50 + 600 = 1009.50 net; tax 409.50 * 9% = 36.86
        assert doc.subtotal == Decimal("1009.50")
        assert doc.tax_amount == Decimal("36.86")
        assert doc.discount_amount == Decimal("50.00")
        assert doc.total_amount == Decimal("996.36")


@pytest.mark.integration
class TestQuotationCreate:
    """Tests for creating quotations"""

    def test_create(self, login_as, users, sample_client):
        response = login_as("PROJECT_MANAGER").post("/api/quotations", json={
            "title": "Lighting upgrade",
            "clientId": sample_client.id,
            "tenderId": "no-tender",
            "projectId": "",
            "items": _items(),
        })
        assert response.status_code == 201
        body = response.get_json()
        assert body["quotationNumber"] == "AE-Q-C001-001"
        assert body["status"] == "DRAFT"
        assert body["tenderId"] is None
        assert body["requiresApproval"] is True
        assert body["salesperson"]["id"] == users["PROJECT_MANAGER"].id
        assert body["validUntil"] == (date.today() + timedelta(days=30)).isoformat()
        assert [i["description"] for i in body["items"]] == [
            "Electrical works", "LED panel 600x600", "Installation labour",
        ]
        assert [a["action"] for a in body["activities"]] == ["CREATED"]

    def test_small_quotation_needs_no_approval(self, login_as, sample_client):
        body = login_as("FINANCE").post("/api/quotations", json={
            "title": "Spare fuse",
            "clientId": sample_client.id,
            "items": [{"description": "Fuse", "quantity": 2, "unitPrice": 5}],
        }).get_json()
        assert body["totalAmount"] == 10.0
        assert body["requiresApproval"] is False

    def test_line_items_key_and_subtitle_rows(self, login_as, sample_client):
        response = login_as("PROJECT_MANAGER").post("/api/quotations", json={
            "title": "Pump room",
            "clientId": sample_client.id,
            "lineItems": [
                {"type": "subtitle", "description": "Mechanical", "quantity": "", "unitPrice": ""},
                {"type": "item", "description": "Pump", "quantity": 2, "unitPrice": 500},
            ],
        })
        assert response.status_code == 201
        body = response.get_json()
        assert [i["category"] for i in body["items"]] == ["SUBTITLE", "MATERIALS"]
        assert body["totalAmount"] == 1000.0

    def test_numbers_increment_per_client(self, login_as, sample_client):
        api = login_as("ADMIN")
        payload = {"title": "Q", "clientId": sample_client.id}
        api.post("/api/quotations", json=payload)
        second = api.post("/api/quotations", json=payload).get_json()
        assert second["quotationNumber"] == "AE-Q-C001-002"

    def test_item_library_upsert(self, login_as, sample_client):
        api = login_as("ADMIN")
        for price in (40, 60):
            api.post("/api/quotations", json={
                "title": "Q",
                "clientId": sample_client.id,
                "items": [{"description": "LED panel", "unit": "pcs", "unitPrice": price}],
            })
        entry = QuotationItemLibrary.query.one()
        assert entry.usage_count == 2
        assert entry.average_unit_price == Decimal("50.00")
        assert entry.last_unit_price == Decimal("60.00")

        library = api.get("/api/quotations/item-library?search=led").get_json()
        assert library[0]["usageCount"] == 2

    def test_sales_cannot_create(self, login_as, sample_client):
        response = login_as("SALES").post("/api/quotations", json={"title": "Q", "clientId": sample_client.id})
        assert response.status_code == 403

    def test_unknown_tender(self, login_as, sample_client):
        response = login_as("ADMIN").post(
            "/api/quotations", json={"title": "Q", "clientId": sample_client.id, "tenderId": 42}
        )
        assert response.status_code == 404


@pytest.mark.integration
class TestQuotationUpdate:
    """Tests for edits, status changes and deletion"""

    @pytest.fixture
    def quotation(self, login_as, sample_client):
        return login_as("FINANCE").post("/api/quotations", json={
            "title": "Panel replacement",
            "clientId": sample_client.id,
            "items": [{"description": "Panel", "quantity": 1, "unitPrice": 80}],
        }).get_json()

    def test_creator_can_change_status(self, login_as, quotation):
        response = login_as("FINANCE").put(f"/api/quotations/{quotation['id']}", json={"status": "SUBMITTED"})
        assert response.status_code == 200
        activity = response.get_json()["activities"]
        changed = [a for a in activity if a["action"] == "STATUS_CHANGED"]
        assert changed[0]["oldValue"] == "DRAFT"
        assert changed[0]["newValue"] == "SUBMITTED"

    def test_unrelated_user_cannot_change_status(self, login_as, quotation):
        response = login_as("SALES").put(f"/api/quotations/{quotation['id']}", json={"status": "APPROVED"})
        assert response.status_code == 403

    def test_full_edit_recalculates_totals(self, login_as, quotation):
        response = login_as("PROJECT_MANAGER").put(f"/api/quotations/{quotation['id']}", json={
            "title": "Panel replacement (rev)",
            "items": [{"description": "Panel", "quantity": 3, "unitPrice": 80}],
        })
        body = response.get_json()
        assert response.status_code == 200
        assert body["title"] == "Panel replacement (rev)"
        assert body["totalAmount"] == 240.0
        assert body["requiresApproval"] is True

    def test_full_edit_restricted_to_managers(self, login_as, quotation):
        response = login_as("FINANCE").put(f"/api/quotations/{quotation['id']}", json={"title": "Changed"})
        assert response.status_code == 403

    def test_only_drafts_are_editable(self, login_as, quotation):
        api = login_as("PROJECT_MANAGER")
        api.put(f"/api/quotations/{quotation['id']}", json={"status": "SENT"})
        response = api.put(f"/api/quotations/{quotation['id']}", json={"title": "Too late"})
        assert response.status_code == 403

    def test_delete_draft(self, login_as, quotation):
        api = login_as("SUPERADMIN")
        assert api.delete(f"/api/quotations/{quotation['id']}").status_code == 200
        assert api.get(f"/api/quotations/{quotation['id']}").status_code == 404

    def test_delete_forbidden_message(self, login_as, quotation):
        response = login_as("FINANCE").delete(f"/api/quotations/{quotation['id']}")
        assert response.status_code == 403
        assert response.get_json()["error"] == "Only Super Admins and Project Managers can delete quotations"
