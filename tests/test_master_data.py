"""
Tests for clients, vendors and projects
"""
from datetime import date
from unittest.mock import patch

import pytest

from ampere.models import AuditLog, Client, Project


@pytest.mark.integration
class TestClients:
    """Tests for the clients API"""

    def test_create_assigns_next_number(self, login_as, sample_client):
        api = login_as("SALES")
        response = api.post("/api/clients", json={"name": "Harbour Front", "email": "Info@Harbour.test"})
        assert response.status_code == 201
        body = response.get_json()
        assert body["clientNumber"] == "AE-C-002"
        assert body["email"] == "info@harbour.test"
        assert body["country"] == "Singapore"

    def test_number_collision_is_a_conflict(self, db, login_as, sample_client):
        api = login_as("ADMIN")
        with patch("ampere.blueprints.clients.routes.next_client_number", return_value="AE-C-001"):
            response = api.post("/api/clients", json={"name": "Harbour Front"})
        assert response.status_code == 409
        assert Client.query.count() == 1
        assert AuditLog.query.filter_by(entity_type="Client", action="CREATE").count() == 0

    def test_create_is_audited(self, login_as, users):
        login_as("ADMIN").post("/api/clients", json={"name": "Audited"})
        entry = AuditLog.query.filter_by(entity_type="Client", action="CREATE").one()
        assert entry.user_id == users["ADMIN"].id
        assert entry.user_email_snapshot == "admin@ampere.test"

    def test_blank_name_is_rejected(self, login_as, users):
        response = login_as("ADMIN").post("/api/clients", json={"name": "   "})
        assert response.status_code == 400

    def test_list_is_paginated_and_counts_projects(self, db, login_as, sample_client):
        db.session.add(Project(name="Fit-out", project_number="PRJ-2025-001", client_id=sample_client.id))
        db.session.commit()

        body = login_as("ADMIN").get("/api/clients?limit=5").get_json()
        assert body["pagination"] == {"page": 1, "limit": 5, "total": 1, "totalPages": 1}
        assert body["clients"][0]["projectCount"] == 1

    def test_search(self, db, login_as, sample_client):
        db.session.add(Client(name="Other Co", client_number="AE-C-050"))
        db.session.commit()
        body = login_as("ADMIN").get("/api/clients?search=marina").get_json()
        assert [c["name"] for c in body["clients"]] == ["Marina Towers Pte Ltd"]

    def test_update_ignores_null_for_required_fields(self, login_as, sample_client):
        response = login_as("ADMIN").put(
            f"/api/clients/{sample_client.id}", json={"name": None, "phone": "+65 6000 0000"}
        )
        assert response.status_code == 200
        assert response.get_json()["name"] == "Marina Towers Pte Ltd"
        assert response.get_json()["phone"] == "+65 6000 0000"

    def test_soft_delete_hides_client(self, login_as, sample_client):
        api = login_as("PROJECT_MANAGER")
        assert api.delete(f"/api/clients/{sample_client.id}").status_code == 200
        assert sample_client.is_active is False
        assert api.get(f"/api/clients/{sample_client.id}").status_code == 404
        assert api.get("/api/clients").get_json()["pagination"]["total"] == 0

    def test_delete_requires_manager_role(self, login_as, sample_client):
        response = login_as("SALES").delete(f"/api/clients/{sample_client.id}")
        assert response.status_code == 403


@pytest.mark.integration
class TestVendors:
    """Tests for the vendors API"""

    def test_create_assigns_number(self, login_as, sample_vendor):
        response = login_as("FINANCE").post("/api/vendors", json={"name": "Cable Co", "paymentTerms": "NET_60"})
        assert response.status_code == 201
        assert response.get_json()["vendorNumber"] == "AE-V-002"
        assert response.get_json()["paymentTerms"] == "NET_60"

    def test_invalid_payment_terms(self, login_as, users):
        response = login_as("FINANCE").post("/api/vendors", json={"name": "X", "paymentTerms": "NET_5"})
        assert response.status_code == 400

    def test_finance_can_delete(self, login_as, sample_vendor):
        api = login_as("FINANCE")
        assert api.delete(f"/api/vendors/{sample_vendor.id}").status_code == 200
        assert api.get(f"/api/vendors/{sample_vendor.id}").status_code == 404

    def test_sales_cannot_delete(self, login_as, sample_vendor):
        assert login_as("SALES").delete(f"/api/vendors/{sample_vendor.id}").status_code == 403


@pytest.mark.integration
class TestProjects:
    """Tests for the projects API"""

    def test_create_numbers_by_type_and_defaults_manager(self, login_as, users, sample_client):
        api = login_as("PROJECT_MANAGER")
        year = date.today().year

        regular = api.post("/api/projects", json={"name": "Retrofit", "clientId": sample_client.id})
        maintenance = api.post(
            "/api/projects", json={"name": "Upkeep", "clientId": sample_client.id, "projectType": "MAINTENANCE"}
        )

        assert regular.status_code == 201
        assert regular.get_json()["projectNumber"] == f"PRJ-{year}-001"
        assert maintenance.get_json()["projectNumber"] == f"MNT-{year}-001"
        assert Project.query.filter_by(name="Retrofit").one().manager_id == users["PROJECT_MANAGER"].id

    def test_unknown_client(self, login_as, users):
        response = login_as("ADMIN").post("/api/projects", json={"name": "X", "clientId": 999})
        assert response.status_code == 404
        assert response.get_json()["error"] == "Client not found"

    def test_finance_cannot_create(self, login_as, sample_client):
        response = login_as("FINANCE").post("/api/projects", json={"name": "X", "clientId": sample_client.id})
        assert response.status_code == 403

    def test_progress_bounds(self, login_as, sample_client):
        response = login_as("ADMIN").post(
            "/api/projects", json={"name": "X", "clientId": sample_client.id, "progress": 120}
        )
        assert response.status_code == 400


@pytest.mark.integration
class TestTenders:
    """Tests for the tenders API"""

    def _payload(self, client_id, **extra):
        payload = {"title": "MRT depot lighting", "clientId": client_id, "submissionDeadline": "2025-09-30"}
        payload.update(extra)
        return payload

    def test_sales_creates_tender(self, login_as, sample_client):
        response = login_as("SALES").post("/api/tenders", json=self._payload(sample_client.id))
        assert response.status_code == 201
        assert response.get_json()["tenderNumber"] == f"TND-{date.today().year}-001"

    def test_deadline_required(self, login_as, sample_client):
        response = login_as("SALES").post("/api/tenders", json={"title": "X", "clientId": sample_client.id})
        assert response.status_code == 400

    def test_finance_cannot_create(self, login_as, sample_client):
        response = login_as("FINANCE").post("/api/tenders", json=self._payload(sample_client.id))
        assert response.status_code == 403

    def test_soft_delete(self, login_as, sample_client):
        api = login_as("ADMIN")
        tender_id = api.post("/api/tenders", json=self._payload(sample_client.id)).get_json()["id"]
        assert api.delete(f"/api/tenders/{tender_id}").status_code == 200
        assert api.get(f"/api/tenders/{tender_id}").status_code == 404
