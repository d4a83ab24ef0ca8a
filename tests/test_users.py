"""
Tests for user management and admin endpoints
"""
import pytest

from ampere.models import AuditLog, Client, User


@pytest.mark.integration
class TestUserManagement:
    """Tests for the users API"""

    def test_superadmin_lists_users(self, login_as, users):
        body = login_as("SUPERADMIN").get("/api/users?limit=100").get_json()
        assert body["pagination"]["total"] == len(users)

    def test_non_superadmin_cannot_list(self, login_as, users):
        assert login_as("ADMIN").get("/api/users").status_code == 403

    def test_create_user(self, login_as, users):
        response = login_as("SUPERADMIN").post("/api/users", json={
            "name": "engineer",
            "email": "Engineer@Ampere.test",
            "password": "longenough",
            "role": "PROJECT_MANAGER",
        })
        assert response.status_code == 201
        assert User.query.filter_by(name="engineer").one().email == "engineer@ampere.test"
        assert AuditLog.query.filter_by(entity_type="User", action="CREATE").count() == 1

    def test_create_with_unknown_role(self, login_as, users):
        response = login_as("SUPERADMIN").post("/api/users", json={
            "name": "x", "email": "x@ampere.test", "password": "longenough", "role": "OWNER",
        })
        assert response.status_code == 400

    def test_create_duplicate_name(self, login_as, users):
        response = login_as("SUPERADMIN").post("/api/users", json={
            "name": "admin", "email": "other@ampere.test", "password": "longenough",
        })
        assert response.status_code == 400
        assert response.get_json()["error"] == "Username already taken"

    def test_user_reads_own_profile_only(self, login_as, users):
        api = login_as("SALES")
        assert api.get(f"/api/users/{users['SALES'].id}").status_code == 200
        assert api.get(f"/api/users/{users['ADMIN'].id}").status_code == 403

    def test_self_patch_profile(self, login_as, users):
        response = login_as("SALES").patch(f"/api/users/{users['SALES'].id}", json={"firstName": "Sally"})
        assert response.status_code == 200
        assert users["SALES"].first_name == "Sally"

    def test_self_patch_cannot_change_role(self, login_as, users):
        response = login_as("SALES").patch(f"/api/users/{users['SALES'].id}", json={"role": "SUPERADMIN"})
        assert response.status_code == 403
        assert users["SALES"].role == "SALES"

    def test_password_change(self, client, login_as, users):
        login_as("SALES").patch(f"/api/users/{users['SALES'].id}", json={"password": "brand-new-pass"})
        response = client.post("/api/auth/login", json={"username": "sales", "password": "brand-new-pass"})
        assert response.status_code == 200

    def test_delete_deactivates(self, login_as, users):
        response = login_as("SUPERADMIN").delete(f"/api/users/{users['FINANCE'].id}")
        assert response.status_code == 200
        assert users["FINANCE"].is_active is False
        assert AuditLog.query.filter_by(entity_type="User", action="DEACTIVATE").count() == 1

    def test_cannot_delete_self(self, login_as, users):
        response = login_as("SUPERADMIN").delete(f"/api/users/{users['SUPERADMIN'].id}")
        assert response.status_code == 400
        assert response.get_json()["error"] == "You cannot delete your own account"


@pytest.mark.integration
class TestAdmin:
    """Tests for the admin endpoints"""

    def test_backfill_numbers(self, db, login_as, sample_client):
        db.session.add(Client(name="Unnumbered"))
        db.session.commit()

        response = login_as("SUPERADMIN").post("/api/admin/backfill-numbers")
        assert response.status_code == 200
        assert response.get_json()["assigned"] == {"clients": 1, "vendors": 0}
        assert Client.query.filter_by(name="Unnumbered").one().client_number == "AE-C-002"

    def test_backfill_is_superadmin_only(self, login_as, users):
        assert login_as("ADMIN").post("/api/admin/backfill-numbers").status_code == 403

    def test_audit_log_filter(self, login_as, users):
        api = login_as("SUPERADMIN")
        api.post("/api/clients", json={"name": "Logged"})
        body = api.get("/api/admin/audit-logs?entityType=Client").get_json()
        assert body["pagination"]["total"] == 1
        assert body["logs"][0]["after"]["name"] == "Logged"
