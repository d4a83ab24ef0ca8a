"""
Tests for tasks and task notifications
"""
import pytest

from ampere.models import Task, TaskNotification


@pytest.fixture
def task(login_as, users):
    response = login_as("PROJECT_MANAGER").post("/api/tasks", json={
        "title": "Prepare site survey",
        "assigneeId": users["SALES"].id,
        "priority": "HIGH",
        "dueDate": "2025-06-30",
    })
    assert response.status_code == 201
    return response.get_json()


@pytest.mark.integration
class TestTasks:
    """Tests for the tasks API"""

    def test_create_notifies_assignee(self, task, users):
        notification = TaskNotification.query.one()
        assert notification.user_id == users["SALES"].id
        assert notification.type == "TASK_ASSIGNED"
        assert task["status"] == "TODO"

    def test_sales_cannot_create(self, login_as, users):
        response = login_as("SALES").post("/api/tasks", json={"title": "X", "assigneeId": users["ADMIN"].id})
        assert response.status_code == 403

    def test_unknown_assignee(self, login_as, users):
        response = login_as("FINANCE").post("/api/tasks", json={"title": "X", "assigneeId": 999})
        assert response.status_code == 404

    def test_assignee_completion_notifies_assigner(self, login_as, task, users):
        response = login_as("SALES").patch(f"/api/tasks/{task['id']}", json={"status": "COMPLETED"})
        assert response.status_code == 200
        assert Task.query.get(task["id"]).completed_at is not None

        notification = TaskNotification.query.filter_by(user_id=users["PROJECT_MANAGER"].id).one()
        assert notification.type == "TASK_COMPLETED"

    def test_assigner_changes_do_not_notify_assigner(self, login_as, task, users):
        login_as("PROJECT_MANAGER").patch(f"/api/tasks/{task['id']}", json={"status": "IN_PROGRESS"})
        assert TaskNotification.query.filter_by(user_id=users["PROJECT_MANAGER"].id).count() == 0

    def test_reopening_clears_completed_at(self, login_as, task):
        api = login_as("SALES")
        api.patch(f"/api/tasks/{task['id']}", json={"status": "COMPLETED"})
        api.patch(f"/api/tasks/{task['id']}", json={"status": "IN_PROGRESS"})
        assert Task.query.get(task["id"]).completed_at is None

    def test_assignee_cannot_reassign(self, login_as, task, users):
        response = login_as("SALES").patch(f"/api/tasks/{task['id']}", json={"assigneeId": users["ADMIN"].id})
        assert response.status_code == 403

    def test_outsider_cannot_touch(self, login_as, task):
        assert login_as("ADMIN").patch(f"/api/tasks/{task['id']}", json={"title": "Hijack"}).status_code == 403

    def test_archive_hides_task(self, login_as, task):
        api = login_as("PROJECT_MANAGER")
        assert api.delete(f"/api/tasks/{task['id']}").status_code == 200
        assert api.get(f"/api/tasks/{task['id']}").status_code == 404
        assert api.get("/api/tasks").get_json()["pagination"]["total"] == 0

    def test_comments(self, login_as, task):
        response = login_as("SALES").post(f"/api/tasks/{task['id']}/comments", json={"content": "On it"})
        assert response.status_code == 201
        detail = login_as("PROJECT_MANAGER").get(f"/api/tasks/{task['id']}").get_json()
        assert [c["content"] for c in detail["comments"]] == ["On it"]


@pytest.mark.integration
class TestNotifications:
    """Tests for the notification inbox"""

    def test_unread_then_read(self, login_as, task):
        api = login_as("SALES")
        inbox = api.get("/api/tasks/notifications").get_json()
        assert len(inbox) == 1

        response = api.post(f"/api/tasks/notifications/{inbox[0]['id']}/read")
        assert response.status_code == 200
        assert api.get("/api/tasks/notifications").get_json() == []

    def test_cannot_read_someone_elses(self, login_as, task):
        notification = TaskNotification.query.one()
        response = login_as("FINANCE").post(f"/api/tasks/notifications/{notification.id}/read")
        assert response.status_code == 404
