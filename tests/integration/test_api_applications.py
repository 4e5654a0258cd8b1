"""
Integration Tests: Applications API

Test Pyramid Layer: INTEGRATION
Scope: application CRUD, history, duplicates and reminders over HTTP
"""
import pytest


@pytest.mark.integration
class TestApplicationCrud:
    def test_create_and_fetch(self, client, auth_headers, create_application):
        created = create_application()
        assert created["company"] == "Globex"
        assert created["tags"] == ["python", "remote"]

        response = client.get(f"/api/applications/{created['id']}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["data"]["position"] == "Senior Python Developer"

    def test_blank_company_rejected(self, client, auth_headers, sample_application):
        response = client.post("/api/applications", json={**sample_application, "company": "   "},
                               headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_list_paginates_and_filters(self, client, auth_headers, create_application):
        create_application(company="Globex")
        create_application(company="Hooli", status="Interviewing")
        create_application(company="Initech", status="Rejected")

        body = client.get("/api/applications?limit=2", headers=auth_headers).json()
        assert len(body["data"]) == 2
        assert body["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}

        body = client.get("/api/applications?status=Interviewing", headers=auth_headers).json()
        assert [a["company"] for a in body["data"]] == ["Hooli"]

    def test_unknown_application(self, client, auth_headers):
        response = client.get("/api/applications/does-not-exist", headers=auth_headers)
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_other_users_cannot_see_application(self, client, auth_headers, create_application):
        created = create_application()
        client.post("/api/auth/register", json={
            "email": "mallory@example.com", "password": "secret123",
            "first_name": "Mallory", "last_name": "M",
        })
        token = client.post("/api/auth/signin", json={
            "email": "mallory@example.com", "password": "secret123",
        }).json()["data"]["access_token"]

        response = client.get(f"/api/applications/{created['id']}",
                              headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 404

    def test_delete(self, client, auth_headers, create_application):
        created = create_application()
        response = client.delete(f"/api/applications/{created['id']}", headers=auth_headers)
        assert response.json()["data"] == {"id": created["id"], "deleted": True}
        assert client.get(f"/api/applications/{created['id']}", headers=auth_headers).status_code == 404


@pytest.mark.integration
class TestStatusChanges:
    def test_history_records_status_change(self, client, auth_headers, create_application):
        created = create_application()
        response = client.put(f"/api/applications/{created['id']}", json={"status": "Interviewing"},
                              headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "Interviewing"

        history = client.get(f"/api/applications/{created['id']}/history", headers=auth_headers).json()["data"]
        status_changes = [h for h in history if h["field_changed"] == "status"]
        assert status_changes[0]["old_value"] == "Applied"
        assert status_changes[0]["new_value"] == "Interviewing"

    def test_invalid_status(self, client, auth_headers, create_application):
        created = create_application()
        response = client.put(f"/api/applications/{created['id']}", json={"status": "Ghosted"},
                              headers=auth_headers)
        assert response.status_code == 400

    @pytest.mark.parametrize("field", ["company", "position", "status", "priority", "requirements", "tags"])
    def test_null_for_required_field_rejected(self, client, auth_headers, create_application, field):
        created = create_application()
        response = client.put(f"/api/applications/{created['id']}", json={field: None}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

        stored = client.get(f"/api/applications/{created['id']}", headers=auth_headers).json()["data"]
        assert stored[field] == created[field]

    def test_automatic_reminders(self, client, auth_headers, create_application):
        created = create_application()
        response = client.post(f"/api/applications/{created['id']}/reminders", headers=auth_headers)
        assert response.status_code == 201
        reminders = response.json()["data"]
        assert {r["reminder_type"] for r in reminders} == {"follow_up"}
        assert all(r["application_id"] == created["id"] for r in reminders)


@pytest.mark.integration
class TestDuplicates:
    def test_check_duplicates(self, client, auth_headers, create_application):
        existing = create_application()
        response = client.post("/api/applications/check-duplicates", json={
            "company": "Globex",
            "position": "Senior Python Developer",
            "job_url": "https://jobs.globex.com/123",
        }, headers=auth_headers)
        result = response.json()["data"]
        assert result["is_duplicate"] is True
        assert result["matches"][0]["application"]["id"] == existing["id"]

    def test_duplicate_groups(self, client, auth_headers, create_application):
        create_application()
        create_application()
        create_application(company="Umbrella", position="Chemist", location="Tokyo", job_url=None)

        groups = client.get("/api/applications/duplicates", headers=auth_headers).json()["data"]["groups"]
        assert len(groups) == 1
        assert {a["company"] for a in groups[0]["applications"]} == {"Globex"}
