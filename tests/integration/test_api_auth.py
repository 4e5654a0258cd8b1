"""
Integration Tests: Authentication and Account Settings

Test Pyramid Layer: INTEGRATION
Scope: HTTP API through the FastAPI app with a temporary SQLite database
"""
import pytest


@pytest.mark.integration
class TestRegistration:
    def test_register_returns_user(self, client):
        response = client.post("/api/auth/register", json={
            "email": "Sam@Example.com",
            "password": "hunter22",
            "first_name": "Sam",
            "last_name": "Lee",
        })
        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["email"] == "sam@example.com"
        assert "password_hash" not in body["data"]

    def test_duplicate_email(self, client, auth_headers):
        response = client.post("/api/auth/register", json={
            "email": "ALEX@example.com",
            "password": "secret123",
            "first_name": "Alex",
            "last_name": "Kim",
        })
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "USER_EXISTS"

    def test_validation_envelope(self, client):
        response = client.post("/api/auth/register", json={"email": "nope", "password": "x"})
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert {d["field"] for d in error["details"]} >= {"email", "password", "first_name"}


@pytest.mark.integration
class TestSignIn:
    def test_wrong_password(self, client, auth_headers):
        response = client.post("/api/auth/signin", json={
            "email": "alex@example.com",
            "password": "wrong-password",
        })
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "INVALID_CREDENTIALS"

    def test_token_issued(self, client, auth_headers):
        response = client.post("/api/auth/signin", json={
            "email": "alex@example.com",
            "password": "secret123",
        })
        data = response.json()["data"]
        assert data["token_type"] == "bearer"
        assert data["expires_in"] > 0
        assert data["user"]["first_name"] == "Alex"

    def test_missing_token(self, client):
        response = client.get("/api/auth/profile")
        assert response.status_code == 401
        assert response.json() == {
            "success": False,
            "error": {"code": "UNAUTHORIZED", "message": "Authentication required"},
        }

    def test_garbage_token(self, client):
        response = client.get("/api/auth/profile", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401


@pytest.mark.integration
class TestProfileAndPreferences:
    def test_update_profile(self, client, auth_headers):
        response = client.put("/api/auth/profile", json={
            "location": "Lisbon",
            "skills": ["Python", "Go"],
        }, headers=auth_headers)
        assert response.status_code == 200
        profile = client.get("/api/auth/profile", headers=auth_headers).json()["data"]
        assert profile["location"] == "Lisbon"
        assert profile["skills"] == ["Python", "Go"]

    def test_preferences_defaults_and_update(self, client, auth_headers):
        prefs = client.get("/api/auth/preferences", headers=auth_headers).json()["data"]
        assert prefs["email_notifications"] is True
        assert prefs["reminder_frequency"] == "daily"

        response = client.put("/api/auth/preferences", json={
            "reminder_frequency": "weekly",
            "push_notifications": False,
        }, headers=auth_headers)
        updated = response.json()["data"]
        assert updated["reminder_frequency"] == "weekly"
        assert updated["push_notifications"] is False
        assert updated["email_notifications"] is True

    def test_invalid_frequency(self, client, auth_headers):
        response = client.put("/api/auth/preferences", json={"reminder_frequency": "hourly"},
                              headers=auth_headers)
        assert response.status_code == 400


@pytest.mark.integration
class TestUserAccountApi:
    def test_onboarding_progress(self, client, auth_headers):
        initial = client.get("/api/user/onboarding", headers=auth_headers).json()["data"]
        assert initial["current_step"] == 0
        assert initial["is_complete"] is False

        response = client.post("/api/user/onboarding", json={
            "progress": {"current_step": 2, "completed_steps": ["welcome"], "welcome_completed": True},
        }, headers=auth_headers)
        assert response.status_code == 200
        stored = client.get("/api/user/onboarding", headers=auth_headers).json()["data"]
        assert stored["current_step"] == 2
        assert stored["completed_steps"] == ["welcome"]
        assert stored["welcome_completed"] is True

    def test_onboarding_for_another_user_forbidden(self, client, auth_headers):
        response = client.post("/api/user/onboarding", json={
            "progress": {"tour_completed": True}, "user_id": "someone-else",
        }, headers=auth_headers)
        assert response.status_code == 403

    def test_delete_account(self, client, auth_headers, create_application):
        create_application()
        client.post("/api/backup/create", json={"description": "before leaving"}, headers=auth_headers)

        response = client.delete("/api/user", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["deleted"]["applications"] == 1
        assert data["deleted"]["backups"] == 1

        assert client.get("/api/auth/profile", headers=auth_headers).status_code == 401
        signin = client.post("/api/auth/signin", json={"email": "alex@example.com", "password": "secret123"})
        assert signin.status_code == 401
