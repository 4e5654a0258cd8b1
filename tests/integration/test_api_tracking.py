"""
Integration Tests: Contacts, Reminders, Notifications, Suggestions, Analytics

Test Pyramid Layer: INTEGRATION
Scope: HTTP API through the FastAPI app with a temporary SQLite database
"""
from datetime import timedelta

import pytest

from apptrack.db.models import utcnow


@pytest.mark.integration
class TestContactsApi:
    def test_create_list_and_conflict(self, client, auth_headers):
        payload = {"first_name": "Ada", "last_name": "Lovelace", "email": "ada@example.com",
                   "company": "Analytical", "tags": ["math"]}
        response = client.post("/api/contacts", json=payload, headers=auth_headers)
        assert response.status_code == 201
        contact_id = response.json()["data"]["id"]

        duplicate = client.post("/api/contacts", json=payload, headers=auth_headers)
        assert duplicate.status_code == 409
        assert duplicate.json()["error"]["details"] == {"existing_id": contact_id}

        body = client.get("/api/contacts?tags=MATH", headers=auth_headers).json()
        assert [c["id"] for c in body["data"]] == [contact_id]
        assert body["pagination"]["total"] == 1

    def test_update_and_delete(self, client, auth_headers):
        contact = client.post("/api/contacts", json={"first_name": "Grace", "last_name": "Hopper"},
                              headers=auth_headers).json()["data"]
        updated = client.put(f"/api/contacts/{contact['id']}", json={"company": "Navy"},
                             headers=auth_headers).json()["data"]
        assert updated["company"] == "Navy"

        assert client.delete(f"/api/contacts/{contact['id']}", headers=auth_headers).status_code == 200
        assert client.get(f"/api/contacts/{contact['id']}", headers=auth_headers).status_code == 404

    def test_null_name_or_tags_rejected(self, client, auth_headers):
        contact = client.post("/api/contacts", json={"first_name": "Grace", "last_name": "Hopper"},
                              headers=auth_headers).json()["data"]
        for body in ({"first_name": None}, {"tags": None}):
            response = client.put(f"/api/contacts/{contact['id']}", json=body, headers=auth_headers)
            assert response.status_code == 400

    def test_stats_and_search(self, client, auth_headers):
        client.post("/api/contacts", json={"first_name": "Grace", "last_name": "Hopper", "company": "Navy"},
                    headers=auth_headers)
        stats = client.get("/api/contacts/stats", headers=auth_headers).json()["data"]
        assert stats["total_contacts"] == 1

        results = client.get("/api/contacts/search?q=hop", headers=auth_headers).json()["data"]
        assert results[0]["last_name"] == "Hopper"
        assert client.get("/api/contacts/search?q=h", headers=auth_headers).status_code == 400

    def test_invalid_sort(self, client, auth_headers):
        assert client.get("/api/contacts?sort_by=email", headers=auth_headers).status_code == 400


@pytest.mark.integration
class TestRemindersApi:
    def test_lifecycle(self, client, auth_headers, create_application):
        app = create_application()
        due = (utcnow() + timedelta(days=2)).isoformat()
        response = client.post("/api/reminders", json={
            "application_id": app["id"], "reminder_type": "follow_up",
            "title": "Ping recruiter", "due_date": due,
        }, headers=auth_headers)
        assert response.status_code == 201
        reminder = response.json()["data"]

        upcoming = client.get("/api/reminders/upcoming", headers=auth_headers).json()["data"]
        assert [r["id"] for r in upcoming] == [reminder["id"]]

        snoozed = client.post(f"/api/reminders/{reminder['id']}/snooze", json={"hours": 24},
                              headers=auth_headers).json()["data"]
        assert snoozed["due_date"] > reminder["due_date"]

        done = client.post(f"/api/reminders/{reminder['id']}/complete", headers=auth_headers)
        assert done.json()["data"]["is_completed"] is True
        again = client.post(f"/api/reminders/{reminder['id']}/complete", headers=auth_headers)
        assert again.status_code == 404

        stats = client.get("/api/reminders/stats", headers=auth_headers).json()["data"]
        assert stats["completed"] == 1

    def test_invalid_type(self, client, auth_headers):
        response = client.post("/api/reminders", json={
            "reminder_type": "nap", "title": "x", "due_date": utcnow().isoformat(),
        }, headers=auth_headers)
        assert response.status_code == 400

    def test_overdue(self, client, auth_headers):
        client.post("/api/reminders", json={
            "reminder_type": "custom", "title": "Late",
            "due_date": (utcnow() - timedelta(days=1)).isoformat(),
        }, headers=auth_headers)
        overdue = client.get("/api/reminders/overdue", headers=auth_headers).json()["data"]
        assert [r["title"] for r in overdue] == ["Late"]


@pytest.mark.integration
class TestNotificationsApi:
    def test_cron_requires_secret(self, client):
        assert client.post("/api/notifications/send").status_code == 401
        response = client.post("/api/notifications/send", headers={"Authorization": "Bearer wrong"})
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHORIZED"

    def test_cron_delivers_due_reminder_in_app(self, client, auth_headers, cron_headers):
        client.post("/api/reminders", json={
            "reminder_type": "custom", "title": "Call Globex",
            "due_date": (utcnow() + timedelta(minutes=30)).isoformat(),
        }, headers=auth_headers)

        response = client.post("/api/notifications/send", headers=cron_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["data"]["reminders_sent"] == 1
        assert "timestamp" in body

        listing = client.get("/api/notifications", headers=auth_headers).json()
        reminders = [n for n in listing["data"] if n["notification_type"] == "reminder"]
        assert reminders[0]["title"] == "Reminder: Call Globex"
        assert listing["unread_count"] >= 1

        read = client.post(f"/api/notifications/{reminders[0]['id']}/read", headers=auth_headers)
        assert read.json()["data"]["is_read"] is True

    def test_mark_unknown_notification(self, client, auth_headers):
        assert client.post("/api/notifications/999/read", headers=auth_headers).status_code == 404


@pytest.mark.integration
class TestSuggestionsApi:
    def test_suggest_and_add(self, client, auth_headers):
        response = client.post("/api/suggestions/companies", json={"value": "Initech"}, headers=auth_headers)
        assert response.json()["data"] == {"kind": "companies", "value": "Initech", "added": True}

        suggestions = client.get("/api/suggestions/companies?q=init", headers=auth_headers).json()["data"]
        assert suggestions == ["Initech"]

    def test_unknown_kind(self, client, auth_headers):
        assert client.get("/api/suggestions/salaries", headers=auth_headers).status_code == 400

    def test_job_url(self, client, auth_headers):
        response = client.post("/api/suggestions/job-url",
                               json={"url": "https://wellfound.com/jobs/hooli/123"}, headers=auth_headers)
        assert response.json()["data"]["company"] == "Hooli"


@pytest.mark.integration
class TestAnalyticsApi:
    def test_dashboard(self, client, auth_headers, create_application):
        create_application(status="Interviewing")
        create_application(company="Hooli", status="Rejected")

        data = client.get("/api/analytics/dashboard", headers=auth_headers).json()["data"]
        assert data["overview"]["total_applications"] == 2
        assert data["overview"]["interview_rate"] == 50.0

        filtered = client.get("/api/analytics/dashboard?status=Rejected", headers=auth_headers).json()["data"]
        assert filtered["overview"]["total_applications"] == 1

    def test_trends(self, client, auth_headers, create_application):
        create_application()
        data = client.get("/api/analytics/trends?period=weekly", headers=auth_headers).json()["data"]
        assert data["period"] == "weekly"
        assert data["applications_trend"]["direction"] == "insufficient_data"
        assert client.get("/api/analytics/trends?period=hourly", headers=auth_headers).status_code == 400

    def test_report_export(self, client, auth_headers, create_application):
        create_application(status="Interviewing")
        response = client.post("/api/analytics/export", json={
            "format": "csv", "sections": ["overview", "benchmarks"],
        }, headers=auth_headers)
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"].startswith('attachment; filename="analytics_report_')
        assert "BENCHMARKS" in response.text

        report = client.post("/api/analytics/export", json={"include_charts": True}, headers=auth_headers).json()
        assert report["overview"]["interview_rate"] == 100.0
        assert "chart_data" in report

        bad = client.post("/api/analytics/export", json={"sections": ["gossip"]}, headers=auth_headers)
        assert bad.status_code == 400

    def test_events(self, client, auth_headers):
        event = {"event": "page_view", "timestamp": 1767225600000, "session_id": "s1", "anonymous_id": "a1"}
        response = client.post("/api/analytics/events", json={
            "events": [event, {**event, "event": "application_created"}], "timestamp": 1767225600000,
        }, headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["data"]["processed"] == 2

        empty = client.post("/api/analytics/events", json={"events": [], "timestamp": 0}, headers=auth_headers)
        assert empty.status_code == 400
        missing = client.post("/api/analytics/events", json={
            "events": [{"event": "page_view"}], "timestamp": 0,
        }, headers=auth_headers)
        assert missing.status_code == 400


@pytest.mark.integration
class TestHealth:
    @pytest.mark.parametrize("path", ["/health", "/api/health"])
    def test_health(self, client, path):
        body = client.get(path).json()
        assert body["status"] == "healthy"
        assert body["database"] == "healthy"
        assert body["ai_available"] is False
