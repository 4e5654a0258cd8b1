"""
Integration Tests: CSV Import, Export, Backup, Integrations, Automation, AI

Test Pyramid Layer: INTEGRATION
Scope: HTTP API through the FastAPI app; file and backup storage under tmp_path,
AI provider replaced via dependency override
"""
import json

import httpx
import pytest
from fastapi import Depends
from sqlalchemy.orm import Session

from apptrack.auth import get_current_user
from apptrack.config import AIConfig
from apptrack.db.database import get_db
from apptrack.db.models import User
from apptrack.routers.ai import get_ai_service
from apptrack.services.ai import AIClient, AIService, RateLimiter

LINKEDIN_CSV = (
    "Company,Position,Location,Applied Date,Status,Notes\n"
    "Google,Software Engineer,\"Mountain View, CA\",2024-01-15,Applied,Via referral\n"
    "Microsoft,Product Manager,\"Seattle, WA\",01/20/2024,Phone interview,\n"
).encode("utf-8")


@pytest.mark.integration
class TestCsvApi:
    def test_import_upload(self, client, auth_headers):
        response = client.post(
            "/api/csv/import",
            files={"file": ("applications.csv", LINKEDIN_CSV, "text/csv")},
            headers=auth_headers,
        )
        assert response.status_code == 200
        result = response.json()["data"]
        assert result["imported"] == 2
        assert result["template"] == "linkedin"

        companies = {a["company"] for a in client.get("/api/applications", headers=auth_headers).json()["data"]}
        assert companies == {"Google", "Microsoft"}

    def test_dry_run_with_mapping(self, client, auth_headers):
        mapping = {"Company": "company", "Position": "position"}
        response = client.post(
            "/api/csv/import",
            files={"file": ("a.csv", LINKEDIN_CSV, "text/csv")},
            data={"mapping": json.dumps(mapping), "dry_run": "true"},
            headers=auth_headers,
        )
        assert response.json()["data"]["imported"] == 2
        assert client.get("/api/applications", headers=auth_headers).json()["data"] == []

    def test_bad_mapping_and_empty_file(self, client, auth_headers):
        response = client.post(
            "/api/csv/import",
            files={"file": ("a.csv", LINKEDIN_CSV, "text/csv")},
            data={"mapping": "[1, 2]"},
            headers=auth_headers,
        )
        assert response.status_code == 400
        empty = client.post("/api/csv/import", files={"file": ("a.csv", b"", "text/csv")}, headers=auth_headers)
        assert empty.status_code == 400

    def test_templates(self, client, auth_headers):
        templates = client.get("/api/csv/templates", headers=auth_headers).json()["data"]
        assert "linkedin" in {t["id"] for t in templates}

        detected = client.post("/api/csv/templates/detect", json={
            "headers": ["Company", "Position", "Location", "Applied Date", "Status", "Notes"],
        }, headers=auth_headers).json()["data"]
        assert detected["template"]["id"] == "linkedin"

        download = client.get("/api/csv/templates/linkedin/download", headers=auth_headers)
        assert download.headers["content-type"].startswith("text/csv")
        assert 'filename="linkedin_template.csv"' in download.headers["content-disposition"]

        assert client.get("/api/csv/templates/nope", headers=auth_headers).status_code == 404


@pytest.mark.integration
class TestExportApi:
    def test_csv_download(self, client, auth_headers, create_application):
        create_application()
        response = client.post("/api/export", json={"format": "csv", "fields": ["company", "status"]},
                               headers=auth_headers)
        assert response.status_code == 200
        assert response.headers["x-record-count"] == "1"
        assert "attachment" in response.headers["content-disposition"]
        lines = response.text.strip().splitlines()
        assert lines[1] == '"Globex","Applied"'

    def test_custom_filename_header_is_safe(self, client, auth_headers, create_application):
        create_application()
        response = client.post("/api/export", json={"format": "csv", "custom_filename": 'başvurular".csv'},
                               headers=auth_headers)
        assert response.status_code == 200
        disposition = response.headers["content-disposition"]
        assert disposition.startswith('attachment; filename="ba_vurular.csv"')
        assert "filename*=UTF-8''ba%C5%9Fvurular.csv" in disposition

    def test_json_with_statistics(self, client, auth_headers, create_application):
        create_application()
        response = client.post("/api/export", json={"format": "json", "include_statistics": True},
                               headers=auth_headers)
        body = response.json()
        assert body["statistics"]["total"] == 1

    def test_unknown_field(self, client, auth_headers):
        response = client.post("/api/export", json={"fields": ["company", "ssn"]}, headers=auth_headers)
        assert response.status_code == 400

    def test_options_and_user_export(self, client, auth_headers, create_application):
        create_application()
        formats = client.get("/api/export?action=formats", headers=auth_headers).json()["data"]
        assert {f["format"] for f in formats} == {"csv", "json", "pdf"}
        data = client.get("/api/user/export", headers=auth_headers).json()["data"]
        assert data["user"]["email"] == "alex@example.com"
        assert len(data["applications"]) == 1


@pytest.mark.integration
class TestBackupApi:
    def test_create_restore_flow(self, client, auth_headers, create_application):
        app = create_application()
        backup = client.post("/api/backup/create", json={"description": "before cleanup"},
                             headers=auth_headers).json()["data"]
        assert backup["application_count"] == 1

        client.delete(f"/api/applications/{app['id']}", headers=auth_headers)
        comparison = client.post("/api/backup/compare", json={"version_a": backup["id"]},
                                 headers=auth_headers).json()["data"]
        assert comparison["summary"] == {"added": 0, "removed": 1, "modified": 0}

        restored = client.post("/api/backup/restore", json={"backup_id": backup["id"]},
                               headers=auth_headers).json()["data"]
        assert restored["restored"] == 1
        assert restored["pre_restore_backup_id"] is None
        assert client.get(f"/api/applications/{app['id']}", headers=auth_headers).status_code == 200

        listed = client.get("/api/backup/list", headers=auth_headers).json()["data"]
        assert [b["id"] for b in listed] == [backup["id"]]

    def test_validate_inline_data(self, client, auth_headers):
        result = client.post("/api/backup/validate", json={"data": [{"company": "Globex"}]},
                             headers=auth_headers).json()["data"]
        assert result["is_valid"] is False

    def test_unknown_backup(self, client, auth_headers):
        assert client.delete("/api/backup/missing", headers=auth_headers).status_code == 404


@pytest.mark.integration
class TestIntegrationsApi:
    def test_privacy_gates_email_sync(self, client, auth_headers, create_application):
        create_application()
        blocked = client.post("/api/integrations/email/gmail/sync", json={"messages": []}, headers=auth_headers)
        assert blocked.status_code == 403

        client.put("/api/integrations/privacy", json={"allow_email_tracking": True}, headers=auth_headers)
        response = client.post("/api/integrations/email/gmail/sync", json={
            "messages": [{"subject": "Interview at Globex", "from": "hr@globex.com"}],
        }, headers=auth_headers)
        assert response.json()["data"]["items_updated"] == 1

    def test_job_board_sync(self, client, auth_headers):
        response = client.post("/api/integrations/job-boards/indeed/sync", headers=auth_headers)
        assert response.json()["data"]["items_added"] == 1
        recs = client.get("/api/ai/job-recommendations", headers=auth_headers).json()["data"]
        assert recs[0]["source"] == "indeed"

    def test_unknown_provider(self, client, auth_headers):
        response = client.post("/api/integrations/calendar/yahoo/sync", headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["error"]["details"]["supported"] == ["google", "outlook"]

    def test_bundle_round_trip(self, client, auth_headers, create_application):
        create_application()
        bundle = client.get("/api/integrations/export", headers=auth_headers).json()["data"]
        result = client.post("/api/integrations/import", json=bundle, headers=auth_headers).json()["data"]
        assert result["counts"]["applications"] == {"imported": 0, "skipped": 1}


@pytest.mark.integration
class TestAutomationApi:
    def test_rule_runs_on_status_change(self, client, auth_headers, create_application):
        rule = client.post("/api/automation/workflows", json={
            "name": "Prep on interview",
            "trigger": {"type": "status_changed", "config": {"new_status": "Interviewing"}},
            "actions": [{"type": "create_reminder",
                         "config": {"type": "interview_prep", "title": "Prep", "days_from_now": 1}}],
        }, headers=auth_headers)
        assert rule.status_code == 201

        app = create_application()
        client.put(f"/api/applications/{app['id']}", json={"status": "Interviewing"}, headers=auth_headers)

        reminders = client.get("/api/reminders?type=interview_prep", headers=auth_headers).json()["data"]
        assert "Prep" in {r["title"] for r in reminders}
        stats = client.get("/api/automation/stats", headers=auth_headers).json()["data"]
        assert stats["completed_executions"] == 1

    def test_unknown_trigger_rejected(self, client, auth_headers):
        response = client.post("/api/automation/workflows", json={
            "name": "x", "trigger": {"type": "moon_phase"}, "actions": [{"type": "create_reminder"}],
        }, headers=auth_headers)
        assert response.status_code == 400

    def test_unbounded_days_rejected(self, client, auth_headers):
        response = client.post("/api/automation/workflows", json={
            "name": "x", "trigger": {"type": "application_created"},
            "actions": [{"type": "create_task", "config": {"days_from_now": 1e9}}],
        }, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_defaults_and_insights(self, client, auth_headers):
        created = client.post("/api/automation/workflows/defaults", headers=auth_headers).json()["data"]
        assert created
        listed = client.get("/api/automation/workflows", headers=auth_headers).json()["data"]
        assert len(listed) == len(created)
        insights = client.get("/api/automation/insights", headers=auth_headers).json()["data"]
        assert insights["total_applications"] == 0


@pytest.mark.integration
class TestAIApi:
    def test_unavailable_without_key(self, client, auth_headers, create_application):
        app = create_application()
        response = client.post(f"/api/ai/analyze-application/{app['id']}", headers=auth_headers)
        assert response.status_code == 503
        assert response.json()["error"]["code"] == "AI_UNAVAILABLE"

    def test_analysis_with_stub_provider(self, client, auth_headers, create_application):
        from apptrack.main import app as fastapi_app

        def handler(request):
            content = json.dumps({"match_score": 72, "strengths": ["Python"]})
            return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})

        def stub_service(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
            config = AIConfig(api_key="sk-test")
            client = AIClient(config, transport=httpx.MockTransport(handler))
            return AIService(db, current_user, config=config, client=client, limiter=RateLimiter(10, 100))

        created = create_application()
        fastapi_app.dependency_overrides[get_ai_service] = stub_service
        response = client.post(f"/api/ai/analyze-application/{created['id']}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["data"]["match_score"] == 72

        stored = client.get(f"/api/applications/{created['id']}", headers=auth_headers).json()["data"]
        assert stored["ai_match_score"] == 72

    def test_career_analyses_fall_back(self, client, auth_headers):
        from apptrack.main import app as fastapi_app

        def stub_service(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
            config = AIConfig(api_key="sk-test")
            client = AIClient(config, transport=httpx.MockTransport(lambda r: httpx.Response(500)))
            return AIService(db, current_user, config=config, client=client, limiter=RateLimiter(10, 100))

        fastapi_app.dependency_overrides[get_ai_service] = stub_service
        market = client.post("/api/ai/market-analysis", json={
            "role": "Data Engineer", "industry": "Fintech", "location": "Berlin", "experience_level": "senior",
        }, headers=auth_headers)
        assert market.status_code == 200
        assert market.json()["data"]["fallback"] is True
        assert market.json()["data"]["demand_level"] == "medium"

        career = client.post("/api/ai/career-path-analysis", json={}, headers=auth_headers)
        assert career.json()["data"]["next_steps"][0]["timeframe"] == "1-2 years"

        incomplete = client.post("/api/ai/market-analysis", json={"role": "Data Engineer"}, headers=auth_headers)
        assert incomplete.status_code == 400

        short = client.post("/api/ai/cover-letter-analysis", json={
            "cover_letter_text": "Hi", "job_description": "Build pipelines in Python", "company_name": "Globex",
        }, headers=auth_headers)
        assert short.status_code == 400
