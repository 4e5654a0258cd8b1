"""Tests for task suggestions, insights and automation stats."""
from datetime import datetime, timedelta

import pytest

from apptrack.db.models import WorkflowExecution, WorkflowRule
from apptrack.errors import NotFoundError, ValidationFailed
from apptrack.services.automation import (
    apply_suggestion,
    generate_insights,
    get_automation_stats,
    suggest_tasks,
)

NOW = datetime(2026, 3, 1, 12, 0)


@pytest.fixture
def pipeline(make_application):
    return {
        "waiting": make_application(company="Globex", status="Applied",
                                    applied_date=NOW - timedelta(days=10), updated_at=NOW),
        "fresh": make_application(company="Initech", status="Applied",
                                  applied_date=NOW - timedelta(days=1), updated_at=NOW),
        "interview": make_application(company="Hooli", status="Interviewing",
                                      applied_date=NOW - timedelta(days=5), updated_at=NOW),
        "closed": make_application(company="Umbrella", status="Rejected",
                                   applied_date=NOW - timedelta(days=40),
                                   updated_at=NOW - timedelta(days=30)),
        "stale": make_application(company="Soylent", status="Pending",
                                  updated_at=NOW - timedelta(days=20)),
    }


class TestSuggestTasks:
    def test_suggestions_per_application(self, session, user, pipeline):
        suggestions = suggest_tasks(session, user.id, now=NOW)
        ids = {s["id"] for s in suggestions}
        assert ids == {
            f"follow_up:{pipeline['waiting'].id}",
            f"research_company:{pipeline['fresh'].id}",
            f"prepare_interview:{pipeline['interview'].id}",
            f"update_status:{pipeline['stale'].id}",
        }

    def test_follow_up_details(self, session, user, pipeline):
        (suggestion,) = suggest_tasks(session, user.id, pipeline["waiting"].id, now=NOW)
        assert suggestion["title"] == "Follow up with Globex"
        assert "10 days" in suggestion["description"]
        assert suggestion["priority"] == "medium"


class TestApplySuggestion:
    def test_creates_reminder(self, session, user, pipeline):
        suggestion_id = f"prepare_interview:{pipeline['interview'].id}"
        reminder = apply_suggestion(session, user.id, suggestion_id, now=NOW)
        assert reminder.reminder_type == "interview_prep"
        assert reminder.title == "Prepare for Hooli interview"
        assert reminder.due_date == NOW + timedelta(days=1)

    def test_malformed_id(self, session, user):
        with pytest.raises(ValidationFailed):
            apply_suggestion(session, user.id, "bogus", now=NOW)

    def test_not_applicable(self, session, user, pipeline):
        with pytest.raises(NotFoundError):
            apply_suggestion(session, user.id, f"follow_up:{pipeline['fresh'].id}", now=NOW)


class TestInsights:
    def test_empty(self, session, user):
        insights = generate_insights(session, user.id, now=NOW)
        assert insights["total_applications"] == 0
        assert insights["recommendations"] == ["Add your first application to start getting insights."]

    def test_summary(self, session, user, make_application):
        make_application(status="Interviewing", job_type="Contract",
                         applied_date=NOW - timedelta(days=10),
                         response_date=NOW - timedelta(days=4), updated_at=NOW)
        make_application(status="Applied", job_type="Full-time",
                         applied_date=NOW - timedelta(days=3), updated_at=NOW)
        make_application(status="Pending", updated_at=NOW - timedelta(days=15))

        insights = generate_insights(session, user.id, now=NOW)
        assert insights["total_applications"] == 3
        assert insights["response_rate"] == 33
        assert insights["average_response_days"] == 6
        assert insights["stale_applications"] == 1
        assert insights["recent_applications"] == 2
        assert insights["best_performing_job_type"] == {"job_type": "Contract", "success_rate": 100}
        assert any("haven't been updated" in r for r in insights["recommendations"])


class TestAutomationStats:
    def test_counts(self, session, user):
        rule = WorkflowRule(user_id=user.id, name="r", trigger={"type": "manual"}, actions=[])
        session.add_all([
            rule,
            WorkflowRule(user_id=user.id, name="off", trigger={"type": "manual"}, actions=[],
                         is_active=False),
        ])
        session.flush()
        session.add_all([
            WorkflowExecution(rule_id=rule.id, user_id=user.id, status="completed",
                              executed_at=NOW - timedelta(days=1)),
            WorkflowExecution(rule_id=rule.id, user_id=user.id, status="completed",
                              executed_at=NOW - timedelta(days=20)),
            WorkflowExecution(rule_id=rule.id, user_id=user.id, status="failed",
                              executed_at=NOW - timedelta(days=2)),
        ])
        session.flush()

        stats = get_automation_stats(session, user.id, now=NOW)
        assert stats["total_rules"] == 2
        assert stats["active_rules"] == 1
        assert stats["completed_executions"] == 2
        assert stats["failed_executions"] == 1
        assert stats["success_rate"] == 67
        assert stats["executions_last_7_days"] == 2

    def test_no_executions(self, session, user):
        assert get_automation_stats(session, user.id, now=NOW)["success_rate"] == 100
