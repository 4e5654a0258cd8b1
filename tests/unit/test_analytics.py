"""Tests for dashboard analytics and trends."""
from datetime import datetime, timedelta

import pytest

from apptrack.errors import ValidationFailed
from apptrack.services.analytics import (
    benchmarks,
    build_report,
    company_performance,
    dashboard,
    filter_applications,
    insights,
    monthly_stats,
    overview,
    recommendations,
    record_events,
    trend_direction,
    trends,
    weekly_activity,
)

NOW = datetime(2026, 3, 1, 12, 0)
MONDAY = datetime(2026, 3, 2, 10, 0)


@pytest.fixture
def outcomes(make_application):
    return [
        make_application(company="Globex", status="Interviewing",
                         applied_date=NOW - timedelta(days=10), response_date=NOW - timedelta(days=4)),
        make_application(company="Globex", status="Offered",
                         applied_date=NOW - timedelta(days=20), response_date=NOW - timedelta(days=18)),
        make_application(company="Hooli", status="Rejected", applied_date=NOW - timedelta(days=30)),
        make_application(company="Initech", status="Applied", applied_date=NOW - timedelta(days=2)),
    ]


class TestOverview:
    def test_rates(self, outcomes):
        summary = overview(outcomes)
        assert summary["total_applications"] == 4
        assert summary["interview_count"] == 2
        assert summary["interview_rate"] == 50.0
        assert summary["offer_rate"] == 25.0
        assert summary["rejection_rate"] == 25.0
        assert summary["response_rate"] == 75.0
        assert summary["average_response_days"] == 4.0

    def test_empty(self):
        summary = overview([])
        assert summary["interview_rate"] == 0.0
        assert summary["average_response_days"] == 0.0
        assert insights(summary)[0]["title"] == "No applications yet"

    def test_company_performance(self, outcomes):
        (top, *rest) = company_performance(outcomes)
        assert top["company"] == "Globex"
        assert top["applications"] == 2
        assert top["interview_rate"] == 100.0
        assert [r["company"] for r in rest] == ["Hooli", "Initech"]

    def test_filter_by_range_and_status(self, outcomes):
        recent = filter_applications(outcomes, start=NOW - timedelta(days=15))
        assert {a.status for a in recent} == {"Interviewing", "Applied"}
        assert len(filter_applications(outcomes, statuses=["Rejected"])) == 1


class TestBuckets:
    def test_monthly_stats_oldest_first(self, make_application):
        make_application(applied_date=datetime(2026, 1, 15))
        make_application(applied_date=datetime(2026, 3, 1), status="Interviewing")
        apps = [make_application(applied_date=datetime(2025, 6, 1))]

        stats = monthly_stats(apps, now=NOW, months=3)
        assert [m["month"] for m in stats] == ["2026-01", "2026-02", "2026-03"]
        assert stats[0]["label"] == "Jan 2026"
        assert all(m["applications"] == 0 for m in stats)

    def test_weekly_activity(self, make_application):
        apps = [make_application(applied_date=MONDAY), make_application(applied_date=MONDAY + timedelta(days=2))]
        activity = weekly_activity(apps)
        assert activity[0] == {"day": "Monday", "applications": 1}
        assert activity[2] == {"day": "Wednesday", "applications": 1}
        assert len(activity) == 7

    def test_dashboard_sections(self, session, user, outcomes):
        data = dashboard(session, user.id, statuses=["Interviewing", "Offered"], now=NOW)
        assert data["overview"]["total_applications"] == 2
        assert data["overview"]["interview_rate"] == 100.0
        assert len(data["monthly_stats"]) == 12
        assert data["insights"][0]["title"] == "Strong interview rate"


class TestTrends:
    def test_direction(self):
        assert trend_direction([1, 2, 3]) == {
            "direction": "increasing", "slope": 1.0, "change": 2, "change_percent": 200.0,
        }
        assert trend_direction([3, 1])["direction"] == "decreasing"
        assert trend_direction([5, 5])["direction"] == "stable"
        assert trend_direction([0, 4])["change_percent"] == 0.0
        assert trend_direction([7])["direction"] == "insufficient_data"

    def test_monthly_series(self, session, user, make_application):
        make_application(applied_date=datetime(2026, 1, 5))
        for day in (3, 10):
            make_application(applied_date=datetime(2026, 2, day), status="Rejected")
        for day in (2, 9, 16):
            make_application(applied_date=datetime(2026, 3, day))

        result = trends(session, user.id)
        assert [p["period"] for p in result["series"]] == ["2026-01", "2026-02", "2026-03"]
        assert result["series"][1]["response_rate"] == 100.0
        assert result["applications_trend"]["direction"] == "increasing"

    def test_weekly_buckets_start_on_monday(self, session, user, make_application):
        make_application(applied_date=MONDAY + timedelta(days=3))
        result = trends(session, user.id, "weekly")
        assert result["series"][0]["period"] == "2026-03-02"

    def test_invalid_period(self, session, user):
        with pytest.raises(ValidationFailed):
            trends(session, user.id, "daily")


class TestReport:
    def test_sections_follow_report_order(self, session, user, outcomes):
        report = build_report(session, user.id, ["insights", "overview"], now=NOW)
        assert report["metadata"]["sections"] == ["overview", "insights"]
        assert report["overview"]["total_applications"] == 4
        assert "trends" not in report
        assert "chart_data" not in report

    def test_default_sections_and_charts(self, session, user, outcomes):
        report = build_report(session, user.id, include_charts=True, now=NOW)
        assert set(report) == {"metadata", "overview", "trends", "insights", "chart_data"}
        assert len(report["trends"]["monthly"]) == 12
        assert report["chart_data"]["status_distribution"][0]["count"] == 1

    def test_date_range(self, session, user, outcomes):
        report = build_report(session, user.id, ["overview"], start=NOW - timedelta(days=15), now=NOW)
        assert report["overview"]["total_applications"] == 2

    def test_unknown_section(self, session, user):
        with pytest.raises(ValidationFailed) as exc:
            build_report(session, user.id, ["overview", "gossip"])
        assert "benchmarks" in exc.value.details["supported"]

    def test_benchmarks(self, outcomes):
        comparison = benchmarks(overview(outcomes))
        assert comparison["interview_rate"] == {"value": 50.0, "benchmark": 15.0, "above_average": True}
        assert comparison["average_response_days"]["above_average"] is True

    def test_recommendations(self, make_application):
        assert recommendations([], overview([]))[0]["title"] == "Continue Tracking"

        apps = [make_application(company="Globex", status="Applied") for _ in range(11)]
        titles = [r["title"] for r in recommendations(apps, overview(apps))]
        assert titles == ["Improve Application Quality", "Diversify Your Applications"]


def test_record_events():
    events = [
        {"event": "page_view", "session_id": "s1", "properties": {"path": "/"}},
        {"event": "page_view", "session_id": "s1", "properties": {}},
    ]
    result = record_events("u1", events, now=NOW)
    assert result == {"processed": 2, "timestamp": NOW.isoformat()}
