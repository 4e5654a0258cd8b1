"""Tests for privacy-gated calendar, email, job board and bundle integrations."""
from datetime import datetime, timedelta

import pytest

from apptrack.db.models import Application, JobRecommendation, Reminder
from apptrack.errors import APIError, ForbiddenError, ValidationFailed
from apptrack.services.integrations import (
    EmailMessage,
    calendar_events,
    classify_email,
    create_calendar_event,
    export_bundle,
    get_privacy_settings,
    import_bundle,
    sync_email,
    sync_job_board,
    update_privacy_settings,
)

NOW = datetime(2026, 3, 1, 12, 0)


class TestPrivacy:
    def test_defaults(self, user):
        settings = get_privacy_settings(user)
        assert settings["allow_data_sync"] is True
        assert settings["allow_email_tracking"] is False
        assert settings["data_retention_days"] == 365

    def test_update_merges(self, user):
        update_privacy_settings(user, {"allow_email_tracking": True, "allow_cloud_backup": None})
        settings = get_privacy_settings(user)
        assert settings["allow_email_tracking"] is True
        assert settings["allow_cloud_backup"] is False

    def test_sync_blocked_by_privacy(self, session, user):
        with pytest.raises(ForbiddenError) as exc:
            sync_email(session, user, "gmail", [])
        assert exc.value.code == "SYNC_DISABLED"

    def test_unknown_provider(self, session, user):
        with pytest.raises(APIError) as exc:
            sync_job_board(session, user, "monster")
        assert exc.value.code == "INVALID_PROVIDER"
        assert exc.value.status_code == 400


class TestCalendar:
    def test_events_sorted(self, session, user, make_application):
        app = make_application(company="Globex", interview_date=NOW + timedelta(days=2),
                               contact_email="hr@globex.com")
        make_application(company="Hooli", interview_date=NOW - timedelta(days=2))
        session.add(Reminder(user_id=user.id, reminder_type="custom", title="Call back",
                             due_date=NOW + timedelta(days=1)))
        session.flush()

        events = calendar_events(session, user.id, now=NOW)
        assert [e["title"] for e in events] == ["Call back", "Interview: Backend Engineer at Globex"]
        assert events[1]["attendees"] == ["hr@globex.com"]
        assert events[1]["application_id"] == app.id

    def test_create_event_stores_reminder(self, session, user):
        event = create_calendar_event(session, user, "google", "Coffee chat", NOW)
        assert event["end_time"] == (NOW + timedelta(hours=1)).isoformat()
        (reminder,) = session.query(Reminder).all()
        assert reminder.reminder_type == "custom"
        assert event["id"] == f"reminder:{reminder.id}"


class TestEmail:
    @pytest.mark.parametrize("subject,expected", [
        ("Interview invitation", "Interviewing"),
        ("Your offer letter", "Offered"),
        ("Unfortunately we moved on", "Rejected"),
        ("Thanks for applying", None),
    ])
    def test_classify(self, subject, expected):
        assert classify_email(EmailMessage(subject=subject)) == expected

    def test_sync_advances_status(self, session, user, make_application):
        update_privacy_settings(user, {"allow_email_tracking": True})
        globex = make_application(company="Globex", status="Applied")
        hooli = make_application(company="Hooli", status="Rejected")
        messages = [
            EmailMessage(subject="Interview with Globex", **{"from": "hr@globex.com"}),
            EmailMessage(subject="An offer from Hooli"),
            EmailMessage(subject="Newsletter"),
        ]

        result = sync_email(session, user, "gmail", messages, now=NOW)
        assert result["items_processed"] == 3
        assert result["items_added"] == 2
        assert result["items_updated"] == 1
        assert globex.status == "Interviewing"
        assert hooli.status == "Rejected"

    def test_status_never_moves_backwards(self, session, user, make_application):
        update_privacy_settings(user, {"allow_email_tracking": True})
        app = make_application(company="Globex", status="Offered")
        sync_email(session, user, "outlook", [EmailMessage(subject="Globex interview schedule")], now=NOW)
        assert app.status == "Offered"


class TestJobBoards:
    def test_sync_skips_known_urls(self, session, user):
        first = sync_job_board(session, user, "linkedin")
        assert first["items_added"] == 2
        second = sync_job_board(session, user, "linkedin")
        assert second["items_processed"] == 2
        assert second["items_added"] == 0
        assert session.query(JobRecommendation).count() == 2


class TestBundle:
    def test_import_remaps_reminders(self, session, user):
        bundle = {
            "applications": [{"id": "old-1", "company": "Globex", "position": "Data Engineer"}],
            "contacts": [
                {"first_name": "Ada", "last_name": "Lovelace", "email": "ada@example.com"},
                {"first_name": ""},
            ],
            "reminders": [{
                "application_id": "old-1", "reminder_type": "follow_up",
                "title": "Ping", "due_date": NOW.isoformat(),
            }],
        }
        result = import_bundle(session, user, bundle)
        assert result["counts"]["applications"] == {"imported": 1, "skipped": 0}
        assert result["counts"]["contacts"] == {"imported": 1, "skipped": 0}
        assert len(result["errors"]) == 1
        assert result["errors"][0].startswith("contacts[1]")

        app = session.query(Application).one()
        reminder = session.query(Reminder).one()
        assert reminder.application_id == app.id

        again = import_bundle(session, user, bundle)
        assert again["counts"]["applications"]["skipped"] == 1
        assert again["counts"]["contacts"]["skipped"] == 1
        assert again["counts"]["reminders"]["skipped"] == 1

    def test_export_bundle(self, session, user, make_application):
        make_application(company="Globex")
        bundle = export_bundle(session, user, now=NOW)
        assert bundle["metadata"] == {"export_date": NOW.isoformat(), "version": "1.0"}
        assert bundle["applications"][0]["company"] == "Globex"
        assert bundle["privacy"]["allow_data_sync"] is True

    def test_import_rejects_non_object(self, session, user):
        with pytest.raises(ValidationFailed):
            import_bundle(session, user, ["not", "a", "bundle"])
