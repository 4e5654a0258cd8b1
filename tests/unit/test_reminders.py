"""Tests for automatic reminder scheduling and reminder queries."""
from datetime import datetime, timedelta

import pytest

from apptrack.db.models import Reminder
from apptrack.errors import NotFoundError
from apptrack.services.reminders import (
    complete_reminder,
    create_automatic_reminders,
    create_reminder,
    get_due_reminders,
    get_overdue_reminders,
    get_reminder_stats,
    get_upcoming_reminders,
    snooze_reminder,
    update_reminders_for_status_change,
)

NOW = datetime(2026, 3, 1, 12, 0)


def _reminder(session, user, due, **fields):
    reminder = Reminder(
        user_id=user.id,
        reminder_type=fields.pop("reminder_type", "custom"),
        title=fields.pop("title", "Call recruiter"),
        due_date=due,
        **fields,
    )
    session.add(reminder)
    session.flush()
    return reminder


class TestAutomaticReminders:
    def test_applied_creates_two_follow_ups(self, session, make_application):
        app = make_application(status="Applied", applied_date=NOW - timedelta(days=1))
        created = create_automatic_reminders(session, app, now=NOW)

        assert [r.reminder_type for r in created] == ["follow_up", "follow_up"]
        assert created[0].due_date == NOW + timedelta(days=6)
        assert created[1].due_date == NOW + timedelta(days=13)
        assert created[0].title == "Follow up on application - Acme Corp"

    def test_past_due_dates_are_skipped(self, session, make_application):
        app = make_application(status="Applied", applied_date=NOW - timedelta(days=10))
        created = create_automatic_reminders(session, app, now=NOW)
        assert len(created) == 1
        assert created[0].title.startswith("Second follow-up")

    def test_interviewing_without_date_creates_nothing(self, session, make_application):
        app = make_application(status="Interviewing")
        assert create_automatic_reminders(session, app, now=NOW) == []

    def test_pending_deadline_nudge(self, session, make_application):
        app = make_application(status="Pending", applied_date=NOW + timedelta(days=10))
        created = create_automatic_reminders(session, app, now=NOW)
        assert len(created) == 1
        assert created[0].reminder_type == "deadline"
        assert created[0].due_date == NOW + timedelta(days=7)


class TestStatusChange:
    def test_closed_status_completes_open_reminders(self, session, make_application):
        app = make_application(status="Applied", applied_date=NOW)
        create_automatic_reminders(session, app, now=NOW)

        app.status = "Rejected"
        result = update_reminders_for_status_change(session, app, "Applied", "Rejected", now=NOW)

        assert result == {"completed": 2, "created": 0}
        open_count = (
            session.query(Reminder)
            .filter(Reminder.application_id == app.id, Reminder.is_completed.is_(False))
            .count()
        )
        assert open_count == 0

    def test_interviewing_creates_three(self, session, make_application):
        interview = NOW + timedelta(days=3)
        app = make_application(status="Interviewing", interview_date=interview)
        result = update_reminders_for_status_change(session, app, "Applied", "Interviewing", now=NOW)

        assert result["created"] == 3
        dues = sorted(
            r.due_date for r in session.query(Reminder).filter(Reminder.application_id == app.id)
        )
        assert dues == [
            interview - timedelta(hours=24),
            interview - timedelta(hours=2),
            interview + timedelta(hours=24),
        ]

    def test_offered_uses_offer_date(self, session, make_application):
        app = make_application(status="Offered", offer_date=NOW)
        result = update_reminders_for_status_change(session, app, "Interviewing", "Offered", now=NOW)
        assert result == {"completed": 0, "created": 2}


class TestQueries:
    def test_upcoming_includes_overdue(self, session, user):
        _reminder(session, user, NOW - timedelta(days=1), title="late")
        _reminder(session, user, NOW + timedelta(days=3), title="soon")
        _reminder(session, user, NOW + timedelta(days=30), title="later")

        titles = [r.title for r in get_upcoming_reminders(session, user.id, days=7, now=NOW)]
        assert titles == ["late", "soon"]

    def test_overdue(self, session, user):
        _reminder(session, user, NOW - timedelta(hours=1), title="late")
        _reminder(session, user, NOW - timedelta(hours=2), title="done", is_completed=True)
        assert [r.title for r in get_overdue_reminders(session, user.id, now=NOW)] == ["late"]

    def test_due_window_spans_users(self, session, user):
        _reminder(session, user, NOW + timedelta(minutes=30))
        _reminder(session, user, NOW + timedelta(hours=3))
        due = get_due_reminders(session, NOW, NOW + timedelta(hours=1))
        assert len(due) == 1


class TestMutations:
    def test_create_rejects_foreign_application(self, session, user):
        with pytest.raises(NotFoundError):
            create_reminder(session, user.id, {
                "application_id": "missing",
                "reminder_type": "custom",
                "title": "x",
                "due_date": NOW,
            })

    def test_complete_only_once(self, session, user):
        reminder = _reminder(session, user, NOW)
        assert complete_reminder(session, user.id, reminder.id) is True
        assert complete_reminder(session, user.id, reminder.id) is False

    def test_snooze(self, session, user):
        reminder = _reminder(session, user, NOW)
        snoozed = snooze_reminder(session, user.id, reminder.id, hours=24)
        assert snoozed.due_date == NOW + timedelta(hours=24)
        assert snooze_reminder(session, "someone-else", reminder.id, hours=1) is None


class TestStats:
    def test_stats(self, session, user):
        _reminder(session, user, NOW - timedelta(days=1), reminder_type="follow_up")
        _reminder(session, user, NOW + timedelta(days=2), reminder_type="follow_up")
        _reminder(session, user, NOW + timedelta(days=20), reminder_type="deadline")
        _reminder(session, user, NOW, is_completed=True)

        stats = get_reminder_stats(session, user.id, now=NOW)
        assert stats["total"] == 4
        assert stats["completed"] == 1
        assert stats["pending"] == 3
        assert stats["overdue"] == 1
        assert stats["upcoming"] == 1
        assert stats["completion_rate"] == 25
        assert stats["by_type"] == {"follow_up": 2, "deadline": 1, "custom": 1}

    def test_empty(self, session, user):
        assert get_reminder_stats(session, user.id, now=NOW)["completion_rate"] == 0
