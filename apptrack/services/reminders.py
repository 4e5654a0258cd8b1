"""Reminder scheduling for job applications.

Automatic reminders follow common follow-up timing:
    Applied       → follow-up after 7 days, second follow-up after 14 days
    Interviewing  → prep the day before, thank-you note the day after
    Pending       → deadline nudge 3 days before the applied date
    Offered       → review offer (+1 day), respond to offer (+7 days)
    Rejected / Accepted / Withdrawn → open reminders are closed

Only reminders with a due date in the future are created.

Usage:
    from apptrack.services.reminders import (
        create_automatic_reminders,
        update_reminders_for_status_change,
        get_upcoming_reminders,
    )
"""
import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ..db.models import Application, Reminder, utcnow
from ..errors import NotFoundError
from ..schemas import CLOSED_STATUSES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReminderTemplate:
    reminder_type: str
    title: str
    description: str
    days: int
    condition: Callable[[Application], bool]
    anchor: str = "applied_date"  # field the offset is measured from


REMINDER_TEMPLATES = [
    ReminderTemplate(
        reminder_type="follow_up",
        title="Follow up on application",
        description="Send a polite follow-up email to check on the status of your application.",
        days=7,
        condition=lambda app: app.status == "Applied",
    ),
    ReminderTemplate(
        reminder_type="follow_up",
        title="Second follow-up",
        description="Send a second follow-up if you haven't heard back after the first one.",
        days=14,
        condition=lambda app: app.status == "Applied",
    ),
    ReminderTemplate(
        reminder_type="interview_prep",
        title="Prepare for interview",
        description="Research the company, practice common interview questions, "
                    "and prepare your questions.",
        days=-1,
        condition=lambda app: app.status == "Interviewing" and app.interview_date is not None,
        anchor="interview_date",
    ),
    ReminderTemplate(
        reminder_type="follow_up",
        title="Post-interview follow-up",
        description="Send a thank-you email and reiterate your interest in the position.",
        days=1,
        condition=lambda app: app.status == "Interviewing" and app.interview_date is not None,
        anchor="interview_date",
    ),
    ReminderTemplate(
        reminder_type="deadline",
        title="Application deadline approaching",
        description="Complete and submit your application before the deadline.",
        days=-3,
        condition=lambda app: app.status == "Pending",
    ),
]


def _add_future(
    session: Session,
    application: Application,
    drafts: list[tuple[str, str, str, datetime]],
    now: datetime,
) -> list[Reminder]:
    """Persist (type, title, description, due) drafts whose due date is in the future."""
    created = []
    for reminder_type, title, description, due in drafts:
        if due <= now:
            continue
        reminder = Reminder(
            user_id=application.user_id,
            application_id=application.id,
            reminder_type=reminder_type,
            title=title,
            description=description,
            due_date=due,
            is_completed=False,
        )
        session.add(reminder)
        created.append(reminder)
    return created


# ---------------------------------------------------------------------------
# 1) Automatic reminders for an application
# ---------------------------------------------------------------------------

def create_automatic_reminders(
    session: Session,
    application: Application,
    now: Optional[datetime] = None,
) -> list[Reminder]:
    """Create template reminders that apply to the application's status.

    Args:
        session: SQLAlchemy session (caller manages commit)
        application: Persisted application (id must be set)
        now: Reference time (default: current UTC)

    Returns:
        List of created Reminder objects
    """
    now = now or utcnow()
    drafts = []
    for template in REMINDER_TEMPLATES:
        if not template.condition(application):
            continue
        anchor = getattr(application, template.anchor) or now
        drafts.append((
            template.reminder_type,
            f"{template.title} - {application.company}",
            template.description,
            anchor + timedelta(days=template.days),
        ))

    created = _add_future(session, application, drafts, now)
    logger.info(
        f"Created {len(created)} automatic reminders for application "
        f"{application.id} ({application.company}, status={application.status})"
    )
    return created


# ---------------------------------------------------------------------------
# 2) Status change hooks
# ---------------------------------------------------------------------------

def update_reminders_for_status_change(
    session: Session,
    application: Application,
    old_status: Optional[str],
    new_status: str,
    now: Optional[datetime] = None,
) -> dict:
    """Close or create reminders after an application's status changed.

    Returns:
        {"completed": N, "created": N}
    """
    now = now or utcnow()
    completed = 0
    created: list[Reminder] = []

    if new_status in CLOSED_STATUSES:
        completed = (
            session.query(Reminder)
            .filter(
                Reminder.user_id == application.user_id,
                Reminder.application_id == application.id,
                Reminder.is_completed.is_(False),
            )
            .update({Reminder.is_completed: True}, synchronize_session="fetch")
        )

    if new_status == "Interviewing" and application.interview_date:
        created = create_interview_reminders(session, application, now)

    if new_status == "Offered":
        created = create_offer_reminders(session, application, now)

    logger.info(
        f"Status change {old_status} → {new_status} for {application.id}: "
        f"{completed} reminders closed, {len(created)} created"
    )
    return {"completed": completed, "created": len(created)}


def create_interview_reminders(
    session: Session,
    application: Application,
    now: Optional[datetime] = None,
) -> list[Reminder]:
    if not application.interview_date:
        return []
    now = now or utcnow()
    interview = application.interview_date
    company = application.company
    drafts = [
        (
            "interview_prep",
            f"Prepare for interview - {company}",
            "Research the company, review the job description, and prepare your questions.",
            interview - timedelta(hours=24),
        ),
        (
            "interview_prep",
            f"Final interview preparation - {company}",
            "Review your resume, practice answers, and plan your route to the interview location.",
            interview - timedelta(hours=2),
        ),
        (
            "follow_up",
            f"Send thank-you note - {company}",
            "Send a personalized thank-you email to your interviewer(s).",
            interview + timedelta(hours=24),
        ),
    ]
    return _add_future(session, application, drafts, now)


def create_offer_reminders(
    session: Session,
    application: Application,
    now: Optional[datetime] = None,
) -> list[Reminder]:
    now = now or utcnow()
    offer = application.offer_date or now
    company = application.company
    drafts = [
        (
            "deadline",
            f"Review job offer - {company}",
            "Carefully review the offer details, salary, benefits, and terms.",
            offer + timedelta(days=1),
        ),
        (
            "deadline",
            f"Respond to job offer - {company}",
            "Make your decision and respond to the job offer.",
            offer + timedelta(days=7),
        ),
    ]
    return _add_future(session, application, drafts, now)


# ---------------------------------------------------------------------------
# 3) Queries
# ---------------------------------------------------------------------------

def list_reminders(
    session: Session,
    user_id: str,
    include_completed: bool = False,
    application_id: Optional[str] = None,
    reminder_type: Optional[str] = None,
) -> list[Reminder]:
    query = session.query(Reminder).filter(Reminder.user_id == user_id)
    if not include_completed:
        query = query.filter(Reminder.is_completed.is_(False))
    if application_id:
        query = query.filter(Reminder.application_id == application_id)
    if reminder_type:
        query = query.filter(Reminder.reminder_type == reminder_type)
    return query.order_by(Reminder.is_completed.asc(), Reminder.due_date.asc()).all()


def get_upcoming_reminders(
    session: Session,
    user_id: str,
    days: int = 7,
    now: Optional[datetime] = None,
) -> list[Reminder]:
    """Open reminders due within the next `days` days (overdue included)."""
    end = (now or utcnow()) + timedelta(days=days)
    return (
        session.query(Reminder)
        .filter(
            Reminder.user_id == user_id,
            Reminder.is_completed.is_(False),
            Reminder.due_date <= end,
        )
        .order_by(Reminder.due_date.asc())
        .all()
    )


def get_overdue_reminders(
    session: Session,
    user_id: str,
    now: Optional[datetime] = None,
) -> list[Reminder]:
    now = now or utcnow()
    return (
        session.query(Reminder)
        .filter(
            Reminder.user_id == user_id,
            Reminder.is_completed.is_(False),
            Reminder.due_date < now,
        )
        .order_by(Reminder.due_date.asc())
        .all()
    )


def get_due_reminders(
    session: Session,
    start: datetime,
    end: datetime,
) -> list[Reminder]:
    """Open reminders of all users due in [start, end] not yet notified."""
    return (
        session.query(Reminder)
        .filter(
            Reminder.is_completed.is_(False),
            Reminder.notified_at.is_(None),
            Reminder.due_date >= start,
            Reminder.due_date <= end,
        )
        .order_by(Reminder.due_date.asc())
        .all()
    )


# ---------------------------------------------------------------------------
# 4) Mutations
# ---------------------------------------------------------------------------

def _check_application(session: Session, user_id: str, application_id: Optional[str]) -> None:
    if application_id is None:
        return
    owned = (
        session.query(Application.id)
        .filter(Application.id == application_id, Application.user_id == user_id)
        .first()
    )
    if owned is None:
        raise NotFoundError("Application not found")


def get_reminder(session: Session, user_id: str, reminder_id: str) -> Reminder:
    reminder = (
        session.query(Reminder)
        .filter(Reminder.id == reminder_id, Reminder.user_id == user_id)
        .first()
    )
    if reminder is None:
        raise NotFoundError("Reminder not found")
    return reminder


def create_reminder(session: Session, user_id: str, data: dict) -> Reminder:
    _check_application(session, user_id, data.get("application_id"))
    reminder = Reminder(user_id=user_id, is_completed=False, **data)
    session.add(reminder)
    session.flush()
    logger.info(f"Created {reminder.reminder_type} reminder {reminder.id}")
    return reminder


def update_reminder(session: Session, user_id: str, reminder_id: str, changes: dict) -> Reminder:
    reminder = get_reminder(session, user_id, reminder_id)
    for key, value in changes.items():
        if value is None and key in ("reminder_type", "title", "due_date", "is_completed"):
            continue
        setattr(reminder, key, value)
    if changes.get("due_date") is not None:
        reminder.notified_at = None
    session.flush()
    return reminder


def delete_reminder(session: Session, user_id: str, reminder_id: str) -> None:
    session.delete(get_reminder(session, user_id, reminder_id))
    session.flush()


def complete_reminder(session: Session, user_id: str, reminder_id: str) -> bool:
    """Mark an open reminder completed. False if missing or already done."""
    reminder = (
        session.query(Reminder)
        .filter(
            Reminder.id == reminder_id,
            Reminder.user_id == user_id,
            Reminder.is_completed.is_(False),
        )
        .first()
    )
    if reminder is None:
        return False
    reminder.is_completed = True
    logger.debug(f"Completed reminder {reminder_id}")
    return True


def snooze_reminder(
    session: Session,
    user_id: str,
    reminder_id: str,
    hours: int,
) -> Optional[Reminder]:
    """Push an open reminder's due date back by `hours`."""
    reminder = (
        session.query(Reminder)
        .filter(
            Reminder.id == reminder_id,
            Reminder.user_id == user_id,
            Reminder.is_completed.is_(False),
        )
        .first()
    )
    if reminder is None:
        return None
    reminder.due_date = reminder.due_date + timedelta(hours=hours)
    reminder.notified_at = None
    logger.debug(f"Snoozed reminder {reminder_id} by {hours}h → {reminder.due_date}")
    return reminder


# ---------------------------------------------------------------------------
# 5) Statistics
# ---------------------------------------------------------------------------

def get_reminder_stats(
    session: Session,
    user_id: str,
    now: Optional[datetime] = None,
) -> dict:
    now = now or utcnow()
    week_from_now = now + timedelta(days=7)
    reminders = session.query(Reminder).filter(Reminder.user_id == user_id).all()

    total = len(reminders)
    completed = sum(1 for r in reminders if r.is_completed)
    open_reminders = [r for r in reminders if not r.is_completed]
    overdue = sum(1 for r in open_reminders if r.due_date < now)
    upcoming = sum(1 for r in open_reminders if now <= r.due_date <= week_from_now)

    return {
        "total": total,
        "completed": completed,
        "pending": len(open_reminders),
        "overdue": overdue,
        "upcoming": upcoming,
        "completion_rate": round(completed / total * 100) if total else 0,
        "by_type": dict(Counter(r.reminder_type for r in reminders)),
    }
