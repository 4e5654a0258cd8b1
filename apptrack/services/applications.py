"""Application CRUD with status-change side effects.

A status change on update:
    1. stamps empty date fields (Offered → offer_date, Rejected → rejection_date,
       anything past Pending/Applied → response_date)
    2. runs the reminder status hook
    3. fires ``status_changed`` workflows

Creation fires ``application_created`` workflows.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ..db.models import Application, ApplicationHistory, utcnow
from ..errors import NotFoundError, ValidationFailed
from . import duplicates, reminders, workflows

logger = logging.getLogger(__name__)

UNRESPONDED_STATUSES = {"Pending", "Applied"}
REQUIRED_FIELDS = ("company", "position", "status", "priority", "requirements", "tags")


def get_application(session: Session, user_id: str, application_id: str) -> Application:
    app = (
        session.query(Application)
        .filter(Application.id == application_id, Application.user_id == user_id)
        .first()
    )
    if app is None:
        raise NotFoundError("Application not found")
    return app


def list_applications(
    session: Session,
    user_id: str,
    page: int = 1,
    limit: int = 50,
    status: Optional[str] = None,
    company: Optional[str] = None,
    position: Optional[str] = None,
    priority: Optional[str] = None,
    search: Optional[str] = None,
) -> tuple[list[Application], int]:
    """Page of the user's applications, newest applied first (undated last)."""
    query = session.query(Application).filter(Application.user_id == user_id)
    if status:
        query = query.filter(Application.status == status)
    if priority:
        query = query.filter(Application.priority == priority)
    if company:
        query = query.filter(func.lower(Application.company).like(f"%{company.lower()}%"))
    if position:
        query = query.filter(func.lower(Application.position).like(f"%{position.lower()}%"))
    if search:
        pattern = f"%{search.lower()}%"
        query = query.filter(or_(
            func.lower(Application.company).like(pattern),
            func.lower(Application.position).like(pattern),
            func.lower(Application.location).like(pattern),
            func.lower(Application.notes).like(pattern),
        ))

    total = query.count()
    items = (
        query.order_by(
            Application.applied_date.is_(None),
            Application.applied_date.desc(),
            Application.created_at.desc(),
        )
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total


def stamp_status_dates(
    application: Application,
    new_status: str,
    now: Optional[datetime] = None,
) -> list[str]:
    """Fill date fields implied by a status; existing dates are kept."""
    now = now or utcnow()
    stamped = []
    if new_status == "Offered" and application.offer_date is None:
        application.offer_date = now
        stamped.append("offer_date")
    if new_status == "Rejected" and application.rejection_date is None:
        application.rejection_date = now
        stamped.append("rejection_date")
    if new_status not in UNRESPONDED_STATUSES and application.response_date is None:
        application.response_date = now
        stamped.append("response_date")
    return stamped


def create_application(
    session: Session,
    user_id: str,
    data: dict,
    fire_workflows: bool = True,
) -> Application:
    app = Application(user_id=user_id, **data)
    session.add(app)
    session.flush()
    logger.info(f"Created application {app.id}: {app.company} / {app.position}")

    if fire_workflows:
        workflows.process_trigger(
            session, user_id, "application_created", app,
            context={"status": app.status},
        )
    return app


def update_application(
    session: Session,
    user_id: str,
    application_id: str,
    changes: dict,
    now: Optional[datetime] = None,
) -> Application:
    """Apply a partial update; status changes run the hooks described above."""
    cleared = [k for k in REQUIRED_FIELDS if k in changes and changes[k] is None]
    if cleared:
        raise ValidationFailed(f"Cannot clear required fields: {', '.join(cleared)}")
    now = now or utcnow()
    app = get_application(session, user_id, application_id)
    old_status = app.status

    for key, value in changes.items():
        setattr(app, key, value)

    new_status = app.status
    if new_status != old_status:
        stamp_status_dates(app, new_status, now)
        session.flush()
        reminders.update_reminders_for_status_change(session, app, old_status, new_status, now)
        workflows.process_trigger(
            session, user_id, "status_changed", app,
            context={"old_status": old_status, "new_status": new_status},
            now=now,
        )
    session.flush()
    return app


def delete_application(session: Session, user_id: str, application_id: str) -> None:
    app = get_application(session, user_id, application_id)
    session.delete(app)
    session.flush()
    logger.info(f"Deleted application {application_id}")


def get_history(
    session: Session,
    user_id: str,
    application_id: str,
) -> list[ApplicationHistory]:
    get_application(session, user_id, application_id)
    return (
        session.query(ApplicationHistory)
        .filter(ApplicationHistory.application_id == application_id)
        .order_by(ApplicationHistory.changed_at.desc(), ApplicationHistory.id.desc())
        .all()
    )


def check_duplicates(session: Session, user_id: str, candidate: dict) -> dict:
    existing = session.query(Application).filter(Application.user_id == user_id).all()
    return duplicates.detect_duplicates(candidate, existing)


def find_duplicate_groups(session: Session, user_id: str) -> dict:
    records = (
        session.query(Application)
        .filter(Application.user_id == user_id)
        .order_by(Application.created_at.asc())
        .all()
    )
    return duplicates.find_duplicate_groups(records)
