"""
Reminders API Endpoints
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..db.database import get_db
from ..db.models import User
from ..errors import NotFoundError, ok
from ..schemas import ReminderCreate, ReminderResponse, ReminderUpdate, serialize
from ..services import reminders as service

router = APIRouter()


class SnoozeRequest(BaseModel):
    hours: int = Field(..., ge=1, le=168)


def _serialize_all(reminders) -> list[dict]:
    return [serialize(ReminderResponse, r) for r in reminders]


@router.get("")
async def list_reminders(
    include_completed: bool = False,
    application_id: Optional[str] = None,
    type: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    reminders = service.list_reminders(
        db, current_user.id,
        include_completed=include_completed,
        application_id=application_id,
        reminder_type=type,
    )
    return ok(_serialize_all(reminders))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_reminder(
    body: ReminderCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    reminder = service.create_reminder(db, current_user.id, body.model_dump())
    return ok(serialize(ReminderResponse, reminder))


@router.get("/upcoming")
async def upcoming_reminders(
    days: int = Query(7, ge=1, le=365),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(_serialize_all(service.get_upcoming_reminders(db, current_user.id, days)))


@router.get("/overdue")
async def overdue_reminders(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(_serialize_all(service.get_overdue_reminders(db, current_user.id)))


@router.get("/stats")
async def reminder_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(service.get_reminder_stats(db, current_user.id))


@router.get("/{reminder_id}")
async def get_reminder(
    reminder_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(serialize(ReminderResponse, service.get_reminder(db, current_user.id, reminder_id)))


@router.put("/{reminder_id}")
async def update_reminder(
    reminder_id: str,
    body: ReminderUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    reminder = service.update_reminder(
        db, current_user.id, reminder_id, body.model_dump(exclude_unset=True)
    )
    return ok(serialize(ReminderResponse, reminder))


@router.delete("/{reminder_id}")
async def delete_reminder(
    reminder_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    service.delete_reminder(db, current_user.id, reminder_id)
    return ok({"id": reminder_id, "deleted": True})


@router.post("/{reminder_id}/complete")
async def complete_reminder(
    reminder_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if not service.complete_reminder(db, current_user.id, reminder_id):
        raise NotFoundError("Reminder not found or already completed")
    db.flush()
    return ok(serialize(ReminderResponse, service.get_reminder(db, current_user.id, reminder_id)))


@router.post("/{reminder_id}/snooze")
async def snooze_reminder(
    reminder_id: str,
    body: SnoozeRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    reminder = service.snooze_reminder(db, current_user.id, reminder_id, body.hours)
    if reminder is None:
        raise NotFoundError("Reminder not found or already completed")
    db.flush()
    return ok(serialize(ReminderResponse, reminder))
