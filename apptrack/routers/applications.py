"""
Applications API Endpoints
"""

import math
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..config import get_config
from ..db.database import get_db
from ..db.models import User
from ..schemas import (
    ApplicationCreate,
    ApplicationResponse,
    ApplicationUpdate,
    ReminderResponse,
    serialize,
)
from ..errors import ok
from ..services import applications as service
from ..services import reminders as reminder_service

router = APIRouter()


class DuplicateCheckRequest(BaseModel):
    company: str = Field(..., min_length=1, max_length=255)
    position: str = Field(..., min_length=1, max_length=255)
    location: Optional[str] = None
    job_url: Optional[str] = None
    applied_date: Optional[datetime] = None
    contact_email: Optional[str] = None
    status: Optional[str] = None
    salary_range: Optional[str] = None


def pagination(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "pages": math.ceil(total / limit) if limit else 0,
    }


def clamp_limit(limit: Optional[int]) -> int:
    config = get_config().pagination
    return min(limit or config.default_limit, config.max_limit)


@router.get("")
async def list_applications(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    status: Optional[str] = None,
    company: Optional[str] = None,
    position: Optional[str] = None,
    priority: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    limit = clamp_limit(limit)
    apps, total = service.list_applications(
        db, current_user.id, page=page, limit=limit, status=status,
        company=company, position=position, priority=priority, search=search,
    )
    return ok(
        [serialize(ApplicationResponse, a) for a in apps],
        pagination=pagination(page, limit, total),
    )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_application(
    body: ApplicationCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    app = service.create_application(db, current_user.id, body.model_dump())
    return ok(serialize(ApplicationResponse, app))


@router.get("/duplicates")
async def find_duplicates(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    result = service.find_duplicate_groups(db, current_user.id)
    groups = [
        {
            **group,
            "applications": [serialize(ApplicationResponse, a) for a in group["applications"]],
        }
        for group in result["groups"]
    ]
    return ok({**result, "groups": groups})


@router.post("/check-duplicates")
async def check_duplicates(
    body: DuplicateCheckRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    result = service.check_duplicates(db, current_user.id, body.model_dump())
    matches = [
        {**match, "application": serialize(ApplicationResponse, match["application"])}
        for match in result["matches"]
    ]
    return ok({**result, "matches": matches})


@router.get("/{application_id}")
async def get_application(
    application_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    app = service.get_application(db, current_user.id, application_id)
    return ok(serialize(ApplicationResponse, app))


@router.put("/{application_id}")
async def update_application(
    application_id: str,
    body: ApplicationUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    app = service.update_application(
        db, current_user.id, application_id, body.model_dump(exclude_unset=True)
    )
    return ok(serialize(ApplicationResponse, app))


@router.delete("/{application_id}")
async def delete_application(
    application_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    service.delete_application(db, current_user.id, application_id)
    return ok({"id": application_id, "deleted": True})


@router.get("/{application_id}/history")
async def get_history(
    application_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    entries = service.get_history(db, current_user.id, application_id)
    return ok([
        {
            "id": e.id,
            "field_changed": e.field_changed,
            "old_value": e.old_value,
            "new_value": e.new_value,
            "changed_at": e.changed_at.isoformat(),
        }
        for e in entries
    ])


@router.post("/{application_id}/reminders", status_code=status.HTTP_201_CREATED)
async def create_reminders(
    application_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    app = service.get_application(db, current_user.id, application_id)
    created = reminder_service.create_automatic_reminders(db, app)
    db.flush()
    return ok([serialize(ReminderResponse, r) for r in created])
