"""
Integrations API Endpoints

Mock calendar, email, job-board and storage providers, privacy settings
and the JSON export/import bundle.
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..db.database import get_db
from ..db.models import User
from ..errors import ok
from ..schemas import UTCDatetime
from ..services import integrations as service
from ..services.integrations import EmailMessage, PrivacySettingsUpdate

router = APIRouter()


class CalendarEventRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    start_time: UTCDatetime
    description: Optional[str] = None
    application_id: Optional[str] = None


class EmailSyncRequest(BaseModel):
    messages: list[EmailMessage] = []


# ---------------------------------------------------------------------------
# Privacy
# ---------------------------------------------------------------------------

@router.get("/privacy")
async def get_privacy(current_user: User = Depends(get_current_user)):
    return ok(service.get_privacy_settings(current_user))


@router.put("/privacy")
async def update_privacy(
    body: PrivacySettingsUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    settings = service.update_privacy_settings(current_user, body.model_dump(exclude_unset=True))
    db.flush()
    return ok(settings)


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------

@router.get("/calendar/events")
async def calendar_events(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(service.calendar_events(db, current_user.id))


@router.post("/calendar/{provider}/sync")
async def sync_calendar(
    provider: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(service.sync_calendar(db, current_user, provider))


@router.post("/calendar/{provider}/events", status_code=status.HTTP_201_CREATED)
async def create_calendar_event(
    provider: str,
    body: CalendarEventRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    event = service.create_calendar_event(
        db, current_user, provider,
        title=body.title,
        start_time=body.start_time,
        description=body.description,
        application_id=body.application_id,
    )
    return ok(event)


@router.post("/email/{provider}/sync")
async def sync_email(
    provider: str,
    body: EmailSyncRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(service.sync_email(db, current_user, provider, body.messages))


@router.get("/job-boards/{platform}")
async def job_board_listings(
    platform: str,
    current_user: User = Depends(get_current_user),
):
    return ok(service.job_board_listings(platform))


@router.post("/job-boards/{platform}/sync")
async def sync_job_board(
    platform: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(service.sync_job_board(db, current_user, platform))


@router.post("/storage/{provider}/backup")
async def storage_backup(
    provider: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(service.sync_storage(db, current_user, provider))


# ---------------------------------------------------------------------------
# Bundles
# ---------------------------------------------------------------------------

@router.get("/export")
async def export_bundle(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(service.export_bundle(db, current_user))


@router.post("/import")
async def import_bundle(
    bundle: dict = Body(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(service.import_bundle(db, current_user, bundle))
