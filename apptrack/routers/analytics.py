"""
Analytics API Endpoints
"""

from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..db.database import get_db
from ..db.models import User
from ..errors import ok
from ..schemas import UTCDatetime, to_naive_utc
from ..services import analytics as service
from ..services import export as export_service

router = APIRouter()

MAX_EVENTS_PER_BATCH = 100


class ReportDateRange(BaseModel):
    start: Optional[UTCDatetime] = None
    end: Optional[UTCDatetime] = None


class ReportExportRequest(BaseModel):
    format: Literal["json", "csv", "pdf"] = "json"
    include_charts: bool = False
    date_range: Optional[ReportDateRange] = None
    sections: list[str] = list(service.DEFAULT_REPORT_SECTIONS)
    custom_filename: Optional[str] = Field(None, max_length=200)


class ClientEvent(BaseModel):
    event: str = Field(..., min_length=1, max_length=100)
    properties: dict = {}
    timestamp: float = Field(..., ge=0)
    session_id: str = Field(..., min_length=1)
    anonymous_id: str = Field(..., min_length=1)
    user_id: Optional[str] = None


class EventBatch(BaseModel):
    events: list[ClientEvent] = Field(..., min_length=1, max_length=MAX_EVENTS_PER_BATCH)
    timestamp: float = Field(..., ge=0)


@router.get("/dashboard")
async def dashboard(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    statuses = [s.strip() for s in status.split(",") if s.strip()] if status else None
    return ok(service.dashboard(
        db, current_user.id, to_naive_utc(start), to_naive_utc(end), statuses
    ))


@router.get("/trends")
async def trends(
    period: str = "monthly",
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(service.trends(db, current_user.id, period))


@router.post("/export")
async def export_report(
    body: ReportExportRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    date_range = body.date_range or ReportDateRange()
    result = export_service.export_analytics_report(
        db, current_user.id,
        fmt=body.format,
        sections=body.sections,
        start=date_range.start,
        end=date_range.end,
        include_charts=body.include_charts,
        custom_filename=body.custom_filename,
    )
    return Response(
        content=result.content,
        media_type=result.media_type,
        headers={"Content-Disposition": export_service.content_disposition(result.filename)},
    )


@router.post("/events")
async def record_events(
    body: EventBatch,
    current_user: User = Depends(get_current_user),
):
    events = [e.model_dump() for e in body.events]
    return ok(service.record_events(current_user.id, events))
