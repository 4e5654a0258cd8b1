"""
Export API Endpoints
"""

from typing import Literal, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..db.database import get_db
from ..db.models import User
from ..errors import ValidationFailed, ok
from ..schemas import UTCDatetime
from ..services import export as service

router = APIRouter()


class DateRange(BaseModel):
    start: Optional[UTCDatetime] = None
    end: Optional[UTCDatetime] = None


class ExportRequest(BaseModel):
    format: Literal["csv", "json", "pdf"] = "csv"
    fields: Optional[list[str]] = None
    date_range: Optional[DateRange] = None
    include_statistics: bool = False
    include_ai_insights: bool = False
    custom_filename: Optional[str] = Field(None, max_length=200)


@router.get("")
async def export_options(
    action: str = "fields",
    current_user: User = Depends(get_current_user),
):
    if action == "fields":
        return ok(service.get_fields())
    if action == "formats":
        return ok(service.get_formats())
    raise ValidationFailed(f"Unknown action: {action}")


@router.post("")
async def export_applications(
    body: ExportRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    date_range = body.date_range or DateRange()
    result = service.export_applications(
        db, current_user.id,
        fmt=body.format,
        fields=body.fields,
        start=date_range.start,
        end=date_range.end,
        include_statistics=body.include_statistics,
        include_ai_insights=body.include_ai_insights,
        custom_filename=body.custom_filename,
    )
    return Response(
        content=result.content,
        media_type=result.media_type,
        headers={
            "Content-Disposition": service.content_disposition(result.filename),
            "X-Record-Count": str(result.record_count),
        },
    )

