"""
Suggestions API Endpoints
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..db.database import get_db
from ..db.models import User
from ..errors import ok
from ..services import suggestions as service

router = APIRouter()


class AddSuggestionRequest(BaseModel):
    value: str = Field(..., min_length=1)


class JobUrlRequest(BaseModel):
    url: str = Field(..., min_length=1)


@router.post("/job-url")
async def parse_job_url(
    body: JobUrlRequest,
    current_user: User = Depends(get_current_user),
):
    return ok(service.parse_job_url(body.url))


@router.get("/{kind}")
async def suggest(
    kind: str,
    q: str = "",
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(service.suggest(db, current_user.id, kind, q, limit))


@router.post("/{kind}")
async def add_suggestion(
    kind: str,
    body: AddSuggestionRequest,
    current_user: User = Depends(get_current_user),
):
    added = service.add_suggestion(kind, body.value)
    return ok({"kind": kind, "value": body.value.strip(), "added": added})
