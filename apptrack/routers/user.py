"""
User Account API Endpoints: data export, onboarding and account deletion
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..config import get_config
from ..db.database import get_db
from ..db.models import User
from ..errors import ForbiddenError, ok
from ..services import account
from ..services.export import export_user_data as build_user_export
from ..storage import get_storage_backend

router = APIRouter()


class OnboardingUpdate(BaseModel):
    current_step: Optional[int] = Field(None, ge=0, le=len(account.ONBOARDING_STEPS))
    completed_steps: Optional[list[str]] = None
    skipped_steps: Optional[list[str]] = None
    preferences: Optional[dict] = None
    tour_completed: Optional[bool] = None
    welcome_completed: Optional[bool] = None
    quick_start_completed: Optional[bool] = None


class OnboardingRequest(BaseModel):
    progress: OnboardingUpdate
    user_id: Optional[str] = None


@router.get("/export")
async def export_user_data(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(build_user_export(db, current_user))


@router.get("/onboarding")
async def get_onboarding(current_user: User = Depends(get_current_user)):
    return ok(account.get_onboarding(current_user))


@router.post("/onboarding")
async def update_onboarding(
    body: OnboardingRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if body.user_id is not None and body.user_id != current_user.id:
        raise ForbiddenError(message="Cannot update another user's onboarding")
    progress = account.update_onboarding(current_user, body.progress.model_dump(exclude_unset=True))
    db.flush()
    return ok(progress)


@router.delete("")
async def delete_account(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    storage = get_storage_backend(get_config().backup)
    result = account.delete_account(db, current_user, storage=storage)
    return ok({"message": "All user data has been permanently deleted", **result})
