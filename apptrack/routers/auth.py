"""
Auth API Endpoints: registration, sign-in, profile and preferences
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..auth import get_current_user, hash_password, issue_token, verify_password
from ..db.database import get_db
from ..db.models import User
from ..errors import APIError, ok
from ..schemas import (
    NotificationPreferences,
    NotificationPreferencesUpdate,
    ProfileUpdate,
    RegisterRequest,
    SignInRequest,
    UserResponse,
    notification_preferences,
    serialize,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, db: Session = Depends(get_db)):
    email = body.email.lower()
    if db.query(User).filter(func.lower(User.email) == email).first():
        raise APIError(400, "USER_EXISTS", "A user with this email already exists")

    user = User(
        email=email,
        password_hash=hash_password(body.password),
        first_name=body.first_name,
        last_name=body.last_name,
        phone=body.phone,
        location=body.location,
        preferences={"notifications": NotificationPreferences().model_dump()},
    )
    db.add(user)
    db.flush()
    logger.info(f"Registered user {user.id}")
    return ok(serialize(UserResponse, user))


@router.post("/signin")
async def signin(body: SignInRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(func.lower(User.email) == body.email.lower()).first()
    if user is None or not verify_password(body.password, user.password_hash):
        raise APIError(401, "INVALID_CREDENTIALS", "Invalid email or password")
    if not user.is_active:
        raise APIError(403, "FORBIDDEN", "User is inactive")

    token = issue_token(user)
    return ok({**token.model_dump(), "user": serialize(UserResponse, user)})


@router.get("/profile")
async def get_profile(current_user: User = Depends(get_current_user)):
    return ok(serialize(UserResponse, current_user))


@router.put("/profile")
async def update_profile(
    body: ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    changes = body.model_dump(exclude_unset=True)
    for key, value in changes.items():
        setattr(current_user, key, value)
    db.flush()
    return ok(serialize(UserResponse, current_user))


@router.get("/preferences")
async def get_preferences(current_user: User = Depends(get_current_user)):
    return ok(notification_preferences(current_user))


@router.put("/preferences")
async def update_preferences(
    body: NotificationPreferencesUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    merged = {
        **notification_preferences(current_user),
        **body.model_dump(exclude_unset=True, exclude_none=True),
    }
    prefs = NotificationPreferences(**merged).model_dump()
    current_user.preferences = {**(current_user.preferences or {}), "notifications": prefs}
    db.flush()
    return ok(prefs)
