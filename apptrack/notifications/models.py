"""Pydantic models for outgoing notifications."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from ..db.models import utcnow


class NotificationKind(str, Enum):
    REMINDER = "reminder"
    DAILY_DIGEST = "daily_digest"
    WEEKLY_DIGEST = "weekly_digest"
    WORKFLOW = "workflow"


class DigestItem(BaseModel):
    """One reminder or application line in a notification."""

    title: str
    company: Optional[str] = None
    position: Optional[str] = None
    due_date: Optional[datetime] = None
    reminder_type: Optional[str] = None
    reminder_id: Optional[str] = None
    application_id: Optional[str] = None

    @property
    def company_label(self) -> str:
        return self.company or "Unknown Company"


class NotificationPayload(BaseModel):
    """Everything a channel needs to deliver one notification."""

    kind: NotificationKind
    user_id: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    subject: str
    body: str = Field(..., description="Plain-text body, also used for in-app")
    overdue: list[DigestItem] = []
    upcoming: list[DigestItem] = []
    recent_applications: list[DigestItem] = []
    data: dict = {}
    app_url: str = ""
    timestamp: datetime = Field(default_factory=utcnow)

    @property
    def greeting_name(self) -> str:
        return self.first_name or "there"
