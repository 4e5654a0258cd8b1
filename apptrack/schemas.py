"""Pydantic schemas and field vocabularies shared by routers and services."""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, EmailStr, Field, field_validator


# --- Vocabularies ---


class JobType(str, Enum):
    FULL_TIME = "Full-time"
    PART_TIME = "Part-time"
    INTERNSHIP = "Internship"
    CONTRACT = "Contract"
    FREELANCE = "Freelance"


class ApplicationStatus(str, Enum):
    PENDING = "Pending"
    APPLIED = "Applied"
    INTERVIEWING = "Interviewing"
    OFFERED = "Offered"
    REJECTED = "Rejected"
    ACCEPTED = "Accepted"
    WITHDRAWN = "Withdrawn"


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class ReminderType(str, Enum):
    FOLLOW_UP = "follow_up"
    INTERVIEW_PREP = "interview_prep"
    DEADLINE = "deadline"
    CUSTOM = "custom"


class RelationshipType(str, Enum):
    COLLEAGUE = "colleague"
    RECRUITER = "recruiter"
    MANAGER = "manager"
    FRIEND = "friend"
    MENTOR = "mentor"
    OTHER = "other"


class ConnectionStrength(str, Enum):
    STRONG = "strong"
    MEDIUM = "medium"
    WEAK = "weak"


# Statuses that end an application's lifecycle
CLOSED_STATUSES = {
    ApplicationStatus.REJECTED.value,
    ApplicationStatus.ACCEPTED.value,
    ApplicationStatus.WITHDRAWN.value,
}


def normalize_choice(value: Optional[str], enum_cls: type[Enum]) -> Optional[str]:
    """Case-insensitive lookup of a vocabulary value ("full time" → "Full-time")."""
    if value is None:
        return None
    key = value.strip().lower().replace("_", "-").replace(" ", "-")
    for member in enum_cls:
        if member.value.lower().replace("_", "-").replace(" ", "-") == key:
            return member.value
    return None


# --- Reusable field types ---


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _check_url(value: Optional[str]) -> Optional[str]:
    if value is None or value == "":
        return None
    if not value.startswith(("http://", "https://")):
        raise ValueError("must be an http(s) URL")
    return value


def _check_tags(value: list[str]) -> list[str]:
    if len(value) > 20:
        raise ValueError("at most 20 tags allowed")
    for tag in value:
        if len(tag) > 50:
            raise ValueError("tags must be at most 50 characters")
    return value


UTCDatetime = Annotated[datetime, AfterValidator(to_naive_utc)]
Url = Annotated[Optional[str], AfterValidator(_check_url)]
Tags = Annotated[list[str], AfterValidator(_check_tags)]


class EnvelopeModel(BaseModel):
    """Base for request bodies: stores enum values, not members."""

    class Config:
        use_enum_values = True


# --- Applications ---


class ApplicationBase(EnvelopeModel):
    location: Optional[str] = Field(None, max_length=255)
    job_type: Optional[JobType] = None
    salary_range: Optional[str] = Field(None, max_length=100)
    applied_date: Optional[UTCDatetime] = None
    response_date: Optional[UTCDatetime] = None
    interview_date: Optional[UTCDatetime] = None
    offer_date: Optional[UTCDatetime] = None
    rejection_date: Optional[UTCDatetime] = None
    follow_up_date: Optional[UTCDatetime] = None
    notes: Optional[str] = Field(None, max_length=5000)
    job_description: Optional[str] = Field(None, max_length=10000)
    contact_person: Optional[str] = Field(None, max_length=255)
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = Field(None, max_length=50)
    company_website: Url = None
    job_url: Url = None

    @field_validator("contact_email", mode="before")
    @classmethod
    def _blank_email(cls, value):
        return value or None


class ApplicationCreate(ApplicationBase):
    company: str = Field(..., min_length=1, max_length=255)
    position: str = Field(..., min_length=1, max_length=255)
    status: ApplicationStatus = ApplicationStatus.PENDING
    priority: Priority = Priority.MEDIUM
    requirements: list[str] = Field(default_factory=list, max_length=50)
    tags: Tags = Field(default_factory=list)

    @field_validator("company", "position")
    @classmethod
    def _strip_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class ApplicationUpdate(ApplicationBase):
    company: Optional[str] = Field(None, min_length=1, max_length=255)
    position: Optional[str] = Field(None, min_length=1, max_length=255)
    status: Optional[ApplicationStatus] = None
    priority: Optional[Priority] = None
    requirements: Optional[list[str]] = Field(None, max_length=50)
    tags: Optional[Tags] = None

    @field_validator("company", "position", "status", "priority", "requirements", "tags")
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("must not be null")
        if isinstance(value, str) and not value.strip():
            raise ValueError("must not be blank")
        return value.strip() if isinstance(value, str) else value


class ApplicationResponse(BaseModel):
    id: str
    company: str
    position: str
    location: Optional[str]
    job_type: Optional[str]
    salary_range: Optional[str]
    status: str
    priority: str
    applied_date: Optional[datetime]
    response_date: Optional[datetime]
    interview_date: Optional[datetime]
    offer_date: Optional[datetime]
    rejection_date: Optional[datetime]
    follow_up_date: Optional[datetime]
    notes: Optional[str]
    job_description: Optional[str]
    requirements: list[str]
    contact_person: Optional[str]
    contact_email: Optional[str]
    contact_phone: Optional[str]
    company_website: Optional[str]
    job_url: Optional[str]
    tags: list[str]
    ai_match_score: Optional[int]
    ai_insights: Optional[dict]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# --- Contacts ---


class ContactBase(EnvelopeModel):
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    company: Optional[str] = Field(None, max_length=255)
    position: Optional[str] = Field(None, max_length=255)
    linkedin_url: Url = None
    relationship_type: Optional[RelationshipType] = None
    connection_strength: Optional[ConnectionStrength] = None
    last_contact_date: Optional[UTCDatetime] = None
    notes: Optional[str] = Field(None, max_length=5000)

    @field_validator("email", mode="before")
    @classmethod
    def _blank_email(cls, value):
        return value or None


class ContactCreate(ContactBase):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    tags: Tags = Field(default_factory=list)


class ContactUpdate(ContactBase):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    tags: Optional[Tags] = None

    @field_validator("first_name", "last_name", "tags")
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("must not be null")
        return value


class ContactResponse(BaseModel):
    id: str
    first_name: str
    last_name: str
    email: Optional[str]
    phone: Optional[str]
    company: Optional[str]
    position: Optional[str]
    linkedin_url: Optional[str]
    relationship_type: Optional[str]
    connection_strength: Optional[str]
    last_contact_date: Optional[datetime]
    notes: Optional[str]
    tags: list[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# --- Reminders ---


class ReminderCreate(EnvelopeModel):
    application_id: Optional[str] = None
    reminder_type: ReminderType
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    due_date: UTCDatetime


class ReminderUpdate(EnvelopeModel):
    reminder_type: Optional[ReminderType] = None
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    due_date: Optional[UTCDatetime] = None
    is_completed: Optional[bool] = None


class ReminderResponse(BaseModel):
    id: str
    application_id: Optional[str]
    reminder_type: str
    title: str
    description: Optional[str]
    due_date: datetime
    is_completed: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


def serialize(model_cls: type[BaseModel], obj) -> dict:
    """ORM object → JSON-ready dict via a response schema."""
    return model_cls.model_validate(obj).model_dump(mode="json")


# --- Accounts ---


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)
    location: Optional[str] = Field(None, max_length=255)


class SignInRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)
    location: Optional[str] = Field(None, max_length=255)
    experience_level: Optional[str] = Field(None, max_length=50)
    desired_salary_min: Optional[int] = Field(None, ge=0)
    desired_salary_max: Optional[int] = Field(None, ge=0)
    preferred_locations: Optional[list[str]] = None
    skills: Optional[list[str]] = None
    industries: Optional[list[str]] = None
    job_types: Optional[list[str]] = None
    resume_url: Url = None
    linkedin_url: Url = None
    github_url: Url = None
    portfolio_url: Url = None


class UserResponse(BaseModel):
    id: str
    email: str
    first_name: Optional[str]
    last_name: Optional[str]
    phone: Optional[str]
    location: Optional[str]
    experience_level: Optional[str]
    desired_salary_min: Optional[int]
    desired_salary_max: Optional[int]
    preferred_locations: list[str]
    skills: list[str]
    industries: list[str]
    job_types: list[str]
    resume_url: Optional[str]
    linkedin_url: Optional[str]
    github_url: Optional[str]
    portfolio_url: Optional[str]
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class NotificationPreferences(EnvelopeModel):
    """Stored under ``preferences["notifications"]``; absent keys take these defaults."""
    email_notifications: bool = True
    push_notifications: bool = True
    reminder_frequency: str = Field("daily", pattern="^(daily|weekly|never)$")
    reminder_lead_time_hours: int = Field(24, ge=1, le=168)
    application_updates: bool = True
    interview_reminders: bool = True
    weekly_digest: bool = True
    timezone: str = "UTC"


class NotificationPreferencesUpdate(EnvelopeModel):
    email_notifications: Optional[bool] = None
    push_notifications: Optional[bool] = None
    reminder_frequency: Optional[str] = Field(None, pattern="^(daily|weekly|never)$")
    reminder_lead_time_hours: Optional[int] = Field(None, ge=1, le=168)
    application_updates: Optional[bool] = None
    interview_reminders: Optional[bool] = None
    weekly_digest: Optional[bool] = None
    timezone: Optional[str] = Field(None, max_length=64)


def notification_preferences(user) -> dict:
    """User's notification preferences merged over the defaults."""
    stored = (user.preferences or {}).get("notifications") or {}
    return NotificationPreferences(**stored).model_dump()
