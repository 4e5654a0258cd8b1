"""Third-party integrations: calendar, email, job boards and cloud storage.

The providers are simulated; no OAuth flows or external calls are made.
Each sync produces a SyncResult and honours the user's privacy settings
(``preferences["privacy"]``).
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel, Field, ValidationError
from sqlalchemy.orm import Session

from ..db.models import Application, Contact, JobRecommendation, Reminder, User, utcnow
from ..errors import APIError, ForbiddenError, ValidationFailed
from ..schemas import (
    CLOSED_STATUSES,
    ApplicationCreate,
    ApplicationResponse,
    ContactCreate,
    ContactResponse,
    ReminderCreate,
    ReminderResponse,
    serialize,
)
from . import applications, contacts, duplicates
from .backup import BackupService

logger = logging.getLogger(__name__)

PROVIDERS = {
    "calendar": ("google", "outlook"),
    "email": ("gmail", "outlook"),
    "job_boards": ("linkedin", "indeed", "glassdoor"),
    "storage": ("google-drive", "dropbox"),
}

# Privacy flag each integration kind requires
PRIVACY_FLAGS = {
    "calendar": "allow_calendar_sync",
    "email": "allow_email_tracking",
    "job_boards": "allow_data_sync",
    "storage": "allow_cloud_backup",
}

EVENT_DURATION = timedelta(hours=1)

MOCK_JOB_LISTINGS = {
    "linkedin": [
        {
            "external_id": "linkedin_123",
            "company": "Tech Corp",
            "position": "Software Engineer",
            "location": "San Francisco, CA",
            "job_url": "https://linkedin.com/jobs/123",
            "description": "Full-stack software engineer position",
        },
        {
            "external_id": "linkedin_124",
            "company": "StartupXYZ",
            "position": "Frontend Developer",
            "location": "Remote",
            "job_url": "https://linkedin.com/jobs/124",
            "description": "React/TypeScript frontend developer",
        },
    ],
    "indeed": [
        {
            "external_id": "indeed_456",
            "company": "Big Company",
            "position": "Backend Developer",
            "location": "New York, NY",
            "job_url": "https://indeed.com/jobs/456",
            "description": "Node.js backend developer position",
        },
    ],
    "glassdoor": [
        {
            "external_id": "glassdoor_789",
            "company": "Enterprise Solutions",
            "position": "Full Stack Developer",
            "location": "Austin, TX",
            "job_url": "https://glassdoor.com/jobs/789",
            "description": "Full-stack developer with cloud experience",
        },
    ],
}

# Keyword → status, first hit wins
EMAIL_STATUS_RULES = [
    (("unfortunately", "regret", "not moving forward", "other candidates"), "Rejected"),
    (("offer",), "Offered"),
    (("interview",), "Interviewing"),
]

STATUS_RANK = {
    "Pending": 1, "Applied": 2, "Withdrawn": 2, "Rejected": 3,
    "Interviewing": 4, "Offered": 5, "Accepted": 6,
}


class PrivacySettings(BaseModel):
    allow_data_sync: bool = True
    allow_cloud_backup: bool = False
    allow_email_tracking: bool = False
    allow_calendar_sync: bool = True
    data_retention_days: int = Field(default=365, ge=1, le=3650)


class PrivacySettingsUpdate(BaseModel):
    allow_data_sync: Optional[bool] = None
    allow_cloud_backup: Optional[bool] = None
    allow_email_tracking: Optional[bool] = None
    allow_calendar_sync: Optional[bool] = None
    data_retention_days: Optional[int] = Field(default=None, ge=1, le=3650)


class EmailMessage(BaseModel):
    subject: str = ""
    sender: str = Field("", alias="from")
    body: str = ""
    date: Optional[datetime] = None

    class Config:
        populate_by_name = True


class SyncResult(BaseModel):
    success: bool = True
    items_processed: int = 0
    items_added: int = 0
    items_updated: int = 0
    errors: list[str] = []
    last_sync: datetime = Field(default_factory=utcnow)


# ---------------------------------------------------------------------------
# Privacy
# ---------------------------------------------------------------------------

def get_privacy_settings(user: User) -> dict:
    return PrivacySettings(**(user.preferences or {}).get("privacy") or {}).model_dump()


def update_privacy_settings(user: User, changes: dict) -> dict:
    merged = {**get_privacy_settings(user), **{k: v for k, v in changes.items() if v is not None}}
    settings = PrivacySettings(**merged).model_dump()
    # Reassign so the JSON column is flagged dirty
    user.preferences = {**(user.preferences or {}), "privacy": settings}
    logger.info(f"Updated privacy settings for user {user.id}")
    return settings


def check_provider(kind: str, provider: str) -> None:
    if provider not in PROVIDERS[kind]:
        raise APIError(
            400, "INVALID_PROVIDER",
            f"Unknown {kind.replace('_', ' ')} provider: {provider}",
            {"supported": list(PROVIDERS[kind])},
        )


def _require_permission(user: User, kind: str) -> None:
    flag = PRIVACY_FLAGS[kind]
    if not get_privacy_settings(user)[flag]:
        raise ForbiddenError("SYNC_DISABLED", f"Sync disabled by privacy setting {flag}")


# ---------------------------------------------------------------------------
# Calendar
# ---------------------------------------------------------------------------

def calendar_events(session: Session, user_id: str, now: Optional[datetime] = None) -> list[dict]:
    """Upcoming interviews and open reminders as calendar events."""
    now = now or utcnow()
    events = []
    interviews = (
        session.query(Application)
        .filter(
            Application.user_id == user_id,
            Application.interview_date.isnot(None),
            Application.interview_date >= now,
        )
        .all()
    )
    for app in interviews:
        events.append({
            "id": f"interview:{app.id}",
            "title": f"Interview: {app.position} at {app.company}",
            "description": app.notes,
            "start_time": app.interview_date.isoformat(),
            "end_time": (app.interview_date + EVENT_DURATION).isoformat(),
            "location": app.location,
            "attendees": [app.contact_email] if app.contact_email else [],
            "application_id": app.id,
        })

    open_reminders = (
        session.query(Reminder)
        .filter(
            Reminder.user_id == user_id,
            Reminder.is_completed.is_(False),
            Reminder.due_date >= now,
        )
        .all()
    )
    for reminder in open_reminders:
        events.append({
            "id": f"reminder:{reminder.id}",
            "title": reminder.title,
            "description": reminder.description,
            "start_time": reminder.due_date.isoformat(),
            "end_time": (reminder.due_date + timedelta(minutes=30)).isoformat(),
            "location": None,
            "attendees": [],
            "application_id": reminder.application_id,
        })
    return sorted(events, key=lambda e: e["start_time"])


def sync_calendar(
    session: Session,
    user: User,
    provider: str,
    now: Optional[datetime] = None,
) -> dict:
    check_provider("calendar", provider)
    _require_permission(user, "calendar")
    events = calendar_events(session, user.id, now)
    logger.info(f"Calendar sync ({provider}) for user {user.id}: {len(events)} events")
    result = SyncResult(items_processed=len(events), items_added=len(events)).model_dump()
    result["events"] = events
    return result


def create_calendar_event(
    session: Session,
    user: User,
    provider: str,
    title: str,
    start_time: datetime,
    description: Optional[str] = None,
    application_id: Optional[str] = None,
) -> dict:
    """Record an event as a custom reminder and return it in event shape."""
    check_provider("calendar", provider)
    _require_permission(user, "calendar")
    if application_id:
        applications.get_application(session, user.id, application_id)
    reminder = Reminder(
        user_id=user.id,
        application_id=application_id,
        reminder_type="custom",
        title=title,
        description=description,
        due_date=start_time,
        is_completed=False,
    )
    session.add(reminder)
    session.flush()
    return {
        "id": f"reminder:{reminder.id}",
        "provider": provider,
        "title": title,
        "description": description,
        "start_time": start_time.isoformat(),
        "end_time": (start_time + EVENT_DURATION).isoformat(),
        "application_id": application_id,
    }


# ---------------------------------------------------------------------------
# Email
# ---------------------------------------------------------------------------

def classify_email(message: EmailMessage) -> Optional[str]:
    text = f"{message.subject} {message.body}".lower()
    for keywords, status in EMAIL_STATUS_RULES:
        if any(k in text for k in keywords):
            return status
    return None


def _match_application(message: EmailMessage, apps: list[Application]) -> Optional[Application]:
    text = f"{message.subject} {message.body} {message.sender}".lower()
    best = None
    for app in apps:
        company = app.company.lower()
        domain_hint = duplicates.normalize(app.company).replace(" ", "")
        if company in text or (domain_hint and f"@{domain_hint}." in text):
            if best is None or len(app.company) > len(best.company):
                best = app
    return best


def sync_email(
    session: Session,
    user: User,
    provider: str,
    messages: list[EmailMessage],
    now: Optional[datetime] = None,
) -> dict:
    """Link messages to applications by company and advance their status."""
    check_provider("email", provider)
    _require_permission(user, "email")
    apps = session.query(Application).filter(Application.user_id == user.id).all()

    linked, updated, errors = 0, 0, []
    details = []
    for message in messages:
        app = _match_application(message, apps)
        if app is None:
            continue
        linked += 1
        status = classify_email(message)
        entry = {"subject": message.subject, "application_id": app.id, "detected_status": status}
        if (
            status
            and app.status not in CLOSED_STATUSES
            and STATUS_RANK.get(status, 0) > STATUS_RANK.get(app.status, 0)
        ):
            try:
                applications.update_application(session, user.id, app.id, {"status": status}, now)
                updated += 1
                entry["updated"] = True
            except APIError as e:
                errors.append(f"{message.subject}: {e.message}")
        details.append(entry)

    logger.info(
        f"Email sync ({provider}) for user {user.id}: {len(messages)} messages, "
        f"{linked} linked, {updated} status updates"
    )
    result = SyncResult(
        items_processed=len(messages),
        items_added=linked,
        items_updated=updated,
        errors=errors,
        success=not errors,
    ).model_dump()
    result["matches"] = details
    return result


# ---------------------------------------------------------------------------
# Job boards
# ---------------------------------------------------------------------------

def job_board_listings(platform: str) -> list[dict]:
    check_provider("job_boards", platform)
    return [dict(item, platform=platform) for item in MOCK_JOB_LISTINGS[platform]]


def sync_job_board(session: Session, user: User, platform: str) -> dict:
    """Store the board's listings as job recommendations, skipping known URLs."""
    listings = job_board_listings(platform)
    _require_permission(user, "job_boards")
    known_urls = {
        url for (url,) in session.query(JobRecommendation.job_url)
        .filter(JobRecommendation.user_id == user.id, JobRecommendation.job_url.isnot(None))
    }
    added = 0
    for listing in listings:
        if listing["job_url"] in known_urls:
            continue
        session.add(JobRecommendation(
            user_id=user.id,
            job_title=listing["position"],
            company=listing["company"],
            location=listing["location"],
            job_description=listing["description"],
            job_url=listing["job_url"],
            source=platform,
            status="new",
        ))
        known_urls.add(listing["job_url"])
        added += 1
    session.flush()
    logger.info(f"Job board sync ({platform}) for user {user.id}: {added} new listings")
    return SyncResult(items_processed=len(listings), items_added=added).model_dump()


# ---------------------------------------------------------------------------
# Cloud storage
# ---------------------------------------------------------------------------

def backup_to_cloud(
    session: Session,
    user: User,
    provider: str,
    backup_service: Optional[BackupService] = None,
) -> dict:
    check_provider("storage", provider)
    _require_permission(user, "storage")
    service = backup_service or BackupService(session, user)
    backup = service.create_backup(f"Cloud backup ({provider})", "manual", tags=[provider])
    return {
        "file_id": backup.id,
        "file_name": f"apptrack-backup-{backup.timestamp:%Y%m%d-%H%M%S}.json",
        "size": backup.data_size,
        "provider": provider,
    }


def sync_storage(
    session: Session,
    user: User,
    provider: str,
    backup_service: Optional[BackupService] = None,
) -> dict:
    meta = backup_to_cloud(session, user, provider, backup_service)
    result = SyncResult(items_processed=1, items_added=1).model_dump()
    result["backup"] = meta
    return result


# ---------------------------------------------------------------------------
# Export / import bundle
# ---------------------------------------------------------------------------

def export_bundle(session: Session, user: User, now: Optional[datetime] = None) -> dict:
    def _rows(model):
        return session.query(model).filter(model.user_id == user.id).all()

    return {
        "metadata": {
            "export_date": (now or utcnow()).isoformat(),
            "version": "1.0",
        },
        "applications": [serialize(ApplicationResponse, a) for a in _rows(Application)],
        "contacts": [serialize(ContactResponse, c) for c in _rows(Contact)],
        "reminders": [serialize(ReminderResponse, r) for r in _rows(Reminder)],
        "privacy": get_privacy_settings(user),
    }


def _first_error(e: ValidationError) -> str:
    first = e.errors()[0]
    return f"{'.'.join(str(p) for p in first['loc'])}: {first['msg']}"


def import_bundle(session: Session, user: User, bundle: dict) -> dict:
    """Create records from an export bundle; duplicates are skipped.

    Reminder application ids are remapped onto the imported (or matching
    existing) applications; reminders whose application is unknown are
    imported without one.
    """
    if not isinstance(bundle, dict):
        raise ValidationFailed("Import bundle must be a JSON object")

    counts = {
        "applications": {"imported": 0, "skipped": 0},
        "contacts": {"imported": 0, "skipped": 0},
        "reminders": {"imported": 0, "skipped": 0},
    }
    errors = []
    id_map: dict[str, str] = {}

    existing = session.query(Application).filter(Application.user_id == user.id).all()
    for index, record in enumerate(bundle.get("applications") or []):
        try:
            data = ApplicationCreate(**record).model_dump()
        except ValidationError as e:
            errors.append(f"applications[{index}]: {_first_error(e)}")
            continue
        check = duplicates.detect_duplicates(data, existing)
        if check["is_duplicate"]:
            counts["applications"]["skipped"] += 1
            if record.get("id"):
                id_map[record["id"]] = duplicates._get(check["matches"][0]["application"], "id")
            continue
        app = applications.create_application(session, user.id, data, fire_workflows=False)
        existing.append(app)
        if record.get("id"):
            id_map[record["id"]] = app.id
        counts["applications"]["imported"] += 1

    for index, record in enumerate(bundle.get("contacts") or []):
        try:
            data = ContactCreate(**record).model_dump()
        except ValidationError as e:
            errors.append(f"contacts[{index}]: {_first_error(e)}")
            continue
        duplicate = contacts.find_duplicate_contact(
            session, user.id, data["first_name"], data["last_name"],
            email=data.get("email"), company=data.get("company"), position=data.get("position"),
        )
        if duplicate is not None:
            counts["contacts"]["skipped"] += 1
            continue
        contacts.create_contact(session, user.id, data)
        counts["contacts"]["imported"] += 1

    for index, record in enumerate(bundle.get("reminders") or []):
        record = dict(record)
        record["application_id"] = id_map.get(record.get("application_id"))
        try:
            data = ReminderCreate(**record).model_dump()
        except ValidationError as e:
            errors.append(f"reminders[{index}]: {_first_error(e)}")
            continue
        duplicate = (
            session.query(Reminder)
            .filter(
                Reminder.user_id == user.id,
                Reminder.title == data["title"],
                Reminder.due_date == data["due_date"],
            )
            .first()
        )
        if duplicate is not None:
            counts["reminders"]["skipped"] += 1
            continue
        session.add(Reminder(
            user_id=user.id,
            is_completed=bool(record.get("is_completed", False)),
            **data,
        ))
        counts["reminders"]["imported"] += 1

    session.flush()
    logger.info(f"Imported bundle for user {user.id}: {counts}, {len(errors)} errors")
    return {"counts": counts, "errors": errors}
