"""SQLAlchemy 2.0 models for the application tracker.

Tables:
- users:                 Accounts, profile and preference JSON
- applications:          Tracked job applications (the central entity)
- application_history:   Audit trail for tracked field changes
- contacts:              Networking contacts
- reminders:             Follow-ups, optionally tied to an application
- ai_analyses:           Stored AI completion results
- job_recommendations:   Suggested openings (AI or job-board sync)
- workflow_rules:        User-defined trigger/condition/action rules
- workflow_executions:   One row per rule execution
- notifications:         In-app notification inbox
- backups:               Backup metadata (payload lives in storage backend)

All timestamps are naive UTC.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    event,
    inspect,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    Session,
    mapped_column,
    relationship,
)


def utcnow() -> datetime:
    """Current time as naive UTC (what SQLite hands back)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return uuid.uuid4().hex


class Base(DeclarativeBase):
    """Shared declarative base for all apptrack models."""
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    experience_level: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    desired_salary_min: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    desired_salary_max: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    preferred_locations: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    skills: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    industries: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    job_types: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    resume_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    linkedin_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    github_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    portfolio_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    preferences: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    applications: Mapped[list["Application"]] = relationship(
        back_populates="user", cascade="all, delete", passive_deletes=True
    )
    contacts: Mapped[list["Contact"]] = relationship(
        cascade="all, delete", passive_deletes=True
    )
    reminders: Mapped[list["Reminder"]] = relationship(
        cascade="all, delete", passive_deletes=True
    )
    ai_analyses: Mapped[list["AIAnalysis"]] = relationship(
        cascade="all, delete", passive_deletes=True
    )
    job_recommendations: Mapped[list["JobRecommendation"]] = relationship(
        cascade="all, delete", passive_deletes=True
    )
    workflow_rules: Mapped[list["WorkflowRule"]] = relationship(
        cascade="all, delete", passive_deletes=True
    )
    notifications: Mapped[list["Notification"]] = relationship(
        cascade="all, delete", passive_deletes=True
    )
    backups: Mapped[list["Backup"]] = relationship(
        cascade="all, delete", passive_deletes=True
    )

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}')>"


class Application(Base):
    """A job application, the central entity."""
    __tablename__ = "applications"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    company: Mapped[str] = mapped_column(String(255), nullable=False)
    position: Mapped[str] = mapped_column(String(255), nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    job_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    salary_range: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="Pending")
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="Medium")
    applied_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    response_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    interview_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    offer_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    rejection_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    job_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    requirements: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    contact_person: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    contact_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    contact_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    company_website: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    job_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    ai_match_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    ai_insights: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    follow_up_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    # Relationships
    user: Mapped["User"] = relationship(back_populates="applications")
    reminders: Mapped[list["Reminder"]] = relationship(
        back_populates="application",
        cascade="all, delete",
        passive_deletes=True,
    )
    history: Mapped[list["ApplicationHistory"]] = relationship(
        back_populates="application",
        cascade="all, delete-orphan",
        order_by="ApplicationHistory.changed_at.desc()",
    )

    # Indexes for common queries
    __table_args__ = (
        Index("ix_applications_user", "user_id"),
        Index("ix_applications_user_status", "user_id", "status"),
        Index("ix_applications_applied_date", "applied_date"),
        Index("ix_applications_company", "company"),
    )

    def __repr__(self) -> str:
        return (
            f"<Application(id={self.id}, "
            f"company='{self.company}', "
            f"position='{self.position[:50]}', "
            f"status='{self.status}')>"
        )


class ApplicationHistory(Base):
    """Audit trail of changes to selected application fields."""
    __tablename__ = "application_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    application_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("applications.id", ondelete="CASCADE"), nullable=False
    )
    field_changed: Mapped[str] = mapped_column(Text, nullable=False)
    old_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    new_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    changed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    application: Mapped["Application"] = relationship(back_populates="history")

    __table_args__ = (
        Index("ix_history_app_id", "application_id"),
        Index("ix_history_changed_at", "changed_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<ApplicationHistory(app_id={self.application_id}, "
            f"field='{self.field_changed}', "
            f"'{self.old_value}' → '{self.new_value}')>"
        )


class Contact(Base):
    __tablename__ = "contacts"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    company: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    position: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    linkedin_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    relationship_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    connection_strength: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    last_contact_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("ix_contacts_user", "user_id"),
        Index("ix_contacts_company", "company"),
    )

    def __repr__(self) -> str:
        return f"<Contact(id={self.id}, name='{self.first_name} {self.last_name}')>"


class Reminder(Base):
    __tablename__ = "reminders"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    application_id: Mapped[Optional[str]] = mapped_column(
        String(32), ForeignKey("applications.id", ondelete="CASCADE"), nullable=True
    )
    reminder_type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    due_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    is_completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Set once the sweep notified; cleared whenever due_date moves
    notified_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    application: Mapped[Optional["Application"]] = relationship(back_populates="reminders")

    __table_args__ = (
        Index("ix_reminders_user_due", "user_id", "due_date"),
        Index("ix_reminders_application", "application_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Reminder(id={self.id}, type='{self.reminder_type}', "
            f"due={self.due_date}, done={self.is_completed})>"
        )


class AIAnalysis(Base):
    __tablename__ = "ai_analyses"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    application_id: Mapped[Optional[str]] = mapped_column(
        String(32), ForeignKey("applications.id", ondelete="SET NULL"), nullable=True
    )
    analysis_type: Mapped[str] = mapped_column(String(50), nullable=False)
    input_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    analysis_result: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    confidence_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (Index("ix_ai_analyses_user", "user_id", "analysis_type"),)


class JobRecommendation(Base):
    __tablename__ = "job_recommendations"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    job_title: Mapped[str] = mapped_column(String(255), nullable=False)
    company: Mapped[str] = mapped_column(String(255), nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    salary_range: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    job_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    requirements: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    job_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    match_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    match_reasons: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="new"
    )  # new / viewed / saved / applied / dismissed
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (Index("ix_job_recs_user_status", "user_id", "status"),)


class WorkflowRule(Base):
    __tablename__ = "workflow_rules"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    trigger: Mapped[dict] = mapped_column(JSON, nullable=False)  # {"type", "config"}
    conditions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    actions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    execution_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_executed: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    executions: Mapped[list["WorkflowExecution"]] = relationship(
        back_populates="rule", cascade="all, delete", passive_deletes=True
    )

    __table_args__ = (Index("ix_workflow_rules_user", "user_id", "is_active"),)

    def __repr__(self) -> str:
        return f"<WorkflowRule(id={self.id}, name='{self.name}', active={self.is_active})>"


class WorkflowExecution(Base):
    __tablename__ = "workflow_executions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rule_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("workflow_rules.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(32), nullable=False)
    application_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)  # completed / failed
    result: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    executed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    rule: Mapped["WorkflowRule"] = relationship(back_populates="executions")

    __table_args__ = (Index("ix_workflow_exec_user", "user_id", "executed_at"),)


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    notification_type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (Index("ix_notifications_user", "user_id", "is_read"),)


class Backup(Base):
    """Backup metadata. The JSON payload is stored via a StorageBackend."""
    __tablename__ = "backups"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    version: Mapped[str] = mapped_column(String(20), nullable=False, default="1.0")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    data_size: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    checksum: Mapped[str] = mapped_column(String(64), nullable=False)
    backup_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="manual"
    )  # manual / automatic / migration
    application_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    parent_version: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    changes_summary: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    storage_key: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (Index("ix_backups_user_ts", "user_id", "timestamp"),)

    def __repr__(self) -> str:
        return (
            f"<Backup(id={self.id}, type='{self.backup_type}', "
            f"apps={self.application_count}, ts={self.timestamp})>"
        )


# ---------------------------------------------------------------------------
# Auto-history via SQLAlchemy event listeners
# ---------------------------------------------------------------------------
TRACKED_FIELDS = {
    "status", "priority", "notes", "interview_date", "offer_date",
    "contact_person", "contact_email", "location", "salary_range",
}


def _as_text(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def track_application_changes(session):
    """Collect history entries for dirty Application objects.

    Registered on SessionEvents.before_flush; uses attribute history
    to detect changed tracked fields.
    """
    changes = []
    for obj in session.dirty:
        if not isinstance(obj, Application):
            continue
        state = inspect(obj)
        for attr in TRACKED_FIELDS:
            hist = state.attrs[attr].history
            if hist.has_changes():
                old = hist.deleted[0] if hist.deleted else None
                new = hist.added[0] if hist.added else None
                if old == new:
                    continue
                changes.append(ApplicationHistory(
                    application_id=obj.id,
                    field_changed=attr,
                    old_value=_as_text(old),
                    new_value=_as_text(new),
                ))
    if changes:
        session.add_all(changes)
    return changes


@event.listens_for(Session, "before_flush")
def _before_flush_track_changes(session, flush_context, instances):
    """Automatically create history entries during flush."""
    track_application_changes(session)
