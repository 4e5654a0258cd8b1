"""Account lifecycle: onboarding progress and permanent deletion.

Onboarding progress lives under ``preferences["onboarding"]``; deleting an
account removes every row owned by the user plus the stored backup
documents.
"""

import logging
from typing import Optional

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..db.models import (
    AIAnalysis,
    Application,
    ApplicationHistory,
    Backup,
    Contact,
    JobRecommendation,
    Notification,
    Reminder,
    User,
    WorkflowExecution,
    WorkflowRule,
)
from ..storage import StorageBackend, StorageError

logger = logging.getLogger(__name__)

ONBOARDING_STEPS = ("welcome", "profile", "first_application", "tour", "quick_start")


class OnboardingProgress(BaseModel):
    current_step: int = Field(0, ge=0, le=len(ONBOARDING_STEPS))
    completed_steps: list[str] = []
    skipped_steps: list[str] = []
    preferences: dict = {}
    tour_completed: bool = False
    welcome_completed: bool = False
    quick_start_completed: bool = False


def get_onboarding(user: User) -> dict:
    progress = OnboardingProgress(**(user.preferences or {}).get("onboarding") or {}).model_dump()
    progress["is_complete"] = all(
        progress[flag] for flag in ("welcome_completed", "tour_completed", "quick_start_completed")
    )
    return progress


def update_onboarding(user: User, changes: dict) -> dict:
    stored = (user.preferences or {}).get("onboarding") or {}
    merged = {**stored, **{k: v for k, v in changes.items() if v is not None}}
    for key in ("completed_steps", "skipped_steps"):
        merged[key] = list(dict.fromkeys(merged.get(key) or []))
    progress = OnboardingProgress(**merged).model_dump()
    user.preferences = {**(user.preferences or {}), "onboarding": progress}
    logger.info(f"Updated onboarding for user {user.id} (step {progress['current_step']})")
    return get_onboarding(user)


def _delete_rows(session: Session, model, *criteria) -> int:
    return session.query(model).filter(*criteria).delete(synchronize_session=False)


def delete_account(
    session: Session,
    user: User,
    storage: Optional[StorageBackend] = None,
) -> dict:
    """Permanently remove the user and all data they own.

    Rows are deleted children first so no foreign key is left dangling
    when the database does not enforce cascades. Backup documents that
    cannot be removed from storage are logged and counted.
    """
    app_ids = session.query(Application.id).filter(Application.user_id == user.id)
    rule_ids = session.query(WorkflowRule.id).filter(WorkflowRule.user_id == user.id)

    storage_errors = 0
    backups = session.query(Backup).filter(Backup.user_id == user.id).all()
    if storage is not None:
        for backup in backups:
            try:
                storage.delete(backup.storage_key)
            except StorageError as e:
                logger.warning(f"Could not delete backup document {backup.storage_key}: {e}")
                storage_errors += 1

    deleted = {
        "workflow_executions": _delete_rows(
            session, WorkflowExecution, WorkflowExecution.rule_id.in_(rule_ids.scalar_subquery())
        ),
        "workflow_rules": _delete_rows(session, WorkflowRule, WorkflowRule.user_id == user.id),
        "application_history": _delete_rows(
            session, ApplicationHistory,
            ApplicationHistory.application_id.in_(app_ids.scalar_subquery()),
        ),
        "reminders": _delete_rows(session, Reminder, Reminder.user_id == user.id),
        "ai_analyses": _delete_rows(session, AIAnalysis, AIAnalysis.user_id == user.id),
        "job_recommendations": _delete_rows(
            session, JobRecommendation, JobRecommendation.user_id == user.id
        ),
        "notifications": _delete_rows(session, Notification, Notification.user_id == user.id),
        "contacts": _delete_rows(session, Contact, Contact.user_id == user.id),
        "applications": _delete_rows(session, Application, Application.user_id == user.id),
        "backups": _delete_rows(session, Backup, Backup.user_id == user.id),
    }
    user_id = user.id
    # Bulk deletes bypass the identity map
    session.expire_all()
    session.delete(user)
    session.flush()

    logger.info(f"Deleted account {user_id}: {sum(deleted.values())} rows")
    return {"deleted": deleted, "storage_errors": storage_errors}
