"""Persistence layer: SQLAlchemy models and session helpers."""

from .database import (
    get_app_engine,
    get_db,
    get_engine,
    get_session,
    get_session_factory,
    init_db,
    set_app_engine,
)
from .models import (
    AIAnalysis,
    Application,
    ApplicationHistory,
    Backup,
    Base,
    Contact,
    JobRecommendation,
    Notification,
    Reminder,
    User,
    WorkflowExecution,
    WorkflowRule,
    new_id,
    utcnow,
)

__all__ = [
    # Session helpers
    "get_app_engine",
    "get_db",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_db",
    "set_app_engine",
    # Models
    "AIAnalysis",
    "Application",
    "ApplicationHistory",
    "Backup",
    "Base",
    "Contact",
    "JobRecommendation",
    "Notification",
    "Reminder",
    "User",
    "WorkflowExecution",
    "WorkflowRule",
    "new_id",
    "utcnow",
]
