"""Workflow rule engine: triggers → conditions → actions.

A rule fires when its trigger matches the event and every condition
holds for the application (fields prefixed ``context.`` read from the
event context instead). Actions are staged first and only written
when all of them succeeded, so a failing rule leaves no partial
changes behind; the failure is recorded as a WorkflowExecution.

Triggers:  application_created, status_changed, date_reached,
           no_response, manual
Operators: equals, not_equals, contains, greater_than, less_than, days_since
Actions:   create_reminder, send_notification, update_status,
           create_task, send_email, log_activity

Usage:
    from apptrack.services.workflows import process_trigger
    process_trigger(session, user_id, "status_changed", app,
                    context={"old_status": "Applied", "new_status": "Interviewing"})
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..db.models import (
    Application,
    ApplicationHistory,
    Notification,
    Reminder,
    WorkflowExecution,
    WorkflowRule,
    utcnow,
)
from ..errors import NotFoundError
from ..schemas import CLOSED_STATUSES, ApplicationStatus

logger = logging.getLogger(__name__)

TRIGGER_TYPES = ("application_created", "status_changed", "date_reached", "no_response", "manual")
OPERATORS = ("equals", "not_equals", "contains", "greater_than", "less_than", "days_since")
ACTION_TYPES = (
    "create_reminder", "send_notification", "update_status",
    "create_task", "send_email", "log_activity",
)
SCHEDULED_TRIGGERS = ("date_reached", "no_response")

# Scheduled rules run at most once per interval
SCHEDULED_INTERVAL = timedelta(hours=24)
MANUAL_RUN_LIMIT = 10
MAX_DAYS_FROM_NOW = 3650

DEFAULT_RULES = [
    {
        "name": "Auto Follow-up After 7 Days",
        "description": "Automatically create follow-up reminder 7 days after application",
        "trigger": {"type": "application_created", "config": {}},
        "conditions": [{"field": "status", "operator": "equals", "value": "Applied"}],
        "actions": [
            {
                "type": "create_reminder",
                "config": {
                    "type": "follow_up",
                    "title": "Follow up on application",
                    "days_from_now": 7,
                },
            },
        ],
        "priority": 1,
    },
    {
        "name": "Interview Preparation Reminder",
        "description": "Create preparation tasks when status changes to interviewing",
        "trigger": {"type": "status_changed", "config": {"new_status": "Interviewing"}},
        "conditions": [],
        "actions": [
            {
                "type": "create_task",
                "config": {
                    "title": "Prepare for interview",
                    "description": "Research company and practice interview questions",
                },
            },
            {
                "type": "create_reminder",
                "config": {
                    "type": "interview_prep",
                    "title": "Interview preparation",
                    "days_from_now": 1,
                },
            },
        ],
        "priority": 2,
    },
    {
        "name": "Stale Application Alert",
        "description": "Alert when applications have no updates for 14 days",
        "trigger": {"type": "date_reached", "config": {"check_interval": "daily"}},
        "conditions": [
            {"field": "status", "operator": "equals", "value": "Applied"},
            {"field": "updated_at", "operator": "days_since", "value": 14},
        ],
        "actions": [
            {
                "type": "send_notification",
                "config": {
                    "title": "Stale Application",
                    "message": "This application hasn't been updated in 2 weeks",
                    "notification_type": "warning",
                },
            },
            {
                "type": "create_task",
                "config": {"title": "Update application status"},
            },
        ],
        "priority": 1,
    },
]


class WorkflowActionError(Exception):
    """An action could not be carried out; the rule execution fails."""


def days_from_now(config: dict, default: float) -> float:
    """``config["days_from_now"]`` as a float within +/- MAX_DAYS_FROM_NOW."""
    value = config.get("days_from_now", default)
    try:
        days = float(value)
    except (TypeError, ValueError):
        raise WorkflowActionError(f"days_from_now must be a number, got {value!r}")
    if not -MAX_DAYS_FROM_NOW <= days <= MAX_DAYS_FROM_NOW:
        raise WorkflowActionError(f"days_from_now must be within {MAX_DAYS_FROM_NOW} days")
    return days


@dataclass
class StagedActions:
    """Writes collected while running a rule's actions."""
    records: list = field(default_factory=list)
    new_status: Optional[str] = None
    results: list[dict] = field(default_factory=list)


# ---------------------------------------------------------------------------
# 1) Matching
# ---------------------------------------------------------------------------

def matches_trigger(
    rule_trigger: dict,
    trigger_type: str,
    trigger_config: Optional[dict] = None,
) -> bool:
    """A status_changed rule may pin ``config.new_status``; other types match on type."""
    if (rule_trigger or {}).get("type") != trigger_type:
        return False
    if trigger_type == "status_changed":
        wanted = (rule_trigger.get("config") or {}).get("new_status")
        return not wanted or wanted == (trigger_config or {}).get("new_status")
    return True


def _field_value(field_name: str, application: Optional[Application], context: dict) -> Any:
    if field_name.startswith("context."):
        return context.get(field_name[len("context."):])
    if application is None:
        return None
    return getattr(application, field_name, None)


def _as_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        return parsed
    return None


def _as_number(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def evaluate_condition(
    condition: dict,
    application: Optional[Application],
    context: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> bool:
    operator = condition.get("operator")
    expected = condition.get("value")
    actual = _field_value(condition.get("field", ""), application, context or {})

    if operator == "equals":
        return actual == expected
    if operator == "not_equals":
        return actual != expected
    if operator == "contains":
        if actual is None:
            return False
        if isinstance(actual, list):
            return any(str(expected).lower() in str(item).lower() for item in actual)
        return str(expected).lower() in str(actual).lower()
    if operator in ("greater_than", "less_than"):
        left, right = _as_number(actual), _as_number(expected)
        if left is None or right is None:
            return False
        return left > right if operator == "greater_than" else left < right
    if operator == "days_since":
        moment = _as_datetime(actual)
        days = _as_number(expected)
        if moment is None or days is None:
            return False
        return ((now or utcnow()) - moment).days >= days

    logger.warning(f"Unknown condition operator: {operator}")
    return False


def evaluate_conditions(
    conditions: list[dict],
    application: Optional[Application],
    context: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> bool:
    return all(evaluate_condition(c, application, context, now) for c in conditions or [])


# ---------------------------------------------------------------------------
# 2) Actions
# ---------------------------------------------------------------------------

def _require_application(application: Optional[Application], action_type: str) -> Application:
    if application is None:
        raise WorkflowActionError(f"{action_type} requires an application")
    return application


def _create_reminder(staged, config, application, user_id, now):
    company = application.company if application else None
    days = days_from_now(config, 7)
    reminder = Reminder(
        user_id=user_id,
        application_id=application.id if application else None,
        reminder_type=config.get("type", "follow_up"),
        title=config.get("title") or f"Follow up on {company or 'application'}",
        description=config.get("description", "Follow up on your application"),
        due_date=now + timedelta(days=days),
        is_completed=False,
    )
    staged.records.append(reminder)
    return {"type": "create_reminder", "title": reminder.title, "due_date": reminder.due_date.isoformat()}


def _create_task(staged, config, application, user_id, now):
    company = application.company if application else None
    due = now + timedelta(days=days_from_now(config, 1))
    task = Reminder(
        user_id=user_id,
        application_id=application.id if application else None,
        reminder_type="custom",
        title=config.get("title") or f"Task for {company or 'application'}",
        description=config.get("description", ""),
        due_date=due,
        is_completed=False,
    )
    staged.records.append(task)
    return {"type": "create_task", "title": task.title, "due_date": due.isoformat()}


def _notification(config, application, user_id, channel):
    target = f"{application.company} - {application.position}" if application else "your applications"
    return Notification(
        user_id=user_id,
        notification_type=config.get("notification_type", "info"),
        title=config.get("title") or "Application Update",
        message=config.get("message") or f"Update for {target}",
        data={
            "channel": channel,
            "application_id": application.id if application else None,
            "source": "workflow",
        },
    )


def _send_notification(staged, config, application, user_id, now):
    notification = _notification(config, application, user_id, "in_app")
    staged.records.append(notification)
    return {"type": "send_notification", "title": notification.title}


def _send_email(staged, config, application, user_id, now):
    # Queued; the notification sweep delivers email-channel entries
    notification = _notification(config, application, user_id, "email")
    notification.notification_type = "email"
    staged.records.append(notification)
    return {"type": "send_email", "title": notification.title, "queued": True}


def _update_status(staged, config, application, user_id, now):
    application = _require_application(application, "update_status")
    status = config.get("status")
    if status not in {s.value for s in ApplicationStatus}:
        raise WorkflowActionError(f"Invalid status for update_status: {status}")
    staged.new_status = status
    return {"type": "update_status", "from": application.status, "to": status}


def _log_activity(staged, config, application, user_id, now):
    application = _require_application(application, "log_activity")
    entry = ApplicationHistory(
        application_id=application.id,
        field_changed=config.get("activity_type", "workflow_action"),
        old_value=None,
        new_value=config.get("description", "Workflow action executed"),
    )
    staged.records.append(entry)
    return {"type": "log_activity", "description": entry.new_value}


ACTION_HANDLERS = {
    "create_reminder": _create_reminder,
    "create_task": _create_task,
    "send_notification": _send_notification,
    "send_email": _send_email,
    "update_status": _update_status,
    "log_activity": _log_activity,
}


def _stage_actions(
    actions: list[dict],
    application: Optional[Application],
    user_id: str,
    now: datetime,
) -> StagedActions:
    staged = StagedActions()
    for action in actions or []:
        handler = ACTION_HANDLERS.get(action.get("type"))
        if handler is None:
            raise WorkflowActionError(f"Unknown action type: {action.get('type')}")
        staged.results.append(
            handler(staged, action.get("config") or {}, application, user_id, now)
        )
    return staged


# ---------------------------------------------------------------------------
# 3) Execution
# ---------------------------------------------------------------------------

def execute_rule(
    session: Session,
    rule: WorkflowRule,
    application: Optional[Application],
    context: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> WorkflowExecution:
    """Run a rule's actions and record the execution (completed or failed)."""
    now = now or utcnow()
    execution = WorkflowExecution(
        rule_id=rule.id,
        user_id=rule.user_id,
        application_id=application.id if application else None,
        executed_at=now,
    )
    try:
        staged = _stage_actions(rule.actions, application, rule.user_id, now)
    except (WorkflowActionError, ValueError, TypeError, OverflowError) as e:
        execution.status = "failed"
        execution.error = str(e)
        logger.warning(f"Workflow '{rule.name}' ({rule.id}) failed: {e}")
    else:
        session.add_all(staged.records)
        if staged.new_status and application is not None:
            application.status = staged.new_status
        execution.status = "completed"
        execution.result = {"actions": staged.results}
        logger.info(
            f"Workflow '{rule.name}' ran {len(staged.results)} actions"
            + (f" for application {application.id}" if application else "")
        )

    rule.execution_count = (rule.execution_count or 0) + 1
    rule.last_executed = now
    session.add(execution)
    return execution


def process_trigger(
    session: Session,
    user_id: str,
    trigger_type: str,
    application: Optional[Application] = None,
    context: Optional[dict] = None,
    now: Optional[datetime] = None,
) -> list[WorkflowExecution]:
    """Fire every active rule of the user matching the trigger, highest priority first."""
    context = context or {}
    rules = (
        session.query(WorkflowRule)
        .filter(WorkflowRule.user_id == user_id, WorkflowRule.is_active.is_(True))
        .order_by(WorkflowRule.priority.desc(), WorkflowRule.created_at.asc())
        .all()
    )
    executions = []
    for rule in rules:
        if not matches_trigger(rule.trigger, trigger_type, context):
            continue
        if not evaluate_conditions(rule.conditions, application, context, now):
            logger.debug(f"Workflow '{rule.name}' conditions not met")
            continue
        executions.append(execute_rule(session, rule, application, context, now))
    return executions


def run_rule_manually(
    session: Session,
    user_id: str,
    rule_id: str,
    now: Optional[datetime] = None,
) -> list[WorkflowExecution]:
    """Run one active rule against the user's most recent applications."""
    rule = (
        session.query(WorkflowRule)
        .filter(
            WorkflowRule.id == rule_id,
            WorkflowRule.user_id == user_id,
            WorkflowRule.is_active.is_(True),
        )
        .first()
    )
    if rule is None:
        raise NotFoundError("Workflow not found or inactive")

    applications = (
        session.query(Application)
        .filter(Application.user_id == user_id)
        .order_by(Application.created_at.desc())
        .limit(MANUAL_RUN_LIMIT)
        .all()
    )
    context = {"manual": True}
    return [
        execute_rule(session, rule, app, context, now)
        for app in applications
        if evaluate_conditions(rule.conditions, app, context, now)
    ]


def run_scheduled_rules(session: Session, now: Optional[datetime] = None) -> int:
    """Evaluate date_reached / no_response rules of all users.

    no_response only considers applications still in Applied without a
    response date. Each rule runs at most once per SCHEDULED_INTERVAL.

    Returns:
        Number of executions recorded
    """
    now = now or utcnow()
    rules = (
        session.query(WorkflowRule)
        .filter(WorkflowRule.is_active.is_(True))
        .order_by(WorkflowRule.priority.desc())
        .all()
    )
    count = 0
    for rule in rules:
        trigger_type = (rule.trigger or {}).get("type")
        if trigger_type not in SCHEDULED_TRIGGERS:
            continue
        if rule.last_executed and now - rule.last_executed < SCHEDULED_INTERVAL:
            continue

        query = session.query(Application).filter(
            Application.user_id == rule.user_id,
            Application.status.notin_(CLOSED_STATUSES),
        )
        if trigger_type == "no_response":
            query = query.filter(
                Application.status == "Applied",
                Application.response_date.is_(None),
            )
        for app in query.all():
            anchor = app.applied_date or app.created_at
            context = {"days_since_applied": (now - anchor).days}
            if evaluate_conditions(rule.conditions, app, context, now):
                execute_rule(session, rule, app, context, now)
                count += 1

    if count:
        logger.info(f"Scheduled workflows: {count} executions")
    return count


# ---------------------------------------------------------------------------
# 4) Rule management
# ---------------------------------------------------------------------------

def install_default_rules(session: Session, user_id: str) -> list[WorkflowRule]:
    """Create the built-in rules the user doesn't have yet (matched by name)."""
    existing = {
        name for (name,) in
        session.query(WorkflowRule.name).filter(WorkflowRule.user_id == user_id).all()
    }
    created = []
    for template in DEFAULT_RULES:
        if template["name"] in existing:
            continue
        rule = WorkflowRule(
            user_id=user_id,
            name=template["name"],
            description=template["description"],
            trigger=template["trigger"],
            conditions=template["conditions"],
            actions=template["actions"],
            is_active=True,
            priority=template["priority"],
        )
        session.add(rule)
        created.append(rule)
    session.flush()
    logger.info(f"Installed {len(created)} default workflows for user {user_id}")
    return created


def get_rule(session: Session, user_id: str, rule_id: str) -> WorkflowRule:
    rule = (
        session.query(WorkflowRule)
        .filter(WorkflowRule.id == rule_id, WorkflowRule.user_id == user_id)
        .first()
    )
    if rule is None:
        raise NotFoundError("Workflow not found")
    return rule


def serialize_rule(rule: WorkflowRule) -> dict:
    return {
        "id": rule.id,
        "name": rule.name,
        "description": rule.description,
        "trigger": rule.trigger,
        "conditions": rule.conditions or [],
        "actions": rule.actions or [],
        "is_active": rule.is_active,
        "priority": rule.priority,
        "execution_count": rule.execution_count or 0,
        "last_executed": rule.last_executed.isoformat() if rule.last_executed else None,
        "created_at": rule.created_at.isoformat() if rule.created_at else None,
        "updated_at": rule.updated_at.isoformat() if rule.updated_at else None,
    }


def serialize_execution(execution: WorkflowExecution) -> dict:
    return {
        "id": execution.id,
        "rule_id": execution.rule_id,
        "application_id": execution.application_id,
        "status": execution.status,
        "result": execution.result,
        "error": execution.error,
        "executed_at": execution.executed_at.isoformat() if execution.executed_at else None,
    }
