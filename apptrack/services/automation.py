"""Smart automation: task suggestions, insights and workflow stats."""
import logging
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ..db.models import Application, Reminder, WorkflowExecution, WorkflowRule, utcnow
from ..errors import NotFoundError, ValidationFailed
from ..schemas import CLOSED_STATUSES

logger = logging.getLogger(__name__)

FOLLOW_UP_AFTER_DAYS = 7
RESEARCH_WITHIN_DAYS = 2
STALE_AFTER_DAYS = 14

RESPONDED_STATUSES = {"Interviewing", "Offered", "Rejected", "Accepted"}
POSITIVE_STATUSES = {"Interviewing", "Offered", "Accepted"}

SUGGESTION_TEMPLATES = {
    "follow_up": {
        "reminder_type": "follow_up",
        "priority": "medium",
        "tags": ["follow-up", "communication"],
    },
    "research_company": {
        "reminder_type": "custom",
        "priority": "low",
        "estimated_minutes": 30,
        "tags": ["research", "preparation"],
    },
    "prepare_interview": {
        "reminder_type": "interview_prep",
        "priority": "high",
        "estimated_minutes": 120,
        "tags": ["interview", "preparation"],
    },
    "update_status": {
        "reminder_type": "custom",
        "priority": "medium",
        "tags": ["maintenance", "status-update"],
    },
}


def _days_since(moment: Optional[datetime], now: datetime) -> Optional[int]:
    if moment is None:
        return None
    return (now - moment).days


def _suggestion(kind: str, application: Application, title: str, description: str) -> dict:
    template = SUGGESTION_TEMPLATES[kind]
    return {
        "id": f"{kind}:{application.id}",
        "type": kind,
        "application_id": application.id,
        "company": application.company,
        "title": title,
        "description": description,
        "priority": template["priority"],
        "estimated_minutes": template.get("estimated_minutes"),
        "tags": template["tags"],
    }


def suggest_tasks(
    session: Session,
    user_id: str,
    application_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> list[dict]:
    """Task suggestions for one application or all open ones."""
    now = now or utcnow()
    query = session.query(Application).filter(Application.user_id == user_id)
    if application_id:
        query = query.filter(Application.id == application_id)
    else:
        query = query.filter(Application.status.notin_(CLOSED_STATUSES))

    suggestions = []
    for app in query.order_by(Application.applied_date.desc()).all():
        applied_days = _days_since(app.applied_date, now)
        if app.status == "Applied" and applied_days is not None:
            if applied_days >= FOLLOW_UP_AFTER_DAYS:
                suggestions.append(_suggestion(
                    "follow_up", app,
                    f"Follow up with {app.company}",
                    f"It's been {applied_days} days since you applied. "
                    "Consider sending a polite follow-up email.",
                ))
            elif applied_days <= RESEARCH_WITHIN_DAYS:
                suggestions.append(_suggestion(
                    "research_company", app,
                    f"Research {app.company}",
                    f"Learn more about {app.company}'s culture, recent news, and key people.",
                ))
        if app.status == "Interviewing":
            suggestions.append(_suggestion(
                "prepare_interview", app,
                f"Prepare for {app.company} interview",
                "Review job requirements, practice common questions, "
                "and prepare questions to ask.",
            ))
        updated_days = _days_since(app.updated_at, now)
        if (
            app.status not in CLOSED_STATUSES
            and updated_days is not None
            and updated_days >= STALE_AFTER_DAYS
        ):
            suggestions.append(_suggestion(
                "update_status", app,
                f"Update {app.company} application",
                f"This application hasn't been updated in {updated_days} days.",
            ))
    return suggestions


def apply_suggestion(
    session: Session,
    user_id: str,
    suggestion_id: str,
    now: Optional[datetime] = None,
) -> Reminder:
    """Turn a suggestion id (``<type>:<application id>``) into a reminder."""
    now = now or utcnow()
    kind, _, application_id = (suggestion_id or "").partition(":")
    if kind not in SUGGESTION_TEMPLATES or not application_id:
        raise ValidationFailed(f"Invalid suggestion id: {suggestion_id}")

    matches = [
        s for s in suggest_tasks(session, user_id, application_id, now)
        if s["id"] == suggestion_id
    ]
    if not matches:
        raise NotFoundError("Suggestion not found or no longer applicable")
    suggestion = matches[0]

    reminder = Reminder(
        user_id=user_id,
        application_id=application_id,
        reminder_type=SUGGESTION_TEMPLATES[kind]["reminder_type"],
        title=suggestion["title"],
        description=suggestion["description"],
        due_date=now + timedelta(days=1),
        is_completed=False,
    )
    session.add(reminder)
    session.flush()
    logger.info(f"Applied suggestion {suggestion_id} → reminder {reminder.id}")
    return reminder


def _response_days(app: Application) -> Optional[int]:
    if app.applied_date and app.response_date:
        return (app.response_date - app.applied_date).days
    return None


def generate_insights(
    session: Session,
    user_id: str,
    now: Optional[datetime] = None,
) -> dict:
    now = now or utcnow()
    apps = session.query(Application).filter(Application.user_id == user_id).all()
    total = len(apps)

    responded = [a for a in apps if a.status in RESPONDED_STATUSES]
    response_days = [d for d in (_response_days(a) for a in apps) if d is not None]
    average_response_days = (
        round(sum(response_days) / len(response_days)) if response_days else None
    )
    stale = [
        a for a in apps
        if a.status not in CLOSED_STATUSES
        and (now - a.updated_at).days >= STALE_AFTER_DAYS
    ]
    recent = [
        a for a in apps
        if a.applied_date is not None and (now - a.applied_date).days <= 30
    ]

    by_type: dict[str, list[int]] = defaultdict(lambda: [0, 0])
    for app in apps:
        if not app.job_type:
            continue
        by_type[app.job_type][0] += 1
        if app.status in POSITIVE_STATUSES:
            by_type[app.job_type][1] += 1
    best_job_type = None
    if by_type:
        name, (count, positive) = max(by_type.items(), key=lambda kv: kv[1][1] / kv[1][0])
        if positive:
            best_job_type = {"job_type": name, "success_rate": round(positive / count * 100)}

    response_rate = round(len(responded) / total * 100) if total else 0

    recommendations = []
    if total == 0:
        recommendations.append("Add your first application to start getting insights.")
    else:
        if not recent:
            recommendations.append(
                "You haven't applied to any jobs in the last 30 days. "
                "Consider setting application goals."
            )
        if stale:
            recommendations.append(
                f"{len(stale)} applications haven't been updated in over "
                f"{STALE_AFTER_DAYS} days. Update their status or follow up."
            )
        if total >= 5 and response_rate < 20:
            recommendations.append(
                "Your response rate is low. Tailor your resume and cover letter "
                "to each position."
            )
        if best_job_type:
            recommendations.append(
                f"{best_job_type['job_type']} roles perform best for you "
                f"({best_job_type['success_rate']}% positive outcomes)."
            )

    return {
        "total_applications": total,
        "response_rate": response_rate,
        "average_response_days": average_response_days,
        "stale_applications": len(stale),
        "recent_applications": len(recent),
        "status_breakdown": dict(Counter(a.status for a in apps)),
        "best_performing_job_type": best_job_type,
        "recommendations": recommendations,
    }


def get_automation_stats(
    session: Session,
    user_id: str,
    now: Optional[datetime] = None,
) -> dict:
    now = now or utcnow()
    rules = session.query(WorkflowRule).filter(WorkflowRule.user_id == user_id).all()
    executions = (
        session.query(WorkflowExecution)
        .filter(WorkflowExecution.user_id == user_id)
        .all()
    )
    completed = sum(1 for e in executions if e.status == "completed")
    failed = sum(1 for e in executions if e.status == "failed")
    week_ago = now - timedelta(days=7)

    return {
        "total_rules": len(rules),
        "active_rules": sum(1 for r in rules if r.is_active),
        "total_executions": len(executions),
        "completed_executions": completed,
        "failed_executions": failed,
        "success_rate": round(completed / len(executions) * 100) if executions else 100,
        "executions_last_7_days": sum(1 for e in executions if e.executed_at >= week_ago),
    }
