"""
Automation API Endpoints

Workflow rules plus smart task suggestions and insights.
"""

from typing import Any, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..db.database import get_db
from ..db.models import User, WorkflowRule
from ..errors import ok
from ..schemas import ReminderResponse, serialize
from ..services import automation, workflows

router = APIRouter()


class Trigger(BaseModel):
    type: str
    config: dict[str, Any] = {}

    @field_validator("type")
    @classmethod
    def _known_trigger(cls, v: str) -> str:
        if v not in workflows.TRIGGER_TYPES:
            raise ValueError(f"trigger type must be one of {', '.join(workflows.TRIGGER_TYPES)}")
        return v


class Condition(BaseModel):
    field: str = Field(..., min_length=1)
    operator: str
    value: Any = None

    @field_validator("operator")
    @classmethod
    def _known_operator(cls, v: str) -> str:
        if v not in workflows.OPERATORS:
            raise ValueError(f"operator must be one of {', '.join(workflows.OPERATORS)}")
        return v


class Action(BaseModel):
    type: str
    config: dict[str, Any] = {}

    @field_validator("type")
    @classmethod
    def _known_action(cls, v: str) -> str:
        if v not in workflows.ACTION_TYPES:
            raise ValueError(f"action type must be one of {', '.join(workflows.ACTION_TYPES)}")
        return v

    @field_validator("config")
    @classmethod
    def _bounded_days(cls, v: dict[str, Any]) -> dict[str, Any]:
        if "days_from_now" in v:
            try:
                workflows.days_from_now(v, 0)
            except workflows.WorkflowActionError as e:
                raise ValueError(str(e))
        return v


class WorkflowRuleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    trigger: Trigger
    conditions: list[Condition] = []
    actions: list[Action] = Field(..., min_length=1)
    is_active: bool = True
    priority: int = Field(0, ge=0, le=100)


class WorkflowRuleUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    trigger: Optional[Trigger] = None
    conditions: Optional[list[Condition]] = None
    actions: Optional[list[Action]] = Field(None, min_length=1)
    is_active: Optional[bool] = None
    priority: Optional[int] = Field(None, ge=0, le=100)


class ApplySuggestionRequest(BaseModel):
    suggestion_id: str


@router.get("/workflows")
async def list_workflows(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    rules = (
        db.query(WorkflowRule)
        .filter(WorkflowRule.user_id == current_user.id)
        .order_by(WorkflowRule.priority.desc(), WorkflowRule.created_at.asc())
        .all()
    )
    return ok([workflows.serialize_rule(r) for r in rules])


@router.post("/workflows", status_code=status.HTTP_201_CREATED)
async def create_workflow(
    body: WorkflowRuleCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    rule = WorkflowRule(user_id=current_user.id, **body.model_dump())
    db.add(rule)
    db.flush()
    return ok(workflows.serialize_rule(rule))


@router.post("/workflows/defaults", status_code=status.HTTP_201_CREATED)
async def install_defaults(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    created = workflows.install_default_rules(db, current_user.id)
    return ok([workflows.serialize_rule(r) for r in created])


@router.get("/workflows/{rule_id}")
async def get_workflow(
    rule_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(workflows.serialize_rule(workflows.get_rule(db, current_user.id, rule_id)))


@router.put("/workflows/{rule_id}")
async def update_workflow(
    rule_id: str,
    body: WorkflowRuleUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    rule = workflows.get_rule(db, current_user.id, rule_id)
    for key, value in body.model_dump(exclude_unset=True).items():
        if value is None:
            continue
        setattr(rule, key, value)
    db.flush()
    return ok(workflows.serialize_rule(rule))


@router.delete("/workflows/{rule_id}")
async def delete_workflow(
    rule_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    db.delete(workflows.get_rule(db, current_user.id, rule_id))
    db.flush()
    return ok({"id": rule_id, "deleted": True})


@router.post("/workflows/{rule_id}/execute")
async def execute_workflow(
    rule_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    executions = workflows.run_rule_manually(db, current_user.id, rule_id)
    return ok([workflows.serialize_execution(e) for e in executions])


@router.get("/suggestions")
async def task_suggestions(
    application_id: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(automation.suggest_tasks(db, current_user.id, application_id))


@router.post("/suggestions/apply", status_code=status.HTTP_201_CREATED)
async def apply_suggestion(
    body: ApplySuggestionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    reminder = automation.apply_suggestion(db, current_user.id, body.suggestion_id)
    return ok(serialize(ReminderResponse, reminder))


@router.get("/insights")
async def insights(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(automation.generate_insights(db, current_user.id))


@router.get("/stats")
async def stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return ok(automation.get_automation_stats(db, current_user.id))
