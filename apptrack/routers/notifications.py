"""
Notifications API Endpoints

POST /send is called by an external scheduler with the cron secret as
bearer token; it delivers due reminders, digests and queued workflow
emails, and runs scheduled workflow rules.
"""

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..config import get_config
from ..db.database import get_db
from ..db.models import Notification, User, utcnow
from ..errors import NotFoundError, UnauthorizedError, ok
from ..notifications.service import NotificationService
from ..services import workflows

logger = logging.getLogger(__name__)

router = APIRouter()

cron_auth = HTTPBearer(auto_error=False)


def require_cron_secret(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(cron_auth),
) -> None:
    secret = get_config().notifications.cron_secret
    if (
        not secret
        or credentials is None
        or not hmac.compare_digest(credentials.credentials, secret)
    ):
        raise UnauthorizedError("Invalid cron secret")


def serialize_notification(notification: Notification) -> dict:
    return {
        "id": notification.id,
        "notification_type": notification.notification_type,
        "title": notification.title,
        "message": notification.message,
        "data": notification.data,
        "is_read": notification.is_read,
        "created_at": notification.created_at.isoformat(),
    }


@router.post("/send", dependencies=[Depends(require_cron_secret)])
async def send_notifications(db: Session = Depends(get_db)):
    now = utcnow()
    results = await NotificationService(db).process_due(now)
    try:
        results["workflows_executed"] = workflows.run_scheduled_rules(db, now)
    except Exception as e:
        logger.error(f"Scheduled workflows failed: {e}", exc_info=True)
        results["workflows_executed"] = 0
        results["errors"].append(f"Workflows: {e}")
    return ok(results, timestamp=now.isoformat())


@router.get("")
async def list_notifications(
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    query = db.query(Notification).filter(
        Notification.user_id == current_user.id,
        Notification.notification_type != "email",
    )
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    notifications = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()
    unread = (
        db.query(Notification)
        .filter(
            Notification.user_id == current_user.id,
            Notification.notification_type != "email",
            Notification.is_read.is_(False),
        )
        .count()
    )
    return ok([serialize_notification(n) for n in notifications], unread_count=unread)


@router.post("/{notification_id}/read")
async def mark_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == current_user.id)
        .first()
    )
    if notification is None:
        raise NotFoundError("Notification not found")
    notification.is_read = True
    db.flush()
    return ok(serialize_notification(notification))
