"""In-app notification adapter: writes Notification rows for the inbox."""

import logging

from sqlalchemy.orm import Session

from ..db.models import Notification
from .models import NotificationPayload

logger = logging.getLogger(__name__)


class InAppAdapter:
    """Stores notifications in the database (read via /api/notifications)."""

    channel_name = "in_app"

    def __init__(self, session: Session, enabled: bool = True):
        self.session = session
        self.enabled = enabled

    @property
    def is_enabled(self) -> bool:
        return self.enabled

    async def send(self, payload: NotificationPayload) -> bool:
        data = dict(payload.data)
        if payload.upcoming or payload.overdue:
            data["reminder_ids"] = [
                item.reminder_id
                for item in [*payload.overdue, *payload.upcoming]
                if item.reminder_id
            ]
        self.session.add(Notification(
            user_id=payload.user_id,
            notification_type=payload.kind.value,
            title=payload.subject[:255],
            message=payload.body,
            data=data,
            is_read=False,
        ))
        logger.debug(f"In-app {payload.kind.value} stored for user {payload.user_id}")
        return True

    async def health_check(self) -> bool:
        return self.session.is_active
