"""Reminder notifications and digests (driven by the cron endpoint).

Per sweep:
    - every open reminder due within the next hour and not yet
      notified → reminder notification (stamped with notified_at)
    - at ``notifications.digest_hour`` (UTC): daily digest for users with
      reminder_frequency "daily", at most once per UTC day
    - Mondays at the same hour: weekly digest for "weekly" users
    - workflow emails queued as notifications are delivered

Channels per user: in_app when push_notifications, email when
email_notifications.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ..config import ServiceConfig, get_config
from ..db.models import Application, Notification, Reminder, User, utcnow
from ..schemas import notification_preferences
from ..services.reminders import get_due_reminders
from .dispatcher import NotificationDispatcher
from .models import DigestItem, NotificationKind, NotificationPayload

logger = logging.getLogger(__name__)

REMINDER_WINDOW = timedelta(hours=1)
DIGEST_OVERDUE_LIMIT = 5


def channels_for(preferences: dict) -> set[str]:
    channels = set()
    if preferences.get("push_notifications"):
        channels.add("in_app")
    if preferences.get("email_notifications"):
        channels.add("email")
    return channels


def _reminder_item(reminder: Reminder) -> DigestItem:
    app = reminder.application
    return DigestItem(
        title=reminder.title,
        company=app.company if app else None,
        position=app.position if app else None,
        due_date=reminder.due_date,
        reminder_type=reminder.reminder_type,
        reminder_id=reminder.id,
        application_id=reminder.application_id,
    )


def _application_item(app: Application) -> DigestItem:
    return DigestItem(
        title=f"{app.position} at {app.company}",
        company=app.company,
        position=app.position,
        application_id=app.id,
    )


def _open_reminders(session: Session, user_id: str):
    return session.query(Reminder).filter(
        Reminder.user_id == user_id,
        Reminder.is_completed.is_(False),
    )


def _recent_applications(session: Session, user_id: str, since: datetime) -> list[Application]:
    return (
        session.query(Application)
        .filter(Application.user_id == user_id, Application.created_at >= since)
        .order_by(Application.created_at.desc())
        .all()
    )


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------

def build_reminder_payload(user: User, reminder: Reminder, app_url: str = "") -> NotificationPayload:
    item = _reminder_item(reminder)
    body = (
        f"Hi {user.first_name or 'there'}! You have a reminder for your application "
        f"at {item.company_label}:\n\n{reminder.description or reminder.title}\n\n"
        f"Due: {reminder.due_date:%Y-%m-%d %H:%M} UTC"
    )
    return NotificationPayload(
        kind=NotificationKind.REMINDER,
        user_id=user.id,
        email=user.email,
        first_name=user.first_name,
        subject=f"Reminder: {reminder.title}",
        body=body,
        upcoming=[item],
        data={"reminder_id": reminder.id, "application_id": reminder.application_id},
        app_url=app_url,
    )


def build_daily_digest(
    session: Session,
    user: User,
    now: datetime,
    app_url: str = "",
) -> Optional[NotificationPayload]:
    """Overdue, due today/tomorrow and yesterday's new applications; None when empty."""
    end_of_tomorrow = (now + timedelta(days=1)).replace(
        hour=23, minute=59, second=59, microsecond=0
    )
    upcoming = (
        _open_reminders(session, user.id)
        .filter(Reminder.due_date >= now, Reminder.due_date <= end_of_tomorrow)
        .order_by(Reminder.due_date.asc())
        .all()
    )
    overdue = (
        _open_reminders(session, user.id)
        .filter(Reminder.due_date < now)
        .order_by(Reminder.due_date.asc())
        .limit(DIGEST_OVERDUE_LIMIT)
        .all()
    )
    if not upcoming and not overdue:
        return None
    recent = _recent_applications(session, user.id, now - timedelta(days=1))

    lines = [f"Hi {user.first_name or 'there'}!", "", "Here's your daily job search reminder digest:", ""]
    if overdue:
        lines.append(f"OVERDUE REMINDERS ({len(overdue)}):")
        lines += [
            f"- {r.title} ({_reminder_item(r).company_label}) - Due: {r.due_date:%Y-%m-%d}"
            for r in overdue
        ]
        lines.append("")
    if upcoming:
        lines.append(f"TODAY'S REMINDERS ({len(upcoming)}):")
        lines += [
            f"- {r.title} ({_reminder_item(r).company_label}) - Due: {r.due_date:%H:%M}"
            for r in upcoming
        ]
        lines.append("")
    if recent:
        lines.append(f"NEW APPLICATIONS ({len(recent)}):")
        lines += [f"- {a.position} at {a.company}" for a in recent]
        lines.append("")
    lines.append("Stay organized and keep up the great work!")

    return NotificationPayload(
        kind=NotificationKind.DAILY_DIGEST,
        user_id=user.id,
        email=user.email,
        first_name=user.first_name,
        subject=f"Daily Job Search Digest - {len(upcoming) + len(overdue)} reminders",
        body="\n".join(lines),
        overdue=[_reminder_item(r) for r in overdue],
        upcoming=[_reminder_item(r) for r in upcoming],
        recent_applications=[_application_item(a) for a in recent],
        app_url=app_url,
    )


def build_weekly_digest(
    session: Session,
    user: User,
    now: datetime,
    app_url: str = "",
) -> Optional[NotificationPayload]:
    """Reminders of the coming week grouped by day; None when nothing is due."""
    upcoming = (
        _open_reminders(session, user.id)
        .filter(Reminder.due_date >= now, Reminder.due_date <= now + timedelta(days=7))
        .order_by(Reminder.due_date.asc())
        .all()
    )
    overdue = (
        _open_reminders(session, user.id)
        .filter(Reminder.due_date < now)
        .order_by(Reminder.due_date.asc())
        .limit(DIGEST_OVERDUE_LIMIT)
        .all()
    )
    if not upcoming and not overdue:
        return None
    recent = _recent_applications(session, user.id, now - timedelta(days=7))

    by_day: dict[str, list[Reminder]] = defaultdict(list)
    for reminder in upcoming:
        by_day[reminder.due_date.strftime("%A, %b %d")].append(reminder)

    lines = [f"Hi {user.first_name or 'there'}!", "", "Here's your weekly job search summary:", ""]
    if overdue:
        lines.append(f"OVERDUE ({len(overdue)}):")
        lines += [f"- {r.title} ({_reminder_item(r).company_label})" for r in overdue]
        lines.append("")
    lines.append(f"UPCOMING THIS WEEK ({len(upcoming)}):")
    for day, reminders in by_day.items():
        lines.append(f"{day}:")
        lines += [f"  - {r.title} ({_reminder_item(r).company_label})" for r in reminders]
    lines.append("")
    if recent:
        lines.append(f"Applications added this week: {len(recent)}")
        lines.append("")
    lines.append("Plan your week and stay on top of your job search!")

    return NotificationPayload(
        kind=NotificationKind.WEEKLY_DIGEST,
        user_id=user.id,
        email=user.email,
        first_name=user.first_name,
        subject=f"Weekly Job Search Digest - {len(upcoming)} reminders",
        body="\n".join(lines),
        overdue=[_reminder_item(r) for r in overdue],
        upcoming=[_reminder_item(r) for r in upcoming],
        recent_applications=[_application_item(a) for a in recent],
        app_url=app_url,
    )


def _digest_sent_on(user: User, kind: str) -> Optional[str]:
    return ((user.preferences or {}).get("last_digests") or {}).get(kind)


def _mark_digest_sent(user: User, kind: str, now: datetime) -> None:
    stored = user.preferences or {}
    last = {**(stored.get("last_digests") or {}), kind: now.date().isoformat()}
    user.preferences = {**stored, "last_digests": last}


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class NotificationService:
    """Builds payloads and hands them to the dispatcher."""

    def __init__(
        self,
        session: Session,
        config: Optional[ServiceConfig] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
    ):
        self.session = session
        self.config = config or get_config()
        self.dispatcher = dispatcher or NotificationDispatcher(self.config, session)
        self.app_url = self.config.notifications.app_url

    async def _deliver(self, payload: NotificationPayload, preferences: dict) -> bool:
        channels = channels_for(preferences)
        if not channels:
            return False
        results = await self.dispatcher.dispatch(payload, channels)
        return any(results.values())

    async def send_reminder_notification(self, reminder: Reminder) -> bool:
        user = self.session.get(User, reminder.user_id)
        if user is None or not user.is_active or reminder.is_completed:
            return False
        preferences = notification_preferences(user)
        if reminder.reminder_type == "interview_prep" and not preferences["interview_reminders"]:
            return False
        return await self._deliver(build_reminder_payload(user, reminder, self.app_url), preferences)

    async def send_daily_digest(self, user: User, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        preferences = notification_preferences(user)
        if preferences["reminder_frequency"] != "daily":
            return False
        if _digest_sent_on(user, "daily") == now.date().isoformat():
            return False
        payload = build_daily_digest(self.session, user, now, self.app_url)
        if payload is None:
            return False
        sent = await self._deliver(payload, preferences)
        if sent:
            _mark_digest_sent(user, "daily", now)
        return sent

    async def send_weekly_digest(self, user: User, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        preferences = notification_preferences(user)
        if preferences["reminder_frequency"] != "weekly" or not preferences["weekly_digest"]:
            return False
        if _digest_sent_on(user, "weekly") == now.date().isoformat():
            return False
        payload = build_weekly_digest(self.session, user, now, self.app_url)
        if payload is None:
            return False
        sent = await self._deliver(payload, preferences)
        if sent:
            _mark_digest_sent(user, "weekly", now)
        return sent

    async def send_queued_emails(self) -> int:
        """Deliver workflow ``send_email`` notifications not yet delivered."""
        queued = (
            self.session.query(Notification)
            .filter(Notification.notification_type == "email")
            .all()
        )
        sent = 0
        for notification in queued:
            data = dict(notification.data or {})
            if data.get("delivered"):
                continue
            user = self.session.get(User, notification.user_id)
            if user is None:
                continue
            payload = NotificationPayload(
                kind=NotificationKind.WORKFLOW,
                user_id=user.id,
                email=user.email,
                first_name=user.first_name,
                subject=notification.title,
                body=notification.message,
                data=data,
                app_url=self.app_url,
            )
            results = await self.dispatcher.dispatch(payload, {"email"})
            if results.get("email"):
                data["delivered"] = True
                notification.data = data
                sent += 1
        return sent

    async def process_due(self, now: Optional[datetime] = None) -> dict:
        """One cron sweep; individual failures are collected, not raised."""
        now = now or utcnow()
        digest_hour = self.config.notifications.digest_hour
        results = {
            "reminders_sent": 0,
            "daily_digests_sent": 0,
            "weekly_digests_sent": 0,
            "emails_sent": 0,
            "errors": [],
        }

        due = get_due_reminders(self.session, now, now + REMINDER_WINDOW)
        for reminder in due:
            try:
                if await self.send_reminder_notification(reminder):
                    reminder.notified_at = now
                    results["reminders_sent"] += 1
            except Exception as e:
                logger.error(f"Error sending reminder {reminder.id}: {e}", exc_info=True)
                results["errors"].append(f"Reminder {reminder.id}: {e}")

        if now.hour == digest_hour:
            users = self.session.query(User).filter(User.is_active.is_(True)).all()
            for user in users:
                try:
                    if await self.send_daily_digest(user, now):
                        results["daily_digests_sent"] += 1
                    if now.weekday() == 0 and await self.send_weekly_digest(user, now):
                        results["weekly_digests_sent"] += 1
                except Exception as e:
                    logger.error(f"Error sending digest to user {user.id}: {e}", exc_info=True)
                    results["errors"].append(f"Digest {user.id}: {e}")

        self.session.flush()

        try:
            results["emails_sent"] = await self.send_queued_emails()
        except Exception as e:
            logger.error(f"Error delivering queued emails: {e}", exc_info=True)
            results["errors"].append(f"Queued emails: {e}")

        logger.info(
            f"Notification sweep: {results['reminders_sent']} reminders, "
            f"{results['daily_digests_sent']} daily, {results['weekly_digests_sent']} weekly, "
            f"{results['emails_sent']} emails, {len(results['errors'])} errors"
        )
        return results
