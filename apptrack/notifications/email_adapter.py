"""Email notification adapter using an HTTP mail API.

Posts {from, to, subject, html, text} as JSON to ``notifications.email.api_url``
with a bearer API key (the shape Resend / Postmark-style APIs accept).
HTML bodies are rendered from Jinja2 templates in apptrack/templates.
"""

import logging
from pathlib import Path

import httpx
from jinja2 import Environment, FileSystemLoader

from ..config import EmailChannelConfig
from .models import NotificationPayload

logger = logging.getLogger(__name__)

# Template directory
TEMPLATE_DIR = Path(__file__).parent.parent / "templates"


class EmailAdapter:
    """HTTP mail API adapter for email notifications."""

    channel_name = "email"

    def __init__(self, config: EmailChannelConfig, app_url: str = ""):
        self.config = config
        self.app_url = app_url
        self._jinja = Environment(
            loader=FileSystemLoader(str(TEMPLATE_DIR)),
            autoescape=True,
        )

    @property
    def is_enabled(self) -> bool:
        return self.config.enabled and bool(self.config.api_url)

    def render(self, payload: NotificationPayload) -> str | None:
        """HTML body for the payload kind; None when rendering fails."""
        try:
            template = self._jinja.get_template(f"{payload.kind.value}.html")
            return template.render(
                payload=payload,
                name=payload.greeting_name,
                app_url=payload.app_url or self.app_url,
                timestamp=payload.timestamp.strftime("%d.%m.%Y %H:%M"),
            )
        except Exception as e:
            logger.warning(f"Template render failed, using plain: {e}")
            return None

    async def send(self, payload: NotificationPayload) -> bool:
        if not payload.email:
            logger.warning(f"No email address for user {payload.user_id}, skipping")
            return False
        try:
            message = {
                "from": self.config.sender,
                "to": [payload.email],
                "subject": payload.subject,
                "text": payload.body,
            }
            html_content = self.render(payload)
            if html_content:
                message["html"] = html_content

            headers = {}
            if self.config.api_key:
                headers["Authorization"] = f"Bearer {self.config.api_key}"

            async with httpx.AsyncClient(timeout=15.0) as client:
                resp = await client.post(self.config.api_url, headers=headers, json=message)
                resp.raise_for_status()
            logger.info(f"Email sent to {payload.email}: {payload.subject}")
            return True
        except Exception as e:
            logger.error(f"Email send failed: {e}")
            return False

    async def health_check(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                resp = await client.get(self.config.api_url)
                return resp.status_code < 500
        except Exception as e:
            logger.warning(f"Email API unreachable: {e}")
            return False
