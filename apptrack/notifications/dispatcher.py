"""Notification dispatcher: orchestrates multi-channel delivery.

Handles:
- Channel discovery and initialization
- Per-user channel selection
- Error isolation (one channel failure doesn't block others)
"""

import asyncio
import logging
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ..config import ServiceConfig
from . import NotificationAdapter
from .email_adapter import EmailAdapter
from .in_app_adapter import InAppAdapter
from .models import NotificationPayload

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Orchestrates notification delivery across all configured channels."""

    def __init__(
        self,
        config: ServiceConfig,
        session: Session,
        adapters: Optional[list[NotificationAdapter]] = None,
    ):
        self.config = config
        self.session = session
        self.adapters: list[NotificationAdapter] = (
            adapters if adapters is not None else self._init_adapters()
        )

    def _init_adapters(self) -> list[NotificationAdapter]:
        """Initialize all configured and enabled adapters."""
        settings = self.config.notifications
        adapters: list[NotificationAdapter] = []

        in_app = InAppAdapter(self.session, enabled=settings.in_app_enabled)
        if in_app.is_enabled:
            adapters.append(in_app)

        email = EmailAdapter(settings.email, app_url=settings.app_url)
        if email.is_enabled:
            adapters.append(email)

        logger.info(
            f"Initialized {len(adapters)} notification channels: "
            f"{[a.channel_name for a in adapters]}"
        )
        return adapters

    async def dispatch(
        self,
        payload: NotificationPayload,
        channels: Optional[Iterable[str]] = None,
    ) -> dict[str, bool]:
        """Send a notification to the enabled channels.

        Args:
            payload: The notification content
            channels: Restrict to these channel names (user preferences)

        Returns:
            Dict mapping channel_name -> success boolean
        """
        wanted = set(channels) if channels is not None else None
        adapters = [
            a for a in self.adapters
            if wanted is None or a.channel_name in wanted
        ]
        if not adapters:
            logger.debug(f"No channels selected for user {payload.user_id}")
            return {}

        # Fan-out: send to all channels concurrently, isolate failures
        results = {}

        async def _send_safe(adapter: NotificationAdapter) -> tuple[str, bool]:
            try:
                success = await adapter.send(payload)
                return adapter.channel_name, success
            except Exception as e:
                logger.error(
                    f"Channel {adapter.channel_name} failed: {e}",
                    exc_info=True,
                )
                return adapter.channel_name, False

        tasks = [_send_safe(adapter) for adapter in adapters]
        for coro in asyncio.as_completed(tasks):
            name, success = await coro
            results[name] = success
            if not success:
                logger.warning(f"{name}: {payload.kind.value} for {payload.user_id} failed")

        return results

    async def health_check(self) -> dict[str, bool]:
        """Check health of all configured channels."""
        results = {}
        for adapter in self.adapters:
            try:
                results[adapter.channel_name] = await adapter.health_check()
            except Exception as e:
                logger.warning(f"{adapter.channel_name}: health check failed: {e}")
                results[adapter.channel_name] = False
        return results

    @property
    def enabled_channels(self) -> list[str]:
        return [a.channel_name for a in self.adapters]
