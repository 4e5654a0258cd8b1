"""Notification channels: adapter protocol, payload model and dispatcher."""

from typing import Protocol, runtime_checkable

from .models import DigestItem, NotificationPayload


@runtime_checkable
class NotificationAdapter(Protocol):
    """Protocol for notification channel adapters."""

    @property
    def channel_name(self) -> str:
        """Channel key (matches user preference channels)."""
        ...

    @property
    def is_enabled(self) -> bool:
        """Whether this channel is configured and enabled."""
        ...

    async def send(self, payload: NotificationPayload) -> bool:
        """Send notification. Returns True on success."""
        ...

    async def health_check(self) -> bool:
        """Verify channel connectivity. Returns True if healthy."""
        ...


__all__ = ["DigestItem", "NotificationAdapter", "NotificationPayload"]
