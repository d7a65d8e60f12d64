"""In-process queue for fire-and-forget webhook processing."""

from .notification_queue import NotificationDispatcher

__all__ = ["NotificationDispatcher"]
