"""Notification delivery adapters."""

from stocklink.infrastructure.notifications.document_sink import (
    NOTIFICATIONS_COLLECTION,
    DocumentNotificationSink,
)

__all__ = [
    "DocumentNotificationSink",
    "NOTIFICATIONS_COLLECTION",
]
