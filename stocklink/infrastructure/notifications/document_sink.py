"""Notification sink persisting to the ``notifications`` collection."""

from stocklink.config import get_logger
from stocklink.core.entities.notification import Notification
from stocklink.core.exceptions import NotFoundError
from stocklink.core.interfaces.document_client import FieldFilter, IDocumentClient, join_path
from stocklink.core.interfaces.event_sink import IEventSink

logger = get_logger(__name__)

NOTIFICATIONS_COLLECTION = "notifications"


class DocumentNotificationSink(IEventSink):
    """
    Stores notifications as documents for the recipient branch to read.

    The read/unread flag belongs to the recipient side; emit() always
    writes is_read=False.
    """

    def __init__(self, client: IDocumentClient):
        self._client = client

    async def emit(self, event: Notification) -> Notification:
        data = event.model_dump(exclude={"id"})
        data["is_read"] = False
        notification_id = await self._client.add(NOTIFICATIONS_COLLECTION, data)
        logger.debug(
            "notification_stored",
            notification_id=notification_id,
            branch_id=event.branch_id,
            order_id=event.order_id,
        )
        return event.model_copy(update={"id": notification_id, "is_read": False})

    async def list_for_branch(
        self,
        branch_id: str,
        unread_only: bool = False,
        limit: int | None = None,
    ) -> list[Notification]:
        """Notifications addressed to a branch, newest first."""
        filters = [FieldFilter("branch_id", "==", branch_id)]
        if unread_only:
            filters.append(FieldFilter("is_read", "==", False))
        docs = await self._client.query(
            NOTIFICATIONS_COLLECTION,
            filters,
            order_by="created_at",
            descending=True,
            limit=limit,
        )
        return [Notification(id=d.id, **d.data) for d in docs]

    async def mark_read(self, notification_id: str) -> None:
        path = join_path(NOTIFICATIONS_COLLECTION, notification_id)
        if await self._client.get(path) is None:
            raise NotFoundError("notification", notification_id)
        await self._client.update(path, {"is_read": True})

    async def mark_all_read(self, branch_id: str) -> int:
        """Flag every unread notification of a branch; returns how many changed."""
        unread = await self.list_for_branch(branch_id, unread_only=True)
        async with self._client.transaction() as tx:
            for notification in unread:
                await tx.update(
                    join_path(NOTIFICATIONS_COLLECTION, notification.id), {"is_read": True}
                )
        logger.info("notifications_marked_read", branch_id=branch_id, count=len(unread))
        return len(unread)
