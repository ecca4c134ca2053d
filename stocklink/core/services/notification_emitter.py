"""Best-effort notification emission."""

from stocklink.config import get_logger
from stocklink.core.entities.notification import Notification
from stocklink.core.interfaces.event_sink import IEventSink

logger = get_logger(__name__)


class NotificationEmitter:
    """
    Build notifications and hand them to the injected sink.

    Failures are logged and swallowed: a notification never fails the
    operation that triggered it.
    """

    def __init__(self, sink: IEventSink) -> None:
        self._sink = sink

    async def create(
        self,
        branch_id: str,
        title: str,
        message: str,
        link: str | None = None,
        order_id: str | None = None,
    ) -> Notification | None:
        notification = Notification(
            branch_id=branch_id,
            title=title,
            message=message,
            link=link,
            order_id=order_id,
        )
        try:
            return await self._sink.emit(notification)
        except Exception as e:
            logger.warning(
                "notification_failed",
                branch_id=branch_id,
                title=title,
                order_id=order_id,
                error=str(e),
            )
            return None
