"""Tests for the document-backed notification sink."""

import pytest

from stocklink.core.entities import Notification
from stocklink.core.exceptions import NotFoundError
from stocklink.infrastructure.notifications import DocumentNotificationSink


@pytest.mark.asyncio
class TestDocumentNotificationSink:
    async def test_emit_stores_unread(self, sink: DocumentNotificationSink, client):
        stored = await sink.emit(
            Notification(branch_id="B1", title="t", message="m", order_id="o1", is_read=True)
        )

        assert stored.id
        assert stored.is_read is False
        data = await client.get(f"notifications/{stored.id}")
        assert data["branch_id"] == "B1"
        assert data["order_id"] == "o1"
        assert data["is_read"] is False

    async def test_list_for_branch_newest_first(self, sink: DocumentNotificationSink):
        first = await sink.emit(Notification(branch_id="B1", title="1", message="m"))
        second = await sink.emit(Notification(branch_id="B1", title="2", message="m"))
        await sink.emit(Notification(branch_id="B2", title="other", message="m"))

        listed = await sink.list_for_branch("B1")

        assert [n.id for n in listed] == [second.id, first.id]

    async def test_mark_read(self, sink: DocumentNotificationSink):
        a = await sink.emit(Notification(branch_id="B1", title="a", message="m"))
        b = await sink.emit(Notification(branch_id="B1", title="b", message="m"))

        await sink.mark_read(a.id)

        unread = await sink.list_for_branch("B1", unread_only=True)
        assert [n.id for n in unread] == [b.id]

    async def test_mark_read_missing(self, sink: DocumentNotificationSink):
        with pytest.raises(NotFoundError):
            await sink.mark_read("nope")

    async def test_mark_all_read(self, sink: DocumentNotificationSink):
        for i in range(3):
            await sink.emit(Notification(branch_id="B1", title=str(i), message="m"))
        await sink.emit(Notification(branch_id="B2", title="x", message="m"))

        assert await sink.mark_all_read("B1") == 3
        assert await sink.list_for_branch("B1", unread_only=True) == []
        assert len(await sink.list_for_branch("B2", unread_only=True)) == 1
