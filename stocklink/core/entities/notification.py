"""Notification entity."""

from datetime import UTC, datetime

from pydantic import BaseModel, Field


class Notification(BaseModel):
    """Branch-scoped message emitted when a transfer order changes status."""

    id: str | None = None
    branch_id: str
    title: str
    message: str
    link: str | None = None
    order_id: str | None = None
    is_read: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
