"""Branch entity."""

from datetime import UTC, datetime

from pydantic import BaseModel, Field


class Branch(BaseModel):
    """A retail branch that owns its own inventory subtree."""

    id: str
    name: str
    is_active: bool = True
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    notes: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
