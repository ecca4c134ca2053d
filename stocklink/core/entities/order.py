"""Transfer order entities."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class OrderStatus(str, Enum):
    """Canonical transfer order statuses."""

    REQUESTED = "requested"
    APPROVED = "approved"
    SHIPPED = "shipped"
    RECEIVED = "received"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

    @classmethod
    def normalize(cls, value: "str | OrderStatus") -> "OrderStatus":
        """Map stored values, including legacy aliases, onto the canonical enum."""
        if isinstance(value, cls):
            return value
        raw = str(value).strip().lower()
        if raw in LEGACY_STATUS_ALIASES:
            return LEGACY_STATUS_ALIASES[raw]
        return cls(raw)

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.RECEIVED, OrderStatus.REJECTED, OrderStatus.CANCELLED)


# Older records were written with these names
LEGACY_STATUS_ALIASES: dict[str, OrderStatus] = {
    "confirmed": OrderStatus.APPROVED,
    "delivered": OrderStatus.SHIPPED,
    "completed": OrderStatus.RECEIVED,
}


class OrderItem(BaseModel):
    """One line of a transfer order, resolved against the seller's tree."""

    model_config = ConfigDict(protected_namespaces=())

    product_id: str = ""  # "<brandId>-<modelId>"
    product_name: str = ""
    brand_id: str | None = None
    brand_name: str | None = None
    model_id: str | None = None
    model_name: str | None = None
    variant_id: str
    specification: str = ""
    lot_code: str
    quantity: int
    unit_price: float | None = None
    total_price: float | None = None

    @model_validator(mode="after")
    def fill_derived(self) -> "OrderItem":
        if not self.product_id and self.brand_id and self.model_id:
            self.product_id = f"{self.brand_id}-{self.model_id}"
        if not self.product_name:
            self.product_name = " ".join(
                p for p in (self.brand_name or self.brand_id, self.model_name or self.model_id) if p
            )
        if self.total_price is None and self.unit_price is not None:
            self.total_price = self.unit_price * self.quantity
        return self

    def product_keys(self) -> tuple[str, str]:
        """Return (brand_id, model_id), splitting legacy product ids on the first hyphen."""
        if self.brand_id and self.model_id:
            return self.brand_id, self.model_id
        brand_id, _, model_id = self.product_id.partition("-")
        return brand_id or "unknown", model_id or "unknown"


class NewTransferOrder(BaseModel):
    """Buyer-side request to draw stock from a seller branch."""

    buyer_branch_id: str
    seller_branch_id: str
    items: list[OrderItem]
    notes: str | None = None


class TransferOrder(BaseModel):
    """Stored transfer order; mutated only through state-machine transitions."""

    id: str | None = None
    order_number: str | None = None
    buyer_branch_id: str
    buyer_branch_name: str = ""
    seller_branch_id: str
    seller_branch_name: str = ""
    items: list[OrderItem] = Field(default_factory=list)
    status: OrderStatus = OrderStatus.REQUESTED
    total_amount: float = 0.0
    notes: str | None = None
    cancel_reason: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: Any) -> OrderStatus:
        return OrderStatus.normalize(v)

    @property
    def branch_ids(self) -> list[str]:
        return [self.buyer_branch_id, self.seller_branch_id]
