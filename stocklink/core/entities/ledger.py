"""Stock ledger entities."""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class MovementKind(str, Enum):
    """Kinds of quantity movement."""

    INBOUND = "in"
    OUTBOUND = "out"
    ADJUSTMENT = "adjust"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"


class LedgerEventType(str, Enum):
    """Event tags shared by both sub-ledgers."""

    STOCK_RECEIVED = "stock.received"
    STOCK_ISSUED = "stock.issued"
    STOCK_ADJUSTMENT = "stock.adjustment"
    STOCK_TRANSFER_IN = "stock.transfer.in"
    STOCK_TRANSFER_OUT = "stock.transfer.out"
    ORDER_REQUESTED = "order.requested"
    ORDER_APPROVED = "order.approved"
    ORDER_REJECTED = "order.rejected"
    ORDER_SHIPPED = "order.shipped"
    ORDER_RECEIVED = "order.received"
    ORDER_CANCELLED = "order.cancelled"


_MOVEMENT_EVENTS = {
    MovementKind.INBOUND: LedgerEventType.STOCK_RECEIVED,
    MovementKind.OUTBOUND: LedgerEventType.STOCK_ISSUED,
    MovementKind.ADJUSTMENT: LedgerEventType.STOCK_ADJUSTMENT,
    MovementKind.TRANSFER_IN: LedgerEventType.STOCK_TRANSFER_IN,
    MovementKind.TRANSFER_OUT: LedgerEventType.STOCK_TRANSFER_OUT,
}


def event_type_for(kind: MovementKind) -> LedgerEventType:
    """Derive the workflow-event tag of a quantity movement."""
    return _MOVEMENT_EVENTS.get(kind, LedgerEventType.STOCK_ADJUSTMENT)


class StockMovement(BaseModel):
    """
    Immutable ledger row.

    Quantity movements have a kind and a non-zero qty_change. Workflow
    events (order.*) have no kind and are tagged to every branch they
    concern through branch_ids.
    """

    model_config = ConfigDict(protected_namespaces=())

    id: str | None = None
    branch_id: str
    branch_ids: list[str] = Field(default_factory=list)
    kind: MovementKind | None = None
    event_type: LedgerEventType
    qty_change: int = 0
    brand_id: str | None = None
    model_id: str | None = None
    variant_id: str | None = None
    lot_code: str | None = None
    order_id: str | None = None
    reason: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_workflow_event(self) -> bool:
        return self.kind is None
