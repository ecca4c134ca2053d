"""Core domain entities."""

from stocklink.core.entities.branch import Branch
from stocklink.core.entities.inventory import (
    BranchStock,
    BrandNode,
    GroupedProduct,
    InventoryCounts,
    Lot,
    LotRef,
    LotStock,
    LotView,
    ModelNode,
    ProductSummary,
    SizeStock,
    VariantNode,
    format_specification,
    parse_specification,
)
from stocklink.core.entities.ledger import (
    LedgerEventType,
    MovementKind,
    StockMovement,
    event_type_for,
)
from stocklink.core.entities.notification import Notification
from stocklink.core.entities.order import (
    LEGACY_STATUS_ALIASES,
    NewTransferOrder,
    OrderItem,
    OrderStatus,
    TransferOrder,
)

__all__ = [
    # Branch
    "Branch",
    # Inventory tree
    "BrandNode",
    "ModelNode",
    "VariantNode",
    "Lot",
    "LotRef",
    "parse_specification",
    "format_specification",
    # Inventory views
    "LotView",
    "LotStock",
    "SizeStock",
    "BranchStock",
    "GroupedProduct",
    "InventoryCounts",
    "ProductSummary",
    # Ledger
    "StockMovement",
    "MovementKind",
    "LedgerEventType",
    "event_type_for",
    # Orders
    "OrderStatus",
    "LEGACY_STATUS_ALIASES",
    "OrderItem",
    "NewTransferOrder",
    "TransferOrder",
    # Notifications
    "Notification",
]
