"""
Core business logic services.

Layer-pure services that depend only on:
- stocklink/core/entities/*
- stocklink/core/interfaces/*
- stocklink/core/exceptions.py

NO infrastructure imports. All dependencies injected via constructor.
"""

from stocklink.core.services.branch_directory import BranchDirectory
from stocklink.core.services.canonical_resolver import CanonicalIds, CanonicalResolver
from stocklink.core.services.identifiers import (
    SLUG_MAX_LENGTH,
    normalize,
    require_name,
    require_segment,
)
from stocklink.core.services.inventory_hierarchy import InventoryHierarchyStore
from stocklink.core.services.notification_emitter import NotificationEmitter
from stocklink.core.services.stock_ledger import StockLedger
from stocklink.core.services.transfer_orders import TransferOrderService

__all__ = [
    # Identifiers
    "normalize",
    "require_segment",
    "require_name",
    "SLUG_MAX_LENGTH",
    # Resolver
    "CanonicalResolver",
    "CanonicalIds",
    # Inventory
    "InventoryHierarchyStore",
    "StockLedger",
    # Branches
    "BranchDirectory",
    # Transfers
    "TransferOrderService",
    # Notifications
    "NotificationEmitter",
]
