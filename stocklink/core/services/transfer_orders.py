"""
Transfer order state machine.

    requested -> approved -> shipped -> received
    requested/approved -> rejected | cancelled

Shipping decrements the seller's lots and receiving increments the
buyer's, creating the buyer-side brand/model/variant/lot nodes on demand.
Every transition appends one workflow event tagged to both branches and
fires a best-effort notification once its writes have committed.

Two shipment modes are supported:

- ``atomic``: every line, every ledger row and the status change commit
  in one transaction; one insufficient line leaves nothing applied.
- ``per_line``: one transaction per line and a final one for the status.
  Lines applied before a failing line stay applied.
"""

import time
from datetime import UTC, datetime
from typing import Literal

from stocklink.config import get_logger
from stocklink.core.entities.inventory import LotRef
from stocklink.core.entities.ledger import LedgerEventType, MovementKind
from stocklink.core.entities.order import (
    NewTransferOrder,
    OrderItem,
    OrderStatus,
    TransferOrder,
)
from stocklink.core.exceptions import (
    InsufficientStockError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from stocklink.core.interfaces.document_client import (
    FieldFilter,
    IDocumentClient,
    ITransaction,
    join_path,
)
from stocklink.core.services.branch_directory import BranchDirectory
from stocklink.core.services.canonical_resolver import CanonicalResolver
from stocklink.core.services.identifiers import require_segment
from stocklink.core.services.inventory_hierarchy import InventoryHierarchyStore
from stocklink.core.services.notification_emitter import NotificationEmitter
from stocklink.core.services.stock_ledger import StockLedger

logger = get_logger(__name__)

ORDERS_COLLECTION = "orders"

ShipmentMode = Literal["atomic", "per_line"]

_ROLE_FIELDS = {"buyer": "buyer_branch_id", "seller": "seller_branch_id"}

_OPEN_STATUSES = (OrderStatus.REQUESTED, OrderStatus.APPROVED)


def _order_path(order_id: str) -> str:
    return join_path(ORDERS_COLLECTION, order_id)


class TransferOrderService:
    """Orchestrates the lifecycle of cross-branch transfer orders."""

    def __init__(
        self,
        client: IDocumentClient,
        inventory: InventoryHierarchyStore,
        ledger: StockLedger,
        resolver: CanonicalResolver,
        branches: BranchDirectory,
        notifier: NotificationEmitter,
        *,
        shipment_mode: ShipmentMode = "atomic",
        order_number_prefix: str = "TR-",
        default_reject_reason: str = "Rejected by seller",
        default_cancel_reason: str = "Cancelled by buyer",
        notification_link: str | None = "/transfer-requests",
    ) -> None:
        if shipment_mode not in ("atomic", "per_line"):
            raise ValidationError("shipment_mode", "must be 'atomic' or 'per_line'", shipment_mode)
        self._client = client
        self._inventory = inventory
        self._ledger = ledger
        self._resolver = resolver
        self._branches = branches
        self._notifier = notifier
        self._shipment_mode = shipment_mode
        self._order_number_prefix = order_number_prefix
        self._default_reject_reason = default_reject_reason
        self._default_cancel_reason = default_cancel_reason
        self._notification_link = notification_link

    @property
    def shipment_mode(self) -> ShipmentMode:
        return self._shipment_mode

    # ------------------------------------------------------------------
    # Create and read
    # ------------------------------------------------------------------

    async def create_order(self, request: NewTransferOrder) -> TransferOrder:
        """
        Validate and store a new order in status "requested".

        Line items are resolved against the seller's tree so that later
        transitions address the seller's canonical ids.
        """
        if request.buyer_branch_id == request.seller_branch_id:
            raise ValidationError(
                "seller_branch_id", "must differ from buyer_branch_id", request.seller_branch_id
            )
        if not request.items:
            raise ValidationError("items", "order must contain at least one line")
        for item in request.items:
            require_segment("variant_id", item.variant_id)
            require_segment("lot_code", item.lot_code)
            if item.quantity <= 0:
                raise ValidationError("quantity", "must be greater than zero", item.quantity)

        buyer = await self._branches.get(request.buyer_branch_id)
        seller = await self._branches.get(request.seller_branch_id)

        items = [await self._resolve_item(seller.id, item) for item in request.items]
        now = datetime.now(UTC)
        order = TransferOrder(
            order_number=self._next_order_number(),
            buyer_branch_id=buyer.id,
            buyer_branch_name=buyer.name,
            seller_branch_id=seller.id,
            seller_branch_name=seller.name,
            items=items,
            status=OrderStatus.REQUESTED,
            total_amount=sum(item.total_price or 0.0 for item in items),
            notes=request.notes,
            created_at=now,
            updated_at=now,
        )

        async with self._client.transaction() as tx:
            order.id = await tx.add(ORDERS_COLLECTION, order.model_dump(exclude={"id"}))
            await self._ledger.record_event(
                LedgerEventType.ORDER_REQUESTED, order.branch_ids, order_id=order.id, tx=tx
            )

        logger.info(
            "transfer_requested",
            order_id=order.id,
            order_number=order.order_number,
            buyer=buyer.id,
            seller=seller.id,
            lines=len(items),
        )
        await self._notify(
            order.seller_branch_id,
            "New transfer request",
            f"{order.buyer_branch_name} requested {self._describe(order)}",
            order,
        )
        return order

    async def get_order(self, order_id: str) -> TransferOrder:
        require_segment("order_id", order_id)
        data = await self._client.get(_order_path(order_id))
        if data is None:
            raise NotFoundError("order", order_id)
        return TransferOrder(id=order_id, **data)

    async def list_orders_for_branch(
        self, branch_id: str, role: Literal["buyer", "seller"]
    ) -> list[TransferOrder]:
        """Orders where the branch plays the given role, newest first."""
        if role not in _ROLE_FIELDS:
            raise ValidationError("role", "must be 'buyer' or 'seller'", role)
        docs = await self._client.query(
            ORDERS_COLLECTION,
            [FieldFilter(_ROLE_FIELDS[role], "==", branch_id)],
            order_by="created_at",
            descending=True,
        )
        return [TransferOrder(id=d.id, **d.data) for d in docs]

    # ------------------------------------------------------------------
    # Status-only transitions
    # ------------------------------------------------------------------

    async def approve(self, order_id: str) -> TransferOrder:
        order = await self._transition(
            order_id,
            "approve",
            OrderStatus.APPROVED,
            (OrderStatus.REQUESTED,),
            LedgerEventType.ORDER_APPROVED,
        )
        if order is None:
            return await self.get_order(order_id)
        await self._notify(
            order.buyer_branch_id,
            "Transfer approved",
            f"{order.seller_branch_name} approved {self._describe(order)}",
            order,
        )
        return order

    async def reject(self, order_id: str, reason: str | None = None) -> TransferOrder:
        reason = (reason or "").strip() or self._default_reject_reason
        order = await self._transition(
            order_id,
            "reject",
            OrderStatus.REJECTED,
            _OPEN_STATUSES,
            LedgerEventType.ORDER_REJECTED,
            cancel_reason=reason,
            idempotent=False,
        )
        await self._notify(
            order.buyer_branch_id,
            "Transfer rejected",
            f"{order.seller_branch_name} rejected {self._describe(order)}: {reason}",
            order,
        )
        return order

    async def cancel(self, order_id: str, reason: str | None = None) -> TransferOrder:
        reason = (reason or "").strip() or self._default_cancel_reason
        order = await self._transition(
            order_id,
            "cancel",
            OrderStatus.CANCELLED,
            _OPEN_STATUSES,
            LedgerEventType.ORDER_CANCELLED,
            cancel_reason=reason,
            idempotent=False,
        )
        await self._notify(
            order.seller_branch_id,
            "Transfer cancelled",
            f"{order.buyer_branch_name} cancelled {self._describe(order)}: {reason}",
            order,
        )
        return order

    async def _transition(
        self,
        order_id: str,
        action: str,
        target: OrderStatus,
        allowed: tuple[OrderStatus, ...],
        event_type: LedgerEventType,
        *,
        cancel_reason: str | None = None,
        idempotent: bool = True,
    ) -> TransferOrder | None:
        """Apply a status change; None when the order is already in the target status."""
        async with self._client.transaction() as tx:
            order = await self._load(tx, order_id)
            if idempotent and order.status == target:
                logger.info("transfer_transition_noop", order_id=order_id, action=action)
                return None
            self._require_status(order, action, allowed)
            order = await self._apply_status(
                tx, order, target, event_type, cancel_reason=cancel_reason
            )
        logger.info("transfer_status_changed", order_id=order_id, action=action, status=target.value)
        return order

    # ------------------------------------------------------------------
    # Stock-moving transitions
    # ------------------------------------------------------------------

    async def ship(self, order_id: str) -> TransferOrder:
        """Decrement the seller's lots for every line and mark the order shipped."""
        order = await self.get_order(order_id)
        if order.status == OrderStatus.SHIPPED:
            logger.info("transfer_transition_noop", order_id=order_id, action="ship")
            return order
        self._require_status(order, "ship", (OrderStatus.APPROVED,))

        # Seller-side spelling may have drifted since the order was created
        lines: list[tuple[OrderItem, LotRef]] = []
        for item in order.items:
            brand_id, model_id = item.product_keys()
            ids = await self._resolver.resolve_canonical_ids(
                order.seller_branch_id, brand_id, model_id
            )
            ref = LotRef(
                order.seller_branch_id, ids.brand_id, ids.model_id, item.variant_id, item.lot_code
            )
            lines.append((item, ref))

        reason = f"To {order.buyer_branch_name or order.buyer_branch_id}"
        try:
            shipped = await self._move_lines(
                order_id,
                "ship",
                OrderStatus.SHIPPED,
                OrderStatus.APPROVED,
                LedgerEventType.ORDER_SHIPPED,
                lines,
                sign=-1,
                kind=MovementKind.TRANSFER_OUT,
                reason=reason,
            )
        except InsufficientStockError as e:
            logger.warning("transfer_insufficient_stock", order_id=order_id, **e.details)
            raise

        if shipped is None:
            return await self.get_order(order_id)
        logger.info("transfer_shipped", order_id=order_id, lines=len(lines), mode=self._shipment_mode)
        await self._notify(
            shipped.buyer_branch_id,
            "Transfer shipped",
            f"{shipped.seller_branch_name} shipped {self._describe(shipped)}",
            shipped,
        )
        return shipped

    async def deliver(self, order_id: str) -> TransferOrder:
        """Older name for ship()."""
        return await self.ship(order_id)

    async def receive(self, order_id: str) -> TransferOrder:
        """Increment the buyer's lots for every line and mark the order received."""
        order = await self.get_order(order_id)
        if order.status == OrderStatus.RECEIVED:
            logger.info("transfer_transition_noop", order_id=order_id, action="receive")
            return order
        self._require_status(order, "receive", (OrderStatus.SHIPPED,))

        lines = [(item, await self._ensure_buyer_lot(order, item)) for item in order.items]

        reason = f"From {order.seller_branch_name or order.seller_branch_id}"
        received = await self._move_lines(
            order_id,
            "receive",
            OrderStatus.RECEIVED,
            OrderStatus.SHIPPED,
            LedgerEventType.ORDER_RECEIVED,
            lines,
            sign=1,
            kind=MovementKind.TRANSFER_IN,
            reason=reason,
        )
        if received is None:
            return await self.get_order(order_id)
        logger.info("transfer_received", order_id=order_id, lines=len(lines))
        await self._notify(
            received.seller_branch_id,
            "Transfer received",
            f"{received.buyer_branch_name} received {self._describe(received)}",
            received,
        )
        return received

    async def _move_lines(
        self,
        order_id: str,
        action: str,
        target: OrderStatus,
        expected: OrderStatus,
        event_type: LedgerEventType,
        lines: list[tuple[OrderItem, LotRef]],
        *,
        sign: int,
        kind: MovementKind,
        reason: str,
    ) -> TransferOrder | None:
        """Apply every line and then the status change; None if another caller got there first."""

        async def apply_line(tx: ITransaction, item: OrderItem, ref: LotRef) -> None:
            await self._inventory.move_stock(
                tx,
                ref,
                sign * abs(item.quantity),
                kind,
                reason=reason,
                order_id=order_id,
                require_available=sign < 0,
                product=item.product_name or item.product_id,
                specification=item.specification or item.variant_id,
            )

        if self._shipment_mode == "atomic":
            async with self._client.transaction() as tx:
                order = await self._load(tx, order_id)
                if order.status == target:
                    return None
                self._require_status(order, action, (expected,))
                for item, ref in lines:
                    await apply_line(tx, item, ref)
                return await self._apply_status(tx, order, target, event_type)

        for item, ref in lines:
            async with self._client.transaction() as tx:
                order = await self._load(tx, order_id)
                if order.status == target:
                    return None
                self._require_status(order, action, (expected,))
                await apply_line(tx, item, ref)

        async with self._client.transaction() as tx:
            order = await self._load(tx, order_id)
            if order.status == target:
                return None
            self._require_status(order, action, (expected,))
            return await self._apply_status(tx, order, target, event_type)

    async def _ensure_buyer_lot(self, order: TransferOrder, item: OrderItem) -> LotRef:
        """Materialize the buyer-side brand/model/variant/lot path for one line."""
        buyer = order.buyer_branch_id
        brand_id, model_id = item.product_keys()
        ids = await self._resolver.resolve_canonical_ids(buyer, brand_id, model_id)

        # Existing buyer nodes keep their own display names
        if await self._inventory.get_brand(buyer, ids.brand_id) is None:
            await self._inventory.ensure_brand(buyer, ids.brand_id, item.brand_name or brand_id)
        if await self._inventory.get_model(buyer, ids.brand_id, ids.model_id) is None:
            await self._inventory.ensure_model(
                buyer, ids.brand_id, ids.model_id, item.model_name or model_id
            )
        # The unit price seeds the list price of a new variant only
        existing = await self._inventory.get_variant(
            buyer, ids.brand_id, ids.model_id, item.variant_id
        )
        if existing is None:
            await self._inventory.ensure_variant(
                buyer,
                ids.brand_id,
                ids.model_id,
                item.variant_id,
                item.specification,
                list_price=item.unit_price,
            )

        ref = LotRef(buyer, ids.brand_id, ids.model_id, item.variant_id, item.lot_code)
        await self._inventory.ensure_lot(ref)
        return ref

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _resolve_item(self, seller_id: str, item: OrderItem) -> OrderItem:
        brand_id, model_id = item.product_keys()
        ids = await self._resolver.resolve_canonical_ids(seller_id, brand_id, model_id)
        return item.model_copy(
            update={
                "brand_id": ids.brand_id,
                "model_id": ids.model_id,
                "product_id": f"{ids.brand_id}-{ids.model_id}",
            }
        )

    async def _load(self, tx: ITransaction, order_id: str) -> TransferOrder:
        require_segment("order_id", order_id)
        data = await tx.get(_order_path(order_id))
        if data is None:
            raise NotFoundError("order", order_id)
        return TransferOrder(id=order_id, **data)

    @staticmethod
    def _require_status(
        order: TransferOrder, action: str, allowed: tuple[OrderStatus, ...]
    ) -> None:
        if order.status not in allowed:
            logger.warning(
                "transfer_invalid_transition",
                order_id=order.id,
                action=action,
                status=order.status.value,
            )
            raise InvalidTransitionError(order.id or "", action, order.status.value)

    async def _apply_status(
        self,
        tx: ITransaction,
        order: TransferOrder,
        status: OrderStatus,
        event_type: LedgerEventType,
        *,
        cancel_reason: str | None = None,
    ) -> TransferOrder:
        changes: dict = {"status": status, "updated_at": datetime.now(UTC)}
        if cancel_reason is not None:
            changes["cancel_reason"] = cancel_reason
        await tx.update(_order_path(order.id), changes)
        await self._ledger.record_event(
            event_type, order.branch_ids, order_id=order.id, reason=cancel_reason, tx=tx
        )
        return order.model_copy(update=changes)

    async def _notify(self, branch_id: str, title: str, message: str, order: TransferOrder) -> None:
        await self._notifier.create(
            branch_id,
            title,
            message,
            link=self._notification_link,
            order_id=order.id,
        )

    def _next_order_number(self) -> str:
        return f"{self._order_number_prefix}{str(int(time.time() * 1000))[-6:]}"

    @staticmethod
    def _describe(order: TransferOrder) -> str:
        units = sum(item.quantity for item in order.items)
        return f"order {order.order_number or order.id} ({units} units)"
