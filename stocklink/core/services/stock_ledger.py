"""
Append-only stock ledger.

Two sub-ledgers share the ``stockMovements`` collection: quantity
movements (one row per non-zero lot change, carrying a kind) and workflow
events (order.* rows without a kind, tagged to every branch concerned).
Rows are never updated or deleted.
"""

from datetime import datetime

from stocklink.config import get_logger
from stocklink.core.entities.inventory import LotRef
from stocklink.core.entities.ledger import (
    LedgerEventType,
    MovementKind,
    StockMovement,
    event_type_for,
)
from stocklink.core.interfaces.document_client import (
    FieldFilter,
    IDocumentClient,
    ITransaction,
    StoredDocument,
)

logger = get_logger(__name__)

MOVEMENTS_COLLECTION = "stockMovements"


class StockLedger:
    """Writes and reads ledger rows through the injected document client."""

    def __init__(self, client: IDocumentClient) -> None:
        self._client = client

    async def record_movement(
        self,
        ref: LotRef,
        kind: MovementKind,
        qty_change: int,
        *,
        reason: str | None = None,
        order_id: str | None = None,
        tx: ITransaction | None = None,
    ) -> StockMovement:
        """Append a quantity movement for one lot."""
        movement = StockMovement(
            branch_id=ref.branch_id,
            branch_ids=[ref.branch_id],
            kind=kind,
            event_type=event_type_for(kind),
            qty_change=qty_change,
            brand_id=ref.brand_id,
            model_id=ref.model_id,
            variant_id=ref.variant_id,
            lot_code=ref.lot_code,
            order_id=order_id,
            reason=reason,
        )
        movement = await self._append(movement, tx)
        logger.info(
            "stock_movement_recorded",
            movement_id=movement.id,
            lot=str(ref),
            kind=kind.value,
            qty=qty_change,
            order_id=order_id,
        )
        return movement

    async def record_event(
        self,
        event_type: LedgerEventType,
        branch_ids: list[str],
        *,
        order_id: str | None = None,
        reason: str | None = None,
        tx: ITransaction | None = None,
    ) -> StockMovement:
        """Append a workflow event tagged to every listed branch."""
        event = StockMovement(
            branch_id=branch_ids[0],
            branch_ids=list(dict.fromkeys(branch_ids)),
            event_type=event_type,
            order_id=order_id,
            reason=reason,
        )
        event = await self._append(event, tx)
        logger.info(
            "workflow_event_recorded",
            event_id=event.id,
            event_type=event_type.value,
            order_id=order_id,
        )
        return event

    async def _append(self, row: StockMovement, tx: ITransaction | None) -> StockMovement:
        data = row.model_dump(exclude={"id"})
        if tx is not None:
            row.id = await tx.add(MOVEMENTS_COLLECTION, data)
        else:
            row.id = await self._client.add(MOVEMENTS_COLLECTION, data)
        return row

    async def list_movements(
        self,
        branch_id: str,
        since: datetime | None = None,
        until: datetime | None = None,
        kind: MovementKind | None = None,
        limit: int | None = None,
    ) -> list[StockMovement]:
        """Quantity movements of a branch in [since, until), newest first."""
        filters = [FieldFilter("branch_ids", "array_contains", branch_id)]
        if kind is not None:
            filters.append(FieldFilter("kind", "==", kind))
        else:
            filters.append(FieldFilter("kind", "!=", None))
        if since is not None:
            filters.append(FieldFilter("created_at", ">=", since))
        if until is not None:
            filters.append(FieldFilter("created_at", "<", until))
        docs = await self._client.query(
            MOVEMENTS_COLLECTION, filters, order_by="created_at", descending=True, limit=limit
        )
        return [self._doc_to_movement(d) for d in docs]

    async def list_events(
        self,
        branch_id: str,
        order_id: str | None = None,
        limit: int | None = None,
    ) -> list[StockMovement]:
        """Workflow events visible to a branch, newest first."""
        filters = [
            FieldFilter("branch_ids", "array_contains", branch_id),
            FieldFilter("kind", "==", None),
        ]
        if order_id is not None:
            filters.append(FieldFilter("order_id", "==", order_id))
        docs = await self._client.query(
            MOVEMENTS_COLLECTION, filters, order_by="created_at", descending=True, limit=limit
        )
        return [self._doc_to_movement(d) for d in docs]

    async def list_for_order(self, order_id: str) -> list[StockMovement]:
        """Every row linked to an order, oldest first."""
        docs = await self._client.query(
            MOVEMENTS_COLLECTION,
            [FieldFilter("order_id", "==", order_id)],
            order_by="created_at",
        )
        return [self._doc_to_movement(d) for d in docs]

    async def list_for_lot(self, ref: LotRef) -> list[StockMovement]:
        """Quantity movements recorded against one lot, oldest first."""
        docs = await self._client.query(
            MOVEMENTS_COLLECTION,
            [
                FieldFilter("branch_id", "==", ref.branch_id),
                FieldFilter("brand_id", "==", ref.brand_id),
                FieldFilter("model_id", "==", ref.model_id),
                FieldFilter("variant_id", "==", ref.variant_id),
                FieldFilter("lot_code", "==", ref.lot_code),
            ],
            order_by="created_at",
        )
        return [self._doc_to_movement(d) for d in docs]

    async def net_change(self, ref: LotRef) -> int:
        """Sum of all deltas recorded against a lot."""
        return sum(m.qty_change for m in await self.list_for_lot(ref))

    @staticmethod
    def _doc_to_movement(doc: StoredDocument) -> StockMovement:
        return StockMovement(id=doc.id, **doc.data)
