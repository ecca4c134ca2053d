"""End-to-end transfer order flow on a real SQLite database."""

import asyncio

import pytest

from stocklink.core.entities import (
    LedgerEventType,
    LotRef,
    MovementKind,
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
from stocklink.core.services import TransferOrderService

BUYER_REF = LotRef("B2", "MICHELIN", "pilot-sport-4", "205-55r16", "2324")


def _item(qty: int, lot_code: str = "2324", **overrides) -> OrderItem:
    fields = dict(
        brand_id="MICHELIN",
        brand_name="Michelin",
        model_id="pilot-sport-4",
        model_name="Pilot Sport 4",
        variant_id="205-55r16",
        specification="205/55R16 (94V)",
        lot_code=lot_code,
        quantity=qty,
        unit_price=3900.0,
    )
    fields.update(overrides)
    return OrderItem(**fields)


def _request(*items: OrderItem) -> NewTransferOrder:
    return NewTransferOrder(buyer_branch_id="B2", seller_branch_id="B1", items=list(items))


@pytest.mark.asyncio
class TestEndToEnd:
    async def test_request_approve_ship_receive(
        self, service: TransferOrderService, store, ledger, sink, seeded_lot
    ):
        order = await service.create_order(_request(_item(4)))
        assert order.status is OrderStatus.REQUESTED
        assert order.order_number.startswith("TR-")
        assert order.buyer_branch_name == "Riverside"
        assert order.seller_branch_name == "Central"
        assert order.total_amount == 4 * 3900.0

        approved = await service.approve(order.id)
        assert approved.status is OrderStatus.APPROVED

        before_ship = len(await ledger.list_for_order(order.id))
        shipped = await service.ship(order.id)
        assert shipped.status is OrderStatus.SHIPPED
        assert (await store.get_lot(seeded_lot)).qty == 6

        ship_rows = (await ledger.list_for_order(order.id))[before_ship:]
        assert len(ship_rows) == 2
        out_row = next(r for r in ship_rows if r.kind is not None)
        event_row = next(r for r in ship_rows if r.kind is None)
        assert out_row.kind is MovementKind.TRANSFER_OUT
        assert out_row.qty_change == -4
        assert out_row.branch_id == "B1"
        assert out_row.reason == "To Riverside"
        assert event_row.event_type is LedgerEventType.ORDER_SHIPPED
        assert sorted(event_row.branch_ids) == ["B1", "B2"]

        assert await store.get_brand("B2", "MICHELIN") is None
        before_receive = len(await ledger.list_for_order(order.id))
        received = await service.receive(order.id)
        assert received.status is OrderStatus.RECEIVED

        assert (await store.get_brand("B2", "MICHELIN")).brand_name == "Michelin"
        assert (await store.get_model("B2", "MICHELIN", "pilot-sport-4")).model_name == "Pilot Sport 4"
        variant = await store.get_variant("B2", "MICHELIN", "pilot-sport-4", "205-55r16")
        assert variant.specification == "205/55R16 (94V)"
        assert variant.list_price == 3900.0
        assert (await store.get_lot(BUYER_REF)).qty == 4

        receive_rows = (await ledger.list_for_order(order.id))[before_receive:]
        assert len(receive_rows) == 2
        in_row = next(r for r in receive_rows if r.kind is not None)
        assert in_row.kind is MovementKind.TRANSFER_IN
        assert in_row.qty_change == 4
        assert in_row.branch_id == "B2"
        assert in_row.reason == "From Central"
        assert any(r.event_type is LedgerEventType.ORDER_RECEIVED for r in receive_rows)

        assert (await service.get_order(order.id)).status is OrderStatus.RECEIVED
        assert await ledger.net_change(seeded_lot) == 6
        assert await ledger.net_change(BUYER_REF) == 4

        seller_titles = [n.title for n in await sink.list_for_branch("B1")]
        buyer_titles = [n.title for n in await sink.list_for_branch("B2")]
        assert seller_titles == ["Transfer received", "New transfer request"]
        assert buyer_titles == ["Transfer shipped", "Transfer approved"]

    async def test_workflow_events_visible_to_both_branches(self, service, ledger, seeded_lot):
        order = await service.create_order(_request(_item(1)))
        await service.approve(order.id)

        for branch in ("B1", "B2"):
            events = await ledger.list_events(branch, order_id=order.id)
            assert [e.event_type for e in events] == [
                LedgerEventType.ORDER_APPROVED,
                LedgerEventType.ORDER_REQUESTED,
            ]

    async def test_receive_into_existing_buyer_lot(self, service, store, seeded_lot):
        await store.ensure_brand("B2", "MICHELIN", "Michelin")
        await store.ensure_model("B2", "MICHELIN", "pilot-sport-4", "Pilot Sport 4")
        await store.ensure_variant(
            "B2", "MICHELIN", "pilot-sport-4", "205-55r16", "205/55R16 (94V)", list_price=4100.0
        )
        await store.ensure_lot(BUYER_REF, initial_qty=2)

        order = await service.create_order(_request(_item(3)))
        await service.approve(order.id)
        await service.ship(order.id)
        await service.receive(order.id)

        assert (await store.get_lot(BUYER_REF)).qty == 5
        variant = await store.get_variant("B2", "MICHELIN", "pilot-sport-4", "205-55r16")
        assert variant.list_price == 4100.0

    async def test_buyer_spelling_resolved(self, service, store, seeded_lot):
        await store.ensure_brand("B2", "michelin", "Michelin")

        order = await service.create_order(_request(_item(2)))
        await service.approve(order.id)
        await service.ship(order.id)
        await service.receive(order.id)

        ref = LotRef("B2", "michelin", "pilot-sport-4", "205-55r16", "2324")
        assert (await store.get_lot(ref)).qty == 2
        assert await store.get_brand("B2", "MICHELIN") is None

    async def test_receive_keeps_buyer_display_names(self, service, store, seeded_lot):
        await store.ensure_brand("B2", "michelin", "Michelin Tyres (local)")
        await store.ensure_model("B2", "michelin", "pilot-sport-4", "PS4 local label")

        order = await service.create_order(_request(_item(2)))
        await service.approve(order.id)
        await service.ship(order.id)
        await service.receive(order.id)

        brand = await store.get_brand("B2", "michelin")
        model = await store.get_model("B2", "michelin", "pilot-sport-4")
        assert brand.brand_name == "Michelin Tyres (local)"
        assert model.model_name == "PS4 local label"
        ref = LotRef("B2", "michelin", "pilot-sport-4", "205-55r16", "2324")
        assert (await store.get_lot(ref)).qty == 2

    async def test_deliver_is_ship(self, service, store, seeded_lot):
        order = await service.create_order(_request(_item(4)))
        await service.approve(order.id)

        delivered = await service.deliver(order.id)

        assert delivered.status is OrderStatus.SHIPPED
        assert (await store.get_lot(seeded_lot)).qty == 6


@pytest.mark.asyncio
class TestShipmentStock:
    async def test_insufficient_stock_changes_nothing(self, service, store, ledger, seeded_lot):
        await store.set_quantity(seeded_lot, 3)
        order = await service.create_order(_request(_item(5)))
        await service.approve(order.id)
        rows_before = len(await ledger.list_for_lot(seeded_lot))

        with pytest.raises(InsufficientStockError) as exc:
            await service.ship(order.id)

        assert exc.value.details["available"] == 3
        assert exc.value.details["requested"] == 5
        assert exc.value.details["lot_code"] == "2324"
        assert exc.value.details["branch_id"] == "B1"
        assert exc.value.details["specification"] == "205/55R16 (94V)"
        assert (await store.get_lot(seeded_lot)).qty == 3
        assert (await service.get_order(order.id)).status is OrderStatus.APPROVED
        assert len(await ledger.list_for_lot(seeded_lot)) == rows_before

    async def test_atomic_mode_rolls_back_earlier_lines(self, service, store, seeded_lot):
        other = LotRef("B1", "MICHELIN", "pilot-sport-4", "205-55r16", "0125")
        await store.ensure_lot(other, initial_qty=1)
        order = await service.create_order(_request(_item(4), _item(2, lot_code="0125")))
        await service.approve(order.id)

        with pytest.raises(InsufficientStockError):
            await service.ship(order.id)

        assert (await store.get_lot(seeded_lot)).qty == 10
        assert (await store.get_lot(other)).qty == 1

    async def test_per_line_mode_keeps_earlier_lines(self, make_service, store, ledger, seeded_lot):
        service = make_service("per_line")
        other = LotRef("B1", "MICHELIN", "pilot-sport-4", "205-55r16", "0125")
        await store.ensure_lot(other, initial_qty=1)
        order = await service.create_order(_request(_item(4), _item(2, lot_code="0125")))
        await service.approve(order.id)

        with pytest.raises(InsufficientStockError):
            await service.ship(order.id)

        assert (await store.get_lot(seeded_lot)).qty == 6
        assert (await store.get_lot(other)).qty == 1
        assert (await service.get_order(order.id)).status is OrderStatus.APPROVED
        assert await ledger.net_change(seeded_lot) == 6

    async def test_per_line_mode_full_flow(self, make_service, store, seeded_lot):
        service = make_service("per_line")
        order = await service.create_order(_request(_item(4)))
        await service.approve(order.id)
        await service.ship(order.id)
        await service.receive(order.id)

        assert (await store.get_lot(seeded_lot)).qty == 6
        assert (await store.get_lot(BUYER_REF)).qty == 4

    @pytest.mark.parametrize("mode", ["atomic", "per_line"])
    async def test_concurrent_shipments_cannot_oversell(self, make_service, store, seeded_lot, mode):
        service = make_service(mode)
        first = await service.create_order(_request(_item(6)))
        second = await service.create_order(_request(_item(6)))
        await service.approve(first.id)
        await service.approve(second.id)

        results = await asyncio.gather(
            service.ship(first.id), service.ship(second.id), return_exceptions=True
        )

        failures = [r for r in results if isinstance(r, InsufficientStockError)]
        shipped = [r for r in results if isinstance(r, TransferOrder)]
        assert len(failures) == 1
        assert len(shipped) == 1
        assert shipped[0].status is OrderStatus.SHIPPED
        assert (await store.get_lot(seeded_lot)).qty == 4

    async def test_missing_seller_lot(self, service, seeded_lot):
        order = await service.create_order(_request(_item(1, lot_code="9999")))
        await service.approve(order.id)

        with pytest.raises(NotFoundError):
            await service.ship(order.id)


@pytest.mark.asyncio
class TestIdempotenceAndGuards:
    async def test_repeat_receive_is_noop(self, service, store, ledger, seeded_lot):
        order = await service.create_order(_request(_item(4)))
        await service.approve(order.id)
        await service.ship(order.id)
        await service.receive(order.id)
        rows = len(await ledger.list_for_order(order.id))

        again = await service.receive(order.id)

        assert again.status is OrderStatus.RECEIVED
        assert len(await ledger.list_for_order(order.id)) == rows
        assert (await store.get_lot(BUYER_REF)).qty == 4

    async def test_repeat_ship_is_noop(self, service, store, ledger, seeded_lot):
        order = await service.create_order(_request(_item(4)))
        await service.approve(order.id)
        await service.ship(order.id)
        rows = len(await ledger.list_for_order(order.id))

        await service.ship(order.id)

        assert len(await ledger.list_for_order(order.id)) == rows
        assert (await store.get_lot(seeded_lot)).qty == 6

    async def test_repeat_approve_is_noop(self, service, ledger, seeded_lot):
        order = await service.create_order(_request(_item(1)))
        await service.approve(order.id)
        rows = len(await ledger.list_for_order(order.id))

        again = await service.approve(order.id)

        assert again.status is OrderStatus.APPROVED
        assert len(await ledger.list_for_order(order.id)) == rows

    async def test_reject_default_reason_then_invalid(self, service, seeded_lot):
        order = await service.create_order(_request(_item(1)))

        rejected = await service.reject(order.id)

        assert rejected.status is OrderStatus.REJECTED
        assert (await service.get_order(order.id)).cancel_reason == "Rejected by seller"
        with pytest.raises(InvalidTransitionError) as exc:
            await service.reject(order.id)
        assert exc.value.details["current_status"] == "rejected"
        with pytest.raises(InvalidTransitionError):
            await service.approve(order.id)

    async def test_reject_with_reason(self, service, sink, seeded_lot):
        order = await service.create_order(_request(_item(1)))
        await service.approve(order.id)

        await service.reject(order.id, "Out of season")

        assert (await service.get_order(order.id)).cancel_reason == "Out of season"
        latest = (await sink.list_for_branch("B2"))[0]
        assert latest.title == "Transfer rejected"
        assert latest.order_id == order.id

    async def test_cancel(self, service, ledger, sink, seeded_lot):
        order = await service.create_order(_request(_item(1)))

        cancelled = await service.cancel(order.id)

        assert cancelled.status is OrderStatus.CANCELLED
        assert cancelled.cancel_reason == "Cancelled by buyer"
        events = await ledger.list_events("B1", order_id=order.id)
        assert events[0].event_type is LedgerEventType.ORDER_CANCELLED
        assert (await sink.list_for_branch("B1"))[0].title == "Transfer cancelled"
        with pytest.raises(InvalidTransitionError):
            await service.ship(order.id)

    async def test_cannot_ship_before_approval(self, service, store, seeded_lot):
        order = await service.create_order(_request(_item(1)))
        with pytest.raises(InvalidTransitionError):
            await service.ship(order.id)
        assert (await store.get_lot(seeded_lot)).qty == 10

    async def test_cannot_receive_before_shipping(self, service, store, seeded_lot):
        order = await service.create_order(_request(_item(1)))
        await service.approve(order.id)
        with pytest.raises(InvalidTransitionError):
            await service.receive(order.id)
        assert await store.get_brand("B2", "MICHELIN") is None

    async def test_cannot_cancel_after_shipping(self, service, seeded_lot):
        order = await service.create_order(_request(_item(1)))
        await service.approve(order.id)
        await service.ship(order.id)
        with pytest.raises(InvalidTransitionError):
            await service.cancel(order.id)

    async def test_unknown_order(self, service, branches):
        with pytest.raises(NotFoundError):
            await service.approve("missing")


@pytest.mark.asyncio
class TestLegacyRecords:
    async def test_confirmed_order_can_ship(self, service, client, store, seeded_lot):
        order = await service.create_order(_request(_item(4)))
        await client.update(f"orders/{order.id}", {"status": "confirmed"})

        shipped = await service.ship(order.id)

        assert shipped.status is OrderStatus.SHIPPED
        assert (await store.get_lot(seeded_lot)).qty == 6

    async def test_delivered_order_ship_is_noop(self, service, client, store, seeded_lot):
        order = await service.create_order(_request(_item(4)))
        await client.update(f"orders/{order.id}", {"status": "delivered"})

        result = await service.ship(order.id)

        assert result.status is OrderStatus.SHIPPED
        assert (await store.get_lot(seeded_lot)).qty == 10

    async def test_legacy_product_id_item(self, service, store, seeded_lot):
        item = OrderItem(
            product_id="MICHELIN-pilot-sport-4",
            variant_id="205-55r16",
            specification="205/55R16 (94V)",
            lot_code="2324",
            quantity=2,
        )
        order = await service.create_order(_request(item))
        await service.approve(order.id)
        await service.ship(order.id)
        await service.receive(order.id)

        assert (await store.get_lot(seeded_lot)).qty == 8
        assert (await store.get_lot(BUYER_REF)).qty == 2


@pytest.mark.asyncio
class TestCreateValidation:
    async def test_same_branch_rejected(self, service, branches):
        with pytest.raises(ValidationError):
            await service.create_order(
                NewTransferOrder(buyer_branch_id="B1", seller_branch_id="B1", items=[_item(1)])
            )

    async def test_empty_items_rejected(self, service, branches):
        with pytest.raises(ValidationError):
            await service.create_order(_request())

    async def test_non_positive_quantity_rejected(self, service, branches):
        with pytest.raises(ValidationError):
            await service.create_order(_request(_item(0)))

    async def test_unknown_branch(self, service, branches):
        with pytest.raises(NotFoundError):
            await service.create_order(
                NewTransferOrder(buyer_branch_id="B9", seller_branch_id="B1", items=[_item(1)])
            )

    async def test_list_orders_for_branch(self, service, seeded_lot):
        first = await service.create_order(_request(_item(1)))
        second = await service.create_order(_request(_item(2)))

        as_buyer = await service.list_orders_for_branch("B2", "buyer")
        as_seller = await service.list_orders_for_branch("B1", "seller")

        assert [o.id for o in as_buyer] == [second.id, first.id]
        assert [o.id for o in as_seller] == [second.id, first.id]
        assert await service.list_orders_for_branch("B1", "buyer") == []
        with pytest.raises(ValidationError):
            await service.list_orders_for_branch("B1", "courier")

    async def test_notification_failure_does_not_block(self, client, store, ledger, resolver,
                                                       directory, seeded_lot):
        from unittest.mock import AsyncMock

        from stocklink.core.services import NotificationEmitter

        broken_sink = AsyncMock()
        broken_sink.emit.side_effect = RuntimeError("channel down")
        service = TransferOrderService(
            client, store, ledger, resolver, directory, NotificationEmitter(broken_sink)
        )

        order = await service.create_order(_request(_item(1)))
        approved = await service.approve(order.id)

        assert approved.status is OrderStatus.APPROVED
        assert broken_sink.emit.await_count == 2
