"""Integration tests for grouped inventory views and summaries."""

import pytest

from stocklink.core.entities import Branch, LotRef
from stocklink.core.services import InventoryHierarchyStore


async def _stock(store: InventoryHierarchyStore, branch: str, brand: tuple, model: tuple,
                 variant: tuple, lot: str, qty: int):
    await store.ensure_brand(branch, *brand)
    await store.ensure_model(branch, brand[0], *model)
    await store.ensure_variant(branch, brand[0], model[0], *variant)
    ref = LotRef(branch, brand[0], model[0], variant[0], lot)
    await store.ensure_lot(ref, initial_qty=qty)
    return ref


MICHELIN = ("MICHELIN", "Michelin")
PS4 = ("pilot-sport-4", "Pilot Sport 4")
V16 = ("205-55r16", "205/55R16 (94V)", 3900.0)
V17 = ("225-45r17", "225/45R17 (94Y)", 4800.0)
BFG = ("BFG", "BFGoodrich")
KO2 = ("ko2", "All-Terrain KO2")
VKO2 = ("265-65r17", "265/65R17 (120S)", 6500.0)


@pytest.fixture
async def stocked(store: InventoryHierarchyStore):
    await _stock(store, "B1", MICHELIN, PS4, V16, "2324", 10)
    await _stock(store, "B1", MICHELIN, PS4, V16, "0124", 0)
    await _stock(store, "B1", MICHELIN, PS4, V17, "1124", 4)
    await _stock(store, "B1", BFG, KO2, VKO2, "0923", 0)
    await _stock(store, "B2", MICHELIN, PS4, V16, "2324", 3)
    return store


@pytest.mark.asyncio
class TestFetchInventory:
    async def test_branch_view_drops_empty_leaves(self, stocked: InventoryHierarchyStore):
        products = await stocked.fetch_inventory_for_branch("B1", "Central")

        assert [p.id for p in products] == ["MICHELIN-pilot-sport-4"]
        product = products[0]
        assert product.name == "Michelin Pilot Sport 4"
        branch = product.branches[0]
        assert branch.branch_name == "Central"
        assert [s.specification for s in branch.sizes] == ["205/55R16 (94V)", "225/45R17 (94Y)"]
        assert [lot.lot_code for lot in branch.sizes[0].lots] == ["2324"]
        assert branch.sizes[0].lots[0].list_price == 3900.0
        assert product.total_qty == 14

    async def test_include_empty(self, stocked: InventoryHierarchyStore):
        products = await stocked.fetch_inventory_for_branch("B1", include_empty=True)

        assert sorted(p.id for p in products) == ["BFG-ko2", "MICHELIN-pilot-sport-4"]
        michelin = next(p for p in products if p.brand_id == "MICHELIN")
        assert [lot.lot_code for lot in michelin.branches[0].sizes[0].lots] == ["0124", "2324"]
        assert michelin.branches[0].branch_name == "B1"

    async def test_merge_across_branches_without_summing(self, stocked: InventoryHierarchyStore):
        branches = [Branch(id="B1", name="Central"), Branch(id="B2", name="Riverside")]

        products = await stocked.fetch_inventory_for_branches(branches)

        assert len(products) == 1
        product = products[0]
        assert [b.branch_id for b in product.branches] == ["B1", "B2"]
        assert product.branches[1].sizes[0].lots[0].qty == 3
        assert product.total_qty == 17

    async def test_list_lots_joins_variant(self, stocked: InventoryHierarchyStore):
        lots = await stocked.list_lots("B1", "MICHELIN", "pilot-sport-4")
        assert {(v.variant_id, v.lot_code, v.qty) for v in lots} == {
            ("205-55r16", "0124", 0),
            ("205-55r16", "2324", 10),
            ("225-45r17", "1124", 4),
        }
        assert all(v.specification for v in lots)

        only = await stocked.list_lots("B1", "MICHELIN", "pilot-sport-4", "225-45r17")
        assert [(v.lot_code, v.list_price) for v in only] == [("1124", 4800.0)]

        assert await stocked.list_lots("B1", "MICHELIN", "pilot-sport-4", "missing") == []

    async def test_list_variants(self, stocked: InventoryHierarchyStore):
        variants = await stocked.list_variants("B1", "MICHELIN", "pilot-sport-4")
        assert [v.variant_id for v in variants] == ["205-55r16", "225-45r17"]


@pytest.mark.asyncio
class TestSummaries:
    async def test_summarize_branch(self, stocked: InventoryHierarchyStore):
        counts = await stocked.summarize_branch("B1")
        assert counts.brands == 2
        assert counts.models == 2
        assert counts.variants == 3
        assert counts.lots == 4
        assert counts.total_qty == 14

    async def test_summarize_products_sorted(self, stocked: InventoryHierarchyStore):
        rows = await stocked.summarize_products("B1")
        assert [(r.brand, r.model, r.total_qty) for r in rows] == [
            ("Michelin", "Pilot Sport 4", 14),
            ("BFGoodrich", "All-Terrain KO2", 0),
        ]
        assert rows[0].variants == 2
        assert rows[0].lots == 3

    async def test_empty_branch(self, store: InventoryHierarchyStore):
        counts = await store.summarize_branch("B9")
        assert counts.total_qty == 0
        assert await store.fetch_inventory_for_branch("B9") == []
