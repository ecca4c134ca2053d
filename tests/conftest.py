"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest

from stocklink.core.entities import Branch, LotRef
from stocklink.core.services import (
    BranchDirectory,
    CanonicalResolver,
    InventoryHierarchyStore,
    NotificationEmitter,
    StockLedger,
    TransferOrderService,
)
from stocklink.infrastructure.notifications import DocumentNotificationSink
from stocklink.infrastructure.storage.sqlite import (
    ConnectionPool,
    SQLiteDocumentClient,
    initialize_database,
)


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    """Create a temporary database path."""
    return tmp_path / "test.db"


@pytest.fixture
async def pool(temp_db_path: Path) -> AsyncGenerator[ConnectionPool, None]:
    """Migrated database behind a small connection pool."""
    await initialize_database(temp_db_path)
    pool = ConnectionPool(temp_db_path, pool_size=3, busy_timeout=5000)
    await pool.initialize()
    yield pool
    await pool.close()


@pytest.fixture
def client(pool: ConnectionPool) -> SQLiteDocumentClient:
    return SQLiteDocumentClient(pool)


@pytest.fixture
def ledger(client: SQLiteDocumentClient) -> StockLedger:
    return StockLedger(client)


@pytest.fixture
def store(client: SQLiteDocumentClient, ledger: StockLedger) -> InventoryHierarchyStore:
    return InventoryHierarchyStore(client, ledger)


@pytest.fixture
def resolver(store: InventoryHierarchyStore) -> CanonicalResolver:
    return CanonicalResolver(store)


@pytest.fixture
def directory(client: SQLiteDocumentClient) -> BranchDirectory:
    return BranchDirectory(client)


@pytest.fixture
def sink(client: SQLiteDocumentClient) -> DocumentNotificationSink:
    return DocumentNotificationSink(client)


@pytest.fixture
def emitter(sink: DocumentNotificationSink) -> NotificationEmitter:
    return NotificationEmitter(sink)


@pytest.fixture
def make_service(client, store, ledger, resolver, directory, emitter):
    """Factory for transfer services with a chosen shipment mode."""

    def _make(shipment_mode: str = "atomic") -> TransferOrderService:
        return TransferOrderService(
            client,
            store,
            ledger,
            resolver,
            directory,
            emitter,
            shipment_mode=shipment_mode,
        )

    return _make


@pytest.fixture
def service(make_service) -> TransferOrderService:
    return make_service()


@pytest.fixture
async def branches(directory: BranchDirectory) -> tuple[Branch, Branch]:
    """Seller B1 and buyer B2."""
    b1 = await directory.register(Branch(id="B1", name="Central"))
    b2 = await directory.register(Branch(id="B2", name="Riverside"))
    return b1, b2


@pytest.fixture
def lot_ref() -> LotRef:
    """Lot 2324 of Michelin Pilot Sport 4 205/55R16 at B1."""
    return LotRef("B1", "MICHELIN", "pilot-sport-4", "205-55r16", "2324")


@pytest.fixture
async def seeded_lot(store: InventoryHierarchyStore, lot_ref: LotRef, branches) -> LotRef:
    """B1 holds 10 units of lot 2324."""
    await store.ensure_brand("B1", "MICHELIN", "Michelin")
    await store.ensure_model("B1", "MICHELIN", "pilot-sport-4", "Pilot Sport 4")
    await store.ensure_variant(
        "B1", "MICHELIN", "pilot-sport-4", "205-55r16", "205/55R16 (94V)", list_price=3900.0
    )
    await store.ensure_lot(lot_ref, initial_qty=10)
    return lot_ref
