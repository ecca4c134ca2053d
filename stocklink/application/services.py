"""
Service factory functions for dependency injection.

Wires the SQLite storage and notification adapters into the core
services. Core services never read settings themselves; every tunable
is passed in here.

Clean Architecture: Application layer orchestrates DI, not core layer.
"""

from dataclasses import dataclass

from stocklink.config import Settings, get_logger, get_settings
from stocklink.core.exceptions import DatabaseError
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

logger = get_logger(__name__)


@dataclass
class StockLinkServices:
    """Fully wired service graph sharing one connection pool."""

    settings: Settings
    pool: ConnectionPool
    client: SQLiteDocumentClient
    ledger: StockLedger
    inventory: InventoryHierarchyStore
    resolver: CanonicalResolver
    branches: BranchDirectory
    notifications: DocumentNotificationSink
    notifier: NotificationEmitter
    transfers: TransferOrderService

    async def close(self) -> None:
        await self.pool.close()


def build_services(settings: Settings, pool: ConnectionPool) -> StockLinkServices:
    """Wire the service graph on an existing pool."""
    client = SQLiteDocumentClient(pool)
    ledger = StockLedger(client)
    inventory = InventoryHierarchyStore(
        client, ledger, include_empty_default=settings.inventory.include_empty_default
    )
    resolver = CanonicalResolver(inventory, slug_max_length=settings.inventory.slug_max_length)
    branches = BranchDirectory(client)
    sink = DocumentNotificationSink(client)
    notifier = NotificationEmitter(sink)

    transfer_settings = settings.transfers
    transfers = TransferOrderService(
        client,
        inventory,
        ledger,
        resolver,
        branches,
        notifier,
        shipment_mode=transfer_settings.shipment_mode,
        order_number_prefix=transfer_settings.order_number_prefix,
        default_reject_reason=transfer_settings.default_reject_reason,
        default_cancel_reason=transfer_settings.default_cancel_reason,
        notification_link=transfer_settings.notification_link,
    )

    return StockLinkServices(
        settings=settings,
        pool=pool,
        client=client,
        ledger=ledger,
        inventory=inventory,
        resolver=resolver,
        branches=branches,
        notifications=sink,
        notifier=notifier,
        transfers=transfers,
    )


async def create_services(
    settings: Settings | None = None,
    migrate: bool = True,
) -> StockLinkServices:
    """
    Create the service graph for the configured database.

    Args:
        settings: Optional settings override (default: get_settings())
        migrate: Apply pending migrations before opening the pool

    Returns:
        Wired services; call close() when done
    """
    settings = settings or get_settings()
    db_path = settings.storage.db_path

    if migrate:
        results = await initialize_database(db_path)
        failed = [r for r in results if not r.success]
        if failed:
            logger.error("startup_migrations_failed", versions=[r.version for r in failed])
            raise DatabaseError("migrate", failed[0].error or "migration failed")

    pool = ConnectionPool.from_settings(settings.storage)
    await pool.initialize()

    logger.info(
        "services_created",
        db_path=str(db_path),
        shipment_mode=settings.transfers.shipment_mode,
    )
    return build_services(settings, pool)
