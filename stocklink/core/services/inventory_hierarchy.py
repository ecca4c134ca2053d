"""
Per-branch inventory tree: Brand -> Model -> Variant -> Lot.

Layout in the document store::

    branches/{branch}/inventory/{brand}
        /models/{model}
            /variants/{variant}
                /lots/{lot_code}

Brand, Model and Variant use idempotent "ensure" writes (create if absent,
update a changed display field, otherwise write nothing). Lot quantity
changes always go through a transaction that also appends the matching
ledger row.
"""

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import UTC, datetime

from stocklink.config import get_logger
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
    parse_specification,
)
from stocklink.core.entities.ledger import MovementKind
from stocklink.core.exceptions import (
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from stocklink.core.interfaces.document_client import (
    IDocumentClient,
    ITransaction,
    StoredDocument,
    join_path,
)
from stocklink.core.services.identifiers import require_name, require_segment
from stocklink.core.services.stock_ledger import StockLedger

logger = get_logger(__name__)


def inventory_collection(branch_id: str) -> str:
    return join_path("branches", branch_id, "inventory")


def brand_path(branch_id: str, brand_id: str) -> str:
    return join_path(inventory_collection(branch_id), brand_id)


def model_path(branch_id: str, brand_id: str, model_id: str) -> str:
    return join_path(brand_path(branch_id, brand_id), "models", model_id)


def variant_path(branch_id: str, brand_id: str, model_id: str, variant_id: str) -> str:
    return join_path(model_path(branch_id, brand_id, model_id), "variants", variant_id)


def lot_path(ref: LotRef) -> str:
    return join_path(
        variant_path(ref.branch_id, ref.brand_id, ref.model_id, ref.variant_id),
        "lots",
        ref.lot_code,
    )


def _validate_ref(ref: LotRef) -> None:
    require_segment("branch_id", ref.branch_id)
    require_segment("brand_id", ref.brand_id)
    require_segment("model_id", ref.model_id)
    require_segment("variant_id", ref.variant_id)
    require_segment("lot_code", ref.lot_code)


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass
class _VariantBranch:
    doc: StoredDocument
    lots: list[StoredDocument] = field(default_factory=list)


@dataclass
class _ModelBranch:
    brand: StoredDocument
    model: StoredDocument
    variants: list[_VariantBranch] = field(default_factory=list)


class InventoryHierarchyStore:
    """Owns the four-level inventory tree of every branch."""

    def __init__(
        self,
        client: IDocumentClient,
        ledger: StockLedger,
        include_empty_default: bool = False,
    ) -> None:
        self._client = client
        self._ledger = ledger
        self._include_empty_default = include_empty_default

    # ------------------------------------------------------------------
    # Point reads
    # ------------------------------------------------------------------

    async def get_brand(self, branch_id: str, brand_id: str) -> BrandNode | None:
        data = await self._client.get(brand_path(branch_id, brand_id))
        return None if data is None else self._to_brand(brand_id, data)

    async def get_model(self, branch_id: str, brand_id: str, model_id: str) -> ModelNode | None:
        data = await self._client.get(model_path(branch_id, brand_id, model_id))
        return None if data is None else self._to_model(brand_id, model_id, data)

    async def get_variant(
        self, branch_id: str, brand_id: str, model_id: str, variant_id: str
    ) -> VariantNode | None:
        data = await self._client.get(variant_path(branch_id, brand_id, model_id, variant_id))
        return None if data is None else self._to_variant(variant_id, data)

    async def get_lot(self, ref: LotRef) -> Lot | None:
        data = await self._client.get(lot_path(ref))
        return None if data is None else self._to_lot(ref.lot_code, data)

    async def brand_exists(self, branch_id: str, brand_id: str) -> bool:
        return await self.get_brand(branch_id, brand_id) is not None

    async def model_exists(self, branch_id: str, brand_id: str, model_id: str) -> bool:
        return await self.get_model(branch_id, brand_id, model_id) is not None

    # ------------------------------------------------------------------
    # Ensure (idempotent create-or-update)
    # ------------------------------------------------------------------

    async def ensure_brand(self, branch_id: str, brand_id: str, brand_name: str) -> BrandNode:
        """Create the brand node if absent, or update a changed display name."""
        require_segment("branch_id", branch_id)
        require_segment("brand_id", brand_id)
        brand_name = require_name("brand_name", brand_name)

        path = brand_path(branch_id, brand_id)
        data = await self._client.get(path)
        now = _now()
        if data is None:
            node = BrandNode(brand_id=brand_id, brand_name=brand_name, created_at=now, updated_at=now)
            await self._client.set(path, node.model_dump(exclude={"brand_id"}))
            logger.info("brand_created", branch_id=branch_id, brand_id=brand_id)
            return node

        node = self._to_brand(brand_id, data)
        if node.brand_name != brand_name:
            await self._client.update(path, {"brand_name": brand_name, "updated_at": now})
            node = node.model_copy(update={"brand_name": brand_name, "updated_at": now})
            logger.info("brand_renamed", branch_id=branch_id, brand_id=brand_id)
        return node

    async def ensure_model(
        self, branch_id: str, brand_id: str, model_id: str, model_name: str
    ) -> ModelNode:
        """Create the model node under an existing brand, or update its display name."""
        require_segment("branch_id", branch_id)
        require_segment("brand_id", brand_id)
        require_segment("model_id", model_id)
        model_name = require_name("model_name", model_name)

        if not await self.brand_exists(branch_id, brand_id):
            raise NotFoundError("brand", brand_path(branch_id, brand_id))

        path = model_path(branch_id, brand_id, model_id)
        data = await self._client.get(path)
        now = _now()
        if data is None:
            node = ModelNode(
                brand_id=brand_id,
                model_id=model_id,
                model_name=model_name,
                created_at=now,
                updated_at=now,
            )
            await self._client.set(path, node.model_dump(exclude={"brand_id", "model_id"}))
            logger.info("model_created", branch_id=branch_id, brand_id=brand_id, model_id=model_id)
            return node

        node = self._to_model(brand_id, model_id, data)
        if node.model_name != model_name:
            await self._client.update(path, {"model_name": model_name, "updated_at": now})
            node = node.model_copy(update={"model_name": model_name, "updated_at": now})
            logger.info("model_renamed", branch_id=branch_id, brand_id=brand_id, model_id=model_id)
        return node

    async def ensure_variant(
        self,
        branch_id: str,
        brand_id: str,
        model_id: str,
        variant_id: str,
        specification: str = "",
        list_price: float | None = None,
    ) -> VariantNode:
        """
        Create the variant node under an existing model.

        An existing variant only ever has its list price updated; its
        specification is never rewritten.
        """
        require_segment("branch_id", branch_id)
        require_segment("brand_id", brand_id)
        require_segment("model_id", model_id)
        require_segment("variant_id", variant_id)
        if list_price is not None and list_price < 0:
            raise ValidationError("list_price", "must not be negative", list_price)

        if not await self.model_exists(branch_id, brand_id, model_id):
            raise NotFoundError("model", model_path(branch_id, brand_id, model_id))

        path = variant_path(branch_id, brand_id, model_id, variant_id)
        data = await self._client.get(path)
        now = _now()
        if data is None:
            size, load_index = parse_specification(specification)
            node = VariantNode(
                variant_id=variant_id,
                size=size or variant_id,
                load_index=load_index,
                list_price=list_price,
                created_at=now,
                updated_at=now,
            )
            await self._client.set(path, node.model_dump(exclude={"variant_id"}))
            logger.info("variant_created", branch_id=branch_id, variant_id=variant_id)
            return node

        node = self._to_variant(variant_id, data)
        if list_price is not None and node.list_price != list_price:
            await self._client.update(path, {"list_price": list_price, "updated_at": now})
            node = node.model_copy(update={"list_price": list_price, "updated_at": now})
            logger.info("variant_price_updated", branch_id=branch_id, variant_id=variant_id)
        return node

    async def ensure_lot(
        self,
        ref: LotRef,
        initial_qty: int | None = None,
        initial_promo_price: float | None = None,
    ) -> Lot:
        """
        Create the lot if absent, otherwise reconcile it to the supplied values.

        A new lot with a positive quantity is ledgered as "in" ("lot
        created"). For an existing lot a supplied quantity is clamped to
        >= 0 and the difference is ledgered as "adjust".
        """
        _validate_ref(ref)
        if initial_promo_price is not None and initial_promo_price < 0:
            raise ValidationError("promo_price", "must not be negative", initial_promo_price)

        path = lot_path(ref)
        async with self._client.transaction() as tx:
            await self._require_variant(tx, ref)
            data = await tx.get(path)
            now = _now()

            if data is None:
                qty = max(0, initial_qty or 0)
                lot = Lot(
                    lot_code=ref.lot_code,
                    qty=qty,
                    promo_price=initial_promo_price,
                    created_at=now,
                    updated_at=now,
                )
                await tx.set(path, lot.model_dump(exclude={"lot_code"}))
                if qty > 0:
                    await self._ledger.record_movement(
                        ref, MovementKind.INBOUND, qty, reason="lot created", tx=tx
                    )
                logger.info("lot_created", lot=str(ref), qty=qty)
                return lot

            lot = self._to_lot(ref.lot_code, data)
            changes: dict = {}
            if initial_qty is not None:
                new_qty = max(0, initial_qty)
                delta = new_qty - lot.qty
                if delta != 0:
                    changes["qty"] = new_qty
                    await self._ledger.record_movement(
                        ref, MovementKind.ADJUSTMENT, delta, reason="quantity set", tx=tx
                    )
            if initial_promo_price is not None and initial_promo_price != lot.promo_price:
                changes["promo_price"] = initial_promo_price
            if changes:
                changes["updated_at"] = now
                await tx.update(path, changes)
                lot = lot.model_copy(update=changes)
            return lot

    # ------------------------------------------------------------------
    # Lot mutations
    # ------------------------------------------------------------------

    async def add_lot(self, ref: LotRef, qty: int = 0, promo_price: float | None = None) -> Lot:
        """Strict create; ConflictError when the lot code is already used."""
        _validate_ref(ref)
        if promo_price is not None and promo_price < 0:
            raise ValidationError("promo_price", "must not be negative", promo_price)

        path = lot_path(ref)
        async with self._client.transaction() as tx:
            await self._require_variant(tx, ref)
            if await tx.get(path) is not None:
                raise ConflictError("lot", str(ref))

            now = _now()
            lot = Lot(
                lot_code=ref.lot_code,
                qty=max(0, qty),
                promo_price=promo_price,
                created_at=now,
                updated_at=now,
            )
            await tx.set(path, lot.model_dump(exclude={"lot_code"}))
            if lot.qty > 0:
                await self._ledger.record_movement(
                    ref, MovementKind.INBOUND, lot.qty, reason="lot created", tx=tx
                )
        logger.info("lot_added", lot=str(ref), qty=lot.qty)
        return lot

    async def move_stock(
        self,
        tx: ITransaction,
        ref: LotRef,
        delta: int,
        kind: MovementKind,
        *,
        reason: str | None = None,
        order_id: str | None = None,
        require_available: bool = False,
        product: str | None = None,
        specification: str | None = None,
    ) -> Lot:
        """
        Apply a quantity delta and its ledger row inside the caller's transaction.

        With require_available, a delta that would take the lot below zero
        raises InsufficientStockError and nothing is written.
        """
        path = lot_path(ref)
        data = await tx.get(path)
        if data is None:
            raise NotFoundError("lot", str(ref))

        lot = self._to_lot(ref.lot_code, data)
        if delta == 0:
            return lot
        if require_available and lot.qty + delta < 0:
            raise InsufficientStockError(
                branch_id=ref.branch_id,
                product=product or ref.product_id,
                specification=specification or ref.variant_id,
                lot_code=ref.lot_code,
                available=lot.qty,
                requested=-delta,
            )

        now = _now()
        new_qty = lot.qty + delta
        await tx.update(path, {"qty": new_qty, "updated_at": now})
        await self._ledger.record_movement(
            ref, kind, delta, reason=reason, order_id=order_id, tx=tx
        )
        return lot.model_copy(update={"qty": new_qty, "updated_at": now})

    async def adjust_quantity(self, ref: LotRef, delta: int, reason: str | None = None) -> Lot:
        """Apply a signed delta to an existing lot, ledgered as "in" or "out"."""
        _validate_ref(ref)
        kind = MovementKind.INBOUND if delta > 0 else MovementKind.OUTBOUND
        async with self._client.transaction() as tx:
            lot = await self.move_stock(tx, ref, delta, kind, reason=reason, require_available=True)
        logger.info("lot_adjusted", lot=str(ref), delta=delta, qty=lot.qty)
        return lot

    async def set_quantity(self, ref: LotRef, new_qty: int, reason: str | None = None) -> Lot:
        """Set an absolute quantity (clamped to >= 0), ledgering the difference."""
        _validate_ref(ref)
        async with self._client.transaction() as tx:
            data = await tx.get(lot_path(ref))
            if data is None:
                raise NotFoundError("lot", str(ref))
            current = self._to_lot(ref.lot_code, data).qty
            lot = await self.move_stock(
                tx,
                ref,
                max(0, new_qty) - current,
                MovementKind.ADJUSTMENT,
                reason=reason or "quantity set",
            )
        return lot

    async def set_promo_price(self, ref: LotRef, promo_price: float | None) -> Lot:
        """Set or clear (None) the promotional price of a lot."""
        _validate_ref(ref)
        if promo_price is not None and promo_price < 0:
            raise ValidationError("promo_price", "must not be negative", promo_price)

        path = lot_path(ref)
        async with self._client.transaction() as tx:
            data = await tx.get(path)
            if data is None:
                raise NotFoundError("lot", str(ref))
            now = _now()
            await tx.update(path, {"promo_price": promo_price, "updated_at": now})
        lot = self._to_lot(ref.lot_code, data)
        return lot.model_copy(update={"promo_price": promo_price, "updated_at": now})

    async def delete_lot(self, ref: LotRef) -> None:
        """Remove a lot after ledgering a corrective adjustment of -qty."""
        _validate_ref(ref)
        path = lot_path(ref)
        async with self._client.transaction() as tx:
            data = await tx.get(path)
            if data is None:
                raise NotFoundError("lot", str(ref))
            lot = self._to_lot(ref.lot_code, data)
            if lot.qty != 0:
                await self._ledger.record_movement(
                    ref, MovementKind.ADJUSTMENT, -lot.qty, reason="lot deleted", tx=tx
                )
            await tx.delete(path)
        logger.info("lot_deleted", lot=str(ref), qty=lot.qty)

    async def _require_variant(self, tx: ITransaction, ref: LotRef) -> None:
        path = variant_path(ref.branch_id, ref.brand_id, ref.model_id, ref.variant_id)
        if await tx.get(path) is None:
            raise NotFoundError("variant", path)

    # ------------------------------------------------------------------
    # Read projections
    # ------------------------------------------------------------------

    async def list_variants(
        self, branch_id: str, brand_id: str, model_id: str
    ) -> list[VariantNode]:
        collection = join_path(model_path(branch_id, brand_id, model_id), "variants")
        docs = await self._client.list_documents(collection)
        return [self._to_variant(d.id, d.data) for d in docs]

    async def list_lots(
        self,
        branch_id: str,
        brand_id: str,
        model_id: str,
        variant_id: str | None = None,
    ) -> list[LotView]:
        """Lots of one model (or one variant) joined with variant spec and list price."""
        if variant_id is not None:
            variant = await self.get_variant(branch_id, brand_id, model_id, variant_id)
            variants = [variant] if variant is not None else []
        else:
            variants = await self.list_variants(branch_id, brand_id, model_id)

        views: list[LotView] = []
        for variant in variants:
            collection = join_path(
                variant_path(branch_id, brand_id, model_id, variant.variant_id), "lots"
            )
            for doc in await self._client.list_documents(collection):
                lot = self._to_lot(doc.id, doc.data)
                views.append(
                    LotView(
                        branch_id=branch_id,
                        brand_id=brand_id,
                        model_id=model_id,
                        variant_id=variant.variant_id,
                        specification=variant.specification,
                        list_price=variant.list_price,
                        lot_code=lot.lot_code,
                        qty=lot.qty,
                        promo_price=lot.promo_price,
                    )
                )
        return views

    async def _walk(self, branch_id: str) -> AsyncIterator[_ModelBranch]:
        """Yield every model of a branch with its variants and lots loaded."""
        for brand in await self._client.list_documents(inventory_collection(branch_id)):
            for model in await self._client.list_documents(join_path(brand.path, "models")):
                branch = _ModelBranch(brand=brand, model=model)
                for variant in await self._client.list_documents(join_path(model.path, "variants")):
                    lots = await self._client.list_documents(join_path(variant.path, "lots"))
                    branch.variants.append(_VariantBranch(doc=variant, lots=lots))
                yield branch

    async def fetch_inventory_for_branch(
        self,
        branch_id: str,
        branch_name: str | None = None,
        include_empty: bool | None = None,
    ) -> list[GroupedProduct]:
        """
        Grouped-by-product view of one branch.

        Zero-quantity lots, variants without lots and models without
        variants are left out unless include_empty is set.
        """
        if include_empty is None:
            include_empty = self._include_empty_default
        products: list[GroupedProduct] = []
        async for node in self._walk(branch_id):
            brand = self._to_brand(node.brand.id, node.brand.data)
            model = self._to_model(node.brand.id, node.model.id, node.model.data)

            sizes: list[SizeStock] = []
            for vb in node.variants:
                variant = self._to_variant(vb.doc.id, vb.doc.data)
                lots = [
                    LotStock(
                        lot_code=lot.lot_code,
                        qty=lot.qty,
                        list_price=variant.list_price or 0.0,
                        promo_price=lot.promo_price,
                    )
                    for lot in (self._to_lot(d.id, d.data) for d in vb.lots)
                    if include_empty or lot.qty > 0
                ]
                if lots or include_empty:
                    sizes.append(
                        SizeStock(
                            variant_id=variant.variant_id,
                            specification=variant.specification,
                            lots=lots,
                        )
                    )

            if sizes or include_empty:
                products.append(
                    GroupedProduct(
                        id=f"{brand.brand_id}-{model.model_id}",
                        name=f"{brand.brand_name} {model.model_name}",
                        brand_id=brand.brand_id,
                        brand=brand.brand_name,
                        model_id=model.model_id,
                        model=model.model_name,
                        branches=[
                            BranchStock(
                                branch_id=branch_id,
                                branch_name=branch_name or branch_id,
                                sizes=sizes,
                            )
                        ],
                    )
                )
        return products

    async def fetch_inventory_for_branches(
        self,
        branches: list[Branch],
        include_empty: bool | None = None,
    ) -> list[GroupedProduct]:
        """
        Merge per-branch views by product id.

        Matching products concatenate their per-branch detail; quantities
        are never summed across branches.
        """
        merged: dict[str, GroupedProduct] = {}
        for branch in branches:
            for product in await self.fetch_inventory_for_branch(
                branch.id, branch.name, include_empty=include_empty
            ):
                if product.id in merged:
                    merged[product.id].branches.extend(product.branches)
                else:
                    merged[product.id] = product
        return list(merged.values())

    async def summarize_branch(self, branch_id: str) -> InventoryCounts:
        """Count nodes and total quantity of one branch."""
        brands = await self._client.list_documents(inventory_collection(branch_id))
        counts = InventoryCounts(brands=len(brands))
        async for node in self._walk(branch_id):
            counts.models += 1
            counts.variants += len(node.variants)
            for vb in node.variants:
                counts.lots += len(vb.lots)
                counts.total_qty += sum(int(d.data.get("qty", 0)) for d in vb.lots)
        return counts

    async def summarize_products(self, branch_id: str) -> list[ProductSummary]:
        """Per brand+model roll-up, largest total quantity first."""
        summary: list[ProductSummary] = []
        async for node in self._walk(branch_id):
            if not node.variants:
                continue
            summary.append(
                ProductSummary(
                    brand=node.brand.data.get("brand_name") or node.brand.id,
                    model=node.model.data.get("model_name") or node.model.id,
                    variants=len(node.variants),
                    lots=sum(len(vb.lots) for vb in node.variants),
                    total_qty=sum(
                        int(d.data.get("qty", 0)) for vb in node.variants for d in vb.lots
                    ),
                )
            )
        return sorted(summary, key=lambda s: s.total_qty, reverse=True)

    # ------------------------------------------------------------------
    # Document mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _to_brand(brand_id: str, data: dict) -> BrandNode:
        return BrandNode(
            brand_id=brand_id,
            brand_name=data.get("brand_name") or brand_id,
            **{k: data[k] for k in ("created_at", "updated_at") if data.get(k)},
        )

    @staticmethod
    def _to_model(brand_id: str, model_id: str, data: dict) -> ModelNode:
        return ModelNode(
            brand_id=brand_id,
            model_id=model_id,
            model_name=data.get("model_name") or model_id,
            **{k: data[k] for k in ("created_at", "updated_at") if data.get(k)},
        )

    @staticmethod
    def _to_variant(variant_id: str, data: dict) -> VariantNode:
        return VariantNode(
            variant_id=variant_id,
            size=data.get("size") or "",
            load_index=data.get("load_index") or "",
            list_price=data.get("list_price"),
            **{k: data[k] for k in ("created_at", "updated_at") if data.get(k)},
        )

    @staticmethod
    def _to_lot(lot_code: str, data: dict) -> Lot:
        return Lot(
            lot_code=lot_code,
            qty=int(data.get("qty") or 0),
            promo_price=data.get("promo_price"),
            **{k: data[k] for k in ("created_at", "updated_at") if data.get(k)},
        )
