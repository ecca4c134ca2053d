"""Inventory hierarchy entities: Brand -> Model -> Variant -> Lot."""

import re
from dataclasses import dataclass
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

_SPEC_RE = re.compile(r"^(.*?)\s*\((.*?)\)\s*$")


def parse_specification(spec: str) -> tuple[str, str]:
    """Split "205/55R16 (94V)" into ("205/55R16", "94V")."""
    match = _SPEC_RE.match(spec or "")
    if not match:
        return (spec or "").strip(), ""
    return match.group(1).strip(), match.group(2).strip()


def format_specification(size: str, load_index: str | None = None) -> str:
    """Inverse of parse_specification."""
    return f"{size} ({load_index})" if load_index else size


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class LotRef:
    """Fully qualified address of one lot in one branch."""

    branch_id: str
    brand_id: str
    model_id: str
    variant_id: str
    lot_code: str

    @property
    def product_id(self) -> str:
        return f"{self.brand_id}-{self.model_id}"

    def __str__(self) -> str:
        return (
            f"{self.branch_id}/{self.brand_id}/{self.model_id}/"
            f"{self.variant_id}/{self.lot_code}"
        )


class BrandNode(BaseModel):
    """Brand level of a branch's inventory tree."""

    brand_id: str
    brand_name: str
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class ModelNode(BaseModel):
    """Model level, scoped to (branch, brand)."""

    model_config = ConfigDict(protected_namespaces=())

    brand_id: str
    model_id: str
    model_name: str
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class VariantNode(BaseModel):
    """One size/specification combination of a model."""

    variant_id: str
    size: str = ""
    load_index: str = ""
    list_price: float | None = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @property
    def specification(self) -> str:
        return format_specification(self.size, self.load_index)


class Lot(BaseModel):
    """Production batch (DOT) of a variant; the only frequently mutated node."""

    lot_code: str
    qty: int = 0
    promo_price: float | None = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)


class LotView(BaseModel):
    """Lot joined with its variant's display specification and list price."""

    model_config = ConfigDict(protected_namespaces=())

    branch_id: str
    brand_id: str
    model_id: str
    variant_id: str
    specification: str
    list_price: float | None = None
    lot_code: str
    qty: int
    promo_price: float | None = None


class LotStock(BaseModel):
    """Lot row inside the grouped inventory view."""

    lot_code: str
    qty: int
    list_price: float = 0.0
    promo_price: float | None = None


class SizeStock(BaseModel):
    """Variant row inside the grouped inventory view."""

    variant_id: str
    specification: str
    lots: list[LotStock] = Field(default_factory=list)


class BranchStock(BaseModel):
    """Per-branch detail of one product; never summed across branches."""

    branch_id: str
    branch_name: str
    sizes: list[SizeStock] = Field(default_factory=list)


class GroupedProduct(BaseModel):
    """Denormalized product row keyed by brand id + model id."""

    model_config = ConfigDict(protected_namespaces=())

    id: str
    name: str
    brand_id: str
    brand: str
    model_id: str
    model: str | None = None
    branches: list[BranchStock] = Field(default_factory=list)

    @property
    def total_qty(self) -> int:
        return sum(
            lot.qty
            for branch in self.branches
            for size in branch.sizes
            for lot in size.lots
        )


class InventoryCounts(BaseModel):
    """Node counts and total quantity for one branch."""

    brands: int = 0
    models: int = 0
    variants: int = 0
    lots: int = 0
    total_qty: int = 0


class ProductSummary(BaseModel):
    """Per brand+model roll-up for one branch."""

    brand: str
    model: str
    variants: int = 0
    lots: int = 0
    total_qty: int = 0
