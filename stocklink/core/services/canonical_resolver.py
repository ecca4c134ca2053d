"""
Canonical id resolution.

Maps free-form brand and model strings onto the ids already used in a
branch's inventory tree, so that "Michelin", "MICHELIN" and "michelin"
land on the same node. Pure service: the hierarchy store is injected.
"""

from dataclasses import dataclass

from stocklink.config import get_logger
from stocklink.core.services.identifiers import SLUG_MAX_LENGTH, normalize
from stocklink.core.services.inventory_hierarchy import InventoryHierarchyStore

logger = get_logger(__name__)

UNKNOWN_MODEL_ID = "unknown"


@dataclass
class CanonicalIds:
    """Resolved (brand_id, model_id) pair for one branch."""

    brand_id: str
    model_id: str


class CanonicalResolver:
    """
    Resolve raw identifiers against existing nodes.

    Candidates are tried in order: raw (trimmed), upper-case, slug,
    lower-case. The first one that exists wins. With no match the brand
    falls back to upper-case and the model to its slug.
    """

    def __init__(
        self,
        store: InventoryHierarchyStore,
        slug_max_length: int = SLUG_MAX_LENGTH,
    ) -> None:
        self._store = store
        self._slug_max_length = slug_max_length

    def candidates(self, raw: str | None) -> list[str]:
        """Ordered, de-duplicated candidate ids; values containing '/' are skipped."""
        value = (raw or "").strip()
        ordered = [
            value,
            value.upper(),
            normalize(value, self._slug_max_length),
            value.lower(),
        ]
        return [c for c in dict.fromkeys(ordered) if c and "/" not in c]

    async def resolve_brand_id(self, branch_id: str, raw_brand: str | None) -> str:
        for candidate in self.candidates(raw_brand):
            if await self._store.brand_exists(branch_id, candidate):
                return candidate
        # Path separators never reach a document id
        fallback = (raw_brand or "").strip().upper().replace("/", "-")
        logger.debug("brand_id_fallback", branch_id=branch_id, raw=raw_brand, brand_id=fallback)
        return fallback

    async def resolve_model_id(self, branch_id: str, brand_id: str, raw_model: str | None) -> str:
        for candidate in self.candidates(raw_model):
            if await self._store.model_exists(branch_id, brand_id, candidate):
                return candidate
        fallback = normalize(raw_model, self._slug_max_length) or UNKNOWN_MODEL_ID
        logger.debug("model_id_fallback", branch_id=branch_id, raw=raw_model, model_id=fallback)
        return fallback

    async def resolve_canonical_ids(
        self, branch_id: str, raw_brand: str | None, raw_model: str | None
    ) -> CanonicalIds:
        """Resolve the brand first, then the model under the resolved brand."""
        brand_id = await self.resolve_brand_id(branch_id, raw_brand)
        model_id = await self.resolve_model_id(branch_id, brand_id, raw_model)
        return CanonicalIds(brand_id=brand_id, model_id=model_id)
