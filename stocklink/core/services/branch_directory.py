"""Branch registry stored under the top-level ``branches`` collection."""

from datetime import UTC, datetime

from stocklink.config import get_logger
from stocklink.core.entities.branch import Branch
from stocklink.core.exceptions import ConflictError, NotFoundError
from stocklink.core.interfaces.document_client import IDocumentClient, join_path
from stocklink.core.services.identifiers import require_name, require_segment

logger = get_logger(__name__)

BRANCHES_COLLECTION = "branches"


class BranchDirectory:
    """Register and look up branches."""

    def __init__(self, client: IDocumentClient) -> None:
        self._client = client

    async def register(self, branch: Branch) -> Branch:
        """Create a branch; ConflictError if the id is already taken."""
        require_segment("branch_id", branch.id)
        branch = branch.model_copy(update={"name": require_name("name", branch.name)})
        path = join_path(BRANCHES_COLLECTION, branch.id)

        async with self._client.transaction() as tx:
            if await tx.get(path) is not None:
                raise ConflictError("branch", branch.id)
            await tx.set(path, branch.model_dump(exclude={"id"}))

        logger.info("branch_registered", branch_id=branch.id, name=branch.name)
        return branch

    async def update(self, branch_id: str, **changes) -> Branch:
        """Merge contact/status fields into an existing branch."""
        current = await self.get(branch_id)
        changes.pop("id", None)
        if "name" in changes:
            changes["name"] = require_name("name", changes["name"])
        changes["updated_at"] = datetime.now(UTC)
        await self._client.update(join_path(BRANCHES_COLLECTION, branch_id), changes)
        return current.model_copy(update=changes)

    async def get(self, branch_id: str) -> Branch:
        require_segment("branch_id", branch_id)
        data = await self._client.get(join_path(BRANCHES_COLLECTION, branch_id))
        if data is None:
            raise NotFoundError("branch", branch_id)
        return Branch(id=branch_id, **data)

    async def exists(self, branch_id: str) -> bool:
        if not branch_id or "/" in branch_id:
            return False
        return await self._client.get(join_path(BRANCHES_COLLECTION, branch_id)) is not None

    async def list_branches(self, active_only: bool = False) -> list[Branch]:
        docs = await self._client.list_documents(BRANCHES_COLLECTION)
        branches = [Branch(id=d.id, **d.data) for d in docs]
        if active_only:
            branches = [b for b in branches if b.is_active]
        return branches

    async def branch_names(self) -> dict[str, str]:
        """Map of branch id to display name."""
        return {b.id: b.name for b in await self.list_branches()}
