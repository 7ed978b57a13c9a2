# backend/app/db/repositories/build_repository.py
from typing import Optional, List
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.build import Build
from app.db.repositories.base import BaseRepository


class BuildRepository(BaseRepository[Build]):
    """Repository for Build operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(Build, session)

    async def list_builds(
        self,
        repository_id: Optional[str] = None,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[Build]:
        """Newest first"""
        return await self.get_multi(
            skip=skip,
            limit=limit,
            filters={"repository_id": repository_id, "status": status},
            order_by=Build.id.desc(),
        )

    async def transition(self, build_id: str, from_statuses, **values) -> bool:
        """Move a build only if it is still in one of from_statuses"""
        rows = await self.update_where(
            Build.id == build_id,
            Build.status.in_(list(from_statuses)),
            **values,
        )
        return rows == 1
