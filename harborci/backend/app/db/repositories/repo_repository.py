# backend/app/db/repositories/repo_repository.py
from typing import Optional, List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.repository import Repository
from app.db.repositories.base import BaseRepository


class RepoRepository(BaseRepository[Repository]):
    """Repository for source Repository rows"""

    def __init__(self, session: AsyncSession):
        super().__init__(Repository, session)

    async def get_by_provider_id(self, provider: str, provider_repo_id: str) -> Optional[Repository]:
        result = await self.session.execute(
            select(Repository).where(
                Repository.provider == provider,
                Repository.provider_repo_id == str(provider_repo_id),
            )
        )
        return result.scalar_one_or_none()

    async def list_for_installations(self, installation_ids: List[str]) -> List[Repository]:
        if not installation_ids:
            return []
        result = await self.session.execute(
            select(Repository).where(Repository.installation_id.in_(installation_ids))
        )
        return list(result.scalars().all())

    async def list_for_gitlab_credential(self, credential_id: str) -> List[Repository]:
        result = await self.session.execute(
            select(Repository).where(Repository.gitlab_credential_id == credential_id)
        )
        return list(result.scalars().all())

    async def list_repositories(
        self,
        provider: Optional[str] = None,
        is_active: Optional[bool] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Repository]:
        return await self.get_multi(
            skip=skip,
            limit=limit,
            filters={"provider": provider, "is_active": is_active},
            order_by=Repository.id,
        )
