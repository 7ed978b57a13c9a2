# backend/app/db/repositories/integration_repository.py
from typing import Optional, List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.ci_integration import GitHubApp, Installation, GitLabCredential
from app.db.repositories.base import BaseRepository


class GitHubAppRepository(BaseRepository[GitHubApp]):

    def __init__(self, session: AsyncSession):
        super().__init__(GitHubApp, session)

    async def get_by_app_id(self, app_id: int) -> Optional[GitHubApp]:
        result = await self.session.execute(select(GitHubApp).where(GitHubApp.app_id == app_id))
        return result.scalar_one_or_none()

    async def get_active(self) -> Optional[GitHubApp]:
        """Most recently created active App"""
        result = await self.session.execute(
            select(GitHubApp)
            .where(GitHubApp.is_active.is_(True))
            .order_by(GitHubApp.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()


class InstallationRepository(BaseRepository[Installation]):

    def __init__(self, session: AsyncSession):
        super().__init__(Installation, session)

    async def get_by_installation_id(self, installation_id: int) -> Optional[Installation]:
        result = await self.session.execute(
            select(Installation).where(Installation.installation_id == installation_id)
        )
        return result.scalar_one_or_none()

    async def list_for_app(self, github_app_id: str) -> List[Installation]:
        result = await self.session.execute(
            select(Installation).where(Installation.github_app_id == github_app_id)
        )
        return list(result.scalars().all())


class GitLabCredentialRepository(BaseRepository[GitLabCredential]):

    def __init__(self, session: AsyncSession):
        super().__init__(GitLabCredential, session)

    async def get_by_instance(self, instance_url: str) -> Optional[GitLabCredential]:
        result = await self.session.execute(
            select(GitLabCredential).where(GitLabCredential.instance_url == instance_url)
        )
        return result.scalar_one_or_none()

    async def list_active(self) -> List[GitLabCredential]:
        result = await self.session.execute(
            select(GitLabCredential).where(GitLabCredential.is_active.is_(True))
        )
        return list(result.scalars().all())
