# backend/app/services/repository_service.py
"""
Manual repository registration and webhook credentials.
"""

import secrets
from typing import List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import ConflictError, NotConfiguredError, NotFoundError
from app.core.logging import logger
from app.db.models.repository import Repository
from app.db.repositories.repo_repository import RepoRepository
from app.schemas.repository import RepositoryCreate
from app.services.signature_verifier import hash_gitlab_token

WEBHOOK_TOKEN_BYTES = 32


class RepositoryService:

    def __init__(self, session: AsyncSession):
        self.session = session
        self.repositories = RepoRepository(session)

    async def get(self, repository_id: str) -> Repository:
        repository = await self.repositories.get(repository_id)
        if repository is None:
            raise NotFoundError(f"Repository {repository_id} not found")
        return repository

    async def list(
        self, provider: Optional[str] = None, is_active: Optional[bool] = None, skip: int = 0, limit: int = 100
    ) -> List[Repository]:
        return await self.repositories.list_repositories(provider=provider, is_active=is_active, skip=skip, limit=limit)

    async def create(self, data: RepositoryCreate) -> Repository:
        provider = data.provider.value
        if await self.repositories.get_by_provider_id(provider, data.provider_repo_id):
            raise ConflictError(f"Repository {provider}:{data.provider_repo_id} already exists")

        repository = await self.repositories.create({
            "provider": provider,
            "provider_repo_id": data.provider_repo_id,
            "owner": data.owner,
            "name": data.name,
            "default_branch": data.default_branch,
            "clone_url": data.clone_url,
            "is_active": True,
        })
        await self.session.commit()
        logger.info(f"Registered repository {repository.full_name}", extra={"repository_id": repository.id})
        return repository

    def webhook_url(self, repository: Repository) -> str:
        base = settings.BASE_URL.rstrip("/")
        if repository.provider == "gitlab":
            return f"{base}/api/webhooks/gitlab/{repository.id}"
        return f"{base}/api/webhooks/github"

    async def rotate_webhook_token(self, repository_id: str) -> Tuple[Repository, Optional[str]]:
        """
        New GitLab webhook token; only its HMAC is kept, so the plain
        token is returned exactly once. GitHub repositories use the App's
        webhook secret and get no token.
        """
        repository = await self.get(repository_id)
        if repository.provider != "gitlab":
            return repository, None
        if not settings.GITLAB_SERVER_PEPPER:
            raise NotConfiguredError("GITLAB_SERVER_PEPPER must be set to issue webhook tokens")

        token = secrets.token_urlsafe(WEBHOOK_TOKEN_BYTES)
        repository.webhook_token_hmac = hash_gitlab_token(settings.GITLAB_SERVER_PEPPER, token)
        await self.session.commit()
        logger.info("Issued GitLab webhook token", extra={"repository_id": repository.id})
        return repository, token
