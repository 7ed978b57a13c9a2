# backend/app/api/v1/repositories.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from app.api.dependencies import get_build_manager, require_api_token
from app.core.constants import Provider
from app.db.session import get_db
from app.schemas.build import Build, BuildTrigger
from app.schemas.repository import Repository, RepositoryCreate, WebhookCredentials
from app.services.build_lifecycle import BuildLifecycleManager
from app.services.repository_service import RepositoryService

router = APIRouter(dependencies=[Depends(require_api_token)])


@router.get("", response_model=List[Repository])
async def list_repositories(
    provider: Optional[Provider] = None,
    active: Optional[bool] = None,
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
):
    return await RepositoryService(db).list(
        provider=provider.value if provider else None,
        is_active=active,
        skip=skip,
        limit=min(limit, 500),
    )


@router.post("", response_model=Repository, status_code=status.HTTP_201_CREATED)
async def create_repository(repo_in: RepositoryCreate, db: AsyncSession = Depends(get_db)):
    """Register a repository by hand"""
    return await RepositoryService(db).create(repo_in)


@router.get("/{repository_id}", response_model=Repository)
async def get_repository(repository_id: str, db: AsyncSession = Depends(get_db)):
    return await RepositoryService(db).get(repository_id)


@router.post("/{repository_id}/webhook-token", response_model=WebhookCredentials)
async def issue_webhook_token(repository_id: str, db: AsyncSession = Depends(get_db)):
    """Webhook URL, plus a fresh secret token for GitLab repositories"""
    service = RepositoryService(db)
    repository, token = await service.rotate_webhook_token(repository_id)
    return WebhookCredentials(webhook_url=service.webhook_url(repository), webhook_token=token)


@router.post("/{repository_id}/trigger", response_model=Build, status_code=status.HTTP_201_CREATED)
async def trigger_build(
    repository_id: str,
    trigger: Optional[BuildTrigger] = None,
    manager: BuildLifecycleManager = Depends(get_build_manager),
):
    """Queue a manual build; branch and commit default to the repository's HEAD"""
    trigger = trigger or BuildTrigger()
    return await manager.trigger(repository_id, branch=trigger.branch, commit_sha=trigger.commit_sha)
