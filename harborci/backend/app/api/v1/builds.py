# backend/app/api/v1/builds.py
from fastapi import APIRouter, Depends, Query
from typing import List, Optional

from app.api.dependencies import get_build_manager, require_api_token
from app.core.constants import BuildStatus
from app.schemas.build import Build, BuildStatusUpdate
from app.services.build_lifecycle import BuildLifecycleManager

router = APIRouter(dependencies=[Depends(require_api_token)])


@router.get("", response_model=List[Build])
async def list_builds(
    repo: Optional[str] = Query(None, description="Filter by repository id"),
    status: Optional[BuildStatus] = None,
    skip: int = 0,
    limit: int = 50,
    manager: BuildLifecycleManager = Depends(get_build_manager),
):
    """List builds, newest first"""
    return await manager.list(
        repository_id=repo,
        status=status.value if status else None,
        skip=skip,
        limit=min(limit, 200),
    )


@router.get("/{build_id}", response_model=Build)
async def get_build(build_id: str, manager: BuildLifecycleManager = Depends(get_build_manager)):
    return await manager.get(build_id)


@router.post("/{build_id}/cancel", response_model=Build)
async def cancel_build(build_id: str, manager: BuildLifecycleManager = Depends(get_build_manager)):
    """Cancel a pending or running build"""
    return await manager.cancel(build_id)


@router.post("/{build_id}/status", response_model=Build)
async def update_build_status(
    build_id: str,
    update: BuildStatusUpdate,
    manager: BuildLifecycleManager = Depends(get_build_manager),
):
    """Status report from the execution engine"""
    return await manager.transition(build_id, update.status, update.error_message)
