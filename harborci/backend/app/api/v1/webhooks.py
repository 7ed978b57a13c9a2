# backend/app/api/v1/webhooks.py
"""
Provider-facing webhook endpoints
These paths are registered with GitHub/GitLab and must stay stable.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from app.api.dependencies import get_ingestion_service, require_api_token
from app.core.constants import Provider
from app.core.exceptions import NotFoundError
from app.db.repositories.webhook_event_repository import WebhookEventRepository
from app.db.session import get_db
from app.schemas.webhook import WebhookAck, WebhookEventOut
from app.services.webhook_ingestion import WebhookIngestionService

router = APIRouter()


@router.post("/github", response_model=WebhookAck)
async def github_webhook(
    request: Request,
    service: WebhookIngestionService = Depends(get_ingestion_service),
):
    """Receive a GitHub App webhook (X-Hub-Signature-256 authenticated)"""
    body = await request.body()
    return await service.ingest_github(body, request.headers)


@router.post("/gitlab/{repository_id}", response_model=WebhookAck)
async def gitlab_webhook(
    repository_id: str,
    request: Request,
    service: WebhookIngestionService = Depends(get_ingestion_service),
):
    """Receive a GitLab project webhook (X-Gitlab-Token authenticated)"""
    body = await request.body()
    return await service.ingest_gitlab(repository_id, body, request.headers)


@router.get("/events", response_model=List[WebhookEventOut], dependencies=[Depends(require_api_token)])
async def list_webhook_events(
    provider: Optional[Provider] = None,
    processed: Optional[bool] = None,
    skip: int = 0,
    limit: int = 50,
    db: AsyncSession = Depends(get_db),
):
    """Recent deliveries, newest first"""
    return await WebhookEventRepository(db).list_events(
        provider=provider.value if provider else None,
        processed=processed,
        skip=skip,
        limit=min(limit, 200),
    )


@router.get("/events/{event_id}", response_model=WebhookEventOut, dependencies=[Depends(require_api_token)])
async def get_webhook_event(event_id: str, db: AsyncSession = Depends(get_db)):
    event = await WebhookEventRepository(db).get(event_id)
    if event is None:
        raise NotFoundError(f"Webhook event {event_id} not found")
    return event
