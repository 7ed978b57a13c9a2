# backend/app/db/repositories/webhook_event_repository.py
from datetime import datetime
from typing import Optional, List
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.webhook_event import WebhookEvent
from app.db.repositories.base import BaseRepository


class WebhookEventRepository(BaseRepository[WebhookEvent]):
    """Repository for WebhookEvent operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(WebhookEvent, session)

    async def get_by_delivery(self, provider: str, delivery_id: str) -> Optional[WebhookEvent]:
        result = await self.session.execute(
            select(WebhookEvent).where(
                WebhookEvent.provider == provider,
                WebhookEvent.delivery_id == delivery_id,
            )
        )
        return result.scalar_one_or_none()

    async def claim(self, event_id: str, now: datetime) -> bool:
        """Set the processing marker if nobody holds it; True when this caller won"""
        rows = await self.update_where(
            WebhookEvent.id == event_id,
            WebhookEvent.claimed_at.is_(None),
            WebhookEvent.processed.is_(False),
            claimed_at=now,
        )
        return rows == 1

    async def mark_processed(
        self,
        event_id: str,
        now: datetime,
        repository_id: Optional[str] = None,
        note: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> None:
        await self.update_where(
            WebhookEvent.id == event_id,
            processed=True,
            processed_at=now,
            repository_id=repository_id,
            note=note,
            error_message=error_message,
        )

    async def list_unclaimed(self, received_before: datetime, limit: int = 500) -> List[WebhookEvent]:
        """Events that were persisted but never picked up by a worker"""
        result = await self.session.execute(
            select(WebhookEvent)
            .where(
                WebhookEvent.processed.is_(False),
                WebhookEvent.claimed_at.is_(None),
                WebhookEvent.received_at < received_before,
            )
            .order_by(WebhookEvent.received_at)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def resolve_stale_claims(self, claimed_before: datetime, now: datetime, error_message: str) -> int:
        """Close out events whose worker claimed them and never finished"""
        return await self.update_where(
            WebhookEvent.processed.is_(False),
            WebhookEvent.claimed_at.is_not(None),
            WebhookEvent.claimed_at < claimed_before,
            processed=True,
            processed_at=now,
            error_message=error_message,
        )

    async def list_events(
        self,
        provider: Optional[str] = None,
        processed: Optional[bool] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> List[WebhookEvent]:
        return await self.get_multi(
            skip=skip,
            limit=limit,
            filters={"provider": provider, "processed": processed},
            order_by=WebhookEvent.received_at.desc(),
        )
