# backend/app/db/repositories/setup_session_repository.py
from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.setup_session import SetupSession
from app.db.repositories.base import BaseRepository


class SetupSessionRepository(BaseRepository[SetupSession]):
    """Repository for SetupSession rows; all state changes are conditional"""

    def __init__(self, session: AsyncSession):
        super().__init__(SetupSession, session)

    async def claim(self, state: str, now: datetime) -> bool:
        """Reserve the code exchange for exactly one callback"""
        rows = await self.update_where(
            SetupSession.state == state,
            SetupSession.status == "pending",
            SetupSession.consumed_at.is_(None),
            SetupSession.expires_at > now,
            consumed_at=now,
        )
        return rows == 1

    async def finish(self, state: str, status: str, now: datetime, **values) -> bool:
        """Commit a terminal status only if the session is still pending"""
        rows = await self.update_where(
            SetupSession.state == state,
            SetupSession.status == "pending",
            status=status,
            completed_at=now,
            **values,
        )
        return rows == 1

    async def expire(self, state: str, now: datetime) -> bool:
        rows = await self.update_where(
            SetupSession.state == state,
            SetupSession.status == "pending",
            SetupSession.expires_at < now,
            status="expired",
            completed_at=now,
            message="Setup session expired",
        )
        return rows == 1
